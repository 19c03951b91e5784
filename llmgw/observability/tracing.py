"""
llmgw - OpenTelemetry Tracing

Spans around stream normalization.

The core only creates spans through the OpenTelemetry API. Exporters and
sampling belong to the host application; `setup_tracing` is a convenience
for hosts that have nothing configured yet. With LLMGW_TRACING_ENABLED set,
the first `get_tracer()` call installs one from settings, exporting over
OTLP when OTEL_EXPORTER_OTLP_ENDPOINT is set.

Usage:
    from llmgw.observability.tracing import get_tracer

    tracer = get_tracer()
    with tracer.start_as_current_span("llmgw.stream") as span:
        span.set_attribute("llmgw.provider", "anthropic")
"""

from typing import TYPE_CHECKING, Any, Dict, Optional

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
    SpanExporter,
)
from opentelemetry.trace import Span, Status, StatusCode

if TYPE_CHECKING:
    from ..config import Settings

INSTRUMENTATION_NAME = "llmgw"
INSTRUMENTATION_VERSION = "1.0.0"


class TracingManager:
    """
    Owns the TracerProvider when llmgw is asked to install one.

    Singleton pattern for global access.
    """

    _instance: Optional["TracingManager"] = None

    def __init__(
        self,
        service_name: str = "llmgw",
        exporter: Optional[SpanExporter] = None,
        otlp_endpoint: Optional[str] = None,
        console_export: bool = False,
    ):
        """
        Initialize tracing.

        Args:
            service_name: Name of the service
            exporter: Span exporter to attach (e.g. an in-memory exporter in tests)
            otlp_endpoint: OTLP collector endpoint (e.g., http://localhost:4317)
            console_export: Whether to export spans to console (for debugging)
        """
        self.service_name = service_name

        resource = Resource.create({
            SERVICE_NAME: service_name,
            SERVICE_VERSION: INSTRUMENTATION_VERSION,
        })
        self.provider = TracerProvider(resource=resource)

        if exporter is not None:
            self.provider.add_span_processor(SimpleSpanProcessor(exporter))

        if otlp_endpoint:
            self.provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint)))

        if console_export:
            self.provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

        self.tracer = self.provider.get_tracer(INSTRUMENTATION_NAME, INSTRUMENTATION_VERSION)

    @classmethod
    def get_instance(cls) -> Optional["TracingManager"]:
        """Get singleton instance, if tracing was set up through llmgw."""
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset singleton (for testing)."""
        cls._instance = None

    def shutdown(self) -> None:
        self.provider.shutdown()


def setup_tracing(
    service_name: str = "llmgw",
    exporter: Optional[SpanExporter] = None,
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False,
) -> TracingManager:
    """
    Install a TracerProvider used for llmgw spans.

    The provider is kept local to llmgw rather than set globally so it never
    overrides a provider the host application already installed.
    """
    TracingManager._instance = TracingManager(
        service_name=service_name,
        exporter=exporter,
        otlp_endpoint=otlp_endpoint,
        console_export=console_export,
    )
    return TracingManager._instance


def setup_tracing_from_settings(settings: Optional["Settings"] = None) -> Optional[TracingManager]:
    """Install a provider from settings; None when tracing is disabled."""
    if settings is None:
        from ..config import get_settings

        settings = get_settings()

    if not settings.tracing_enabled:
        return None
    return setup_tracing(
        service_name=settings.service_name,
        otlp_endpoint=settings.otlp_endpoint,
    )


def get_tracer() -> trace.Tracer:
    """
    Get the tracer for llmgw spans.

    Installs a provider from settings on first use when tracing is enabled,
    otherwise falls back to the global OpenTelemetry tracer (a no-op unless
    the host configured one).
    """
    manager = TracingManager.get_instance()
    if manager is None:
        manager = setup_tracing_from_settings()
    if manager is not None:
        return manager.tracer
    return trace.get_tracer(INSTRUMENTATION_NAME, INSTRUMENTATION_VERSION)


def set_span_attributes(span: Span, attributes: Dict[str, Any]) -> None:
    """Set attributes, skipping None values OpenTelemetry would reject."""
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(key, value)


def mark_span_error(span: Span, exc: BaseException) -> None:
    """Record an exception and mark the span as failed."""
    span.record_exception(exc)
    span.set_status(Status(StatusCode.ERROR, str(exc)))
