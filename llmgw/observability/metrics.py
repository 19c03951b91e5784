"""
llmgw - Prometheus Metrics

Stream normalization metrics collected with the Prometheus client library.

Metrics exposed:
- llmgw_stream_events_total: Raw upstream events by provider and outcome
  (normalized / dropped / malformed / error)
- llmgw_stream_chunks_total: Canonical chunks emitted by provider
- llmgw_finish_reasons_total: Terminal reasons by provider, unified reason
- llmgw_tokens_total: Tokens reported on final usage (prompt / completion / reasoning / cached)
- llmgw_eventstream_bytes_total: Binary event-stream bytes consumed
- llmgw_stream_duration_seconds: Histogram of stream durations
- llmgw_time_to_first_chunk_seconds: Histogram of time to first content chunk
- llmgw_active_streams: Gauge of streams currently being normalized

Usage:
    from llmgw.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.record_event(provider="anthropic", outcome="normalized")

    body, content_type = metrics_payload()
"""

from typing import Dict, Optional, Tuple

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)


class EventOutcome:
    """Label values for llmgw_stream_events_total."""
    NORMALIZED = "normalized"
    DROPPED = "dropped"
    MALFORMED = "malformed"
    ERROR = "error"


class MetricsCollector:
    """
    Central metrics collector using Prometheus client.

    One instance per registry; the module-level helpers share a singleton
    bound to the default registry.
    """

    _instance: Optional["MetricsCollector"] = None

    def __init__(self, registry: CollectorRegistry = REGISTRY, enabled: bool = True):
        self.registry = registry
        self.enabled = enabled

        self.info = Info(
            "llmgw",
            "llmgw normalization core information",
            registry=registry,
        )
        self.info.info({"version": "1.0.0", "service": "llmgw"})

        self.events_total = Counter(
            "llmgw_stream_events_total",
            "Raw upstream events seen by the normalizer",
            labelnames=["provider", "outcome"],
            registry=registry,
        )

        self.chunks_total = Counter(
            "llmgw_stream_chunks_total",
            "Canonical chunks emitted",
            labelnames=["provider"],
            registry=registry,
        )

        self.finish_reasons_total = Counter(
            "llmgw_finish_reasons_total",
            "Terminal finish reasons, unified",
            labelnames=["provider", "reason"],
            registry=registry,
        )

        self.tokens_total = Counter(
            "llmgw_tokens_total",
            "Tokens reported by the final usage block",
            labelnames=["provider", "model", "type"],
            registry=registry,
        )

        self.eventstream_bytes_total = Counter(
            "llmgw_eventstream_bytes_total",
            "Binary event-stream bytes consumed",
            labelnames=["provider"],
            registry=registry,
        )

        # Streams range from sub-second to several minutes for reasoning models
        self.stream_duration = Histogram(
            "llmgw_stream_duration_seconds",
            "Stream duration in seconds",
            labelnames=["provider", "status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, float("inf")),
            registry=registry,
        )

        self.time_to_first_chunk = Histogram(
            "llmgw_time_to_first_chunk_seconds",
            "Time until the first content-bearing chunk",
            labelnames=["provider"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, float("inf")),
            registry=registry,
        )

        self.active_streams = Gauge(
            "llmgw_active_streams",
            "Streams currently being normalized",
            labelnames=["provider"],
            registry=registry,
        )

    @classmethod
    def get_instance(cls) -> "MetricsCollector":
        """Get singleton instance."""
        if cls._instance is None:
            from ..config import get_settings

            cls._instance = _collector_for(REGISTRY, get_settings().metrics_enabled)
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset singleton (for testing)."""
        cls._instance = None

    def record_event(self, provider: str, outcome: str, count: int = 1):
        """Record raw events by outcome."""
        if self.enabled:
            self.events_total.labels(provider=provider, outcome=outcome).inc(count)

    def record_chunk(self, provider: str):
        if self.enabled:
            self.chunks_total.labels(provider=provider).inc()

    def record_finish_reason(self, provider: str, reason: str):
        if self.enabled:
            self.finish_reasons_total.labels(provider=provider, reason=reason).inc()

    def record_tokens(
        self,
        provider: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        reasoning_tokens: Optional[int] = None,
        cached_tokens: Optional[int] = None,
    ):
        """Record token usage from a final usage block."""
        if not self.enabled:
            return

        self.tokens_total.labels(provider=provider, model=model, type="prompt").inc(prompt_tokens)
        self.tokens_total.labels(provider=provider, model=model, type="completion").inc(completion_tokens)
        if reasoning_tokens:
            self.tokens_total.labels(provider=provider, model=model, type="reasoning").inc(reasoning_tokens)
        if cached_tokens:
            self.tokens_total.labels(provider=provider, model=model, type="cached").inc(cached_tokens)

    def record_eventstream_bytes(self, provider: str, consumed: int):
        if self.enabled and consumed:
            self.eventstream_bytes_total.labels(provider=provider).inc(consumed)

    def record_stream(self, provider: str, status: str, duration_seconds: float):
        if self.enabled:
            self.stream_duration.labels(provider=provider, status=status).observe(duration_seconds)

    def record_time_to_first_chunk(self, provider: str, seconds: float):
        if self.enabled:
            self.time_to_first_chunk.labels(provider=provider).observe(seconds)

    def track_active_stream(self, provider: str) -> "ActiveStreamTracker":
        """Context manager to track active streams."""
        return ActiveStreamTracker(self, provider)


class ActiveStreamTracker:
    """Context manager for tracking active streams."""

    def __init__(self, collector: MetricsCollector, provider: str):
        self.collector = collector
        self.provider = provider

    def __enter__(self):
        if self.collector.enabled:
            self.collector.active_streams.labels(provider=self.provider).inc()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.collector.enabled:
            self.collector.active_streams.labels(provider=self.provider).dec()


# Prometheus refuses to register the same metric name twice on one registry,
# so collectors are cached per registry and survive reset_instance().
_collectors: Dict[int, MetricsCollector] = {}


def _collector_for(registry: CollectorRegistry, enabled: bool) -> MetricsCollector:
    collector = _collectors.get(id(registry))
    if collector is None or collector.registry is not registry:
        collector = MetricsCollector(registry, enabled=enabled)
        _collectors[id(registry)] = collector
    collector.enabled = enabled
    return collector


def setup_metrics(registry: CollectorRegistry = REGISTRY, enabled: bool = True) -> MetricsCollector:
    """
    Setup metrics collection.

    Safe to call multiple times with the same registry.
    """
    MetricsCollector._instance = _collector_for(registry, enabled)
    return MetricsCollector._instance


def get_metrics() -> MetricsCollector:
    """Get the metrics collector instance, creating it on first use."""
    return MetricsCollector.get_instance()


def metrics_payload(registry: CollectorRegistry = REGISTRY) -> Tuple[bytes, str]:
    """
    Render metrics in the Prometheus exposition format.

    Returns:
        (body, content_type) ready for whatever HTTP layer hosts the core
    """
    return generate_latest(registry), CONTENT_TYPE_LATEST
