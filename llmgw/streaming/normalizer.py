"""
llmgw - Stream Normalizer

Normalizes streaming events and single responses from all providers to the
unified OpenAI-compatible format.

Ensures consistent output regardless of source provider:
- Same chunk structure
- Same field names
- Reasoning kept apart from content
- Tool call deltas keyed by index

A bad event never ends the stream: an exception while normalizing one event
is logged, counted and the event is dropped.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence

from ..core.models import ChatCompletionResponse
from ..observability.logging import TimedOperation, get_logger
from ..observability.metrics import EventOutcome, MetricsCollector, get_metrics
from ..usage.estimator import TokenEstimatorFn
from .chunks import StreamChunk
from .finish_reason import get_unified_finish_reason
from .images import ImageExtractorFn

if TYPE_CHECKING:
    from ..adapters.base import BaseAdapter

logger = get_logger(__name__)


def _adapter_for(
    provider: Optional[str],
    token_estimator: Optional[TokenEstimatorFn],
    image_extractor: Optional[ImageExtractorFn],
) -> "BaseAdapter":
    # Adapters import the chunk types from this package
    from ..adapters import get_adapter

    return get_adapter(provider, token_estimator=token_estimator, image_extractor=image_extractor)


def _normalize_event(
    adapter: "BaseAdapter",
    data: Dict[str, Any],
    model: str,
    messages: Optional[Sequence[Any]],
    metrics: MetricsCollector,
) -> Optional[StreamChunk]:
    try:
        chunk = adapter.normalize_chunk(data, model, messages)
    except Exception as e:
        logger.warning(
            "Dropping event that failed to normalize",
            provider=adapter.provider,
            family=adapter.family.value,
            event_type=data.get("type") or data.get("__aws_event_type"),
            error=f"{type(e).__name__}: {e}",
        )
        metrics.record_event(adapter.provider, EventOutcome.ERROR)
        return None

    if chunk is None:
        logger.debug(
            "Dropping event without user-visible signal",
            provider=adapter.provider,
            event_type=data.get("type") or data.get("__aws_event_type"),
        )
        metrics.record_event(adapter.provider, EventOutcome.DROPPED)
        return None

    metrics.record_event(adapter.provider, EventOutcome.NORMALIZED)
    return chunk


def transform_streaming_to_openai(
    provider: str,
    model: str,
    data: Dict[str, Any],
    messages: Optional[Sequence[Any]] = None,
    token_estimator: Optional[TokenEstimatorFn] = None,
    image_extractor: Optional[ImageExtractorFn] = None,
) -> Optional[StreamChunk]:
    """
    Normalize one raw provider event.

    Args:
        provider: Provider id; unknown ids are treated as OpenAI-compatible
        model: Resolved model id
        data: Parsed provider event
        messages: Original outbound messages (prompt token fallback)

    Returns:
        Canonical chunk, or None when the event should be dropped
    """
    adapter = _adapter_for(provider, token_estimator, image_extractor)
    return _normalize_event(adapter, data, model, messages, get_metrics())


def transform_response_to_openai(
    provider: str,
    model: str,
    data: Dict[str, Any],
    messages: Optional[Sequence[Any]] = None,
    token_estimator: Optional[TokenEstimatorFn] = None,
    image_extractor: Optional[ImageExtractorFn] = None,
) -> ChatCompletionResponse:
    """
    Normalize one non-streaming provider response body.

    Unlike streaming, a body that cannot be parsed raises: there is no
    stream to keep alive.
    """
    adapter = _adapter_for(provider, token_estimator, image_extractor)
    with TimedOperation("normalize_response", logger, extra={"provider": adapter.provider}):
        response = adapter.parse_response(data, model, messages)
    get_metrics().record_finish_reason(
        adapter.provider,
        get_unified_finish_reason(response.finish_reason, adapter.provider).value,
    )
    return response


class StreamNormalizer:
    """
    Normalizes one in-flight stream.

    Wraps the per-event normalizer with the little metadata a stream needs:
    - One chunk id for the whole response (the first one seen)
    - Prompt token counts carried into later usage blocks that omit them
    - Provider error events raised instead of normalized

    Usage:
        normalizer = StreamNormalizer(provider="anthropic", model="claude-sonnet-4", messages=messages)

        for event in events:
            chunk = normalizer.normalize(event)
            if chunk is not None:
                yield chunk.to_sse()
    """

    def __init__(
        self,
        provider: str,
        model: str,
        messages: Optional[Sequence[Any]] = None,
        token_estimator: Optional[TokenEstimatorFn] = None,
        image_extractor: Optional[ImageExtractorFn] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.provider = provider
        self.model = model
        self.messages = messages
        self.adapter = _adapter_for(provider, token_estimator, image_extractor)
        self.metrics = metrics or get_metrics()

        self.stream_id: Optional[str] = None
        self.chunks_emitted = 0
        self._prompt_tokens = 0
        self._cached_tokens: Optional[int] = None

    def normalize(self, data: Dict[str, Any]) -> Optional[StreamChunk]:
        """
        Normalize one event.

        Raises:
            GatewayException: The event is the provider reporting an error
        """
        try:
            error = self.adapter.detect_stream_error(data)
        except Exception as e:
            logger.warning(
                "Dropping event that failed the error check",
                provider=self.adapter.provider,
                family=self.adapter.family.value,
                event_type=data.get("type") or data.get("__aws_event_type"),
                error=f"{type(e).__name__}: {e}",
            )
            self.metrics.record_event(self.adapter.provider, EventOutcome.ERROR)
            return None

        if error is not None:
            self.metrics.record_event(self.adapter.provider, EventOutcome.ERROR)
            raise error

        chunk = _normalize_event(self.adapter, data, self.model, self.messages, self.metrics)
        if chunk is None:
            return None

        if self.stream_id is None:
            self.stream_id = chunk.id
        else:
            chunk.id = self.stream_id

        if chunk.usage is not None:
            self._carry_prompt_usage(chunk)

        self.chunks_emitted += 1
        self.metrics.record_chunk(self.adapter.provider)
        return chunk

    def _carry_prompt_usage(self, chunk: StreamChunk) -> None:
        usage = chunk.usage
        if usage.prompt_tokens:
            self._prompt_tokens = usage.prompt_tokens
            if usage.cached_tokens is not None:
                self._cached_tokens = usage.cached_tokens
            return

        if self._prompt_tokens:
            usage.prompt_tokens = self._prompt_tokens
            usage.total_tokens += self._prompt_tokens
            if usage.cached_tokens is None:
                usage.cached_tokens = self._cached_tokens
