"""
llmgw - Stream Pipeline

Bytes in, canonical chunks out, for one in-flight response.

    Bedrock:  bytes -> event-stream frames -> SSE text -> events -> chunks
    Others:   bytes -> SSE events -> chunks

The pipeline only keeps what it must between reads: the one incomplete
trailing binary frame, or the partial SSE line. When the byte source fails
the stream ends with a single terminal error chunk; a malformed event never
ends it.
"""

import asyncio
import time
from contextlib import contextmanager
from typing import Any, AsyncIterator, Iterator, List, Optional, Sequence

from ..config import Settings, get_settings
from ..core.errors import StreamInterruptedError
from ..core.models import ProviderFamily, Usage, resolve_provider_family
from ..observability.logging import LogContext, get_logger
from ..observability.metrics import MetricsCollector, get_metrics
from ..observability.tracing import get_tracer, mark_span_error, set_span_attributes
from ..usage.estimator import TokenEstimatorFn
from .chunks import StreamChunk
from .errors import StreamErrorBuilder
from .eventstream import convert_event_stream_to_sse
from .finish_reason import get_unified_finish_reason
from .images import ImageExtractorFn
from .normalizer import StreamNormalizer
from .sse import SSEDecoder

logger = get_logger(__name__)


class StreamPipeline:
    """
    Decodes and normalizes one provider stream.

    Usage:
        pipeline = StreamPipeline(provider="aws-bedrock", model="claude-3-5-sonnet", messages=messages)

        async for chunk in pipeline.iter_chunks(response.aiter_bytes()):
            yield chunk.to_sse()
    """

    def __init__(
        self,
        provider: str,
        model: str,
        messages: Optional[Sequence[Any]] = None,
        request_id: str = "",
        token_estimator: Optional[TokenEstimatorFn] = None,
        image_extractor: Optional[ImageExtractorFn] = None,
        metrics: Optional[MetricsCollector] = None,
        settings: Optional[Settings] = None,
    ):
        self.provider = provider
        self.model = model
        self.request_id = request_id
        self.family = resolve_provider_family(provider)
        self.metrics = metrics or get_metrics()
        self.max_pending_bytes = (settings or get_settings()).max_pending_bytes

        self.normalizer = StreamNormalizer(
            provider=provider,
            model=model,
            messages=messages,
            token_estimator=token_estimator,
            image_extractor=image_extractor,
            metrics=self.metrics,
        )
        self.decoder = SSEDecoder(provider=provider, metrics=self.metrics)

        self._binary = self.family == ProviderFamily.BEDROCK
        self._pending = bytearray()
        # Error raised after other events of the same read
        self._deferred_error: Optional[Exception] = None

        # Content state for the terminal error chunk and the stream metrics
        self._content: List[str] = []
        self.finish_reason: Optional[str] = None
        self.usage: Optional[Usage] = None

    @property
    def pending_bytes(self) -> int:
        """Bytes held back waiting for the rest of a frame or line."""
        if self._binary:
            return len(self._pending)
        return len(self.decoder.pending.encode("utf-8"))

    @property
    def chunks_emitted(self) -> int:
        return self.normalizer.chunks_emitted

    # ============================================================
    # Synchronous Core
    # ============================================================

    def feed(self, data: bytes) -> List[StreamChunk]:
        """
        Feed one read from the provider connection.

        Returns:
            Chunks completed by this read, in order

        Raises:
            ProviderStreamError: The provider reported an error in-stream
            StreamInterruptedError: An incomplete frame outgrew `max_pending_bytes`
        """
        with self._log_context():
            self._raise_deferred()
            if not self._binary:
                return self._normalize_all(self.decoder.feed(data))

            self._pending.extend(data)
            sse_text, consumed = convert_event_stream_to_sse(bytes(self._pending))
            if consumed:
                del self._pending[:consumed]
                self.metrics.record_eventstream_bytes(self.provider, consumed)

            if len(self._pending) > self.max_pending_bytes:
                raise StreamInterruptedError(
                    provider=self.provider,
                    partial_content="".join(self._content),
                    request_id=self.request_id,
                    message=(
                        f"Incomplete event-stream frame exceeded {self.max_pending_bytes} bytes"
                    ),
                )

            return self._normalize_all(self.decoder.feed(sse_text))

    def flush(self) -> List[StreamChunk]:
        """Drain a final SSE event the provider did not terminate."""
        with self._log_context():
            self._raise_deferred()
            if self._pending:
                logger.debug(
                    "Discarding incomplete event-stream frame at end of stream",
                    provider=self.provider,
                    pending_bytes=len(self._pending),
                )
                self._pending.clear()
            return self._normalize_all(self.decoder.flush())

    def _normalize_all(self, events) -> List[StreamChunk]:
        chunks: List[StreamChunk] = []
        for event in events:
            try:
                chunk = self.normalizer.normalize(event)
            except Exception as e:
                if not chunks:
                    raise
                # Deliver what this read completed first; events after the error are dropped
                self._deferred_error = e
                break
            if chunk is None:
                continue
            self._track(chunk)
            chunks.append(chunk)
        return chunks

    def _raise_deferred(self) -> None:
        if self._deferred_error is not None:
            error, self._deferred_error = self._deferred_error, None
            raise error

    def _track(self, chunk: StreamChunk) -> None:
        for choice in chunk.choices:
            if choice.delta is not None and choice.delta.content:
                self._content.append(choice.delta.content)
            if choice.finish_reason is not None:
                self.finish_reason = choice.finish_reason
        if chunk.usage is not None:
            self.usage = chunk.usage

    @contextmanager
    def _log_context(self) -> Iterator[LogContext]:
        ctx = LogContext(
            request_id=self.request_id,
            provider=self.provider,
            family=self.family.value,
            model=self.model,
        )
        token = LogContext.set_current(ctx)
        try:
            yield ctx
        finally:
            LogContext.reset(token)

    # ============================================================
    # Async Driver
    # ============================================================

    async def iter_chunks(self, byte_iter: AsyncIterator[bytes]) -> AsyncIterator[StreamChunk]:
        """
        Drive the pipeline from an async byte source.

        A failure of the source or of the pipeline itself yields one terminal
        error chunk and stops. Cancellation propagates to the caller.
        """
        # Spans are not made current: an async generator may be resumed or
        # closed from another context.
        span = get_tracer().start_span("llmgw.stream")
        set_span_attributes(span, {
            "llmgw.provider": self.provider,
            "llmgw.family": self.family.value,
            "llmgw.model": self.model,
            "llmgw.request_id": self.request_id or None,
        })

        start = time.perf_counter()
        first_chunk_seen = False
        status = "completed"

        with self.metrics.track_active_stream(self.provider):
            try:
                async for data in byte_iter:
                    for chunk in self.feed(data):
                        if not first_chunk_seen:
                            first_chunk_seen = True
                            self.metrics.record_time_to_first_chunk(
                                self.provider, time.perf_counter() - start
                            )
                        yield chunk
                    self._raise_deferred()

                for chunk in self.flush():
                    yield chunk

            except asyncio.CancelledError:
                status = "canceled"
                raise

            except Exception as e:
                status = "error"
                mark_span_error(span, e)
                error_chunk = self._error_chunk(e)
                self._track(error_chunk)
                with self._log_context():
                    logger.error(
                        "Stream ended with error",
                        provider=self.provider,
                        error=f"{type(e).__name__}: {e}",
                        finish_reason=error_chunk.finish_reason,
                        chunks_delivered=self.chunks_emitted,
                    )
                yield error_chunk

            finally:
                self._finish(span, status, time.perf_counter() - start)

    def _error_chunk(self, exc: BaseException) -> StreamChunk:
        builder = StreamErrorBuilder(self.provider, self.request_id)
        partial = "".join(self._content)
        builder.set_content_state(
            content_started=bool(partial),
            partial_content=partial,
            chunks_delivered=self.chunks_emitted,
        )
        return builder.from_exception(exc).to_chunk(self.model, self.normalizer.stream_id)

    def _finish(self, span, status: str, duration: float) -> None:
        self.metrics.record_stream(self.provider, status, duration)
        if self.finish_reason is not None:
            self.metrics.record_finish_reason(
                self.provider,
                get_unified_finish_reason(self.finish_reason, self.provider).value,
            )
        if self.usage is not None:
            self.metrics.record_tokens(
                self.provider,
                self.model,
                self.usage.prompt_tokens,
                self.usage.completion_tokens,
                reasoning_tokens=self.usage.reasoning_tokens,
                cached_tokens=self.usage.cached_tokens,
            )

        set_span_attributes(span, {
            "llmgw.status": status,
            "llmgw.chunks": self.chunks_emitted,
            "llmgw.finish_reason": self.finish_reason,
        })
        span.end()
