"""
llmgw - Streaming Error Handling

Turns failures around a stream into the terminal canonical chunk.

Key principle:
- A malformed event is dropped and the stream continues (see normalizer)
- A failure of the stream itself (transport, provider error event, runaway
  buffer) ends the stream with one chunk whose finish_reason is
  `upstream_error` or `gateway_error`, carrying an `error` object and the
  content delivered so far
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..core.errors import ErrorType, InfraError, create_error_from_exception
from ..core.models import FinishReason
from .chunks import ChunkChoice, Delta, StreamChunk, generate_chunk_id


@dataclass
class StreamError:
    """
    An error that ended a stream.

    Contains all information needed to close the stream for the client.
    """
    code: str
    message: str
    provider: str
    request_id: str
    finish_reason: str
    type: ErrorType = ErrorType.GATEWAY

    # Timing
    occurred_at: float = field(default_factory=time.time)

    # Content state at error time
    content_started: bool = False
    partial_content: Optional[str] = None
    chunks_delivered: int = 0

    # Error details
    original_error: Optional[str] = None
    http_status: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the `error` object carried by the terminal chunk."""
        result: Dict[str, Any] = {
            "type": self.type.value,
            "code": self.code,
            "message": self.message,
            "provider": self.provider,
            "request_id": self.request_id,
        }

        # Include partial content if any was delivered
        if self.partial_content:
            result["partial_content"] = self.partial_content
            result["chunks_delivered"] = self.chunks_delivered

        if self.http_status:
            result["http_status"] = self.http_status

        if self.details:
            result["details"] = self.details

        return {"error": result}

    def to_chunk(self, model: str, chunk_id: Optional[str] = None) -> StreamChunk:
        """Terminal chunk: empty delta, error finish reason, `error` object."""
        return StreamChunk(
            id=chunk_id or generate_chunk_id(),
            model=model,
            choices=[ChunkChoice(index=0, delta=Delta(), finish_reason=self.finish_reason)],
            extra=self.to_dict(),
        )

    def to_sse(self, model: str, chunk_id: Optional[str] = None) -> str:
        return f"data: {json.dumps(self.to_chunk(model, chunk_id).to_dict(), ensure_ascii=False)}\n\n"


class StreamErrorBuilder:
    """Builder for creating stream errors with context."""

    def __init__(self, provider: str, request_id: str = ""):
        self.provider = provider
        self.request_id = request_id
        self._content_started = False
        self._partial_content = ""
        self._chunks_delivered = 0

    def set_content_state(
        self,
        content_started: bool,
        partial_content: str = "",
        chunks_delivered: int = 0
    ):
        """Set the content state at error time."""
        self._content_started = content_started
        self._partial_content = partial_content
        self._chunks_delivered = chunks_delivered

    def _build(self, **kwargs) -> StreamError:
        return StreamError(
            provider=self.provider,
            request_id=self.request_id,
            content_started=self._content_started,
            partial_content=self._partial_content or None,
            chunks_delivered=self._chunks_delivered,
            **kwargs,
        )

    def from_exception(self, exception: BaseException) -> StreamError:
        """
        Create a stream error from an exception.

        Provider and transport failures (`InfraError`, httpx errors) end the
        stream with `upstream_error`; anything else is our own failure and
        ends it with `gateway_error`.
        """
        gateway_exc = create_error_from_exception(exception, self.provider, self.request_id)
        error = gateway_exc.error

        if isinstance(gateway_exc, InfraError):
            finish_reason = FinishReason.UPSTREAM_ERROR.value
        else:
            finish_reason = FinishReason.GATEWAY_ERROR.value

        return self._build(
            code=error.code,
            message=error.message,
            finish_reason=finish_reason,
            type=error.type,
            original_error=f"{type(exception).__name__}: {exception}",
            http_status=gateway_exc.status_code,
            details=dict(error.details),
        )
