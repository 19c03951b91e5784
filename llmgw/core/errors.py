"""
llmgw - Error Definitions

Error taxonomy for the edges of the normalization core.

Normalizers themselves never raise for bad provider input: malformed frames
wait for more bytes, malformed payloads are dropped, unknown shapes fall
through to a family default. The exceptions below describe failures of the
stream *around* the normalizer (transport, provider error events, runaway
buffers) so the pipeline can close the stream with a terminal chunk.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorType(str, Enum):
    """Error classification."""
    INFRA = "infra_error"
    GATEWAY = "gateway_error"


@dataclass
class ErrorDetails:
    """Full error information."""
    # Core fields (always present)
    code: str
    message: str
    type: ErrorType

    # Context fields
    provider: Optional[str] = None

    # Trace fields
    request_id: str = ""
    provider_request_id: Optional[str] = None

    # Recovery fields
    retryable: bool = False
    partial_content: Optional[str] = None

    # Debug fields
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "code": self.code,
            "message": self.message,
            "type": self.type.value,
            "request_id": self.request_id,
            "retryable": self.retryable,
        }

        if self.provider:
            result["provider"] = self.provider
        if self.provider_request_id:
            result["provider_request_id"] = self.provider_request_id
        if self.partial_content:
            result["partial_content"] = self.partial_content
        if self.details:
            result["details"] = self.details

        return {"error": result}


class GatewayException(Exception):
    """Base exception for all llmgw errors."""

    def __init__(self, error: ErrorDetails, status_code: int = 500):
        self.error = error
        self.status_code = status_code
        super().__init__(error.message)


# ============================================================
# Infra Errors (upstream side)
# ============================================================

class InfraError(GatewayException):
    """Base class for failures caused by the upstream provider or the network."""
    pass


class ConnectionTimeoutError(InfraError):
    """Failed to connect to provider."""

    def __init__(self, provider: str, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="connection_timeout",
                message=f"Failed to connect to {provider} API within timeout",
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                retryable=True,
            ),
            status_code=504
        )


class ReadTimeoutError(InfraError):
    """Provider stopped sending bytes."""

    def __init__(self, provider: str, request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="read_timeout",
                message=f"{provider} did not respond within timeout",
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                retryable=True,
            ),
            status_code=504
        )


class UpstreamError(InfraError):
    """Provider returned an HTTP error status."""

    def __init__(
        self,
        provider: str,
        status_code: int,
        message: str = "",
        request_id: str = "",
        provider_request_id: str = ""
    ):
        code_map = {
            429: "upstream_rate_limited",
            500: "upstream_500",
            502: "upstream_502",
            503: "upstream_503",
            504: "upstream_504",
        }
        super().__init__(
            ErrorDetails(
                code=code_map.get(status_code, "upstream_error"),
                message=message or f"{provider} returned error {status_code}",
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                provider_request_id=provider_request_id or None,
                retryable=status_code == 429 or status_code >= 500,
                details={"upstream_status": status_code},
            ),
            status_code=502 if status_code >= 500 else status_code
        )


class ProviderStreamError(InfraError):
    """Provider sent an error event inside an otherwise healthy stream."""

    def __init__(
        self,
        provider: str,
        message: str,
        error_type: str = "",
        request_id: str = ""
    ):
        super().__init__(
            ErrorDetails(
                code="provider_stream_error",
                message=message,
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                retryable=False,
                details={"provider_error_type": error_type} if error_type else {},
            ),
            status_code=502
        )


class StreamInterruptedError(InfraError):
    """Stream was interrupted after content was produced."""

    def __init__(
        self,
        provider: str,
        partial_content: str = "",
        request_id: str = "",
        message: str = "Connection lost after receiving partial content",
    ):
        super().__init__(
            ErrorDetails(
                code="stream_interrupted",
                message=message,
                type=ErrorType.INFRA,
                provider=provider,
                request_id=request_id,
                retryable=False,
                partial_content=partial_content or None,
            ),
            status_code=502
        )


# ============================================================
# Gateway Errors (our side)
# ============================================================

class GatewayInternalError(GatewayException):
    """Unexpected failure inside the gateway while relaying a stream."""

    def __init__(self, message: str, provider: str = "", request_id: str = ""):
        super().__init__(
            ErrorDetails(
                code="gateway_error",
                message=message,
                type=ErrorType.GATEWAY,
                provider=provider or None,
                request_id=request_id,
                retryable=False,
            ),
            status_code=500
        )


# ============================================================
# Factory
# ============================================================

def create_error_from_exception(
    exc: BaseException,
    provider: str,
    request_id: str = ""
) -> GatewayException:
    """
    Classify an exception raised while reading an upstream stream.

    httpx transport failures and HTTP error statuses become `InfraError`
    subclasses; anything else is a `GatewayInternalError`.
    """
    if isinstance(exc, GatewayException):
        return exc

    if isinstance(exc, httpx.ConnectTimeout):
        return ConnectionTimeoutError(provider, request_id)

    if isinstance(exc, httpx.TimeoutException):
        return ReadTimeoutError(provider, request_id)

    if isinstance(exc, httpx.HTTPStatusError):
        provider_request_id = exc.response.headers.get("x-request-id", "")
        return UpstreamError(
            provider=provider,
            status_code=exc.response.status_code,
            request_id=request_id,
            provider_request_id=provider_request_id,
        )

    if isinstance(exc, httpx.HTTPError):
        return StreamInterruptedError(
            provider=provider,
            request_id=request_id,
            message=f"Connection to {provider} failed: {exc}",
        )

    return GatewayInternalError(
        message=f"{type(exc).__name__}: {exc}",
        provider=provider,
        request_id=request_id,
    )
