"""
llmgw - Provider Adapter Base

Abstract base class for provider normalizers.
Each provider family (OpenAI-compatible, OpenAI Responses, Anthropic,
Google AI Studio, Bedrock) implements this interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from ..core.errors import GatewayException
from ..core.models import ChatCompletionResponse, GeneratedImage, ProviderFamily, Usage
from ..streaming.chunks import Delta, StreamChunk, build_chunk, role_only_delta
from ..streaming.images import ImageExtractorFn, extract_images
from ..usage.estimator import TokenEstimatorFn, calculate_prompt_tokens_from_messages


class BaseAdapter(ABC):
    """
    Abstract base class for provider adapters.

    Each provider adapter must implement:
    - normalize_chunk: one raw streaming event -> zero or one canonical chunk
    - parse_response: one non-streaming response body -> unified response

    Adapters are pure: they hold no per-stream state, so one instance can
    serve concurrent streams. Returning None from normalize_chunk means the
    event carries nothing a consumer needs and is dropped.
    """

    family: ProviderFamily

    def __init__(
        self,
        provider: Optional[str] = None,
        token_estimator: Optional[TokenEstimatorFn] = None,
        image_extractor: Optional[ImageExtractorFn] = None,
    ):
        """
        Args:
            provider: Provider id as configured by the caller (e.g. "zai")
            token_estimator: Prompt token estimator for providers that omit counts
            image_extractor: Extracts generated images from raw payloads
        """
        self.provider = provider or self.family.value
        self._token_estimator = token_estimator
        self._image_extractor = image_extractor or extract_images

    @abstractmethod
    def normalize_chunk(
        self,
        data: Dict[str, Any],
        model: str,
        messages: Optional[Sequence[Any]] = None,
    ) -> Optional[StreamChunk]:
        """
        Normalize one raw streaming event.

        Args:
            data: Parsed provider event
            model: Resolved model id
            messages: Original outbound messages (for prompt token estimates)

        Returns:
            Canonical chunk, or None to drop the event
        """
        pass

    @abstractmethod
    def parse_response(
        self,
        data: Dict[str, Any],
        model: str,
        messages: Optional[Sequence[Any]] = None,
    ) -> ChatCompletionResponse:
        """
        Normalize one non-streaming response body.

        Args:
            data: Parsed provider response
            model: Resolved model id
            messages: Original outbound messages (for prompt token estimates)

        Returns:
            Unified chat completion response
        """
        pass

    def detect_stream_error(self, data: Dict[str, Any]) -> Optional[GatewayException]:
        """
        Return an exception when the event is a provider error report.

        Error events never become chunks; the stream pipeline closes the
        stream with a terminal error chunk instead. Override in subclass if
        the provider reports errors in-band.
        """
        return None

    # ============================================================
    # Helper methods for subclasses
    # ============================================================

    def estimate_prompt_tokens(self, messages: Optional[Sequence[Any]]) -> int:
        """Prompt token fallback for providers that report zero."""
        if self._token_estimator is not None:
            return self._token_estimator(messages or [])
        return calculate_prompt_tokens_from_messages(messages, self.provider)

    def extract_images(self, data: Dict[str, Any]) -> List[GeneratedImage]:
        return self._image_extractor(data, self.provider)

    def _chunk(
        self,
        model: str,
        delta: Optional[Delta] = None,
        finish_reason: Optional[str] = None,
        usage: Optional[Usage] = None,
        id: Optional[str] = None,
        created: Optional[int] = None,
        index: int = 0,
    ) -> StreamChunk:
        """Single-choice chunk with synthesized id/created when absent."""
        return build_chunk(
            model=model,
            delta=delta,
            finish_reason=finish_reason,
            usage=usage,
            id=id,
            created=created,
            index=index,
        )

    def _keep_alive(
        self,
        model: str,
        usage: Optional[Usage] = None,
        id: Optional[str] = None,
        created: Optional[int] = None,
    ) -> StreamChunk:
        """Role-only chunk that keeps the stream alive without content."""
        return self._chunk(model, role_only_delta(), usage=usage, id=id, created=created)
