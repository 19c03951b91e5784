"""
llmgw Adapters Module

Provider-family adapters that translate each provider's native events and
response bodies into the unified chat completion format.
"""

from typing import Dict, Optional, Type

from ..core.models import ProviderFamily, resolve_provider_family
from .base import BaseAdapter, ImageExtractorFn, TokenEstimatorFn
from .openai_adapter import OpenAIAdapter, OpenAICompatibleAdapter
from .anthropic_adapter import AnthropicAdapter
from .google_adapter import GoogleAdapter
from .bedrock_adapter import BedrockAdapter

__all__ = [
    "BaseAdapter",
    "OpenAICompatibleAdapter",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "GoogleAdapter",
    "BedrockAdapter",
    "get_adapter",
]


ADAPTERS: Dict[ProviderFamily, Type[BaseAdapter]] = {
    ProviderFamily.OPENAI_COMPATIBLE: OpenAICompatibleAdapter,
    ProviderFamily.OPENAI: OpenAIAdapter,
    ProviderFamily.ANTHROPIC: AnthropicAdapter,
    ProviderFamily.GOOGLE: GoogleAdapter,
    ProviderFamily.BEDROCK: BedrockAdapter,
}


def get_adapter(
    provider: Optional[str],
    token_estimator: Optional[TokenEstimatorFn] = None,
    image_extractor: Optional[ImageExtractorFn] = None,
) -> BaseAdapter:
    """
    Factory function to get the adapter for a provider.

    Args:
        provider: Provider id ("openai", "anthropic", "zai", ...)
        token_estimator: Optional prompt token estimator override
        image_extractor: Optional image extractor override

    Returns:
        Adapter instance. Unknown providers get the OpenAI-compatible adapter.
    """
    adapter_class = ADAPTERS[resolve_provider_family(provider)]
    return adapter_class(
        provider=provider,
        token_estimator=token_estimator,
        image_extractor=image_extractor,
    )
