"""
llmgw - Finish Reason Unification

Maps every provider's terminal status vocabulary onto one closed enum used
by logging, billing and analytics.

Chunks carry OpenAI-style reasons (`stop`, `length`, ...). Raw provider
values are accepted too, so the unifier can be applied to a stored upstream
reason as well as to a normalized chunk.
"""

from enum import Enum
from typing import Dict, Optional

from ..core.models import ProviderFamily, resolve_provider_family


class UnifiedFinishReason(str, Enum):
    """Closed set of terminal outcomes."""
    COMPLETED = "completed"
    LENGTH_LIMIT = "length_limit"
    CONTENT_FILTER = "content_filter"
    TOOL_CALLS = "tool_calls"
    CANCELED = "canceled"
    GATEWAY_ERROR = "gateway_error"
    UPSTREAM_ERROR = "upstream_error"
    UNKNOWN = "unknown"


# Gateway-internal reasons, identical for every provider
_SPECIAL_REASONS: Dict[str, UnifiedFinishReason] = {
    "canceled": UnifiedFinishReason.CANCELED,
    "gateway_error": UnifiedFinishReason.GATEWAY_ERROR,
    "upstream_error": UnifiedFinishReason.UPSTREAM_ERROR,
}

_OPENAI_REASONS: Dict[str, UnifiedFinishReason] = {
    "stop": UnifiedFinishReason.COMPLETED,
    "length": UnifiedFinishReason.LENGTH_LIMIT,
    "content_filter": UnifiedFinishReason.CONTENT_FILTER,
    "tool_calls": UnifiedFinishReason.TOOL_CALLS,
}

_ANTHROPIC_REASONS: Dict[str, UnifiedFinishReason] = {
    **_OPENAI_REASONS,
    "end_turn": UnifiedFinishReason.COMPLETED,
    "stop_sequence": UnifiedFinishReason.COMPLETED,
    "max_tokens": UnifiedFinishReason.LENGTH_LIMIT,
    "tool_use": UnifiedFinishReason.TOOL_CALLS,
}

_BEDROCK_REASONS: Dict[str, UnifiedFinishReason] = {
    **_OPENAI_REASONS,
    "end_turn": UnifiedFinishReason.COMPLETED,
    "stop_sequence": UnifiedFinishReason.COMPLETED,
    "max_tokens": UnifiedFinishReason.LENGTH_LIMIT,
    "tool_use": UnifiedFinishReason.TOOL_CALLS,
    "content_filtered": UnifiedFinishReason.CONTENT_FILTER,
    "guardrail_intervened": UnifiedFinishReason.CONTENT_FILTER,
}

# Google reasons are translated to the OpenAI vocabulary by the adapter
_FAMILY_REASONS: Dict[ProviderFamily, Dict[str, UnifiedFinishReason]] = {
    ProviderFamily.OPENAI: _OPENAI_REASONS,
    ProviderFamily.OPENAI_COMPATIBLE: _OPENAI_REASONS,
    ProviderFamily.GOOGLE: _OPENAI_REASONS,
    ProviderFamily.ANTHROPIC: _ANTHROPIC_REASONS,
    ProviderFamily.BEDROCK: _BEDROCK_REASONS,
}


def get_unified_finish_reason(
    finish_reason: Optional[str],
    provider: Optional[str],
) -> UnifiedFinishReason:
    """
    Unify a finish reason. Never raises.

    Args:
        finish_reason: Raw or normalized reason; None means the stream never
            reported one
        provider: Provider id (unknown ids use the OpenAI vocabulary)

    Returns:
        The unified reason, UNKNOWN for anything unrecognized
    """
    if finish_reason is None or not isinstance(finish_reason, str):
        return UnifiedFinishReason.UNKNOWN

    special = _SPECIAL_REASONS.get(finish_reason)
    if special is not None:
        return special

    vocabulary = _FAMILY_REASONS[resolve_provider_family(provider)]
    return vocabulary.get(finish_reason, UnifiedFinishReason.UNKNOWN)
