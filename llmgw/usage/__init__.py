"""
llmgw - Usage Module

Token estimation used as a fallback when a provider omits prompt token
counts.
"""

from .estimator import (
    # Classes
    TokenEstimate,
    TokenEstimator,
    # Functions
    estimate_tokens,
    calculate_prompt_tokens_from_messages,
)

__all__ = [
    "TokenEstimate",
    "TokenEstimator",
    "estimate_tokens",
    "calculate_prompt_tokens_from_messages",
]
