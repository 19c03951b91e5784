"""
llmgw - API Layer

Pydantic models for the canonical wire format emitted by the normalizer.
"""

from .models import (
    # Streaming models
    ChatCompletionChunk,
    StreamChoice,
    DeltaMessage,
    ToolCallDelta,
    # Response models
    ChatCompletionResponse,
    Choice,
    MessageOutput,
    # Shared models
    UsageInfo,
    ToolCall,
    GeneratedImagePart,
)


__all__ = [
    # Streaming models
    "ChatCompletionChunk",
    "StreamChoice",
    "DeltaMessage",
    "ToolCallDelta",
    # Response models
    "ChatCompletionResponse",
    "Choice",
    "MessageOutput",
    # Shared models
    "UsageInfo",
    "ToolCall",
    "GeneratedImagePart",
]
