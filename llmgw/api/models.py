"""
llmgw - Wire Models

Pydantic models for the canonical wire format.
These are the external-facing shapes clients and downstream consumers
(billing, logging, SDKs) parse.

Every model allows extra keys: OpenAI-compatible providers add fields of
their own and those must survive validation.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class WireModel(BaseModel):
    """Base for wire models: unknown keys are kept."""
    model_config = ConfigDict(extra="allow")


# ============================================================
# Shared
# ============================================================

class PromptTokensDetails(WireModel):
    cached_tokens: Optional[int] = None


class UsageInfo(WireModel):
    """Token usage information."""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    reasoning_tokens: Optional[int] = None
    prompt_tokens_details: Optional[PromptTokensDetails] = None


class ImageUrl(WireModel):
    url: str


class GeneratedImagePart(WireModel):
    """Image generated by the model."""
    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl


class FunctionCall(WireModel):
    """Function call in a complete tool call."""
    name: str
    arguments: str  # JSON string


class ToolCall(WireModel):
    """Tool call from assistant."""
    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


# ============================================================
# Streaming Models
# ============================================================

class FunctionCallDelta(WireModel):
    name: Optional[str] = None
    arguments: Optional[str] = None


class ToolCallDelta(WireModel):
    """Tool call fragment; `arguments` pieces concatenate by index."""
    index: int = 0
    id: Optional[str] = None
    type: Optional[Literal["function"]] = None
    function: Optional[FunctionCallDelta] = None


class DeltaMessage(WireModel):
    """Delta message in streaming chunk."""
    role: Optional[Literal["assistant"]] = None
    content: Optional[str] = None
    reasoning: Optional[str] = None
    images: Optional[List[GeneratedImagePart]] = None
    tool_calls: Optional[List[ToolCallDelta]] = None

    @model_validator(mode="after")
    def reject_provider_reasoning_keys(self):
        """Reasoning must arrive as `reasoning`, never under a provider key."""
        leaked = {"reasoning_content", "thinking"} & set(self.model_extra or {})
        if leaked:
            raise ValueError(f"provider-specific delta keys leaked: {sorted(leaked)}")
        return self


class StreamChoice(WireModel):
    """Choice in streaming response."""
    index: int = 0
    delta: Optional[DeltaMessage] = None
    finish_reason: Optional[str] = None


class ChatCompletionChunk(WireModel):
    """Streaming chat completion chunk."""
    id: str
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int
    model: str
    choices: List[StreamChoice] = Field(default_factory=list)
    usage: Optional[UsageInfo] = None  # Usually only in final chunk
    error: Optional[Dict[str, Any]] = None  # Only on terminal error chunks


# ============================================================
# Non-streaming Models
# ============================================================

class MessageOutput(WireModel):
    """Output message in response."""
    role: Literal["assistant"] = "assistant"
    content: Optional[str] = None
    reasoning: Optional[str] = None
    images: Optional[List[GeneratedImagePart]] = None
    tool_calls: Optional[List[ToolCall]] = None


class Choice(WireModel):
    """A single completion choice."""
    index: int
    message: MessageOutput
    finish_reason: Optional[str] = None


class ChatCompletionResponse(WireModel):
    """Chat completion response, compatible with OpenAI's API format."""
    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: List[Choice]
    usage: Optional[UsageInfo] = None
