"""
llmgw - Core Data Models

Unified data models shared by every provider family.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union


# ============================================================
# Enums
# ============================================================

class ProviderFamily(str, Enum):
    """Upstream event vocabularies the normalizer understands."""
    OPENAI_COMPATIBLE = "openai-compatible"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google-ai-studio"
    BEDROCK = "aws-bedrock"


# Providers that do not speak the OpenAI chunk shape. Everything else
# (GLM/ZAI, xAI, Groq, DeepSeek, Mistral, ...) reuses it.
PROVIDER_FAMILIES: Dict[str, ProviderFamily] = {
    "openai": ProviderFamily.OPENAI,
    "anthropic": ProviderFamily.ANTHROPIC,
    "google-ai-studio": ProviderFamily.GOOGLE,
    "aws-bedrock": ProviderFamily.BEDROCK,
}


def resolve_provider_family(provider: Optional[str]) -> ProviderFamily:
    """Map a provider id to its family. Unknown providers are OpenAI-compatible."""
    if not provider:
        return ProviderFamily.OPENAI_COMPATIBLE
    return PROVIDER_FAMILIES.get(provider.lower(), ProviderFamily.OPENAI_COMPATIBLE)


class Role(str, Enum):
    """Message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FinishReason(str, Enum):
    """Finish reasons carried on canonical chunks (OpenAI vocabulary)."""
    STOP = "stop"
    LENGTH = "length"
    TOOL_CALLS = "tool_calls"
    CONTENT_FILTER = "content_filter"

    # Gateway-internal terminal reasons
    CANCELED = "canceled"
    GATEWAY_ERROR = "gateway_error"
    UPSTREAM_ERROR = "upstream_error"


# ============================================================
# Content Parts (for multimodal)
# ============================================================

@dataclass
class ImageUrl:
    """Image URL for vision models."""
    url: str
    detail: Literal["low", "high", "auto"] = "auto"


@dataclass
class TextContent:
    """Text content part."""
    type: Literal["text"] = "text"
    text: str = ""


@dataclass
class ImageContent:
    """Image content part."""
    type: Literal["image_url"] = "image_url"
    image_url: ImageUrl = field(default_factory=lambda: ImageUrl(""))


ContentPart = Union[TextContent, ImageContent]


@dataclass
class GeneratedImage:
    """An image produced by the model, as a data or remote URL."""
    url: str
    type: Literal["image_url"] = "image_url"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "image_url": {"url": self.url}}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> GeneratedImage:
        image_url = data.get("image_url") or {}
        if isinstance(image_url, str):
            return cls(url=image_url)
        return cls(url=image_url.get("url", ""))


# ============================================================
# Tool Calling
# ============================================================

@dataclass
class FunctionCall:
    """Function call made by the model."""
    name: str
    arguments: str  # JSON string


@dataclass
class ToolCall:
    """Tool call in response."""
    id: str
    type: Literal["function"] = "function"
    function: FunctionCall = field(default_factory=lambda: FunctionCall("", ""))


# ============================================================
# Messages
# ============================================================

@dataclass
class Message:
    """
    Unified message format.

    Used both for the outbound request messages (token estimation) and for
    the assistant message of an assembled response.
    """
    role: Role
    content: Union[str, List[ContentPart], None] = None
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: Optional[List[ToolCall]] = None
    reasoning: Optional[str] = None
    images: Optional[List[GeneratedImage]] = None

    @classmethod
    def system(cls, content: str) -> Message:
        """Create a system message."""
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: Union[str, List[ContentPart]]) -> Message:
        """Create a user message."""
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(
        cls,
        content: Optional[str] = None,
        tool_calls: Optional[List[ToolCall]] = None,
        reasoning: Optional[str] = None,
        images: Optional[List[GeneratedImage]] = None,
    ) -> Message:
        """Create an assistant message."""
        return cls(
            role=Role.ASSISTANT,
            content=content,
            tool_calls=tool_calls,
            reasoning=reasoning,
            images=images,
        )


# ============================================================
# Usage
# ============================================================

@dataclass
class Usage:
    """
    Token usage information.

    `reasoning_tokens` and `cached_tokens` are only serialized when set.
    Keys a provider sends that are not modelled here are kept in `extra`.
    """
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    reasoning_tokens: Optional[int] = None
    cached_tokens: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.total_tokens == 0:
            self.total_tokens = self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = dict(self.extra)
        result["prompt_tokens"] = self.prompt_tokens
        result["completion_tokens"] = self.completion_tokens
        result["total_tokens"] = self.total_tokens
        if self.reasoning_tokens is not None:
            result["reasoning_tokens"] = self.reasoning_tokens
        if self.cached_tokens is not None:
            details = dict(result.get("prompt_tokens_details") or {})
            details["cached_tokens"] = self.cached_tokens
            result["prompt_tokens_details"] = details
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Usage:
        """Parse an OpenAI-style usage object."""
        known = {"prompt_tokens", "completion_tokens", "total_tokens", "reasoning_tokens"}
        extra = {k: v for k, v in data.items() if k not in known}

        reasoning = data.get("reasoning_tokens")
        if reasoning is None:
            reasoning = (data.get("completion_tokens_details") or {}).get("reasoning_tokens")

        cached = (data.get("prompt_tokens_details") or {}).get("cached_tokens")

        return cls(
            prompt_tokens=data.get("prompt_tokens") or 0,
            completion_tokens=data.get("completion_tokens") or 0,
            total_tokens=data.get("total_tokens") or 0,
            reasoning_tokens=reasoning,
            cached_tokens=cached,
            extra=extra,
        )


# ============================================================
# Response Models
# ============================================================

@dataclass
class Choice:
    """A single completion choice."""
    index: int
    message: Message
    finish_reason: Optional[str] = None


@dataclass
class ChatCompletionResponse:
    """
    Unified non-streaming chat completion.

    Produced either by normalizing a single provider response body or by
    assembling a normalized chunk stream.
    """
    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int = field(default_factory=lambda: int(time.time()))
    model: str = ""
    provider: str = ""
    choices: List[Choice] = field(default_factory=list)
    usage: Optional[Usage] = None

    @property
    def message(self) -> Message:
        """The first choice's message."""
        return self.choices[0].message

    @property
    def finish_reason(self) -> Optional[str]:
        """The first choice's finish reason."""
        return self.choices[0].finish_reason if self.choices else None

    @classmethod
    def create(
        cls,
        content: Optional[str],
        model: str,
        provider: str,
        usage: Optional[Usage] = None,
        finish_reason: Optional[str] = FinishReason.STOP.value,
        tool_calls: Optional[List[ToolCall]] = None,
        reasoning: Optional[str] = None,
        images: Optional[List[GeneratedImage]] = None,
        id: Optional[str] = None,
        created: Optional[int] = None,
    ) -> ChatCompletionResponse:
        """Helper to create a single-choice response."""
        return cls(
            id=id or f"chatcmpl-{int(time.time() * 1000)}",
            created=created or int(time.time()),
            model=model,
            provider=provider,
            choices=[
                Choice(
                    index=0,
                    message=Message.assistant(
                        content=content,
                        tool_calls=tool_calls,
                        reasoning=reasoning,
                        images=images,
                    ),
                    finish_reason=finish_reason,
                )
            ],
            usage=usage,
        )


# ============================================================
# Serialization Helpers
# ============================================================

def message_to_dict(msg: Message) -> Dict[str, Any]:
    """Convert Message to dictionary for JSON serialization."""
    result: Dict[str, Any] = {"role": msg.role.value}

    if msg.content is not None:
        if isinstance(msg.content, str):
            result["content"] = msg.content
        else:
            result["content"] = [
                {
                    "type": part.type,
                    **({"text": part.text} if isinstance(part, TextContent) else {}),
                    **({"image_url": {"url": part.image_url.url, "detail": part.image_url.detail}}
                       if isinstance(part, ImageContent) else {})
                }
                for part in msg.content
            ]
    elif msg.role == Role.ASSISTANT:
        result["content"] = None

    if msg.reasoning:
        result["reasoning"] = msg.reasoning
    if msg.images:
        result["images"] = [image.to_dict() for image in msg.images]
    if msg.name:
        result["name"] = msg.name
    if msg.tool_call_id:
        result["tool_call_id"] = msg.tool_call_id
    if msg.tool_calls:
        result["tool_calls"] = [
            {
                "id": tc.id,
                "type": tc.type,
                "function": {
                    "name": tc.function.name,
                    "arguments": tc.function.arguments
                }
            }
            for tc in msg.tool_calls
        ]

    return result


def response_to_dict(resp: ChatCompletionResponse) -> Dict[str, Any]:
    """Convert ChatCompletionResponse to dictionary for JSON serialization."""
    return {
        "id": resp.id,
        "object": resp.object,
        "created": resp.created,
        "model": resp.model,
        "choices": [
            {
                "index": c.index,
                "message": message_to_dict(c.message),
                "finish_reason": c.finish_reason
            }
            for c in resp.choices
        ],
        "usage": resp.usage.to_dict() if resp.usage else None,
    }
