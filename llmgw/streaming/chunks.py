"""
llmgw - Canonical Stream Chunks

The unified `chat.completion.chunk` shape every provider is normalized to.

All providers' events are converted to `StreamChunk` before being
serialized to SSE or fed to the assembler:
- Same chunk structure
- Same field names (`reasoning`, never `reasoning_content` or `thinking`)
- Provider keys the gateway does not model survive in `extra`
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.models import GeneratedImage, Usage

CHUNK_OBJECT = "chat.completion.chunk"


def generate_chunk_id() -> str:
    """Chunk id used when the provider does not supply one."""
    return f"chatcmpl-{int(time.time() * 1000)}"


def now_seconds() -> int:
    return int(time.time())


@dataclass
class ToolCallDelta:
    """
    One tool call fragment inside a delta.

    `arguments` is a fragment of the JSON argument string; fragments with the
    same `index` concatenate (or, for Bedrock, replace) into the full call.
    """
    index: int = 0
    id: Optional[str] = None
    type: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = dict(self.extra)
        result["index"] = self.index

        if self.id is not None:
            result["id"] = self.id
        if self.type is not None:
            result["type"] = self.type

        function: Dict[str, Any] = {}
        if self.name is not None:
            function["name"] = self.name
        if self.arguments is not None:
            function["arguments"] = self.arguments
        if function:
            result["function"] = function

        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCallDelta":
        function = data.get("function") or {}
        return cls(
            index=data.get("index") or 0,
            id=data.get("id"),
            type=data.get("type"),
            name=function.get("name"),
            arguments=function.get("arguments"),
            extra={k: v for k, v in data.items() if k not in {"index", "id", "type", "function"}},
        )


_DELTA_FIELDS = ("role", "content", "reasoning", "images", "tool_calls")


@dataclass
class Delta:
    """
    Incremental content of one choice. Every field is optional.

    `content` and `reasoning` are separate streams and never merged.
    """
    role: Optional[str] = None
    content: Optional[str] = None
    reasoning: Optional[str] = None
    images: Optional[List[GeneratedImage]] = None
    tool_calls: Optional[List[ToolCallDelta]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = dict(self.extra)

        if self.role is not None:
            result["role"] = self.role
        if self.content is not None:
            result["content"] = self.content
        if self.reasoning is not None:
            result["reasoning"] = self.reasoning
        if self.images is not None:
            result["images"] = [image.to_dict() for image in self.images]
        if self.tool_calls is not None:
            result["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]

        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Delta":
        """
        Parse a delta dict.

        Known keys holding null are kept in `extra` so the null survives
        serialization.
        """
        extra: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in _DELTA_FIELDS or value is None:
                extra[key] = value

        images = data.get("images")
        tool_calls = data.get("tool_calls")

        return cls(
            role=data.get("role"),
            content=data.get("content"),
            reasoning=data.get("reasoning"),
            images=[GeneratedImage.from_dict(img) for img in images] if isinstance(images, list) else None,
            tool_calls=[ToolCallDelta.from_dict(tc) for tc in tool_calls] if isinstance(tool_calls, list) else None,
            extra=extra,
        )


@dataclass
class ChunkChoice:
    """A choice inside a chunk. `delta` is None only for passthrough choices without one."""
    index: int = 0
    delta: Optional[Delta] = field(default_factory=Delta)
    finish_reason: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = dict(self.extra)
        result["index"] = self.index
        if self.delta is not None:
            result["delta"] = self.delta.to_dict()
        result["finish_reason"] = self.finish_reason
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkChoice":
        delta = data.get("delta")
        return cls(
            index=data.get("index") or 0,
            delta=Delta.from_dict(delta) if isinstance(delta, dict) else None,
            finish_reason=data.get("finish_reason"),
            extra={k: v for k, v in data.items() if k not in {"index", "delta", "finish_reason"}},
        )


@dataclass
class StreamChunk:
    """
    Canonical streaming unit.

    Usage:
        chunk = StreamChunk(model="claude-sonnet-4", choices=[ChunkChoice(delta=Delta(content="Hi"))])
        yield chunk.to_sse()
    """
    id: str = field(default_factory=generate_chunk_id)
    object: str = CHUNK_OBJECT
    created: int = field(default_factory=now_seconds)
    model: str = ""
    choices: List[ChunkChoice] = field(default_factory=list)
    usage: Optional[Usage] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    # ============================================================
    # Convenience accessors (first choice)
    # ============================================================

    @property
    def delta(self) -> Optional[Delta]:
        return self.choices[0].delta if self.choices else None

    @property
    def finish_reason(self) -> Optional[str]:
        return self.choices[0].finish_reason if self.choices else None

    # ============================================================
    # Serialization
    # ============================================================

    def to_dict(self) -> Dict[str, Any]:
        """Convert to an OpenAI-compatible chunk dictionary."""
        result: Dict[str, Any] = dict(self.extra)
        result.update({
            "id": self.id,
            "object": self.object,
            "created": self.created,
            "model": self.model,
            "choices": [choice.to_dict() for choice in self.choices],
            "usage": self.usage.to_dict() if self.usage else None,
        })
        return result

    def to_sse(self) -> str:
        """Convert to SSE format string."""
        return f"data: {json.dumps(self.to_dict(), ensure_ascii=False)}\n\n"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamChunk":
        """Parse a chunk dictionary (OpenAI chunk shape)."""
        known = {"id", "object", "created", "model", "choices", "usage"}
        choices = data.get("choices")
        usage = data.get("usage")

        return cls(
            id=data.get("id") or generate_chunk_id(),
            object=data.get("object") or CHUNK_OBJECT,
            created=data.get("created") or now_seconds(),
            model=data.get("model") or "",
            choices=[ChunkChoice.from_dict(c) for c in choices if isinstance(c, dict)]
            if isinstance(choices, list) else [],
            usage=Usage.from_dict(usage) if isinstance(usage, dict) else None,
            extra={k: v for k, v in data.items() if k not in known},
        )


def build_chunk(
    model: str,
    delta: Optional[Delta] = None,
    finish_reason: Optional[str] = None,
    usage: Optional[Usage] = None,
    id: Optional[str] = None,
    created: Optional[int] = None,
    index: int = 0,
) -> StreamChunk:
    """Build a single-choice chunk, filling id and created when absent."""
    return StreamChunk(
        id=id or generate_chunk_id(),
        created=created or now_seconds(),
        model=model,
        choices=[ChunkChoice(
            index=index,
            delta=delta if delta is not None else Delta(),
            finish_reason=finish_reason,
        )],
        usage=usage,
    )


def role_only_delta() -> Delta:
    """Keep-alive delta: the role and nothing else."""
    return Delta(role="assistant")
