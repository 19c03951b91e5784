"""
llmgw - Anthropic Adapter

Normalizes Anthropic Messages API events and responses.

Key differences from OpenAI:
- Streams typed events (message_start, content_block_delta, message_delta, ...)
- Thinking arrives as `thinking_delta` blocks, not a delta field
- Tool arguments stream as `partial_json` fragments on the block's index
- Stop reasons use their own vocabulary (end_turn, max_tokens, tool_use)
- Usage counts input, output and cache reads separately
"""

import json
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..core.errors import GatewayException, ProviderStreamError
from ..core.models import (
    ChatCompletionResponse,
    FinishReason,
    FunctionCall,
    ProviderFamily,
    Role,
    ToolCall,
    Usage,
)
from ..streaming.chunks import Delta, StreamChunk, ToolCallDelta
from .base import BaseAdapter


class AnthropicEventShape(str, Enum):
    """Anthropic stream events, grouped by what they produce."""
    TEXT_DELTA = "text_delta"
    THINKING_DELTA = "thinking_delta"
    TOOL_USE_START = "tool_use_start"
    INPUT_JSON_DELTA = "input_json_delta"
    MESSAGE_DELTA_STOP = "message_delta_stop"
    MESSAGE_STOP = "message_stop"
    LEGACY_TEXT = "legacy_text"
    ERROR = "error"
    OTHER = "other"


STOP_REASONS = {
    "end_turn": FinishReason.STOP.value,
    "tool_use": FinishReason.TOOL_CALLS.value,
    "max_tokens": FinishReason.LENGTH.value,
}


def map_stop_reason(stop_reason: Optional[str]) -> str:
    """Anthropic stop reason to chunk finish reason; unknown values mean stop."""
    return STOP_REASONS.get(stop_reason, FinishReason.STOP.value)


def classify_anthropic_event(data: Dict[str, Any]) -> AnthropicEventShape:
    """Pick the single shape an event belongs to. Order matters."""
    event_type = data.get("type")
    delta = data.get("delta") if isinstance(data.get("delta"), dict) else {}

    if event_type == "error":
        return AnthropicEventShape.ERROR
    if event_type == "content_block_delta" and delta.get("text"):
        return AnthropicEventShape.TEXT_DELTA
    if event_type == "content_block_delta" and delta.get("type") == "thinking_delta" and delta.get("thinking"):
        return AnthropicEventShape.THINKING_DELTA
    if event_type == "content_block_start" and (data.get("content_block") or {}).get("type") == "tool_use":
        return AnthropicEventShape.TOOL_USE_START
    if event_type == "content_block_delta" and delta.get("partial_json"):
        return AnthropicEventShape.INPUT_JSON_DELTA
    if event_type == "message_delta" and delta.get("stop_reason"):
        return AnthropicEventShape.MESSAGE_DELTA_STOP
    if event_type == "message_stop" or data.get("stop_reason"):
        return AnthropicEventShape.MESSAGE_STOP
    if delta.get("text"):
        return AnthropicEventShape.LEGACY_TEXT
    return AnthropicEventShape.OTHER


def map_anthropic_usage(usage: Optional[Dict[str, Any]]) -> Optional[Usage]:
    """
    Map Anthropic usage to chat usage.

    Anthropic's `input_tokens` excludes cache reads and writes; the chat
    `prompt_tokens` includes them.
    """
    if not usage:
        return None

    cache_read = usage.get("cache_read_input_tokens") or 0
    cache_write = usage.get("cache_creation_input_tokens") or 0
    prompt = (usage.get("input_tokens") or 0) + cache_read + cache_write

    return Usage(
        prompt_tokens=prompt,
        completion_tokens=usage.get("output_tokens") or 0,
        cached_tokens=cache_read or None,
    )


class AnthropicAdapter(BaseAdapter):
    """Adapter for Anthropic Claude models."""

    family = ProviderFamily.ANTHROPIC

    def normalize_chunk(
        self,
        data: Dict[str, Any],
        model: str,
        messages: Optional[Sequence[Any]] = None,
    ) -> Optional[StreamChunk]:
        shape = classify_anthropic_event(data)
        delta = data.get("delta") if isinstance(data.get("delta"), dict) else {}

        meta = {
            "id": data.get("id") or (data.get("message") or {}).get("id"),
            "created": data.get("created"),
        }
        model = data.get("model") or model
        usage = self._event_usage(data)

        if shape == AnthropicEventShape.TEXT_DELTA or shape == AnthropicEventShape.LEGACY_TEXT:
            return self._chunk(model, Delta(role=Role.ASSISTANT.value, content=delta["text"]), usage=usage, **meta)

        if shape == AnthropicEventShape.THINKING_DELTA:
            return self._chunk(model, Delta(role=Role.ASSISTANT.value, reasoning=delta["thinking"]), usage=usage, **meta)

        if shape == AnthropicEventShape.TOOL_USE_START:
            block = data["content_block"]
            tool_call = ToolCallDelta(
                index=data.get("index") or 0,
                id=block.get("id"),
                type="function",
                name=block.get("name"),
                arguments="",
            )
            return self._chunk(model, Delta(role=Role.ASSISTANT.value, tool_calls=[tool_call]), usage=usage, **meta)

        if shape == AnthropicEventShape.INPUT_JSON_DELTA:
            tool_call = ToolCallDelta(index=data.get("index") or 0, arguments=delta["partial_json"])
            return self._chunk(model, Delta(role=Role.ASSISTANT.value, tool_calls=[tool_call]), usage=usage, **meta)

        if shape == AnthropicEventShape.MESSAGE_DELTA_STOP:
            return self._chunk(
                model,
                Delta(role=Role.ASSISTANT.value),
                finish_reason=map_stop_reason(delta["stop_reason"]),
                usage=usage,
                **meta,
            )

        if shape == AnthropicEventShape.MESSAGE_STOP:
            return self._chunk(
                model,
                Delta(role=Role.ASSISTANT.value),
                finish_reason=map_stop_reason(data.get("stop_reason") or "end_turn"),
                usage=usage,
                **meta,
            )

        if shape == AnthropicEventShape.ERROR:
            # Surfaced through detect_stream_error
            return None

        if shape == AnthropicEventShape.OTHER:
            return self._keep_alive(model, usage=usage, **meta)

        raise ValueError(f"Unhandled Anthropic event shape: {shape}")

    def _event_usage(self, data: Dict[str, Any]) -> Optional[Usage]:
        """Usage from message_delta (top level) or message_start (nested)."""
        usage = data.get("usage")
        if not isinstance(usage, dict):
            usage = (data.get("message") or {}).get("usage")
        return map_anthropic_usage(usage) if isinstance(usage, dict) else None

    def detect_stream_error(self, data: Dict[str, Any]) -> Optional[GatewayException]:
        if data.get("type") != "error":
            return None
        error = data.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            error_type = error.get("type")
        else:
            # Bare string errors carry only a message
            message, error_type = error, None
        return ProviderStreamError(
            provider=self.provider,
            message=str(message or "Anthropic stream error"),
            error_type=str(error_type or ""),
        )

    # ============================================================
    # Non-streaming
    # ============================================================

    def parse_response(
        self,
        data: Dict[str, Any],
        model: str,
        messages: Optional[Sequence[Any]] = None,
    ) -> ChatCompletionResponse:
        """Parse Anthropic response to unified format."""
        content_parts: List[str] = []
        reasoning_parts: List[str] = []
        tool_calls: List[ToolCall] = []

        for block in data.get("content") or []:
            block_type = block.get("type")
            if block_type == "text":
                content_parts.append(block.get("text") or "")
            elif block_type == "thinking":
                reasoning_parts.append(block.get("thinking") or "")
            elif block_type == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=block.get("id") or "",
                        type="function",
                        function=FunctionCall(
                            name=block.get("name") or "",
                            arguments=json.dumps(block.get("input") or {}),
                        )
                    )
                )

        return ChatCompletionResponse.create(
            content="".join(content_parts) or None,
            model=data.get("model") or model,
            provider=self.provider,
            usage=map_anthropic_usage(data.get("usage")),
            finish_reason=map_stop_reason(data.get("stop_reason") or "end_turn"),
            tool_calls=tool_calls or None,
            reasoning="".join(reasoning_parts) or None,
            id=data.get("id"),
        )
