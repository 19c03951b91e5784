"""
llmgw - AWS Bedrock Adapter

Normalizes Bedrock Converse / ConverseStream payloads.

Stream events arrive through the binary event-stream bridge, so each one
carries its frame's `:event-type` header as `__aws_event_type`.

Key differences from the other families:
- Events the gateway has no use for (contentBlockStop, ...) are dropped,
  not turned into keep-alive chunks
- Tool-use deltas carry the whole current input, so consumers replace
  rather than append arguments
- Usage arrives on a separate `metadata` event
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


class BedrockEventShape(str, Enum):
    """ConverseStream events the gateway turns into chunks."""
    TEXT_DELTA = "text_delta"
    REASONING_DELTA = "reasoning_delta"
    TOOL_USE_DELTA = "tool_use_delta"
    TOOL_USE_START = "tool_use_start"
    MESSAGE_START = "message_start"
    MESSAGE_STOP = "message_stop"
    METADATA = "metadata"
    IGNORED = "ignored"


STOP_REASONS = {
    "max_tokens": FinishReason.LENGTH.value,
    "tool_use": FinishReason.TOOL_CALLS.value,
    "content_filtered": FinishReason.CONTENT_FILTER.value,
}


def map_stop_reason(stop_reason: Optional[str]) -> str:
    """Bedrock stop reason to chunk finish reason; unknown values mean stop."""
    return STOP_REASONS.get(stop_reason, FinishReason.STOP.value)


def classify_bedrock_event(data: Dict[str, Any]) -> BedrockEventShape:
    event_type = data.get("__aws_event_type")
    delta = data.get("delta") if isinstance(data.get("delta"), dict) else {}

    if event_type == "contentBlockDelta":
        if delta.get("text"):
            return BedrockEventShape.TEXT_DELTA
        if delta.get("toolUse"):
            return BedrockEventShape.TOOL_USE_DELTA
        if (delta.get("reasoningContent") or {}).get("text"):
            return BedrockEventShape.REASONING_DELTA
    if event_type == "contentBlockStart" and ((data.get("start") or {}).get("toolUse")):
        return BedrockEventShape.TOOL_USE_START
    if event_type == "messageStart":
        return BedrockEventShape.MESSAGE_START
    if event_type == "messageStop":
        return BedrockEventShape.MESSAGE_STOP
    if event_type == "metadata" and data.get("usage"):
        return BedrockEventShape.METADATA
    return BedrockEventShape.IGNORED


def tool_input_json(tool_input: Any) -> str:
    """
    Serialize the current tool input.

    Structured inputs are JSON-encoded; string inputs are already JSON text.
    """
    if isinstance(tool_input, str):
        return tool_input
    return json.dumps(tool_input or {})


def map_bedrock_usage(usage: Optional[Dict[str, Any]]) -> Optional[Usage]:
    if not usage:
        return None
    cached = usage.get("cacheReadInputTokens") or 0
    return Usage(
        prompt_tokens=usage.get("inputTokens") or 0,
        completion_tokens=usage.get("outputTokens") or 0,
        total_tokens=usage.get("totalTokens") or 0,
        cached_tokens=cached or None,
    )


class BedrockAdapter(BaseAdapter):
    """Adapter for AWS Bedrock Converse models."""

    family = ProviderFamily.BEDROCK

    def normalize_chunk(
        self,
        data: Dict[str, Any],
        model: str,
        messages: Optional[Sequence[Any]] = None,
    ) -> Optional[StreamChunk]:
        shape = classify_bedrock_event(data)
        delta = data.get("delta") if isinstance(data.get("delta"), dict) else {}
        index = data.get("contentBlockIndex") or 0

        if shape == BedrockEventShape.TEXT_DELTA:
            return self._chunk(model, Delta(role=Role.ASSISTANT.value, content=delta["text"]))

        if shape == BedrockEventShape.REASONING_DELTA:
            return self._chunk(model, Delta(role=Role.ASSISTANT.value, reasoning=delta["reasoningContent"]["text"]))

        if shape == BedrockEventShape.TOOL_USE_DELTA:
            tool_use = delta["toolUse"]
            tool_call = ToolCallDelta(
                index=index,
                id=tool_use.get("toolUseId"),
                type="function",
                name=tool_use.get("name"),
                arguments=tool_input_json(tool_use.get("input")),
            )
            return self._chunk(model, Delta(role=Role.ASSISTANT.value, tool_calls=[tool_call]))

        if shape == BedrockEventShape.TOOL_USE_START:
            tool_use = data["start"]["toolUse"]
            tool_call = ToolCallDelta(
                index=index,
                id=tool_use.get("toolUseId"),
                type="function",
                name=tool_use.get("name"),
                arguments="",
            )
            return self._chunk(model, Delta(role=Role.ASSISTANT.value, tool_calls=[tool_call]))

        if shape == BedrockEventShape.MESSAGE_START:
            return self._keep_alive(model)

        if shape == BedrockEventShape.MESSAGE_STOP:
            return self._chunk(model, Delta(), finish_reason=map_stop_reason(data.get("stopReason")))

        if shape == BedrockEventShape.METADATA:
            return self._chunk(model, Delta(), usage=map_bedrock_usage(data["usage"]))

        if shape == BedrockEventShape.IGNORED:
            return None

        raise ValueError(f"Unhandled Bedrock event shape: {shape}")

    def detect_stream_error(self, data: Dict[str, Any]) -> Optional[GatewayException]:
        exception_type = data.get("__aws_exception_type")
        if not exception_type:
            return None
        return ProviderStreamError(
            provider=self.provider,
            message=str(data.get("message") or data.get("Message") or exception_type),
            error_type=str(exception_type),
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
        """Parse a Converse body to unified format."""
        content_parts: List[str] = []
        reasoning_parts: List[str] = []
        tool_calls: List[ToolCall] = []

        message = (data.get("output") or {}).get("message") or {}
        for block in message.get("content") or []:
            if "text" in block:
                content_parts.append(block.get("text") or "")
            elif "toolUse" in block:
                tool_use = block["toolUse"] or {}
                tool_calls.append(ToolCall(
                    id=tool_use.get("toolUseId") or "",
                    function=FunctionCall(
                        name=tool_use.get("name") or "",
                        arguments=tool_input_json(tool_use.get("input")),
                    ),
                ))
            elif "reasoningContent" in block:
                reasoning_text = ((block["reasoningContent"] or {}).get("reasoningText") or {}).get("text")
                if reasoning_text:
                    reasoning_parts.append(reasoning_text)

        return ChatCompletionResponse.create(
            content="".join(content_parts) or None,
            model=model,
            provider=self.provider,
            usage=map_bedrock_usage(data.get("usage")),
            finish_reason=map_stop_reason(data.get("stopReason")),
            tool_calls=tool_calls or None,
            reasoning="".join(reasoning_parts) or None,
        )
