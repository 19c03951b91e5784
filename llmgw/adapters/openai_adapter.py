"""
llmgw - OpenAI Adapters

Two families share this module:

- `OpenAICompatibleAdapter`: every provider that already speaks the Chat
  Completions chunk shape (GLM/ZAI, xAI, Groq, DeepSeek, Mistral, ...).
  Chunks pass through with `object` forced, `role` defaulted and
  `reasoning_content` renamed to `reasoning`.
- `OpenAIAdapter`: OpenAI itself, whose Responses API streams typed events
  (`response.output_text.delta`, `response.completed`, ...). Events without
  a `type` are Chat Completions chunks and use the compatible path.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..core.models import (
    ChatCompletionResponse,
    Choice,
    FinishReason,
    FunctionCall,
    GeneratedImage,
    Message,
    ProviderFamily,
    Role,
    ToolCall,
    Usage,
)
from ..streaming.chunks import (
    CHUNK_OBJECT,
    ChunkChoice,
    Delta,
    StreamChunk,
    ToolCallDelta,
    generate_chunk_id,
    now_seconds,
)
from .base import BaseAdapter


# ============================================================
# OpenAI-compatible (Chat Completions chunks)
# ============================================================

class CompatibleChunkShape(str, Enum):
    """Shapes a Chat Completions style event can take."""
    CHOICES = "choices"        # {"choices": [...]}
    DELTA = "delta"            # {"delta": {...}} without choices
    CANONICAL = "canonical"    # has id and object, nothing to fix
    BARE = "bare"              # top-level content / tool_calls


def classify_compatible_chunk(data: Dict[str, Any]) -> CompatibleChunkShape:
    if isinstance(data.get("choices"), list):
        return CompatibleChunkShape.CHOICES
    if isinstance(data.get("delta"), dict):
        return CompatibleChunkShape.DELTA
    if data.get("id") and data.get("object"):
        return CompatibleChunkShape.CANONICAL
    return CompatibleChunkShape.BARE


def normalize_delta_dict(delta: Dict[str, Any]) -> Dict[str, Any]:
    """
    Default `role` to assistant and rename `reasoning_content` to `reasoning`.

    Every other key is kept verbatim.
    """
    result = dict(delta)
    if not result.get("role"):
        result["role"] = Role.ASSISTANT.value

    if "reasoning_content" in result:
        reasoning_content = result.pop("reasoning_content")
        if reasoning_content:
            result["reasoning"] = reasoning_content

    return result


class OpenAICompatibleAdapter(BaseAdapter):
    """
    Adapter for providers using the OpenAI Chat Completions format.

    Also the default for unknown providers.
    """

    family = ProviderFamily.OPENAI_COMPATIBLE

    def normalize_chunk(
        self,
        data: Dict[str, Any],
        model: str,
        messages: Optional[Sequence[Any]] = None,
    ) -> Optional[StreamChunk]:
        shape = classify_compatible_chunk(data)

        if shape == CompatibleChunkShape.CHOICES:
            return self._normalize_choices(data, model)
        if shape == CompatibleChunkShape.DELTA:
            return self._wrap_delta(data, data["delta"], model)
        if shape == CompatibleChunkShape.CANONICAL:
            chunk = StreamChunk.from_dict(data)
            chunk.model = chunk.model or model
            return chunk
        if shape == CompatibleChunkShape.BARE:
            bare_delta: Dict[str, Any] = {"content": data.get("content") or ""}
            if data.get("tool_calls"):
                bare_delta["tool_calls"] = data["tool_calls"]
            return self._wrap_delta(data, bare_delta, model)

        raise ValueError(f"Unhandled chunk shape: {shape}")

    def _normalize_choices(self, data: Dict[str, Any], model: str) -> StreamChunk:
        choices = []
        for choice in data["choices"]:
            if isinstance(choice, dict) and isinstance(choice.get("delta"), dict):
                choice = {**choice, "delta": normalize_delta_dict(choice["delta"])}
            choices.append(choice)

        chunk = StreamChunk.from_dict({**data, "choices": choices})
        chunk.object = CHUNK_OBJECT
        chunk.model = chunk.model or model
        return chunk

    def _wrap_delta(self, data: Dict[str, Any], delta: Dict[str, Any], model: str) -> StreamChunk:
        usage = data.get("usage")
        return StreamChunk(
            id=data.get("id") or generate_chunk_id(),
            created=data.get("created") or now_seconds(),
            model=data.get("model") or model,
            choices=[ChunkChoice(
                index=0,
                delta=Delta.from_dict(normalize_delta_dict(delta)),
                finish_reason=data.get("finish_reason"),
            )],
            usage=Usage.from_dict(usage) if isinstance(usage, dict) else None,
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
        """Parse a `chat.completion` body."""
        choices = []
        for raw_choice in data.get("choices") or []:
            message = raw_choice.get("message") or {}
            choices.append(Choice(
                index=raw_choice.get("index") or 0,
                message=self._parse_message(message),
                finish_reason=raw_choice.get("finish_reason"),
            ))

        usage = data.get("usage")
        return ChatCompletionResponse(
            id=data.get("id") or generate_chunk_id(),
            created=data.get("created") or now_seconds(),
            model=data.get("model") or model,
            provider=self.provider,
            choices=choices,
            usage=Usage.from_dict(usage) if isinstance(usage, dict) else None,
        )

    def _parse_message(self, message: Dict[str, Any]) -> Message:
        tool_calls = [
            ToolCall(
                id=tc.get("id") or "",
                function=FunctionCall(
                    name=(tc.get("function") or {}).get("name") or "",
                    arguments=(tc.get("function") or {}).get("arguments") or "",
                ),
            )
            for tc in message.get("tool_calls") or []
        ]
        images = [GeneratedImage.from_dict(img) for img in message.get("images") or []]

        return Message.assistant(
            content=message.get("content"),
            tool_calls=tool_calls or None,
            reasoning=message.get("reasoning") or message.get("reasoning_content"),
            images=images or None,
        )


# ============================================================
# OpenAI Responses API
# ============================================================

class ResponsesEventShape(str, Enum):
    """Responses API stream events, grouped by what they produce."""
    LIFECYCLE = "lifecycle"
    OUTPUT_ITEM_ADDED = "output_item_added"
    REASONING = "reasoning"
    CONTENT = "content"
    FUNCTION_CALL_ARGUMENTS = "function_call_arguments"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"
    UNKNOWN = "unknown"


RESPONSES_EVENT_SHAPES: Dict[str, ResponsesEventShape] = {
    "response.created": ResponsesEventShape.LIFECYCLE,
    "response.in_progress": ResponsesEventShape.LIFECYCLE,
    "response.output_item.added": ResponsesEventShape.OUTPUT_ITEM_ADDED,
    "response.reasoning_summary_part.added": ResponsesEventShape.REASONING,
    "response.reasoning_summary_text.delta": ResponsesEventShape.REASONING,
    "response.content_part.added": ResponsesEventShape.CONTENT,
    "response.output_text.delta": ResponsesEventShape.CONTENT,
    "response.text.delta": ResponsesEventShape.CONTENT,
    "response.function_call_arguments.delta": ResponsesEventShape.FUNCTION_CALL_ARGUMENTS,
    "response.completed": ResponsesEventShape.COMPLETED,
    "response.incomplete": ResponsesEventShape.INCOMPLETE,
}

INCOMPLETE_REASONS = {
    "max_output_tokens": FinishReason.LENGTH.value,
    "content_filter": FinishReason.CONTENT_FILTER.value,
}


def map_responses_usage(usage: Optional[Dict[str, Any]]) -> Optional[Usage]:
    """Map Responses API usage (input/output tokens) to chat usage."""
    if not usage:
        return None

    reasoning = (usage.get("output_tokens_details") or {}).get("reasoning_tokens")
    cached = (usage.get("input_tokens_details") or {}).get("cached_tokens")

    return Usage(
        prompt_tokens=usage.get("input_tokens") or 0,
        completion_tokens=usage.get("output_tokens") or 0,
        total_tokens=usage.get("total_tokens") or 0,
        reasoning_tokens=reasoning or None,
        cached_tokens=cached or None,
    )


def _incomplete_finish_reason(response: Dict[str, Any]) -> str:
    reason = (response.get("incomplete_details") or {}).get("reason")
    return INCOMPLETE_REASONS.get(reason, FinishReason.STOP.value)


class OpenAIAdapter(OpenAICompatibleAdapter):
    """Adapter for OpenAI: Responses API events plus Chat Completions chunks."""

    family = ProviderFamily.OPENAI

    def normalize_chunk(
        self,
        data: Dict[str, Any],
        model: str,
        messages: Optional[Sequence[Any]] = None,
    ) -> Optional[StreamChunk]:
        if not data.get("type"):
            return super().normalize_chunk(data, model, messages)

        shape = RESPONSES_EVENT_SHAPES.get(data["type"], ResponsesEventShape.UNKNOWN)
        response = data.get("response") or {}
        meta = {
            "id": response.get("id"),
            "created": response.get("created_at"),
        }
        model = response.get("model") or model

        if shape == ResponsesEventShape.LIFECYCLE:
            return self._keep_alive(model, **meta)

        if shape == ResponsesEventShape.OUTPUT_ITEM_ADDED:
            item = data.get("item") or {}
            if item.get("type") != "function_call":
                return self._keep_alive(model, **meta)
            tool_call = ToolCallDelta(
                index=data.get("output_index") or 0,
                id=item.get("call_id") or item.get("id"),
                type="function",
                name=item.get("name"),
                arguments=item.get("arguments") or "",
            )
            return self._chunk(model, Delta(role=Role.ASSISTANT.value, tool_calls=[tool_call]), **meta)

        if shape == ResponsesEventShape.REASONING:
            text = data.get("delta") or (data.get("part") or {}).get("text") or ""
            return self._chunk(model, Delta(role=Role.ASSISTANT.value, reasoning=text), **meta)

        if shape == ResponsesEventShape.CONTENT:
            text = data.get("delta") or (data.get("part") or {}).get("text") or ""
            return self._chunk(model, Delta(role=Role.ASSISTANT.value, content=text), **meta)

        if shape == ResponsesEventShape.FUNCTION_CALL_ARGUMENTS:
            tool_call = ToolCallDelta(
                index=data.get("output_index") or 0,
                arguments=data.get("delta") or "",
            )
            return self._chunk(model, Delta(role=Role.ASSISTANT.value, tool_calls=[tool_call]), **meta)

        if shape == ResponsesEventShape.COMPLETED:
            return self._chunk(
                model,
                Delta(),
                finish_reason=FinishReason.STOP.value,
                usage=map_responses_usage(response.get("usage")),
                **meta,
            )

        if shape == ResponsesEventShape.INCOMPLETE:
            return self._chunk(
                model,
                Delta(),
                finish_reason=_incomplete_finish_reason(response),
                usage=map_responses_usage(response.get("usage")),
                **meta,
            )

        if shape == ResponsesEventShape.UNKNOWN:
            # Never drop: downstream aggregators track Responses state per event
            return self._keep_alive(model, **meta)

        raise ValueError(f"Unhandled Responses event shape: {shape}")

    # ============================================================
    # Non-streaming
    # ============================================================

    def parse_response(
        self,
        data: Dict[str, Any],
        model: str,
        messages: Optional[Sequence[Any]] = None,
    ) -> ChatCompletionResponse:
        if data.get("object") != "response":
            return super().parse_response(data, model, messages)

        content_parts: List[str] = []
        reasoning_parts: List[str] = []
        tool_calls: List[ToolCall] = []

        for item in data.get("output") or []:
            item_type = item.get("type")
            if item_type == "reasoning":
                for summary in item.get("summary") or []:
                    if summary.get("text"):
                        reasoning_parts.append(summary["text"])
            elif item_type == "message":
                for part in item.get("content") or []:
                    if part.get("type") == "output_text":
                        content_parts.append(part.get("text") or "")
            elif item_type == "function_call":
                arguments = item.get("arguments")
                if not isinstance(arguments, str):
                    arguments = json.dumps(arguments or {})
                tool_calls.append(ToolCall(
                    id=item.get("call_id") or item.get("id") or "",
                    function=FunctionCall(name=item.get("name") or "", arguments=arguments),
                ))

        if data.get("status") == "incomplete":
            finish_reason = _incomplete_finish_reason(data)
        elif tool_calls:
            finish_reason = FinishReason.TOOL_CALLS.value
        else:
            finish_reason = FinishReason.STOP.value

        return ChatCompletionResponse.create(
            content="".join(content_parts) or None,
            model=data.get("model") or model,
            provider=self.provider,
            usage=map_responses_usage(data.get("usage")),
            finish_reason=finish_reason,
            tool_calls=tool_calls or None,
            reasoning="".join(reasoning_parts) or None,
            id=data.get("id"),
            created=data.get("created_at"),
        )
