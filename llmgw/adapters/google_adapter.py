"""
llmgw - Google AI Studio Adapter

Normalizes Gemini `streamGenerateContent` / `generateContent` payloads.

Key differences from OpenAI:
- Content is a list of parts: text, thought text, inlineData images, functionCall
- Function calls arrive whole (no argument streaming) and carry no id
- Usage metadata may ride on any chunk and sometimes reports zero prompt tokens
- Thought tokens are counted separately from candidate tokens
"""

import json
import time
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


class GoogleChunkShape(str, Enum):
    """What a Gemini chunk carries."""
    PARTS = "parts"                  # text, thought, image or function call
    FINISH = "finish"                # finishReason without emittable parts
    KEEP_ALIVE = "keep_alive"        # anything else (usage-only, empty)


FINISH_REASONS = {
    "MAX_TOKENS": FinishReason.LENGTH.value,
    "SAFETY": FinishReason.CONTENT_FILTER.value,
}


def _first_candidate(data: Dict[str, Any]) -> Dict[str, Any]:
    candidates = data.get("candidates") or []
    if candidates and isinstance(candidates[0], dict):
        return candidates[0]
    return {}


def _parts(candidate: Dict[str, Any]) -> List[Dict[str, Any]]:
    parts = (candidate.get("content") or {}).get("parts") or []
    return [part for part in parts if isinstance(part, dict)]


def _is_content_part(part: Dict[str, Any]) -> bool:
    return bool(part.get("text")) and not part.get("thought")


def _is_thought_part(part: Dict[str, Any]) -> bool:
    return bool(part.get("thought")) and bool(part.get("text"))


def _has_emittable_parts(parts: List[Dict[str, Any]]) -> bool:
    return any(
        _is_content_part(part) or _is_thought_part(part) or part.get("inlineData") or part.get("functionCall")
        for part in parts
    )


def classify_google_chunk(data: Dict[str, Any]) -> GoogleChunkShape:
    candidate = _first_candidate(data)
    if _has_emittable_parts(_parts(candidate)):
        return GoogleChunkShape.PARTS
    if candidate.get("finishReason"):
        return GoogleChunkShape.FINISH
    return GoogleChunkShape.KEEP_ALIVE


def map_finish_reason(finish_reason: Optional[str], has_function_calls: bool) -> str:
    """Gemini finish reason to chunk finish reason; unknown values mean stop."""
    if finish_reason == "STOP":
        return FinishReason.TOOL_CALLS.value if has_function_calls else FinishReason.STOP.value
    return FINISH_REASONS.get(finish_reason, FinishReason.STOP.value)


def _join_text(parts: List[Dict[str, Any]], thought: bool) -> str:
    return "".join(
        part["text"] if isinstance(part.get("text"), str) else ""
        for part in parts
        if bool(part.get("thought")) == thought
    )


class GoogleAdapter(BaseAdapter):
    """Adapter for Google AI Studio (Gemini) models."""

    family = ProviderFamily.GOOGLE

    def normalize_chunk(
        self,
        data: Dict[str, Any],
        model: str,
        messages: Optional[Sequence[Any]] = None,
    ) -> Optional[StreamChunk]:
        """
        Normalize one Gemini chunk. Never returns None: every chunk keeps the
        stream alive and may carry usage.
        """
        shape = classify_google_chunk(data)
        candidate = _first_candidate(data)
        parts = _parts(candidate)
        has_function_calls = any(part.get("functionCall") for part in parts)

        meta = {
            "id": data.get("responseId"),
            "index": candidate.get("index") or 0,
        }
        model = data.get("modelVersion") or model
        usage = self._map_usage(data.get("usageMetadata"), messages)

        if shape == GoogleChunkShape.PARTS:
            finish_reason = None
            if candidate.get("finishReason"):
                finish_reason = map_finish_reason(candidate["finishReason"], has_function_calls)
            return self._chunk(model, self._parts_delta(data, parts), finish_reason=finish_reason, usage=usage, **meta)

        if shape == GoogleChunkShape.FINISH:
            return self._chunk(
                model,
                Delta(role=Role.ASSISTANT.value),
                finish_reason=map_finish_reason(candidate["finishReason"], has_function_calls),
                usage=usage,
                **meta,
            )

        if shape == GoogleChunkShape.KEEP_ALIVE:
            return self._chunk(model, Delta(), usage=usage, **meta)

        raise ValueError(f"Unhandled Google chunk shape: {shape}")

    def _parts_delta(self, data: Dict[str, Any], parts: List[Dict[str, Any]]) -> Delta:
        delta = Delta(role=Role.ASSISTANT.value)

        if any(_is_content_part(part) for part in parts):
            delta.content = _join_text(parts, thought=False)

        if any(_is_thought_part(part) for part in parts):
            delta.reasoning = _join_text(parts, thought=True)

        if any(part.get("inlineData") for part in parts):
            delta.images = self.extract_images(data)

        calls = self._function_calls(parts)
        if calls:
            delta.tool_calls = [
                ToolCallDelta(index=i, id=call.id, type="function", name=call.function.name, arguments=call.function.arguments)
                for i, call in enumerate(calls)
            ]

        return delta

    def _function_calls(self, parts: List[Dict[str, Any]]) -> List[ToolCall]:
        """Gemini calls carry no id; synthesize `{name}_{millis}_{i}`."""
        millis = int(time.time() * 1000)
        calls = []
        for i, part in enumerate(part for part in parts if part.get("functionCall")):
            function_call = part["functionCall"]
            name = function_call.get("name") or ""
            calls.append(ToolCall(
                id=f"{name}_{millis}_{i}",
                function=FunctionCall(name=name, arguments=json.dumps(function_call.get("args") or {})),
            ))
        return calls

    def _map_usage(
        self,
        usage_metadata: Optional[Dict[str, Any]],
        messages: Optional[Sequence[Any]],
    ) -> Optional[Usage]:
        """
        Map usageMetadata.

        A zero or missing prompt count is replaced by a client-side estimate.
        Thought tokens count toward the total but not the completion.
        """
        if not isinstance(usage_metadata, dict):
            return None

        prompt = usage_metadata.get("promptTokenCount") or 0
        if prompt <= 0:
            prompt = self.estimate_prompt_tokens(messages)

        completion = usage_metadata.get("candidatesTokenCount") or 0
        thoughts = usage_metadata.get("thoughtsTokenCount") or 0
        cached = usage_metadata.get("cachedContentTokenCount") or 0

        return Usage(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=prompt + completion + thoughts,
            reasoning_tokens=thoughts or None,
            cached_tokens=cached or None,
        )

    def detect_stream_error(self, data: Dict[str, Any]) -> Optional[GatewayException]:
        error = data.get("error")
        if not isinstance(error, dict) or data.get("candidates"):
            return None
        return ProviderStreamError(
            provider=self.provider,
            message=str(error.get("message") or "Google AI Studio stream error"),
            error_type=str(error.get("status") or error.get("code") or ""),
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
        """Parse a generateContent body to unified format."""
        candidate = _first_candidate(data)
        parts = _parts(candidate)
        tool_calls = self._function_calls(parts)
        images = self.extract_images(data) if any(part.get("inlineData") for part in parts) else []

        return ChatCompletionResponse.create(
            content=_join_text(parts, thought=False) or None,
            model=data.get("modelVersion") or model,
            provider=self.provider,
            usage=self._map_usage(data.get("usageMetadata"), messages),
            finish_reason=map_finish_reason(candidate.get("finishReason") or "STOP", bool(tool_calls)),
            tool_calls=tool_calls or None,
            reasoning=_join_text(parts, thought=True) or None,
            images=images or None,
            id=data.get("responseId"),
        )
