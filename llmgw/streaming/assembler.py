"""
llmgw - Response Assembler

Accumulates normalized chunks into the final `chat.completion` record that
billing and logging persist.

Rules:
- `content` and `reasoning` concatenate in arrival order, separately
- Images extend in arrival order
- Tool call deltas merge by index (append, or replace for Bedrock)
- The last non-null finish_reason wins
- The last non-null usage wins; usage is never summed
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..api.models import ChatCompletionChunk
from ..core.models import ChatCompletionResponse, Choice, GeneratedImage, Message, Usage
from ..observability.logging import get_logger
from .chunks import StreamChunk, generate_chunk_id, now_seconds
from .finish_reason import UnifiedFinishReason, get_unified_finish_reason
from .tool_calls import ArgumentMode, ToolCallStreamTracker, argument_mode_for

logger = get_logger(__name__)


@dataclass
class _ChoiceState:
    """Accumulated state of one choice index."""
    content: List[str] = field(default_factory=list)
    reasoning: List[str] = field(default_factory=list)
    images: List[GeneratedImage] = field(default_factory=list)
    tool_calls: Optional[ToolCallStreamTracker] = None
    finish_reason: Optional[str] = None


class ResponseAssembler:
    """
    Builds one response from its chunk stream.

    Usage:
        assembler = ResponseAssembler(provider="anthropic", model="claude-sonnet-4")
        for chunk in chunks:
            assembler.add(chunk)
        response = assembler.build()
    """

    def __init__(self, provider: str, model: str = "", argument_mode: Optional[ArgumentMode] = None):
        self.provider = provider
        self.model = model
        self.argument_mode = argument_mode or argument_mode_for(provider)

        self.id: Optional[str] = None
        self.created: Optional[int] = None
        self.usage: Optional[Usage] = None
        self.chunk_count = 0
        self._choices: Dict[int, _ChoiceState] = {}

    # ============================================================
    # Input
    # ============================================================

    def add(self, chunk: StreamChunk) -> None:
        """Accumulate one canonical chunk."""
        self.chunk_count += 1

        if self.id is None:
            self.id = chunk.id
            self.created = chunk.created
        if chunk.model and not self.model:
            self.model = chunk.model

        if chunk.usage is not None:
            self.usage = chunk.usage

        for choice in chunk.choices:
            state = self._choice(choice.index)

            if choice.finish_reason is not None:
                state.finish_reason = choice.finish_reason

            delta = choice.delta
            if delta is None:
                continue
            if delta.content:
                state.content.append(delta.content)
            if delta.reasoning:
                state.reasoning.append(delta.reasoning)
            if delta.images:
                state.images.extend(delta.images)
            for tool_call in delta.tool_calls or []:
                if state.tool_calls is None:
                    state.tool_calls = ToolCallStreamTracker(self.argument_mode)
                state.tool_calls.add_delta(tool_call)

    def add_dict(self, data: Dict[str, Any]) -> None:
        """Accumulate a chunk given as a dict (e.g. `StreamChunk.to_dict()`)."""
        self.add(StreamChunk.from_dict(data))

    def add_sse_line(self, line: str) -> bool:
        """
        Accumulate one serialized SSE line.

        Returns:
            True if the line carried a chunk. Blank lines, `[DONE]` and
            payloads that fail wire validation return False.
        """
        line = line.strip()
        if not line.startswith("data:"):
            return False

        payload = line[len("data:"):].strip()
        if not payload or payload == "[DONE]":
            return False

        try:
            wire = ChatCompletionChunk.model_validate_json(payload)
        except ValidationError as e:
            logger.debug("Skipping chunk that failed wire validation", provider=self.provider, error=str(e))
            return False

        self.add_dict(wire.model_dump(exclude_unset=True))
        return True

    def _choice(self, index: int) -> _ChoiceState:
        if index not in self._choices:
            self._choices[index] = _ChoiceState()
        return self._choices[index]

    # ============================================================
    # Output
    # ============================================================

    @property
    def finish_reason(self) -> Optional[str]:
        """Finish reason of the first choice."""
        if not self._choices:
            return None
        return self._choices[min(self._choices)].finish_reason

    @property
    def unified_finish_reason(self) -> UnifiedFinishReason:
        return get_unified_finish_reason(self.finish_reason, self.provider)

    @property
    def tool_calls_complete(self) -> bool:
        """True when every accumulated tool call has JSON-parseable arguments."""
        for state in self._choices.values():
            if state.tool_calls is None:
                continue
            if not all(call.is_complete for call in state.tool_calls.get_all_calls()):
                return False
        return True

    def build(self) -> ChatCompletionResponse:
        """Build the assembled response. Safe to call on an empty stream."""
        choices = []
        for index in sorted(self._choices) or [0]:
            state = self._choices.get(index) or _ChoiceState()
            tool_calls = state.tool_calls.to_tool_calls() if state.tool_calls else None
            choices.append(Choice(
                index=index,
                message=Message.assistant(
                    content="".join(state.content) or None,
                    tool_calls=tool_calls or None,
                    reasoning="".join(state.reasoning) or None,
                    images=list(state.images) or None,
                ),
                finish_reason=state.finish_reason,
            ))

        return ChatCompletionResponse(
            id=self.id or generate_chunk_id(),
            created=self.created or now_seconds(),
            model=self.model,
            provider=self.provider,
            choices=choices,
            usage=self.usage,
        )
