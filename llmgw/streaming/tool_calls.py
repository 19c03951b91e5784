"""
llmgw - Tool Call Streaming

Accumulates streamed tool/function call deltas into complete calls.

Tool calls arrive in pieces:
1. A delta with the call id and function name
2. Delta(s) with argument JSON
3. The call is complete once the accumulated arguments parse as JSON

Most providers stream argument *fragments* that concatenate (APPEND).
Bedrock repeats the full input on every delta, so the latest value wins
(REPLACE).
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..core.models import FunctionCall, ProviderFamily, ToolCall, resolve_provider_family
from .chunks import ToolCallDelta


class ArgumentMode(str, Enum):
    """How argument fragments with the same index combine."""
    APPEND = "append"
    REPLACE = "replace"


def argument_mode_for(provider: Optional[str]) -> ArgumentMode:
    """Bedrock replaces; every other family appends."""
    if resolve_provider_family(provider) == ProviderFamily.BEDROCK:
        return ArgumentMode.REPLACE
    return ArgumentMode.APPEND


@dataclass
class ToolCallAccumulator:
    """
    Accumulates one streaming tool call.

    The first id and name seen win; later deltas usually omit them.
    """
    index: int
    id: Optional[str] = None
    type: str = "function"
    function_name: Optional[str] = None
    arguments_buffer: str = ""

    def update(
        self,
        id: Optional[str] = None,
        function_name: Optional[str] = None,
        arguments: Optional[str] = None,
        mode: ArgumentMode = ArgumentMode.APPEND,
    ):
        """Update with new delta data."""
        if id and not self.id:
            self.id = id
        if function_name and not self.function_name:
            self.function_name = function_name
        if arguments is None:
            return
        if mode == ArgumentMode.REPLACE:
            self.arguments_buffer = arguments
        else:
            self.arguments_buffer += arguments

    @property
    def is_complete(self) -> bool:
        """True once the arguments parse as JSON."""
        if not self.arguments_buffer:
            return False
        try:
            json.loads(self.arguments_buffer)
        except json.JSONDecodeError:
            return False
        return True

    def to_tool_call(self) -> ToolCall:
        """Convert to the unified tool call."""
        return ToolCall(
            id=self.id or f"call_{self.index}",
            function=FunctionCall(
                name=self.function_name or "",
                arguments=self.arguments_buffer,
            ),
        )

    def validate(self) -> Tuple[bool, Optional[str]]:
        """
        Validate the accumulated tool call.

        Returns:
            (is_valid, error_message)
        """
        if not self.function_name:
            return False, "Missing function name"

        if not self.arguments_buffer:
            return False, "Missing arguments"

        try:
            json.loads(self.arguments_buffer)
        except json.JSONDecodeError as e:
            return False, f"Invalid arguments JSON: {e}"

        return True, None


class ToolCallStreamTracker:
    """
    Tracks every tool call of one streamed response, keyed by index.

    A single response can contain multiple parallel tool calls.
    """

    def __init__(self, mode: ArgumentMode = ArgumentMode.APPEND):
        self.mode = mode
        self._calls: Dict[int, ToolCallAccumulator] = {}
        # Calls superseded at their index by a delta with a different id
        self._closed: List[ToolCallAccumulator] = []

    def add_delta(self, delta: ToolCallDelta):
        """Merge one tool call delta."""
        current = self._calls.get(delta.index)

        # Google numbers calls per event, so a new id at a used index is a new call
        if current is not None and delta.id and current.id and delta.id != current.id:
            self._closed.append(current)
            current = None

        if current is None:
            current = ToolCallAccumulator(index=delta.index)
            self._calls[delta.index] = current

        if delta.type:
            current.type = delta.type
        current.update(
            id=delta.id,
            function_name=delta.name,
            arguments=delta.arguments,
            mode=self.mode,
        )

    def get_call(self, index: int) -> Optional[ToolCallAccumulator]:
        """Get the open tool call at an index."""
        return self._calls.get(index)

    def get_all_calls(self) -> List[ToolCallAccumulator]:
        """All tracked calls: superseded ones first, then open ones by index."""
        return self._closed + [self._calls[i] for i in sorted(self._calls)]

    def to_tool_calls(self) -> List[ToolCall]:
        return [call.to_tool_call() for call in self.get_all_calls()]

    def validate_all(self) -> Tuple[bool, List[str]]:
        """
        Validate all accumulated tool calls.

        Returns:
            (all_valid, list_of_errors)
        """
        errors = []
        for call in self.get_all_calls():
            is_valid, error = call.validate()
            if not is_valid:
                errors.append(f"Tool call {call.index}: {error}")

        return len(errors) == 0, errors

    def has_calls(self) -> bool:
        return bool(self._calls or self._closed)

    def call_count(self) -> int:
        return len(self._calls) + len(self._closed)
