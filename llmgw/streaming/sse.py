"""
llmgw - SSE Decoding

Incremental Server-Sent Events decoder for text-native providers and for
the SSE text produced by the binary event-stream bridge.

Only `data:` fields matter to the normalizer. `event:`, `id:`, `retry:` and
comment lines are ignored; provider payloads carry their own event type.
"""

import codecs
import json
from typing import Any, Dict, List, Optional, Union

from ..observability.logging import get_logger
from ..observability.metrics import EventOutcome, MetricsCollector, get_metrics

logger = get_logger(__name__)

DONE_SENTINEL = "[DONE]"


class SSEDecoder:
    """
    Turns arbitrary slices of an SSE body into parsed JSON events.

    Bytes may split UTF-8 sequences and lines anywhere; the decoder keeps the
    partial line and the current event's data lines until they complete.

    Usage:
        decoder = SSEDecoder(provider="anthropic")
        for event in decoder.feed(raw_bytes):
            ...
        for event in decoder.flush():
            ...
    """

    def __init__(self, provider: str = "", metrics: Optional[MetricsCollector] = None):
        self.provider = provider
        self.metrics = metrics
        self.done = False
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._line_buffer = ""
        self._data_lines: List[str] = []

    @property
    def pending(self) -> str:
        """Text received but not yet dispatched as an event."""
        return self._line_buffer

    def feed(self, data: Union[bytes, str]) -> List[Dict[str, Any]]:
        """Decode a slice of the body and return every event it completed."""
        if isinstance(data, bytes):
            text = self._decoder.decode(data)
        else:
            text = data

        self._line_buffer += text
        events: List[Dict[str, Any]] = []

        while True:
            newline = self._line_buffer.find("\n")
            if newline < 0:
                break
            line = self._line_buffer[:newline]
            rest = self._line_buffer[newline + 1:]
            if line.endswith("\r"):
                line = line[:-1]
            self._line_buffer = rest
            self._handle_line(line, events)

        return events

    def flush(self) -> List[Dict[str, Any]]:
        """Dispatch whatever the stream ended with, even without a blank line."""
        events: List[Dict[str, Any]] = []
        tail = self._decoder.decode(b"", final=True)
        self._line_buffer += tail

        if self._line_buffer:
            line = self._line_buffer.rstrip("\r")
            self._line_buffer = ""
            self._handle_line(line, events)

        self._dispatch(events)
        return events

    def _handle_line(self, line: str, events: List[Dict[str, Any]]) -> None:
        if not line:
            self._dispatch(events)
            return

        if line.startswith(":"):
            return

        field_name, _, value = line.partition(":")
        if field_name != "data":
            return

        if value.startswith(" "):
            value = value[1:]
        self._data_lines.append(value)

    def _dispatch(self, events: List[Dict[str, Any]]) -> None:
        if not self._data_lines:
            return

        payload = "\n".join(self._data_lines)
        self._data_lines = []

        if payload.strip() == DONE_SENTINEL:
            self.done = True
            return

        event = self._parse(payload)
        if event is not None:
            events.append(event)

    def _parse(self, payload: str) -> Optional[Dict[str, Any]]:
        try:
            event = json.loads(payload)
        except json.JSONDecodeError as e:
            self._malformed(f"invalid JSON: {e.msg}")
            return None

        if not isinstance(event, dict):
            self._malformed(f"expected an object, got {type(event).__name__}")
            return None

        return event

    def _malformed(self, reason: str) -> None:
        logger.debug("Dropping malformed SSE payload", provider=self.provider, reason=reason)
        (self.metrics or get_metrics()).record_event(self.provider, EventOutcome.MALFORMED)
