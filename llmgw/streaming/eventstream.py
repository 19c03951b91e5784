"""
llmgw - Binary Event-Stream Decoding

Decoder for the length-prefixed binary framing AWS Bedrock uses for
ConverseStream responses, plus a bridge that re-emits decoded messages as
SSE text so binary and text providers share one line-oriented path.

Frame layout (all integers big-endian):

    [u32 total_length][u32 headers_length][u32 prelude_crc]
    [headers ...........................................]
    [payload ...........................................]
    [u32 message_crc]

Each header is `[u8 name_len][name][u8 value_type][value]`. Only value type 7
(string, `[u16 len][utf-8 bytes]`) is understood. CRCs are not verified.

Decoding never raises for truncation: a frame that is not completely in the
buffer is left for the caller to retry once more bytes arrive.
"""

import json
import struct
import zlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

PRELUDE_LENGTH = 12
MESSAGE_CRC_LENGTH = 4
HEADER_TYPE_STRING = 7

EVENT_TYPE_HEADER = ":event-type"
EXCEPTION_TYPE_HEADER = ":exception-type"


@dataclass
class EventStreamMessage:
    """One decoded frame. Built per frame and consumed immediately."""
    headers: Dict[str, str] = field(default_factory=dict)
    payload: bytes = b""
    total_length: int = 0

    @property
    def event_type(self) -> str:
        return self.headers.get(EVENT_TYPE_HEADER, "")


def _parse_headers(buffer: bytes, start: int, end: int) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    offset = start

    while offset < end:
        name_length = buffer[offset]
        offset += 1
        name = buffer[offset:offset + name_length].decode("utf-8", errors="replace")
        offset += name_length

        # Header block shorter than its entries claim
        if offset + 3 > end:
            break

        value_type = buffer[offset]
        offset += 1

        if value_type != HEADER_TYPE_STRING:
            # Later headers are lost; the payload is still located from
            # the declared header length.
            break

        (value_length,) = struct.unpack_from(">H", buffer, offset)
        offset += 2
        headers[name] = buffer[offset:offset + value_length].decode("utf-8", errors="replace")
        offset += value_length

    return headers


def parse_event_stream(buffer: bytes) -> List[EventStreamMessage]:
    """
    Decode every complete frame in `buffer`, in order.

    Stops at the first frame whose prelude or body is not fully present.
    Callers compute consumed bytes from `total_length` of the returned
    messages and keep the rest.
    """
    messages: List[EventStreamMessage] = []
    offset = 0
    size = len(buffer)

    while offset < size:
        if offset + PRELUDE_LENGTH > size:
            break

        total_length, headers_length = struct.unpack_from(">II", buffer, offset)

        if offset + total_length > size:
            break

        # A frame that cannot hold its own prelude would loop forever
        if total_length < PRELUDE_LENGTH + MESSAGE_CRC_LENGTH:
            break

        headers_start = offset + PRELUDE_LENGTH
        headers_end = headers_start + headers_length
        headers = _parse_headers(buffer, headers_start, min(headers_end, offset + total_length))

        payload = bytes(buffer[headers_end:offset + total_length - MESSAGE_CRC_LENGTH])

        messages.append(EventStreamMessage(
            headers=headers,
            payload=payload,
            total_length=total_length,
        ))

        offset += total_length

    return messages


def _decode_json_payload(message: EventStreamMessage) -> Any:
    """Return the payload as a JSON object, or None when it is not one."""
    try:
        data = json.loads(message.payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    return data


def parse_event_stream_json(buffer: bytes) -> List[Dict[str, Any]]:
    """
    Decode frames and return their JSON payloads tagged with `__event_type`.

    Frames whose payload is not a JSON object are skipped.
    """
    events: List[Dict[str, Any]] = []
    for message in parse_event_stream(buffer):
        data = _decode_json_payload(message)
        if data is None:
            continue
        data["__event_type"] = message.headers.get(EVENT_TYPE_HEADER)
        events.append(data)
    return events


def convert_event_stream_to_sse(buffer: bytes) -> Tuple[str, int]:
    """
    Convert complete frames to SSE text.

    Returns:
        (sse_text, bytes_consumed). Every decoded frame becomes one
        `data: <json>\\n\\n` record whose JSON carries `__aws_event_type`
        from the `:event-type` header. `bytes_consumed` is the sum of the
        decoded frames' declared lengths; bytes after it belong to an
        incomplete frame.
    """
    messages = parse_event_stream(buffer)
    if not messages:
        return "", 0

    records: List[str] = []
    consumed = 0

    for message in messages:
        # Complete frames are consumed even when their payload is unusable
        consumed += message.total_length

        data = _decode_json_payload(message)
        if data is None:
            continue

        data["__aws_event_type"] = message.headers.get(EVENT_TYPE_HEADER)
        if EXCEPTION_TYPE_HEADER in message.headers:
            data["__aws_exception_type"] = message.headers[EXCEPTION_TYPE_HEADER]
        records.append(f"data: {json.dumps(data, ensure_ascii=False)}\n\n")

    return "".join(records), consumed


def encode_event_stream_message(headers: Dict[str, str], payload: bytes) -> bytes:
    """
    Build one well-formed frame with string headers and real CRC32 values.

    Used for fixtures and for replaying captured Bedrock streams.
    """
    header_block = bytearray()
    for name, value in headers.items():
        name_bytes = name.encode("utf-8")
        value_bytes = value.encode("utf-8")
        header_block += struct.pack(">B", len(name_bytes))
        header_block += name_bytes
        header_block += struct.pack(">BH", HEADER_TYPE_STRING, len(value_bytes))
        header_block += value_bytes

    total_length = PRELUDE_LENGTH + len(header_block) + len(payload) + MESSAGE_CRC_LENGTH
    prelude = struct.pack(">II", total_length, len(header_block))
    prelude += struct.pack(">I", zlib.crc32(prelude) & 0xFFFFFFFF)

    body = prelude + bytes(header_block) + payload
    return body + struct.pack(">I", zlib.crc32(body) & 0xFFFFFFFF)
