"""
llmgw - Pytest Configuration

Configures:
- Integration test markers (skip by default)
- Event-stream frame builders for Bedrock fixtures
- Isolated Prometheus registry per test
- Sample provider payloads
"""

import json
import os
import struct
import zlib
from typing import Any, Dict, List, Optional

import pytest
from prometheus_client import CollectorRegistry

from llmgw.config import reset_settings
from llmgw.core.models import Message
from llmgw.observability.metrics import MetricsCollector, setup_metrics
from llmgw.observability.tracing import TracingManager
from llmgw.streaming.eventstream import encode_event_stream_message


# ============================================================
# Environment Configuration
# ============================================================

def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.lower() in ("1", "true", "yes", "on")


RUN_INTEGRATION = _is_truthy(os.getenv("RUN_INTEGRATION"))


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless RUN_INTEGRATION=1."""
    skip_integration = pytest.mark.skip(
        reason="Integration test - set RUN_INTEGRATION=1 to run"
    )

    for item in items:
        if "integration" in item.keywords and not RUN_INTEGRATION:
            item.add_marker(skip_integration)


# ============================================================
# Global State
# ============================================================

@pytest.fixture(autouse=True)
def isolated_state():
    """Every test starts with fresh settings and no tracing singleton."""
    reset_settings()
    TracingManager.reset_instance()
    yield
    reset_settings()
    TracingManager.reset_instance()
    MetricsCollector.reset_instance()


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(registry) -> MetricsCollector:
    """Metrics collector bound to a throwaway registry and installed as default."""
    return setup_metrics(registry)


def sample_value(registry: CollectorRegistry, name: str, **labels) -> float:
    """Read a metric sample, 0.0 when it was never touched."""
    value = registry.get_sample_value(name, labels)
    return value if value is not None else 0.0


# ============================================================
# Event-Stream Frames
# ============================================================

def bedrock_frame(event_type: str, payload: Dict[str, Any], message_type: str = "event") -> bytes:
    """One ConverseStream frame as Bedrock sends it."""
    return encode_event_stream_message(
        {
            ":event-type": event_type,
            ":content-type": "application/json",
            ":message-type": message_type,
        },
        json.dumps(payload).encode("utf-8"),
    )


def bedrock_exception_frame(exception_type: str, message: str) -> bytes:
    return encode_event_stream_message(
        {
            ":exception-type": exception_type,
            ":content-type": "application/json",
            ":message-type": "exception",
        },
        json.dumps({"message": message}).encode("utf-8"),
    )


def raw_frame(header_block: bytes, payload: bytes) -> bytes:
    """Frame with a hand-built header block (for unsupported value types)."""
    total_length = 12 + len(header_block) + len(payload) + 4
    prelude = struct.pack(">II", total_length, len(header_block))
    prelude += struct.pack(">I", zlib.crc32(prelude) & 0xFFFFFFFF)
    body = prelude + header_block + payload
    return body + struct.pack(">I", zlib.crc32(body) & 0xFFFFFFFF)


def string_header(name: str, value: str) -> bytes:
    name_bytes = name.encode("utf-8")
    value_bytes = value.encode("utf-8")
    return struct.pack(">B", len(name_bytes)) + name_bytes + struct.pack(">BH", 7, len(value_bytes)) + value_bytes


def sse(events: List[Dict[str, Any]], done: bool = True) -> bytes:
    """Serialize provider events as an SSE body."""
    body = "".join(f"data: {json.dumps(event)}\n\n" for event in events)
    if done:
        body += "data: [DONE]\n\n"
    return body.encode("utf-8")


async def aiter_bytes(pieces: List[bytes]):
    for piece in pieces:
        yield piece


def split_every(data: bytes, size: int) -> List[bytes]:
    return [data[i:i + size] for i in range(0, len(data), size)]


# ============================================================
# Sample Payloads
# ============================================================

@pytest.fixture
def sample_messages() -> List[Message]:
    return [
        Message.system("You are a helpful assistant."),
        Message.user("What is the weather in Paris today?"),
    ]


@pytest.fixture
def bedrock_tool_stream() -> List[bytes]:
    """ConverseStream with text, one tool call, stop and metadata."""
    return [
        bedrock_frame("messageStart", {"role": "assistant"}),
        bedrock_frame("contentBlockDelta", {"contentBlockIndex": 0, "delta": {"text": "Checking"}}),
        bedrock_frame("contentBlockStop", {"contentBlockIndex": 0}),
        bedrock_frame("contentBlockStart", {
            "contentBlockIndex": 1,
            "start": {"toolUse": {"toolUseId": "tooluse_1", "name": "get_weather"}},
        }),
        bedrock_frame("contentBlockDelta", {
            "contentBlockIndex": 1,
            "delta": {"toolUse": {"input": "{\"city\": \"Par"}},
        }),
        bedrock_frame("contentBlockDelta", {
            "contentBlockIndex": 1,
            "delta": {"toolUse": {"input": "{\"city\": \"Paris\"}"}},
        }),
        bedrock_frame("contentBlockStop", {"contentBlockIndex": 1}),
        bedrock_frame("messageStop", {"stopReason": "tool_use"}),
        bedrock_frame("metadata", {
            "usage": {"inputTokens": 30, "outputTokens": 12, "totalTokens": 42},
            "metrics": {"latencyMs": 512},
        }),
    ]


@pytest.fixture
def anthropic_tool_events() -> List[Dict[str, Any]]:
    return [
        {
            "type": "message_start",
            "message": {
                "id": "msg_01",
                "model": "claude-sonnet-4",
                "usage": {"input_tokens": 25, "output_tokens": 1, "cache_read_input_tokens": 5},
            },
        },
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
        {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "Let me check."}},
        {"type": "content_block_stop", "index": 0},
        {
            "type": "content_block_start",
            "index": 1,
            "content_block": {"type": "tool_use", "id": "toolu_01", "name": "get_weather", "input": {}},
        },
        {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": "{\"city\":"}},
        {"type": "content_block_delta", "index": 1, "delta": {"type": "input_json_delta", "partial_json": " \"Paris\"}"}},
        {"type": "content_block_stop", "index": 1},
        {"type": "message_delta", "delta": {"stop_reason": "tool_use"}, "usage": {"output_tokens": 40}},
        {"type": "message_stop"},
    ]
