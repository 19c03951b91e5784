"""
llmgw - Streaming Module

Normalization of provider streams to one chunk format:
- AWS event-stream decoding and the SSE bridge
- SSE event decoding
- Per-provider chunk normalization
- Tool call accumulation and response assembly
- Finish reason unification
- Terminal error chunks
"""

from .assembler import ResponseAssembler
from .chunks import ChunkChoice, Delta, StreamChunk, ToolCallDelta, build_chunk
from .errors import StreamError, StreamErrorBuilder
from .eventstream import (
    EventStreamMessage,
    convert_event_stream_to_sse,
    encode_event_stream_message,
    parse_event_stream,
    parse_event_stream_json,
)
from .finish_reason import UnifiedFinishReason, get_unified_finish_reason
from .images import extract_images
from .normalizer import (
    StreamNormalizer,
    transform_response_to_openai,
    transform_streaming_to_openai,
)
from .pipeline import StreamPipeline
from .sse import SSEDecoder
from .tool_calls import (
    ArgumentMode,
    ToolCallAccumulator,
    ToolCallStreamTracker,
    argument_mode_for,
)

__all__ = [
    # Event stream
    "EventStreamMessage",
    "parse_event_stream",
    "parse_event_stream_json",
    "convert_event_stream_to_sse",
    "encode_event_stream_message",
    # SSE
    "SSEDecoder",
    # Chunks
    "StreamChunk",
    "ChunkChoice",
    "Delta",
    "ToolCallDelta",
    "build_chunk",
    # Normalizer
    "StreamNormalizer",
    "transform_streaming_to_openai",
    "transform_response_to_openai",
    "extract_images",
    # Tool Calls
    "ArgumentMode",
    "argument_mode_for",
    "ToolCallAccumulator",
    "ToolCallStreamTracker",
    # Assembly
    "ResponseAssembler",
    "UnifiedFinishReason",
    "get_unified_finish_reason",
    # Pipeline
    "StreamPipeline",
    # Errors
    "StreamError",
    "StreamErrorBuilder",
]
