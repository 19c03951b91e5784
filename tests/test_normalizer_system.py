"""
llmgw - Normalizer System Tests

Verifies per-family chunk normalization:
- OpenAI-compatible passthrough with reasoning_content rename
- OpenAI Responses API events
- Anthropic typed events, including tool argument streaming
- Google parts, finish reasons and usage fallback
- Bedrock events, including the drop of unknown events
- Malformed events are dropped, provider error events raise
"""

import json
import logging

import pytest

from llmgw.api.models import ChatCompletionChunk
from llmgw.core.errors import ProviderStreamError
from llmgw.observability.metrics import EventOutcome
from llmgw.streaming.assembler import ResponseAssembler
from llmgw.streaming.chunks import CHUNK_OBJECT
from llmgw.streaming.normalizer import (
    StreamNormalizer,
    transform_response_to_openai,
    transform_streaming_to_openai,
)

from conftest import sample_value


@pytest.fixture(autouse=True)
def _metrics(metrics):
    return metrics


def normalize(provider, data, model="test-model", **kwargs):
    return transform_streaming_to_openai(provider, model, data, **kwargs)


def assert_wire_valid(chunk):
    """Every emitted chunk validates against the wire schema."""
    ChatCompletionChunk.model_validate(chunk.to_dict())


# ============================================================
# OpenAI-compatible
# ============================================================

class TestOpenAICompatible:
    """Test the Chat Completions passthrough family."""

    @pytest.mark.parametrize("provider", ["openai", "zai", "groq", "xai", "deepseek", "some-new-provider"])
    def test_reasoning_content_is_renamed(self, provider):
        """reasoning_content becomes reasoning and the original key is removed."""
        data = {
            "id": "chatcmpl-1",
            "object": "chat.completion.chunk",
            "created": 1700000000,
            "model": "glm-4.6",
            "choices": [{"index": 0, "delta": {"reasoning_content": "X"}, "finish_reason": None}],
        }

        chunk = normalize(provider, data)
        delta = chunk.to_dict()["choices"][0]["delta"]

        assert delta["reasoning"] == "X"
        assert "reasoning_content" not in delta
        assert delta["role"] == "assistant"
        assert_wire_valid(chunk)

    def test_other_delta_fields_are_kept_verbatim(self):
        tool_calls = [{"index": 0, "id": "call_1", "type": "function", "function": {"name": "f", "arguments": ""}}]
        data = {
            "id": "c1",
            "object": "chat.completion.chunk",
            "created": 1,
            "model": "m",
            "choices": [{
                "index": 0,
                "delta": {"role": "assistant", "content": "hi", "tool_calls": tool_calls, "x_vendor": 7},
                "finish_reason": None,
                "logprobs": None,
            }],
            "system_fingerprint": "fp_1",
        }

        result = normalize("zai", data).to_dict()

        assert result["choices"][0]["delta"] == {
            "role": "assistant", "content": "hi", "tool_calls": tool_calls, "x_vendor": 7,
        }
        assert result["choices"][0]["logprobs"] is None
        assert result["system_fingerprint"] == "fp_1"

    def test_object_is_forced(self):
        data = {"id": "c1", "object": "chat.completion", "created": 1, "model": "m",
                "choices": [{"index": 0, "delta": {"content": "a"}}]}

        assert normalize("groq", data).object == CHUNK_OBJECT

    def test_missing_model_defaults_to_resolved_model(self):
        data = {"id": "c1", "choices": [{"index": 0, "delta": {"content": "a"}}]}

        chunk = normalize("groq", data, model="llama-3.3-70b")

        assert chunk.model == "llama-3.3-70b"
        assert_wire_valid(chunk)

    def test_provider_model_is_kept(self):
        data = {"id": "c1", "model": "llama-3.3-70b-versatile",
                "choices": [{"index": 0, "delta": {"content": "a"}}]}

        assert normalize("groq", data, model="llama-3.3-70b").model == "llama-3.3-70b-versatile"

    def test_empty_reasoning_content_is_removed(self):
        data = {"choices": [{"index": 0, "delta": {"content": "a", "reasoning_content": ""}}]}

        delta = normalize("deepseek", data).to_dict()["choices"][0]["delta"]

        assert "reasoning_content" not in delta
        assert "reasoning" not in delta

    def test_bare_delta_is_wrapped(self):
        chunk = normalize("zai", {"delta": {"reasoning_content": "think"}}, model="glm-4.6")

        result = chunk.to_dict()
        assert result["id"].startswith("chatcmpl-")
        assert result["object"] == CHUNK_OBJECT
        assert isinstance(result["created"], int)
        assert result["model"] == "glm-4.6"
        assert result["choices"][0]["delta"] == {"role": "assistant", "reasoning": "think"}

    def test_canonical_chunk_passes_through(self):
        data = {"id": "c9", "object": CHUNK_OBJECT, "created": 5, "model": "m", "custom": True}

        result = normalize("mistral", data).to_dict()

        assert result["id"] == "c9"
        assert result["custom"] is True
        assert result["choices"] == []

    def test_usage_is_preserved(self):
        data = {
            "id": "c1", "object": CHUNK_OBJECT, "created": 1, "model": "m",
            "choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15,
                      "prompt_tokens_details": {"cached_tokens": 4}},
        }

        chunk = normalize("openai", data)

        assert chunk.usage.prompt_tokens == 10
        assert chunk.usage.cached_tokens == 4
        assert chunk.finish_reason == "stop"

    def test_parse_chat_completion_body(self):
        body = {
            "id": "chatcmpl-9",
            "object": "chat.completion",
            "created": 1700000000,
            "model": "glm-4.6",
            "choices": [{
                "index": 0,
                "message": {"role": "assistant", "content": "Paris", "reasoning_content": "capital"},
                "finish_reason": "stop",
            }],
            "usage": {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4},
        }

        response = transform_response_to_openai("zai", "glm-4.6", body)

        assert response.message.content == "Paris"
        assert response.message.reasoning == "capital"
        assert response.finish_reason == "stop"
        assert response.usage.total_tokens == 4

    def test_response_normalization_is_timed(self, caplog):
        caplog.set_level(logging.DEBUG, logger="llmgw.streaming.normalizer")
        body = {"id": "chatcmpl-9", "object": "chat.completion", "created": 1, "model": "m",
                "choices": [{"index": 0, "message": {"role": "assistant", "content": "ok"}, "finish_reason": "stop"}]}

        transform_response_to_openai("zai", "glm-4.6", body)

        record = [r for r in caplog.records if r.getMessage() == "normalize_response completed"][-1]
        assert record.provider == "zai"
        assert record.duration_ms >= 0


# ============================================================
# OpenAI Responses API
# ============================================================

class TestOpenAIResponses:
    """Test Responses API event normalization."""

    @pytest.mark.parametrize("event_type", ["response.created", "response.in_progress"])
    def test_lifecycle_events_are_keep_alive(self, event_type):
        chunk = normalize("openai", {"type": event_type, "response": {"id": "resp_1", "model": "gpt-5"}})

        assert chunk.delta.to_dict() == {"role": "assistant"}
        assert chunk.finish_reason is None
        assert chunk.id == "resp_1"
        assert chunk.model == "gpt-5"

    def test_message_item_added_is_keep_alive(self):
        chunk = normalize("openai", {"type": "response.output_item.added", "item": {"type": "message"}})

        assert chunk.delta.to_dict() == {"role": "assistant"}

    def test_unknown_event_is_role_only_chunk(self):
        """Unknown Responses events keep the stream alive instead of dropping."""
        chunk = normalize("openai", {"type": "response.some_future_event", "sequence_number": 9})

        assert chunk is not None
        assert chunk.delta.to_dict() == {"role": "assistant"}
        assert chunk.finish_reason is None

    @pytest.mark.parametrize("event", [
        {"type": "response.output_text.delta", "delta": "Hel"},
        {"type": "response.text.delta", "delta": "Hel"},
        {"type": "response.content_part.added", "part": {"type": "output_text", "text": "Hel"}},
    ])
    def test_content_events(self, event):
        assert normalize("openai", event).delta.content == "Hel"

    @pytest.mark.parametrize("event", [
        {"type": "response.reasoning_summary_text.delta", "delta": "Think"},
        {"type": "response.reasoning_summary_part.added", "part": {"text": "Think"}},
    ])
    def test_reasoning_events(self, event):
        delta = normalize("openai", event).delta
        assert delta.reasoning == "Think"
        assert delta.content is None

    def test_completed_maps_usage(self):
        event = {
            "type": "response.completed",
            "response": {
                "id": "resp_1",
                "status": "completed",
                "usage": {
                    "input_tokens": 100,
                    "output_tokens": 50,
                    "total_tokens": 150,
                    "output_tokens_details": {"reasoning_tokens": 20},
                    "input_tokens_details": {"cached_tokens": 60},
                },
            },
        }

        result = normalize("openai", event).to_dict()

        assert result["choices"][0]["finish_reason"] == "stop"
        assert result["usage"] == {
            "prompt_tokens": 100,
            "completion_tokens": 50,
            "total_tokens": 150,
            "reasoning_tokens": 20,
            "prompt_tokens_details": {"cached_tokens": 60},
        }

    def test_incomplete_maps_length(self):
        event = {
            "type": "response.incomplete",
            "response": {"incomplete_details": {"reason": "max_output_tokens"}},
        }

        assert normalize("openai", event).finish_reason == "length"

    def test_function_call_streams_as_tool_call(self):
        events = [
            {"type": "response.output_item.added", "output_index": 1,
             "item": {"type": "function_call", "call_id": "call_9", "name": "get_weather", "arguments": ""}},
            {"type": "response.function_call_arguments.delta", "output_index": 1, "delta": "{\"city\":"},
            {"type": "response.function_call_arguments.delta", "output_index": 1, "delta": "\"Paris\"}"},
        ]
        assembler = ResponseAssembler("openai", "gpt-5")
        for event in events:
            assembler.add(normalize("openai", event))

        call = assembler.build().message.tool_calls[0]
        assert call.id == "call_9"
        assert call.function.name == "get_weather"
        assert json.loads(call.function.arguments) == {"city": "Paris"}

    def test_event_without_type_uses_compatible_path(self):
        data = {"choices": [{"index": 0, "delta": {"content": "x", "reasoning_content": "r"}}]}

        delta = normalize("openai", data).delta

        assert delta.content == "x"
        assert delta.reasoning == "r"

    def test_parse_response_body(self):
        body = {
            "id": "resp_1",
            "object": "response",
            "created_at": 1700000000,
            "model": "gpt-5",
            "status": "completed",
            "output": [
                {"type": "reasoning", "summary": [{"type": "summary_text", "text": "Thinking."}]},
                {"type": "message", "content": [{"type": "output_text", "text": "Hello"}]},
            ],
            "usage": {"input_tokens": 5, "output_tokens": 2, "total_tokens": 7},
        }

        response = transform_response_to_openai("openai", "gpt-5", body)

        assert response.id == "resp_1"
        assert response.message.content == "Hello"
        assert response.message.reasoning == "Thinking."
        assert response.finish_reason == "stop"
        assert response.usage.total_tokens == 7


# ============================================================
# Anthropic
# ============================================================

class TestAnthropic:
    """Test Anthropic event normalization."""

    def test_text_delta(self):
        chunk = normalize("anthropic", {"type": "content_block_delta", "index": 0,
                                        "delta": {"type": "text_delta", "text": "Hi"}})
        assert chunk.delta.content == "Hi"
        assert chunk.delta.role == "assistant"
        assert_wire_valid(chunk)

    def test_thinking_delta_is_reasoning(self):
        chunk = normalize("anthropic", {"type": "content_block_delta", "index": 0,
                                        "delta": {"type": "thinking_delta", "thinking": "Hmm"}})
        assert chunk.delta.reasoning == "Hmm"
        assert chunk.delta.content is None
        assert "thinking" not in chunk.to_dict()["choices"][0]["delta"]

    def test_tool_arguments_concatenate(self):
        """start(tool_use f, id 1) + partial_json pieces assemble into valid JSON."""
        events = [
            {"type": "content_block_start", "index": 0,
             "content_block": {"type": "tool_use", "id": "1", "name": "f", "input": {}}},
            {"type": "content_block_delta", "index": 0,
             "delta": {"type": "input_json_delta", "partial_json": "{\"a\":"}},
            {"type": "content_block_delta", "index": 0,
             "delta": {"type": "input_json_delta", "partial_json": "1}"}},
        ]

        chunks = [normalize("anthropic", event) for event in events]
        opening = chunks[0].delta.tool_calls[0].to_dict()
        assert opening == {"index": 0, "id": "1", "type": "function", "function": {"name": "f", "arguments": ""}}
        assert chunks[1].delta.tool_calls[0].to_dict() == {"index": 0, "function": {"arguments": "{\"a\":"}}

        assembler = ResponseAssembler("anthropic")
        for chunk in chunks:
            assembler.add(chunk)
        call = assembler.build().message.tool_calls[0]

        assert call.function.name == "f"
        assert call.function.arguments == "{\"a\":1}"
        assert json.loads(call.function.arguments) == {"a": 1}
        assert assembler.tool_calls_complete is True

    @pytest.mark.parametrize("stop_reason,expected", [
        ("end_turn", "stop"),
        ("tool_use", "tool_calls"),
        ("max_tokens", "length"),
        ("stop_sequence", "stop"),
        ("refusal", "stop"),
    ])
    def test_message_delta_stop_reasons(self, stop_reason, expected):
        chunk = normalize("anthropic", {"type": "message_delta", "delta": {"stop_reason": stop_reason},
                                        "usage": {"output_tokens": 3}})
        assert chunk.finish_reason == expected
        assert chunk.delta.content is None

    def test_message_stop_is_terminal(self):
        assert normalize("anthropic", {"type": "message_stop"}).finish_reason == "stop"

    def test_message_start_is_keep_alive_with_usage(self):
        chunk = normalize("anthropic", {
            "type": "message_start",
            "message": {"id": "msg_1", "usage": {"input_tokens": 10, "output_tokens": 1,
                                                 "cache_read_input_tokens": 4,
                                                 "cache_creation_input_tokens": 2}},
        })

        assert chunk.id == "msg_1"
        assert chunk.delta.to_dict() == {"role": "assistant"}
        assert chunk.finish_reason is None
        assert chunk.usage.prompt_tokens == 16
        assert chunk.usage.cached_tokens == 4

    @pytest.mark.parametrize("event", [
        {"type": "content_block_stop", "index": 0},
        {"type": "ping"},
        {"type": "content_block_start", "index": 0, "content_block": {"type": "text", "text": ""}},
    ])
    def test_other_events_are_role_only(self, event):
        chunk = normalize("anthropic", event)
        assert chunk.delta.to_dict() == {"role": "assistant"}
        assert chunk.finish_reason is None

    def test_legacy_bare_text(self):
        assert normalize("anthropic", {"delta": {"text": "old"}}).delta.content == "old"

    def test_parse_response_body(self, mock_anthropic_response):
        response = transform_response_to_openai("anthropic", "claude-sonnet-4", mock_anthropic_response)

        assert response.message.content == "Hello! I'm a mock Claude response."
        assert response.message.tool_calls[0].function.name == "get_weather"
        assert json.loads(response.message.tool_calls[0].function.arguments) == {"city": "Paris"}
        assert response.message.reasoning == "User wants weather."
        assert response.finish_reason == "tool_calls"
        assert response.usage.prompt_tokens == 10
        assert response.usage.total_tokens == 18


@pytest.fixture
def mock_anthropic_response():
    return {
        "id": "msg-test123",
        "type": "message",
        "role": "assistant",
        "content": [
            {"type": "thinking", "thinking": "User wants weather."},
            {"type": "text", "text": "Hello! I'm a mock Claude response."},
            {"type": "tool_use", "id": "toolu_1", "name": "get_weather", "input": {"city": "Paris"}},
        ],
        "model": "claude-3-5-sonnet-20241022",
        "stop_reason": "tool_use",
        "usage": {"input_tokens": 10, "output_tokens": 8},
    }


# ============================================================
# Google AI Studio
# ============================================================

class TestGoogle:
    """Test Gemini chunk normalization."""

    def test_content_and_thought_parts_are_separated(self):
        chunk = normalize("google-ai-studio", {
            "candidates": [{"content": {"parts": [
                {"text": "I should ", "thought": True},
                {"text": "Hello "},
                {"text": "think.", "thought": True},
                {"text": "world"},
            ]}}],
        })

        assert chunk.delta.content == "Hello world"
        assert chunk.delta.reasoning == "I should think."

    def test_function_call_parts_become_tool_calls(self):
        chunk = normalize("google-ai-studio", {
            "candidates": [{"content": {"parts": [
                {"functionCall": {"name": "get_weather", "args": {"city": "Paris"}}},
                {"functionCall": {"name": "get_time", "args": {}}},
            ]}, "finishReason": "STOP"}],
        })

        calls = chunk.delta.tool_calls
        assert [c.name for c in calls] == ["get_weather", "get_time"]
        assert calls[0].id.startswith("get_weather_") and calls[0].id.endswith("_0")
        assert calls[1].id.endswith("_1")
        assert json.loads(calls[0].arguments) == {"city": "Paris"}
        assert chunk.finish_reason == "tool_calls"

    def test_inline_image_uses_extractor(self):
        chunk = normalize("google-ai-studio", {
            "candidates": [{"content": {"parts": [
                {"inlineData": {"mimeType": "image/jpeg", "data": "QUJD"}},
            ]}}],
        })

        assert chunk.delta.images[0].url == "data:image/jpeg;base64,QUJD"

    def test_injected_image_extractor_is_used(self):
        seen = []

        def extractor(data, provider):
            seen.append(provider)
            return []

        normalize("google-ai-studio", {"candidates": [{"content": {"parts": [{"inlineData": {"data": "x"}}]}}]},
                  image_extractor=extractor)

        assert seen == ["google-ai-studio"]

    @pytest.mark.parametrize("reason,expected", [
        ("STOP", "stop"),
        ("MAX_TOKENS", "length"),
        ("SAFETY", "content_filter"),
        ("RECITATION", "stop"),
    ])
    def test_finish_reasons(self, reason, expected):
        chunk = normalize("google-ai-studio", {"candidates": [{"content": {"parts": []}, "finishReason": reason}]})
        assert chunk.finish_reason == expected

    def test_usage_fallback_uses_token_estimator(self, sample_messages):
        """Zero promptTokenCount is replaced by the estimator's output."""
        calls = []

        def estimator(messages):
            calls.append(messages)
            return 37

        chunk = normalize(
            "google-ai-studio",
            {
                "candidates": [{"content": {"parts": [{"text": "Hi"}]}}],
                "usageMetadata": {"promptTokenCount": 0, "candidatesTokenCount": 5, "thoughtsTokenCount": 11},
            },
            messages=sample_messages,
            token_estimator=estimator,
        )

        assert calls == [sample_messages]
        assert chunk.usage.prompt_tokens == 37
        assert chunk.usage.completion_tokens == 5
        assert chunk.usage.total_tokens == 37 + 5 + 11
        assert chunk.usage.reasoning_tokens == 11

    def test_usage_fallback_default_estimator(self, sample_messages):
        chunk = normalize(
            "google-ai-studio",
            {"candidates": [], "usageMetadata": {"candidatesTokenCount": 2}},
            messages=sample_messages,
        )

        assert chunk.usage.prompt_tokens > 0

    def test_reasoning_tokens_only_when_nonzero(self):
        chunk = normalize("google-ai-studio", {
            "candidates": [{"content": {"parts": [{"text": "a"}]}}],
            "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 1, "thoughtsTokenCount": 0},
        })

        assert chunk.usage.reasoning_tokens is None
        assert "reasoning_tokens" not in chunk.to_dict()["usage"]

    def test_empty_chunk_is_keep_alive_with_usage(self):
        chunk = normalize("google-ai-studio", {
            "candidates": [{"content": {"parts": [{"text": ""}]}}],
            "usageMetadata": {"promptTokenCount": 4, "candidatesTokenCount": 0},
        })

        assert chunk is not None
        assert chunk.delta.to_dict() == {}
        assert chunk.finish_reason is None
        assert chunk.usage.prompt_tokens == 4

    def test_parse_response_body(self):
        body = {
            "candidates": [{"content": {"parts": [{"text": "Bonjour"}]}, "finishReason": "STOP"}],
            "usageMetadata": {"promptTokenCount": 3, "candidatesTokenCount": 1, "totalTokenCount": 4},
            "modelVersion": "gemini-2.5-flash",
        }

        response = transform_response_to_openai("google-ai-studio", "gemini", body)

        assert response.model == "gemini-2.5-flash"
        assert response.message.content == "Bonjour"
        assert response.finish_reason == "stop"
        assert response.usage.total_tokens == 4


# ============================================================
# Bedrock
# ============================================================

def bedrock_event(event_type, **payload):
    return {"__aws_event_type": event_type, **payload}


class TestBedrock:
    """Test ConverseStream event normalization."""

    def test_text_delta(self):
        chunk = normalize("aws-bedrock", bedrock_event("contentBlockDelta", contentBlockIndex=0,
                                                      delta={"text": "Hi"}))
        assert chunk.delta.content == "Hi"

    def test_reasoning_delta(self):
        chunk = normalize("aws-bedrock", bedrock_event("contentBlockDelta",
                                                      delta={"reasoningContent": {"text": "hmm"}}))
        assert chunk.delta.reasoning == "hmm"

    def test_tool_use_delta_serializes_full_input(self):
        chunk = normalize("aws-bedrock", bedrock_event(
            "contentBlockDelta", contentBlockIndex=2,
            delta={"toolUse": {"toolUseId": "t1", "name": "f", "input": {"a": 1}}},
        ))

        call = chunk.delta.tool_calls[0]
        assert call.index == 2
        assert call.id == "t1"
        assert json.loads(call.arguments) == {"a": 1}

    def test_message_start_is_role_only(self):
        chunk = normalize("aws-bedrock", bedrock_event("messageStart", role="assistant"))
        assert chunk.delta.to_dict() == {"role": "assistant"}

    @pytest.mark.parametrize("reason,expected", [
        ("end_turn", "stop"),
        ("max_tokens", "length"),
        ("tool_use", "tool_calls"),
        ("content_filtered", "content_filter"),
        ("guardrail_intervened", "stop"),
    ])
    def test_message_stop_reasons(self, reason, expected):
        assert normalize("aws-bedrock", bedrock_event("messageStop", stopReason=reason)).finish_reason == expected

    def test_metadata_is_usage_only(self):
        chunk = normalize("aws-bedrock", bedrock_event(
            "metadata", usage={"inputTokens": 30, "outputTokens": 12, "totalTokens": 42},
        ))

        assert chunk.delta.to_dict() == {}
        assert chunk.usage.prompt_tokens == 30
        assert chunk.usage.completion_tokens == 12
        assert chunk.usage.total_tokens == 42

    @pytest.mark.parametrize("event_type", ["contentBlockStop", "somethingNew", None])
    def test_unrecognized_events_are_dropped(self, event_type):
        """Unlike every other family, Bedrock drops events it does not know."""
        assert normalize("aws-bedrock", {"__aws_event_type": event_type, "contentBlockIndex": 0}) is None

    def test_parse_converse_body(self):
        body = {
            "output": {"message": {"role": "assistant", "content": [
                {"text": "Sure."},
                {"toolUse": {"toolUseId": "t1", "name": "f", "input": {"a": 1}}},
            ]}},
            "stopReason": "tool_use",
            "usage": {"inputTokens": 3, "outputTokens": 4, "totalTokens": 7},
        }

        response = transform_response_to_openai("aws-bedrock", "claude", body)

        assert response.message.content == "Sure."
        assert response.message.tool_calls[0].id == "t1"
        assert response.finish_reason == "tool_calls"


# ============================================================
# Failure semantics
# ============================================================

class TestFailureSemantics:
    """Malformed events are dropped; error events raise from the stream normalizer."""

    def test_handler_exception_drops_event(self, registry):
        # A null tool call entry fails while the chunk is built
        bad = {"choices": [{"index": 0, "delta": {"tool_calls": [None]}}]}

        assert normalize("zai", bad) is None
        assert sample_value(registry, "llmgw_stream_events_total", provider="zai", outcome=EventOutcome.ERROR) == 1.0

    def test_dropped_events_are_counted(self, registry):
        normalize("aws-bedrock", {"__aws_event_type": "contentBlockStop"})

        assert sample_value(
            registry, "llmgw_stream_events_total", provider="aws-bedrock", outcome=EventOutcome.DROPPED
        ) == 1.0

    def test_anthropic_error_event_raises(self):
        normalizer = StreamNormalizer("anthropic", "claude-sonnet-4")

        with pytest.raises(ProviderStreamError) as exc_info:
            normalizer.normalize({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}})

        assert exc_info.value.error.message == "Overloaded"

    def test_anthropic_string_error_raises_with_message(self):
        normalizer = StreamNormalizer("anthropic", "claude-sonnet-4")

        with pytest.raises(ProviderStreamError) as exc_info:
            normalizer.normalize({"type": "error", "error": "overloaded"})

        assert exc_info.value.error.message == "overloaded"

    @pytest.mark.parametrize("error,message", [
        (None, "Anthropic stream error"),
        ("", "Anthropic stream error"),
        (503, "503"),
    ])
    def test_anthropic_odd_error_bodies_still_raise(self, error, message):
        normalizer = StreamNormalizer("anthropic", "claude-sonnet-4")

        with pytest.raises(ProviderStreamError) as exc_info:
            normalizer.normalize({"type": "error", "error": error})

        assert exc_info.value.error.message == message

    def test_failing_error_check_drops_event(self, registry, monkeypatch):
        normalizer = StreamNormalizer("zai", "glm-4.6")

        def broken_check(data):
            raise TypeError("unexpected error shape")

        monkeypatch.setattr(normalizer.adapter, "detect_stream_error", broken_check)

        assert normalizer.normalize({"choices": [{"index": 0, "delta": {"content": "a"}}]}) is None
        assert normalizer.chunks_emitted == 0
        assert sample_value(registry, "llmgw_stream_events_total", provider="zai", outcome=EventOutcome.ERROR) == 1.0

    def test_google_error_event_raises(self):
        normalizer = StreamNormalizer("google-ai-studio", "gemini")

        with pytest.raises(ProviderStreamError):
            normalizer.normalize({"error": {"code": 429, "message": "Resource exhausted", "status": "RESOURCE_EXHAUSTED"}})

    def test_bedrock_exception_event_raises(self):
        normalizer = StreamNormalizer("aws-bedrock", "claude")

        with pytest.raises(ProviderStreamError):
            normalizer.normalize({"__aws_exception_type": "throttlingException", "message": "slow down"})


# ============================================================
# Stream normalizer state
# ============================================================

class TestStreamNormalizer:
    """Test per-stream metadata handling."""

    def test_single_id_per_stream(self):
        normalizer = StreamNormalizer("openai", "gpt-5")

        first = normalizer.normalize({"type": "response.created", "response": {"id": "resp_1"}})
        second = normalizer.normalize({"type": "response.output_text.delta", "delta": "a"})

        assert first.id == second.id == "resp_1"
        assert normalizer.chunks_emitted == 2

    def test_prompt_tokens_carried_to_final_usage(self, anthropic_tool_events):
        normalizer = StreamNormalizer("anthropic", "claude-sonnet-4")

        chunks = [normalizer.normalize(event) for event in anthropic_tool_events]
        final_usage = [c.usage for c in chunks if c is not None and c.usage is not None][-1]

        assert final_usage.prompt_tokens == 30
        assert final_usage.completion_tokens == 40
        assert final_usage.total_tokens == 70
        assert final_usage.cached_tokens == 5
