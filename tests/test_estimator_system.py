"""
llmgw - Token Estimator Tests

Prompt token estimates used when a provider reports none.
"""

import pytest

from llmgw.core.models import Message
from llmgw.usage.estimator import (
    TokenEstimator,
    calculate_prompt_tokens_from_messages,
    estimate_tokens,
)


class TestTextEstimates:
    """Test the character heuristic."""

    def test_empty_text_is_zero(self):
        assert estimate_tokens("") == 0

    def test_short_text_is_at_least_one(self):
        assert estimate_tokens("a") == 1

    def test_longer_text_estimates_more(self):
        short = estimate_tokens("Hello there")
        long = estimate_tokens("Hello there, " * 50)
        assert long > short * 10

    def test_anthropic_estimates_more_than_openai(self):
        text = "The quick brown fox jumps over the lazy dog. " * 20
        assert estimate_tokens(text, "anthropic") > estimate_tokens(text, "openai")

    def test_unknown_provider_uses_default_ratio(self):
        estimator = TokenEstimator("some-new-provider")
        assert estimator.chars_per_token == TokenEstimator.DEFAULT_CHARS_PER_TOKEN

    def test_unserializable_json_is_zero(self):
        assert TokenEstimator().estimate_json_tokens({"x": object()}) == 0


class TestMessageEstimates:
    """Test message-level estimates."""

    def test_no_messages_is_zero(self):
        assert calculate_prompt_tokens_from_messages(None) == 0
        assert calculate_prompt_tokens_from_messages([]) == 0

    def test_unified_and_dict_messages_agree(self):
        estimator = TokenEstimator("google-ai-studio")
        unified = [Message.system("Be brief."), Message.user("What is 2 + 2?")]
        raw = [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "What is 2 + 2?"},
        ]

        assert estimator.estimate_prompt_tokens(unified) == estimator.estimate_prompt_tokens(raw)

    def test_breakdown_separates_system_tokens(self, sample_messages):
        estimate = TokenEstimator("openai").estimate_messages_tokens(sample_messages)

        assert estimate.system_tokens > 0
        assert estimate.text_tokens > 0
        # One non-system message at four tokens of overhead
        assert estimate.message_overhead == 4
        assert estimate.total_tokens == (
            estimate.text_tokens + estimate.message_overhead + estimate.image_tokens + estimate.system_tokens
        )

    @pytest.mark.parametrize("detail,expected", [("low", 85), ("high", 850), ("auto", 850)])
    def test_image_parts(self, detail, expected):
        estimator = TokenEstimator("openai")
        message = {
            "role": "user",
            "content": [{"type": "image_url", "image_url": {"url": "https://x/y.png", "detail": detail}}],
        }

        estimate = estimator.estimate_messages_tokens([message])

        assert estimate.image_tokens == expected

    def test_tool_calls_add_tokens(self):
        estimator = TokenEstimator("openai")
        plain = {"role": "assistant", "content": "ok"}
        with_call = {
            "role": "assistant",
            "content": "ok",
            "tool_calls": [{"id": "c", "type": "function",
                            "function": {"name": "get_weather", "arguments": "{\"city\": \"Paris\"}"}}],
        }

        assert estimator.estimate_message_tokens(with_call) > (
            estimator.estimate_message_tokens(plain) + TokenEstimator.FUNCTION_CALL_OVERHEAD
        )

    def test_non_message_entries_are_ignored(self):
        estimator = TokenEstimator()
        messages = [{"role": "user", "content": "hi"}]

        assert estimator.estimate_prompt_tokens(messages + ["junk", 3]) == estimator.estimate_prompt_tokens(messages)
