"""
llmgw - Token Estimation

Client-side prompt token estimates, used when a provider reports no prompt
token count (Google AI Studio sometimes reports zero).

Provides:
- Approximate token counting for text
- Message token estimation for unified `Message` objects and raw dicts
- Image token estimation
"""

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..core.models import Message, ProviderFamily, Role, resolve_provider_family

MessageLike = Union[Message, Dict[str, Any]]
TokenEstimatorFn = Callable[[Sequence[Any]], int]


@dataclass
class TokenEstimate:
    """
    Token count estimate for a message list.

    Includes breakdown by component type.
    """
    total_tokens: int
    text_tokens: int = 0
    message_overhead: int = 0
    image_tokens: int = 0
    system_tokens: int = 0

    # Confidence level
    confidence: float = 0.85  # 0.0-1.0


class TokenEstimator:
    """
    Estimates token counts for different content types.

    Uses heuristics since provider tokenizers are not available locally.
    """

    # Average characters per token by provider family
    CHARS_PER_TOKEN = {
        ProviderFamily.OPENAI: 4.0,       # GPT models average ~4 chars/token
        ProviderFamily.ANTHROPIC: 3.5,    # Claude slightly more efficient
        ProviderFamily.GOOGLE: 4.0,       # Gemini similar to GPT
        ProviderFamily.BEDROCK: 3.5,      # Mostly Claude and Llama
    }
    DEFAULT_CHARS_PER_TOKEN = 4.0

    # Overhead tokens per message
    MESSAGE_OVERHEAD = {
        ProviderFamily.OPENAI: 4,         # <|start|>role<|end|>content<|end|>
        ProviderFamily.ANTHROPIC: 3,
        ProviderFamily.GOOGLE: 3,
        ProviderFamily.BEDROCK: 3,
    }
    DEFAULT_MESSAGE_OVERHEAD = 4

    FUNCTION_CALL_OVERHEAD = 10

    # Image token counts (OpenAI formula)
    IMAGE_TOKENS = {
        "low": 85,
        "high": 170,  # Base for high detail
        "high_tile": 170  # Per 512x512 tile
    }

    def __init__(self, provider: Optional[str] = None):
        """
        Initialize estimator for a specific provider.

        Args:
            provider: Provider id for tuned estimates
        """
        self.provider = provider
        family = resolve_provider_family(provider)
        self.chars_per_token = self.CHARS_PER_TOKEN.get(family, self.DEFAULT_CHARS_PER_TOKEN)
        self.message_overhead = self.MESSAGE_OVERHEAD.get(family, self.DEFAULT_MESSAGE_OVERHEAD)

    def estimate_text_tokens(self, text: str) -> int:
        """
        Estimate tokens for plain text.

        Uses character-based heuristic with adjustments for:
        - Whitespace
        - Numbers
        - Special characters
        """
        if not text:
            return 0

        # Basic character count estimate
        base_tokens = len(text) / self.chars_per_token

        # Adjust for whitespace (tends to reduce tokens)
        whitespace_ratio = len(re.findall(r'\s', text)) / max(len(text), 1)
        whitespace_adjustment = 1 - (whitespace_ratio * 0.1)

        # Adjust for numbers (more tokens)
        number_ratio = len(re.findall(r'\d', text)) / max(len(text), 1)
        number_adjustment = 1 + (number_ratio * 0.2)

        # Adjust for special characters
        special_ratio = len(re.findall(r'[^\w\s]', text)) / max(len(text), 1)
        special_adjustment = 1 + (special_ratio * 0.1)

        adjusted_tokens = base_tokens * whitespace_adjustment * number_adjustment * special_adjustment

        return max(1, int(math.ceil(adjusted_tokens)))

    def estimate_json_tokens(self, data: Any) -> int:
        """Estimate tokens for JSON-serializable data."""
        try:
            json_str = json.dumps(data, separators=(',', ':'))
        except (TypeError, ValueError):
            return 0
        # JSON tends to have more overhead
        return int(self.estimate_text_tokens(json_str) * 1.1)

    def estimate_image_tokens(self, detail: str = "auto") -> int:
        """
        Estimate tokens for an image of unknown size.

        Uses OpenAI's image token formula as reference, assuming 2x2 tiles
        for high detail.
        """
        if detail == "low":
            return self.IMAGE_TOKENS["low"]
        return self.IMAGE_TOKENS["high"] + (4 * self.IMAGE_TOKENS["high_tile"])

    # ============================================================
    # Messages
    # ============================================================

    def _content_tokens(self, content: Any) -> int:
        """Returns (text tokens + image tokens) for a message content value."""
        if not content:
            return 0
        if isinstance(content, str):
            return self.estimate_text_tokens(content)
        if not isinstance(content, list):
            return self.estimate_json_tokens(content)

        tokens = 0
        for part in content:
            if isinstance(part, dict):
                if part.get("type") == "image_url" or "image_url" in part:
                    image_url = part.get("image_url")
                    detail = image_url.get("detail", "auto") if isinstance(image_url, dict) else "auto"
                    tokens += self.estimate_image_tokens(detail)
                elif isinstance(part.get("text"), str):
                    tokens += self.estimate_text_tokens(part["text"])
            elif hasattr(part, "image_url"):
                tokens += self.estimate_image_tokens(getattr(part.image_url, "detail", "auto"))
            elif hasattr(part, "text"):
                tokens += self.estimate_text_tokens(part.text)
        return tokens

    def _image_tokens(self, content: Any) -> int:
        if not isinstance(content, list):
            return 0
        tokens = 0
        for part in content:
            if isinstance(part, dict) and (part.get("type") == "image_url" or "image_url" in part):
                image_url = part.get("image_url")
                detail = image_url.get("detail", "auto") if isinstance(image_url, dict) else "auto"
                tokens += self.estimate_image_tokens(detail)
            elif not isinstance(part, dict) and hasattr(part, "image_url"):
                tokens += self.estimate_image_tokens(getattr(part.image_url, "detail", "auto"))
        return tokens

    def estimate_message_tokens(self, message: MessageLike) -> int:
        """
        Estimate tokens for a single message.

        Accepts a unified `Message` or an OpenAI-format message dict.
        """
        if isinstance(message, Message):
            content = message.content
            name = message.name
            tool_call_id = message.tool_call_id
            tool_calls = [
                (tc.function.name, tc.function.arguments) for tc in message.tool_calls or []
            ]
        else:
            content = message.get("content")
            name = message.get("name")
            tool_call_id = message.get("tool_call_id")
            tool_calls = [
                ((tc.get("function") or {}).get("name") or "", (tc.get("function") or {}).get("arguments") or "")
                for tc in message.get("tool_calls") or []
                if isinstance(tc, dict)
            ]

        # Overhead plus the role token
        tokens = self.message_overhead + 1
        tokens += self._content_tokens(content)

        if name:
            tokens += self.estimate_text_tokens(name) + 1

        if tool_call_id:
            tokens += self.estimate_text_tokens(tool_call_id) + 1

        for function_name, arguments in tool_calls:
            tokens += self.FUNCTION_CALL_OVERHEAD
            tokens += self.estimate_text_tokens(function_name)
            tokens += self.estimate_text_tokens(arguments if isinstance(arguments, str) else json.dumps(arguments))

        return tokens

    def estimate_messages_tokens(self, messages: Sequence[MessageLike]) -> TokenEstimate:
        """
        Estimate tokens for a list of messages.

        Returns detailed breakdown.
        """
        text_tokens = 0
        message_overhead = 0
        image_tokens = 0
        system_tokens = 0

        for msg in messages:
            if not isinstance(msg, (Message, dict)):
                continue

            msg_tokens = self.estimate_message_tokens(msg)
            role = msg.role.value if isinstance(msg, Message) else msg.get("role")
            content = msg.content if isinstance(msg, Message) else msg.get("content")

            if role == Role.SYSTEM.value:
                system_tokens += msg_tokens
                continue

            msg_images = self._image_tokens(content)
            image_tokens += msg_images
            text_tokens += msg_tokens - msg_images - self.message_overhead
            message_overhead += self.message_overhead

        return TokenEstimate(
            total_tokens=text_tokens + message_overhead + image_tokens + system_tokens,
            text_tokens=text_tokens,
            message_overhead=message_overhead,
            image_tokens=image_tokens,
            system_tokens=system_tokens,
        )

    def estimate_prompt_tokens(self, messages: Optional[Sequence[MessageLike]]) -> int:
        """Prompt token estimate for an outbound message list."""
        if not messages:
            return 0
        return self.estimate_messages_tokens(messages).total_tokens


# Convenience functions

def estimate_tokens(text: str, provider: Optional[str] = None) -> int:
    """Estimate tokens for text."""
    return TokenEstimator(provider).estimate_text_tokens(text)


def calculate_prompt_tokens_from_messages(
    messages: Optional[Sequence[MessageLike]],
    provider: Optional[str] = None,
) -> int:
    """Default prompt token estimator handed to the normalizers."""
    return TokenEstimator(provider).estimate_prompt_tokens(messages)
