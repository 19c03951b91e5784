"""
llmgw - Configuration

Runtime settings read from the environment.

Every setting has a safe default so the normalization core works with no
configuration at all; invalid values fail loudly at load time.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional


LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
LOG_FORMATS = {"json", "text"}

# A single Bedrock event is a few KB; anything this large is a broken stream.
DEFAULT_MAX_PENDING_BYTES = 8 * 1024 * 1024


def _is_truthy(value: Optional[str]) -> bool:
    """Check if environment variable is truthy."""
    if value is None:
        return False
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Process-wide, read-only settings."""
    service_name: str = "llmgw"
    log_level: str = "INFO"
    log_format: str = "json"
    metrics_enabled: bool = True
    tracing_enabled: bool = False
    otlp_endpoint: Optional[str] = None
    max_pending_bytes: int = DEFAULT_MAX_PENDING_BYTES

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from an environment mapping.

        Raises:
            ValueError: If a variable is set to an unusable value
        """
        env = os.environ if env is None else env

        log_level = env.get("LOG_LEVEL", "INFO").strip().upper()
        if log_level not in LOG_LEVELS:
            raise ValueError(
                f"Invalid LOG_LEVEL `{log_level}`. Use one of: {', '.join(sorted(LOG_LEVELS))}"
            )

        log_format = env.get("LOG_FORMAT", "json").strip().lower()
        if log_format not in LOG_FORMATS:
            raise ValueError("Invalid LOG_FORMAT. Use one of: json, text")

        raw_pending = env.get("LLMGW_MAX_PENDING_BYTES", str(DEFAULT_MAX_PENDING_BYTES)).strip()
        try:
            max_pending_bytes = int(raw_pending)
        except ValueError:
            raise ValueError(f"LLMGW_MAX_PENDING_BYTES must be an integer, got `{raw_pending}`")
        if max_pending_bytes < 12:
            raise ValueError("LLMGW_MAX_PENDING_BYTES must be at least 12 (one frame prelude)")

        metrics_raw = env.get("LLMGW_METRICS_ENABLED")

        return cls(
            service_name=env.get("LLMGW_SERVICE_NAME", "llmgw").strip() or "llmgw",
            log_level=log_level,
            log_format=log_format,
            metrics_enabled=True if metrics_raw is None else _is_truthy(metrics_raw),
            tracing_enabled=_is_truthy(env.get("LLMGW_TRACING_ENABLED")),
            otlp_endpoint=env.get("OTEL_EXPORTER_OTLP_ENDPOINT") or None,
            max_pending_bytes=max_pending_bytes,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get settings for this process (loaded once)."""
    return Settings.from_env()


def reset_settings() -> None:
    """Forget cached settings (for testing)."""
    get_settings.cache_clear()
