"""Environment preflight checks for hosts embedding llmgw."""

from __future__ import annotations

import importlib.util
import os
import sys
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

import httpx

from llmgw.config import LOG_FORMATS, LOG_LEVELS, Settings

MIN_PYTHON = (3, 10)

# Import name -> distribution name
REQUIRED_PACKAGES = {
    "httpx": "httpx",
    "pydantic": "pydantic",
    "prometheus_client": "prometheus-client",
    "opentelemetry": "opentelemetry-api",
}

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off"}


@dataclass
class DoctorResult:
    ok: bool
    messages: List[str]


def _python_version_tuple() -> Tuple[int, int, int]:
    v = sys.version_info
    return (v.major, v.minor, v.micro)


def _check_python_version(errors: List[str]) -> None:
    current = _python_version_tuple()
    if current[:2] < MIN_PYTHON:
        errors.append(
            f"Python {current[0]}.{current[1]} is unsupported. "
            f"Use Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]} or newer."
        )


def _check_packages(errors: List[str]) -> None:
    for module, distribution in REQUIRED_PACKAGES.items():
        if importlib.util.find_spec(module) is None:
            errors.append(f"`{distribution}` is not installed. Run `pip install -e .`.")


def _check_logging(env: Mapping[str, str], errors: List[str]) -> None:
    level = env.get("LOG_LEVEL", "INFO").strip().upper()
    if level not in LOG_LEVELS:
        errors.append(f"LOG_LEVEL must be one of: {', '.join(sorted(LOG_LEVELS))}. Got `{level}`.")

    fmt = env.get("LOG_FORMAT", "json").strip().lower()
    if fmt not in LOG_FORMATS:
        errors.append(f"LOG_FORMAT must be one of: json, text. Got `{fmt}`.")


def _check_flags(env: Mapping[str, str], errors: List[str]) -> None:
    for key in ("LLMGW_METRICS_ENABLED", "LLMGW_TRACING_ENABLED"):
        raw = env.get(key)
        if raw is None:
            continue
        if raw.strip().lower() not in TRUTHY | FALSY:
            errors.append(f"{key} must be a boolean (true/false), got `{raw}`.")


def _check_pending_bytes(env: Mapping[str, str], errors: List[str], warnings: List[str]) -> None:
    raw = env.get("LLMGW_MAX_PENDING_BYTES")
    if raw is None:
        return

    try:
        value = int(raw.strip())
    except ValueError:
        errors.append(f"LLMGW_MAX_PENDING_BYTES must be an integer, got `{raw}`.")
        return

    if value < 12:
        errors.append("LLMGW_MAX_PENDING_BYTES must be at least 12 (one frame prelude).")
    elif value < 64 * 1024:
        warnings.append(
            f"LLMGW_MAX_PENDING_BYTES={value} is small; large Bedrock frames will end streams early."
        )


def _check_tracing(env: Mapping[str, str], errors: List[str], warnings: List[str]) -> None:
    endpoint = env.get("OTEL_EXPORTER_OTLP_ENDPOINT", "").strip()
    tracing = env.get("LLMGW_TRACING_ENABLED", "false").strip().lower() in TRUTHY

    if endpoint:
        try:
            url = httpx.URL(endpoint)
        except httpx.InvalidURL as exc:
            errors.append(f"OTEL_EXPORTER_OTLP_ENDPOINT is not a valid URL ({exc}).")
            return
        if url.scheme not in {"http", "https"} or not url.host:
            errors.append(
                f"OTEL_EXPORTER_OTLP_ENDPOINT must be an http(s) URL with a host, got `{endpoint}`."
            )
    elif tracing:
        warnings.append(
            "LLMGW_TRACING_ENABLED=true without OTEL_EXPORTER_OTLP_ENDPOINT: "
            "spans are recorded but not exported."
        )


def run_doctor(env: Optional[Mapping[str, str]] = None) -> DoctorResult:
    env_map: Mapping[str, str] = os.environ if env is None else env
    errors: List[str] = []
    warnings: List[str] = []

    _check_python_version(errors)
    _check_packages(errors)
    _check_logging(env_map, errors)
    _check_flags(env_map, errors)
    _check_pending_bytes(env_map, errors, warnings)
    _check_tracing(env_map, errors, warnings)

    # Settings must load whenever the individual checks pass
    if not errors:
        try:
            Settings.from_env(env_map)
        except ValueError as exc:
            errors.append(str(exc))

    messages: List[str] = []
    if errors:
        messages.append("Doctor found configuration issues:")
        for i, msg in enumerate(errors, 1):
            messages.append(f"{i}. {msg}")
        messages.append("Fix the items above and rerun `python -m scripts.doctor`.")
    else:
        messages.append("Doctor checks passed.")

    if warnings:
        messages.append("Warnings:")
        for i, msg in enumerate(warnings, 1):
            messages.append(f"- {msg}")

    return DoctorResult(ok=not errors, messages=messages)


def main() -> int:
    result = run_doctor()
    print("\n".join(result.messages))
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
