"""Environment-driven client configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_API_URL = "http://localhost:3001"


@dataclass(frozen=True)
class ClientSettings:
    """Resolved configuration for one client process."""

    api_url: str = DEFAULT_API_URL
    request_timeout_seconds: float = 60.0
    long_request_timeout_seconds: float = 90.0
    streaming_enabled: bool = True
    poll_interval_ms: int = 2500
    max_poll_attempts: int = 120
    max_reconnect_attempts: int = 5
    session_file: Path | None = None


def _env(name: str, default: str = "") -> str:
    return os.environ.get(name, default).strip()


def _int_env(name: str, default: int, *, minimum: int, maximum: int) -> int:
    raw = _env(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


def _float_env(name: str, default: float, *, minimum: float, maximum: float) -> float:
    raw = _env(name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


def _env_flag(name: str, *, default: bool) -> bool:
    raw = _env(name).lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def normalize_api_url(value: str) -> str:
    """Strip trailing slashes; fall back to the local default when blank."""
    return value.strip().rstrip("/") or DEFAULT_API_URL


def load_client_settings() -> ClientSettings:
    """Read AUTOBLOG_* variables, clamping numeric values to sane ranges."""
    session_file = _env("AUTOBLOG_SESSION_FILE")
    return ClientSettings(
        api_url=normalize_api_url(_env("AUTOBLOG_API_URL", DEFAULT_API_URL)),
        request_timeout_seconds=_float_env(
            "AUTOBLOG_REQUEST_TIMEOUT_SECONDS", 60.0, minimum=1.0, maximum=600.0
        ),
        long_request_timeout_seconds=_float_env(
            "AUTOBLOG_LONG_REQUEST_TIMEOUT_SECONDS", 90.0, minimum=1.0, maximum=1800.0
        ),
        streaming_enabled=_env_flag("AUTOBLOG_STREAMING_ENABLED", default=True),
        poll_interval_ms=_int_env("AUTOBLOG_POLL_INTERVAL_MS", 2500, minimum=100, maximum=60_000),
        max_poll_attempts=_int_env("AUTOBLOG_MAX_POLL_ATTEMPTS", 120, minimum=1, maximum=10_000),
        max_reconnect_attempts=_int_env(
            "AUTOBLOG_MAX_RECONNECT_ATTEMPTS", 5, minimum=0, maximum=50
        ),
        session_file=Path(session_file) if session_file else None,
    )
