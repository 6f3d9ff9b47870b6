from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


_PORT_ENV = "SPS30_PORT"
_BIND_HOST_ENV = "SPS30_BIND_HOST"
_POLL_INTERVAL_ENV = "SPS30_POLL_INTERVAL"
_STARTUP_DELAY_ENV = "SPS30_STARTUP_DELAY"
_SERIAL_TIMEOUT_ENV = "SPS30_SERIAL_TIMEOUT"
_LOCK_TIMEOUT_ENV = "SPS30_STATE_LOCK_TIMEOUT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

DEFAULT_PORT = 8090


@dataclass(frozen=True)
class Settings:
    port: int
    bind_host: str
    poll_interval: float
    startup_delay: float
    serial_timeout: float
    state_lock_timeout: float
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_port(default: int) -> int:
    value = os.getenv(_PORT_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if 0 < parsed < 65536 else default


def _read_seconds(name: str, default: float, allow_zero: bool = False) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    if parsed > 0 or (allow_zero and parsed == 0):
        return parsed
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        port=_read_port(DEFAULT_PORT),
        bind_host=_read_str_env(_BIND_HOST_ENV, "0.0.0.0"),
        # New values are ready every second; polling at twice that keeps
        # "no data yet" the exception rather than the rule.
        poll_interval=_read_seconds(_POLL_INTERVAL_ENV, 2.0),
        # Datasheet start-up time.
        startup_delay=_read_seconds(_STARTUP_DELAY_ENV, 8.0, allow_zero=True),
        serial_timeout=_read_seconds(_SERIAL_TIMEOUT_ENV, 2.0),
        state_lock_timeout=_read_seconds(_LOCK_TIMEOUT_ENV, 1.0),
        log_level=_read_log_level("INFO"),
    )
