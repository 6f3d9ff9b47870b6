from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Iterable, Sequence

from services.errors import ConfigurationError
from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "device",
    "port",
    "phase",
    "outcome",
    "error_count",
    "fatal_error_count",
)

_configured = False


class ContextualFormatter(logging.Formatter):

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context_parts: list[str] = []
        for key in self._extra_keys:
            if not hasattr(record, key):
                continue
            value = getattr(record, key, None)
            if value is None:
                continue
            context_parts.append(f"{key}={value}")
        if context_parts:
            return f"{message} | {' '.join(context_parts)}"
        return message


def resolve_log_level(level: str | int) -> int:
    """Return the numeric logging level for a name such as ``"debug"``."""
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    if not isinstance(resolved, int):
        raise ConfigurationError(f"Unknown log level: {level!r}.")
    return resolved


def configure_logging(level: str | int | None = None) -> None:
    """Configure process-wide logging with contextual formatting.

    uvicorn is started with ``log_config=None`` so its loggers propagate to
    the root handler installed here.
    """
    global _configured
    log_level = resolve_log_level(level if level is not None else get_settings().log_level)
    if _configured:
        return

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.ContextualFormatter",
                    "fmt": "%(asctime)sZ | %(levelname)s | %(threadName)s | %(name)s | %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "style": "%",
                    "extra_keys": list(_DEFAULT_EXTRA_KEYS),
                }
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "level": log_level,
                    "formatter": "contextual",
                }
            },
            "root": {"handlers": ["default"], "level": log_level},
        }
    )

    _configured = True
