"""Logging utilities for the chat memory engine."""

from __future__ import annotations

import logging
import os
import sys
from typing import Any, MutableMapping

import orjson

_DEFAULT_LEVEL = os.environ.get("CHATMEM_LOG_LEVEL", "INFO")
_CONTEXT_PREFIX = "ctx_"

# Client libraries that log every request at INFO.
_QUIET_LOGGERS = ("urllib3", "httpx", "httpcore", "qdrant_client")


class JsonFormatter(logging.Formatter):
    """One JSON object per record; ``ctx_*`` extras are copied through."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        for key, value in record.__dict__.items():
            if key.startswith(_CONTEXT_PREFIX):
                payload[key[len(_CONTEXT_PREFIX) :]] = value
        return orjson.dumps(payload, default=str).decode("utf-8")


class ContextAdapter(logging.LoggerAdapter):
    """Logger adapter that stamps bound identifiers onto every record."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        for key, value in (self.extra or {}).items():
            extra.setdefault(f"{_CONTEXT_PREFIX}{key}", value)
        kwargs["extra"] = extra
        return msg, kwargs


def configure_logging(level: str | int = _DEFAULT_LEVEL, use_json: bool = True) -> None:
    """Configure root logger with optional JSON formatting."""
    logging.captureWarnings(True)
    root = logging.getLogger()
    root.setLevel(level)
    handler = logging.StreamHandler(sys.stdout)
    if use_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root.handlers = [handler]
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = "chat_memory") -> logging.Logger:
    """Return configured logger, configuring root on first call."""
    if not logging.getLogger().handlers:
        configure_logging()
    return logging.getLogger(name)


def bind_logger(logger: logging.Logger, **context: Any) -> ContextAdapter:
    """Wrap ``logger`` so each record carries ``context`` (user, conversation, ...)."""
    return ContextAdapter(logger, {key: value for key, value in context.items() if value is not None})


__all__ = ["configure_logging", "get_logger", "bind_logger", "ContextAdapter", "JsonFormatter"]
