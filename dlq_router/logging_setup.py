"""Logging setup and thread-local log context for the router."""

import json
import logging
import sys
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any


class LogContext:
    """Thread-local storage for log context fields."""

    _local = threading.local()

    @classmethod
    def set(cls, **kwargs: Any) -> None:
        if not hasattr(cls._local, "context"):
            cls._local.context = {}
        cls._local.context.update(kwargs)

    @classmethod
    def get(cls) -> dict[str, Any]:
        if not hasattr(cls._local, "context"):
            cls._local.context = {}
        ctx: dict[str, Any] = cls._local.context
        return ctx

    @classmethod
    def clear(cls) -> None:
        cls._local.context = {}


class ContextFilter(logging.Filter):
    """Injects LogContext fields into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in LogContext.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Set logging context fields for the duration of the block.

    Previous fields are restored on exit, so contexts can nest.
    """
    previous = dict(LogContext.get())
    LogContext.set(**kwargs)
    try:
        yield
    finally:
        LogContext.clear()
        LogContext.set(**previous)


class _ContextFormatter(logging.Formatter):
    """Appends injected context fields as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        fields = LogContext.get()
        if fields:
            extras = " ".join(f"{k}={getattr(record, k, v)}" for k, v in fields.items())
            message = f"{message} [{extras}]"
        return message


class _JsonContextFormatter(logging.Formatter):
    """Adds injected context fields as extra keys of a JSON-like line."""

    def formatMessage(self, record: logging.LogRecord) -> str:
        # Tracebacks are appended after this, outside the closing brace.
        message = super().formatMessage(record)
        fields = LogContext.get()
        if fields:
            extras = "".join(
                f", {json.dumps(k)}: {json.dumps(getattr(record, k, v), default=str)}"
                for k, v in fields.items()
            )
            message = f"{message[:-1]}{extras}}}"
        return message


def setup_logging(
    level: str = "INFO",
    json_output: bool = False,
    environment: str = "development",
) -> None:
    """Configure root logger with appropriate formatting."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter())

    if json_output:
        # Simple JSON-like format for production
        handler.setFormatter(
            _JsonContextFormatter(
                '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
                '"logger": "%(name)s", "message": "%(message)s", '
                '"service_name": "dlq-router", '
                f'"environment": "{environment}"}}'
            )
        )
    else:
        handler.setFormatter(
            _ContextFormatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    # Quiet noisy libraries
    logging.getLogger("confluent_kafka").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
