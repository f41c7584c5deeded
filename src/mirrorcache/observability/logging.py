"""Log formatting for mirrorcache.

Two formatters share the same record layout:
- JsonFormatter: one orjson document per line, for log shippers
- ConsoleFormatter: a single readable line, for terminals

Both append whatever cache context is bound at the time of the call. The
facade binds its namespace around its own log calls and the CLI binds a
per-invocation request id:

    with cache.log_context():
        logger.info("Cache flushed")  # carries namespace=<cache.namespace>
"""

from __future__ import annotations

import contextvars
import logging
import sys
from datetime import datetime, timezone
from typing import Any

import orjson

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")
namespace_var: contextvars.ContextVar[str] = contextvars.ContextVar("namespace", default="")

# Context field name, console abbreviation, variable
_CONTEXT_FIELDS: tuple[tuple[str, str, contextvars.ContextVar[str]], ...] = (
    ("request_id", "req", request_id_var),
    ("namespace", "ns", namespace_var),
)

# LogRecord attributes that are never copied as extra fields
_RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


def bound_context() -> dict[str, str]:
    """Context fields currently bound, by name."""
    return {name: var.get() for name, _, var in _CONTEXT_FIELDS if var.get()}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED and not key.startswith("_")
    }


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Output format:
    {"timestamp": "2026-01-10T12:34:56.789+00:00", "level": "INFO",
     "logger": "mirrorcache.cache.facade", "message": "Cache flushed",
     "namespace": "blog-7"}
    """

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        data.update(bound_context())

        for key, value in _extra_fields(record).items():
            try:
                orjson.dumps(value)
                data[key] = value
            except TypeError:
                data[key] = str(value)

        if record.exc_info:
            exc_type = record.exc_info[0]
            data["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "traceback": self.formatException(record.exc_info),
            }

        return orjson.dumps(data, default=str).decode()


class ConsoleFormatter(logging.Formatter):
    """Readable single-line output.

    2026-01-10 12:34:56 | INFO     | mirrorcache.cache.facade | Cache flushed | ns=blog-7
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        level = f"{record.levelname:8}"
        if self.use_colors:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"

        parts = [timestamp, level, record.name, record.getMessage()]
        context = " ".join(
            f"{short}={var.get()[:8] if name == 'request_id' else var.get()}"
            for name, short, var in _CONTEXT_FIELDS
            if var.get()
        )
        if context:
            parts.append(context)

        line = " | ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    json_format: bool = True,
    level: str = "INFO",
    use_colors: bool = True,
) -> None:
    """Install a single stderr handler on the root logger.

    Args:
        json_format: Emit JSON lines instead of console lines
        level: Root log level name
        use_colors: Colorize console output when stderr is a terminal
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else ConsoleFormatter(use_colors))
    root_logger.addHandler(handler)

    # redis-py logs every reconnect at INFO
    logging.getLogger("redis").setLevel(logging.WARNING)


class LogContext:
    """Bind cache context fields for the duration of a block.

    Only ``request_id`` and ``namespace`` are recognized; other keyword
    arguments are ignored.
    """

    def __init__(self, **kwargs: Any) -> None:
        self.fields = kwargs
        self._tokens: list[tuple[contextvars.ContextVar[str], contextvars.Token[str]]] = []

    def __enter__(self) -> LogContext:
        for name, _, var in _CONTEXT_FIELDS:
            if name in self.fields:
                self._tokens.append((var, var.set(str(self.fields[name]))))
        return self

    def __exit__(self, *args: Any) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
