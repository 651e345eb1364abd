"""
Structured logging configuration for the Guardian Intel AI layer.

Python's built-in logging with a JSONFormatter for production and a
colored formatter for local development. Every module keeps using
logging.getLogger(__name__) and passes structured fields via `extra`.

Environments:
- production: JSON to stdout (machine-readable)
- development/staging/test: Colored text to stderr (human-readable)

Usage:
    from guardian.observability.logging_config import configure_logging

    configure_logging()  # auto-detects from GUARDIAN_ENV

    logger = logging.getLogger(__name__)
    logger.info("ai_chat_completed", extra={
        "provider": "claude",
        "model": "claude-sonnet-4.5",
        "task": "chat",
    })
"""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

# ─── Request Context ──────────────────────────────────────────────────

# ContextVar rather than thread-local: each asyncio task carries its own.
_request_id: ContextVar[Optional[str]] = ContextVar("guardian_request_id", default=None)


def set_request_id(request_id: str) -> None:
    """
    Tag all log records emitted in the current async context with
    `request_id`, so a chat call and its adapter logs can be correlated.
    """
    _request_id.set(request_id)


def get_request_id() -> Optional[str]:
    """Get the current request_id, or None outside a tagged context."""
    return _request_id.get()


def clear_request_id() -> None:
    """Clear the request_id from the current context."""
    _request_id.set(None)


def new_request_id() -> str:
    return f"req-{uuid.uuid4().hex[:12]}"


@contextmanager
def request_context(request_id: Optional[str] = None) -> Iterator[str]:
    """
    Tag records emitted inside the block with a request_id.

    An id the caller already set is kept, so nested calls share it.
    Otherwise `request_id` (or a fresh one) is used and the previous
    value is set back on exit (not reset by token: an async generator
    may be finalized from another context).
    """
    current = _request_id.get()
    if current is not None:
        yield current
        return

    tagged = request_id or new_request_id()
    _request_id.set(tagged)
    try:
        yield tagged
    finally:
        _request_id.set(current)


# ─── Context Filter ───────────────────────────────────────────────────


class ContextFilter(logging.Filter):
    """Injects request_id from the current context into every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = get_request_id()
        if request_id:
            record.request_id = request_id  # type: ignore[attr-defined]
        return True


# ─── JSON Formatter (Production) ──────────────────────────────────────


_STANDARD_FIELDS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "message",
    "taskName",
})


class JSONFormatter(logging.Formatter):
    """
    Outputs log records as single-line JSON objects.

    Output format:
        {"timestamp": "...", "level": "INFO", "logger": "guardian.llm.router",
         "message": "ai_router_fallback_used", "task": "chat", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "request_id"):
            entry["request_id"] = record.request_id

        for key, value in record.__dict__.items():
            if key in _STANDARD_FIELDS or key.startswith("_") or key == "request_id":
                continue
            try:
                json.dumps(value)
                entry[key] = value
            except (TypeError, ValueError):
                entry[key] = str(value)

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


# ─── Dev Formatter (Local Development) ────────────────────────────────


class DevFormatter(logging.Formatter):
    """
    Colorful, human-readable logs for local development.

    Format: [HH:MM:SS] LEVEL logger: message [key=value key=value]
    """

    COLORS = {
        logging.DEBUG: "\033[36m",     # Cyan
        logging.INFO: "\033[32m",      # Green
        logging.WARNING: "\033[33m",   # Yellow
        logging.ERROR: "\033[31m",     # Red
        logging.CRITICAL: "\033[41m",  # Red background
    }
    RESET = "\033[0m"

    _EXTRA_KEYS = (
        "request_id", "provider", "model", "task",
        "status_code", "latency_ms", "finish_reason", "capability",
    )

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, self.RESET)
        timestamp = self.formatTime(record, "%H:%M:%S")

        extras = []
        for key in self._EXTRA_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                extras.append(f"{key}={value}")

        extra_str = f" [{' '.join(extras)}]" if extras else ""

        formatted = (
            f"{self.RESET}[{timestamp}] "
            f"{color}{record.levelname:<8}{self.RESET} "
            f"{record.name}: {record.getMessage()}{extra_str}"
        )

        if record.exc_info and record.exc_info[1]:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


# ─── Configuration ────────────────────────────────────────────────────


def configure_logging(
    env: Optional[str] = None,
    level: int = logging.INFO,
) -> None:
    """
    Configure the root logger based on environment.

    Args:
        env: Override environment. If None, reads from GUARDIAN_ENV
             (defaults to "development").
        level: Log level (default: INFO).

    Behavior:
        - production → JSONFormatter to stdout
        - everything else → DevFormatter to stderr
    """
    env = env or os.environ.get("GUARDIAN_ENV", "development").lower().strip()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if env == "production":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(DevFormatter())

    handler.addFilter(ContextFilter())
    root_logger.addHandler(handler)

    # httpx logs full request URLs at INFO, and Gemini puts the key in the query string
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
