"""
Logging for the order engine.

Every module takes its logger from `get_logger(__name__)`. Order context goes
through `format_fields` so webhook, cron and admin lines share one key=value shape.
"""

import logging
import os
import sys
from functools import cache
from typing import Any

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
# Vercel's drain stamps its own time
LOG_FORMAT_DRAIN = "%(levelname)s - %(name)s - %(message)s"

# Client libraries whose request lines duplicate our own gateway / Supabase logs
QUIET_LOGGERS = ("httpx", "httpcore", "hpack")

MAX_ID_LENGTH = 32
MAX_FIELD_LENGTH = 120


def _level_from_env() -> int:
    return getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)


def configure_logging() -> None:
    """Attach a stdout handler to the root logger unless one is already there."""
    root = logging.getLogger()
    if root.handlers:
        return

    level = _level_from_env()
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    on_vercel = os.environ.get("VERCEL") == "1"
    handler.setFormatter(logging.Formatter(LOG_FORMAT_DRAIN if on_vercel else LOG_FORMAT))
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


configure_logging()


@cache
def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _single_line(value: str) -> str:
    # Webhook payloads and query strings end up here; keep them on one line
    return (
        value.replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
        .replace("\x00", "")
    )


def sanitize_id_for_logging(id_value: str | None) -> str:
    """Payment / event / reference id, cut to 32 chars."""
    if not id_value:
        return "N/A"
    return _single_line(str(id_value))[:MAX_ID_LENGTH]


def sanitize_string_for_logging(value: str | None, max_length: int = 50) -> str:
    if not value:
        return "N/A"
    text = _single_line(str(value))
    return text if len(text) <= max_length else text[:max_length] + "..."


def format_fields(**fields: Any) -> str:
    """Render context as `key=value` pairs, skipping None values.

    Enum members are logged by value, so `status=PAID` rather than the repr.
    """
    parts = []
    for key, value in fields.items():
        if value is None:
            continue
        if hasattr(value, "value"):
            value = value.value
        parts.append(f"{key}={sanitize_string_for_logging(str(value), MAX_FIELD_LENGTH)}")
    return " ".join(parts)


__all__ = [
    "configure_logging",
    "format_fields",
    "get_logger",
    "sanitize_id_for_logging",
    "sanitize_string_for_logging",
]
