"""
Structured JSON logging: timestamp, user_id, transaction_id, event_type.

structlog with ISO timestamps, log level, and consistent keys for aggregation.
All modules should use get_logger() and pass event_type (and user_id /
transaction_id where relevant).

Uses only Python stdlib logging and structlog; no backend_trustrisk imports to avoid circular imports.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)

# JSON output for production (LOG_FORMAT=json); human-readable for local
LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()


def _add_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Ensure timestamp is always present (ISO 8601)."""
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _normalize_event(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Rename structlog 'event' to event_type; keep message if present."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "message" not in event_dict and "event_type" in event_dict:
        event_dict["message"] = str(event_dict["event_type"])
    return event_dict


_METHOD_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "exception": logging.ERROR,
    "critical": logging.CRITICAL,
    "fatal": logging.CRITICAL,
}


def level_from_name(name: str) -> int:
    """Map "DEBUG" / "info" / ... to a logging level; unknown names mean INFO."""
    return getattr(logging, (name or "").strip().upper(), logging.INFO)


def _renderer_for(fmt: str) -> Any:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


# Loggers bound at import keep their processor chain, so the chain reads the
# active level and renderer from here on every call.
_active: dict[str, Any] = {"level": LOG_LEVEL_VALUE, "renderer": _renderer_for(LOG_FORMAT)}


def _filter_by_level(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    if _METHOD_LEVELS.get(method_name, logging.INFO) < _active["level"]:
        raise structlog.DropEvent
    return event_dict


def _render(logger: Any, method_name: str, event_dict: dict[str, Any]) -> Any:
    return _active["renderer"](logger, method_name, event_dict)


def configure_structlog(level: int = LOG_LEVEL_VALUE, fmt: str = LOG_FORMAT) -> None:
    """
    Configure structlog: JSON or console renderer, timestamp, level, event_type.

    Safe to call again at runtime (e.g. from build_pipeline with Settings);
    the new level and format apply to loggers that already exist.
    """
    _active["level"] = level
    _active["renderer"] = _renderer_for(fmt)
    structlog.configure(
        processors=[
            _filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _add_timestamp,
            _normalize_event,
            _render,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


# One-time configuration on first import
if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a structured logger for the given module name.

        logger = get_logger(__name__)
        logger.info("risk_evaluated", user_id=7, transaction_id=12, risk_score=42.5)

    Output (JSON): {"event_type": "risk_evaluated", "user_id": 7, ..., "level": "info", "logger": "module.name"}
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_user(user_id: int) -> structlog.BoundLogger:
    """Return a logger with user_id bound to all subsequent log calls."""
    return get_logger("backend_trustrisk").bind(user_id=user_id)
