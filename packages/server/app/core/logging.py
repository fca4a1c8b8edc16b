"""Structured logging setup."""

from __future__ import annotations

import logging

import structlog

# Event keys whose values must never reach a log sink
REDACTED_KEYS = frozenset({
    "authorization",
    "cookie",
    "secret",
    "session_token",
    "signature",
    "token",
})


def redact_secrets(logger, method_name, event_dict):
    """structlog processor: mask values bound under secret-bearing keys."""
    for key in event_dict.keys() & REDACTED_KEYS:
        event_dict[key] = "***"
    return event_dict


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog for the sync server.

    ``fmt="json"`` for deployed environments, anything else renders for a
    terminal. Request-scoped values bound by the middleware are merged into
    every event.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_secrets,
    ]
    if fmt == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=False,
    )
    # SQL statements carry bound parameters; keep them out unless debugging
    logging.getLogger("sqlalchemy.engine").setLevel(max(numeric_level, logging.WARNING))
