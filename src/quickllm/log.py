"""Structured logging for quickllm.

Logs always go to stderr so ``quickllm process`` can pipe its result on
stdout. Session ids are bound with :func:`bind_session` and merged into every
event through structlog's contextvars.
"""

from __future__ import annotations

import logging
import sys

import structlog


def setup_logging(level: str = "INFO") -> None:
    """Configure structlog with console output on stderr, colored only on a terminal."""
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_session(session_id: str | None) -> None:
    """Attach the session id to every following log event, or detach it with ``None``."""
    if session_id:
        structlog.contextvars.bind_contextvars(session_id=session_id)
    else:
        structlog.contextvars.unbind_contextvars("session_id")


def preview(text: str, length: int = 50) -> str:
    """Shorten text for debug log fields."""
    if len(text) <= length:
        return text
    return text[:length] + "..."
