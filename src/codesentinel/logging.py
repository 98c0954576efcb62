"""Structured logging configuration for CodeSentinel.

Diagnostic logs go through structlog on top of stdlib handlers (stdout or a
rotating file). They are separate from the operator-facing activity stream,
which lives in the review state (see ``codesentinel.review.activity_log``).

Every event emitted while a phase step runs carries the review session id and
the phase name, and any credential-looking field is masked before rendering.

Example usage:
    >>> from codesentinel.config import LoggingConfig
    >>> from codesentinel.logging import setup_logging, get_logger, bind_review_context
    >>>
    >>> setup_logging(LoggingConfig(level="INFO", format="console"))
    >>> bind_review_context(session_id="SES-12345", phase="ANALYSIS")
    >>> get_logger(__name__).info("phase_step_started")
"""

from __future__ import annotations

import contextvars
import logging
import logging.handlers
import sys
from typing import Any

import structlog

from codesentinel.config import LoggingConfig

REVIEW_CONTEXT_KEYS = ("review_session_id", "phase")

# Event keys whose values are replaced before rendering
SECRET_KEYS = frozenset({"api_key", "apikey", "credential", "authorization", "x-api-key"})
REDACTED = "***"

# Third-party loggers that are chatty at INFO (per-request HTTP lines, SQL echo)
NOISY_LOGGERS = ("httpx", "httpcore", "google_genai", "aiosqlite", "sqlalchemy.engine")

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)


def add_correlation_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor adding the request correlation id, when one is set."""
    correlation_id = _correlation_id.get()
    if correlation_id is not None:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def redact_secrets(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor masking analyzer credentials.

    The analyzer key is held in memory only; it must not reach a log sink
    either, even when a caller passes it along as an event field.
    """
    for key in event_dict:
        if key.lower() in SECRET_KEYS and event_dict[key]:
            event_dict[key] = REDACTED
    return event_dict


def set_correlation_id(correlation_id: str | None) -> None:
    """Set (or clear, with None) the correlation id for the current context."""
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def bind_review_context(session_id: str, phase: str) -> None:
    """Bind the review session and phase to all subsequent logs.

    Binding goes through structlog contextvars, so it is scoped to the current
    asyncio task; a phase step and the API request that started it each see
    their own context.

    Args:
        session_id: Thought-signature session identifier
        phase: Name of the review phase being executed
    """
    structlog.contextvars.bind_contextvars(review_session_id=session_id, phase=phase)


def clear_review_context() -> None:
    """Remove the bindings made by :func:`bind_review_context`."""
    structlog.contextvars.unbind_contextvars(*REVIEW_CONTEXT_KEYS)


def get_review_context() -> dict[str, Any]:
    """Return the review bindings active in the current context."""
    bound = structlog.contextvars.get_contextvars()
    return {key: bound[key] for key in REVIEW_CONTEXT_KEYS if key in bound}


def setup_logging(config: LoggingConfig) -> None:
    """Configure structlog and the stdlib root logger from ``config``.

    Args:
        config: Logging configuration from CodeSentinelConfig
    """
    log_level = getattr(logging, config.level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    if config.file is not None:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.handlers.RotatingFileHandler(
            filename=config.file,
            maxBytes=config.rotation_size_mb * 1024 * 1024,
            backupCount=config.retention_count,
            encoding="utf-8",
        )
    else:
        handler = logging.StreamHandler(sys.stdout)

    handler.setLevel(log_level)
    root_logger.addHandler(handler)

    # Library chatter only shows up when debugging
    noisy_level = log_level if log_level <= logging.DEBUG else max(log_level, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)

    if config.format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.contextvars.merge_contextvars,
            add_correlation_id,
            redact_secrets,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named ``name`` (usually the module's ``__name__``)."""
    return structlog.get_logger(name)
