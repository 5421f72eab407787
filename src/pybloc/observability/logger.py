"""Structured logging with per-dispatch context.

Uses structlog for rendering.  Library modules log through the standard
``logging`` module; ``setup_logging`` installs a structlog
``ProcessorFormatter`` on the root handler so those records are rendered
by structlog with context variables merged in.  The dispatcher binds
``bloc``, ``event_kind`` and ``dispatch_id`` around every handler call, so
anything logged from inside a handler carries them.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


def get_dispatch_id() -> str:
    """Return the id of the dispatch running in this context, or ``""``."""
    return str(structlog.contextvars.get_contextvars().get("dispatch_id", ""))


def _add_component(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Structlog processor: tag entries emitted inside a dispatch."""
    if "bloc" in event_dict:
        event_dict.setdefault("component", event_dict["bloc"])
    return event_dict


def setup_logging(
    level: str = "INFO",
    format: str = "console",
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        format: "json" for production, "console" for development.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_component,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    final: list[Any] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if format == "json":
        final += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        final.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=final,
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [h for h in root.handlers if not getattr(h, "_pybloc", False)]
    handler._pybloc = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(log_level)


def setup_logging_from_settings() -> None:
    """Configure logging from ``Settings.observability``."""
    from pybloc.core.config import get_settings

    obs = get_settings().observability
    setup_logging(level=obs.log_level, format=obs.log_format)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for a module."""
    return structlog.get_logger(name)
