"""structlog setup for the Agora service.

Events are snake_case names with keyword context, e.g.
``logger.info("points_awarded", agent_id=..., delta=3)``. Request scoped
keys (``request_id``, ``agent_id``) live in contextvars so every line
emitted while handling a request carries them.
"""

import logging
import sys
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog

from agora.config import AgoraSettings

SERVICE_NAME = "agora"
_REQUEST_KEYS = ("request_id", "agent_id", "path")


def _plain_values(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Render ids and timestamps passed as context in their string form."""
    for key, value in event_dict.items():
        if isinstance(value, UUID):
            event_dict[key] = str(value)
        elif isinstance(value, datetime):
            event_dict[key] = value.isoformat()
    return event_dict


def configure_logging(settings: AgoraSettings) -> None:
    """Configure structlog from settings. Call once at startup."""
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _plain_values,
    ]
    if settings.log_format == "console":
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=SERVICE_NAME)


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    return structlog.get_logger(name)


def bind_request_context(request_id: str, **context: Any) -> None:
    """Attach request keys to every log line until cleared. ``None`` values are skipped."""
    values = {k: v for k, v in context.items() if v is not None}
    structlog.contextvars.bind_contextvars(request_id=request_id, **values)


def clear_request_context() -> None:
    """Drop per-request keys, keeping the global service binding."""
    structlog.contextvars.unbind_contextvars(*_REQUEST_KEYS)
