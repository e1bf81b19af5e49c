"""Structured logging setup (structlog over the stdlib root logger)."""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

# Third-party loggers that are too chatty at INFO.
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "asyncio")


def _drop_empty(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in event_dict.items() if v is not None}


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    service_name: str = "challengehub",
    sql_echo: bool = False,
) -> None:
    """
    Configure structlog for the service.

    Args:
        level: Minimum level for our own events.
        json_format: JSON lines when True, coloured console output otherwise.
        service_name: Bound as ``service`` on every event.
        sql_echo: Leave SQLAlchemy engine logging at ``level`` instead of WARNING.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
    if not sql_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        _drop_empty,
    ]
    if json_format:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


@contextmanager
def request_log_context(request_id: str, **fields: Any) -> Iterator[None]:
    """Bind ``request_id`` and ``fields`` to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(request_id=request_id, **fields):
        yield
