"""Structured logging configuration for the inventory search service.

Every entrypoint logs through ``structlog``: JSON lines when deployed, a
colored console format locally. The entrypoint name is bound to each event,
and a search request additionally binds its scope and mode for the duration
of the request so cache, index and scoring logs can be correlated.

User queries can be long and are free text; the ``query`` field of any event
is cut to ``MAX_LOGGED_QUERY_CHARS`` before rendering.

Typical usage
- Call ``configure_logging(service_name, log_level, log_format)`` at startup
- Acquire loggers via ``structlog.get_logger(name)``
- Wrap one search in ``with search_log_context(scope_key, mode): ...``
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, MutableMapping

import structlog
from structlog.stdlib import LoggerFactory, add_logger_name

MAX_LOGGED_QUERY_CHARS = 50


def truncate_query(logger: Any, method_name: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    """Processor shortening the ``query`` field of an event."""
    query = event_dict.get("query")
    if isinstance(query, str) and len(query) > MAX_LOGGED_QUERY_CHARS:
        event_dict["query"] = query[:MAX_LOGGED_QUERY_CHARS] + "..."
    return event_dict


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
) -> None:
    """Configure structured logging for an entrypoint.

    Parameters
    - service_name: Bound to each log line as ``service``
    - log_level: ``DEBUG``, ``INFO``, ``WARNING``, ``ERROR`` (case-insensitive);
      unknown names fall back to ``INFO``
    - log_format: ``json`` for deployed services; anything else renders for
      a terminal
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_logger_name,
        truncate_query,
    ]
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


@contextmanager
def search_log_context(scope_key: str, mode: str) -> Iterator[None]:
    """Bind ``scope`` and ``mode`` to every event logged inside the block."""
    with structlog.contextvars.bound_contextvars(scope=scope_key, mode=mode):
        yield


def log_performance(operation: str, duration_ms: float, **kwargs: Any) -> None:
    """Log how long a unit of work took.

    Parameters
    - operation: Stable identifier of the measured work (e.g. ``search``)
    - duration_ms: Elapsed milliseconds, rounded to microseconds
    - kwargs: Extra dimensions such as ``source`` or ``results``
    """
    structlog.get_logger("performance").info(
        f"Operation {operation} completed",
        operation=operation,
        duration_ms=round(duration_ms, 3),
        **kwargs
    )
