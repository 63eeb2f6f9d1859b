"""
Stepflow Logging - structlog setup shared by every engine component.

Components log through ``get_logger(__name__)`` with dotted event names
(``step_registry.execute.complete``, ``parallel.batch.start``, ...).  A run
is followed across the registry, the composed runner and the parallel
engine by the ``workflow_id`` that ``LogContext`` binds.

Processor chain built by ``configure_logging``::

    [TimeStamper] → merge_contextvars → level / logger name → service
        → JSON:    duration → duration_ms, format_exc_info, JSONRenderer
        → console: ConsoleRenderer

Example::

    configure_logging(level="DEBUG", json_format=False)
    logger = get_logger(__name__)
    async with LogContext(workflow_id=context.workflow_id):
        logger.info("workflow.start", total_steps=3)
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_service = {"name": "stepflow"}


def _stamp_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", _service["name"])
    return event_dict


def _duration_ms(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Engine events report ``duration`` in seconds; JSON sinks get milliseconds."""
    duration = event_dict.get("duration")
    if isinstance(duration, (int, float)) and not isinstance(duration, bool):
        event_dict["duration_ms"] = round(event_dict.pop("duration") * 1000, 3)
    return event_dict


def _level_number(level: str) -> int:
    number = logging.getLevelName(level.upper())
    if not isinstance(number, int):
        raise ValueError(f"Unknown log level: {level}")
    return number


def build_processors(json_format: bool, add_timestamp: bool = True) -> list[Processor]:
    processors: list[Processor] = []
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
    processors += [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _stamp_service,
    ]
    if json_format:
        processors += [
            _duration_ms,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return processors


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "stepflow",
    add_timestamp: bool = True,
) -> None:
    """Configure structlog (and the stdlib root logger it writes through).

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR).
        json_format: JSON lines when True, console when False; None picks
            JSON whenever stdout is not a terminal.
        service: Value of the ``service`` field on every event.
        add_timestamp: Prepend an ISO-8601 UTC ``timestamp``.

    Raises:
        ValueError: Unknown level name.
    """
    threshold = _level_number(level)
    _service["name"] = service
    if json_format is None:
        json_format = not sys.stdout.isatty()

    structlog.configure(
        processors=build_processors(json_format, add_timestamp),
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=threshold)


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)


def bind_context(**fields: Any) -> None:
    structlog.contextvars.bind_contextvars(**fields)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind fields for the duration of a ``with`` / ``async with`` block.

    On exit the previous values are restored, so nested scopes that rebind
    ``workflow_id`` (a git run wrapping its composed steps) leave the outer
    value intact.
    """

    def __init__(self, **fields: Any) -> None:
        self.fields = fields
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self.fields)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)

    async def __aenter__(self) -> LogContext:
        return self.__enter__()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.__exit__(*exc_info)


__all__ = [
    "configure_logging",
    "build_processors",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
