"""Structured logging for Songbird.

Every refresh runs inside :func:`refresh_context`, which binds the trigger
and card id to structlog's context variables. Log lines emitted anywhere
below the orchestrator (cascade tiers, resolvers, the cache) therefore carry
the refresh they belong to without threading a bound logger through each
call.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, MutableMapping, Optional, Union

import structlog
from structlog.contextvars import bound_contextvars

SERVICE_NAME = "songbird"

# HTTP clients and the scheduler are chatty at INFO.
_QUIET_LOGGERS = ("urllib3", "urllib3.connectionpool", "apscheduler", "apscheduler.scheduler")


def _add_service(_: Any, __: str, event_dict: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _processors(json_output: bool) -> list:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        # Aggregators need the service tag; the console does not.
        processors.append(_add_service)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    return processors


def _resolve_level(level: str) -> int:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")
    return numeric


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[Union[str, Path]] = None,
) -> None:
    """Route structlog through stdlib logging.

    ``json_output`` is meant for the server and scheduler, where logs are
    shipped somewhere; the CLI keeps the console renderer. ``log_file``
    receives a copy of every line.
    """

    numeric = _resolve_level(level)
    handlers = [logging.StreamHandler()]
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    logging.basicConfig(level=numeric, format="%(message)s", handlers=handlers, force=True)

    structlog.configure(
        processors=_processors(json_output),
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    third_party_level = logging.INFO if numeric <= logging.DEBUG else logging.WARNING
    for logger_name in _QUIET_LOGGERS:
        logging.getLogger(logger_name).setLevel(third_party_level)


@contextmanager
def refresh_context(trigger: str, card_id: Optional[str]) -> Iterator[None]:
    """Tag every log line inside the block with the refresh it serves.

    Previous values are restored on exit, so a sweep can nest one refresh
    context per card inside a wider scheduler context.
    """

    with bound_contextvars(trigger=trigger, card_id=card_id):
        yield


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
