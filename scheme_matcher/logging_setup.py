"""Structured logging configuration.

The engine only emits structlog events; embedding services call
:func:`configure_logging` once at startup.  Profile attribute values are
masked in every event above ``debug`` so income or age figures never reach
production log sinks.
"""

from __future__ import annotations

import logging
from typing import IO, Any, Final

import orjson
import structlog

from config.settings import Settings, settings as default_settings

# Event keys that may carry a user's own attribute values.
_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({"annual_income", "current_value", "user_value"})

_REDACTED: Final[str] = "[REDACTED]"


def _orjson_dumps(v: object, *, default: Any = None) -> str:
    return orjson.dumps(v, default=default).decode()


def _redact_profile_values(
    _logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    if method_name == "debug":
        return event_dict
    for key in _SENSITIVE_KEYS.intersection(event_dict):
        event_dict[key] = _REDACTED
    return event_dict


def _resolve_level(name: str) -> int:
    level = logging.getLevelNamesMapping().get(name.upper())
    if level is None:
        raise ValueError(f"unknown log level: {name!r}")
    return level


def configure_logging(config: Settings | None = None, *, stream: IO[str] | None = None) -> None:
    """Install the engine's structlog pipeline.

    *stream* defaults to stdout.  JSON output is serialised with orjson;
    ``console`` output uses structlog's dev renderer.

    Raises
    ------
    ValueError
        If ``config.log_level`` is not a standard level name.
    """
    config = config or default_settings
    level = _resolve_level(config.log_level)

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        _redact_profile_values,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if config.log_format == "json":
        processors += [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(serializer=_orjson_dumps),
        ]
    else:
        processors += [structlog.dev.set_exc_info, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )
