"""
Logging setup for the ingestion service.

structlog renders either JSON lines (for shipping) or a colored console view.
Everything goes to stderr, leaving stdout to the CLI tables. Provider API
keys travel as query parameters and end up inside httpx error messages, so a
redaction processor scrubs them from every string value before rendering.
"""

import logging
import re
import sys
from typing import Any, Optional

import structlog

SERVICE_NAME = "fight-odds"
REDACTED = "***"

_SECRET_PARAM = re.compile(r"(?i)\b(apikey|api_key|token|access_token)=([^&\s'\"]+)")
_NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def redact_secrets(text: str) -> str:
    """Mask credential query parameters, e.g. ``apiKey=abc`` -> ``apiKey=***``."""
    return _SECRET_PARAM.sub(lambda m: f"{m.group(1)}={REDACTED}", text)


def _redact_event(_logger: Any, _method: str, event_dict: dict) -> dict:
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = redact_secrets(value)
    return event_dict


def _add_service(_logger: Any, _method: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def build_processors(log_format: str) -> list:
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        timestamper,
    ]

    if log_format == "json":
        processors += [
            _add_service,
            structlog.processors.dict_tracebacks,
            _redact_event,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors += [
            _redact_event,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]
    return processors


def setup_logging(level: str = "INFO", log_format: str = "console") -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Log level name (DEBUG, INFO, ...); unknown names fall back to INFO
        log_format: 'json' or 'console'
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=build_processors(log_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None, **context: Any) -> structlog.stdlib.BoundLogger:
    """Logger with optional bound context, e.g. ``get_logger(source_id="THE_ODDS_API")``."""
    log = structlog.get_logger(name)
    return log.bind(**context) if context else log
