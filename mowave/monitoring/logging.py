"""
Structured logging for the voucher platform.

structlog renders every event as one JSON line through the standard
library, so uvicorn and library records share the same handler. Each
record carries the app name and environment of the settings passed to
`setup_logging`, and payer phone numbers are masked before rendering.
"""
import logging
import re
import sys
from typing import Any, Callable, Dict, Optional

import structlog
from pythonjsonlogger import jsonlogger

from mowave.config import Settings, get_settings

EventDict = Dict[str, Any]
Processor = Callable[[Any, str, EventDict], EventDict]

# Event keys that hold an MSISDN
PHONE_NUMBER_KEYS = ("phone_number", "to")

_MSISDN_PATTERN = re.compile(r"^(\+?\d{3})\d+(\d{3})$")

NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def mask_phone_number(value: str) -> str:
    """Keep the country code and last three digits: ``256******000``."""
    match = _MSISDN_PATTERN.match(value)
    if not match:
        return value
    hidden = len(value) - len(match.group(1)) - len(match.group(2))
    return f"{match.group(1)}{'*' * hidden}{match.group(2)}"


def mask_phone_numbers(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    for key in PHONE_NUMBER_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str):
            event_dict[key] = mask_phone_number(value)
    return event_dict


def app_context_processor(settings: Settings) -> Processor:
    """Processor stamping ``app_name`` and ``app_env`` from ``settings``."""
    app_name = settings.app_name
    app_env = settings.app_env

    def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("app_name", app_name)
        event_dict.setdefault("app_env", app_env)
        return event_dict

    return add_app_context


def build_processors(settings: Settings) -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        app_context_processor(settings),
        mask_phone_numbers,
        structlog.processors.JSONRenderer(),
    ]


def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure structlog and the root handler.

    Safe to call again with different settings: outside production, loggers
    are not cached, so the new processors apply to existing module loggers.
    """
    settings = settings or get_settings()

    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=settings.is_production,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={"asctime": "@timestamp", "levelname": "level", "name": "logger"},
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [
        h for h in root_logger.handlers if not isinstance(h.formatter, jsonlogger.JsonFormatter)
    ]
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        app_env=settings.app_env,
    )
