"""Structured logging setup."""
import logging
import sys

import structlog

from config.settings import get_settings
from esupervision.utils.pii import strip_pii

_configured = False


def scrub_pii(logger, method_name, event_dict):
    """structlog processor that runs the PII filter over message fields."""
    for key in ("event", "error"):
        value = event_dict.get(key)
        if isinstance(value, str):
            event_dict[key] = strip_pii(value)
    return event_dict


def configure_logging(level: str = None, json_output: bool = None):
    """Configure structlog on top of stdlib logging."""
    global _configured
    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    json_output = settings.LOG_JSON if json_output is None else json_output

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            scrub_pii,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str):
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)
