"""Structlog setup shared by the engine and the ``gait-feed`` CLI.

Everything is routed through stdlib logging so that records from httpx and
aiohttp are rendered the same way as our own. Output goes to stderr; stdout
belongs to the CLI.
"""

from __future__ import annotations

import logging
import logging.config
import sys

import structlog

from gait.settings import settings

# Chatty transport libraries only report problems.
_QUIET_LOGGERS = ("httpx", "httpcore", "aiohttp")


def _strip_color_message(logger, name: str, event_dict: dict) -> dict:
    event_dict.pop("color_message", None)
    return event_dict


def _renderer(log_format: str):
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging() -> None:
    """Configure structlog and stdlib logging from GAIT_LOG_LEVEL / GAIT_LOG_FORMAT."""
    level = getattr(logging, settings.log_level(), logging.INFO)

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=_renderer(settings.log_format()),
        foreign_pre_chain=[*pre_chain, _strip_color_message],
    )

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"structlog": {"()": lambda: formatter}},
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "structlog",
                    "stream": sys.stderr,
                }
            },
            "root": {"handlers": ["stderr"], "level": level},
            "loggers": {
                name: {"handlers": ["stderr"], "level": "WARNING", "propagate": False}
                for name in _QUIET_LOGGERS
            },
        }
    )
