"""Logging setup — stdlib logging + structlog.

Services log through structlog.get_logger() with dotted event names
(e.g. "eduverse.realtime.subscribed") and key-value context. Request IDs
bound by the middleware are merged in from contextvars.
"""

import logging

import structlog

from eduverse.config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure stdlib logging and structlog once per process."""
    level = logging.DEBUG if settings.debug else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if settings.log_json or settings.environment != "development":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
