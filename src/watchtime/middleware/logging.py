"""Structured logging configuration with structlog."""

import logging

import structlog

from watchtime.config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure structlog for JSON or console output.

    Every entry carries the environment so logs from several deployments can share a sink.
    """

    def add_environment(_logger: object, _method: str, event_dict: dict) -> dict:
        event_dict.setdefault("environment", settings.environment)
        return event_dict

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            add_environment,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level)
    # SQL echo is noisy at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(max(level, logging.WARNING))
