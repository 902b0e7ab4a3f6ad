"""Structured logging setup."""

import logging
import sys

import structlog

from config import get_config


def setup_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Log level name. Defaults to the configured LOG_LEVEL.
        json_logs: Render JSON lines instead of the console format.
    """
    config = get_config()
    level = (level or config.log_level).upper()
    json_logs = config.log_json if json_logs is None else json_logs
    numeric_level = getattr(logging, level, logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level, force=True)

    # Third-party libraries are noisy at DEBUG
    for name in ("websockets", "httpx", "httpcore", "zeroconf", "async_upnp_client"):
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
