"""Structured logging setup.

Events are logged by name with keyword context::

    logger.info("tips_published", count=3)

Anything bound with :func:`run_context` is attached to every event logged
inside it, including events from tasks spawned there, so a run's annotator
and storage logs carry the run type.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import Processor

from vaultbets.common.config import LoggingConfig

PACKAGE_LOGGER = "vaultbets"
# Chatty third-party loggers that duplicate our own request events
QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging(config: LoggingConfig | None = None) -> None:
    """Configure structlog over stdlib logging.

    The stream handler renders JSON or a console layout per ``config.format``.
    A log file, if configured, is always written as JSON lines.
    """
    if config is None:
        config = LoggingConfig()
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {config.level}")

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    json_formatter = _formatter(structlog.processors.JSONRenderer(), shared_processors)
    if config.format == "json":
        stream_formatter = json_formatter
    else:
        console = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
        stream_formatter = _formatter(console, shared_processors)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(stream_formatter)
    handlers: list[logging.Handler] = [handler]

    if config.log_file:
        file_handler = logging.FileHandler(config.log_file)
        file_handler.setFormatter(json_formatter)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)


def _formatter(
    renderer: Processor, shared_processors: list[Processor]
) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, defaulting to the package logger."""
    return structlog.get_logger(name or PACKAGE_LOGGER)


@contextmanager
def run_context(**context: Any) -> Iterator[None]:
    """Bind context to every event logged within the block."""
    with structlog.contextvars.bound_contextvars(**context):
        yield
