"""Logging configuration for Orbit Bridge."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

from orbit_bridge.config import get_settings

# Loggers from third-party packages that are too chatty at INFO
_NOISY_LOGGERS = ("aiohttp.access", "asyncpg", "httpx", "httpcore", "openai")


def setup_logging() -> None:
    """Configure structured logging.

    structlog renders through the standard library so that aiohttp, asyncpg
    and httpx records end up in the same handlers as our own events.
    """
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console_processors: list[structlog.types.Processor] = (
        [structlog.dev.ConsoleRenderer(colors=True)]
        if settings.is_development
        else [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    )
    console_formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *console_processors,
        ],
    )

    logging.basicConfig(format="%(message)s", level=log_level, handlers=[])
    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    root.addHandler(console_handler)

    log_to_file = settings.log_to_file
    if log_to_file:
        try:
            Path(settings.log_directory).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            log_to_file = False
            root.warning("log directory unavailable, file logging disabled: %s", exc)

    if log_to_file:
        json_formatter = structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
        )
        try:
            file_handler = RotatingFileHandler(
                settings.log_file_path,
                maxBytes=settings.log_file_max_bytes,
                backupCount=settings.log_file_backup_count,
                encoding="utf-8",
            )
            file_handler.setFormatter(json_formatter)
            root.addHandler(file_handler)

            if settings.log_error_file_enabled:
                error_handler = RotatingFileHandler(
                    settings.error_log_file_path,
                    maxBytes=settings.log_file_max_bytes,
                    backupCount=settings.log_file_backup_count,
                    encoding="utf-8",
                )
                error_handler.setLevel(logging.WARNING)
                error_handler.setFormatter(json_formatter)
                root.addHandler(error_handler)
        except OSError as exc:
            root.warning("could not open log file, file logging disabled: %s", exc)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
