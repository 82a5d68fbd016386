"""Logging configuration for cipherstore.

Events carry the emitting module as ``component``. Binary values (keys,
IVs, ciphertext) are never rendered; they are replaced by their length.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from cipherstore.config import Settings, get_settings

BINARY_TYPES = (bytes, bytearray, memoryview)


def summarize_binary(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Replace bytes-like values with ``<N bytes>``."""
    for key, value in event_dict.items():
        if isinstance(value, BINARY_TYPES):
            event_dict[key] = f"<{len(value)} bytes>"
    return event_dict


def add_component(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Record the logger name as ``component``, minus the package prefix."""
    name = event_dict.pop("logger", None)
    if name:
        event_dict.setdefault("component", name.removeprefix("cipherstore."))
    return event_dict


def _file_handler(settings: Settings, level: int) -> RotatingFileHandler | None:
    try:
        Path(settings.log_directory).mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            filename=settings.log_file_path,
            maxBytes=settings.log_file_max_bytes,
            backupCount=settings.log_file_backup_count,
            encoding="utf-8",
        )
    except OSError as e:
        # Console-only logging
        print(f"Warning: Could not setup file logging: {e}", file=sys.stderr)
        return None
    handler.setLevel(level)
    handler.setFormatter(_formatter(structlog.processors.JSONRenderer()))
    return handler


def _formatter(renderer: Any) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer]
    )


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structured logging with console and optional file output.

    The console is colored in development and JSON otherwise; the rotating
    log file is always JSON.
    """
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", level=log_level, handlers=[])
    logging.root.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        _formatter(
            structlog.dev.ConsoleRenderer(colors=True)
            if settings.is_development
            else structlog.processors.JSONRenderer()
        )
    )
    logging.root.addHandler(console_handler)

    if settings.log_to_file:
        file_handler = _file_handler(settings, log_level)
        if file_handler is not None:
            logging.root.addHandler(file_handler)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            add_component,
            structlog.processors.add_log_level,
            summarize_binary,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]
