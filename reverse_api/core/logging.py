"""
Centralized Logging Module for reverse_api

Provides unified logging configuration with:

Features:
    - Structured logging (structlog) routed through the stdlib logging tree
    - JSON output for production environments
    - Console output for development

Usage:
    from reverse_api.core.logging import get_logger, configure_logging

    configure_logging(level=logging.INFO, json_format=False)

    logger = get_logger("reverse_api.providers.grok")
    logger.info("Handshake complete", step="VERIFICATION", anim=2)

Environment Variables:
    REVERSE_API_LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    REVERSE_API_LOG_FORMAT: Set format (console, json)
"""

import logging
import os
import sys
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import orjson
import structlog

# =============================================================================
# Constants
# =============================================================================

ROOT_LOGGER_NAME = "reverse_api"
DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "console"
MAX_CACHE_SIZE = 128
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_RESERVED_RECORD_KEYS = frozenset(
    (
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
        "asctime",
    )
)


def _env_level() -> int:
    return getattr(
        logging, os.getenv("REVERSE_API_LOG_LEVEL", "INFO").upper(), DEFAULT_LOG_LEVEL
    )


def _env_json() -> bool:
    return os.getenv("REVERSE_API_LOG_FORMAT", DEFAULT_LOG_FORMAT) == "json"


def _orjson_dumps(obj: Any, **kwargs: Any) -> str:
    return orjson.dumps(obj, default=kwargs.get("default", str)).decode()


def _configure_structlog(level: int, json_format: bool) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.processors.JSONRenderer(serializer=_orjson_dumps)
                if json_format
                else structlog.dev.ConsoleRenderer(colors=False)
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


# =============================================================================
# Logger Class
# =============================================================================


class ReverseApiLogger:
    """
    Structured logger bound to a stdlib logger of the same name.

    Keyword arguments become structured fields:

        >>> logger = get_logger("reverse_api.signing.pow")
        >>> logger.info("Solved challenge", difficulty=144000, elapsed_ms=812)
    """

    def __init__(
        self,
        name: str,
        level: int = logging.INFO,
        json_format: bool = False,
    ) -> None:
        self.name = name
        self.level = level
        self.json_format = json_format or _env_json()
        self._logger = logging.getLogger(name)
        _configure_structlog(self.level, self.json_format)
        self._struct = structlog.get_logger(name)

    def bind(self, **kwargs: Any) -> Any:
        """Return a structlog logger carrying ``kwargs`` on every event."""
        return self._struct.bind(**kwargs)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._struct.debug(message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._struct.info(message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._struct.warning(message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._struct.error(message, **kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self._struct.critical(message, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log with the active exception's traceback. Call inside ``except``."""
        self._struct.exception(message, **kwargs)


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for stdlib records.

    Example output:
        {
            "timestamp": "2026-02-17T10:30:00.000000+00:00",
            "level": "INFO",
            "logger": "reverse_api.providers.webchat",
            "message": "DeepSeek session created",
            "extra": {"session_id": "..."}
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        extra_fields = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_KEYS
        }
        if extra_fields:
            log_data["extra"] = extra_fields

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return orjson.dumps(log_data, default=str).decode()


# =============================================================================
# Factory Functions
# =============================================================================


@lru_cache(maxsize=MAX_CACHE_SIZE)
def get_logger(name: str, level: int | None = None) -> ReverseApiLogger:
    """
    Get or create a structured logger.

    Args:
        name: Logger name (typically __name__ of calling module)
        level: Optional level override (default: from REVERSE_API_LOG_LEVEL)
    """
    return ReverseApiLogger(name, level or _env_level(), _env_json())


def set_log_level(level: int) -> None:
    """Set the level of every reverse_api logger."""
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)


def configure_logging(
    level: int = logging.INFO,
    json_format: bool = False,
    include_timestamp: bool = True,
) -> None:
    """
    Configure reverse_api logging globally.

    Should be called once at application startup.

    Args:
        level: Log level (default: INFO)
        json_format: Enable JSON formatting for production (default: False)
        include_timestamp: Include timestamp in console format (default: True)
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)

    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        fmt = CONSOLE_FORMAT if include_timestamp else "%(name)s - %(levelname)s - %(message)s"
        formatter = logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    _configure_structlog(level, json_format)


def get_standard_logger(name: str, level: int | None = None) -> logging.Logger:
    """
    Get a plain stdlib logger with the package formatting.

    Lightweight alternative to ReverseApiLogger for modules that log
    pre-formatted messages.
    """
    logger = logging.getLogger(name)

    if not logger.handlers and not logging.getLogger(ROOT_LOGGER_NAME).handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)

    logger.setLevel(level or _env_level())
    return logger


__all__ = [
    "get_logger",
    "get_standard_logger",
    "set_log_level",
    "configure_logging",
    "ReverseApiLogger",
    "JSONFormatter",
]
