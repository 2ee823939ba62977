"""
Centralized logging configuration for the assessment catalog.

Provides structured logging with context tracking (operation, assessment id,
scope) so that a catalog failure can be traced back to the store calls that
produced it.
"""

from __future__ import annotations

import json
import logging
import logging.config
import os
import time
from collections.abc import Callable
from datetime import UTC, datetime
from functools import wraps
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar, cast

if TYPE_CHECKING:
    from .config import LoggingConfig

P = ParamSpec("P")
R = TypeVar("R")

ROOT_LOGGER = "assessment_catalog"
CONTEXT_FIELDS = (
    "operation",
    "store_operation",
    "assessment_id",
    "scope",
    "user_id",
    "request_id",
)


class StructuredFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_entry[field] = getattr(record, field)

        if record.exc_info:
            exc_type, exc_value, exc_tb = record.exc_info
            if exc_type is not None and exc_value is not None:
                log_entry["exception"] = {
                    "type": exc_type.__name__,
                    "message": str(exc_value),
                    "traceback": self.formatException((exc_type, exc_value, exc_tb)),
                }

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ContextFilter(logging.Filter):
    """Filter that adds catalog context to log records."""

    def __init__(self):
        super().__init__()
        self.context: dict[str, Any] = {}

    def set_context(self, **kwargs: Any) -> None:
        self.context.update(kwargs)

    def clear_context(self) -> None:
        self.context.clear()

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.context.items():
            setattr(record, key, value)
        return True


# Global context filter instance
context_filter = ContextFilter()


def setup_logging(
    level: str = "INFO",
    log_file: str | None = None,
    structured: bool = True,
    enable_console: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """
    Set up centralized logging configuration.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for log output
        structured: Whether to use structured JSON formatting
        enable_console: Whether to enable console output
        max_bytes: Rotation threshold for the file handler
        backup_count: Rotated files to keep

    Example:
        >>> setup_logging(level="DEBUG", log_file="./logs/catalog.log")
    """
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": StructuredFormatter,
            },
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "filters": {"context": {"()": lambda: context_filter}},
        "handlers": {},
        "loggers": {
            ROOT_LOGGER: {"level": level, "handlers": [], "propagate": False},
            "sqlalchemy.engine": {
                "level": "WARNING",  # Reduce SQLAlchemy noise
                "handlers": [],
                "propagate": False,
            },
            "alembic": {"level": "INFO", "handlers": [], "propagate": False},
        },
        "root": {"level": level, "handlers": []},
    }

    handler_configs = cast(dict[str, dict[str, Any]], config["handlers"])
    logger_configs = cast(dict[str, dict[str, Any]], config["loggers"])
    root_config = cast(dict[str, Any], config["root"])
    handler_names: list[str] = []

    if enable_console:
        handler_configs["console"] = {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": "structured" if structured else "standard",
            "filters": ["context"],
            "stream": "ext://sys.stdout",
        }
        handler_names.append("console")

    if log_file:
        handler_configs["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "structured",
            "filters": ["context"],
            "filename": log_file,
            "maxBytes": max_bytes,
            "backupCount": backup_count,
            "encoding": "utf-8",
        }
        handler_names.append("file")

    for logger_config in logger_configs.values():
        logger_config["handlers"] = list(handler_names)
    root_config["handlers"] = list(handler_names)

    logging.config.dictConfig(config)


def configure_from_settings(config: LoggingConfig) -> None:
    """Apply a LoggingConfig section (level, rotation, destinations)."""
    file_handler = config.get_file_handler_config()
    setup_logging(
        level=config.level,
        log_file=file_handler["filename"] if file_handler else None,
        structured=config.structured,
        enable_console=config.console_enabled,
        max_bytes=config.max_bytes,
        backup_count=config.backup_count,
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the catalog namespace.

    Example:
        >>> logger = get_logger("repositories")
        >>> logger.name
        'assessment_catalog.repositories'
    """
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def set_context(**kwargs: Any) -> None:
    """
    Set logging context variables.

    Example:
        >>> set_context(assessment_id="ASSESS_IT_001", scope="example.edu")
    """
    context_filter.set_context(**kwargs)


def clear_context() -> None:
    """Clear all logging context variables."""
    context_filter.clear_context()


class LogContext:
    """Context manager for temporary logging context."""

    def __init__(self, **kwargs: Any):
        self.context: dict[str, Any] = kwargs
        self.previous_context: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self.previous_context = context_filter.context.copy()
        context_filter.set_context(**self.context)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        context_filter.context = self.previous_context


def log_operation(
    operation: str, logger: logging.Logger | None = None
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator for logging catalog operations.

    Example:
        >>> @log_operation("create_assessment")
        ... def create_assessment(service, data, created_by):
        ...     pass
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            func_logger = logger or get_logger(func.__module__)

            with LogContext(operation=operation):
                func_logger.info(f"Starting {operation}")
                try:
                    result = func(*args, **kwargs)
                    func_logger.info(f"Completed {operation} successfully")
                    return result
                except Exception as e:
                    func_logger.error(f"Failed {operation}: {str(e)}", exc_info=True)
                    raise

        return wrapper

    return decorator


def log_store_operation(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator for logging individual key-value store calls with timing.

    Example:
        >>> @log_store_operation("put_item")
        ... def put_item(self, item):
        ...     pass
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            logger = get_logger("store")

            with LogContext(store_operation=operation):
                logger.debug(f"Starting store operation: {operation}")
                start = time.perf_counter()

                try:
                    result = func(*args, **kwargs)
                    duration = time.perf_counter() - start
                    logger.debug(f"Store operation {operation} completed in {duration:.3f}s")
                    return result
                except Exception as e:
                    duration = time.perf_counter() - start
                    logger.warning(
                        f"Store operation {operation} failed after {duration:.3f}s: {str(e)}"
                    )
                    raise

        return wrapper

    return decorator


def configure_development_logging():
    setup_logging(
        level="DEBUG", log_file="./logs/development.log", structured=False, enable_console=True
    )


def configure_production_logging():
    setup_logging(
        level="INFO", log_file="./logs/production.log", structured=True, enable_console=False
    )


def configure_test_logging():
    setup_logging(level="WARNING", log_file=None, structured=False, enable_console=False)


def auto_configure_logging():
    """Automatically configure logging based on the ENVIRONMENT variable."""
    env = os.getenv("ENVIRONMENT", "development").lower()

    if env == "production":
        configure_production_logging()
    elif env == "test":
        configure_test_logging()
    else:
        configure_development_logging()

    get_logger(__name__).info(f"Logging configured for {env} environment")


# Initialize logging when module is imported
if not logging.getLogger().handlers:
    auto_configure_logging()
