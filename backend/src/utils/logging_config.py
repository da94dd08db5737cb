"""
Structured logging configuration for the FeedbackKit notification engine.

Provides JSON-formatted logging with file rotation for production
environments and human-readable console logging for development.

Loggers:
- services: Recipient resolution, preference checks, dispatch orchestration
- push: Gateway traffic (APNs requests, failures, token invalidation)
- db: Database operations
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional


LOGGER_NAMESPACE = "feedbackkit"
LOGGER_NAMES = ("services", "push", "db")

# Attributes present on every LogRecord; anything else came from extra={...}
_STANDARD_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}


def _extra_fields(record: logging.LogRecord) -> Dict[str, object]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    Formatter emitting one JSON object per record.

    Each record includes timestamp, level, logger, message, module,
    function and line, plus exception text and any ``extra`` fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data.update(_extra_fields(record))

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Human-readable formatter for console output in development.

    Format: [TIMESTAMP] LEVEL - LOGGER - MESSAGE key=value ...
    Example: [2026-01-12 10:30:45] INFO - feedbackkit.push - Push delivered user_id=4
    """

    def __init__(self):
        super().__init__(
            fmt="[%(asctime)s] %(levelname)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _extra_fields(record)
        if extras:
            line += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        return line


def _get_log_level() -> int:
    """
    Get log level from FEEDBACKKIT_LOG_LEVEL (DEBUG, INFO, ...). Defaults to INFO.
    """
    level_str = os.environ.get("FEEDBACKKIT_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_str, logging.INFO)


def _get_log_dir() -> Path:
    """
    Get log directory from FEEDBACKKIT_LOG_DIR (default ./logs), creating it.
    """
    log_dir = Path(os.environ.get("FEEDBACKKIT_LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _is_production() -> bool:
    """Check FEEDBACKKIT_ENV (production, development, test)."""
    env = os.environ.get("FEEDBACKKIT_ENV", "development").lower()
    return env == "production"


def configure_logging() -> Dict[str, logging.Logger]:
    """
    Configure the engine's named loggers.

    Behavior:
    - Production (FEEDBACKKIT_ENV=production):
      * JSON logs to rotating files, one per logger (services.log, push.log, db.log)
      * 10MB max size, 5 backups
    - Development (default):
      * Human-readable console output, no files

    Returns:
        Dictionary mapping short logger names to Logger instances
    """
    log_level = _get_log_level()
    is_prod = _is_production()
    log_dir = _get_log_dir() if is_prod else None

    loggers = {}

    for logger_name in LOGGER_NAMES:
        logger = logging.getLogger(f"{LOGGER_NAMESPACE}.{logger_name}")
        logger.setLevel(log_level)
        logger.propagate = False

        logger.handlers.clear()

        if is_prod:
            file_handler = logging.handlers.RotatingFileHandler(
                log_dir / f"{logger_name}.log",
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                encoding="utf-8"
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(JSONFormatter())
            logger.addHandler(file_handler)
        else:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(log_level)
            console_handler.setFormatter(ConsoleFormatter())
            logger.addHandler(console_handler)

        loggers[logger_name] = logger

    return loggers


_loggers: Optional[Dict[str, logging.Logger]] = None


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger by short name.

    Args:
        name: Logger name (services, push, db)

    Raises:
        ValueError: If logger name is not recognized

    Example:
        >>> logger = get_logger("push")
        >>> logger.info("Push delivered", extra={"user_id": 4})
    """
    global _loggers

    if _loggers is None:
        _loggers = configure_logging()

    if name not in _loggers:
        raise ValueError(
            f"Unknown logger name: {name}. "
            f"Valid names: {', '.join(_loggers.keys())}"
        )

    return _loggers[name]


def init_logging() -> Dict[str, logging.Logger]:
    """(Re)initialize logging, e.g. on application startup."""
    global _loggers
    _loggers = configure_logging()
    return _loggers
