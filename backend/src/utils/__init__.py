"""
Utility modules for the notification engine.

- logging_config: Named structured loggers (services, push, db)
"""

from backend.src.utils.logging_config import get_logger, init_logging

__all__ = [
    "get_logger",
    "init_logging",
]
