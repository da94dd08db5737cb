"""
Configuration module for the FeedbackKit notification engine.

Provides centralized configuration for:
- APNs gateway credentials and environment
- Push delivery tuning (concurrency, timeouts)
"""

from backend.src.config.settings import AppSettings, get_settings

__all__ = [
    "AppSettings",
    "get_settings",
]
