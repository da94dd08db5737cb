"""
Pydantic schemas for the notification engine.
"""

from backend.src.schemas.push import (
    PushPayload,
    EffectivePushPreferences,
)

__all__ = [
    "PushPayload",
    "EffectivePushPreferences",
]
