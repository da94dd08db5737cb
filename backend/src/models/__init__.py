"""
SQLAlchemy models for the FeedbackKit push notification engine.

This module provides the declarative base class and imports all models
to ensure they are registered with SQLAlchemy's metadata.

Only DeviceToken (is_active, last_used_at) and PushNotificationLog are
written by the notification engine; every other model is a read-only
data source owned by the main backend.
"""

from sqlalchemy.orm import declarative_base

# All models inherit from this Base class
Base = declarative_base()


# Import all models here so they are registered with Base.metadata
from backend.src.models.user import User
from backend.src.models.project import Project, ProjectMember
from backend.src.models.project_member_preference import ProjectMemberPreference
from backend.src.models.feedback import Feedback, FeedbackStatus, Comment, Vote
from backend.src.models.device_token import DeviceToken
from backend.src.models.push_notification_log import (
    PushNotificationLog,
    NotificationType,
    DeliveryStatus,
)

__all__ = [
    "Base",
    "User",
    "Project",
    "ProjectMember",
    "ProjectMemberPreference",
    "Feedback",
    "FeedbackStatus",
    "Comment",
    "Vote",
    "DeviceToken",
    "PushNotificationLog",
    "NotificationType",
    "DeliveryStatus",
]
