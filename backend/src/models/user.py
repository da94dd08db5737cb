"""
User model as seen by the push notification engine.

Users are owned by the main backend (signup, login, profile editing).
The notification engine only reads the email address, used to match
feedback submitters and voters, and the push preference columns.

Push preference columns:
- push_notifications_enabled: global kill switch for all push types
- push_notify_new_feedback / push_notify_new_comments /
  push_notify_votes / push_notify_status_changes: personal per-type
  preferences, consulted when no project-level override applies
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship

from backend.src.models import Base
from backend.src.models.mixins import GuidMixin


class User(Base, GuidMixin):
    """
    Registered FeedbackKit user.

    Attributes:
        id: Primary key (internal, never exposed)
        uuid: UUIDv7 for external identification (inherited from GuidMixin)
        guid: GUID string property (usr_xxx, inherited from GuidMixin)
        email: Login email (unique)
        name: Display name
        push_notifications_enabled: Global push toggle
        push_notify_*: Personal per-type push preferences

    Relationships:
        device_tokens: Registered devices (one-to-many)
        owned_projects: Projects owned by this user (one-to-many)
    """

    __tablename__ = "users"

    GUID_PREFIX = "usr"

    id = Column(Integer, primary_key=True, autoincrement=True)

    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False, default="")

    # Push notification settings (all default to enabled)
    push_notifications_enabled = Column(Boolean, default=True, nullable=False)
    push_notify_new_feedback = Column(Boolean, default=True, nullable=False)
    push_notify_new_comments = Column(Boolean, default=True, nullable=False)
    push_notify_votes = Column(Boolean, default=True, nullable=False)
    push_notify_status_changes = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    device_tokens = relationship(
        "DeviceToken",
        back_populates="user",
        cascade="all, delete-orphan",
    )
    owned_projects = relationship("Project", back_populates="owner")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
