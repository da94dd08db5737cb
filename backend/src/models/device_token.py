"""
DeviceToken model for APNs device registrations.

Each row binds an opaque APNs device token to the user currently signed
in on that device. A user may have any number of devices; every active
one receives its own copy of a push notification.

Lifecycle:
    Created or reactivated by the device registration flow (main backend).
    Deactivated (is_active = False) by the notification engine when APNs
    reports the token as permanently invalid. The engine never reactivates
    a token and never deletes rows.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from backend.src.models import Base
from backend.src.models.mixins import GuidMixin


class DeviceToken(Base, GuidMixin):
    """
    Registered push device.

    Attributes:
        token: APNs device token (hex string, unique)
        platform: iOS, macOS or visionOS
        app_version: Client app version at registration time
        os_version: OS version at registration time
        is_active: False once APNs rejected the token permanently
        last_used_at: Timestamp of the last successful push delivery
    """

    __tablename__ = "device_tokens"

    GUID_PREFIX = "dev"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    token = Column(String(255), nullable=False, unique=True)
    platform = Column(String(20), nullable=False, default="iOS")
    app_version = Column(String(50), nullable=True)
    os_version = Column(String(50), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    last_used_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="device_tokens")

    __table_args__ = (
        Index("ix_device_tokens_user_active", "user_id", "is_active"),
    )

    @property
    def token_prefix(self) -> str:
        """Leading characters of the token, safe to put in logs."""
        return self.token[:12] if self.token else "?"

    def __repr__(self) -> str:
        return (
            f"<DeviceToken(id={self.id}, user_id={self.user_id}, "
            f"platform='{self.platform}', is_active={self.is_active})>"
        )
