"""
PushNotificationLog model: the append-only delivery audit trail.

One row is written per attempted device delivery, whatever the outcome.
Rows are never updated or deleted by the notification engine.
"""

import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, JSON
from sqlalchemy.dialects.postgresql import JSONB

from backend.src.models import Base
from backend.src.models.mixins import GuidMixin


class NotificationType(enum.Enum):
    """Push notification types, one per dispatch entry point."""
    NEW_FEEDBACK = "new_feedback"
    NEW_COMMENT = "new_comment"
    NEW_VOTE = "new_vote"
    STATUS_CHANGE = "status_change"


class DeliveryStatus(enum.Enum):
    """
    Outcome of a single device delivery.

    - SENT: accepted by APNs
    - FAILED: transient gateway error, device left active
    - TOKEN_EXPIRED: permanent token error, device deactivated
    """
    SENT = "sent"
    FAILED = "failed"
    TOKEN_EXPIRED = "token_expired"


class PushNotificationLog(Base, GuidMixin):
    """
    Record of one push delivery attempt.

    Attributes:
        user_id: Recipient user
        device_token_id: Target device (nullable, kept if device row goes away)
        notification_type: NotificationType of the dispatch run
        status: DeliveryStatus outcome
        feedback_id: Related feedback, when the event had one
        project_id: Related project, when the event had one
        payload: Custom payload sent alongside the alert
        error_message: Gateway error text for failed attempts
        apns_id: APNs message id for accepted deliveries
    """

    __tablename__ = "push_notification_logs"

    GUID_PREFIX = "pnl"

    id = Column(Integer, primary_key=True, autoincrement=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    device_token_id = Column(
        Integer,
        ForeignKey("device_tokens.id", ondelete="SET NULL"),
        nullable=True,
    )

    notification_type = Column(
        Enum(NotificationType, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    status = Column(
        Enum(DeliveryStatus, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        index=True,
    )

    feedback_id = Column(
        Integer,
        ForeignKey("feedbacks.id", ondelete="SET NULL"),
        nullable=True,
    )
    project_id = Column(
        Integer,
        ForeignKey("projects.id", ondelete="SET NULL"),
        nullable=True,
    )

    payload = Column(JSONB().with_variant(JSON(), "sqlite"), nullable=True)
    error_message = Column(String(1000), nullable=True)
    apns_id = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self) -> str:
        return (
            f"<PushNotificationLog(id={self.id}, user_id={self.user_id}, "
            f"type={self.notification_type}, status={self.status})>"
        )
