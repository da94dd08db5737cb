"""
Delivery log service: the push notification audit trail.

Every attempted device delivery produces exactly one PushNotificationLog
row. Writing the log must never break a dispatch run, so ``record``
swallows database errors after rolling back and reporting them.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.src.models.push_notification_log import (
    DeliveryStatus,
    NotificationType,
    PushNotificationLog,
)
from backend.src.utils.logging_config import get_logger


logger = get_logger("db")

# Column limit of PushNotificationLog.error_message
MAX_ERROR_MESSAGE_LENGTH = 1000


class DeliveryLogService:
    """Append-only writes and read-side queries over the delivery log."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        user_id: int,
        device_token_id: Optional[int],
        notification_type: NotificationType,
        status: DeliveryStatus,
        error_message: Optional[str] = None,
        feedback_id: Optional[int] = None,
        project_id: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
        apns_id: Optional[str] = None,
    ) -> Optional[PushNotificationLog]:
        """
        Append one delivery log row and commit it.

        Args:
            user_id: Recipient user
            device_token_id: Target device
            notification_type: Type of the dispatch run
            status: Delivery outcome
            error_message: Gateway error text, for failed outcomes
            feedback_id: Related feedback, if any
            project_id: Related project, if any
            payload: Custom payload that was sent
            apns_id: Gateway message id, for sent outcomes

        Returns:
            The persisted row, or None if the write failed
        """
        if error_message and len(error_message) > MAX_ERROR_MESSAGE_LENGTH:
            error_message = error_message[:MAX_ERROR_MESSAGE_LENGTH]

        entry = PushNotificationLog(
            user_id=user_id,
            device_token_id=device_token_id,
            notification_type=notification_type,
            status=status,
            error_message=error_message,
            feedback_id=feedback_id,
            project_id=project_id,
            payload=payload,
            apns_id=apns_id,
        )

        try:
            self.db.add(entry)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Failed to write push delivery log: {e}",
                extra={
                    "user_id": user_id,
                    "device_token_id": device_token_id,
                    "notification_type": notification_type.value,
                    "status": status.value,
                },
                exc_info=True,
            )
            return None

        return entry

    def list_for_user(self, user_id: int, limit: int = 50) -> List[PushNotificationLog]:
        """
        List a user's most recent delivery log rows.

        Args:
            user_id: Recipient user
            limit: Maximum number of rows

        Returns:
            Rows ordered newest first
        """
        return (
            self.db.query(PushNotificationLog)
            .filter(PushNotificationLog.user_id == user_id)
            .order_by(
                PushNotificationLog.created_at.desc(),
                PushNotificationLog.id.desc(),
            )
            .limit(limit)
            .all()
        )

    def count_by_status(self, user_id: Optional[int] = None) -> Dict[str, int]:
        """
        Count delivery log rows per status.

        Args:
            user_id: Restrict to one recipient (all recipients if None)

        Returns:
            Dict with a count for every DeliveryStatus value
        """
        query = self.db.query(
            PushNotificationLog.status, func.count(PushNotificationLog.id)
        )
        if user_id is not None:
            query = query.filter(PushNotificationLog.user_id == user_id)

        counts = {status.value: 0 for status in DeliveryStatus}
        for status, count in query.group_by(PushNotificationLog.status).all():
            counts[status.value] = count
        return counts
