"""
Device token service for the notification engine.

Loads the active devices of a recipient and applies the two state changes
a delivery outcome can cause:
- successful delivery refreshes ``last_used_at``
- permanent gateway rejection sets ``is_active = False``

Registration, reactivation and deletion of device rows belong to the
device registration flow and are not handled here.
"""

from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from backend.src.models.device_token import DeviceToken
from backend.src.utils.logging_config import get_logger


logger = get_logger("push")


class DeviceTokenService:
    """Active device lookup and delivery-driven state updates."""

    def __init__(self, db: Session):
        self.db = db

    def active_devices_for(self, user_id: int) -> List[DeviceToken]:
        """
        List the active devices of a user.

        Args:
            user_id: Recipient user's internal ID

        Returns:
            Active DeviceToken rows, oldest registration first
        """
        return (
            self.db.query(DeviceToken)
            .filter(
                DeviceToken.user_id == user_id,
                DeviceToken.is_active.is_(True),
            )
            .order_by(DeviceToken.id)
            .all()
        )

    def mark_used(self, device: DeviceToken) -> None:
        """
        Update the last_used_at timestamp after a successful delivery.

        Args:
            device: The device that was delivered to
        """
        device.last_used_at = datetime.utcnow()
        self.db.commit()

    def deactivate(self, device: DeviceToken) -> bool:
        """
        Deactivate a device the gateway rejected permanently.

        Args:
            device: The rejected device

        Returns:
            True if the device was active before the call
        """
        if not device.is_active:
            return False

        device.is_active = False
        self.db.commit()

        logger.info(
            "Deactivated device token rejected by APNs",
            extra={
                "device_guid": device.guid,
                "user_id": device.user_id,
                "token_prefix": device.token_prefix,
            },
        )
        return True
