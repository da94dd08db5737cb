"""
Service layer of the push notification engine.

This module exports the service classes used by the dispatch entry points.
"""

from backend.src.services.exceptions import (
    ServiceError,
    NotFoundError,
    PushConfigurationError,
)
from backend.src.services.notification_preferences import NotificationPreferenceReader
from backend.src.services.recipient_resolver import RecipientResolver, RecipientSet
from backend.src.services.device_token_service import DeviceTokenService
from backend.src.services.delivery_log_service import DeliveryLogService
from backend.src.services.push_gateway import (
    ApnsGateway,
    PushDeliveryError,
    PushGateway,
    build_push_gateway,
)
from backend.src.services.failure_classifier import FailureKind, classify_failure
from backend.src.services.push_notification_service import (
    DispatchSummary,
    PushNotificationService,
)
from backend.src.services.notification_dispatcher import (
    NotificationDispatcher,
    get_notification_dispatcher,
)

__all__ = [
    "ServiceError",
    "NotFoundError",
    "PushConfigurationError",
    "NotificationPreferenceReader",
    "RecipientResolver",
    "RecipientSet",
    "DeviceTokenService",
    "DeliveryLogService",
    "FailureKind",
    "classify_failure",
    "ApnsGateway",
    "PushDeliveryError",
    "PushGateway",
    "build_push_gateway",
    "DispatchSummary",
    "PushNotificationService",
    "NotificationDispatcher",
    "get_notification_dispatcher",
]
