"""
Classification of push gateway failures.

A failure is permanent when the device token itself is unusable; the
device is then deactivated so later runs stop targeting it. Anything else
(network errors, throttling, gateway outages) is transient and leaves the
device active.

Only errors the gateway actually answered are matched: a
``PushDeliveryError`` carrying an HTTP status, or a bare reason string.
The match is a case-insensitive substring search of the APNs ``reason``
code ("BadDeviceToken"). Transport errors (no status) and any other
exception are transient, whatever their message says.

Provider token reasons ("ExpiredProviderToken", "InvalidProviderToken")
are transient too, although a plain vocabulary match would call them
permanent: they report a problem with our signing key, not the device.
"""

import enum
from typing import Union

from backend.src.models.push_notification_log import DeliveryStatus
from backend.src.services.push_gateway import PushDeliveryError


class FailureKind(enum.Enum):
    """Whether a delivery failure invalidates the device token."""
    PERMANENT = "permanent"
    TRANSIENT = "transient"


# Lowercase fragments of errors that mean the token will never work again
PERMANENT_FAILURE_SIGNATURES = (
    "baddevicetoken",
    "unregistered",
    "devicetokennotfortopic",
    "expired",
    "invalid",
)

# Provider (JWT) token errors concern our signing key, not the device:
# "ExpiredProviderToken" and "InvalidProviderToken" would otherwise match
# "expired" / "invalid" and deactivate every device on a bad key.
PROVIDER_TOKEN_SIGNATURE = "providertoken"


def classify_failure(error: Union[BaseException, str, None]) -> FailureKind:
    """
    Classify a delivery error.

    Args:
        error: Exception raised by the gateway, or an APNs reason code

    Returns:
        FailureKind.PERMANENT if the device token is unusable
    """
    if isinstance(error, PushDeliveryError):
        if error.status_code is None:
            return FailureKind.TRANSIENT
        text = error.reason
    elif isinstance(error, str):
        text = error
    else:
        return FailureKind.TRANSIENT

    text = (text or "").lower()
    if not text or PROVIDER_TOKEN_SIGNATURE in text:
        return FailureKind.TRANSIENT
    if any(signature in text for signature in PERMANENT_FAILURE_SIGNATURES):
        return FailureKind.PERMANENT
    return FailureKind.TRANSIENT


def is_permanent_failure(error: Union[BaseException, str, None]) -> bool:
    """True if the error means the device token should be deactivated."""
    return classify_failure(error) is FailureKind.PERMANENT


def delivery_status_for(kind: FailureKind) -> DeliveryStatus:
    """Log status recorded for a failed delivery of the given kind."""
    if kind is FailureKind.PERMANENT:
        return DeliveryStatus.TOKEN_EXPIRED
    return DeliveryStatus.FAILED
