"""
Push gateway client for Apple Push Notification service (APNs).

Sends one alert per device token over HTTP/2 using token-based (.p8)
authentication. The ES256 provider token is signed with python-jose and reused
until shortly before APNs would reject it (tokens older than one hour are
refused).

Configuration (see AppSettings):
    APNS_KEY_ID, APNS_TEAM_ID, APNS_BUNDLE_ID identify the sender.
    APNS_KEY_PATH or APNS_KEY_P8_BASE64 provide the signing key.
    APNS_PRODUCTION selects api.push.apple.com over the sandbox.

When configuration is missing, ``build_push_gateway`` returns None and
push is disabled.
"""

import base64
import binascii
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from jose import jwt

from backend.src.config.settings import AppSettings, get_settings
from backend.src.services.exceptions import PushConfigurationError
from backend.src.utils.logging_config import get_logger


logger = get_logger("push")


APNS_SANDBOX_URL = "https://api.sandbox.push.apple.com"
APNS_PRODUCTION_URL = "https://api.push.apple.com"

# APNs refuses provider tokens older than 60 minutes
PROVIDER_TOKEN_TTL_SECONDS = 55 * 60


# ============================================================================
# Exceptions
# ============================================================================


class PushDeliveryError(Exception):
    """
    Raised when the gateway does not accept a notification.

    Attributes:
        reason: APNs reason code (e.g. "BadDeviceToken") or client error text
        status_code: HTTP status of the gateway response, None for network errors
    """

    def __init__(self, reason: str, status_code: Optional[int] = None):
        self.reason = reason
        self.status_code = status_code
        super().__init__(reason)


# ============================================================================
# Gateway interface
# ============================================================================


class PushGateway(ABC):
    """Abstract push transport used by the dispatch engine."""

    @abstractmethod
    async def send(
        self,
        device_token: str,
        title: str,
        body: str,
        payload: Dict[str, Any],
    ) -> Optional[str]:
        """
        Deliver one alert to one device.

        Args:
            device_token: Opaque device token
            title: Alert title
            body: Alert body
            payload: Custom data merged into the notification body

        Returns:
            Gateway message id, if the gateway returned one

        Raises:
            PushDeliveryError: If the gateway rejected or never received it
        """

    async def aclose(self) -> None:
        """Release transport resources."""
        return None


# ============================================================================
# APNs implementation
# ============================================================================


class ApnsGateway(PushGateway):
    """
    APNs HTTP/2 client.

    One ``httpx.AsyncClient`` is shared by every send so requests are
    multiplexed over a single connection.
    """

    def __init__(
        self,
        key_id: str,
        team_id: str,
        bundle_id: str,
        signing_key: ec.EllipticCurvePrivateKey,
        production: bool = False,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.key_id = key_id
        self.team_id = team_id
        self.bundle_id = bundle_id
        self.production = production
        self.base_url = APNS_PRODUCTION_URL if production else APNS_SANDBOX_URL
        self._signing_key = signing_key
        self._provider_token: Optional[str] = None
        self._provider_token_expires_at = 0.0
        self._client = client or httpx.AsyncClient(http2=True, timeout=timeout)

    def provider_token(self) -> str:
        """Return the cached ES256 provider token, signing a new one when stale."""
        now = time.time()
        if self._provider_token and now < self._provider_token_expires_at:
            return self._provider_token

        token = jwt.encode(
            {"iss": self.team_id, "iat": int(now)},
            self._signing_key,
            algorithm="ES256",
            headers={"kid": self.key_id},
        )
        self._provider_token = token
        self._provider_token_expires_at = now + PROVIDER_TOKEN_TTL_SECONDS
        return token

    def build_headers(self) -> Dict[str, str]:
        return {
            "authorization": f"bearer {self.provider_token()}",
            "apns-topic": self.bundle_id,
            "apns-push-type": "alert",
            "apns-priority": "10",
            "apns-expiration": "0",
        }

    @staticmethod
    def build_body(title: str, body: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "aps": {
                "alert": {"title": title, "body": body},
                "sound": "default",
            },
            **payload,
        }

    async def send(
        self,
        device_token: str,
        title: str,
        body: str,
        payload: Dict[str, Any],
    ) -> Optional[str]:
        url = f"{self.base_url}/3/device/{device_token}"

        try:
            response = await self._client.post(
                url,
                json=self.build_body(title, body, payload),
                headers=self.build_headers(),
            )
        except httpx.HTTPError as e:
            raise PushDeliveryError(f"APNs request failed: {e}") from e

        if response.status_code == 200:
            return response.headers.get("apns-id")

        reason = _response_reason(response)
        if response.status_code == 403 and "providertoken" in reason.lower():
            # Force a fresh signature on the next send
            self._provider_token = None

        logger.debug(
            "APNs rejected notification",
            extra={
                "status_code": response.status_code,
                "reason": reason,
                "token_prefix": device_token[:12],
            },
        )
        raise PushDeliveryError(reason, status_code=response.status_code)

    async def aclose(self) -> None:
        await self._client.aclose()


def _response_reason(response: httpx.Response) -> str:
    """Extract the APNs ``reason`` field, falling back to the status line."""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("reason"):
        return str(data["reason"])
    return f"HTTP {response.status_code}"


# ============================================================================
# Factory
# ============================================================================


def _load_signing_key(settings: AppSettings) -> ec.EllipticCurvePrivateKey:
    """
    Load the .p8 signing key from base64 content or from the key file.

    Raises:
        PushConfigurationError: If the key cannot be read or parsed
    """
    if settings.apns_key_p8_base64:
        setting = "APNS_KEY_P8_BASE64"
        try:
            pem = base64.b64decode(settings.apns_key_p8_base64)
        except (binascii.Error, ValueError) as e:
            raise PushConfigurationError(
                f"APNs signing key is not valid base64: {e}", setting=setting
            ) from e
    else:
        setting = "APNS_KEY_PATH"
        try:
            pem = Path(settings.apns_key_path).expanduser().read_bytes()
        except OSError as e:
            raise PushConfigurationError(
                f"APNs signing key could not be read: {e}", setting=setting
            ) from e

    try:
        key = serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError) as e:
        raise PushConfigurationError(
            f"APNs signing key could not be parsed: {e}", setting=setting
        ) from e

    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise PushConfigurationError(
            "APNs signing key must be an EC (P-256) private key", setting=setting
        )
    return key


def build_push_gateway(settings: Optional[AppSettings] = None) -> Optional[PushGateway]:
    """
    Build the APNs gateway from settings.

    Args:
        settings: Application settings (defaults to get_settings())

    Returns:
        ApnsGateway, or None when APNs is not (fully) configured

    Raises:
        PushConfigurationError: If configured but the signing key is unusable
    """
    settings = settings or get_settings()

    if not settings.apns_configured:
        if settings.apns_partially_configured:
            logger.warning(
                "APNs is partially configured; push notifications are disabled",
                extra={
                    "key_id_set": bool(settings.apns_key_id),
                    "team_id_set": bool(settings.apns_team_id),
                    "bundle_id_set": bool(settings.apns_bundle_id),
                    "key_set": settings.apns_key_configured,
                },
            )
        else:
            logger.debug("APNs not configured; push notifications are disabled")
        return None

    signing_key = _load_signing_key(settings)

    logger.info(
        "APNs gateway configured",
        extra={
            "environment": "production" if settings.apns_production else "sandbox",
            "bundle_id": settings.apns_bundle_id,
        },
    )
    return ApnsGateway(
        key_id=settings.apns_key_id,
        team_id=settings.apns_team_id,
        bundle_id=settings.apns_bundle_id,
        signing_key=signing_key,
        production=settings.apns_production,
        timeout=settings.push_request_timeout,
    )
