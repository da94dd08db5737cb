"""
Application settings for the FeedbackKit push notification engine.

Centralized settings loaded from environment variables (and ``.env``).
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class AppSettings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment Variables:
        APNS_KEY_ID: Identifier of the APNs auth key (.p8)
        APNS_TEAM_ID: Apple developer team identifier
        APNS_BUNDLE_ID: App bundle identifier, used as the APNs topic
        APNS_KEY_PATH: Filesystem path to the .p8 signing key
        APNS_KEY_P8_BASE64: Base64-encoded .p8 content (alternative to APNS_KEY_PATH)
        APNS_PRODUCTION: "true" to use the production gateway (default: sandbox)
        PUSH_MAX_CONCURRENT_SENDS: Max in-flight gateway requests per dispatch run (default: 10)
        PUSH_REQUEST_TIMEOUT: Gateway request timeout in seconds (default: 10)

    Push is optional: when any of the APNs identity values or the key is
    missing, the engine runs with push disabled.
    """

    # APNs identity
    apns_key_id: str = Field(
        default="",
        validation_alias="APNS_KEY_ID",
        description="Key identifier of the APNs token-based auth key"
    )

    apns_team_id: str = Field(
        default="",
        validation_alias="APNS_TEAM_ID",
        description="Apple developer team identifier (JWT issuer)"
    )

    apns_bundle_id: str = Field(
        default="",
        validation_alias="APNS_BUNDLE_ID",
        description="App bundle identifier sent as apns-topic"
    )

    # APNs signing key material (one of the two)
    apns_key_path: str = Field(
        default="",
        validation_alias="APNS_KEY_PATH",
        description="Path to the .p8 signing key file"
    )

    apns_key_p8_base64: str = Field(
        default="",
        validation_alias="APNS_KEY_P8_BASE64",
        description="Base64-encoded .p8 signing key, for environments without a key file"
    )

    apns_production: bool = Field(
        default=False,
        validation_alias="APNS_PRODUCTION",
        description="Use api.push.apple.com instead of the sandbox gateway"
    )

    # Delivery tuning
    push_max_concurrent_sends: int = Field(
        default=10,
        validation_alias="PUSH_MAX_CONCURRENT_SENDS",
        ge=1,
        le=100,
    )

    push_request_timeout: float = Field(
        default=10.0,
        validation_alias="PUSH_REQUEST_TIMEOUT",
        gt=0,
        le=60,
    )

    class Config:
        env_file = ".env"
        extra = "ignore"

    @field_validator(
        "apns_key_id", "apns_team_id", "apns_bundle_id",
        "apns_key_path", "apns_key_p8_base64",
    )
    @classmethod
    def strip_apns_value(cls, v: str) -> str:
        """Strip whitespace pasted along with copied credentials."""
        return (v or "").strip()

    @property
    def apns_key_configured(self) -> bool:
        """Check if some form of signing key material was provided."""
        return bool(self.apns_key_path or self.apns_key_p8_base64)

    @property
    def apns_configured(self) -> bool:
        """Check if APNs identity and key are all present."""
        return bool(
            self.apns_key_id
            and self.apns_team_id
            and self.apns_bundle_id
            and self.apns_key_configured
        )

    @property
    def apns_partially_configured(self) -> bool:
        """Check if some, but not all, APNs values are present."""
        values = [
            self.apns_key_id,
            self.apns_team_id,
            self.apns_bundle_id,
            self.apns_key_configured,
        ]
        return any(values) and not all(values)


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get cached application settings instance.

    Returns:
        AppSettings: Configured application settings from environment
    """
    return AppSettings()
