"""
Custom exceptions for the service layer.

Notification entry points never let these escape to their callers; they
exist so that lower layers can signal distinct failure kinds.
"""

from typing import Optional


class ServiceError(Exception):
    """Base exception for service layer errors."""
    pass


class NotFoundError(ServiceError):
    """Raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: any):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} {identifier} not found")


class PushConfigurationError(ServiceError):
    """
    Raised when APNs is configured but the configuration is unusable
    (unreadable or undecodable signing key).

    Missing configuration is not an error: push is simply disabled.
    """

    def __init__(self, message: str, setting: Optional[str] = None):
        self.message = message
        self.setting = setting
        super().__init__(message)
