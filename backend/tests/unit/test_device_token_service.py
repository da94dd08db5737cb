"""
Unit tests for DeviceTokenService.

Tests active device lookup, last-used tracking and deactivation.
"""

import pytest

from backend.src.services.device_token_service import DeviceTokenService


@pytest.fixture
def device_service(test_db_session):
    """Create a DeviceTokenService instance."""
    return DeviceTokenService(test_db_session)


@pytest.fixture
def user(user_factory):
    return user_factory()


class TestActiveDevices:
    """Tests for DeviceTokenService.active_devices_for."""

    def test_returns_only_active_devices(self, device_service, user, device_factory):
        """Inactive devices are never returned."""
        active = device_factory(user)
        device_factory(user, is_active=False)

        devices = device_service.active_devices_for(user.id)

        assert [d.id for d in devices] == [active.id]

    def test_returns_only_the_users_devices(
        self, device_service, user, user_factory, device_factory
    ):
        """Devices of other users are not returned."""
        other = user_factory()
        device_factory(other)

        assert device_service.active_devices_for(user.id) == []

    def test_returns_every_active_device(self, device_service, user, device_factory):
        """A user with several devices gets all of them, oldest first."""
        phone = device_factory(user)
        tablet = device_factory(user, platform='iPadOS')

        devices = device_service.active_devices_for(user.id)

        assert [d.id for d in devices] == [phone.id, tablet.id]


class TestDeviceUpdates:
    """Tests for mark_used and deactivate."""

    def test_mark_used_sets_timestamp(self, device_service, user, device_factory):
        """A successful delivery records last_used_at."""
        device = device_factory(user)
        assert device.last_used_at is None

        device_service.mark_used(device)

        assert device.last_used_at is not None

    def test_deactivate_marks_inactive(self, device_service, user, device_factory):
        """Deactivation sets is_active to False and reports the change."""
        device = device_factory(user)

        assert device_service.deactivate(device) is True
        assert device.is_active is False
        assert device_service.active_devices_for(user.id) == []

    def test_deactivate_is_idempotent(self, device_service, user, device_factory):
        """Deactivating an inactive device is a no-op."""
        device = device_factory(user, is_active=False)

        assert device_service.deactivate(device) is False
        assert device.is_active is False
