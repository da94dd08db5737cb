"""
Unit tests for DeliveryLogService.

Tests append-only log writes, failure isolation and the read-side helpers.
"""

from unittest.mock import patch

import pytest

from backend.src.models import DeliveryStatus, NotificationType, PushNotificationLog
from backend.src.services.delivery_log_service import DeliveryLogService


@pytest.fixture
def log_service(test_db_session):
    """Create a DeliveryLogService instance."""
    return DeliveryLogService(test_db_session)


@pytest.fixture
def user(user_factory):
    return user_factory()


@pytest.fixture
def device(device_factory, user):
    return device_factory(user)


class TestRecord:
    """Tests for DeliveryLogService.record."""

    def test_persists_entry(self, log_service, test_db_session, user, device):
        """A row is written with every provided field."""
        entry = log_service.record(
            user_id=user.id,
            device_token_id=device.id,
            notification_type=NotificationType.NEW_FEEDBACK,
            status=DeliveryStatus.SENT,
            payload={'type': 'new_feedback'},
            apns_id='apns-id-0001',
        )

        assert entry is not None
        assert entry.guid.startswith('pnl_')
        stored = test_db_session.query(PushNotificationLog).one()
        assert stored.status is DeliveryStatus.SENT
        assert stored.notification_type is NotificationType.NEW_FEEDBACK
        assert stored.payload == {'type': 'new_feedback'}
        assert stored.apns_id == 'apns-id-0001'
        assert stored.error_message is None

    def test_truncates_long_error_messages(self, log_service, user, device):
        """Error text is cut to the column size."""
        entry = log_service.record(
            user_id=user.id,
            device_token_id=device.id,
            notification_type=NotificationType.NEW_VOTE,
            status=DeliveryStatus.FAILED,
            error_message='x' * 5000,
        )

        assert len(entry.error_message) == 1000

    def test_write_failure_is_swallowed(self, log_service, test_db_session, user, device):
        """A failing commit is rolled back and reported, never raised."""
        with patch.object(test_db_session, 'commit', side_effect=RuntimeError('db down')), \
                patch('backend.src.services.delivery_log_service.logger') as mock_logger:
            entry = log_service.record(
                user_id=user.id,
                device_token_id=device.id,
                notification_type=NotificationType.NEW_COMMENT,
                status=DeliveryStatus.SENT,
            )

        assert entry is None
        mock_logger.error.assert_called_once()
        assert test_db_session.query(PushNotificationLog).count() == 0


class TestReadHelpers:
    """Tests for list_for_user and count_by_status."""

    def _record(self, log_service, user, device, status):
        return log_service.record(
            user_id=user.id,
            device_token_id=device.id,
            notification_type=NotificationType.STATUS_CHANGE,
            status=status,
        )

    def test_list_for_user_newest_first(self, log_service, user, device, user_factory):
        """Rows come back newest first and only for the given user."""
        first = self._record(log_service, user, device, DeliveryStatus.SENT)
        second = self._record(log_service, user, device, DeliveryStatus.FAILED)
        other = user_factory()
        log_service.record(
            user_id=other.id,
            device_token_id=None,
            notification_type=NotificationType.NEW_VOTE,
            status=DeliveryStatus.SENT,
        )

        entries = log_service.list_for_user(user.id)

        assert [e.id for e in entries] == [second.id, first.id]
        assert len(log_service.list_for_user(user.id, limit=1)) == 1

    def test_count_by_status(self, log_service, user, device, user_factory):
        """Counts include every status, zero when absent."""
        self._record(log_service, user, device, DeliveryStatus.SENT)
        self._record(log_service, user, device, DeliveryStatus.SENT)
        self._record(log_service, user, device, DeliveryStatus.TOKEN_EXPIRED)
        other = user_factory()
        log_service.record(
            user_id=other.id,
            device_token_id=None,
            notification_type=NotificationType.NEW_VOTE,
            status=DeliveryStatus.FAILED,
        )

        assert log_service.count_by_status(user.id) == {
            'sent': 2,
            'failed': 0,
            'token_expired': 1,
        }
        assert log_service.count_by_status()['failed'] == 1
