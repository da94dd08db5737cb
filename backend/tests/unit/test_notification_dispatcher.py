"""
Unit tests for NotificationDispatcher.

Tests background scheduling, session handling, draining and the
degraded paths (no loop, no gateway, missing entities, crashed runs).
"""

from unittest.mock import MagicMock, patch

import pytest

from backend.src.config.settings import AppSettings
from backend.src.models import (
    DeliveryStatus,
    Feedback,
    FeedbackStatus,
    NotificationType,
    PushNotificationLog,
)
from backend.src.services.notification_dispatcher import NotificationDispatcher


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def test_settings():
    return AppSettings(_env_file=None)


@pytest.fixture
def dispatcher(test_session_factory, mock_gateway, test_settings):
    """Create a NotificationDispatcher bound to the test database."""
    return NotificationDispatcher(
        session_factory=test_session_factory,
        gateway=mock_gateway,
        settings=test_settings,
    )


@pytest.fixture
def owner(user_factory):
    return user_factory(email='owner@example.com')


@pytest.fixture
def project(project_factory, owner):
    return project_factory(owner)


def log_entries(session):
    session.expire_all()
    return session.query(PushNotificationLog).all()


# ============================================================================
# Test: scheduling
# ============================================================================


class TestDispatchScheduling:
    """Tests for the dispatch_* entry points."""

    @pytest.mark.asyncio
    async def test_returns_before_run_completes(
        self, dispatcher, mock_gateway, test_db_session, project, owner,
        feedback_factory, device_factory
    ):
        """The caller gets a pending task; the run happens in the background."""
        device = device_factory(owner)
        feedback = feedback_factory(project)

        task = dispatcher.dispatch_new_feedback(feedback, project)

        assert task is not None
        assert dispatcher.pending == 1
        mock_gateway.send.assert_not_awaited()

        await dispatcher.drain()

        assert dispatcher.pending == 0
        summary = task.result()
        assert summary.sent == 1
        assert mock_gateway.send.await_args.args[0] == device.token
        entries = log_entries(test_db_session)
        assert [e.status for e in entries] == [DeliveryStatus.SENT]

    @pytest.mark.asyncio
    async def test_comment_dispatch_excludes_author(
        self, dispatcher, mock_gateway, project, owner,
        feedback_factory, comment_factory, device_factory
    ):
        """The author id captured at dispatch time is excluded."""
        device_factory(owner)
        feedback = feedback_factory(project)
        comment = comment_factory(feedback, author=owner)

        dispatcher.dispatch_new_comment(comment, feedback, project, owner.id)
        await dispatcher.drain()

        mock_gateway.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_vote_and_status_dispatch(
        self, dispatcher, mock_gateway, test_db_session, project, user_factory,
        feedback_factory, device_factory
    ):
        """Vote and status change runs reach the registered submitter."""
        submitter = user_factory(email='fan@example.com')
        device_factory(submitter)
        feedback = feedback_factory(project, user_email='fan@example.com')

        dispatcher.dispatch_new_vote(feedback, 2)
        await dispatcher.drain()
        dispatcher.dispatch_status_change(
            feedback, FeedbackStatus.PENDING, FeedbackStatus.APPROVED, project
        )
        await dispatcher.drain()

        titles = sorted(call.args[1] for call in mock_gateway.send.await_args_list)
        assert titles == ['New Vote', 'Status Updated']
        types = sorted(e.notification_type.value for e in log_entries(test_db_session))
        assert types == [NotificationType.NEW_VOTE.value, NotificationType.STATUS_CHANGE.value]

    def test_no_running_loop_drops_dispatch(self, dispatcher, project, feedback_factory):
        """Outside an event loop the dispatch is dropped with a warning."""
        feedback = feedback_factory(project)

        with patch('backend.src.services.notification_dispatcher.logger') as mock_logger:
            task = dispatcher.dispatch_new_feedback(feedback, project)

        assert task is None
        mock_logger.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_unconfigured_push_schedules_nothing(
        self, test_session_factory, test_settings, project, feedback_factory
    ):
        """Without APNs settings no task is created."""
        dispatcher = NotificationDispatcher(
            session_factory=test_session_factory, settings=test_settings
        )

        assert dispatcher.enabled is False
        assert dispatcher.dispatch_new_feedback(feedback_factory(project), project) is None
        assert dispatcher.pending == 0


# ============================================================================
# Test: background run failures
# ============================================================================


class TestBackgroundRuns:
    """Tests for failure handling inside background runs."""

    @pytest.mark.asyncio
    async def test_missing_entity_skips_run(self, dispatcher, mock_gateway, project):
        """An entity deleted before the run starts skips the dispatch."""
        ghost = Feedback(id=9999, project_id=project.id, title='Gone')

        with patch('backend.src.services.notification_dispatcher.logger') as mock_logger:
            task = dispatcher.dispatch_new_feedback(ghost, project)
            await dispatcher.drain()

        assert task.result() is None
        mock_gateway.send.assert_not_awaited()
        mock_logger.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_crashed_run_is_logged(self, mock_gateway, test_settings, project, feedback_factory):
        """A run that raises is reported by the done callback."""
        session_factory = MagicMock(side_effect=RuntimeError('pool exhausted'))
        dispatcher = NotificationDispatcher(
            session_factory=session_factory, gateway=mock_gateway, settings=test_settings
        )
        feedback = feedback_factory(project)

        with patch('backend.src.services.notification_dispatcher.logger') as mock_logger:
            dispatcher.dispatch_new_feedback(feedback, project)
            await dispatcher.drain()

        assert dispatcher.pending == 0
        mock_logger.error.assert_called_once()

    @pytest.mark.asyncio
    async def test_session_closed_after_run(
        self, mock_gateway, test_session_factory, test_settings, project, feedback_factory
    ):
        """Each run closes the session it opened."""
        sessions = []

        def session_factory():
            session = test_session_factory()
            session.close = MagicMock(wraps=session.close)
            sessions.append(session)
            return session

        dispatcher = NotificationDispatcher(
            session_factory=session_factory, gateway=mock_gateway, settings=test_settings
        )

        dispatcher.dispatch_new_feedback(feedback_factory(project), project)
        await dispatcher.drain()

        assert len(sessions) == 1
        sessions[0].close.assert_called_once()


# ============================================================================
# Test: shutdown
# ============================================================================


class TestShutdown:
    """Tests for drain and aclose."""

    @pytest.mark.asyncio
    async def test_aclose_drains_and_closes_gateway(
        self, dispatcher, mock_gateway, project, owner, feedback_factory, device_factory
    ):
        """aclose waits for in-flight runs, then closes the gateway."""
        device_factory(owner)
        dispatcher.dispatch_new_feedback(feedback_factory(project), project)

        await dispatcher.aclose()

        assert dispatcher.pending == 0
        mock_gateway.send.assert_awaited_once()
        mock_gateway.aclose.assert_awaited_once()
