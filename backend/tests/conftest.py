"""
Pytest configuration and fixtures for backend tests.

Provides shared fixtures for:
- Test database sessions
- Model factories (users, projects, feedback, votes, devices)
- A mocked push gateway
"""

import os
import pytest
from unittest.mock import AsyncMock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app modules
os.environ['FEEDBACKKIT_DB_URL'] = 'sqlite:///:memory:'
os.environ['FEEDBACKKIT_ENV'] = 'test'
for _var in (
    'APNS_KEY_ID', 'APNS_TEAM_ID', 'APNS_BUNDLE_ID',
    'APNS_KEY_PATH', 'APNS_KEY_P8_BASE64', 'APNS_PRODUCTION',
):
    os.environ.pop(_var, None)

from backend.src.models import (
    Base,
    User,
    Project,
    ProjectMember,
    ProjectMemberPreference,
    Feedback,
    FeedbackStatus,
    Comment,
    Vote,
    DeviceToken,
)
from backend.src.services.push_gateway import PushGateway


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(scope='function')
def test_db_engine():
    """Create an in-memory SQLite database engine for testing."""
    from sqlalchemy import event

    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )

    # Enable foreign key constraints for SQLite
    # This must be set for each connection
    def _fk_pragma_on_connect(dbapi_con, con_record):
        dbapi_con.execute('pragma foreign_keys=ON')

    event.listen(engine, 'connect', _fk_pragma_on_connect)

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope='function')
def test_session_factory(test_db_engine):
    """Session factory bound to the test engine."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_db_engine
    )


@pytest.fixture(scope='function')
def test_db_session(test_session_factory):
    """Create a test database session."""
    session = test_session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ============================================================================
# Model Factories
# ============================================================================

@pytest.fixture
def user_factory(test_db_session):
    """Factory for creating users with push preferences."""
    counter = {'n': 0}

    def _create(email=None, name=None, **preferences):
        counter['n'] += 1
        user = User(
            email=email or f'user{counter["n"]}@example.com',
            name=name or f'User {counter["n"]}',
            **preferences,
        )
        test_db_session.add(user)
        test_db_session.commit()
        return user

    return _create


@pytest.fixture
def project_factory(test_db_session):
    """Factory for creating projects, optionally with members."""
    def _create(owner, name='Test Project', members=()):
        project = Project(name=name, owner_id=owner.id)
        test_db_session.add(project)
        test_db_session.flush()
        for member in members:
            test_db_session.add(
                ProjectMember(project_id=project.id, user_id=member.id)
            )
        test_db_session.commit()
        return project

    return _create


@pytest.fixture
def preference_factory(test_db_session):
    """Factory for creating per-project preference overrides."""
    def _create(user, project, push_muted=False, **overrides):
        preference = ProjectMemberPreference(
            user_id=user.id,
            project_id=project.id,
            push_muted=push_muted,
            **overrides,
        )
        test_db_session.add(preference)
        test_db_session.commit()
        return preference

    return _create


@pytest.fixture
def feedback_factory(test_db_session):
    """Factory for creating feedback items."""
    def _create(project, title='Dark mode', user_email=None,
                status=FeedbackStatus.PENDING, vote_count=0):
        feedback = Feedback(
            project_id=project.id,
            title=title,
            description='Please add it',
            user_email=user_email,
            status=status,
            vote_count=vote_count,
        )
        test_db_session.add(feedback)
        test_db_session.commit()
        return feedback

    return _create


@pytest.fixture
def comment_factory(test_db_session):
    """Factory for creating comments."""
    def _create(feedback, author=None, content='Looks good'):
        comment = Comment(
            feedback_id=feedback.id,
            user_id=author.id if author else None,
            content=content,
        )
        test_db_session.add(comment)
        test_db_session.commit()
        return comment

    return _create


@pytest.fixture
def vote_factory(test_db_session):
    """Factory for creating votes."""
    counter = {'n': 0}

    def _create(feedback, email=None, notify_status_change=False):
        counter['n'] += 1
        vote = Vote(
            feedback_id=feedback.id,
            voter_id=f'voter-{counter["n"]}',
            email=email,
            notify_status_change=notify_status_change,
        )
        test_db_session.add(vote)
        test_db_session.commit()
        return vote

    return _create


@pytest.fixture
def device_factory(test_db_session):
    """Factory for creating registered devices."""
    counter = {'n': 0}

    def _create(user, token=None, is_active=True, platform='iOS'):
        counter['n'] += 1
        device = DeviceToken(
            user_id=user.id,
            token=token or f'{counter["n"]:064x}',
            platform=platform,
            is_active=is_active,
        )
        test_db_session.add(device)
        test_db_session.commit()
        return device

    return _create


# ============================================================================
# Gateway Fixtures
# ============================================================================

@pytest.fixture
def mock_gateway():
    """
    Push gateway mock accepting every notification.

    Override ``mock_gateway.send.side_effect`` to simulate failures.
    """
    gateway = AsyncMock(spec=PushGateway)
    gateway.send.return_value = 'apns-id-0001'
    return gateway
