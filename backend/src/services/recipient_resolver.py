"""
Recipient resolution for push notification dispatch runs.

Recipients come from independent sources:
- the project team (owner + members)
- the feedback submitter, matched by ``Feedback.user_email``
- voters who left an email and opted in to status change notifications

Every source feeds the same ``RecipientSet``, keyed by user id, so a user
reachable through several sources is notified once per run. Excluded
users (e.g. the author of a comment) are rejected by the set itself.
"""

import enum
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional

from sqlalchemy.orm import Session, joinedload

from backend.src.models.feedback import Feedback, Vote
from backend.src.models.project import Project, ProjectMember
from backend.src.models.push_notification_log import NotificationType
from backend.src.models.user import User
from backend.src.services.notification_preferences import NotificationPreferenceReader


class RecipientSource(enum.Enum):
    """How a recipient became eligible for a dispatch run."""
    OWNER = "owner"
    MEMBER = "member"
    SUBMITTER = "submitter"
    VOTER = "voter"


@dataclass(frozen=True)
class Recipient:
    """A user selected for a dispatch run and the source that selected them."""
    user: User
    source: RecipientSource


class RecipientSet:
    """
    Insertion-ordered recipients, unique by user id.

    Users listed in ``exclude_user_ids`` can never be added.
    """

    def __init__(self, exclude_user_ids: Iterable[int] = ()):
        self._excluded = {user_id for user_id in exclude_user_ids if user_id is not None}
        self._recipients: Dict[int, Recipient] = {}

    def accepts(self, user: User) -> bool:
        """True if the user is neither excluded nor already present."""
        return user.id not in self._excluded and user.id not in self._recipients

    def add(self, user: User, source: RecipientSource) -> bool:
        """Add a user; returns False if excluded or already present."""
        if not self.accepts(user):
            return False
        self._recipients[user.id] = Recipient(user=user, source=source)
        return True

    @property
    def user_ids(self) -> List[int]:
        return list(self._recipients)

    def __iter__(self) -> Iterator[Recipient]:
        return iter(list(self._recipients.values()))

    def __len__(self) -> int:
        return len(self._recipients)


class RecipientResolver:
    """
    Builds the recipient set of a dispatch run.

    Any database error propagates to the caller; the dispatch entry point
    aborts the whole run instead of notifying a partial set.
    """

    def __init__(
        self,
        db: Session,
        preference_reader: Optional[NotificationPreferenceReader] = None,
    ):
        self.db = db
        self.preferences = preference_reader or NotificationPreferenceReader(db)

    # ========================================================================
    # Candidate sources
    # ========================================================================

    def project_pool(self, project: Project) -> List[tuple]:
        """
        Owner followed by every member, unique by user id.

        Returns:
            List of (User, RecipientSource) pairs
        """
        pool = []
        seen = set()

        owner = project.owner
        if owner is not None:
            pool.append((owner, RecipientSource.OWNER))
            seen.add(owner.id)

        members = (
            self.db.query(ProjectMember)
            .options(joinedload(ProjectMember.user))
            .filter(ProjectMember.project_id == project.id)
            .order_by(ProjectMember.id)
            .all()
        )
        for member in members:
            if member.user is None or member.user.id in seen:
                continue
            pool.append((member.user, RecipientSource.MEMBER))
            seen.add(member.user.id)

        return pool

    def find_user_by_email(self, email: Optional[str]) -> Optional[User]:
        """Registered user with this exact email, or None."""
        if not email:
            return None
        return self.db.query(User).filter(User.email == email).first()

    def resolve_submitter(self, feedback: Feedback) -> Optional[User]:
        """Registered user who submitted the feedback, if any."""
        return self.find_user_by_email(feedback.user_email)

    def resolve_opted_in_voters(self, feedback: Feedback) -> List[User]:
        """
        Registered users behind votes that opted in to status changes.

        Votes without an email, or whose email matches no user, are skipped.
        Returned in vote order, unique by user id.
        """
        votes = (
            self.db.query(Vote)
            .filter(
                Vote.feedback_id == feedback.id,
                Vote.notify_status_change.is_(True),
                Vote.email.isnot(None),
            )
            .order_by(Vote.id)
            .all()
        )
        emails = [vote.email for vote in votes if vote.email]
        if not emails:
            return []

        users_by_email = {
            user.email: user
            for user in self.db.query(User).filter(User.email.in_(set(emails))).all()
        }

        voters = []
        seen = set()
        for email in emails:
            user = users_by_email.get(email)
            if user is not None and user.id not in seen:
                voters.append(user)
                seen.add(user.id)
        return voters

    # ========================================================================
    # Resolution
    # ========================================================================

    def add_eligible(
        self,
        recipients: RecipientSet,
        user: Optional[User],
        source: RecipientSource,
        project: Project,
        notification_type: NotificationType,
    ) -> bool:
        """
        Add ``user`` if the set accepts it and preferences allow the push.

        Returns:
            True if the user was added
        """
        if user is None or not recipients.accepts(user):
            return False
        if not self.preferences.should_notify(user, project, notification_type):
            return False
        return recipients.add(user, source)

    def resolve_recipients(
        self,
        project: Project,
        notification_type: NotificationType,
        exclude_user_ids: Iterable[int] = (),
    ) -> RecipientSet:
        """
        Resolve the project team members eligible for a notification.

        Args:
            project: Project the event belongs to
            notification_type: Type being dispatched
            exclude_user_ids: Users never to notify (e.g. the actor)

        Returns:
            RecipientSet seeded with eligible owner/members
        """
        recipients = RecipientSet(exclude_user_ids)
        for user, source in self.project_pool(project):
            self.add_eligible(recipients, user, source, project, notification_type)
        return recipients

    def add_submitter(
        self,
        recipients: RecipientSet,
        feedback: Feedback,
        project: Project,
        notification_type: NotificationType,
    ) -> bool:
        """Merge the feedback submitter into ``recipients`` if eligible."""
        submitter = self.resolve_submitter(feedback)
        return self.add_eligible(
            recipients, submitter, RecipientSource.SUBMITTER, project, notification_type
        )

    def add_opted_in_voters(
        self,
        recipients: RecipientSet,
        feedback: Feedback,
        project: Project,
        notification_type: NotificationType,
    ) -> int:
        """
        Merge opted-in voters into ``recipients``.

        Returns:
            Number of voters added
        """
        added = 0
        for voter in self.resolve_opted_in_voters(feedback):
            if self.add_eligible(
                recipients, voter, RecipientSource.VOTER, project, notification_type
            ):
                added += 1
        return added
