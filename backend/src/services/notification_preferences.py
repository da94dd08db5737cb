"""
Push notification preference resolution.

Three layers decide whether a user gets a push of a given type for a
given project, evaluated in this order (first decisive layer wins):

1. Global kill switch: ``User.push_notifications_enabled``
2. Project override: ``ProjectMemberPreference`` for (user, project)
   a. ``push_muted`` suppresses every type
   b. a non-NULL per-type column replaces the personal preference
3. Personal per-type preference on ``User``

``resolve_preference`` is the pure decision function; the reader wraps it
with the database lookup of the optional project override row.
"""

from typing import Optional

from sqlalchemy.orm import Session

from backend.src.models.project import Project
from backend.src.models.project_member_preference import ProjectMemberPreference
from backend.src.models.push_notification_log import NotificationType
from backend.src.models.user import User
from backend.src.schemas.push import EffectivePushPreferences
from backend.src.utils.logging_config import get_logger


logger = get_logger("services")


# User and ProjectMemberPreference share the same per-type column names
PREFERENCE_COLUMNS = {
    NotificationType.NEW_FEEDBACK: "push_notify_new_feedback",
    NotificationType.NEW_COMMENT: "push_notify_new_comments",
    NotificationType.NEW_VOTE: "push_notify_votes",
    NotificationType.STATUS_CHANGE: "push_notify_status_changes",
}


def resolve_preference(
    user: User,
    project_preference: Optional[ProjectMemberPreference],
    notification_type: NotificationType,
) -> bool:
    """
    Decide whether ``user`` should receive a ``notification_type`` push.

    Args:
        user: Recipient candidate
        project_preference: The user's override row for the project, if any
        notification_type: Type being dispatched

    Returns:
        True if the notification should be sent
    """
    if not user.push_notifications_enabled:
        return False

    column = PREFERENCE_COLUMNS[notification_type]

    if project_preference is not None:
        if project_preference.push_muted:
            return False
        override = getattr(project_preference, column)
        if override is not None:
            return bool(override)

    return bool(getattr(user, column))


class NotificationPreferenceReader:
    """
    Read-only access to the push preference layers.

    Never writes; a missing ProjectMemberPreference row is treated as
    "no override, not muted".
    """

    def __init__(self, db: Session):
        self.db = db

    def get_project_preference(
        self, user_id: int, project_id: int
    ) -> Optional[ProjectMemberPreference]:
        """Load the override row for (user, project), or None."""
        return (
            self.db.query(ProjectMemberPreference)
            .filter(
                ProjectMemberPreference.user_id == user_id,
                ProjectMemberPreference.project_id == project_id,
            )
            .first()
        )

    def should_notify(
        self,
        user: User,
        project: Project,
        notification_type: NotificationType,
    ) -> bool:
        """
        Check whether a user should receive a push for a project event.

        The override row is not queried when the global toggle is off.
        """
        if not user.push_notifications_enabled:
            return False

        preference = self.get_project_preference(user.id, project.id)
        allowed = resolve_preference(user, preference, notification_type)
        if not allowed:
            logger.debug(
                "Push suppressed by preferences",
                extra={
                    "user_id": user.id,
                    "project_id": project.id,
                    "notification_type": notification_type.value,
                    "project_override": preference is not None,
                },
            )
        return allowed

    def get_effective_preferences(
        self, user: User, project: Project
    ) -> EffectivePushPreferences:
        """
        Resolve all four push types for a user in a project.

        Returns:
            EffectivePushPreferences with the value each dispatch would use
        """
        preference = self.get_project_preference(user.id, project.id)
        return EffectivePushPreferences(
            new_feedback=resolve_preference(user, preference, NotificationType.NEW_FEEDBACK),
            new_comments=resolve_preference(user, preference, NotificationType.NEW_COMMENT),
            votes=resolve_preference(user, preference, NotificationType.NEW_VOTE),
            status_changes=resolve_preference(user, preference, NotificationType.STATUS_CHANGE),
        )
