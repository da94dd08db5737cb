"""
Per-project notification overrides for a user.

At most one row exists per (user, project). A missing row means
"no override, not muted".

Push columns:
- push_muted: suppresses every push type for this user in this project
- push_notify_*: nullable per-type overrides. NULL defers to the user's
  personal preference; TRUE/FALSE replaces it for this project.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from backend.src.models import Base


class ProjectMemberPreference(Base):
    """Project-scoped push preference overrides for one user."""

    __tablename__ = "project_member_preferences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)

    push_muted = Column(Boolean, default=False, nullable=False)

    # Overrides (None = use personal preference)
    push_notify_new_feedback = Column(Boolean, nullable=True)
    push_notify_new_comments = Column(Boolean, nullable=True)
    push_notify_votes = Column(Boolean, nullable=True)
    push_notify_status_changes = Column(Boolean, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    user = relationship("User")
    project = relationship("Project")

    __table_args__ = (
        UniqueConstraint(
            "user_id", "project_id", name="uq_project_member_preferences_user_project"
        ),
    )
