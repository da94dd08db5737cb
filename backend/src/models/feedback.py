"""
Feedback, Comment and Vote models.

Feedback items are submitted from the SDK, usually by anonymous end users
identified only by an optional email address. When that email belongs to
a registered User, the submitter can receive push notifications about
their feedback.
"""

import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship

from backend.src.models import Base
from backend.src.models.mixins import GuidMixin


class FeedbackStatus(enum.Enum):
    """
    Feedback lifecycle status.

    Values are snake_case on the wire; push bodies render them with
    underscores replaced by spaces ("in progress").
    """
    PENDING = "pending"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ")


class Feedback(Base, GuidMixin):
    """
    A feedback item (feature request, bug report, ...).

    Attributes:
        title: Short title shown in push notifications
        description: Full text
        user_email: Submitter email (optional)
        status: Lifecycle status
        vote_count: Denormalized vote count
        project_id: Owning project
    """

    __tablename__ = "feedbacks"

    GUID_PREFIX = "fdb"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    user_email = Column(String(255), nullable=True, index=True)
    status = Column(
        Enum(FeedbackStatus, values_callable=lambda x: [e.value for e in x]),
        default=FeedbackStatus.PENDING,
        nullable=False,
    )
    vote_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="feedbacks")
    comments = relationship("Comment", back_populates="feedback")
    votes = relationship("Vote", back_populates="feedback")

    def __repr__(self) -> str:
        return f"<Feedback(id={self.id}, title='{self.title}', status={self.status})>"


class Comment(Base, GuidMixin):
    """Comment on a feedback item. ``user_id`` is the author."""

    __tablename__ = "comments"

    GUID_PREFIX = "cmt"

    id = Column(Integer, primary_key=True, autoincrement=True)
    feedback_id = Column(Integer, ForeignKey("feedbacks.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    content = Column(Text, nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    feedback = relationship("Feedback", back_populates="comments")


class Vote(Base):
    """
    Vote on a feedback item.

    Voters may leave an email and opt in to status change notifications
    (``notify_status_change``).
    """

    __tablename__ = "votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    feedback_id = Column(Integer, ForeignKey("feedbacks.id"), nullable=False, index=True)
    voter_id = Column(String(255), nullable=False, default="")
    email = Column(String(255), nullable=True)
    notify_status_change = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    feedback = relationship("Feedback", back_populates="votes")
