"""
Project and ProjectMember models.

A project has exactly one owner and zero or more members. Together they
form the default recipient pool for project-wide push notifications.
"""

from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from backend.src.models import Base
from backend.src.models.mixins import GuidMixin


class Project(Base, GuidMixin):
    """
    Feedback project.

    Attributes:
        name: Project display name
        owner_id: Owning user (FK to users)

    Relationships:
        owner: Owning User (many-to-one)
        members: ProjectMember rows (one-to-many)
        feedbacks: Feedback items submitted to this project (one-to-many)
    """

    __tablename__ = "projects"

    GUID_PREFIX = "prj"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    owner = relationship("User", back_populates="owned_projects")
    members = relationship(
        "ProjectMember",
        back_populates="project",
        cascade="all, delete-orphan",
    )
    feedbacks = relationship("Feedback", back_populates="project")

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, name='{self.name}')>"


class ProjectMember(Base):
    """
    Membership of a user in a project.

    The role is irrelevant to notification eligibility; members are only
    used as a source for the recipient pool.
    """

    __tablename__ = "project_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="member")

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="members")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
    )
