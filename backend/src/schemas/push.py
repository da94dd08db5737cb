"""
Pydantic schemas for push notification payloads and preference views.

Provides data validation and serialization for:
- The custom payload delivered alongside every APNs alert
- The effective (resolved) push preferences of a user in a project
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, computed_field

from backend.src.models.push_notification_log import NotificationType


DEEP_LINK_SCHEME = "feedbackkit"


# ============================================================================
# Push Payload
# ============================================================================


class PushPayload(BaseModel):
    """
    Custom data sent with a push alert.

    Carries the notification type plus the correlation IDs relevant to
    that type. ``action_url`` is derived: a feedback deep link when a
    feedback is referenced, otherwise a project deep link, otherwise none.
    """

    type: NotificationType
    feedback_id: Optional[str] = Field(default=None, description="Feedback GUID (fdb_xxx)")
    comment_id: Optional[str] = Field(default=None, description="Comment GUID (cmt_xxx)")
    project_id: Optional[str] = Field(default=None, description="Project GUID (prj_xxx)")
    vote_count: Optional[int] = Field(default=None, ge=0)
    old_status: Optional[str] = None
    new_status: Optional[str] = None

    @computed_field
    @property
    def action_url(self) -> Optional[str]:
        if self.feedback_id:
            return f"{DEEP_LINK_SCHEME}://feedback/{self.feedback_id}"
        if self.project_id:
            return f"{DEEP_LINK_SCHEME}://project/{self.project_id}"
        return None

    def as_dict(self) -> Dict[str, Any]:
        """JSON-ready dict without unset fields."""
        data = self.model_dump(mode="json")
        return {key: value for key, value in data.items() if value is not None}

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "new_comment",
                "feedback_id": "fdb_01hgw2bbg0000000000000001",
                "comment_id": "cmt_01hgw2bbg0000000000000002",
                "project_id": "prj_01hgw2bbg0000000000000003",
            }
        }
    }


# ============================================================================
# Preference Views
# ============================================================================


class EffectivePushPreferences(BaseModel):
    """Resolved push preference per notification type for one user+project."""

    new_feedback: bool
    new_comments: bool
    votes: bool
    status_changes: bool
