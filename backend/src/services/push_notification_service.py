"""
Push notification dispatch for FeedbackKit events.

One dispatch run per event:
1. Bail out silently when no push gateway is configured
2. Resolve recipients (project team, submitter, opted-in voters)
3. Fan out to every active device of every recipient
4. Per device: send -> classify failure -> update token -> write log

Entry points never raise. A recipient resolution failure aborts the run;
a failure on one device never affects its siblings.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from backend.src.models.device_token import DeviceToken
from backend.src.models.feedback import Comment, Feedback, FeedbackStatus
from backend.src.models.project import Project
from backend.src.models.push_notification_log import DeliveryStatus, NotificationType
from backend.src.models.user import User
from backend.src.schemas.push import PushPayload
from backend.src.services.delivery_log_service import DeliveryLogService
from backend.src.services.device_token_service import DeviceTokenService
from backend.src.services.failure_classifier import (
    FailureKind,
    classify_failure,
    delivery_status_for,
)
from backend.src.services.push_gateway import PushGateway
from backend.src.services.recipient_resolver import (
    RecipientResolver,
    RecipientSet,
    RecipientSource,
)
from backend.src.utils.logging_config import get_logger


logger = get_logger("services")


DEFAULT_MAX_CONCURRENT_SENDS = 10


@dataclass
class DispatchSummary:
    """Counters of one dispatch run, for diagnostics and tests."""
    notification_type: NotificationType
    recipients: int = 0
    attempted: int = 0
    sent: int = 0
    failed: int = 0
    expired: int = 0
    skipped_reason: Optional[str] = None

    def as_log_extra(self) -> Dict[str, Any]:
        return {
            "notification_type": self.notification_type.value,
            "recipients": self.recipients,
            "attempted": self.attempted,
            "sent": self.sent,
            "failed": self.failed,
            "expired": self.expired,
        }


@dataclass(frozen=True)
class PushMessage:
    """Alert text and payload sent to every device of one recipient."""
    title: str
    body: str
    payload: PushPayload


def _status_value(status: Union[FeedbackStatus, str]) -> str:
    return status.value if isinstance(status, FeedbackStatus) else str(status)


def _status_display(status: Union[FeedbackStatus, str]) -> str:
    return _status_value(status).replace("_", " ")


def vote_count_body(title: str, vote_count: int) -> str:
    noun = "vote" if vote_count == 1 else "votes"
    return f"{title} now has {vote_count} {noun}"


class PushNotificationService:
    """
    Orchestrates push notification dispatch runs.

    Usage:
        >>> service = PushNotificationService(db, build_push_gateway())
        >>> summary = await service.notify_new_feedback(feedback, project)
    """

    def __init__(
        self,
        db: Session,
        gateway: Optional[PushGateway],
        max_concurrent_sends: int = DEFAULT_MAX_CONCURRENT_SENDS,
        resolver: Optional[RecipientResolver] = None,
        device_tokens: Optional[DeviceTokenService] = None,
        delivery_log: Optional[DeliveryLogService] = None,
    ):
        """
        Initialize the service.

        Args:
            db: Session used for every read and write of the run
            gateway: Push transport, None when push is not configured
            max_concurrent_sends: Bound on in-flight gateway requests per run
            resolver: Recipient resolver (defaults to one on ``db``)
            device_tokens: Device token service (defaults to one on ``db``)
            delivery_log: Delivery log service (defaults to one on ``db``)
        """
        self.db = db
        self.gateway = gateway
        self.max_concurrent_sends = max(1, max_concurrent_sends)
        self.resolver = resolver or RecipientResolver(db)
        self.device_tokens = device_tokens or DeviceTokenService(db)
        self.delivery_log = delivery_log or DeliveryLogService(db)

    # ========================================================================
    # Entry points
    # ========================================================================

    async def notify_new_feedback(
        self, feedback: Feedback, project: Project
    ) -> DispatchSummary:
        """
        Notify the project team about a new feedback item.

        Recipients: owner and members with new feedback pushes enabled.
        """
        notification_type = NotificationType.NEW_FEEDBACK
        summary = DispatchSummary(notification_type)
        if not self._gateway_available(summary):
            return summary

        try:
            recipients = self.resolver.resolve_recipients(project, notification_type)
            message = PushMessage(
                title="New Feedback",
                body=feedback.title,
                payload=PushPayload(
                    type=notification_type,
                    feedback_id=feedback.guid,
                    project_id=project.guid,
                ),
            )
            context = {"feedback_id": feedback.id, "project_id": project.id}
        except Exception as e:
            return self._abort(summary, e)

        return await self._run(summary, recipients, lambda recipient: message, context)

    async def notify_new_comment(
        self,
        comment: Comment,
        feedback: Feedback,
        project: Project,
        author_id: Optional[int],
    ) -> DispatchSummary:
        """
        Notify about a new comment.

        Recipients: owner, members and the registered submitter, minus the
        comment author.
        """
        notification_type = NotificationType.NEW_COMMENT
        summary = DispatchSummary(notification_type)
        if not self._gateway_available(summary):
            return summary

        try:
            recipients = self.resolver.resolve_recipients(
                project, notification_type, exclude_user_ids=[author_id]
            )
            self.resolver.add_submitter(recipients, feedback, project, notification_type)
            message = PushMessage(
                title="New Comment",
                body=f"Comment on: {feedback.title}",
                payload=PushPayload(
                    type=notification_type,
                    feedback_id=feedback.guid,
                    comment_id=comment.guid,
                    project_id=project.guid,
                ),
            )
            context = {"feedback_id": feedback.id, "project_id": project.id}
        except Exception as e:
            return self._abort(summary, e)

        return await self._run(summary, recipients, lambda recipient: message, context)

    async def notify_new_vote(self, feedback: Feedback, vote_count: int) -> DispatchSummary:
        """
        Notify the registered submitter that their feedback got a vote.

        The project is taken from the feedback.
        """
        notification_type = NotificationType.NEW_VOTE
        summary = DispatchSummary(notification_type)
        if not self._gateway_available(summary):
            return summary

        try:
            project = feedback.project
            recipients = RecipientSet()
            self.resolver.add_submitter(recipients, feedback, project, notification_type)
            message = PushMessage(
                title="New Vote",
                body=vote_count_body(feedback.title, vote_count),
                payload=PushPayload(
                    type=notification_type,
                    feedback_id=feedback.guid,
                    project_id=project.guid,
                    vote_count=vote_count,
                ),
            )
            context = {"feedback_id": feedback.id, "project_id": project.id}
        except Exception as e:
            return self._abort(summary, e)

        return await self._run(summary, recipients, lambda recipient: message, context)

    async def notify_status_change(
        self,
        feedback: Feedback,
        old_status: Union[FeedbackStatus, str],
        new_status: Union[FeedbackStatus, str],
        project: Project,
    ) -> DispatchSummary:
        """
        Notify about a feedback status change.

        Recipients: the registered submitter, then every registered voter
        who opted in to status change notifications. Submitter and voters
        get different bodies.
        """
        notification_type = NotificationType.STATUS_CHANGE
        summary = DispatchSummary(notification_type)
        if not self._gateway_available(summary):
            return summary

        try:
            recipients = RecipientSet()
            self.resolver.add_submitter(recipients, feedback, project, notification_type)
            self.resolver.add_opted_in_voters(recipients, feedback, project, notification_type)

            submitter_message = PushMessage(
                title="Status Updated",
                body=f"{feedback.title} is now {_status_display(new_status)}",
                payload=PushPayload(
                    type=notification_type,
                    feedback_id=feedback.guid,
                    project_id=project.guid,
                    old_status=_status_value(old_status),
                    new_status=_status_value(new_status),
                ),
            )
            voter_message = PushMessage(
                title="Status Updated",
                body=f"Feedback you voted on: {_status_display(new_status)}",
                payload=PushPayload(
                    type=notification_type,
                    feedback_id=feedback.guid,
                    project_id=project.guid,
                    new_status=_status_value(new_status),
                ),
            )
            context = {"feedback_id": feedback.id, "project_id": project.id}
        except Exception as e:
            return self._abort(summary, e)

        def message_for(recipient):
            if recipient.source is RecipientSource.VOTER:
                return voter_message
            return submitter_message

        return await self._run(summary, recipients, message_for, context)

    # ========================================================================
    # Run helpers
    # ========================================================================

    def _gateway_available(self, summary: DispatchSummary) -> bool:
        if self.gateway is not None:
            return True
        summary.skipped_reason = "push_not_configured"
        logger.debug(
            "Push gateway not configured; skipping dispatch",
            extra={"notification_type": summary.notification_type.value},
        )
        return False

    def _abort(self, summary: DispatchSummary, error: Exception) -> DispatchSummary:
        self.db.rollback()
        summary.skipped_reason = "recipient_resolution_failed"
        logger.error(
            f"Failed to resolve push recipients: {error}",
            extra={"notification_type": summary.notification_type.value},
            exc_info=True,
        )
        return summary

    async def _run(
        self,
        summary: DispatchSummary,
        recipients: RecipientSet,
        message_for,
        context: Dict[str, Optional[int]],
    ) -> DispatchSummary:
        """Fan out to every device of every recipient; never raises."""
        try:
            summary.recipients = len(recipients)
            semaphore = asyncio.Semaphore(self.max_concurrent_sends)

            chains = []
            for recipient in recipients:
                user = recipient.user
                devices = self._load_devices(user, summary)
                if not devices:
                    continue
                message = message_for(recipient)
                for device in devices:
                    chains.append(
                        self._deliver(summary, semaphore, user.id, device, message, context)
                    )

            if chains:
                results = await asyncio.gather(*chains, return_exceptions=True)
                for result in results:
                    if isinstance(result, Exception):
                        logger.error(
                            f"Push delivery chain failed: {result}",
                            extra=summary.as_log_extra(),
                            exc_info=result,
                        )

            logger.info("Push dispatch run complete", extra=summary.as_log_extra())
        except Exception as e:
            logger.error(
                f"Push dispatch run failed: {e}",
                extra=summary.as_log_extra(),
                exc_info=True,
            )
        return summary

    def _load_devices(self, user: User, summary: DispatchSummary) -> List[DeviceToken]:
        try:
            devices = self.device_tokens.active_devices_for(user.id)
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Failed to load devices for push recipient: {e}",
                extra={
                    "user_id": user.id,
                    "notification_type": summary.notification_type.value,
                },
                exc_info=True,
            )
            return []

        if not devices:
            logger.debug(
                "Push recipient has no active devices",
                extra={
                    "user_id": user.id,
                    "notification_type": summary.notification_type.value,
                },
            )
        return devices

    async def _deliver(
        self,
        summary: DispatchSummary,
        semaphore: asyncio.Semaphore,
        user_id: int,
        device: DeviceToken,
        message: PushMessage,
        context: Dict[str, Optional[int]],
    ) -> None:
        """
        Deliver to one device and record the outcome.

        Everything after the gateway call runs without awaiting, so the
        token update and its log row are committed before another chain
        touches the session.
        """
        device_id = device.id
        token = device.token
        payload = message.payload.as_dict()
        notification_type = summary.notification_type

        summary.attempted += 1
        apns_id = None
        error: Optional[Exception] = None
        async with semaphore:
            try:
                apns_id = await self.gateway.send(token, message.title, message.body, payload)
            except Exception as e:
                error = e

        log_extra = {
            "user_id": user_id,
            "device_token_id": device_id,
            "token_prefix": token[:12],
            "notification_type": notification_type.value,
        }

        if error is None:
            summary.sent += 1
            status = DeliveryStatus.SENT
            self._update_device(self.device_tokens.mark_used, device, log_extra)
            logger.debug("Push delivered", extra=log_extra)
        else:
            kind = classify_failure(error)
            status = delivery_status_for(kind)
            if kind is FailureKind.PERMANENT:
                summary.expired += 1
                self._update_device(self.device_tokens.deactivate, device, log_extra)
            else:
                summary.failed += 1
            logger.warning(
                f"Push delivery failed: {error}",
                extra={**log_extra, "failure_kind": kind.value},
            )

        self.delivery_log.record(
            user_id=user_id,
            device_token_id=device_id,
            notification_type=notification_type,
            status=status,
            error_message=str(error) if error is not None else None,
            feedback_id=context.get("feedback_id"),
            project_id=context.get("project_id"),
            payload=payload,
            apns_id=apns_id,
        )

    def _update_device(self, update, device: DeviceToken, log_extra: Dict[str, Any]) -> None:
        try:
            update(device)
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"Failed to update device token after push: {e}",
                extra=log_extra,
                exc_info=True,
            )
