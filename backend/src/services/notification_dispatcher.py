"""
Fire-and-forget scheduling of push notification dispatch runs.

Request handlers call ``dispatch_*`` right after committing the triggering
change. The call captures entity ids, schedules the run on the running
event loop and returns immediately; the run reloads the entities in its
own session, because the request session is closed by then.

Usage:
    dispatcher = get_notification_dispatcher()
    dispatcher.dispatch_new_feedback(feedback, project)

    # on shutdown
    await dispatcher.aclose()
"""

import asyncio
from typing import Awaitable, Callable, Optional, Set, Union

from sqlalchemy.orm import Session

from backend.src.config.settings import AppSettings, get_settings
from backend.src.db.database import SessionLocal
from backend.src.models.feedback import Comment, Feedback, FeedbackStatus
from backend.src.models.project import Project
from backend.src.services.exceptions import NotFoundError
from backend.src.services.push_gateway import PushGateway, build_push_gateway
from backend.src.services.push_notification_service import (
    DispatchSummary,
    PushNotificationService,
)
from backend.src.utils.logging_config import get_logger


logger = get_logger("services")


RunCallable = Callable[[PushNotificationService, Session], Awaitable[DispatchSummary]]


def _load(db: Session, model, entity_id: Optional[int]):
    entity = db.get(model, entity_id) if entity_id is not None else None
    if entity is None:
        raise NotFoundError(model.__name__, entity_id)
    return entity


class NotificationDispatcher:
    """
    Schedules dispatch runs as background tasks.

    In-flight tasks are referenced until they finish so they are not
    garbage collected mid-run; ``drain()`` waits for all of them.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        gateway: Optional[PushGateway] = None,
        settings: Optional[AppSettings] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            session_factory: Creates the session of each run
            gateway: Push transport (built from settings when omitted)
            settings: Application settings (defaults to get_settings())

        Raises:
            PushConfigurationError: If APNs is configured with an unusable key
        """
        self.settings = settings or get_settings()
        self.session_factory = session_factory
        self.gateway = gateway if gateway is not None else build_push_gateway(self.settings)
        self._tasks: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return self.gateway is not None

    @property
    def pending(self) -> int:
        """Number of dispatch runs still in flight."""
        return len(self._tasks)

    # ========================================================================
    # Dispatch entry points
    # ========================================================================

    def dispatch_new_feedback(
        self, feedback: Feedback, project: Project
    ) -> Optional[asyncio.Task]:
        feedback_id, project_id = feedback.id, project.id

        async def run(service: PushNotificationService, db: Session) -> DispatchSummary:
            return await service.notify_new_feedback(
                _load(db, Feedback, feedback_id),
                _load(db, Project, project_id),
            )

        return self._schedule("new_feedback", run)

    def dispatch_new_comment(
        self,
        comment: Comment,
        feedback: Feedback,
        project: Project,
        author_id: Optional[int],
    ) -> Optional[asyncio.Task]:
        comment_id, feedback_id, project_id = comment.id, feedback.id, project.id

        async def run(service: PushNotificationService, db: Session) -> DispatchSummary:
            return await service.notify_new_comment(
                _load(db, Comment, comment_id),
                _load(db, Feedback, feedback_id),
                _load(db, Project, project_id),
                author_id,
            )

        return self._schedule("new_comment", run)

    def dispatch_new_vote(
        self, feedback: Feedback, vote_count: int
    ) -> Optional[asyncio.Task]:
        feedback_id = feedback.id

        async def run(service: PushNotificationService, db: Session) -> DispatchSummary:
            return await service.notify_new_vote(
                _load(db, Feedback, feedback_id), vote_count
            )

        return self._schedule("new_vote", run)

    def dispatch_status_change(
        self,
        feedback: Feedback,
        old_status: Union[FeedbackStatus, str],
        new_status: Union[FeedbackStatus, str],
        project: Project,
    ) -> Optional[asyncio.Task]:
        feedback_id, project_id = feedback.id, project.id

        async def run(service: PushNotificationService, db: Session) -> DispatchSummary:
            return await service.notify_status_change(
                _load(db, Feedback, feedback_id),
                old_status,
                new_status,
                _load(db, Project, project_id),
            )

        return self._schedule("status_change", run)

    # ========================================================================
    # Task management
    # ========================================================================

    def _schedule(self, name: str, run: RunCallable) -> Optional[asyncio.Task]:
        if self.gateway is None:
            logger.debug(
                "Push gateway not configured; dispatch not scheduled",
                extra={"notification_type": name},
            )
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as loop_err:
            logger.warning(
                "no running asyncio loop; cannot schedule push dispatch: %s",
                loop_err,
                extra={"notification_type": name},
            )
            return None

        task = loop.create_task(self._execute(name, run), name=f"push-dispatch-{name}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    async def _execute(self, name: str, run: RunCallable) -> Optional[DispatchSummary]:
        db = self.session_factory()
        try:
            service = PushNotificationService(
                db,
                self.gateway,
                max_concurrent_sends=self.settings.push_max_concurrent_sends,
            )
            return await run(service, db)
        except NotFoundError as e:
            logger.warning(
                f"Push dispatch skipped: {e}",
                extra={"notification_type": name, "resource": e.resource},
            )
            return None
        finally:
            db.close()

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.info("Push dispatch cancelled", extra={"task": task.get_name()})
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Push dispatch crashed: {error}",
                extra={"task": task.get_name()},
                exc_info=error,
            )

    async def drain(self) -> None:
        """Wait until every in-flight dispatch run has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Drain in-flight runs and close the gateway."""
        await self.drain()
        if self.gateway is not None:
            await self.gateway.aclose()


_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """
    Get the process-wide dispatcher, creating it on first use.

    Returns:
        NotificationDispatcher bound to SessionLocal and the APNs settings
    """
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher()
    return _dispatcher
