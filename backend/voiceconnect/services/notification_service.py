"""
VoiceConnect Backend: Notification Service
============================================

What:  Fire-and-forget notifications for social events (new connection
       request, accepted request, contact reveal, new post, like, comment).
How:   An in-process FIFO queue drained by a single asyncio task.

    send() ──append──▶ [queue] ──process_queue()──▶ preferences check
                                                    ──▶ build title/message
                                                    ──▶ INSERT notifications

Failures:
    A failed notification (deleted user, DB hiccup) is logged and marked
    failed. It never reaches the request that triggered it.

Sessions:
    The drain task outlives the request, so it opens its own session from
    `async_session_factory` (or an injected factory in tests) instead of
    borrowing the request's.

    send(..., db=session) stages the item on that session instead of
    queueing it. It joins the queue when the session commits and is
    dropped on rollback, so nobody hears about a like or comment that
    never landed.

Limits:
    Single process, no persistence of the queue itself, no retry. Items
    still queued when the process dies are lost.
"""

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, Optional

from sqlalchemy import event, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from voiceconnect.database import async_session_factory
from voiceconnect.exceptions import DatabaseError, NotFoundError, VoiceConnectError
from voiceconnect.models.base import utcnow
from voiceconnect.models.notification import (
    NOTIFICATION_CONNECTION_ACCEPTED,
    NOTIFICATION_CONNECTION_REQUEST,
    NOTIFICATION_CONTACT_REVEAL_ACCEPTED,
    NOTIFICATION_CONTACT_REVEAL_REQUEST,
    NOTIFICATION_NEW_POST,
    NOTIFICATION_POST_COMMENT,
    NOTIFICATION_POST_LIKE,
    Notification,
)
from voiceconnect.models.user import User
from voiceconnect.schemas.common import PaginationParams
from voiceconnect.schemas.notification import NotificationList, NotificationResponse

logger = logging.getLogger(__name__)


# Which User flag gates which notification type
PREFERENCE_FLAGS: Dict[str, str] = {
    NOTIFICATION_CONNECTION_REQUEST: "notify_new_connection",
    NOTIFICATION_CONNECTION_ACCEPTED: "notify_new_connection",
    NOTIFICATION_CONTACT_REVEAL_REQUEST: "notify_contact_request",
    NOTIFICATION_CONTACT_REVEAL_ACCEPTED: "notify_contact_request",
    NOTIFICATION_NEW_POST: "notify_new_post",
    NOTIFICATION_POST_COMMENT: "notify_new_post",
    NOTIFICATION_POST_LIKE: "notify_new_post",
}

# Session.info key for notifications waiting on a commit
STAGED_KEY = "staged_notifications"


@dataclass
class QueuedNotification:
    user_id: uuid.UUID
    type: str
    data: Dict[str, Any]
    created_at: datetime = field(default_factory=utcnow)
    status: str = "pending"  # pending → sent | skipped | failed
    error: Optional[str] = None


def build_content(notification_type: str, data: Dict[str, Any]) -> Dict[str, str]:
    """
    Returns {title, message} for a notification.

    `data` carries the actor's display name (actor_name) and, where
    relevant, the request message or post title.
    """
    actor = data.get("actor_name") or "Someone"
    note = data.get("message")
    post_title = data.get("post_title")

    if notification_type == NOTIFICATION_CONNECTION_REQUEST:
        title = "New Connection Request"
        message = f"{actor} sent you a connection request"
        if note:
            message += f': "{note}"'
    elif notification_type == NOTIFICATION_CONNECTION_ACCEPTED:
        title = "Connection Accepted"
        message = f"{actor} accepted your connection request"
    elif notification_type == NOTIFICATION_CONTACT_REVEAL_REQUEST:
        title = "Contact Reveal Request"
        message = f"{actor} wants to exchange contact information"
        if note:
            message += f': "{note}"'
    elif notification_type == NOTIFICATION_CONTACT_REVEAL_ACCEPTED:
        title = "Contact Information Revealed"
        message = f"{actor} shared their contact information with you"
    elif notification_type == NOTIFICATION_NEW_POST:
        title = "New Audio Post"
        message = f'{actor} posted: "{post_title}"' if post_title else (
            f"{actor} shared a new audio post"
        )
    elif notification_type == NOTIFICATION_POST_COMMENT:
        title = "New Comment on Your Post"
        message = f'{actor} commented on: "{post_title}"' if post_title else (
            f"{actor} commented on your post"
        )
    elif notification_type == NOTIFICATION_POST_LIKE:
        title = "New Like on Your Post"
        message = f'{actor} liked your post: "{post_title}"' if post_title else (
            f"{actor} liked your post"
        )
    else:
        raise ValueError(f"Unknown notification type '{notification_type}'")

    return {"title": title, "message": message[:500]}


class NotificationService:
    """
    Queue-backed notification dispatcher plus the read side used by
    /api/notifications.
    """

    def __init__(self, session_factory: Optional[Callable[[], AsyncSession]] = None):
        self._queue: Deque[QueuedNotification] = deque()
        self._processing = False
        self._task: Optional[asyncio.Task] = None
        self._session_factory = session_factory or async_session_factory

    @property
    def pending(self) -> int:
        return len(self._queue)

    # ── Write side ────────────────────────────────────────────────────────

    def send(
        self,
        user_id: uuid.UUID,
        notification_type: str,
        data: Optional[Dict[str, Any]] = None,
        db: Optional[AsyncSession] = None,
    ) -> QueuedNotification:
        """
        Enqueues a notification and starts the drain task if none is running.

        With `db`, the item waits for that session's commit first.
        Never raises: callers are request handlers that already succeeded.
        """
        item = QueuedNotification(user_id=user_id, type=notification_type, data=data or {})
        if db is not None:
            db.sync_session.info.setdefault(STAGED_KEY, []).append((self, item))
            logger.debug("Notification staged until commit: type=%s user=%s", notification_type, user_id)
            return item

        self._enqueue(item)
        return item

    def _enqueue(self, item: QueuedNotification) -> None:
        self._queue.append(item)
        logger.info("Notification queued: type=%s user=%s", item.type, item.user_id)

        if self._task is None or self._task.done():
            try:
                self._task = asyncio.get_running_loop().create_task(self.process_queue())
            except RuntimeError:
                # No running loop (sync caller); the next send() or drain() picks it up
                logger.debug("No running event loop; notification left queued")

    async def process_queue(self) -> None:
        """Drains the queue in FIFO order. Only one drain runs at a time."""
        if self._processing or not self._queue:
            return

        self._processing = True
        try:
            while self._queue:
                item = self._queue.popleft()
                await self._process_one(item)
        finally:
            self._processing = False

    async def drain(self) -> None:
        """Waits for queued notifications to be written (shutdown, tests)."""
        while self._task is not None and not self._task.done():
            await self._task
        await self.process_queue()

    async def _process_one(self, item: QueuedNotification) -> None:
        try:
            async with self._session_factory() as session:
                user = await session.get(User, item.user_id)
                if user is None or not user.is_active:
                    raise NotFoundError(resource="user", resource_id=str(item.user_id))

                flag = PREFERENCE_FLAGS.get(item.type)
                if flag and not getattr(user, flag, True):
                    item.status = "skipped"
                    logger.info(
                        "Notification skipped by preference: type=%s user=%s",
                        item.type,
                        item.user_id,
                    )
                    return

                content = build_content(item.type, item.data)
                session.add(
                    Notification(
                        user_id=item.user_id,
                        type=item.type,
                        title=content["title"],
                        message=content["message"],
                        data={k: v for k, v in item.data.items() if v is not None},
                    )
                )
                await session.commit()

            item.status = "sent"
            logger.info("Notification delivered: type=%s user=%s", item.type, item.user_id)

        except Exception as e:
            item.status = "failed"
            item.error = str(e)
            logger.error(
                "Failed to deliver notification: type=%s user=%s error=%s",
                item.type,
                item.user_id,
                str(e),
            )

    # ── Read side ─────────────────────────────────────────────────────────

    async def list_notifications(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        page: PaginationParams,
        unread_only: bool = False,
    ) -> NotificationList:
        try:
            conditions = [Notification.user_id == user_id]
            if unread_only:
                conditions.append(Notification.is_read.is_(False))

            total = (
                await db.execute(select(func.count()).select_from(Notification).where(*conditions))
            ).scalar_one()
            rows = (
                await db.execute(
                    select(Notification)
                    .where(*conditions)
                    .order_by(Notification.created_at.desc())
                    .offset(page.skip)
                    .limit(page.limit)
                )
            ).scalars().all()
            unread = await self.unread_count(db, user_id)
        except VoiceConnectError:
            raise
        except Exception as e:
            logger.error("Failed to list notifications: %s", str(e), exc_info=True)
            raise DatabaseError(context={"original_error": type(e).__name__})

        return NotificationList(
            notifications=[NotificationResponse.model_validate(n) for n in rows],
            unread_count=unread,
            total=total,
            limit=page.limit,
            skip=page.skip,
        )

    async def unread_count(self, db: AsyncSession, user_id: uuid.UUID) -> int:
        result = await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        )
        return result.scalar_one()

    async def mark_read(
        self, db: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID
    ) -> NotificationResponse:
        notification = await db.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError(resource="notification", resource_id=str(notification_id))

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            await db.flush()
        return NotificationResponse.model_validate(notification)

    async def mark_all_read(self, db: AsyncSession, user_id: uuid.UUID) -> int:
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=utcnow())
        )
        return result.rowcount or 0


# Module-level singleton
notification_service = NotificationService()


@event.listens_for(Session, "after_commit")
def _release_staged(session: Session) -> None:
    for service, item in session.info.pop(STAGED_KEY, []):
        service._enqueue(item)


@event.listens_for(Session, "after_rollback")
def _discard_staged(session: Session) -> None:
    dropped = session.info.pop(STAGED_KEY, [])
    if dropped:
        logger.info("Dropped %d notifications from a rolled back transaction", len(dropped))
