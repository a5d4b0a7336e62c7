"""
Notification Service.

Every like, comment, reply and follow produces (or refreshes) a notification
for the owner of the content acted upon, and undoing the action removes it.
This module owns those rules and the notification read API.

Side-effect discipline:
Notification writes are secondary to the mutation that triggers them. They
run through `NotificationService._side_effect`, which executes the write in a
SAVEPOINT of the caller's transaction. If the write fails, only the savepoint
is rolled back; the failure is logged and `None` is returned, so the primary
write (and its counter update) still commits and the caller still reports
success. Call sites never wrap notification calls in their own try/except.

Creation rules (`notify`):
1. Actor == recipient: nothing is written.
2. A notification from the same actor to the same recipient, of the same
   type and for the same scope, created within the dedup window, is updated
   in place: new message, unread again, `updated_at` bumped.
3. Otherwise a new unread notification is inserted.

The scope of a notification depends on its type: likes and comments are
scoped by photo, replies and mentions by photo and comment id, follows by the
pair of users only.

Removal rules (`retract`): delete every notification matching the acting
actor, the type and the given scoping keys.
"""

import logging
import math
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy import delete, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core.config import get_settings
from core.exceptions import NotFoundError
from core.logging_config import log_function_call
from core.models import (
    Comment,
    Notification,
    NotificationType,
    Photo,
    User,
    utcnow,
)

logger = logging.getLogger(__name__)

SCOPE_KEYS = {
    NotificationType.LIKE: ("photo_id",),
    NotificationType.COMMENT: ("photo_id",),
    NotificationType.REPLY: ("photo_id", "comment_id"),
    NotificationType.FOLLOW: (),
    NotificationType.MENTION: ("photo_id", "comment_id"),
}

DEFAULT_TITLES = {
    NotificationType.LIKE: "New like",
    NotificationType.COMMENT: "New comment",
    NotificationType.REPLY: "New reply",
    NotificationType.FOLLOW: "New follower",
    NotificationType.MENTION: "New mention",
}


class NotificationService:
    """Creates, deduplicates and retracts notifications; serves the inbox"""

    def __init__(self, dedup_window: Optional[timedelta] = None):
        self.dedup_window = dedup_window or get_settings().notification_dedup_window

    async def _side_effect(
        self,
        session: AsyncSession,
        operation: str,
        action: Callable[[], Awaitable[Any]],
        context: Dict[str, Any],
    ) -> Optional[Any]:
        """Run a secondary write in a SAVEPOINT; on failure log and return None"""
        # Pending primary writes must fail on their own, not inside the savepoint
        await session.flush()

        try:
            async with session.begin_nested():
                return await action()
        except Exception as e:
            logger.error(
                f"Notification {operation} failed: {e}",
                extra={"operation": operation, **context},
                exc_info=True,
            )
            return None

    async def notify(
        self,
        session: AsyncSession,
        *,
        recipient_id: str,
        actor_id: str,
        type: NotificationType,
        message: str,
        title: Optional[str] = None,
        photo_id: Optional[str] = None,
        comment_id: Optional[str] = None,
    ) -> Optional[Notification]:
        """
        Create or refresh the notification for an action.

        Returns the notification row, or None when the action was on the
        actor's own content or the write failed.
        """
        if recipient_id == actor_id:
            logger.debug(f"Skipping {type.value} notification for self-action by {actor_id}")
            return None

        fields = {
            "recipient_id": recipient_id,
            "actor_id": actor_id,
            "type": type,
            "message": message,
            "title": title or DEFAULT_TITLES[type],
            "photo_id": photo_id,
            "comment_id": comment_id,
        }

        return await self._side_effect(
            session,
            "notify",
            lambda: self._upsert(session, **fields),
            {
                "notification_type": type.value,
                "recipient_id": recipient_id,
                "actor_id": actor_id,
                "photo_id": photo_id,
                "comment_id": comment_id,
            },
        )

    async def _upsert(
        self,
        session: AsyncSession,
        *,
        recipient_id: str,
        actor_id: str,
        type: NotificationType,
        message: str,
        title: str,
        photo_id: Optional[str],
        comment_id: Optional[str],
    ) -> Notification:
        now = utcnow()
        scope_values = {"photo_id": photo_id, "comment_id": comment_id}

        conditions = [
            Notification.user_id == recipient_id,
            Notification.action_user_id == actor_id,
            Notification.type == type.value,
            Notification.created_at >= now - self.dedup_window,
        ]
        for key in SCOPE_KEYS[type]:
            column = getattr(Notification, key)
            value = scope_values[key]
            conditions.append(column.is_(None) if value is None else column == value)

        existing = (
            await session.execute(
                select(Notification)
                .where(*conditions)
                .order_by(Notification.created_at.desc())
                .limit(1)
            )
        ).scalars().first()

        if existing is not None:
            existing.message = message
            existing.title = title
            existing.is_read = False
            existing.updated_at = now
            if comment_id is not None:
                existing.comment_id = comment_id
            session.add(existing)
            await session.flush()
            logger.info(
                f"Refreshed {type.value} notification {existing.id} for {recipient_id}"
            )
            return existing

        notification = Notification(
            user_id=recipient_id,
            action_user_id=actor_id,
            type=type.value,
            title=title,
            message=message,
            photo_id=photo_id,
            comment_id=comment_id,
            is_read=False,
            created_at=now,
            updated_at=now,
        )
        session.add(notification)
        await session.flush()
        logger.info(f"Created {type.value} notification {notification.id} for {recipient_id}")
        return notification

    async def retract(
        self,
        session: AsyncSession,
        *,
        actor_id: str,
        type: NotificationType,
        photo_id: Optional[str] = None,
        comment_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
    ) -> Optional[int]:
        """
        Delete the notifications produced by an action that was undone.

        Returns the number of rows deleted, or None when the delete failed.
        """
        conditions = [
            Notification.action_user_id == actor_id,
            Notification.type == type.value,
        ]
        if photo_id is not None:
            conditions.append(Notification.photo_id == photo_id)
        if comment_id is not None:
            conditions.append(Notification.comment_id == comment_id)
        if recipient_id is not None:
            conditions.append(Notification.user_id == recipient_id)

        async def _delete() -> int:
            result = await session.execute(
                delete(Notification)
                .where(*conditions)
                .execution_options(synchronize_session="fetch")
            )
            logger.info(
                f"Deleted {result.rowcount} {type.value} notification(s) for actor {actor_id}"
            )
            return result.rowcount

        return await self._side_effect(
            session,
            "retract",
            _delete,
            {
                "notification_type": type.value,
                "actor_id": actor_id,
                "photo_id": photo_id,
                "comment_id": comment_id,
            },
        )

    @log_function_call(logger)
    async def list_for_user(
        self, session: AsyncSession, user_id: str, page: int = 1, limit: int = 20
    ) -> Dict[str, Any]:
        """A page of the user's notifications, most recently active first"""
        offset = (page - 1) * limit

        rows = (
            await session.execute(
                select(Notification, User, Photo, Comment)
                .join(User, User.id == Notification.action_user_id, isouter=True)
                .join(Photo, Photo.id == Notification.photo_id, isouter=True)
                .join(Comment, Comment.id == Notification.comment_id, isouter=True)
                .where(Notification.user_id == user_id)
                .order_by(Notification.updated_at.desc(), Notification.id)
                .offset(offset)
                .limit(limit)
            )
        ).all()

        total = (
            await session.execute(
                select(func.count(Notification.id)).where(Notification.user_id == user_id)
            )
        ).scalar_one()
        unread = await self.unread_count(session, user_id)

        return {
            "notifications": [
                {
                    "notification": notification,
                    "actor": actor,
                    "photo": photo,
                    "comment": comment,
                }
                for notification, actor, photo, comment in rows
            ],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if limit else 0,
                "has_more": page * limit < total,
            },
            "unread_count": unread,
        }

    async def unread_count(self, session: AsyncSession, user_id: str) -> int:
        return (
            await session.execute(
                select(func.count(Notification.id)).where(
                    Notification.user_id == user_id, Notification.is_read.is_(False)
                )
            )
        ).scalar_one()

    async def set_read_state(
        self, session: AsyncSession, user_id: str, notification_id: str, is_read: bool
    ) -> Notification:
        """Mark one of the user's notifications read or unread"""
        notification = (
            await session.execute(
                select(Notification).where(
                    Notification.id == notification_id, Notification.user_id == user_id
                )
            )
        ).scalars().first()
        if notification is None:
            raise NotFoundError("Notification", notification_id)

        notification.is_read = is_read
        session.add(notification)
        await session.commit()
        return notification

    async def mark_read(
        self, session: AsyncSession, user_id: str, notification_id: str
    ) -> None:
        """Mark a single unread notification read; 404 if absent or already read"""
        result = await session.execute(
            update(Notification)
            .where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount == 0:
            await session.rollback()
            raise NotFoundError("Unread notification", notification_id)
        await session.commit()

    async def mark_all_read(self, session: AsyncSession, user_id: str) -> int:
        result = await session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session="fetch")
        )
        await session.commit()
        logger.info(f"Marked {result.rowcount} notifications as read for {user_id}")
        return result.rowcount

    async def cleanup_orphaned(self, session: AsyncSession) -> Dict[str, int]:
        """Remove notifications whose photo or comment no longer exists"""
        photo_result = await session.execute(
            delete(Notification)
            .where(
                Notification.photo_id.is_not(None),
                Notification.photo_id.not_in(select(Photo.id)),
            )
            .execution_options(synchronize_session=False)
        )
        comment_result = await session.execute(
            delete(Notification)
            .where(
                Notification.comment_id.is_not(None),
                Notification.comment_id.not_in(select(Comment.id)),
            )
            .execution_options(synchronize_session=False)
        )
        await session.commit()

        counts = {
            "photo_notifications": photo_result.rowcount,
            "comment_notifications": comment_result.rowcount,
        }
        logger.info(f"Cleaned up orphaned notifications: {counts}")
        return counts
