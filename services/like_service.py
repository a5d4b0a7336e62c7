"""
Like Service.

A like is a (user, photo) pair; toggling it flips the pair's existence,
moves the photo's like counter by one and creates or retracts the photo
owner's notification, all in one transaction.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core.database import atomic
from core.exceptions import NotFoundError
from core.logging_config import log_function_call
from core.models import Like, NotificationType, Photo
from services.counters import adjust_like_count
from services.notification_service import NotificationService
from services.user_service import UserService

logger = logging.getLogger(__name__)


class LikeService:
    """Toggle likes and report like state"""

    def __init__(self, users: UserService, notifications: NotificationService):
        self.users = users
        self.notifications = notifications

    async def _find_like(
        self, session: AsyncSession, user_id: str, photo_id: str
    ) -> Optional[Like]:
        return (
            await session.execute(
                select(Like).where(Like.user_id == user_id, Like.photo_id == photo_id)
            )
        ).scalars().first()

    @log_function_call(logger)
    async def toggle_like(
        self, session: AsyncSession, actor_id: str, photo_id: str
    ) -> Dict[str, Any]:
        """
        Like the photo if the actor has not liked it yet, otherwise unlike it.

        Returns ``{"liked", "like_count", "message"}``.
        """
        async with atomic(session):
            actor = await self.users.ensure_user(session, actor_id)
            photo = await session.get(Photo, photo_id)
            if photo is None:
                raise NotFoundError("Photo", photo_id)

            existing = await self._find_like(session, actor_id, photo_id)

            if existing is not None:
                await session.execute(delete(Like).where(Like.id == existing.id))
                like_count = await adjust_like_count(session, photo_id, -1)
                await self.notifications.retract(
                    session,
                    actor_id=actor_id,
                    type=NotificationType.LIKE,
                    photo_id=photo_id,
                )
                result = {"liked": False, "like_count": like_count, "message": "Photo unliked"}
            else:
                try:
                    async with session.begin_nested():
                        session.add(Like(user_id=actor_id, photo_id=photo_id))
                except IntegrityError:
                    # A concurrent request inserted the same pair first
                    logger.info(f"Photo {photo_id} already liked by {actor_id}")
                    await session.refresh(photo)
                    return {
                        "liked": True,
                        "like_count": photo.like_count,
                        "message": "Photo already liked",
                    }

                like_count = await adjust_like_count(session, photo_id, 1)
                await self.notifications.notify(
                    session,
                    recipient_id=photo.user_id,
                    actor_id=actor_id,
                    type=NotificationType.LIKE,
                    message=f"{actor.display_name} liked your photo",
                    photo_id=photo_id,
                )
                result = {"liked": True, "like_count": like_count, "message": "Photo liked"}

        logger.info(
            f"{actor_id} {'liked' if result['liked'] else 'unliked'} photo {photo_id}"
            f" (likes: {result['like_count']})"
        )
        return result

    async def is_liked(self, session: AsyncSession, user_id: str, photo_id: str) -> bool:
        return await self._find_like(session, user_id, photo_id) is not None
