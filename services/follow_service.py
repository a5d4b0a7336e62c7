"""
Follow Service.

Directed follow relationships between users, the follower/following lists
and per-user stats. Following notifies the target; unfollowing, or the
target removing a follower, retracts that notification.
"""

import logging
import math
from typing import Any, Dict, Optional

from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core.database import atomic
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.logging_config import log_function_call
from core.models import Follow, Like, NotificationType, Photo, User
from services.notification_service import NotificationService
from services.user_service import UserService, user_summary

logger = logging.getLogger(__name__)

FOLLOW_ACTIONS = ("follow", "unfollow")


class FollowService:
    """Follow graph mutations and queries"""

    def __init__(self, users: UserService, notifications: NotificationService):
        self.users = users
        self.notifications = notifications

    async def _find_follow(
        self, session: AsyncSession, follower_id: str, following_id: str
    ) -> Optional[Follow]:
        return (
            await session.execute(
                select(Follow).where(
                    Follow.follower_id == follower_id,
                    Follow.following_id == following_id,
                )
            )
        ).scalars().first()

    async def set_follow(
        self, session: AsyncSession, actor_id: str, target_id: str, action: str
    ) -> Dict[str, Any]:
        """Dispatch a follow/unfollow request"""
        if action not in FOLLOW_ACTIONS:
            raise ValidationError(
                "action", "action must be 'follow' or 'unfollow'", action
            )
        if action == "follow":
            return await self.follow(session, actor_id, target_id)
        return await self.unfollow(session, actor_id, target_id)

    @log_function_call(logger)
    async def follow(
        self, session: AsyncSession, actor_id: str, target_id: str
    ) -> Dict[str, Any]:
        if actor_id == target_id:
            raise ConflictError("You cannot follow yourself")

        async with atomic(session):
            target = await session.get(User, target_id)
            if target is None:
                raise NotFoundError("User", target_id)
            actor = await self.users.ensure_user(session, actor_id)

            if await self._find_follow(session, actor_id, target_id) is not None:
                raise ConflictError("You are already following this user")

            try:
                async with session.begin_nested():
                    session.add(Follow(follower_id=actor_id, following_id=target_id))
            except IntegrityError:
                raise ConflictError("You are already following this user")

            await self.notifications.notify(
                session,
                recipient_id=target_id,
                actor_id=actor_id,
                type=NotificationType.FOLLOW,
                message=f"{actor.display_name} started following you",
            )

        logger.info(f"{actor_id} followed {target_id}")
        return {
            "is_following": True,
            "message": f"You are now following {target.display_name}",
        }

    @log_function_call(logger)
    async def unfollow(
        self, session: AsyncSession, actor_id: str, target_id: str
    ) -> Dict[str, Any]:
        if actor_id == target_id:
            raise ConflictError("You cannot unfollow yourself")

        async with atomic(session):
            existing = await self._find_follow(session, actor_id, target_id)
            if existing is None:
                raise ConflictError("You are not following this user")

            await self.notifications.retract(
                session,
                actor_id=actor_id,
                type=NotificationType.FOLLOW,
                recipient_id=target_id,
            )
            await session.execute(delete(Follow).where(Follow.id == existing.id))

        logger.info(f"{actor_id} unfollowed {target_id}")
        return {"is_following": False, "message": "Unfollowed successfully"}

    @log_function_call(logger)
    async def remove_follower(
        self, session: AsyncSession, actor_id: str, follower_id: str
    ) -> Dict[str, Any]:
        """Make `follower_id` stop following the actor"""
        if actor_id == follower_id:
            raise ConflictError("You cannot remove yourself as a follower")

        async with atomic(session):
            existing = await self._find_follow(session, follower_id, actor_id)
            if existing is None:
                raise ConflictError("This user is not following you")

            await self.notifications.retract(
                session,
                actor_id=follower_id,
                type=NotificationType.FOLLOW,
                recipient_id=actor_id,
            )
            await session.execute(delete(Follow).where(Follow.id == existing.id))

        logger.info(f"{actor_id} removed follower {follower_id}")
        return {"message": "Follower removed"}

    async def is_following(
        self, session: AsyncSession, follower_id: str, following_id: str
    ) -> bool:
        return await self._find_follow(session, follower_id, following_id) is not None

    async def _list_relations(
        self,
        session: AsyncSession,
        user_id: str,
        viewer_id: Optional[str],
        page: int,
        limit: int,
        followers: bool,
    ) -> Dict[str, Any]:
        if await session.get(User, user_id) is None:
            raise NotFoundError("User", user_id)

        # followers: rows pointing at user_id, listing the follower side
        match_col = Follow.following_id if followers else Follow.follower_id
        other_col = Follow.follower_id if followers else Follow.following_id

        rows = (
            await session.execute(
                select(User, Follow.created_at)
                .join(Follow, other_col == User.id)
                .where(match_col == user_id)
                .order_by(Follow.created_at.desc(), User.id)
                .offset((page - 1) * limit)
                .limit(limit)
            )
        ).all()
        total = (
            await session.execute(select(func.count(Follow.id)).where(match_col == user_id))
        ).scalar_one()

        followed_by_viewer = set()
        if viewer_id and rows:
            followed_by_viewer = set(
                (
                    await session.execute(
                        select(Follow.following_id).where(
                            Follow.follower_id == viewer_id,
                            Follow.following_id.in_([u.id for u, _ in rows]),
                        )
                    )
                ).scalars().all()
            )

        return {
            "users": [
                {
                    **user_summary(user),
                    "bio": user.bio,
                    "is_following": user.id in followed_by_viewer,
                    "followed_at": followed_at,
                }
                for user, followed_at in rows
            ],
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit) if limit else 0,
            "has_more": page * limit < total,
        }

    async def list_followers(
        self,
        session: AsyncSession,
        user_id: str,
        viewer_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        return await self._list_relations(session, user_id, viewer_id, page, limit, True)

    async def list_following(
        self,
        session: AsyncSession,
        user_id: str,
        viewer_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        return await self._list_relations(session, user_id, viewer_id, page, limit, False)

    @log_function_call(logger)
    async def get_stats(
        self, session: AsyncSession, user_id: str, viewer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Photo, like, follower and following counts, computed on read"""

        async def count(stmt) -> int:
            return (await session.execute(stmt)).scalar_one()

        photos = await count(select(func.count(Photo.id)).where(Photo.user_id == user_id))
        likes = await count(
            select(func.count(Like.id))
            .join(Photo, Photo.id == Like.photo_id)
            .where(Photo.user_id == user_id)
        )
        followers = await count(
            select(func.count(Follow.id)).where(Follow.following_id == user_id)
        )
        following = await count(
            select(func.count(Follow.id)).where(Follow.follower_id == user_id)
        )

        is_following = False
        if viewer_id and viewer_id != user_id:
            is_following = await self.is_following(session, viewer_id, user_id)

        return {
            "photos": photos,
            "likes": likes,
            "followers": followers,
            "following": following,
            "is_following": is_following,
        }
