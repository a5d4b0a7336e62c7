"""
User Service.

The identity provider owns accounts; this service keeps the local `users`
mirror that every other table points at.

Key Responsibilities:
- `ensure_user`: Lazily mirror an authenticated actor the first time they
  act, so foreign keys from likes, comments, follows and notifications
  always resolve.
- Profile reads and updates, username availability and user search.
- Identity-provider lifecycle events (`user.created`, `user.updated`,
  `user.deleted`). Deleting a user cascades to everything they own and then
  recounts the counters of other users' photos they had liked or commented.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core.database import atomic
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.logging_config import log_function_call
from core.models import Comment, Follow, Like, Photo, User, new_id, utcnow
from core.validation import InputValidator
from services.counters import recount_photo_counters

logger = logging.getLogger(__name__)

SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 20

PROFILE_FIELDS = ("name", "username", "email", "bio", "avatar", "location", "is_private")


def user_summary(user: Optional[User]) -> Optional[Dict[str, Any]]:
    """The compact author block embedded in comments, photos and notifications"""
    if user is None:
        return None
    return {
        "id": user.id,
        "name": user.display_name,
        "username": user.username,
        "avatar": user.avatar,
    }


class UserService:
    """Local user mirror, profiles and identity-provider events"""

    async def ensure_user(self, session: AsyncSession, user_id: str) -> User:
        """Return the actor's row, creating a placeholder if it does not exist yet"""
        user = await session.get(User, user_id)
        if user is not None:
            return user

        username = await self._available_username(session, f"user_{user_id[-8:]}")
        user = User(id=user_id, username=username)
        try:
            async with session.begin_nested():
                session.add(user)
        except IntegrityError:
            # Another request mirrored the same actor first
            user = await session.get(User, user_id)
            if user is None:
                raise
            return user

        logger.info(f"Mirrored new user {user_id} as @{username}")
        return user

    async def _available_username(self, session: AsyncSession, base: str) -> str:
        candidate = base
        while await self._username_taken(session, candidate):
            candidate = f"{base}_{new_id()[:4]}"
        return candidate

    async def _username_taken(
        self, session: AsyncSession, username: str, exclude_user_id: Optional[str] = None
    ) -> bool:
        stmt = select(User.id).where(func.lower(User.username) == username.lower())
        if exclude_user_id:
            stmt = stmt.where(User.id != exclude_user_id)
        return (await session.execute(stmt)).first() is not None

    async def get_user(self, session: AsyncSession, user_id: str) -> User:
        user = await session.get(User, user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def get_profile(self, session: AsyncSession, user_id: str) -> Dict[str, Any]:
        """Profile of a user; an unmirrored actor gets an empty default profile"""
        user = await session.get(User, user_id)
        if user is None:
            return {
                "id": user_id,
                "name": None,
                "username": None,
                "email": None,
                "bio": None,
                "avatar": None,
                "location": None,
                "is_private": False,
            }
        return self.profile_dict(user)

    @staticmethod
    def profile_dict(user: User) -> Dict[str, Any]:
        return {
            "id": user.id,
            "name": user.name,
            "username": user.username,
            "email": user.email,
            "bio": user.bio,
            "avatar": user.avatar,
            "location": user.location,
            "is_private": user.is_private,
        }

    @log_function_call(logger)
    async def update_profile(
        self, session: AsyncSession, user_id: str, **changes: Any
    ) -> Dict[str, Any]:
        """
        Update the actor's profile, creating the row if it is absent.

        Only keys in PROFILE_FIELDS are applied; None values are ignored.
        A username or email already used by someone else is a ConflictError.
        """
        changes = {k: v for k, v in changes.items() if k in PROFILE_FIELDS and v is not None}

        if "username" in changes:
            changes["username"] = InputValidator.validate_username(changes["username"])
        if "email" in changes and changes["email"]:
            changes["email"] = InputValidator.validate_email(changes["email"])
        for field in ("name", "bio", "location"):
            if field in changes:
                changes[field] = InputValidator.optional_text(field, changes[field])
        if "avatar" in changes and changes["avatar"]:
            changes["avatar"] = InputValidator.validate_url(changes["avatar"])

        async with atomic(session):
            user = await self.ensure_user(session, user_id)

            if "username" in changes and await self._username_taken(
                session, changes["username"], exclude_user_id=user_id
            ):
                raise ConflictError(
                    "Username is already taken", {"field": "username"}
                )

            for key, value in changes.items():
                setattr(user, key, value)
            user.updated_at = utcnow()
            session.add(user)

            try:
                await session.flush()
            except IntegrityError as e:
                raise ConflictError(
                    "Username or email is already in use", {"reason": str(e.orig)}
                )

        return self.profile_dict(user)

    async def check_username(
        self, session: AsyncSession, username: str, user_id: Optional[str] = None
    ) -> bool:
        """True when the username is free (or already belongs to `user_id`)"""
        if not username or not username.strip():
            raise ValidationError("username", "username is required")
        return not await self._username_taken(
            session, username.strip(), exclude_user_id=user_id
        )

    @log_function_call(logger)
    async def search_users(
        self, session: AsyncSession, query: str, viewer_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """Case-insensitive substring search on name or username"""
        query = (query or "").strip()
        if len(query) < SEARCH_MIN_LENGTH:
            return []

        pattern = f"%{query.lower()}%"
        users = (
            await session.execute(
                select(User)
                .where(
                    or_(
                        func.lower(User.name).like(pattern),
                        func.lower(User.username).like(pattern),
                    )
                )
                .order_by(func.coalesce(User.name, User.username), User.username)
                .limit(SEARCH_LIMIT)
            )
        ).scalars().all()

        if not users:
            return []

        ids = [u.id for u in users]
        photo_counts = dict(
            (
                await session.execute(
                    select(Photo.user_id, func.count(Photo.id))
                    .where(Photo.user_id.in_(ids))
                    .group_by(Photo.user_id)
                )
            ).all()
        )
        follower_counts = dict(
            (
                await session.execute(
                    select(Follow.following_id, func.count(Follow.id))
                    .where(Follow.following_id.in_(ids))
                    .group_by(Follow.following_id)
                )
            ).all()
        )
        followed_by_viewer = set()
        if viewer_id:
            followed_by_viewer = set(
                (
                    await session.execute(
                        select(Follow.following_id).where(
                            Follow.follower_id == viewer_id,
                            Follow.following_id.in_(ids),
                        )
                    )
                ).scalars().all()
            )

        return [
            {
                **user_summary(user),
                "bio": user.bio,
                "photos": photo_counts.get(user.id, 0),
                "followers": follower_counts.get(user.id, 0),
                "is_following": user.id in followed_by_viewer,
            }
            for user in users
        ]

    async def handle_identity_event(
        self, session: AsyncSession, event: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Apply a verified identity-provider webhook event"""
        event_type = event.get("type")
        data = event.get("data") or {}
        user_id = data.get("id")
        if not event_type or not user_id:
            raise ValidationError("event", "Webhook event needs a type and data.id")

        if event_type in ("user.created", "user.updated"):
            await self.upsert_from_identity(session, user_id, data)
            return {"handled": True, "type": event_type, "user_id": user_id}
        if event_type == "user.deleted":
            if await session.get(User, user_id) is None:
                logger.info(f"Delete event for unknown user {user_id}; nothing to do")
                return {"handled": False, "type": event_type, "user_id": user_id}
            recount = await self.delete_user(session, user_id)
            return {"handled": True, "type": event_type, "user_id": user_id, **recount}

        logger.info(f"Ignoring identity event of type {event_type}")
        return {"handled": False, "type": event_type}

    async def upsert_from_identity(
        self, session: AsyncSession, user_id: str, data: Dict[str, Any]
    ) -> User:
        first = data.get("first_name") or ""
        last = data.get("last_name") or ""
        name = f"{first} {last}".strip() or None

        email = data.get("email") or ""
        addresses = data.get("email_addresses") or []
        if not email and addresses:
            email = addresses[0].get("email_address") or ""

        async with atomic(session):
            user = await self.ensure_user(session, user_id)
            if data.get("username") and not await self._username_taken(
                session, data["username"], exclude_user_id=user_id
            ):
                user.username = data["username"]
            if name:
                user.name = name
            if email:
                user.email = email
            if data.get("image_url"):
                user.avatar = data["image_url"]
            user.updated_at = utcnow()
            session.add(user)

        logger.info(f"Synchronized user {user_id} from identity provider")
        return user

    @log_function_call(logger)
    async def delete_user(self, session: AsyncSession, user_id: str) -> Dict[str, int]:
        """
        Delete a user and everything they own.

        Foreign keys cascade to their photos, likes, comments (and replies to
        those comments), follows and notifications. Counters on other users'
        photos that the deleted user had liked or commented are recounted.
        """
        async with atomic(session):
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError("User", user_id)

            liked = select(Like.photo_id).where(Like.user_id == user_id)
            commented = select(Comment.photo_id).where(Comment.user_id == user_id)
            affected = (
                await session.execute(
                    select(Photo.id).where(
                        Photo.user_id != user_id,
                        or_(Photo.id.in_(liked), Photo.id.in_(commented)),
                    )
                )
            ).scalars().all()

            await session.delete(user)
            await session.flush()
            # Cascaded rows were removed by the database, not the ORM
            session.expire_all()

            result = await recount_photo_counters(session, affected)

        logger.info(
            f"Deleted user {user_id}; recounted {result['checked']} affected photo(s)"
        )
        return result
