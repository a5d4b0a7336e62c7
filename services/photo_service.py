"""
Photo Service.

Photo creation (from a URL or an uploaded file handed to the image store),
the reverse-chronological feed and per-user photo listings. Every listing
carries the denormalized counters and whether the viewer has liked each
photo.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core.database import atomic
from core.exceptions import NotFoundError, ValidationError
from core.logging_config import log_function_call
from core.models import Follow, Like, Photo, User
from core.validation import InputValidator
from providers.image_store import ImageStore
from services.comment_service import comment_threads
from services.user_service import UserService, user_summary

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")
MAX_UPLOAD_BYTES = 10 * 1024 * 1024
FEED_RECENT_LIKERS = 20


def photo_dict(
    photo: Photo, owner: Optional[User] = None, is_liked: bool = False
) -> Dict[str, Any]:
    return {
        "id": photo.id,
        "url": photo.url,
        "title": photo.title,
        "description": photo.description,
        "tags": photo.tags or [],
        "like_count": photo.like_count,
        "comment_count": photo.comment_count,
        "created_at": photo.created_at,
        "user_id": photo.user_id,
        "user": user_summary(owner),
        "is_liked": is_liked,
    }


class PhotoService:
    """Photo creation and photo listings"""

    def __init__(self, users: UserService, image_store: Optional[ImageStore] = None):
        self.users = users
        self.image_store = image_store

    async def get_photo(self, session: AsyncSession, photo_id: str) -> Photo:
        photo = await session.get(Photo, photo_id)
        if photo is None:
            raise NotFoundError("Photo", photo_id)
        return photo

    @log_function_call(logger)
    async def create_photo(
        self,
        session: AsyncSession,
        owner_id: str,
        url: Any,
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        url = InputValidator.validate_url(url)
        title = InputValidator.optional_text("title", title, max_length=255)
        description = InputValidator.optional_text("description", description)
        tags = InputValidator.validate_tags(tags)

        async with atomic(session):
            owner = await self.users.ensure_user(session, owner_id)
            photo = Photo(
                user_id=owner.id,
                url=url,
                title=title,
                description=description,
                tags=tags,
            )
            session.add(photo)

        logger.info(f"Photo {photo.id} created by {owner_id}")
        return photo_dict(photo, owner)

    async def upload_photo(
        self,
        session: AsyncSession,
        owner_id: str,
        data: bytes,
        filename: str,
        content_type: Optional[str],
        title: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Send the bytes to the image store and save a photo for the returned URL"""
        if not data:
            raise ValidationError("file", "file is required")
        if content_type not in ALLOWED_IMAGE_TYPES:
            raise ValidationError(
                "file",
                f"Unsupported image type; allowed: {', '.join(ALLOWED_IMAGE_TYPES)}",
                content_type,
            )
        if len(data) > MAX_UPLOAD_BYTES:
            raise ValidationError("file", "Image is larger than 10 MB")
        if self.image_store is None:
            raise ValidationError("file", "Image uploads are not configured")

        url = await self.image_store.upload(data, filename, content_type)
        return await self.create_photo(session, owner_id, url, title, description, tags)

    async def _liked_photo_ids(
        self, session: AsyncSession, viewer_id: Optional[str], photo_ids: Iterable[str]
    ) -> Set[str]:
        photo_ids = list(photo_ids)
        if not viewer_id or not photo_ids:
            return set()
        return set(
            (
                await session.execute(
                    select(Like.photo_id).where(
                        Like.user_id == viewer_id, Like.photo_id.in_(photo_ids)
                    )
                )
            ).scalars().all()
        )

    async def _recent_likers(
        self, session: AsyncSession, photo_ids: List[str]
    ) -> Dict[str, List[Dict[str, Any]]]:
        if not photo_ids:
            return {}
        rows = (
            await session.execute(
                select(Like, User)
                .join(User, User.id == Like.user_id)
                .where(Like.photo_id.in_(photo_ids))
                .order_by(Like.created_at.desc(), Like.id)
            )
        ).all()

        likers: Dict[str, List[Dict[str, Any]]] = {}
        for like, user in rows:
            recent = likers.setdefault(like.photo_id, [])
            if len(recent) < FEED_RECENT_LIKERS:
                recent.append(
                    {
                        "id": like.id,
                        "created_at": like.created_at,
                        "user": user_summary(user),
                    }
                )
        return likers

    @log_function_call(logger)
    async def get_feed(
        self,
        session: AsyncSession,
        viewer_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """
        All photos, newest first, one page at a time.

        Each photo carries its most recent likers and its comment threads
        (top-level comments newest first, replies oldest first).
        """
        rows = (
            await session.execute(
                select(Photo, User)
                .join(User, User.id == Photo.user_id)
                .order_by(Photo.created_at.desc(), Photo.id)
                .offset((page - 1) * limit)
                .limit(limit + 1)
            )
        ).all()

        has_more = len(rows) > limit
        rows = rows[:limit]
        photo_ids = [p.id for p, _ in rows]
        liked = await self._liked_photo_ids(session, viewer_id, photo_ids)
        likers = await self._recent_likers(session, photo_ids)
        threads = await comment_threads(session, photo_ids)

        photos = []
        for photo, owner in rows:
            data = photo_dict(photo, owner, photo.id in liked)
            data["likes"] = likers.get(photo.id, [])
            data["comments"] = threads.get(photo.id, [])
            photos.append(data)

        return {"photos": photos, "page": page, "limit": limit, "has_more": has_more}

    async def list_user_photos(
        self, session: AsyncSession, user_id: str, viewer_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        A user's photos, newest first.

        A private account's photos are only listed for the owner and their
        followers; everyone else gets an empty list with `is_private` set.
        """
        owner = await session.get(User, user_id)
        if owner is None:
            raise NotFoundError("User", user_id)

        if owner.is_private and viewer_id != user_id:
            follows = viewer_id and (
                await session.execute(
                    select(Follow.id).where(
                        Follow.follower_id == viewer_id, Follow.following_id == user_id
                    )
                )
            ).first()
            if not follows:
                return {"photos": [], "total": 0, "is_private": True}

        photos = (
            await session.execute(
                select(Photo)
                .where(Photo.user_id == user_id)
                .order_by(Photo.created_at.desc(), Photo.id)
            )
        ).scalars().all()
        liked = await self._liked_photo_ids(session, viewer_id, (p.id for p in photos))

        return {
            "photos": [photo_dict(p, owner, p.id in liked) for p in photos],
            "total": len(photos),
            "is_private": owner.is_private,
        }
