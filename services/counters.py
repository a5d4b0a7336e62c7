"""
Photo counter maintenance.

`Photo.like_count` and `Photo.comment_count` are denormalized so the feed
never has to aggregate. Every write path that inserts or deletes a Like or a
Comment adjusts the matching counter in the same transaction, with a single
atomic UPDATE clamped at zero. `recount_photo_counters` recomputes both
counters from the relation tables to repair drift.
"""

import logging
from typing import Dict, Iterable, Optional

from sqlalchemy import case, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from core.exceptions import NotFoundError
from core.models import Comment, Like, Photo

logger = logging.getLogger(__name__)


async def _adjust_counter(
    session: AsyncSession, column_name: str, photo_id: str, delta: int
) -> int:
    column = getattr(Photo, column_name)
    clamped = case((column + delta < 0, 0), else_=column + delta)

    result = await session.execute(
        update(Photo)
        .where(Photo.id == photo_id)
        .values({column_name: clamped})
        .execution_options(synchronize_session="fetch")
    )
    if result.rowcount == 0:
        raise NotFoundError("Photo", photo_id)

    new_value = (
        await session.execute(select(column).where(Photo.id == photo_id))
    ).scalar_one()
    logger.debug(f"{column_name} for photo {photo_id} adjusted by {delta} -> {new_value}")
    return new_value


async def adjust_like_count(session: AsyncSession, photo_id: str, delta: int) -> int:
    """Add `delta` to the photo's like counter (never below 0); returns the new value"""
    return await _adjust_counter(session, "like_count", photo_id, delta)


async def adjust_comment_count(
    session: AsyncSession, photo_id: str, delta: int
) -> int:
    """Add `delta` to the photo's comment counter (never below 0); returns the new value"""
    return await _adjust_counter(session, "comment_count", photo_id, delta)


async def recount_photo_counters(
    session: AsyncSession, photo_ids: Optional[Iterable[str]] = None
) -> Dict[str, int]:
    """
    Recompute like/comment counters from the Like and Comment tables.

    Args:
        photo_ids: Restrict the recount to these photos; all photos when None.

    Returns:
        ``{"checked": <photos examined>, "corrected": <photos that had drifted>}``
    """
    like_total = (
        select(func.count(Like.id))
        .where(Like.photo_id == Photo.id)
        .correlate(Photo)
        .scalar_subquery()
    )
    comment_total = (
        select(func.count(Comment.id))
        .where(Comment.photo_id == Photo.id)
        .correlate(Photo)
        .scalar_subquery()
    )

    scope = []
    if photo_ids is not None:
        ids = list(set(photo_ids))
        if not ids:
            return {"checked": 0, "corrected": 0}
        scope.append(Photo.id.in_(ids))

    checked = (
        await session.execute(select(func.count(Photo.id)).where(*scope))
    ).scalar_one()
    drifted = (
        await session.execute(
            select(func.count(Photo.id)).where(
                *scope,
                or_(Photo.like_count != like_total, Photo.comment_count != comment_total),
            )
        )
    ).scalar_one()

    if drifted:
        await session.execute(
            update(Photo)
            .where(*scope)
            .values(like_count=like_total, comment_count=comment_total)
            .execution_options(synchronize_session="fetch")
        )
        logger.warning(f"Corrected drifted counters on {drifted} photo(s)")

    return {"checked": checked, "corrected": drifted}
