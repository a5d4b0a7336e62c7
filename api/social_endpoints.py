"""
Social Graph Endpoints.

Endpoints Provided:
- `POST /api/follow`: Follow or unfollow a user (`action` = follow | unfollow).
- `GET /api/follow`: Whether the caller follows a user.
- `POST /api/removefollower`: Remove one of the caller's followers.
- `GET /api/followers`, `GET /api/following`: Paged relationship lists, each
  entry flagged with whether the caller follows that user.
- `GET /api/stats`: Photo, like, follower and following counts for a user.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import get_current_user_id, get_optional_user_id
from core.database import get_session
from core.exceptions import ValidationError
from core.validation import InputValidator
from services.follow_service import FollowService

from .dependencies import get_follow_service
from .schemas import (
    FollowRequest,
    FollowResponse,
    FollowStatusResponse,
    MessageResponse,
    RelatedUserPage,
    RemoveFollowerRequest,
    StatsResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Social"])


def _resolve_user_id(user_id: Optional[str], viewer_id: Optional[str]) -> str:
    """Explicit userId, falling back to the caller"""
    resolved = user_id or viewer_id
    if not resolved:
        raise ValidationError("userId", "userId is required")
    return resolved


@router.post("/follow", response_model=FollowResponse)
async def follow_user(
    request: FollowRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    follow_service: FollowService = Depends(get_follow_service),
):
    target_id = InputValidator.require_id("targetUserId", request.target_user_id)
    return await follow_service.set_follow(session, user_id, target_id, request.action)


@router.get("/follow", response_model=FollowStatusResponse)
async def get_follow_status(
    target_user_id: Optional[str] = Query(None, alias="targetUserId"),
    user_id: Optional[str] = Depends(get_optional_user_id),
    session: AsyncSession = Depends(get_session),
    follow_service: FollowService = Depends(get_follow_service),
):
    """Never fails: anything that goes wrong reads as "not following" """
    if not user_id or not target_user_id:
        return {"is_following": False}
    try:
        return {
            "is_following": await follow_service.is_following(
                session, user_id, target_user_id
            )
        }
    except Exception as e:
        logger.warning(
            f"Follow status check failed, reporting not following: {e}",
            extra={"target_user_id": target_user_id},
        )
        return {"is_following": False}


@router.post("/removefollower", response_model=MessageResponse)
async def remove_follower(
    request: RemoveFollowerRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    follow_service: FollowService = Depends(get_follow_service),
):
    follower_id = InputValidator.require_id("followerUserId", request.follower_user_id)
    return await follow_service.remove_follower(session, user_id, follower_id)


@router.get("/followers", response_model=RelatedUserPage)
async def list_followers(
    user_id: Optional[str] = Query(None, alias="userId"),
    page: int = Query(1),
    limit: int = Query(20),
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    session: AsyncSession = Depends(get_session),
    follow_service: FollowService = Depends(get_follow_service),
):
    page, limit = InputValidator.validate_pagination(page, limit)
    return await follow_service.list_followers(
        session, _resolve_user_id(user_id, viewer_id), viewer_id, page, limit
    )


@router.get("/following", response_model=RelatedUserPage)
async def list_following(
    user_id: Optional[str] = Query(None, alias="userId"),
    page: int = Query(1),
    limit: int = Query(20),
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    session: AsyncSession = Depends(get_session),
    follow_service: FollowService = Depends(get_follow_service),
):
    page, limit = InputValidator.validate_pagination(page, limit)
    return await follow_service.list_following(
        session, _resolve_user_id(user_id, viewer_id), viewer_id, page, limit
    )


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    user_id: Optional[str] = Query(None, alias="userId"),
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    session: AsyncSession = Depends(get_session),
    follow_service: FollowService = Depends(get_follow_service),
):
    return await follow_service.get_stats(
        session, _resolve_user_id(user_id, viewer_id), viewer_id
    )
