"""
Engagement Endpoints: likes, comments and replies.

Endpoints Provided:
- `POST /api/like`: Toggle the caller's like on a photo.
- `GET /api/like`: Whether the caller has liked a photo.
- `GET /api/comments`: A photo's comments with their replies.
- `POST /api/comments`: Comment on a photo (or reply, when `parentId` is set).
- `DELETE /api/comments`: Delete a comment with its replies.
- `POST /api/reply`: Reply to a top-level comment.
- `DELETE /api/reply`: Delete a reply.

Every mutation requires an authenticated caller and runs as one transaction
in the service layer; notification bookkeeping happens there as a
best-effort side effect and never changes the response.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import get_current_user_id, get_optional_user_id
from core.database import get_session
from core.validation import InputValidator
from services.comment_service import CommentService
from services.like_service import LikeService

from .dependencies import get_comment_service, get_like_service
from .schemas import (
    CommentCreateRequest,
    CommentListResponse,
    CommentResponse,
    DeleteResponse,
    LikeRequest,
    LikeResponse,
    LikeStatusResponse,
    ReplyCreateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Engagement"])


@router.post("/like", response_model=LikeResponse)
async def toggle_like(
    request: LikeRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    like_service: LikeService = Depends(get_like_service),
):
    photo_id = InputValidator.require_id("photoId", request.photo_id)
    return await like_service.toggle_like(session, user_id, photo_id)


@router.get("/like", response_model=LikeStatusResponse)
async def get_like_status(
    photo_id: Optional[str] = Query(None, alias="photoId"),
    user_id: Optional[str] = Depends(get_optional_user_id),
    session: AsyncSession = Depends(get_session),
    like_service: LikeService = Depends(get_like_service),
):
    photo_id = InputValidator.require_id("photoId", photo_id)
    if user_id is None:
        return {"is_liked": False}
    return {"is_liked": await like_service.is_liked(session, user_id, photo_id)}


@router.get("/comments", response_model=CommentListResponse)
async def list_comments(
    photo_id: Optional[str] = Query(None, alias="photoId"),
    session: AsyncSession = Depends(get_session),
    comment_service: CommentService = Depends(get_comment_service),
):
    photo_id = InputValidator.require_id("photoId", photo_id)
    comments = await comment_service.list_comments(session, photo_id)
    return {"comments": comments, "total": len(comments)}


@router.post("/comments", response_model=CommentResponse, status_code=201)
async def create_comment(
    request: CommentCreateRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    comment_service: CommentService = Depends(get_comment_service),
):
    photo_id = InputValidator.require_id("photoId", request.photo_id)
    return await comment_service.create_comment(
        session, user_id, photo_id, request.text, parent_id=request.parent_id
    )


@router.delete("/comments", response_model=DeleteResponse)
async def delete_comment(
    comment_id: Optional[str] = Query(None, alias="commentId"),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    comment_service: CommentService = Depends(get_comment_service),
):
    comment_id = InputValidator.require_id("commentId", comment_id)
    return await comment_service.delete_comment(session, user_id, comment_id)


@router.post("/reply", response_model=CommentResponse, status_code=201)
async def create_reply(
    request: ReplyCreateRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    comment_service: CommentService = Depends(get_comment_service),
):
    comment_id = InputValidator.require_id("commentId", request.comment_id)
    return await comment_service.create_reply(session, user_id, comment_id, request.text)


@router.delete("/reply", response_model=DeleteResponse)
async def delete_reply(
    reply_id: Optional[str] = Query(None, alias="replyId"),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    comment_service: CommentService = Depends(get_comment_service),
):
    reply_id = InputValidator.require_id("replyId", reply_id)
    return await comment_service.delete_reply(session, user_id, reply_id)
