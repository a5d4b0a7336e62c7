"""
Photo Endpoints.

Endpoints Provided:
- `GET /api/feed`: All photos, newest first, paged.
- `GET /api/photos`: One user's photos.
- `POST /api/photos`: Create a photo from an already hosted image URL.
- `POST /api/photos/upload`: Upload an image file to the image store and
  create a photo for the returned URL.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import get_current_user_id, get_optional_user_id
from core.database import get_session
from core.exceptions import ValidationError
from core.validation import InputValidator
from services.photo_service import PhotoService

from .dependencies import get_photo_service
from .schemas import FeedResponse, PhotoCreateRequest, PhotoResponse, UserPhotosResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Photos"])


@router.get("/feed", response_model=FeedResponse)
async def get_feed(
    page: int = Query(1),
    limit: int = Query(20),
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    session: AsyncSession = Depends(get_session),
    photo_service: PhotoService = Depends(get_photo_service),
):
    page, limit = InputValidator.validate_pagination(page, limit)
    return await photo_service.get_feed(session, viewer_id, page, limit)


@router.get("/photos", response_model=UserPhotosResponse)
async def list_user_photos(
    user_id: Optional[str] = Query(None, alias="userId"),
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    session: AsyncSession = Depends(get_session),
    photo_service: PhotoService = Depends(get_photo_service),
):
    user_id = user_id or viewer_id
    if not user_id:
        raise ValidationError("userId", "userId is required")
    return await photo_service.list_user_photos(session, user_id, viewer_id)


@router.post("/photos", response_model=PhotoResponse, status_code=201)
async def create_photo(
    request: PhotoCreateRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    photo_service: PhotoService = Depends(get_photo_service),
):
    return await photo_service.create_photo(
        session,
        user_id,
        request.url,
        title=request.title,
        description=request.description,
        tags=request.tags,
    )


@router.post("/photos/upload", response_model=PhotoResponse, status_code=201)
async def upload_photo(
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    photo_service: PhotoService = Depends(get_photo_service),
):
    tag_list: List[str] = [t for t in (tags or "").split(",") if t.strip()]
    data = await file.read()
    return await photo_service.upload_photo(
        session,
        user_id,
        data,
        file.filename or "upload",
        file.content_type,
        title=title,
        description=description,
        tags=tag_list,
    )
