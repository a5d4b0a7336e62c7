"""
Notification Endpoints.

Endpoints Provided:
- `GET /api/notifications`: The caller's notifications, most recently active
  first, with the unread count.
- `PATCH /api/notifications/{notification_id}`: Set read/unread.
- `POST /api/notifications/{notification_id}/read`: Mark one unread
  notification read.
- `POST /api/notifications/read-all`: Mark everything read.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import get_current_user_id
from core.database import get_session
from core.validation import InputValidator
from services.notification_service import NotificationService
from services.user_service import user_summary

from .dependencies import get_notification_service
from .schemas import (
    MarkAllReadResponse,
    MessageResponse,
    NotificationListResponse,
    NotificationResponse,
    NotificationUpdateRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


def _notification_dict(entry: Dict[str, Any]) -> Dict[str, Any]:
    notification = entry["notification"]
    photo = entry.get("photo")
    comment = entry.get("comment")
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "is_read": notification.is_read,
        "created_at": notification.created_at,
        "updated_at": notification.updated_at,
        "actor": user_summary(entry.get("actor")),
        "photo": {"id": photo.id, "url": photo.url, "title": photo.title} if photo else None,
        "comment": {"id": comment.id, "text": comment.content} if comment else None,
    }


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    page: int = Query(1),
    limit: int = Query(20),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    notification_service: NotificationService = Depends(get_notification_service),
):
    page, limit = InputValidator.validate_pagination(page, limit)
    result = await notification_service.list_for_user(session, user_id, page, limit)
    return {
        "notifications": [_notification_dict(e) for e in result["notifications"]],
        "pagination": result["pagination"],
        "unread_count": result["unread_count"],
    }


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    notification_service: NotificationService = Depends(get_notification_service),
):
    updated = await notification_service.mark_all_read(session, user_id)
    return {"updated": updated}


@router.patch("/{notification_id}", response_model=NotificationResponse)
async def update_notification(
    notification_id: str,
    request: NotificationUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    notification_service: NotificationService = Depends(get_notification_service),
):
    notification = await notification_service.set_read_state(
        session, user_id, notification_id, request.is_read
    )
    return _notification_dict({"notification": notification})


@router.post("/{notification_id}/read", response_model=MessageResponse)
async def mark_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    notification_service: NotificationService = Depends(get_notification_service),
):
    await notification_service.mark_read(session, user_id, notification_id)
    return {"message": "Notification marked as read"}
