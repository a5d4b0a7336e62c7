"""
Administrative Endpoints.

Endpoints Provided:
- `POST /api/webhooks/auth`: Account lifecycle events from the identity
  provider, authenticated by their Svix signature.
- `POST /api/maintenance/recount-counters`: Recompute photo like/comment
  counters from the relation tables.
- `POST /api/maintenance/cleanup-notifications`: Delete notifications whose
  photo or comment is gone.

The maintenance router requires the `X-API-Key` header.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import get_webhook_verifier, verify_api_key
from core.database import get_session
from services.maintenance_service import MaintenanceService
from services.user_service import UserService

from .dependencies import get_maintenance_service, get_user_service
from .schemas import CleanupResponse, RecountRequest, RecountResponse, WebhookResponse

logger = logging.getLogger(__name__)

webhook_router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])
maintenance_router = APIRouter(
    prefix="/api/maintenance",
    tags=["Maintenance"],
    dependencies=[Depends(verify_api_key)],
)


@webhook_router.post("/auth", response_model=WebhookResponse)
async def identity_webhook(
    request: Request,
    session: AsyncSession = Depends(get_session),
    user_service: UserService = Depends(get_user_service),
):
    body = await request.body()
    event = get_webhook_verifier().verify(body, request.headers)
    logger.info(
        f"Identity webhook received: {event.get('type')}",
        extra={
            "webhook_id": request.headers.get("svix-id")
            or request.headers.get("webhook-id")
        },
    )
    result = await user_service.handle_identity_event(session, event)
    return {"result": result}


@maintenance_router.post("/recount-counters", response_model=RecountResponse)
async def recount_counters(
    request: Optional[RecountRequest] = None,
    session: AsyncSession = Depends(get_session),
    maintenance_service: MaintenanceService = Depends(get_maintenance_service),
):
    photo_ids = request.photo_ids if request else None
    return await maintenance_service.recount_counters(session, photo_ids)


@maintenance_router.post("/cleanup-notifications", response_model=CleanupResponse)
async def cleanup_notifications(
    session: AsyncSession = Depends(get_session),
    maintenance_service: MaintenanceService = Depends(get_maintenance_service),
):
    return await maintenance_service.cleanup_notifications(session)
