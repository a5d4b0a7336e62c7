"""
Maintenance Service.

Repair jobs run by operators through the maintenance API: recomputing the
denormalized photo counters and removing notifications whose targets are
gone.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.database import atomic
from services.counters import recount_photo_counters
from services.notification_service import NotificationService

logger = logging.getLogger(__name__)


class MaintenanceService:
    def __init__(self, notifications: NotificationService):
        self.notifications = notifications

    async def recount_counters(
        self, session: AsyncSession, photo_ids: Optional[List[str]] = None
    ) -> Dict[str, int]:
        async with atomic(session):
            result = await recount_photo_counters(session, photo_ids)
        logger.info(
            f"Counter recount: checked {result['checked']}, corrected {result['corrected']}"
        )
        return result

    async def cleanup_notifications(self, session: AsyncSession) -> Dict[str, int]:
        return await self.notifications.cleanup_orphaned(session)
