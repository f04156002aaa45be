from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_actor
from core.get_db import get_db_async
from core.safe_handler import safe_handler
from policy.authorization import ActorContext
from services.admin_service import AdminService

router = APIRouter(tags=["Admin"])


@cbv(router)
class AdminRoutes:
    db: AsyncSession = Depends(get_db_async)
    actor: ActorContext = Depends(get_current_actor)

    @router.post("/admin/recurrence/run")
    @safe_handler
    async def run_recurrence(self):
        return await AdminService(self.db).run_recurrence(self.actor)

    @router.post("/admin/side-effects/drain")
    @safe_handler
    async def drain_side_effects(self, limit: Optional[int] = Query(None, ge=1, le=500)):
        return await AdminService(self.db).drain_side_effects(self.actor, limit)

    @router.post("/admin/invites/expire")
    @safe_handler
    async def expire_invites(self):
        return await AdminService(self.db).expire_invites(self.actor)

    @router.post("/admin/rents/mark-overdue")
    @safe_handler
    async def mark_overdue(self):
        return await AdminService(self.db).mark_overdue_rent(self.actor)

    @router.post("/admin/rents/send-reminders")
    @safe_handler
    async def send_reminders(self, days_ahead: int = Query(3, ge=0, le=30, alias="daysAhead")):
        return await AdminService(self.db).send_rent_reminders(self.actor, days_ahead)
