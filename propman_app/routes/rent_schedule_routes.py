import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_actor
from core.get_db import get_db_async
from core.paginate import PageParams
from core.safe_handler import safe_handler
from policy.authorization import ActorContext
from schemas.schema import RentScheduleCreate, RentScheduleUpdate
from services.rent_schedule_service import RentScheduleService

router = APIRouter(tags=["Rent Schedules"])


@cbv(router)
class RentScheduleRoutes:
    db: AsyncSession = Depends(get_db_async)
    actor: ActorContext = Depends(get_current_actor)

    @router.post("/rent-schedules", status_code=201)
    @safe_handler
    async def create(self, data: RentScheduleCreate):
        return await RentScheduleService(self.db).create_schedule(self.actor, data)

    @router.get("/rent-schedules")
    @safe_handler
    async def list_schedules(
        self,
        params: PageParams = Depends(),
        lease_id: Optional[uuid.UUID] = Query(None, alias="leaseId"),
        property_id: Optional[uuid.UUID] = Query(None, alias="propertyId"),
        active: Optional[bool] = None,
    ):
        return await RentScheduleService(self.db).list_schedules(
            self.actor, params, lease_id=lease_id, property_id=property_id, active=active
        )

    @router.get("/rent-schedules/{schedule_id}")
    @safe_handler
    async def get_schedule(self, schedule_id: uuid.UUID):
        return await RentScheduleService(self.db).get_schedule(self.actor, schedule_id)

    @router.patch("/rent-schedules/{schedule_id}")
    @safe_handler
    async def update_schedule(self, schedule_id: uuid.UUID, data: RentScheduleUpdate):
        return await RentScheduleService(self.db).update_schedule(
            self.actor, schedule_id, data
        )

    @router.delete("/rent-schedules/{schedule_id}")
    @safe_handler
    async def deactivate(self, schedule_id: uuid.UUID):
        return await RentScheduleService(self.db).deactivate_schedule(self.actor, schedule_id)
