import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_actor
from core.get_db import get_db_async
from core.paginate import PageParams
from core.safe_handler import safe_handler
from models.enums import PaymentStatus
from policy.authorization import ActorContext
from schemas.schema import PaymentIn, RentCreate, RentWaiveIn
from services.rent_service import RentService

router = APIRouter(tags=["Rents"])


@cbv(router)
class RentRoutes:
    db: AsyncSession = Depends(get_db_async)
    actor: ActorContext = Depends(get_current_actor)

    @router.post("/rents", status_code=201)
    @safe_handler
    async def create(self, data: RentCreate):
        return await RentService(self.db).create_rent(self.actor, data)

    @router.get("/rents")
    @safe_handler
    async def list_rents(
        self,
        params: PageParams = Depends(),
        property_id: Optional[uuid.UUID] = Query(None, alias="propertyId"),
        lease_id: Optional[uuid.UUID] = Query(None, alias="leaseId"),
        tenant_id: Optional[uuid.UUID] = Query(None, alias="tenantId"),
        status: Optional[PaymentStatus] = None,
    ):
        return await RentService(self.db).list_rents(
            self.actor,
            params,
            property_id=property_id,
            lease_id=lease_id,
            tenant_id=tenant_id,
            status=status,
        )

    @router.get("/rents/upcoming")
    @safe_handler
    async def upcoming(self, days: int = Query(30, ge=1, le=365)):
        return await RentService(self.db).upcoming(self.actor, days)

    @router.get("/rents/history")
    @safe_handler
    async def history(
        self,
        lease_id: Optional[uuid.UUID] = Query(None, alias="leaseId"),
        tenant_id: Optional[uuid.UUID] = Query(None, alias="tenantId"),
    ):
        return await RentService(self.db).history(
            self.actor, lease_id=lease_id, tenant_id=tenant_id
        )

    @router.get("/rents/{rent_id}")
    @safe_handler
    async def get_rent(self, rent_id: uuid.UUID):
        return await RentService(self.db).get_rent(self.actor, rent_id)

    @router.post("/rents/{rent_id}/payments")
    @safe_handler
    async def record_payment(self, rent_id: uuid.UUID, data: PaymentIn):
        return await RentService(self.db).record_payment(self.actor, rent_id, data)

    @router.post("/rents/{rent_id}/waive")
    @safe_handler
    async def waive(self, rent_id: uuid.UUID, data: RentWaiveIn):
        return await RentService(self.db).waive_rent(self.actor, rent_id, data)
