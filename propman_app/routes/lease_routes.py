import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_actor
from core.get_db import get_db_async
from core.paginate import PageParams
from core.safe_handler import safe_handler
from models.enums import LeaseStatus
from policy.authorization import ActorContext
from schemas.schema import LeaseCreate, LeaseRenewIn, LeaseTerminateIn, LeaseUpdate
from services.lease_service import LeaseService

router = APIRouter(tags=["Leases"])


@cbv(router)
class LeaseRoutes:
    db: AsyncSession = Depends(get_db_async)
    actor: ActorContext = Depends(get_current_actor)

    @router.post("/leases", status_code=201)
    @safe_handler
    async def create(self, data: LeaseCreate):
        return await LeaseService(self.db).create_lease(self.actor, data)

    @router.get("/leases")
    @safe_handler
    async def list_leases(
        self,
        params: PageParams = Depends(),
        property_id: Optional[uuid.UUID] = Query(None, alias="propertyId"),
        unit_id: Optional[uuid.UUID] = Query(None, alias="unitId"),
        tenant_id: Optional[uuid.UUID] = Query(None, alias="tenantId"),
        status: Optional[LeaseStatus] = None,
    ):
        return await LeaseService(self.db).list_leases(
            self.actor,
            params,
            property_id=property_id,
            unit_id=unit_id,
            tenant_id=tenant_id,
            status=status,
        )

    @router.get("/leases/expiring")
    @safe_handler
    async def expiring(self, days: int = Query(30, ge=1, le=365)):
        return await LeaseService(self.db).expiring(self.actor, days)

    @router.get("/leases/{lease_id}")
    @safe_handler
    async def get_lease(self, lease_id: uuid.UUID):
        return await LeaseService(self.db).get_lease(self.actor, lease_id)

    @router.patch("/leases/{lease_id}")
    @safe_handler
    async def update_lease(self, lease_id: uuid.UUID, data: LeaseUpdate):
        return await LeaseService(self.db).update_lease(self.actor, lease_id, data)

    @router.post("/leases/{lease_id}/terminate")
    @safe_handler
    async def terminate(self, lease_id: uuid.UUID, data: LeaseTerminateIn):
        return await LeaseService(self.db).terminate_lease(self.actor, lease_id, data)

    @router.post("/leases/{lease_id}/renew")
    @safe_handler
    async def renew(self, lease_id: uuid.UUID, data: LeaseRenewIn):
        return await LeaseService(self.db).renew_lease(self.actor, lease_id, data)

    @router.post("/leases/{lease_id}/renewal-notice")
    @safe_handler
    async def renewal_notice(self, lease_id: uuid.UUID):
        return await LeaseService(self.db).mark_renewal_notice_sent(self.actor, lease_id)
