import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_actor
from core.get_db import get_db_async
from core.paginate import PageParams
from core.safe_handler import safe_handler
from policy.authorization import ActorContext
from schemas.schema import VendorCreate, VendorUpdate
from services.vendor_service import VendorService

router = APIRouter(tags=["Vendors"])


@cbv(router)
class VendorRoutes:
    db: AsyncSession = Depends(get_db_async)
    actor: ActorContext = Depends(get_current_actor)

    @router.post("/vendors", status_code=201)
    @safe_handler
    async def create(self, data: VendorCreate):
        return await VendorService(self.db).create_vendor(self.actor, data)

    @router.get("/vendors")
    @safe_handler
    async def list_vendors(
        self,
        params: PageParams = Depends(),
        service: Optional[str] = None,
        search: Optional[str] = None,
        include_inactive: bool = False,
    ):
        return await VendorService(self.db).list_vendors(
            self.actor, params, service=service, search=search, include_inactive=include_inactive
        )

    @router.get("/vendors/{vendor_id}")
    @safe_handler
    async def get_vendor(self, vendor_id: uuid.UUID):
        return await VendorService(self.db).get_vendor(self.actor, vendor_id)

    @router.patch("/vendors/{vendor_id}")
    @safe_handler
    async def update_vendor(self, vendor_id: uuid.UUID, data: VendorUpdate):
        return await VendorService(self.db).update_vendor(self.actor, vendor_id, data)

    @router.delete("/vendors/{vendor_id}")
    @safe_handler
    async def deactivate(self, vendor_id: uuid.UUID):
        return await VendorService(self.db).deactivate_vendor(self.actor, vendor_id)
