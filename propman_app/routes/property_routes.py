import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_actor
from core.get_db import get_db_async
from core.paginate import PageParams
from core.safe_handler import safe_handler
from models.enums import PropertyRole, PropertyType
from policy.authorization import ActorContext
from schemas.schema import (
    AssociationIn,
    PropertyCreate,
    PropertyUpdate,
    UnitCreate,
    UnitUpdate,
)
from services.association_service import AssociationService
from services.property_service import PropertyService

router = APIRouter(tags=["Properties"])


@cbv(router)
class PropertyRoutes:
    db: AsyncSession = Depends(get_db_async)
    actor: ActorContext = Depends(get_current_actor)

    @router.post("/properties", status_code=201)
    @safe_handler
    async def create(self, data: PropertyCreate):
        return await PropertyService(self.db).create_property(self.actor, data)

    @router.get("/properties")
    @safe_handler
    async def list_properties(
        self,
        params: PageParams = Depends(),
        property_type: Optional[PropertyType] = None,
        city: Optional[str] = None,
        include_inactive: bool = False,
    ):
        return await PropertyService(self.db).list_properties(
            self.actor,
            params,
            property_type=property_type,
            city=city,
            include_inactive=include_inactive,
        )

    @router.get("/properties/{property_id}")
    @safe_handler
    async def get_property(self, property_id: uuid.UUID):
        return await PropertyService(self.db).get_property(self.actor, property_id)

    @router.patch("/properties/{property_id}")
    @safe_handler
    async def update_property(self, property_id: uuid.UUID, data: PropertyUpdate):
        return await PropertyService(self.db).update_property(self.actor, property_id, data)

    @router.delete("/properties/{property_id}")
    @safe_handler
    async def delete_property(self, property_id: uuid.UUID, hard: bool = False):
        return await PropertyService(self.db).delete_property(
            self.actor, property_id, hard=hard
        )

    # units

    @router.post("/properties/{property_id}/units", status_code=201)
    @safe_handler
    async def create_unit(self, property_id: uuid.UUID, data: UnitCreate):
        return await PropertyService(self.db).create_unit(self.actor, property_id, data)

    @router.get("/properties/{property_id}/units")
    @safe_handler
    async def list_units(
        self,
        property_id: uuid.UUID,
        params: PageParams = Depends(),
        include_inactive: bool = False,
    ):
        return await PropertyService(self.db).list_units(
            self.actor, property_id, params, include_inactive=include_inactive
        )

    @router.get("/properties/{property_id}/units/{unit_id}")
    @safe_handler
    async def get_unit(self, property_id: uuid.UUID, unit_id: uuid.UUID):
        return await PropertyService(self.db).get_unit(self.actor, property_id, unit_id)

    @router.patch("/properties/{property_id}/units/{unit_id}")
    @safe_handler
    async def update_unit(self, property_id: uuid.UUID, unit_id: uuid.UUID, data: UnitUpdate):
        return await PropertyService(self.db).update_unit(
            self.actor, property_id, unit_id, data
        )

    @router.delete("/properties/{property_id}/units/{unit_id}")
    @safe_handler
    async def delete_unit(self, property_id: uuid.UUID, unit_id: uuid.UUID):
        return await PropertyService(self.db).delete_unit(self.actor, property_id, unit_id)

    # associations

    @router.post("/properties/{property_id}/users", status_code=201)
    @safe_handler
    async def associate(self, property_id: uuid.UUID, data: AssociationIn):
        return await AssociationService(self.db).associate(self.actor, property_id, data)

    @router.get("/properties/{property_id}/users")
    @safe_handler
    async def users_of(self, property_id: uuid.UUID, role: Optional[PropertyRole] = None):
        return await AssociationService(self.db).users_of(self.actor, property_id, role=role)

    @router.get("/properties/{property_id}/associations")
    @safe_handler
    async def associations(self, property_id: uuid.UUID, include_inactive: bool = False):
        return await AssociationService(self.db).list_for_property(
            self.actor, property_id, include_inactive=include_inactive
        )

    @router.delete("/properties/{property_id}/associations/{association_id}")
    @safe_handler
    async def deactivate_association(self, property_id: uuid.UUID, association_id: uuid.UUID):
        return await AssociationService(self.db).deactivate(
            self.actor, property_id, association_id
        )
