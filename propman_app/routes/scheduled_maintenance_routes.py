import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_actor
from core.get_db import get_db_async
from core.paginate import PageParams
from core.safe_handler import safe_handler
from models.enums import TemplateStatus
from policy.authorization import ActorContext
from schemas.schema import CommentIn, PublicLinkIn, TemplateCreate, TemplateUpdate
from services.scheduled_maintenance_service import ScheduledMaintenanceService

router = APIRouter(tags=["Scheduled Maintenance"])


@cbv(router)
class ScheduledMaintenanceRoutes:
    db: AsyncSession = Depends(get_db_async)
    actor: ActorContext = Depends(get_current_actor)

    @router.post("/scheduled-maintenance", status_code=201)
    @safe_handler
    async def create(self, data: TemplateCreate):
        return await ScheduledMaintenanceService(self.db).create_template(self.actor, data)

    @router.get("/scheduled-maintenance")
    @safe_handler
    async def list_templates(
        self,
        params: PageParams = Depends(),
        property_id: Optional[uuid.UUID] = Query(None, alias="propertyId"),
        unit_id: Optional[uuid.UUID] = Query(None, alias="unitId"),
        status: Optional[TemplateStatus] = None,
        recurring: Optional[bool] = None,
    ):
        return await ScheduledMaintenanceService(self.db).list_templates(
            self.actor,
            params,
            property_id=property_id,
            unit_id=unit_id,
            status=status,
            recurring=recurring,
        )

    @router.get("/scheduled-maintenance/{template_id}")
    @safe_handler
    async def get_template(self, template_id: uuid.UUID):
        return await ScheduledMaintenanceService(self.db).get_template(self.actor, template_id)

    @router.patch("/scheduled-maintenance/{template_id}")
    @safe_handler
    async def update_template(self, template_id: uuid.UUID, data: TemplateUpdate):
        return await ScheduledMaintenanceService(self.db).update_template(
            self.actor, template_id, data
        )

    @router.post("/scheduled-maintenance/{template_id}/pause")
    @safe_handler
    async def pause(self, template_id: uuid.UUID):
        return await ScheduledMaintenanceService(self.db).pause_template(self.actor, template_id)

    @router.post("/scheduled-maintenance/{template_id}/resume")
    @safe_handler
    async def resume(self, template_id: uuid.UUID):
        return await ScheduledMaintenanceService(self.db).resume_template(
            self.actor, template_id
        )

    @router.post("/scheduled-maintenance/{template_id}/generate")
    @safe_handler
    async def generate(self, template_id: uuid.UUID):
        return await ScheduledMaintenanceService(self.db).generate_now(self.actor, template_id)

    @router.post("/scheduled-maintenance/{template_id}/public-link")
    @safe_handler
    async def enable_public_link(self, template_id: uuid.UUID, data: PublicLinkIn):
        return await ScheduledMaintenanceService(self.db).enable_public_link(
            self.actor, template_id, data
        )

    @router.delete("/scheduled-maintenance/{template_id}/public-link")
    @safe_handler
    async def disable_public_link(self, template_id: uuid.UUID):
        return await ScheduledMaintenanceService(self.db).disable_public_link(
            self.actor, template_id
        )

    @router.post("/scheduled-maintenance/{template_id}/comments", status_code=201)
    @safe_handler
    async def add_comment(self, template_id: uuid.UUID, data: CommentIn):
        return await ScheduledMaintenanceService(self.db).add_comment(
            self.actor, template_id, data
        )

    @router.get("/scheduled-maintenance/{template_id}/comments")
    @safe_handler
    async def list_comments(self, template_id: uuid.UUID):
        return await ScheduledMaintenanceService(self.db).list_comments(self.actor, template_id)

    @router.delete("/scheduled-maintenance/{template_id}")
    @safe_handler
    async def cancel(self, template_id: uuid.UUID):
        return await ScheduledMaintenanceService(self.db).cancel_template(self.actor, template_id)
