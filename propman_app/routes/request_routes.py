import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_actor
from core.get_db import get_db_async
from core.paginate import PageParams
from core.safe_handler import safe_handler
from models.enums import Priority, RequestCategory, RequestStatus
from policy.authorization import ActorContext
from schemas.schema import (
    AssignIn,
    CommentIn,
    FeedbackIn,
    PublicLinkIn,
    RequestCreate,
    RequestUpdate,
    StatusChangeIn,
)
from services.request_service import RequestService

router = APIRouter(tags=["Maintenance Requests"])


@cbv(router)
class RequestRoutes:
    db: AsyncSession = Depends(get_db_async)
    actor: ActorContext = Depends(get_current_actor)

    @router.post("/requests", status_code=201)
    @safe_handler
    async def create(self, data: RequestCreate):
        return await RequestService(self.db).create_request(self.actor, data)

    @router.get("/requests")
    @safe_handler
    async def list_requests(
        self,
        params: PageParams = Depends(),
        property_id: Optional[uuid.UUID] = Query(None, alias="propertyId"),
        unit_id: Optional[uuid.UUID] = Query(None, alias="unitId"),
        status: Optional[RequestStatus] = None,
        priority: Optional[Priority] = None,
        category: Optional[RequestCategory] = None,
        template_id: Optional[uuid.UUID] = Query(None, alias="scheduledMaintenanceId"),
    ):
        return await RequestService(self.db).list_requests(
            self.actor,
            params,
            property_id=property_id,
            unit_id=unit_id,
            status=status,
            priority=priority,
            category=category,
            template_id=template_id,
        )

    @router.get("/requests/{request_id}")
    @safe_handler
    async def get_request(self, request_id: uuid.UUID):
        return await RequestService(self.db).get_request(self.actor, request_id)

    @router.patch("/requests/{request_id}")
    @safe_handler
    async def update_request(self, request_id: uuid.UUID, data: RequestUpdate):
        return await RequestService(self.db).update_request(self.actor, request_id, data)

    @router.post("/requests/{request_id}/assign")
    @safe_handler
    async def assign(self, request_id: uuid.UUID, data: AssignIn):
        return await RequestService(self.db).assign(self.actor, request_id, data)

    @router.post("/requests/{request_id}/status")
    @safe_handler
    async def change_status(self, request_id: uuid.UUID, data: StatusChangeIn):
        return await RequestService(self.db).change_status(self.actor, request_id, data)

    @router.post("/requests/{request_id}/feedback")
    @safe_handler
    async def feedback(self, request_id: uuid.UUID, data: FeedbackIn):
        return await RequestService(self.db).submit_feedback(self.actor, request_id, data)

    @router.post("/requests/{request_id}/public-link")
    @safe_handler
    async def enable_public_link(self, request_id: uuid.UUID, data: PublicLinkIn):
        return await RequestService(self.db).enable_public_link(self.actor, request_id, data)

    @router.delete("/requests/{request_id}/public-link")
    @safe_handler
    async def disable_public_link(self, request_id: uuid.UUID):
        return await RequestService(self.db).disable_public_link(self.actor, request_id)

    @router.post("/requests/{request_id}/comments", status_code=201)
    @safe_handler
    async def add_comment(self, request_id: uuid.UUID, data: CommentIn):
        return await RequestService(self.db).add_comment(self.actor, request_id, data)

    @router.get("/requests/{request_id}/comments")
    @safe_handler
    async def list_comments(self, request_id: uuid.UUID):
        return await RequestService(self.db).list_comments(self.actor, request_id)

    @router.delete("/requests/{request_id}")
    @safe_handler
    async def archive(self, request_id: uuid.UUID):
        return await RequestService(self.db).archive_request(self.actor, request_id)
