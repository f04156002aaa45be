import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_actor
from core.get_db import get_db_async
from core.paginate import PageParams
from core.safe_handler import safe_handler
from models.enums import InviteStatus
from policy.authorization import ActorContext
from schemas.schema import InviteCancelIn, InviteCreate
from services.invite_service import InviteService

router = APIRouter(tags=["Invites"])


@cbv(router)
class InviteRoutes:
    db: AsyncSession = Depends(get_db_async)
    actor: ActorContext = Depends(get_current_actor)

    @router.post("/invites", status_code=201)
    @safe_handler
    async def create(self, data: InviteCreate):
        return await InviteService(self.db).create_invite(self.actor, data)

    @router.get("/invites")
    @safe_handler
    async def list_invites(
        self,
        params: PageParams = Depends(),
        property_id: Optional[uuid.UUID] = Query(None, alias="propertyId"),
        status: Optional[InviteStatus] = None,
        email: Optional[str] = None,
    ):
        return await InviteService(self.db).list_invites(
            self.actor, params, property_id=property_id, status=status, email=email
        )

    @router.get("/invites/{invite_id}")
    @safe_handler
    async def get_invite(self, invite_id: uuid.UUID):
        return await InviteService(self.db).get_invite(self.actor, invite_id)

    @router.post("/invites/{invite_id}/cancel")
    @safe_handler
    async def cancel(self, invite_id: uuid.UUID, data: Optional[InviteCancelIn] = None):
        return await InviteService(self.db).cancel(self.actor, invite_id, data)

    @router.post("/invites/{invite_id}/resend")
    @safe_handler
    async def resend(self, invite_id: uuid.UUID):
        return await InviteService(self.db).resend(self.actor, invite_id)
