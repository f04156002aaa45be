from fastapi import APIRouter, Depends, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import client_ip
from core.get_db import get_db_async
from core.safe_handler import safe_handler
from core.throttling import public_rate_limit
from schemas.schema import (
    InviteAcceptIn,
    InviteDeclineIn,
    PublicCommentIn,
    PublicTemplateUpdateIn,
    PublicUpdateIn,
)
from services.invite_service import InviteService
from services.public_service import PublicService

router = APIRouter(tags=["Public"], dependencies=[Depends(public_rate_limit)])


@cbv(router)
class PublicRoutes:
    db: AsyncSession = Depends(get_db_async)

    # invites

    @router.get("/public/invites/{token}/verify")
    @safe_handler
    async def verify_invite(self, token: str):
        return await InviteService(self.db).verify(token)

    @router.post("/public/invites/{token}/accept")
    @safe_handler
    async def accept_invite(self, token: str, data: InviteAcceptIn, request: Request):
        return await InviteService(self.db).accept(token, data, ip=client_ip(request))

    @router.post("/public/invites/{token}/decline")
    @safe_handler
    async def decline_invite(self, token: str, data: InviteDeclineIn, request: Request):
        return await InviteService(self.db).decline(token, data, ip=client_ip(request))

    # requests

    @router.get("/public/requests/{token}")
    @safe_handler
    async def view_request(self, token: str):
        return await PublicService(self.db).view_request(token)

    @router.post("/public/requests/{token}/update")
    @safe_handler
    async def update_request(self, token: str, data: PublicUpdateIn, request: Request):
        return await PublicService(self.db).update_request(token, data, ip=client_ip(request))

    @router.post("/public/requests/{token}/comments", status_code=201)
    @safe_handler
    async def comment_on_request(self, token: str, data: PublicCommentIn, request: Request):
        return await PublicService(self.db).comment_on_request(
            token, data, ip=client_ip(request)
        )

    # scheduled maintenance

    @router.get("/public/scheduled-maintenances/{token}")
    @safe_handler
    async def view_template(self, token: str):
        return await PublicService(self.db).view_template(token)

    @router.post("/public/scheduled-maintenances/{token}/update")
    @safe_handler
    async def update_template(self, token: str, data: PublicTemplateUpdateIn, request: Request):
        return await PublicService(self.db).update_template(token, data, ip=client_ip(request))

    @router.post("/public/scheduled-maintenances/{token}/comments", status_code=201)
    @safe_handler
    async def comment_on_template(self, token: str, data: PublicCommentIn, request: Request):
        return await PublicService(self.db).comment_on_template(
            token, data, ip=client_ip(request)
        )
