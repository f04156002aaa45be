from fastapi import APIRouter, Depends, Request
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import client_ip, get_current_user
from core.get_db import get_db_async
from core.safe_handler import safe_handler
from models.models import User
from schemas.schema import LoginIn, RegisterIn
from services.auth_service import AuthService

router = APIRouter(tags=["Authentication"])


@cbv(router)
class AuthRoutes:
    db: AsyncSession = Depends(get_db_async)

    @router.post("/auth/register", status_code=201)
    @safe_handler
    async def register(self, data: RegisterIn, request: Request):
        return await AuthService(self.db).register(data, ip=client_ip(request))

    @router.post("/auth/login")
    @safe_handler
    async def login(self, data: LoginIn, request: Request):
        return await AuthService(self.db).login(data, ip=client_ip(request))

    @router.get("/auth/me")
    @safe_handler
    async def me(self, current_user: User = Depends(get_current_user)):
        return await AuthService(self.db).me(current_user)
