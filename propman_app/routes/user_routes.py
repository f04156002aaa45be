import uuid
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_actor
from core.get_db import get_db_async
from core.paginate import PageParams
from core.safe_handler import safe_handler
from models.enums import RegistrationStatus, UserRole
from policy.authorization import ActorContext
from schemas.schema import UserRoleIn, UserUpdateIn
from services.user_service import UserService

router = APIRouter(tags=["Users"])


@cbv(router)
class UserRoutes:
    db: AsyncSession = Depends(get_db_async)
    actor: ActorContext = Depends(get_current_actor)

    @router.get("/users")
    @safe_handler
    async def list_users(
        self,
        params: PageParams = Depends(),
        role: Optional[UserRole] = None,
        status: Optional[RegistrationStatus] = None,
        search: Optional[str] = None,
    ):
        return await UserService(self.db).list_users(
            self.actor, params, role=role, status=status, search=search
        )

    @router.get("/users/{user_id}")
    @safe_handler
    async def get_user(self, user_id: uuid.UUID):
        return await UserService(self.db).get_user(self.actor, user_id)

    @router.patch("/users/{user_id}")
    @safe_handler
    async def update_user(self, user_id: uuid.UUID, data: UserUpdateIn):
        return await UserService(self.db).update_user(self.actor, user_id, data)

    @router.post("/users/{user_id}/approve")
    @safe_handler
    async def approve(self, user_id: uuid.UUID):
        return await UserService(self.db).approve(self.actor, user_id)

    @router.post("/users/{user_id}/deactivate")
    @safe_handler
    async def deactivate(self, user_id: uuid.UUID):
        return await UserService(self.db).deactivate(self.actor, user_id)

    @router.patch("/users/{user_id}/role")
    @safe_handler
    async def change_role(self, user_id: uuid.UUID, data: UserRoleIn):
        return await UserService(self.db).change_role(self.actor, user_id, data.role)

    @router.delete("/users/{user_id}")
    @safe_handler
    async def delete_user(self, user_id: uuid.UUID):
        return await UserService(self.db).delete_user(self.actor, user_id)

    @router.get("/users/{user_id}/associations")
    @safe_handler
    async def associations(self, user_id: uuid.UUID, include_inactive: bool = False):
        return await UserService(self.db).list_associations(
            self.actor, user_id, include_inactive=include_inactive
        )
