import uuid

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.enums import RegistrationStatus
from models.models import PropertyUser, User
from policy.authorization import ActorContext, Grant

from .errors import Unauthorized
from .get_db import get_db_async
from .validators import jwt_protect


async def get_current_user(
    user_id: uuid.UUID = Depends(jwt_protect),
    db: AsyncSession = Depends(get_db_async),
) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise Unauthorized("Not authorized, user not found")
    if user.registration_status != RegistrationStatus.ACTIVE:
        raise Unauthorized("Account is not active")
    return user


async def load_actor(db: AsyncSession, user: User, ip: str | None = None) -> ActorContext:
    result = await db.execute(
        select(PropertyUser).where(
            PropertyUser.user_id == user.id, PropertyUser.is_active.is_(True)
        )
    )
    grants = tuple(
        Grant(
            property_id=assoc.property_id,
            unit_id=assoc.unit_id,
            roles=frozenset(assoc.roles or []),
        )
        for assoc in result.scalars().all()
    )
    return ActorContext(
        user_id=user.id, role=user.role, grants=grants, email=user.email, ip=ip
    )


def client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


async def get_current_actor(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_async),
) -> ActorContext:
    return await load_actor(db, user, client_ip(request))
