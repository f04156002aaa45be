import uuid
from typing import Iterable, List, Optional

from sqlalchemy import select

from core.date_helper import utcnow
from models.models import PropertyUser, User

from .base_repo import BaseRepo


class AssociationRepo(BaseRepo):
    model = PropertyUser

    async def find_active(
        self,
        user_id: uuid.UUID,
        property_id: uuid.UUID,
        unit_id: Optional[uuid.UUID] = None,
    ) -> Optional[PropertyUser]:
        stmt = select(PropertyUser).where(
            PropertyUser.user_id == user_id,
            PropertyUser.property_id == property_id,
            PropertyUser.unit_key == (str(unit_id) if unit_id else ""),
            PropertyUser.is_active.is_(True),
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_for_user(
        self, user_id: uuid.UUID, *, active_only: bool = True
    ) -> List[PropertyUser]:
        stmt = select(PropertyUser).where(PropertyUser.user_id == user_id)
        if active_only:
            stmt = stmt.where(PropertyUser.is_active.is_(True))
        result = await self.db.execute(stmt.order_by(PropertyUser.created_at))
        return list(result.scalars().all())

    async def list_for_property(
        self, property_id: uuid.UUID, *, active_only: bool = True
    ) -> List[PropertyUser]:
        stmt = select(PropertyUser).where(PropertyUser.property_id == property_id)
        if active_only:
            stmt = stmt.where(PropertyUser.is_active.is_(True))
        result = await self.db.execute(stmt.order_by(PropertyUser.created_at))
        return list(result.scalars().all())

    async def users_of(
        self, property_id: uuid.UUID, roles: Optional[Iterable] = None
    ) -> List[User]:
        """Active users associated with a property, optionally narrowed to roles."""
        wanted = {getattr(r, "value", r) for r in roles} if roles else None
        associations = await self.list_for_property(property_id)
        user_ids = {
            a.user_id
            for a in associations
            if wanted is None or wanted & set(a.roles or [])
        }
        if not user_ids:
            return []
        result = await self.db.execute(select(User).where(User.id.in_(user_ids)))
        return list(result.scalars().all())

    async def tenant_of_unit(
        self, user_id: uuid.UUID, unit_id: uuid.UUID
    ) -> Optional[PropertyUser]:
        for assoc in await self.list_for_user(user_id):
            if assoc.unit_id == unit_id and "tenant" in (assoc.roles or []):
                return assoc
        return None

    async def deactivate(self, assoc: PropertyUser) -> PropertyUser:
        assoc.is_active = False
        assoc.deactivated_at = utcnow()
        await self.flush()
        return assoc

    async def deactivate_for_user(self, user_id: uuid.UUID) -> int:
        associations = await self.list_for_user(user_id)
        for assoc in associations:
            assoc.is_active = False
            assoc.deactivated_at = utcnow()
        await self.flush()
        return len(associations)
