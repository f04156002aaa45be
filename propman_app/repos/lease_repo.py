import uuid
from datetime import date
from typing import List, Optional

from sqlalchemy import or_, select

from core.paginate import PageParams
from models.enums import LeaseStatus
from models.models import Lease
from policy.authorization import ActorContext

from .base_repo import BaseRepo


def tenancy_scope(model, actor: ActorContext):
    """Rows an actor may read: managed properties plus their own tenancy."""
    if actor.is_admin:
        return None
    clauses = [model.tenant_id == actor.user_id]
    managed = actor.managed_property_ids()
    if managed:
        clauses.append(model.property_id.in_(managed))
    return or_(*clauses)


class LeaseRepo(BaseRepo):
    model = Lease

    async def active_for_unit(self, unit_id: uuid.UUID) -> Optional[Lease]:
        result = await self.db.execute(
            select(Lease).where(
                Lease.unit_id == unit_id, Lease.status == LeaseStatus.ACTIVE
            )
        )
        return result.scalar_one_or_none()

    async def list_leases(
        self,
        params: PageParams,
        actor: ActorContext,
        *,
        property_id: Optional[uuid.UUID] = None,
        unit_id: Optional[uuid.UUID] = None,
        tenant_id: Optional[uuid.UUID] = None,
        status: Optional[LeaseStatus] = None,
    ):
        stmt = select(Lease)
        scope = tenancy_scope(Lease, actor)
        if scope is not None:
            stmt = stmt.where(scope)
        if property_id is not None:
            stmt = stmt.where(Lease.property_id == property_id)
        if unit_id is not None:
            stmt = stmt.where(Lease.unit_id == unit_id)
        if tenant_id is not None:
            stmt = stmt.where(Lease.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(Lease.status == status)
        return await self.page(stmt, params)

    async def expiring_between(
        self, start: date, end: date, actor: Optional[ActorContext] = None
    ) -> List[Lease]:
        stmt = select(Lease).where(
            Lease.status == LeaseStatus.ACTIVE,
            Lease.end_date >= start,
            Lease.end_date <= end,
        )
        if actor is not None:
            scope = tenancy_scope(Lease, actor)
            if scope is not None:
                stmt = stmt.where(scope)
        result = await self.db.execute(stmt.order_by(Lease.end_date))
        return list(result.scalars().all())
