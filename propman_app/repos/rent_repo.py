import uuid
from datetime import date
from typing import List, Optional

from sqlalchemy import select, update

from core.paginate import PageParams
from models.enums import PaymentStatus
from models.models import Lease, RentRecord, RentSchedule
from policy.authorization import ActorContext

from .base_repo import BaseRepo
from .lease_repo import tenancy_scope

OPEN_STATUSES = (PaymentStatus.DUE, PaymentStatus.OVERDUE, PaymentStatus.PARTIALLY_PAID)


class RentRepo(BaseRepo):
    model = RentRecord

    async def get_for_period(
        self, lease_id: uuid.UUID, billing_period: str
    ) -> Optional[RentRecord]:
        result = await self.db.execute(
            select(RentRecord).where(
                RentRecord.lease_id == lease_id,
                RentRecord.billing_period == billing_period,
            )
        )
        return result.scalar_one_or_none()

    async def periods_for_lease(self, lease_id: uuid.UUID) -> set:
        result = await self.db.execute(
            select(RentRecord.billing_period).where(RentRecord.lease_id == lease_id)
        )
        return set(result.scalars().all())

    async def list_rents(
        self,
        params: PageParams,
        actor: ActorContext,
        *,
        property_id: Optional[uuid.UUID] = None,
        lease_id: Optional[uuid.UUID] = None,
        tenant_id: Optional[uuid.UUID] = None,
        status: Optional[PaymentStatus] = None,
    ):
        stmt = select(RentRecord)
        scope = tenancy_scope(RentRecord, actor)
        if scope is not None:
            stmt = stmt.where(scope)
        if property_id is not None:
            stmt = stmt.where(RentRecord.property_id == property_id)
        if lease_id is not None:
            stmt = stmt.where(RentRecord.lease_id == lease_id)
        if tenant_id is not None:
            stmt = stmt.where(RentRecord.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(RentRecord.status == status)
        return await self.page(stmt, params)

    async def open_between(
        self, start: date, end: date, actor: Optional[ActorContext] = None
    ) -> List[RentRecord]:
        stmt = select(RentRecord).where(
            RentRecord.status.in_(OPEN_STATUSES),
            RentRecord.due_date >= start,
            RentRecord.due_date <= end,
        )
        if actor is not None:
            scope = tenancy_scope(RentRecord, actor)
            if scope is not None:
                stmt = stmt.where(scope)
        result = await self.db.execute(stmt.order_by(RentRecord.due_date))
        return list(result.scalars().all())

    async def history(
        self, *, lease_id: Optional[uuid.UUID] = None, tenant_id: Optional[uuid.UUID] = None
    ) -> List[RentRecord]:
        stmt = select(RentRecord)
        if lease_id is not None:
            stmt = stmt.where(RentRecord.lease_id == lease_id)
        if tenant_id is not None:
            stmt = stmt.where(RentRecord.tenant_id == tenant_id)
        result = await self.db.execute(stmt.order_by(RentRecord.due_date))
        return list(result.scalars().all())

    async def mark_overdue(self, today: date) -> int:
        result = await self.db.execute(
            update(RentRecord)
            .where(
                RentRecord.status == PaymentStatus.DUE,
                RentRecord.due_date < today,
            )
            .values(status=PaymentStatus.OVERDUE)
        )
        return result.rowcount or 0

    async def unreminded_due(self, until: date) -> List[RentRecord]:
        result = await self.db.execute(
            select(RentRecord).where(
                RentRecord.status.in_(OPEN_STATUSES),
                RentRecord.due_date <= until,
                RentRecord.reminder_sent.is_(False),
            )
        )
        return list(result.scalars().all())


class RentScheduleRepo(BaseRepo):
    model = RentSchedule

    async def active_for_lease(self, lease_id: uuid.UUID) -> List[RentSchedule]:
        result = await self.db.execute(
            select(RentSchedule).where(
                RentSchedule.lease_id == lease_id, RentSchedule.is_active.is_(True)
            )
        )
        return list(result.scalars().all())

    async def due_for_generation(self) -> List[RentSchedule]:
        result = await self.db.execute(
            select(RentSchedule)
            .join(Lease, Lease.id == RentSchedule.lease_id)
            .where(
                RentSchedule.is_active.is_(True),
                RentSchedule.auto_generate.is_(True),
            )
            .order_by(RentSchedule.created_at)
        )
        return list(result.scalars().all())

    async def list_schedules(
        self,
        params: PageParams,
        actor: ActorContext,
        *,
        lease_id: Optional[uuid.UUID] = None,
        property_id: Optional[uuid.UUID] = None,
        active: Optional[bool] = None,
    ):
        stmt = select(RentSchedule)
        scope = tenancy_scope(RentSchedule, actor)
        if scope is not None:
            stmt = stmt.where(scope)
        if lease_id is not None:
            stmt = stmt.where(RentSchedule.lease_id == lease_id)
        if property_id is not None:
            stmt = stmt.where(RentSchedule.property_id == property_id)
        if active is not None:
            stmt = stmt.where(RentSchedule.is_active.is_(active))
        return await self.page(stmt, params)

    async def deactivate_for_lease(self, lease_id: uuid.UUID) -> int:
        result = await self.db.execute(
            update(RentSchedule)
            .where(RentSchedule.lease_id == lease_id, RentSchedule.is_active.is_(True))
            .values(is_active=False)
        )
        return result.rowcount or 0
