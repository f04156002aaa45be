import logging
import uuid
from datetime import date
from typing import Optional

from core.breaker import breaker
from core.errors import Forbidden, NotFound, SemanticError, ValidationFailed
from core.mapper import ORMMapper
from core.paginate import PageParams, PaginatePage
from models.enums import AuditAction, LeaseStatus, ResourceType
from models.models import RentSchedule
from policy.authorization import Action, ActorContext, Target, authorize
from repos.lease_repo import LeaseRepo
from repos.rent_repo import RentScheduleRepo
from schemas.schema import RentScheduleOut
from services.dispatcher import Command, CommandDispatcher, CommandResult

logger = logging.getLogger(__name__)


def schedule_target(schedule) -> Target:
    return Target(
        kind=ResourceType.RENT_SCHEDULE,
        property_id=schedule.property_id,
        unit_id=schedule.unit_id,
        tenant_id=schedule.tenant_id,
    )


def windows_overlap(
    start_a: date, end_a: Optional[date], start_b: date, end_b: Optional[date]
) -> bool:
    return (end_b is None or start_a <= end_b) and (end_a is None or start_b <= end_a)


class RentScheduleService:
    def __init__(self, db):
        self.db = db
        self.repo: RentScheduleRepo = RentScheduleRepo(db)
        self.lease_repo: LeaseRepo = LeaseRepo(db)
        self.dispatcher: CommandDispatcher = CommandDispatcher(db)
        self.paginate: PaginatePage = PaginatePage()

    async def _load(self, schedule_id: uuid.UUID) -> RentSchedule:
        schedule = await self.repo.get(schedule_id)
        if not schedule:
            raise NotFound("Rent schedule not found")
        return schedule

    async def _reject_overlap(
        self,
        lease_id: uuid.UUID,
        start: date,
        end: Optional[date],
        exclude_id: Optional[uuid.UUID] = None,
    ):
        for other in await self.repo.active_for_lease(lease_id):
            if other.id == exclude_id:
                continue
            if windows_overlap(start, end, other.effective_start_date, other.effective_end_date):
                raise ValidationFailed.field(
                    "effectiveStartDate",
                    "An active rent schedule already covers this period",
                    start.isoformat(),
                )

    async def create_schedule(self, actor: ActorContext, data):
        async def handler():
            lease = await self.lease_repo.get(data.lease_id)
            if not lease:
                raise NotFound("Lease not found")
            target = Target(
                kind=ResourceType.RENT_SCHEDULE,
                property_id=lease.property_id,
                unit_id=lease.unit_id,
                tenant_id=lease.tenant_id,
            )

            async def mutate():
                if lease.status in (LeaseStatus.TERMINATED, LeaseStatus.EXPIRED):
                    raise SemanticError("Cannot schedule rent on an ended lease")
                start = data.effective_start_date or lease.start_date
                end = data.effective_end_date or lease.end_date
                if end is not None and end < start:
                    raise ValidationFailed.field(
                        "effectiveEndDate",
                        "effectiveEndDate must not precede effectiveStartDate",
                        end.isoformat(),
                    )
                await self._reject_overlap(lease.id, start, end)
                schedule = RentSchedule(
                    lease_id=lease.id,
                    tenant_id=lease.tenant_id,
                    property_id=lease.property_id,
                    unit_id=lease.unit_id,
                    amount=data.amount if data.amount is not None else lease.monthly_rent,
                    currency=data.currency or lease.currency,
                    due_date_day=data.due_date_day or lease.payment_due_day,
                    billing_period=data.billing_period,
                    effective_start_date=start,
                    effective_end_date=end,
                    auto_generate=data.auto_generate,
                    notes=data.notes,
                    created_by_id=actor.user_id,
                )
                await self.repo.add(schedule)
                return CommandResult(value=schedule, entity=schedule)

            created = await self.dispatcher.run(
                Command(
                    action=AuditAction.CREATE,
                    resource_type=ResourceType.RENT_SCHEDULE,
                    permission=Action.CREATE,
                    target=target,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, RentScheduleOut),
            )
            return self.paginate.ok(created, message="Rent schedule created")

        return await breaker.call(handler)

    async def list_schedules(
        self,
        actor: ActorContext,
        params: PageParams,
        *,
        lease_id: Optional[uuid.UUID] = None,
        property_id: Optional[uuid.UUID] = None,
        active: Optional[bool] = None,
    ):
        async def handler():
            items, total = await self.repo.list_schedules(
                params, actor, lease_id=lease_id, property_id=property_id, active=active
            )
            return self.paginate.page(
                ORMMapper.many(items, RentScheduleOut), total, params
            )

        return await breaker.call(handler)

    async def get_schedule(self, actor: ActorContext, schedule_id: uuid.UUID):
        async def handler():
            schedule = await self._load(schedule_id)
            if not authorize(actor, Action.VIEW, schedule_target(schedule)):
                raise Forbidden()
            return self.paginate.ok(ORMMapper.one(schedule, RentScheduleOut))

        return await breaker.call(handler)

    async def update_schedule(self, actor: ActorContext, schedule_id: uuid.UUID, data):
        async def handler():
            schedule = await self._load(schedule_id)
            changes = data.model_dump(exclude_unset=True)

            async def mutate():
                before = ORMMapper.snapshot(schedule)
                end = changes.get("effective_end_date", schedule.effective_end_date)
                if end is not None and end < schedule.effective_start_date:
                    raise ValidationFailed.field(
                        "effectiveEndDate",
                        "effectiveEndDate must not precede effectiveStartDate",
                        end.isoformat(),
                    )
                if changes.get("is_active") and not schedule.is_active:
                    await self._reject_overlap(
                        schedule.lease_id,
                        schedule.effective_start_date,
                        end,
                        exclude_id=schedule.id,
                    )
                for key, value in changes.items():
                    setattr(schedule, key, value)
                return CommandResult(value=schedule, entity=schedule, before=before)

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.UPDATE,
                    resource_type=ResourceType.RENT_SCHEDULE,
                    permission=Action.UPDATE,
                    target=schedule_target(schedule),
                    resource_id=schedule_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, RentScheduleOut),
            )
            return self.paginate.ok(updated, message="Rent schedule updated")

        return await breaker.call(handler)

    async def deactivate_schedule(self, actor: ActorContext, schedule_id: uuid.UUID):
        async def handler():
            schedule = await self._load(schedule_id)

            async def mutate():
                if not schedule.is_active:
                    raise SemanticError("Rent schedule is already inactive")
                before = ORMMapper.snapshot(schedule)
                schedule.is_active = False
                return CommandResult(value=schedule, entity=schedule, before=before)

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.ARCHIVE,
                    resource_type=ResourceType.RENT_SCHEDULE,
                    permission=Action.DELETE,
                    target=schedule_target(schedule),
                    resource_id=schedule_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, RentScheduleOut),
            )
            return self.paginate.ok(updated, message="Rent schedule deactivated")

        return await breaker.call(handler)
