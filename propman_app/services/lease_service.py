import logging
import uuid
from datetime import timedelta
from typing import Optional

from core.breaker import breaker
from core.date_helper import utcnow
from core.errors import Conflict, Forbidden, NotFound, SemanticError, ValidationFailed
from core.mapper import ORMMapper
from core.paginate import PageParams, PaginatePage
from core.settings import settings
from models.enums import (
    AuditAction,
    BillingPeriod,
    LeaseStatus,
    NotificationType,
    ResourceType,
    SideEffectKind,
    UnitStatus,
)
from models.models import Lease, RentSchedule, User
from policy.authorization import Action, ActorContext, Target, authorize
from repos.association_repo import AssociationRepo
from repos.lease_repo import LeaseRepo
from repos.property_repo import UnitRepo
from repos.rent_repo import RentScheduleRepo
from repos.user_repo import UserRepo
from schemas.schema import LeaseOut
from services.dispatcher import (
    AuditNote,
    Command,
    CommandDispatcher,
    CommandResult,
    SideEffectRequest,
)

logger = logging.getLogger(__name__)

LEASE_STATUS_CHANGES = {
    LeaseStatus.DRAFT: {LeaseStatus.ACTIVE},
    LeaseStatus.ACTIVE: {LeaseStatus.EXPIRED, LeaseStatus.PENDING_RENEWAL},
    LeaseStatus.PENDING_RENEWAL: {LeaseStatus.ACTIVE, LeaseStatus.EXPIRED},
}


def lease_target(lease: Lease) -> Target:
    return Target(
        kind=ResourceType.LEASE,
        property_id=lease.property_id,
        unit_id=lease.unit_id,
        tenant_id=lease.tenant_id,
        created_by_id=lease.created_by_id,
    )


def tenant_notice(
    tenant: Optional[User], lease: Lease, template: str, message: str, **payload
) -> list:
    if tenant is None:
        return []
    data = {"name": tenant.full_name, "end_date": lease.end_date.isoformat(), **payload}
    return [
        SideEffectRequest(
            kind=SideEffectKind.EMAIL,
            template=template,
            recipient=tenant.email,
            recipient_user_id=tenant.id,
            payload=data,
            resource_type=ResourceType.LEASE,
            resource_id=lease.id,
        ),
        SideEffectRequest(
            kind=SideEffectKind.NOTIFICATION,
            template=template,
            recipient_user_id=tenant.id,
            payload={
                "type": NotificationType.LEASE_EXPIRING.value
                if template == "lease_expiring"
                else NotificationType.GENERAL.value,
                "message": message,
            },
            resource_type=ResourceType.LEASE,
            resource_id=lease.id,
        ),
    ]


class LeaseService:
    def __init__(self, db):
        self.db = db
        self.repo: LeaseRepo = LeaseRepo(db)
        self.unit_repo: UnitRepo = UnitRepo(db)
        self.user_repo: UserRepo = UserRepo(db)
        self.association_repo: AssociationRepo = AssociationRepo(db)
        self.schedule_repo: RentScheduleRepo = RentScheduleRepo(db)
        self.dispatcher: CommandDispatcher = CommandDispatcher(db)
        self.paginate: PaginatePage = PaginatePage()

    async def _load(self, lease_id: uuid.UUID) -> Lease:
        lease = await self.repo.get(lease_id)
        if not lease:
            raise NotFound("Lease not found")
        return lease

    async def _ensure_unit_free(self, unit_id: uuid.UUID, exclude_id=None):
        current = await self.repo.active_for_unit(unit_id)
        if current and current.id != exclude_id:
            raise Conflict("Unit already has an active lease. Terminate it first.")

    async def create_lease(self, actor: ActorContext, data):
        async def handler():
            unit = await self.unit_repo.get(data.unit_id)
            if not unit:
                raise NotFound("Unit not found")
            target = Target(
                kind=ResourceType.LEASE,
                property_id=unit.property_id,
                unit_id=unit.id,
                unit_property_id=unit.property_id,
            )

            async def mutate():
                if not unit.is_active:
                    raise SemanticError("Unit is archived")
                tenant = await self.user_repo.get(data.tenant_id)
                if not tenant:
                    raise NotFound("Tenant not found")
                if not await self.association_repo.tenant_of_unit(tenant.id, unit.id):
                    raise ValidationFailed.field(
                        "tenantId",
                        "Tenant must have an active tenant association for this unit",
                        str(tenant.id),
                    )
                if data.status == LeaseStatus.ACTIVE:
                    await self._ensure_unit_free(unit.id)
                lease = Lease(
                    property_id=unit.property_id,
                    unit_id=unit.id,
                    tenant_id=tenant.id,
                    created_by_id=actor.user_id,
                    start_date=data.start_date,
                    end_date=data.end_date,
                    monthly_rent=data.monthly_rent,
                    currency=data.currency or settings.DEFAULT_CURRENCY,
                    payment_due_day=data.payment_due_day,
                    security_deposit=data.security_deposit,
                    terms=data.terms,
                    status=data.status,
                )
                await self.repo.add(lease)
                notes = []
                if data.status == LeaseStatus.ACTIVE:
                    unit.status = UnitStatus.LEASED
                if data.create_rent_schedule:
                    schedule = RentSchedule(
                        lease_id=lease.id,
                        tenant_id=tenant.id,
                        property_id=lease.property_id,
                        unit_id=lease.unit_id,
                        amount=lease.monthly_rent,
                        currency=lease.currency,
                        due_date_day=lease.payment_due_day,
                        billing_period=BillingPeriod.MONTHLY,
                        effective_start_date=lease.start_date,
                        effective_end_date=lease.end_date,
                        auto_generate=True,
                        created_by_id=actor.user_id,
                    )
                    await self.schedule_repo.add(schedule)
                    notes.append(
                        AuditNote(
                            action=AuditAction.CREATE,
                            resource_type=ResourceType.RENT_SCHEDULE,
                            resource_id=schedule.id,
                            description="Rent schedule derived from lease",
                            after=ORMMapper.snapshot(schedule),
                        )
                    )
                return CommandResult(
                    value=lease,
                    entity=lease,
                    notes=notes,
                    side_effects=[
                        SideEffectRequest(
                            kind=SideEffectKind.NOTIFICATION,
                            template="lease_created",
                            recipient_user_id=tenant.id,
                            payload={
                                "type": NotificationType.GENERAL.value,
                                "message": f"A lease for unit {unit.unit_name} was created for you.",
                            },
                            resource_type=ResourceType.LEASE,
                            resource_id=lease.id,
                        )
                    ],
                )

            created = await self.dispatcher.run(
                Command(
                    action=AuditAction.CREATE,
                    resource_type=ResourceType.LEASE,
                    permission=Action.CREATE,
                    target=target,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, LeaseOut),
            )
            return self.paginate.ok(created, message="Lease created")

        return await breaker.call(handler)

    async def list_leases(
        self,
        actor: ActorContext,
        params: PageParams,
        *,
        property_id: Optional[uuid.UUID] = None,
        unit_id: Optional[uuid.UUID] = None,
        tenant_id: Optional[uuid.UUID] = None,
        status: Optional[LeaseStatus] = None,
    ):
        async def handler():
            items, total = await self.repo.list_leases(
                params,
                actor,
                property_id=property_id,
                unit_id=unit_id,
                tenant_id=tenant_id,
                status=status,
            )
            return self.paginate.page(ORMMapper.many(items, LeaseOut), total, params)

        return await breaker.call(handler)

    async def get_lease(self, actor: ActorContext, lease_id: uuid.UUID):
        async def handler():
            lease = await self._load(lease_id)
            if not authorize(actor, Action.VIEW, lease_target(lease)):
                raise Forbidden()
            return self.paginate.ok(ORMMapper.one(lease, LeaseOut))

        return await breaker.call(handler)

    async def update_lease(self, actor: ActorContext, lease_id: uuid.UUID, data):
        async def handler():
            lease = await self._load(lease_id)
            changes = data.model_dump(exclude_unset=True)

            async def mutate():
                if lease.status == LeaseStatus.TERMINATED:
                    raise SemanticError("A terminated lease cannot be changed")
                before = ORMMapper.snapshot(lease)
                new_status = changes.pop("status", None)
                if new_status is not None and new_status != lease.status:
                    if new_status not in LEASE_STATUS_CHANGES.get(lease.status, set()):
                        raise ValidationFailed.field(
                            "status",
                            f"Cannot move a lease from {lease.status.value} to {new_status.value}",
                            new_status.value,
                        )
                    if new_status == LeaseStatus.ACTIVE:
                        await self._ensure_unit_free(lease.unit_id, exclude_id=lease.id)
                        unit = await self.unit_repo.get(lease.unit_id)
                        unit.status = UnitStatus.LEASED
                    lease.status = new_status
                end_date = changes.get("end_date")
                if end_date is not None and end_date <= lease.start_date:
                    raise ValidationFailed.field(
                        "endDate", "endDate must be after startDate", end_date.isoformat()
                    )
                for key, value in changes.items():
                    setattr(lease, key, value)
                return CommandResult(value=lease, entity=lease, before=before)

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.UPDATE,
                    resource_type=ResourceType.LEASE,
                    permission=Action.UPDATE,
                    target=lease_target(lease),
                    resource_id=lease_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, LeaseOut),
            )
            return self.paginate.ok(updated, message="Lease updated")

        return await breaker.call(handler)

    async def terminate_lease(self, actor: ActorContext, lease_id: uuid.UUID, data):
        async def handler():
            lease = await self._load(lease_id)

            async def mutate():
                if lease.status == LeaseStatus.TERMINATED:
                    raise SemanticError("Lease is already terminated")
                before = ORMMapper.snapshot(lease)
                was_active = lease.status == LeaseStatus.ACTIVE
                lease.status = LeaseStatus.TERMINATED
                lease.terminated_at = utcnow()
                lease.termination_reason = (
                    data.reason or "Lease terminated by property manager."
                )
                schedules = await self.schedule_repo.deactivate_for_lease(lease.id)
                if was_active:
                    unit = await self.unit_repo.get(lease.unit_id)
                    unit.status = UnitStatus.VACANT
                tenant = await self.user_repo.get(lease.tenant_id)
                return CommandResult(
                    value=lease,
                    entity=lease,
                    before=before,
                    description=f"Lease terminated; {schedules} rent schedules deactivated",
                    side_effects=tenant_notice(
                        tenant,
                        lease,
                        "lease_terminated",
                        "Your lease has been terminated.",
                        reason=lease.termination_reason,
                    ),
                )

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.LEASE_TERMINATED,
                    resource_type=ResourceType.LEASE,
                    permission=Action.UPDATE,
                    target=lease_target(lease),
                    resource_id=lease_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, LeaseOut),
            )
            return self.paginate.ok(updated, message="Lease terminated")

        return await breaker.call(handler)

    async def renew_lease(self, actor: ActorContext, lease_id: uuid.UUID, data):
        async def handler():
            lease = await self._load(lease_id)

            async def mutate():
                if lease.status not in (LeaseStatus.ACTIVE, LeaseStatus.PENDING_RENEWAL):
                    raise SemanticError("Only active leases can be renewed")
                if data.new_end_date <= lease.end_date:
                    raise ValidationFailed.field(
                        "newEndDate",
                        "newEndDate must be after the current end date",
                        data.new_end_date.isoformat(),
                    )
                before = ORMMapper.snapshot(lease)
                old_end = lease.end_date
                lease.end_date = data.new_end_date
                if data.monthly_rent is not None:
                    lease.monthly_rent = data.monthly_rent
                lease.status = LeaseStatus.ACTIVE
                lease.renewal_notice_sent = False
                lease.renewal_notice_sent_at = None
                for schedule in await self.schedule_repo.active_for_lease(lease.id):
                    if schedule.effective_end_date in (None, old_end):
                        schedule.effective_end_date = lease.end_date
                    if data.monthly_rent is not None:
                        schedule.amount = data.monthly_rent
                return CommandResult(value=lease, entity=lease, before=before)

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.LEASE_RENEWED,
                    resource_type=ResourceType.LEASE,
                    permission=Action.UPDATE,
                    target=lease_target(lease),
                    resource_id=lease_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, LeaseOut),
            )
            return self.paginate.ok(updated, message="Lease renewed")

        return await breaker.call(handler)

    async def expiring(self, actor: ActorContext, days: int = 30):
        async def handler():
            today = utcnow().date()
            leases = await self.repo.expiring_between(
                today, today + timedelta(days=days), actor
            )
            data = self.paginate.get_list_json_dumps(ORMMapper.many(leases, LeaseOut))
            body = self.paginate.ok(data)
            body["count"] = len(data)
            return body

        return await breaker.call(handler)

    async def mark_renewal_notice_sent(self, actor: ActorContext, lease_id: uuid.UUID):
        async def handler():
            lease = await self._load(lease_id)

            async def mutate():
                before = ORMMapper.snapshot(lease)
                lease.renewal_notice_sent = True
                lease.renewal_notice_sent_at = utcnow()
                if lease.status == LeaseStatus.ACTIVE:
                    lease.status = LeaseStatus.PENDING_RENEWAL
                tenant = await self.user_repo.get(lease.tenant_id)
                return CommandResult(
                    value=lease,
                    entity=lease,
                    before=before,
                    side_effects=tenant_notice(
                        tenant,
                        lease,
                        "lease_expiring",
                        f"Your lease ends on {lease.end_date.isoformat()}.",
                    ),
                )

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.UPDATE,
                    resource_type=ResourceType.LEASE,
                    permission=Action.UPDATE,
                    target=lease_target(lease),
                    resource_id=lease_id,
                    description="Renewal notice sent",
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, LeaseOut),
            )
            return self.paginate.ok(updated, message="Renewal notice recorded")

        return await breaker.call(handler)
