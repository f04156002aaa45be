import logging
import uuid
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional

from core.breaker import breaker
from core.date_helper import clamp_day, utcnow
from core.errors import Forbidden, NotFound, SemanticError, ValidationFailed
from core.mapper import ORMMapper
from core.paginate import PageParams, PaginatePage
from models.enums import (
    AuditAction,
    LeaseStatus,
    NotificationType,
    PaymentStatus,
    ResourceType,
    SideEffectKind,
)
from models.models import RentRecord, User
from policy.authorization import Action, ActorContext, Target, authorize
from repos.lease_repo import LeaseRepo
from repos.rent_repo import OPEN_STATUSES, RentRepo
from repos.user_repo import UserRepo
from schemas.schema import RentOut
from services.dispatcher import (
    Command,
    CommandDispatcher,
    CommandResult,
    SideEffectRequest,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def rent_target(record) -> Target:
    return Target(
        kind=ResourceType.RENT,
        property_id=record.property_id,
        unit_id=record.unit_id,
        tenant_id=record.tenant_id,
    )


def balance_of(record: RentRecord) -> Decimal:
    return max(Decimal(record.amount_due) - Decimal(record.amount_paid or 0), ZERO)


def rent_payload(tenant: User, record: RentRecord) -> dict:
    return {
        "name": tenant.full_name,
        "currency": record.currency,
        "amount_due": str(record.amount_due),
        "balance": str(balance_of(record)),
        "billing_period": record.billing_period,
        "due_date": record.due_date.isoformat(),
    }


def rent_notices(tenant: Optional[User], record: RentRecord, template: str) -> list:
    """Email, SMS (when the tenant has a phone) and in-app notice for a rent record."""
    if tenant is None:
        return []
    payload = rent_payload(tenant, record)
    effects = [
        SideEffectRequest(
            kind=SideEffectKind.EMAIL,
            template=template,
            recipient=tenant.email,
            recipient_user_id=tenant.id,
            payload=payload,
            resource_type=ResourceType.RENT,
            resource_id=record.id,
        ),
        SideEffectRequest(
            kind=SideEffectKind.NOTIFICATION,
            template=template,
            recipient_user_id=tenant.id,
            payload={
                "type": NotificationType.RENT_DUE.value,
                "message": f"Rent for {record.billing_period} is due on {record.due_date.isoformat()}.",
            },
            resource_type=ResourceType.RENT,
            resource_id=record.id,
        ),
    ]
    if tenant.phone:
        effects.append(
            SideEffectRequest(
                kind=SideEffectKind.SMS,
                template=template,
                recipient=tenant.phone,
                recipient_user_id=tenant.id,
                payload=payload,
                resource_type=ResourceType.RENT,
                resource_id=record.id,
            )
        )
    return effects


class RentService:
    def __init__(self, db):
        self.db = db
        self.repo: RentRepo = RentRepo(db)
        self.lease_repo: LeaseRepo = LeaseRepo(db)
        self.user_repo: UserRepo = UserRepo(db)
        self.dispatcher: CommandDispatcher = CommandDispatcher(db)
        self.paginate: PaginatePage = PaginatePage()

    async def _load(self, rent_id: uuid.UUID) -> RentRecord:
        record = await self.repo.get(rent_id)
        if not record:
            raise NotFound("Rent record not found")
        return record

    async def create_rent(self, actor: ActorContext, data):
        async def handler():
            lease = await self.lease_repo.get(data.lease_id)
            if not lease:
                raise NotFound("Lease not found")
            target = Target(
                kind=ResourceType.RENT,
                property_id=lease.property_id,
                unit_id=lease.unit_id,
                tenant_id=lease.tenant_id,
            )

            async def mutate():
                if lease.status == LeaseStatus.TERMINATED:
                    raise SemanticError("Cannot bill a terminated lease")
                if await self.repo.get_for_period(lease.id, data.billing_period):
                    raise ValidationFailed.field(
                        "billingPeriod",
                        "Rent for this billing period already exists",
                        data.billing_period,
                    )
                year, month = (int(x) for x in data.billing_period.split("-"))
                record = RentRecord(
                    lease_id=lease.id,
                    tenant_id=lease.tenant_id,
                    property_id=lease.property_id,
                    unit_id=lease.unit_id,
                    billing_period=data.billing_period,
                    amount_due=data.amount_due if data.amount_due is not None else lease.monthly_rent,
                    currency=lease.currency,
                    due_date=data.due_date or clamp_day(year, month, lease.payment_due_day),
                    status=PaymentStatus.DUE,
                    notes=data.notes,
                    recorded_by_id=actor.user_id,
                )
                await self.repo.add(record)
                tenant = await self.user_repo.get(lease.tenant_id)
                return CommandResult(
                    value=record,
                    entity=record,
                    side_effects=rent_notices(tenant, record, "rent_due"),
                )

            created = await self.dispatcher.run(
                Command(
                    action=AuditAction.CREATE,
                    resource_type=ResourceType.RENT,
                    permission=Action.CREATE,
                    target=target,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, RentOut),
            )
            return self.paginate.ok(created, message="Rent record created")

        return await breaker.call(handler)

    async def list_rents(
        self,
        actor: ActorContext,
        params: PageParams,
        *,
        property_id: Optional[uuid.UUID] = None,
        lease_id: Optional[uuid.UUID] = None,
        tenant_id: Optional[uuid.UUID] = None,
        status: Optional[PaymentStatus] = None,
    ):
        async def handler():
            items, total = await self.repo.list_rents(
                params,
                actor,
                property_id=property_id,
                lease_id=lease_id,
                tenant_id=tenant_id,
                status=status,
            )
            return self.paginate.page(ORMMapper.many(items, RentOut), total, params)

        return await breaker.call(handler)

    async def get_rent(self, actor: ActorContext, rent_id: uuid.UUID):
        async def handler():
            record = await self._load(rent_id)
            if not authorize(actor, Action.VIEW, rent_target(record)):
                raise Forbidden()
            return self.paginate.ok(ORMMapper.one(record, RentOut))

        return await breaker.call(handler)

    async def record_payment(self, actor: ActorContext, rent_id: uuid.UUID, data):
        async def handler():
            record = await self._load(rent_id)

            async def mutate():
                if record.status in (PaymentStatus.PAID, PaymentStatus.WAIVED):
                    raise SemanticError(f"Rent is already {record.status.value}")
                before = ORMMapper.snapshot(record)
                record.amount_paid = Decimal(record.amount_paid or 0) + data.amount_paid
                record.payment_date = data.payment_date or utcnow()
                record.payment_method = data.payment_method
                record.transaction_id = data.transaction_id or record.transaction_id
                record.proof_media_ref = data.proof_media_ref or record.proof_media_ref
                if data.notes:
                    record.notes = data.notes
                record.recorded_by_id = actor.user_id
                record.status = (
                    PaymentStatus.PAID
                    if record.amount_paid >= record.amount_due
                    else PaymentStatus.PARTIALLY_PAID
                )
                tenant = await self.user_repo.get(record.tenant_id)
                effects = []
                if tenant is not None:
                    effects.append(
                        SideEffectRequest(
                            kind=SideEffectKind.EMAIL,
                            template="payment_received",
                            recipient=tenant.email,
                            recipient_user_id=tenant.id,
                            payload={
                                "name": tenant.full_name,
                                "currency": record.currency,
                                "amount": str(data.amount_paid),
                                "billing_period": record.billing_period,
                                "status": record.status.value,
                            },
                            resource_type=ResourceType.RENT,
                            resource_id=record.id,
                        )
                    )
                return CommandResult(
                    value=record,
                    entity=record,
                    before=before,
                    description=f"Payment of {record.currency} {data.amount_paid} recorded",
                    side_effects=effects,
                )

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.PAYMENT_RECORDED,
                    resource_type=ResourceType.RENT,
                    permission=Action.PAY,
                    target=rent_target(record),
                    resource_id=rent_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, RentOut),
            )
            return self.paginate.ok(updated, message="Payment recorded")

        return await breaker.call(handler)

    async def waive_rent(self, actor: ActorContext, rent_id: uuid.UUID, data):
        async def handler():
            record = await self._load(rent_id)

            async def mutate():
                if record.status in (PaymentStatus.PAID, PaymentStatus.WAIVED):
                    raise SemanticError(f"Rent is already {record.status.value}")
                before = ORMMapper.snapshot(record)
                record.status = PaymentStatus.WAIVED
                if data.reason:
                    record.notes = data.reason
                record.recorded_by_id = actor.user_id
                return CommandResult(
                    value=record, entity=record, before=before, description=data.reason
                )

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.RENT_WAIVED,
                    resource_type=ResourceType.RENT,
                    permission=Action.UPDATE,
                    target=rent_target(record),
                    resource_id=rent_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, RentOut),
            )
            return self.paginate.ok(updated, message="Rent waived")

        return await breaker.call(handler)

    async def upcoming(self, actor: ActorContext, days: int = 30):
        async def handler():
            today = utcnow().date()
            records = await self.repo.open_between(today, today + timedelta(days=days), actor)
            data = self.paginate.get_list_json_dumps(ORMMapper.many(records, RentOut))
            body = self.paginate.ok(data)
            body["count"] = len(data)
            return body

        return await breaker.call(handler)

    async def history(
        self,
        actor: ActorContext,
        *,
        lease_id: Optional[uuid.UUID] = None,
        tenant_id: Optional[uuid.UUID] = None,
    ):
        async def handler():
            if lease_id is None and tenant_id is None:
                raise ValidationFailed.field("leaseId", "leaseId or tenantId is required")
            records: List[RentRecord] = await self.repo.history(
                lease_id=lease_id, tenant_id=tenant_id
            )
            visible = [r for r in records if authorize(actor, Action.VIEW, rent_target(r))]
            if records and not visible:
                raise Forbidden()
            totals = {
                "totalDue": str(sum((Decimal(r.amount_due) for r in visible), ZERO)),
                "totalPaid": str(sum((Decimal(r.amount_paid or 0) for r in visible), ZERO)),
                "outstanding": str(
                    sum((balance_of(r) for r in visible if r.status in OPEN_STATUSES), ZERO)
                ),
            }
            data = self.paginate.get_list_json_dumps(ORMMapper.many(visible, RentOut))
            body = self.paginate.ok({"records": data, "totals": totals})
            body["count"] = len(data)
            return body

        return await breaker.call(handler)

    async def mark_overdue(self) -> int:
        """Move unpaid rent past its due date to overdue. Scheduler entry point."""
        today = utcnow().date()
        changed = await self.repo.mark_overdue(today)
        await self.db.commit()
        if changed:
            logger.info("Marked %s rent records overdue", changed)
        return changed

    async def send_reminders(self, days_ahead: int = 3) -> int:
        """Queue reminders for open rent due within ``days_ahead`` days."""
        until = utcnow().date() + timedelta(days=days_ahead)
        records = await self.repo.unreminded_due(until)
        sent = 0
        for record in records:
            tenant = await self.user_repo.get(record.tenant_id)

            async def mutate(record=record, tenant=tenant):
                before = ORMMapper.snapshot(record)
                record.reminder_sent = True
                record.last_reminder_date = utcnow()
                return CommandResult(
                    value=record,
                    entity=record,
                    before=before,
                    description="Rent reminder queued",
                    side_effects=rent_notices(tenant, record, "rent_reminder"),
                )

            await self.dispatcher.run(
                Command(action=AuditAction.UPDATE, resource_type=ResourceType.RENT),
                mutate,
            )
            sent += 1
        return sent
