"""Materialization of recurring obligations.

Rent schedules produce ``RentRecord`` rows and active scheduled-maintenance
templates produce ``MaintenanceRequest`` rows for every occurrence whose
date has passed. Each obligation is written in its own short transaction
keyed by a unique constraint, so concurrent runs skip rather than duplicate.
"""

import dataclasses
import logging
import uuid
from datetime import date, datetime
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError

from core.date_helper import utcnow
from core.mapper import ORMMapper
from core.recurrence import Frequency, billing_periods, next_occurrence
from models.enums import (
    AssigneeKind,
    AuditAction,
    FrequencyType,
    LeaseStatus,
    PaymentStatus,
    RequestStatus,
    ResourceType,
    TemplateStatus,
)
from models.models import MaintenanceRequest, RentRecord, RentSchedule, ScheduledMaintenance
from policy.authorization import ActorContext
from repos.lease_repo import LeaseRepo
from repos.rent_repo import RentRepo, RentScheduleRepo
from repos.request_repo import RequestRepo
from repos.scheduled_maintenance_repo import ScheduledMaintenanceRepo
from schemas.schema import RecurrenceRunOut
from services.audit_service import AuditService

logger = logging.getLogger("recurrence")

BILLABLE_LEASES = (LeaseStatus.ACTIVE, LeaseStatus.PENDING_RENEWAL)
MONTH_BASED = (FrequencyType.MONTHLY, FrequencyType.QUARTERLY, FrequencyType.YEARLY)


def template_frequency(template: ScheduledMaintenance) -> Optional[Frequency]:
    """Stored frequency, anchored to the scheduled day so month steps do not drift."""
    freq = Frequency.from_dict(template.frequency) if template.recurring else None
    if freq and freq.type in MONTH_BASED and not freq.day_of_month:
        freq = dataclasses.replace(freq, day_of_month=template.scheduled_date.day)
    return freq


class RecurrenceEngine:
    def __init__(self, db, actor: Optional[ActorContext] = None):
        self.db = db
        self.actor = actor
        self.schedule_repo = RentScheduleRepo(db)
        self.rent_repo = RentRepo(db)
        self.lease_repo = LeaseRepo(db)
        self.template_repo = ScheduledMaintenanceRepo(db)
        self.request_repo = RequestRepo(db)
        self.audit = AuditService(db)

    async def run(self, now: Optional[datetime] = None) -> RecurrenceRunOut:
        now = now or utcnow()
        rent_created = await self.generate_rent(now.date())
        requests_created, completed = await self.generate_requests(now)
        logger.info(
            "Recurrence run at %s: %s rent records, %s requests, %s templates completed",
            now.isoformat(),
            rent_created,
            requests_created,
            completed,
        )
        return RecurrenceRunOut(
            rent_records_created=rent_created,
            requests_created=requests_created,
            templates_completed=completed,
        )

    # ------------------------------------------------------------------ rent

    async def generate_rent(self, today: date) -> int:
        created = 0
        for schedule in await self.schedule_repo.due_for_generation():
            created += await self._materialize_schedule(schedule, today)
        return created

    async def _materialize_schedule(self, schedule: RentSchedule, today: date) -> int:
        # an earlier rollback in this run may have expired it
        await self.db.refresh(schedule)
        lease = await self.lease_repo.get(schedule.lease_id)
        if lease is None or lease.status not in BILLABLE_LEASES:
            return 0
        lease_end = lease.end_date
        schedule_id = schedule.id
        existing = await self.rent_repo.periods_for_lease(lease.id)
        slots = list(
            billing_periods(
                billing_period=schedule.billing_period,
                due_date_day=schedule.due_date_day,
                effective_start=schedule.effective_start_date,
                effective_end=schedule.effective_end_date,
                lease_end=lease_end,
                until=today,
            )
        )

        created = 0
        for slot in slots:
            if slot.key in existing:
                continue
            record = RentRecord(
                lease_id=schedule.lease_id,
                rent_schedule_id=schedule_id,
                tenant_id=schedule.tenant_id,
                property_id=schedule.property_id,
                unit_id=schedule.unit_id,
                billing_period=slot.key,
                amount_due=schedule.amount,
                amount_paid=0,
                currency=schedule.currency,
                due_date=slot.due_date,
                status=PaymentStatus.DUE,
            )
            self.db.add(record)
            if schedule.last_generated_date is None or slot.due_date > schedule.last_generated_date:
                schedule.last_generated_date = slot.due_date
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                # rollback expired the schedule
                await self.db.refresh(schedule)
                logger.info(
                    "Rent for lease %s period %s already exists; skipped",
                    schedule.lease_id,
                    slot.key,
                )
                continue
            created += 1
            audited = await self.audit.record(
                self.audit.entry(
                    action=AuditAction.RENT_GENERATED,
                    resource_type=ResourceType.RENT,
                    resource_id=record.id,
                    actor=self.actor,
                    description=f"Rent for {slot.key} from schedule {schedule_id}",
                    after=ORMMapper.snapshot(record),
                )
            )
            if not audited:
                await self.db.refresh(schedule)
        return created

    # ------------------------------------------------------------- templates

    async def generate_requests(
        self, now: datetime, template_id: Optional[uuid.UUID] = None
    ) -> Tuple[int, int]:
        created = completed = 0
        for template in await self.template_repo.due(now, template_id):
            emitted, done = await self._fire_template(template, now)
            created += emitted
            completed += int(done)
        return created, completed

    def _request_for(self, template: ScheduledMaintenance, fire_at: datetime, now: datetime):
        request = MaintenanceRequest(
            title=template.title,
            description=template.description,
            category=template.category,
            priority=template.priority,
            property_id=template.property_id,
            unit_id=template.unit_id,
            created_by_id=template.created_by_id,
            media_refs=list(template.media_refs or []),
            generated_from_scheduled_maintenance_id=template.id,
            scheduled_fire_at=fire_at,
            status=RequestStatus.NEW,
        )
        if template.assigned_to_id is not None:
            request.assigned_to_id = template.assigned_to_id
            request.assigned_kind = template.assigned_kind or AssigneeKind.USER
            request.assigned_at = now
            request.status = RequestStatus.ASSIGNED
        return request

    async def _fire_template(self, template: ScheduledMaintenance, now: datetime) -> Tuple[int, bool]:
        """Emit every occurrence of one template that is due by ``now``."""
        await self.db.refresh(template)
        template_id = template.id
        freq = template_frequency(template)
        emitted = 0
        finished = False

        while template.status == TemplateStatus.ACTIVE and template.next_due_date <= now:
            fire_at = template.next_due_date
            next_due = next_occurrence(fire_at, freq) if freq else None
            count = template.occurrence_count + 1
            complete = next_due is None or bool(
                freq and freq.occurrences and count >= freq.occurrences
            )

            request = self._request_for(template, fire_at, now)
            self.db.add(request)
            try:
                await self.db.flush()
                advanced = await self.template_repo.advance(
                    template_id,
                    fired_at=fire_at,
                    next_due=next_due,
                    request_id=request.id,
                    executed_at=now,
                    complete=complete,
                )
                if not advanced:
                    await self.db.rollback()
                else:
                    await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                advanced = False
                logger.info(
                    "Template %s already fired for %s; skipped", template_id, fire_at.isoformat()
                )

            await self.db.refresh(template)
            if not advanced:
                if template.next_due_date == fire_at and template.status == TemplateStatus.ACTIVE:
                    logger.warning("Template %s could not be advanced past %s", template_id, fire_at)
                    break
                continue

            emitted += 1
            finished = complete
            audited = await self.audit.record(
                self.audit.entry(
                    action=AuditAction.SCHEDULED_MAINTENANCE_GENERATED_REQUEST,
                    resource_type=ResourceType.SCHEDULED_MAINTENANCE,
                    resource_id=template.id,
                    actor=self.actor,
                    description=f"Request {request.id} for occurrence {fire_at.isoformat()}",
                    after={"requestId": str(request.id), "occurrenceCount": count},
                ),
                self.audit.entry(
                    action=AuditAction.CREATE,
                    resource_type=ResourceType.REQUEST,
                    resource_id=request.id,
                    actor=self.actor,
                    description=f"Generated from scheduled maintenance {template.id}",
                    after=ORMMapper.snapshot(request),
                ),
            )
            if not audited:
                # a failed audit write rolls back and expires the template
                await self.db.refresh(template)

        return emitted, finished
