from datetime import datetime

from sqlalchemy import select

from models.enums import (
    AuditAction,
    Priority,
    RequestCategory,
    RequestStatus,
    TemplateStatus,
)
from models.models import MaintenanceRequest, ScheduledMaintenance
from services.recurrence_engine import RecurrenceEngine
from services.scheduled_maintenance_service import ScheduledMaintenanceService

from factories import actor_of, audit_rows, auth_headers


async def make_template(db, estate, owner, frequency, start, **overrides):
    prop, unit = estate
    values = dict(
        title="Boiler service",
        description="Annual boiler inspection",
        category=RequestCategory.SCHEDULED,
        priority=Priority.MEDIUM,
        property_id=prop.id,
        unit_id=unit.id,
        created_by_id=owner.id,
        scheduled_date=start,
        next_due_date=start,
        recurring=frequency is not None,
        frequency=frequency,
        status=TemplateStatus.ACTIVE,
    )
    values.update(overrides)
    template = ScheduledMaintenance(**values)
    db.add(template)
    await db.commit()
    return template


async def children(db, template):
    result = await db.execute(
        select(MaintenanceRequest)
        .where(MaintenanceRequest.generated_from_scheduled_maintenance_id == template.id)
        .order_by(MaintenanceRequest.scheduled_fire_at)
    )
    return list(result.scalars().all())


class TestGeneration:
    async def test_weekly_template_pause_and_resume(self, db, estate, landlord):
        template = await make_template(
            db,
            estate,
            landlord,
            {"type": "weekly", "interval": 1, "dayOfWeek": [1]},
            datetime(2025, 7, 7),
        )
        engine = RecurrenceEngine(db)
        service = ScheduledMaintenanceService(db)
        actor = await actor_of(db, landlord)

        created, _ = await engine.generate_requests(datetime(2025, 7, 7, 10))
        await db.refresh(template)
        assert created == 1
        assert template.next_due_date == datetime(2025, 7, 14)

        await service.pause_template(actor, template.id)
        created, _ = await engine.generate_requests(datetime(2025, 7, 21))
        assert created == 0

        frequency_before = dict(template.frequency)
        await service.resume_template(actor, template.id, now=datetime(2025, 7, 21))
        await db.refresh(template)
        assert template.status == TemplateStatus.ACTIVE
        assert template.next_due_date == datetime(2025, 7, 21)
        assert template.frequency == frequency_before
        assert len(await children(db, template)) == 1

    async def test_resume_keeps_future_due_date(self, db, estate, landlord):
        template = await make_template(
            db, estate, landlord, {"type": "daily"}, datetime(2025, 8, 1)
        )
        service = ScheduledMaintenanceService(db)
        actor = await actor_of(db, landlord)

        await service.pause_template(actor, template.id)
        await service.resume_template(actor, template.id, now=datetime(2025, 7, 1))
        await db.refresh(template)

        assert template.next_due_date == datetime(2025, 8, 1)

    async def test_occurrence_cap_completes_template(self, db, estate, landlord):
        template = await make_template(
            db, estate, landlord, {"type": "daily", "occurrences": 3}, datetime(2025, 1, 1)
        )

        created, completed = await RecurrenceEngine(db).generate_requests(datetime(2025, 1, 10))
        await db.refresh(template)

        assert created == 3
        assert completed == 1
        assert template.status == TemplateStatus.COMPLETED
        assert template.occurrence_count == 3
        kids = await children(db, template)
        assert [k.scheduled_fire_at for k in kids] == [
            datetime(2025, 1, 1),
            datetime(2025, 1, 2),
            datetime(2025, 1, 3),
        ]
        assert template.last_generated_request_id == kids[-1].id

        again, _ = await RecurrenceEngine(db).generate_requests(datetime(2025, 2, 1))
        assert again == 0

    async def test_one_off_template_fires_once(self, db, estate, landlord):
        template = await make_template(db, estate, landlord, None, datetime(2025, 3, 1))

        created, completed = await RecurrenceEngine(db).generate_requests(datetime(2025, 3, 2))
        await db.refresh(template)

        assert (created, completed) == (1, 1)
        assert template.status == TemplateStatus.COMPLETED

    async def test_monthly_template_keeps_its_day(self, db, estate, landlord):
        template = await make_template(
            db, estate, landlord, {"type": "monthly"}, datetime(2025, 1, 31)
        )

        await RecurrenceEngine(db).generate_requests(datetime(2025, 4, 1))
        await db.refresh(template)

        fired = [k.scheduled_fire_at for k in await children(db, template)]
        assert fired == [datetime(2025, 1, 31), datetime(2025, 2, 28), datetime(2025, 3, 31)]
        assert template.next_due_date == datetime(2025, 4, 30)

    async def test_generated_requests_copy_template(self, db, estate, landlord):
        template = await make_template(db, estate, landlord, None, datetime(2025, 3, 1))

        await RecurrenceEngine(db).generate_requests(datetime(2025, 3, 2))

        (child,) = await children(db, template)
        assert child.title == "Boiler service"
        assert child.status == RequestStatus.NEW
        assert child.property_id == template.property_id
        audits = await audit_rows(
            db, action=AuditAction.SCHEDULED_MAINTENANCE_GENERATED_REQUEST
        )
        assert len(audits) == 1

    async def test_repeated_runs_do_not_duplicate(self, db, estate, landlord):
        template = await make_template(
            db, estate, landlord, {"type": "daily"}, datetime(2025, 1, 1)
        )
        engine = RecurrenceEngine(db)

        await engine.generate_requests(datetime(2025, 1, 3))
        await engine.generate_requests(datetime(2025, 1, 3))

        assert len(await children(db, template)) == 3


class TestTemplateApi:
    async def test_create_and_pause_over_http(self, client, estate, landlord):
        prop, unit = estate
        headers = auth_headers(landlord)
        resp = await client.post(
            "/api/scheduled-maintenance",
            json={
                "title": "Filter change",
                "description": "Replace HVAC filters",
                "propertyId": str(prop.id),
                "unitId": str(unit.id),
                "scheduledDate": "2030-01-01T09:00:00Z",
                "recurring": True,
                "frequency": {"type": "monthly", "dayOfMonth": 1},
            },
            headers=headers,
        )
        assert resp.status_code == 201, resp.json()
        template = resp.json()["data"]
        assert template["status"] == "active"
        assert template["frequency"]["dayOfMonth"] == 1

        paused = await client.post(
            f"/api/scheduled-maintenance/{template['id']}/pause", headers=headers
        )
        assert paused.json()["data"]["status"] == "paused"

        again = await client.post(
            f"/api/scheduled-maintenance/{template['id']}/pause", headers=headers
        )
        assert again.status_code == 400

    async def test_recurring_needs_frequency(self, client, estate, landlord):
        prop, _ = estate
        resp = await client.post(
            "/api/scheduled-maintenance",
            json={
                "title": "Filter change",
                "description": "Replace HVAC filters",
                "propertyId": str(prop.id),
                "scheduledDate": "2030-01-01T09:00:00Z",
                "recurring": True,
            },
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 400

    async def test_tenant_cannot_schedule(self, client, estate, tenant):
        prop, unit = estate
        resp = await client.post(
            "/api/scheduled-maintenance",
            json={
                "title": "Filter change",
                "description": "Replace HVAC filters",
                "propertyId": str(prop.id),
                "unitId": str(unit.id),
                "scheduledDate": "2030-01-01T09:00:00Z",
            },
            headers=auth_headers(tenant),
        )
        assert resp.status_code == 403
