from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import func, select

from models.enums import AuditAction, BillingPeriod, LeaseStatus, PaymentStatus, ResourceType
from models.models import RentRecord, RentSchedule
from services.recurrence_engine import RecurrenceEngine

from factories import audit_rows, auth_headers, make_lease


async def add_schedule(db, lease, **overrides):
    values = dict(
        lease_id=lease.id,
        tenant_id=lease.tenant_id,
        property_id=lease.property_id,
        unit_id=lease.unit_id,
        amount=Decimal("1200"),
        currency="USD",
        due_date_day=5,
        billing_period=BillingPeriod.MONTHLY,
        effective_start_date=date(2025, 1, 1),
        auto_generate=True,
    )
    values.update(overrides)
    schedule = RentSchedule(**values)
    db.add(schedule)
    await db.commit()
    return schedule


async def records_for(db, lease):
    result = await db.execute(
        select(RentRecord).where(RentRecord.lease_id == lease.id).order_by(RentRecord.due_date)
    )
    return list(result.scalars().all())


class TestRentMaterialization:
    async def test_generates_one_record_per_elapsed_period(self, db, estate, tenant):
        _, unit = estate
        lease = await make_lease(db, unit, tenant)
        await add_schedule(db, lease)

        outcome = await RecurrenceEngine(db).run(datetime(2025, 3, 10))

        assert outcome.rent_records_created == 3
        records = await records_for(db, lease)
        assert [r.billing_period for r in records] == ["2025-01", "2025-02", "2025-03"]
        assert [r.due_date for r in records] == [
            date(2025, 1, 5),
            date(2025, 2, 5),
            date(2025, 3, 5),
        ]
        assert all(r.amount_due == Decimal("1200") for r in records)
        assert all(r.status == PaymentStatus.DUE for r in records)

    async def test_second_run_is_a_no_op(self, db, estate, tenant):
        _, unit = estate
        lease = await make_lease(db, unit, tenant)
        await add_schedule(db, lease)
        engine = RecurrenceEngine(db)

        await engine.run(datetime(2025, 3, 10))
        first = {(r.billing_period, r.id) for r in await records_for(db, lease)}
        outcome = await engine.run(datetime(2025, 3, 10))

        assert outcome.rent_records_created == 0
        assert {(r.billing_period, r.id) for r in await records_for(db, lease)} == first

    async def test_existing_period_is_never_duplicated(self, db, estate, tenant):
        _, unit = estate
        lease = await make_lease(db, unit, tenant)
        schedule = await add_schedule(db, lease)
        db.add(
            RentRecord(
                lease_id=lease.id,
                rent_schedule_id=schedule.id,
                tenant_id=tenant.id,
                property_id=lease.property_id,
                unit_id=lease.unit_id,
                billing_period="2025-02",
                amount_due=Decimal("1200"),
                amount_paid=Decimal("0"),
                currency="USD",
                due_date=date(2025, 2, 5),
                status=PaymentStatus.DUE,
            )
        )
        await db.commit()

        await RecurrenceEngine(db).run(datetime(2025, 3, 10))

        count = await db.scalar(
            select(func.count(RentRecord.id)).where(
                RentRecord.lease_id == lease.id, RentRecord.billing_period == "2025-02"
            )
        )
        assert count == 1
        assert len(await records_for(db, lease)) == 3

    async def test_terminated_lease_is_not_billed(self, db, estate, tenant):
        _, unit = estate
        lease = await make_lease(db, unit, tenant, status=LeaseStatus.TERMINATED)
        await add_schedule(db, lease)

        outcome = await RecurrenceEngine(db).run(datetime(2025, 3, 10))

        assert outcome.rent_records_created == 0

    async def test_generation_is_audited(self, db, estate, tenant):
        _, unit = estate
        lease = await make_lease(db, unit, tenant)
        await add_schedule(db, lease)

        await RecurrenceEngine(db).run(datetime(2025, 1, 10))

        rows = await audit_rows(db, action=AuditAction.RENT_GENERATED)
        assert len(rows) == 1
        assert rows[0].resource_type == ResourceType.RENT
        assert rows[0].user_id is None


class TestPayments:
    async def test_partial_then_full_payment(self, client, db, estate, landlord, tenant):
        _, unit = estate
        lease = await make_lease(db, unit, tenant)
        await add_schedule(db, lease)
        await RecurrenceEngine(db).run(datetime(2025, 1, 10))
        record = (await records_for(db, lease))[0]

        resp = await client.post(
            f"/api/rents/{record.id}/payments",
            json={"amountPaid": "500", "paymentMethod": "cash"},
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 200
        body = resp.json()["data"]
        assert body["status"] == "partially_paid"
        assert Decimal(body["balance"]) == Decimal("700")

        resp = await client.post(
            f"/api/rents/{record.id}/payments",
            json={"amountPaid": "700"},
            headers=auth_headers(landlord),
        )
        assert resp.json()["data"]["status"] == "paid"

        resp = await client.post(
            f"/api/rents/{record.id}/payments",
            json={"amountPaid": "1"},
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 422

        audits = await audit_rows(db, action=AuditAction.PAYMENT_RECORDED, resource_id=record.id)
        assert len(audits) == 2

    async def test_tenant_lists_only_own_rent(self, client, db, estate, tenant, landlord):
        _, unit = estate
        lease = await make_lease(db, unit, tenant)
        await add_schedule(db, lease)
        await RecurrenceEngine(db).run(datetime(2025, 2, 10))

        resp = await client.get("/api/rents", headers=auth_headers(tenant))
        assert resp.status_code == 200
        assert resp.json()["total"] == 2
        assert {r["tenantId"] for r in resp.json()["data"]} == {str(tenant.id)}
