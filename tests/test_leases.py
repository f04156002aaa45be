from sqlalchemy import select

from models.enums import AuditAction, AuditStatus, LeaseStatus, ResourceType, UnitStatus, UserRole
from models.models import Lease, RentSchedule, Unit

from factories import audit_rows, auth_headers, make_lease, make_property, make_unit, make_user


def lease_body(unit, tenant, **overrides):
    body = {
        "unitId": str(unit.id),
        "tenantId": str(tenant.id),
        "startDate": "2025-01-01",
        "endDate": "2026-01-01",
        "monthlyRent": "1200",
        "currency": "usd",
        "paymentDueDay": 5,
    }
    body.update(overrides)
    return body


class TestLeaseExclusivity:
    async def test_second_active_lease_conflicts_until_first_terminated(
        self, client, estate, landlord, tenant
    ):
        _, unit = estate
        headers = auth_headers(landlord)

        first = await client.post("/api/leases", json=lease_body(unit, tenant), headers=headers)
        assert first.status_code == 201
        assert first.json()["data"]["currency"] == "USD"
        lease_id = first.json()["data"]["id"]

        clash = await client.post(
            "/api/leases",
            json=lease_body(unit, tenant, startDate="2025-06-01", endDate="2026-06-01"),
            headers=headers,
        )
        assert clash.status_code == 409

        ended = await client.post(
            f"/api/leases/{lease_id}/terminate", json={"reason": "moved out"}, headers=headers
        )
        assert ended.status_code == 200
        assert ended.json()["data"]["status"] == "terminated"

        second = await client.post(
            "/api/leases",
            json=lease_body(unit, tenant, startDate="2025-06-01", endDate="2026-06-01"),
            headers=headers,
        )
        assert second.status_code == 201

    async def test_at_most_one_active_lease_per_unit(self, client, db, estate, landlord, tenant):
        _, unit = estate
        headers = auth_headers(landlord)
        for _ in range(3):
            await client.post("/api/leases", json=lease_body(unit, tenant), headers=headers)

        result = await db.execute(
            select(Lease).where(Lease.unit_id == unit.id, Lease.status == LeaseStatus.ACTIVE)
        )
        assert len(result.scalars().all()) == 1

    async def test_lease_marks_unit_leased(self, client, db, estate, landlord, tenant):
        _, unit = estate
        await client.post("/api/leases", json=lease_body(unit, tenant), headers=auth_headers(landlord))

        refreshed = await db.get(Unit, unit.id, populate_existing=True)
        assert refreshed.status == UnitStatus.LEASED

    async def test_tenant_must_live_in_unit(self, client, db, estate, landlord):
        _, unit = estate
        stranger = await make_user(db, UserRole.TENANT)

        resp = await client.post(
            "/api/leases", json=lease_body(unit, stranger), headers=auth_headers(landlord)
        )
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "tenantId"

    async def test_end_date_must_follow_start(self, client, estate, landlord, tenant):
        _, unit = estate
        resp = await client.post(
            "/api/leases",
            json=lease_body(unit, tenant, endDate="2024-12-31"),
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 400

    async def test_optional_rent_schedule_is_derived(self, client, db, estate, landlord, tenant):
        _, unit = estate
        resp = await client.post(
            "/api/leases",
            json=lease_body(unit, tenant, createRentSchedule=True),
            headers=auth_headers(landlord),
        )
        lease_id = resp.json()["data"]["id"]

        schedules = (await db.execute(select(RentSchedule))).scalars().all()
        assert len(schedules) == 1
        assert str(schedules[0].lease_id) == lease_id
        assert schedules[0].due_date_day == 5


class TestPropertyScoping:
    async def test_landlord_sees_nothing_of_foreign_property(self, client, db, estate, landlord):
        other_owner = await make_user(db, UserRole.LANDLORD)
        foreign = await make_property(db, other_owner)

        resp = await client.get(
            "/api/leases", params={"propertyId": str(foreign.id)}, headers=auth_headers(landlord)
        )
        assert resp.status_code == 200
        assert resp.json()["data"] == []
        assert resp.json()["total"] == 0

    async def test_deleting_foreign_property_is_forbidden_and_audited(
        self, client, db, estate, landlord
    ):
        other_owner = await make_user(db, UserRole.LANDLORD)
        foreign = await make_property(db, other_owner)

        resp = await client.delete(f"/api/properties/{foreign.id}", headers=auth_headers(landlord))
        assert resp.status_code == 403

        rows = await audit_rows(db, resource_id=foreign.id)
        assert len(rows) == 1
        assert rows[0].action == AuditAction.DELETE
        assert rows[0].resource_type == ResourceType.PROPERTY
        assert rows[0].status == AuditStatus.FAILURE
        assert rows[0].error_message == "not authorized"
        assert rows[0].user_id == landlord.id

    async def test_unit_of_other_property_rejected(self, client, db, estate, landlord, tenant):
        other_owner = await make_user(db, UserRole.LANDLORD)
        foreign = await make_property(db, other_owner)
        foreign_unit = await make_unit(db, foreign, name="B7")

        resp = await client.get(
            f"/api/properties/{estate[0].id}/units/{foreign_unit.id}",
            headers=auth_headers(landlord),
        )
        assert resp.status_code in (403, 404)

    async def test_unauthenticated_request_is_rejected(self, client):
        resp = await client.get("/api/leases")
        assert resp.status_code == 401


class TestPropertyArchive:
    async def test_archive_cascades_to_units_and_leases(self, client, db, estate, landlord, tenant):
        prop, unit = estate
        lease = await make_lease(db, unit, tenant)

        resp = await client.delete(f"/api/properties/{prop.id}", headers=auth_headers(landlord))
        assert resp.status_code == 200

        assert (await db.get(Unit, unit.id, populate_existing=True)).is_active is False
        ended = await db.get(Lease, lease.id, populate_existing=True)
        assert ended.status == LeaseStatus.TERMINATED

        again = await client.delete(f"/api/properties/{prop.id}", headers=auth_headers(landlord))
        assert again.status_code == 422

    async def test_hard_delete_is_admin_only(self, client, estate, landlord, admin):
        prop, _ = estate

        denied = await client.delete(
            f"/api/properties/{prop.id}", params={"hard": "true"}, headers=auth_headers(landlord)
        )
        assert denied.status_code == 403

        removed = await client.delete(
            f"/api/properties/{prop.id}", params={"hard": "true"}, headers=auth_headers(admin)
        )
        assert removed.status_code == 200


class TestRenewal:
    async def test_notice_then_renew(self, client, db, estate, landlord, tenant):
        _, unit = estate
        lease = await make_lease(db, unit, tenant)
        headers = auth_headers(landlord)

        notice = await client.post(f"/api/leases/{lease.id}/renewal-notice", headers=headers)
        assert notice.status_code == 200
        assert notice.json()["data"]["status"] == "pending_renewal"
        assert notice.json()["data"]["renewalNoticeSent"] is True

        renewed = await client.post(
            f"/api/leases/{lease.id}/renew", json={"newEndDate": "2027-01-01"}, headers=headers
        )
        assert renewed.status_code == 200
        data = renewed.json()["data"]
        assert data["status"] == "active"
        assert data["endDate"] == "2027-01-01"
        assert data["renewalNoticeSent"] is False

    async def test_renew_must_extend(self, client, db, estate, landlord, tenant):
        _, unit = estate
        lease = await make_lease(db, unit, tenant)
        resp = await client.post(
            f"/api/leases/{lease.id}/renew",
            json={"newEndDate": "2025-06-01"},
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 400
