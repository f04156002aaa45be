from datetime import datetime, timedelta

from sqlalchemy import select, update

from core.date_helper import utcnow
from models.enums import (
    AssigneeKind,
    AuditAction,
    Priority,
    RequestCategory,
    RequestStatus,
    ResourceType,
    TemplateStatus,
    UserRole,
)
from models.models import Comment, MaintenanceRequest, ScheduledMaintenance
from security.security_generate import user_generate
from services.recurrence_engine import RecurrenceEngine

from factories import audit_rows, auth_headers, make_user

IDENTITY = {"name": "Sam Fixit", "phone": "+256700000001"}


async def in_progress_request(db, estate, tenant, worker):
    prop, unit = estate
    request = MaintenanceRequest(
        title="Broken heater",
        description="No heat in the bedroom",
        category=RequestCategory.HVAC,
        priority=Priority.HIGH,
        property_id=prop.id,
        unit_id=unit.id,
        created_by_id=tenant.id,
        assigned_to_id=worker.id,
        assigned_kind=AssigneeKind.USER,
        status=RequestStatus.IN_PROGRESS,
    )
    db.add(request)
    await db.flush()
    db.add(
        Comment(
            context_type=ResourceType.REQUEST,
            context_id=request.id,
            sender_id=worker.id,
            message="Part is on back order",
            is_internal_note=True,
        )
    )
    await db.commit()
    return request


async def share(client, path, landlord, days=3):
    resp = await client.post(
        f"{path}/public-link", json={"expiresInDays": days}, headers=auth_headers(landlord)
    )
    assert resp.status_code == 200, resp.json()
    return resp.json()["data"]["publicToken"]


class TestPublicRequestLink:
    async def test_public_round_trip(self, client, db, estate, landlord, tenant):
        worker = await make_user(db, UserRole.VENDOR)
        request = await in_progress_request(db, estate, tenant, worker)
        token = await share(client, f"/api/requests/{request.id}", landlord)

        view = await client.get(f"/api/public/requests/{token}")
        assert view.status_code == 200
        data = view.json()["data"]
        assert data["title"] == "Broken heater"
        assert data["propertyName"] == "Acacia Court"
        assert data["comments"] == []
        assert "assignedTo" not in data
        assert worker.email not in view.text

        resp = await client.post(
            f"/api/public/requests/{token}/update",
            json={**IDENTITY, "status": "completed", "commentMessage": "done"},
        )
        assert resp.status_code == 200, resp.json()
        assert resp.json()["data"]["status"] == "completed"
        assert resp.json()["data"]["comments"][0]["senderName"] == "Sam Fixit"

        stored = await db.get(MaintenanceRequest, request.id, populate_existing=True)
        assert stored.status == RequestStatus.COMPLETED
        assert stored.resolved_at is not None

        comments = (
            await db.execute(select(Comment).where(Comment.is_external.is_(True)))
        ).scalars().all()
        assert [(c.external_name, c.external_phone, c.message) for c in comments] == [
            ("Sam Fixit", "+256700000001", "done")
        ]

        audits = await audit_rows(db, action=AuditAction.PUBLIC_UPDATE, resource_id=request.id)
        assert len(audits) == 1
        assert audits[0].user_id is None
        assert audits[0].external_actor["name"] == "Sam Fixit"
        assert audits[0].external_actor["phone"] == "+256700000001"

    async def test_expired_link_is_unauthorized(self, client, db, estate, landlord, tenant):
        worker = await make_user(db, UserRole.VENDOR)
        request = await in_progress_request(db, estate, tenant, worker)
        token = await share(client, f"/api/requests/{request.id}", landlord)

        await db.execute(
            update(MaintenanceRequest)
            .where(MaintenanceRequest.id == request.id)
            .values(public_link_expires_at=utcnow() - timedelta(minutes=1))
        )
        await db.commit()

        resp = await client.post(
            f"/api/public/requests/{token}/update",
            json={**IDENTITY, "status": "completed", "commentMessage": "done"},
        )
        assert resp.status_code == 401
        assert (await client.get(f"/api/public/requests/{token}")).status_code == 401

    async def test_disabled_link_is_unauthorized(self, client, db, estate, landlord, tenant):
        worker = await make_user(db, UserRole.VENDOR)
        request = await in_progress_request(db, estate, tenant, worker)
        token = await share(client, f"/api/requests/{request.id}", landlord)

        resp = await client.delete(
            f"/api/requests/{request.id}/public-link", headers=auth_headers(landlord)
        )
        assert resp.status_code == 200
        assert (await client.get(f"/api/public/requests/{token}")).status_code == 401

    async def test_public_link_cannot_cancel(self, client, db, estate, landlord, tenant):
        worker = await make_user(db, UserRole.VENDOR)
        request = await in_progress_request(db, estate, tenant, worker)
        token = await share(client, f"/api/requests/{request.id}", landlord)

        resp = await client.post(
            f"/api/public/requests/{token}/update", json={**IDENTITY, "status": "canceled"}
        )
        assert resp.status_code == 400

    async def test_unknown_token(self, client):
        assert (await client.get("/api/public/requests/not-a-token")).status_code == 401


class TestTokenPrivacy:
    async def test_only_hash_is_stored(self, client, db, estate, landlord, tenant):
        worker = await make_user(db, UserRole.VENDOR)
        request = await in_progress_request(db, estate, tenant, worker)
        token = await share(client, f"/api/requests/{request.id}", landlord)

        stored = await db.get(MaintenanceRequest, request.id, populate_existing=True)
        assert stored.public_token_hash == user_generate.hash_token(token)
        assert stored.public_token_hash != token

        read = await client.get(f"/api/requests/{request.id}", headers=auth_headers(landlord))
        assert token not in read.text
        assert stored.public_token_hash not in read.text

    async def test_rotating_link_invalidates_old_token(self, client, db, estate, landlord, tenant):
        worker = await make_user(db, UserRole.VENDOR)
        request = await in_progress_request(db, estate, tenant, worker)
        old = await share(client, f"/api/requests/{request.id}", landlord)
        new = await share(client, f"/api/requests/{request.id}", landlord)

        assert old != new
        assert (await client.get(f"/api/public/requests/{old}")).status_code == 401
        assert (await client.get(f"/api/public/requests/{new}")).status_code == 200


class TestPublicTemplateLink:
    async def test_status_applies_to_latest_occurrence(self, client, db, estate, landlord):
        prop, unit = estate
        worker = await make_user(db, UserRole.VENDOR)
        template = ScheduledMaintenance(
            title="Gutter cleaning",
            description="Clear leaves from gutters",
            category=RequestCategory.SCHEDULED,
            priority=Priority.MEDIUM,
            property_id=prop.id,
            unit_id=unit.id,
            created_by_id=landlord.id,
            scheduled_date=datetime(2025, 1, 1),
            next_due_date=datetime(2025, 1, 1),
            recurring=True,
            frequency={"type": "monthly", "interval": 1},
            status=TemplateStatus.ACTIVE,
            assigned_to_id=worker.id,
            assigned_kind=AssigneeKind.USER,
        )
        db.add(template)
        await db.commit()
        await RecurrenceEngine(db).generate_requests(datetime(2025, 1, 2))
        await db.refresh(template)

        token = await share(client, f"/api/scheduled-maintenance/{template.id}", landlord)
        view = await client.get(f"/api/public/scheduled-maintenances/{token}")
        assert view.status_code == 200
        assert view.json()["data"]["title"] == "Gutter cleaning"

        resp = await client.post(
            f"/api/public/scheduled-maintenances/{token}/update",
            json={**IDENTITY, "status": "in_progress", "commentMessage": "On site"},
        )
        assert resp.status_code == 200, resp.json()

        occurrence = await db.get(
            MaintenanceRequest, template.last_generated_request_id, populate_existing=True
        )
        assert occurrence.status == RequestStatus.IN_PROGRESS
