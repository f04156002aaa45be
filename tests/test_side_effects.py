import logging
import uuid

from sqlalchemy import select

from models.enums import (
    AuditAction,
    AuditStatus,
    NotificationType,
    ResourceType,
    SideEffectKind,
    SideEffectStatus,
)
from models.models import Notification, SideEffect, Unit
from services import side_effect_service
from services.audit_service import AuditService
from services.side_effect_service import SideEffectService

from factories import audit_rows, auth_headers


async def enqueue(db, **values):
    effect = SideEffect(**values)
    db.add(effect)
    await db.commit()
    return effect


class TestDrain:
    async def test_notification_becomes_inbox_row(self, db, tenant):
        effect = await enqueue(
            db,
            kind=SideEffectKind.NOTIFICATION,
            template="lease_created",
            recipient_user_id=tenant.id,
            payload={"type": "general", "message": "Your lease is ready"},
            resource_type=ResourceType.LEASE,
        )

        outcome = await SideEffectService(db).drain()

        assert (outcome.delivered, outcome.retried, outcome.failed) == (1, 0, 0)
        (row,) = (await db.execute(select(Notification))).scalars().all()
        assert row.recipient_id == tenant.id
        assert row.type == NotificationType.GENERAL
        assert row.message == "Your lease is ready"
        await db.refresh(effect)
        assert effect.status == SideEffectStatus.DELIVERED
        assert effect.delivered_at is not None

    async def test_disabled_email_channel_counts_as_delivered(self, db):
        await enqueue(
            db,
            kind=SideEffectKind.EMAIL,
            template="welcome",
            recipient="someone@example.com",
            payload={"name": "Someone", "role": "tenant", "status": "active"},
        )

        outcome = await SideEffectService(db).drain()

        assert outcome.delivered == 1

    async def test_flaky_channel_is_retried_later(self, db, monkeypatch):
        async def broken(*args, **kwargs):
            raise ConnectionError("smtp down")

        monkeypatch.setattr(side_effect_service, "send_templated_email", broken)
        effect = await enqueue(
            db, kind=SideEffectKind.EMAIL, template="welcome", recipient="x@example.com"
        )

        outcome = await SideEffectService(db).drain()

        assert (outcome.delivered, outcome.retried) == (0, 1)
        await db.refresh(effect)
        assert effect.status == SideEffectStatus.PENDING
        assert effect.attempts == 1
        assert "smtp down" in effect.last_error
        again = await SideEffectService(db).drain()
        assert again.retried == 0

    async def test_undeliverable_row_fails_and_is_audited(self, db):
        effect = await enqueue(db, kind=SideEffectKind.SMS, template="rent_due", payload={})

        outcome = await SideEffectService(db).drain()

        assert outcome.failed == 1
        await db.refresh(effect)
        assert effect.status == SideEffectStatus.FAILED
        rows = await audit_rows(db, action=AuditAction.SIDE_EFFECT_FAILED)
        assert [row.status for row in rows] == [AuditStatus.FAILURE]


class TestOutboxFromCommands:
    async def test_lease_creation_notifies_tenant(self, client, db, estate, landlord, tenant):
        _, unit = estate
        resp = await client.post(
            "/api/leases",
            json={
                "unitId": str(unit.id),
                "tenantId": str(tenant.id),
                "startDate": "2025-01-01",
                "endDate": "2026-01-01",
                "monthlyRent": "900",
                "currency": "USD",
                "paymentDueDay": 1,
            },
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 201

        pending = (
            await db.execute(select(SideEffect).where(SideEffect.recipient_user_id == tenant.id))
        ).scalars().all()
        assert pending
        assert all(e.status == SideEffectStatus.PENDING for e in pending)

        await SideEffectService(db).drain()

        inbox = await client.get("/api/notifications", headers=auth_headers(tenant))
        assert inbox.status_code == 200
        assert inbox.json()["total"] >= 1
        assert inbox.json()["unread"] == inbox.json()["total"]

        first = inbox.json()["data"][0]["id"]
        read = await client.post(
            f"/api/notifications/{first}/read", headers=auth_headers(tenant)
        )
        assert read.json()["data"]["isRead"] is True

        other = await client.get("/api/notifications", headers=auth_headers(landlord))
        assert first not in other.text


class TestAdminTriggers:
    async def test_landlord_cannot_trigger_jobs(self, client, landlord):
        for path in ("/api/admin/recurrence/run", "/api/admin/side-effects/drain"):
            resp = await client.post(path, headers=auth_headers(landlord))
            assert resp.status_code == 403

    async def test_admin_drains_outbox(self, client, db, admin, tenant):
        await enqueue(
            db,
            kind=SideEffectKind.NOTIFICATION,
            template="general",
            recipient_user_id=tenant.id,
            payload={"message": "hello"},
        )

        resp = await client.post("/api/admin/side-effects/drain", headers=auth_headers(admin))

        assert resp.status_code == 200
        assert resp.json()["data"] == {"delivered": 1, "retried": 0, "failed": 0}


class TestAuditBestEffort:
    async def test_failed_audit_write_keeps_committed_change(
        self, client, db, estate, landlord, monkeypatch, caplog
    ):
        prop, _ = estate
        build = AuditService.entry

        def unwritable_entry(self, **kwargs):
            row = build(self, **kwargs)
            row.resource_type = None
            return row

        monkeypatch.setattr(AuditService, "entry", unwritable_entry)
        with caplog.at_level(logging.ERROR, logger="services.audit_service"):
            resp = await client.post(
                f"/api/properties/{prop.id}/units",
                json={"unitName": "C3"},
                headers=auth_headers(landlord),
            )

        assert resp.status_code == 201
        unit = await db.get(Unit, uuid.UUID(resp.json()["data"]["id"]))
        assert unit.unit_name == "C3"
        assert await audit_rows(db, resource_type=ResourceType.UNIT) == []
        assert "Audit write failed" in caplog.text
