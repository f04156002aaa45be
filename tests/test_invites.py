import uuid
from datetime import timedelta

from sqlalchemy import select, update

from core.date_helper import utcnow
from models.enums import (
    AuditAction,
    InviteStatus,
    RegistrationStatus,
    SideEffectKind,
    UserRole,
)
from models.models import Invite, PropertyUser, SideEffect, User
from repos.invite_repo import InviteRepo
from security.security_generate import user_generate
from services.invite_service import InviteService

from factories import PASSWORD, audit_rows, auth_headers, make_property, make_user

NEW_USER = {
    "email": "a@example.com",
    "password": PASSWORD,
    "firstName": "Ana",
    "lastName": "Lee",
}


async def issue(client, admin, prop, unit, email="a@example.com", roles=("tenant",)):
    resp = await client.post(
        "/api/invites",
        json={
            "email": email,
            "roles": list(roles),
            "propertyId": str(prop.id),
            "unitId": str(unit.id) if unit else None,
        },
        headers=auth_headers(admin),
    )
    assert resp.status_code == 201, resp.json()
    return resp.json()["data"]


class TestInviteAcceptance:
    async def test_new_user_accepts_tenant_invite(self, client, db, estate, admin):
        prop, unit = estate
        issued = await issue(client, admin, prop, unit)
        token = issued["inviteToken"]
        assert issued["invite"]["status"] == "pending"

        verify = await client.get(f"/api/public/invites/{token}/verify")
        assert verify.status_code == 200
        assert verify.json()["data"]["userExists"] is False
        assert verify.json()["data"]["unitName"] == unit.unit_name

        resp = await client.post(f"/api/public/invites/{token}/accept", json=NEW_USER)
        assert resp.status_code == 200, resp.json()
        body = resp.json()["data"]
        assert body["accessToken"]
        assert body["association"]["roles"] == ["tenant"]

        user = (await db.execute(select(User).where(User.email == "a@example.com"))).scalar_one()
        assert user.registration_status == RegistrationStatus.ACTIVE
        assert user.role == UserRole.TENANT
        assert (user.first_name, user.last_name) == ("Ana", "Lee")
        assert user.check_password(PASSWORD)

        assoc = (
            await db.execute(select(PropertyUser).where(PropertyUser.user_id == user.id))
        ).scalar_one()
        assert (assoc.property_id, assoc.unit_id, assoc.roles, assoc.is_active) == (
            prop.id,
            unit.id,
            ["tenant"],
            True,
        )

        invite = await db.get(Invite, uuid.UUID(issued["invite"]["id"]), populate_existing=True)
        assert invite.status == InviteStatus.ACCEPTED
        assert invite.accepted_by_id == user.id

        audits = await audit_rows(db, action=AuditAction.INVITE_ACCEPTED)
        assert len(audits) == 1
        assert audits[0].user_id == user.id

    async def test_invite_is_single_use(self, client, estate, admin):
        prop, unit = estate
        token = (await issue(client, admin, prop, unit))["inviteToken"]

        first = await client.post(f"/api/public/invites/{token}/accept", json=NEW_USER)
        second = await client.post(f"/api/public/invites/{token}/accept", json=NEW_USER)

        assert first.status_code == 200
        assert second.status_code == 400

    async def test_accepted_association_visible_to_user(self, client, estate, admin):
        prop, unit = estate
        token = (await issue(client, admin, prop, unit))["inviteToken"]
        accepted = await client.post(f"/api/public/invites/{token}/accept", json=NEW_USER)
        access = accepted.json()["data"]["accessToken"]
        user_id = accepted.json()["data"]["user"]["id"]

        resp = await client.get(
            f"/api/users/{user_id}/associations",
            headers={"Authorization": f"Bearer {access}"},
        )
        assert resp.status_code == 200
        rows = resp.json()["data"]
        assert [(r["propertyId"], r["unitId"], r["roles"]) for r in rows] == [
            (str(prop.id), str(unit.id), ["tenant"])
        ]

    async def test_existing_user_keeps_credentials(self, client, db, estate, admin):
        prop, unit = estate
        existing = await make_user(db, UserRole.TENANT, email="a@example.com")
        token = (await issue(client, admin, prop, unit))["inviteToken"]

        resp = await client.post(
            f"/api/public/invites/{token}/accept", json={"email": "a@example.com"}
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["user"]["id"] == str(existing.id)

    async def test_existing_tenant_invited_as_manager_can_manage(
        self, client, db, estate, admin, landlord, tenant
    ):
        home, _ = estate
        other = await make_property(db, landlord, name="Birch House")
        token = (
            await issue(client, admin, other, None, email=tenant.email, roles=("propertymanager",))
        )["inviteToken"]

        resp = await client.post(
            f"/api/public/invites/{token}/accept", json={"email": tenant.email}
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["association"]["roles"] == ["propertymanager"]
        refreshed = await db.get(User, tenant.id, populate_existing=True)
        assert refreshed.role == UserRole.TENANT

        managed = await client.post(
            f"/api/properties/{other.id}/units",
            json={"unitName": "B2"},
            headers=auth_headers(tenant),
        )
        assert managed.status_code == 201, managed.json()

        # still only a tenant at home
        denied = await client.post(
            f"/api/properties/{home.id}/units",
            json={"unitName": "A9"},
            headers=auth_headers(tenant),
        )
        assert denied.status_code == 403

    async def test_settled_invite_cannot_be_claimed_again(self, client, db, estate, admin):
        prop, unit = estate
        issued = await issue(client, admin, prop, unit)
        invite_id = uuid.UUID(issued["invite"]["id"])
        repo = InviteRepo(db)

        assert await repo.claim_pending(invite_id, InviteStatus.ACCEPTED, utcnow())
        assert not await repo.claim_pending(invite_id, InviteStatus.ACCEPTED, utcnow())
        await db.commit()

        resp = await client.post(
            f"/api/public/invites/{issued['inviteToken']}/accept", json=NEW_USER
        )
        assert resp.status_code == 400
        created = await db.execute(select(User).where(User.email == "a@example.com"))
        assert created.scalar_one_or_none() is None

    async def test_email_must_match(self, client, estate, admin):
        prop, unit = estate
        token = (await issue(client, admin, prop, unit))["inviteToken"]

        resp = await client.post(
            f"/api/public/invites/{token}/accept", json={**NEW_USER, "email": "b@example.com"}
        )
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "email"

    async def test_new_user_needs_password(self, client, estate, admin):
        prop, unit = estate
        token = (await issue(client, admin, prop, unit))["inviteToken"]

        resp = await client.post(
            f"/api/public/invites/{token}/accept", json={"email": "a@example.com"}
        )
        assert resp.status_code == 400

    async def test_expired_invite_rejected(self, client, db, estate, admin):
        prop, unit = estate
        issued = await issue(client, admin, prop, unit)
        await db.execute(
            update(Invite)
            .where(Invite.id == uuid.UUID(issued["invite"]["id"]))
            .values(expires_at=utcnow() - timedelta(hours=1))
        )
        await db.commit()

        resp = await client.post(
            f"/api/public/invites/{issued['inviteToken']}/accept", json=NEW_USER
        )
        assert resp.status_code == 400


class TestInviteManagement:
    async def test_token_is_stored_hashed(self, client, db, estate, admin):
        prop, unit = estate
        issued = await issue(client, admin, prop, unit)
        token = issued["inviteToken"]

        invite = await db.get(Invite, uuid.UUID(issued["invite"]["id"]))
        assert invite.hashed_token == user_generate.hash_token(token)

        read = await client.get(f"/api/invites/{invite.id}", headers=auth_headers(admin))
        listing = await client.get("/api/invites", headers=auth_headers(admin))
        for resp in (read, listing):
            assert resp.status_code == 200
            assert token not in resp.text
            assert invite.hashed_token not in resp.text

    async def test_invite_email_is_queued(self, client, db, estate, admin):
        prop, unit = estate
        await issue(client, admin, prop, unit)

        queued = (
            await db.execute(select(SideEffect).where(SideEffect.template == "invite"))
        ).scalars().all()
        assert [(e.kind, e.recipient) for e in queued] == [(SideEffectKind.EMAIL, "a@example.com")]

    async def test_duplicate_pending_invite_conflicts(self, client, estate, admin):
        prop, unit = estate
        await issue(client, admin, prop, unit)

        resp = await client.post(
            "/api/invites",
            json={
                "email": "a@example.com",
                "roles": ["tenant"],
                "propertyId": str(prop.id),
                "unitId": str(unit.id),
            },
            headers=auth_headers(admin),
        )
        assert resp.status_code == 409

    async def test_landlord_cannot_invite_landlord(self, client, estate, landlord):
        prop, _ = estate
        resp = await client.post(
            "/api/invites",
            json={"email": "x@example.com", "roles": ["landlord"], "propertyId": str(prop.id)},
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 403

    async def test_landlord_invites_property_manager(self, client, estate, landlord):
        prop, _ = estate
        resp = await client.post(
            "/api/invites",
            json={
                "email": "pm@example.com",
                "roles": ["propertymanager"],
                "propertyId": str(prop.id),
            },
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 201

    async def test_cancelled_invite_cannot_be_accepted(self, client, estate, admin):
        prop, unit = estate
        issued = await issue(client, admin, prop, unit)

        cancel = await client.post(
            f"/api/invites/{issued['invite']['id']}/cancel",
            json={"reason": "sent to wrong person"},
            headers=auth_headers(admin),
        )
        assert cancel.status_code == 200
        assert cancel.json()["data"]["status"] == "cancelled"

        resp = await client.post(
            f"/api/public/invites/{issued['inviteToken']}/accept", json=NEW_USER
        )
        assert resp.status_code == 400

    async def test_decline(self, client, db, estate, admin):
        prop, unit = estate
        issued = await issue(client, admin, prop, unit)

        resp = await client.post(
            f"/api/public/invites/{issued['inviteToken']}/decline",
            json={"email": "a@example.com", "reason": "Found another flat"},
        )
        assert resp.status_code == 200

        invite = await db.get(Invite, uuid.UUID(issued["invite"]["id"]), populate_existing=True)
        assert invite.status == InviteStatus.DECLINED
        assert invite.decline_reason == "Found another flat"

    async def test_expire_stale(self, client, db, estate, admin):
        prop, unit = estate
        issued = await issue(client, admin, prop, unit)
        await db.execute(
            update(Invite)
            .where(Invite.id == uuid.UUID(issued["invite"]["id"]))
            .values(expires_at=utcnow() - timedelta(days=1))
        )
        await db.commit()

        expired = await InviteService(db).expire_stale()

        assert expired == 1
        invite = await db.get(Invite, uuid.UUID(issued["invite"]["id"]), populate_existing=True)
        assert invite.status == InviteStatus.EXPIRED
        assert len(await audit_rows(db, action=AuditAction.INVITE_EXPIRED)) == 1

    async def test_resend_cooldown_and_cap(self, client, db, estate, admin):
        prop, unit = estate
        issued = await issue(client, admin, prop, unit)
        invite_id = uuid.UUID(issued["invite"]["id"])
        url = f"/api/invites/{invite_id}/resend"

        async def cooldown_elapsed():
            await db.execute(
                update(Invite)
                .where(Invite.id == invite_id)
                .values(last_resend_at=utcnow() - timedelta(hours=25))
            )
            await db.commit()

        first = await client.post(url, headers=auth_headers(admin))
        assert first.status_code == 200
        assert first.json()["data"]["inviteToken"] != issued["inviteToken"]

        too_soon = await client.post(url, headers=auth_headers(admin))
        assert too_soon.status_code == 422

        for _ in range(4):
            await cooldown_elapsed()
            assert (await client.post(url, headers=auth_headers(admin))).status_code == 200

        await cooldown_elapsed()
        capped = await client.post(url, headers=auth_headers(admin))
        assert capped.status_code == 422
        assert "5 times" in capped.json()["message"]

        invite = await db.get(Invite, invite_id, populate_existing=True)
        assert invite.resend_count == 5
