from sqlalchemy import select

from app import app
from models.enums import AuditAction, RegistrationStatus, UserRole
from models.models import SideEffect, User

from factories import PASSWORD, audit_rows, auth_headers, make_user


def registration(**overrides):
    body = {
        "email": "New.Person@Example.com",
        "password": PASSWORD,
        "firstName": "New",
        "lastName": "Person",
    }
    body.update(overrides)
    return body


class TestRegistration:
    async def test_tenant_is_active_immediately(self, client, db):
        resp = await client.post("/api/auth/register", json=registration())

        assert resp.status_code == 201, resp.json()
        data = resp.json()["data"]
        assert data["accessToken"]
        assert data["user"]["email"] == "new.person@example.com"
        assert data["user"]["name"] == "New Person"
        assert data["user"]["registrationStatus"] == "active"
        assert "password" not in resp.text

        welcome = (await db.execute(select(SideEffect))).scalars().all()
        assert [e.template for e in welcome] == ["welcome"]
        audits = await audit_rows(db, action=AuditAction.REGISTER)
        assert len(audits) == 1

    async def test_landlord_waits_for_approval(self, client, db, admin):
        resp = await client.post("/api/auth/register", json=registration(role="landlord"))

        assert resp.status_code == 201
        data = resp.json()["data"]
        assert "accessToken" not in data
        assert data["registrationStatus"] == "pending_admin_approval"

        login = await client.post(
            "/api/auth/login", json={"email": "new.person@example.com", "password": PASSWORD}
        )
        assert login.status_code == 401

        approved = await client.post(
            f"/api/users/{data['id']}/approve", headers=auth_headers(admin)
        )
        assert approved.status_code == 200

        login = await client.post(
            "/api/auth/login", json={"email": "new.person@example.com", "password": PASSWORD}
        )
        assert login.status_code == 200

    async def test_admin_role_cannot_self_register(self, client):
        resp = await client.post("/api/auth/register", json=registration(role="admin"))
        assert resp.status_code == 400

    async def test_weak_password_rejected(self, client):
        resp = await client.post("/api/auth/register", json=registration(password="password"))
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "password"

    async def test_legacy_name_field_rejected(self, client):
        body = registration()
        body["name"] = "New Person"
        resp = await client.post("/api/auth/register", json=body)
        assert resp.status_code == 400

    async def test_underscored_manager_spelling_rejected(self, client):
        resp = await client.post("/api/auth/register", json=registration(role="property_manager"))
        assert resp.status_code == 400
        error = resp.json()["errors"][0]
        assert error["field"] == "role"
        assert "propertymanager" in error["message"]

    async def test_duplicate_email_conflicts(self, client, db):
        await make_user(db, UserRole.TENANT, email="new.person@example.com")
        resp = await client.post("/api/auth/register", json=registration())
        assert resp.status_code == 409


class TestLogin:
    async def test_login_and_me(self, client, db, tenant):
        resp = await client.post(
            "/api/auth/login", json={"email": tenant.email, "password": PASSWORD}
        )
        assert resp.status_code == 200
        token = resp.json()["data"]["accessToken"]

        me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["data"]["id"] == str(tenant.id)

        refreshed = await db.get(User, tenant.id, populate_existing=True)
        assert refreshed.last_login is not None
        assert len(await audit_rows(db, action=AuditAction.LOGIN)) == 1

    async def test_wrong_password(self, client, tenant):
        resp = await client.post(
            "/api/auth/login", json={"email": tenant.email, "password": "Wr0ng!Pass"}
        )
        assert resp.status_code == 401

    async def test_deactivated_user_loses_access(self, client, db, admin):
        user = await make_user(db, UserRole.TENANT)
        headers = auth_headers(user)
        assert (await client.get("/api/auth/me", headers=headers)).status_code == 200

        resp = await client.post(f"/api/users/{user.id}/deactivate", headers=auth_headers(admin))
        assert resp.status_code == 200
        assert resp.json()["data"]["registrationStatus"] == RegistrationStatus.DEACTIVATED.value

        assert (await client.get("/api/auth/me", headers=headers)).status_code == 401

    async def test_garbage_token(self, client):
        resp = await client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


class TestAppRoutes:
    def test_collection_routes_are_mounted_under_api(self):
        paths = {route.path for route in app.routes}
        for path in (
            "/api/auth/register",
            "/api/properties",
            "/api/properties/{property_id}/units",
            "/api/leases",
            "/api/invites",
            "/api/audit-logs",
            "/api/notifications",
            "/api/public/invites/{token}/accept",
        ):
            assert path in paths
        assert not any(p in ("", "/api") for p in paths)
