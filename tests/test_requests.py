from models.enums import AuditAction, AuditStatus, ResourceType, UserRole

from factories import audit_rows, auth_headers, make_user


def request_body(prop, unit, **overrides):
    body = {
        "title": "Leaking sink",
        "description": "Water under the kitchen sink",
        "category": "plumbing",
        "priority": "high",
        "propertyId": str(prop.id),
        "unitId": str(unit.id),
    }
    body.update(overrides)
    return body


async def open_request(client, estate, tenant):
    prop, unit = estate
    resp = await client.post(
        "/api/requests", json=request_body(prop, unit), headers=auth_headers(tenant)
    )
    assert resp.status_code == 201
    return resp.json()["data"]


class TestRequestLifecycle:
    async def test_full_lifecycle(self, client, db, estate, landlord, tenant):
        """new -> assigned -> in_progress -> completed -> verified, then feedback."""
        worker = await make_user(db, UserRole.VENDOR)
        created = await open_request(client, estate, tenant)
        rid = created["id"]
        assert created["status"] == "new"
        assert created["createdById"] == str(tenant.id)

        resp = await client.post(
            f"/api/requests/{rid}/assign",
            json={"assignee": {"kind": "User", "id": str(worker.id)}},
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "assigned"
        assert resp.json()["data"]["assignedTo"] == {"kind": "User", "id": str(worker.id)}

        for status in ("in_progress", "completed"):
            resp = await client.post(
                f"/api/requests/{rid}/status",
                json={"status": status},
                headers=auth_headers(worker),
            )
            assert resp.status_code == 200, resp.json()
        assert resp.json()["data"]["resolvedAt"] is not None

        resp = await client.post(
            f"/api/requests/{rid}/status",
            json={"status": "verified"},
            headers=auth_headers(worker),
        )
        assert resp.status_code == 403

        resp = await client.post(
            f"/api/requests/{rid}/status",
            json={"status": "verified"},
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "verified"

        resp = await client.post(
            f"/api/requests/{rid}/feedback",
            json={"rating": 5, "comment": "Quick fix"},
            headers=auth_headers(tenant),
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["feedback"]["rating"] == 5

        changes = await audit_rows(db, action=AuditAction.REQUEST_STATUS_CHANGED)
        assert len(changes) == 3
        assert {row.user_id for row in changes} == {worker.id, landlord.id}

    async def test_illegal_transition_is_rejected(self, client, estate, landlord, tenant):
        created = await open_request(client, estate, tenant)

        resp = await client.post(
            f"/api/requests/{created['id']}/status",
            json={"status": "completed"},
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 400
        assert resp.json()["errors"][0]["field"] == "status"

    async def test_requester_cancels_new_request(self, client, estate, tenant):
        created = await open_request(client, estate, tenant)

        resp = await client.post(
            f"/api/requests/{created['id']}/status",
            json={"status": "canceled"},
            headers=auth_headers(tenant),
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "canceled"

    async def test_tenant_cannot_assign(self, client, db, estate, tenant):
        worker = await make_user(db, UserRole.VENDOR)
        created = await open_request(client, estate, tenant)

        resp = await client.post(
            f"/api/requests/{created['id']}/assign",
            json={"assignee": {"kind": "User", "id": str(worker.id)}},
            headers=auth_headers(tenant),
        )
        assert resp.status_code == 403

        denied = await audit_rows(db, action=AuditAction.REQUEST_ASSIGNED)
        assert [row.status for row in denied] == [AuditStatus.FAILURE]

    async def test_tenant_cannot_file_for_foreign_unit(self, client, db, estate, landlord):
        prop, unit = estate
        outsider = await make_user(db, UserRole.TENANT)

        resp = await client.post(
            "/api/requests", json=request_body(prop, unit), headers=auth_headers(outsider)
        )
        assert resp.status_code == 403

    async def test_creation_is_audited(self, client, db, estate, tenant):
        created = await open_request(client, estate, tenant)

        rows = await audit_rows(db, action=AuditAction.CREATE, resource_type=ResourceType.REQUEST)
        assert len(rows) == 1
        assert str(rows[0].resource_id) == created["id"]
        assert rows[0].user_id == tenant.id
        assert rows[0].new_value["title"] == "Leaking sink"


class TestComments:
    async def test_internal_notes_hidden_from_tenant(self, client, estate, landlord, tenant):
        created = await open_request(client, estate, tenant)
        rid = created["id"]

        await client.post(
            f"/api/requests/{rid}/comments",
            json={"message": "Check the warranty first", "isInternalNote": True},
            headers=auth_headers(landlord),
        )
        await client.post(
            f"/api/requests/{rid}/comments",
            json={"message": "Plumber booked for Monday"},
            headers=auth_headers(landlord),
        )

        staff = await client.get(f"/api/requests/{rid}/comments", headers=auth_headers(landlord))
        resident = await client.get(f"/api/requests/{rid}/comments", headers=auth_headers(tenant))

        assert len(staff.json()["data"]) == 2
        assert [c["message"] for c in resident.json()["data"]] == ["Plumber booked for Monday"]

    async def test_tenant_cannot_write_internal_note(self, client, estate, tenant):
        created = await open_request(client, estate, tenant)

        resp = await client.post(
            f"/api/requests/{created['id']}/comments",
            json={"message": "secret", "isInternalNote": True},
            headers=auth_headers(tenant),
        )
        assert resp.status_code == 403
