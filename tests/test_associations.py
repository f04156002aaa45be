import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from models.enums import AuditAction, PropertyRole, UserRole
from models.models import PropertyUser

from factories import audit_rows, auth_headers, make_property, make_unit, make_user


class TestAssociationRows:
    async def test_one_active_association_per_scope(self, db, estate, tenant):
        prop, unit = estate
        db.add(
            PropertyUser(
                user_id=tenant.id,
                property_id=prop.id,
                unit_id=unit.id,
                roles=[PropertyRole.TENANT.value],
                is_active=True,
            )
        )
        with pytest.raises(IntegrityError):
            await db.commit()
        await db.rollback()

    async def test_inactive_rows_do_not_block(self, db, estate, tenant):
        prop, unit = estate
        current = (
            await db.execute(select(PropertyUser).where(PropertyUser.user_id == tenant.id))
        ).scalar_one()
        current.is_active = False
        await db.commit()

        db.add(
            PropertyUser(
                user_id=tenant.id,
                property_id=prop.id,
                unit_id=unit.id,
                roles=[PropertyRole.TENANT.value],
                is_active=True,
            )
        )
        await db.commit()

        rows = (
            await db.execute(select(PropertyUser).where(PropertyUser.user_id == tenant.id))
        ).scalars().all()
        assert sorted(r.is_active for r in rows) == [False, True]

    async def test_tenant_role_needs_unit(self, db, estate):
        prop, _ = estate
        someone = await make_user(db, UserRole.TENANT)
        db.add(
            PropertyUser(
                user_id=someone.id,
                property_id=prop.id,
                roles=[PropertyRole.TENANT.value],
                is_active=True,
            )
        )
        with pytest.raises(ValueError):
            await db.flush()
        await db.rollback()


class TestAssociationApi:
    async def test_landlord_adds_manager(self, client, db, estate, landlord):
        prop, _ = estate
        manager = await make_user(db, UserRole.PROPERTY_MANAGER)

        resp = await client.post(
            f"/api/properties/{prop.id}/users",
            json={
                "userId": str(manager.id),
                "propertyId": str(prop.id),
                "roles": ["propertymanager"],
            },
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 201, resp.json()
        assert resp.json()["data"]["roles"] == ["propertymanager"]
        assert resp.json()["data"]["invitedById"] == str(landlord.id)

        audits = await audit_rows(db, action=AuditAction.PROPERTY_USER_ASSOCIATION_CREATED)
        assert [row.user_id for row in audits] == [landlord.id]

        managed = await client.get(f"/api/properties/{prop.id}", headers=auth_headers(manager))
        assert managed.status_code == 200

    async def test_duplicate_association_conflicts(self, client, estate, landlord, tenant):
        prop, unit = estate
        resp = await client.post(
            f"/api/properties/{prop.id}/users",
            json={
                "userId": str(tenant.id),
                "propertyId": str(prop.id),
                "unitId": str(unit.id),
                "roles": ["tenant"],
            },
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 409

    async def test_tenant_role_without_unit_is_invalid(self, client, db, estate, landlord):
        prop, _ = estate
        someone = await make_user(db, UserRole.TENANT)
        resp = await client.post(
            f"/api/properties/{prop.id}/users",
            json={"userId": str(someone.id), "propertyId": str(prop.id), "roles": ["tenant"]},
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 400

    async def test_only_admin_grants_admin_access(self, client, db, estate, landlord):
        prop, _ = estate
        someone = await make_user(db, UserRole.PROPERTY_MANAGER)
        resp = await client.post(
            f"/api/properties/{prop.id}/users",
            json={
                "userId": str(someone.id),
                "propertyId": str(prop.id),
                "roles": ["admin_access"],
            },
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 403

    async def test_foreign_landlord_cannot_associate(self, client, db, estate):
        prop, _ = estate
        outsider = await make_user(db, UserRole.LANDLORD)
        await make_property(db, outsider)
        someone = await make_user(db, UserRole.PROPERTY_MANAGER)

        resp = await client.post(
            f"/api/properties/{prop.id}/users",
            json={
                "userId": str(someone.id),
                "propertyId": str(prop.id),
                "roles": ["propertymanager"],
            },
            headers=auth_headers(outsider),
        )
        assert resp.status_code == 403

    async def test_unit_from_other_property_is_refused(self, client, db, estate, landlord):
        prop, _ = estate
        elsewhere = await make_property(db, await make_user(db, UserRole.LANDLORD))
        stray_unit = await make_unit(db, elsewhere, name="Z9")
        someone = await make_user(db, UserRole.TENANT)

        resp = await client.post(
            f"/api/properties/{prop.id}/users",
            json={
                "userId": str(someone.id),
                "propertyId": str(prop.id),
                "unitId": str(stray_unit.id),
                "roles": ["tenant"],
            },
            headers=auth_headers(landlord),
        )
        assert resp.status_code == 403

    async def test_deactivation_revokes_access(self, client, db, estate, landlord, tenant):
        prop, _ = estate
        assoc = (
            await db.execute(select(PropertyUser).where(PropertyUser.user_id == tenant.id))
        ).scalar_one()

        before = await client.get(f"/api/properties/{prop.id}", headers=auth_headers(tenant))
        assert before.status_code == 200

        resp = await client.delete(
            f"/api/properties/{prop.id}/associations/{assoc.id}", headers=auth_headers(landlord)
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["isActive"] is False

        after = await client.get(f"/api/properties/{prop.id}", headers=auth_headers(tenant))
        assert after.status_code == 403

        again = await client.delete(
            f"/api/properties/{prop.id}/associations/{assoc.id}", headers=auth_headers(landlord)
        )
        assert again.status_code == 422

        listing = await client.get(
            f"/api/properties/{prop.id}/associations",
            params={"include_inactive": "true"},
            headers=auth_headers(landlord),
        )
        assert any(row["id"] == str(assoc.id) for row in listing.json()["data"])
