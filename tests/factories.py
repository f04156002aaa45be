"""Row builders and small helpers shared by the test modules."""

import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import select

from core.get_current_user import load_actor
from models.enums import (
    LeaseStatus,
    PropertyRole,
    PropertyType,
    RegistrationStatus,
    UnitStatus,
    UserRole,
)
from models.models import AuditLog, Lease, Property, PropertyUser, Unit, User
from security.security_generate import user_generate

PASSWORD = "Str0ng!Pass"


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {user_generate.create_access_token(user.id)}"}


async def make_user(
    db,
    role: UserRole = UserRole.TENANT,
    email: str | None = None,
    status: RegistrationStatus = RegistrationStatus.ACTIVE,
) -> User:
    user = User(
        first_name="Test",
        last_name=role.value.title(),
        email=email or f"{role.value}-{uuid.uuid4().hex[:8]}@example.com",
        role=role,
        registration_status=status,
    )
    user.set_password(PASSWORD)
    db.add(user)
    await db.commit()
    return user


async def make_property(db, owner: User | None = None, name: str | None = None) -> Property:
    prop = Property(
        name=name or f"Property {uuid.uuid4().hex[:6]}",
        city="Kampala",
        country="Uganda",
        property_type=PropertyType.RESIDENTIAL,
        created_by_id=owner.id if owner else None,
    )
    db.add(prop)
    await db.flush()
    if owner is not None:
        db.add(
            PropertyUser(
                user_id=owner.id,
                property_id=prop.id,
                roles=[PropertyRole.LANDLORD.value],
                is_active=True,
            )
        )
    await db.commit()
    return prop


async def make_unit(db, prop: Property, name: str = "A1") -> Unit:
    unit = Unit(
        property_id=prop.id,
        unit_name=name,
        status=UnitStatus.VACANT,
        rent_amount=Decimal("1200"),
    )
    db.add(unit)
    await db.commit()
    return unit


async def associate(db, user: User, prop: Property, unit: Unit | None, *roles: PropertyRole):
    assoc = PropertyUser(
        user_id=user.id,
        property_id=prop.id,
        unit_id=unit.id if unit else None,
        roles=[r.value for r in roles],
        is_active=True,
    )
    db.add(assoc)
    await db.commit()
    return assoc


async def make_lease(
    db,
    unit: Unit,
    tenant: User,
    start: date = date(2025, 1, 1),
    end: date = date(2026, 1, 1),
    status: LeaseStatus = LeaseStatus.ACTIVE,
) -> Lease:
    lease = Lease(
        property_id=unit.property_id,
        unit_id=unit.id,
        tenant_id=tenant.id,
        start_date=start,
        end_date=end,
        monthly_rent=Decimal("1200"),
        currency="USD",
        payment_due_day=5,
        status=status,
    )
    db.add(lease)
    await db.commit()
    return lease


async def actor_of(db, user: User):
    return await load_actor(db, user)


async def audit_rows(db, **filters):
    stmt = select(AuditLog)
    for key, value in filters.items():
        stmt = stmt.where(getattr(AuditLog, key) == value)
    return list((await db.execute(stmt.order_by(AuditLog.created_at))).scalars().all())


