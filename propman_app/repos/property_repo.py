import uuid
from typing import Optional

from sqlalchemy import select, update

from core.paginate import PageParams
from models.enums import LeaseStatus, PropertyType, TemplateStatus
from models.models import Lease, Property, RentSchedule, ScheduledMaintenance, Unit

from .base_repo import BaseRepo


class PropertyRepo(BaseRepo):
    model = Property

    async def get_by_name(self, name: str) -> Optional[Property]:
        result = await self.db.execute(select(Property).where(Property.name == name))
        return result.scalar_one_or_none()

    async def list_properties(
        self,
        params: PageParams,
        *,
        ids: Optional[set] = None,
        property_type: Optional[PropertyType] = None,
        city: Optional[str] = None,
        include_inactive: bool = False,
    ):
        stmt = select(Property)
        if ids is not None:
            stmt = stmt.where(Property.id.in_(ids))
        if not include_inactive:
            stmt = stmt.where(Property.is_active.is_(True))
        if property_type is not None:
            stmt = stmt.where(Property.property_type == property_type)
        if city:
            stmt = stmt.where(Property.city == city)
        return await self.page(stmt, params)

    async def archive(self, prop: Property, reason: str) -> dict:
        """Soft-archive the property and everything hanging off it."""
        prop.is_active = False
        units = await self.db.execute(
            update(Unit)
            .where(Unit.property_id == prop.id, Unit.is_active.is_(True))
            .values(is_active=False)
        )
        leases = await self.db.execute(
            update(Lease)
            .where(
                Lease.property_id == prop.id,
                Lease.status.in_(
                    [LeaseStatus.ACTIVE, LeaseStatus.DRAFT, LeaseStatus.PENDING_RENEWAL]
                ),
            )
            .values(status=LeaseStatus.TERMINATED, termination_reason=reason)
        )
        await self.db.execute(
            update(RentSchedule)
            .where(RentSchedule.property_id == prop.id)
            .values(is_active=False)
        )
        templates = await self.db.execute(
            update(ScheduledMaintenance)
            .where(
                ScheduledMaintenance.property_id == prop.id,
                ScheduledMaintenance.status.in_(
                    [TemplateStatus.ACTIVE, TemplateStatus.PAUSED]
                ),
            )
            .values(status=TemplateStatus.CANCELED)
        )
        await self.flush()
        return {
            "units": units.rowcount,
            "leases": leases.rowcount,
            "templates": templates.rowcount,
        }


class UnitRepo(BaseRepo):
    model = Unit

    async def name_taken(
        self,
        property_id: uuid.UUID,
        unit_name: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> bool:
        stmt = select(Unit.id).where(
            Unit.property_id == property_id, Unit.unit_name == unit_name
        )
        if exclude_id is not None:
            stmt = stmt.where(Unit.id != exclude_id)
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def list_units(
        self,
        property_id: uuid.UUID,
        params: PageParams,
        *,
        ids: Optional[set] = None,
        include_inactive: bool = False,
    ):
        stmt = select(Unit).where(Unit.property_id == property_id)
        if ids is not None:
            stmt = stmt.where(Unit.id.in_(ids))
        if not include_inactive:
            stmt = stmt.where(Unit.is_active.is_(True))
        return await self.page(stmt, params)
