import uuid
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select, update

from core.paginate import PageParams
from models.enums import TemplateStatus
from models.models import ScheduledMaintenance
from policy.authorization import ActorContext

from .base_repo import BaseRepo
from .request_repo import work_scope


class ScheduledMaintenanceRepo(BaseRepo):
    model = ScheduledMaintenance

    async def get_by_public_hash(self, token_hash: str) -> Optional[ScheduledMaintenance]:
        result = await self.db.execute(
            select(ScheduledMaintenance).where(
                ScheduledMaintenance.public_token_hash == token_hash
            )
        )
        return result.scalar_one_or_none()

    async def due(self, now: datetime, template_id: Optional[uuid.UUID] = None) -> List[ScheduledMaintenance]:
        stmt = select(ScheduledMaintenance).where(
            ScheduledMaintenance.status == TemplateStatus.ACTIVE,
            ScheduledMaintenance.next_due_date <= now,
        )
        if template_id is not None:
            stmt = stmt.where(ScheduledMaintenance.id == template_id)
        result = await self.db.execute(stmt.order_by(ScheduledMaintenance.next_due_date))
        return list(result.scalars().all())

    async def advance(
        self,
        template_id: uuid.UUID,
        *,
        fired_at: datetime,
        next_due: Optional[datetime],
        request_id: uuid.UUID,
        executed_at: datetime,
        complete: bool,
    ) -> bool:
        """Move the template past ``fired_at``; False when another run got there first."""
        values = {
            "last_executed_at": executed_at,
            "last_generated_request_id": request_id,
            "occurrence_count": ScheduledMaintenance.occurrence_count + 1,
            "updated_at": executed_at,
        }
        if next_due is not None:
            values["next_due_date"] = next_due
        if complete:
            values["status"] = TemplateStatus.COMPLETED
        result = await self.db.execute(
            update(ScheduledMaintenance)
            .where(
                ScheduledMaintenance.id == template_id,
                ScheduledMaintenance.next_due_date == fired_at,
                ScheduledMaintenance.status == TemplateStatus.ACTIVE,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) == 1

    async def list_templates(
        self,
        params: PageParams,
        actor: ActorContext,
        *,
        vendor_ids: Iterable[uuid.UUID] = (),
        property_id: Optional[uuid.UUID] = None,
        unit_id: Optional[uuid.UUID] = None,
        status: Optional[TemplateStatus] = None,
        recurring: Optional[bool] = None,
    ):
        stmt = select(ScheduledMaintenance)
        scope = work_scope(ScheduledMaintenance, actor, vendor_ids)
        if scope is not None:
            stmt = stmt.where(scope)
        if property_id is not None:
            stmt = stmt.where(ScheduledMaintenance.property_id == property_id)
        if unit_id is not None:
            stmt = stmt.where(ScheduledMaintenance.unit_id == unit_id)
        if status is not None:
            stmt = stmt.where(ScheduledMaintenance.status == status)
        if recurring is not None:
            stmt = stmt.where(ScheduledMaintenance.recurring.is_(recurring))
        return await self.page(stmt, params)
