import uuid
from typing import Iterable, Optional

from sqlalchemy import and_, or_, select

from core.paginate import PageParams
from models.enums import AssigneeKind, Priority, PropertyRole, RequestCategory, RequestStatus
from models.models import MaintenanceRequest
from policy.authorization import ActorContext

from .base_repo import BaseRepo


def work_scope(model, actor: ActorContext, vendor_ids: Iterable[uuid.UUID] = ()):
    """Requests or templates an actor may read without an explicit target check."""
    if actor.is_admin:
        return None
    clauses = [
        and_(
            model.assigned_kind == AssigneeKind.USER,
            model.assigned_to_id == actor.user_id,
        )
    ]
    vendor_ids = list(vendor_ids)
    if vendor_ids:
        clauses.append(
            and_(
                model.assigned_kind == AssigneeKind.VENDOR,
                model.assigned_to_id.in_(vendor_ids),
            )
        )
    managed = actor.managed_property_ids()
    if managed:
        clauses.append(model.property_id.in_(managed))
    units = actor.tenant_unit_ids()
    if units:
        clauses.append(model.unit_id.in_(units))
    if hasattr(model, "created_by_id"):
        clauses.append(model.created_by_id == actor.user_id)
    vendor_access = {
        g.property_id
        for g in actor.grants
        if PropertyRole.VENDOR_ACCESS.value in g.roles
    }
    if vendor_access and model is MaintenanceRequest:
        clauses.append(model.property_id.in_(vendor_access))
    return or_(*clauses)


class RequestRepo(BaseRepo):
    model = MaintenanceRequest

    async def get_by_public_hash(self, token_hash: str) -> Optional[MaintenanceRequest]:
        result = await self.db.execute(
            select(MaintenanceRequest).where(
                MaintenanceRequest.public_token_hash == token_hash
            )
        )
        return result.scalar_one_or_none()

    async def list_requests(
        self,
        params: PageParams,
        actor: ActorContext,
        *,
        vendor_ids: Iterable[uuid.UUID] = (),
        property_id: Optional[uuid.UUID] = None,
        unit_id: Optional[uuid.UUID] = None,
        status: Optional[RequestStatus] = None,
        priority: Optional[Priority] = None,
        category: Optional[RequestCategory] = None,
        template_id: Optional[uuid.UUID] = None,
        include_archived: bool = False,
    ):
        stmt = select(MaintenanceRequest)
        scope = work_scope(MaintenanceRequest, actor, vendor_ids)
        if scope is not None:
            stmt = stmt.where(scope)
        if property_id is not None:
            stmt = stmt.where(MaintenanceRequest.property_id == property_id)
        if unit_id is not None:
            stmt = stmt.where(MaintenanceRequest.unit_id == unit_id)
        if status is not None:
            stmt = stmt.where(MaintenanceRequest.status == status)
        elif not include_archived:
            stmt = stmt.where(MaintenanceRequest.status != RequestStatus.ARCHIVED)
        if priority is not None:
            stmt = stmt.where(MaintenanceRequest.priority == priority)
        if category is not None:
            stmt = stmt.where(MaintenanceRequest.category == category)
        if template_id is not None:
            stmt = stmt.where(
                MaintenanceRequest.generated_from_scheduled_maintenance_id == template_id
            )
        return await self.page(stmt, params)
