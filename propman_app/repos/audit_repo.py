import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import select

from core.paginate import PageParams
from models.enums import AuditAction, AuditStatus, ResourceType
from models.models import AuditLog

from .base_repo import BaseRepo


class AuditRepo(BaseRepo):
    model = AuditLog

    async def list_entries(
        self,
        params: PageParams,
        *,
        user_id: Optional[uuid.UUID] = None,
        resource_type: Optional[ResourceType] = None,
        resource_id: Optional[uuid.UUID] = None,
        action: Optional[AuditAction] = None,
        status: Optional[AuditStatus] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ):
        stmt = select(AuditLog)
        if user_id is not None:
            stmt = stmt.where(AuditLog.user_id == user_id)
        if resource_type is not None:
            stmt = stmt.where(AuditLog.resource_type == resource_type)
        if resource_id is not None:
            stmt = stmt.where(AuditLog.resource_id == resource_id)
        if action is not None:
            stmt = stmt.where(AuditLog.action == action)
        if status is not None:
            stmt = stmt.where(AuditLog.status == status)
        if date_from is not None:
            stmt = stmt.where(AuditLog.created_at >= date_from)
        if date_to is not None:
            stmt = stmt.where(AuditLog.created_at <= date_to)
        return await self.page(stmt, params)

    async def for_resource(
        self, resource_type: ResourceType, resource_id: uuid.UUID
    ) -> list[AuditLog]:
        result = await self.db.execute(
            select(AuditLog)
            .where(
                AuditLog.resource_type == resource_type,
                AuditLog.resource_id == resource_id,
            )
            .order_by(AuditLog.created_at)
        )
        return list(result.scalars().all())
