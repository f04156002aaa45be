import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_actor
from core.get_db import get_db_async
from core.paginate import PageParams
from core.safe_handler import safe_handler
from models.enums import AuditAction, AuditStatus, ResourceType
from policy.authorization import ActorContext
from services.audit_service import AuditService

router = APIRouter(tags=["Audit Logs"])


@cbv(router)
class AuditRoutes:
    db: AsyncSession = Depends(get_db_async)
    actor: ActorContext = Depends(get_current_actor)

    @router.get("/audit-logs")
    @safe_handler
    async def list_logs(
        self,
        params: PageParams = Depends(),
        user_id: Optional[uuid.UUID] = Query(None, alias="userId"),
        resource_type: Optional[ResourceType] = Query(None, alias="resourceType"),
        resource_id: Optional[uuid.UUID] = Query(None, alias="resourceId"),
        action: Optional[AuditAction] = None,
        status: Optional[AuditStatus] = None,
        date_from: Optional[datetime] = Query(None, alias="dateFrom"),
        date_to: Optional[datetime] = Query(None, alias="dateTo"),
    ):
        return await AuditService(self.db).list_logs(
            self.actor,
            params,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            status=status,
            date_from=date_from,
            date_to=date_to,
        )

    @router.get("/audit-logs/{resource_type}/{resource_id}")
    @safe_handler
    async def resource_history(self, resource_type: ResourceType, resource_id: uuid.UUID):
        return await AuditService(self.db).resource_history(
            self.actor, resource_type, resource_id
        )
