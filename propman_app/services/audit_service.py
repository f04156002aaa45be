import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from core.breaker import breaker
from core.errors import Forbidden, NotFound
from core.mapper import ORMMapper
from core.paginate import PageParams, PaginatePage
from models.enums import AuditAction, AuditStatus, ResourceType
from models.models import (
    AuditLog,
    Invite,
    Lease,
    MaintenanceRequest,
    Property,
    RentRecord,
    RentSchedule,
    ScheduledMaintenance,
    Unit,
)
from policy.authorization import Action, ActorContext, Target, authorize
from repos.audit_repo import AuditRepo
from schemas.schema import AuditLogOut

logger = logging.getLogger(__name__)

PROPERTY_SCOPED_MODELS = {
    ResourceType.PROPERTY: Property,
    ResourceType.UNIT: Unit,
    ResourceType.LEASE: Lease,
    ResourceType.RENT: RentRecord,
    ResourceType.RENT_SCHEDULE: RentSchedule,
    ResourceType.REQUEST: MaintenanceRequest,
    ResourceType.SCHEDULED_MAINTENANCE: ScheduledMaintenance,
    ResourceType.INVITE: Invite,
}


class AuditService:
    def __init__(self, db):
        self.db = db
        self.repo = AuditRepo(db)
        self.paginate = PaginatePage()

    def entry(
        self,
        *,
        action: AuditAction,
        resource_type: ResourceType,
        resource_id: Optional[uuid.UUID] = None,
        actor: Optional[ActorContext] = None,
        external: Optional[dict] = None,
        status: AuditStatus = AuditStatus.SUCCESS,
        description: Optional[str] = None,
        before: Optional[dict] = None,
        after: Optional[dict] = None,
        error_message: Optional[str] = None,
    ) -> AuditLog:
        ip = actor.ip if actor else None
        if external and not ip:
            ip = external.get("ip")
        return AuditLog(
            user_id=actor.user_id if actor else None,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            description=description,
            old_value=before,
            new_value=after,
            status=status,
            error_message=error_message,
            ip_address=ip,
            external_actor=external,
        )

    async def record(self, *entries: AuditLog) -> bool:
        """Persist audit entries in their own transaction.

        Failures are logged and swallowed; the business change has already
        been committed by the time this runs.
        """
        try:
            self.db.add_all(entries)
            await self.db.commit()
            return True
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "Audit write failed for %s: %s",
                ", ".join(f"{x.action.value}:{x.resource_id}" for x in entries),
                e,
            )
            return False

    async def list_logs(
        self,
        actor: ActorContext,
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
        async def handler():
            if not authorize(actor, Action.VIEW, Target(kind=ResourceType.AUDIT_LOG)):
                raise Forbidden()
            items, total = await self.repo.list_entries(
                params,
                user_id=user_id,
                resource_type=resource_type,
                resource_id=resource_id,
                action=action,
                status=status,
                date_from=date_from,
                date_to=date_to,
            )
            return self.paginate.page(
                ORMMapper.many(items, AuditLogOut), total, params
            )

        return await breaker.call(handler)

    async def resource_history(
        self,
        actor: ActorContext,
        resource_type: ResourceType,
        resource_id: uuid.UUID,
    ):
        async def handler():
            property_id = None
            model = PROPERTY_SCOPED_MODELS.get(resource_type)
            if model is not None:
                obj = await self.db.get(model, resource_id)
                if obj is None and not actor.is_admin:
                    raise NotFound()
                if obj is not None:
                    property_id = (
                        obj.id if resource_type == ResourceType.PROPERTY else obj.property_id
                    )
            target = Target(kind=ResourceType.AUDIT_LOG, property_id=property_id)
            if not authorize(actor, Action.VIEW, target):
                raise Forbidden()
            entries = await self.repo.for_resource(resource_type, resource_id)
            data = ORMMapper.many(entries, AuditLogOut)
            body = self.paginate.ok([e.model_dump(mode="json", by_alias=True) for e in data])
            body["count"] = len(data)
            return body

        return await breaker.call(handler)
