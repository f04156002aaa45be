import logging
import uuid
from datetime import datetime
from typing import Optional

from core.breaker import breaker
from core.date_helper import utcnow
from core.errors import Forbidden, NotFound, SemanticError, ValidationFailed
from core.mapper import ORMMapper
from core.paginate import PageParams, PaginatePage
from models.enums import AuditAction, ResourceType, TemplateStatus
from models.models import Comment, ScheduledMaintenance
from policy.authorization import Action, ActorContext, Target, authorize
from policy.request_lifecycle import check_template_transition
from repos.comment_repo import CommentRepo
from repos.property_repo import PropertyRepo, UnitRepo
from repos.scheduled_maintenance_repo import ScheduledMaintenanceRepo
from schemas.schema import CommentOut, PublicLinkOut, TemplateOut
from services.assignment import (
    assignment_notices,
    can_see_internal,
    close_public_link,
    open_public_link,
    resolve_assignee,
    vendor_ids_for,
    work_target,
)
from services.dispatcher import Command, CommandDispatcher, CommandResult
from services.recurrence_engine import RecurrenceEngine

logger = logging.getLogger(__name__)

KIND = ResourceType.SCHEDULED_MAINTENANCE
OPEN_STATUSES = (TemplateStatus.ACTIVE, TemplateStatus.PAUSED)


def template_target(template, actor=None, vendor_ids=()) -> Target:
    return work_target(KIND, template, actor, vendor_ids)


class ScheduledMaintenanceService:
    def __init__(self, db):
        self.db = db
        self.repo: ScheduledMaintenanceRepo = ScheduledMaintenanceRepo(db)
        self.property_repo: PropertyRepo = PropertyRepo(db)
        self.unit_repo: UnitRepo = UnitRepo(db)
        self.comment_repo: CommentRepo = CommentRepo(db)
        self.dispatcher: CommandDispatcher = CommandDispatcher(db)
        self.paginate: PaginatePage = PaginatePage()

    async def _load(self, template_id: uuid.UUID) -> ScheduledMaintenance:
        template = await self.repo.get(template_id)
        if not template:
            raise NotFound("Scheduled maintenance not found")
        return template

    async def _assignment(self, actor, template, assignee):
        prop = await self.property_repo.get(template.property_id)
        kind, who = await resolve_assignee(self.db, actor, assignee, template.property_id)
        template.assigned_to_id = who.id
        template.assigned_kind = kind
        return assignment_notices(
            kind,
            who,
            resource_type=KIND,
            resource_id=template.id,
            title=template.title,
            property_name=prop.name if prop else "",
        )

    async def create_template(self, actor: ActorContext, data):
        async def handler():
            prop = await self.property_repo.get(data.property_id)
            if not prop:
                raise NotFound("Property not found")
            unit = await self.unit_repo.get(data.unit_id) if data.unit_id else None
            if data.unit_id and unit is None:
                raise NotFound("Unit not found")
            target = Target(
                kind=KIND,
                property_id=prop.id,
                unit_id=data.unit_id,
                unit_property_id=unit.property_id if unit else None,
            )

            async def mutate():
                if unit is not None and unit.property_id != prop.id:
                    raise ValidationFailed.field(
                        "unitId", "Unit does not belong to the property", str(unit.id)
                    )
                if not prop.is_active:
                    raise SemanticError("Property is archived")
                template = ScheduledMaintenance(
                    title=data.title,
                    description=data.description,
                    category=data.category,
                    priority=data.priority,
                    property_id=prop.id,
                    unit_id=data.unit_id,
                    created_by_id=actor.user_id,
                    scheduled_date=data.scheduled_date,
                    recurring=data.recurring,
                    frequency=data.frequency.to_storage() if data.frequency else None,
                    next_due_date=data.scheduled_date,
                    status=TemplateStatus.ACTIVE,
                    media_refs=data.media_refs,
                )
                await self.repo.add(template)
                effects = []
                if data.assignee is not None:
                    effects = await self._assignment(actor, template, data.assignee)
                return CommandResult(value=template, entity=template, side_effects=effects)

            created = await self.dispatcher.run(
                Command(
                    action=AuditAction.CREATE,
                    resource_type=KIND,
                    permission=Action.CREATE,
                    target=target,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, TemplateOut),
            )
            return self.paginate.ok(created, message="Scheduled maintenance created")

        return await breaker.call(handler)

    async def list_templates(
        self,
        actor: ActorContext,
        params: PageParams,
        *,
        property_id: Optional[uuid.UUID] = None,
        unit_id: Optional[uuid.UUID] = None,
        status: Optional[TemplateStatus] = None,
        recurring: Optional[bool] = None,
    ):
        async def handler():
            items, total = await self.repo.list_templates(
                params,
                actor,
                vendor_ids=await vendor_ids_for(self.db, actor),
                property_id=property_id,
                unit_id=unit_id,
                status=status,
                recurring=recurring,
            )
            return self.paginate.page(ORMMapper.many(items, TemplateOut), total, params)

        return await breaker.call(handler)

    async def get_template(self, actor: ActorContext, template_id: uuid.UUID):
        async def handler():
            template = await self._load(template_id)
            vendor_ids = await vendor_ids_for(self.db, actor)
            if not authorize(actor, Action.VIEW, template_target(template, actor, vendor_ids)):
                raise Forbidden()
            return self.paginate.ok(ORMMapper.one(template, TemplateOut))

        return await breaker.call(handler)

    async def update_template(self, actor: ActorContext, template_id: uuid.UUID, data):
        async def handler():
            template = await self._load(template_id)
            changes = data.model_dump(
                exclude_unset=True, exclude_none=True, exclude={"frequency", "assignee"}
            )

            async def mutate():
                if template.status not in OPEN_STATUSES:
                    raise SemanticError(f"Scheduled maintenance is {template.status.value}")
                before = ORMMapper.snapshot(template)
                for key, value in changes.items():
                    setattr(template, key, value)
                if "frequency" in data.model_fields_set:
                    template.frequency = data.frequency.to_storage() if data.frequency else None
                if template.recurring and not template.frequency:
                    raise ValidationFailed.field(
                        "frequency", "frequency is required for recurring maintenance"
                    )
                if not template.recurring:
                    template.frequency = None
                # a new start date only moves the schedule before the first run
                if "scheduled_date" in changes and template.occurrence_count == 0:
                    template.next_due_date = template.scheduled_date
                effects = []
                if data.assignee is not None:
                    effects = await self._assignment(actor, template, data.assignee)
                return CommandResult(
                    value=template, entity=template, before=before, side_effects=effects
                )

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.UPDATE,
                    resource_type=KIND,
                    permission=Action.UPDATE,
                    target=template_target(template),
                    resource_id=template_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, TemplateOut),
            )
            return self.paginate.ok(updated, message="Scheduled maintenance updated")

        return await breaker.call(handler)

    async def _move(
        self,
        actor: ActorContext,
        template_id: uuid.UUID,
        target_status: TemplateStatus,
        action: AuditAction,
        permission: Action,
        message: str,
        now: Optional[datetime] = None,
    ):
        template = await self._load(template_id)

        async def mutate():
            check_template_transition(template.status, target_status)
            before = ORMMapper.snapshot(template)
            if target_status == TemplateStatus.ACTIVE:
                # resume never back-fills the paused window
                template.next_due_date = max(template.next_due_date, now or utcnow())
            template.status = target_status
            if target_status == TemplateStatus.CANCELED:
                close_public_link(template)
            return CommandResult(value=template, entity=template, before=before)

        updated = await self.dispatcher.run(
            Command(
                action=action,
                resource_type=KIND,
                permission=permission,
                target=template_target(template),
                resource_id=template_id,
            ),
            mutate,
            actor=actor,
            present=lambda x: ORMMapper.one(x, TemplateOut),
        )
        return self.paginate.ok(updated, message=message)

    async def pause_template(self, actor: ActorContext, template_id: uuid.UUID):
        async def handler():
            return await self._move(
                actor,
                template_id,
                TemplateStatus.PAUSED,
                AuditAction.SCHEDULED_MAINTENANCE_PAUSED,
                Action.UPDATE,
                "Scheduled maintenance paused",
            )

        return await breaker.call(handler)

    async def resume_template(
        self, actor: ActorContext, template_id: uuid.UUID, now: Optional[datetime] = None
    ):
        async def handler():
            return await self._move(
                actor,
                template_id,
                TemplateStatus.ACTIVE,
                AuditAction.SCHEDULED_MAINTENANCE_RESUMED,
                Action.UPDATE,
                "Scheduled maintenance resumed",
                now=now,
            )

        return await breaker.call(handler)

    async def cancel_template(self, actor: ActorContext, template_id: uuid.UUID):
        async def handler():
            return await self._move(
                actor,
                template_id,
                TemplateStatus.CANCELED,
                AuditAction.DELETE,
                Action.DELETE,
                "Scheduled maintenance canceled",
            )

        return await breaker.call(handler)

    async def generate_now(
        self, actor: ActorContext, template_id: uuid.UUID, now: Optional[datetime] = None
    ):
        """Admin trigger: materialize whatever this template owes right now."""

        async def handler():
            template = await self._load(template_id)
            await self.dispatcher.check(
                actor,
                Command(
                    action=AuditAction.SCHEDULED_MAINTENANCE_GENERATED_REQUEST,
                    resource_type=KIND,
                    permission=Action.MANAGE,
                    target=Target(kind=ResourceType.SYSTEM),
                    resource_id=template_id,
                ),
            )
            if template.status != TemplateStatus.ACTIVE:
                raise SemanticError(f"Scheduled maintenance is {template.status.value}")
            engine = RecurrenceEngine(self.db, actor=actor)
            created, completed = await engine.generate_requests(now or utcnow(), template_id)
            await self.db.refresh(template)
            body = self.paginate.ok(
                ORMMapper.one(template, TemplateOut),
                message=f"{created} request(s) generated",
            )
            body["count"] = created
            return body

        return await breaker.call(handler)

    async def enable_public_link(self, actor: ActorContext, template_id: uuid.UUID, data):
        async def handler():
            template = await self._load(template_id)

            async def mutate():
                if template.status not in OPEN_STATUSES:
                    raise SemanticError(f"Scheduled maintenance is {template.status.value}")
                before = ORMMapper.snapshot(template)
                link = open_public_link(template, KIND, data.expires_in_days)
                return CommandResult(value=link, entity=template, before=before)

            link = await self.dispatcher.run(
                Command(
                    action=AuditAction.PUBLIC_LINK_ENABLED,
                    resource_type=KIND,
                    permission=Action.UPDATE,
                    target=template_target(template),
                    resource_id=template_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: PublicLinkOut(**x),
            )
            return self.paginate.ok(link, message="Public link enabled")

        return await breaker.call(handler)

    async def disable_public_link(self, actor: ActorContext, template_id: uuid.UUID):
        async def handler():
            template = await self._load(template_id)

            async def mutate():
                before = ORMMapper.snapshot(template)
                close_public_link(template)
                return CommandResult(value=template, entity=template, before=before)

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.PUBLIC_LINK_DISABLED,
                    resource_type=KIND,
                    permission=Action.UPDATE,
                    target=template_target(template),
                    resource_id=template_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, TemplateOut),
            )
            return self.paginate.ok(updated, message="Public link disabled")

        return await breaker.call(handler)

    async def add_comment(self, actor: ActorContext, template_id: uuid.UUID, data):
        async def handler():
            template = await self._load(template_id)
            vendor_ids = await vendor_ids_for(self.db, actor)

            async def mutate():
                if data.is_internal_note and not can_see_internal(template, actor, vendor_ids):
                    raise Forbidden("Only property staff can add internal notes")
                comment = await self.comment_repo.create(
                    Comment(
                        context_type=KIND,
                        context_id=template.id,
                        sender_id=actor.user_id,
                        message=data.message,
                        is_internal_note=data.is_internal_note,
                        media_refs=data.media_refs,
                    )
                )
                return CommandResult(
                    value=comment, resource_id=template.id, after=ORMMapper.snapshot(comment)
                )

            comment = await self.dispatcher.run(
                Command(
                    action=AuditAction.COMMENT_ADDED,
                    resource_type=KIND,
                    permission=Action.COMMENT,
                    target=template_target(template, actor, vendor_ids),
                    resource_id=template_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, CommentOut),
            )
            return self.paginate.ok(comment, message="Comment added")

        return await breaker.call(handler)

    async def list_comments(self, actor: ActorContext, template_id: uuid.UUID):
        async def handler():
            template = await self._load(template_id)
            vendor_ids = await vendor_ids_for(self.db, actor)
            if not authorize(actor, Action.VIEW, template_target(template, actor, vendor_ids)):
                raise Forbidden()
            comments = await self.comment_repo.thread(
                KIND,
                template.id,
                include_internal=can_see_internal(template, actor, vendor_ids),
            )
            data = self.paginate.get_list_json_dumps(ORMMapper.many(comments, CommentOut))
            body = self.paginate.ok(data)
            body["count"] = len(data)
            return body

        return await breaker.call(handler)
