"""Token-scoped access for people without an account.

A public link grants one resource: a redacted read, a status report limited
to in_progress or completed, and external comments. The caller's name and
phone travel into every audit entry the link produces.
"""

import logging
from typing import Optional

from core.breaker import breaker
from core.date_helper import utcnow
from core.errors import SemanticError, Unauthorized
from core.mapper import ORMMapper
from core.paginate import PaginatePage
from models.enums import (
    AuditAction,
    NotificationType,
    PropertyRole,
    RequestStatus,
    ResourceType,
    SideEffectKind,
)
from models.models import Comment, MaintenanceRequest
from policy.request_lifecycle import TransitionActor, check_request_transition
from repos.association_repo import AssociationRepo
from repos.comment_repo import CommentRepo
from repos.property_repo import PropertyRepo, UnitRepo
from repos.request_repo import RequestRepo
from repos.scheduled_maintenance_repo import ScheduledMaintenanceRepo
from schemas.schema import (
    PublicCommentOut,
    PublicRequestView,
    PublicTemplateView,
)
from security.security_generate import user_generate
from services.dispatcher import (
    AuditNote,
    Command,
    CommandDispatcher,
    CommandResult,
    SideEffectRequest,
)
from services.request_service import apply_status

logger = logging.getLogger(__name__)

INVALID_LINK = "Public link invalid or expired"


def external_identity(data, ip: Optional[str]) -> dict:
    identity = {"name": data.name, "phone": data.phone}
    if ip:
        identity["ip"] = ip
    return identity


def public_comments(comments) -> list:
    return [
        PublicCommentOut(sender_name=c.sender_name, message=c.message, timestamp=c.created_at)
        for c in comments
    ]


class PublicService:
    def __init__(self, db):
        self.db = db
        self.requests: RequestRepo = RequestRepo(db)
        self.templates: ScheduledMaintenanceRepo = ScheduledMaintenanceRepo(db)
        self.property_repo: PropertyRepo = PropertyRepo(db)
        self.unit_repo: UnitRepo = UnitRepo(db)
        self.association_repo: AssociationRepo = AssociationRepo(db)
        self.comment_repo: CommentRepo = CommentRepo(db)
        self.dispatcher: CommandDispatcher = CommandDispatcher(db)
        self.paginate: PaginatePage = PaginatePage()

    async def _resolve(self, repo, raw_token: str):
        row = await repo.get_by_public_hash(user_generate.hash_token(raw_token))
        if row is None or not row.public_link_usable(utcnow()):
            raise Unauthorized(INVALID_LINK)
        return row

    async def _places(self, row):
        prop = await self.property_repo.get(row.property_id)
        unit = await self.unit_repo.get(row.unit_id) if row.unit_id else None
        return (prop.name if prop else None), (unit.unit_name if unit else None)

    async def _thread(self, kind: ResourceType, row_id):
        return await self.comment_repo.thread(kind, row_id, include_internal=False)

    async def _staff_notices(self, row, kind: ResourceType, message: str) -> list:
        staff = await self.association_repo.users_of(
            row.property_id, [PropertyRole.LANDLORD, PropertyRole.PROPERTY_MANAGER]
        )
        return [
            SideEffectRequest(
                kind=SideEffectKind.NOTIFICATION,
                template="public_activity",
                recipient_user_id=user.id,
                payload={"type": NotificationType.NEW_COMMENT.value, "message": message},
                resource_type=kind,
                resource_id=row.id,
            )
            for user in staff
        ]

    def _external_comment(self, kind: ResourceType, row_id, data, message: str) -> Comment:
        return Comment(
            context_type=kind,
            context_id=row_id,
            external_name=data.name,
            external_phone=data.phone,
            message=message,
            is_external=True,
        )

    async def _report_status(self, request: MaintenanceRequest, target: RequestStatus) -> dict:
        before = ORMMapper.snapshot(request)
        check_request_transition(
            request.status,
            target,
            actor=TransitionActor.PUBLIC,
            has_assignee=request.assigned_to_id is not None,
        )
        apply_status(request, target)
        return before

    # ------------------------------------------------------------ requests

    async def view_request(self, raw_token: str):
        async def handler():
            request = await self._resolve(self.requests, raw_token)
            property_name, unit_name = await self._places(request)
            view = PublicRequestView(
                id=request.id,
                title=request.title,
                description=request.description,
                category=request.category,
                priority=request.priority,
                status=request.status,
                property_name=property_name,
                unit_name=unit_name,
                created_at=request.created_at,
                resolved_at=request.resolved_at,
                comments=public_comments(await self._thread(ResourceType.REQUEST, request.id)),
            )
            return self.paginate.ok(view)

        return await breaker.call(handler)

    async def update_request(self, raw_token: str, data, ip: Optional[str] = None):
        async def handler():
            request = await self._resolve(self.requests, raw_token)
            external = external_identity(data, ip)

            async def mutate():
                before = ORMMapper.snapshot(request)
                if data.status is not None:
                    before = await self._report_status(request, data.status)
                if data.comment_message:
                    await self.comment_repo.create(
                        self._external_comment(
                            ResourceType.REQUEST, request.id, data, data.comment_message
                        )
                    )
                summary = (
                    f"{data.name} marked '{request.title}' {data.status.value}"
                    if data.status
                    else f"{data.name} commented on '{request.title}'"
                )
                return CommandResult(
                    value=request,
                    entity=request,
                    before=before,
                    description=summary,
                    side_effects=await self._staff_notices(
                        request, ResourceType.REQUEST, summary
                    ),
                )

            await self.dispatcher.run(
                Command(
                    action=AuditAction.PUBLIC_UPDATE,
                    resource_type=ResourceType.REQUEST,
                    resource_id=request.id,
                ),
                mutate,
                external=external,
            )
            return await self.view_request(raw_token)

        return await breaker.call(handler)

    async def comment_on_request(self, raw_token: str, data, ip: Optional[str] = None):
        async def handler():
            request = await self._resolve(self.requests, raw_token)
            return await self._comment(ResourceType.REQUEST, request, data, ip)

        return await breaker.call(handler)

    # ------------------------------------------------------------ templates

    async def view_template(self, raw_token: str):
        async def handler():
            template = await self._resolve(self.templates, raw_token)
            property_name, unit_name = await self._places(template)
            view = PublicTemplateView(
                id=template.id,
                title=template.title,
                description=template.description,
                category=template.category,
                status=template.status,
                property_name=property_name,
                unit_name=unit_name,
                scheduled_date=template.scheduled_date,
                next_due_date=template.next_due_date,
                comments=public_comments(
                    await self._thread(ResourceType.SCHEDULED_MAINTENANCE, template.id)
                ),
            )
            return self.paginate.ok(view)

        return await breaker.call(handler)

    async def update_template(self, raw_token: str, data, ip: Optional[str] = None):
        """Report progress on a schedule's most recent occurrence."""

        async def handler():
            template = await self._resolve(self.templates, raw_token)
            external = external_identity(data, ip)

            async def mutate():
                notes = []
                if data.status is not None:
                    occurrence = (
                        await self.requests.get(template.last_generated_request_id)
                        if template.last_generated_request_id
                        else None
                    )
                    if occurrence is None:
                        raise SemanticError("No generated occurrence to update yet")
                    before = await self._report_status(occurrence, data.status)
                    await self.db.flush()
                    notes.append(
                        AuditNote(
                            action=AuditAction.PUBLIC_UPDATE,
                            resource_type=ResourceType.REQUEST,
                            resource_id=occurrence.id,
                            description=f"{data.name} marked occurrence {data.status.value}",
                            before=before,
                            after=ORMMapper.snapshot(occurrence),
                        )
                    )
                if data.comment_message:
                    await self.comment_repo.create(
                        self._external_comment(
                            ResourceType.SCHEDULED_MAINTENANCE,
                            template.id,
                            data,
                            data.comment_message,
                        )
                    )
                summary = f"{data.name} updated scheduled maintenance '{template.title}'"
                return CommandResult(
                    value=template,
                    resource_id=template.id,
                    description=summary,
                    notes=notes,
                    side_effects=await self._staff_notices(
                        template, ResourceType.SCHEDULED_MAINTENANCE, summary
                    ),
                )

            await self.dispatcher.run(
                Command(
                    action=AuditAction.PUBLIC_UPDATE,
                    resource_type=ResourceType.SCHEDULED_MAINTENANCE,
                    resource_id=template.id,
                ),
                mutate,
                external=external,
            )
            return await self.view_template(raw_token)

        return await breaker.call(handler)

    async def comment_on_template(self, raw_token: str, data, ip: Optional[str] = None):
        async def handler():
            template = await self._resolve(self.templates, raw_token)
            return await self._comment(ResourceType.SCHEDULED_MAINTENANCE, template, data, ip)

        return await breaker.call(handler)

    async def _comment(self, kind: ResourceType, row, data, ip: Optional[str]):
        title = row.title

        async def mutate():
            comment = await self.comment_repo.create(
                self._external_comment(kind, row.id, data, data.message)
            )
            return CommandResult(
                value=comment,
                resource_id=row.id,
                after=ORMMapper.snapshot(comment),
                description=f"External comment from {data.name}",
                side_effects=await self._staff_notices(
                    row, kind, f"New public comment on '{title}' from {data.name}"
                ),
            )

        comment = await self.dispatcher.run(
            Command(action=AuditAction.COMMENT_ADDED, resource_type=kind, resource_id=row.id),
            mutate,
            external=external_identity(data, ip),
            present=lambda c: PublicCommentOut(
                sender_name=c.sender_name, message=c.message, timestamp=c.created_at
            ),
        )
        logger.info("Public comment on %s %s", kind.value, row.id)
        return self.paginate.ok(comment, message="Comment added")
