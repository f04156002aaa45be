import logging
import uuid
from typing import Optional

from core.breaker import breaker
from core.date_helper import utcnow
from core.errors import Forbidden, NotFound, SemanticError, ValidationFailed
from core.mapper import ORMMapper
from core.paginate import PageParams, PaginatePage
from models.enums import (
    AuditAction,
    NotificationType,
    Priority,
    PropertyRole,
    RequestCategory,
    RequestStatus,
    ResourceType,
    SideEffectKind,
)
from models.models import Comment, MaintenanceRequest
from policy.authorization import Action, ActorContext, Target, authorize
from policy.request_lifecycle import (
    TransitionActor,
    can_transition,
    check_feedback_allowed,
    check_request_transition,
)
from repos.association_repo import AssociationRepo
from repos.comment_repo import CommentRepo
from repos.property_repo import PropertyRepo, UnitRepo
from repos.request_repo import RequestRepo
from repos.user_repo import UserRepo
from schemas.schema import CommentOut, PublicLinkOut, RequestOut
from services.assignment import (
    can_see_internal,
    close_public_link,
    open_public_link,
    resolve_assignee,
    assignment_notices,
    transition_actor,
    vendor_ids_for,
    work_target,
)
from services.dispatcher import (
    Command,
    CommandDispatcher,
    CommandResult,
    SideEffectRequest,
)

logger = logging.getLogger(__name__)

TENANT_EDITABLE = {"title", "description", "category", "priority", "media_refs"}
CLOSED = (RequestStatus.CANCELED, RequestStatus.ARCHIVED)
AUTO_ASSIGN_FROM = (RequestStatus.NEW, RequestStatus.TRIAGED, RequestStatus.REOPENED)


def apply_status(request: MaintenanceRequest, target: RequestStatus, actor_id=None) -> None:
    """Set a request's status together with the timestamps it implies."""
    now = utcnow()
    request.status = target
    if target == RequestStatus.COMPLETED:
        request.resolved_at = now
    elif target == RequestStatus.VERIFIED:
        request.verified_at = now
        request.verified_by_id = actor_id
    elif target == RequestStatus.REOPENED:
        request.resolved_at = None
        request.verified_at = None
        request.verified_by_id = None


def status_notices(request: MaintenanceRequest, requester) -> list:
    if requester is None:
        return []
    payload = {
        "name": requester.full_name,
        "title": request.title,
        "status": request.status.value,
    }
    return [
        SideEffectRequest(
            kind=SideEffectKind.EMAIL,
            template="request_status",
            recipient=requester.email,
            recipient_user_id=requester.id,
            payload=payload,
            resource_type=ResourceType.REQUEST,
            resource_id=request.id,
        ),
        SideEffectRequest(
            kind=SideEffectKind.NOTIFICATION,
            template="request_status",
            recipient_user_id=requester.id,
            payload={
                "type": NotificationType.STATUS_UPDATE.value,
                "message": f"Request '{request.title}' is now {request.status.value}.",
            },
            resource_type=ResourceType.REQUEST,
            resource_id=request.id,
        ),
    ]


class RequestService:
    def __init__(self, db):
        self.db = db
        self.repo: RequestRepo = RequestRepo(db)
        self.property_repo: PropertyRepo = PropertyRepo(db)
        self.unit_repo: UnitRepo = UnitRepo(db)
        self.user_repo: UserRepo = UserRepo(db)
        self.association_repo: AssociationRepo = AssociationRepo(db)
        self.comment_repo: CommentRepo = CommentRepo(db)
        self.dispatcher: CommandDispatcher = CommandDispatcher(db)
        self.paginate: PaginatePage = PaginatePage()

    async def _load(self, request_id: uuid.UUID) -> MaintenanceRequest:
        request = await self.repo.get(request_id)
        if not request:
            raise NotFound("Maintenance request not found")
        return request

    async def _visible(self, actor: ActorContext, request_id: uuid.UUID):
        request = await self._load(request_id)
        vendor_ids = await vendor_ids_for(self.db, actor)
        target = work_target(ResourceType.REQUEST, request, actor, vendor_ids)
        if not authorize(actor, Action.VIEW, target):
            raise Forbidden()
        return request, vendor_ids

    async def create_request(self, actor: ActorContext, data):
        async def handler():
            prop = await self.property_repo.get(data.property_id)
            if not prop:
                raise NotFound("Property not found")
            unit = None
            if data.unit_id:
                unit = await self.unit_repo.get(data.unit_id)
                if not unit:
                    raise NotFound("Unit not found")
            target = Target(
                kind=ResourceType.REQUEST,
                property_id=prop.id,
                unit_id=data.unit_id,
                unit_property_id=unit.property_id if unit else None,
                created_by_id=actor.user_id,
            )

            async def mutate():
                if unit is not None and unit.property_id != prop.id:
                    raise ValidationFailed.field(
                        "unitId", "Unit does not belong to the property", str(unit.id)
                    )
                if not prop.is_active:
                    raise SemanticError("Property is archived")
                request = MaintenanceRequest(
                    title=data.title,
                    description=data.description,
                    category=data.category,
                    priority=data.priority,
                    property_id=prop.id,
                    unit_id=data.unit_id,
                    created_by_id=actor.user_id,
                    media_refs=data.media_refs,
                    status=RequestStatus.NEW,
                )
                await self.repo.add(request)
                managers = await self.association_repo.users_of(
                    prop.id, [PropertyRole.LANDLORD, PropertyRole.PROPERTY_MANAGER]
                )
                effects = []
                for manager in managers:
                    if manager.id == actor.user_id:
                        continue
                    effects.append(
                        SideEffectRequest(
                            kind=SideEffectKind.EMAIL,
                            template="request_created",
                            recipient=manager.email,
                            recipient_user_id=manager.id,
                            payload={
                                "name": manager.full_name,
                                "title": request.title,
                                "priority": request.priority.value,
                                "property_name": prop.name,
                                "description": request.description,
                            },
                            resource_type=ResourceType.REQUEST,
                            resource_id=request.id,
                        )
                    )
                    effects.append(
                        SideEffectRequest(
                            kind=SideEffectKind.NOTIFICATION,
                            template="request_created",
                            recipient_user_id=manager.id,
                            payload={
                                "type": NotificationType.NEW_REQUEST.value,
                                "message": f"New maintenance request at {prop.name}: {request.title}",
                            },
                            resource_type=ResourceType.REQUEST,
                            resource_id=request.id,
                        )
                    )
                return CommandResult(value=request, entity=request, side_effects=effects)

            created = await self.dispatcher.run(
                Command(
                    action=AuditAction.CREATE,
                    resource_type=ResourceType.REQUEST,
                    permission=Action.CREATE,
                    target=target,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, RequestOut),
            )
            return self.paginate.ok(created, message="Maintenance request created")

        return await breaker.call(handler)

    async def list_requests(
        self,
        actor: ActorContext,
        params: PageParams,
        *,
        property_id: Optional[uuid.UUID] = None,
        unit_id: Optional[uuid.UUID] = None,
        status: Optional[RequestStatus] = None,
        priority: Optional[Priority] = None,
        category: Optional[RequestCategory] = None,
        template_id: Optional[uuid.UUID] = None,
    ):
        async def handler():
            items, total = await self.repo.list_requests(
                params,
                actor,
                vendor_ids=await vendor_ids_for(self.db, actor),
                property_id=property_id,
                unit_id=unit_id,
                status=status,
                priority=priority,
                category=category,
                template_id=template_id,
            )
            return self.paginate.page(ORMMapper.many(items, RequestOut), total, params)

        return await breaker.call(handler)

    async def get_request(self, actor: ActorContext, request_id: uuid.UUID):
        async def handler():
            request, _ = await self._visible(actor, request_id)
            return self.paginate.ok(ORMMapper.one(request, RequestOut))

        return await breaker.call(handler)

    async def update_request(self, actor: ActorContext, request_id: uuid.UUID, data):
        async def handler():
            request = await self._load(request_id)
            changes = data.model_dump(exclude_unset=True)

            async def mutate():
                if request.status in CLOSED:
                    raise SemanticError(f"Request is {request.status.value}")
                manager = actor.is_admin or actor.manages(request.property_id)
                if not manager:
                    if request.status != RequestStatus.NEW:
                        raise SemanticError("Requests can only be edited while new")
                    extra = set(changes) - TENANT_EDITABLE
                    if extra:
                        raise Forbidden(f"Cannot change {', '.join(sorted(extra))}")
                before = ORMMapper.snapshot(request)
                for key, value in changes.items():
                    setattr(request, key, value)
                return CommandResult(value=request, entity=request, before=before)

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.UPDATE,
                    resource_type=ResourceType.REQUEST,
                    permission=Action.UPDATE,
                    target=work_target(ResourceType.REQUEST, request),
                    resource_id=request_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, RequestOut),
            )
            return self.paginate.ok(updated, message="Maintenance request updated")

        return await breaker.call(handler)

    async def assign(self, actor: ActorContext, request_id: uuid.UUID, data):
        async def handler():
            request = await self._load(request_id)

            async def mutate():
                if request.status in CLOSED:
                    raise SemanticError(f"Request is {request.status.value}")
                kind, who = await resolve_assignee(
                    self.db, actor, data.assignee, request.property_id
                )
                before = ORMMapper.snapshot(request)
                request.assigned_to_id = who.id
                request.assigned_kind = kind
                request.assigned_by_id = actor.user_id
                request.assigned_at = utcnow()
                if request.status in AUTO_ASSIGN_FROM:
                    request.status = RequestStatus.ASSIGNED
                prop = await self.property_repo.get(request.property_id)
                return CommandResult(
                    value=request,
                    entity=request,
                    before=before,
                    description=f"Assigned to {kind.value} {who.id}",
                    side_effects=assignment_notices(
                        kind,
                        who,
                        resource_type=ResourceType.REQUEST,
                        resource_id=request.id,
                        title=request.title,
                        property_name=prop.name if prop else "",
                    ),
                )

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.REQUEST_ASSIGNED,
                    resource_type=ResourceType.REQUEST,
                    permission=Action.ASSIGN,
                    target=work_target(ResourceType.REQUEST, request),
                    resource_id=request_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, RequestOut),
            )
            return self.paginate.ok(updated, message="Request assigned")

        return await breaker.call(handler)

    async def change_status(self, actor: ActorContext, request_id: uuid.UUID, data):
        async def handler():
            request = await self._load(request_id)
            vendor_ids = await vendor_ids_for(self.db, actor)
            role = transition_actor(request, actor, vendor_ids)
            # requesters act through UPDATE; the kernel reserves CHANGE_STATUS
            # for managers and assignees
            permission = Action.UPDATE if role == TransitionActor.REQUESTER else Action.CHANGE_STATUS

            async def mutate():
                if role is None:
                    raise Forbidden()
                before = ORMMapper.snapshot(request)
                check_request_transition(
                    request.status,
                    data.status,
                    actor=role,
                    has_assignee=request.assigned_to_id is not None,
                )
                apply_status(request, data.status, actor.user_id)
                if data.comment:
                    await self.comment_repo.create(
                        Comment(
                            context_type=ResourceType.REQUEST,
                            context_id=request.id,
                            sender_id=actor.user_id,
                            message=data.comment,
                        )
                    )
                requester = (
                    await self.user_repo.get(request.created_by_id)
                    if request.created_by_id and request.created_by_id != actor.user_id
                    else None
                )
                return CommandResult(
                    value=request,
                    entity=request,
                    before=before,
                    description=f"{before['status']} -> {data.status.value}",
                    side_effects=status_notices(request, requester),
                )

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.REQUEST_STATUS_CHANGED,
                    resource_type=ResourceType.REQUEST,
                    permission=permission,
                    target=work_target(ResourceType.REQUEST, request, actor, vendor_ids),
                    resource_id=request_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, RequestOut),
            )
            return self.paginate.ok(updated, message="Status updated")

        return await breaker.call(handler)

    async def submit_feedback(self, actor: ActorContext, request_id: uuid.UUID, data):
        async def handler():
            request = await self._load(request_id)

            async def mutate():
                if request.created_by_id != actor.user_id and not actor.is_admin:
                    raise Forbidden("Only the requester can leave feedback")
                check_feedback_allowed(request.status)
                before = ORMMapper.snapshot(request)
                request.feedback_rating = data.rating
                request.feedback_comment = data.comment
                request.feedback_submitted_at = utcnow()
                return CommandResult(value=request, entity=request, before=before)

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.REQUEST_FEEDBACK_SUBMITTED,
                    resource_type=ResourceType.REQUEST,
                    permission=Action.FEEDBACK,
                    target=work_target(ResourceType.REQUEST, request),
                    resource_id=request_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, RequestOut),
            )
            return self.paginate.ok(updated, message="Feedback submitted")

        return await breaker.call(handler)

    async def enable_public_link(self, actor: ActorContext, request_id: uuid.UUID, data):
        async def handler():
            request = await self._load(request_id)

            async def mutate():
                if request.status in CLOSED:
                    raise SemanticError(f"Request is {request.status.value}")
                before = ORMMapper.snapshot(request)
                link = open_public_link(request, ResourceType.REQUEST, data.expires_in_days)
                return CommandResult(
                    value=link,
                    entity=request,
                    before=before,
                    description=f"Public link valid until {link['expires_at'].isoformat()}",
                )

            link = await self.dispatcher.run(
                Command(
                    action=AuditAction.PUBLIC_LINK_ENABLED,
                    resource_type=ResourceType.REQUEST,
                    permission=Action.UPDATE,
                    target=work_target(ResourceType.REQUEST, request),
                    resource_id=request_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: PublicLinkOut(**x),
            )
            return self.paginate.ok(link, message="Public link enabled")

        return await breaker.call(handler)

    async def disable_public_link(self, actor: ActorContext, request_id: uuid.UUID):
        async def handler():
            request = await self._load(request_id)

            async def mutate():
                before = ORMMapper.snapshot(request)
                close_public_link(request)
                return CommandResult(value=request, entity=request, before=before)

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.PUBLIC_LINK_DISABLED,
                    resource_type=ResourceType.REQUEST,
                    permission=Action.UPDATE,
                    target=work_target(ResourceType.REQUEST, request),
                    resource_id=request_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, RequestOut),
            )
            return self.paginate.ok(updated, message="Public link disabled")

        return await breaker.call(handler)

    async def add_comment(self, actor: ActorContext, request_id: uuid.UUID, data):
        async def handler():
            request = await self._load(request_id)
            vendor_ids = await vendor_ids_for(self.db, actor)

            async def mutate():
                if data.is_internal_note and not can_see_internal(request, actor, vendor_ids):
                    raise Forbidden("Only property staff can add internal notes")
                comment = await self.comment_repo.create(
                    Comment(
                        context_type=ResourceType.REQUEST,
                        context_id=request.id,
                        sender_id=actor.user_id,
                        message=data.message,
                        is_internal_note=data.is_internal_note,
                        media_refs=data.media_refs,
                    )
                )
                effects = []
                if (
                    request.created_by_id
                    and request.created_by_id != actor.user_id
                    and not data.is_internal_note
                ):
                    effects.append(
                        SideEffectRequest(
                            kind=SideEffectKind.NOTIFICATION,
                            template="new_comment",
                            recipient_user_id=request.created_by_id,
                            payload={
                                "type": NotificationType.NEW_COMMENT.value,
                                "message": f"New comment on '{request.title}'",
                            },
                            resource_type=ResourceType.REQUEST,
                            resource_id=request.id,
                        )
                    )
                return CommandResult(
                    value=comment,
                    resource_id=request.id,
                    after=ORMMapper.snapshot(comment),
                    side_effects=effects,
                )

            comment = await self.dispatcher.run(
                Command(
                    action=AuditAction.COMMENT_ADDED,
                    resource_type=ResourceType.REQUEST,
                    permission=Action.COMMENT,
                    target=work_target(ResourceType.REQUEST, request, actor, vendor_ids),
                    resource_id=request_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, CommentOut),
            )
            return self.paginate.ok(comment, message="Comment added")

        return await breaker.call(handler)

    async def list_comments(self, actor: ActorContext, request_id: uuid.UUID):
        async def handler():
            request, vendor_ids = await self._visible(actor, request_id)
            comments = await self.comment_repo.thread(
                ResourceType.REQUEST,
                request.id,
                include_internal=can_see_internal(request, actor, vendor_ids),
            )
            data = self.paginate.get_list_json_dumps(ORMMapper.many(comments, CommentOut))
            body = self.paginate.ok(data)
            body["count"] = len(data)
            return body

        return await breaker.call(handler)

    async def archive_request(self, actor: ActorContext, request_id: uuid.UUID):
        async def handler():
            request = await self._load(request_id)

            async def mutate():
                if not can_transition(request.status, RequestStatus.ARCHIVED):
                    raise SemanticError("Request is already archived")
                before = ORMMapper.snapshot(request)
                request.status = RequestStatus.ARCHIVED
                close_public_link(request)
                return CommandResult(value=request, entity=request, before=before)

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.ARCHIVE,
                    resource_type=ResourceType.REQUEST,
                    permission=Action.DELETE,
                    target=work_target(ResourceType.REQUEST, request),
                    resource_id=request_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, RequestOut),
            )
            return self.paginate.ok(updated, message="Request archived")

        return await breaker.call(handler)
