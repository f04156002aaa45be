"""Single write path for every state-changing command.

A command is authorized against the pure policy kernel, its mutation runs
inside one database transaction together with the side-effect outbox rows
it asks for, and the audit entry is written afterwards on a best-effort
basis.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from sqlalchemy.exc import IntegrityError

from core.errors import Conflict, Forbidden, Unauthorized
from core.mapper import ORMMapper
from models.enums import AuditAction, AuditStatus, ResourceType, SideEffectKind
from models.models import SideEffect
from policy.authorization import Action, ActorContext, Target, authorize
from repos.side_effect_repo import SideEffectRepo
from services.audit_service import AuditService

logger = logging.getLogger(__name__)

CONSTRAINT_MESSAGES = {
    "uq_active_property_user": "User already has an active association for this property and unit",
    "uq_active_lease_per_unit": "Unit already has an active lease",
    "uq_rent_lease_period": "Rent for this billing period already exists",
    "uq_unit_name_per_property": "A unit with this name already exists on the property",
    "users.email": "A user with this email already exists",
    "properties.name": "A property with this name already exists",
}


def conflict_message(error: IntegrityError) -> str:
    text = str(error.orig)
    for marker, message in CONSTRAINT_MESSAGES.items():
        if marker in text:
            return message
    return "Resource conflicts with existing data"


@dataclass
class SideEffectRequest:
    kind: SideEffectKind
    template: str
    recipient: Optional[str] = None
    recipient_user_id: Optional[uuid.UUID] = None
    payload: dict = field(default_factory=dict)
    resource_type: Optional[ResourceType] = None
    resource_id: Optional[uuid.UUID] = None

    def to_row(self) -> SideEffect:
        return SideEffect(
            kind=self.kind,
            template=self.template,
            recipient=self.recipient,
            recipient_user_id=self.recipient_user_id,
            payload=self.payload,
            resource_type=self.resource_type,
            resource_id=self.resource_id,
        )


@dataclass
class AuditNote:
    """Additional audit entry produced by the same command."""

    action: AuditAction
    resource_type: ResourceType
    resource_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    before: Optional[dict] = None
    after: Optional[dict] = None


@dataclass
class CommandResult:
    value: Any = None
    entity: Any = None
    before: Optional[dict] = None
    after: Optional[dict] = None
    resource_id: Optional[uuid.UUID] = None
    description: Optional[str] = None
    side_effects: List[SideEffectRequest] = field(default_factory=list)
    notes: List[AuditNote] = field(default_factory=list)
    # identity established by the command itself (registration, invite accept)
    actor: Optional[ActorContext] = None


@dataclass(frozen=True)
class Command:
    action: AuditAction
    resource_type: ResourceType
    permission: Optional[Action] = None
    target: Optional[Target] = None
    resource_id: Optional[uuid.UUID] = None
    description: Optional[str] = None


class CommandDispatcher:
    def __init__(self, db):
        self.db = db
        self.audit = AuditService(db)
        self.outbox = SideEffectRepo(db)

    async def check(self, actor: Optional[ActorContext], command: Command) -> None:
        if command.permission is None:
            return
        if actor is None:
            raise Unauthorized()
        decision = authorize(actor, command.permission, command.target)
        if decision:
            return
        logger.warning(
            "Denied %s on %s:%s for user %s: %s",
            command.permission.value,
            command.resource_type.value,
            command.resource_id,
            actor.user_id,
            decision.reason,
        )
        await self.audit.record(
            self.audit.entry(
                action=command.action,
                resource_type=command.resource_type,
                resource_id=command.resource_id,
                actor=actor,
                status=AuditStatus.FAILURE,
                description=decision.reason,
                error_message="not authorized",
            )
        )
        raise Forbidden()

    async def run(
        self,
        command: Command,
        mutate: Callable[[], Awaitable[CommandResult]],
        *,
        actor: Optional[ActorContext] = None,
        external: Optional[dict] = None,
        present: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        await self.check(actor, command)

        try:
            result = await mutate()
            if result.entity is not None:
                await self.db.flush()
                if result.after is None:
                    result.after = ORMMapper.snapshot(result.entity)
                if result.resource_id is None:
                    result.resource_id = result.entity.id
            for effect in result.side_effects:
                self.outbox.enqueue(effect.to_row())
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning("Integrity conflict in %s: %s", command.action.value, e.orig)
            raise Conflict(conflict_message(e)) from e
        except Exception:
            await self.db.rollback()
            raise

        value = present(result.value) if present else result.value
        actor = result.actor or actor

        entries = [
            self.audit.entry(
                action=command.action,
                resource_type=command.resource_type,
                resource_id=result.resource_id or command.resource_id,
                actor=actor,
                external=external,
                description=result.description or command.description,
                before=result.before,
                after=result.after,
            )
        ]
        entries.extend(
            self.audit.entry(
                action=note.action,
                resource_type=note.resource_type,
                resource_id=note.resource_id,
                actor=actor,
                external=external,
                description=note.description,
                before=note.before,
                after=note.after,
            )
            for note in result.notes
        )
        await self.audit.record(*entries)
        return value
