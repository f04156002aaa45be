import logging
import uuid
from typing import Iterable, List, Optional

from core.breaker import breaker
from core.errors import Conflict, Forbidden, NotFound, SemanticError, ValidationFailed
from core.mapper import ORMMapper
from core.paginate import PaginatePage
from models.enums import AuditAction, PropertyRole, RegistrationStatus, ResourceType
from models.models import PropertyUser
from policy.authorization import Action, ActorContext, Target, authorize
from repos.association_repo import AssociationRepo
from repos.property_repo import PropertyRepo, UnitRepo
from repos.user_repo import UserRepo
from schemas.schema import AssociationOut, UserOut
from services.dispatcher import Command, CommandDispatcher, CommandResult

logger = logging.getLogger(__name__)


def role_values(roles: Iterable) -> List[str]:
    return sorted({getattr(r, "value", r) for r in roles})


class AssociationService:
    """Property-user associations: the grants every property-scoped check reads."""

    def __init__(self, db):
        self.db = db
        self.repo: AssociationRepo = AssociationRepo(db)
        self.user_repo: UserRepo = UserRepo(db)
        self.property_repo: PropertyRepo = PropertyRepo(db)
        self.unit_repo: UnitRepo = UnitRepo(db)
        self.dispatcher: CommandDispatcher = CommandDispatcher(db)
        self.paginate: PaginatePage = PaginatePage()

    async def upsert(
        self,
        *,
        user_id: uuid.UUID,
        property_id: uuid.UUID,
        unit_id: Optional[uuid.UUID],
        roles: Iterable,
        invited_by_id: Optional[uuid.UUID] = None,
    ) -> tuple[PropertyUser, bool]:
        """Create the active association or merge roles into it. Flushes only."""
        wanted = role_values(roles)
        if PropertyRole.TENANT.value in wanted and unit_id is None:
            raise ValidationFailed.field("unitId", "A tenant association requires a unit")
        existing = await self.repo.find_active(user_id, property_id, unit_id)
        if existing:
            merged = sorted(set(existing.roles or []) | set(wanted))
            existing.roles = merged
            await self.repo.flush()
            return existing, False
        assoc = PropertyUser(
            user_id=user_id,
            property_id=property_id,
            unit_id=unit_id,
            roles=wanted,
            is_active=True,
            invited_by_id=invited_by_id,
        )
        await self.repo.add(assoc)
        return assoc, True

    async def associate(self, actor: ActorContext, property_id: uuid.UUID, data):
        async def handler():
            prop = await self.property_repo.get(property_id)
            if not prop:
                raise NotFound("Property not found")
            unit = None
            if data.unit_id:
                unit = await self.unit_repo.get(data.unit_id)
                if not unit:
                    raise NotFound("Unit not found")
            if PropertyRole.ADMIN_ACCESS in data.roles and not actor.is_admin:
                raise Forbidden("Only administrators can grant admin access")

            target = Target(
                kind=ResourceType.PROPERTY_USER,
                property_id=property_id,
                unit_id=data.unit_id,
                unit_property_id=unit.property_id if unit else None,
            )

            async def mutate():
                user = await self.user_repo.get(data.user_id)
                if not user:
                    raise NotFound("User not found")
                if user.registration_status != RegistrationStatus.ACTIVE:
                    raise SemanticError("User account is not active")
                if await self.repo.find_active(user.id, property_id, data.unit_id):
                    raise Conflict(
                        "User already has an active association for this property and unit"
                    )
                assoc, _ = await self.upsert(
                    user_id=user.id,
                    property_id=property_id,
                    unit_id=data.unit_id,
                    roles=data.roles,
                    invited_by_id=actor.user_id,
                )
                return CommandResult(value=assoc, entity=assoc)

            created = await self.dispatcher.run(
                Command(
                    action=AuditAction.PROPERTY_USER_ASSOCIATION_CREATED,
                    resource_type=ResourceType.PROPERTY_USER,
                    permission=Action.CREATE,
                    target=target,
                ),
                mutate,
                actor=actor,
                present=lambda a: ORMMapper.one(a, AssociationOut),
            )
            return self.paginate.ok(created, message="Association created")

        return await breaker.call(handler)

    async def deactivate(
        self, actor: ActorContext, property_id: uuid.UUID, association_id: uuid.UUID
    ):
        async def handler():
            assoc = await self.repo.get(association_id)
            if not assoc or assoc.property_id != property_id:
                raise NotFound("Association not found")
            if not assoc.is_active:
                raise SemanticError("Association is already inactive")

            async def mutate():
                before = ORMMapper.snapshot(assoc)
                await self.repo.deactivate(assoc)
                return CommandResult(value=assoc, entity=assoc, before=before)

            result = await self.dispatcher.run(
                Command(
                    action=AuditAction.PROPERTY_USER_ASSOCIATION_DEACTIVATED,
                    resource_type=ResourceType.PROPERTY_USER,
                    permission=Action.DELETE,
                    target=Target(
                        kind=ResourceType.PROPERTY_USER, property_id=property_id
                    ),
                    resource_id=association_id,
                ),
                mutate,
                actor=actor,
                present=lambda a: ORMMapper.one(a, AssociationOut),
            )
            return self.paginate.ok(result, message="Association deactivated")

        return await breaker.call(handler)

    async def list_for_property(
        self,
        actor: ActorContext,
        property_id: uuid.UUID,
        include_inactive: bool = False,
    ):
        async def handler():
            target = Target(kind=ResourceType.PROPERTY_USER, property_id=property_id)
            if not authorize(actor, Action.VIEW, target):
                raise Forbidden()
            items = await self.repo.list_for_property(
                property_id, active_only=not include_inactive
            )
            data = self.paginate.get_list_json_dumps(ORMMapper.many(items, AssociationOut))
            body = self.paginate.ok(data)
            body["count"] = len(data)
            return body

        return await breaker.call(handler)

    async def users_of(
        self,
        actor: ActorContext,
        property_id: uuid.UUID,
        role: Optional[PropertyRole] = None,
    ):
        async def handler():
            target = Target(kind=ResourceType.PROPERTY_USER, property_id=property_id)
            if not authorize(actor, Action.VIEW, target):
                raise Forbidden()
            users = await self.repo.users_of(property_id, [role] if role else None)
            data = self.paginate.get_list_json_dumps(ORMMapper.many(users, UserOut))
            body = self.paginate.ok(data)
            body["count"] = len(data)
            return body

        return await breaker.call(handler)
