import logging
import uuid
from typing import Optional

from core.breaker import breaker
from core.errors import Conflict, Forbidden, NotFound, SemanticError, ValidationFailed
from core.mapper import ORMMapper
from core.paginate import PageParams, PaginatePage
from models.enums import AuditAction, PropertyRole, PropertyType, ResourceType, UserRole
from models.models import Property, Unit
from policy.authorization import Action, ActorContext, Target, authorize
from repos.lease_repo import LeaseRepo
from repos.property_repo import PropertyRepo, UnitRepo
from repos.user_repo import UserRepo
from schemas.schema import PropertyOut, UnitOut
from services.association_service import AssociationService
from services.dispatcher import AuditNote, Command, CommandDispatcher, CommandResult

logger = logging.getLogger(__name__)


def property_target(property_id: Optional[uuid.UUID]) -> Target:
    return Target(kind=ResourceType.PROPERTY, property_id=property_id)


def unit_target(property_id: uuid.UUID, unit: Optional[Unit] = None) -> Target:
    return Target(
        kind=ResourceType.UNIT,
        property_id=property_id,
        unit_id=unit.id if unit else None,
        unit_property_id=unit.property_id if unit else None,
    )


class PropertyService:
    def __init__(self, db):
        self.db = db
        self.repo: PropertyRepo = PropertyRepo(db)
        self.unit_repo: UnitRepo = UnitRepo(db)
        self.user_repo: UserRepo = UserRepo(db)
        self.lease_repo: LeaseRepo = LeaseRepo(db)
        self.associations: AssociationService = AssociationService(db)
        self.dispatcher: CommandDispatcher = CommandDispatcher(db)
        self.paginate: PaginatePage = PaginatePage()

    async def _load(self, property_id: uuid.UUID) -> Property:
        prop = await self.repo.get(property_id)
        if not prop:
            raise NotFound("Property not found")
        return prop

    async def create_property(self, actor: ActorContext, data):
        async def handler():
            if data.landlord_id and not actor.is_admin:
                raise ValidationFailed.field(
                    "landlordId", "Only administrators can create a property for someone else"
                )

            async def mutate():
                if await self.repo.get_by_name(data.name):
                    raise Conflict("A property with this name already exists")
                owner_id = data.landlord_id or actor.user_id
                if data.landlord_id:
                    landlord = await self.user_repo.get(data.landlord_id)
                    if not landlord or landlord.role != UserRole.LANDLORD:
                        raise ValidationFailed.field(
                            "landlordId", "landlordId must reference a landlord", str(data.landlord_id)
                        )
                address = data.address
                prop = Property(
                    name=data.name,
                    description=data.description,
                    street=address.street,
                    city=address.city,
                    state=address.state,
                    zip_code=address.zip_code,
                    country=address.country,
                    property_type=data.property_type,
                    year_built=data.year_built,
                    amenities=data.amenities,
                    latitude=data.location.latitude if data.location else None,
                    longitude=data.location.longitude if data.location else None,
                    created_by_id=actor.user_id,
                )
                await self.repo.add(prop)
                assoc, _ = await self.associations.upsert(
                    user_id=owner_id,
                    property_id=prop.id,
                    unit_id=None,
                    roles=[PropertyRole.LANDLORD],
                    invited_by_id=actor.user_id,
                )
                return CommandResult(
                    value=prop,
                    entity=prop,
                    notes=[
                        AuditNote(
                            action=AuditAction.PROPERTY_USER_ASSOCIATION_CREATED,
                            resource_type=ResourceType.PROPERTY_USER,
                            resource_id=assoc.id,
                            description="Landlord association for property creator",
                            after=ORMMapper.snapshot(assoc),
                        )
                    ],
                )

            created = await self.dispatcher.run(
                Command(
                    action=AuditAction.CREATE,
                    resource_type=ResourceType.PROPERTY,
                    permission=Action.CREATE,
                    target=property_target(None),
                ),
                mutate,
                actor=actor,
                present=lambda p: ORMMapper.one(p, PropertyOut),
            )
            return self.paginate.ok(created, message="Property created")

        return await breaker.call(handler)

    async def list_properties(
        self,
        actor: ActorContext,
        params: PageParams,
        *,
        property_type: Optional[PropertyType] = None,
        city: Optional[str] = None,
        include_inactive: bool = False,
    ):
        async def handler():
            ids = None if actor.is_admin else actor.property_ids()
            items, total = await self.repo.list_properties(
                params,
                ids=ids,
                property_type=property_type,
                city=city,
                include_inactive=include_inactive,
            )
            return self.paginate.page(ORMMapper.many(items, PropertyOut), total, params)

        return await breaker.call(handler)

    async def get_property(self, actor: ActorContext, property_id: uuid.UUID):
        async def handler():
            if not authorize(actor, Action.VIEW, property_target(property_id)):
                raise Forbidden()
            return self.paginate.ok(ORMMapper.one(await self._load(property_id), PropertyOut))

        return await breaker.call(handler)

    async def update_property(self, actor: ActorContext, property_id: uuid.UUID, data):
        async def handler():
            changes = data.model_dump(exclude_unset=True)

            async def mutate():
                prop = await self._load(property_id)
                before = ORMMapper.snapshot(prop)
                if "name" in changes and changes["name"] != prop.name:
                    if await self.repo.get_by_name(changes["name"]):
                        raise Conflict("A property with this name already exists")
                address = changes.pop("address", None)
                if address:
                    for key, value in address.items():
                        setattr(prop, key, value)
                location = changes.pop("location", None)
                if location:
                    prop.latitude = location["latitude"]
                    prop.longitude = location["longitude"]
                for key, value in changes.items():
                    setattr(prop, key, value)
                return CommandResult(value=prop, entity=prop, before=before)

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.UPDATE,
                    resource_type=ResourceType.PROPERTY,
                    permission=Action.UPDATE,
                    target=property_target(property_id),
                    resource_id=property_id,
                ),
                mutate,
                actor=actor,
                present=lambda p: ORMMapper.one(p, PropertyOut),
            )
            return self.paginate.ok(updated, message="Property updated")

        return await breaker.call(handler)

    async def delete_property(
        self, actor: ActorContext, property_id: uuid.UUID, hard: bool = False
    ):
        """Soft-archive by default; hard deletion is reserved for admins."""

        async def handler():
            if hard and not actor.is_admin:
                await self.dispatcher.check(
                    actor,
                    Command(
                        action=AuditAction.DELETE,
                        resource_type=ResourceType.PROPERTY,
                        permission=Action.MANAGE,
                        target=Target(kind=ResourceType.SYSTEM),
                        resource_id=property_id,
                    ),
                )

            async def mutate():
                prop = await self._load(property_id)
                before = ORMMapper.snapshot(prop)
                if hard:
                    await self.repo.delete(prop)
                    return CommandResult(
                        resource_id=property_id,
                        before=before,
                        description="Property permanently deleted",
                    )
                if not prop.is_active:
                    raise SemanticError("Property is already archived")
                counts = await self.repo.archive(prop, reason="Property archived")
                return CommandResult(
                    value=prop,
                    entity=prop,
                    before=before,
                    description=(
                        "Property archived with {units} units, {leases} leases "
                        "and {templates} templates".format(**counts)
                    ),
                )

            await self.dispatcher.run(
                Command(
                    action=AuditAction.DELETE,
                    resource_type=ResourceType.PROPERTY,
                    permission=Action.DELETE,
                    target=property_target(property_id),
                    resource_id=property_id,
                ),
                mutate,
                actor=actor,
            )
            return self.paginate.ok(
                message="Property deleted" if hard else "Property archived"
            )

        return await breaker.call(handler)

    # units

    async def _load_unit(self, property_id: uuid.UUID, unit_id: uuid.UUID) -> Unit:
        unit = await self.unit_repo.get(unit_id)
        if not unit:
            raise NotFound("Unit not found")
        return unit

    async def create_unit(self, actor: ActorContext, property_id: uuid.UUID, data):
        async def handler():
            async def mutate():
                prop = await self._load(property_id)
                if not prop.is_active:
                    raise SemanticError("Cannot add units to an archived property")
                if await self.unit_repo.name_taken(property_id, data.unit_name):
                    raise Conflict("A unit with this name already exists on the property")
                unit = Unit(property_id=property_id, **data.model_dump())
                await self.unit_repo.add(unit)
                return CommandResult(value=unit, entity=unit)

            created = await self.dispatcher.run(
                Command(
                    action=AuditAction.CREATE,
                    resource_type=ResourceType.UNIT,
                    permission=Action.CREATE,
                    target=unit_target(property_id),
                ),
                mutate,
                actor=actor,
                present=lambda u: ORMMapper.one(u, UnitOut),
            )
            return self.paginate.ok(created, message="Unit created")

        return await breaker.call(handler)

    async def list_units(
        self,
        actor: ActorContext,
        property_id: uuid.UUID,
        params: PageParams,
        include_inactive: bool = False,
    ):
        async def handler():
            if not authorize(actor, Action.VIEW, property_target(property_id)):
                raise Forbidden()
            ids = None
            if not actor.is_admin and not actor.manages(property_id):
                ids = actor.tenant_unit_ids()
            items, total = await self.unit_repo.list_units(
                property_id, params, ids=ids, include_inactive=include_inactive
            )
            return self.paginate.page(ORMMapper.many(items, UnitOut), total, params)

        return await breaker.call(handler)

    async def get_unit(self, actor: ActorContext, property_id: uuid.UUID, unit_id: uuid.UUID):
        async def handler():
            unit = await self._load_unit(property_id, unit_id)
            if not authorize(actor, Action.VIEW, unit_target(property_id, unit)):
                raise Forbidden()
            return self.paginate.ok(ORMMapper.one(unit, UnitOut))

        return await breaker.call(handler)

    async def update_unit(
        self, actor: ActorContext, property_id: uuid.UUID, unit_id: uuid.UUID, data
    ):
        async def handler():
            unit = await self._load_unit(property_id, unit_id)
            changes = data.model_dump(exclude_unset=True)

            async def mutate():
                before = ORMMapper.snapshot(unit)
                if "unit_name" in changes and changes["unit_name"] != unit.unit_name:
                    if await self.unit_repo.name_taken(
                        property_id, changes["unit_name"], exclude_id=unit.id
                    ):
                        raise Conflict("A unit with this name already exists on the property")
                for key, value in changes.items():
                    setattr(unit, key, value)
                return CommandResult(value=unit, entity=unit, before=before)

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.UPDATE,
                    resource_type=ResourceType.UNIT,
                    permission=Action.UPDATE,
                    target=unit_target(property_id, unit),
                    resource_id=unit_id,
                ),
                mutate,
                actor=actor,
                present=lambda u: ORMMapper.one(u, UnitOut),
            )
            return self.paginate.ok(updated, message="Unit updated")

        return await breaker.call(handler)

    async def delete_unit(self, actor: ActorContext, property_id: uuid.UUID, unit_id: uuid.UUID):
        async def handler():
            unit = await self._load_unit(property_id, unit_id)

            async def mutate():
                if await self.lease_repo.active_for_unit(unit.id):
                    raise SemanticError("Unit has an active lease; terminate it first")
                before = ORMMapper.snapshot(unit)
                unit.is_active = False
                return CommandResult(value=unit, entity=unit, before=before)

            await self.dispatcher.run(
                Command(
                    action=AuditAction.ARCHIVE,
                    resource_type=ResourceType.UNIT,
                    permission=Action.DELETE,
                    target=unit_target(property_id, unit),
                    resource_id=unit_id,
                ),
                mutate,
                actor=actor,
            )
            return self.paginate.ok(message="Unit archived")

        return await breaker.call(handler)
