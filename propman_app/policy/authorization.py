"""Role-scoped access decisions.

``authorize`` is a pure function over an actor snapshot (global role plus
active property associations, re-read on every request) and a target
description. It never touches the database, so the same decision can be
replayed in tests or audit tooling.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Iterable, Optional, Tuple

from models.enums import MANAGEMENT_ROLES, PropertyRole, ResourceType, UserRole

MANAGEMENT_ROLE_VALUES = frozenset(r.value for r in MANAGEMENT_ROLES)
PROPERTY_SCOPED = frozenset(
    {
        ResourceType.PROPERTY,
        ResourceType.UNIT,
        ResourceType.LEASE,
        ResourceType.RENT,
        ResourceType.RENT_SCHEDULE,
        ResourceType.REQUEST,
        ResourceType.SCHEDULED_MAINTENANCE,
        ResourceType.INVITE,
        ResourceType.PROPERTY_USER,
        ResourceType.COMMENT,
    }
)


class Action(str, Enum):
    VIEW = "view"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    ASSIGN = "assign"
    CHANGE_STATUS = "change_status"
    VERIFY = "verify"
    FEEDBACK = "feedback"
    COMMENT = "comment"
    PAY = "pay"
    MANAGE = "manage"


@dataclass(frozen=True)
class Grant:
    property_id: uuid.UUID
    unit_id: Optional[uuid.UUID]
    roles: FrozenSet[str]


@dataclass(frozen=True)
class ActorContext:
    user_id: uuid.UUID
    role: UserRole
    grants: Tuple[Grant, ...] = ()
    email: Optional[str] = None
    ip: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def grants_for(self, property_id: uuid.UUID) -> Iterable[Grant]:
        return (g for g in self.grants if g.property_id == property_id)

    def manages(self, property_id: Optional[uuid.UUID]) -> bool:
        if property_id is None:
            return False
        return any(g.roles & MANAGEMENT_ROLE_VALUES for g in self.grants_for(property_id))

    def has_role_on(self, property_id: uuid.UUID, role: PropertyRole) -> bool:
        return any(role.value in g.roles for g in self.grants_for(property_id))

    def tenant_of_unit(self, unit_id: Optional[uuid.UUID]) -> bool:
        if unit_id is None:
            return False
        return any(
            g.unit_id == unit_id and PropertyRole.TENANT.value in g.roles
            for g in self.grants
        )

    def associated_with(self, property_id: Optional[uuid.UUID]) -> bool:
        return property_id is not None and any(self.grants_for(property_id))

    def managed_property_ids(self) -> set:
        return {g.property_id for g in self.grants if g.roles & MANAGEMENT_ROLE_VALUES}

    def property_ids(self) -> set:
        return {g.property_id for g in self.grants}

    def tenant_unit_ids(self) -> set:
        return {
            g.unit_id
            for g in self.grants
            if g.unit_id is not None and PropertyRole.TENANT.value in g.roles
        }


@dataclass(frozen=True)
class Target:
    kind: ResourceType
    property_id: Optional[uuid.UUID] = None
    unit_id: Optional[uuid.UUID] = None
    # property the unit actually belongs to, for nested routes
    unit_property_id: Optional[uuid.UUID] = None
    created_by_id: Optional[uuid.UUID] = None
    tenant_id: Optional[uuid.UUID] = None
    assignee_user_id: Optional[uuid.UUID] = None
    owner_id: Optional[uuid.UUID] = None
    extra: dict = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class Decision:
    allow: bool
    reason: str

    def __bool__(self) -> bool:
        return self.allow


def allow(reason: str) -> Decision:
    return Decision(True, reason)


def deny(reason: str) -> Decision:
    return Decision(False, reason)


TENANT_REQUEST_ACTIONS = {Action.VIEW, Action.CREATE, Action.COMMENT}
TENANCY_RECORDS = (ResourceType.LEASE, ResourceType.RENT, ResourceType.RENT_SCHEDULE)


def _tenant_decision(actor: ActorContext, action: Action, target: Target) -> Decision:
    own = target.created_by_id == actor.user_id
    in_unit = actor.tenant_of_unit(target.unit_id)

    if target.kind == ResourceType.PROPERTY:
        if action == Action.VIEW and actor.associated_with(target.property_id):
            return allow("tenant associated with property")
        return deny("tenants cannot manage properties")

    if target.kind == ResourceType.UNIT:
        if action == Action.VIEW and in_unit:
            return allow("tenant of unit")
        return deny("tenant not associated with unit")

    if target.kind in TENANCY_RECORDS:
        if target.tenant_id != actor.user_id:
            return deny("not the tenant of this lease")
        if action == Action.VIEW:
            return allow("own lease")
        if action == Action.PAY and target.kind == ResourceType.RENT:
            return allow("payment against own rent")
        return deny("tenants cannot modify leases")

    if target.kind == ResourceType.REQUEST:
        if action == Action.CREATE:
            return allow("tenant of unit") if in_unit else deny("tenant not associated with unit")
        if action in (Action.UPDATE, Action.FEEDBACK):
            return allow("own request") if own else deny("not the requester")
        if action in TENANT_REQUEST_ACTIONS and (own or in_unit):
            return allow("own request or unit")
        return deny("tenants cannot perform this action on requests")

    if target.kind == ResourceType.SCHEDULED_MAINTENANCE:
        if action == Action.VIEW and in_unit:
            return allow("tenant of unit")
        return deny("tenants cannot manage scheduled maintenance")

    return deny("tenants cannot perform this action")


def _assignee_decision(actor: ActorContext, action: Action, target: Target) -> Optional[Decision]:
    if target.kind not in (ResourceType.REQUEST, ResourceType.SCHEDULED_MAINTENANCE):
        return None
    if target.assignee_user_id is None or target.assignee_user_id != actor.user_id:
        return None
    if action in (Action.VIEW, Action.CHANGE_STATUS, Action.COMMENT):
        return allow("assignee")
    return None


def authorize(actor: ActorContext, action: Action, target: Target) -> Decision:
    if actor.is_admin:
        return allow("admin")

    if (
        target.unit_id is not None
        and target.unit_property_id is not None
        and target.property_id is not None
        and target.unit_property_id != target.property_id
    ):
        return deny("unit does not belong to property")

    if target.kind == ResourceType.USER:
        if target.owner_id == actor.user_id and action in (Action.VIEW, Action.UPDATE):
            return allow("self")
        return deny("user management is admin only")

    if target.kind in (ResourceType.AUDIT_LOG, ResourceType.SYSTEM):
        if action == Action.VIEW and target.property_id and actor.manages(target.property_id):
            return allow("manager of property")
        return deny("admin only")

    if target.kind == ResourceType.NOTIFICATION:
        if target.owner_id == actor.user_id:
            return allow("own notification")
        return deny("not the recipient")

    if target.kind == ResourceType.VENDOR:
        manager = actor.role in (UserRole.LANDLORD, UserRole.PROPERTY_MANAGER)
        if not (manager or actor.managed_property_ids()):
            return deny("vendor directory is for management roles")
        if action in (Action.VIEW, Action.CREATE):
            return allow("management role")
        if target.created_by_id == actor.user_id:
            return allow("vendor creator")
        return deny("only the creator may modify this vendor")

    if target.kind == ResourceType.PROPERTY and action == Action.CREATE:
        if actor.role in (UserRole.LANDLORD, UserRole.PROPERTY_MANAGER):
            return allow("management role may create properties")
        return deny("role cannot create properties")

    assignee = _assignee_decision(actor, action, target)
    if assignee is not None:
        return assignee

    if target.kind not in PROPERTY_SCOPED or target.property_id is None:
        return deny("resource is not property scoped")

    # grants on the target property decide; the global role plays no part
    if actor.manages(target.property_id):
        return allow("manager of property")

    if actor.has_role_on(target.property_id, PropertyRole.TENANT):
        return _tenant_decision(actor, action, target)

    if actor.has_role_on(target.property_id, PropertyRole.VENDOR_ACCESS):
        if target.kind == ResourceType.REQUEST and action == Action.VIEW:
            return allow("vendor access to property")
        return deny("vendors may only act on requests assigned to them")

    # own tenancy and requests stay readable, as in the list scopes
    if action == Action.VIEW and (
        (target.kind in TENANCY_RECORDS and target.tenant_id == actor.user_id)
        or (target.kind == ResourceType.REQUEST and target.created_by_id == actor.user_id)
    ):
        return allow("own record")

    return deny("no active management association for property")
