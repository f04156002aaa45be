"""Helpers shared by maintenance requests and scheduled-maintenance templates.

Both carry a polymorphic assignee (a user or a vendor), a public link and a
comment thread, and both are authorized against the same target shape.
"""

import uuid
from datetime import timedelta
from typing import Iterable, List, Optional, Tuple

from core.date_helper import utcnow
from core.errors import Forbidden, NotFound, SemanticError
from core.settings import settings
from models.enums import (
    AssigneeKind,
    NotificationType,
    ResourceType,
    SideEffectKind,
    UserRole,
)
from policy.authorization import ActorContext, Target
from policy.request_lifecycle import TransitionActor
from repos.user_repo import UserRepo
from repos.vendor_repo import VendorRepo
from security.security_generate import user_generate
from services.dispatcher import SideEffectRequest

PUBLIC_PATHS = {
    ResourceType.REQUEST: "requests",
    ResourceType.SCHEDULED_MAINTENANCE: "scheduled-maintenances",
}


async def vendor_ids_for(db, actor: ActorContext) -> List[uuid.UUID]:
    """Vendor records an actor answers for, matched by email."""
    if actor.role != UserRole.VENDOR:
        return []
    return await VendorRepo(db).ids_for_email(actor.email)


def is_assignee(row, actor: ActorContext, vendor_ids: Iterable[uuid.UUID] = ()) -> bool:
    if row.assigned_to_id is None:
        return False
    if row.assigned_kind == AssigneeKind.USER:
        return row.assigned_to_id == actor.user_id
    return row.assigned_to_id in set(vendor_ids)


def work_target(
    kind: ResourceType,
    row,
    actor: Optional[ActorContext] = None,
    vendor_ids: Iterable[uuid.UUID] = (),
) -> Target:
    assignee_user_id = None
    if row.assigned_kind == AssigneeKind.USER:
        assignee_user_id = row.assigned_to_id
    elif actor is not None and is_assignee(row, actor, vendor_ids):
        assignee_user_id = actor.user_id
    return Target(
        kind=kind,
        property_id=row.property_id,
        unit_id=row.unit_id,
        created_by_id=row.created_by_id,
        assignee_user_id=assignee_user_id,
    )


def transition_actor(
    row, actor: ActorContext, vendor_ids: Iterable[uuid.UUID] = ()
) -> Optional[TransitionActor]:
    if actor.is_admin or actor.manages(row.property_id):
        return TransitionActor.MANAGER
    if is_assignee(row, actor, vendor_ids):
        return TransitionActor.ASSIGNEE
    if row.created_by_id == actor.user_id:
        return TransitionActor.REQUESTER
    return None


async def resolve_assignee(
    db, actor: ActorContext, assignee, property_id: uuid.UUID
) -> Tuple[AssigneeKind, object]:
    """Load and check the user or vendor an item is being assigned to."""
    if assignee.kind == AssigneeKind.VENDOR.value:
        if not (actor.is_admin or actor.manages(property_id)):
            raise Forbidden("Only property managers, landlords or admins can assign vendors")
        vendor = await VendorRepo(db).get(assignee.id)
        if not vendor:
            raise NotFound("Vendor not found")
        if not vendor.is_active:
            raise SemanticError("Vendor is inactive")
        return AssigneeKind.VENDOR, vendor
    user = await UserRepo(db).get(assignee.id)
    if not user:
        raise NotFound("Assignee not found")
    if not user.is_active:
        raise SemanticError("Assignee account is not active")
    return AssigneeKind.USER, user


def assignee_contact(kind: AssigneeKind, who) -> Tuple[Optional[str], Optional[str], Optional[uuid.UUID], str]:
    """(email, phone, user id, display name) for an assignee row."""
    if kind == AssigneeKind.VENDOR:
        return who.email, who.phone, None, who.name
    return who.email, who.phone, who.id, who.full_name


def assignment_notices(
    kind: AssigneeKind,
    who,
    *,
    resource_type: ResourceType,
    resource_id: uuid.UUID,
    title: str,
    property_name: str,
) -> List[SideEffectRequest]:
    email, phone, user_id, name = assignee_contact(kind, who)
    link = f"{settings.FRONTEND_URL}/{PUBLIC_PATHS[resource_type]}/{resource_id}"
    payload = {"name": name, "title": title, "property_name": property_name, "link": link}
    effects = []
    if email:
        effects.append(
            SideEffectRequest(
                kind=SideEffectKind.EMAIL,
                template="request_assigned",
                recipient=email,
                recipient_user_id=user_id,
                payload=payload,
                resource_type=resource_type,
                resource_id=resource_id,
            )
        )
    if kind == AssigneeKind.VENDOR and phone:
        effects.append(
            SideEffectRequest(
                kind=SideEffectKind.SMS,
                template="request_assigned",
                recipient=phone,
                payload=payload,
                resource_type=resource_type,
                resource_id=resource_id,
            )
        )
    if user_id is not None:
        effects.append(
            SideEffectRequest(
                kind=SideEffectKind.NOTIFICATION,
                template="request_assigned",
                recipient_user_id=user_id,
                payload={
                    "type": NotificationType.ASSIGNMENT.value,
                    "message": f"You have been assigned: {title}",
                    "link": link,
                },
                resource_type=resource_type,
                resource_id=resource_id,
            )
        )
    return effects


def open_public_link(row, resource_type: ResourceType, days: int) -> dict:
    """Rotate the row's public token and return the one-time view of it."""
    raw, token_hash = user_generate.issue_token()
    row.public_token_hash = token_hash
    row.public_link_enabled = True
    row.public_link_expires_at = utcnow() + timedelta(days=days)
    return {
        "public_token": raw,
        "public_url": f"{settings.FRONTEND_URL}/public/{PUBLIC_PATHS[resource_type]}/{raw}",
        "expires_at": row.public_link_expires_at,
    }


def close_public_link(row) -> None:
    row.public_token_hash = None
    row.public_link_enabled = False
    row.public_link_expires_at = None


def can_see_internal(row, actor: ActorContext, vendor_ids: Iterable[uuid.UUID] = ()) -> bool:
    return actor.is_admin or actor.manages(row.property_id) or is_assignee(row, actor, vendor_ids)
