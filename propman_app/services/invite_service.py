import logging
import uuid
from datetime import timedelta
from typing import Optional

from core.breaker import breaker
from core.date_helper import utcnow
from core.errors import Conflict, Forbidden, NotFound, SemanticError, ValidationFailed
from core.mapper import ORMMapper
from core.paginate import PageParams, PaginatePage
from core.settings import settings
from models.enums import (
    AuditAction,
    InviteStatus,
    NotificationType,
    PropertyRole,
    RegistrationStatus,
    ResourceType,
    SideEffectKind,
    UserRole,
)
from models.models import Invite, User
from policy.authorization import Action, ActorContext, Target, authorize
from repos.invite_repo import InviteRepo
from repos.property_repo import PropertyRepo, UnitRepo
from repos.user_repo import UserRepo
from schemas.schema import (
    AssociationOut,
    InviteAcceptedOut,
    InviteIssuedOut,
    InviteOut,
    InviteVerifyOut,
    UserOut,
)
from security.security_generate import user_generate
from services.association_service import AssociationService, role_values
from services.audit_service import AuditService
from services.auth_service import actor_for
from services.dispatcher import (
    Command,
    CommandDispatcher,
    CommandResult,
    SideEffectRequest,
)

logger = logging.getLogger(__name__)

ADMIN_ONLY_ROLES = {PropertyRole.LANDLORD.value, PropertyRole.ADMIN_ACCESS.value}

# global role given to a user created by accepting an invite, highest first
GLOBAL_ROLE_FOR = (
    (PropertyRole.LANDLORD.value, UserRole.LANDLORD),
    (PropertyRole.PROPERTY_MANAGER.value, UserRole.PROPERTY_MANAGER),
    (PropertyRole.ADMIN_ACCESS.value, UserRole.PROPERTY_MANAGER),
    (PropertyRole.VENDOR_ACCESS.value, UserRole.VENDOR),
    (PropertyRole.TENANT.value, UserRole.TENANT),
)

INVALID_LINK = "Invalid, expired, or already accepted invitation link."


def invite_target(invite) -> Target:
    return Target(
        kind=ResourceType.INVITE,
        property_id=invite.property_id,
        unit_id=invite.unit_id,
        created_by_id=invite.generated_by_id,
    )


def global_role_for(roles) -> UserRole:
    for association_role, role in GLOBAL_ROLE_FOR:
        if association_role in roles:
            return role
    return UserRole.TENANT


def invite_link(raw_token: str) -> str:
    return f"{settings.FRONTEND_URL}/invites/{raw_token}"


def check_inviter_roles(actor: ActorContext, property_id, roles) -> None:
    """Landlords may add managers; only admins hand out landlord or admin access."""
    if actor.is_admin:
        return
    if ADMIN_ONLY_ROLES & set(roles):
        raise Forbidden("Only administrators can invite landlords or grant admin access")
    if PropertyRole.PROPERTY_MANAGER.value in roles and not actor.has_role_on(
        property_id, PropertyRole.LANDLORD
    ):
        raise Forbidden("Only the landlord can invite property managers")


class InviteService:
    def __init__(self, db):
        self.db = db
        self.repo: InviteRepo = InviteRepo(db)
        self.user_repo: UserRepo = UserRepo(db)
        self.property_repo: PropertyRepo = PropertyRepo(db)
        self.unit_repo: UnitRepo = UnitRepo(db)
        self.associations: AssociationService = AssociationService(db)
        self.audit: AuditService = AuditService(db)
        self.dispatcher: CommandDispatcher = CommandDispatcher(db)
        self.paginate: PaginatePage = PaginatePage()

    async def _load(self, invite_id: uuid.UUID) -> Invite:
        invite = await self.repo.get(invite_id)
        if not invite:
            raise NotFound("Invitation not found.")
        return invite

    async def _by_token(self, raw_token: str) -> Invite:
        invite = await self.repo.get_by_hash(user_generate.hash_token(raw_token))
        if not invite or invite.status != InviteStatus.PENDING:
            raise ValidationFailed(INVALID_LINK)
        if invite.expires_at <= utcnow():
            raise ValidationFailed("Invitation link has expired.")
        return invite

    async def _email_effect(self, invite: Invite, raw_token: str, inviter_name: str):
        prop = await self.property_repo.get(invite.property_id) if invite.property_id else None
        return SideEffectRequest(
            kind=SideEffectKind.EMAIL,
            template="invite",
            recipient=invite.email,
            payload={
                "name": invite.email,
                "inviter": inviter_name,
                "property_name": prop.name if prop else settings.PROJECT_NAME,
                "roles": ", ".join(invite.roles),
                "invite_link": invite_link(raw_token),
                "expires_at": invite.expires_at.strftime("%Y-%m-%d %H:%M UTC"),
            },
            resource_type=ResourceType.INVITE,
            resource_id=invite.id,
        )

    def _issued(self, pair) -> InviteIssuedOut:
        invite, raw = pair
        return InviteIssuedOut(
            invite=ORMMapper.one(invite, InviteOut),
            invite_token=raw,
            invite_link=invite_link(raw),
        )

    async def create_invite(self, actor: ActorContext, data):
        async def handler():
            if data.property_id is None:
                raise ValidationFailed.field("propertyId", "propertyId is required")
            prop = await self.property_repo.get(data.property_id)
            if not prop:
                raise NotFound("Property not found.")
            unit = None
            if data.unit_id:
                unit = await self.unit_repo.get(data.unit_id)
                if not unit:
                    raise NotFound("Unit not found.")
            roles = role_values(data.roles)
            target = Target(
                kind=ResourceType.INVITE,
                property_id=prop.id,
                unit_id=data.unit_id,
                unit_property_id=unit.property_id if unit else None,
            )

            async def mutate():
                if unit is not None and unit.property_id != prop.id:
                    raise ValidationFailed.field(
                        "unitId", "Unit does not belong to the specified property.", str(unit.id)
                    )
                check_inviter_roles(actor, prop.id, roles)
                now = utcnow()
                if await self.repo.pending_duplicate(data.email, prop.id, data.unit_id, now):
                    raise Conflict(
                        "A pending invitation already exists for this email and property."
                    )
                raw, token_hash = user_generate.issue_token()
                invite = Invite(
                    email=data.email,
                    roles=roles,
                    property_id=prop.id,
                    unit_id=data.unit_id,
                    hashed_token=token_hash,
                    generated_by_id=actor.user_id,
                    status=InviteStatus.PENDING,
                    expires_at=now + timedelta(days=settings.INVITE_EXPIRATION_DAYS),
                )
                await self.repo.add(invite)
                inviter = await self.user_repo.get(actor.user_id)
                return CommandResult(
                    value=(invite, raw),
                    entity=invite,
                    description=f"Invitation for {invite.email} as {', '.join(roles)}",
                    side_effects=[
                        await self._email_effect(
                            invite, raw, inviter.full_name if inviter else "An administrator"
                        )
                    ],
                )

            issued = await self.dispatcher.run(
                Command(
                    action=AuditAction.INVITE_SENT,
                    resource_type=ResourceType.INVITE,
                    permission=Action.CREATE,
                    target=target,
                ),
                mutate,
                actor=actor,
                present=self._issued,
            )
            return self.paginate.ok(issued, message="Invitation sent")

        return await breaker.call(handler)

    async def list_invites(
        self,
        actor: ActorContext,
        params: PageParams,
        *,
        property_id: Optional[uuid.UUID] = None,
        status: Optional[InviteStatus] = None,
        email: Optional[str] = None,
    ):
        async def handler():
            items, total = await self.repo.list_invites(
                params, actor, property_id=property_id, status=status, email=email
            )
            return self.paginate.page(ORMMapper.many(items, InviteOut), total, params)

        return await breaker.call(handler)

    async def get_invite(self, actor: ActorContext, invite_id: uuid.UUID):
        async def handler():
            invite = await self._load(invite_id)
            if invite.generated_by_id != actor.user_id and not authorize(
                actor, Action.VIEW, invite_target(invite)
            ):
                raise Forbidden("Not authorized to access this invitation.")
            return self.paginate.ok(ORMMapper.one(invite, InviteOut))

        return await breaker.call(handler)

    async def verify(self, raw_token: str):
        async def handler():
            invite = await self._by_token(raw_token)
            prop = await self.property_repo.get(invite.property_id) if invite.property_id else None
            unit = await self.unit_repo.get(invite.unit_id) if invite.unit_id else None
            view = InviteVerifyOut(
                email=invite.email,
                roles=invite.roles,
                property_id=invite.property_id,
                property_name=prop.name if prop else None,
                unit_id=invite.unit_id,
                unit_name=unit.unit_name if unit else None,
                expires_at=invite.expires_at,
                user_exists=await self.user_repo.get_by_email(invite.email) is not None,
            )
            return self.paginate.ok(view, message="Invitation is valid")

        return await breaker.call(handler)

    async def accept(self, raw_token: str, data, ip: Optional[str] = None):
        async def handler():
            async def mutate():
                invite = await self._by_token(raw_token)
                if data.email != invite.email:
                    raise ValidationFailed.field(
                        "email", "The email provided does not match the invited email."
                    )
                before = ORMMapper.snapshot(invite)
                now = utcnow()
                if not await self.repo.claim_pending(invite.id, InviteStatus.ACCEPTED, now):
                    raise Conflict("This invitation has already been used.")
                invite.attempt_count += 1
                user = await self.user_repo.get_by_email(invite.email)
                created_user = user is None
                if created_user:
                    if not (data.first_name and data.last_name and data.password):
                        raise ValidationFailed(
                            "First name, last name, and password are required for new user registration.",
                            errors=[
                                {"field": f, "message": f"{f} is required"}
                                for f, v in (
                                    ("firstName", data.first_name),
                                    ("lastName", data.last_name),
                                    ("password", data.password),
                                )
                                if not v
                            ],
                        )
                    user = User(
                        email=invite.email,
                        first_name=data.first_name,
                        last_name=data.last_name,
                        phone=data.phone,
                        role=global_role_for(invite.roles),
                        registration_status=RegistrationStatus.ACTIVE,
                    )
                    user.set_password(data.password)
                    await self.user_repo.add(user)
                elif user.registration_status == RegistrationStatus.DEACTIVATED:
                    raise SemanticError("This account has been deactivated.")
                else:
                    user.registration_status = RegistrationStatus.ACTIVE

                assoc, _ = await self.associations.upsert(
                    user_id=user.id,
                    property_id=invite.property_id,
                    unit_id=invite.unit_id,
                    roles=invite.roles,
                    invited_by_id=invite.generated_by_id,
                )
                invite.status = InviteStatus.ACCEPTED
                invite.accepted_by_id = user.id
                invite.accepted_at = now

                effects = []
                if invite.generated_by_id:
                    effects.append(
                        SideEffectRequest(
                            kind=SideEffectKind.NOTIFICATION,
                            template="invite_accepted",
                            recipient_user_id=invite.generated_by_id,
                            payload={
                                "type": NotificationType.INVITE.value,
                                "message": f"{user.full_name} ({user.email}) accepted your invitation as {', '.join(invite.roles)}.",
                            },
                            resource_type=ResourceType.INVITE,
                            resource_id=invite.id,
                        )
                    )
                return CommandResult(
                    value=(user, assoc),
                    entity=invite,
                    before=before,
                    description=f"Invitation accepted by {user.email}",
                    side_effects=effects,
                    actor=actor_for(user, ip),
                )

            user, assoc = await self.dispatcher.run(
                Command(action=AuditAction.INVITE_ACCEPTED, resource_type=ResourceType.INVITE),
                mutate,
                external={"ip": ip} if ip else None,
            )
            logger.info("Invitation accepted by user %s", user.id)
            accepted = InviteAcceptedOut(
                access_token=user_generate.create_access_token(user.id),
                user=ORMMapper.one(user, UserOut),
                association=ORMMapper.one(assoc, AssociationOut),
            )
            return self.paginate.ok(accepted, message="Invitation accepted")

        return await breaker.call(handler)

    async def decline(self, raw_token: str, data, ip: Optional[str] = None):
        async def handler():
            async def mutate():
                invite = await self._by_token(raw_token)
                if data.email and data.email != invite.email:
                    raise ValidationFailed.field(
                        "email", "The email provided does not match the invited email."
                    )
                before = ORMMapper.snapshot(invite)
                invite.status = InviteStatus.DECLINED
                invite.decline_reason = data.reason
                effects = []
                if invite.generated_by_id:
                    effects.append(
                        SideEffectRequest(
                            kind=SideEffectKind.NOTIFICATION,
                            template="invite_declined",
                            recipient_user_id=invite.generated_by_id,
                            payload={
                                "type": NotificationType.INVITE.value,
                                "message": f"{invite.email} declined your invitation.",
                            },
                            resource_type=ResourceType.INVITE,
                            resource_id=invite.id,
                        )
                    )
                return CommandResult(
                    value=invite,
                    entity=invite,
                    before=before,
                    description=data.reason,
                    side_effects=effects,
                )

            declined = await self.dispatcher.run(
                Command(action=AuditAction.INVITE_DECLINED, resource_type=ResourceType.INVITE),
                mutate,
                external={"ip": ip, "email": data.email} if ip else None,
                present=lambda x: ORMMapper.one(x, InviteOut),
            )
            return self.paginate.ok(declined, message="Invitation declined")

        return await breaker.call(handler)

    async def cancel(self, actor: ActorContext, invite_id: uuid.UUID, data):
        async def handler():
            invite = await self._load(invite_id)

            async def mutate():
                if not actor.is_admin and invite.generated_by_id != actor.user_id:
                    raise Forbidden("You are not authorized to cancel this invitation.")
                if invite.status != InviteStatus.PENDING:
                    raise SemanticError(
                        f"Cannot cancel an invite with status: {invite.status.value}. "
                        "Only 'pending' invites can be cancelled."
                    )
                before = ORMMapper.snapshot(invite)
                invite.status = InviteStatus.CANCELLED
                invite.revoked_by_id = actor.user_id
                invite.revoked_at = utcnow()
                return CommandResult(
                    value=invite,
                    entity=invite,
                    before=before,
                    description=data.reason if data else None,
                )

            cancelled = await self.dispatcher.run(
                Command(
                    action=AuditAction.INVITE_REVOKED,
                    resource_type=ResourceType.INVITE,
                    permission=Action.UPDATE,
                    target=invite_target(invite),
                    resource_id=invite_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, InviteOut),
            )
            return self.paginate.ok(cancelled, message="Invitation cancelled")

        return await breaker.call(handler)

    async def resend(self, actor: ActorContext, invite_id: uuid.UUID):
        async def handler():
            invite = await self._load(invite_id)

            async def mutate():
                if not actor.is_admin and invite.generated_by_id != actor.user_id:
                    raise Forbidden("You are not authorized to resend this invitation.")
                if invite.status != InviteStatus.PENDING:
                    raise SemanticError(
                        f"Cannot resend an invite with status: {invite.status.value}. "
                        "Only 'pending' invites can be resent."
                    )
                if invite.resend_count >= settings.INVITE_MAX_RESENDS:
                    raise SemanticError(
                        f"Invitation has already been resent {invite.resend_count} times."
                    )
                now = utcnow()
                cooldown = timedelta(hours=settings.INVITE_RESEND_COOLDOWN_HOURS)
                if invite.last_resend_at and now - invite.last_resend_at < cooldown:
                    raise SemanticError("Invitation was resent recently. Try again later.")
                before = ORMMapper.snapshot(invite)
                # only the hash is stored, so a resend issues a fresh link
                raw, token_hash = user_generate.issue_token()
                invite.hashed_token = token_hash
                invite.expires_at = now + timedelta(days=settings.INVITE_EXPIRATION_DAYS)
                invite.resend_count += 1
                invite.last_resend_at = now
                inviter = await self.user_repo.get(actor.user_id)
                return CommandResult(
                    value=(invite, raw),
                    entity=invite,
                    before=before,
                    description=f"Invitation resent ({invite.resend_count})",
                    side_effects=[
                        await self._email_effect(
                            invite, raw, inviter.full_name if inviter else "An administrator"
                        )
                    ],
                )

            issued = await self.dispatcher.run(
                Command(
                    action=AuditAction.INVITE_RESENT,
                    resource_type=ResourceType.INVITE,
                    permission=Action.UPDATE,
                    target=invite_target(invite),
                    resource_id=invite_id,
                ),
                mutate,
                actor=actor,
                present=self._issued,
            )
            return self.paginate.ok(issued, message="Invitation resent")

        return await breaker.call(handler)

    async def expire_stale(self) -> int:
        """Mark pending invitations past their expiry as expired. Scheduler entry point."""
        now = utcnow()
        stale = await self.repo.stale_pending(now)
        ids = [invite.id for invite in stale]
        changed = await self.repo.expire(ids, now)
        await self.db.commit()
        if changed:
            await self.audit.record(
                *(
                    self.audit.entry(
                        action=AuditAction.INVITE_EXPIRED,
                        resource_type=ResourceType.INVITE,
                        resource_id=invite_id,
                        description="Invitation expired",
                    )
                    for invite_id in ids
                )
            )
            logger.info("Expired %s stale invitations", changed)
        return changed
