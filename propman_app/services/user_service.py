import logging
import uuid
from typing import Optional

from core.breaker import breaker
from core.errors import DuplicateEmail, Forbidden, NotFound, SemanticError
from core.mapper import ORMMapper
from core.paginate import PageParams, PaginatePage
from models.enums import (
    AuditAction,
    RegistrationStatus,
    ResourceType,
    SideEffectKind,
    UserRole,
)
from policy.authorization import Action, ActorContext, Target, authorize
from repos.association_repo import AssociationRepo
from repos.user_repo import UserRepo
from schemas.schema import AssociationOut, UserOut
from services.dispatcher import Command, CommandDispatcher, CommandResult, SideEffectRequest

logger = logging.getLogger(__name__)


def user_target(user_id: uuid.UUID) -> Target:
    return Target(kind=ResourceType.USER, owner_id=user_id)


class UserService:
    def __init__(self, db):
        self.db = db
        self.repo: UserRepo = UserRepo(db)
        self.association_repo: AssociationRepo = AssociationRepo(db)
        self.dispatcher: CommandDispatcher = CommandDispatcher(db)
        self.paginate: PaginatePage = PaginatePage()

    async def _load(self, user_id: uuid.UUID):
        user = await self.repo.get(user_id)
        if not user:
            raise NotFound("User not found")
        return user

    async def list_users(
        self,
        actor: ActorContext,
        params: PageParams,
        *,
        role: Optional[UserRole] = None,
        status: Optional[RegistrationStatus] = None,
        search: Optional[str] = None,
    ):
        async def handler():
            if not authorize(actor, Action.VIEW, Target(kind=ResourceType.USER)):
                raise Forbidden()
            items, total = await self.repo.list_users(
                params, role=role, status=status, search=search
            )
            return self.paginate.page(ORMMapper.many(items, UserOut), total, params)

        return await breaker.call(handler)

    async def get_user(self, actor: ActorContext, user_id: uuid.UUID):
        async def handler():
            if not authorize(actor, Action.VIEW, user_target(user_id)):
                raise Forbidden()
            return self.paginate.ok(ORMMapper.one(await self._load(user_id), UserOut))

        return await breaker.call(handler)

    async def update_user(self, actor: ActorContext, user_id: uuid.UUID, data):
        async def handler():
            changes = data.model_dump(exclude_unset=True)

            async def mutate():
                user = await self._load(user_id)
                before = ORMMapper.snapshot(user)
                if "email" in changes and changes["email"] != user.email:
                    if await self.repo.email_taken(changes["email"], exclude_id=user.id):
                        raise DuplicateEmail()
                for key, value in changes.items():
                    setattr(user, key, value)
                return CommandResult(value=user, entity=user, before=before)

            return self.paginate.ok(
                await self.dispatcher.run(
                    Command(
                        action=AuditAction.UPDATE,
                        resource_type=ResourceType.USER,
                        permission=Action.UPDATE,
                        target=user_target(user_id),
                        resource_id=user_id,
                    ),
                    mutate,
                    actor=actor,
                    present=lambda u: ORMMapper.one(u, UserOut),
                ),
                message="Profile updated",
            )

        return await breaker.call(handler)

    async def _set_status(
        self,
        actor: ActorContext,
        user_id: uuid.UUID,
        *,
        action: AuditAction,
        expected: Optional[RegistrationStatus],
        new_status: RegistrationStatus,
        message: str,
    ):
        async def mutate():
            user = await self._load(user_id)
            if user.id == actor.user_id:
                raise SemanticError("You cannot change your own account status")
            if expected is not None and user.registration_status != expected:
                raise SemanticError(
                    f"User is {user.registration_status.value}, expected {expected.value}"
                )
            before = ORMMapper.snapshot(user)
            user.registration_status = new_status
            effects = []
            if new_status == RegistrationStatus.DEACTIVATED:
                count = await self.association_repo.deactivate_for_user(user.id)
                logger.info("Deactivated %s associations for user %s", count, user.id)
            if new_status == RegistrationStatus.ACTIVE:
                effects.append(
                    SideEffectRequest(
                        kind=SideEffectKind.EMAIL,
                        template="account_approved",
                        recipient=user.email,
                        recipient_user_id=user.id,
                        payload={"name": user.full_name},
                        resource_type=ResourceType.USER,
                        resource_id=user.id,
                    )
                )
            return CommandResult(
                value=user, entity=user, before=before, side_effects=effects
            )

        user = await self.dispatcher.run(
            Command(
                action=action,
                resource_type=ResourceType.USER,
                permission=Action.MANAGE,
                target=user_target(user_id),
                resource_id=user_id,
            ),
            mutate,
            actor=actor,
            present=lambda u: ORMMapper.one(u, UserOut),
        )
        return self.paginate.ok(user, message=message)

    async def approve(self, actor: ActorContext, user_id: uuid.UUID):
        async def handler():
            return await self._set_status(
                actor,
                user_id,
                action=AuditAction.USER_APPROVED,
                expected=RegistrationStatus.PENDING_ADMIN_APPROVAL,
                new_status=RegistrationStatus.ACTIVE,
                message="User approved",
            )

        return await breaker.call(handler)

    async def deactivate(self, actor: ActorContext, user_id: uuid.UUID):
        async def handler():
            return await self._set_status(
                actor,
                user_id,
                action=AuditAction.USER_DEACTIVATED,
                expected=None,
                new_status=RegistrationStatus.DEACTIVATED,
                message="User deactivated",
            )

        return await breaker.call(handler)

    async def change_role(self, actor: ActorContext, user_id: uuid.UUID, role: UserRole):
        async def handler():
            async def mutate():
                user = await self._load(user_id)
                before = ORMMapper.snapshot(user)
                user.role = role
                return CommandResult(
                    value=user,
                    entity=user,
                    before=before,
                    description=f"Role changed from {before['role']} to {role.value}",
                )

            return self.paginate.ok(
                await self.dispatcher.run(
                    Command(
                        action=AuditAction.USER_ROLE_CHANGED,
                        resource_type=ResourceType.USER,
                        permission=Action.MANAGE,
                        target=user_target(user_id),
                        resource_id=user_id,
                    ),
                    mutate,
                    actor=actor,
                    present=lambda u: ORMMapper.one(u, UserOut),
                ),
                message="Role updated",
            )

        return await breaker.call(handler)

    async def delete_user(self, actor: ActorContext, user_id: uuid.UUID):
        async def handler():
            async def mutate():
                user = await self._load(user_id)
                if user.id == actor.user_id:
                    raise SemanticError("You cannot delete your own account")
                before = ORMMapper.snapshot(user)
                await self.repo.delete(user)
                return CommandResult(resource_id=user_id, before=before)

            await self.dispatcher.run(
                Command(
                    action=AuditAction.DELETE,
                    resource_type=ResourceType.USER,
                    permission=Action.DELETE,
                    target=user_target(user_id),
                    resource_id=user_id,
                ),
                mutate,
                actor=actor,
            )
            return self.paginate.ok(message="User deleted")

        return await breaker.call(handler)

    async def list_associations(
        self, actor: ActorContext, user_id: uuid.UUID, include_inactive: bool = False
    ):
        async def handler():
            if not authorize(actor, Action.VIEW, user_target(user_id)):
                raise Forbidden()
            items = await self.association_repo.list_for_user(
                user_id, active_only=not include_inactive
            )
            data = self.paginate.get_list_json_dumps(ORMMapper.many(items, AssociationOut))
            body = self.paginate.ok(data)
            body["count"] = len(data)
            return body

        return await breaker.call(handler)
