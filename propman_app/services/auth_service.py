import logging

from core.breaker import breaker
from core.date_helper import utcnow
from core.errors import DuplicateEmail, Unauthorized
from core.mapper import ORMMapper
from core.paginate import PaginatePage
from models.enums import (
    AuditAction,
    RegistrationStatus,
    ResourceType,
    SideEffectKind,
    UserRole,
)
from models.models import User
from policy.authorization import ActorContext
from repos.user_repo import UserRepo
from schemas.schema import TokenOut, UserOut
from security.security_generate import user_generate
from services.dispatcher import Command, CommandDispatcher, CommandResult, SideEffectRequest

logger = logging.getLogger(__name__)

APPROVAL_REQUIRED = {UserRole.LANDLORD, UserRole.PROPERTY_MANAGER}


def actor_for(user: User, ip: str | None = None) -> ActorContext:
    return ActorContext(user_id=user.id, role=user.role, email=user.email, ip=ip)


def token_response(user: User) -> TokenOut:
    return TokenOut(
        access_token=user_generate.create_access_token(user.id),
        user=ORMMapper.one(user, UserOut),
    )


class AuthService:
    def __init__(self, db):
        self.db = db
        self.repo: UserRepo = UserRepo(db)
        self.dispatcher: CommandDispatcher = CommandDispatcher(db)
        self.paginate: PaginatePage = PaginatePage()

    async def register(self, data, ip: str | None = None):
        async def handler():
            if await self.repo.email_taken(data.email):
                raise DuplicateEmail()

            status = (
                RegistrationStatus.PENDING_ADMIN_APPROVAL
                if data.role in APPROVAL_REQUIRED
                else RegistrationStatus.ACTIVE
            )
            user = User(
                email=data.email,
                first_name=data.first_name,
                last_name=data.last_name,
                phone=data.phone,
                role=data.role,
                registration_status=status,
            )
            user.set_password(data.password)

            async def mutate():
                await self.repo.add(user)
                return CommandResult(
                    value=user,
                    entity=user,
                    description=f"Self-registration as {data.role.value}",
                    actor=actor_for(user, ip),
                    side_effects=[
                        SideEffectRequest(
                            kind=SideEffectKind.EMAIL,
                            template="welcome",
                            recipient=user.email,
                            recipient_user_id=user.id,
                            payload={
                                "name": user.full_name,
                                "role": data.role.value,
                                "status": status.value,
                            },
                            resource_type=ResourceType.USER,
                            resource_id=user.id,
                        )
                    ],
                )

            created = await self.dispatcher.run(
                Command(action=AuditAction.REGISTER, resource_type=ResourceType.USER),
                mutate,
                external={"ip": ip} if ip else None,
            )
            logger.info("Registered user %s as %s", created.id, created.role.value)
            if created.registration_status != RegistrationStatus.ACTIVE:
                return self.paginate.ok(
                    ORMMapper.one(created, UserOut),
                    message="Registration received; awaiting admin approval",
                )
            return self.paginate.ok(token_response(created), message="Registration successful")

        return await breaker.call(handler)

    async def login(self, data, ip: str | None = None):
        async def handler():
            user = await self.repo.get_by_email(data.email)
            if not user or not user.check_password(data.password):
                logger.warning("Failed login for %s from %s", data.email, ip)
                raise Unauthorized("Invalid email or password")
            if user.registration_status != RegistrationStatus.ACTIVE:
                raise Unauthorized("Account is not active")

            async def mutate():
                before = user.last_login
                user.last_login = utcnow()
                return CommandResult(
                    value=user,
                    resource_id=user.id,
                    before={"lastLogin": before.isoformat() if before else None},
                    after={"lastLogin": user.last_login.isoformat()},
                )

            await self.dispatcher.run(
                Command(action=AuditAction.LOGIN, resource_type=ResourceType.USER),
                mutate,
                actor=actor_for(user, ip),
            )
            return self.paginate.ok(token_response(user), message="Login successful")

        return await breaker.call(handler)

    async def me(self, user: User):
        async def handler():
            return self.paginate.ok(ORMMapper.one(user, UserOut))

        return await breaker.call(handler)
