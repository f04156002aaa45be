import logging
import uuid
from typing import Optional

from core.breaker import breaker
from core.errors import Forbidden, NotFound, SemanticError
from core.mapper import ORMMapper
from core.paginate import PageParams, PaginatePage
from models.enums import AuditAction, ResourceType
from models.models import Vendor
from policy.authorization import Action, ActorContext, Target, authorize
from repos.vendor_repo import VendorRepo
from schemas.schema import VendorOut
from services.dispatcher import Command, CommandDispatcher, CommandResult

logger = logging.getLogger(__name__)


def vendor_target(vendor: Optional[Vendor] = None) -> Target:
    return Target(
        kind=ResourceType.VENDOR,
        created_by_id=vendor.created_by_id if vendor else None,
    )


class VendorService:
    def __init__(self, db):
        self.db = db
        self.repo: VendorRepo = VendorRepo(db)
        self.dispatcher: CommandDispatcher = CommandDispatcher(db)
        self.paginate: PaginatePage = PaginatePage()

    async def _load(self, vendor_id: uuid.UUID) -> Vendor:
        vendor = await self.repo.get(vendor_id)
        if not vendor:
            raise NotFound("Vendor not found")
        return vendor

    async def create_vendor(self, actor: ActorContext, data):
        async def handler():
            async def mutate():
                vendor = Vendor(
                    **data.model_dump(exclude={"services"}),
                    services=[s.value for s in data.services],
                    created_by_id=actor.user_id,
                )
                await self.repo.add(vendor)
                return CommandResult(value=vendor, entity=vendor)

            created = await self.dispatcher.run(
                Command(
                    action=AuditAction.CREATE,
                    resource_type=ResourceType.VENDOR,
                    permission=Action.CREATE,
                    target=vendor_target(),
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, VendorOut),
            )
            return self.paginate.ok(created, message="Vendor created")

        return await breaker.call(handler)

    async def list_vendors(
        self,
        actor: ActorContext,
        params: PageParams,
        *,
        service: Optional[str] = None,
        search: Optional[str] = None,
        include_inactive: bool = False,
    ):
        async def handler():
            if not authorize(actor, Action.VIEW, vendor_target()):
                raise Forbidden()
            items, total = await self.repo.list_vendors(
                params, service=service, search=search, include_inactive=include_inactive
            )
            return self.paginate.page(ORMMapper.many(items, VendorOut), total, params)

        return await breaker.call(handler)

    async def get_vendor(self, actor: ActorContext, vendor_id: uuid.UUID):
        async def handler():
            vendor = await self._load(vendor_id)
            if not authorize(actor, Action.VIEW, vendor_target(vendor)):
                raise Forbidden()
            return self.paginate.ok(ORMMapper.one(vendor, VendorOut))

        return await breaker.call(handler)

    async def update_vendor(self, actor: ActorContext, vendor_id: uuid.UUID, data):
        async def handler():
            vendor = await self._load(vendor_id)
            changes = data.model_dump(exclude_unset=True)

            async def mutate():
                before = ORMMapper.snapshot(vendor)
                if changes.get("services") is not None:
                    changes["services"] = [getattr(s, "value", s) for s in changes["services"]]
                for key, value in changes.items():
                    setattr(vendor, key, value)
                return CommandResult(value=vendor, entity=vendor, before=before)

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.UPDATE,
                    resource_type=ResourceType.VENDOR,
                    permission=Action.UPDATE,
                    target=vendor_target(vendor),
                    resource_id=vendor_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, VendorOut),
            )
            return self.paginate.ok(updated, message="Vendor updated")

        return await breaker.call(handler)

    async def deactivate_vendor(self, actor: ActorContext, vendor_id: uuid.UUID):
        async def handler():
            vendor = await self._load(vendor_id)

            async def mutate():
                if not vendor.is_active:
                    raise SemanticError("Vendor is already inactive")
                before = ORMMapper.snapshot(vendor)
                vendor.is_active = False
                return CommandResult(value=vendor, entity=vendor, before=before)

            updated = await self.dispatcher.run(
                Command(
                    action=AuditAction.ARCHIVE,
                    resource_type=ResourceType.VENDOR,
                    permission=Action.DELETE,
                    target=vendor_target(vendor),
                    resource_id=vendor_id,
                ),
                mutate,
                actor=actor,
                present=lambda x: ORMMapper.one(x, VendorOut),
            )
            return self.paginate.ok(updated, message="Vendor deactivated")

        return await breaker.call(handler)
