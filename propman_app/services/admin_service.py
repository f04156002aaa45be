import logging

from core.breaker import breaker
from core.errors import Forbidden
from core.paginate import PaginatePage
from models.enums import ResourceType
from policy.authorization import Action, ActorContext, Target, authorize
from services.invite_service import InviteService
from services.recurrence_engine import RecurrenceEngine
from services.rent_service import RentService
from services.side_effect_service import SideEffectService

logger = logging.getLogger(__name__)


class AdminService:
    """Manual triggers for the jobs the scheduler normally runs."""

    def __init__(self, db):
        self.db = db
        self.paginate: PaginatePage = PaginatePage()

    def _require_admin(self, actor: ActorContext) -> None:
        if not authorize(actor, Action.MANAGE, Target(kind=ResourceType.SYSTEM)):
            raise Forbidden("Administrator access required")

    async def run_recurrence(self, actor: ActorContext):
        async def handler():
            self._require_admin(actor)
            outcome = await RecurrenceEngine(self.db, actor=actor).run()
            logger.info("Recurrence run requested by %s", actor.user_id)
            return self.paginate.ok(outcome, message="Recurrence run complete")

        return await breaker.call(handler)

    async def drain_side_effects(self, actor: ActorContext, limit: int | None = None):
        async def handler():
            self._require_admin(actor)
            outcome = await SideEffectService(self.db).drain(limit)
            return self.paginate.ok(outcome, message="Outbox drained")

        return await breaker.call(handler)

    async def expire_invites(self, actor: ActorContext):
        async def handler():
            self._require_admin(actor)
            changed = await InviteService(self.db).expire_stale()
            return self.paginate.ok({"expired": changed})

        return await breaker.call(handler)

    async def mark_overdue_rent(self, actor: ActorContext):
        async def handler():
            self._require_admin(actor)
            changed = await RentService(self.db).mark_overdue()
            return self.paginate.ok({"overdue": changed})

        return await breaker.call(handler)

    async def send_rent_reminders(self, actor: ActorContext, days_ahead: int = 3):
        async def handler():
            self._require_admin(actor)
            queued = await RentService(self.db).send_reminders(days_ahead)
            return self.paginate.ok({"reminders": queued})

        return await breaker.call(handler)
