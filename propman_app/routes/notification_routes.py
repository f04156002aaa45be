import uuid

from fastapi import APIRouter, Depends
from fastapi_utils.cbv import cbv
from sqlalchemy.ext.asyncio import AsyncSession

from core.get_current_user import get_current_actor
from core.get_db import get_db_async
from core.paginate import PageParams
from core.safe_handler import safe_handler
from policy.authorization import ActorContext
from services.notification_service import NotificationService

router = APIRouter(tags=["Notifications"])


@cbv(router)
class NotificationRoutes:
    db: AsyncSession = Depends(get_db_async)
    actor: ActorContext = Depends(get_current_actor)

    @router.get("/notifications")
    @safe_handler
    async def list_notifications(self, params: PageParams = Depends(), unread: bool = False):
        return await NotificationService(self.db).list_notifications(
            self.actor, params, unread_only=unread
        )

    @router.get("/notifications/unread-count")
    @safe_handler
    async def unread_count(self):
        return await NotificationService(self.db).unread_count(self.actor)

    @router.post("/notifications/read-all")
    @safe_handler
    async def mark_all_read(self):
        return await NotificationService(self.db).mark_all_read(self.actor)

    @router.post("/notifications/{notification_id}/read")
    @safe_handler
    async def mark_read(self, notification_id: uuid.UUID):
        return await NotificationService(self.db).mark_read(self.actor, notification_id)

    @router.delete("/notifications/{notification_id}")
    @safe_handler
    async def delete(self, notification_id: uuid.UUID):
        return await NotificationService(self.db).delete(self.actor, notification_id)
