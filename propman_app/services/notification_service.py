import uuid

from core.breaker import breaker
from core.date_helper import utcnow
from core.errors import NotFound
from core.mapper import ORMMapper
from core.paginate import PageParams, PaginatePage
from policy.authorization import ActorContext
from repos.notification_repo import NotificationRepo
from schemas.schema import NotificationOut


class NotificationService:
    """In-app notifications. Each user only ever sees their own."""

    def __init__(self, db):
        self.db = db
        self.repo: NotificationRepo = NotificationRepo(db)
        self.paginate: PaginatePage = PaginatePage()

    async def list_notifications(
        self, actor: ActorContext, params: PageParams, unread_only: bool = False
    ):
        async def handler():
            items, total = await self.repo.list_for(
                actor.user_id, params, unread_only=unread_only
            )
            body = self.paginate.page(ORMMapper.many(items, NotificationOut), total, params)
            body["unread"] = await self.repo.unread_count(actor.user_id)
            return body

        return await breaker.call(handler)

    async def unread_count(self, actor: ActorContext):
        async def handler():
            return self.paginate.ok({"unread": await self.repo.unread_count(actor.user_id)})

        return await breaker.call(handler)

    async def mark_read(self, actor: ActorContext, notification_id: uuid.UUID):
        async def handler():
            notification = await self.repo.get_owned(notification_id, actor.user_id)
            if not notification:
                raise NotFound("Notification not found")
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = utcnow()
                await self.db.commit()
            return self.paginate.ok(ORMMapper.one(notification, NotificationOut))

        return await breaker.call(handler)

    async def mark_all_read(self, actor: ActorContext):
        async def handler():
            changed = await self.repo.mark_all_read(actor.user_id)
            await self.db.commit()
            return self.paginate.ok({"updated": changed}, message="Notifications marked as read")

        return await breaker.call(handler)

    async def delete(self, actor: ActorContext, notification_id: uuid.UUID):
        async def handler():
            notification = await self.repo.get_owned(notification_id, actor.user_id)
            if not notification:
                raise NotFound("Notification not found")
            await self.repo.delete(notification)
            await self.db.commit()
            return self.paginate.ok(message="Notification deleted")

        return await breaker.call(handler)
