import uuid
from typing import Optional

from sqlalchemy import func, select, update

from core.date_helper import utcnow
from core.paginate import PageParams
from models.models import Notification

from .base_repo import BaseRepo


class NotificationRepo(BaseRepo):
    model = Notification

    async def list_for(
        self,
        recipient_id: uuid.UUID,
        params: PageParams,
        *,
        unread_only: bool = False,
    ):
        stmt = select(Notification).where(Notification.recipient_id == recipient_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        return await self.page(stmt, params)

    async def mark_all_read(self, recipient_id: uuid.UUID) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == recipient_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=utcnow())
        )
        return result.rowcount or 0

    async def unread_count(self, recipient_id: uuid.UUID) -> int:
        return int(
            await self.db.scalar(
                select(func.count(Notification.id)).where(
                    Notification.recipient_id == recipient_id,
                    Notification.is_read.is_(False),
                )
            )
            or 0
        )

    async def get_owned(
        self, notification_id: uuid.UUID, recipient_id: uuid.UUID
    ) -> Optional[Notification]:
        result = await self.db.execute(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.recipient_id == recipient_id,
            )
        )
        return result.scalar_one_or_none()
