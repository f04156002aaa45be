import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_, select, update

from core.paginate import PageParams
from models.enums import InviteStatus
from models.models import Invite
from policy.authorization import ActorContext

from .base_repo import BaseRepo


class InviteRepo(BaseRepo):
    model = Invite

    async def get_by_hash(self, token_hash: str) -> Optional[Invite]:
        result = await self.db.execute(
            select(Invite).where(Invite.hashed_token == token_hash)
        )
        return result.scalar_one_or_none()

    async def pending_duplicate(
        self,
        email: str,
        property_id: Optional[uuid.UUID],
        unit_id: Optional[uuid.UUID],
        now: datetime,
    ) -> Optional[Invite]:
        stmt = select(Invite).where(
            Invite.email == email,
            Invite.status == InviteStatus.PENDING,
            Invite.expires_at > now,
        )
        stmt = stmt.where(
            Invite.property_id == property_id
            if property_id
            else Invite.property_id.is_(None)
        )
        stmt = stmt.where(
            Invite.unit_id == unit_id if unit_id else Invite.unit_id.is_(None)
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def list_invites(
        self,
        params: PageParams,
        actor: ActorContext,
        *,
        property_id: Optional[uuid.UUID] = None,
        status: Optional[InviteStatus] = None,
        email: Optional[str] = None,
    ):
        stmt = select(Invite)
        if not actor.is_admin:
            clauses = [Invite.generated_by_id == actor.user_id]
            managed = actor.managed_property_ids()
            if managed:
                clauses.append(Invite.property_id.in_(managed))
            stmt = stmt.where(or_(*clauses))
        if property_id is not None:
            stmt = stmt.where(Invite.property_id == property_id)
        if status is not None:
            stmt = stmt.where(Invite.status == status)
        if email:
            stmt = stmt.where(Invite.email == email.strip().lower())
        return await self.page(stmt, params)

    async def stale_pending(self, now: datetime) -> List[Invite]:
        result = await self.db.execute(
            select(Invite).where(
                Invite.status == InviteStatus.PENDING, Invite.expires_at <= now
            )
        )
        return list(result.scalars().all())

    async def expire(self, invite_ids: List[uuid.UUID], now: datetime) -> int:
        if not invite_ids:
            return 0
        result = await self.db.execute(
            update(Invite)
            .where(Invite.id.in_(invite_ids), Invite.status == InviteStatus.PENDING)
            .values(status=InviteStatus.EXPIRED, updated_at=now)
        )
        return result.rowcount or 0

    async def claim_pending(
        self, invite_id: uuid.UUID, status: InviteStatus, now: datetime
    ) -> bool:
        """Move a still-pending invite to ``status``; False when it was already settled."""
        result = await self.db.execute(
            update(Invite)
            .where(Invite.id == invite_id, Invite.status == InviteStatus.PENDING)
            .values(status=status, updated_at=now)
        )
        return bool(result.rowcount)
