from datetime import datetime, timedelta
from typing import List

from sqlalchemy import select

from core.date_helper import utcnow
from models.enums import SideEffectStatus
from models.models import SideEffect

from .base_repo import BaseRepo


class SideEffectRepo(BaseRepo):
    model = SideEffect

    def enqueue(self, effect: SideEffect) -> SideEffect:
        self.db.add(effect)
        return effect

    async def claim_batch(self, now: datetime, limit: int) -> List[SideEffect]:
        stmt = (
            select(SideEffect)
            .where(
                SideEffect.status == SideEffectStatus.PENDING,
                SideEffect.available_at <= now,
            )
            .order_by(SideEffect.created_at)
            .limit(limit)
        )
        if self.db.bind.dialect.name == "postgresql":
            stmt = stmt.with_for_update(skip_locked=True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    def mark_delivered(self, effect: SideEffect) -> None:
        effect.status = SideEffectStatus.DELIVERED
        effect.delivered_at = utcnow()
        effect.last_error = None

    def mark_attempt_failed(self, effect: SideEffect, error: str, max_attempts: int) -> bool:
        """Record a failed delivery. True once the row has given up."""
        effect.attempts += 1
        effect.last_error = error[:2000]
        if effect.attempts >= max_attempts:
            effect.status = SideEffectStatus.FAILED
            return True
        backoff = min(2 ** effect.attempts, 60)
        effect.available_at = utcnow() + timedelta(minutes=backoff)
        return False
