"""Delivery of the outbox rows commands enqueue.

Rows are claimed in batches, delivered one by one and committed after each
so a slow or failing channel never holds back the rest. A row that keeps
failing is retried with backoff and finally marked failed and audited.
"""

import logging

from core.date_helper import utcnow
from core.settings import settings
from email_notify.email_service import send_templated_email
from models.enums import (
    AuditAction,
    AuditStatus,
    NotificationType,
    ResourceType,
    SideEffectKind,
)
from models.models import Notification, SideEffect
from repos.side_effect_repo import SideEffectRepo
from repos.user_repo import UserRepo
from schemas.schema import SideEffectDrainOut
from services.audit_service import AuditService
from sms_notify.sms_service import send_sms

logger = logging.getLogger(__name__)


class UndeliverableError(Exception):
    """The row can never be delivered, retrying will not help."""


class SideEffectService:
    def __init__(self, db):
        self.db = db
        self.repo: SideEffectRepo = SideEffectRepo(db)
        self.user_repo: UserRepo = UserRepo(db)
        self.audit: AuditService = AuditService(db)

    async def _recipient_email(self, effect: SideEffect) -> str:
        if effect.recipient:
            return effect.recipient
        user = await self.user_repo.get(effect.recipient_user_id) if effect.recipient_user_id else None
        if user is None:
            raise UndeliverableError("email side effect has no recipient")
        return user.email

    async def _deliver(self, effect: SideEffect) -> None:
        if effect.kind == SideEffectKind.EMAIL:
            to = await self._recipient_email(effect)
            sent = await send_templated_email(to, effect.template, effect.payload or {})
            if not sent:
                logger.info("Email channel disabled; dropped %s to %s", effect.template, to)
        elif effect.kind == SideEffectKind.SMS:
            if not effect.recipient:
                raise UndeliverableError("sms side effect has no phone number")
            sent = await send_sms.send_templated(
                effect.recipient, effect.template, effect.payload or {}
            )
            if not sent:
                logger.info("SMS channel disabled; dropped %s", effect.template)
        elif effect.kind == SideEffectKind.NOTIFICATION:
            if effect.recipient_user_id is None:
                raise UndeliverableError("notification side effect has no recipient user")
            payload = effect.payload or {}
            self.db.add(
                Notification(
                    recipient_id=effect.recipient_user_id,
                    type=NotificationType(payload.get("type", NotificationType.GENERAL.value)),
                    message=payload.get("message", effect.template),
                    link=payload.get("link"),
                    related_resource_type=effect.resource_type,
                    related_resource_id=effect.resource_id,
                )
            )
        else:
            raise UndeliverableError(f"unknown side effect kind {effect.kind}")

    async def drain(self, limit: int | None = None) -> SideEffectDrainOut:
        outcome = SideEffectDrainOut()
        batch = await self.repo.claim_batch(utcnow(), limit or settings.SIDE_EFFECT_BATCH_SIZE)
        for effect in batch:
            effect_id = effect.id
            try:
                await self._deliver(effect)
                self.repo.mark_delivered(effect)
                await self.db.commit()
                outcome.delivered += 1
                continue
            except UndeliverableError as e:
                error, max_attempts = str(e), 1
            except Exception as e:
                error, max_attempts = f"{type(e).__name__}: {e}", settings.SIDE_EFFECT_MAX_ATTEMPTS
            await self.db.rollback()
            effect = await self.repo.get(effect_id)
            gave_up = self.repo.mark_attempt_failed(effect, error, max_attempts)
            await self.db.commit()
            logger.warning(
                "Side effect %s (%s/%s) attempt %s failed: %s",
                effect_id,
                effect.kind.value,
                effect.template,
                effect.attempts,
                error,
            )
            if gave_up:
                outcome.failed += 1
                await self.audit.record(
                    self.audit.entry(
                        action=AuditAction.SIDE_EFFECT_FAILED,
                        resource_type=effect.resource_type or ResourceType.SYSTEM,
                        resource_id=effect.resource_id,
                        status=AuditStatus.FAILURE,
                        description=f"{effect.kind.value}:{effect.template} undeliverable",
                        error_message=error,
                    )
                )
            else:
                outcome.retried += 1
        if batch:
            logger.info(
                "Side effects drained: %s delivered, %s retried, %s failed",
                outcome.delivered,
                outcome.retried,
                outcome.failed,
            )
        return outcome
