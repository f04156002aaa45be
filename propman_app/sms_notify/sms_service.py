import logging

import httpx

from core.breaker import outbound_breaker
from core.settings import settings

logger = logging.getLogger(__name__)

MESSAGES = {
    "rent_reminder": "Hello {name}, your rent of {currency} {balance} for {billing_period} is due on {due_date}.",
    "rent_due": "Hello {name}, rent of {currency} {amount_due} for {billing_period} is due on {due_date}.",
    "request_assigned": "New job assigned: {title} at {property_name}. {link}",
    "request_status": "Request '{title}' is now {status}.",
    "invite": "You have been invited to {property_name}. Accept here: {invite_link}",
}


class _SafeDict(dict):
    def __missing__(self, key):
        return ""


def render_sms(template: str, payload: dict) -> str:
    if template not in MESSAGES:
        raise ValueError(f"Unknown SMS template: {template}")
    return MESSAGES[template].format_map(_SafeDict(payload or {}))


class TermiiClient:
    def __init__(self):
        self.base_url = settings.TERMII_BASE_URL
        self.api_key = settings.TERMII_API_KEY
        self.client: httpx.AsyncClient | None = None

    @property
    def enabled(self) -> bool:
        return settings.sms_enabled

    async def connect(self):
        if not self.enabled:
            logger.info("Termii not configured; SMS delivery disabled")
            return
        self.client = httpx.AsyncClient(
            base_url=self.base_url, timeout=settings.SMS_TIMEOUT_SECONDS
        )
        logger.info("Termii connected")

    async def close(self):
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.info("Termii connection closed")

    async def send_sms(
        self,
        to: str,
        message: str,
        sender_id: str | None = None,
    ) -> bool:
        """Send a plain SMS. Returns False when SMS is not configured."""
        if not self.enabled:
            logger.info("SMS disabled; skipping message to %s", to)
            return False

        payload = {
            "to": to.lstrip("+"),
            "from": sender_id or settings.TERMII_SENDER_ID,
            "sms": message,
            "type": "plain",
            "channel": "generic",
            "api_key": self.api_key,
        }

        async def handler():
            if not self.client:
                await self.connect()
            response = await self.client.post("/api/sms/send", json=payload)
            if response.status_code >= 400:
                raise httpx.HTTPStatusError(
                    f"Termii returned {response.status_code}",
                    request=response.request,
                    response=response,
                )
            return True

        return await outbound_breaker.call(handler)

    async def send_templated(self, to: str, template: str, payload: dict) -> bool:
        return await self.send_sms(to, render_sms(template, payload))


send_sms = TermiiClient()
