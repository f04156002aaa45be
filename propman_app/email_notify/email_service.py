import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

import aiosmtplib
from tenacity import retry, stop_after_attempt, wait_exponential

from core.breaker import outbound_breaker
from core.settings import settings

logger = logging.getLogger(__name__)

LAYOUT = """
<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6;">
    <h2>{title}</h2>
    <p>Hello {name},</p>
    {body}
    <p>Best regards,<br>{project} Team</p>
</body>
</html>
"""

TEMPLATES = {
    "welcome": (
        "Welcome to {project}",
        "<p>Your account has been created with the role <b>{role}</b>.</p>"
        "<p>Status: {status}</p>",
    ),
    "account_approved": (
        "Your account has been approved",
        "<p>An administrator approved your account. You can now log in.</p>",
    ),
    "invite": (
        "You have been invited to {property_name}",
        "<p>{inviter} invited you to join <b>{property_name}</b> as {roles}.</p>"
        '<p><a href="{invite_link}">Accept invitation</a></p>'
        "<p>This invitation expires on {expires_at}.</p>",
    ),
    "request_created": (
        "New maintenance request: {title}",
        "<p>A new {priority} priority request was logged for {property_name}.</p>"
        "<p>{description}</p>",
    ),
    "request_assigned": (
        "Maintenance request assigned: {title}",
        "<p>You have been assigned the request <b>{title}</b>.</p>"
        '<p><a href="{link}">View request</a></p>',
    ),
    "request_status": (
        "Request {title} is now {status}",
        "<p>The request <b>{title}</b> moved to <b>{status}</b>.</p>",
    ),
    "rent_due": (
        "Rent due for {billing_period}",
        "<p>Rent of {currency} {amount_due} for {billing_period} is due on {due_date}.</p>",
    ),
    "rent_reminder": (
        "Rent payment reminder",
        "<p>Your rent of {currency} {balance} for {billing_period} is due on {due_date}.</p>"
        "<p>Please ensure it is paid on time.</p>",
    ),
    "payment_received": (
        "Payment received",
        "<p>We recorded a payment of {currency} {amount} for {billing_period}.</p>"
        "<p>Status: {status}</p>",
    ),
    "lease_expiring": (
        "Your lease is expiring",
        "<p>Your lease ends on {end_date}. Please contact your landlord about renewal.</p>",
    ),
    "lease_terminated": (
        "Lease terminated",
        "<p>Your lease was terminated. Reason: {reason}</p>",
    ),
}


class _SafeDict(dict):
    def __missing__(self, key):
        return ""


def render(template: str, payload: dict) -> tuple[str, str]:
    if template not in TEMPLATES:
        raise ValueError(f"Unknown email template: {template}")
    values = _SafeDict({k: escape(str(v)) for k, v in (payload or {}).items()})
    values.setdefault("project", settings.PROJECT_NAME)
    values.setdefault("name", "there")
    subject, body = TEMPLATES[template]
    subject = subject.format_map(values)
    html = LAYOUT.format_map(
        _SafeDict(
            title=subject,
            name=values["name"],
            body=body.format_map(values),
            project=values["project"],
        )
    )
    return subject, html


@retry(stop=stop_after_attempt(2), wait=wait_exponential(multiplier=1, min=1, max=10))
async def _deliver(message: MIMEMultipart):
    await aiosmtplib.send(
        message,
        hostname=settings.EMAIL_SERVER,
        port=settings.EMAIL_PORT,
        username=settings.EMAIL_USER,
        password=settings.EMAIL_PASSWORD,
        start_tls=settings.EMAIL_USE_TLS,
        timeout=settings.EMAIL_TIMEOUT_SECONDS,
    )


async def send_email(to: str, subject: str, html_content: str) -> bool:
    """Send one HTML email. Returns False when email is not configured."""
    if not settings.email_enabled:
        logger.info("Email disabled; skipping '%s' to %s", subject, to)
        return False

    async def handler():
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = settings.EMAIL_USER
        message["To"] = to
        message.attach(MIMEText(html_content, "html"))
        try:
            await _deliver(message)
        except Exception as e:
            logger.error("Error sending email '%s' to %s: %s", subject, to, e)
            raise
        return True

    return await outbound_breaker.call(handler)


async def send_templated_email(to: str, template: str, payload: dict) -> bool:
    subject, html = render(template, payload)
    return await send_email(to, subject, html)
