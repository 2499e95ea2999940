"""Transactional email via an HTTP mail API (Resend-compatible).

Messages are rendered from a small set of plain-text templates and POSTed
to settings.mail_api_url. Sending is retried a bounded number of times
with a fixed pause between attempts. Failures are logged, never raised:
email runs as a background task after the response was sent.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from comments_api.core.config import settings

logger = logging.getLogger(__name__)

_MAIL_TIMEOUT = 10.0


@dataclass(frozen=True)
class EmailTemplate:
    """Subject and body format strings for one kind of message."""

    subject: str
    body: str


TEMPLATES: dict[str, EmailTemplate] = {
    "user_welcome": EmailTemplate(
        subject="Welcome to Comments!",
        body=(
            "Hi,\n\n"
            "Thanks for signing up for a Comments account. "
            "For future reference, your user ID number is {user_id}.\n\n"
            "Please activate your account with this token:\n\n"
            "{activation_token}\n\n"
            "or visit {frontend_url}/activate?token={activation_token}\n\n"
            "The token expires in {ttl_hours} hours and can only be used once.\n\n"
            "Thanks,\n\nThe Comments Team"
        ),
    ),
}


def render_template(template_key: str, data: dict[str, Any]) -> tuple[str, str]:
    """Render a template's subject and body.

    Args:
        template_key: Key into TEMPLATES.
        data: Values substituted into the body.

    Returns:
        (subject, body) tuple.

    Raises:
        KeyError: If the template or one of its fields is missing.
    """
    template = TEMPLATES[template_key]
    values = {"frontend_url": settings.frontend_url, **data}
    return template.subject, template.body.format(**values)


async def send_email(
    *,
    recipient: str,
    template_key: str,
    data: dict[str, Any],
) -> bool:
    """Render and send one email, retrying transient failures.

    Makes up to settings.mail_max_attempts attempts, sleeping
    settings.mail_retry_delay_seconds between them.

    Args:
        recipient: Destination address.
        template_key: Key into TEMPLATES.
        data: Template values.

    Returns:
        True if the mail API accepted the message.
    """
    try:
        subject, body = render_template(template_key, data)
    except KeyError:
        logger.exception("Cannot render email template %r", template_key)
        return False

    payload = {
        "from": settings.mail_sender,
        "to": recipient,
        "subject": subject,
        "text": body,
    }
    headers = {
        "Authorization": f"Bearer {settings.mail_api_key.get_secret_value()}",
    }

    attempts = max(1, settings.mail_max_attempts)
    async with httpx.AsyncClient(timeout=_MAIL_TIMEOUT) as client:
        for attempt in range(1, attempts + 1):
            try:
                resp = await client.post(
                    settings.mail_api_url, headers=headers, json=payload
                )
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning(
                    "Email attempt %d/%d (%s) failed: %r",
                    attempt,
                    attempts,
                    template_key,
                    exc,
                )
                if attempt < attempts:
                    await asyncio.sleep(settings.mail_retry_delay_seconds)
                continue
            return True

    logger.error("Giving up on %s email after %d attempts", template_key, attempts)
    return False
