"""
Email Service using Resend
Registration confirmations, admin notifications and oversell alerts
"""

import logging
from typing import Optional, Union

import resend

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import (
    admin_registration_template,
    guardian_confirmation_template,
    oversell_alert_template,
)
from .exceptions import NotificationDispatchError

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def is_email_configured() -> bool:
    return bool(RESEND_API_KEY)


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    html_content: str,
    from_address: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Raises:
        NotificationDispatchError: email is not configured or Resend rejected it
    """
    recipients = [to] if isinstance(to, str) else to
    sender = from_address or EMAIL_FROM_ADDRESS

    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise NotificationDispatchError("Email service not configured")

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        email_data = {
            "from": sender,
            "to": recipients,
            "subject": subject,
            "html": html_content,
        }
        if reply_to:
            email_data["reply_to"] = reply_to

        response = resend.Emails.send(email_data)
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise NotificationDispatchError(f"Failed to send email: {str(e)}") from e


async def send_guardian_confirmation(to: str, **context) -> dict:
    """Confirmation to the parent/guardian who paid"""
    return await send_email(
        to=to,
        subject=f"Registration Confirmed: {context.get('event_summary') or 'New Era Hockey'}",
        html_content=guardian_confirmation_template(**context),
    )


async def send_admin_registration_notification(to: str, **context) -> dict:
    """New registration notice to the business owner"""
    return await send_email(
        to=to,
        subject=f"New Registration: {context.get('event_summary') or context.get('event_id')}",
        html_content=admin_registration_template(**context),
        reply_to=context.get("guardian_email"),
    )


async def send_oversell_alert(to: str, **context) -> dict:
    """Payment captured for an event that was already full"""
    return await send_email(
        to=to,
        subject=f"⚠️ Oversold: {context.get('event_summary') or context.get('event_id')}",
        html_content=oversell_alert_template(**context),
    )
