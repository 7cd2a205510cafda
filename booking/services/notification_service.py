"""
Registration Notification Service
Sends the guardian confirmation and the admin notice for each registration,
and the oversell alert when a paid registration could not be recorded
"""

import logging
from typing import Optional

from ..config import ADMIN_EMAIL
from ..domain.registrations.schemas import CapacityDocument, RegistrationRecord
from ..email_service import (
    send_admin_registration_notification,
    send_guardian_confirmation,
    send_oversell_alert,
)

logger = logging.getLogger(__name__)


def _registration_context(
    registration: RegistrationRecord,
    event_id: str,
    event_summary: Optional[str],
    event_type: Optional[str],
    event_start: Optional[str] = None,
) -> dict:
    players = (
        [f"{p.first_name} {p.last_name}".strip() for p in registration.players]
        if registration.players
        else [registration.display_name]
    )
    return {
        "event_id": event_id,
        "event_summary": event_summary,
        "event_type": event_type,
        "event_start": event_start,
        "registration_id": registration.id,
        "amount_paid": float(registration.amount_paid) if registration.amount_paid is not None else None,
        "players": [p for p in players if p],
        "player_age": registration.player_age,
        "guardian_first_name": registration.guardian_first_name,
        "guardian_last_name": registration.guardian_last_name,
        "guardian_email": registration.guardian_email,
        "guardian_phone": registration.guardian_phone,
        "emergency_contact_name": registration.emergency_contact_name,
        "emergency_contact_phone": registration.emergency_contact_phone,
        "medical_notes": registration.medical_notes,
    }


class RegistrationNotifier:
    """Each recipient is attempted independently; failures are logged, never raised"""

    def __init__(self, admin_email: Optional[str] = ADMIN_EMAIL):
        self.admin_email = admin_email

    async def notify_registration(
        self,
        registration: RegistrationRecord,
        document: CapacityDocument,
        event_summary: Optional[str] = None,
        event_start: Optional[str] = None,
    ) -> dict:
        result = {"guardian_sent": False, "admin_sent": False, "errors": []}
        context = _registration_context(
            registration,
            document.event_id,
            event_summary,
            document.event_type.value if document.event_type else None,
            event_start,
        )
        context["current_registrations"] = document.current_registrations
        context["max_capacity"] = document.max_capacity

        if registration.guardian_email:
            try:
                await send_guardian_confirmation(registration.guardian_email, **context)
                result["guardian_sent"] = True
            except Exception as e:
                result["errors"].append(f"guardian: {e}")
                logger.error(f"❌ Failed to send confirmation to {registration.guardian_email}: {e}")
        else:
            logger.warning(f"⚠️ No guardian email on registration {registration.id}")

        if self.admin_email:
            try:
                await send_admin_registration_notification(self.admin_email, **context)
                result["admin_sent"] = True
            except Exception as e:
                result["errors"].append(f"admin: {e}")
                logger.error(f"❌ Failed to send admin notification for {registration.id}: {e}")
        else:
            logger.warning("⚠️ ADMIN_EMAIL not configured, skipping admin notification")

        return result

    async def notify_oversell(
        self,
        registration: RegistrationRecord,
        event_id: str,
        current: int,
        maximum: Optional[int],
        event_summary: Optional[str] = None,
    ) -> bool:
        if not self.admin_email:
            logger.error(f"❌ Oversell on {event_id} but ADMIN_EMAIL is not configured")
            return False
        context = _registration_context(registration, event_id, event_summary, None)
        context["current_registrations"] = current
        context["max_capacity"] = maximum
        try:
            await send_oversell_alert(self.admin_email, **context)
            return True
        except Exception as e:
            logger.error(f"❌ Failed to send oversell alert for {event_id}: {e}")
            return False
