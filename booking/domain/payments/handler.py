"""
Payment-event handler

Turns one signed checkout-completed notification into a stored registration,
then projects it onto the calendar and notifies the family and the admin.

Only the registration write can fail the webhook (500, the gateway retries).
Calendar and email steps each have their own error boundary and are
re-runnable by hand, so a failure there is logged and acknowledged.
"""
import logging
from typing import Optional

from pydantic import ValidationError

from ...config import STRIPE_WEBHOOK_SECRET, WEBHOOK_TOLERANCE_SECONDS, is_production
from ...exceptions import (
    CalendarUnavailableError,
    InvalidSignatureError,
    MalformedMetadataError,
    SoldOutError,
    StoreUnavailableError,
)
from ...services.notification_service import RegistrationNotifier
from ...webhook_security import verify_payment_signature
from ..calendar.classifier import classify
from ..calendar.client import GoogleCalendarClient
from ..calendar.mutator import CalendarMutator
from ..calendar.schemas import BookableEvent, BookingClassification, BookingDetails
from ..registrations.schemas import BookingType, RegistrationRecord
from ..registrations.service import RegistrationService
from .schemas import (
    CHECKOUT_COMPLETED,
    AckResult,
    CheckoutMetadata,
    CheckoutSession,
    Outcome,
    PaymentEvent,
    Stage,
)

logger = logging.getLogger(__name__)

# The classification read sits before the write; one attempt, no backoff
CLASSIFY_MAX_RETRIES = 0


class PaymentEventHandler:
    def __init__(
        self,
        registrations: RegistrationService,
        calendar: Optional[GoogleCalendarClient] = None,
        mutator: Optional[CalendarMutator] = None,
        notifier: Optional[RegistrationNotifier] = None,
        secret: Optional[str] = STRIPE_WEBHOOK_SECRET,
        tolerance: int = WEBHOOK_TOLERANCE_SECONDS,
        process_test_payments: Optional[bool] = None,
    ):
        self.registrations = registrations
        self.calendar = calendar
        self.mutator = mutator
        self.notifier = notifier
        self.secret = secret
        self.tolerance = tolerance
        self.process_test_payments = (
            not is_production() if process_test_payments is None else process_test_payments
        )

    async def handle(self, raw_body: bytes, signature_header: Optional[str]) -> AckResult:
        result = AckResult(stages=[Stage.RECEIVED])
        logger.info("📥 Payment webhook received")

        try:
            verify_payment_signature(raw_body, signature_header, self.secret, tolerance=self.tolerance)
        except InvalidSignatureError as e:
            logger.warning(f"🚫 Payment webhook rejected: {e}")
            result.stages.append(Stage.REJECTED)
            result.status_code = 400
            result.outcome = Outcome.REJECTED
            result.detail = str(e)
            return result
        result.stages.append(Stage.SIGNATURE_VERIFIED)

        try:
            return await self._process(raw_body, result)
        except Exception as e:
            # Nothing has been committed yet, so let the gateway retry
            logger.error(f"❌ Payment webhook processing failed: {e}", exc_info=True)
            result.status_code = 500
            result.outcome = Outcome.FAILED
            result.detail = "Webhook processing failed"
            return result

    async def _process(self, raw_body: bytes, result: AckResult) -> AckResult:
        try:
            event = PaymentEvent.model_validate_json(raw_body)
        except ValidationError as e:
            logger.error(f"❌ Signed payment webhook has an unreadable body: {e}")
            return self._finish(result, Outcome.SKIPPED, "Unreadable payload")

        if event.type != CHECKOUT_COMPLETED:
            logger.info(f"ℹ️ Unhandled payment event type: {event.type}")
            return self._finish(result, Outcome.IGNORED, event.type)

        try:
            session = CheckoutSession.model_validate(event.data.object)
        except ValidationError as e:
            logger.error(f"❌ Checkout session {event.id} could not be parsed: {e}")
            return self._finish(result, Outcome.SKIPPED, "Unreadable checkout session")

        if not session.livemode and not self.process_test_payments:
            logger.info(f"ℹ️ Skipping test-mode checkout session {session.id} in production")
            return self._finish(result, Outcome.SKIPPED, "Test-mode payment")

        metadata = session.booking_metadata()
        try:
            metadata.require_booking_fields()
        except MalformedMetadataError as e:
            logger.error(f"❌ Checkout session {session.id}: {e}")
            return self._finish(result, Outcome.SKIPPED, str(e))
        result.stages.append(Stage.METADATA_EXTRACTED)

        event_id = metadata.event_id
        result.event_id = event_id
        result.registration_id = session.id

        classification = await self._classify(event_id)
        booking_type = BookingType.parse(metadata.event_type)
        if booking_type is None:
            booking_type = classification.booking_type if classification else BookingType.OTHER
            logger.warning(f"⚠️ Unknown eventType '{metadata.event_type}' for {event_id}, using {booking_type.value}")

        registration = session.to_registration(metadata)

        try:
            outcome = self.registrations.record(
                event_id,
                booking_type,
                registration,
                custom_capacity=classification.capacity_hint if classification else None,
            )
        except SoldOutError as e:
            logger.error(f"❌ Paid registration {session.id} for sold-out event {event_id}: {e}")
            if self.notifier:
                await self.notifier.notify_oversell(
                    registration, event_id, e.current, e.maximum, event_summary=metadata.event_summary
                )
            return self._finish(result, Outcome.SOLD_OUT, str(e))
        except StoreUnavailableError as e:
            logger.error(f"❌ Could not store registration {session.id} for {event_id}: {e}")
            result.status_code = 500
            result.outcome = Outcome.FAILED
            result.detail = "Registration store unavailable"
            return result

        if outcome.already_applied:
            logger.info(f"🔄 Duplicate delivery of {session.id}, already registered for {event_id}")
            return self._finish(result, Outcome.DUPLICATE, "Already processed")
        result.stages.append(Stage.REGISTRATION_WRITTEN)

        details = BookingDetails.from_registration(registration, booking_type, metadata.slot_time)
        if await self._mutate_calendar(event_id, details):
            result.stages.append(Stage.CALENDAR_MUTATED)

        if await self._notify(registration, outcome.document, metadata):
            result.stages.append(Stage.NOTIFIED)

        logger.info(f"✅ Checkout session {session.id} processed for event {event_id}")
        return self._finish(result, Outcome.PROCESSED)

    @staticmethod
    def _finish(result: AckResult, outcome: Outcome, detail: Optional[str] = None) -> AckResult:
        result.stages.append(Stage.ACKNOWLEDGED)
        result.status_code = 200
        result.outcome = outcome
        result.detail = detail
        return result

    async def _classify(self, event_id: str) -> Optional[BookingClassification]:
        """Best effort: the write must not wait on a calendar outage"""
        if self.calendar is None:
            return None
        try:
            event = BookableEvent.model_validate(
                await self.calendar.get_event(event_id, max_retries=CLASSIFY_MAX_RETRIES)
            )
        except CalendarUnavailableError as e:
            logger.warning(f"⚠️ Could not read calendar event {event_id} for classification: {e}")
            return None
        except ValidationError as e:
            logger.warning(f"⚠️ Calendar event {event_id} has an unexpected shape: {e}")
            return None
        return classify(event)

    async def _mutate_calendar(self, event_id: str, details: BookingDetails) -> bool:
        if self.mutator is None:
            logger.info("ℹ️ Calendar not configured, skipping calendar update")
            return False
        try:
            await self.mutator.mark_booked(event_id, details)
            return True
        except Exception as e:
            logger.warning(
                f"⚠️ Calendar update failed for {event_id} (registration {details.registration_id} is stored, "
                f"retry via calendar-sync): {e}"
            )
            return False

    async def _notify(self, registration: RegistrationRecord, document, metadata: CheckoutMetadata) -> bool:
        if self.notifier is None:
            return False
        try:
            sent = await self.notifier.notify_registration(
                registration,
                document,
                event_summary=metadata.event_summary,
                event_start=metadata.event_start,
            )
        except Exception as e:
            logger.warning(f"⚠️ Notification dispatch failed for {registration.id}: {e}")
            return False
        return bool(sent.get("guardian_sent") or sent.get("admin_sent"))
