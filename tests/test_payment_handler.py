import json
import time

import httpx
import pytest
from conftest import TIMEZONE, WEBHOOK_SECRET, checkout_payload, make_event, sign

from booking.domain.calendar.client import GoogleCalendarClient, ServiceAccountTokenProvider
from booking.domain.calendar.mutator import CalendarMutator
from booking.domain.calendar.schemas import BookingDetails
from booking.domain.payments.handler import PaymentEventHandler
from booking.domain.payments.schemas import Outcome, Stage
from booking.domain.registrations.schemas import BookingType, CapacitySource

SLOT_ID = "slot-1530"


@pytest.fixture
def at_home_slot(calendar):
    calendar.add(
        make_event(
            SLOT_ID,
            summary="At Home Training",
            color_id="6",
            description="Price: $95",
            start="2026-03-10T15:30:00-04:00",
        )
    )
    return SLOT_ID


async def deliver(handler, payload: bytes, secret: str = WEBHOOK_SECRET, timestamp=None):
    return await handler.handle(payload, sign(payload, secret, timestamp))


class TestSignature:
    @pytest.mark.asyncio
    async def test_wrong_secret_is_rejected(self, handler, s3):
        payload = checkout_payload("cs_1", SLOT_ID, "at_home_training")
        result = await deliver(handler, payload, secret="whsec_wrong")
        assert result.status_code == 400
        assert result.outcome == Outcome.REJECTED
        assert Stage.REJECTED in result.stages
        assert s3.objects == {}

    @pytest.mark.asyncio
    async def test_stale_delivery_is_rejected(self, handler):
        payload = checkout_payload("cs_1", SLOT_ID, "at_home_training")
        result = await deliver(handler, payload, timestamp=int(time.time()) - 3600)
        assert result.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_header(self, handler):
        result = await handler.handle(checkout_payload("cs_1", SLOT_ID, "at_home_training"), None)
        assert result.status_code == 400


class TestCheckoutCompleted:
    @pytest.mark.asyncio
    async def test_happy_path(self, handler, at_home_slot, calendar, capacity_store, notifier):
        result = await deliver(handler, checkout_payload("cs_1", at_home_slot, "at_home_training"))

        assert result.status_code == 200
        assert result.outcome == Outcome.PROCESSED
        assert result.stages == [
            Stage.RECEIVED,
            Stage.SIGNATURE_VERIFIED,
            Stage.METADATA_EXTRACTED,
            Stage.REGISTRATION_WRITTEN,
            Stage.CALENDAR_MUTATED,
            Stage.NOTIFIED,
            Stage.ACKNOWLEDGED,
        ]

        document = capacity_store.get(at_home_slot)
        assert document.current_registrations == 1
        assert document.max_capacity == 1
        stored = document.registrations[0]
        assert stored.id == "cs_1"
        assert stored.payment_id == "pi_cs_1"
        assert str(stored.amount_paid) == "95"
        assert stored.emergency_contact_name == "Jordan Skater"

        assert calendar.events[at_home_slot]["colorId"] == "5"
        assert "Registration: cs_1" in calendar.events[at_home_slot]["description"]
        assert len(notifier.registrations) == 1

    @pytest.mark.asyncio
    async def test_replayed_delivery_is_duplicate(self, handler, at_home_slot, calendar, capacity_store, notifier):
        """The gateway redelivers the same session; nothing happens twice"""
        payload = checkout_payload("cs_1", at_home_slot, "at_home_training")
        await deliver(handler, payload)
        calendar.calls.clear()

        result = await deliver(handler, payload)
        assert result.status_code == 200
        assert result.outcome == Outcome.DUPLICATE
        assert Stage.REGISTRATION_WRITTEN not in result.stages
        assert capacity_store.get(at_home_slot).current_registrations == 1
        assert len(notifier.registrations) == 1
        assert ("patch", at_home_slot) not in calendar.calls

    @pytest.mark.asyncio
    async def test_calendar_outage_keeps_registration(self, handler, mutator, at_home_slot, calendar, capacity_store):
        calendar.unavailable = True
        result = await deliver(handler, checkout_payload("cs_1", at_home_slot, "at_home_training"))

        assert result.status_code == 200
        assert result.outcome == Outcome.PROCESSED
        assert Stage.REGISTRATION_WRITTEN in result.stages
        assert Stage.CALENDAR_MUTATED not in result.stages
        document = capacity_store.get(at_home_slot)
        assert document.current_registrations == 1
        assert calendar.events[at_home_slot]["colorId"] == "6"

        # Manual re-run once the calendar is back
        calendar.unavailable = False
        details = BookingDetails.from_registration(document.registrations[0], BookingType.AT_HOME_TRAINING)
        repaired = await mutator.mark_booked(at_home_slot, details)
        assert repaired.event_updated is True
        assert calendar.events[at_home_slot]["colorId"] == "5"
        assert "Sam Skater" in calendar.events[at_home_slot]["description"]

    @pytest.mark.asyncio
    async def test_paid_after_sold_out_raises_alert(self, handler, at_home_slot, capacity_store, notifier):
        await deliver(handler, checkout_payload("cs_1", at_home_slot, "at_home_training"))
        result = await deliver(handler, checkout_payload("cs_2", at_home_slot, "at_home_training"))

        assert result.status_code == 200
        assert result.outcome == Outcome.SOLD_OUT
        assert notifier.oversells == [("cs_2", at_home_slot, 1, 1)]
        assert [r.id for r in capacity_store.get(at_home_slot).registrations] == ["cs_1"]

    @pytest.mark.asyncio
    async def test_store_failure_asks_for_retry(self, handler, at_home_slot, s3, notifier):
        s3.fail_writes = True
        result = await deliver(handler, checkout_payload("cs_1", at_home_slot, "at_home_training"))
        assert result.status_code == 500
        assert result.outcome == Outcome.FAILED
        assert notifier.registrations == []

    @pytest.mark.asyncio
    async def test_email_failure_is_acknowledged(self, handler, at_home_slot, notifier):
        notifier.fail = True
        result = await deliver(handler, checkout_payload("cs_1", at_home_slot, "at_home_training"))
        assert result.status_code == 200
        assert Stage.NOTIFIED not in result.stages

    @pytest.mark.asyncio
    async def test_unknown_event_type_uses_calendar_classification(self, handler, calendar, capacity_store):
        calendar.add(make_event("lesson-1", summary="Group Lesson", color_id="9", description="Price: $40\nSpots: 4"))
        result = await deliver(handler, checkout_payload("cs_1", "lesson-1", "hockey_party"))

        assert result.outcome == Outcome.PROCESSED
        document = capacity_store.get("lesson-1")
        assert document.event_type == BookingType.LESSON
        assert document.max_capacity == 4
        assert document.capacity_source == CapacitySource.DESCRIPTION

    @pytest.mark.asyncio
    async def test_multi_player_booking(self, handler, calendar, capacity_store):
        calendar.add(make_event("lesson-1", summary="Group Lesson", color_id="9", description="Price: $40"))
        players = [{"firstName": "Sam", "lastName": "Skater"}, {"firstName": "Riley", "lastName": "Skater"}]
        payload = checkout_payload("cs_1", "lesson-1", "lesson", playerCount="2", playersData=json.dumps(players))
        await deliver(handler, payload)

        document = capacity_store.get("lesson-1")
        assert document.current_registrations == 2
        assert [p.first_name for p in document.registrations[0].players] == ["Sam", "Riley"]


class TestSkippedDeliveries:
    @pytest.mark.asyncio
    async def test_other_event_types_are_ignored(self, handler, s3):
        payload = checkout_payload("cs_1", SLOT_ID, "lesson", event_kind="payment_intent.succeeded")
        result = await deliver(handler, payload)
        assert result.status_code == 200
        assert result.outcome == Outcome.IGNORED
        assert s3.objects == {}

    @pytest.mark.asyncio
    async def test_missing_booking_metadata(self, handler, s3):
        result = await deliver(handler, checkout_payload("cs_1", None, "lesson"))
        assert result.status_code == 200
        assert result.outcome == Outcome.SKIPPED
        assert "eventId" in result.detail
        assert s3.objects == {}

    @pytest.mark.asyncio
    async def test_unreadable_body(self, handler):
        result = await deliver(handler, b"not json at all")
        assert result.status_code == 200
        assert result.outcome == Outcome.SKIPPED

    @pytest.mark.asyncio
    async def test_test_mode_payment_in_production(self, registration_service, calendar, mutator, notifier, s3):
        handler = PaymentEventHandler(
            registration_service,
            calendar=calendar,
            mutator=mutator,
            notifier=notifier,
            secret=WEBHOOK_SECRET,
            process_test_payments=False,
        )
        result = await deliver(handler, checkout_payload("cs_test_1", SLOT_ID, "at_home_training", livemode=False))
        assert result.outcome == Outcome.SKIPPED
        assert s3.objects == {}


class TestGoogleUnreachable:
    """Real calendar client with no route to Google at all"""

    @pytest.mark.asyncio
    async def test_booking_is_stored_without_calendar(
        self, registration_service, capacity_store, notifier, service_account_key
    ):
        attempted_hosts = []

        def no_network(request):
            attempted_hosts.append(request.url.host)
            raise httpx.ConnectError("network is unreachable", request=request)

        client = GoogleCalendarClient(
            token_provider=ServiceAccountTokenProvider(key_json=service_account_key, subject="coach@example.com"),
            calendar_id="coach@example.com",
            http=httpx.AsyncClient(transport=httpx.MockTransport(no_network)),
            max_retries=1,
            backoff_base=0,
        )
        handler = PaymentEventHandler(
            registration_service,
            calendar=client,
            mutator=CalendarMutator(client, timezone=TIMEZONE, paired_buckets=("15:30", "17:00")),
            notifier=notifier,
            secret=WEBHOOK_SECRET,
            process_test_payments=True,
        )

        result = await deliver(handler, checkout_payload("cs_1", SLOT_ID, "at_home_training", slotTime="3:30 PM"))

        assert result.status_code == 200
        assert result.outcome == Outcome.PROCESSED
        assert Stage.REGISTRATION_WRITTEN in result.stages
        assert Stage.CALENDAR_MUTATED not in result.stages
        document = capacity_store.get(SLOT_ID)
        assert [r.id for r in document.registrations] == ["cs_1"]
        assert document.max_capacity == 1
        assert len(notifier.registrations) == 1
        # One attempt for classification before the write, two for the calendar update
        assert attempted_hosts == ["oauth2.googleapis.com"] * 3
