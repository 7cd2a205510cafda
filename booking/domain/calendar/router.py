"""Calendar router - public event listing enriched with registration state"""

import logging
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

from ...config import CALENDAR_TIMEZONE, is_production
from ...dependencies import get_capacity_store, require_calendar
from ...exceptions import CalendarEventNotFoundError, CalendarRequestError, CalendarUnavailableError
from ..registrations.repository import CapacityStore, is_unlimited, resolve_capacity
from ..registrations.schemas import BookingType, CapacityDocument
from .classifier import classify
from .client import CalendarSyncSession, GoogleCalendarClient
from .mutator import BOOKED_COLOR_TRANSITIONS
from .schemas import BookableEvent, BookingClassification, RegistrationData

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["Calendar"])


def month_range(year: int, month: int, tz: str = CALENDAR_TIMEZONE) -> tuple[datetime, datetime]:
    zone = ZoneInfo(tz)
    start = datetime(year, month, 1, tzinfo=zone)
    end = datetime(year + 1, 1, 1, tzinfo=zone) if month == 12 else datetime(year, month + 1, 1, tzinfo=zone)
    return start, end


def registration_data_for(
    event: BookableEvent,
    classification: BookingClassification,
    document: CapacityDocument,
    degraded: bool = False,
) -> RegistrationData:
    """
    Combine the event's own configuration with the stored counts.
    Capacity follows the same priority as writes: admin, description, default.
    """
    booking_type = classification.booking_type
    max_capacity, _ = resolve_capacity(document, booking_type, classification.capacity_hint)
    current = document.current_registrations

    if is_unlimited(booking_type):
        remaining = None
        sold_out = classification.marked_full
    else:
        remaining = max(0, max_capacity - current)
        sold_out = classification.marked_full or current >= max_capacity

    # Slot-style events are booked once their color flips
    transition = BOOKED_COLOR_TRANSITIONS.get(booking_type)
    if transition and event.color_id == transition[1]:
        sold_out = True
        remaining = 0

    return RegistrationData(
        booking_type=booking_type,
        price=classification.price,
        max_capacity=max_capacity,
        current_registrations=current,
        remaining_spots=remaining,
        is_sold_out=sold_out,
        registration_enabled=classification.registration_enabled,
        degraded=degraded,
    )


def enrich_event(raw: dict, store: CapacityStore) -> Optional[dict]:
    """Attach eventType and registrationData; None for events hidden from the public"""
    try:
        event = BookableEvent.model_validate(raw)
    except ValidationError as e:
        logger.warning(f"⚠️ Skipping unreadable calendar event {raw.get('id')}: {e}")
        return None

    classification = classify(event)
    if classification.dev_only and is_production():
        return None

    result = store.fetch(event.id)
    if result.ok:
        document, degraded = result.document, False
    else:
        logger.warning(f"⚠️ Registration data unavailable for {event.id}, showing defaults: {result.error}")
        document, degraded = CapacityDocument.empty(event.id), True

    data = registration_data_for(event, classification, document, degraded)
    return {
        **raw,
        "eventType": classification.booking_type.value,
        "registrationData": data.model_dump(mode="json", by_alias=True),
    }


def _calendar_http_error(e: CalendarUnavailableError) -> HTTPException:
    if isinstance(e, CalendarRequestError):
        if e.status_code in (401, 403):
            return HTTPException(status_code=401, detail="Authentication failed - check service account permissions")
        if e.status_code == 404:
            return HTTPException(status_code=404, detail="Calendar not found")
    return HTTPException(status_code=502, detail="Failed to fetch calendar events")


@router.get("/events")
async def list_events(
    type: Optional[str] = Query(default=None),
    month: Optional[int] = Query(default=None, ge=1, le=12),
    year: Optional[int] = Query(default=None, ge=2000, le=2100),
    sync_token: Optional[str] = Query(default=None, alias="syncToken"),
    client: GoogleCalendarClient = Depends(require_calendar),
    store: CapacityStore = Depends(get_capacity_store),
):
    """
    Upcoming events (or one month of events), optionally filtered by booking
    type. Pass the previous nextSyncToken to receive only changed events.
    """
    booking_type = None
    if type:
        booking_type = BookingType.parse(type)
        if booking_type is None:
            raise HTTPException(status_code=400, detail=f"Unknown event type: {type}")

    if month and year:
        time_min, time_max = month_range(year, month)
    else:
        time_min, time_max = datetime.now(timezone.utc), None

    session = CalendarSyncSession(client, sync_token=sync_token)
    try:
        items = await session.fetch(time_min=time_min, time_max=time_max)
    except CalendarUnavailableError as e:
        logger.error(f"❌ Calendar API error: {str(e)}")
        raise _calendar_http_error(e)

    events = []
    for raw in items:
        if raw.get("status") == "cancelled":
            # Incremental listings report deletions so the caller can drop them
            if sync_token:
                events.append(raw)
            continue
        enriched = enrich_event(raw, store)
        if enriched is None:
            continue
        if booking_type and enriched["eventType"] != booking_type.value:
            continue
        events.append(enriched)

    return {
        "events": events,
        "total": len(events),
        "nextSyncToken": session.sync_token,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/events/{event_id}")
async def get_event(
    event_id: str,
    client: GoogleCalendarClient = Depends(require_calendar),
    store: CapacityStore = Depends(get_capacity_store),
):
    try:
        raw = await client.get_event(event_id)
    except CalendarEventNotFoundError:
        raise HTTPException(status_code=404, detail="Event not found")
    except CalendarUnavailableError as e:
        logger.error(f"❌ Calendar API error for {event_id}: {str(e)}")
        raise _calendar_http_error(e)

    enriched = enrich_event(raw, store)
    if enriched is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return enriched
