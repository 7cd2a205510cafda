"""
Calendar mutator - projects a committed registration onto the calendar

1. Append booking details to the event description
2. Move the event color from "available" to "booked"
3. Delete the paired time slot on the same day (at-home training only)

Runs after the registration is stored. Failures here are reported to the
caller but never undo the registration.
"""
import logging
from datetime import datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from ...config import CALENDAR_COLORS, CALENDAR_TIMEZONE, PAIRED_SLOT_BUCKETS
from ...exceptions import CalendarUnavailableError
from ..registrations.schemas import BookingType
from .classifier import categorize
from .client import GoogleCalendarClient
from .schemas import BookableEvent, BookingDetails, MarkBookedResult

logger = logging.getLogger(__name__)

BOOKING_DETAILS_HEADER = "=== BOOKING DETAILS ==="

# booking type -> (available color, booked color)
BOOKED_COLOR_TRANSITIONS: dict[BookingType, tuple[str, str]] = {
    BookingType.AT_HOME_TRAINING: (CALENDAR_COLORS["at_home_available"], CALENDAR_COLORS["at_home_booked"]),
    BookingType.MT_VERNON_SKATING: (CALENDAR_COLORS["mt_vernon_available"], CALENDAR_COLORS["mt_vernon_registered"]),
}

PAIRED_SLOT_TYPES = {BookingType.AT_HOME_TRAINING}


def registration_marker(registration_id: str) -> str:
    return f"Registration: {registration_id}"


def format_booking_details(details: BookingDetails) -> str:
    """Render the block appended to a booked event's description"""
    lines = [f"{BOOKING_DETAILS_HEADER}\n", registration_marker(details.registration_id)]
    if details.slot_time:
        lines.append(f"Slot: {details.slot_time}")
    lines.append("")

    if details.players:
        lines.append("PLAYERS:")
        for index, player in enumerate(details.players, start=1):
            lines.append(f"  {index}. {player.first_name} {player.last_name}")
            if player.date_of_birth:
                lines.append(f"     DOB: {player.date_of_birth}")
            if player.level_of_play:
                lines.append(f"     Level: {player.level_of_play}")
        lines.append("")

    lines.append("PARENT/GUARDIAN:")
    lines.append(f"  {details.guardian_first_name or ''} {details.guardian_last_name or ''}".rstrip())
    lines.append(f"  Email: {details.guardian_email or ''}")
    lines.append(f"  Phone: {details.guardian_phone or ''}")
    if details.guardian_relationship:
        lines.append(f"  Relationship: {details.guardian_relationship}")
    lines.append("")

    if details.booking_type == BookingType.AT_HOME_TRAINING and details.address:
        address = details.address
        unit = f" {address.unit}" if address.unit else ""
        lines.append("ADDRESS:")
        lines.append(f"  {address.street}{unit}")
        lines.append(f"  {address.city}, {address.state} {address.zip}")
        lines.append(f"  {address.country}")
        lines.append("")

    if details.emergency_contact_name or details.emergency_contact_phone:
        lines.append("EMERGENCY CONTACT:")
        if details.emergency_contact_name:
            lines.append(f"  Name: {details.emergency_contact_name}")
        if details.emergency_contact_phone:
            lines.append(f"  Phone: {details.emergency_contact_phone}")
        if details.emergency_contact_relationship:
            lines.append(f"  Relationship: {details.emergency_contact_relationship}")
        lines.append("")

    if details.medical_notes:
        lines.append("MEDICAL NOTES:")
        lines.append(f"  {details.medical_notes}")
        lines.append("")

    return "\n".join(lines)


def _bucket_hours(buckets: tuple[str, ...]) -> list[int]:
    return [int(bucket.split(":")[0]) for bucket in buckets]


def paired_bucket_hour(start_hour: int, buckets: tuple[str, ...] = PAIRED_SLOT_BUCKETS) -> Optional[int]:
    """
    Buckets pair up in order (first with second, third with fourth, ...).
    Returns the hour of the complementary bucket, or None when the start hour
    is not in any bucket.
    """
    hours = _bucket_hours(buckets)
    for index, hour in enumerate(hours):
        if hour == start_hour:
            partner = index ^ 1
            if partner < len(hours):
                return hours[partner]
    return None


class CalendarMutator:
    """Applies the booked-state projection to calendar events"""

    def __init__(
        self,
        client: GoogleCalendarClient,
        timezone: str = CALENDAR_TIMEZONE,
        paired_buckets: tuple[str, ...] = PAIRED_SLOT_BUCKETS,
    ):
        self.client = client
        self.timezone = timezone
        self.paired_buckets = paired_buckets

    async def mark_booked(self, event_id: str, details: BookingDetails) -> MarkBookedResult:
        """
        Safe to call again for the same registration: an event that already
        carries this registration's marker is not patched twice.

        Raises:
            CalendarUnavailableError: the event could not be read or patched
        """
        result = MarkBookedResult()
        transition = BOOKED_COLOR_TRANSITIONS.get(details.booking_type)
        if transition is None:
            logger.info(f"ℹ️ No calendar projection for {details.booking_type.value} event {event_id}")
            return result

        _, booked_color = transition
        event = BookableEvent.model_validate(await self.client.get_event(event_id))
        description = event.description or ""

        if registration_marker(details.registration_id) in description:
            logger.info(f"ℹ️ Event {event_id} already shows registration {details.registration_id}")
        else:
            block = format_booking_details(details)
            updated_description = f"{description}\n\n{block}" if description else block
            await self.client.patch_event(event_id, {"colorId": booked_color, "description": updated_description})
            result.event_updated = True
            logger.info(f"✅ Marked event {event_id} as booked (color {booked_color})")

        if details.booking_type in PAIRED_SLOT_TYPES:
            try:
                paired_id = await self.find_paired_slot(event)
                if paired_id:
                    await self.client.delete_event(paired_id)
                    result.paired_event_deleted = True
                    result.paired_event_id = paired_id
                    logger.info(f"✅ Deleted paired slot {paired_id} for booked event {event_id}")
            except CalendarUnavailableError as e:
                logger.warning(f"⚠️ Paired slot cleanup failed for {event_id}: {e}")

        return result

    async def find_paired_slot(self, booked: BookableEvent) -> Optional[str]:
        """
        Return the id of the single still-available at-home slot in the
        complementary bucket on the same day. Zero or several candidates
        means nothing is deleted.
        """
        start = booked.start.local(self.timezone)
        if start is None or booked.start.is_all_day:
            logger.info(f"ℹ️ Event {booked.id} has no start time, skipping paired slot")
            return None

        target_hour = paired_bucket_hour(start.hour, self.paired_buckets)
        if target_hour is None:
            logger.info(f"ℹ️ Event {booked.id} starts at {start:%H:%M}, outside paired buckets")
            return None

        zone = ZoneInfo(self.timezone)
        day_start = datetime.combine(start.date(), time.min, tzinfo=zone)
        page = await self.client.list_events(time_min=day_start, time_max=day_start + timedelta(days=1))

        available_color, _ = BOOKED_COLOR_TRANSITIONS[BookingType.AT_HOME_TRAINING]
        candidates = []
        for item in page.items:
            event = BookableEvent.model_validate(item)
            if event.id == booked.id or event.status == "cancelled":
                continue
            if event.color_id != available_color:
                continue
            if categorize(event) != BookingType.AT_HOME_TRAINING:
                continue
            event_start = event.start.local(self.timezone)
            if event_start is None or event.start.is_all_day or event_start.date() != start.date():
                continue
            if event_start.hour == target_hour:
                candidates.append(event.id)

        if len(candidates) != 1:
            logger.info(
                f"ℹ️ Found {len(candidates)} paired slot candidates for {booked.id} at {target_hour}:00, leaving calendar as is"
            )
            return None
        return candidates[0]
