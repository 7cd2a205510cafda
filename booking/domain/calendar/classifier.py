"""
Event classification

Turns a calendar event into a booking type, price and capacity hint.
Operators configure bookings by choosing an event color and writing
"Price: $N" / "Spots: N" into the description, so all of that parsing
lives here behind `DescriptionParser`.

Resolution order for the booking type (first match wins):
1. extendedProperties.shared.eventType, if it names a known type
2. Program keywords in the title (checked before color: booked Mt Vernon
   slots share the yellow color with booked at-home slots)
3. Color table
4. Generic title keywords
5. "other"
"""
import logging
import re
from decimal import Decimal, InvalidOperation
from typing import Optional

from ...config import (
    CALENDAR_COLORS,
    MAX_DESCRIPTION_CAPACITY,
    MIN_DESCRIPTION_CAPACITY,
)
from ..registrations.schemas import BookingType
from .schemas import BookableEvent, BookingClassification

logger = logging.getLogger(__name__)

PROGRAM_KEYWORDS: tuple[tuple[str, BookingType], ...] = (
    ("mount vernon skating", BookingType.MT_VERNON_SKATING),
    ("mt vernon skating", BookingType.MT_VERNON_SKATING),
    ("mt. vernon skating", BookingType.MT_VERNON_SKATING),
    ("rockville small group", BookingType.ROCKVILLE_SMALL_GROUP),
)

COLOR_TO_BOOKING_TYPE: dict[str, BookingType] = {
    CALENDAR_COLORS["camp"]: BookingType.CAMP,
    CALENDAR_COLORS["lesson"]: BookingType.LESSON,
    CALENDAR_COLORS["at_home_available"]: BookingType.AT_HOME_TRAINING,
    CALENDAR_COLORS["at_home_booked"]: BookingType.AT_HOME_TRAINING,
    CALENDAR_COLORS["mt_vernon_available"]: BookingType.MT_VERNON_SKATING,
    CALENDAR_COLORS["rockville_small_group"]: BookingType.ROCKVILLE_SMALL_GROUP,
}

GENERIC_KEYWORDS: tuple[tuple[tuple[str, ...], BookingType], ...] = (
    (("camp",), BookingType.CAMP),
    (("lesson",), BookingType.LESSON),
    (("at home", "training"), BookingType.AT_HOME_TRAINING),
)


class DescriptionParser:
    """Regex cascade over the free-text event description"""

    # "Price: $350", "Cost: 25.00"
    LABELLED_PRICE = re.compile(r"(?:price|cost):\s*\$?(\d+(?:\.\d{2})?)", re.IGNORECASE)
    # Standalone "$350" or "$350.00"
    BARE_PRICE = re.compile(r"\$(\d+(?:\.\d{2})?)")
    # "Spots: 25", "Slot: 2", "Capacity: 15"
    CAPACITY = re.compile(r"(?:spots?|capacity|slots?):\s*(\d+)", re.IGNORECASE)
    MARKED_FULL = re.compile(r"spots:\s*full", re.IGNORECASE)

    def parse_price(self, description: Optional[str]) -> Optional[Decimal]:
        if not description:
            return None
        for pattern in (self.LABELLED_PRICE, self.BARE_PRICE):
            match = pattern.search(description)
            if match:
                try:
                    return Decimal(match.group(1))
                except InvalidOperation:
                    return None
        return None

    def parse_capacity(self, description: Optional[str]) -> Optional[int]:
        if not description:
            return None
        match = self.CAPACITY.search(description)
        if not match:
            return None
        spots = int(match.group(1))
        if MIN_DESCRIPTION_CAPACITY <= spots <= MAX_DESCRIPTION_CAPACITY:
            return spots
        # Probable typo; caller falls back to the type default
        return None

    def is_marked_full(self, description: Optional[str]) -> bool:
        return bool(description and self.MARKED_FULL.search(description))


default_parser = DescriptionParser()


def categorize(event: BookableEvent) -> BookingType:
    """Resolve the booking type only"""
    explicit = BookingType.parse(event.shared_properties.get("eventType"))
    if explicit is not None:
        return explicit

    title = (event.summary or "").lower()
    for keyword, booking_type in PROGRAM_KEYWORDS:
        if keyword in title:
            return booking_type

    if event.color_id and event.color_id in COLOR_TO_BOOKING_TYPE:
        return COLOR_TO_BOOKING_TYPE[event.color_id]

    for keywords, booking_type in GENERIC_KEYWORDS:
        if any(keyword in title for keyword in keywords):
            return booking_type

    return BookingType.OTHER


def classify(event: BookableEvent, parser: DescriptionParser = default_parser) -> BookingClassification:
    """
    Classify a calendar event. Pure and total: never raises, never does I/O.
    """
    try:
        return BookingClassification(
            booking_type=categorize(event),
            price=parser.parse_price(event.description),
            capacity_hint=parser.parse_capacity(event.description),
            marked_full=parser.is_marked_full(event.description),
            dev_only=event.color_id == CALENDAR_COLORS["dev_only"],
        )
    except Exception as e:
        logger.warning(f"⚠️ Could not classify event {getattr(event, 'id', '?')}: {e}")
        return BookingClassification(booking_type=BookingType.OTHER)
