"""Calendar domain schemas - Google Calendar v3 event shapes"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field

from ..registrations.schemas import Address, BookingType, Player, RegistrationRecord


class EventTime(BaseModel):
    """Either a timed (dateTime) or all-day (date) boundary"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date_time: Optional[datetime] = Field(default=None, alias="dateTime")
    all_day_date: Optional[date] = Field(default=None, alias="date")
    time_zone: Optional[str] = Field(default=None, alias="timeZone")

    @property
    def is_all_day(self) -> bool:
        return self.date_time is None

    def local(self, tz: str) -> Optional[datetime]:
        """Start of this boundary in the given time zone"""
        zone = ZoneInfo(tz)
        if self.date_time is not None:
            if self.date_time.tzinfo is None:
                return self.date_time.replace(tzinfo=zone)
            return self.date_time.astimezone(zone)
        if self.all_day_date is not None:
            return datetime.combine(self.all_day_date, time.min, tzinfo=zone)
        return None


class ExtendedProperties(BaseModel):
    model_config = ConfigDict(extra="ignore")

    shared: dict[str, str] = Field(default_factory=dict)
    private: dict[str, str] = Field(default_factory=dict)


class BookableEvent(BaseModel):
    """A calendar event as returned by the provider; read-only to this service"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    summary: str = ""
    description: Optional[str] = None
    color_id: Optional[str] = Field(default=None, alias="colorId")
    start: EventTime = Field(default_factory=EventTime)
    end: EventTime = Field(default_factory=EventTime)
    extended_properties: Optional[ExtendedProperties] = Field(default=None, alias="extendedProperties")
    status: Optional[str] = None

    @property
    def shared_properties(self) -> dict[str, str]:
        if self.extended_properties is None:
            return {}
        return self.extended_properties.shared


class BookingClassification(BaseModel):
    """Derived on every read; never written back to the calendar"""

    booking_type: BookingType
    price: Optional[Decimal] = None
    capacity_hint: Optional[int] = None
    marked_full: bool = False
    dev_only: bool = False

    @property
    def registration_enabled(self) -> bool:
        # An explicit price is the only switch that turns registration on
        return self.price is not None


class BookingDetails(BaseModel):
    """What gets rendered into the calendar description once a slot is booked"""

    registration_id: str
    booking_type: BookingType
    players: list[Player] = Field(default_factory=list)
    guardian_first_name: Optional[str] = None
    guardian_last_name: Optional[str] = None
    guardian_email: Optional[str] = None
    guardian_phone: Optional[str] = None
    guardian_relationship: Optional[str] = None
    address: Optional[Address] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    emergency_contact_relationship: Optional[str] = None
    medical_notes: Optional[str] = None
    slot_time: Optional[str] = None

    @classmethod
    def from_registration(
        cls, registration: RegistrationRecord, booking_type: BookingType, slot_time: Optional[str] = None
    ) -> "BookingDetails":
        players = registration.players
        if not players and (registration.player_first_name or registration.player_last_name):
            players = [
                Player(
                    first_name=registration.player_first_name or "",
                    last_name=registration.player_last_name or "",
                    date_of_birth=registration.player_date_of_birth,
                    level_of_play=registration.player_level_of_play,
                )
            ]
        return cls(
            registration_id=registration.id,
            booking_type=booking_type,
            players=players or [],
            guardian_first_name=registration.guardian_first_name,
            guardian_last_name=registration.guardian_last_name,
            guardian_email=registration.guardian_email,
            guardian_phone=registration.guardian_phone,
            guardian_relationship=registration.guardian_relationship,
            address=registration.address,
            emergency_contact_name=registration.emergency_contact_name,
            emergency_contact_phone=registration.emergency_contact_phone,
            emergency_contact_relationship=registration.emergency_contact_relationship,
            medical_notes=registration.medical_notes,
            slot_time=slot_time,
        )


class MarkBookedResult(BaseModel):
    event_updated: bool = False
    paired_event_deleted: bool = False
    paired_event_id: Optional[str] = None


class RegistrationData(BaseModel):
    """Read-path enrichment attached to each listed event"""

    model_config = ConfigDict(populate_by_name=True)

    booking_type: BookingType = Field(serialization_alias="eventType")
    price: Optional[Decimal] = None
    max_capacity: Optional[int] = Field(default=None, serialization_alias="maxCapacity")
    current_registrations: int = Field(default=0, serialization_alias="currentRegistrations")
    remaining_spots: Optional[int] = Field(default=None, serialization_alias="remainingSpots")
    is_sold_out: bool = Field(default=False, serialization_alias="isSoldOut")
    registration_enabled: bool = Field(default=False, serialization_alias="registrationEnabled")
    degraded: bool = False
