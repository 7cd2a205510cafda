"""Registration domain schemas - Pydantic models for stored capacity documents"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BookingType(str, Enum):
    CAMP = "camp"
    LESSON = "lesson"
    AT_HOME_TRAINING = "at_home_training"
    MT_VERNON_SKATING = "mt_vernon_skating"
    ROCKVILLE_SMALL_GROUP = "rockville_small_group"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["BookingType"]:
        """Return the matching type, or None for unknown/empty values"""
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class RegistrationStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class CapacitySource(str, Enum):
    ADMIN = "admin"
    DESCRIPTION = "description"
    DEFAULT = "default"


class CamelModel(BaseModel):
    """Stored documents use camelCase keys"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Player(CamelModel):
    first_name: str = ""
    last_name: str = ""
    date_of_birth: Optional[str] = None
    level_of_play: Optional[str] = None


class Address(CamelModel):
    street: str = ""
    unit: Optional[str] = None
    city: str = ""
    state: str = ""
    zip: str = ""
    country: str = "USA"


class RegistrationRecord(CamelModel):
    """One paid registration; id is the payment session id"""

    id: str
    timestamp: datetime = Field(default_factory=utcnow)
    player_count: int = 1
    player_first_name: Optional[str] = None
    player_last_name: Optional[str] = None
    player_date_of_birth: Optional[str] = None
    player_age: Optional[str] = None
    player_level_of_play: Optional[str] = None
    players: Optional[list[Player]] = None
    guardian_first_name: Optional[str] = None
    guardian_last_name: Optional[str] = None
    guardian_email: Optional[str] = None
    guardian_phone: Optional[str] = None
    guardian_relationship: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    emergency_contact_relationship: Optional[str] = None
    medical_notes: Optional[str] = None
    address: Optional[Address] = None
    amount_paid: Optional[Decimal] = None
    payment_id: Optional[str] = None
    status: RegistrationStatus = RegistrationStatus.CONFIRMED
    updated_at: Optional[datetime] = None

    @field_validator("player_count")
    @classmethod
    def validate_player_count(cls, v: int) -> int:
        if v < 1:
            raise ValueError("player_count must be at least 1")
        return v

    @property
    def counts_toward_capacity(self) -> bool:
        return self.status != RegistrationStatus.CANCELLED

    @property
    def display_name(self) -> str:
        if self.players:
            return ", ".join(f"{p.first_name} {p.last_name}".strip() for p in self.players)
        return f"{self.player_first_name or ''} {self.player_last_name or ''}".strip()


class CapacityDocument(CamelModel):
    """Per-event registration tracking document (registrations/<eventId>.json)"""

    event_id: str
    event_type: Optional[BookingType] = None
    max_capacity: Optional[int] = None
    capacity_source: Optional[CapacitySource] = None
    current_registrations: int = 0
    registrations: list[RegistrationRecord] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def empty(cls, event_id: str) -> "CapacityDocument":
        """Zero-value document: capacity unset, no registrations"""
        return cls(event_id=event_id)

    @property
    def exists(self) -> bool:
        return self.created_at is not None

    def find_registration(self, registration_id: str) -> Optional[RegistrationRecord]:
        for registration in self.registrations:
            if registration.id == registration_id:
                return registration
        return None

    def recompute(self) -> None:
        """Derive current_registrations from the full list, never incrementally"""
        self.current_registrations = sum(
            r.player_count for r in self.registrations if r.counts_toward_capacity
        )

    @property
    def remaining_spots(self) -> Optional[int]:
        if self.max_capacity is None:
            return None
        return max(0, self.max_capacity - self.current_registrations)

    def to_storage(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class RegistrationUpdate(BaseModel):
    """Admin correction of a stored registration"""

    player_count: Optional[int] = None
    status: Optional[RegistrationStatus] = None
    guardian_email: Optional[str] = None
    guardian_phone: Optional[str] = None
    medical_notes: Optional[str] = None

    @field_validator("player_count")
    @classmethod
    def validate_player_count(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError("player_count must be at least 1")
        return v


class CapacityUpdate(BaseModel):
    max_capacity: int

    @field_validator("max_capacity")
    @classmethod
    def validate_max_capacity(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_capacity must be at least 1")
        return v


class AvailabilityResponse(BaseModel):
    event_id: str
    max_capacity: Optional[int] = None
    current_registrations: int = 0
    remaining_spots: Optional[int] = None
    is_sold_out: bool = False
