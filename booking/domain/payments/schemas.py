"""Payment domain schemas - checkout notifications and webhook acknowledgements"""

import json
import logging
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ...exceptions import MalformedMetadataError
from ..registrations.schemas import Address, Player, RegistrationRecord

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
REQUIRED_METADATA = ("eventId", "eventType")


class CheckoutMetadata(BaseModel):
    """Booking correlation data attached to the checkout session"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    event_id: Optional[str] = Field(default=None, alias="eventId")
    event_type: Optional[str] = Field(default=None, alias="eventType")
    event_summary: Optional[str] = Field(default=None, alias="eventSummary")
    event_start: Optional[str] = Field(default=None, alias="eventStartDateTime")
    player_count: Optional[str] = Field(default=None, alias="playerCount")
    player_first_name: Optional[str] = Field(default=None, alias="playerFirstName")
    player_last_name: Optional[str] = Field(default=None, alias="playerLastName")
    player_date_of_birth: Optional[str] = Field(default=None, alias="playerDateOfBirth")
    player_age: Optional[str] = Field(default=None, alias="playerAge")
    player_level_of_play: Optional[str] = Field(default=None, alias="playerLevelOfPlay")
    players_data: Optional[str] = Field(default=None, alias="playersData")
    guardian_first_name: Optional[str] = Field(default=None, alias="guardianFirstName")
    guardian_last_name: Optional[str] = Field(default=None, alias="guardianLastName")
    guardian_email: Optional[str] = Field(default=None, alias="guardianEmail")
    guardian_phone: Optional[str] = Field(default=None, alias="guardianPhone")
    guardian_relationship: Optional[str] = Field(default=None, alias="guardianRelationship")
    emergency_contact_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("emergencyName", "emergencyContactName")
    )
    emergency_contact_phone: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("emergencyPhone", "emergencyContactPhone")
    )
    emergency_contact_relationship: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("emergencyRelationship", "emergencyContactRelationship")
    )
    medical_notes: Optional[str] = Field(default=None, alias="medicalNotes")
    slot_date: Optional[str] = Field(default=None, alias="slotDate")
    slot_time: Optional[str] = Field(default=None, alias="slotTime")
    address_street: Optional[str] = Field(default=None, alias="addressStreet")
    address_unit: Optional[str] = Field(default=None, alias="addressUnit")
    address_city: Optional[str] = Field(default=None, alias="addressCity")
    address_state: Optional[str] = Field(default=None, alias="addressState")
    address_zip: Optional[str] = Field(default=None, alias="addressZip")
    address_country: Optional[str] = Field(default=None, alias="addressCountry")

    def missing_required(self) -> list[str]:
        values = {"eventId": self.event_id, "eventType": self.event_type}
        return [name for name in REQUIRED_METADATA if not (values[name] or "").strip()]

    def require_booking_fields(self) -> None:
        missing = self.missing_required()
        if missing:
            raise MalformedMetadataError(missing)

    def players(self) -> list[Player]:
        """Players from the multi-player JSON field, else the single-player fields"""
        if self.players_data:
            try:
                return [Player.model_validate(p) for p in json.loads(self.players_data)]
            except (ValueError, TypeError) as e:
                logger.warning(f"⚠️ Could not parse playersData: {e}")
        if self.player_first_name or self.player_last_name:
            return [
                Player(
                    first_name=self.player_first_name or "",
                    last_name=self.player_last_name or "",
                    date_of_birth=self.player_date_of_birth,
                    level_of_play=self.player_level_of_play,
                )
            ]
        return []

    def parsed_player_count(self) -> int:
        try:
            count = int(self.player_count or 0)
        except ValueError:
            count = 0
        if count >= 1:
            return count
        return max(1, len(self.players()))

    def address(self) -> Optional[Address]:
        if not self.address_street:
            return None
        return Address(
            street=self.address_street,
            unit=self.address_unit or None,
            city=self.address_city or "",
            state=self.address_state or "",
            zip=self.address_zip or "",
            country=self.address_country or "USA",
        )


class CheckoutSession(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    amount_total: Optional[int] = None  # cents
    currency: Optional[str] = None
    livemode: bool = False
    payment_intent: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def amount_paid(self) -> Optional[Decimal]:
        if self.amount_total is None:
            return None
        return Decimal(self.amount_total) / 100

    def booking_metadata(self) -> CheckoutMetadata:
        return CheckoutMetadata.model_validate(self.metadata)

    def to_registration(self, metadata: CheckoutMetadata) -> RegistrationRecord:
        """The session id is the registration id, so replays are recognisable"""
        players = metadata.players()
        return RegistrationRecord(
            id=self.id,
            player_count=metadata.parsed_player_count(),
            player_first_name=metadata.player_first_name,
            player_last_name=metadata.player_last_name,
            player_date_of_birth=metadata.player_date_of_birth,
            player_age=metadata.player_age,
            player_level_of_play=metadata.player_level_of_play,
            players=players if metadata.players_data else None,
            guardian_first_name=metadata.guardian_first_name,
            guardian_last_name=metadata.guardian_last_name,
            guardian_email=metadata.guardian_email,
            guardian_phone=metadata.guardian_phone,
            guardian_relationship=metadata.guardian_relationship,
            emergency_contact_name=metadata.emergency_contact_name,
            emergency_contact_phone=metadata.emergency_contact_phone,
            emergency_contact_relationship=metadata.emergency_contact_relationship,
            medical_notes=metadata.medical_notes,
            address=metadata.address(),
            amount_paid=self.amount_paid,
            payment_id=self.payment_intent or self.id,
        )


class PaymentEventData(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    object: dict[str, Any] = Field(default_factory=dict)


class PaymentEvent(BaseModel):
    """Top-level webhook envelope"""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    livemode: bool = False
    data: PaymentEventData = Field(default_factory=PaymentEventData)


class Stage(str, Enum):
    RECEIVED = "received"
    SIGNATURE_VERIFIED = "signature_verified"
    METADATA_EXTRACTED = "metadata_extracted"
    REGISTRATION_WRITTEN = "registration_written"
    CALENDAR_MUTATED = "calendar_mutated"
    NOTIFIED = "notified"
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"


class Outcome(str, Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    IGNORED = "ignored"
    SOLD_OUT = "sold_out"
    REJECTED = "rejected"
    FAILED = "failed"


class AckResult(BaseModel):
    """What the webhook endpoint answers; only status_code matters to the gateway"""

    status_code: int = 200
    outcome: Outcome = Outcome.PROCESSED
    stages: list[Stage] = Field(default_factory=list)
    detail: Optional[str] = None
    registration_id: Optional[str] = None
    event_id: Optional[str] = None
