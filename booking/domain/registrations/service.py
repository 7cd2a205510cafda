"""Registration service - Business logic for recording and managing registrations"""

import logging
from typing import Optional

from ...cache import RegistrationCache
from ...exceptions import SoldOutError
from .repository import CapacityStore, RegistrationOutcome, is_unlimited
from .schemas import (
    AvailabilityResponse,
    BookingType,
    CapacityDocument,
    RegistrationRecord,
    RegistrationUpdate,
)

logger = logging.getLogger(__name__)


class RegistrationService:
    """Service layer between the payment/admin surfaces and the capacity store"""

    def __init__(self, store: CapacityStore, cache: Optional[RegistrationCache] = None):
        self.store = store
        self.cache = cache

    def record(
        self,
        event_id: str,
        event_type: BookingType,
        registration: RegistrationRecord,
        custom_capacity: Optional[int] = None,
    ) -> RegistrationOutcome:
        """
        Persist one paid registration.

        Replays of the same payment are reported through
        `RegistrationOutcome.already_applied` so callers can skip side effects.
        Cache write-through and stats only run for a new registration.

        Raises:
            SoldOutError: the event filled up before this payment landed
            StoreUnavailableError: nothing was committed; the caller should fail
        """
        logger.info(
            f"📥 Recording registration {registration.id} for event {event_id} "
            f"({event_type.value}, {registration.player_count} player(s))"
        )
        outcome = self.store.record_registration(
            event_id,
            event_type,
            registration,
            player_count=registration.player_count,
            custom_capacity=custom_capacity,
        )

        if outcome.already_applied:
            return outcome

        if self.cache is not None:
            self.cache.mirror(event_id, outcome.document)
            self.cache.increment_stats(registration)
        return outcome

    def check_availability(self, event_id: str, players: int = 1) -> AvailabilityResponse:
        """
        Pre-payment check used by the checkout page.

        Raises:
            SoldOutError: fewer than `players` spots remain
        """
        document = self.store.get(event_id)
        availability = self.availability_for(document)

        if document.max_capacity and not is_unlimited(document.event_type):
            if document.current_registrations + players > document.max_capacity:
                logger.info(
                    f"🚫 Event {event_id} cannot take {players} more player(s) "
                    f"({document.current_registrations}/{document.max_capacity})"
                )
                raise SoldOutError(event_id, document.current_registrations, document.max_capacity)
        return availability

    @staticmethod
    def availability_for(document: CapacityDocument) -> AvailabilityResponse:
        unlimited = is_unlimited(document.event_type)
        return AvailabilityResponse(
            event_id=document.event_id,
            max_capacity=document.max_capacity,
            current_registrations=document.current_registrations,
            remaining_spots=None if unlimited else document.remaining_spots,
            is_sold_out=bool(
                document.max_capacity
                and not unlimited
                and document.current_registrations >= document.max_capacity
            ),
        )

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def list_documents(self) -> list[CapacityDocument]:
        return self.store.list_all()

    def get_document(self, event_id: str) -> CapacityDocument:
        return self.store.get(event_id)

    def set_capacity(self, event_id: str, max_capacity: int) -> CapacityDocument:
        logger.info(f"🔄 Admin capacity override for {event_id}: {max_capacity}")
        document = self.store.update_capacity(event_id, max_capacity)
        self._refresh_cache(event_id, document)
        return document

    def update_registration(
        self, event_id: str, registration_id: str, data: RegistrationUpdate
    ) -> CapacityDocument:
        updates = data.model_dump(exclude_none=True)
        logger.info(f"🔄 Updating registration {registration_id} on {event_id}: {sorted(updates)}")
        document = self.store.update_registration(event_id, registration_id, updates)
        self._refresh_cache(event_id, document)
        return document

    def delete_registration(self, event_id: str, registration_id: str) -> CapacityDocument:
        logger.info(f"🗑️ Deleting registration {registration_id} from {event_id}")
        document = self.store.delete_registration(event_id, registration_id)
        self._refresh_cache(event_id, document)
        return document

    def _refresh_cache(self, event_id: str, document: CapacityDocument) -> None:
        if self.cache is None:
            return
        self.cache.invalidate(event_id)
        self.cache.mirror(event_id, document)
