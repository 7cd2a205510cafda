"""
Capacity store - one JSON document per calendar event in the object store

The calendar provider knows nothing about registrations; this store is the
only source of truth for counts and sold-out state.

Every write is a conditional put against the ETag captured by the read that
preceded it. When another writer lands first the whole read-check-write cycle
is replayed against fresh state, so two buyers racing for the last spot
cannot both pass the sold-out check.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ...config import DEFAULT_CAPACITY, REGISTRATIONS_PREFIX, UNLIMITED_CAPACITY_TYPES
from ...exceptions import (
    CapacityNotInitializedError,
    RegistrationNotFoundError,
    SoldOutError,
    StoreUnavailableError,
    WriteConflictError,
)
from ...storage import ObjectStore
from .schemas import (
    BookingType,
    CapacityDocument,
    CapacitySource,
    RegistrationRecord,
    utcnow,
)

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 5


@dataclass
class StoreResult:
    """Outcome of a read: a document, or the error that prevented reading it"""

    document: Optional[CapacityDocument] = None
    etag: Optional[str] = None
    error: Optional[StoreUnavailableError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class RegistrationOutcome:
    document: CapacityDocument
    already_applied: bool = False


def document_key(event_id: str) -> str:
    return f"{REGISTRATIONS_PREFIX}{event_id}.json"


def default_capacity_for(event_type: Optional[BookingType]) -> int:
    if event_type is None:
        return DEFAULT_CAPACITY["other"]
    return DEFAULT_CAPACITY.get(event_type.value, DEFAULT_CAPACITY["other"])


def is_unlimited(event_type: Optional[BookingType]) -> bool:
    return event_type is not None and event_type.value in UNLIMITED_CAPACITY_TYPES


def resolve_capacity(
    document: CapacityDocument, event_type: BookingType, custom_capacity: Optional[int]
) -> tuple[int, CapacitySource]:
    """
    Capacity priority: admin override > description value > type default.
    An admin override is sticky; description and default are re-derived.
    """
    if document.capacity_source == CapacitySource.ADMIN and document.max_capacity:
        return document.max_capacity, CapacitySource.ADMIN
    if custom_capacity:
        return custom_capacity, CapacitySource.DESCRIPTION
    return default_capacity_for(event_type), CapacitySource.DEFAULT


class CapacityStore:
    """Repository for per-event capacity documents"""

    def __init__(self, object_store: ObjectStore, max_write_attempts: int = MAX_WRITE_ATTEMPTS):
        self.object_store = object_store
        self.max_write_attempts = max_write_attempts

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch(self, event_id: str) -> StoreResult:
        """Read a document; a missing key is a zero-value document, not an error"""
        try:
            data, etag = self.object_store.get_json(document_key(event_id))
        except StoreUnavailableError as e:
            return StoreResult(error=e)

        if data is None:
            return StoreResult(document=CapacityDocument.empty(event_id))

        try:
            document = CapacityDocument.model_validate(data)
        except ValueError as e:
            logger.error(f"❌ Corrupt capacity document for {event_id}: {e}")
            return StoreResult(error=StoreUnavailableError(f"Corrupt document for {event_id}"))
        return StoreResult(document=document, etag=etag)

    def get(self, event_id: str) -> CapacityDocument:
        """
        Read path: never fails the caller. A backend failure degrades to the
        zero-value document (availability over consistency).
        """
        result = self.fetch(event_id)
        if result.ok:
            return result.document
        logger.warning(f"⚠️ Capacity store unavailable for {event_id}, assuming empty: {result.error}")
        return CapacityDocument.empty(event_id)

    def is_sold_out(self, event_id: str) -> bool:
        document = self.get(event_id)
        if not document.max_capacity:
            return False
        if is_unlimited(document.event_type):
            return False
        return document.current_registrations >= document.max_capacity

    def list_all(self) -> list[CapacityDocument]:
        """Every stored document, for reporting and export"""
        documents = []
        for key in self.object_store.list_keys(REGISTRATIONS_PREFIX):
            if not key.endswith(".json"):
                continue
            try:
                data, _ = self.object_store.get_json(key)
                if data is not None:
                    documents.append(CapacityDocument.model_validate(data))
            except (StoreUnavailableError, ValueError) as e:
                logger.error(f"❌ Error reading {key}: {e}")
        return documents

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _read_for_write(self, event_id: str) -> StoreResult:
        result = self.fetch(event_id)
        if not result.ok:
            raise result.error
        return result

    def _save(self, document: CapacityDocument, etag: Optional[str], is_new: bool) -> None:
        metadata = {
            "eventtype": document.event_type.value if document.event_type else "other",
            "capacity": str(document.max_capacity or ""),
            "registrations": str(document.current_registrations),
        }
        self.object_store.put_json(
            document_key(document.event_id),
            document.to_storage(),
            if_match=None if is_new else etag,
            if_none_match=is_new,
            metadata=metadata,
        )

    def _mutate(
        self,
        event_id: str,
        mutation: Callable[[CapacityDocument], Optional[CapacityDocument]],
    ) -> CapacityDocument:
        """
        Optimistic read-modify-write loop.

        `mutation` receives a fresh copy of the stored document and returns the
        document to persist, or None when nothing needs writing. It may raise
        to abort without writing.
        """
        last_conflict: Optional[WriteConflictError] = None
        for attempt in range(1, self.max_write_attempts + 1):
            result = self._read_for_write(event_id)
            current = result.document
            is_new = result.etag is None
            updated = mutation(current.model_copy(deep=True))
            if updated is None:
                return current
            try:
                self._save(updated, result.etag, is_new)
                return updated
            except WriteConflictError as e:
                last_conflict = e
                logger.warning(
                    f"🔄 Write conflict on {event_id} (attempt {attempt}/{self.max_write_attempts}), retrying"
                )
        logger.error(f"❌ Gave up writing {event_id} after {self.max_write_attempts} conflicts")
        raise StoreUnavailableError(f"Too many concurrent writes for {event_id}") from last_conflict

    def initialize(
        self, event_id: str, event_type: BookingType, custom_capacity: Optional[int] = None
    ) -> CapacityDocument:
        """Set max capacity by priority; no write when nothing would change"""

        def apply(document: CapacityDocument) -> Optional[CapacityDocument]:
            return self._apply_initialize(document, event_type, custom_capacity)

        return self._mutate(event_id, apply)

    def _apply_initialize(
        self, document: CapacityDocument, event_type: BookingType, custom_capacity: Optional[int]
    ) -> Optional[CapacityDocument]:
        max_capacity, source = resolve_capacity(document, event_type, custom_capacity)
        if (
            document.exists
            and document.max_capacity == max_capacity
            and document.capacity_source == source
            and document.event_type == event_type
        ):
            return None

        now = utcnow()
        document.event_type = event_type
        document.max_capacity = max_capacity
        document.capacity_source = source
        document.created_at = document.created_at or now
        document.updated_at = now
        document.recompute()
        logger.info(f"✅ Capacity for {document.event_id} set to {max_capacity} ({source.value})")
        return document

    def add_registration(
        self,
        event_id: str,
        event_type: BookingType,
        registration: RegistrationRecord,
        player_count: int = 1,
        custom_capacity: Optional[int] = None,
    ) -> CapacityDocument:
        return self.record_registration(
            event_id, event_type, registration, player_count, custom_capacity
        ).document

    def record_registration(
        self,
        event_id: str,
        event_type: BookingType,
        registration: RegistrationRecord,
        player_count: int = 1,
        custom_capacity: Optional[int] = None,
    ) -> RegistrationOutcome:
        """
        Append a registration, enforcing the sold-out invariant at write time.

        A record whose id is already stored is treated as applied (webhook
        replay) and returns the stored document unchanged.

        Raises:
            SoldOutError: capacity-bounded event is full; nothing is written
            StoreUnavailableError: the write could not be committed
        """
        if player_count < 1:
            raise ValueError(f"player_count must be at least 1, got {player_count}")
        record = registration.model_copy(update={"player_count": player_count})
        already_applied = False

        def apply(document: CapacityDocument) -> Optional[CapacityDocument]:
            nonlocal already_applied
            already_applied = document.find_registration(record.id) is not None
            if already_applied:
                logger.info(f"🔄 Registration {record.id} already recorded for {event_id}, skipping")
                return None

            if not document.max_capacity or (
                custom_capacity
                and document.capacity_source != CapacitySource.ADMIN
                and custom_capacity != document.max_capacity
            ):
                self._apply_initialize(document, event_type, custom_capacity)

            if (
                not is_unlimited(event_type)
                and document.current_registrations + record.player_count > document.max_capacity
            ):
                logger.warning(
                    f"⚠️ Event {event_id} has no room for {record.player_count} player(s) "
                    f"({document.current_registrations}/{document.max_capacity}), rejecting {record.id}"
                )
                raise SoldOutError(event_id, document.current_registrations, document.max_capacity)

            now = utcnow()
            document.registrations.append(record)
            document.recompute()
            document.event_type = event_type
            document.created_at = document.created_at or now
            document.updated_at = now
            return document

        document = self._mutate(event_id, apply)
        if not already_applied:
            logger.info(
                f"✅ Registration {record.id} stored for {event_id}: "
                f"{document.current_registrations}/{document.max_capacity}"
            )
        return RegistrationOutcome(document=document, already_applied=already_applied)

    def update_capacity(self, event_id: str, new_max: int) -> CapacityDocument:
        """Admin override; requires an existing document"""

        def apply(document: CapacityDocument) -> Optional[CapacityDocument]:
            if not document.exists:
                raise CapacityNotInitializedError(event_id)
            document.max_capacity = new_max
            document.capacity_source = CapacitySource.ADMIN
            document.updated_at = utcnow()
            return document

        return self._mutate(event_id, apply)

    def update_registration(self, event_id: str, registration_id: str, updates: dict) -> CapacityDocument:
        """Admin correction of a stored registration; counts are recomputed"""

        def apply(document: CapacityDocument) -> Optional[CapacityDocument]:
            if not document.exists:
                raise CapacityNotInitializedError(event_id)
            for index, registration in enumerate(document.registrations):
                if registration.id == registration_id:
                    document.registrations[index] = registration.model_copy(
                        update={**updates, "updated_at": utcnow()}
                    )
                    break
            else:
                raise RegistrationNotFoundError(event_id, registration_id)
            document.recompute()
            document.updated_at = utcnow()
            return document

        return self._mutate(event_id, apply)

    def delete_registration(self, event_id: str, registration_id: str) -> CapacityDocument:
        """Remove a registration entirely (frees its spots)"""

        def apply(document: CapacityDocument) -> Optional[CapacityDocument]:
            if not document.exists:
                raise CapacityNotInitializedError(event_id)
            remaining = [r for r in document.registrations if r.id != registration_id]
            if len(remaining) == len(document.registrations):
                raise RegistrationNotFoundError(event_id, registration_id)
            document.registrations = remaining
            document.recompute()
            document.updated_at = utcnow()
            return document

        return self._mutate(event_id, apply)
