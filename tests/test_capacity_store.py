import pytest

from booking.domain.registrations.repository import CapacityStore, document_key
from booking.domain.registrations.schemas import (
    BookingType,
    CapacitySource,
    RegistrationRecord,
    RegistrationStatus,
)
from booking.exceptions import (
    CapacityNotInitializedError,
    RegistrationNotFoundError,
    SoldOutError,
    StoreUnavailableError,
)
from booking.storage import ObjectStore


def registration(reg_id: str, **kwargs) -> RegistrationRecord:
    return RegistrationRecord(id=reg_id, player_first_name="Sam", guardian_email="alex@example.com", **kwargs)


class TestReads:
    def test_missing_document_is_zero_value(self, capacity_store):
        document = capacity_store.get("evt-new")
        assert document.event_id == "evt-new"
        assert document.max_capacity is None
        assert document.current_registrations == 0
        assert document.registrations == []
        assert capacity_store.is_sold_out("evt-new") is False

    def test_backend_failure_degrades_on_read(self, s3, capacity_store):
        s3.fail_reads = True
        result = capacity_store.fetch("evt1")
        assert not result.ok
        assert isinstance(result.error, StoreUnavailableError)
        assert capacity_store.get("evt1").current_registrations == 0
        assert capacity_store.is_sold_out("evt1") is False

    def test_corrupt_document_is_reported(self, s3, capacity_store):
        s3.objects[document_key("evt1")] = (b"{not json", '"etag"')
        assert not capacity_store.fetch("evt1").ok

    def test_list_all(self, capacity_store):
        capacity_store.add_registration("a", BookingType.LESSON, registration("cs_1"))
        capacity_store.add_registration("b", BookingType.CAMP, registration("cs_2"))
        assert sorted(d.event_id for d in capacity_store.list_all()) == ["a", "b"]


class TestInitialize:
    def test_default_capacity_by_type(self, capacity_store):
        document = capacity_store.initialize("evt1", BookingType.ROCKVILLE_SMALL_GROUP)
        assert document.max_capacity == 5
        assert document.capacity_source == CapacitySource.DEFAULT

    def test_description_capacity_beats_default(self, capacity_store):
        document = capacity_store.initialize("evt1", BookingType.LESSON, custom_capacity=4)
        assert document.max_capacity == 4
        assert document.capacity_source == CapacitySource.DESCRIPTION

    def test_idempotent(self, s3, capacity_store):
        capacity_store.initialize("evt1", BookingType.LESSON, custom_capacity=4)
        puts = s3.put_calls
        capacity_store.initialize("evt1", BookingType.LESSON, custom_capacity=4)
        assert s3.put_calls == puts

    def test_admin_override_is_sticky(self, capacity_store):
        capacity_store.initialize("evt1", BookingType.LESSON, custom_capacity=4)
        capacity_store.update_capacity("evt1", 8)
        document = capacity_store.initialize("evt1", BookingType.LESSON, custom_capacity=2)
        assert document.max_capacity == 8
        assert document.capacity_source == CapacitySource.ADMIN

    def test_update_capacity_requires_document(self, capacity_store):
        with pytest.raises(CapacityNotInitializedError):
            capacity_store.update_capacity("evt-missing", 10)


class TestAddRegistration:
    def test_sold_out_after_single_at_home_booking(self, capacity_store):
        """A paid at-home slot (default capacity 1) sells out after one booking"""
        document = capacity_store.add_registration("evt1", BookingType.AT_HOME_TRAINING, registration("cs_1"))
        assert document.max_capacity == 1
        assert document.current_registrations == 1
        assert capacity_store.is_sold_out("evt1") is True

        with pytest.raises(SoldOutError) as exc_info:
            capacity_store.add_registration("evt1", BookingType.AT_HOME_TRAINING, registration("cs_2"))
        assert exc_info.value.current == 1
        assert exc_info.value.maximum == 1
        assert [r.id for r in capacity_store.get("evt1").registrations] == ["cs_1"]

    def test_duplicate_registration_is_noop(self, s3, capacity_store):
        capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_1"))
        puts = s3.put_calls

        outcome = capacity_store.record_registration("evt1", BookingType.LESSON, registration("cs_1"))
        assert outcome.already_applied is True
        assert outcome.document.current_registrations == 1
        assert s3.put_calls == puts

    def test_duplicate_on_full_event_is_not_sold_out(self, capacity_store):
        capacity_store.add_registration("evt1", BookingType.AT_HOME_TRAINING, registration("cs_1"))
        outcome = capacity_store.record_registration("evt1", BookingType.AT_HOME_TRAINING, registration("cs_1"))
        assert outcome.already_applied is True

    def test_player_count_sums(self, capacity_store):
        capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_1"), player_count=3)
        document = capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_2"), player_count=2)
        assert document.current_registrations == 5

    def test_multi_player_booking_cannot_start_on_full_event(self, capacity_store):
        capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_1"), custom_capacity=2)
        capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_2"), custom_capacity=2)
        with pytest.raises(SoldOutError):
            capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_3"), custom_capacity=2)

    def test_group_larger_than_empty_event_is_rejected(self, s3, capacity_store):
        with pytest.raises(SoldOutError) as exc_info:
            capacity_store.add_registration(
                "evt1", BookingType.AT_HOME_TRAINING, registration("cs_1"), player_count=2
            )
        assert exc_info.value.current == 0
        assert exc_info.value.maximum == 1
        assert capacity_store.get("evt1").registrations == []
        assert capacity_store.is_sold_out("evt1") is False

    def test_group_larger_than_remaining_spots_is_rejected(self, capacity_store):
        capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_1"), custom_capacity=2)
        with pytest.raises(SoldOutError):
            capacity_store.add_registration(
                "evt1", BookingType.LESSON, registration("cs_2"), player_count=2, custom_capacity=2
            )
        document = capacity_store.get("evt1")
        assert document.current_registrations == 1
        assert [r.id for r in document.registrations] == ["cs_1"]

    def test_group_filling_last_spots_is_accepted(self, capacity_store):
        capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_1"), custom_capacity=3)
        document = capacity_store.add_registration(
            "evt1", BookingType.LESSON, registration("cs_2"), player_count=2, custom_capacity=3
        )
        assert document.current_registrations == 3
        assert capacity_store.is_sold_out("evt1") is True

    @pytest.mark.parametrize("player_count", [0, -1])
    def test_player_count_below_one_is_refused(self, s3, capacity_store, player_count):
        with pytest.raises(ValueError):
            capacity_store.add_registration(
                "evt1", BookingType.LESSON, registration("cs_1"), player_count=player_count
            )
        assert s3.put_calls == 0

    def test_unlimited_type_never_sells_out(self, capacity_store):
        for i in range(25):
            document = capacity_store.add_registration("camp1", BookingType.CAMP, registration(f"cs_{i}"))
        assert document.current_registrations == 25
        assert document.max_capacity == 20
        assert capacity_store.is_sold_out("camp1") is False

    def test_description_capacity_change_is_picked_up(self, capacity_store):
        capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_1"), custom_capacity=2)
        document = capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_2"), custom_capacity=6)
        assert document.max_capacity == 6
        assert document.capacity_source == CapacitySource.DESCRIPTION

    def test_admin_capacity_beats_description_on_write(self, capacity_store):
        capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_1"), custom_capacity=1)
        capacity_store.update_capacity("evt1", 3)
        document = capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_2"), custom_capacity=1)
        assert document.max_capacity == 3
        assert document.current_registrations == 2

    def test_write_failure_raises(self, s3, capacity_store):
        s3.fail_writes = True
        with pytest.raises(StoreUnavailableError):
            capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_1"))

    def test_stored_document_uses_camel_case(self, s3, capacity_store):
        capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_1"))
        stored = s3.read(document_key("evt1"))
        assert stored["eventId"] == "evt1"
        assert stored["maxCapacity"] == 10
        assert stored["currentRegistrations"] == 1
        assert stored["registrations"][0]["guardianEmail"] == "alex@example.com"


class TestConcurrentWrites:
    def test_lost_race_rechecks_sold_out(self, s3, capacity_store):
        """Two buyers for the last spot: the loser re-reads and is rejected"""
        capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_1"), custom_capacity=2)

        def competing_buyer(client, key):
            CapacityStore(ObjectStore(client=client)).add_registration(
                "evt1", BookingType.LESSON, registration("cs_rival"), custom_capacity=2
            )

        s3.before_put = competing_buyer
        with pytest.raises(SoldOutError):
            capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_2"), custom_capacity=2)

        document = capacity_store.get("evt1")
        assert [r.id for r in document.registrations] == ["cs_1", "cs_rival"]
        assert document.current_registrations == 2

    def test_lost_race_with_room_left_retries_and_succeeds(self, s3, capacity_store):
        capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_1"))

        def competing_buyer(client, key):
            CapacityStore(ObjectStore(client=client)).add_registration(
                "evt1", BookingType.LESSON, registration("cs_rival")
            )

        s3.before_put = competing_buyer
        document = capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_2"))
        assert document.current_registrations == 3

    def test_racing_first_writers(self, s3, capacity_store):
        """Both see no document; If-None-Match stops the second from clobbering"""

        def competing_creator(client, key):
            CapacityStore(ObjectStore(client=client)).add_registration(
                "evt1", BookingType.AT_HOME_TRAINING, registration("cs_rival")
            )

        s3.before_put = competing_creator
        with pytest.raises(SoldOutError):
            capacity_store.add_registration("evt1", BookingType.AT_HOME_TRAINING, registration("cs_1"))
        assert [r.id for r in capacity_store.get("evt1").registrations] == ["cs_rival"]

    def test_gives_up_after_bounded_attempts(self, s3, object_store):
        store = CapacityStore(object_store, max_write_attempts=3)
        store.add_registration("evt1", BookingType.LESSON, registration("cs_1"))

        def keep_interfering(client, key):
            client.raw_put(key, client.read(key))
            client.before_put = keep_interfering

        s3.before_put = keep_interfering
        with pytest.raises(StoreUnavailableError):
            store.add_registration("evt1", BookingType.LESSON, registration("cs_2"))


class TestAdminEdits:
    def test_cancelled_registration_frees_spot(self, capacity_store):
        capacity_store.add_registration("evt1", BookingType.AT_HOME_TRAINING, registration("cs_1"))
        document = capacity_store.update_registration("evt1", "cs_1", {"status": RegistrationStatus.CANCELLED})
        assert document.current_registrations == 0
        assert document.registrations[0].updated_at is not None
        assert capacity_store.is_sold_out("evt1") is False

    def test_update_unknown_registration(self, capacity_store):
        capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_1"))
        with pytest.raises(RegistrationNotFoundError):
            capacity_store.update_registration("evt1", "cs_missing", {"medical_notes": "none"})

    def test_delete_registration(self, capacity_store):
        capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_1"), player_count=2)
        capacity_store.add_registration("evt1", BookingType.LESSON, registration("cs_2"))
        document = capacity_store.delete_registration("evt1", "cs_1")
        assert [r.id for r in document.registrations] == ["cs_2"]
        assert document.current_registrations == 1

    def test_delete_on_missing_document(self, capacity_store):
        with pytest.raises(CapacityNotInitializedError):
            capacity_store.delete_registration("evt-missing", "cs_1")
