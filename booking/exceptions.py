"""
Booking error taxonomy

Only a failed registration write may fail a payment webhook. Everything raised
after the write is logged and swallowed at its own step boundary.
"""


class BookingError(Exception):
    """Base class for booking domain errors"""

    pass


class InvalidSignatureError(BookingError):
    """Webhook signature missing, malformed, stale or wrong (terminal, 400)"""

    pass


class MalformedMetadataError(BookingError):
    """Payment carries no usable booking correlation data (skipped, 200)"""

    def __init__(self, missing_fields: list[str]):
        self.missing_fields = missing_fields
        super().__init__(f"Missing booking metadata: {', '.join(missing_fields)}")


class SoldOutError(BookingError):
    """Registration rejected because the event is at capacity"""

    def __init__(self, event_id: str, current: int, maximum: int | None):
        self.event_id = event_id
        self.current = current
        self.maximum = maximum
        super().__init__(f"Event {event_id} is sold out ({current}/{maximum})")


class StoreUnavailableError(BookingError):
    """Object store could not be reached or returned an unexpected error"""

    pass


class WriteConflictError(StoreUnavailableError):
    """Conditional write lost a race with another writer"""

    pass


class CapacityNotInitializedError(BookingError):
    """Capacity override attempted before any registration data exists"""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event {event_id} has no registration data. Initialize first.")


class RegistrationNotFoundError(BookingError):
    def __init__(self, event_id: str, registration_id: str):
        self.event_id = event_id
        self.registration_id = registration_id
        super().__init__(f"Registration {registration_id} not found for event {event_id}")


class CalendarUnavailableError(BookingError):
    """Calendar provider unreachable or failing after retries"""

    pass


class CalendarRequestError(CalendarUnavailableError):
    """Calendar provider rejected the request (non-retryable 4xx)"""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"Calendar request failed ({status_code}): {message}")


class CalendarEventNotFoundError(CalendarRequestError):
    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(404, f"Event {event_id} not found")


class NotificationDispatchError(BookingError):
    """Outbound email could not be sent (always a warning)"""

    pass
