"""Shared fixtures: in-memory stand-ins for S3, Google Calendar, Redis and email"""

import hashlib
import io
import json
from datetime import datetime
from typing import Callable, Optional

import pytest
from botocore.exceptions import ClientError
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from booking.cache import Cache, RegistrationCache
from booking.domain.calendar.client import GOOGLE_TOKEN_URL, EventPage
from booking.domain.calendar.mutator import CalendarMutator
from booking.domain.payments.handler import PaymentEventHandler
from booking.domain.registrations.repository import CapacityStore
from booking.domain.registrations.service import RegistrationService
from booking.exceptions import CalendarEventNotFoundError, CalendarUnavailableError
from booking.storage import ObjectStore
from booking.webhook_security import create_webhook_signature

WEBHOOK_SECRET = "whsec_test_secret"
TIMEZONE = "America/New_York"
SERVICE_ACCOUNT_EMAIL = "calendar-bot@rink-booking.iam.gserviceaccount.com"


# ----------------------------------------------------------------------------
# S3
# ----------------------------------------------------------------------------


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class FakePaginator:
    def __init__(self, s3: "FakeS3Client"):
        self.s3 = s3

    def paginate(self, Bucket: str, Prefix: str = ""):
        keys = sorted(k for k in self.s3.objects if k.startswith(Prefix))
        yield {"Contents": [{"Key": k} for k in keys]}


class FakeS3Client:
    """
    Minimal boto3 S3 client with ETag preconditions.

    `before_put` runs just before a put is evaluated, which lets a test slip
    in a competing write between a reader's GET and its conditional PUT.
    """

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.put_calls = 0
        self.fail_reads = False
        self.fail_writes = False
        self.before_put: Optional[Callable[["FakeS3Client", str], None]] = None

    def _etag(self, body: bytes) -> str:
        return f'"{hashlib.md5(body).hexdigest()}-{self.put_calls}"'

    def raw_put(self, key: str, document: dict) -> None:
        """Write without preconditions (a competing writer)"""
        body = json.dumps(document).encode("utf-8")
        self.put_calls += 1
        self.objects[key] = (body, self._etag(body))

    def read(self, key: str) -> dict:
        return json.loads(self.objects[key][0])

    def get_object(self, Bucket: str, Key: str):
        if self.fail_reads:
            raise client_error("InternalError", "GetObject")
        if Key not in self.objects:
            raise client_error("NoSuchKey", "GetObject")
        body, etag = self.objects[Key]
        return {"Body": io.BytesIO(body), "ETag": etag}

    def put_object(self, Bucket: str, Key: str, Body: bytes, IfMatch=None, IfNoneMatch=None, **kwargs):
        if self.before_put is not None:
            hook, self.before_put = self.before_put, None
            hook(self, Key)
        if self.fail_writes:
            raise client_error("InternalError", "PutObject")

        existing = self.objects.get(Key)
        if IfNoneMatch == "*" and existing is not None:
            raise client_error("PreconditionFailed", "PutObject")
        if IfMatch is not None and (existing is None or existing[1] != IfMatch):
            raise client_error("PreconditionFailed", "PutObject")

        self.put_calls += 1
        etag = self._etag(Body)
        self.objects[Key] = (Body, etag)
        return {"ETag": etag}

    def delete_object(self, Bucket: str, Key: str):
        self.objects.pop(Key, None)
        return {}

    def get_paginator(self, name: str):
        assert name == "list_objects_v2"
        return FakePaginator(self)


# ----------------------------------------------------------------------------
# Google Calendar
# ----------------------------------------------------------------------------


def make_event(
    event_id: str,
    summary: str = "",
    color_id: Optional[str] = None,
    description: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    event_type: Optional[str] = None,
) -> dict:
    event = {"id": event_id, "summary": summary, "status": "confirmed"}
    if color_id:
        event["colorId"] = color_id
    if description is not None:
        event["description"] = description
    if start:
        event["start"] = {"dateTime": start, "timeZone": TIMEZONE}
        event["end"] = {"dateTime": end or start, "timeZone": TIMEZONE}
    if event_type:
        event["extendedProperties"] = {"shared": {"eventType": event_type}}
    return event


class FakeCalendarClient:
    """In-memory calendar with the GoogleCalendarClient surface"""

    def __init__(self, events: Optional[list[dict]] = None):
        self.events: dict[str, dict] = {e["id"]: e for e in events or []}
        self.unavailable = False
        self.calls: list[tuple[str, str]] = []
        self.next_sync_token = "sync-token-1"

    def add(self, event: dict) -> None:
        self.events[event["id"]] = event

    def _check(self) -> None:
        if self.unavailable:
            raise CalendarUnavailableError("Calendar GET failed: HTTP 503")

    async def get_event(self, event_id: str, max_retries: Optional[int] = None) -> dict:
        self.calls.append(("get", event_id))
        self._check()
        if event_id not in self.events:
            raise CalendarEventNotFoundError(event_id)
        return dict(self.events[event_id])

    async def list_events(
        self,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        sync_token: Optional[str] = None,
    ) -> EventPage:
        self.calls.append(("list", sync_token or ""))
        self._check()
        items = []
        for event in self.events.values():
            start = (event.get("start") or {}).get("dateTime")
            if start and (time_min or time_max):
                when = datetime.fromisoformat(start)
                if time_min and when < time_min:
                    continue
                if time_max and when >= time_max:
                    continue
            items.append(dict(event))
        return EventPage(items=items, next_sync_token=self.next_sync_token)

    async def patch_event(self, event_id: str, body: dict) -> dict:
        self.calls.append(("patch", event_id))
        self._check()
        if event_id not in self.events:
            raise CalendarEventNotFoundError(event_id)
        self.events[event_id] = {**self.events[event_id], **body}
        return dict(self.events[event_id])

    async def delete_event(self, event_id: str) -> bool:
        self.calls.append(("delete", event_id))
        self._check()
        if event_id not in self.events:
            raise CalendarEventNotFoundError(event_id)
        del self.events[event_id]
        return True

    async def aclose(self) -> None:
        pass


# ----------------------------------------------------------------------------
# Redis
# ----------------------------------------------------------------------------


class FakeRedis:
    def __init__(self):
        self.values: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.ttls: dict[str, int] = {}
        self.broken = False

    def _check(self):
        if self.broken:
            raise ConnectionError("redis down")

    def get(self, key):
        self._check()
        return self.values.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.values[key] = value
        self.ttls[key] = ttl

    def delete(self, *keys):
        self._check()
        for key in keys:
            self.values.pop(key, None)
            self.hashes.pop(key, None)

    def hincrby(self, key, field, amount):
        self._check()
        bucket = self.hashes.setdefault(key, {})
        bucket[field] = str(int(bucket.get(field, 0)) + amount)

    def hincrbyfloat(self, key, field, amount):
        self._check()
        bucket = self.hashes.setdefault(key, {})
        bucket[field] = str(float(bucket.get(field, 0)) + amount)

    def hset(self, key, field, value):
        self._check()
        self.hashes.setdefault(key, {})[field] = value

    def expire(self, key, ttl):
        self._check()
        self.ttls[key] = ttl

    def ping(self):
        self._check()
        return True


# ----------------------------------------------------------------------------
# Email
# ----------------------------------------------------------------------------


class FakeNotifier:
    def __init__(self):
        self.registrations = []
        self.oversells = []
        self.fail = False

    async def notify_registration(self, registration, document, event_summary=None, event_start=None):
        if self.fail:
            raise RuntimeError("email provider down")
        self.registrations.append((registration, document))
        return {"guardian_sent": True, "admin_sent": True, "errors": []}

    async def notify_oversell(self, registration, event_id, current, maximum, event_summary=None):
        self.oversells.append((registration.id, event_id, current, maximum))
        return True


# ----------------------------------------------------------------------------
# Payloads
# ----------------------------------------------------------------------------


def checkout_payload(
    session_id: str,
    event_id: Optional[str],
    event_type: Optional[str],
    livemode: bool = True,
    amount_total: int = 9500,
    event_kind: str = "checkout.session.completed",
    **metadata,
) -> bytes:
    meta = {
        "eventSummary": "At Home Training",
        "playerFirstName": "Sam",
        "playerLastName": "Skater",
        "playerAge": "10",
        "guardianFirstName": "Alex",
        "guardianLastName": "Skater",
        "guardianEmail": "alex@example.com",
        "guardianPhone": "555-0100",
        "emergencyName": "Jordan Skater",
        "emergencyPhone": "555-0101",
        **metadata,
    }
    if event_id is not None:
        meta["eventId"] = event_id
    if event_type is not None:
        meta["eventType"] = event_type
    event = {
        "id": f"evt_{session_id}",
        "type": event_kind,
        "livemode": livemode,
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "amount_total": amount_total,
                "currency": "usd",
                "livemode": livemode,
                "payment_intent": f"pi_{session_id}",
                "metadata": meta,
            }
        },
    }
    return json.dumps(event).encode("utf-8")


def sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    return create_webhook_signature(secret, payload, timestamp)


# ----------------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------------


@pytest.fixture
def s3():
    return FakeS3Client()


@pytest.fixture
def object_store(s3):
    return ObjectStore(client=s3, bucket="test-registrations")


@pytest.fixture
def capacity_store(object_store):
    return CapacityStore(object_store)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def registration_cache(fake_redis):
    return RegistrationCache(Cache(client=fake_redis))


@pytest.fixture
def registration_service(capacity_store, registration_cache):
    return RegistrationService(capacity_store, registration_cache)


@pytest.fixture
def calendar():
    return FakeCalendarClient()


@pytest.fixture
def mutator(calendar):
    return CalendarMutator(calendar, timezone=TIMEZONE, paired_buckets=("15:30", "17:00"))


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def handler(registration_service, calendar, mutator, notifier):
    return PaymentEventHandler(
        registration_service,
        calendar=calendar,
        mutator=mutator,
        notifier=notifier,
        secret=WEBHOOK_SECRET,
        process_test_payments=True,
    )


@pytest.fixture(scope="session")
def service_account_key() -> str:
    """A throwaway service-account key file, as downloaded from the cloud console"""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()
    return json.dumps(
        {
            "type": "service_account",
            "client_email": SERVICE_ACCOUNT_EMAIL,
            "private_key": pem,
            "token_uri": GOOGLE_TOKEN_URL,
        }
    )
