"""
FastAPI dependency providers

Clients are created once per process; everything built on top of them is
cheap and created per request. Tests swap any of these through
app.dependency_overrides.
"""
import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException

from .cache import Cache, RegistrationCache
from .config import ADMIN_API_KEY, GOOGLE_SERVICE_ACCOUNT_KEY
from .domain.calendar.client import GoogleCalendarClient
from .domain.calendar.mutator import CalendarMutator
from .domain.payments.handler import PaymentEventHandler
from .domain.registrations.repository import CapacityStore
from .domain.registrations.service import RegistrationService
from .services.notification_service import RegistrationNotifier
from .storage import ObjectStore
from .webhook_security import constant_time_compare

logger = logging.getLogger(__name__)


@lru_cache
def get_object_store() -> ObjectStore:
    return ObjectStore()


@lru_cache
def get_registration_cache() -> RegistrationCache:
    return RegistrationCache(Cache())


@lru_cache
def get_calendar_client() -> Optional[GoogleCalendarClient]:
    if not GOOGLE_SERVICE_ACCOUNT_KEY:
        logger.warning("⚠️ GOOGLE_SERVICE_ACCOUNT_KEY not set - calendar features disabled")
        return None
    return GoogleCalendarClient()


def get_capacity_store(object_store: ObjectStore = Depends(get_object_store)) -> CapacityStore:
    return CapacityStore(object_store)


def get_registration_service(
    store: CapacityStore = Depends(get_capacity_store),
    cache: RegistrationCache = Depends(get_registration_cache),
) -> RegistrationService:
    """Dependency injection for RegistrationService"""
    return RegistrationService(store, cache)


def get_calendar_mutator(
    client: Optional[GoogleCalendarClient] = Depends(get_calendar_client),
) -> Optional[CalendarMutator]:
    if client is None:
        return None
    return CalendarMutator(client)


def get_notifier() -> RegistrationNotifier:
    return RegistrationNotifier()


def get_payment_handler(
    registrations: RegistrationService = Depends(get_registration_service),
    calendar: Optional[GoogleCalendarClient] = Depends(get_calendar_client),
    mutator: Optional[CalendarMutator] = Depends(get_calendar_mutator),
    notifier: RegistrationNotifier = Depends(get_notifier),
) -> PaymentEventHandler:
    return PaymentEventHandler(registrations, calendar=calendar, mutator=mutator, notifier=notifier)


def require_calendar(
    client: Optional[GoogleCalendarClient] = Depends(get_calendar_client),
) -> GoogleCalendarClient:
    if client is None:
        raise HTTPException(status_code=500, detail="Server configuration error: calendar not configured")
    return client


def get_admin_api_key() -> Optional[str]:
    return ADMIN_API_KEY


def verify_admin_key(
    x_admin_key: Optional[str] = Header(default=None),
    expected: Optional[str] = Depends(get_admin_api_key),
) -> None:
    """Guard for the registration management endpoints"""
    if not expected:
        logger.error("❌ ADMIN_API_KEY not configured - admin endpoints disabled")
        raise HTTPException(status_code=503, detail="Admin access not configured")
    if not x_admin_key or not constant_time_compare(x_admin_key, expected):
        logger.warning("🚫 Admin request with invalid API key")
        raise HTTPException(status_code=401, detail="Invalid admin key")
