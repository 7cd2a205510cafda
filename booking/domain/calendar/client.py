"""
Google Calendar client
Service-account access to one calendar: get, list, patch and delete events
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import httpx
from jose import jwt

from ...config import (
    CALENDAR_ID,
    CALENDAR_MAX_RETRIES,
    CALENDAR_TIMEOUT_SECONDS,
    CALENDAR_TIMEZONE,
    GOOGLE_SERVICE_ACCOUNT_KEY,
)
from ...exceptions import (
    CalendarEventNotFoundError,
    CalendarRequestError,
    CalendarUnavailableError,
)

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
BACKOFF_BASE_SECONDS = 0.5
MAX_RESULTS = 250
MAX_PAGES = 10


class ServiceAccountTokenProvider:
    """
    Exchanges a signed service-account assertion for an access token.
    The token is cached on the instance until shortly before it expires.
    """

    def __init__(self, key_json: Optional[str] = GOOGLE_SERVICE_ACCOUNT_KEY, subject: Optional[str] = CALENDAR_ID):
        self.key_json = key_json
        self.subject = subject
        self._access_token: Optional[str] = None
        self._expires_at: float = 0

    def _credentials(self) -> dict:
        if not self.key_json:
            raise CalendarUnavailableError("GOOGLE_SERVICE_ACCOUNT_KEY is not configured")
        try:
            return json.loads(self.key_json)
        except json.JSONDecodeError as e:
            raise CalendarUnavailableError(f"Invalid GOOGLE_SERVICE_ACCOUNT_KEY format: {e}")

    def _assertion(self, credentials: dict) -> str:
        now = int(time.time())
        claims = {
            "iss": credentials["client_email"],
            "scope": CALENDAR_SCOPE,
            "aud": credentials.get("token_uri", GOOGLE_TOKEN_URL),
            "iat": now,
            "exp": now + 3600,
        }
        # Domain-wide delegation: act as the calendar owner
        if self.subject and "@" in self.subject:
            claims["sub"] = self.subject
        return jwt.encode(claims, credentials["private_key"], algorithm="RS256")

    def invalidate(self) -> None:
        self._access_token = None
        self._expires_at = 0

    async def get_token(self, http: httpx.AsyncClient) -> str:
        if self._access_token and time.time() < self._expires_at - 300:
            return self._access_token

        credentials = self._credentials()
        logger.info("🔄 Requesting Google Calendar access token")
        response = await http.post(
            credentials.get("token_uri", GOOGLE_TOKEN_URL),
            data={"grant_type": JWT_BEARER_GRANT, "assertion": self._assertion(credentials)},
        )
        if response.status_code != 200:
            logger.error(f"❌ Token request failed: {response.text}")
            raise CalendarUnavailableError(f"Token request failed ({response.status_code})")

        tokens = response.json()
        self._access_token = tokens.get("access_token")
        if not self._access_token:
            raise CalendarUnavailableError("No access token in token response")
        self._expires_at = time.time() + tokens.get("expires_in", 3600)
        logger.info("✅ Google Calendar access token obtained")
        return self._access_token


@dataclass
class EventPage:
    items: list[dict] = field(default_factory=list)
    next_sync_token: Optional[str] = None


class GoogleCalendarClient:
    """
    Thin async wrapper over the Calendar v3 REST API.

    Transport errors, 429 and 5xx are retried with exponential backoff.
    Other 4xx responses fail fast as CalendarRequestError.
    """

    def __init__(
        self,
        token_provider: Optional[ServiceAccountTokenProvider] = None,
        calendar_id: str = CALENDAR_ID,
        http: Optional[httpx.AsyncClient] = None,
        max_retries: int = CALENDAR_MAX_RETRIES,
        backoff_base: float = BACKOFF_BASE_SECONDS,
        timeout: float = CALENDAR_TIMEOUT_SECONDS,
    ):
        self.token_provider = token_provider or ServiceAccountTokenProvider()
        self.calendar_id = calendar_id
        self.http = http or httpx.AsyncClient(timeout=timeout)
        self.max_retries = max_retries
        self.backoff_base = backoff_base

    async def aclose(self) -> None:
        await self.http.aclose()

    def _events_url(self, event_id: Optional[str] = None) -> str:
        url = f"{GOOGLE_CALENDAR_API}/calendars/{self.calendar_id}/events"
        if event_id:
            url = f"{url}/{event_id}"
        return url

    async def _request(
        self, method: str, url: str, max_retries: Optional[int] = None, **kwargs: Any
    ) -> httpx.Response:
        retries = self.max_retries if max_retries is None else max_retries
        last_error: Optional[str] = None
        for attempt in range(retries + 1):
            if attempt > 0:
                delay = self.backoff_base * (2 ** (attempt - 1))
                logger.info(f"🔄 Retrying calendar {method} in {delay}s (attempt {attempt + 1}/{retries + 1})")
                await asyncio.sleep(delay)

            # Token endpoint and API share one transport, so both count as attempts
            try:
                token = await self.token_provider.get_token(self.http)
                response = await self.http.request(
                    method, url, headers={"Authorization": f"Bearer {token}"}, **kwargs
                )
            except httpx.TransportError as e:
                last_error = str(e)
                logger.warning(f"⚠️ Calendar transport error on {method} {url}: {e}")
                continue

            if response.status_code == 401:
                # Expired or revoked token; fetch a fresh one on the next attempt
                self.token_provider.invalidate()
                last_error = "unauthorized"
                continue
            if response.status_code in RETRYABLE_STATUS_CODES:
                last_error = f"HTTP {response.status_code}"
                logger.warning(f"⚠️ Calendar returned {response.status_code} on {method} {url}")
                continue
            if response.status_code >= 400:
                raise CalendarRequestError(response.status_code, response.text)
            return response

        logger.error(f"❌ Calendar {method} {url} failed after {retries + 1} attempts: {last_error}")
        raise CalendarUnavailableError(f"Calendar {method} failed: {last_error}")

    async def get_event(self, event_id: str, max_retries: Optional[int] = None) -> dict:
        """Fetch one event; max_retries overrides the client budget for this call"""
        try:
            response = await self._request("GET", self._events_url(event_id), max_retries=max_retries)
        except CalendarRequestError as e:
            if e.status_code in (404, 410):
                raise CalendarEventNotFoundError(event_id)
            raise
        return response.json()

    async def list_events(
        self,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
        sync_token: Optional[str] = None,
    ) -> EventPage:
        """
        List expanded single events ordered by start time. With a sync token
        only changes since that token are returned (a 410 means the token
        expired and the caller must do a full listing).
        """
        params: dict[str, Any] = {"singleEvents": "true", "maxResults": MAX_RESULTS, "timeZone": CALENDAR_TIMEZONE}
        if sync_token:
            params["syncToken"] = sync_token
        else:
            params["orderBy"] = "startTime"
            if time_min:
                params["timeMin"] = time_min.isoformat()
            if time_max:
                params["timeMax"] = time_max.isoformat()

        page = EventPage()
        for _ in range(MAX_PAGES):
            response = await self._request("GET", self._events_url(), params=params)
            data = response.json()
            page.items.extend(data.get("items", []))
            page.next_sync_token = data.get("nextSyncToken") or page.next_sync_token
            next_page = data.get("nextPageToken")
            if not next_page:
                break
            params["pageToken"] = next_page
        return page

    async def patch_event(self, event_id: str, body: dict) -> dict:
        try:
            response = await self._request("PATCH", self._events_url(event_id), json=body)
        except CalendarRequestError as e:
            if e.status_code == 404:
                raise CalendarEventNotFoundError(event_id)
            raise
        logger.info(f"✅ Calendar event {event_id} updated")
        return response.json()

    async def delete_event(self, event_id: str) -> bool:
        """Delete an event; an event that is already gone counts as deleted"""
        try:
            await self._request("DELETE", self._events_url(event_id))
        except CalendarRequestError as e:
            if e.status_code == 410:
                logger.info(f"ℹ️ Calendar event {event_id} was already deleted")
                return True
            if e.status_code == 404:
                raise CalendarEventNotFoundError(event_id)
            raise
        logger.info(f"✅ Calendar event {event_id} deleted")
        return True


class CalendarSyncSession:
    """
    Incremental sync state owned by one caller.

    Holds the provider's sync token between listings instead of keeping it in
    module state shared by every request.
    """

    def __init__(self, client: GoogleCalendarClient, sync_token: Optional[str] = None):
        self.client = client
        self.sync_token = sync_token

    def reset(self) -> None:
        self.sync_token = None

    async def fetch(self, time_min: Optional[datetime] = None, time_max: Optional[datetime] = None) -> list[dict]:
        """Changed events since the last fetch, or a full listing on the first call"""
        if self.sync_token:
            try:
                page = await self.client.list_events(sync_token=self.sync_token)
            except CalendarRequestError as e:
                if e.status_code != 410:
                    raise
                logger.info("🔄 Sync token expired, performing full sync")
                self.reset()
                page = await self.client.list_events(time_min=time_min, time_max=time_max)
        else:
            page = await self.client.list_events(time_min=time_min, time_max=time_max)

        self.sync_token = page.next_sync_token
        return page.items
