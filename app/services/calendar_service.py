"""Google Calendar connector: OAuth connect flow, token refresh, free/busy, events.

Everything that talks to Google here is best-effort from the booking engine's
point of view. Failures are logged and counted as degraded, never raised into
slot computation.
"""

import logging
from collections import Counter
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Protocol
from urllib.parse import urlencode

import httpx

from app.core.config import settings
from app.models.booking import BookingDetails
from app.services.intervals import Interval, as_utc
from app.services.store import BookingStore

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/calendar.events",
]

# Degraded external-calendar accesses since process start, by reason.
degraded_counter: Counter[str] = Counter()


def record_degraded(reason: str, host_id: int | None = None, error: object = None) -> None:
    degraded_counter[reason] += 1
    logger.warning(
        "External calendar degraded (%s) host=%s total=%d: %s",
        reason,
        host_id,
        sum(degraded_counter.values()),
        error,
    )


class CalendarConnector(Protocol):
    async def get_valid_access_token(self, host_id: int, provider: str = "google") -> str | None: ...

    async def get_busy_intervals(
        self, access_token: str, range_start: datetime, range_end: datetime
    ) -> list[Interval]: ...

    async def create_event(self, access_token: str, details: BookingDetails) -> str | None: ...

    async def delete_event(self, access_token: str, event_id: str) -> None: ...


def get_calendar_authorization_url(state: str) -> str:
    params = {
        "client_id": settings.google_client_id,
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": " ".join(CALENDAR_SCOPES),
        "access_type": "offline",
        # Force consent so Google always returns a refresh token
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


def _expiry_from(tokens: dict) -> datetime:
    return datetime.now(UTC) + timedelta(seconds=int(tokens.get("expires_in") or 3600))


async def exchange_code_for_tokens(code: str, client: httpx.AsyncClient | None = None) -> dict | None:
    """Returns {"access_token", "refresh_token", "expires_at"} or None."""
    if not settings.google_calendar_enabled:
        logger.warning("Google Calendar OAuth not configured")
        return None
    async with _client(client) as http:
        resp = await http.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": settings.google_client_id,
                "client_secret": settings.google_client_secret,
                "redirect_uri": settings.google_redirect_uri,
                "grant_type": "authorization_code",
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
    if resp.status_code != 200:
        logger.warning(
            "Google token exchange failed: status=%s body=%s",
            resp.status_code,
            resp.text[:500],
        )
        return None
    tokens = resp.json()
    if not tokens.get("access_token") or not tokens.get("refresh_token"):
        logger.warning("Google token exchange returned no access/refresh token")
        return None
    return {
        "access_token": tokens["access_token"],
        "refresh_token": tokens["refresh_token"],
        "expires_at": _expiry_from(tokens),
    }


async def fetch_calendar_email(access_token: str, client: httpx.AsyncClient | None = None) -> str:
    """Id of the primary calendar, which is the account's email address."""
    async with _client(client) as http:
        resp = await http.get(
            f"{GOOGLE_CALENDAR_API}/users/me/calendarList/primary",
            headers={"Authorization": f"Bearer {access_token}"},
        )
    if resp.status_code != 200:
        return ""
    return resp.json().get("id", "")


@asynccontextmanager
async def _client(
    client: httpx.AsyncClient | None, timeout: float | None = None
) -> AsyncIterator[httpx.AsyncClient]:
    """Use the injected client as-is, or open and close a fresh one."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout or settings.calendar_timeout_seconds) as owned:
        yield owned


def _location_text(location: dict | None) -> str:
    if not location:
        return ""
    kind = location.get("type")
    if kind == "in_person":
        return location.get("address") or ""
    if kind == "video":
        return location.get("link") or ""
    if kind == "phone":
        return f"Tel: {location['phone']}" if location.get("phone") else ""
    if kind == "custom":
        return location.get("instructions") or ""
    return ""


def build_event_body(details: BookingDetails) -> dict:
    booking, event_type, host = details.booking, details.event_type, details.host
    description_lines = [
        f"Booked via {settings.site_name}",
        "",
        f"Guest: {booking.guest_name}",
        f"Email: {booking.guest_email}",
    ]
    if booking.guest_phone:
        description_lines.append(f"Phone: {booking.guest_phone}")
    if booking.guest_notes:
        description_lines.extend(["", "Notes:", booking.guest_notes])
    body = {
        "summary": f"{event_type.title} - {booking.guest_name}",
        "description": "\n".join(description_lines),
        "start": {"dateTime": as_utc(booking.start_time).isoformat(), "timeZone": host.timezone},
        "end": {"dateTime": as_utc(booking.end_time).isoformat(), "timeZone": host.timezone},
        "attendees": [
            {"email": booking.guest_email, "displayName": booking.guest_name},
            {"email": host.email, "displayName": host.full_name or host.email},
        ],
        "reminders": {
            "useDefault": False,
            "overrides": [
                {"method": "email", "minutes": 24 * 60},
                {"method": "popup", "minutes": 30},
            ],
        },
    }
    location = _location_text(event_type.location)
    if location:
        body["location"] = location
    return body


class GoogleCalendarConnector:
    def __init__(
        self,
        store: BookingStore,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self.store = store
        self.client = client
        self.timeout = timeout if timeout is not None else settings.calendar_timeout_seconds

    async def get_valid_access_token(self, host_id: int, provider: str = "google") -> str | None:
        """Stored access token, refreshed first when it expires within the margin."""
        connection = await self.store.get_calendar_connection(host_id, provider)
        if connection is None:
            return None
        margin = timedelta(minutes=settings.calendar_token_refresh_margin_minutes)
        if as_utc(connection.expires_at) > datetime.now(UTC) + margin:
            return connection.access_token

        try:
            async with _client(self.client, self.timeout) as http:
                resp = await http.post(
                    GOOGLE_TOKEN_URL,
                    data={
                        "client_id": settings.google_client_id,
                        "client_secret": settings.google_client_secret,
                        "refresh_token": connection.refresh_token,
                        "grant_type": "refresh_token",
                    },
                )
        except httpx.HTTPError as e:
            record_degraded("token_refresh", host_id, e)
            return None
        if resp.status_code != 200:
            record_degraded("token_refresh", host_id, f"status={resp.status_code} body={resp.text[:200]}")
            return None
        tokens = resp.json()
        access_token = tokens.get("access_token")
        if not access_token:
            record_degraded("token_refresh", host_id, "no access_token in refresh response")
            return None
        await self.store.update_calendar_tokens(host_id, provider, access_token, _expiry_from(tokens))
        logger.info("Refreshed %s calendar token for host %s", provider, host_id)
        return access_token

    async def get_busy_intervals(
        self, access_token: str, range_start: datetime, range_end: datetime
    ) -> list[Interval]:
        """Busy periods of the primary calendar; empty on any failure."""
        try:
            async with _client(self.client, self.timeout) as http:
                resp = await http.post(
                    f"{GOOGLE_CALENDAR_API}/freeBusy",
                    json={
                        "timeMin": as_utc(range_start).isoformat(),
                        "timeMax": as_utc(range_end).isoformat(),
                        "items": [{"id": "primary"}],
                    },
                    headers={"Authorization": f"Bearer {access_token}"},
                )
            resp.raise_for_status()
            busy = resp.json().get("calendars", {}).get("primary", {}).get("busy", [])
            return [
                Interval(as_utc(datetime.fromisoformat(b["start"])), as_utc(datetime.fromisoformat(b["end"])))
                for b in busy
                if b.get("start") and b.get("end")
            ]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            record_degraded("freebusy", error=e)
            return []

    async def create_event(self, access_token: str, details: BookingDetails) -> str | None:
        async with _client(self.client, self.timeout) as http:
            resp = await http.post(
                f"{GOOGLE_CALENDAR_API}/calendars/primary/events",
                params={"sendUpdates": "all"},
                json=build_event_body(details),
                headers={"Authorization": f"Bearer {access_token}"},
            )
        resp.raise_for_status()
        return resp.json().get("id")

    async def delete_event(self, access_token: str, event_id: str) -> None:
        try:
            async with _client(self.client, self.timeout) as http:
                resp = await http.delete(
                    f"{GOOGLE_CALENDAR_API}/calendars/primary/events/{event_id}",
                    params={"sendUpdates": "all"},
                    headers={"Authorization": f"Bearer {access_token}"},
                )
            if resp.status_code not in (200, 204, 404, 410):
                logger.warning("Failed to delete calendar event %s: status=%s", event_id, resp.status_code)
        except httpx.HTTPError as e:
            logger.warning("Failed to delete calendar event %s: %s", event_id, e)
