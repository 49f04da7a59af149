"""Google Calendar v3 implementation of the event store gateway.

The gateway does not manage credentials. It is handed an access-token
provider and asks it for a bearer token per request. When Google answers
401 the provider is asked once more, so a provider that renews tokens can
recover; a second 401 is reported as ``GatewayAuthError``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime, timedelta
from typing import Any
from urllib.parse import quote

import httpx

from calresolve.errors import (
    GatewayAuthError,
    GatewayError,
    GatewayRequestError,
    sanitize_error_detail,
)
from calresolve.gateway.base import EventStoreGateway
from calresolve.models import CalendarEvent, EventBoundary, EventChanges, ProposedEvent
from calresolve.timeutil import coerce_zoneinfo, is_date_only, to_aware

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"

RATE_LIMIT_RETRY_STATUS_CODES = {429, 503}
RATE_LIMIT_MAX_RETRIES = 3
RATE_LIMIT_BASE_BACKOFF_SECONDS = 1.0
LIST_PAGE_SIZE = 250
LIST_MAX_PAGES = 20

AccessTokenProvider = Callable[[], Awaitable[str]]


def static_access_token(token: str) -> AccessTokenProvider:
    """Provider that always hands out *token*; a rejected token is not renewed."""
    normalized = token.strip()
    if not normalized:
        raise GatewayAuthError("Google access token must be a non-empty string")

    async def _provide() -> str:
        return normalized

    return _provide


def _google_error_message(response: httpx.Response) -> str:
    """Best human-readable message from a Google error response, sanitized."""
    try:
        payload = response.json()
    except ValueError:
        payload = None

    message: Any = None
    if isinstance(payload, dict):
        error = payload.get("error")
        message = error.get("message") if isinstance(error, dict) else error
    if not isinstance(message, str) or not message.strip():
        message = response.text.strip() or f"HTTP {response.status_code} without an error body"
    return sanitize_error_detail(message)


def _retry_delay(response: httpx.Response, attempt: int) -> float:
    retry_after = response.headers.get("Retry-After")
    if retry_after is not None:
        try:
            return max(float(retry_after), 0.0)
        except ValueError:
            logger.debug("Ignoring non-numeric Retry-After header %r", retry_after)
    return RATE_LIMIT_BASE_BACKOFF_SECONDS * (2**attempt)


# ---------------------------------------------------------------------------
# Payload translation
# ---------------------------------------------------------------------------


def _google_rfc3339(value: datetime, timezone: str | None = None) -> str:
    """UTC ``Z`` timestamp; naive values are read in *timezone* (UTC when unset)."""
    aware = to_aware(value, coerce_zoneinfo(timezone))
    return aware.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _parse_google_datetime(value: str) -> datetime:
    normalized = value.strip()
    if normalized.endswith("Z"):
        normalized = f"{normalized[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError as exc:
        raise ValueError(f"Google Calendar returned an invalid dateTime: {value}") from exc
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _normalize_optional_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    return normalized or None


def _parse_google_event_boundary(payload: dict[str, Any]) -> tuple[EventBoundary, str | None]:
    timezone = _normalize_optional_text(payload.get("timeZone"))

    date_time = payload.get("dateTime")
    if isinstance(date_time, str) and date_time.strip():
        return _parse_google_datetime(date_time), timezone

    date_value = payload.get("date")
    if isinstance(date_value, str) and date_value.strip():
        try:
            return date.fromisoformat(date_value.strip()), timezone
        except ValueError as exc:
            raise ValueError(
                f"Google Calendar returned an invalid date value: {date_value}"
            ) from exc

    raise ValueError("Google Calendar event is missing start/end dateTime or date values")


def google_event_to_calendar_event(
    payload: dict[str, Any],
    *,
    calendar_id: str,
    fallback_timezone: str | None = None,
) -> CalendarEvent | None:
    """Translate a Google event resource; cancelled events map to ``None``."""
    status_raw = payload.get("status")
    if isinstance(status_raw, str) and status_raw.lower() == "cancelled":
        return None

    event_id = _normalize_optional_text(payload.get("id"))
    if event_id is None:
        raise ValueError("Google Calendar event payload is missing a non-empty id")

    start_payload = payload.get("start")
    end_payload = payload.get("end")
    if not isinstance(start_payload, dict) or not isinstance(end_payload, dict):
        raise ValueError(f"Google Calendar event '{event_id}' is missing start/end payloads")

    start, start_timezone = _parse_google_event_boundary(start_payload)
    end, end_timezone = _parse_google_event_boundary(end_payload)

    return CalendarEvent(
        event_id=event_id,
        calendar_id=calendar_id,
        summary=_normalize_optional_text(payload.get("summary")) or "(untitled)",
        start=start,
        end=end,
        timezone=start_timezone or end_timezone or fallback_timezone,
        description=_normalize_optional_text(payload.get("description")),
        location=_normalize_optional_text(payload.get("location")),
    )


def _boundary_body(
    value: EventBoundary,
    timezone: str | None,
    default_timezone: str | None,
) -> dict[str, str]:
    """Google ``start``/``end`` payload for one boundary.

    An explicit event timezone is sent as ``timeZone``. Otherwise naive values
    are read in *default_timezone*, matching how the conflict check reads them.
    """
    if is_date_only(value):
        return {"date": value.isoformat()}
    assert isinstance(value, datetime)
    if timezone is not None:
        tz = coerce_zoneinfo(timezone)
        localized = to_aware(value, tz).astimezone(tz)
        return {"dateTime": localized.isoformat(), "timeZone": timezone}
    return {"dateTime": _google_rfc3339(value, default_timezone)}


def build_google_event_body(
    event: ProposedEvent,
    *,
    default_timezone: str | None = None,
) -> dict[str, Any]:
    """Translate a ProposedEvent into a Google Calendar API event body."""
    body: dict[str, Any] = {"summary": event.summary, "status": "confirmed"}
    if event.description is not None:
        body["description"] = event.description
    if event.location is not None:
        body["location"] = event.location

    if event.is_all_day:
        # Google all-day end dates are exclusive.
        end = event.end if event.end > event.start else event.start + timedelta(days=1)
        body["start"] = {"date": event.start.isoformat()}
        body["end"] = {"date": end.isoformat()}
    else:
        body["start"] = _boundary_body(event.start, event.timezone, default_timezone)
        body["end"] = _boundary_body(event.end, event.timezone, default_timezone)

    if event.attendees:
        body["attendees"] = [{"email": email} for email in event.attendees]
    return body


def build_google_patch_body(
    changes: EventChanges,
    *,
    default_timezone: str | None = None,
) -> dict[str, Any]:
    """Translate EventChanges into a partial body; unset fields are omitted."""
    body: dict[str, Any] = {}
    if changes.summary is not None:
        body["summary"] = changes.summary
    if changes.description is not None:
        body["description"] = changes.description
    if changes.location is not None:
        body["location"] = changes.location
    if changes.start is not None:
        body["start"] = _boundary_body(changes.start, changes.timezone, default_timezone)
    if changes.end is not None:
        body["end"] = _boundary_body(changes.end, changes.timezone, default_timezone)
    if changes.attendees is not None:
        body["attendees"] = [{"email": email} for email in changes.attendees]
    return body


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class GoogleCalendarGateway(EventStoreGateway):
    """Event store backed by the Google Calendar v3 REST API."""

    def __init__(
        self,
        token_provider: AccessTokenProvider,
        *,
        http_client: httpx.AsyncClient | None = None,
        default_timezone: str | None = None,
        request_timeout_s: float = 30.0,
    ) -> None:
        self._token_provider = token_provider
        self._owns_http_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(timeout=request_timeout_s)
        self._default_timezone = default_timezone

    @classmethod
    def from_access_token(cls, token: str, **kwargs: Any) -> GoogleCalendarGateway:
        return cls(static_access_token(token), **kwargs)

    @property
    def name(self) -> str:
        return "google"

    async def _bearer_token(self) -> str:
        token = await self._token_provider()
        if not isinstance(token, str) or not token.strip():
            raise GatewayAuthError("Access token provider returned an empty token")
        return token.strip()

    async def _send(
        self,
        method: str,
        url: str,
        token: str,
        *,
        params: dict[str, Any] | None,
        json_body: dict[str, Any] | None,
    ) -> httpx.Response:
        try:
            return await self._http_client.request(
                method,
                url,
                params=params,
                json=json_body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            raise GatewayError(f"Google Calendar request failed: {exc}") from exc

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send one API call, re-asking for a token on 401 and backing off on 429/503."""
        url = f"{GOOGLE_CALENDAR_API_BASE_URL}/{path.lstrip('/')}"
        token = await self._bearer_token()
        response = await self._send(method, url, token, params=params, json_body=json_body)

        if response.status_code == 401:
            token = await self._bearer_token()
            response = await self._send(method, url, token, params=params, json_body=json_body)
            if response.status_code == 401:
                raise GatewayAuthError(
                    f"Google Calendar rejected the access token: {_google_error_message(response)}"
                )

        for attempt in range(RATE_LIMIT_MAX_RETRIES):
            if response.status_code not in RATE_LIMIT_RETRY_STATUS_CODES:
                break
            delay = _retry_delay(response, attempt)
            logger.warning(
                "Google Calendar %s %s throttled (status=%d); retry %d/%d in %.1fs",
                method,
                path,
                response.status_code,
                attempt + 1,
                RATE_LIMIT_MAX_RETRIES,
                delay,
            )
            await asyncio.sleep(delay)
            response = await self._send(method, url, token, params=params, json_body=json_body)

        return response

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        response = await self._request(method, path, params=params, json_body=json_body)
        if not response.is_success:
            raise GatewayRequestError(
                status_code=response.status_code,
                message=_google_error_message(response),
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise GatewayError(f"Google Calendar returned invalid JSON: {method} {path}") from exc
        if not isinstance(payload, dict):
            raise GatewayError(f"Google Calendar returned a non-object payload: {method} {path}")
        return payload

    def _to_event(
        self,
        payload: dict[str, Any],
        *,
        calendar_id: str,
        timezone: str | None,
        operation: str,
    ) -> CalendarEvent:
        event = google_event_to_calendar_event(
            payload,
            calendar_id=calendar_id,
            fallback_timezone=timezone or self._default_timezone,
        )
        if event is None:
            raise GatewayRequestError(
                status_code=200,
                message=f"Google Calendar returned a cancelled event after {operation}",
            )
        return event

    async def list_events(
        self,
        *,
        calendar_id: str,
        time_min: datetime,
        time_max: datetime,
    ) -> list[CalendarEvent]:
        path = f"/calendars/{quote(calendar_id, safe='')}/events"
        params: dict[str, Any] = {
            "singleEvents": "true",
            "showDeleted": "false",
            "orderBy": "startTime",
            "maxResults": LIST_PAGE_SIZE,
            "timeMin": _google_rfc3339(time_min, self._default_timezone),
            "timeMax": _google_rfc3339(time_max, self._default_timezone),
        }

        events: list[CalendarEvent] = []
        for _ in range(LIST_MAX_PAGES):
            payload = await self._request_json("GET", path, params=params)
            items = payload.get("items")
            if not isinstance(items, list):
                raise GatewayError("Google Calendar list_events response missing items array")

            fallback_timezone = _normalize_optional_text(payload.get("timeZone"))
            for item in items:
                if not isinstance(item, dict):
                    continue
                event = google_event_to_calendar_event(
                    item,
                    calendar_id=calendar_id,
                    fallback_timezone=fallback_timezone or self._default_timezone,
                )
                if event is not None:
                    events.append(event)

            next_page_token = _normalize_optional_text(payload.get("nextPageToken"))
            if next_page_token is None:
                break
            params = {**params, "pageToken": next_page_token}
        else:
            logger.warning(
                "list_events stopped after %d pages for calendar %s", LIST_MAX_PAGES, calendar_id
            )
        return events

    async def insert_event(self, *, calendar_id: str, event: ProposedEvent) -> CalendarEvent:
        payload = await self._request_json(
            "POST",
            f"/calendars/{quote(calendar_id, safe='')}/events",
            json_body=build_google_event_body(event, default_timezone=self._default_timezone),
        )
        return self._to_event(
            payload, calendar_id=calendar_id, timezone=event.timezone, operation="insert"
        )

    async def patch_event(
        self,
        *,
        calendar_id: str,
        event_id: str,
        changes: EventChanges,
    ) -> CalendarEvent:
        payload = await self._request_json(
            "PATCH",
            self._event_path(calendar_id, event_id),
            json_body=build_google_patch_body(changes, default_timezone=self._default_timezone),
        )
        return self._to_event(
            payload, calendar_id=calendar_id, timezone=changes.timezone, operation="patch"
        )

    async def delete_event(self, *, calendar_id: str, event_id: str) -> bool:
        """Delete an event; a 404 or 410 means it is already gone and counts as success."""
        response = await self._request("DELETE", self._event_path(calendar_id, event_id))
        if response.status_code in (404, 410):
            logger.debug(
                "delete_event: %s/%s already gone (status=%d)",
                calendar_id,
                event_id,
                response.status_code,
            )
            return True
        if not response.is_success:
            raise GatewayRequestError(
                status_code=response.status_code,
                message=_google_error_message(response),
            )
        return True

    @staticmethod
    def _event_path(calendar_id: str, event_id: str) -> str:
        normalized_event_id = event_id.strip()
        if not normalized_event_id:
            raise ValueError("event_id must be a non-empty string")
        return (
            f"/calendars/{quote(calendar_id, safe='')}"
            f"/events/{quote(normalized_event_id, safe='')}"
        )

    async def shutdown(self) -> None:
        if self._owns_http_client:
            await self._http_client.aclose()
