"""Microsoft Graph calendar client used for ghost booking handling."""
from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import datetime, timedelta
import logging
from typing import Any

import aiohttp

from homeassistant.util import dt as dt_util

from .exceptions import GraphError

_LOGGER = logging.getLogger(__name__)

GRAPH_API_URL = "https://graph.microsoft.com/v1.0"
TOKEN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=30)

# Refresh the token this long before it expires
TOKEN_EXPIRY_MARGIN = timedelta(minutes=1)


def parse_graph_time(value: Mapping[str, Any] | None) -> datetime | None:
    """Parse a Graph dateTimeTimeZone value requested in UTC."""
    if not value or not value.get("dateTime"):
        return None
    parsed = dt_util.parse_datetime(value["dateTime"])
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt_util.UTC)
    return parsed


def format_graph_time(value: datetime) -> dict[str, str]:
    """Format a datetime as a Graph dateTimeTimeZone value."""
    return {
        "dateTime": dt_util.as_utc(value).strftime("%Y-%m-%dT%H:%M:%S"),
        "timeZone": "UTC",
    }


class GraphClient:
    """Minimal client for the room mailbox calendar."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        tenant_id: str,
        client_id: str,
        client_secret: str,
    ) -> None:
        """Initialize the client."""
        self._session = session
        self._tenant_id = tenant_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._token: str | None = None
        self._token_expires: datetime | None = None

    async def _async_get_token(self) -> str:
        now = dt_util.utcnow()
        if self._token and self._token_expires and now < self._token_expires:
            return self._token

        try:
            async with self._session.post(
                TOKEN_URL.format(tenant=self._tenant_id),
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "scope": GRAPH_SCOPE,
                },
                timeout=REQUEST_TIMEOUT,
            ) as resp:
                if resp.status >= 400:
                    raise GraphError(f"Token request failed: HTTP {resp.status}")
                payload = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            raise GraphError(f"Token request failed: {err}") from err

        token = payload.get("access_token")
        if not token:
            raise GraphError("Token response did not contain an access token")

        _LOGGER.debug("Fetched calendar access token for tenant %s", self._tenant_id)
        self._token = token
        self._token_expires = (
            now + timedelta(seconds=int(payload.get("expires_in", 3600))) - TOKEN_EXPIRY_MARGIN
        )
        return token

    async def _async_request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
    ) -> Any:
        token = await self._async_get_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
            "Prefer": 'outlook.timezone="UTC"',
        }
        try:
            async with self._session.request(
                method,
                f"{GRAPH_API_URL}{path}",
                params=params,
                json=json,
                headers=headers,
                timeout=REQUEST_TIMEOUT,
            ) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    raise GraphError(f"{method} {path} failed: HTTP {resp.status} {text[:200]}")
                if resp.status in (202, 204):
                    return None
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            raise GraphError(f"{method} {path} failed: {err}") from err

    async def async_calendar_view(
        self, mailbox: str, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        """Return events in the mailbox calendar between start and end."""
        payload = await self._async_request(
            "GET",
            f"/users/{mailbox}/calendarView",
            params={
                "startDateTime": dt_util.as_utc(start).isoformat(),
                "endDateTime": dt_util.as_utc(end).isoformat(),
            },
        )
        return list((payload or {}).get("value", []))

    async def async_find_event(
        self, mailbox: str, start: datetime, end: datetime | None, title: str = ""
    ) -> dict[str, Any] | None:
        """Return the event matching a booking by its start time."""
        events = await self.async_calendar_view(
            mailbox,
            start - timedelta(minutes=1),
            (end or start) + timedelta(minutes=1),
        )
        matches = [
            event for event in events if parse_graph_time(event.get("start")) == start
        ]
        if len(matches) > 1 and title:
            matches = [event for event in matches if event.get("subject") == title] or matches
        if not matches:
            _LOGGER.debug("No calendar event in %s starts at %s", mailbox, start)
            return None
        return matches[0]

    async def async_get_event(self, mailbox: str, event_id: str) -> dict[str, Any]:
        """Return a single event or series master."""
        return await self._async_request("GET", f"/users/{mailbox}/events/{event_id}")

    async def async_instances(
        self, mailbox: str, master_id: str, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        """Return the instances of a series between start and end."""
        payload = await self._async_request(
            "GET",
            f"/users/{mailbox}/events/{master_id}/instances",
            params={
                "startDateTime": dt_util.as_utc(start).isoformat(),
                "endDateTime": dt_util.as_utc(end).isoformat(),
            },
        )
        return list((payload or {}).get("value", []))

    async def async_decline(self, mailbox: str, event_id: str, comment: str) -> None:
        """Decline an event on behalf of the room."""
        await self._async_request(
            "POST",
            f"/users/{mailbox}/events/{event_id}/decline",
            json={"comment": comment, "sendResponse": True},
        )

    async def async_set_end(self, mailbox: str, event_id: str, end: datetime) -> None:
        """Move the end of an event."""
        await self._async_request(
            "PATCH",
            f"/users/{mailbox}/events/{event_id}",
            json={"end": format_graph_time(end)},
        )
