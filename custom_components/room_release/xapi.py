"""Device command and status channel for the Room Release integration.

Devices are reached through the Webex cloud xAPI. Every call returns an
XapiResult instead of raising, so a failed read never leaks into session
state. Telemetry is delivered on the Home Assistant event bus as
room_release_telemetry events carrying device_id, path and value.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
from collections.abc import Callable, Coroutine, Mapping
from dataclasses import dataclass
import logging
import re
from typing import Any

import aiohttp

from homeassistant.core import CALLBACK_TYPE, Event, HomeAssistant, callback
from homeassistant.helpers.aiohttp_client import async_get_clientsession

from .const import EVENT_TELEMETRY

_LOGGER = logging.getLogger(__name__)

WEBEX_API_URL = "https://webexapis.com/v1"
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=30)

_INDEX_RE = re.compile(r"\[[^\]]*\]")

TelemetryCallback = Callable[[str, str, Any], Coroutine[Any, Any, None] | None]


@dataclass(frozen=True)
class XapiResult:
    """Outcome of a device call."""

    ok: bool
    value: Any = None
    error: str | None = None

    @classmethod
    def success(cls, value: Any = None) -> XapiResult:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> XapiResult:
        return cls(ok=False, error=error)


def normalize_path(path: str) -> str:
    """Strip index selectors such as [*] or [1] from an xAPI path."""
    return _INDEX_RE.sub("", path)


def walk_status(payload: Any, path: str) -> XapiResult:
    """Follow a dotted status path through a nested status document."""
    node = payload
    for part in normalize_path(path).split("."):
        if isinstance(node, list):
            node = node[0] if node else None
        if not isinstance(node, Mapping) or part not in node:
            return XapiResult.failure(f"path not found: {path}")
        node = node[part]
    return XapiResult.success(node)


class DeviceChannel(ABC):
    """Command, status and telemetry access to enrolled devices."""

    @abstractmethod
    async def async_get(self, device_id: str, path: str) -> XapiResult:
        """Read a status value."""

    @abstractmethod
    async def async_set(self, device_id: str, path: str, value: Any) -> bool:
        """Write a configuration value."""

    @abstractmethod
    async def async_command(
        self, device_id: str, name: str, params: Mapping[str, Any] | None = None
    ) -> XapiResult:
        """Run a command."""

    @abstractmethod
    async def async_get_device(self, device_id: str) -> XapiResult:
        """Return device details (name, serial, product, software)."""

    @abstractmethod
    async def async_get_mailbox(self, workspace_id: str) -> XapiResult:
        """Return the calendar mailbox of a workspace."""

    @abstractmethod
    def async_subscribe(self, handler: TelemetryCallback) -> CALLBACK_TYPE:
        """Subscribe to telemetry; returns the unsubscribe callable."""


class WebexXapiChannel(DeviceChannel):
    """DeviceChannel backed by the Webex cloud xAPI."""

    def __init__(
        self,
        hass: HomeAssistant,
        access_token: str,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the channel."""
        self.hass = hass
        self._token = access_token
        self._session = session or async_get_clientsession(hass)

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/json",
        }

    async def _async_request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        content_type: str | None = None,
    ) -> XapiResult:
        headers = self._headers
        if content_type:
            headers["Content-Type"] = content_type

        try:
            async with self._session.request(
                method,
                url,
                params=params,
                json=json,
                headers=headers,
                timeout=REQUEST_TIMEOUT,
            ) as resp:
                if resp.status >= 400:
                    text = await resp.text()
                    return XapiResult.failure(f"HTTP {resp.status}: {text[:200]}")
                if resp.status == 204:
                    return XapiResult.success()
                return XapiResult.success(await resp.json(content_type=None))
        except (aiohttp.ClientError, asyncio.TimeoutError) as err:
            return XapiResult.failure(str(err) or type(err).__name__)

    async def async_get(self, device_id: str, path: str) -> XapiResult:
        result = await self._async_request(
            "GET",
            f"{WEBEX_API_URL}/xapi/status",
            params={"deviceId": device_id, "name": path},
        )
        if not result.ok:
            _LOGGER.warning("Unable to read %s from %s: %s", path, device_id, result.error)
            return result

        status = walk_status((result.value or {}).get("result"), path)
        if not status.ok:
            _LOGGER.debug("%s: %s", device_id, status.error)
        return status

    async def async_set(self, device_id: str, path: str, value: Any) -> bool:
        result = await self._async_request(
            "PATCH",
            f"{WEBEX_API_URL}/deviceConfigurations",
            params={"deviceId": device_id},
            json=[
                {
                    "op": "replace",
                    "path": f"{path}/sources/configured/value",
                    "value": value,
                }
            ],
            content_type="application/json-patch+json",
        )
        if not result.ok:
            _LOGGER.warning(
                "Unable to set %s on %s: %s", path, device_id, result.error
            )
        return result.ok

    async def async_command(
        self, device_id: str, name: str, params: Mapping[str, Any] | None = None
    ) -> XapiResult:
        body: dict[str, Any] = {"deviceId": device_id}
        if params:
            body["arguments"] = dict(params)

        result = await self._async_request(
            "POST", f"{WEBEX_API_URL}/xapi/command/{name}", json=body
        )
        if not result.ok:
            _LOGGER.warning(
                "Unable to perform command %s on %s: %s", name, device_id, result.error
            )
            return result
        return XapiResult.success((result.value or {}).get("result", {}))

    async def async_get_device(self, device_id: str) -> XapiResult:
        return await self._async_request("GET", f"{WEBEX_API_URL}/devices/{device_id}")

    async def async_get_mailbox(self, workspace_id: str) -> XapiResult:
        result = await self._async_request(
            "GET", f"{WEBEX_API_URL}/workspaces/{workspace_id}"
        )
        if not result.ok:
            return result
        mailbox = ((result.value or {}).get("calendar") or {}).get("emailAddress")
        if not mailbox:
            return XapiResult.failure("workspace has no calendar mailbox")
        return XapiResult.success(mailbox)

    @callback
    def async_subscribe(self, handler: TelemetryCallback) -> CALLBACK_TYPE:
        @callback
        def _async_telemetry_event(event: Event) -> None:
            data = event.data
            device_id = data.get("device_id")
            path = data.get("path")
            if not device_id or not path:
                _LOGGER.debug("Ignoring malformed telemetry event: %s", data)
                return
            result = handler(device_id, path, data.get("value"))
            if asyncio.iscoroutine(result):
                self.hass.async_create_task(result)

        return self.hass.bus.async_listen(EVENT_TELEMETRY, _async_telemetry_event)
