"""Release notifications for the Room Release integration.

Two independent channels are supported: a Home Assistant notify service and
a Webex space message posted with a bot token. A failure on one channel is
logged and never affects the other.
"""
from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import aiohttp
import voluptuous as vol

from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.util import dt as dt_util

from .booking import Booking
from .const import DEFAULT_NOTIFICATION_TAG, DEFAULT_NOTIFY_TITLE
from .options import RoomReleaseOptions
from .release import ReleaseResult, ReleaseStatus

if TYPE_CHECKING:
    from .session import SystemInfo

_LOGGER = logging.getLogger(__name__)

WEBEX_MESSAGES_URL = "https://webexapis.com/v1/messages"
REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=30)

CHANNEL_NOTIFY = "notify"
CHANNEL_WEBEX = "webex"


def _format_start(booking: Booking) -> str:
    if booking.start_time is None:
        return "Unknown"
    return dt_util.as_local(booking.start_time).strftime("%Y-%m-%d %H:%M")


def build_webex_html(sys_info: SystemInfo, booking: Booking, result: ReleaseResult) -> str:
    """Build the HTML body of the Webex space message."""
    blockquote = "success" if result.success else "warning"
    return (
        "<strong>Room Release Notification</strong>"
        f"<blockquote class={blockquote}>"
        f"<strong>System Name:</strong> {sys_info.name}"
        f"<br><strong>Serial Number:</strong> {sys_info.serial}"
        f"<br><strong>Platform:</strong> {sys_info.platform}"
        f"<br><strong>Organizer:</strong> {booking.organizer.display_name}"
        f"<br><strong>Start Time:</strong> {_format_start(booking)}"
        f"<br><strong>Decline Status:</strong> {describe_result(result)}"
        "</blockquote>"
    )


def describe_result(result: ReleaseResult) -> str:
    """Return a human readable status line."""
    if result.status == ReleaseStatus.DECLINED:
        return "OK"
    if result.status == ReleaseStatus.SKIPPED:
        return "Skipped (Test Mode)"
    if result.status == ReleaseStatus.FAILED:
        return f"Failed ({result.message})"
    return result.message


class ReleaseNotifier:
    """Send release results to the enabled channels."""

    def __init__(
        self,
        hass: HomeAssistant,
        options: RoomReleaseOptions,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        """Initialize the notifier."""
        self.hass = hass
        self._options = options
        self._session = session

    async def async_notify(
        self, sys_info: SystemInfo, booking: Booking, result: ReleaseResult
    ) -> dict[str, bool]:
        """Dispatch the result; returns delivery status per channel."""
        delivered: dict[str, bool] = {}

        if self._options.notify_service:
            delivered[CHANNEL_NOTIFY] = await self._async_send_service(
                sys_info, booking, result
            )

        if self._options.webex_notify_ready:
            delivered[CHANNEL_WEBEX] = await self._async_send_webex(
                sys_info, booking, result
            )

        return delivered

    async def _async_send_service(
        self, sys_info: SystemInfo, booking: Booking, result: ReleaseResult
    ) -> bool:
        notify_service = self._options.notify_service
        if "." in notify_service:
            domain, service = notify_service.split(".", 1)
        else:
            domain = "notify"
            service = notify_service

        title = DEFAULT_NOTIFY_TITLE.format(name=sys_info.name)
        message = (
            f"Booking by {booking.organizer.display_name} starting "
            f"{_format_start(booking)} was released: {describe_result(result)}"
        )

        try:
            await self.hass.services.async_call(
                domain,
                service,
                {
                    "title": title,
                    "message": message,
                    "data": {
                        "tag": DEFAULT_NOTIFICATION_TAG,
                    },
                },
                blocking=True,
            )
        except (HomeAssistantError, vol.Invalid) as ex:
            _LOGGER.error("Failed to send notification: %s", ex)
            return False

        _LOGGER.debug("Notification sent: %s", title)
        return True

    async def _async_send_webex(
        self, sys_info: SystemInfo, booking: Booking, result: ReleaseResult
    ) -> bool:
        if self._session is None:
            _LOGGER.error("No HTTP session available for Webex notification")
            return False

        payload = {
            "roomId": self._options.webex_room_id,
            "html": build_webex_html(sys_info, booking, result),
        }
        try:
            async with self._session.post(
                WEBEX_MESSAGES_URL,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self._options.webex_bot_token}",
                    "Accept": "application/json",
                },
                timeout=REQUEST_TIMEOUT,
            ) as resp:
                if resp.status >= 400:
                    _LOGGER.error("Unexpected Webex response code: %s", resp.status)
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as ex:
            _LOGGER.error("Error sending Webex message: %s", ex)
            return False

        _LOGGER.debug("Webex message sent")
        return True
