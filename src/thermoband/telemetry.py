"""
Live temperature telemetry from the band.

The band notifies its current temperature as ASCII text ("36", "36.5",
sometimes with a trailing unit). Decoded readings are forwarded to a sink in
arrival order.
"""

import asyncio
import itertools
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional

from bleak.exc import BleakError

from .core import TEMPERATURE_CHAR_UUID
from .models import TemperatureReading
from .scanner import DeviceScanner

logger = logging.getLogger(__name__)

TelemetrySink = Callable[[TemperatureReading], None]

_NUMBER = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*(?:°?\s*[Cc])?\s*$")
_handle_ids = itertools.count(1)


def decode_temperature(data: bytes | bytearray) -> Optional[float]:
    """Decode a temperature notification payload.

    Returns:
        Temperature in °C, or None if the payload is not a number
    """
    try:
        text = bytes(data).decode("utf-8").strip("\x00")
    except UnicodeDecodeError:
        return None
    match = _NUMBER.match(text)
    if not match:
        return None
    return float(match.group(1))


@dataclass
class SubscriptionHandle:
    """Identifies one telemetry subscription."""

    id: int
    active: bool = False


class TelemetryMonitor:
    """Forwards temperature notifications to a single subscriber."""

    def __init__(self, scanner: DeviceScanner) -> None:
        self._scanner = scanner
        self._current: Optional[SubscriptionHandle] = None
        self._sink: Optional[TelemetrySink] = None
        self._client: Optional[Any] = None
        self._last_reading: Optional[TemperatureReading] = None

        scanner.add_disconnect_listener(self._on_disconnect)

    @property
    def last_reading(self) -> Optional[TemperatureReading]:
        """Most recent decoded reading."""
        return self._last_reading

    @property
    def is_subscribed(self) -> bool:
        return self._current is not None and self._current.active

    async def subscribe(self, sink: TelemetrySink) -> SubscriptionHandle:
        """Start forwarding readings to sink.

        Replaces any prior subscription. Without a connection the returned
        handle is inert.

        Args:
            sink: Function called with each TemperatureReading

        Returns:
            SubscriptionHandle for unsubscribe()
        """
        if self._current is not None:
            await self.unsubscribe(self._current)

        handle = SubscriptionHandle(id=next(_handle_ids))
        client = self._scanner.handle
        if client is None:
            logger.debug("Not connected, telemetry subscription is inert")
            return handle

        handle.active = True
        self._current = handle
        self._sink = sink
        self._client = client
        try:
            await client.start_notify(TEMPERATURE_CHAR_UUID, self._on_notify)
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            logger.error(f"Telemetry subscribe failed: {e}")
            self._clear()
            return handle

        logger.info("Telemetry subscribed")
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """Stop a subscription. Unknown or inactive handles are ignored."""
        if handle is not self._current:
            handle.active = False
            return

        client = self._client
        was_active = handle.active
        self._clear()
        if not was_active or client is None or not client.is_connected:
            return
        try:
            await client.stop_notify(TEMPERATURE_CHAR_UUID)
            logger.info("Telemetry unsubscribed")
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            logger.warning(f"Telemetry unsubscribe failed: {e}")

    async def unsubscribe_all(self) -> None:
        """Stop the current subscription, if any."""
        if self._current is not None:
            await self.unsubscribe(self._current)

    def _clear(self) -> None:
        if self._current is not None:
            self._current.active = False
        self._current = None
        self._sink = None
        self._client = None

    def _on_notify(self, _characteristic: Any, data: bytearray) -> None:
        """Handle a notification from the BLE stack. Must not block."""
        if self._current is None or not self._current.active:
            return

        celsius = decode_temperature(data)
        if celsius is None:
            logger.warning(f"Dropping undecodable telemetry: {bytes(data)!r}")
            return

        reading = TemperatureReading(celsius)
        self._last_reading = reading
        if self._sink is not None:
            try:
                self._sink(reading)
            except Exception as e:
                logger.error(f"Telemetry sink error: {e}")

    def _on_disconnect(self) -> None:
        if self._current is not None:
            logger.info("Telemetry subscription cancelled by disconnect")
        self._clear()
