"""
Command channel to the band's writable characteristics.

Every write is acknowledged (write-with-response) and writes are issued one at
a time: the firmware treats a mode, set-point, timer sequence as one logical
update, so a sequence holds the channel for its whole duration.
"""

import asyncio
import logging
from typing import Iterable

from bleak.exc import BleakError

from .models import Command, Endpoint, Mode, Result, ResultCode
from .scanner import DeviceScanner

logger = logging.getLogger(__name__)

_MODE_TOKENS = frozenset(mode.token for mode in Mode)


def validate_payload(endpoint: Endpoint, payload: str) -> bool:
    """Check a payload against the endpoint's wire format.

    Mode accepts HEAT, COOL or OFF; set-point and timer accept the decimal
    string of an integer.
    """
    if endpoint is Endpoint.MODE:
        return payload in _MODE_TOKENS
    digits = payload[1:] if payload.startswith("-") else payload
    return digits.isascii() and digits.isdigit()


class CommandChannel:
    """Serializes commands to the connected band."""

    def __init__(self, scanner: DeviceScanner) -> None:
        self._scanner = scanner
        self._lock = asyncio.Lock()

    async def send(self, endpoint: Endpoint, payload: str) -> Result:
        """Write one command.

        Args:
            endpoint: Target characteristic
            payload: ASCII token

        Returns:
            Result with SUCCESS, WRITE_ERROR or VALIDATION_ERROR
        """
        return await self.send_sequence([Command(endpoint, payload)])

    async def send_sequence(self, commands: Iterable[Command]) -> Result:
        """Write commands in order, each awaiting its acknowledgment.

        Stops at the first failure. Never raises.

        Args:
            commands: Commands to write

        Returns:
            Result of the first failed write, or SUCCESS
        """
        commands = list(commands)
        for command in commands:
            if not validate_payload(command.endpoint, command.payload):
                return Result.failure(
                    ResultCode.VALIDATION_ERROR,
                    f"Invalid payload {command.payload!r} for {command.endpoint.name}",
                )

        async with self._lock:
            for command in commands:
                result = await self._write(command)
                if not result.ok:
                    return result
        return Result.success()

    async def _write(self, command: Command) -> Result:
        client = self._scanner.handle
        if client is None or not client.is_connected:
            logger.warning(
                f"Not connected, dropping {command.endpoint.name}={command.payload}"
            )
            return Result.failure(ResultCode.WRITE_ERROR, "not connected")

        try:
            await client.write_gatt_char(
                command.endpoint.uuid, command.payload.encode("ascii"), response=True
            )
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            logger.error(f"Write {command.endpoint.name} failed: {e}")
            return Result.failure(ResultCode.WRITE_ERROR, str(e) or type(e).__name__)

        logger.debug(f"Sent {command.endpoint.name}={command.payload}")
        return Result.success()
