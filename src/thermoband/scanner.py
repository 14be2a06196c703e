"""
Device discovery and connection management.

DeviceScanner owns the one BLE connection to the band. It runs an open-ended
advertisement scan raced against a timeout, connects to the first matching
peripheral and tracks the connection lifecycle:

    DISCONNECTED -> SCANNING -> CONNECTING -> CONNECTED -> DISCONNECTED

Failed attempts end in FAILED, from which a new connect() may start again;
cancelled attempts end DISCONNECTED.
Other components only read the handle.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from .core import CONNECT_TIMEOUT_S, DEVICE_NAME, SCAN_TIMEOUT_MS, SERVICE_UUID
from .models import ConnectionState, ConnectResult, PermissionStatus, ResultCode
from .permissions import PermissionGate

logger = logging.getLogger(__name__)


def matches_target(
    device: BLEDevice, advertisement_data: Optional[AdvertisementData], name: str
) -> bool:
    """Check an advertisement against the target name.

    Some stacks report the name only in the device name, others only in the
    advertised local name, so both are checked.
    """
    if getattr(device, "name", None) == name:
        return True
    if advertisement_data is not None:
        return getattr(advertisement_data, "local_name", None) == name
    return False


class DeviceScanner:
    """Discovers the band and owns its connection."""

    def __init__(
        self,
        permissions: Optional[PermissionGate] = None,
        scanner_factory: Callable[..., Any] = BleakScanner,
        client_factory: Callable[..., Any] = BleakClient,
    ) -> None:
        """Initialize scanner with no connection.

        Args:
            permissions: Gate consulted before every scan
            scanner_factory: Builds a BleakScanner-compatible object
            client_factory: Builds a BleakClient-compatible object
        """
        self._permissions = permissions or PermissionGate()
        self._scanner_factory = scanner_factory
        self._client_factory = client_factory
        self._state = ConnectionState.DISCONNECTED
        self._client: Optional[Any] = None
        self._device: Optional[BLEDevice] = None
        self._attempt: Optional[asyncio.Task] = None
        self._disconnect_listeners: list[Callable[[], None]] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def handle(self) -> Optional[Any]:
        """Connected client, or None when not connected."""
        if self._state is not ConnectionState.CONNECTED:
            return None
        return self._client

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to the band."""
        return (
            self._state is ConnectionState.CONNECTED
            and self._client is not None
            and self._client.is_connected
        )

    @property
    def device(self) -> Optional[BLEDevice]:
        """Last matched peripheral."""
        return self._device

    def add_disconnect_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback fired whenever the connection is released.

        Args:
            callback: Function called with no arguments
        """
        self._disconnect_listeners.append(callback)

    async def connect(
        self, target_name: str = DEVICE_NAME, timeout_ms: int = SCAN_TIMEOUT_MS
    ) -> ConnectResult:
        """Scan for the band and connect to it.

        The attempt runs as its own task so disconnect() can cancel it.
        Cancelling the caller cancels the attempt too; either way the
        connection ends DISCONNECTED with no client held.

        Args:
            target_name: Advertised name to match
            timeout_ms: Scan timeout in milliseconds

        Returns:
            ConnectResult with SUCCESS and the client handle, or one of
            PERMISSION_DENIED, SCAN_TIMEOUT, SCAN_ERROR, CONNECT_ERROR
        """
        if self.is_connected:
            logger.warning("Already connected")
            return ConnectResult(ResultCode.SUCCESS, handle=self._client)

        if self._attempt is not None:
            return ConnectResult(
                ResultCode.CONNECT_ERROR, "connect already in progress"
            )

        if self._client is not None:
            # Link went down without a disconnect callback
            logger.warning("Releasing stale connection")
            await self.disconnect()

        self._state = ConnectionState.SCANNING
        attempt = asyncio.get_running_loop().create_task(
            self._connect_attempt(target_name, timeout_ms)
        )
        self._attempt = attempt
        try:
            await asyncio.wait({attempt})
        except asyncio.CancelledError:
            attempt.cancel()
            await asyncio.wait({attempt})
            raise
        finally:
            self._attempt = None

        if attempt.cancelled():
            return ConnectResult(ResultCode.CONNECT_ERROR, "connect cancelled")
        return attempt.result()

    async def _connect_attempt(self, target_name: str, timeout_ms: int) -> ConnectResult:
        try:
            status = await self._permissions.request_permissions()
            if status is not PermissionStatus.GRANTED:
                self._state = ConnectionState.DISCONNECTED
                return ConnectResult(
                    ResultCode.PERMISSION_DENIED, "Bluetooth permission denied"
                )

            result = await self._scan(target_name, timeout_ms)
            if not result.ok:
                self._state = ConnectionState.FAILED
                return result

            self._state = ConnectionState.CONNECTING
            result = await self._connect_device(result.handle)
        except asyncio.CancelledError:
            logger.warning("Connect attempt cancelled")
            self._state = ConnectionState.DISCONNECTED
            raise

        self._state = (
            ConnectionState.CONNECTED if result.ok else ConnectionState.FAILED
        )
        return result

    async def _scan(self, target_name: str, timeout_ms: int) -> ConnectResult:
        """Race an advertisement scan against the timeout.

        Returns:
            ConnectResult whose handle is the matched BLEDevice on success
        """
        loop = asyncio.get_running_loop()
        found: asyncio.Future = loop.create_future()

        def _on_advertisement(
            device: BLEDevice, advertisement_data: AdvertisementData
        ) -> None:
            # Late advertisements after a match or timeout are ignored
            if found.done():
                return
            if matches_target(device, advertisement_data, target_name):
                found.set_result(device)

        logger.info(f"Scanning for {target_name}...")
        try:
            scanner = self._scanner_factory(detection_callback=_on_advertisement)
            await scanner.start()
        except (BleakError, OSError) as e:
            logger.error(f"Scan failed: {e}")
            return ConnectResult(ResultCode.SCAN_ERROR, str(e))

        try:
            device = await asyncio.wait_for(found, timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            logger.warning(f"No {target_name} found within {timeout_ms} ms")
            return ConnectResult(
                ResultCode.SCAN_TIMEOUT, f"{target_name} not found"
            )
        finally:
            await self._stop_scanner(scanner)

        logger.info(f"Found {target_name} ({device.address})")
        self._device = device
        return ConnectResult(ResultCode.SUCCESS, handle=device)

    async def _stop_scanner(self, scanner: Any) -> None:
        try:
            await scanner.stop()
        except (BleakError, OSError) as e:
            logger.warning(f"Failed to stop scanner: {e}")

    async def _connect_device(self, device: BLEDevice) -> ConnectResult:
        """Connect and verify the therapy service is present."""
        client = self._client_factory(
            device,
            disconnected_callback=self._on_client_disconnect,
            timeout=CONNECT_TIMEOUT_S,
        )
        try:
            logger.info("Connecting to discovered device...")
            await client.connect()
            if client.services.get_service(SERVICE_UUID) is None:
                raise BleakError(f"Service {SERVICE_UUID} not found")
        except asyncio.CancelledError:
            await self._release(client)
            raise
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            logger.error(f"Connection failed: {e}")
            await self._release(client)
            return ConnectResult(ResultCode.CONNECT_ERROR, str(e) or type(e).__name__)

        self._client = client
        logger.info(f"Connected to {getattr(device, 'name', None) or device.address}")
        return ConnectResult(ResultCode.SUCCESS, handle=client)

    async def disconnect(self) -> None:
        """Cancel any connect attempt and release the connection, if any."""
        attempt = self._attempt
        if attempt is not None and attempt is not asyncio.current_task():
            attempt.cancel()
            await asyncio.wait({attempt})

        client = self._client
        if client is None:
            self._state = ConnectionState.DISCONNECTED
            return

        logger.info("Disconnecting...")
        self._client = None
        self._state = ConnectionState.DISCONNECTED
        await self._release(client)
        logger.info("Disconnected")
        self._notify_disconnect()

    async def _release(self, client: Any) -> None:
        try:
            await client.disconnect()
        except (BleakError, asyncio.TimeoutError, OSError) as e:
            logger.error(f"Disconnect failed: {e}")

    def _on_client_disconnect(self, client: Any) -> None:
        """Handle a disconnect reported by the BLE stack.

        Args:
            client: The client that disconnected
        """
        # Explicit disconnects clear _client first and notify on their own
        if client is not self._client:
            return

        logger.warning("Device disconnected")
        self._client = None
        self._state = ConnectionState.DISCONNECTED
        self._notify_disconnect()

    def _notify_disconnect(self) -> None:
        for callback in list(self._disconnect_listeners):
            try:
                callback()
            except Exception as e:
                logger.error(f"Disconnect callback error: {e}")
