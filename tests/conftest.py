"""
Pytest configuration and BLE fakes.

Provides in-process stand-ins for BleakScanner and BleakClient so the
scanner, channel, telemetry and controller can be tested without a radio.

Fixtures:
    - fake_ble: configurable fake BLE stack
    - scanner: DeviceScanner wired to fake_ble
    - manual_timer: TimerEngine that only advances on tick()
    - controller: TherapyController wired to both
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

import pytest

from thermoband.controller import TherapyController
from thermoband.core import DEVICE_NAME, SERVICE_UUID
from thermoband.scanner import DeviceScanner
from thermoband.timer import TimerEngine


@dataclass
class FakeDevice:
    """Stand-in for bleak's BLEDevice."""

    name: Optional[str]
    address: str = "AA:BB:CC:DD:EE:FF"


@dataclass
class FakeAdvertisement:
    """Stand-in for bleak's AdvertisementData."""

    local_name: Optional[str] = None
    service_uuids: List[str] = field(default_factory=list)


class FakeServices:
    def __init__(self, uuids: List[str]) -> None:
        self._uuids = uuids

    def get_service(self, uuid: str) -> Any:
        return object() if uuid in self._uuids else None


class FakeScanner:
    """Replays configured advertisements after start()."""

    def __init__(self, ble: "FakeBle", detection_callback: Callable) -> None:
        self._ble = ble
        self.detection_callback = detection_callback
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        if self._ble.scan_error is not None:
            raise self._ble.scan_error
        self.started = True
        loop = asyncio.get_running_loop()
        loop.call_later(self._ble.advertise_delay, self.emit_all)

    async def stop(self) -> None:
        self.stopped = True

    def emit_all(self) -> None:
        for device, adv in self._ble.advertisements:
            self.detection_callback(device, adv)


class FakeClient:
    """Records writes and notification subscriptions."""

    def __init__(
        self,
        ble: "FakeBle",
        device: Any,
        disconnected_callback: Optional[Callable] = None,
        timeout: float = 10.0,
    ) -> None:
        self._ble = ble
        self.device = device
        self.disconnected_callback = disconnected_callback
        self.timeout = timeout
        self.disconnect_calls = 0
        self.is_connected = False
        self.services = FakeServices(ble.service_uuids)
        self.notify_callbacks: dict[str, Callable] = {}

    async def connect(self) -> bool:
        await asyncio.sleep(self._ble.connect_delay)
        if self._ble.connect_error is not None:
            raise self._ble.connect_error
        self.is_connected = True
        return True

    async def disconnect(self) -> bool:
        self.disconnect_calls += 1
        was_connected = self.is_connected
        self.is_connected = False
        if was_connected and self.disconnected_callback:
            self.disconnected_callback(self)
        return True

    async def write_gatt_char(self, uuid: str, data: bytes, response: bool = False) -> None:
        await asyncio.sleep(self._ble.write_delay)
        if self._ble.write_error is not None:
            raise self._ble.write_error
        self._ble.writes.append((uuid, bytes(data), response))

    async def start_notify(self, uuid: str, callback: Callable) -> None:
        self.notify_callbacks[uuid] = callback

    async def stop_notify(self, uuid: str) -> None:
        self.notify_callbacks.pop(uuid, None)

    def notify(self, uuid: str, data: bytes) -> None:
        """Deliver a notification as the BLE stack would."""
        callback = self.notify_callbacks.get(uuid)
        if callback:
            callback(uuid, bytearray(data))

    def drop_link(self) -> None:
        """Simulate the band going out of range."""
        self.is_connected = False
        if self.disconnected_callback:
            self.disconnected_callback(self)


class FakeBle:
    """Configurable fake BLE stack."""

    def __init__(self) -> None:
        self.advertisements: list[tuple[FakeDevice, FakeAdvertisement]] = [
            (FakeDevice(DEVICE_NAME), FakeAdvertisement(local_name=DEVICE_NAME))
        ]
        self.advertise_delay = 0.01
        self.scan_error: Optional[BaseException] = None
        self.connect_error: Optional[BaseException] = None
        self.connect_delay = 0.0
        self.write_error: Optional[BaseException] = None
        self.write_delay = 0.0
        self.service_uuids = [SERVICE_UUID]
        self.scanners: list[FakeScanner] = []
        self.clients: list[FakeClient] = []
        self.writes: list[tuple[str, bytes, bool]] = []

    @property
    def client(self) -> FakeClient:
        return self.clients[-1]

    def scanner_factory(self, detection_callback: Callable) -> FakeScanner:
        scanner = FakeScanner(self, detection_callback)
        self.scanners.append(scanner)
        return scanner

    def client_factory(self, device: Any, **kwargs: Any) -> FakeClient:
        client = FakeClient(self, device, **kwargs)
        self.clients.append(client)
        return client

    def payloads(self) -> list[tuple[str, str]]:
        """Writes as (uuid, decoded payload) pairs."""
        return [(uuid, data.decode("ascii")) for uuid, data, _ in self.writes]


async def _wait_forever(_interval: float) -> None:
    await asyncio.Event().wait()


@pytest.fixture
def fake_ble() -> FakeBle:
    return FakeBle()


@pytest.fixture
def scanner(fake_ble: FakeBle) -> DeviceScanner:
    return DeviceScanner(
        scanner_factory=fake_ble.scanner_factory,
        client_factory=fake_ble.client_factory,
    )


@pytest.fixture
def manual_timer() -> TimerEngine:
    """TimerEngine whose background task never ticks on its own."""
    return TimerEngine(sleep=_wait_forever)


@pytest.fixture
def controller(scanner: DeviceScanner, manual_timer: TimerEngine) -> TherapyController:
    return TherapyController(session_id="test", scanner=scanner, timer=manual_timer)
