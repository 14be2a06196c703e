"""Tests for the therapy session state machine."""

import asyncio

import pytest
from bleak.exc import BleakError

from thermoband.core import (
    MODE_CHAR_UUID,
    SET_POINT_CHAR_UUID,
    TEMPERATURE_CHAR_UUID,
    TIMER_CHAR_UUID,
)
from thermoband.controller import TherapyController
from thermoband.models import ConnectionState, Mode, Preset, ResultCode
from thermoband.scanner import DeviceScanner
from thermoband.timer import TimerEngine

from conftest import FakeBle


def sequence(mode: str, set_point: str, timer: str) -> list[tuple[str, str]]:
    return [
        (MODE_CHAR_UUID, mode),
        (SET_POINT_CHAR_UUID, set_point),
        (TIMER_CHAR_UUID, timer),
    ]


async def connected(controller, fake_ble):
    result = await controller.connect(timeout_ms=1000)
    assert result.ok
    fake_ble.writes.clear()
    return controller


@pytest.mark.asyncio
async def test_initial_session(controller):
    session = controller.session

    assert session.mode is Mode.OFF
    assert not session.running
    assert controller.connection_state == ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_snapshot_is_detached(controller):
    snapshot = controller.snapshot()
    snapshot.temperature = 99

    assert controller.session.temperature != 99
    assert controller.snapshot() == controller.session


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "mode, requested, expected",
    [
        (Mode.HOT, 60, 55),
        (Mode.HOT, 10, 25),
        (Mode.HOT, 40, 40),
        (Mode.COLD, 30, 24),
        (Mode.COLD, 2, 10),
        (Mode.COLD, 18, 18),
    ],
)
async def test_temperature_clamped_to_mode_range(controller, mode, requested, expected):
    await controller.set_mode(mode)

    result = await controller.set_temperature(requested)

    assert result.ok
    assert controller.session.temperature == expected


@pytest.mark.asyncio
async def test_hot_to_cold_reclamps_on_entry(controller):
    await controller.set_mode(Mode.HOT)
    await controller.set_temperature(60)
    assert controller.session.temperature == 55

    await controller.set_mode(Mode.COLD)

    assert controller.session.temperature == 24


@pytest.mark.asyncio
async def test_mode_entry_keeps_valid_temperature(controller):
    await controller.set_mode(Mode.COLD)
    await controller.set_temperature(12)

    await controller.set_mode(Mode.COLD)

    assert controller.session.temperature == 12


@pytest.mark.asyncio
async def test_off_ignores_temperature(controller):
    before = controller.session.temperature

    result = await controller.set_temperature(99)

    assert result.ok
    assert controller.session.temperature == before


@pytest.mark.asyncio
async def test_timer_rejected_while_off(controller):
    result = await controller.set_timer(10)

    assert result.code == ResultCode.VALIDATION_ERROR
    assert not controller.session.running
    assert controller.session.remaining_seconds == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("minutes", [-1, 91])
async def test_timer_rejects_out_of_range_minutes(controller, minutes):
    await controller.set_mode(Mode.HOT)

    result = await controller.set_timer(minutes)

    assert result.code == ResultCode.VALIDATION_ERROR
    assert not controller.session.running


@pytest.mark.asyncio
async def test_one_minute_timer_completes_once(controller, manual_timer):
    completions = []
    controller.set_on_timer_complete(completions.append)
    await controller.set_mode(Mode.HOT)
    await controller.set_timer(1)
    assert controller.session.remaining_seconds == 60
    assert controller.session.running

    for _ in range(60):
        manual_timer.tick()

    session = controller.session
    assert len(completions) == 1
    assert session.remaining_seconds == 0
    assert not session.running
    assert completions[0].running is False


@pytest.mark.asyncio
async def test_ticks_never_expose_running_with_zero_remaining(controller, manual_timer):
    seen = []
    controller.set_on_tick(seen.append)
    await controller.set_mode(Mode.COLD)
    await controller.set_timer(1)

    for _ in range(60):
        manual_timer.tick()

    assert len(seen) == 60
    assert all(s.remaining_seconds > 0 or not s.running for s in seen)


@pytest.mark.asyncio
async def test_off_stops_running_timer_and_sends_off(controller, fake_ble, manual_timer):
    await connected(controller, fake_ble)
    await controller.set_mode(Mode.HOT)
    await controller.set_timer(1)
    for _ in range(15):
        manual_timer.tick()
    assert controller.session.remaining_seconds == 45
    fake_ble.writes.clear()

    result = await controller.set_mode(Mode.OFF)

    assert result.ok
    assert not controller.session.running
    assert controller.session.remaining_seconds == 0
    assert not manual_timer.running
    assert fake_ble.payloads() == sequence("OFF", "0", "0")


@pytest.mark.asyncio
async def test_off_stops_timer_before_first_write(controller, fake_ble, manual_timer):
    await connected(controller, fake_ble)
    await controller.set_mode(Mode.HOT)
    await controller.set_timer(5)
    fake_ble.write_delay = 0.05

    task = asyncio.create_task(controller.set_mode(Mode.OFF))
    await asyncio.sleep(0)

    assert not controller.session.running
    assert fake_ble.writes == []
    await task


@pytest.mark.asyncio
async def test_mode_entry_sends_full_sequence(controller, fake_ble):
    await connected(controller, fake_ble)

    await controller.set_mode(Mode.HOT)
    await controller.set_timer(10)
    await controller.set_mode(Mode.COLD)

    assert fake_ble.payloads() == (
        sequence("HEAT", "25", "0")
        + sequence("HEAT", "25", "10")
        + sequence("COOL", "24", "10")
    )
    assert all(response for _, _, response in fake_ble.writes)


@pytest.mark.asyncio
async def test_partial_minutes_round_up_on_resync(controller, fake_ble, manual_timer):
    await connected(controller, fake_ble)
    await controller.set_mode(Mode.HOT)
    await controller.set_timer(2)
    for _ in range(61):
        manual_timer.tick()
    fake_ble.writes.clear()

    await controller.set_mode(Mode.HOT)

    assert fake_ble.payloads() == sequence("HEAT", "25", "1")


@pytest.mark.asyncio
async def test_set_temperature_resends_full_sequence(controller, fake_ble):
    await connected(controller, fake_ble)
    await controller.set_mode(Mode.HOT)
    fake_ble.writes.clear()

    await controller.set_temperature(70)

    assert fake_ble.payloads() == sequence("HEAT", "55", "0")


@pytest.mark.asyncio
async def test_set_timer_resends_full_sequence(controller, fake_ble):
    await connected(controller, fake_ble)
    await controller.set_mode(Mode.COLD)
    await controller.set_temperature(12)
    fake_ble.writes.clear()

    await controller.set_timer(20)

    assert fake_ble.payloads() == sequence("COOL", "12", "20")


@pytest.mark.asyncio
async def test_stop_timer_resends_with_zero_timer(controller, fake_ble):
    await connected(controller, fake_ble)
    await controller.set_mode(Mode.HOT)
    await controller.set_timer(15)
    fake_ble.writes.clear()

    result = await controller.stop_timer()

    assert result.ok
    assert not controller.session.running
    assert fake_ble.payloads() == sequence("HEAT", "25", "0")


@pytest.mark.asyncio
async def test_preset_while_disconnected_matches_connected(controller, fake_ble):
    preset = Preset(id="1", name="Warm", mode=Mode.HOT, temperature=40, timer_minutes=5)

    result = await controller.apply_preset(preset)

    assert result.ok
    assert fake_ble.writes == []

    other_ble = FakeBle()
    online = TherapyController(
        scanner=DeviceScanner(
            scanner_factory=other_ble.scanner_factory,
            client_factory=other_ble.client_factory,
        ),
        timer=TimerEngine(sleep=lambda _interval: asyncio.Event().wait()),
    )
    await online.connect(timeout_ms=1000)
    await online.apply_preset(preset)
    assert other_ble.payloads()[-3:] == sequence("HEAT", "40", "5")

    assert controller.session == online.session
    assert controller.session.mode is Mode.HOT
    assert controller.session.temperature == 40
    assert controller.session.remaining_seconds == 300
    assert controller.session.running
    await online.close()
    await controller.close()


@pytest.mark.asyncio
async def test_preset_is_clamped_and_sent_once(controller, fake_ble):
    await connected(controller, fake_ble)
    preset = Preset(id="1", name="Ice", mode=Mode.COLD, temperature=40, timer_minutes=15)

    await controller.apply_preset(preset)

    assert controller.session.temperature == 24
    assert controller.session.timer_minutes == 15
    assert fake_ble.payloads() == sequence("COOL", "24", "15")


@pytest.mark.asyncio
async def test_off_preset_never_starts_timer(controller, fake_ble):
    await controller.set_mode(Mode.HOT)
    await controller.set_timer(10)
    preset = Preset(id="1", name="Rest", mode=Mode.OFF, temperature=15, timer_minutes=20)

    await controller.apply_preset(preset)

    session = controller.session
    assert session.mode is Mode.OFF
    assert not session.running
    assert session.remaining_seconds == 0


@pytest.mark.asyncio
async def test_timer_zero_clears(controller, fake_ble):
    await connected(controller, fake_ble)
    await controller.set_mode(Mode.COLD)
    await controller.set_timer(10)
    fake_ble.writes.clear()

    result = await controller.set_timer(0)

    assert result.ok
    assert not controller.session.running
    assert fake_ble.payloads() == sequence("COOL", "15", "0")


@pytest.mark.asyncio
async def test_completion_clears_band_timer(controller, fake_ble, manual_timer):
    await connected(controller, fake_ble)
    await controller.set_mode(Mode.HOT)
    await controller.set_timer(1)
    fake_ble.writes.clear()

    for _ in range(60):
        manual_timer.tick()
    await asyncio.sleep(0.01)

    assert fake_ble.payloads() == sequence("HEAT", "25", "0")


@pytest.mark.asyncio
async def test_write_error_keeps_session(controller, fake_ble):
    await connected(controller, fake_ble)
    fake_ble.write_error = BleakError("write failed")

    result = await controller.set_mode(Mode.HOT)

    assert result.code == ResultCode.WRITE_ERROR
    assert controller.session.mode is Mode.HOT


@pytest.mark.asyncio
async def test_timer_survives_disconnect(controller, fake_ble, manual_timer):
    disconnects = []
    controller.set_on_disconnect(lambda: disconnects.append(1))
    await connected(controller, fake_ble)
    await controller.set_mode(Mode.HOT)
    await controller.set_timer(1)

    fake_ble.client.drop_link()
    manual_timer.tick()

    assert disconnects == [1]
    assert not controller.is_connected
    assert controller.session.running
    assert controller.session.remaining_seconds == 59


@pytest.mark.asyncio
async def test_connect_syncs_current_session(controller, fake_ble):
    await controller.set_mode(Mode.COLD)
    await controller.set_temperature(12)

    await controller.connect(timeout_ms=1000)

    assert fake_ble.payloads() == sequence("COOL", "12", "0")


@pytest.mark.asyncio
async def test_telemetry_through_controller(controller, fake_ble):
    readings = []
    assert not await controller.start_telemetry(readings.append)
    await connected(controller, fake_ble)

    assert await controller.start_telemetry(readings.append)
    fake_ble.client.notify(TEMPERATURE_CHAR_UUID, b"37.5")
    await controller.disconnect()
    fake_ble.client.notify(TEMPERATURE_CHAR_UUID, b"38")

    assert [r.celsius for r in readings] == [37.5]
    assert controller.last_reading.celsius == 37.5
    assert not controller.telemetry_active
