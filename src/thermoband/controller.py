"""
Therapy session controller for the ThermoBand.

Owns the session (mode, set-point, timer) and keeps the band in step with it.
All updates go through the validated operations below; the local session is
updated the same way whether or not the band is connected, and commands are
only written when it is.
"""

import asyncio
import logging
from typing import Callable, Optional

from .channel import CommandChannel
from .core import DEVICE_NAME, SCAN_TIMEOUT_MS, TIMER_MAX_MINUTES
from .models import (
    Command,
    ConnectionState,
    ConnectResult,
    Endpoint,
    Mode,
    Preset,
    Result,
    ResultCode,
    TemperatureReading,
    TherapySession,
)
from .scanner import DeviceScanner
from .telemetry import TelemetryMonitor, TelemetrySink
from .timer import TimerEngine

logger = logging.getLogger(__name__)

SessionCallback = Callable[[TherapySession], None]


class TherapyController:
    """Manages the therapy session and drives the band."""

    def __init__(
        self,
        session_id: str = "local",
        scanner: Optional[DeviceScanner] = None,
        timer: Optional[TimerEngine] = None,
    ) -> None:
        """Initialize controller with an OFF session and no connection.

        Args:
            session_id: Identifier of the signed-in user session
            scanner: Connection owner (a default DeviceScanner if None)
            timer: Countdown engine (a default TimerEngine if None)
        """
        self.session_id = session_id
        self._session = TherapySession()
        self._scanner = scanner or DeviceScanner()
        self._channel = CommandChannel(self._scanner)
        self._telemetry = TelemetryMonitor(self._scanner)
        self._timer = timer or TimerEngine()
        self._timer.set_on_tick(self._on_timer_tick)
        self._timer.set_on_complete(self._on_timer_complete)
        self._background: set[asyncio.Task] = set()

        # Callbacks
        self._on_tick: Optional[SessionCallback] = None
        self._on_timer_complete_cb: Optional[SessionCallback] = None
        self._on_disconnect: Optional[Callable[[], None]] = None

        self._scanner.add_disconnect_listener(self._on_device_disconnect)

    @property
    def session(self) -> TherapySession:
        """Copy of the current session."""
        return self.snapshot()

    def snapshot(self) -> TherapySession:
        """Get a copy of the session.

        Returns:
            TherapySession detached from controller state
        """
        return self._session.copy()

    @property
    def connection_state(self) -> ConnectionState:
        return self._scanner.state

    @property
    def is_connected(self) -> bool:
        return self._scanner.is_connected

    @property
    def device_name(self) -> Optional[str]:
        device = self._scanner.device
        if device is None:
            return None
        return device.name or device.address

    @property
    def last_reading(self) -> Optional[TemperatureReading]:
        return self._telemetry.last_reading

    @property
    def telemetry_active(self) -> bool:
        return self._telemetry.is_subscribed

    def set_on_tick(self, callback: SessionCallback) -> None:
        """Set callback for timer ticks.

        Args:
            callback: Function called with a session copy every second
        """
        self._on_tick = callback

    def set_on_timer_complete(self, callback: SessionCallback) -> None:
        """Set callback for timer completion.

        Args:
            callback: Function called once with a session copy when the timer ends
        """
        self._on_timer_complete_cb = callback

    def set_on_disconnect(self, callback: Callable[[], None]) -> None:
        """Set callback for disconnect events.

        Args:
            callback: Function called when the band disconnects
        """
        self._on_disconnect = callback

    # ========== Connection ==========

    async def connect(
        self, target_name: str = DEVICE_NAME, timeout_ms: int = SCAN_TIMEOUT_MS
    ) -> ConnectResult:
        """Scan for and connect to the band, then push the current session.

        Returns:
            ConnectResult from the scanner
        """
        result = await self._scanner.connect(target_name, timeout_ms)
        if result.ok:
            logger.info(f"[{self.session_id}] Connected, syncing session")
            sync = await self._send_sequence(self._full_sequence())
            if not sync.ok:
                logger.warning(f"Initial sync failed: {sync.reason}")
        return result

    async def disconnect(self) -> None:
        """Disconnect from the band. The session and timer are unaffected."""
        await self._telemetry.unsubscribe_all()
        await self._scanner.disconnect()

    async def start_telemetry(self, sink: TelemetrySink) -> bool:
        """Subscribe to temperature telemetry.

        Returns:
            True if the subscription is live
        """
        handle = await self._telemetry.subscribe(sink)
        return handle.active

    async def stop_telemetry(self) -> None:
        await self._telemetry.unsubscribe_all()

    async def close(self) -> None:
        """Stop the timer and release the connection."""
        self._timer.stop()
        self._sync_timer_state()
        for task in list(self._background):
            task.cancel()
        await self.disconnect()

    # ========== Session operations ==========

    async def set_mode(self, mode: Mode) -> Result:
        """Switch therapy mode and resend the full command sequence.

        Entering HOT or COLD clamps an out-of-range temperature; entering OFF
        stops any running timer before anything is written.

        Args:
            mode: Target mode

        Returns:
            Result of the command writes (SUCCESS when disconnected)
        """
        self._enter_mode(mode)
        logger.info(f"Mode set to {mode.value} ({self._session.temperature}°C)")
        return await self._send_sequence(self._full_sequence())

    async def set_temperature(self, temperature: int) -> Result:
        """Set the target temperature, clamped to the active mode's range.

        OFF ignores temperature entirely.

        Args:
            temperature: Requested set-point in °C

        Returns:
            Result of the full command sequence
        """
        if self._session.mode is Mode.OFF:
            logger.info("Temperature ignored while mode is Off")
            return Result.success()

        clamped = self._session.mode.clamp(int(temperature))
        if clamped != temperature:
            logger.info(f"Temperature {temperature} clamped to {clamped}")
        self._session.temperature = clamped
        return await self._send_sequence(self._full_sequence())

    async def set_timer(self, minutes: int) -> Result:
        """Start the countdown, or clear it with 0.

        Args:
            minutes: Timer length in minutes

        Returns:
            VALIDATION_ERROR while OFF or for out-of-range minutes,
            otherwise the result of the full command sequence
        """
        if self._session.mode is Mode.OFF:
            return Result.failure(
                ResultCode.VALIDATION_ERROR,
                "Please select Hot or Cold mode to start the timer",
            )
        if minutes < 0 or minutes > TIMER_MAX_MINUTES:
            return Result.failure(
                ResultCode.VALIDATION_ERROR,
                f"Timer must be between 0 and {TIMER_MAX_MINUTES} minutes",
            )

        self._start_timer(minutes)
        return await self._send_sequence(self._full_sequence())

    async def stop_timer(self) -> Result:
        """Stop the countdown and resend the session with the timer cleared."""
        self._timer.stop()
        self._sync_timer_state()
        return await self._send_sequence(self._full_sequence())

    async def apply_preset(self, preset: Preset) -> Result:
        """Replace mode, temperature and timer in one transition.

        Args:
            preset: Snapshot to apply

        Returns:
            Result of the full command sequence
        """
        if preset.timer_minutes < 0 or preset.timer_minutes > TIMER_MAX_MINUTES:
            return Result.failure(
                ResultCode.VALIDATION_ERROR,
                f"Preset timer must be between 0 and {TIMER_MAX_MINUTES} minutes",
            )

        self._session.temperature = preset.temperature
        self._enter_mode(preset.mode)
        if preset.mode is Mode.OFF:
            self._session.timer_minutes = preset.timer_minutes
        else:
            self._start_timer(preset.timer_minutes)

        logger.info(f"Applied preset {preset.name}")
        return await self._send_sequence(self._full_sequence())

    # ========== Internals ==========

    def _enter_mode(self, mode: Mode) -> None:
        self._session.mode = mode
        if mode is Mode.OFF:
            self._timer.stop()
            self._sync_timer_state()
        else:
            self._session.temperature = mode.clamp(self._session.temperature)

    def _start_timer(self, minutes: int) -> None:
        self._session.timer_minutes = minutes
        self._timer.start(minutes * 60)
        self._sync_timer_state()

    def _sync_timer_state(self) -> None:
        self._session.remaining_seconds = self._timer.remaining_seconds
        self._session.running = self._timer.running

    def _full_sequence(self) -> list[Command]:
        session = self._session
        if session.mode is Mode.OFF:
            return [
                Command(Endpoint.MODE, Mode.OFF.token),
                Command(Endpoint.SET_POINT, "0"),
                Command(Endpoint.TIMER, "0"),
            ]
        return [
            Command(Endpoint.MODE, session.mode.token),
            Command(Endpoint.SET_POINT, str(session.temperature)),
            Command(Endpoint.TIMER, str(session.active_timer_minutes)),
        ]

    async def _send_sequence(self, commands: list[Command]) -> Result:
        if not self.is_connected:
            logger.debug(
                f"Not connected, session updated locally only ({len(commands)} commands skipped)"
            )
            return Result.success()
        return await self._channel.send_sequence(commands)

    def _on_timer_tick(self, remaining: int) -> None:
        self._sync_timer_state()
        if self._on_tick:
            try:
                self._on_tick(self.session)
            except Exception as e:
                logger.error(f"Tick callback error: {e}")

    def _on_timer_complete(self) -> None:
        self._sync_timer_state()
        logger.info("Therapy timer finished")
        if self.is_connected:
            task = asyncio.get_running_loop().create_task(
                self._send_sequence(self._full_sequence())
            )
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        if self._on_timer_complete_cb:
            try:
                self._on_timer_complete_cb(self.session)
            except Exception as e:
                logger.error(f"Timer complete callback error: {e}")

    def _on_device_disconnect(self) -> None:
        logger.warning(f"[{self.session_id}] Band disconnected, session kept locally")
        if self._on_disconnect:
            try:
                self._on_disconnect()
            except Exception as e:
                logger.error(f"Disconnect callback error: {e}")
