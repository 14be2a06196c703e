"""
Main REPL application for ThermoBand control.

Interactive command loop with async support, auto-completion,
saved presets and a live view of timer and band telemetry.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.history import InMemoryHistory

from .commands import COMMANDS, CommandCompleter, get_command
from .controller import TherapyController
from .core import DEVICE_NAME, SCAN_TIMEOUT_MS
from .display import DisplayManager
from .models import Mode, Preset, PresetError, TemperatureReading, TherapySession
from .presets import PresetBook, default_preset_file

logger = logging.getLogger(__name__)


class ThermoBandREPL:
    """Interactive REPL for thermal-therapy band control."""

    def __init__(
        self,
        device_name: str = DEVICE_NAME,
        timeout_ms: int = SCAN_TIMEOUT_MS,
        session_id: str = "local",
        presets: Optional[PresetBook] = None,
        display: Optional[DisplayManager] = None,
        controller: Optional[TherapyController] = None,
    ) -> None:
        """Initialize REPL with controller, presets and display manager."""
        self.controller = controller or TherapyController(session_id=session_id)
        self.display = display or DisplayManager()
        self.presets = presets if presets is not None else PresetBook()
        self.device_name = device_name
        self.timeout_ms = timeout_ms
        self.running = False
        self.session: Optional[PromptSession] = None
        self._user_disconnect = False

        # Set up callbacks
        self.controller.set_on_tick(self._on_tick)
        self.controller.set_on_timer_complete(self._on_timer_complete)
        self.controller.set_on_disconnect(self._on_device_disconnect)

    async def run(self) -> None:
        """Run the main REPL loop."""
        self.running = True
        self.session = PromptSession(
            completer=CommandCompleter(),
            history=InMemoryHistory(),
            enable_history_search=True,
        )
        self.display.print_banner()

        # Auto-connect to the band on startup
        self.display.console.print(f"Attempting to connect to {self.device_name}...")
        result = await self.controller.connect(self.device_name, self.timeout_ms)
        if result.ok:
            self.display.console.print("✓ Connected successfully\n")
        else:
            self.display.console.print(
                f"⚠ Could not connect ({result.reason or result.code.name}). "
                "Use 'connect' command to retry.\n"
            )

        try:
            while self.running:
                try:
                    text = await self.session.prompt_async(self._get_prompt())
                    if text.strip():
                        await self.handle_input(text.strip())
                except KeyboardInterrupt:
                    # Just show new prompt on Ctrl+C
                    self.display.console.print()
                    continue
        except EOFError:
            # End of input (Ctrl+D)
            await self.cmd_quit([])
        finally:
            self.running = False
            await self.controller.close()

    def _get_prompt(self) -> FormattedText:
        """Get dynamic prompt based on connection state and mode.

        Returns:
            FormattedText for prompt_toolkit
        """
        mode = self.controller.session.mode.value
        if self.controller.is_connected:
            name = self.controller.device_name or "Band"
            return FormattedText([("class:prompt", f"[{name} {mode}] > ")])
        return FormattedText([("class:prompt", f"[disconnected {mode}] > ")])

    async def handle_input(self, text: str) -> None:
        """Parse and dispatch command.

        Args:
            text: Raw user input text
        """
        parts = text.split(maxsplit=1)
        if not parts:
            return

        cmd_name = parts[0].lower()
        args = parts[1].split() if len(parts) > 1 else []

        cmd = get_command(cmd_name)
        if not cmd:
            self.display.print_error(
                f"Unknown command: {cmd_name}. Type 'help' for available commands."
            )
            return

        handler = getattr(self, cmd.handler, None)
        if handler is None:
            self.display.print_error(f"Handler not found: {cmd.handler}")
            return

        try:
            await handler(args)
        except PresetError as e:
            self.display.print_error(str(e))
        except Exception as e:
            self.display.print_error(f"Command failed: {e}")
            logger.exception("Command exception")

    def _refresh_live(self) -> None:
        if self.display.live_enabled:
            self.display.update_session(
                self.controller.session, self.controller.connection_state.name
            )

    def _on_tick(self, session: TherapySession) -> None:
        if self.display.live_enabled:
            self.display.update_session(
                session, self.controller.connection_state.name
            )

    def _on_timer_complete(self, session: TherapySession) -> None:
        self._refresh_live()
        self.display.print_info("Timer complete: your therapy session has finished")

    def _on_reading(self, reading: TemperatureReading) -> None:
        if self.display.live_enabled:
            self.display.update_reading(reading)

    def _on_device_disconnect(self) -> None:
        """Callback when the band disconnects."""
        if self.display.live_enabled:
            self.display.stop_live()
        if self._user_disconnect:
            return
        self.display.print_info("Band disconnected, timer keeps running locally")

    async def _disconnect(self) -> None:
        self._user_disconnect = True
        try:
            await self.controller.disconnect()
        finally:
            self._user_disconnect = False

    # ========== Command Handlers ==========

    async def cmd_connect(self, args: list) -> None:
        """Connect to the band."""
        if self.controller.is_connected:
            self.display.print_info("Already connected")
            return

        self.display.print_info(f"Scanning for {self.device_name}...")
        result = await self.controller.connect(self.device_name, self.timeout_ms)
        self.display.print_result("connect", result)
        if result.ok:
            await self.cmd_status([])

    async def cmd_disconnect(self, args: list) -> None:
        """Disconnect from the band."""
        if not self.controller.is_connected:
            self.display.print_info("Not connected")
            return

        if self.display.live_enabled:
            self.display.stop_live()

        await self._disconnect()
        self.display.print_info("Disconnected")

    async def cmd_mode(self, args: list) -> None:
        """Set therapy mode."""
        if not args:
            self.display.print_error("Usage: mode <hot|cold|off>")
            return

        try:
            mode = Mode.parse(args[0])
        except ValueError as e:
            self.display.print_error(str(e))
            return

        result = await self.controller.set_mode(mode)
        self.display.print_result(f"mode {mode.value}", result)
        self._refresh_live()

    async def cmd_temp(self, args: list) -> None:
        """Set target temperature."""
        if not args:
            self.display.print_error("Usage: temp <°C>")
            return

        try:
            temperature = int(args[0])
        except ValueError:
            self.display.print_error(f"Invalid temperature: {args[0]}")
            return

        if self.controller.session.mode is Mode.OFF:
            self.display.print_info("Mode is Off, select hot or cold first")
            return

        result = await self.controller.set_temperature(temperature)
        applied = self.controller.session.temperature
        if applied != temperature:
            self.display.print_info(f"Temperature clamped to {applied}°C")
        self.display.print_result("temp", result)
        self._refresh_live()

    async def cmd_timer(self, args: list) -> None:
        """Start the therapy timer."""
        if not args:
            self.display.print_error("Usage: timer <minutes>")
            return

        try:
            minutes = int(args[0])
        except ValueError:
            self.display.print_error(f"Invalid minutes: {args[0]}")
            return

        result = await self.controller.set_timer(minutes)
        self.display.print_result("timer", result)
        self._refresh_live()

    async def cmd_stoptimer(self, args: list) -> None:
        """Stop the running timer."""
        if not self.controller.session.running:
            self.display.print_info("Timer is not running")
            return

        result = await self.controller.stop_timer()
        self.display.print_result("stoptimer", result)
        self._refresh_live()

    async def cmd_status(self, args: list) -> None:
        """Show current session values."""
        self.display.print_status(
            self.controller.session,
            self.controller.connection_state.name,
            self.controller.last_reading,
        )

    async def cmd_live(self, args: list) -> None:
        """Toggle live display mode."""
        enabled = self.display.toggle_live()
        if enabled:
            self._refresh_live()
            if self.controller.is_connected and not self.controller.telemetry_active:
                if not await self.controller.start_telemetry(self._on_reading):
                    self.display.print_error("Could not subscribe to band telemetry")
        else:
            await self.controller.stop_telemetry()
            self.display.print_info("Live display disabled")

    async def cmd_presets(self, args: list) -> None:
        """List saved presets."""
        self.display.print_presets(self.presets)

    async def cmd_save(self, args: list) -> None:
        """Save current settings as a preset."""
        name = " ".join(args) if args else f"Mode {len(self.presets) + 1}"
        preset = self.presets.create(name, self.controller.session)
        self.display.print_info(
            f"Saved preset '{preset.name}' "
            f"({self.display.format_preset_detail(preset)})"
        )

    async def cmd_apply(self, args: list) -> None:
        """Apply a saved preset."""
        if not args:
            self.display.print_error("Usage: apply <name|#>")
            return

        preset: Preset = self.presets.get(" ".join(args))
        result = await self.controller.apply_preset(preset)
        self.display.print_result(f"apply {preset.name}", result)
        self._refresh_live()

    async def cmd_delete(self, args: list) -> None:
        """Delete a saved preset."""
        if not args:
            self.display.print_error("Usage: delete <name|#>")
            return

        preset = self.presets.delete(" ".join(args))
        self.display.print_info(f"Deleted preset '{preset.name}'")

    async def cmd_help(self, args: list) -> None:
        """Show all available commands."""
        self.display.print_help(COMMANDS)

    async def cmd_quit(self, args: list) -> None:
        """Exit the REPL."""
        if self.display.live_enabled:
            self.display.stop_live()

        if self.controller.is_connected:
            self.display.print_info("Disconnecting...")
            await self._disconnect()

        self.display.console.print("[cyan]Goodbye![/cyan]")
        self.running = False


async def run_cli_command(args: argparse.Namespace) -> int:
    """Connect, apply the requested settings once and disconnect.

    Returns:
        Process exit code
    """
    controller = TherapyController(session_id=args.session)
    display = DisplayManager()

    try:
        display.print_info(f"Connecting to {args.name}...")
        result = await controller.connect(args.name, int(args.timeout * 1000))
        if not result.ok:
            display.print_result("connect", result)
            return 1

        if args.off:
            result = await controller.set_mode(Mode.OFF)
            display.print_result("off", result)
            return 0 if result.ok else 1

        mode = Mode.parse(args.mode)
        if args.temp is not None:
            temperature = mode.clamp(args.temp)
            if temperature != args.temp:
                display.print_info(f"Temperature clamped to {temperature}°C")
        else:
            temperature = controller.session.temperature
        preset = Preset(
            id="cli",
            name="command line",
            mode=mode,
            temperature=temperature,
            timer_minutes=args.timer or 0,
        )
        result = await controller.apply_preset(preset)
        display.print_result("apply", result)
        display.print_status(controller.session, controller.connection_state.name)
        return 0 if result.ok else 1

    finally:
        # The band keeps its own timer; only the local countdown ends here
        await controller.close()


def main() -> None:
    """Entry point for the REPL application."""
    parser = argparse.ArgumentParser(
        description="ThermoBand thermal-therapy band control",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  thermoband                              # Start interactive REPL
  thermoband --mode hot --temp 40 --timer 10
  thermoband --mode cold --timer 15
  thermoband --off                        # Turn the band off
  thermoband --clear-presets              # Remove saved presets
        """,
    )

    parser.add_argument(
        "--name", default=DEVICE_NAME, help=f"Advertised band name (default {DEVICE_NAME})"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=SCAN_TIMEOUT_MS / 1000,
        help="Scan timeout in seconds",
    )
    parser.add_argument("--session", default="local", help="Session identifier")
    parser.add_argument("--mode", choices=["hot", "cold", "off"], help="Set mode")
    parser.add_argument("--temp", type=int, help="Target temperature in °C")
    parser.add_argument("--timer", type=int, help="Timer in minutes")
    parser.add_argument("--off", action="store_true", help="Turn the band off")
    parser.add_argument(
        "--clear-presets", action="store_true", help="Remove saved presets"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    if args.mode == "off":
        args.off = True
        args.mode = None

    if args.clear_presets:
        PresetBook(default_preset_file()).clear()
        print("Cleared saved presets")
        return

    if args.off and args.mode:
        print("Error: --off cannot be combined with --mode", file=sys.stderr)
        sys.exit(1)

    if args.off and (args.temp is not None or args.timer is not None):
        print("Error: --temp and --timer cannot be combined with --off", file=sys.stderr)
        sys.exit(1)

    if (args.temp is not None or args.timer is not None) and not (args.mode or args.off):
        print("Error: --temp and --timer require --mode", file=sys.stderr)
        sys.exit(1)

    # If no CLI commands, start REPL
    if not (args.mode or args.off):
        try:
            repl = ThermoBandREPL(
                device_name=args.name,
                timeout_ms=int(args.timeout * 1000),
                session_id=args.session,
                presets=PresetBook(default_preset_file()),
            )
            asyncio.run(repl.run())
        except KeyboardInterrupt:
            print("\nInterrupted")
            sys.exit(0)
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)
        return

    try:
        sys.exit(asyncio.run(run_cli_command(args)))
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(1)


if __name__ == "__main__":
    main()
