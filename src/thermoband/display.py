"""
Display manager for Rich-based REPL output and live updates.

Handles all console output including formatted tables, session status,
presets and the toggle-able live view of timer and telemetry.
"""

import logging
from typing import Any, Iterable, Optional

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

from .models import Mode, Preset, Result, ResultCode, TemperatureReading, TherapySession

logger = logging.getLogger(__name__)

_MODE_STYLES = {Mode.HOT: "red", Mode.COLD: "blue", Mode.OFF: "dim"}


class DisplayManager:
    """Manages console output with Rich library."""

    def __init__(self, console: Optional[Console] = None):
        """Initialize display manager.

        Args:
            console: Rich Console instance (creates one if None)
        """
        self.console = console or Console()
        self.live_enabled = False
        self._live: Optional[Live] = None
        self._live_data: dict[str, Any] = {}

    def print_banner(self) -> None:
        """Print startup banner."""
        panel = Panel(
            "[bold cyan]ThermoBand - Thermal Therapy Control[/bold cyan]\n"
            "[dim]Type 'help' for commands, 'quit' to exit[/dim]",
            expand=False,
        )
        self.console.print(panel)

    def print_status(
        self,
        session: TherapySession,
        connection: str = "DISCONNECTED",
        reading: Optional[TemperatureReading] = None,
    ) -> None:
        """Display one-time session status table.

        Args:
            session: Session snapshot
            connection: Connection state name
            reading: Last telemetry reading, if any
        """
        table = self.format_status_table(self._status_data(session, connection, reading))
        self.console.print(table)

    def print_result(self, cmd: str, result: Result) -> None:
        """Display command result.

        Args:
            cmd: Command name
            result: Operation Result
        """
        reason = f": {result.reason}" if result.reason else ""
        if result.code == ResultCode.SUCCESS:
            self.console.print(f"[green]✓[/green] {cmd} succeeded", highlight=False)
        elif result.code == ResultCode.VALIDATION_ERROR:
            self.console.print(
                f"[yellow]⚠[/yellow] {cmd} rejected{reason}", highlight=False
            )
        elif result.code == ResultCode.SCAN_TIMEOUT:
            self.console.print(
                f"[red]✗[/red] {cmd} timed out{reason}. "
                "Make sure the band is powered on and nearby.",
                highlight=False,
            )
        elif result.code == ResultCode.PERMISSION_DENIED:
            self.console.print(
                f"[red]✗[/red] {cmd} not permitted{reason}", highlight=False
            )
        else:
            self.console.print(
                f"[red]✗[/red] {cmd} failed ({result.code.name}){reason}",
                highlight=False,
            )

    def print_error(self, message: str) -> None:
        """Print red error message.

        Args:
            message: Error message text
        """
        self.console.print(f"[red]Error:[/red] {message}", highlight=False)

    def print_info(self, message: str) -> None:
        """Print blue info message.

        Args:
            message: Info message text
        """
        self.console.print(f"[cyan]Info:[/cyan] {message}", highlight=False)

    def print_help(self, commands: list) -> None:
        """Display command reference.

        Args:
            commands: List of Command objects
        """
        table = Table(title="Available Commands", show_header=True)
        table.add_column("Command", style="cyan")
        table.add_column("Aliases", style="magenta")
        table.add_column("Description", style="white")
        table.add_column("Usage", style="yellow")

        for cmd in commands:
            aliases = ", ".join(cmd.aliases) if cmd.aliases else "-"
            table.add_row(cmd.name, aliases, cmd.description, cmd.usage)

        self.console.print(table)
        self.console.print(
            "[dim]Keyboard shortcuts: Ctrl+C to interrupt, Ctrl+D to exit[/dim]"
        )

    def print_presets(self, presets: Iterable[Preset]) -> None:
        """Display saved presets.

        Args:
            presets: Presets in slot order
        """
        presets = list(presets)
        if not presets:
            self.console.print("[dim]No presets saved yet.[/dim]")
            return

        table = Table(title="Saved Presets", show_header=True)
        table.add_column("#", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Mode")
        table.add_column("Detail", style="yellow")

        for slot, preset in enumerate(presets, start=1):
            table.add_row(
                str(slot),
                preset.name,
                self.format_mode(preset.mode),
                self.format_preset_detail(preset),
            )
        self.console.print(table)

    def start_live(self) -> None:
        """Start live display refresh mode."""
        if self.live_enabled:
            return

        self.live_enabled = True
        if not self._live_data:
            self._live_data = self._status_data(TherapySession(), "DISCONNECTED", None)
        renderable = self._create_live_table()
        self._live = Live(renderable, console=self.console, refresh_per_second=2)
        self._live.start()
        self.console.print("[dim]Live display enabled ['live' to disable][/dim]")

    def stop_live(self) -> None:
        """Stop live display refresh mode."""
        if not self.live_enabled:
            return

        self.live_enabled = False
        if self._live is not None:
            self._live.stop()
            self._live = None

    def update_session(self, session: TherapySession, connection: str) -> None:
        """Refresh session fields of the live view.

        Args:
            session: Session snapshot
            connection: Connection state name
        """
        reading = self._live_data.get("reading")
        self._live_data.update(self._status_data(session, connection, None))
        self._live_data["reading"] = reading
        self._refresh_live()

    def update_reading(self, reading: TemperatureReading) -> None:
        """Refresh the live view with a telemetry reading.

        Args:
            reading: Decoded temperature notification
        """
        self._live_data["reading"] = reading
        self._refresh_live()

    def toggle_live(self) -> bool:
        """Toggle live display on/off.

        Returns:
            New live display state (True = on, False = off)
        """
        if self.live_enabled:
            self.stop_live()
        else:
            self.start_live()
        return self.live_enabled

    def _refresh_live(self) -> None:
        if not self.live_enabled or self._live is None:
            return
        try:
            self._live.update(self._create_live_table())
        except Exception as e:
            logger.error(f"Live update error: {e}")

    def _create_live_table(self) -> Table:
        """Create the live display table.

        Returns:
            Rich Table with current session data
        """
        return self.format_status_table(self._live_data)

    @staticmethod
    def _status_data(
        session: TherapySession,
        connection: str,
        reading: Optional[TemperatureReading],
    ) -> dict[str, Any]:
        return {
            "connection": connection,
            "mode": session.mode,
            "temperature": session.temperature,
            "timer_minutes": session.timer_minutes,
            "remaining_seconds": session.remaining_seconds,
            "running": session.running,
            "reading": reading,
        }

    def format_status_table(self, data: dict) -> Table:
        """Create Rich Table for session display.

        Args:
            data: Dictionary with connection, mode, temperature, timer fields
                and the last reading

        Returns:
            Rich Table object
        """
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="yellow")

        mode = data.get("mode", Mode.OFF)
        table.add_row("Connection", data.get("connection", "UNKNOWN"))
        table.add_row("Mode", self.format_mode(mode))
        table.add_row(
            "Set-point",
            "N/A" if mode is Mode.OFF else self.format_temperature(data.get("temperature", 0)),
        )
        if data.get("running"):
            timer = f"{self.format_time(data.get('remaining_seconds', 0))} left"
        else:
            timer = f"{data.get('timer_minutes', 0)} min (stopped)"
        table.add_row("Timer", timer)
        reading = data.get("reading")
        table.add_row(
            "Band temperature",
            self.format_temperature(reading.celsius) if reading else "-",
        )

        return table

    @staticmethod
    def format_time(seconds: int) -> str:
        """Convert seconds to MM:SS format.

        Args:
            seconds: Number of seconds

        Returns:
            Formatted time string
        """
        if not isinstance(seconds, int):
            seconds = int(seconds)  # type: ignore[unreachable]
        mins = seconds // 60
        secs = seconds % 60
        return f"{mins:02d}:{secs:02d}"

    @staticmethod
    def format_temperature(celsius: float) -> str:
        if float(celsius).is_integer():
            return f"{int(celsius)}°C"
        return f"{celsius:.1f}°C"

    @staticmethod
    def format_mode(mode: Mode) -> str:
        style = _MODE_STYLES.get(mode, "white")
        return f"[{style}]{mode.value}[/{style}]"

    @classmethod
    def format_preset_detail(cls, preset: Preset) -> str:
        if preset.mode is Mode.OFF:
            return "Off"
        return f"{cls.format_temperature(preset.temperature)} • {preset.timer_minutes}m"
