"""
REPL command table for the band.

Each command maps to a ThermoBandREPL handler; CommandCompleter offers command
names, mode names and the quick timer lengths while typing.
"""

from dataclasses import dataclass
from typing import Any, Iterable, List

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from .core import (
    COLD_TEMP_MAX,
    COLD_TEMP_MIN,
    HOT_TEMP_MAX,
    HOT_TEMP_MIN,
    QUICK_TIMER_MINUTES,
)


@dataclass
class Command:
    """Command definition with metadata."""

    name: str
    aliases: List[str]
    description: str
    usage: str
    handler: str


# Name, aliases and handler for every REPL command
COMMANDS = [
    Command(
        name="connect",
        aliases=["c"],
        description="Scan for and connect to the band",
        usage="connect",
        handler="cmd_connect",
    ),
    Command(
        name="disconnect",
        aliases=["dc"],
        description="Disconnect from the band",
        usage="disconnect",
        handler="cmd_disconnect",
    ),
    Command(
        name="mode",
        aliases=["m"],
        description="Set therapy mode",
        usage="mode <hot|cold|off>",
        handler="cmd_mode",
    ),
    Command(
        name="temp",
        aliases=["t"],
        description=f"Set temperature in °C (hot {HOT_TEMP_MIN}-{HOT_TEMP_MAX}, "
        f"cold {COLD_TEMP_MIN}-{COLD_TEMP_MAX})",
        usage="temp <°C>",
        handler="cmd_temp",
    ),
    Command(
        name="timer",
        aliases=["tm"],
        description="Start therapy timer (0 clears)",
        usage="timer <minutes>",
        handler="cmd_timer",
    ),
    Command(
        name="stoptimer",
        aliases=["x"],
        description="Stop the running timer",
        usage="stoptimer",
        handler="cmd_stoptimer",
    ),
    Command(
        name="status",
        aliases=["st"],
        description="Show session and band status",
        usage="status",
        handler="cmd_status",
    ),
    Command(
        name="live",
        aliases=["l"],
        description="Toggle live display with band telemetry",
        usage="live",
        handler="cmd_live",
    ),
    Command(
        name="presets",
        aliases=["ps"],
        description="List saved presets",
        usage="presets",
        handler="cmd_presets",
    ),
    Command(
        name="save",
        aliases=["sv"],
        description="Save current settings as a preset",
        usage="save <name>",
        handler="cmd_save",
    ),
    Command(
        name="apply",
        aliases=["a"],
        description="Apply a saved preset",
        usage="apply <name|#>",
        handler="cmd_apply",
    ),
    Command(
        name="delete",
        aliases=["del"],
        description="Delete a saved preset",
        usage="delete <name|#>",
        handler="cmd_delete",
    ),
    Command(
        name="help",
        aliases=["h", "?"],
        description="Show all available commands",
        usage="help",
        handler="cmd_help",
    ),
    Command(
        name="quit",
        aliases=["q", "exit"],
        description="Exit the REPL",
        usage="quit",
        handler="cmd_quit",
    ),
]

MODE_ARGUMENTS = ("hot", "cold", "off")


def get_command(name: str) -> Command | None:
    """Get command by name or alias.

    Args:
        name: Command name or alias

    Returns:
        Command object if found, None otherwise
    """
    for cmd in COMMANDS:
        if cmd.name == name or name in cmd.aliases:
            return cmd
    return None


class CommandCompleter(Completer):
    """Auto-completion for commands and arguments."""

    def __init__(self) -> None:
        """Initialize completer."""
        self._command_names = set()
        self._command_aliases = set()

        for cmd in COMMANDS:
            self._command_names.add(cmd.name)
            self._command_aliases.update(cmd.aliases)

    def get_completions(self, document: Document, complete_event) -> Any:  # type: ignore[no-untyped-def]
        """Get completion suggestions for current input.

        Args:
            document: Current input document
            complete_event: Completion event

        Yields:
            Completion objects for matching commands/arguments
        """
        text = document.text_before_cursor.lstrip()
        parts = text.split()

        # Nothing typed yet
        if not text:
            return

        # Command name
        if len(parts) == 1 and not text.endswith(" "):
            partial_cmd = parts[0].lower()
            all_names = self._command_names | self._command_aliases

            for name in sorted(all_names):
                if name.startswith(partial_cmd):
                    yield Completion(
                        name[len(partial_cmd) :],
                        start_position=0,
                        display=f"({name})",
                    )
            return

        cmd = get_command(parts[0].lower())
        if cmd is None:
            return
        partial = "" if text.endswith(" ") else parts[-1].lower()

        if cmd.name == "mode":
            yield from self._complete_values(MODE_ARGUMENTS, partial)
        elif cmd.name == "timer":
            yield from self._complete_values(
                [str(m) for m in QUICK_TIMER_MINUTES], partial
            )

    @staticmethod
    def _complete_values(values: Iterable[str], partial: str) -> Any:
        for value in values:
            if value.startswith(partial):
                yield Completion(
                    value[len(partial) :],
                    start_position=0,
                    display=value,
                )
