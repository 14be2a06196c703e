"""
Saved therapy presets.

Up to three named snapshots of a session, kept in a small JSON file in the
user cache directory so they survive restarts.
"""

import json
import logging
import os
import platform
import uuid
from pathlib import Path
from typing import Iterator, Optional

from .core import MAX_PRESETS
from .models import Preset, PresetError, TherapySession

logger = logging.getLogger(__name__)


def default_preset_file() -> Path:
    """Get the standard location of the presets file."""
    # Check XDG_CACHE_HOME first (Linux/Unix standard)
    cache_dir = os.environ.get("XDG_CACHE_HOME")
    if cache_dir:
        cache_path = Path(cache_dir) / "thermoband"
    else:
        system = platform.system()
        if system == "Darwin":
            cache_path = Path.home() / "Library" / "Caches" / "thermoband"
        elif system == "Windows":
            local_appdata = os.environ.get("LOCALAPPDATA")
            if local_appdata:
                cache_path = Path(local_appdata) / "thermoband"
            else:
                appdata = os.environ.get(
                    "APPDATA", str(Path.home() / "AppData" / "Roaming")
                )
                cache_path = Path(appdata) / "thermoband"
        else:
            cache_path = Path.home() / ".cache" / "thermoband"

    return cache_path / "presets.json"


class PresetBook:
    """Holds at most MAX_PRESETS presets, optionally backed by a file."""

    def __init__(self, path: Optional[Path] = None) -> None:
        """Initialize preset book.

        Args:
            path: JSON file to load from and save to; None keeps presets in memory
        """
        self._path = path
        self._presets: list[Preset] = []
        if path is not None:
            self._presets = self._load()

    def __iter__(self) -> Iterator[Preset]:
        return iter(list(self._presets))

    def __len__(self) -> int:
        return len(self._presets)

    @property
    def is_full(self) -> bool:
        return len(self._presets) >= MAX_PRESETS

    def create(self, name: str, session: TherapySession) -> Preset:
        """Save the session's mode, temperature and timer under a name.

        Args:
            name: Display name
            session: Session to snapshot

        Returns:
            The new Preset

        Raises:
            PresetError: If the book is full or the name is blank/taken
        """
        name = name.strip()
        if not name:
            raise PresetError("Please enter a valid preset name")
        if self.is_full:
            raise PresetError(f"You can only save up to {MAX_PRESETS} presets")
        if self._find(name) is not None:
            raise PresetError(f"Preset already exists: {name}")

        preset = Preset(
            id=uuid.uuid4().hex,
            name=name,
            mode=session.mode,
            temperature=session.temperature,
            timer_minutes=session.timer_minutes,
        )
        self._presets.append(preset)
        self._save()
        logger.info(f"Saved preset {name}")
        return preset

    def get(self, key: str) -> Preset:
        """Look up a preset by id, name or 1-based slot number.

        Raises:
            PresetError: If no preset matches
        """
        preset = self._find(key)
        if preset is None:
            raise PresetError(f"No such preset: {key}")
        return preset

    def delete(self, key: str) -> Preset:
        """Delete a preset by id, name or slot number.

        Raises:
            PresetError: If no preset matches
        """
        preset = self.get(key)
        self._presets.remove(preset)
        self._save()
        logger.info(f"Deleted preset {preset.name}")
        return preset

    def clear(self) -> None:
        self._presets = []
        self._save()

    def _find(self, key: str) -> Optional[Preset]:
        key = key.strip()
        for preset in self._presets:
            if key == preset.id or key.lower() == preset.name.lower():
                return preset
        if key.isdigit() and 1 <= int(key) <= len(self._presets):
            return self._presets[int(key) - 1]
        return None

    def _load(self) -> list[Preset]:
        """Load presets from file; a missing or bad file yields none."""
        try:
            if self._path is None or not self._path.exists():
                return []
            with open(self._path, "r") as f:
                data = json.load(f)
            presets = [Preset.from_dict(item) for item in data.get("presets", [])]
            return presets[:MAX_PRESETS]
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Failed to load presets: {e}")
            return []

    def _save(self) -> None:
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            data = {"presets": [p.to_dict() for p in self._presets]}
            with open(self._path, "w") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.warning(f"Failed to save presets: {e}")
