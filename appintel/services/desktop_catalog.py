"""
Desktop Catalog Source - Build the app catalog from .desktop files.

Scans the XDG application directories for freedesktop entries. A desktop
file id found in an earlier directory shadows the same id further down,
so user overrides in ~/.local/share/applications win over system files.

Change notifications are driven by rescan(): the new catalog is diffed
against the previous one and subscribers receive PackageAdded /
PackageRemoved events for every identity that appeared or vanished.
"""

import os
import threading
from configparser import ConfigParser, Error as ConfigParserError
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from ..models import CatalogEntry, PackageAdded, PackageEvent, PackageRemoved
from ..sources import CatalogSource

DESKTOP_SECTION = "Desktop Entry"
GAME_CATEGORY = "Game"


def xdg_application_dirs() -> list[Path]:
    """Application directories, user directory first."""
    xdg_data_home = os.environ.get("XDG_DATA_HOME", os.path.expanduser("~/.local/share"))
    data_dirs = os.environ.get("XDG_DATA_DIRS", "/usr/local/share:/usr/share").split(":")
    return [Path(xdg_data_home) / "applications"] + [Path(d) / "applications" for d in data_dirs if d]


def _is_true(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


class DesktopCatalogSource(CatalogSource):
    """
    Catalog source backed by freedesktop .desktop files.

    Args:
        search_dirs: Directories to scan, highest precedence first
        user_id: Profile identifier attached to every entry
        home: Files under this directory are not treated as system apps
    """

    def __init__(
        self,
        search_dirs: Optional[list[Path]] = None,
        user_id: Optional[str] = None,
        home: Optional[Path] = None,
    ):
        self.search_dirs = [Path(d) for d in search_dirs] if search_dirs is not None else xdg_application_dirs()
        self.user_id = user_id or str(os.getuid())
        self.home = Path(home) if home else Path.home()

        self._lock = threading.Lock()
        self._callbacks: list[Callable[[PackageEvent], None]] = []
        self._entries: dict[str, CatalogEntry] = {}

    def load_catalog(self) -> list[CatalogEntry]:
        """Scan all directories and return entries sorted by label."""
        entries: dict[str, CatalogEntry] = {}
        for directory in self.search_dirs:
            if not directory.is_dir():
                continue
            for path in sorted(directory.rglob("*.desktop")):
                desktop_id = self._desktop_id(directory, path)
                if desktop_id in entries:
                    continue
                entry = self._parse(path, desktop_id)
                if entry is not None:
                    entries[desktop_id] = entry

        with self._lock:
            self._entries = entries

        logger.debug(f"Loaded {len(entries)} desktop entries")
        return sorted(entries.values(), key=lambda e: e.label.lower())

    def rescan(self) -> list[PackageEvent]:
        """
        Reload the catalog and notify subscribers about changes.

        Returns:
            The events that were dispatched
        """
        with self._lock:
            before = {(e.package_id, e.user_id) for e in self._entries.values()}

        self.load_catalog()

        with self._lock:
            after = {(e.package_id, e.user_id) for e in self._entries.values()}
            callbacks = list(self._callbacks)

        events: list[PackageEvent] = [PackageRemoved(p, u) for p, u in sorted(before - after)]
        events.extend(PackageAdded(p, u) for p, u in sorted(after - before))

        for event in events:
            for callback in callbacks:
                callback(event)

        if events:
            logger.debug(f"Catalog rescan produced {len(events)} package events")
        return events

    def subscribe(self, callback: Callable[[PackageEvent], None]) -> None:
        with self._lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def unsubscribe(self, callback: Callable[[PackageEvent], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def icon_for(self, component_id: str, user_id: str) -> Optional[str]:
        """Icon handle of a loaded component, None if it is unknown."""
        with self._lock:
            entry = self._entries.get(component_id)
        if entry is None or entry.user_id != user_id:
            return None
        return entry.icon

    def _desktop_id(self, directory: Path, path: Path) -> str:
        """Desktop file id: relative path with '/' replaced by '-'."""
        return str(path.relative_to(directory)).replace(os.sep, "-")

    def _parse(self, path: Path, desktop_id: str) -> Optional[CatalogEntry]:
        """Parse one .desktop file; None if it is hidden, invalid or not an app."""
        parser = ConfigParser(interpolation=None, strict=False)
        parser.optionxform = str  # keys are case-sensitive

        try:
            parser.read(path, encoding="utf-8")
        except (ConfigParserError, OSError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping unreadable desktop file {path}: {e}")
            return None

        if not parser.has_section(DESKTOP_SECTION):
            return None
        section = parser[DESKTOP_SECTION]

        if section.get("Type", "Application") != "Application":
            return None
        if _is_true(section.get("NoDisplay")) or _is_true(section.get("Hidden")):
            return None

        package_id = desktop_id[: -len(".desktop")]
        categories = [c for c in section.get("Categories", "").split(";") if c]

        return CatalogEntry(
            component_id=desktop_id,
            package_id=package_id,
            label=section.get("Name", "") or package_id,
            user_id=self.user_id,
            icon=section.get("Icon") or None,
            is_system=not path.resolve().is_relative_to(self.home.resolve()),
            category_hint="game" if GAME_CATEGORY in categories else None,
        )
