"""
Shared test fixtures for the App Intelligence test suite.

Provides temporary databases, settings, rules, .desktop files and icon
files that use real file I/O, plus in-memory fakes for the collaborator
interfaces.
"""

import threading

import pytest
import toml
from PIL import Image

from appintel.models import ACTIVITY_RESUMED, CatalogEntry, UsageEvent
from appintel.sources import (
    CatalogSource,
    IconNotFoundError,
    IconSource,
    SourceUnavailableError,
    UsageEventSource,
)

DAY = 86400
NOW = 1_700_000_000.0


def make_entry(label, package_id=None, **kwargs):
    """Create a catalog entry with sensible defaults."""
    package_id = package_id or label.lower().replace(" ", "")
    kwargs.setdefault("component_id", f"{package_id}.desktop")
    return CatalogEntry(package_id=package_id, label=label, **kwargs)


class FakeEventSource(UsageEventSource):
    """Returns a fixed list of events, filtered by window like a real source."""

    def __init__(self, events=(), unavailable=False):
        self.events = list(events)
        self.unavailable = unavailable
        self.queries = []

    def query_events(self, start, end):
        self.queries.append((start, end))
        if self.unavailable:
            raise SourceUnavailableError("permission denied")
        return [e for e in self.events if start <= e.timestamp <= end]


class FakeIconSource(IconSource):
    """Renders a solid square per component; unknown components are missing."""

    def __init__(self, known=None, delay=None):
        self.known = set(known) if known is not None else None
        self.delay = delay
        self.calls = []
        self.threads = []
        self._lock = threading.Lock()

    def render_icon(self, component_id, user_id):
        with self._lock:
            self.calls.append((component_id, user_id))
            self.threads.append(threading.current_thread().name)
        if self.delay is not None:
            self.delay.wait(5)
        if self.known is not None and component_id not in self.known:
            raise IconNotFoundError(component_id)
        return Image.new("RGBA", (8, 8), (255, 0, 0, 255))


class FakeCatalogSource(CatalogSource):
    """In-memory catalog with manual event dispatch."""

    def __init__(self, entries=(), unavailable=False):
        self.entries = list(entries)
        self.unavailable = unavailable
        self.callbacks = []
        self.loads = 0

    def load_catalog(self):
        self.loads += 1
        if self.unavailable:
            raise SourceUnavailableError("launcher service gone")
        return list(self.entries)

    def subscribe(self, callback):
        self.callbacks.append(callback)

    def unsubscribe(self, callback):
        self.callbacks.remove(callback)

    def emit(self, event):
        for callback in list(self.callbacks):
            callback(event)


def resumed(package_id, age_seconds, now=NOW):
    return UsageEvent(package_id, now - age_seconds, ACTIVITY_RESUMED)


@pytest.fixture
def tmp_db(tmp_path):
    """Path for a real SQLite usage database."""
    return tmp_path / "usage.db"


@pytest.fixture
def tmp_settings(tmp_path):
    """Create a real settings TOML file overriding a few values."""
    settings_path = tmp_path / "settings.toml"
    data = {
        "ranking": {"lookback_days": 14},
        "icons": {"cache_size": 64},
    }
    settings_path.write_text(toml.dumps(data))
    return settings_path


@pytest.fixture
def tmp_rules(tmp_path):
    """Create a real category rules TOML file with synthetic lists."""
    rules_path = tmp_path / "categories.toml"
    data = {
        "categories": {
            "personal_prefix": "dev.me.",
            "professional_packages": ["com.bigbank", "com.office"],
            "utility_packages": ["org.tools.calc"],
            "professional_keywords": ["finance"],
        }
    }
    rules_path.write_text(toml.dumps(data))
    return rules_path


@pytest.fixture
def desktop_dirs(tmp_path):
    """User and system application directories with real .desktop files."""
    home = tmp_path / "home"
    user_dir = home / ".local" / "share" / "applications"
    system_dir = tmp_path / "usr" / "share" / "applications"
    user_dir.mkdir(parents=True)
    system_dir.mkdir(parents=True)

    (system_dir / "firefox.desktop").write_text(
        "[Desktop Entry]\nType=Application\nName=Firefox\nIcon=firefox\n"
        "Categories=Network;WebBrowser;\n"
    )
    (system_dir / "supertux.desktop").write_text(
        "[Desktop Entry]\nType=Application\nName=SuperTux\nIcon=supertux\n"
        "Categories=Game;ArcadeGame;\n"
    )
    (system_dir / "hidden.desktop").write_text(
        "[Desktop Entry]\nType=Application\nName=Hidden\nNoDisplay=true\n"
    )
    (system_dir / "link.desktop").write_text(
        "[Desktop Entry]\nType=Link\nName=Some Link\nURL=https://example.com\n"
    )
    (user_dir / "notes.desktop").write_text(
        "[Desktop Entry]\nType=Application\nName=alpha Notes\nIcon=/nonexistent/notes.png\n"
    )
    return home, user_dir, system_dir


@pytest.fixture
def icon_dir(tmp_path):
    """An XDG-like icon base with one themed PNG and one pixmap."""
    base = tmp_path / "icons"
    themed = base / "hicolor" / "48x48" / "apps"
    themed.mkdir(parents=True)
    Image.new("RGBA", (48, 48), (0, 128, 255, 255)).save(themed / "firefox.png")

    pixmaps = tmp_path / "pixmaps"
    pixmaps.mkdir()
    Image.new("RGB", (200, 100), (10, 20, 30)).save(pixmaps / "wide.png")
    return base, pixmaps
