"""
Collaborator interfaces - What the core expects from the host platform.

The core never talks to the platform directly. It depends on three
sources: one for the app catalog, one for usage events and one for icon
rasters. Concrete implementations live in appintel.services.
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterable

from PIL import Image

from .models import CatalogEntry, PackageEvent, UsageEvent


class SourceUnavailableError(RuntimeError):
    """A source cannot be queried (no permission, no data, I/O failure)."""


class IconNotFoundError(LookupError):
    """The component (or its icon) vanished between catalog load and use."""


class CatalogSource(ABC):
    """Provides the catalog and notifies about package changes."""

    @abstractmethod
    def load_catalog(self) -> list[CatalogEntry]:
        """Return every launchable entry currently installed."""
        ...

    @abstractmethod
    def subscribe(self, callback: Callable[[PackageEvent], None]) -> None:
        """Register a callback for PackageAdded / PackageRemoved events."""
        ...

    @abstractmethod
    def unsubscribe(self, callback: Callable[[PackageEvent], None]) -> None:
        ...


class UsageEventSource(ABC):
    """Provides timestamped usage events."""

    @abstractmethod
    def query_events(self, start: float, end: float) -> Iterable[UsageEvent]:
        """
        Return events with start <= timestamp <= end.

        Raises:
            SourceUnavailableError: If the event history cannot be read
        """
        ...


class IconSource(ABC):
    """Renders the icon raster for a component."""

    @abstractmethod
    def render_icon(self, component_id: str, user_id: str) -> Image.Image:
        """
        Render the icon for a component.

        Raises:
            IconNotFoundError: If the component or its icon no longer exists
        """
        ...
