"""
Data model shared by every component of the core.

Catalog entries are immutable snapshots of launchable apps. A catalog
reload replaces them wholesale; nothing mutates an entry in place.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import NamedTuple, Optional, Union

ACTIVITY_RESUMED = "activity_resumed"


class Category(IntEnum):
    """Fixed, ordered set of app categories. The value is the sort rank."""

    GAMES = 0
    PROFESSIONAL = 1
    PERSONAL_DEV = 2
    UTILITIES = 3
    OTHER = 4

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def from_name(cls, name: str) -> "Category":
        """Parse a category from its enum name (case-insensitive)."""
        return cls[name.strip().upper()]


_DISPLAY_NAMES = {
    Category.GAMES: "Games",
    Category.PROFESSIONAL: "Professional & Banking",
    Category.PERSONAL_DEV: "My Apps",
    Category.UTILITIES: "Utilities & Tools",
    Category.OTHER: "Other",
}


class CacheKey(NamedTuple):
    """Identity of one cached icon: (component, user)."""
    component_id: str
    user_id: str


@dataclass(frozen=True)
class CatalogEntry:
    """A launchable application as reported by the catalog source."""
    component_id: str
    package_id: str
    label: str
    user_id: str = "0"
    icon: Optional[str] = None
    manual_category: Optional[Category] = None
    is_system: bool = False
    category_hint: Optional[str] = None

    @property
    def key(self) -> CacheKey:
        return CacheKey(self.component_id, self.user_id)


@dataclass(frozen=True)
class UsageEvent:
    """A single usage event. Timestamps are POSIX seconds."""
    package_id: Optional[str]
    timestamp: float
    event_type: str = ACTIVITY_RESUMED


@dataclass(frozen=True)
class CategorizedApp:
    """Catalog entry paired with its category and rank score."""
    entry: CatalogEntry
    category: Category
    score: float = 0.0

    @property
    def label(self) -> str:
        return self.entry.label

    @property
    def key(self) -> CacheKey:
        return self.entry.key


@dataclass(frozen=True)
class SearchMatch:
    """An item that matched a query, with its (strictly positive) score."""
    item: object
    score: float


@dataclass(frozen=True)
class PackageAdded:
    package_id: str
    user_id: str


@dataclass(frozen=True)
class PackageRemoved:
    package_id: str
    user_id: str


PackageEvent = Union[PackageAdded, PackageRemoved]
