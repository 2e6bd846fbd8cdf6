# App Intelligence Services Package
"""
Stateful services and platform adapters for the core.

Services handle usage history, icon rendering and caching, and catalog
discovery.
"""

from .desktop_catalog import DesktopCatalogSource
from .icon_cache import IconCache
from .icon_source import ThemeIconSource
from .usage_ranker import UsageRanker
from .usage_store import UsageEventStore, get_usage_store

__all__ = [
    "DesktopCatalogSource",
    "IconCache",
    "ThemeIconSource",
    "UsageEventStore",
    "UsageRanker",
    "get_usage_store",
]
