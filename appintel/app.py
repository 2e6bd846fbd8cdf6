"""
App Intelligence wiring - Assemble the default core from settings.

Default stack:
  - Catalog: .desktop files from the XDG application directories
  - Usage events: SQLite store under ~/.local/share/appintel
  - Icons: XDG icon themes rendered with Pillow, cached in an LRU

Usage:
    refresher = build_refresher()
    refresher.start().result()
    results = refresher.search("fire")
"""

from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger

from .categorizer import AppCategorizer, load_category_rules
from .refresher import CatalogRefresher
from .services.desktop_catalog import DesktopCatalogSource
from .services.icon_cache import IconCache
from .services.icon_source import ThemeIconSource
from .services.usage_ranker import UsageRanker
from .services.usage_store import UsageEventStore
from .utils.helpers import load_settings


def build_refresher(settings: Optional[Dict[str, Any]] = None) -> CatalogRefresher:
    """
    Create a CatalogRefresher wired to the default platform adapters.

    Args:
        settings: Settings dictionary (as returned by load_settings);
                  loaded from the default location when None

    Returns:
        CatalogRefresher, not started yet
    """
    if settings is None:
        settings = load_settings()

    ranking = settings["ranking"]
    icons = settings["icons"]
    categories = settings["categories"]
    storage = settings["storage"]

    catalog = DesktopCatalogSource()
    store = UsageEventStore(Path(storage["usage_db"]) if storage["usage_db"] else None)

    rules = load_category_rules(
        Path(categories["rules_file"]) if categories["rules_file"] else None,
        personal_prefix=categories["personal_prefix"] or None,
    )

    icon_cache = IconCache(
        ThemeIconSource(catalog.icon_for, size_px=icons["size_px"]),
        max_entries=icons["cache_size"],
        max_workers=icons["workers"],
    )

    refresher = CatalogRefresher(
        catalog,
        UsageRanker(store, decay=ranking["decay"]),
        AppCategorizer(rules),
        icon_cache=icon_cache,
        lookback_days=ranking["lookback_days"],
        owns_icon_cache=True,
    )
    logger.debug("App intelligence core assembled")
    return refresher
