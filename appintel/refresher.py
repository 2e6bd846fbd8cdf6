"""
Catalog Refresher - Coordinate catalog refresh cycles.

One refresh cycle:
  load catalog -> categorize -> rank -> sort by score -> publish

Refreshes run on a single background worker. A refresh requested while
another is running never overlaps it: at most one follow-up refresh is
queued, so a package change that lands mid-refresh is still picked up.

Icons are not part of the cycle. Callers ask for them per visible app
and a missing icon is a soft miss, never a failed refresh.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Optional

from loguru import logger
from PIL import Image

from .categorizer import AppCategorizer
from .models import CacheKey, CategorizedApp, Category, PackageEvent
from .search.engine import SearchEngine
from .services.icon_cache import IconCache
from .services.usage_ranker import DAY_SECONDS, DEFAULT_LOOKBACK_DAYS, UsageRanker
from .services.usage_store import UsageEventStore
from .sources import CatalogSource, IconNotFoundError, SourceUnavailableError


@dataclass(frozen=True)
class CatalogSnapshot:
    """Published result of one refresh cycle. Replaced, never mutated."""
    apps: tuple[CategorizedApp, ...] = ()
    ranks: dict[str, float] = field(default_factory=dict)
    has_usage_access: bool = False
    generated_at: float = 0.0

    def by_category(self, categorizer: AppCategorizer) -> dict[Category, list[CategorizedApp]]:
        return categorizer.group_by_category(self.apps)

    def sections(self) -> dict[str, int]:
        return SearchEngine().sections(self.apps)

    def to_dict(self) -> dict:
        """Serializable rank map and category assignments."""
        return {
            "generated_at": self.generated_at,
            "has_usage_access": self.has_usage_access,
            "ranks": dict(self.ranks),
            "categories": {
                f"{app.entry.component_id}@{app.entry.user_id}": app.category.name
                for app in self.apps
            },
        }


class CatalogRefresher:
    """
    Owns the published catalog snapshot and the refresh schedule.

    Args:
        catalog_source: Provides entries and package change events
        ranker: Usage ranker for scores
        categorizer: Assigns categories
        icon_cache: Optional icon cache for icons()
        engine: Search engine (a default one is created when None)
        lookback_days: Ranking window
        overrides: Manual categories keyed by package id
        clock: Returns "now" in POSIX seconds
        owns_icon_cache: close() shuts down the icon cache's render pool
            instead of only clearing it
    """

    def __init__(
        self,
        catalog_source: CatalogSource,
        ranker: UsageRanker,
        categorizer: AppCategorizer,
        icon_cache: Optional[IconCache] = None,
        engine: Optional[SearchEngine] = None,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        overrides: Optional[dict[str, Category]] = None,
        clock: Callable[[], float] = time.time,
        owns_icon_cache: bool = False,
    ):
        if lookback_days < 0:
            raise ValueError(f"lookback_days must be >= 0, got {lookback_days}")

        self.catalog_source = catalog_source
        self.ranker = ranker
        self.categorizer = categorizer
        self.icon_cache = icon_cache
        self.owns_icon_cache = owns_icon_cache
        self.engine = engine or SearchEngine()
        self.lookback_days = lookback_days
        self.overrides = dict(overrides or {})
        self._clock = clock

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="catalog-refresh")
        self._lock = threading.Lock()
        self._running = False
        self._rerun = False
        self._future: Optional[Future] = None
        self._listeners: list[Callable[[CatalogSnapshot], None]] = []
        self._snapshot = CatalogSnapshot()
        self._started = False

    @property
    def snapshot(self) -> CatalogSnapshot:
        return self._snapshot

    def add_listener(self, listener: Callable[[CatalogSnapshot], None]) -> None:
        """Call listener with every newly published snapshot."""
        self._listeners.append(listener)

    def start(self) -> Future:
        """Subscribe to package changes and schedule the first refresh."""
        if not self._started:
            self.catalog_source.subscribe(self._on_package_event)
            self._started = True
        return self.request_refresh()

    def close(self) -> None:
        """Stop listening, release cached icons and stop the worker."""
        if self._started:
            self.catalog_source.unsubscribe(self._on_package_event)
            self._started = False
        if self.icon_cache is not None:
            if self.owns_icon_cache:
                self.icon_cache.close()
            else:
                self.icon_cache.clear()
        self._executor.shutdown(wait=False)

    def request_refresh(self) -> Future:
        """
        Schedule a refresh without overlapping a running one.

        Returns:
            Future of the snapshot that will include this request
        """
        with self._lock:
            if self._running:
                self._rerun = True
                logger.debug("Refresh already running, queued one follow-up")
                return self._future
            self._future = self._executor.submit(self._run)
            self._running = True
            return self._future

    def refresh_now(self, now: Optional[float] = None) -> CatalogSnapshot:
        """Run one refresh cycle on the calling thread and publish it."""
        now = self._clock() if now is None else now

        try:
            entries = self.catalog_source.load_catalog()
        except SourceUnavailableError as e:
            logger.warning(f"Catalog unavailable, publishing empty catalog: {e}")
            entries = []

        entries = sorted(entries, key=lambda e: e.label.lower())
        apps = self.categorizer.categorize_all(entries, self.overrides)

        # has_access only feeds the usage-access prompt; ranks() is {} when history is unreadable
        has_access = self.ranker.has_access(now=now)
        ranks = self.ranker.ranks(self.lookback_days, now=now)
        self._prune_history(now)

        scored = [
            CategorizedApp(app.entry, app.category, ranks.get(app.entry.package_id, 0.0))
            for app in apps
        ]
        snapshot = CatalogSnapshot(
            apps=tuple(self.categorizer.sort_by_score_descending(scored)),
            ranks=ranks,
            has_usage_access=has_access,
            generated_at=now,
        )

        self._snapshot = snapshot
        logger.debug(f"Published catalog with {len(snapshot.apps)} apps ({len(ranks)} ranked)")

        for listener in list(self._listeners):
            listener(snapshot)
        return snapshot

    def search(self, query: str) -> list[CategorizedApp]:
        """Search the published snapshot; a blank query returns it in display order."""
        return list(self.engine.search(query, self._snapshot.apps))

    def icons(self, apps, timeout: Optional[float] = None) -> dict[CacheKey, Image.Image]:
        """
        Fetch icons for the given apps concurrently.

        Apps whose icon cannot be resolved are left out. Renders that do
        not finish within timeout are left out too and keep populating the
        cache in the background.
        """
        if self.icon_cache is None:
            return {}

        futures = {app.key: self.icon_cache.submit(app.key) for app in apps}
        wait(futures.values(), timeout=timeout)

        icons = {}
        for key, future in futures.items():
            if not future.done():
                continue
            try:
                icons[key] = future.result()
            except IconNotFoundError:
                continue
            except Exception as e:
                logger.warning(f"Icon render failed for {key.component_id}: {e}")
                continue
        return icons

    def _prune_history(self, now: float) -> None:
        """Drop stored history that has left the lookback window."""
        store = self.ranker.source
        if isinstance(store, UsageEventStore):
            store.prune(now - self.lookback_days * DAY_SECONDS)

    def _on_package_event(self, event: PackageEvent) -> None:
        logger.debug(f"Package event {type(event).__name__} for {event.package_id}")
        self.request_refresh()

    def _run(self) -> CatalogSnapshot:
        try:
            while True:
                snapshot = self.refresh_now()
                with self._lock:
                    if not self._rerun:
                        self._running = False
                        return snapshot
                    self._rerun = False
        except Exception:
            with self._lock:
                self._running = False
                self._rerun = False
            raise
