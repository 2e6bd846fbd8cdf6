"""
Tests for refresh coordination.

Uses fake catalog, event and icon sources; every refresh passes an
explicit time.
"""

import json
import threading
from unittest.mock import MagicMock

import pytest
from PIL import Image

from appintel.categorizer import AppCategorizer, CategoryRules
from appintel.models import CacheKey, Category, PackageAdded, PackageRemoved
from appintel.refresher import CatalogRefresher, CatalogSnapshot
from appintel.services.icon_cache import IconCache
from appintel.services.usage_ranker import UsageRanker
from appintel.services.usage_store import UsageEventStore
from appintel.utils.helpers import save_snapshot

from conftest import (
    DAY,
    NOW,
    FakeCatalogSource,
    FakeEventSource,
    FakeIconSource,
    make_entry,
    resumed,
)


@pytest.fixture
def catalog():
    return FakeCatalogSource([
        make_entry("Zed", "zed"),
        make_entry("Bank", "com.bigbank.mobile"),
        make_entry("Alpha", "alpha"),
        make_entry("Game", "tux", category_hint="game"),
    ])


@pytest.fixture
def categorizer():
    return AppCategorizer(CategoryRules(professional_packages=("com.bigbank",)))


def _refresher(catalog, categorizer, events=(), **kwargs):
    ranker = UsageRanker(FakeEventSource(events))
    return CatalogRefresher(catalog, ranker, categorizer, clock=lambda: NOW, **kwargs)


class TestRefreshCycle:
    """Load, categorize, rank, sort and publish."""

    def test_unranked_catalog_is_alphabetical(self, catalog, categorizer):
        snapshot = _refresher(catalog, categorizer).refresh_now(now=NOW)
        assert [a.label for a in snapshot.apps] == ["Alpha", "Bank", "Game", "Zed"]
        assert snapshot.ranks == {}
        assert snapshot.has_usage_access is False

    def test_ranked_apps_come_first(self, catalog, categorizer):
        events = [resumed("zed", 10), resumed("tux", DAY)]
        snapshot = _refresher(catalog, categorizer, events).refresh_now(now=NOW)
        assert [a.label for a in snapshot.apps] == ["Zed", "Game", "Alpha", "Bank"]
        assert snapshot.has_usage_access is True
        assert snapshot.apps[0].score == pytest.approx(snapshot.ranks["zed"])

    def test_ranks_computed_without_recent_event(self, catalog, categorizer):
        snapshot = _refresher(catalog, categorizer, [resumed("alpha", DAY)]).refresh_now(now=NOW)
        assert snapshot.has_usage_access is False
        assert snapshot.apps[0].label == "Alpha"

    def test_categories_assigned(self, catalog, categorizer):
        snapshot = _refresher(catalog, categorizer).refresh_now(now=NOW)
        categories = {a.label: a.category for a in snapshot.apps}
        assert categories["Bank"] is Category.PROFESSIONAL
        assert categories["Game"] is Category.GAMES
        assert categories["Zed"] is Category.OTHER

    def test_manual_overrides(self, catalog, categorizer):
        refresher = _refresher(catalog, categorizer, overrides={"zed": Category.UTILITIES})
        snapshot = refresher.refresh_now(now=NOW)
        assert {a.label: a.category for a in snapshot.apps}["Zed"] is Category.UTILITIES

    def test_unavailable_catalog_publishes_empty(self, categorizer):
        refresher = _refresher(FakeCatalogSource(unavailable=True), categorizer)
        assert refresher.refresh_now(now=NOW).apps == ()

    def test_unavailable_history_still_publishes(self, catalog, categorizer):
        ranker = UsageRanker(FakeEventSource(unavailable=True))
        refresher = CatalogRefresher(catalog, ranker, categorizer)
        snapshot = refresher.refresh_now(now=NOW)
        assert len(snapshot.apps) == 4
        assert snapshot.ranks == {}

    def test_listeners_notified(self, catalog, categorizer):
        refresher = _refresher(catalog, categorizer)
        listener = MagicMock()
        refresher.add_listener(listener)
        snapshot = refresher.refresh_now(now=NOW)
        listener.assert_called_once_with(snapshot)
        assert refresher.snapshot is snapshot

    def test_negative_lookback_rejected(self, catalog, categorizer):
        with pytest.raises(ValueError):
            _refresher(catalog, categorizer, lookback_days=-1)


class TestSnapshot:
    """Views over a published snapshot."""

    def test_search_uses_published_snapshot(self, catalog, categorizer):
        refresher = _refresher(catalog, categorizer)
        assert refresher.search("alp") == []
        refresher.refresh_now(now=NOW)
        assert [a.label for a in refresher.search("alp")] == ["Alpha"]
        assert len(refresher.search("")) == 4

    def test_by_category_and_sections(self, catalog, categorizer):
        snapshot = _refresher(catalog, categorizer).refresh_now(now=NOW)
        groups = snapshot.by_category(categorizer)
        assert list(groups) == [Category.GAMES, Category.PROFESSIONAL, Category.OTHER]
        assert snapshot.sections() == {"A": 0, "B": 1, "G": 2, "Z": 3}

    def test_to_dict_is_serializable(self, catalog, categorizer, tmp_path):
        snapshot = _refresher(catalog, categorizer, [resumed("zed", 10)]).refresh_now(now=NOW)
        data = snapshot.to_dict()
        assert data["categories"]["tux.desktop@0"] == "GAMES"
        assert data["ranks"].keys() == {"zed"}

        path = tmp_path / "out" / "snapshot.json"
        save_snapshot(snapshot, path)
        assert json.loads(path.read_text()) == json.loads(json.dumps(data))

    def test_empty_snapshot_defaults(self):
        snapshot = CatalogSnapshot()
        assert snapshot.apps == ()
        assert snapshot.to_dict()["categories"] == {}


class TestScheduling:
    """Background refresh and coalescing."""

    def test_start_subscribes_and_refreshes(self, catalog, categorizer):
        refresher = _refresher(catalog, categorizer)
        snapshot = refresher.start().result(timeout=5)
        assert len(snapshot.apps) == 4
        assert len(catalog.callbacks) == 1
        refresher.close()
        assert catalog.callbacks == []

    def test_package_event_triggers_refresh(self, catalog, categorizer):
        refresher = _refresher(catalog, categorizer)
        refresher.start().result(timeout=5)

        catalog.entries.append(make_entry("New App", "newapp"))
        catalog.emit(PackageAdded("newapp", "0"))
        refresher.request_refresh().result(timeout=5)

        assert "New App" in [a.label for a in refresher.snapshot.apps]
        refresher.close()

    def test_requests_during_refresh_coalesce(self, categorizer):
        gate = threading.Event()
        started = threading.Event()

        class SlowCatalog(FakeCatalogSource):
            def load_catalog(self):
                started.set()
                gate.wait(5)
                return super().load_catalog()

        catalog = SlowCatalog([make_entry("Alpha")])
        refresher = _refresher(catalog, categorizer)

        first = refresher.request_refresh()
        assert started.wait(5)
        second = refresher.request_refresh()
        third = refresher.request_refresh()
        catalog.emit(PackageRemoved("alpha", "0"))
        gate.set()
        first.result(timeout=5)

        assert second is first and third is first
        # One running refresh plus exactly one queued follow-up
        assert catalog.loads == 2
        refresher.close()

    def test_close_clears_icon_cache(self, catalog, categorizer):
        cache = IconCache(FakeIconSource())
        refresher = _refresher(catalog, categorizer, icon_cache=cache)
        snapshot = refresher.refresh_now(now=NOW)
        refresher.icons(snapshot.apps)
        assert len(cache) == 4
        refresher.close()
        assert len(cache) == 0


    def test_request_after_close_does_not_wedge(self, catalog, categorizer):
        refresher = _refresher(catalog, categorizer)
        refresher.close()
        with pytest.raises(RuntimeError):
            refresher.request_refresh()
        assert refresher._running is False

    def test_close_shuts_down_owned_icon_cache(self, catalog, categorizer):
        cache = IconCache(FakeIconSource())
        refresher = _refresher(catalog, categorizer, icon_cache=cache, owns_icon_cache=True)
        refresher.close()
        with pytest.raises(RuntimeError):
            cache.submit(CacheKey("zed.desktop", "0"))

    def test_close_keeps_shared_icon_cache_usable(self, catalog, categorizer):
        cache = IconCache(FakeIconSource())
        _refresher(catalog, categorizer, icon_cache=cache).close()
        assert cache.get(CacheKey("zed.desktop", "0"), timeout=5).size == (8, 8)
        cache.close()


class TestIcons:
    """Opportunistic icon loading."""

    def test_missing_icons_are_soft_misses(self, catalog, categorizer):
        cache = IconCache(FakeIconSource(known={"zed.desktop", "alpha.desktop"}))
        refresher = _refresher(catalog, categorizer, icon_cache=cache)
        snapshot = refresher.refresh_now(now=NOW)

        icons = refresher.icons(snapshot.apps, timeout=5)
        assert {key.component_id for key in icons} == {"zed.desktop", "alpha.desktop"}

    def test_no_cache_no_icons(self, catalog, categorizer):
        refresher = _refresher(catalog, categorizer)
        snapshot = refresher.refresh_now(now=NOW)
        assert refresher.icons(snapshot.apps) == {}

    def test_search_independent_of_icon_renders(self, catalog, categorizer):
        gate = threading.Event()
        cache = IconCache(FakeIconSource(delay=gate))
        refresher = _refresher(catalog, categorizer, icon_cache=cache)
        snapshot = refresher.refresh_now(now=NOW)

        pending = [cache.submit(app.key) for app in snapshot.apps]
        before = [a.label for a in refresher.search("a")]
        gate.set()
        for f in pending:
            f.result(timeout=5)
        assert [a.label for a in refresher.search("a")] == before

    def test_broken_render_does_not_drop_other_icons(self, catalog, categorizer):
        class BombIconSource(FakeIconSource):
            def render_icon(self, component_id, user_id):
                if component_id == "tux.desktop":
                    raise Image.DecompressionBombError("too big")
                return super().render_icon(component_id, user_id)

        cache = IconCache(BombIconSource())
        refresher = _refresher(catalog, categorizer, icon_cache=cache)
        snapshot = refresher.refresh_now(now=NOW)

        icons = refresher.icons(snapshot.apps, timeout=5)
        assert {key.component_id for key in icons} == {
            "zed.desktop", "com.bigbank.mobile.desktop", "alpha.desktop",
        }
        cache.close()


class TestHistoryRetention:
    """Stored history is trimmed to the lookback window on every refresh."""

    def test_refresh_prunes_events_outside_window(self, catalog, categorizer, tmp_db):
        store = UsageEventStore(tmp_db)
        store.record_launch("zed", timestamp=NOW - 10)
        store.record_launch("alpha", timestamp=NOW - 40 * DAY)

        refresher = CatalogRefresher(
            catalog, UsageRanker(store), categorizer, lookback_days=30, clock=lambda: NOW,
        )
        snapshot = refresher.refresh_now(now=NOW)

        assert snapshot.ranks.keys() == {"zed"}
        assert store.count() == 1
        store.close()

    def test_refresh_without_store_skips_pruning(self, catalog, categorizer):
        source = FakeEventSource([resumed("zed", 40 * DAY)])
        CatalogRefresher(catalog, UsageRanker(source), categorizer).refresh_now(now=NOW)
        assert len(source.events) == 1
