"""
Icon Cache - Bounded LRU cache of rendered app icons.

Lookups look synchronous to the caller, but every render runs on a
worker pool so a slow decode never blocks the thread that asked.

  - Hit: returns a copy of the cached image, no I/O
  - Miss: renders on the pool, stores, then returns a copy
  - Concurrent misses for the same key share one in-flight render
  - Icon gone: IconNotFoundError, nothing is cached

Every hit and every successful insert counts as a use for LRU order.
"""

import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from loguru import logger
from PIL import Image

from ..models import CacheKey
from ..sources import IconNotFoundError, IconSource

DEFAULT_MAX_ENTRIES = 256
DEFAULT_WORKERS = 4

__all__ = ["IconCache", "IconNotFoundError", "DEFAULT_MAX_ENTRIES"]


class IconCache:
    """
    Thread-safe LRU cache of icon images keyed by (component, user).

    Args:
        source: Renders icons on a miss
        max_entries: Capacity in icons (not bytes)
        max_workers: Size of the owned render pool
        executor: Use an external pool instead (not shut down by close())
    """

    def __init__(
        self,
        source: IconSource,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        max_workers: int = DEFAULT_WORKERS,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")

        self.source = source
        self.max_entries = max_entries
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="icon-render"
        )

        self._lock = threading.Lock()
        self._icons: OrderedDict[CacheKey, Image.Image] = OrderedDict()
        self._pending: dict[CacheKey, Future] = {}

    def submit(self, key: CacheKey) -> Future:
        """
        Start (or join) a lookup without blocking.

        Returns:
            Future resolving to a private copy of the icon, or failing
            with IconNotFoundError
        """
        key = CacheKey(*key)
        result: Future = Future()

        with self._lock:
            cached = self._touch(key)
            if cached is None:
                pending = self._pending.get(key)
                if pending is None:
                    pending = self._executor.submit(self._load, key)
                    self._pending[key] = pending

        if cached is not None:
            result.set_result(cached.copy())
            return result

        pending.add_done_callback(lambda done: _relay_copy(done, result))
        return result

    def get(self, key: CacheKey, timeout: Optional[float] = None) -> Image.Image:
        """
        Get an icon, rendering it on the pool if needed.

        Raises:
            IconNotFoundError: If the icon cannot be resolved
            TimeoutError: If timeout elapses before the render finishes
        """
        return self.submit(key).result(timeout)

    def peek(self, key: CacheKey) -> Optional[Image.Image]:
        """Cached icon or None; never renders."""
        with self._lock:
            cached = self._touch(CacheKey(*key))
        return cached.copy() if cached is not None else None

    def clear(self) -> None:
        """
        Evict every icon.

        Renders already in flight are not cancelled and will still
        populate the cache when they finish.
        """
        with self._lock:
            count = len(self._icons)
            self._icons.clear()
        logger.debug(f"Icon cache cleared ({count} icons)")

    def close(self) -> None:
        """Clear the cache and shut down the owned render pool."""
        self.clear()
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def keys(self) -> list[CacheKey]:
        """Cached keys, least recently used first."""
        with self._lock:
            return list(self._icons)

    def __len__(self) -> int:
        with self._lock:
            return len(self._icons)

    def __contains__(self, key) -> bool:
        with self._lock:
            return CacheKey(*key) in self._icons

    def _touch(self, key: CacheKey) -> Optional[Image.Image]:
        """Return the cached image and mark it most recently used. Lock held."""
        image = self._icons.get(key)
        if image is not None:
            self._icons.move_to_end(key)
        return image

    def _load(self, key: CacheKey) -> Image.Image:
        """Render and store one icon. Runs on the pool."""
        try:
            image = self.source.render_icon(key.component_id, key.user_id)
            with self._lock:
                self._store(key, image)
            return image
        except IconNotFoundError:
            logger.debug(f"No icon for {key.component_id} (user {key.user_id})")
            raise
        finally:
            with self._lock:
                self._pending.pop(key, None)

    def _store(self, key: CacheKey, image: Image.Image) -> None:
        """Insert as most recently used and evict down to capacity. Lock held."""
        self._icons[key] = image
        self._icons.move_to_end(key)
        while len(self._icons) > self.max_entries:
            evicted, _ = self._icons.popitem(last=False)
            logger.debug(f"Evicted icon for {evicted.component_id}")


def _relay_copy(done: Future, result: Future) -> None:
    """Forward a shared render's outcome to one caller's future."""
    error = done.exception()
    if error is not None:
        result.set_exception(error)
    else:
        result.set_result(done.result().copy())
