"""
Usage Ranker - Rank applications by exponentially decayed usage.

Every "activity resumed" event inside the lookback window contributes

    weight = exp(-decay * age_seconds)

to its package's score, and weights for the same package are summed.
Recent launches dominate, and old launches fade smoothly instead of
dropping off at bucket boundaries.

Scores are rebuilt from scratch on each call; nothing is cached.
"""

import math
import time
from typing import Callable, Optional

from loguru import logger

from ..models import ACTIVITY_RESUMED
from ..sources import SourceUnavailableError, UsageEventSource

DAY_SECONDS = 24 * 60 * 60
ACCESS_PROBE_WINDOW_SECONDS = 60
DECAY_FACTOR = 1e-4
DEFAULT_LOOKBACK_DAYS = 30


class UsageRanker:
    """
    Turns the usage-event stream into a relevance score per package.

    Args:
        source: Usage event source, or None when the platform has none
        decay: Decay constant per second of event age
        clock: Returns "now" as POSIX seconds when no explicit time is given
    """

    def __init__(
        self,
        source: Optional[UsageEventSource],
        decay: float = DECAY_FACTOR,
        clock: Callable[[], float] = time.time,
    ):
        if decay <= 0:
            raise ValueError(f"decay must be positive, got {decay}")
        self.source = source
        self.decay = decay
        self._clock = clock

    def has_access(self, now: Optional[float] = None) -> bool:
        """
        Check whether usage history can be read at all.

        Probes the last minute of history for at least one resumed event.
        Never raises: a missing or unreadable source yields False.
        """
        if self.source is None:
            return False

        end = self._clock() if now is None else now
        start = end - ACCESS_PROBE_WINDOW_SECONDS
        try:
            events = self.source.query_events(start, end)
            return any(e.event_type == ACTIVITY_RESUMED for e in events)
        except (SourceUnavailableError, OSError) as e:
            logger.warning(f"Usage history unavailable: {e}")
            return False

    def ranks(
        self,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        now: Optional[float] = None,
    ) -> dict[str, float]:
        """
        Compute decayed usage scores.

        Args:
            lookback_days: Size of the window of events considered
            now: Reference time in POSIX seconds (defaults to the clock)

        Returns:
            Mapping of package id to score. Packages without events are
            absent (score 0). Empty when the source is unavailable.

        Raises:
            ValueError: If lookback_days is negative
        """
        if lookback_days < 0:
            raise ValueError(f"lookback_days must be >= 0, got {lookback_days}")

        if self.source is None:
            return {}

        end = self._clock() if now is None else now
        start = end - lookback_days * DAY_SECONDS

        try:
            events = list(self.source.query_events(start, end))
        except (SourceUnavailableError, OSError) as e:
            logger.warning(f"Usage history unavailable, ranking disabled: {e}")
            return {}

        scores: dict[str, float] = {}
        for event in events:
            if event.event_type != ACTIVITY_RESUMED:
                continue
            if not event.package_id:
                continue
            if not start <= event.timestamp <= end:
                continue
            scores[event.package_id] = (
                scores.get(event.package_id, 0.0) + self.weight(end - event.timestamp)
            )

        logger.debug(f"Ranked {len(scores)} packages from {len(events)} events")
        return scores

    def weight(self, age_seconds: float) -> float:
        """Decayed weight of a single event of the given age."""
        return math.exp(-self.decay * age_seconds)
