"""Learning health reporting."""

import time
from datetime import datetime, timedelta
from typing import Callable, Optional

from consts import STALENESS_THRESHOLD
from shared_types.shared_types import HealthReport, LearningStats

from .store import PatternReader


def is_fresh(
    last_update_at: Optional[datetime],
    now: datetime,
    threshold_seconds: float = STALENESS_THRESHOLD,
) -> bool:
    """True iff the last successful update is younger than the threshold."""
    if last_update_at is None:
        return False
    return now - last_update_at < timedelta(seconds=threshold_seconds)


class StatsReporter:
    """
    Read-only view of the learning stats.

    `is_healthy` is reported exactly as the learning loop last computed it;
    the reporter never re-derives staleness on its own.
    """

    def __init__(
        self,
        reader: PatternReader,
        started_at: Optional[float] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.reader = reader
        self._monotonic = monotonic
        self.started_at = monotonic() if started_at is None else started_at

    async def report(self) -> LearningStats:
        return await self.reader.get_stats() or LearningStats()

    async def health(self) -> HealthReport:
        stats = await self.report()
        return HealthReport(
            **stats.model_dump(),
            status="healthy" if stats.is_healthy else "stale",
            uptime=round(self._monotonic() - self.started_at, 3),
        )