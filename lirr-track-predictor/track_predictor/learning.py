"""Background learning loop.

Each cycle walks IDLE -> FETCHING -> PARSING -> UPDATING -> SLEEPING and
folds every observation from the feed into the pattern store. The loop is the
store's only writer. Errors inside a cycle are logged and counted as a failed
cycle; they never end the loop.
"""

import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import anyio
from consts import LEARNING_INTERVAL, STALENESS_THRESHOLD
from prometheus import learned_patterns, learning_cycles
from shared_types.shared_types import (
    LearningStats,
    ParseStatus,
    RecentArrival,
    TrackAssignment,
)

from .api_client import FeedFetcher
from .feed_parser import FeedParser
from .pattern import record_observation, time_bucket
from .stats import is_fresh
from .store import PatternWriter

logger = logging.getLogger(__name__)


class State(Enum):
    IDLE = 0
    FETCHING = 1
    PARSING = 2
    UPDATING = 3
    SLEEPING = 4
    STOPPED = 5


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LearningLoop:
    def __init__(
        self,
        fetcher: FeedFetcher,
        parser: FeedParser,
        writer: PatternWriter,
        interval: float = LEARNING_INTERVAL,
        staleness_threshold: float = STALENESS_THRESHOLD,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[Any]] = anyio.sleep,
    ) -> None:
        self.fetcher = fetcher
        self.parser = parser
        self.writer = writer
        self.interval = interval
        self.staleness_threshold = staleness_threshold
        self.state = State.IDLE
        self.cycles = 0
        self._clock = clock
        self._sleep = sleep
        self._stopping = False

    def stop(self) -> None:
        """Ask the loop to finish after the current cycle."""
        self._stopping = True

    @property
    def stopping(self) -> bool:
        return self._stopping

    async def run(self, max_cycles: Optional[int] = None) -> None:
        logger.info(f"Starting track learning loop (interval: {self.interval}s)")
        while not self._stopping:
            try:
                await self.run_cycle()
            except Exception as e:
                learning_cycles.labels("error").inc()
                logger.error("Unexpected error in learning cycle", exc_info=e)
                try:
                    await self._record_failure()
                except Exception as stats_error:
                    logger.error(
                        "Failed to record learning cycle failure", exc_info=stats_error
                    )

            self.cycles += 1
            if max_cycles is not None and self.cycles >= max_cycles:
                break

            self.state = State.SLEEPING
            await self._sleep(self.interval)
            self.state = State.IDLE

        self.state = State.STOPPED
        logger.info(f"Track learning loop stopped after {self.cycles} cycles")

    async def run_cycle(self) -> bool:
        """Run one fetch/parse/update pass. Returns True when new data was applied."""
        self.state = State.FETCHING
        fetched = await self.fetcher.fetch()
        if not fetched.ok:
            learning_cycles.labels("fetch_failed").inc()
            await self._record_failure()
            return False

        self.state = State.PARSING
        parsed = self.parser.parse(fetched.payload)
        if parsed.status == ParseStatus.FAILED:
            learning_cycles.labels("parse_failed").inc()
            await self._record_failure()
            return False

        self.state = State.UPDATING
        learned = await self.apply(parsed.assignments)
        stats = await self._record_success()
        learning_cycles.labels("ok").inc()
        logger.info(
            f"Learned {learned} observations ({parsed.rejected} rejected); {stats.total_patterns} patterns"
        )
        return True

    async def apply(self, assignments: list[TrackAssignment]) -> int:
        """Fold a batch of observations into the store."""
        learned = 0
        now = self._clock()
        for assignment in assignments:
            day_of_week, hour = time_bucket(assignment.timestamp)
            existing = await self.writer.get_pattern(
                assignment.destination, day_of_week, hour, assignment.train_num
            )
            updated = record_observation(
                existing, assignment.track, assignment.timestamp
            )
            if await self.writer.save_pattern(
                assignment.destination,
                day_of_week,
                hour,
                assignment.train_num,
                updated,
            ):
                learned += 1

            if assignment.is_arrival:
                await self._record_arrival(assignment, now)
        return learned

    async def _record_arrival(self, assignment: TrackAssignment, now: datetime) -> None:
        # feed arrival times are predictions until they have passed
        if assignment.timestamp > now:
            return
        current = await self.writer.get_recent_arrival(assignment.destination)
        if current is not None and current.observed_at > assignment.timestamp:
            return
        await self.writer.save_recent_arrival(
            assignment.destination,
            RecentArrival(
                track=assignment.track,
                train_num=assignment.train_num,
                observed_at=assignment.timestamp,
            ),
        )

    async def _current_stats(self) -> LearningStats:
        return await self.writer.get_stats() or LearningStats()

    async def _record_success(self) -> LearningStats:
        stats = await self._current_stats()
        now = self._clock()
        stats.successful_fetches += 1
        stats.total_patterns = await self.writer.count_patterns()
        stats.last_update_at = now
        stats.is_healthy = is_fresh(now, now, self.staleness_threshold)
        await self.writer.save_stats(stats)
        learned_patterns.set(stats.total_patterns)
        return stats

    async def _record_failure(self) -> LearningStats:
        stats = await self._current_stats()
        stats.failed_fetches += 1
        stats.is_healthy = is_fresh(
            stats.last_update_at, self._clock(), self.staleness_threshold
        )
        await self.writer.save_stats(stats)
        return stats
