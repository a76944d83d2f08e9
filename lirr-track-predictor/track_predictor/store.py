"""Pattern store for learned track assignments.

A small key-value abstraction (get/set/keys) with an in-memory and a Redis
backend, wrapped by typed facades. `PatternReader` is handed to the
prediction engine and the stats reporter; only the learning loop receives a
`PatternWriter`.

Key layout:
    pattern:{destination}:{day_of_week}:{hour}:{train_num} -> TrainPattern
    arrival:{destination}                                 -> RecentArrival
    stats:learning                                        -> LearningStats
"""

import logging
from typing import Optional, Protocol, TypeVar

from prometheus import store_commands
from pydantic import BaseModel, ValidationError
from redis.asyncio import Redis
from redis.exceptions import ConnectionError, TimeoutError
from redis_cache import check_cache, write_cache
from shared_types.shared_types import LearningStats, RecentArrival, TrainPattern

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

PATTERN_PREFIX = "pattern:"
ARRIVAL_PREFIX = "arrival:"
STATS_KEY = "stats:learning"
UNKNOWN_TRAIN = "unknown"


def pattern_key(
    destination: str, day_of_week: int, hour: int, train_num: Optional[str]
) -> str:
    return f"{PATTERN_PREFIX}{destination}:{day_of_week}:{hour}:{train_num or UNKNOWN_TRAIN}"


def arrival_key(destination: str) -> str:
    return f"{ARRIVAL_PREFIX}{destination}"


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> bool: ...

    async def keys(self, prefix: str) -> list[str]: ...


class MemoryKeyValueStore:
    """Dict-backed store. Each set replaces the whole value in one assignment."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        store_commands.labels("get").inc()
        return self._data.get(key)

    async def set(self, key: str, value: str) -> bool:
        store_commands.labels("set").inc()
        self._data[key] = value
        return True

    async def keys(self, prefix: str) -> list[str]:
        store_commands.labels("keys").inc()
        return [k for k in list(self._data) if k.startswith(prefix)]


class RedisKeyValueStore:
    """Redis-backed store; connectivity problems degrade to absent/False."""

    def __init__(self, redis: Redis) -> None:
        self.redis = redis

    async def get(self, key: str) -> Optional[str]:
        try:
            return await check_cache(self.redis, key)
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Failed to read {key} due to Redis connection issue", exc_info=e)
            return None

    async def set(self, key: str, value: str) -> bool:
        try:
            return await write_cache(self.redis, key, value)
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Failed to write {key} due to Redis connection issue", exc_info=e)
            return False

    async def keys(self, prefix: str) -> list[str]:
        try:
            found: list[str] = []
            async for key in self.redis.scan_iter(match=f"{prefix}*"):
                found.append(key.decode() if isinstance(key, bytes) else str(key))
            store_commands.labels("scan").inc()
            return found
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Failed to scan {prefix}* due to Redis connection issue", exc_info=e)
            return []


class PatternReader:
    """Read-only view of learned patterns, arrivals and learning stats."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    async def get_pattern(
        self, destination: str, day_of_week: int, hour: int, train_num: Optional[str]
    ) -> Optional[TrainPattern]:
        key = pattern_key(destination, day_of_week, hour, train_num)
        return await self._load(key, TrainPattern)

    async def get_recent_arrival(self, destination: str) -> Optional[RecentArrival]:
        return await self._load(arrival_key(destination), RecentArrival)

    async def get_stats(self) -> Optional[LearningStats]:
        return await self._load(STATS_KEY, LearningStats)

    async def count_patterns(self) -> int:
        return len(await self.kv.keys(PATTERN_PREFIX))

    async def _load(self, key: str, model: type[M]) -> Optional[M]:
        raw = await self.kv.get(key)
        if not raw:
            return None
        try:
            return model.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Discarding unreadable value at {key}", exc_info=e)
            return None


class PatternWriter(PatternReader):
    """Write access for the learning loop, the store's single writer."""

    async def save_pattern(
        self,
        destination: str,
        day_of_week: int,
        hour: int,
        train_num: Optional[str],
        pattern: TrainPattern,
    ) -> bool:
        key = pattern_key(destination, day_of_week, hour, train_num)
        return await self.kv.set(key, pattern.model_dump_json())

    async def save_recent_arrival(
        self, destination: str, arrival: RecentArrival
    ) -> bool:
        return await self.kv.set(arrival_key(destination), arrival.model_dump_json())

    async def save_stats(self, stats: LearningStats) -> bool:
        return await self.kv.set(STATS_KEY, stats.model_dump_json())

    def reader(self) -> PatternReader:
        """A read-only facade over the same backing store."""
        return PatternReader(self.kv)
