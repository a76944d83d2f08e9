from datetime import UTC, datetime, timedelta

import pytest
from shared_types.shared_types import LearningStats
from track_predictor.stats import StatsReporter, is_fresh
from track_predictor.store import MemoryKeyValueStore, PatternWriter

NOW = datetime(2024, 1, 15, 14, 30, tzinfo=UTC)


def test_is_fresh_threshold() -> None:
    assert is_fresh(NOW, NOW)
    assert is_fresh(NOW - timedelta(minutes=4, seconds=59), NOW)
    assert not is_fresh(NOW - timedelta(minutes=5), NOW)
    assert not is_fresh(None, NOW)
    assert is_fresh(NOW - timedelta(seconds=50), NOW, threshold_seconds=60)


@pytest.mark.anyio("asyncio")
async def test_report_defaults_before_first_cycle() -> None:
    reporter = StatsReporter(PatternWriter(MemoryKeyValueStore()).reader())

    stats = await reporter.report()

    assert stats == LearningStats()
    assert stats.model_dump(by_alias=True) == {
        "totalPatterns": 0,
        "lastUpdateAt": None,
        "successfulFetches": 0,
        "failedFetches": 0,
        "isHealthy": False,
    }


@pytest.mark.anyio("asyncio")
async def test_health_reflects_stored_stats() -> None:
    writer = PatternWriter(MemoryKeyValueStore())
    reporter = StatsReporter(writer.reader(), started_at=100.0, monotonic=lambda: 160.5)

    health = await reporter.health()
    assert health.status == "stale"
    assert health.uptime == 60.5

    await writer.save_stats(
        LearningStats(
            total_patterns=4, successful_fetches=2, last_update_at=NOW, is_healthy=True
        )
    )
    health = await reporter.health()
    assert health.status == "healthy"
    assert health.total_patterns == 4
    assert health.model_dump(by_alias=True)["successfulFetches"] == 2
