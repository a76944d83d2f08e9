import json
from datetime import UTC, datetime, timedelta
from typing import Callable
from unittest.mock import AsyncMock

import pytest
from _helpers import StubFetcher, failed, ok
from shared_types.shared_types import TrackAssignment
from track_predictor.feed_parser import TRAINTIME, FeedParser
from track_predictor.learning import LearningLoop, State
from track_predictor.pattern import time_bucket
from track_predictor.stations import TerminalCatalog
from track_predictor.store import MemoryKeyValueStore, PatternWriter

NOW = datetime(2024, 1, 15, 14, 30, tzinfo=UTC)


def board(*rows: dict) -> str:
    return json.dumps({"Trains": list(rows)})


def departure(train: str, track: str, when: str = "2024-01-15T09:30:00") -> dict:
    return {
        "TrainNumber": train,
        "Destination": "Babylon",
        "Track": track,
        "DepartureTime": when,
    }


def arrival(train: str, track: str, when: str) -> dict:
    return {
        "TrainNumber": train,
        "Destination": "Babylon",
        "Track": track,
        "ArrivalTime": when,
    }


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def make_loop(
    fetcher: StubFetcher, clock: Callable[[], datetime] = Clock(NOW)
) -> tuple[LearningLoop, PatternWriter]:
    writer = PatternWriter(MemoryKeyValueStore())
    loop = LearningLoop(
        fetcher,  # type: ignore[arg-type]
        FeedParser(TerminalCatalog(), TRAINTIME),
        writer,
        interval=30,
        clock=clock,
        sleep=AsyncMock(),
    )
    return loop, writer


@pytest.mark.anyio("asyncio")
async def test_successful_cycle_learns_patterns() -> None:
    loop, writer = make_loop(
        StubFetcher(ok(board(departure("2001", "13"), departure("2003", "15"))))
    )

    assert await loop.run_cycle()

    pattern = await writer.get_pattern("Babylon", 0, 9, "2001")
    assert pattern is not None
    assert pattern.track_counts == {"13": 1}
    stats = await writer.get_stats()
    assert stats is not None
    assert stats.successful_fetches == 1
    assert stats.failed_fetches == 0
    assert stats.total_patterns == 2
    assert stats.last_update_at == NOW
    assert stats.is_healthy


@pytest.mark.anyio("asyncio")
async def test_repeated_observations_accumulate() -> None:
    loop, writer = make_loop(
        StubFetcher(
            ok(board(departure("2001", "13"))),
            ok(board(departure("2001", "13"))),
            ok(board(departure("2001", "15"))),
        )
    )

    for _ in range(3):
        await loop.run_cycle()

    pattern = await writer.get_pattern("Babylon", 0, 9, "2001")
    assert pattern is not None
    assert pattern.total_observations == 3
    assert pattern.most_common_track == "13"
    assert pattern.confidence == 67
    stats = await writer.get_stats()
    assert stats is not None and stats.total_patterns == 1


@pytest.mark.anyio("asyncio")
async def test_failed_fetch_counts_failure() -> None:
    loop, writer = make_loop(StubFetcher(failed()))

    assert not await loop.run_cycle()

    stats = await writer.get_stats()
    assert stats is not None
    assert stats.failed_fetches == 1
    assert stats.successful_fetches == 0
    assert stats.last_update_at is None
    assert not stats.is_healthy
    assert await writer.count_patterns() == 0


@pytest.mark.anyio("asyncio")
async def test_parse_failure_counts_failure() -> None:
    loop, writer = make_loop(StubFetcher(ok("{broken")))

    assert not await loop.run_cycle()

    stats = await writer.get_stats()
    assert stats is not None and stats.failed_fetches == 1


@pytest.mark.anyio("asyncio")
async def test_empty_feed_is_still_a_successful_update() -> None:
    loop, writer = make_loop(StubFetcher(ok(board())))

    assert await loop.run_cycle()

    stats = await writer.get_stats()
    assert stats is not None
    assert stats.successful_fetches == 1
    assert stats.total_patterns == 0


@pytest.mark.anyio("asyncio")
async def test_health_goes_stale_after_failures() -> None:
    clock = Clock(NOW)
    loop, writer = make_loop(StubFetcher(ok(board()), failed(), failed()), clock)

    await loop.run_cycle()
    clock.now = NOW + timedelta(minutes=4)
    await loop.run_cycle()
    stats = await writer.get_stats()
    assert stats is not None and stats.is_healthy

    clock.now = NOW + timedelta(minutes=6)
    await loop.run_cycle()
    stats = await writer.get_stats()
    assert stats is not None
    assert not stats.is_healthy
    assert stats.last_update_at == NOW
    assert stats.failed_fetches == 2


@pytest.mark.anyio("asyncio")
async def test_latest_arrival_overwrites_previous() -> None:
    loop, writer = make_loop(StubFetcher())
    first = datetime(2024, 1, 15, 14, 0, tzinfo=UTC)
    second = first + timedelta(minutes=5)

    await loop.apply(
        [
            TrackAssignment(
                destination="Babylon",
                track="13",
                train_num="2702",
                is_arrival=True,
                timestamp=first,
            ),
            TrackAssignment(
                destination="Babylon",
                track="17",
                train_num="2704",
                is_arrival=True,
                timestamp=second,
            ),
        ]
    )

    recent = await writer.get_recent_arrival("Babylon")
    assert recent is not None
    assert recent.track == "17"
    assert recent.train_num == "2704"
    assert recent.observed_at == second
    # arrivals are learned as patterns too
    day_of_week, hour = time_bucket(first)
    assert await writer.get_pattern("Babylon", day_of_week, hour, "2702") is not None


@pytest.mark.anyio("asyncio")
async def test_missing_train_number_stored_as_unknown() -> None:
    loop, writer = make_loop(StubFetcher())

    await loop.apply(
        [
            TrackAssignment(
                destination="Babylon", track="13", is_departure=True, timestamp=NOW
            )
        ]
    )

    assert await writer.kv.get("pattern:Babylon:0:9:unknown") is not None


@pytest.mark.anyio("asyncio")
async def test_run_sleeps_between_cycles_and_stops() -> None:
    fetcher = StubFetcher(ok(board()), failed())
    loop, writer = make_loop(fetcher)

    await loop.run(max_cycles=2)

    assert fetcher.calls == 2
    assert loop.cycles == 2
    assert loop.state == State.STOPPED
    loop._sleep.assert_awaited_once_with(30)  # type: ignore[attr-defined]


@pytest.mark.anyio("asyncio")
async def test_stop_ends_loop_after_current_cycle() -> None:
    loop, _ = make_loop(StubFetcher(ok(board())))

    async def stop_on_sleep(seconds: float) -> None:
        loop.stop()

    loop._sleep = stop_on_sleep
    await loop.run()

    assert loop.cycles == 1
    assert loop.stopping
    assert loop.state == State.STOPPED


@pytest.mark.anyio("asyncio")
async def test_unexpected_error_does_not_end_loop() -> None:
    fetcher = StubFetcher(ok(board()))
    fetcher.fetch = AsyncMock(side_effect=[RuntimeError("boom"), ok(board())])  # type: ignore[method-assign]
    loop, writer = make_loop(fetcher)

    await loop.run(max_cycles=2)

    stats = await writer.get_stats()
    assert stats is not None
    assert stats.failed_fetches == 1
    assert stats.successful_fetches == 1


@pytest.mark.anyio("asyncio")
async def test_predicted_arrival_does_not_replace_real_one() -> None:
    loop, writer = make_loop(StubFetcher())

    await loop.apply(
        [
            TrackAssignment(
                destination="Babylon",
                track="13",
                train_num="2702",
                is_arrival=True,
                timestamp=NOW - timedelta(minutes=2),
            ),
            TrackAssignment(
                destination="Babylon",
                track="19",
                train_num="2710",
                is_arrival=True,
                timestamp=NOW + timedelta(minutes=70),
            ),
        ]
    )

    recent = await writer.get_recent_arrival("Babylon")
    assert recent is not None
    assert recent.track == "13"
    assert recent.observed_at == NOW - timedelta(minutes=2)


@pytest.mark.anyio("asyncio")
async def test_out_of_order_arrivals_keep_newest() -> None:
    loop, writer = make_loop(StubFetcher())

    await loop.apply(
        [
            TrackAssignment(
                destination="Babylon",
                track="17",
                train_num="2704",
                is_arrival=True,
                timestamp=NOW - timedelta(minutes=1),
            ),
            TrackAssignment(
                destination="Babylon",
                track="13",
                train_num="2702",
                is_arrival=True,
                timestamp=NOW - timedelta(minutes=10),
            ),
        ]
    )

    recent = await writer.get_recent_arrival("Babylon")
    assert recent is not None
    assert recent.track == "17"
    assert recent.train_num == "2704"


@pytest.mark.anyio("asyncio")
async def test_stats_write_error_does_not_end_loop() -> None:
    fetcher = StubFetcher()
    fetcher.fetch = AsyncMock(side_effect=RuntimeError("boom"))  # type: ignore[method-assign]
    loop, writer = make_loop(fetcher)
    writer.save_stats = AsyncMock(side_effect=RuntimeError("store broken"))  # type: ignore[method-assign]

    await loop.run(max_cycles=3)

    assert loop.cycles == 3
    assert loop.state == State.STOPPED
    assert writer.save_stats.await_count == 3
