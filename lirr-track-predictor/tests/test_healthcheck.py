from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

from healthcheck import check_health, main, stats_are_fresh
from redis.exceptions import ConnectionError
from shared_types.shared_types import LearningStats

NOW = datetime(2024, 1, 15, 14, 30, tzinfo=UTC)


def stats_json(last_update_at: datetime | None) -> str:
    return LearningStats(
        last_update_at=last_update_at, is_healthy=last_update_at is not None
    ).model_dump_json()


def test_fresh_stats_are_healthy() -> None:
    assert stats_are_fresh(stats_json(NOW - timedelta(minutes=1)), now=NOW)


def test_old_stats_are_unhealthy() -> None:
    assert not stats_are_fresh(stats_json(NOW - timedelta(minutes=5)), now=NOW)


def test_missing_or_unreadable_stats() -> None:
    assert not stats_are_fresh(None, now=NOW)
    assert not stats_are_fresh("{oops", now=NOW)
    assert not stats_are_fresh(stats_json(None), now=NOW)


def test_check_health_reads_stats_key() -> None:
    client = MagicMock()
    client.get.return_value = stats_json(datetime.now(UTC))
    with patch("healthcheck.Redis.from_url", return_value=client):
        assert check_health()
    client.ping.assert_called_once()
    client.get.assert_called_once_with("stats:learning")


def test_main_reports_unhealthy_on_connection_error() -> None:
    client = MagicMock()
    client.ping.side_effect = ConnectionError("refused")
    with patch("healthcheck.Redis.from_url", return_value=client):
        assert main() == 1
