import json
from pathlib import Path

import pytest
from config import load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in (
        "LTP_FEED_URL",
        "LTP_FEED_FORMAT",
        "LTP_FEED_API_KEY",
        "LTP_FETCH_TIMEOUT",
        "LTP_FETCH_ATTEMPTS",
        "LTP_REALTIME_URL",
        "LTP_MODE",
        "LTP_LEARNING_INTERVAL",
        "LTP_STORE_BACKEND",
        "LTP_REDIS_URL",
        "LTP_CATALOG_PATH",
        "LTP_API_PORT",
        "PORT",
        "LTP_API_ORIGIN",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("LTP_CONFIG", str(tmp_path / "missing.json"))


def test_defaults_without_config_file() -> None:
    config = load_config()

    assert config.mode == "learning"
    assert config.feed.format == "gtfs-rt"
    assert config.feed.attempts == 3
    assert config.learning_interval_seconds == 30
    assert config.staleness_threshold_seconds == 300
    assert config.store_backend == "memory"
    assert config.api_port == 8080


def test_config_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "feed": {"url": "http://feed.test", "format": "traintime"},
                "mode": "realtime",
                "store_backend": "redis",
            }
        )
    )
    monkeypatch.setenv("LTP_CONFIG", str(path))

    config = load_config()

    assert config.feed.url == "http://feed.test"
    assert config.feed.format == "traintime"
    assert config.mode == "realtime"
    assert config.store_backend == "redis"


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LTP_FEED_URL", "http://other.test")
    monkeypatch.setenv("LTP_FEED_API_KEY", "secret")
    monkeypatch.setenv("LTP_FETCH_ATTEMPTS", "5")
    monkeypatch.setenv("LTP_LEARNING_INTERVAL", "60")
    monkeypatch.setenv("LTP_REDIS_URL", "redis://cache:6379/1")
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("LTP_API_ORIGIN", "https://a.test, https://b.test")

    config = load_config()

    assert config.feed.url == "http://other.test"
    assert config.feed.api_key == "secret"
    assert config.feed.attempts == 5
    assert config.learning_interval_seconds == 60
    assert config.redis_url == "redis://cache:6379/1"
    assert config.api_port == 9000
    assert config.cors_origins == ["https://a.test", "https://b.test"]


def test_invalid_env_values_ignored(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LTP_MODE", "turbo")
    monkeypatch.setenv("LTP_FEED_FORMAT", "xml")
    monkeypatch.setenv("LTP_STORE_BACKEND", "postgres")
    monkeypatch.setenv("LTP_LEARNING_INTERVAL", "soon")

    config = load_config()

    assert config.mode == "learning"
    assert config.feed.format == "gtfs-rt"
    assert config.store_backend == "memory"
    assert config.learning_interval_seconds == 30
