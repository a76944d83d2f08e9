import logging
import os
import pathlib
from typing import Literal, Optional

from consts import (
    FETCH_ATTEMPTS,
    LEARNING_INTERVAL,
    LIRR_GTFS_RT_ENDPOINT,
    STALENESS_THRESHOLD,
    TRAINTIME_ENDPOINT,
)
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class FeedConfig(BaseModel):
    """Upstream feed used by the learning loop"""

    url: str = Field(default=LIRR_GTFS_RT_ENDPOINT, description="Feed endpoint")
    format: Literal["gtfs-rt", "traintime"] = Field(
        default="gtfs-rt", description="Payload format returned by the feed"
    )
    api_key: Optional[str] = Field(
        default=None, description="Sent as the x-api-key header when set"
    )
    timeout: int = Field(default=10, description="Per-attempt timeout in seconds")
    attempts: int = Field(default=FETCH_ATTEMPTS, description="Attempts per fetch")


class Config(BaseModel):
    feed: FeedConfig = Field(default_factory=FeedConfig)
    # departure board used by the realtime passthrough mode
    realtime_url: str = Field(default=TRAINTIME_ENDPOINT)
    # "learning" serves from the pattern store, "realtime" proxies the board
    mode: Literal["learning", "realtime"] = Field(default="learning")
    learning_interval_seconds: int = Field(default=LEARNING_INTERVAL)
    staleness_threshold_seconds: int = Field(default=STALENESS_THRESHOLD)
    store_backend: Literal["memory", "redis"] = Field(default="memory")
    redis_url: str = Field(default="redis://localhost:6379/0")
    # optional JSON file replacing the built-in destination/seed tables
    catalog_path: Optional[str] = None
    api_port: int = Field(default=8080)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])


def _env_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {value}, using default")
        return None


def load_config() -> Config:
    conf_location = os.getenv("LTP_CONFIG", "./config.json")
    conf_path = pathlib.Path(conf_location)
    if conf_path.exists():
        logger.debug(f"Loading config from: {conf_location}")
        config = Config.model_validate_json(conf_path.read_text())
    else:
        logger.debug(f"No config file at {conf_location}; using defaults")
        config = Config()

    if feed_url := os.getenv("LTP_FEED_URL"):
        config.feed.url = feed_url
        logger.debug(f"Overriding LTP_FEED_URL with: {feed_url}")
    if feed_format := os.getenv("LTP_FEED_FORMAT"):
        if feed_format in ("gtfs-rt", "traintime"):
            config.feed.format = feed_format  # type: ignore[assignment]
            logger.debug(f"Overriding LTP_FEED_FORMAT with: {feed_format}")
        else:
            logger.warning(f"Unknown feed format: {feed_format}, using default")
    if api_key := os.getenv("LTP_FEED_API_KEY"):
        config.feed.api_key = api_key
    if (timeout := _env_int("LTP_FETCH_TIMEOUT")) is not None:
        config.feed.timeout = timeout
    if (attempts := _env_int("LTP_FETCH_ATTEMPTS")) is not None:
        config.feed.attempts = max(1, attempts)

    if realtime_url := os.getenv("LTP_REALTIME_URL"):
        config.realtime_url = realtime_url
    if mode := os.getenv("LTP_MODE"):
        if mode in ("learning", "realtime"):
            config.mode = mode  # type: ignore[assignment]
            logger.debug(f"Overriding LTP_MODE with: {mode}")
        else:
            logger.warning(f"Unknown mode: {mode}, using default")
    if (interval := _env_int("LTP_LEARNING_INTERVAL")) is not None:
        config.learning_interval_seconds = max(1, interval)
    if backend := os.getenv("LTP_STORE_BACKEND"):
        if backend in ("memory", "redis"):
            config.store_backend = backend  # type: ignore[assignment]
        else:
            logger.warning(f"Unknown store backend: {backend}, using default")
    if redis_url := os.getenv("LTP_REDIS_URL"):
        config.redis_url = redis_url
    if catalog_path := os.getenv("LTP_CATALOG_PATH"):
        config.catalog_path = catalog_path
    if (port := _env_int("LTP_API_PORT") or _env_int("PORT")) is not None:
        config.api_port = port
    if origins := os.getenv("LTP_API_ORIGIN"):
        config.cors_origins = [o.strip() for o in origins.split(",") if o.strip()]

    logger.debug(
        f"Final config - mode: {config.mode}, feed: {config.feed.url} ({config.feed.format}), store: {config.store_backend}"
    )
    return config
