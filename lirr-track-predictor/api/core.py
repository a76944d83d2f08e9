import logging
from dataclasses import dataclass
from typing import Annotated, Optional

import aiohttp
from config import Config
from fastapi import Request
from fastapi.params import Depends
from redis.asyncio import Redis
from track_predictor.api_client import FeedFetcher
from track_predictor.feed_parser import FeedParser
from track_predictor.learning import LearningLoop
from track_predictor.stations import TerminalCatalog
from track_predictor.stats import StatsReporter
from track_predictor.store import (
    KeyValueStore,
    MemoryKeyValueStore,
    PatternWriter,
    RedisKeyValueStore,
)
from track_predictor.track_predictor import TrackPredictor

logger = logging.getLogger("api")


@dataclass
class Services:
    """Long-lived components shared by the learning loop and the endpoints."""

    config: Config
    catalog: TerminalCatalog
    predictor: TrackPredictor
    reporter: StatsReporter
    loop: Optional[LearningLoop] = None

    @property
    def realtime(self) -> bool:
        return self.config.mode == "realtime"


def build_store(config: Config) -> KeyValueStore:
    if config.store_backend == "redis":
        logger.info("Using Redis pattern store")
        return RedisKeyValueStore(Redis.from_url(config.redis_url))
    logger.info("Using in-memory pattern store")
    return MemoryKeyValueStore()


def build_fetcher(
    config: Config, url: str, session: Optional[aiohttp.ClientSession] = None
) -> FeedFetcher:
    headers = {"x-api-key": config.feed.api_key} if config.feed.api_key else {}
    return FeedFetcher(
        url,
        session=session,
        headers=headers,
        attempts=config.feed.attempts,
        timeout=aiohttp.ClientTimeout(total=config.feed.timeout),
    )


async def build_services(
    config: Config,
    session: Optional[aiohttp.ClientSession] = None,
    kv: Optional[KeyValueStore] = None,
) -> Services:
    catalog = await TerminalCatalog.load(config.catalog_path)
    writer = PatternWriter(kv if kv is not None else build_store(config))
    reader = writer.reader()

    loop = LearningLoop(
        build_fetcher(config, config.feed.url, session),
        FeedParser(catalog, config.feed.format),
        writer,
        interval=config.learning_interval_seconds,
        staleness_threshold=config.staleness_threshold_seconds,
    )
    predictor = TrackPredictor(
        reader,
        catalog,
        realtime_fetcher=build_fetcher(config, config.realtime_url, session),
    )
    return Services(
        config=config,
        catalog=catalog,
        predictor=predictor,
        reporter=StatsReporter(reader),
        loop=loop,
    )


async def get_services(request: Request) -> Services:
    return request.app.state.services


GET_DI = Annotated[Services, Depends(get_services)]
