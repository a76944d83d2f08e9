#!/usr/bin/env python3
"""
Healthcheck script for Docker container health monitoring.

This script checks Redis connectivity and verifies that the learning loop
has recorded a successful update recently. Exit code 0 indicates healthy,
non-zero indicates unhealthy.
"""

import logging
import os
import sys
from datetime import UTC, datetime

from pydantic import ValidationError
from redis import Redis
from redis.exceptions import ConnectionError, TimeoutError
from shared_types.shared_types import LearningStats
from track_predictor.store import STATS_KEY

# Configure basic logging for healthcheck
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Maximum age of the last successful update before considering unhealthy
MAX_UPDATE_AGE_SECONDS = int(os.environ.get("LTP_HEALTHCHECK_MAX_AGE", "300"))


def stats_are_fresh(
    raw: str | bytes | None,
    now: datetime | None = None,
    max_age: int = MAX_UPDATE_AGE_SECONDS,
) -> bool:
    if not raw:
        logger.error("No learning stats found in Redis")
        return False
    try:
        stats = LearningStats.model_validate_json(raw)
    except ValidationError as e:
        logger.error(f"Failed to parse learning stats: {e}")
        return False

    if stats.last_update_at is None:
        logger.error("Learning loop has never completed a successful update")
        return False

    now = now or datetime.now(UTC)
    age_seconds = (now - stats.last_update_at).total_seconds()
    if age_seconds >= max_age:
        logger.error(
            f"Last update is too old: {age_seconds:.1f}s (max: {max_age}s)"
        )
        return False

    logger.info(f"Last update age: {age_seconds:.1f}s - healthy")
    return True


def check_health() -> bool:
    """
    Check learning loop health via the stats record in Redis.

    Returns:
        True if healthy, False otherwise
    """
    try:
        redis_client = Redis.from_url(
            os.environ.get("LTP_REDIS_URL", "redis://localhost:6379/0"),
            socket_connect_timeout=5,
            socket_timeout=5,
            decode_responses=True,
        )
        redis_client.ping()
        return stats_are_fresh(redis_client.get(STATS_KEY))
    except (ConnectionError, TimeoutError) as e:
        logger.error(f"Redis connection failed: {e}")
        return False


def main() -> int:
    """
    Main healthcheck entry point.

    Returns:
        0 if healthy, 1 if unhealthy
    """
    if check_health():
        print("healthy")
        return 0
    print("unhealthy")
    return 1


if __name__ == "__main__":
    sys.exit(main())
