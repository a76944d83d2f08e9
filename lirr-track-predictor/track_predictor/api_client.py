"""Feed client for the track prediction system.

Fetches the raw feed payload (GTFS-RT protobuf or TrainTime JSON) with a
bounded number of attempts and exponential backoff between them. Failures
never escape `fetch`; they come back as a failed `FetchResult`.
"""

import logging
from typing import Any, Awaitable, Callable, Optional

import aiohttp
import anyio
from consts import AIOHTTP_TIMEOUT, FETCH_ATTEMPTS, FETCH_BACKOFF_BASE
from exceptions import FeedHTTPError
from prometheus import feed_fetch_attempts, feed_fetches
from shared_types.shared_types import FetchResult, FetchStatus
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (aiohttp.ClientError, TimeoutError, FeedHTTPError)


class FeedFetcher:
    """
    Retrieves a feed payload from one endpoint.

    Waits backoff_base * 2^(attempt - 1) seconds after each failed attempt
    (1s, 2s, ...) and gives up after `attempts` tries.
    """

    def __init__(
        self,
        url: str,
        session: Optional[aiohttp.ClientSession] = None,
        headers: Optional[dict[str, str]] = None,
        attempts: int = FETCH_ATTEMPTS,
        backoff_base: float = FETCH_BACKOFF_BASE,
        timeout: aiohttp.ClientTimeout = AIOHTTP_TIMEOUT,
        sleep: Callable[[float], Awaitable[Any]] = anyio.sleep,
    ) -> None:
        self.url = url
        self.session = session
        self.headers = headers or {}
        self.attempts = attempts
        self.backoff_base = backoff_base
        self.timeout = timeout
        self._sleep = sleep

    async def fetch(self) -> FetchResult:
        attempts = 0
        payload = b""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.attempts),
                wait=wait_exponential(multiplier=self.backoff_base, exp_base=2),
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                sleep=self._sleep,
                reraise=True,
            ):
                with attempt:
                    attempts += 1
                    feed_fetch_attempts.inc()
                    payload = await self._get_once()
        except TRANSIENT_ERRORS as e:
            feed_fetches.labels("failed").inc()
            logger.error(
                f"Giving up on feed {self.url} after {attempts} attempts: {e}"
            )
            return FetchResult(
                status=FetchStatus.FAILED, attempts=attempts, error=str(e)
            )
        except Exception as e:
            feed_fetches.labels("failed").inc()
            logger.error(f"Unexpected error fetching feed {self.url}", exc_info=e)
            return FetchResult(
                status=FetchStatus.FAILED, attempts=attempts, error=str(e)
            )

        feed_fetches.labels("ok").inc()
        logger.debug(f"Fetched {len(payload)} bytes from {self.url}")
        return FetchResult(status=FetchStatus.OK, payload=payload, attempts=attempts)

    async def _get_once(self) -> bytes:
        if self.session is not None and not self.session.closed:
            return await self._read(self.session)
        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            return await self._read(session)

    async def _read(self, session: aiohttp.ClientSession) -> bytes:
        async with session.get(
            self.url, headers=self.headers, timeout=self.timeout
        ) as response:
            if response.status < 200 or response.status >= 300:
                raise FeedHTTPError(response.status, self.url)
            return await response.read()
