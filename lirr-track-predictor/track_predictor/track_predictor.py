import logging
from datetime import UTC, datetime, timedelta
from typing import Callable, List, Optional

from consts import (
    INBOUND_MATCH_CONFIDENCE,
    INBOUND_MATCH_WINDOW,
    MIN_PATTERN_OBSERVATIONS,
    REALTIME_POSTED_CONFIDENCE,
    REALTIME_TBD_CONFIDENCE,
)
from exceptions import FeedUnavailable, MissingDestination
from prometheus import predictions_served
from pydantic import ValidationError
from shared_types.shared_types import (
    Prediction,
    PredictionMethod,
    PredictionResponse,
)

from .api_client import FeedFetcher
from .feed_parser import decode_traintime
from .pattern import time_bucket
from .stations import TerminalCatalog
from .store import PatternReader

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def rank_predictions(predictions: List[Prediction]) -> List[Prediction]:
    """Highest confidence first; equal confidences keep evaluation order."""
    return sorted(predictions, key=lambda p: p.confidence, reverse=True)


class TrackPredictor:
    """
    Track prediction engine for outbound LIRR trains at Penn Station.

    Combines up to three independent signals, each contributing when it has
    data: the most recent inbound arrival for the destination, the learned
    pattern for the train in the current time bucket, and the static branch
    pattern from the terminal catalog. The engine only reads the store.
    """

    def __init__(
        self,
        reader: PatternReader,
        catalog: TerminalCatalog,
        realtime_fetcher: Optional[FeedFetcher] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.reader = reader
        self.catalog = catalog
        self.realtime_fetcher = realtime_fetcher
        self._clock = clock

    def normalize_destination(self, destination: Optional[str]) -> str:
        if destination is None or not destination.strip():
            raise MissingDestination()
        return self.catalog.canonical_destination(destination) or destination.strip()

    async def predict(
        self,
        destination: Optional[str],
        train_num: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[Prediction]:
        """
        Generate ranked track predictions for a destination.

        Args:
            destination: Branch destination, e.g. "Babylon"
            train_num: Optional train number, required for the historical pattern
            now: Evaluation time (defaults to the current time)

        Returns:
            Predictions sorted by descending confidence; empty when no method
            has data.

        Raises:
            MissingDestination: if destination is missing or blank
        """
        destination = self.normalize_destination(destination)
        train_num = train_num.strip() if train_num and train_num.strip() else None
        now = now or self._clock()

        predictions: List[Prediction] = []
        inbound = await self._inbound_match(destination, now)
        if inbound:
            predictions.append(inbound)
        if train_num:
            historical = await self._historical_pattern(destination, train_num, now)
            if historical:
                predictions.append(historical)
        seed = self._branch_pattern(destination)
        if seed:
            predictions.append(seed)

        ranked = rank_predictions(predictions)
        for prediction in ranked:
            predictions_served.labels(prediction.method.value).inc()
        logger.debug(
            f"Predicted {len(ranked)} options for destination={destination}, train_num={train_num}"
        )
        return ranked

    async def _inbound_match(
        self, destination: str, now: datetime
    ) -> Optional[Prediction]:
        arrival = await self.reader.get_recent_arrival(destination)
        if arrival is None:
            return None
        age = now - arrival.observed_at
        if age < timedelta(0) or age > timedelta(seconds=INBOUND_MATCH_WINDOW):
            return None

        minutes = int(age.total_seconds() // 60)
        train = f"train {arrival.train_num}" if arrival.train_num else "a train"
        return Prediction(
            method=PredictionMethod.INBOUND_MATCH,
            track=arrival.track,
            confidence=INBOUND_MATCH_CONFIDENCE,
            reason=f"Inbound {train} from {destination} arrived on track {arrival.track} {minutes} min ago",
        )

    async def _historical_pattern(
        self, destination: str, train_num: str, now: datetime
    ) -> Optional[Prediction]:
        day_of_week, hour = time_bucket(now)
        pattern = await self.reader.get_pattern(destination, day_of_week, hour, train_num)
        if (
            pattern is None
            or pattern.most_common_track is None
            or pattern.total_observations < MIN_PATTERN_OBSERVATIONS
        ):
            return None

        top = pattern.track_counts.get(pattern.most_common_track, 0)
        return Prediction(
            method=PredictionMethod.HISTORICAL_PATTERN,
            track=pattern.most_common_track,
            confidence=pattern.confidence,
            reason=(
                f"Train {train_num} used track {pattern.most_common_track} "
                f"{top} of {pattern.total_observations} times at this hour"
            ),
            alternatives=list(pattern.alternative_tracks),
        )

    def _branch_pattern(self, destination: str) -> Optional[Prediction]:
        seed = self.catalog.seed_for(destination)
        if seed is None or not seed.tracks:
            return None
        return Prediction(
            method=PredictionMethod.BRANCH_PATTERN,
            tracks=list(seed.tracks),
            confidence=seed.confidence,
            reason=f"{destination} trains usually depart from tracks {', '.join(seed.tracks)}",
        )

    async def predict_realtime(
        self, destination: Optional[str], train_num: Optional[str] = None
    ) -> List[Prediction]:
        """
        Serve the live departure board directly, without learned data.

        Raises:
            MissingDestination: if destination is missing or blank
            FeedUnavailable: if the board cannot be fetched or decoded
        """
        if destination is None or not destination.strip():
            raise MissingDestination()
        if self.realtime_fetcher is None:
            raise FeedUnavailable("<unconfigured>", "no realtime feed configured")

        fetched = await self.realtime_fetcher.fetch()
        if not fetched.ok or fetched.payload is None:
            raise FeedUnavailable(self.realtime_fetcher.url, fetched.error)
        try:
            trains = decode_traintime(fetched.payload)
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            logger.error("Failed to decode realtime departure board", exc_info=e)
            raise FeedUnavailable(self.realtime_fetcher.url, str(e)) from e

        wanted = destination.strip().lower()
        predictions: List[Prediction] = []
        for train in trains:
            matches_destination = wanted in (train.destination or "").lower()
            matches_train = bool(train_num) and train.train_num == train_num
            if not (matches_destination or matches_train):
                continue
            if train.track:
                predictions.append(
                    Prediction(
                        method=PredictionMethod.REALTIME,
                        track=train.track,
                        confidence=REALTIME_POSTED_CONFIDENCE,
                        reason="Live track assignment from LIRR TrainTime API",
                    )
                )
            else:
                predictions.append(
                    Prediction(
                        method=PredictionMethod.REALTIME,
                        track=None,
                        confidence=REALTIME_TBD_CONFIDENCE,
                        reason="Track not yet posted (TBD)",
                    )
                )

        for prediction in predictions:
            predictions_served.labels(prediction.method.value).inc()
        return predictions

    async def respond(
        self,
        destination: Optional[str],
        train_num: Optional[str] = None,
        realtime: bool = False,
    ) -> PredictionResponse:
        """Build the full response payload for the predict endpoint."""
        if realtime:
            predictions = await self.predict_realtime(destination, train_num)
        else:
            predictions = await self.predict(destination, train_num)
        return PredictionResponse(
            destination=(destination or "").strip(),
            train_num=train_num,
            predictions=predictions,
            timestamp=self._clock(),
        )
