"""Feed decoding for the track prediction system.

Turns a raw feed payload into validated `TrackAssignment` observations.
Two formats are supported: the LIRR GTFS-Realtime protobuf feed and the
TrainTime JSON departure board. Decoding is best-effort: a malformed payload
yields a failed `ParseResult` with no assignments instead of an exception.
"""

import json
import logging
import re
from datetime import UTC, datetime
from typing import Any, Optional

from consts import TERMINAL_TZ
from google.protobuf.message import DecodeError
from google.transit import gtfs_realtime_pb2
from prometheus import observations
from pydantic import ValidationError
from shared_types.shared_types import (
    ParseResult,
    ParseStatus,
    RealtimeTrain,
    TrackAssignment,
)

from .stations import TerminalCatalog
from .validation import extract_valid_track

logger = logging.getLogger(__name__)

GTFS_RT = "gtfs-rt"
TRAINTIME = "traintime"

TRAIN_NUM_SUFFIX = re.compile(r"(\d+)$")


def parse_time(value: Any) -> Optional[datetime]:
    """Accept epoch seconds or ISO-8601 text; naive times are terminal-local."""
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        if value <= 0:
            return None
        return datetime.fromtimestamp(value, UTC)
    try:
        parsed = datetime.fromisoformat(str(value).strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=TERMINAL_TZ)
    return parsed


def classify(
    arrival: Optional[datetime], departure: Optional[datetime]
) -> Optional[tuple[bool, datetime]]:
    """
    Return (is_arrival, timestamp) or None when there is nothing to anchor on.
    An observation is an arrival only when it has no departure time.
    """
    if arrival is not None and departure is None:
        return True, arrival
    if departure is not None:
        return False, departure
    return None


def decode_traintime(raw: bytes | str) -> list[RealtimeTrain]:
    """
    Decode a TrainTime listing. Raises ValueError/KeyError/TypeError on a
    payload that is not shaped like {"Trains": [...]}.
    """
    data = json.loads(raw)
    trains: list[RealtimeTrain] = []
    for row in data["Trains"]:
        if not isinstance(row, dict):
            continue
        track = row.get("Track")
        track = str(track).strip() if track is not None else None
        number = row.get("TrainNumber")
        destination = row.get("Destination")
        trains.append(
            RealtimeTrain(
                destination=destination.strip() if isinstance(destination, str) else None,
                train_num=str(number) if number not in (None, "") else None,
                track=track if track and track.upper() != "TBD" else None,
                status=row.get("Status"),
                scheduled_time=parse_time(row.get("ScheduledTime")),
                arrival_time=parse_time(row.get("ArrivalTime")),
                departure_time=parse_time(row.get("DepartureTime")),
            )
        )
    return trains


class FeedParser:
    def __init__(self, catalog: TerminalCatalog, feed_format: str = GTFS_RT) -> None:
        if feed_format not in (GTFS_RT, TRAINTIME):
            raise ValueError(f"Unsupported feed format: {feed_format}")
        self.catalog = catalog
        self.feed_format = feed_format

    def parse(self, raw: Optional[bytes]) -> ParseResult:
        if not raw:
            return ParseResult(status=ParseStatus.EMPTY)
        if self.feed_format == TRAINTIME:
            result = self.parse_traintime(raw)
        else:
            result = self.parse_gtfs_rt(raw)

        observations.labels("accepted").inc(len(result.assignments))
        observations.labels("rejected").inc(result.rejected)
        return result

    def parse_gtfs_rt(self, raw: bytes) -> ParseResult:
        try:
            feed = gtfs_realtime_pb2.FeedMessage()
            feed.ParseFromString(raw)
        except (DecodeError, ValueError, TypeError) as e:
            logger.error("Failed to decode GTFS-RT payload", exc_info=e)
            return ParseResult(status=ParseStatus.FAILED, error=str(e))

        assignments: list[TrackAssignment] = []
        rejected = 0
        for entity in feed.entity:
            if not entity.HasField("trip_update"):
                continue
            trip_update = entity.trip_update
            trip = trip_update.trip
            destination = self.catalog.resolve_destination(trip.route_id, trip.trip_id)
            if destination is None:
                logger.debug(
                    f"Skipping trip {trip.trip_id}: no destination for route {trip.route_id!r}"
                )
                continue

            train_num = None
            if trip_update.HasField("vehicle") and trip_update.vehicle.label:
                train_num = trip_update.vehicle.label
            elif trip.trip_id:
                match = TRAIN_NUM_SUFFIX.search(trip.trip_id)
                train_num = match.group(1) if match else None

            for stop_time_update in trip_update.stop_time_update:
                if not self.catalog.is_terminal_stop(stop_time_update.stop_id):
                    continue
                track = extract_valid_track(stop_time_update.stop_id)
                if track is None:
                    rejected += 1
                    continue

                arrival = None
                if stop_time_update.HasField("arrival"):
                    arrival = parse_time(stop_time_update.arrival.time)
                departure = None
                if stop_time_update.HasField("departure"):
                    departure = parse_time(stop_time_update.departure.time)
                kind = classify(arrival, departure)
                if kind is None:
                    rejected += 1
                    continue

                is_arrival, timestamp = kind
                assignments.append(
                    TrackAssignment(
                        destination=destination,
                        track=track,
                        train_num=train_num,
                        is_arrival=is_arrival,
                        is_departure=not is_arrival,
                        timestamp=timestamp,
                    )
                )

        return ParseResult(
            status=ParseStatus.OK if assignments else ParseStatus.EMPTY,
            assignments=assignments,
            rejected=rejected,
        )

    def parse_traintime(self, raw: bytes | str) -> ParseResult:
        try:
            trains = decode_traintime(raw)
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            logger.error("Failed to decode TrainTime payload", exc_info=e)
            return ParseResult(status=ParseStatus.FAILED, error=str(e))

        assignments: list[TrackAssignment] = []
        rejected = 0
        for train in trains:
            destination = self.catalog.canonical_destination(train.destination)
            if destination is None:
                continue
            track = extract_valid_track(None, platform=train.track)
            if track is None:
                rejected += 1
                continue
            kind = classify(
                train.arrival_time, train.departure_time or train.scheduled_time
            )
            if kind is None:
                rejected += 1
                continue

            is_arrival, timestamp = kind
            assignments.append(
                TrackAssignment(
                    destination=destination,
                    track=track,
                    train_num=train.train_num,
                    is_arrival=is_arrival,
                    is_departure=not is_arrival,
                    timestamp=timestamp,
                )
            )

        return ParseResult(
            status=ParseStatus.OK if assignments else ParseStatus.EMPTY,
            assignments=assignments,
            rejected=rejected,
        )
