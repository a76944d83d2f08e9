from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TrackAssignment(BaseModel):
    """A single track observation decoded from the feed"""

    destination: str
    track: str
    train_num: Optional[str] = None
    is_arrival: bool = False
    is_departure: bool = False
    timestamp: datetime


class TrainPattern(BaseModel):
    """Learned track frequencies for one destination/time-bucket/train key"""

    # insertion order of track_counts is the tie-breaker for most_common_track
    track_counts: dict[str, int] = Field(default_factory=dict)
    most_common_track: Optional[str] = None
    confidence: int = 0  # 0..95
    total_observations: int = 0
    alternative_tracks: list[str] = Field(default_factory=list)
    last_seen_at: Optional[datetime] = None


class RecentArrival(BaseModel):
    track: str
    train_num: Optional[str] = None
    observed_at: datetime


class SeedPattern(BaseModel):
    tracks: list[str]
    confidence: int


class LearningStats(BaseModel):
    """Process-wide learning health, written only by the learning loop"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_patterns: int = 0
    last_update_at: Optional[datetime] = None
    successful_fetches: int = 0
    failed_fetches: int = 0
    is_healthy: bool = False


class PredictionMethod(str, Enum):
    INBOUND_MATCH = "inbound_match"
    HISTORICAL_PATTERN = "historical_pattern"
    BRANCH_PATTERN = "branch_pattern"
    REALTIME = "realtime"


class Prediction(BaseModel):
    method: PredictionMethod
    track: Optional[str] = None
    tracks: Optional[list[str]] = None
    confidence: int
    reason: str
    alternatives: Optional[list[str]] = None


class PredictionResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    destination: str
    train_num: Optional[str] = None
    predictions: list[Prediction]
    timestamp: datetime


class HealthReport(LearningStats):
    status: str  # "healthy" or "stale"
    uptime: float  # seconds since the process started


class FetchStatus(Enum):
    OK = "ok"
    FAILED = "failed"


class FetchResult(BaseModel):
    status: FetchStatus
    payload: Optional[bytes] = None
    attempts: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == FetchStatus.OK and self.payload is not None


class ParseStatus(Enum):
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


class ParseResult(BaseModel):
    status: ParseStatus
    assignments: list[TrackAssignment] = Field(default_factory=list)
    rejected: int = 0
    error: Optional[str] = None


class RealtimeTrain(BaseModel):
    """One row of the TrainTime departure board, normalized"""

    destination: Optional[str] = None
    train_num: Optional[str] = None
    track: Optional[str] = None  # None while the board shows TBD
    status: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
    departure_time: Optional[datetime] = None
