"""
Frequency-pattern helpers for learned track assignments.

These are pure functions over `TrainPattern` so the learning loop and the
tests share one definition of the pattern invariants:

- most_common_track is the track with the highest count; ties go to the
  track that was seen first (dict insertion order)
- confidence = min(95, round(max_count / total_observations * 100))
- alternative_tracks are the remaining tracks with count > 1, by
  descending count (ties in insertion order)
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from consts import MAX_PATTERN_CONFIDENCE, TERMINAL_TZ
from shared_types.shared_types import TrainPattern


def time_bucket(timestamp: datetime) -> tuple[int, int]:
    """
    Return the (day_of_week, hour) bucket for a timestamp in terminal local time.
    Naive datetimes are assumed to already be local.
    """
    local = timestamp.astimezone(TERMINAL_TZ) if timestamp.tzinfo else timestamp
    return local.weekday(), local.hour


def compute_modal_track(track_counts: dict[str, int]) -> Optional[str]:
    best: Optional[str] = None
    best_count = 0
    for track, count in track_counts.items():
        if count > best_count:
            best, best_count = track, count
    return best


def compute_confidence(max_count: int, total: int) -> int:
    if total <= 0:
        return 0
    # round half up
    score = math.floor(max_count / total * 100 + 0.5)
    return min(MAX_PATTERN_CONFIDENCE, score)


def compute_alternatives(track_counts: dict[str, int], modal: Optional[str]) -> list[str]:
    others = [(t, c) for t, c in track_counts.items() if t != modal and c > 1]
    return [t for t, _ in sorted(others, key=lambda x: x[1], reverse=True)]


def record_observation(
    pattern: Optional[TrainPattern], track: str, seen_at: datetime
) -> TrainPattern:
    """
    Fold one observation into a pattern and return the updated copy.

    The input is never mutated, so a caller can persist the result as a single
    complete value.
    """
    counts = dict(pattern.track_counts) if pattern else {}
    counts[track] = counts.get(track, 0) + 1

    total = sum(counts.values())
    modal = compute_modal_track(counts)
    return TrainPattern(
        track_counts=counts,
        most_common_track=modal,
        confidence=compute_confidence(counts[modal] if modal else 0, total),
        total_observations=total,
        alternative_tracks=compute_alternatives(counts, modal),
        last_seen_at=seen_at,
    )
