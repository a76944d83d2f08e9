"""Track code extraction and validation.

Feed stop identifiers carry the platform in a handful of shapes
("NYK_13", "NY_07", "something9"). Extraction tries the rules in
descending priority and validation enforces the terminal's platform range.
"""

import logging
import re
from typing import Optional

from consts import MAX_TRACK, MIN_TRACK

logger = logging.getLogger(__name__)

# Ordered by priority: prefixed token, trailing suffix, first digit run
TRACK_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"[A-Za-z]+_(\d+)"),
    re.compile(r"(\d+)$"),
    re.compile(r"(\d+)"),
]


def is_valid_track(track: Optional[str]) -> bool:
    """Return True when the track parses as an integer within the platform range."""
    if track is None:
        return False
    try:
        number = int(str(track).strip())
    except ValueError:
        return False
    return MIN_TRACK <= number <= MAX_TRACK


def normalize_track(track: str) -> str:
    """Canonical text form of a valid track ("07" -> "7")."""
    return str(int(track.strip()))


def extract_track_code(
    stop_id: Optional[str], platform: Optional[str] = None
) -> Optional[str]:
    """
    Extract a candidate track code.

    An explicit platform field wins; otherwise the stop identifier is matched
    against TRACK_PATTERNS in order. The candidate is returned as found and
    is not range-checked here.
    """
    if platform is not None:
        explicit = str(platform).strip()
        if explicit and explicit.upper() != "TBD":
            return explicit

    if not stop_id:
        return None

    for pattern in TRACK_PATTERNS:
        match = pattern.search(stop_id)
        if match:
            return match.group(1)
    return None


def extract_valid_track(
    stop_id: Optional[str], platform: Optional[str] = None
) -> Optional[str]:
    """Extract and validate in one step; returns the normalized track or None."""
    candidate = extract_track_code(stop_id, platform)
    if not is_valid_track(candidate):
        if candidate is not None:
            logger.debug(f"Rejected track candidate {candidate!r} from {stop_id!r}")
        return None
    return normalize_track(candidate)  # type: ignore[arg-type]
