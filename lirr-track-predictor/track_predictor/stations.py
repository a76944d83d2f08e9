"""Terminal catalog for track prediction.

Holds the static lookup data shared by the parser and the prediction engine:
route/trip id -> destination branch, the seed (branch) track table, and the
stop id prefixes that identify Penn Station platforms in the feed. Built-in
defaults can be replaced by a JSON file loaded once at startup.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from anyio import open_file
from consts import SEED_CONFIDENCE
from pydantic import BaseModel, Field, ValidationError
from shared_types.shared_types import SeedPattern

logger = logging.getLogger(__name__)

# LIRR GTFS route ids -> branch destination
DEFAULT_DESTINATIONS: Dict[str, str] = {
    "1": "Babylon",
    "2": "Hempstead",
    "3": "Oyster Bay",
    "4": "Ronkonkoma",
    "5": "Montauk",
    "6": "Long Beach",
    "7": "Far Rockaway",
    "8": "West Hempstead",
    "9": "Port Washington",
    "10": "Port Jefferson",
    "11": "Belmont Park",
    "13": "Greenport",
}

# Typical platform groups out of Penn Station per branch
DEFAULT_SEED_TRACKS: Dict[str, List[str]] = {
    "Babylon": ["15", "16", "17"],
    "Hempstead": ["19", "20", "21"],
    "Oyster Bay": ["19", "20"],
    "Ronkonkoma": ["17", "18", "19"],
    "Montauk": ["17", "18"],
    "Long Beach": ["15", "16"],
    "Far Rockaway": ["20", "21"],
    "West Hempstead": ["20", "21"],
    "Port Washington": ["13", "14", "15"],
    "Port Jefferson": ["17", "18", "19"],
    "Belmont Park": ["18", "19"],
    "Greenport": ["17", "18"],
}

DEFAULT_TERMINAL_STOP_PREFIXES: List[str] = ["NYK", "NY", "237"]


class CatalogFile(BaseModel):
    destinations: Dict[str, str] = Field(default_factory=dict)
    seeds: Dict[str, SeedPattern] = Field(default_factory=dict)
    terminal_stop_prefixes: List[str] = Field(default_factory=list)


class TerminalCatalog:
    """Read-only destination and seed tables for the modeled terminal."""

    def __init__(
        self,
        destinations: Optional[Dict[str, str]] = None,
        seeds: Optional[Dict[str, SeedPattern]] = None,
        terminal_stop_prefixes: Optional[List[str]] = None,
    ) -> None:
        self._destinations = dict(
            DEFAULT_DESTINATIONS if destinations is None else destinations
        )
        if seeds is None:
            seeds = {
                name: SeedPattern(tracks=tracks, confidence=SEED_CONFIDENCE)
                for name, tracks in DEFAULT_SEED_TRACKS.items()
            }
        self._seeds = dict(seeds)
        self._stop_prefixes = list(
            DEFAULT_TERMINAL_STOP_PREFIXES
            if terminal_stop_prefixes is None
            else terminal_stop_prefixes
        )
        self._names = {
            name.lower(): name
            for name in list(self._destinations.values()) + list(self._seeds.keys())
        }

    @classmethod
    async def load(cls, path: Optional[str] = None) -> "TerminalCatalog":
        """Load a catalog file, falling back to the built-in tables on any problem."""
        if not path:
            return cls()
        try:
            async with await open_file(Path(path)) as f:
                content = await f.read()
            data = CatalogFile.model_validate_json(content)
        except (json.JSONDecodeError, FileNotFoundError, PermissionError) as e:
            logger.warning(f"Failed to load terminal catalog from {path}", exc_info=e)
            return cls()
        except ValidationError as e:
            logger.warning(f"Terminal catalog at {path} is invalid", exc_info=e)
            return cls()

        logger.info(
            f"Loaded terminal catalog from {path}: {len(data.destinations)} destinations, {len(data.seeds)} seeds"
        )
        return cls(
            destinations=data.destinations or None,
            seeds=data.seeds or None,
            terminal_stop_prefixes=data.terminal_stop_prefixes or None,
        )

    def resolve_destination(
        self, route_id: Optional[str], trip_id: Optional[str] = None
    ) -> Optional[str]:
        """Map a route id (or, failing that, a trip id) to its destination name."""
        for key in (route_id, trip_id):
            if key and key in self._destinations:
                return self._destinations[key]
        return None

    def canonical_destination(self, name: Optional[str]) -> Optional[str]:
        """Case-insensitive match of a destination name against the catalog."""
        if not name:
            return None
        return self._names.get(name.strip().lower())

    def seed_for(self, destination: str) -> Optional[SeedPattern]:
        return self._seeds.get(destination)

    def is_terminal_stop(self, stop_id: Optional[str]) -> bool:
        if not self._stop_prefixes:
            return True
        if not stop_id:
            return False
        return any(stop_id.startswith(prefix) for prefix in self._stop_prefixes)

    @property
    def destinations(self) -> List[str]:
        return sorted(set(self._names.values()))
