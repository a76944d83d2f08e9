from zoneinfo import ZoneInfo

import aiohttp

LIRR_GTFS_RT_ENDPOINT = (
    "https://api-endpoint.mta.info/Dataservice/mtagtfsfeeds/lirr%2Fgtfs-lirr"
)
TRAINTIME_ENDPOINT = "https://traintime.lirr.org/api/TrainTime?station=Penn%20Station"

MINUTE = 60
FIVE_MIN = 5 * MINUTE
FIFTEEN_MIN = 15 * MINUTE

# Penn Station platform tracks
MIN_TRACK = 1
MAX_TRACK = 21

# Learning loop cadence and freshness window
LEARNING_INTERVAL = 30
STALENESS_THRESHOLD = FIVE_MIN

# Feed fetch retry policy: attempts and the base of the exponential backoff
FETCH_ATTEMPTS = 3
FETCH_BACKOFF_BASE = 1

# Prediction confidences (0..100)
INBOUND_MATCH_CONFIDENCE = 85
INBOUND_MATCH_WINDOW = FIFTEEN_MIN
MAX_PATTERN_CONFIDENCE = 95
MIN_PATTERN_OBSERVATIONS = 2
SEED_CONFIDENCE = 35
REALTIME_POSTED_CONFIDENCE = 95
REALTIME_TBD_CONFIDENCE = 50

TERMINAL_TZ = ZoneInfo("America/New_York")

AIOHTTP_TIMEOUT = aiohttp.ClientTimeout(total=10)
