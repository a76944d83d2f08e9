class TrackPredictorError(Exception):
    """Base class for errors surfaced to API callers."""


class MissingDestination(TrackPredictorError):
    """A prediction was requested without a destination."""

    def __init__(self) -> None:
        super().__init__("Missing destination parameter")


class FeedUnavailable(TrackPredictorError):
    """The upstream feed could not be fetched for a request-triggered prediction."""

    def __init__(self, url: str, reason: str | None = None) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch track data from {url}: {reason}")


class FeedHTTPError(Exception):
    """The feed endpoint answered with a non-success status."""

    def __init__(self, status: int, url: str) -> None:
        self.status = status
        self.url = url
        super().__init__(f"HTTP {status} from {url}")
