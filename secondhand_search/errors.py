# secondhand_search/errors.py

"""Exception types that may cross a module boundary.

Extraction problems never show up here: source scrapers convert them
into empty results.  These exceptions cover caller mistakes and the
one fatal resource failure (the browser refusing to start).
"""

INVALID_QUERY = "INVALID_QUERY"
INVALID_SOURCE = "INVALID_SOURCE"
TIMEOUT = "TIMEOUT"
SCRAPER_ERROR = "SCRAPER_ERROR"


class SearchError(Exception):
    """Base class for errors surfaced to the request boundary."""

    status: int = 500
    code: str = SCRAPER_ERROR

    def __init__(self, message: str, details: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict[str, str]:
        """Render the structured error body for the HTTP layer."""
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidQueryError(SearchError):
    """Blank query, bad limit or malformed request body."""

    status = 400
    code = INVALID_QUERY


class InvalidSourceError(InvalidQueryError):
    """Request names a source that is not registered."""

    code = INVALID_SOURCE


class BrowserLaunchError(SearchError):
    """No usable browser executable, or the process failed to start."""

    status = 503


class SearchTimeoutError(SearchError):
    """The request as a whole overran its deadline."""

    status = 504
    code = TIMEOUT
