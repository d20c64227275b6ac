"""
Errors Module - Exception taxonomy for the seating engine.
==========================================================

Only admission and validation errors reach the HTTP layer as client errors.
Source and directory failures are recovered locally: a failed source
contributes an empty match list and marks the response ``partial``; a failed
directory leaves the display name absent. A source that answers without the
identifier is not an error at all (an empty list).
"""

from typing import Optional


class SeatFinderError(Exception):
    """Base class for all seating engine errors."""


class ValidationError(SeatFinderError):
    """Missing or malformed request input (HTTP 400)."""


class AdmissionRejected(SeatFinderError):
    """Request refused by admission control (HTTP 429)."""

    def __init__(self, reason: str, retry_after: Optional[int] = None, caller: str = ""):
        self.reason = reason
        self.retry_after = retry_after
        self.caller = caller
        super().__init__(reason)


class SourceFetchFailure(SeatFinderError):
    """A campus could not be fetched (timeout, transport error, bad status)."""

    def __init__(
        self,
        campus: str,
        url: str,
        message: str,
        status_code: Optional[int] = None,
    ):
        self.campus = campus
        self.url = url
        self.status_code = status_code
        super().__init__(f"{campus}: {message}")

    @property
    def is_not_found(self) -> bool:
        """True for the expected "no report published here" case."""
        return self.status_code == 404


class DirectoryUnavailable(SeatFinderError):
    """Every directory tier failed to produce a mapping."""
