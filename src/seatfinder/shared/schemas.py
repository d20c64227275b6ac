"""
Schemas Module - Pydantic data models for the application.
==========================================================

Defines all data contracts used across the application:
- Seating queries and seat matches
- Per-campus and aggregate responses
- Directory records
- Diagnostics models

Models serialize with camelCase keys (``model_dump(by_alias=True)``) to match
the public HTTP contract, and accept both snake_case and camelCase on input.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from seatfinder.shared.utils import normalize_identifier

# Placeholder for venue fields a source could not provide
UNKNOWN = "N/A"


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class Session(str, Enum):
    """Exam half-day slot."""

    FORENOON = "Forenoon"
    AFTERNOON = "Afternoon"
    UNKNOWN = "Unknown"

    @classmethod
    def from_marker(cls, marker: Optional[str]) -> "Session":
        """Map an upstream session marker (FN, AN, FORENOON, ...) to a Session."""
        if not marker:
            return cls.UNKNOWN
        value = marker.strip().upper()
        if value in ("FN", "FORENOON"):
            return cls.FORENOON
        if value in ("AN", "AFTERNOON"):
            return cls.AFTERNOON
        return cls.UNKNOWN


class SourceKind(str, Enum):
    """Which kind of upstream report produced a match."""

    ROOM_WISE = "room_wise"
    CONSOLIDATED_RANGE = "consolidated_range"


class DateConfidence(str, Enum):
    """Whether the requested date was actually seen in the source document."""

    CONFIRMED = "confirmed"
    UNCONFIRMED = "unconfirmed"


class LookupStatus(str, Enum):
    """Aggregate outcome of a lookup."""

    OK = "ok"
    PARTIAL = "partial"


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Query Models
# ─────────────────────────────────────────────────────────────────────────────


class SeatingQuery(_CamelModel):
    """
    A single seat lookup request.

    The identifier is normalized (uppercase, no whitespace) on construction;
    an identifier that normalizes to nothing is rejected.
    """

    identifier: str = Field(..., description="Student register number")
    date: Optional[str] = Field(default=None, description="Exam date in any accepted shape")

    @field_validator("identifier", mode="before")
    @classmethod
    def normalize(cls, v: Any) -> str:
        normalized = normalize_identifier(v if isinstance(v, str) else "")
        if not normalized:
            raise ValueError("RA number is required")
        return normalized

    @field_validator("date", mode="before")
    @classmethod
    def blank_date_is_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @property
    def cache_key(self) -> str:
        """Key under which the result for this query is cached."""
        return f"seating_{self.identifier}_{self.date or 'any'}"


# ─────────────────────────────────────────────────────────────────────────────
# Match Models
# ─────────────────────────────────────────────────────────────────────────────


class SeatMatch(_CamelModel):
    """
    One located seat assignment for an identifier.

    ``matched`` means the identifier was found. ``date_matched`` is the
    best-effort (possibly lenient) date check, and ``date_confidence`` tells
    whether the date was literally present in the document.
    """

    identifier: str
    session: Session = Session.UNKNOWN
    hall: str = UNKNOWN
    bench: str = UNKNOWN
    department: str = UNKNOWN
    subject_code: Optional[str] = None
    context: str = ""
    matched: bool = True
    date_matched: bool = False
    date_confidence: DateConfidence = DateConfidence.UNCONFIRMED
    source_kind: SourceKind = SourceKind.ROOM_WISE
    source_url: str = ""
    campus: str = ""
    name: Optional[str] = None


class CampusResult(_CamelModel):
    """Outcome of one campus in a streamed lookup."""

    campus: str
    matches: list[SeatMatch] = Field(default_factory=list)
    complete: bool = True
    error: Optional[str] = None


class SeatingResponse(_CamelModel):
    """Aggregate lookup result across all configured campuses."""

    status: LookupStatus = LookupStatus.OK
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    results: dict[str, list[SeatMatch]] = Field(default_factory=dict)
    cached: bool = False

    @computed_field
    @property
    def total_matches(self) -> int:
        """Number of matches across all campuses."""
        return sum(len(matches) for matches in self.results.values())

    @property
    def found(self) -> bool:
        return self.total_matches > 0


# ─────────────────────────────────────────────────────────────────────────────
# Directory Models
# ─────────────────────────────────────────────────────────────────────────────


class StudentRecord(BaseModel):
    """Identifier to display-name pair from a directory dataset."""

    identifier: str
    name: str

    @field_validator("identifier", mode="before")
    @classmethod
    def normalize(cls, v: Any) -> str:
        normalized = normalize_identifier(v if isinstance(v, str) else "")
        if not normalized:
            raise ValueError("identifier must not be empty")
        return normalized

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("name must be a non-empty string")
        return v.strip()
