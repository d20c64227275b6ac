"""
Enquiry Module - Record every lookup for downstream analytics.
==============================================================

The engine only emits records; storing and analysing them is someone else's
job. A sink failure is logged and never fails the lookup that produced it.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from seatfinder.shared.logging import get_logger
from seatfinder.shared.schemas import SeatingQuery, SeatingResponse
from seatfinder.shared.utils import append_jsonl

logger = get_logger(__name__)


class EnquiryRecord(BaseModel):
    """One logged lookup."""

    identifier: str
    search_date: Optional[str] = None
    results_found: bool = False
    result_count: int = 0
    campuses: list[str] = Field(default_factory=list)
    duration_ms: int = 0
    cached: bool = False
    caller: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_lookup(
        cls,
        query: SeatingQuery,
        response: SeatingResponse,
        duration_ms: int,
        caller: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> "EnquiryRecord":
        return cls(
            identifier=query.identifier,
            search_date=query.date,
            results_found=response.found,
            result_count=response.total_matches,
            campuses=list(response.results),
            duration_ms=duration_ms,
            cached=response.cached,
            caller=caller,
            user_agent=user_agent,
        )


class EnquirySink(ABC):
    """Destination for enquiry records."""

    @abstractmethod
    def write(self, record: EnquiryRecord) -> None:
        """Persist or forward one record."""

    def emit(self, record: EnquiryRecord) -> None:
        """Write a record, logging (not raising) on failure."""
        try:
            self.write(record)
        except Exception as e:
            logger.error(f"Failed to record enquiry for {record.identifier}: {e}")


class LoggingEnquirySink(EnquirySink):
    """Writes a one-line summary to the application log."""

    def write(self, record: EnquiryRecord) -> None:
        logger.info(
            f"Enquiry {record.identifier} date={record.search_date or 'any'} "
            f"found={record.results_found} count={record.result_count} "
            f"cached={record.cached} {record.duration_ms}ms"
        )


class JsonlEnquirySink(EnquirySink):
    """Appends records to a JSONL file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def write(self, record: EnquiryRecord) -> None:
        append_jsonl(self.path, record.model_dump(mode="json"))


def build_enquiry_sink(log_file: str = "", enabled: bool = True) -> Optional[EnquirySink]:
    """Sink for the configured enquiry settings (None when disabled)."""
    if not enabled:
        return None
    if log_file:
        return JsonlEnquirySink(Path(log_file))
    return LoggingEnquirySink()
