"""
Seating Module - Lookup aggregation, merging, streaming, and enquiry records.
=============================================================================

- service: Fan-out across campuses, caching, and name merging
- merger: Overlay display names without touching venue fields
- streaming: Incremental events and their SSE encoding
- enquiry: Lookup records for downstream consumers
"""

from seatfinder.seating.enquiry import (
    EnquiryRecord,
    EnquirySink,
    JsonlEnquirySink,
    LoggingEnquirySink,
    build_enquiry_sink,
)
from seatfinder.seating.merger import merge_matches, merge_results
from seatfinder.seating.service import SeatingService
from seatfinder.seating.streaming import EventChannel, EventType, StreamEvent

__all__ = [
    "SeatingService",
    "merge_matches",
    "merge_results",
    "EventChannel",
    "EventType",
    "StreamEvent",
    "EnquiryRecord",
    "EnquirySink",
    "LoggingEnquirySink",
    "JsonlEnquirySink",
    "build_enquiry_sink",
]
