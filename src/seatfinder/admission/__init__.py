"""
Admission Module - Rate limiting and bot heuristics for lookups.
================================================================
"""

from seatfinder.admission.guard import (
    AdmissionController,
    AdmissionDecision,
    AdmissionState,
    RequestInfo,
    SequentialPatternState,
    caller_key,
)

__all__ = [
    "AdmissionController",
    "AdmissionDecision",
    "AdmissionState",
    "RequestInfo",
    "SequentialPatternState",
    "caller_key",
]
