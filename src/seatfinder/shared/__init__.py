"""
Shared Module - Common utilities, configuration, schemas, and logging.
======================================================================

This module provides foundational components used across all other modules:

- config: Configuration loading and management
- logging: Structured logging setup
- schemas: Pydantic data models
- errors: Exception taxonomy
- utils: Identifier helpers and file I/O
"""

from seatfinder.shared.config import CampusConfig, Settings, get_settings
from seatfinder.shared.errors import (
    AdmissionRejected,
    DirectoryUnavailable,
    SeatFinderError,
    SourceFetchFailure,
    ValidationError,
)
from seatfinder.shared.logging import get_logger, setup_logging
from seatfinder.shared.schemas import (
    UNKNOWN,
    CampusResult,
    DateConfidence,
    LookupStatus,
    SeatingQuery,
    SeatingResponse,
    SeatMatch,
    Session,
    SourceKind,
    StudentRecord,
)
from seatfinder.shared.utils import identifier_tail, normalize_identifier, split_identifier

__all__ = [
    # Config
    "get_settings",
    "Settings",
    "CampusConfig",
    # Logging
    "get_logger",
    "setup_logging",
    # Errors
    "SeatFinderError",
    "ValidationError",
    "AdmissionRejected",
    "SourceFetchFailure",
    "DirectoryUnavailable",
    # Schemas
    "UNKNOWN",
    "Session",
    "SourceKind",
    "DateConfidence",
    "LookupStatus",
    "SeatingQuery",
    "SeatMatch",
    "CampusResult",
    "SeatingResponse",
    "StudentRecord",
    # Utils
    "normalize_identifier",
    "split_identifier",
    "identifier_tail",
]
