"""
SeatFinder - Exam Seat Lookup Across Campus Seating Reports
===========================================================

Locates a student's examination seat by querying every configured campus
seating endpoint concurrently, extracting seat assignments from heterogeneous
HTML reports (room-wise tables, free text, consolidated range reports), and
merging them with a display name from the student directory.

Lookups are admission-controlled, cached for a few minutes, and can be
streamed incrementally as each campus answers.
"""

__version__ = "0.1.0"
__author__ = "SeatFinder Team"
__license__ = "MIT"

# Public API - lazy imports to avoid circular dependencies and speed up startup
__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__license__",
    # Main modules (imported on demand)
    "shared",
    "ingestion",
    "storage",
    "directory",
    "admission",
    "seating",
    "app",
    "cli",
]
