"""
Tests Package - Unit and integration tests for SeatFinder.
==========================================================

Test modules:
- test_shared: Settings, schemas, identifier helpers
- test_ingestion: Dates, cleaner, parser, scraper tests
- test_storage: Store and result cache tests
- test_admission: Rate window, heuristics, timing, sequential tests
- test_directory: Loader tier and resolver tests
- test_seating: Merger, streaming, enquiry and service tests
- test_api: HTTP endpoint tests
- test_cli: Command line tests

Run tests with:
    pytest tests/
    pytest tests/ -v --cov=src/seatfinder
"""
