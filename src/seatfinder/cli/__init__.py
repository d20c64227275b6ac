"""
CLI Module - Command-line interface for SeatFinder.
===================================================

Usage:
    seatfinder --help
    seatfinder serve --port 8000
    seatfinder lookup RA2311000000025 --date 2025-11-17
    seatfinder dates 17/11/2025
    seatfinder info
"""

from seatfinder.cli.main import app, cli

__all__ = ["app", "cli"]
