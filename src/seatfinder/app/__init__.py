"""
App Module - HTTP surface for SeatFinder.
=========================================

Components:
- api: FastAPI application factory (``create_app``)

Usage:
    Run with: seatfinder serve
    Or use: uvicorn seatfinder.app.api:create_app --factory
"""

__all__ = []
