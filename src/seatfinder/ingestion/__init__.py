"""
Ingestion Module - Fetch campus reports and extract seat matches.
=================================================================

This module handles everything between a campus endpoint and a SeatMatch:

- dates: Textual date variants used for matching
- scraper: Campus fetches with form posts, GET fallback, and retries
- parser: Capability probe and extraction strategies
- cleaner: HTML fragment to snippet cleanup

Pipeline flow:
    CampusConfig → Scraper → Raw HTML → Parser (probe → strategy) → SeatMatches
"""

from seatfinder.ingestion.cleaner import TextCleaner, row_snippet, text_snippet
from seatfinder.ingestion.dates import (
    generate_date_variants,
    month_name_variants,
    submission_date,
)
from seatfinder.ingestion.parser import (
    DocumentKind,
    SeatingParser,
    find_matches,
    get_parser,
    identifier_in_range,
)
from seatfinder.ingestion.scraper import CampusFetch, CampusScraper

__all__ = [
    # Dates
    "generate_date_variants",
    "month_name_variants",
    "submission_date",
    # Scraper
    "CampusScraper",
    "CampusFetch",
    # Parser
    "DocumentKind",
    "SeatingParser",
    "identifier_in_range",
    "find_matches",
    "get_parser",
    # Cleaner
    "TextCleaner",
    "row_snippet",
    "text_snippet",
]
