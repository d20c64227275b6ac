"""
Dates Module - Textual date variants for matching against raw documents.
========================================================================

Upstream reports print exam dates in whatever shape their authors chose, so a
requested date is expanded into every plausible spelling and each spelling is
used as a plain substring probe. No calendar validation is performed.
"""

import re
from typing import Iterable, Iterator, Optional

_ISO = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_DAY_FIRST = re.compile(r"^(\d{2})[-/](\d{2})[-/](\d{4})$")
_DAY_FIRST_SHORT = re.compile(r"^(\d{2})[-/](\d{2})[-/](\d{2})$")
_VARIANT_PARTS = re.compile(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{4})$")

MONTH_NAMES: dict[int, tuple[str, ...]] = {
    1: ("jan", "january"),
    2: ("feb", "february"),
    3: ("mar", "march"),
    4: ("apr", "april"),
    5: ("may",),
    6: ("jun", "june"),
    7: ("jul", "july"),
    8: ("aug", "august"),
    9: ("sep", "september"),
    10: ("oct", "october"),
    11: ("nov", "november"),
    12: ("dec", "december"),
}


def parse_date_parts(date: str) -> Optional[tuple[str, str, str]]:
    """
    Split an accepted date shape into zero-padded (day, month, 4-digit year).

    Accepted shapes: ``YYYY-MM-DD``, ``DD-MM-YYYY``, ``DD/MM/YYYY`` and the
    2-digit-year forms ``DD-MM-YY``/``DD/MM/YY`` (read as 20YY).

    Returns None for anything else.
    """
    date = date.strip()

    match = _ISO.match(date)
    if match:
        year, month, day = match.groups()
        return day, month, year

    match = _DAY_FIRST.match(date)
    if match:
        return match.groups()

    match = _DAY_FIRST_SHORT.match(date)
    if match:
        day, month, short_year = match.groups()
        return day, month, f"20{short_year}"

    return None


def generate_date_variants(date: Optional[str]) -> list[str]:
    """
    Generate every textual spelling of a date used for matching.

    The original input always comes first. Recognized shapes add ISO,
    day-first with ``-`` and ``/``, and the same without zero padding.

    Args:
        date: Date string as supplied by the caller

    Returns:
        Deduplicated, ordered list of variants ([] for an empty date)

    Example:
        >>> generate_date_variants("2025-11-07")
        ['2025-11-07', '07-11-2025', '07/11/2025', '7-11-2025', '7/11/2025']
    """
    if not date:
        return []

    variants = {date: None}
    parts = parse_date_parts(date)

    if parts:
        day, month, year = parts
        day_short = str(int(day))
        month_short = str(int(month))
        for variant in (
            f"{year}-{month}-{day}",
            f"{day}-{month}-{year}",
            f"{day}/{month}/{year}",
            f"{day_short}-{month_short}-{year}",
            f"{day_short}/{month_short}/{year}",
        ):
            variants.setdefault(variant, None)

    return list(variants)


def submission_date(date: str) -> str:
    """
    Format a date the way campus submission forms expect it (``DD/MM/YYYY``).

    Unrecognized shapes are passed through with ``-`` replaced by ``/``.
    """
    parts = parse_date_parts(date)
    if parts:
        day, month, year = parts
        return f"{day}/{month}/{year}"
    return date.strip().replace("-", "/")


def month_name_variants(variants: Iterable[str]) -> Iterator[str]:
    """
    Yield month-name spellings (``17/nov/2025``, ``17 november 2025``, ...).

    Only day-first variants are expanded; output is lowercase, so callers
    compare against lowercased text.
    """
    seen: set[str] = set()
    for variant in variants:
        match = _VARIANT_PARTS.match(variant)
        if not match:
            continue
        day, month, year = match.groups()
        for name in MONTH_NAMES.get(int(month), ()):
            for separator in ("/", "-", " "):
                spelled = f"{day}{separator}{name}{separator}{year}"
                if spelled not in seen:
                    seen.add(spelled)
                    yield spelled
