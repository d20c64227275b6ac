"""
Merger Module - Overlay the resolved display name on per-campus matches.
========================================================================
"""

from typing import Optional

from seatfinder.shared.schemas import SeatMatch


def merge_matches(matches: list[SeatMatch], identifier: str, name: Optional[str]) -> list[SeatMatch]:
    """
    Return copies of ``matches`` carrying the query identifier and display name.

    A ``None`` name keeps whatever name the source supplied. Venue fields
    (hall, bench, session, department, subject code) are never touched.
    """
    merged = []
    for match in matches:
        update = {"identifier": identifier}
        if name is not None:
            update["name"] = name
        merged.append(match.model_copy(update=update))
    return merged


def merge_results(
    results: dict[str, list[SeatMatch]],
    identifier: str,
    name: Optional[str],
) -> dict[str, list[SeatMatch]]:
    """
    Merge every campus's match list with the resolved display name.

    Args:
        results: Campus name to matches, as extracted (un-merged)
        identifier: Normalized query identifier
        name: Resolved display name, or None when the directory had none

    Returns:
        New mapping with merged copies; the input is not modified

    Example:
        >>> merged = merge_results({"Main": [match]}, "RA2311000000025", "ASHA R")
        >>> merged["Main"][0].name
        'ASHA R'
    """
    return {
        campus: merge_matches(matches, identifier, name)
        for campus, matches in results.items()
    }
