"""
Parser Module - Extract seat assignments from campus seating reports.
=====================================================================

Campus reports come in three broad layouts, and a capability probe picks the
strategy for each document explicitly:

- TABLE: room-wise report, one ``<tr>`` per student under ``ROOM NO`` and
  ``SESSION`` headers. Parsed by locating the identifier and scanning
  backwards for the nearest headers and the enclosing row.
- TEXT: no row markup. Parsed by a free-text scan that infers the room and
  session from the nearest markers earlier in the document. Also used when a
  table document yields no rows.
- RANGE_REPORT: consolidated report, one row per contiguous identifier range
  (``RA...001-RA...050``) sharing a room.

Each strategy is a public method so it can be exercised on its own.
"""

import bisect
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from bs4 import BeautifulSoup

from seatfinder.ingestion.cleaner import replace_nbsp, row_snippet, text_snippet
from seatfinder.ingestion.dates import month_name_variants
from seatfinder.shared.logging import get_logger
from seatfinder.shared.schemas import (
    UNKNOWN,
    DateConfidence,
    SeatMatch,
    Session,
    SourceKind,
)
from seatfinder.shared.utils import normalize_identifier, split_identifier

logger = get_logger(__name__)

_WS = r"(?:\s|&nbsp;|\xa0)"


# ─────────────────────────────────────────────────────────────────────────────
# Pattern Configuration
# ─────────────────────────────────────────────────────────────────────────────


class DocumentKind(str, Enum):
    """Layout detected by the capability probe."""

    RANGE_REPORT = "range_report"
    TABLE = "table"
    TEXT = "text"


@dataclass
class ParserPatterns:
    """
    Regular expressions describing the upstream report markup.

    Updated for the exam cell reports in use (2025):
    - Room headers: ``ROOM NO:H216``, ``ROOM NO : TP-201``
    - Session headers: ``SESSION : FN`` / ``SESSION : AN``
    - Department cells: ``CSE/21MAB201T``
    """

    room_header: str = rf"ROOM{_WS}+NO\.?(?:{_WS}|:)+([A-Z0-9][A-Z0-9\-]*)"
    session_header: str = rf"SESSION(?:{_WS}|:)*(FORENOON|AFTERNOON|FN|AN)\b"
    identifier: str = r"RA\d{10,15}"
    identifier_prefix: str = r"\bRA\d{2}"
    date_token: str = (
        r"\d{1,2}[-/]\d{1,2}[-/]\d{2,4}"
        r"|\d{1,2}[-/](?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*[-/]\d{2,4}"
    )
    table_row: str = r"<tr[\s>]"
    department_separator: str = "/"
    header_tokens: tuple[str, ...] = ("DEGREE", "DEPARTMENT", "REGISTER", "SUBCODE", "ROOM NO")


@dataclass
class ExtractedRow:
    """Intermediate row data before creating a SeatMatch."""

    identifier: str
    session: Session = Session.UNKNOWN
    hall: str = UNKNOWN
    bench: str = UNKNOWN
    department: str = UNKNOWN
    subject_code: Optional[str] = None
    context: str = ""
    notes: list[str] = field(default_factory=list)


# ─────────────────────────────────────────────────────────────────────────────
# Parser Class
# ─────────────────────────────────────────────────────────────────────────────


class SeatingParser:
    """
    Extracts seat matches for one identifier from one raw report.

    Example:
        >>> parser = SeatingParser()
        >>> matches = parser.extract(html, "RA2311000000025", ["17/11/2025"])
        >>> print(matches[0].hall, matches[0].bench)
    """

    def __init__(
        self,
        patterns: Optional[ParserPatterns] = None,
        context_length: int = 150,
        context_window: int = 100,
    ):
        """
        Initialize the parser.

        Args:
            patterns: Custom pattern configuration (uses defaults if None)
            context_length: Maximum snippet length attached to a match
            context_window: Characters captured on each side in text scans
        """
        self.patterns = patterns or ParserPatterns()
        self.context_length = context_length
        self.context_window = context_window

        self._room = re.compile(self.patterns.room_header, re.IGNORECASE)
        self._session = re.compile(self.patterns.session_header, re.IGNORECASE)
        self._identifier = re.compile(self.patterns.identifier, re.IGNORECASE)
        self._identifier_prefix = re.compile(self.patterns.identifier_prefix, re.IGNORECASE)
        self._date_token = re.compile(self.patterns.date_token, re.IGNORECASE)
        self._table_row = re.compile(self.patterns.table_row, re.IGNORECASE)
        self._register_cell = re.compile(
            rf"^({self.patterns.identifier})(?:\s*-\s*({self.patterns.identifier}))?$",
            re.IGNORECASE,
        )
        self._range_cell = re.compile(
            rf"<td[^>]*>\s*{self.patterns.identifier}\s*-\s*{self.patterns.identifier}\s*</td>",
            re.IGNORECASE,
        )

    @classmethod
    def from_settings(cls) -> "SeatingParser":
        """Build a parser from the extraction section of the settings."""
        from seatfinder.shared.config import get_settings

        extraction = get_settings().extraction
        patterns = ParserPatterns(
            identifier=extraction.identifier_pattern,
            identifier_prefix=extraction.identifier_prefix_pattern,
        )
        return cls(
            patterns=patterns,
            context_length=extraction.context_length,
            context_window=extraction.context_window,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Capability probe
    # ─────────────────────────────────────────────────────────────────────

    def probe_document(self, html: str) -> DocumentKind:
        """Classify a document so the matching strategy can be chosen."""
        if self._range_cell.search(html):
            return DocumentKind.RANGE_REPORT
        if self._table_row.search(html):
            return DocumentKind.TABLE
        return DocumentKind.TEXT

    def has_identifier_token(self, html: str, identifier: Optional[str] = None) -> bool:
        """True if the document holds any identifier-shaped token (or the target)."""
        if self._identifier.search(html):
            return True
        if identifier:
            return self._target_pattern(identifier).search(html) is not None
        return False

    # ─────────────────────────────────────────────────────────────────────
    # Strategy 1: room-wise table
    # ─────────────────────────────────────────────────────────────────────

    def extract_room_wise(self, html: str, identifier: str) -> list[ExtractedRow]:
        """
        Extract rows from a room-wise report.

        Occurrences without a preceding room header or an enclosing row are
        skipped, leaving them to the text scan.
        """
        identifier = normalize_identifier(identifier)
        if not html or not identifier:
            return []

        rooms = list(self._room.finditer(html))
        sessions = list(self._session.finditer(html))
        room_starts = [m.start() for m in rooms]
        session_starts = [m.start() for m in sessions]
        lowered = html.lower()

        rows: list[ExtractedRow] = []
        seen_rows: set[int] = set()

        for occurrence in self._target_pattern(identifier).finditer(html):
            index = occurrence.start()

            room = _last_before(rooms, room_starts, index)
            if room is None:
                logger.debug(f"No room header before {identifier} at {index}")
                continue

            row_start = lowered.rfind("<tr", 0, index)
            row_end = lowered.find("</tr>", index)
            if row_start == -1 or row_end == -1:
                continue
            if lowered.rfind("</tr>", row_start, index) != -1:
                # Closest row already closed: the occurrence is outside any row
                continue
            if row_start in seen_rows:
                continue
            seen_rows.add(row_start)

            row_html = html[row_start : row_end + len("</tr>")]
            session_match = _last_before(sessions, session_starts, index)

            row = ExtractedRow(
                identifier=identifier,
                session=Session.from_marker(session_match.group(1) if session_match else None),
                hall=room.group(1).upper(),
                context=row_snippet(row_html, self.context_length),
            )
            self._classify_cells(self._row_cells(row_html), row)
            rows.append(row)

        return rows

    def _row_cells(self, row_html: str) -> list[str]:
        soup = BeautifulSoup(row_html, "html.parser")
        cells = (
            replace_nbsp(cell.get_text(" ", strip=True)).strip()
            for cell in soup.find_all(["td", "th"])
        )
        return [cell for cell in cells if cell]

    def _classify_cells(self, cells: list[str], row: ExtractedRow) -> None:
        """Fill bench, department and subject code from a row's cells."""
        separator = self.patterns.department_separator

        for cell in cells:
            if cell.isdigit():
                row.bench = cell
                break

        for cell in cells:
            if separator in cell and not cell.isdigit():
                department, _, subject = cell.partition(separator)
                row.department = department.strip() or UNKNOWN
                row.subject_code = subject.strip() or None
                return

        for cell in cells:
            if cell.isdigit() or len(cell) <= 2:
                continue
            if normalize_identifier(cell) == row.identifier:
                continue
            row.department = cell
            return

    # ─────────────────────────────────────────────────────────────────────
    # Strategy 2: free-text scan
    # ─────────────────────────────────────────────────────────────────────

    def extract_text_scan(self, html: str, identifier: str) -> list[ExtractedRow]:
        """
        Scan the whole document for the identifier as plain text.

        Room and session come from the last marker before each match; bench
        and department cannot be derived and stay unknown.
        """
        identifier = normalize_identifier(identifier)
        if not html or not identifier:
            return []

        escaped = re.escape(identifier)
        delimited = re.compile(
            rf"(?:^|(?<=[>\"'\s]))({escaped})(?=[<\"'\s]|$)", re.IGNORECASE
        )
        occurrences = list(delimited.finditer(html))
        if not occurrences:
            occurrences = list(self._target_pattern(identifier).finditer(html))

        rooms = list(self._room.finditer(html))
        sessions = list(self._session.finditer(html))
        room_starts = [m.start() for m in rooms]
        session_starts = [m.start() for m in sessions]

        rows = []
        for occurrence in occurrences:
            index = occurrence.start()
            room = _last_before(rooms, room_starts, index)
            session_match = _last_before(sessions, session_starts, index)

            start = max(0, index - self.context_window)
            end = min(len(html), occurrence.end() + self.context_window)

            rows.append(
                ExtractedRow(
                    identifier=identifier,
                    session=Session.from_marker(
                        session_match.group(1) if session_match else None
                    ),
                    hall=room.group(1).upper() if room else UNKNOWN,
                    context=text_snippet(html[start:end], self.context_length),
                )
            )

        return rows

    # ─────────────────────────────────────────────────────────────────────
    # Strategy 3: consolidated range report
    # ─────────────────────────────────────────────────────────────────────

    def extract_consolidated(self, html: str, identifier: str) -> list[ExtractedRow]:
        """Extract rows from a consolidated report whose cells hold identifier ranges."""
        identifier = normalize_identifier(identifier)
        if not html or not identifier:
            return []

        session_match = self._session.search(html)
        session = Session.from_marker(session_match.group(1) if session_match else None)

        soup = BeautifulSoup(html, "lxml")
        rows = []
        for tr in soup.find_all("tr"):
            cells = [
                replace_nbsp(td.get_text(" ", strip=True)).strip()
                for td in tr.find_all("td")
            ]
            row = self.parse_range_cells(cells, identifier)
            if row is not None:
                row.session = session
                rows.append(row)

        return rows

    def parse_range_cells(self, cells: Sequence[str], identifier: str) -> Optional[ExtractedRow]:
        """
        Match one consolidated-report row against an identifier.

        The row is aligned on its register cell (a single identifier or an
        ``ID1-ID2`` range): department and subject code precede it and the
        room follows it. The standard layout is
        ``DEGREE | DEPARTMENT | SUBCODE | REGISTER NO. | ROOM NO. | TOTAL``.

        Returns:
            ExtractedRow when the identifier falls in the row's range, else None
        """
        identifier = normalize_identifier(identifier)
        cells = [cell.strip() for cell in cells]
        if len(cells) < 4 or self._is_header_row(cells):
            return None

        for index, cell in enumerate(cells):
            register = self._register_cell.match(cell)
            if register:
                break
        else:
            return None

        if index + 1 >= len(cells) or not cells[index + 1]:
            return None
        if not identifier_in_range(register.group(1), register.group(2), identifier):
            return None

        department = cells[index - 2] if index >= 2 else ""
        subject = cells[index - 1] if index >= 1 else ""

        return ExtractedRow(
            identifier=identifier,
            hall=cells[index + 1].upper(),
            department=department or UNKNOWN,
            subject_code=subject or None,
            context=" ".join(part for part in (department, subject, cell) if part),
        )

    def _is_header_row(self, cells: Sequence[str]) -> bool:
        return any(
            cell.upper().startswith(token)
            for cell in cells
            for token in self.patterns.header_tokens
        )

    # ─────────────────────────────────────────────────────────────────────
    # Date confirmation
    # ─────────────────────────────────────────────────────────────────────

    def confirm_date(self, html: str, date_variants: Sequence[str]) -> tuple[bool, DateConfidence]:
        """Literal check: does any date variant appear in the document?"""
        if not date_variants:
            return False, DateConfidence.UNCONFIRMED

        lowered = html.lower()
        if any(variant.lower() in lowered for variant in date_variants):
            return True, DateConfidence.CONFIRMED
        return False, DateConfidence.UNCONFIRMED

    def confirm_consolidated_date(
        self,
        html: str,
        date_variants: Sequence[str],
        fetched_with_date: bool,
    ) -> tuple[bool, DateConfidence]:
        """
        Lenient check for consolidated reports.

        A report requested for a specific date is assumed to be for that date
        when it carries any date-like token and identifier-shaped text; such
        assumed matches stay ``unconfirmed``.
        """
        if not date_variants:
            return True, DateConfidence.UNCONFIRMED

        matched, confidence = self.confirm_date(html, date_variants)
        if matched:
            return matched, confidence

        lowered = html.lower()
        if any(spelled in lowered for spelled in month_name_variants(date_variants)):
            return True, DateConfidence.CONFIRMED

        if (
            fetched_with_date
            and self._date_token.search(html)
            and self._identifier_prefix.search(html)
        ):
            return True, DateConfidence.UNCONFIRMED

        return False, DateConfidence.UNCONFIRMED

    # ─────────────────────────────────────────────────────────────────────
    # Entry point
    # ─────────────────────────────────────────────────────────────────────

    def extract(
        self,
        html: str,
        identifier: str,
        date_variants: Sequence[str] = (),
        fetched_with_date: bool = False,
        source_url: str = "",
        campus: str = "",
    ) -> list[SeatMatch]:
        """
        Extract all seat matches for an identifier from one document.

        Args:
            html: Raw report document
            identifier: Target identifier (normalized internally)
            date_variants: Output of ``generate_date_variants``
            fetched_with_date: The report was requested for a specific date
            source_url: URL the document came from
            campus: Campus name stamped on each match

        Returns:
            List of SeatMatch (empty when the identifier is absent)
        """
        identifier = normalize_identifier(identifier)
        if not html or not identifier:
            return []

        kind = self.probe_document(html)

        if kind is DocumentKind.RANGE_REPORT:
            rows = self.extract_consolidated(html, identifier)
            source_kind = SourceKind.CONSOLIDATED_RANGE
            date_matched, confidence = self.confirm_consolidated_date(
                html, date_variants, fetched_with_date
            )
        else:
            rows = self.extract_room_wise(html, identifier) if kind is DocumentKind.TABLE else []
            if not rows:
                rows = self.extract_text_scan(html, identifier)
            source_kind = SourceKind.ROOM_WISE
            date_matched, confidence = self.confirm_date(html, date_variants)

        logger.debug(
            f"{campus or 'document'}: {kind.value} layout, {len(rows)} row(s) for {identifier}"
        )

        return [
            SeatMatch(
                identifier=identifier,
                session=row.session,
                hall=row.hall,
                bench=row.bench,
                department=row.department,
                subject_code=row.subject_code,
                context=row.context,
                matched=True,
                date_matched=date_matched,
                date_confidence=confidence,
                source_kind=source_kind,
                source_url=source_url,
                campus=campus,
            )
            for row in rows
        ]

    def _target_pattern(self, identifier: str) -> re.Pattern:
        # A longer identifier sharing this one as a prefix is a different student
        return re.compile(rf"{re.escape(identifier)}(?!\d)", re.IGNORECASE)


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def _last_before(
    matches: list[re.Match], starts: list[int], index: int
) -> Optional[re.Match]:
    position = bisect.bisect_left(starts, index)
    return matches[position - 1] if position else None


def identifier_in_range(start: str, end: Optional[str], identifier: str) -> bool:
    """
    Check whether an identifier falls within ``[start, end]`` inclusive.

    Numeric suffixes are compared as Python ints, so arbitrarily long register
    numbers compare exactly. Letter prefixes must agree; an end bound without
    a prefix inherits the start's.

    Example:
        >>> identifier_in_range("RA2311000000001", "RA2311000000050", "RA2311000000025")
        True
    """
    target = split_identifier(identifier)
    low = split_identifier(start)
    high = split_identifier(end) if end else low
    if target is None or low is None or high is None:
        return False

    if low[0] != target[0] or (high[0] and high[0] != target[0]):
        return False

    return low[1] <= target[1] <= high[1]


# Global parser instance (lazy initialization)
_default_parser: Optional[SeatingParser] = None


def get_parser() -> SeatingParser:
    """Get the default parser instance built from settings."""
    global _default_parser
    if _default_parser is None:
        _default_parser = SeatingParser.from_settings()
    return _default_parser


def find_matches(
    html: str,
    identifier: str,
    date_variants: Sequence[str] = (),
    fetched_with_date: bool = False,
) -> list[SeatMatch]:
    """Convenience wrapper around ``get_parser().extract``."""
    return get_parser().extract(html, identifier, date_variants, fetched_with_date)
