"""
Scraper Module - Fetch seating reports from campus endpoints.
=============================================================

One fetch per campus per lookup:
- Polite random delay before touching the campus
- Form posts per session code when a date is known, GET report fallback
- Per-call timeout and a single retry for non-timeout failures
- Extraction on the accepted document, matches stamped with their source

Blocking ``requests`` calls run in worker threads so many campuses can be
fetched concurrently from one event loop.
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from seatfinder.ingestion.dates import submission_date
from seatfinder.ingestion.parser import SeatingParser
from seatfinder.shared.config import CampusConfig, get_settings
from seatfinder.shared.errors import SourceFetchFailure
from seatfinder.shared.logging import get_logger
from seatfinder.shared.schemas import SeatMatch

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Data Classes
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class CampusFetch:
    """Result of fetching and extracting one campus."""

    campus: str
    url: str
    html: str
    status_code: int
    method: str
    session_code: Optional[str] = None
    matches: list[SeatMatch] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def fetched_with_date(self) -> bool:
        """True when the document came from a dated form post."""
        return self.method == "POST"


# ─────────────────────────────────────────────────────────────────────────────
# Scraper Class
# ─────────────────────────────────────────────────────────────────────────────


class CampusScraper:
    """
    Fetches and extracts seating reports for a single campus at a time.

    Example:
        >>> scraper = CampusScraper()
        >>> fetch = await scraper.fetch_campus(campus, "RA2311000000025", ["17/11/2025"])
        >>> print(len(fetch.matches))
    """

    def __init__(
        self,
        parser: Optional[SeatingParser] = None,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        polite_delay: Optional[tuple[float, float]] = None,
        min_document_length: Optional[int] = None,
        session_codes: Optional[Sequence[str]] = None,
        user_agent: Optional[str] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the scraper.

        Args:
            parser: Extraction engine (built from settings if None)
            timeout: Per-call timeout in seconds
            retries: Extra attempts after a non-timeout failure
            retry_backoff: Seconds to wait before a retry
            polite_delay: (min, max) seconds of random delay before fetching
            min_document_length: Minimum length for a form-post answer to count
            session_codes: Session codes posted in order (FN, AN)
            user_agent: User agent string
            session: Pre-built requests session (tests)
            sleep: Coroutine used for delays (tests)
        """
        fetch_config = get_settings().fetch

        self.parser = parser or SeatingParser.from_settings()
        self.timeout = timeout if timeout is not None else fetch_config.timeout
        self.retries = retries if retries is not None else fetch_config.retries
        self.retry_backoff = (
            retry_backoff if retry_backoff is not None else fetch_config.retry_backoff
        )
        self.polite_delay = polite_delay or (
            fetch_config.polite_delay_min,
            fetch_config.polite_delay_max,
        )
        self.min_document_length = (
            min_document_length
            if min_document_length is not None
            else fetch_config.min_document_length
        )
        self.session_codes = list(session_codes or fetch_config.session_codes)
        self.user_agent = user_agent or fetch_config.user_agent

        # Built here so concurrent worker threads share one session.
        self.session = session or self._build_session()
        self._sleep = sleep

        logger.debug(
            f"CampusScraper initialized: timeout={self.timeout}s, retries={self.retries}, "
            f"sessions={self.session_codes}"
        )

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "User-Agent": self.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.5",
                "Accept-Encoding": "gzip, deflate",
                "Connection": "keep-alive",
            }
        )
        return session

    # ─────────────────────────────────────────────────────────────────────
    # Network calls
    # ─────────────────────────────────────────────────────────────────────

    def _request(self, method: str, url: str, data: Optional[dict] = None) -> requests.Response:
        """Make one HTTP call with retries (blocking)."""

        @retry(
            retry=(
                retry_if_exception_type(requests.RequestException)
                & retry_if_not_exception_type(requests.Timeout)
            ),
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_fixed(self.retry_backoff),
            reraise=True,
            before_sleep=lambda retry_state: logger.debug(
                f"Retry {retry_state.attempt_number}/{self.retries} for {method} {url}"
            ),
        )
        def _request_with_retry() -> requests.Response:
            response = self.session.request(method, url, data=data, timeout=self.timeout)
            response.raise_for_status()
            return response

        return _request_with_retry()

    async def _call(self, method: str, url: str, data: Optional[dict] = None) -> requests.Response:
        return await asyncio.to_thread(self._request, method, url, data)

    async def _wait_politely(self) -> None:
        low, high = self.polite_delay
        if high > 0:
            await self._sleep(random.uniform(low, high))

    def _accept_document(self, html: str, identifier: str) -> bool:
        """A form-post answer counts when it is long enough to be a real report."""
        return len(html) > self.min_document_length and self.parser.has_identifier_token(
            html, identifier
        )

    # ─────────────────────────────────────────────────────────────────────
    # Fetching
    # ─────────────────────────────────────────────────────────────────────

    async def fetch_document(
        self,
        campus: CampusConfig,
        identifier: str,
        date: Optional[str] = None,
    ) -> CampusFetch:
        """
        Fetch the raw report for a campus.

        With a date, each session code is posted to the submission address
        and the first acceptable answer wins. Otherwise (or when no post is
        acceptable) the report address is fetched with GET.

        Raises:
            SourceFetchFailure: If the report address cannot be fetched
        """
        await self._wait_politely()
        started = time.perf_counter()

        if date:
            form_date = submission_date(date)
            for code in self.session_codes:
                form = {"dated": form_date, "session": code, "submit": "Submit"}
                try:
                    response = await self._call("POST", campus.fetch_address, form)
                except requests.RequestException as e:
                    logger.debug(f"{campus.name}: POST session={code} failed: {e}")
                    continue

                if self._accept_document(response.text, identifier):
                    logger.debug(
                        f"{campus.name}: accepted POST session={code} "
                        f"({len(response.text)} chars)"
                    )
                    return CampusFetch(
                        campus=campus.name,
                        url=campus.fetch_address,
                        html=response.text,
                        status_code=response.status_code,
                        method="POST",
                        session_code=code,
                        elapsed=time.perf_counter() - started,
                    )

        url = campus.effective_report_address
        try:
            response = await self._call("GET", url)
        except requests.RequestException as e:
            status_code = e.response.status_code if e.response is not None else None
            failure = SourceFetchFailure(campus.name, url, str(e), status_code=status_code)
            if failure.is_not_found:
                logger.info(f"{campus.name}: no report published at {url}")
            else:
                logger.warning(f"{campus.name}: fetch failed: {e}")
            raise failure from e

        return CampusFetch(
            campus=campus.name,
            url=url,
            html=response.text,
            status_code=response.status_code,
            method="GET",
            elapsed=time.perf_counter() - started,
        )

    async def fetch_campus(
        self,
        campus: CampusConfig,
        identifier: str,
        date_variants: Sequence[str] = (),
    ) -> CampusFetch:
        """
        Fetch a campus report and extract matches for an identifier.

        Args:
            campus: Campus to fetch
            identifier: Normalized identifier
            date_variants: Output of ``generate_date_variants`` (first item is the
                date as supplied)

        Returns:
            CampusFetch with matches stamped with campus and source URL

        Raises:
            SourceFetchFailure: If every fetch attempt failed
        """
        date = date_variants[0] if date_variants else None
        fetch = await self.fetch_document(campus, identifier, date)

        fetch.matches = self.parser.extract(
            fetch.html,
            identifier,
            date_variants,
            fetched_with_date=fetch.fetched_with_date,
            source_url=fetch.url,
            campus=campus.name,
        )

        logger.info(
            f"{campus.name}: {len(fetch.matches)} match(es) via {fetch.method} "
            f"in {fetch.elapsed:.2f}s"
        )
        return fetch

    def close(self) -> None:
        """Close the scraper session."""
        self.session.close()

    def __enter__(self) -> "CampusScraper":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        self.close()
