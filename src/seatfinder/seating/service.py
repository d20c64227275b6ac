"""
Service Module - The seating lookup aggregation engine.
=======================================================

Control flow for one lookup:

    cache lookup → (miss) date variants → fan-out to every campus →
    extraction per campus → cache write (un-merged) → name merge → response

A cache hit skips the fan-out but is still merged with a freshly resolved
display name. One campus failing never fails the lookup; it contributes an
empty list and marks the response ``partial``.

``stream()`` delivers the same lookup incrementally. Closing the stream
cancels every in-flight campus fetch: no further form post or GET is sent,
though an HTTP call already running in a worker thread finishes (bounded by
the fetch timeout) and its answer is discarded.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence, Union

from seatfinder.directory.resolver import DirectoryResolver
from seatfinder.ingestion.dates import generate_date_variants
from seatfinder.ingestion.scraper import CampusScraper
from seatfinder.seating.enquiry import EnquiryRecord, EnquirySink, build_enquiry_sink
from seatfinder.seating.merger import merge_matches, merge_results
from seatfinder.seating.streaming import EventChannel, StreamEvent
from seatfinder.shared.config import CampusConfig, Settings, get_settings
from seatfinder.shared.errors import SourceFetchFailure
from seatfinder.shared.logging import get_logger
from seatfinder.shared.schemas import (
    CampusResult,
    LookupStatus,
    SeatingQuery,
    SeatingResponse,
)
from seatfinder.storage.cache import ResultCache

logger = get_logger(__name__)


@dataclass
class CachedLookup:
    """Un-merged lookup kept in the result cache, with per-campus outcomes."""

    response: SeatingResponse
    campus_results: dict[str, CampusResult]


class SeatingService:
    """
    Aggregates seat matches across all configured campuses.

    Example:
        >>> service = SeatingService.from_settings()
        >>> response = await service.lookup(SeatingQuery(identifier="RA2311000000025"))
        >>> response.status
        'ok'
    """

    def __init__(
        self,
        campuses: Sequence[CampusConfig],
        scraper: CampusScraper,
        cache: ResultCache,
        resolver: DirectoryResolver,
        enquiry_sink: Optional[EnquirySink] = None,
    ):
        self.campuses = list(campuses)
        self.scraper = scraper
        self.cache = cache
        self.resolver = resolver
        self.enquiry_sink = enquiry_sink

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SeatingService":
        """Build a service wired from configuration."""
        settings = settings or get_settings()
        return cls(
            campuses=settings.campuses,
            scraper=CampusScraper(),
            cache=ResultCache(ttl_seconds=settings.cache.ttl_seconds),
            resolver=DirectoryResolver(),
            enquiry_sink=build_enquiry_sink(settings.enquiry.log_file, settings.enquiry.enabled),
        )

    # ─────────────────────────────────────────────────────────────────────
    # Per-campus work
    # ─────────────────────────────────────────────────────────────────────

    async def _fetch_campus(
        self, campus: CampusConfig, identifier: str, date_variants: list[str]
    ) -> CampusResult:
        try:
            fetch = await self.scraper.fetch_campus(campus, identifier, date_variants)
        except SourceFetchFailure as e:
            return CampusResult(campus=campus.name, complete=False, error=str(e))
        return CampusResult(campus=campus.name, matches=fetch.matches)

    def _settle(
        self, campus: CampusConfig, outcome: Union[CampusResult, BaseException]
    ) -> CampusResult:
        if isinstance(outcome, CampusResult):
            return outcome
        logger.error(f"{campus.name}: unexpected failure: {outcome!r}", exc_info=outcome)
        return CampusResult(campus=campus.name, complete=False, error="Unexpected error")

    async def _resolve_name(self, identifier: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self.resolver.resolve, identifier)
        except Exception as e:
            logger.warning(f"Name resolution failed for {identifier}: {e}")
            return None

    def _aggregate(self, results: dict[str, CampusResult]) -> SeatingResponse:
        """Un-merged response in configured campus order."""
        ordered = {
            campus.name: results[campus.name].matches
            for campus in self.campuses
            if campus.name in results
        }
        complete = all(result.complete for result in results.values())
        return SeatingResponse(
            status=LookupStatus.OK if complete else LookupStatus.PARTIAL,
            results=ordered,
        )

    async def _merge(
        self, query: SeatingQuery, raw: SeatingResponse, cached: bool = False
    ) -> SeatingResponse:
        name = await self._resolve_name(query.identifier)
        return raw.model_copy(
            update={
                "results": merge_results(raw.results, query.identifier, name),
                "cached": cached,
            }
        )

    def _record(
        self,
        query: SeatingQuery,
        response: SeatingResponse,
        started: float,
        caller: Optional[str],
        user_agent: Optional[str],
    ) -> None:
        if self.enquiry_sink is None:
            return
        duration_ms = int((time.perf_counter() - started) * 1000)
        self.enquiry_sink.emit(
            EnquiryRecord.from_lookup(query, response, duration_ms, caller, user_agent)
        )

    # ─────────────────────────────────────────────────────────────────────
    # Single-payload lookup
    # ─────────────────────────────────────────────────────────────────────

    async def lookup(
        self,
        query: SeatingQuery,
        caller: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SeatingResponse:
        """
        Look up an identifier across all campuses.

        Args:
            query: Normalized query
            caller: Caller key, recorded with the enquiry
            user_agent: Caller user agent, recorded with the enquiry

        Returns:
            SeatingResponse with per-campus merged matches
        """
        started = time.perf_counter()
        key = query.cache_key

        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"Serving {key} from cache")
            response = await self._merge(query, cached.response, cached=True)
            self._record(query, response, started, caller, user_agent)
            return response

        date_variants = generate_date_variants(query.date)
        logger.info(
            f"Looking up {query.identifier} (date={query.date or 'any'}) "
            f"across {len(self.campuses)} campus(es)"
        )

        outcomes = await asyncio.gather(
            *(self._fetch_campus(c, query.identifier, date_variants) for c in self.campuses),
            return_exceptions=True,
        )
        results = {
            campus.name: self._settle(campus, outcome)
            for campus, outcome in zip(self.campuses, outcomes)
        }

        raw = self._aggregate(results)
        self.cache.set(key, CachedLookup(response=raw, campus_results=results))

        response = await self._merge(query, raw)
        logger.info(
            f"Lookup {query.identifier}: {response.total_matches} match(es), "
            f"status={response.status}"
        )
        self._record(query, response, started, caller, user_agent)
        return response

    # ─────────────────────────────────────────────────────────────────────
    # Streaming lookup
    # ─────────────────────────────────────────────────────────────────────

    async def stream(
        self,
        query: SeatingQuery,
        caller: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Look up an identifier, yielding one event per campus as it completes.

        Yields ``campus_result`` events in completion order and then one
        ``complete`` (or ``error``) event. Closing the iterator early cancels
        the campus fetches still in flight.
        """
        channel = EventChannel()
        producer = asyncio.create_task(self._produce(query, channel, caller, user_agent))
        try:
            async for event in channel:
                yield event
        finally:
            if not producer.done():
                logger.debug(f"Stream for {query.identifier} closed early; cancelling fetches")
                producer.cancel()
            await asyncio.gather(producer, return_exceptions=True)

    async def _produce(
        self,
        query: SeatingQuery,
        channel: EventChannel,
        caller: Optional[str],
        user_agent: Optional[str],
    ) -> None:
        started = time.perf_counter()
        tasks: dict[asyncio.Task, CampusConfig] = {}
        name_task: Optional[asyncio.Task] = None

        try:
            cached = self.cache.get(query.cache_key)
            if cached is not None:
                response = await self._merge(query, cached.response, cached=True)
                for campus, matches in response.results.items():
                    result = cached.campus_results[campus]
                    channel.publish(
                        StreamEvent.campus_result(result.model_copy(update={"matches": matches}))
                    )
                channel.publish(StreamEvent.complete(response))
                self._record(query, response, started, caller, user_agent)
                return

            date_variants = generate_date_variants(query.date)
            name_task = asyncio.create_task(self._resolve_name(query.identifier))
            tasks = {
                asyncio.create_task(self._fetch_campus(c, query.identifier, date_variants)): c
                for c in self.campuses
            }

            # Campus events never wait on the directory. Matches settled before
            # the name resolves keep the source's name; ``complete`` carries the
            # merged aggregate.
            results: dict[str, CampusResult] = {}
            pending = set(tasks) | {name_task}
            while pending - {name_task}:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                name = name_task.result() if name_task.done() else None
                for task in done:
                    if task is name_task:
                        continue
                    campus = tasks[task]
                    result = self._settle(campus, task.exception() or task.result())
                    results[campus.name] = result
                    channel.publish(
                        StreamEvent.campus_result(
                            result.model_copy(
                                update={
                                    "matches": merge_matches(
                                        result.matches, query.identifier, name
                                    )
                                }
                            )
                        )
                    )

            raw = self._aggregate(results)
            self.cache.set(query.cache_key, CachedLookup(response=raw, campus_results=results))

            name = await name_task
            response = raw.model_copy(
                update={"results": merge_results(raw.results, query.identifier, name)}
            )
            channel.publish(StreamEvent.complete(response))
            self._record(query, response, started, caller, user_agent)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Streaming lookup failed for {query.identifier}: {e}")
            channel.publish(StreamEvent.error("Failed to fetch seating information"))
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            if name_task is not None and not name_task.done():
                name_task.cancel()

    # ─────────────────────────────────────────────────────────────────────
    # Diagnostics
    # ─────────────────────────────────────────────────────────────────────

    def cache_status(self) -> dict:
        return {
            "seating": self.cache.status(),
            "directory": self.resolver.status(),
        }

    def close(self) -> None:
        self.scraper.close()
