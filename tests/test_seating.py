"""
Tests for Seating Module.
=========================

Tests for:
- Merger: display-name overlay
- Streaming: SSE encoding and the event channel
- Enquiry: record building and sinks
- SeatingService: fan-out, partial results, caching, streaming, cancellation
"""

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from seatfinder.seating.enquiry import EnquirySink
from tests.conftest import StaticLoader


async def _collect(agen) -> list:
    events = []
    async for event in agen:
        events.append(event)
    return events


# ─────────────────────────────────────────────────────────────────────────────
# Merger Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestMerger:
    """Tests for merge_matches / merge_results."""

    def test_name_overlay(self, sample_match):
        from seatfinder.seating.merger import merge_results

        merged = merge_results({"Main Campus": [sample_match]}, "RA2311000000025", "ASHA R")

        assert merged["Main Campus"][0].name == "ASHA R"
        assert sample_match.name is None

    def test_venue_fields_untouched(self, sample_match):
        from seatfinder.seating.merger import merge_matches

        merged = merge_matches([sample_match], "RA2311000000025", "ASHA R")[0]

        for field_name in ("hall", "bench", "session", "department", "subject_code", "context"):
            assert getattr(merged, field_name) == getattr(sample_match, field_name)

    def test_none_keeps_source_name(self, sample_match):
        from seatfinder.seating.merger import merge_matches

        source_named = sample_match.model_copy(update={"name": "FROM SOURCE"})
        merged = merge_matches([source_named], "RA2311000000025", None)

        assert merged[0].name == "FROM SOURCE"

    def test_identifier_from_query(self, sample_match):
        from seatfinder.seating.merger import merge_matches

        lower = sample_match.model_copy(update={"identifier": "ra2311000000025"})

        assert merge_matches([lower], "RA2311000000025", None)[0].identifier == "RA2311000000025"


# ─────────────────────────────────────────────────────────────────────────────
# Streaming Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestStreamEvents:
    """Tests for StreamEvent and EventChannel."""

    def test_sse_format(self):
        from seatfinder.seating.streaming import StreamEvent

        line = StreamEvent.connected().to_sse()

        assert line.startswith("data: ")
        assert line.endswith("\n\n")
        assert json.loads(line[len("data: "):]) == {
            "type": "connected",
            "message": "Streaming started",
        }

    def test_campus_result_uses_camel_case(self, sample_match):
        from seatfinder.seating.streaming import StreamEvent
        from seatfinder.shared.schemas import CampusResult

        event = StreamEvent.campus_result(CampusResult(campus="Tech Park", matches=[sample_match]))
        payload = json.loads(event.to_sse()[len("data: "):])

        assert payload["type"] == "campus_result"
        assert payload["campus"] == "Tech Park"
        assert payload["matches"][0]["subjectCode"] == "21MAB201T"
        assert payload["matches"][0]["session"] == "Forenoon"

    @pytest.mark.asyncio
    async def test_channel_stops_after_terminal(self):
        from seatfinder.seating.streaming import EventChannel, StreamEvent

        channel = EventChannel()
        channel.publish(StreamEvent.connected())
        channel.publish(StreamEvent.error("boom"))
        channel.publish(StreamEvent.connected())

        events = await _collect(channel)

        assert [e.event_type.value for e in events] == ["connected", "error"]
        assert channel.closed


# ─────────────────────────────────────────────────────────────────────────────
# Enquiry Tests
# ─────────────────────────────────────────────────────────────────────────────


class RecordingSink(EnquirySink):
    """Collects enquiry records in memory."""

    def __init__(self):
        self.records = []

    def write(self, record):
        self.records.append(record)


class TestEnquiry:
    """Tests for enquiry records and sinks."""

    def test_jsonl_sink(self, temp_dir):
        from seatfinder.seating.enquiry import EnquiryRecord, JsonlEnquirySink

        path = temp_dir / "logs" / "enquiries.jsonl"
        sink = JsonlEnquirySink(path)
        sink.emit(EnquiryRecord(identifier="RA2311000000025", results_found=True, result_count=1))
        sink.emit(EnquiryRecord(identifier="RA2311000000001"))

        lines = path.read_text(encoding="utf-8").splitlines()

        assert len(lines) == 2
        assert json.loads(lines[0])["identifier"] == "RA2311000000025"
        assert json.loads(lines[0])["result_count"] == 1

    def test_failing_sink_does_not_raise(self):
        from seatfinder.seating.enquiry import EnquiryRecord, EnquirySink

        class BrokenSink(EnquirySink):
            def write(self, record):
                raise OSError("disk full")

        BrokenSink().emit(EnquiryRecord(identifier="RA2311000000025"))

    def test_build_sink(self, temp_dir):
        from seatfinder.seating.enquiry import (
            JsonlEnquirySink,
            LoggingEnquirySink,
            build_enquiry_sink,
        )

        assert build_enquiry_sink(enabled=False) is None
        assert isinstance(build_enquiry_sink(), LoggingEnquirySink)
        assert isinstance(build_enquiry_sink(str(temp_dir / "e.jsonl")), JsonlEnquirySink)


# ─────────────────────────────────────────────────────────────────────────────
# Service Tests
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def query():
    from seatfinder.shared.schemas import SeatingQuery

    return SeatingQuery(identifier="ra2311000000025", date="2025-11-17")


class TestLookup:
    """Tests for SeatingService.lookup."""

    @pytest.mark.asyncio
    async def test_all_campuses_ok(self, make_service, query, sample_match):
        """Every campus answers: status ok, results in configured order."""
        service = make_service({"Main Campus": [sample_match]})

        response = await service.lookup(query)

        assert response.status == "ok"
        assert list(response.results) == ["Main Campus", "Tech Park", "University Building"]
        assert response.results["Tech Park"] == []
        assert response.total_matches == 1
        assert response.cached is False

        match = response.results["Main Campus"][0]
        assert match.campus == "Main Campus"
        assert match.name == "ASHA R"
        assert match.hall == "H216"

    @pytest.mark.asyncio
    async def test_source_failure_is_partial(self, make_service, query, sample_match):
        """One failing campus gives partial status and an empty list for it."""
        from seatfinder.shared.errors import SourceFetchFailure

        service = make_service(
            {
                "Main Campus": [sample_match],
                "Tech Park": SourceFetchFailure("Tech Park", "https://exam.test/tp", "timed out"),
            }
        )

        response = await service.lookup(query)

        assert response.status == "partial"
        assert response.results["Tech Park"] == []
        assert len(response.results["Main Campus"]) == 1

    @pytest.mark.asyncio
    async def test_no_date_one_timeout(self, make_service, sample_match):
        """Known identifier, no date: ok when all answer, partial when one times out."""
        from seatfinder.shared.errors import SourceFetchFailure
        from seatfinder.shared.schemas import SeatingQuery

        query = SeatingQuery(identifier="RA2311000000025")

        healthy = make_service({"Main Campus": [sample_match]})
        assert (await healthy.lookup(query)).status == "ok"

        timeout = SourceFetchFailure("University Building", "https://exam.test/ub", "Read timed out")
        degraded = make_service({"Main Campus": [sample_match], "University Building": timeout})
        response = await degraded.lookup(query)

        assert response.status == "partial"
        assert response.total_matches == 1

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_partial(self, make_service, query, sample_match):
        service = make_service(
            {"Main Campus": [sample_match], "University Building": RuntimeError("bug")}
        )

        response = await service.lookup(query)

        assert response.status == "partial"
        assert response.results["University Building"] == []

    @pytest.mark.asyncio
    async def test_all_campuses_queried_concurrently(self, make_service, query):
        service = make_service({}, delays={"Main Campus": 0.2, "Tech Park": 0.2, "University Building": 0.2})

        loop = asyncio.get_running_loop()
        started = loop.time()
        await service.lookup(query)

        assert loop.time() - started < 0.5
        assert sorted(service.scraper.calls) == ["Main Campus", "Tech Park", "University Building"]

    @pytest.mark.asyncio
    async def test_cache_hit_skips_fetch_and_remerges(self, make_service, make_resolver, query, sample_match):
        """A hit is served without fetching and carries a freshly resolved name."""
        service = make_service({"Main Campus": [sample_match]})

        first = await service.lookup(query)
        service.resolver = make_resolver(StaticLoader({"RA2311000000025": "ASHA RAMESH"}))
        second = await service.lookup(query)

        assert len(service.scraper.calls) == 3
        assert second.cached is True
        assert first.results["Main Campus"][0].name == "ASHA R"
        assert second.results["Main Campus"][0].name == "ASHA RAMESH"

    @pytest.mark.asyncio
    async def test_cache_stores_unmerged(self, make_service, query, sample_match):
        service = make_service({"Main Campus": [sample_match]})

        await service.lookup(query)
        entry = service.cache.get(query.cache_key)

        assert entry.response.results["Main Campus"][0].name is None
        assert entry.campus_results["Main Campus"].complete is True

    @pytest.mark.asyncio
    async def test_cache_expiry_refetches(self, make_service, fake_clock, query):
        service = make_service({})

        await service.lookup(query)
        fake_clock.advance(301)
        await service.lookup(query)

        assert len(service.scraper.calls) == 6

    @pytest.mark.asyncio
    async def test_date_is_part_of_cache_key(self, make_service, query):
        from seatfinder.shared.schemas import SeatingQuery

        service = make_service({})

        await service.lookup(query)
        await service.lookup(SeatingQuery(identifier=query.identifier))

        assert len(service.scraper.calls) == 6

    @pytest.mark.asyncio
    async def test_unresolved_name_keeps_source_name(self, make_service, query, sample_match):
        named = sample_match.model_copy(update={"name": "FROM SOURCE"})
        service = make_service({"Main Campus": [named]}, names={"RA2311000000001": "AARAV KUMAR"})

        response = await service.lookup(query)

        assert response.results["Main Campus"][0].name == "FROM SOURCE"

    @pytest.mark.asyncio
    async def test_enquiry_recorded(self, make_service, query, sample_match):
        sink = RecordingSink()
        service = make_service({"Main Campus": [sample_match]}, sink=sink)

        await service.lookup(query, caller="10.0.0.1", user_agent="Mozilla/5.0")
        await service.lookup(query, caller="10.0.0.1")

        first, second = sink.records
        assert first.identifier == "RA2311000000025"
        assert first.search_date == "2025-11-17"
        assert first.results_found is True
        assert first.result_count == 1
        assert first.campuses == ["Main Campus", "Tech Park", "University Building"]
        assert first.caller == "10.0.0.1"
        assert first.cached is False
        assert second.cached is True


class TestStream:
    """Tests for SeatingService.stream."""

    @pytest.mark.asyncio
    async def test_events_in_completion_order(self, make_service, query, sample_match):
        """Campus events arrive as each campus finishes, then one complete event."""
        service = make_service(
            {"Main Campus": [sample_match], "Tech Park": [sample_match]},
            delays={"Main Campus": 0.12, "Tech Park": 0.03, "University Building": 0.06},
        )

        events = await _collect(service.stream(query))

        kinds = [e.event_type.value for e in events]
        assert kinds == ["campus_result", "campus_result", "campus_result", "complete"]
        assert [e.data["campus"] for e in events[:3]] == [
            "Tech Park",
            "University Building",
            "Main Campus",
        ]
        assert events[0].data["matches"][0]["name"] == "ASHA R"

        complete = events[-1].data
        assert complete["status"] == "ok"
        assert complete["totalMatches"] == 2
        assert list(complete["results"]) == ["Main Campus", "Tech Park", "University Building"]

    @pytest.mark.asyncio
    async def test_failed_campus_event(self, make_service, query):
        from seatfinder.shared.errors import SourceFetchFailure

        service = make_service(
            {"Tech Park": SourceFetchFailure("Tech Park", "https://exam.test/tp", "HTTP 500", 500)}
        )

        events = await _collect(service.stream(query))
        by_campus = {e.data["campus"]: e.data for e in events[:-1]}

        assert by_campus["Tech Park"]["complete"] is False
        assert by_campus["Tech Park"]["matches"] == []
        assert events[-1].data["status"] == "partial"

    @pytest.mark.asyncio
    async def test_stream_populates_cache(self, make_service, query, sample_match):
        service = make_service({"Main Campus": [sample_match]})

        await _collect(service.stream(query))
        events = await _collect(service.stream(query))

        assert len(service.scraper.calls) == 3
        assert events[-1].data["cached"] is True
        assert len(events) == 4

    @pytest.mark.asyncio
    async def test_cached_partial_replays_failed_campus(self, make_service, query):
        """A cached partial lookup still reports which campus failed."""
        from seatfinder.shared.errors import SourceFetchFailure

        service = make_service(
            {"Tech Park": SourceFetchFailure("Tech Park", "https://exam.test/tp", "HTTP 500", 500)}
        )

        await _collect(service.stream(query))
        events = await _collect(service.stream(query))
        by_campus = {e.data["campus"]: e.data for e in events[:-1]}

        assert events[-1].data["cached"] is True
        assert events[-1].data["status"] == "partial"
        assert by_campus["Tech Park"]["complete"] is False
        assert by_campus["Tech Park"]["error"]
        assert by_campus["Main Campus"]["complete"] is True

    @pytest.mark.asyncio
    async def test_campus_events_do_not_wait_for_directory(
        self, make_service, make_resolver, query, sample_match
    ):
        """A slow directory delays only the complete event."""
        import time

        from seatfinder.directory.loaders import DirectoryLoader, DirectorySnapshot

        class SlowLoader(DirectoryLoader):
            name = "slow"

            def load(self):
                time.sleep(0.5)
                return DirectorySnapshot(
                    mapping={"RA2311000000025": "ASHA R"}, source=self.name, warmed=True
                )

        service = make_service({"Main Campus": [sample_match]})
        service.resolver = make_resolver(SlowLoader())

        stream = service.stream(query)
        started = time.perf_counter()
        first = await stream.__anext__()
        elapsed = time.perf_counter() - started
        rest = await _collect(stream)

        assert first.event_type.value == "campus_result"
        assert elapsed < 0.3
        assert rest[-1].event_type.value == "complete"
        assert rest[-1].data["results"]["Main Campus"][0]["name"] == "ASHA R"

    @pytest.mark.asyncio
    async def test_close_cancels_pending_fetches(self, make_service, query):
        """Closing the stream early cancels the campus still being fetched."""
        never = asyncio.Event()
        service = make_service({}, delays={"University Building": never})

        stream = service.stream(query)
        received = [await stream.__anext__(), await stream.__anext__()]
        await stream.aclose()
        for _ in range(5):
            await asyncio.sleep(0)

        assert {e.data["campus"] for e in received} == {"Main Campus", "Tech Park"}
        assert service.scraper.cancelled == ["University Building"]
        assert service.cache.get(query.cache_key) is None

    @pytest.mark.asyncio
    async def test_internal_failure_emits_error_event(self, make_service, query):
        service = make_service({})
        service.cache.get = MagicMock(side_effect=RuntimeError("store offline"))

        events = await _collect(service.stream(query))

        assert len(events) == 1
        assert events[0].event_type.value == "error"
        assert events[0].data["message"] == "Failed to fetch seating information"

    def test_cache_status(self, make_service):
        status = make_service({}).cache_status()

        assert status["seating"]["entries"] == 0
        assert "directory" in status
