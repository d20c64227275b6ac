"""
Pytest Configuration and Fixtures.
===================================

Shared fixtures for all test modules:
- Sample report documents (room-wise, text-only, consolidated)
- Fake clock for cache and admission state machines
- Test doubles for the scraper and directory tiers
- Temporary directories
"""

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Generator, Optional, Union

import pytest

from seatfinder.directory.loaders import DirectoryLoader, DirectorySnapshot

# Keep test runs independent of any developer .env
os.environ.setdefault("DIRECTORY_API_KEY", "")


# ─────────────────────────────────────────────────────────────────────────────
# Path Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_path(project_root: Path) -> Path:
    """Get the config file path."""
    return project_root / "config" / "settings.yaml"


# ─────────────────────────────────────────────────────────────────────────────
# Clock
# ─────────────────────────────────────────────────────────────────────────────


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ─────────────────────────────────────────────────────────────────────────────
# Sample Documents
# ─────────────────────────────────────────────────────────────────────────────

# Padding that pushes a document past the minimum accepted length
LONG_PADDING = "<!-- " + "x" * 5200 + " -->"


@pytest.fixture
def room_wise_html() -> str:
    """Room-wise report with one row for RA2311000000025."""
    return """
    <html>
    <body>
        <h2>SEATING ARRANGEMENT</h2>
        <p>Date: 17/11/2025</p>
        <h3>ROOM NO:H216</h3>
        <p>SESSION : FN</p>
        <table>
            <tr><th>S.No</th><th>Register No</th><th>Dept/Subject</th></tr>
            <tr><td>11</td><td>RA2311000000024</td><td>CSE/21MAB201T</td></tr>
            <tr><td>12</td><td>RA2311000000025</td><td>CSE/21MAB201T</td></tr>
        </table>
    </body>
    </html>
    """


@pytest.fixture
def multi_room_html() -> str:
    """Two rooms and sessions; the target sits in the second."""
    return """
    <html><body>
        <h3>ROOM NO:H101</h3><p>SESSION : FN</p>
        <table>
            <tr><td>1</td><td>RA2311000000001</td><td>ECE/21ECC201T</td></tr>
        </table>
        <h3>ROOM NO : TP-402</h3><p>SESSION : AN</p>
        <table>
            <tr><td>7</td><td>RA2311000000025</td><td>MECH</td></tr>
        </table>
    </body></html>
    """


@pytest.fixture
def text_only_html() -> str:
    """Report without table markup."""
    return """
    <html><body>
        <div>ROOM NO: TP-401</div>
        <div>SESSION: AN</div>
        <p>Candidates: RA2311000000025 RA2311000000026</p>
    </body></html>
    """


@pytest.fixture
def consolidated_html() -> str:
    """Consolidated report: one row per identifier range."""
    return """
    <html><body>
        <h2>CONSOLIDATED SEATING - SESSION : FN</h2>
        <table>
            <tr><td>DEGREE</td><td>DEPARTMENT</td><td>SUBCODE</td>
                <td>REGISTER NO.</td><td>ROOM NO.</td><td>TOTAL</td></tr>
            <tr><td>B.Tech</td><td>CSE</td><td>21CSC301T</td>
                <td>RA2311000000001-RA2311000000050</td><td>H301</td><td>50</td></tr>
            <tr><td>B.Tech</td><td>ECE</td><td>21ECC301T</td>
                <td>RA2311004010001-RA2311004010030</td><td>H302</td><td>30</td></tr>
        </table>
    </body></html>
    """


# ─────────────────────────────────────────────────────────────────────────────
# Configuration Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def campuses():
    """Three campuses on a fake host."""
    from seatfinder.shared.config import CampusConfig

    return [
        CampusConfig(name="Main Campus", fetch_address="https://exam.test/main/fetch_data.php"),
        CampusConfig(name="Tech Park", fetch_address="https://exam.test/tp/fetch_data.php"),
        CampusConfig(name="University Building", fetch_address="https://exam.test/ub/fetch_data.php"),
    ]


@pytest.fixture
def browser_headers() -> dict[str, str]:
    """Headers a real browser would send."""
    return {
        "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0",
        "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Accept-Encoding": "gzip, deflate, br",
    }


# ─────────────────────────────────────────────────────────────────────────────
# Test Doubles
# ─────────────────────────────────────────────────────────────────────────────


class FakeScraper:
    """
    Stands in for CampusScraper.

    ``outcomes`` maps campus name to a list of matches or an exception to raise;
    ``delays`` optionally maps campus name to seconds (or an asyncio.Event to wait on).
    """

    def __init__(self, outcomes: dict, delays: Optional[dict] = None):
        self.outcomes = outcomes
        self.delays = delays or {}
        self.calls: list[str] = []
        self.cancelled: list[str] = []

    async def fetch_campus(self, campus, identifier, date_variants=()):
        from seatfinder.ingestion.scraper import CampusFetch

        self.calls.append(campus.name)
        delay = self.delays.get(campus.name)
        try:
            if isinstance(delay, asyncio.Event):
                await delay.wait()
            elif delay:
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled.append(campus.name)
            raise

        outcome = self.outcomes.get(campus.name, [])
        if isinstance(outcome, BaseException):
            raise outcome
        return CampusFetch(
            campus=campus.name,
            url=campus.effective_report_address,
            html="",
            status_code=200,
            method="GET",
            matches=[m.model_copy(update={"campus": campus.name}) for m in outcome],
        )

    def close(self) -> None:
        pass


class StaticLoader(DirectoryLoader):
    """Directory tier returning canned snapshots (one per call, last one repeats)."""

    def __init__(self, *snapshots: Union[dict, Exception], name: str = "static", warmed=None, found=None):
        self.name = name
        self.snapshots = list(snapshots) or [{}]
        self.warmed = list(warmed) if warmed is not None else [True] * len(self.snapshots)
        self.found = found or {}
        self.calls = 0
        self.find_calls = 0

    def load(self):
        index = min(self.calls, len(self.snapshots) - 1)
        self.calls += 1
        snapshot = self.snapshots[index]
        if isinstance(snapshot, Exception):
            raise snapshot
        return DirectorySnapshot(
            mapping=dict(snapshot), source=self.name, warmed=self.warmed[index]
        )

    def find(self, identifier):
        self.find_calls += 1
        return self.found.get(identifier)


@pytest.fixture
def sample_match():
    """A room-wise SeatMatch as a source would produce it."""
    from seatfinder.shared.schemas import SeatMatch, Session

    return SeatMatch(
        identifier="RA2311000000025",
        session=Session.FORENOON,
        hall="H216",
        bench="12",
        department="CSE",
        subject_code="21MAB201T",
        context="12 RA2311000000025 CSE/21MAB201T",
    )


@pytest.fixture
def make_resolver():
    """Factory for a resolver over static tiers that never sleeps."""
    from seatfinder.directory.resolver import DirectoryResolver

    def _make(*loaders, retry_attempts: int = 3):
        sleeps: list[float] = []
        resolver = DirectoryResolver(
            loaders=list(loaders),
            retry_attempts=retry_attempts,
            retry_delay=0.01,
            sleep=sleeps.append,
        )
        resolver.sleeps = sleeps
        return resolver

    return _make


@pytest.fixture
def make_service(campuses, fake_clock, make_resolver):
    """Factory for a SeatingService wired with test doubles."""
    from seatfinder.seating.service import SeatingService
    from seatfinder.storage.cache import ResultCache

    def _make(outcomes: dict, delays: Optional[dict] = None, names: Optional[dict] = None, sink=None):
        scraper = FakeScraper(outcomes, delays)
        resolver = make_resolver(StaticLoader(names or {"RA2311000000025": "ASHA R"}))
        service = SeatingService(
            campuses=campuses,
            scraper=scraper,
            cache=ResultCache(ttl_seconds=300, clock=fake_clock),
            resolver=resolver,
            enquiry_sink=sink,
        )
        return service

    return _make


# ─────────────────────────────────────────────────────────────────────────────
# Pytest Configuration
# ─────────────────────────────────────────────────────────────────────────────


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset global singletons between tests."""
    import seatfinder.ingestion.parser as parser_module

    parser_module._default_parser = None

    yield

    parser_module._default_parser = None
