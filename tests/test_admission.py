"""
Tests for Admission Module.
===========================

Tests for:
- Caller key derivation
- Fixed rate window and blocking
- Header heuristics
- Timing and sequential-identifier checks
- Sweeping expired state
"""

import pytest


@pytest.fixture
def make_controller(fake_clock):
    """Factory for an AdmissionController on the fake clock."""
    from seatfinder.admission.guard import AdmissionController
    from seatfinder.shared.config import AdmissionConfig

    def _make(**overrides):
        return AdmissionController(config=AdmissionConfig(**overrides), clock=fake_clock)

    return _make


@pytest.fixture
def browser_request(browser_headers):
    from seatfinder.admission.guard import RequestInfo

    return RequestInfo.from_headers(browser_headers, peer="10.0.0.1")


# ─────────────────────────────────────────────────────────────────────────────
# Caller Key Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestCallerKey:
    """Tests for caller key derivation."""

    def test_forwarded_for_first_entry(self):
        from seatfinder.admission.guard import caller_key

        headers = {"X-Forwarded-For": "1.2.3.4, 5.6.7.8", "X-Real-IP": "9.9.9.9"}

        assert caller_key(headers, "10.0.0.1") == "1.2.3.4"

    def test_real_ip_then_cloudflare(self):
        from seatfinder.admission.guard import caller_key

        assert caller_key({"X-Real-IP": "9.9.9.9"}) == "9.9.9.9"
        assert caller_key({"CF-Connecting-IP": "8.8.8.8"}) == "8.8.8.8"

    def test_peer_then_unknown(self):
        from seatfinder.admission.guard import caller_key

        assert caller_key({}, "10.0.0.1") == "10.0.0.1"
        assert caller_key({}) == "unknown"


# ─────────────────────────────────────────────────────────────────────────────
# Rate Window Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestRateWindow:
    """Tests for the fixed window and block."""

    def test_sixth_request_blocks(self, make_controller, browser_request, fake_clock):
        """Five requests pass, the sixth blocks for the block duration."""
        controller = make_controller()

        for _ in range(5):
            assert controller.check(browser_request).allowed
            fake_clock.advance(11)

        decision = controller.check(browser_request)

        assert not decision.allowed
        assert decision.check == "rate_window"
        assert decision.retry_after == 1800

    def test_block_outlives_window(self, make_controller, browser_request, fake_clock):
        """A block is not lifted when the counting window resets."""
        controller = make_controller()
        for _ in range(6):
            controller.check(browser_request)
            fake_clock.advance(11)

        fake_clock.advance(120)
        decision = controller.check(browser_request)

        assert not decision.allowed
        assert decision.check == "blocked"
        assert 0 < decision.retry_after <= 1800

    def test_block_expires(self, make_controller, browser_request, fake_clock):
        controller = make_controller()
        for _ in range(6):
            controller.check(browser_request)
            fake_clock.advance(11)

        fake_clock.advance(1800)

        assert controller.check(browser_request).allowed

    def test_window_resets(self, make_controller, browser_request, fake_clock):
        """A new window starts once the old one has elapsed."""
        controller = make_controller()
        for _ in range(5):
            controller.check(browser_request)
            fake_clock.advance(11)

        fake_clock.advance(60)

        assert controller.check(browser_request).allowed

    def test_callers_are_independent(self, make_controller, browser_headers, fake_clock):
        from seatfinder.admission.guard import RequestInfo

        controller = make_controller()
        first = RequestInfo.from_headers(browser_headers, peer="10.0.0.1")
        second = RequestInfo.from_headers(browser_headers, peer="10.0.0.2")

        for _ in range(6):
            controller.check(first)
            fake_clock.advance(11)

        assert not controller.check(first).allowed
        assert controller.check(second).allowed

    def test_raise_for_rejection(self, make_controller, browser_request, fake_clock):
        from seatfinder.shared.errors import AdmissionRejected

        controller = make_controller(max_requests=1)
        controller.check(browser_request).raise_for_rejection()
        fake_clock.advance(11)

        with pytest.raises(AdmissionRejected) as exc_info:
            controller.check(browser_request).raise_for_rejection()

        assert exc_info.value.retry_after == 1800
        assert exc_info.value.caller == "10.0.0.1"


# ─────────────────────────────────────────────────────────────────────────────
# Heuristic Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestHeuristics:
    """Tests for user agent and header checks."""

    def test_automation_agent_rejected(self, make_controller, browser_headers):
        from seatfinder.admission.guard import RequestInfo

        headers = dict(browser_headers, **{"User-Agent": "curl/8.4.0"})
        decision = make_controller().check(RequestInfo.from_headers(headers, "10.0.0.1"))

        assert not decision.allowed
        assert decision.check == "heuristic"
        assert decision.reason == "Suspicious user agent detected"

    def test_empty_agent_rejected(self, make_controller, browser_headers):
        from seatfinder.admission.guard import RequestInfo

        headers = dict(browser_headers, **{"User-Agent": ""})

        assert not make_controller().check(RequestInfo.from_headers(headers, "10.0.0.1")).allowed

    def test_allowlisted_crawler_passes(self, make_controller, browser_headers):
        """A search engine crawler matching the allowlist is admitted."""
        from seatfinder.admission.guard import RequestInfo

        headers = dict(
            browser_headers,
            **{"User-Agent": "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"},
        )

        assert make_controller().check(RequestInfo.from_headers(headers, "10.0.0.1")).allowed

    def test_two_missing_headers_rejected(self, make_controller, browser_headers):
        from seatfinder.admission.guard import RequestInfo

        headers = {"User-Agent": browser_headers["User-Agent"], "Accept": "text/html"}
        decision = make_controller().check(RequestInfo.from_headers(headers, "10.0.0.1"))

        assert not decision.allowed
        assert decision.reason == "Missing required browser headers"

    def test_one_missing_header_tolerated(self, make_controller, browser_headers):
        from seatfinder.admission.guard import RequestInfo

        headers = {k: v for k, v in browser_headers.items() if k != "Accept-Language"}

        assert make_controller().check(RequestInfo.from_headers(headers, "10.0.0.1")).allowed


# ─────────────────────────────────────────────────────────────────────────────
# Timing and Sequence Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestTiming:
    """Tests for the short trailing window."""

    def test_fourth_request_in_ten_seconds_rejected(self, make_controller, browser_request, fake_clock):
        controller = make_controller()
        for _ in range(3):
            assert controller.check(browser_request).allowed
            fake_clock.advance(1)

        decision = controller.check(browser_request)

        assert not decision.allowed
        assert decision.check == "timing"
        assert decision.retry_after == 7

    def test_spaced_requests_pass(self, make_controller, browser_request, fake_clock):
        controller = make_controller(max_requests=100)
        for _ in range(8):
            assert controller.check(browser_request).allowed
            fake_clock.advance(4)


class TestSequential:
    """Tests for enumeration detection."""

    def test_three_adjacent_identifiers_block(self, make_controller, browser_request, fake_clock):
        """Third adjacent identifier blocks the caller."""
        controller = make_controller()

        assert controller.check(browser_request, "RA2311000000001").allowed
        fake_clock.advance(11)
        assert controller.check(browser_request, "RA2311000000002").allowed
        fake_clock.advance(11)
        decision = controller.check(browser_request, "RA2311000000003")

        assert not decision.allowed
        assert decision.check == "sequential"
        assert decision.retry_after == 1800

        fake_clock.advance(11)
        assert controller.check(browser_request, "RA2311000000099").check == "blocked"

    def test_descending_run_also_counts(self, make_controller, browser_request, fake_clock):
        controller = make_controller()
        for identifier in ("RA2311000000010", "RA2311000000009"):
            controller.check(browser_request, identifier)
            fake_clock.advance(11)

        assert not controller.check(browser_request, "RA2311000000008").allowed

    def test_interrupted_run_passes(self, make_controller, browser_request, fake_clock):
        controller = make_controller()
        for identifier in ("RA2311000000001", "RA2311000000005", "RA2311000000006"):
            assert controller.check(browser_request, identifier).allowed
            fake_clock.advance(11)

    def test_run_expires(self, make_controller, browser_request, fake_clock):
        controller = make_controller(max_requests=100)
        controller.check(browser_request, "RA2311000000001")
        fake_clock.advance(11)
        controller.check(browser_request, "RA2311000000002")
        fake_clock.advance(301)

        assert controller.check(browser_request, "RA2311000000003").allowed


# ─────────────────────────────────────────────────────────────────────────────
# Maintenance Tests
# ─────────────────────────────────────────────────────────────────────────────


class TestMaintenance:
    """Tests for sweep, status and the disabled switch."""

    def test_sweep_removes_expired(self, make_controller, browser_request, fake_clock):
        controller = make_controller()
        controller.check(browser_request)

        assert controller.sweep() == 0

        fake_clock.advance(61)

        assert controller.sweep() == 2
        assert len(controller.store) == 0

    def test_sweep_keeps_active_block(self, make_controller, browser_request, fake_clock):
        controller = make_controller(max_requests=1)
        controller.check(browser_request)
        fake_clock.advance(11)
        controller.check(browser_request)
        fake_clock.advance(120)

        controller.sweep()

        assert controller.status()["blockedCallers"] == 1

    def test_disabled_admits_everything(self, make_controller):
        from seatfinder.admission.guard import RequestInfo

        controller = make_controller(enabled=False)
        request = RequestInfo.from_headers({"User-Agent": "curl/8.4.0"}, "10.0.0.1")

        for _ in range(10):
            assert controller.check(request).allowed
