"""
Guard Module - Admission control for seating lookups.
=====================================================

Checks run in a fixed order and the first failure short-circuits:

1. Rate window: fixed window per caller; exceeding it blocks the caller.
   An expired block is cleared lazily on the caller's next request.
2. Heuristic validation: automation user agents and missing browser headers.
3. Timing: too many accepted requests in a short trailing window.
4. Sequential identifiers: enumeration of adjacent register numbers.

State lives in an injected ``KeyValueStore`` and time comes from an injected
clock, so tests can drive the state machine deterministically.
"""

import math
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

from seatfinder.shared.config import AdmissionConfig
from seatfinder.shared.errors import AdmissionRejected
from seatfinder.shared.logging import get_logger
from seatfinder.shared.utils import identifier_tail
from seatfinder.storage.stores import KeyValueStore, MemoryStore

logger = get_logger(__name__)

Clock = Callable[[], float]

_WINDOW_PREFIX = "admission:"
_TIMING_PREFIX = "timing:"
_SEQUENCE_PREFIX = "sequence:"


# ─────────────────────────────────────────────────────────────────────────────
# Data Classes
# ─────────────────────────────────────────────────────────────────────────────


def caller_key(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    """
    Derive the caller key from forwarding headers.

    Order: first ``X-Forwarded-For`` entry, ``X-Real-IP``,
    ``CF-Connecting-IP``, then the peer address.
    """
    lowered = {k.lower(): v for k, v in headers.items()}

    forwarded = lowered.get("x-forwarded-for", "")
    if forwarded.strip():
        return forwarded.split(",")[0].strip()

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = lowered.get(header, "").strip()
        if value:
            return value

    return peer or "unknown"


@dataclass
class RequestInfo:
    """The parts of an incoming request admission control looks at."""

    caller: str
    user_agent: str = ""
    accept: str = ""
    accept_language: str = ""
    accept_encoding: str = ""

    @classmethod
    def from_headers(cls, headers: Mapping[str, str], peer: Optional[str] = None) -> "RequestInfo":
        lowered = {k.lower(): v for k, v in headers.items()}
        return cls(
            caller=caller_key(lowered, peer),
            user_agent=lowered.get("user-agent", ""),
            accept=lowered.get("accept", ""),
            accept_language=lowered.get("accept-language", ""),
            accept_encoding=lowered.get("accept-encoding", ""),
        )


@dataclass
class AdmissionState:
    """Fixed-window counter and optional block for one caller."""

    window_count: int
    window_reset_at: float
    blocked_until: Optional[float] = None


@dataclass
class SequentialPatternState:
    """Current run of adjacent identifiers for one caller."""

    last_tail: int
    consecutive_count: int
    window_started_at: float


@dataclass
class TimingState:
    accepted_at: list[float] = field(default_factory=list)


@dataclass
class AdmissionDecision:
    """Outcome of an admission check."""

    allowed: bool
    caller: str
    reason: Optional[str] = None
    retry_after: Optional[int] = None
    check: Optional[str] = None

    def raise_for_rejection(self) -> None:
        """Raise AdmissionRejected if the request was refused."""
        if not self.allowed:
            raise AdmissionRejected(
                self.reason or "Request rejected", self.retry_after, self.caller
            )


# ─────────────────────────────────────────────────────────────────────────────
# Controller
# ─────────────────────────────────────────────────────────────────────────────


class AdmissionController:
    """
    Per-caller admission state machine.

    Example:
        >>> controller = AdmissionController()
        >>> decision = controller.check(RequestInfo.from_headers(headers, "10.0.0.1"), "RA2311000000001")
        >>> decision.allowed
        True
    """

    def __init__(
        self,
        config: Optional[AdmissionConfig] = None,
        store: Optional[KeyValueStore] = None,
        clock: Clock = time.monotonic,
    ):
        if config is None:
            from seatfinder.shared.config import get_settings

            config = get_settings().admission

        self.config = config
        self.store = store if store is not None else MemoryStore()
        self.clock = clock

        self._blocked_agents = [re.compile(p, re.IGNORECASE) for p in config.blocked_agent_patterns]
        self._allowed_agents = [re.compile(p, re.IGNORECASE) for p in config.allowed_agent_patterns]

    def check(self, request: RequestInfo, identifier: Optional[str] = None) -> AdmissionDecision:
        """
        Run all checks for one request.

        Args:
            request: Caller key and headers
            identifier: Requested register number, if any

        Returns:
            AdmissionDecision (allowed, or the first failing check's reason)
        """
        caller = request.caller
        if not self.config.enabled:
            return AdmissionDecision(allowed=True, caller=caller)

        now = self.clock()
        decision = (
            self._check_rate_window(caller, now)
            or self._check_headers(request)
            or self._check_timing(caller, now)
            or self._check_sequence(caller, identifier, now)
        )

        if decision is not None:
            logger.warning(f"Admission rejected for {caller}: {decision.reason} ({decision.check})")
            return decision
        return AdmissionDecision(allowed=True, caller=caller)

    # ─────────────────────────────────────────────────────────────────────
    # Individual checks (None means passed)
    # ─────────────────────────────────────────────────────────────────────

    def _check_rate_window(self, caller: str, now: float) -> Optional[AdmissionDecision]:
        key = _WINDOW_PREFIX + caller
        state: Optional[AdmissionState] = self.store.get(key)

        if state is not None and state.blocked_until is not None:
            if now < state.blocked_until:
                return AdmissionDecision(
                    allowed=False,
                    caller=caller,
                    reason="IP temporarily blocked due to excessive requests",
                    retry_after=math.ceil(state.blocked_until - now),
                    check="blocked",
                )
            logger.info(f"Block expired for {caller}")
            state = None

        if state is None or now >= state.window_reset_at:
            state = AdmissionState(window_count=0, window_reset_at=now + self.config.window_seconds)

        if state.window_count >= self.config.max_requests:
            self._block(caller, now, state)
            return AdmissionDecision(
                allowed=False,
                caller=caller,
                reason="Rate limit exceeded. Too many requests.",
                retry_after=math.ceil(self.config.block_seconds),
                check="rate_window",
            )

        state.window_count += 1
        self.store.set(key, state)
        return None

    def _check_headers(self, request: RequestInfo) -> Optional[AdmissionDecision]:
        agent = request.user_agent.strip()
        if not agent or any(p.search(agent) for p in self._blocked_agents):
            if not any(p.search(agent) for p in self._allowed_agents):
                return AdmissionDecision(
                    allowed=False,
                    caller=request.caller,
                    reason="Suspicious user agent detected",
                    check="heuristic",
                )

        missing = 0
        if "text/html" not in request.accept and "*/*" not in request.accept:
            missing += 1
        if not request.accept_language.strip():
            missing += 1
        if not request.accept_encoding.strip():
            missing += 1

        if missing >= 2:
            return AdmissionDecision(
                allowed=False,
                caller=request.caller,
                reason="Missing required browser headers",
                check="heuristic",
            )
        return None

    def _check_timing(self, caller: str, now: float) -> Optional[AdmissionDecision]:
        key = _TIMING_PREFIX + caller
        window = self.config.timing_window_seconds
        state: TimingState = self.store.get(key) or TimingState()
        state.accepted_at = [t for t in state.accepted_at if now - t < window]

        if len(state.accepted_at) >= self.config.timing_max_requests:
            self.store.set(key, state)
            return AdmissionDecision(
                allowed=False,
                caller=caller,
                reason="Too many requests in short time period",
                retry_after=max(1, math.ceil(state.accepted_at[0] + window - now)),
                check="timing",
            )

        state.accepted_at.append(now)
        self.store.set(key, state)
        return None

    def _check_sequence(
        self, caller: str, identifier: Optional[str], now: float
    ) -> Optional[AdmissionDecision]:
        if not identifier:
            return None
        tail = identifier_tail(identifier, self.config.sequential_tail_digits)
        if tail is None:
            return None

        key = _SEQUENCE_PREFIX + caller
        state: Optional[SequentialPatternState] = self.store.get(key)

        if state is None or now - state.window_started_at > self.config.sequential_window_seconds:
            state = SequentialPatternState(last_tail=tail, consecutive_count=1, window_started_at=now)
        elif abs(tail - state.last_tail) == 1:
            state.last_tail = tail
            state.consecutive_count += 1
        else:
            state = SequentialPatternState(last_tail=tail, consecutive_count=1, window_started_at=now)

        if state.consecutive_count >= self.config.sequential_run_length:
            self.store.delete(key)
            self._block(caller, now)
            return AdmissionDecision(
                allowed=False,
                caller=caller,
                reason="Sequential register numbers detected",
                retry_after=math.ceil(self.config.block_seconds),
                check="sequential",
            )

        self.store.set(key, state)
        return None

    def _block(self, caller: str, now: float, state: Optional[AdmissionState] = None) -> None:
        key = _WINDOW_PREFIX + caller
        state = state or self.store.get(key) or AdmissionState(
            window_count=0, window_reset_at=now + self.config.window_seconds
        )
        state.blocked_until = now + self.config.block_seconds
        self.store.set(key, state)

    # ─────────────────────────────────────────────────────────────────────
    # Maintenance
    # ─────────────────────────────────────────────────────────────────────

    def sweep(self) -> int:
        """
        Purge expired window, block, timing and sequence entries.

        Returns:
            Number of entries removed
        """
        now = self.clock()
        expired = []

        for key, value in list(self.store.items()):
            if key.startswith(_WINDOW_PREFIX):
                if value.blocked_until is not None:
                    if now >= value.blocked_until:
                        expired.append(key)
                elif now >= value.window_reset_at:
                    expired.append(key)
            elif key.startswith(_TIMING_PREFIX):
                if all(now - t >= self.config.timing_window_seconds for t in value.accepted_at):
                    expired.append(key)
            elif key.startswith(_SEQUENCE_PREFIX):
                if now - value.window_started_at > self.config.sequential_window_seconds:
                    expired.append(key)

        for key in expired:
            self.store.delete(key)

        if expired:
            logger.debug(f"Admission sweep removed {len(expired)} entries")
        return len(expired)

    def status(self) -> dict[str, Any]:
        now = self.clock()
        callers = 0
        blocked = 0
        for key, value in self.store.items():
            if key.startswith(_WINDOW_PREFIX):
                callers += 1
                if value.blocked_until is not None and now < value.blocked_until:
                    blocked += 1
        return {
            "enabled": self.config.enabled,
            "trackedCallers": callers,
            "blockedCallers": blocked,
            "entries": len(self.store),
        }
