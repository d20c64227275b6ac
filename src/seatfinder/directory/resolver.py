"""
Resolver Module - Identifier to display-name resolution.
========================================================

Walks the loader chain until a tier yields a non-empty mapping and keeps the
result in-process with no expiry. ``clear()`` drops it; a mapping observed
empty at read time is reloaded.

On a lookup miss the chain is reloaded (a few attempts, short delay) only
when a tier explicitly reported it was not yet warmed. The last resort is a
single-row query against the primary store. Every failure degrades to
``None``; nothing here fails a seating request.
"""

import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_fixed

from seatfinder.directory.loaders import DirectoryLoader, DirectorySnapshot, build_loaders
from seatfinder.shared.errors import DirectoryUnavailable
from seatfinder.shared.logging import get_logger
from seatfinder.shared.utils import normalize_identifier

logger = get_logger(__name__)


class DirectoryResolver:
    """
    Resolves display names through a chain of directory tiers.

    Example:
        >>> resolver = DirectoryResolver()
        >>> resolver.resolve("RA2311000000025")
        'ASHA R'
    """

    def __init__(
        self,
        loaders: Optional[list[DirectoryLoader]] = None,
        retry_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the resolver.

        Args:
            loaders: Tier chain in fallback order (built from settings if None)
            retry_attempts: Reloads attempted on a miss while a tier is warming
            retry_delay: Seconds between those reloads
            sleep: Blocking sleep used between reloads (tests)
        """
        if loaders is None or retry_attempts is None or retry_delay is None:
            from seatfinder.shared.config import get_settings

            config = get_settings().directory
            retry_attempts = retry_attempts if retry_attempts is not None else config.retry_attempts
            retry_delay = retry_delay if retry_delay is not None else config.retry_delay

        self.loaders = loaders if loaders is not None else build_loaders()
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep

        self._snapshot: Optional[DirectorySnapshot] = None
        self._loaded_at: Optional[datetime] = None
        self._last_error: Optional[str] = None

    # ─────────────────────────────────────────────────────────────────────
    # Loading
    # ─────────────────────────────────────────────────────────────────────

    def load(self) -> DirectorySnapshot:
        """
        Run the tier chain once and cache the first non-empty mapping.

        Raises:
            DirectoryUnavailable: If no tier produced a non-empty mapping
        """
        warming = False
        errors = []

        for loader in self.loaders:
            try:
                snapshot = loader.load()
            except DirectoryUnavailable as e:
                logger.debug(f"Directory tier '{loader.name}' unavailable: {e}")
                errors.append(str(e))
                continue

            warming = warming or not snapshot.warmed
            if snapshot.mapping:
                snapshot.warmed = not warming
                self._snapshot = snapshot
                self._loaded_at = datetime.now(timezone.utc)
                self._last_error = None
                logger.info(
                    f"Directory loaded from '{snapshot.source}' ({len(snapshot)} entries)"
                )
                return snapshot

        self._last_error = "; ".join(errors) or "every tier returned an empty mapping"
        if warming:
            # Nothing usable yet, but a tier promised data once warm
            return DirectorySnapshot(mapping={}, source="", warmed=False)
        raise DirectoryUnavailable(self._last_error)

    def mapping(self) -> dict[str, str]:
        """Cached mapping, loading it when absent or observed empty."""
        if self._snapshot is None or not self._snapshot.mapping:
            return self.load().mapping
        return self._snapshot.mapping

    def clear(self) -> None:
        """Invalidate the cached mapping."""
        self._snapshot = None
        self._loaded_at = None

    def _reload_while_warming(self, identifier: str) -> DirectorySnapshot:
        retryer = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_fixed(self.retry_delay),
            retry=retry_if_result(
                lambda snapshot: not snapshot.warmed and identifier not in snapshot.mapping
            ),
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
            sleep=self._sleep,
        )
        return retryer(self.load)

    # ─────────────────────────────────────────────────────────────────────
    # Lookup
    # ─────────────────────────────────────────────────────────────────────

    def resolve(self, identifier: str) -> Optional[str]:
        """
        Resolve a display name for an identifier.

        Returns:
            The name, or None when it cannot be found or every tier failed
        """
        identifier = normalize_identifier(identifier)
        if not identifier:
            return None

        try:
            name = self.mapping().get(identifier)
            if name is not None:
                return name

            if self._snapshot is None or not self._snapshot.warmed:
                logger.debug(f"Directory not warmed; reloading for {identifier}")
                name = self._reload_while_warming(identifier).mapping.get(identifier)
                if name is not None:
                    return name
        except DirectoryUnavailable as e:
            logger.warning(f"Directory unavailable: {e}")

        for loader in self.loaders:
            name = loader.find(identifier)
            if name is not None:
                return name

        return None

    def status(self) -> dict[str, Any]:
        """Describe the cached mapping for diagnostics."""
        snapshot = self._snapshot
        return {
            "loaded": snapshot is not None,
            "source": snapshot.source if snapshot else None,
            "entries": len(snapshot) if snapshot else 0,
            "warmed": snapshot.warmed if snapshot else None,
            "loadedAt": self._loaded_at.isoformat() if self._loaded_at else None,
            "lastError": self._last_error,
        }
