"""
Background removal of expired cache entries.

Expiry is already enforced on read, so the sweeper only bounds memory. It
runs as a single daemon thread on a fixed period and must be stopped on
shutdown.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .slot_cache import SlotCache

logger = logging.getLogger(__name__)


class CacheSweeper:
    """Periodically calls ``SlotCache.purge_expired`` on its own thread."""

    def __init__(self, cache: "SlotCache", interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._cache = cache
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="slotguard-cache-sweeper",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Cache sweeper started (every %ss)", self.interval_seconds)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.debug("Cache sweeper stopped after %d runs", self.runs)

    def sweep_once(self) -> int:
        removed = self._cache.purge_expired()
        self.runs += 1
        if removed:
            logger.debug("Cache sweep removed %d expired entries", removed)
        return removed

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.sweep_once()
            except Exception:
                logger.exception("Cache sweep failed; will retry next period")

    def __enter__(self) -> "CacheSweeper":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
