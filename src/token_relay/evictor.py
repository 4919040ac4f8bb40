"""Age-based eviction of token records.

Runs one delayed pass after startup, then a pass every interval, on a
daemon thread. Each pass deletes records whose ``last_used_at`` is strictly
older than ``now - retention``. A failure on one record is logged and
counted; it never aborts the pass and is not retried until the next one.

Eviction is not transactional: a delivery may resolve a record just before
the pass deletes it.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from token_relay.schemas.token_record import short_id, utcnow
from token_relay.storage.interfaces import DurableStore, StorageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvictionResult:
    """Counts for one eviction pass."""

    scanned: int
    deleted: int
    failed: int


class Evictor:
    """Periodically removes records unused beyond the retention window.

    Example:
        >>> evictor = Evictor(store, retention=timedelta(days=30))
        >>> evictor.run_once()
        EvictionResult(scanned=10, deleted=2, failed=0)
        >>> evictor.start()
    """

    def __init__(
        self,
        store: DurableStore,
        retention: timedelta = timedelta(days=30),
        interval: timedelta = timedelta(hours=24),
        initial_delay: timedelta = timedelta(seconds=60),
        clock: Callable[[], datetime] = utcnow,
    ):
        if retention <= timedelta(0):
            raise ValueError("retention must be positive")
        if interval <= timedelta(0):
            raise ValueError("interval must be positive")
        self._store = store
        self._retention = retention
        self._interval = interval
        self._initial_delay = initial_delay
        self._clock = clock
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def retention(self) -> timedelta:
        return self._retention

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self, now: Optional[datetime] = None) -> EvictionResult:
        """Run a single eviction pass.

        Args:
            now: Reference time (defaults to the clock).

        Returns:
            EvictionResult with scanned, deleted and failed counts.
        """
        cutoff = (now or self._clock()) - self._retention
        scanned = deleted = failed = 0

        def fetch_failed(opaque_id: str, error: StorageError) -> None:
            nonlocal scanned, failed
            scanned += 1
            failed += 1
            logger.warning(f"Failed to read {short_id(opaque_id)} for eviction: {error}")

        try:
            for record in self._store.list_all(on_error=fetch_failed):
                scanned += 1
                if record.last_used_at >= cutoff:
                    continue
                try:
                    if self._store.delete(record.opaque_id):
                        deleted += 1
                        logger.debug(
                            f"Evicted {short_id(record.opaque_id)} "
                            f"(last used {record.last_used_at.isoformat()})"
                        )
                except StorageError as e:
                    failed += 1
                    logger.warning(f"Failed to evict {short_id(record.opaque_id)}: {e}")
        except StorageError as e:
            # Listing itself failed; nothing more can be done this pass
            logger.error(f"Eviction pass aborted while listing records: {e}")

        logger.info(
            f"Eviction pass complete: scanned={scanned}, deleted={deleted}, failed={failed}"
        )
        return EvictionResult(scanned=scanned, deleted=deleted, failed=failed)

    def start(self) -> None:
        """Start the background eviction thread (no-op if already running)."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._worker,
            name="token-evictor",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            f"Evictor started (retention: {self._retention}, interval: {self._interval}, "
            f"initial delay: {self._initial_delay})"
        )

    def _worker(self) -> None:
        delay = self._initial_delay.total_seconds()
        while not self._stop_event.wait(timeout=delay):
            try:
                self.run_once()
            except Exception:
                logger.exception("Unexpected error during eviction pass")
            delay = self._interval.total_seconds()
        logger.info("Evictor stopped")

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the thread to stop and wait for it."""
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("Evictor thread did not stop within timeout")
        self._thread = None
