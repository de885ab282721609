"""Time-based expiry of soft-deleted notes."""

import datetime
import logging
import threading
import uuid
from typing import Callable, List, Optional

from noty_core.config import config
from noty_core.models.schema import utc_now
from noty_core.observability import timed_operation
from noty_core.services.note_store import NoteStore

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Purges trashed notes once they have outlived the retention window.

    A note is purged when ``now - deleted_date`` is strictly greater than
    the window. Purging goes through ``NoteStore.purge_expired`` so image
    blobs are removed too and the store persists once per sweep.
    """

    def __init__(
        self,
        store: NoteStore,
        window: Optional[datetime.timedelta] = None,
        clock: Callable[[], datetime.datetime] = utc_now,
    ):
        self._store = store
        self.window = (
            window
            if window is not None
            else datetime.timedelta(days=config.retention_days)
        )
        self._clock = clock
        self._timer: Optional[threading.Timer] = None
        self._timer_lock = threading.Lock()
        self._interval: Optional[float] = None

    def expired(self, now: Optional[datetime.datetime] = None) -> List[uuid.UUID]:
        """Ids of trashed notes past the window, without purging them."""
        now = now or self._clock()
        return [
            note.id
            for note in self._store.notes
            if note.is_deleted
            and note.deleted_date is not None
            and now - note.deleted_date > self.window
        ]

    def sweep(self, now: Optional[datetime.datetime] = None) -> List[uuid.UUID]:
        """Purge every expired note and return the purged ids.

        Running it again with the same ``now`` purges nothing.
        """
        now = now or self._clock()
        with timed_operation("retention_sweep") as op:
            doomed = self._store.purge_expired(now, self.window)
            if doomed:
                logger.info("Retention sweep purged %d notes", len(doomed))
            op["purged"] = len(doomed)
        return doomed

    # =========================================================================
    # Periodic sweeping
    # =========================================================================

    def start(self, interval: float) -> None:
        """Sweep every ``interval`` seconds on a daemon timer."""
        if interval <= 0:
            raise ValueError("interval must be > 0")
        with self._timer_lock:
            self._interval = interval
            self._schedule_locked()
        logger.info("Retention sweeper running every %.0fs", interval)

    def stop(self) -> None:
        with self._timer_lock:
            self._interval = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def running(self) -> bool:
        with self._timer_lock:
            return self._timer is not None

    def _schedule_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = threading.Timer(self._interval, self._tick)
        self._timer.daemon = True
        self._timer.start()

    def _tick(self) -> None:
        try:
            self.sweep()
        except Exception as e:
            logger.error("Retention sweep failed: %s", e)
        with self._timer_lock:
            if self._interval is not None:
                self._schedule_locked()
