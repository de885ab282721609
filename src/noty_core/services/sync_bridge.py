"""Primary side of replica sync: throttled full-snapshot pushes and pulls."""

import datetime
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

from noty_core.config import config
from noty_core.models.schema import utc_now
from noty_core.observability import timed_operation
from noty_core.services.note_store import NoteStore
from noty_core.storage.codec import build_payload
from noty_core.sync.channel import Message, SyncChannel, is_sync_request

logger = logging.getLogger(__name__)


class PushThrottle:
    """Leaky-bucket throttle around a push action.

    A signal arriving more than ``min_interval`` seconds after the last
    push fires at once. Anything sooner replaces the pending timer with
    one that fires ``margin`` seconds after the interval has elapsed.

    The last push time starts at construction, so the first push after
    startup waits up to ``min_interval``, and a burst in that window
    collapses into one trailing push. A burst that starts after an idle
    period gives two pushes: one immediately for the first signal and one
    trailing push for the rest.
    """

    def __init__(
        self,
        action: Callable[[], Any],
        min_interval: Optional[float] = None,
        margin: Optional[float] = None,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._action = action
        self.min_interval = (
            min_interval if min_interval is not None else config.sync_min_interval
        )
        self.margin = margin if margin is not None else config.sync_margin
        self._monotonic = monotonic
        self._lock = threading.Lock()
        self._pending: Optional[threading.Timer] = None
        # Bumped whenever the pending timer is replaced; a timer that
        # already started firing checks it before pushing.
        self._generation = 0
        self._last_push = monotonic()
        self._closed = False

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def signal(self) -> None:
        """Note that the store changed."""
        with self._lock:
            if self._closed:
                return
            now = self._monotonic()
            elapsed = now - self._last_push
            self._cancel_locked()
            if elapsed > self.min_interval:
                self._last_push = now
                push_now = True
            else:
                delay = (self.min_interval - elapsed) + self.margin
                self._pending = threading.Timer(
                    delay, self._fire, args=(self._generation,)
                )
                self._pending.daemon = True
                self._pending.start()
                push_now = False
        if push_now:
            self._run()

    def flush(self) -> None:
        """Cancel the pending push and push immediately."""
        with self._lock:
            self._cancel_locked()
            self._last_push = self._monotonic()
        self._run()

    def shutdown(self, flush: bool = False) -> None:
        """Stop accepting signals. With ``flush``, push what is pending."""
        with self._lock:
            had_pending = self._pending is not None
            self._cancel_locked()
            self._closed = True
        if flush and had_pending:
            logger.info("Flushing pending push on shutdown")
            self._run()

    def _cancel_locked(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._generation += 1

    def _fire(self, generation: int) -> None:
        """Called by timer. Performs the trailing push."""
        with self._lock:
            if generation != self._generation or self._closed:
                return
            self._pending = None
            self._last_push = self._monotonic()
        self._run()

    def _run(self) -> None:
        try:
            self._action()
        except Exception as e:
            logger.error("Push action failed: %s", e)


class SyncBridge:
    """Keeps a replica's cache in step with the store.

    Each persisted mutation signals the throttle; each push sends the
    store's state at fire time. Pull requests from the replica are
    answered with the same full payload. Delivery is best effort: an
    unreachable channel or a failed send drops the push, and the next
    mutation tries again with fresher state.
    """

    def __init__(
        self,
        store: NoteStore,
        channel: SyncChannel,
        min_interval: Optional[float] = None,
        margin: Optional[float] = None,
        monotonic: Callable[[], float] = time.monotonic,
        revision_seed: Optional[int] = None,
    ):
        self._store = store
        self._channel = channel
        self._state_lock = threading.Lock()
        # Seeded from the wall clock so revisions keep growing across restarts
        self._revision = (
            revision_seed if revision_seed is not None else int(time.time() * 1000)
        )
        self.pushes = 0
        self.dropped = 0
        self.last_push_time: Optional[datetime.datetime] = None

        self.throttle = PushThrottle(
            self.push_now, min_interval=min_interval, margin=margin, monotonic=monotonic
        )
        store.on_persist = self.throttle.signal
        channel.on_receive(self._handle_message)

    @property
    def revision(self) -> int:
        with self._state_lock:
            return self._revision

    def build_payload(self) -> Message:
        """Snapshot the store and stamp it with the next revision."""
        with self._state_lock:
            self._revision += 1
            snapshot = self._store.snapshot()
            revision = self._revision
        return build_payload(snapshot.folders, snapshot.notes, revision)

    def push_now(self) -> bool:
        """Send the current state. Returns False if the push was dropped."""
        with timed_operation("sync_push") as op:
            if not self._channel.is_reachable:
                self._record_drop()
                op["sent"] = False
                logger.debug("Replica unreachable, push dropped")
                return False
            payload = self.build_payload()
            try:
                self._channel.send(payload)
            except Exception as e:
                self._record_drop()
                op["sent"] = False
                logger.warning("Push to replica failed, dropped: %s", e)
                return False
            with self._state_lock:
                self.pushes += 1
                self.last_push_time = utc_now()
            op["sent"] = True
            op["revision"] = payload.get("revision")
        logger.debug("Pushed revision %s to replica", payload.get("revision"))
        return True

    def _record_drop(self) -> None:
        with self._state_lock:
            self.dropped += 1

    def _handle_message(self, message: Message) -> Optional[Message]:
        if is_sync_request(message):
            logger.debug("Answering replica sync request")
            return self.build_payload()
        logger.debug("Ignoring unexpected message with keys %s", sorted(message))
        return None

    def status(self) -> Dict[str, Any]:
        with self._state_lock:
            return {
                "last_push_time": (
                    self.last_push_time.isoformat() if self.last_push_time else None
                ),
                "pushes": self.pushes,
                "dropped": self.dropped,
                "pending": self.throttle.pending,
                "revision": self._revision,
            }

    def shutdown(self, flush: bool = True) -> None:
        """Detach from the store and stop the throttle."""
        if self._store.on_persist == self.throttle.signal:
            self._store.on_persist = None
        self.throttle.shutdown(flush=flush)
        logger.info("SyncBridge shut down")
