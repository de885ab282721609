"""Tests for concurrent access to the store.

These tests run mutations from several threads to verify:
1. No mutation is lost when writers race
2. Snapshots taken during writes always satisfy the note invariants
3. A throttled push running alongside writers sends consistent state
"""

import threading
from typing import List

from noty_core.services.sync_bridge import SyncBridge
from noty_core.storage.codec import decode_payload
from tests.fakes import RecordingChannel


class TestConcurrentAccess:
    """Tests for concurrent access patterns."""

    def test_concurrent_adds_are_all_kept(self, store):
        errors: List[Exception] = []
        lock = threading.Lock()

        def add_many():
            try:
                for _ in range(20):
                    store.add_note()
            except Exception as e:
                with lock:
                    errors.append(e)

        threads = [threading.Thread(target=add_many) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(store.notes) == 100
        assert len({n.id for n in store.notes}) == 100

    def test_snapshots_stay_consistent_during_writes(self, store):
        notes = [store.add_note() for _ in range(10)]
        stop = threading.Event()
        bad: List[str] = []

        def toggle():
            while not stop.is_set():
                for note in notes:
                    store.delete_note(note)
                    store.restore_note(note)

        writer = threading.Thread(target=toggle)
        writer.start()
        try:
            for _ in range(200):
                for note in store.snapshot().notes:
                    if note.is_deleted != (note.deleted_date is not None):
                        bad.append(str(note.id))
        finally:
            stop.set()
            writer.join()

        assert bad == []
        assert len(store.notes) == 10

    def test_push_during_writes_sends_whole_collections(self, store):
        channel = RecordingChannel()
        bridge = SyncBridge(store, channel, min_interval=5.0, revision_seed=0)
        try:
            writer = threading.Thread(
                target=lambda: [store.add_note() for _ in range(50)]
            )
            writer.start()
            for _ in range(10):
                bridge.push_now()
            writer.join()
            bridge.push_now()
        finally:
            bridge.shutdown(flush=False)

        counts = [len(decode_payload(m)[1]) for m in channel.sent]
        assert counts == sorted(counts)
        assert counts[-1] == 50
