"""Tests for the retention sweeper."""
import datetime
import threading
import time

import pytest

from noty_core.observability import metrics
from noty_core.services.retention import RetentionSweeper


def _trash(store, clock, days_ago):
    """Create a note deleted ``days_ago`` days before the clock's time."""
    note = store.add_note()
    original = clock.now
    clock.now = original - datetime.timedelta(days=days_ago)
    store.delete_note(note)
    clock.now = original
    return note


class TestSweep:
    def test_purges_past_window_and_keeps_recent(self, store, clock):
        old = _trash(store, clock, 31)
        recent = _trash(store, clock, 29)
        live = store.add_note()

        purged = RetentionSweeper(store, clock=clock).sweep()

        assert purged == [old.id]
        remaining = {n.id for n in store.notes}
        assert remaining == {recent.id, live.id}

    def test_exactly_at_window_is_kept(self, store, clock):
        note = _trash(store, clock, 30)
        assert RetentionSweeper(store, clock=clock).sweep() == []
        assert store.get_note(note.id) is not None

    def test_sweep_is_idempotent(self, store, clock):
        _trash(store, clock, 40)
        _trash(store, clock, 5)
        sweeper = RetentionSweeper(store, clock=clock)
        sweeper.sweep()
        after_first = store.notes
        assert sweeper.sweep() == []
        assert store.notes == after_first

    def test_sweep_purges_blobs(self, store, clock, blob_store):
        note = store.add_note()
        store.save_image(b"img", note)
        clock.advance(days=-60)
        store.delete_note(note)
        clock.advance(days=60)

        RetentionSweeper(store, clock=clock).sweep()

        assert blob_store.keys_for(str(note.id)) == []
        assert str(note.id) in blob_store.deleted_scopes

    def test_empty_sweep_does_not_persist(self, store, clock, persist_calls):
        _trash(store, clock, 1)
        persist_calls.clear()
        RetentionSweeper(store, clock=clock).sweep()
        assert persist_calls == []

    def test_sweep_persists_once(self, store, clock, persist_calls):
        for _ in range(3):
            _trash(store, clock, 45)
        persist_calls.clear()
        assert len(RetentionSweeper(store, clock=clock).sweep()) == 3
        assert len(persist_calls) == 1

    def test_explicit_now_and_window(self, store, clock):
        note = _trash(store, clock, 3)
        sweeper = RetentionSweeper(store, window=datetime.timedelta(days=2), clock=clock)
        assert sweeper.expired() == [note.id]
        assert sweeper.sweep(now=clock.now - datetime.timedelta(days=2)) == []
        assert sweeper.sweep() == [note.id]

    def test_note_restored_after_preview_is_not_purged(self, store, clock, blob_store):
        note = _trash(store, clock, 40)
        store.save_image(b"img", note)
        sweeper = RetentionSweeper(store, clock=clock)
        assert sweeper.expired() == [note.id]

        store.restore_note(note)

        assert sweeper.sweep() == []
        assert store.get_note(note.id) is not None
        assert blob_store.keys_for(str(note.id)) != []

    def test_restore_racing_the_periodic_sweep(self, store, clock):
        notes = [_trash(store, clock, 40) for _ in range(20)]
        sweeper = RetentionSweeper(store, clock=clock)
        restorer = threading.Thread(
            target=lambda: [store.restore_note(n) for n in notes]
        )
        restorer.start()
        purged = sweeper.sweep()
        restorer.join()

        for note in notes:
            kept = store.get_note(note.id)
            if note.id in purged:
                assert kept is None
            else:
                assert kept is not None and not kept.is_deleted

    def test_window_defaults_to_config(self, store, test_config, monkeypatch):
        monkeypatch.setattr(test_config, "retention_days", 7)
        assert RetentionSweeper(store).window == datetime.timedelta(days=7)

    def test_sweep_records_metrics(self, store, clock):
        RetentionSweeper(store, clock=clock).sweep()
        assert metrics.get_metrics()["retention_sweep"]["count"] == 1


class TestPeriodicSweep:
    def test_start_and_stop(self, store, clock):
        _trash(store, clock, 90)
        sweeper = RetentionSweeper(store, clock=clock)
        sweeper.start(0.05)
        try:
            assert sweeper.running
            deadline = time.monotonic() + 2.0
            while store.notes and time.monotonic() < deadline:
                time.sleep(0.02)
            assert store.notes == ()
        finally:
            sweeper.stop()
        assert not sweeper.running

    def test_start_rejects_non_positive_interval(self, store):
        with pytest.raises(ValueError):
            RetentionSweeper(store).start(0)
