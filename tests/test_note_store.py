"""Tests for the authoritative NoteStore."""
import datetime
import threading
import uuid

from noty_core.models.schema import Folder, Note
from noty_core.services.note_store import NoteStore, StoreSnapshot
from tests.fakes import FailingBlobStore, FailingKeyValueStore, MemoryBlobStore


class TestNoteLifecycle:
    """Create, edit, trash, restore and purge notes."""

    def test_add_note_inserts_at_front(self, store, clock):
        first = store.add_note()
        second = store.add_note()
        assert [n.id for n in store.notes] == [second.id, first.id]
        assert first.last_edited == clock.now

    def test_add_note_in_folder(self, store):
        folder = store.add_folder("Work")
        note = store.add_note(folder_id=folder.id)
        assert store.get_note(note.id).folder_id == folder.id

    def test_update_note_replaces_by_id(self, store):
        note = store.add_note()
        assert store.update_note(note.with_changes(title="Groceries"))
        assert store.get_note(note.id).title == "Groceries"

    def test_update_missing_note_is_silent_noop(self, store, persist_calls):
        persist_calls.clear()
        assert store.update_note(Note(title="Ghost")) is False
        assert store.notes == ()
        assert persist_calls == []

    def test_soft_delete_and_restore(self, store, clock):
        note = store.add_note()
        clock.advance(hours=1)
        assert store.delete_note(note)
        trashed = store.get_note(note.id)
        assert trashed.is_deleted
        assert trashed.deleted_date == clock.now

        assert store.restore_note(note.id)
        restored = store.get_note(note.id)
        assert not restored.is_deleted
        assert restored.deleted_date is None

    def test_permanently_delete_purges_blobs_first(self, store, blob_store):
        note = store.add_note()
        store.save_image(b"jpeg", note)
        assert store.permanently_delete_note(note)
        assert store.get_note(note.id) is None
        assert blob_store.deleted_scopes == [str(note.id)]
        assert blob_store.keys_for(str(note.id)) == []

    def test_permanently_delete_missing_note(self, store):
        assert store.permanently_delete_note(uuid.uuid4()) is False

    def test_blob_purge_failure_still_removes_note(self, kv_store, clock):
        store = NoteStore(kv_store, FailingBlobStore(fail_put=False, fail_delete=True), clock=clock)
        note = store.add_note()
        assert store.permanently_delete_note(note)
        assert store.get_note(note.id) is None

    def test_field_mutations(self, store, clock):
        folder = store.add_folder("Ideas")
        note = store.add_note()
        assert store.move_note(note, folder.id)
        assert store.toggle_pin(note)
        assert store.lock_note(note)
        assert store.archive_note(note)
        stored = store.get_note(note.id)
        assert stored.folder_id == folder.id
        assert stored.is_pinned and stored.is_locked
        assert stored.is_archived and stored.archived_date == clock.now

        assert store.toggle_pin(note)
        assert store.unlock_note(note)
        assert store.unarchive_note(note)
        assert store.move_note(note, None)
        stored = store.get_note(note.id)
        assert not stored.is_pinned and not stored.is_locked
        assert not stored.is_archived and stored.archived_date is None
        assert stored.folder_id is None

    def test_mutations_on_missing_ids_return_false(self, store):
        ghost = uuid.uuid4()
        assert not store.delete_note(ghost)
        assert not store.restore_note(ghost)
        assert not store.toggle_pin(ghost)
        assert not store.archive_note(ghost)
        assert not store.lock_folder(ghost)
        assert not store.update_folder(Folder(name="Ghost"))


class TestBulkTrash:
    def test_restore_notes(self, store, persist_calls):
        a, b, c = store.add_note(), store.add_note(), store.add_note()
        store.delete_note(a)
        store.delete_note(b)
        persist_calls.clear()
        assert store.restore_notes([a, b, c]) == 2
        assert not any(n.is_deleted for n in store.notes)
        assert len(persist_calls) == 1

    def test_restore_nothing_does_not_persist(self, store, persist_calls):
        store.add_note()
        persist_calls.clear()
        assert store.restore_notes([]) == 0
        assert persist_calls == []

    def test_empty_trash(self, store, blob_store, persist_calls):
        keep = store.add_note()
        gone = [store.add_note() for _ in range(3)]
        for note in gone:
            store.delete_note(note)
        persist_calls.clear()
        assert store.empty_trash() == 3
        assert [n.id for n in store.notes] == [keep.id]
        assert sorted(blob_store.deleted_scopes) == sorted(str(n.id) for n in gone)
        assert len(persist_calls) == 1

    def test_blob_purge_runs_outside_store_lock(self, kv_store, clock):
        store = None
        lock_free = []

        class LockCheckingBlobStore(MemoryBlobStore):
            def delete_scope(self, scope_id):
                result = []

                def try_lock():
                    acquired = store._lock.acquire(blocking=False)
                    if acquired:
                        store._lock.release()
                    result.append(acquired)

                t = threading.Thread(target=try_lock)
                t.start()
                t.join()
                lock_free.extend(result)
                super().delete_scope(scope_id)

        store = NoteStore(kv_store, LockCheckingBlobStore(), clock=clock)
        for _ in range(3):
            store.delete_note(store.add_note())
        assert store.empty_trash() == 3
        assert lock_free == [True, True, True]

    def test_purge_expired_checks_state_under_lock(self, store, clock):
        old = store.add_note()
        clock.advance(days=-40)
        store.delete_note(old)
        clock.advance(days=40)
        recent = store.add_note()
        store.delete_note(recent)

        window = datetime.timedelta(days=30)
        assert store.purge_expired(clock.now, window) == [old.id]
        assert store.get_note(recent.id) is not None
        assert store.purge_expired(clock.now, window) == []


class TestFolders:
    def test_add_folder_appends(self, store, clock):
        a = store.add_folder("A")
        b = store.add_folder("B")
        assert [f.id for f in store.folders] == [a.id, b.id]
        assert a.created_date == clock.now

    def test_update_folder_keeps_created_date(self, store, clock):
        folder = store.add_folder("Old")
        clock.advance(days=2)
        renamed = Folder(id=folder.id, name="New", created_date=clock.now)
        assert store.update_folder(renamed)
        stored = store.get_folder(folder.id)
        assert stored.name == "New"
        assert stored.created_date == folder.created_date

    def test_delete_folder_unfiles_members(self, store):
        folder = store.add_folder("Work")
        other = store.add_folder("Home")
        members = [store.add_note(folder_id=folder.id) for _ in range(3)]
        outsider = store.add_note(folder_id=other.id)
        store.delete_note(members[0])

        assert store.delete_folder(folder)

        assert store.get_folder(folder.id) is None
        assert len(store.notes) == 4
        for note in members:
            assert store.get_note(note.id).folder_id is None
        assert store.get_note(members[0].id).is_deleted
        assert store.get_note(outsider.id).folder_id == other.id

    def test_delete_missing_folder(self, store):
        assert store.delete_folder(uuid.uuid4()) is False

    def test_lock_and_unlock_folder(self, store):
        folder = store.add_folder("Vault")
        assert store.lock_folder(folder)
        assert store.get_folder(folder.id).is_locked
        assert store.unlock_folder(folder.id)
        assert not store.get_folder(folder.id).is_locked

    def test_get_folder_name(self, store):
        folder = store.add_folder("Work")
        assert store.get_folder_name(folder.id) == "Work"
        assert store.get_folder_name(None) == ""
        assert store.get_folder_name(uuid.uuid4()) == ""


class TestImages:
    def test_save_and_load_image(self, store, blob_store):
        note = store.add_note()
        image = store.save_image(b"\xff\xd8jpeg", note, description="Receipt")
        assert image is not None
        assert image.filename.endswith(".jpg")
        assert store.get_note(note.id).images == [image]
        assert store.load_image(note, image) == b"\xff\xd8jpeg"
        assert blob_store.keys_for(str(note.id)) == [image.filename]

    def test_save_image_for_missing_note(self, store, blob_store):
        assert store.save_image(b"x", uuid.uuid4()) is None
        assert blob_store.blobs == {}

    def test_save_image_blob_failure(self, kv_store, clock):
        store = NoteStore(kv_store, FailingBlobStore(), clock=clock)
        note = store.add_note()
        assert store.save_image(b"x", note) is None
        assert store.get_note(note.id).images == []

    def test_delete_image(self, store, blob_store):
        note = store.add_note()
        keep = store.save_image(b"1", note)
        drop = store.save_image(b"2", note)
        assert store.delete_image(drop, note)
        assert store.get_note(note.id).images == [keep]
        assert blob_store.keys_for(str(note.id)) == [keep.filename]
        assert store.delete_image(drop, note) is False

    def test_update_image_description(self, store):
        note = store.add_note()
        image = store.save_image(b"1", note)
        assert store.update_image_description(image, note, "Sunset")
        assert store.get_note(note.id).images[0].description == "Sunset"
        assert store.get_note(note.id).images[0].id == image.id

    def test_load_image_never_mutates(self, store, persist_calls):
        note = store.add_note()
        image = store.save_image(b"1", note)
        persist_calls.clear()
        store.load_image(note, image)
        assert persist_calls == []


class TestPersistence:
    def test_every_mutation_persists_and_notifies(self, store, persist_calls):
        note = store.add_note()
        store.toggle_pin(note)
        store.delete_note(note)
        assert len(persist_calls) == 3

    def test_state_survives_reload(self, kv_store, blob_store, clock):
        store = NoteStore(kv_store, blob_store, clock=clock)
        folder = store.add_folder("Work")
        note = store.add_note(folder_id=folder.id)
        store.update_note(note.with_changes(title="Plan", content=b"step 1"))

        reopened = NoteStore(kv_store, blob_store, clock=clock)
        assert reopened.get_note(note.id).title == "Plan"
        assert reopened.get_note(note.id).content == b"step 1"
        assert reopened.folders == store.folders

    def test_undecodable_data_loads_empty(self, kv_store, blob_store):
        kv_store.save("noty_notes", b"{corrupt")
        kv_store.save("noty_folders", b"[]")
        store = NoteStore(kv_store, blob_store)
        assert store.notes == ()

    def test_custom_keys(self, kv_store, blob_store):
        store = NoteStore(kv_store, blob_store, notes_key="n2", folders_key="f2")
        store.add_note()
        assert kv_store.load("n2") is not None
        assert kv_store.load("noty_notes") is None

    def test_write_failure_keeps_change_but_skips_push(self):
        calls = []
        failing = FailingKeyValueStore()
        store = NoteStore(failing, MemoryBlobStore(), on_persist=lambda: calls.append(1))
        note = store.add_note()
        assert store.get_note(note.id) is not None
        assert failing.save_attempts == 1
        assert calls == []

    def test_failing_listener_does_not_break_mutation(self, kv_store, blob_store):
        def boom():
            raise RuntimeError("listener exploded")

        store = NoteStore(kv_store, blob_store, on_persist=boom)
        note = store.add_note()
        assert store.toggle_pin(note)


class TestSnapshot:
    def test_snapshot_is_immutable_view(self, store):
        note = store.add_note()
        snapshot = store.snapshot()
        store.delete_note(note)
        assert isinstance(snapshot, StoreSnapshot)
        assert not snapshot.get_note(note.id).is_deleted
        assert store.snapshot().get_note(note.id).is_deleted

    def test_snapshot_lookup_helpers(self, store):
        folder = store.add_folder("A")
        snapshot = store.snapshot()
        assert snapshot.get_folder(folder.id) == folder
        assert snapshot.get_folder(None) is None
        assert snapshot.get_note(uuid.uuid4()) is None
