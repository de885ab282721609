"""The authoritative note and folder store."""

import datetime
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple, Union

from noty_core.config import config
from noty_core.exceptions import BlobStoreError, CodecError, StorageError, ValidationError
from noty_core.models.schema import Folder, Note, NoteImage, utc_now
from noty_core.storage.blob_store import BlobStore
from noty_core.storage.codec import (
    decode_folders,
    decode_notes,
    encode_folders,
    encode_notes,
)
from noty_core.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

NoteRef = Union[Note, uuid.UUID]
FolderRef = Union[Folder, uuid.UUID]


def _ref_id(ref: Union[Note, Folder, NoteImage, uuid.UUID]) -> uuid.UUID:
    return ref if isinstance(ref, uuid.UUID) else ref.id


@dataclass(frozen=True)
class StoreSnapshot:
    """An immutable view of both collections between two mutations."""

    folders: Tuple[Folder, ...] = ()
    notes: Tuple[Note, ...] = ()

    def get_folder(self, folder_id: Optional[uuid.UUID]) -> Optional[Folder]:
        if folder_id is None:
            return None
        for folder in self.folders:
            if folder.id == folder_id:
                return folder
        return None

    def get_note(self, note_id: uuid.UUID) -> Optional[Note]:
        for note in self.notes:
            if note.id == note_id:
                return note
        return None


class NoteStore:
    """Owns the note and folder collections.

    Every mutation replaces one or more records in a single step under the
    store lock, persists both collections, and then calls ``on_persist``
    (normally the sync bridge's throttle). Lookups that miss are silent
    no-ops: the mutation returns ``False`` and nothing is persisted.
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        blob_store: BlobStore,
        on_persist: Optional[Callable[[], None]] = None,
        clock: Callable[[], datetime.datetime] = utc_now,
        notes_key: Optional[str] = None,
        folders_key: Optional[str] = None,
    ):
        self._kv_store = kv_store
        self._blob_store = blob_store
        self.on_persist = on_persist
        self._clock = clock
        self._notes_key = notes_key or config.notes_key
        self._folders_key = folders_key or config.folders_key
        self._lock = threading.RLock()
        self._notes: List[Note] = []
        self._folders: List[Folder] = []
        self.reload()

    # =========================================================================
    # Reads
    # =========================================================================

    @property
    def notes(self) -> Tuple[Note, ...]:
        with self._lock:
            return tuple(self._notes)

    @property
    def folders(self) -> Tuple[Folder, ...]:
        with self._lock:
            return tuple(self._folders)

    def snapshot(self) -> StoreSnapshot:
        """Return both collections as one consistent, immutable view."""
        with self._lock:
            return StoreSnapshot(folders=tuple(self._folders), notes=tuple(self._notes))

    def get_note(self, note_id: uuid.UUID) -> Optional[Note]:
        with self._lock:
            idx = self._note_index(note_id)
            return self._notes[idx] if idx is not None else None

    def get_folder(self, folder_id: Optional[uuid.UUID]) -> Optional[Folder]:
        if folder_id is None:
            return None
        with self._lock:
            idx = self._folder_index(folder_id)
            return self._folders[idx] if idx is not None else None

    def get_folder_name(self, folder_id: Optional[uuid.UUID]) -> str:
        """Return the folder's name, or an empty string for unfiled/unknown."""
        folder = self.get_folder(folder_id)
        return folder.name if folder is not None else ""

    # =========================================================================
    # Persistence
    # =========================================================================

    def reload(self) -> None:
        """Replace both collections with what persistence holds.

        Missing or undecodable data loads as an empty collection.
        """
        notes = self._load_collection(self._notes_key, decode_notes)
        folders = self._load_collection(self._folders_key, decode_folders)
        with self._lock:
            self._notes = notes
            self._folders = folders
        logger.info("Loaded %d notes and %d folders", len(notes), len(folders))

    def _load_collection(self, key: str, decode: Callable[[bytes], list]) -> list:
        try:
            data = self._kv_store.load(key)
        except StorageError as e:
            logger.warning("Could not read %s, starting empty: %s", key, e)
            return []
        if data is None:
            return []
        try:
            return decode(data)
        except CodecError as e:
            logger.warning("Could not decode %s, starting empty: %s", key, e)
            return []

    def _persist_locked(self) -> bool:
        """Write both collections. Caller must hold the store lock."""
        try:
            self._kv_store.save(self._notes_key, encode_notes(self._notes))
            self._kv_store.save(self._folders_key, encode_folders(self._folders))
        except StorageError as e:
            logger.error("Failed to persist store: %s", e)
            return False
        return True

    def _notify(self) -> None:
        callback = self.on_persist
        if callback is None:
            return
        try:
            callback()
        except Exception as e:
            logger.warning("on_persist callback failed: %s", e)

    def _note_index(self, note_id: uuid.UUID) -> Optional[int]:
        for idx, note in enumerate(self._notes):
            if note.id == note_id:
                return idx
        return None

    def _folder_index(self, folder_id: uuid.UUID) -> Optional[int]:
        for idx, folder in enumerate(self._folders):
            if folder.id == folder_id:
                return idx
        return None

    def _mutate_note(self, ref: NoteRef, transform: Callable[[Note], Note]) -> bool:
        note_id = _ref_id(ref)
        with self._lock:
            idx = self._note_index(note_id)
            if idx is None:
                logger.debug("Note %s not found, ignoring", note_id)
                return False
            self._notes[idx] = transform(self._notes[idx])
            persisted = self._persist_locked()
        if persisted:
            self._notify()
        return True

    def _mutate_folder(
        self, ref: FolderRef, transform: Callable[[Folder], Folder]
    ) -> bool:
        folder_id = _ref_id(ref)
        with self._lock:
            idx = self._folder_index(folder_id)
            if idx is None:
                logger.debug("Folder %s not found, ignoring", folder_id)
                return False
            self._folders[idx] = transform(self._folders[idx])
            persisted = self._persist_locked()
        if persisted:
            self._notify()
        return True

    # =========================================================================
    # Notes
    # =========================================================================

    def add_note(self, folder_id: Optional[uuid.UUID] = None) -> Note:
        """Create an empty note at the front of the collection."""
        note = Note(folder_id=folder_id, last_edited=self._clock())
        with self._lock:
            self._notes.insert(0, note)
            persisted = self._persist_locked()
        if persisted:
            self._notify()
        logger.debug("Created note %s", note.id)
        return note

    def update_note(self, note: Note) -> bool:
        """Replace the stored note that has ``note.id``."""
        return self._mutate_note(note, lambda _: note)

    def delete_note(self, note: NoteRef) -> bool:
        """Move a note to the trash."""
        now = self._clock()
        return self._mutate_note(
            note, lambda n: n.with_changes(is_deleted=True, deleted_date=now)
        )

    def restore_note(self, note: NoteRef) -> bool:
        """Take a note back out of the trash."""
        return self._mutate_note(
            note, lambda n: n.with_changes(is_deleted=False, deleted_date=None)
        )

    def permanently_delete_note(self, note: NoteRef) -> bool:
        """Remove a note and purge its images. Irreversible."""
        return self.purge_notes([note]) > 0

    def move_note(self, note: NoteRef, folder_id: Optional[uuid.UUID]) -> bool:
        return self._mutate_note(note, lambda n: n.with_changes(folder_id=folder_id))

    def toggle_pin(self, note: NoteRef) -> bool:
        return self._mutate_note(
            note, lambda n: n.with_changes(is_pinned=not n.is_pinned)
        )

    def lock_note(self, note: NoteRef) -> bool:
        return self._mutate_note(note, lambda n: n.with_changes(is_locked=True))

    def unlock_note(self, note: NoteRef) -> bool:
        return self._mutate_note(note, lambda n: n.with_changes(is_locked=False))

    def archive_note(self, note: NoteRef) -> bool:
        now = self._clock()
        return self._mutate_note(
            note, lambda n: n.with_changes(is_archived=True, archived_date=now)
        )

    def unarchive_note(self, note: NoteRef) -> bool:
        return self._mutate_note(
            note, lambda n: n.with_changes(is_archived=False, archived_date=None)
        )

    # =========================================================================
    # Bulk trash operations
    # =========================================================================

    def restore_notes(self, notes: Iterable[NoteRef]) -> int:
        """Restore several trashed notes with a single persist."""
        ids = {_ref_id(n) for n in notes}
        restored = 0
        with self._lock:
            for idx, note in enumerate(self._notes):
                if note.id in ids and note.is_deleted:
                    self._notes[idx] = note.with_changes(
                        is_deleted=False, deleted_date=None
                    )
                    restored += 1
            persisted = self._persist_locked() if restored else False
        if persisted:
            self._notify()
        return restored

    def purge_notes(self, notes: Iterable[NoteRef]) -> int:
        """Permanently remove several notes and their images.

        Blob cleanup failures are logged and do not keep the note alive.
        """
        ids = {_ref_id(n) for n in notes}
        return len(self._purge_where(lambda n: n.id in ids))

    def empty_trash(self) -> int:
        """Permanently remove every soft-deleted note."""
        return len(self._purge_where(lambda n: n.is_deleted))

    def purge_expired(
        self, now: datetime.datetime, window: datetime.timedelta
    ) -> List[uuid.UUID]:
        """Permanently remove trashed notes deleted more than ``window`` ago.

        Expiry is decided under the store lock, so a note restored while
        a sweep is running is never purged.
        """
        doomed = self._purge_where(
            lambda n: n.is_deleted
            and n.deleted_date is not None
            and now - n.deleted_date > window
        )
        return [n.id for n in doomed]

    def _purge_where(self, predicate: Callable[[Note], bool]) -> List[Note]:
        with self._lock:
            doomed = [n for n in self._notes if predicate(n)]
            if not doomed:
                return []
            doomed_ids = {n.id for n in doomed}
            self._notes = [n for n in self._notes if n.id not in doomed_ids]
            persisted = self._persist_locked()
        # Blob directories are removed outside the lock
        for note in doomed:
            self._purge_blobs(note.id)
        if persisted:
            self._notify()
        logger.info("Permanently deleted %d notes", len(doomed))
        return doomed

    def _purge_blobs(self, note_id: uuid.UUID) -> None:
        try:
            self._blob_store.delete_scope(str(note_id))
        except (BlobStoreError, ValidationError) as e:
            logger.warning("Failed to purge images of note %s: %s", note_id, e)

    # =========================================================================
    # Folders
    # =========================================================================

    def add_folder(self, name: str) -> Folder:
        folder = Folder(name=name, created_date=self._clock())
        with self._lock:
            self._folders.append(folder)
            persisted = self._persist_locked()
        if persisted:
            self._notify()
        logger.debug("Created folder %s (%s)", folder.id, name)
        return folder

    def update_folder(self, folder: Folder) -> bool:
        """Replace the stored folder; its creation date is kept."""
        return self._mutate_folder(
            folder, lambda f: folder.with_changes(created_date=f.created_date)
        )

    def delete_folder(self, folder: FolderRef) -> bool:
        """Unfile every member note, then remove the folder.

        Notes are never deleted as a side effect.
        """
        folder_id = _ref_id(folder)
        with self._lock:
            idx = self._folder_index(folder_id)
            moved = 0
            for n_idx, note in enumerate(self._notes):
                if note.folder_id == folder_id:
                    self._notes[n_idx] = note.with_changes(folder_id=None)
                    moved += 1
            if idx is None and not moved:
                logger.debug("Folder %s not found, ignoring", folder_id)
                return False
            if idx is not None:
                del self._folders[idx]
            persisted = self._persist_locked()
        if persisted:
            self._notify()
        logger.info("Deleted folder %s, unfiled %d notes", folder_id, moved)
        return True

    def lock_folder(self, folder: FolderRef) -> bool:
        return self._mutate_folder(folder, lambda f: f.with_changes(is_locked=True))

    def unlock_folder(self, folder: FolderRef) -> bool:
        return self._mutate_folder(folder, lambda f: f.with_changes(is_locked=False))

    # =========================================================================
    # Images
    # =========================================================================

    def save_image(
        self,
        blob: bytes,
        note: NoteRef,
        description: str = "",
        extension: str = ".jpg",
    ) -> Optional[NoteImage]:
        """Store image bytes for a note and attach their metadata.

        Returns None when the note is unknown or the blob write fails.
        """
        note_id = _ref_id(note)
        if self.get_note(note_id) is None:
            return None
        image = NoteImage(
            filename=f"{str(uuid.uuid4()).upper()}{extension}",
            description=description,
        )
        try:
            self._blob_store.put(str(note_id), image.filename, blob)
        except (BlobStoreError, ValidationError) as e:
            logger.error("Failed to save image for note %s: %s", note_id, e)
            return None

        attached = self._mutate_note(
            note_id, lambda n: n.with_changes(images=[*n.images, image])
        )
        if not attached:
            # The note was purged while the blob was being written
            self._purge_blob(note_id, image.filename)
            return None
        return image

    def load_image(self, note: NoteRef, image: NoteImage) -> Optional[bytes]:
        """Read an image's bytes; never mutates."""
        note_id = _ref_id(note)
        try:
            return self._blob_store.get(str(note_id), image.filename)
        except (BlobStoreError, ValidationError) as e:
            logger.warning("Failed to load image %s: %s", image.filename, e)
            return None

    def delete_image(self, image: NoteImage, note: NoteRef) -> bool:
        """Remove an image's bytes and detach its metadata."""
        note_id = _ref_id(note)
        self._purge_blob(note_id, image.filename)
        return self._edit_image(
            note_id,
            image.id,
            lambda images: [img for img in images if img.id != image.id],
        )

    def update_image_description(
        self, image: NoteImage, note: NoteRef, text: str
    ) -> bool:
        return self._edit_image(
            _ref_id(note),
            image.id,
            lambda images: [
                img.with_changes(description=text) if img.id == image.id else img
                for img in images
            ],
        )

    def _edit_image(
        self,
        note_id: uuid.UUID,
        image_id: uuid.UUID,
        transform: Callable[[List[NoteImage]], List[NoteImage]],
    ) -> bool:
        with self._lock:
            idx = self._note_index(note_id)
            if idx is None or self._notes[idx].find_image(image_id) is None:
                return False
            stored = self._notes[idx]
            self._notes[idx] = stored.with_changes(images=transform(list(stored.images)))
            persisted = self._persist_locked()
        if persisted:
            self._notify()
        return True

    def _purge_blob(self, note_id: uuid.UUID, filename: str) -> None:
        try:
            self._blob_store.delete(str(note_id), filename)
        except (BlobStoreError, ValidationError) as e:
            logger.warning("Failed to delete image %s: %s", filename, e)
