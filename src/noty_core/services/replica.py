"""Replica side of sync: a read-only cache replaced wholesale."""

import logging
import threading
import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple

from noty_core.exceptions import CodecError
from noty_core.models.schema import Folder, Note
from noty_core.storage.codec import decode_payload
from noty_core.sync.channel import SYNC_REQUEST, Message, SyncChannel, is_sync_request

logger = logging.getLogger(__name__)


def _by_last_edited(notes: List[Note]) -> List[Note]:
    return sorted(notes, key=lambda n: n.last_edited, reverse=True)


class ReplicaSyncManager:
    """Downstream copy of the primary's folders and notes.

    There are no mutation operations: the cache only changes when a
    payload arrives, either as a pull reply or as an unsolicited push,
    and each accepted payload replaces both collections. Payloads that
    carry a revision older than the last applied one are discarded.
    """

    def __init__(self, channel: SyncChannel):
        self._channel = channel
        self._lock = threading.Lock()
        self._folders: Tuple[Folder, ...] = ()
        self._notes: Tuple[Note, ...] = ()
        self._is_syncing = False
        self._last_revision: Optional[int] = None
        channel.on_receive(self._handle_message)

    @property
    def folders(self) -> Tuple[Folder, ...]:
        with self._lock:
            return self._folders

    @property
    def notes(self) -> Tuple[Note, ...]:
        with self._lock:
            return self._notes

    @property
    def is_syncing(self) -> bool:
        with self._lock:
            return self._is_syncing

    @property
    def last_revision(self) -> Optional[int]:
        with self._lock:
            return self._last_revision

    # =========================================================================
    # Receiving
    # =========================================================================

    def apply_payload(self, payload: Mapping[str, Any]) -> bool:
        """Replace the cache with ``payload``. Returns False if discarded."""
        try:
            folders, notes, revision = decode_payload(payload)
        except CodecError as e:
            logger.warning("Discarding undecodable sync payload: %s", e)
            return False

        with self._lock:
            if (
                revision is not None
                and self._last_revision is not None
                and revision < self._last_revision
            ):
                logger.info(
                    "Discarding stale payload (revision %d < %d)",
                    revision,
                    self._last_revision,
                )
                return False
            self._folders = tuple(folders)
            self._notes = tuple(notes)
            if revision is not None:
                self._last_revision = revision
        logger.debug("Replica cache replaced: %d folders, %d notes", len(folders), len(notes))
        return True

    def _handle_message(self, message: Message) -> Optional[Message]:
        if is_sync_request(message):
            # The replica has nothing to serve
            return None
        self.apply_payload(message)
        return None

    def request_sync(self) -> bool:
        """Pull the full state from the primary.

        A no-op returning False when the channel is unreachable. Channel
        failures are logged and leave the cache as it was.
        """
        if not self._channel.is_reachable:
            logger.debug("Primary unreachable, sync request skipped")
            return False
        with self._lock:
            self._is_syncing = True
        try:
            reply = self._channel.send(dict(SYNC_REQUEST))
            if reply is None:
                logger.debug("Sync request got no reply")
                return False
            return self.apply_payload(reply)
        except Exception as e:
            logger.warning("Sync request failed: %s", e)
            return False
        finally:
            with self._lock:
                self._is_syncing = False

    def request_sync_if_needed(self) -> bool:
        """Pull only while the cache is missing notes or folders."""
        with self._lock:
            needed = not self._notes or not self._folders
        if needed:
            return self.request_sync()
        return False

    # =========================================================================
    # Views
    # =========================================================================

    @property
    def all_notes(self) -> List[Note]:
        return [n for n in self.notes if not n.is_deleted]

    @property
    def deleted_notes(self) -> List[Note]:
        return [n for n in self.notes if n.is_deleted]

    def notes_in(self, folder_id: uuid.UUID) -> List[Note]:
        return [n for n in self.notes if n.folder_id == folder_id and not n.is_deleted]

    def _listed(self, folder_id: Optional[uuid.UUID]) -> List[Note]:
        return self.all_notes if folder_id is None else self.notes_in(folder_id)

    def pinned_notes(self, folder_id: Optional[uuid.UUID] = None) -> List[Note]:
        """Pinned notes of a folder, or of every folder when None."""
        return _by_last_edited([n for n in self._listed(folder_id) if n.is_pinned])

    def unpinned_notes(self, folder_id: Optional[uuid.UUID] = None) -> List[Note]:
        return _by_last_edited([n for n in self._listed(folder_id) if not n.is_pinned])

    def folder_note_counts(self) -> Dict[uuid.UUID, int]:
        counts = {folder.id: 0 for folder in self.folders}
        for note in self.all_notes:
            if note.folder_id in counts:
                counts[note.folder_id] += 1
        return counts
