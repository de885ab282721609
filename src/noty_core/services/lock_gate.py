"""Device-owner authentication in front of lock and unlock actions."""

import logging
import uuid
from typing import List, Optional, Protocol, runtime_checkable

from noty_core.models.schema import Folder, Note
from noty_core.services import query
from noty_core.services.note_store import FolderRef, NoteRef, NoteStore

logger = logging.getLogger(__name__)

DEFAULT_REASON = "Unlock your notes"


@runtime_checkable
class Authenticator(Protocol):
    """Asks the device owner to authenticate. No retry is built in."""

    async def authenticate(self, reason: str) -> bool:
        ...


class LockGate:
    """Runs store operations on locked items only after authentication.

    Each call prompts exactly once. A False answer or an authenticator
    that raises counts as a denial and leaves the store untouched.
    """

    def __init__(self, store: NoteStore, authenticator: Authenticator):
        self._store = store
        self._authenticator = authenticator

    async def _authenticate(self, reason: str) -> bool:
        try:
            granted = bool(await self._authenticator.authenticate(reason))
        except Exception as e:
            logger.warning("Authentication failed: %s", e)
            return False
        if not granted:
            logger.info("Authentication denied")
        return granted

    async def unlock_note(self, note: NoteRef, reason: str = DEFAULT_REASON) -> bool:
        if not await self._authenticate(reason):
            return False
        return self._store.unlock_note(note)

    async def unlock_folder(
        self, folder: FolderRef, reason: str = DEFAULT_REASON
    ) -> bool:
        if not await self._authenticate(reason):
            return False
        return self._store.unlock_folder(folder)

    async def open_note(
        self, note_id: uuid.UUID, reason: str = DEFAULT_REASON
    ) -> Optional[Note]:
        """Return a locked note for viewing without changing its lock."""
        note = self._store.get_note(note_id)
        if note is None:
            return None
        if note.is_locked and not await self._authenticate(reason):
            return None
        return note

    async def open_locked_folder(
        self, folder_id: uuid.UUID, reason: str = DEFAULT_REASON
    ) -> List[Note]:
        """Live notes of a locked folder, without unlocking it.

        Unlocked or unknown folders are listed without a prompt.
        """
        snapshot = self._store.snapshot()
        folder: Optional[Folder] = snapshot.get_folder(folder_id)
        if folder is not None and folder.is_locked:
            if not await self._authenticate(reason):
                return []
        return query.get_notes_from_locked_folder(snapshot, folder_id)
