"""Read-only queries over a store snapshot.

Everything here is a pure function of its arguments: listings filter a
``StoreSnapshot``, sorts return new lists, and nothing writes back to the
store.
"""

import datetime
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from noty_core.config import config
from noty_core.models.schema import (
    ArchivedNoteSortField,
    ArchivedNoteSortOptions,
    Folder,
    FolderSortField,
    FolderSortOptions,
    Note,
    NoteSortField,
    NoteSortOptions,
    SortOrder,
    utc_now,
)
from noty_core.services.note_store import StoreSnapshot
from noty_core.storage.codec import ContentCodec, PlainTextCodec

logger = logging.getLogger(__name__)

TODAY_LABEL = "Today"
YESTERDAY_LABEL = "Yesterday"
UNGROUPED_LABEL = "Notes"
NO_TEXT_PLACEHOLDER = "No additional text"
# Medium calendar date, e.g. "Oct 03, 2026"
DATE_LABEL_FORMAT = "%b %d, %Y"

_DEFAULT_CODEC = PlainTextCodec()


# =============================================================================
# Listings
# =============================================================================


def _hidden_by_folder_lock(snapshot: StoreSnapshot, note: Note) -> bool:
    # A folder that no longer exists counts as unlocked
    folder = snapshot.get_folder(note.folder_id)
    return folder is not None and folder.is_locked


def _visible(
    snapshot: StoreSnapshot,
    note: Note,
    include_deleted: bool,
    include_archived: bool,
    respect_folder_lock: bool,
) -> bool:
    if note.is_deleted != include_deleted:
        return False
    if note.is_archived and not include_archived:
        return False
    if respect_folder_lock and _hidden_by_folder_lock(snapshot, note):
        return False
    return True


def get_notes(
    snapshot: StoreSnapshot,
    folder_id: Optional[uuid.UUID] = None,
    include_deleted: bool = False,
    include_archived: bool = False,
    respect_folder_lock: bool = True,
) -> List[Note]:
    """Notes filed in ``folder_id`` (``None`` selects unfiled notes).

    Deletion state must equal ``include_deleted``. Archived notes are kept
    only when ``include_archived`` is set. With ``respect_folder_lock``,
    members of a locked folder are hidden whatever the other flags say.
    """
    return [
        note
        for note in snapshot.notes
        if note.folder_id == folder_id
        and _visible(
            snapshot, note, include_deleted, include_archived, respect_folder_lock
        )
    ]


def get_all_notes(
    snapshot: StoreSnapshot,
    include_deleted: bool = False,
    include_archived: bool = False,
    respect_folder_lock: bool = True,
) -> List[Note]:
    """Same predicate as :func:`get_notes` without the folder filter."""
    return [
        note
        for note in snapshot.notes
        if _visible(
            snapshot, note, include_deleted, include_archived, respect_folder_lock
        )
    ]


def get_notes_from_locked_folder(
    snapshot: StoreSnapshot, folder_id: uuid.UUID
) -> List[Note]:
    """Live notes of a folder, ignoring its lock.

    Callers must have authenticated the user before showing these.
    """
    return get_notes(snapshot, folder_id=folder_id, respect_folder_lock=False)


def get_recently_deleted_notes(snapshot: StoreSnapshot) -> List[Note]:
    """The trash. Folder locks never hide a deleted note."""
    return [note for note in snapshot.notes if note.is_deleted]


def get_archived_notes(snapshot: StoreSnapshot) -> List[Note]:
    """Archived notes that are not in the trash."""
    return [
        note for note in snapshot.notes if note.is_archived and not note.is_deleted
    ]


def folder_note_counts(snapshot: StoreSnapshot) -> Dict[uuid.UUID, int]:
    """Number of live (not deleted, not archived) notes per folder."""
    counts = {folder.id: 0 for folder in snapshot.folders}
    for note in snapshot.notes:
        if note.folder_id in counts and not note.is_deleted and not note.is_archived:
            counts[note.folder_id] += 1
    return counts


def days_until_purge(
    note: Note,
    now: Optional[datetime.datetime] = None,
    window: Optional[datetime.timedelta] = None,
) -> Optional[int]:
    """Whole days left before the retention sweep purges ``note``.

    The window defaults to ``config.retention_days``. Returns None for
    notes that are not in the trash.
    """
    if not note.is_deleted or note.deleted_date is None:
        return None
    now = now or utc_now()
    if window is None:
        window = datetime.timedelta(days=config.retention_days)
    remaining = window - (now - note.deleted_date)
    return max(0, remaining.days)


# =============================================================================
# Sorting
# =============================================================================


def _title_key(title: str) -> str:
    return title.casefold()


def sort_notes(notes: Iterable[Note], options: NoteSortOptions) -> List[Note]:
    """Sort the note list. Equal keys keep their original order."""
    reverse = options.order == SortOrder.DESCENDING
    if options.field == NoteSortField.TITLE:
        return sorted(notes, key=lambda n: _title_key(n.title), reverse=reverse)
    return sorted(notes, key=lambda n: n.last_edited, reverse=reverse)


def sort_archived_notes(
    notes: Iterable[Note], options: ArchivedNoteSortOptions
) -> List[Note]:
    """Sort the archive view. Notes without an archive date go last."""
    reverse = options.order == SortOrder.DESCENDING
    if options.field == ArchivedNoteSortField.TITLE:
        return sorted(notes, key=lambda n: _title_key(n.title), reverse=reverse)

    notes = list(notes)
    dated = [n for n in notes if n.archived_date is not None]
    undated = [n for n in notes if n.archived_date is None]
    return sorted(dated, key=lambda n: n.archived_date, reverse=reverse) + undated


def sort_folders(
    folders: Iterable[Folder], options: FolderSortOptions
) -> List[Folder]:
    reverse = options.order == SortOrder.DESCENDING
    if options.field == FolderSortField.CREATED_DATE:
        return sorted(folders, key=lambda f: f.created_date, reverse=reverse)
    return sorted(folders, key=lambda f: _title_key(f.name), reverse=reverse)


# =============================================================================
# Grouping
# =============================================================================


@dataclass
class NoteSection:
    """A titled run of notes in the list view."""

    title: str
    notes: List[Note] = field(default_factory=list)


@dataclass
class NoteSections:
    """The note list as rendered: pinned notes first, then the rest."""

    pinned: List[Note] = field(default_factory=list)
    sections: List[NoteSection] = field(default_factory=list)

    def titles(self) -> List[str]:
        return [section.title for section in self.sections]

    def flatten(self) -> List[Note]:
        flat = list(self.pinned)
        for section in self.sections:
            flat.extend(section.notes)
        return flat


def date_label(
    moment: datetime.datetime,
    now: datetime.datetime,
    tz: Optional[datetime.tzinfo] = None,
) -> str:
    """Label a timestamp by calendar day relative to ``now``.

    Days are computed in ``tz``; ``None`` means the local timezone.
    """
    day = moment.astimezone(tz).date()
    today = now.astimezone(tz).date()
    if day == today:
        return TODAY_LABEL
    if day == today - datetime.timedelta(days=1):
        return YESTERDAY_LABEL
    return day.strftime(DATE_LABEL_FORMAT)


def group_notes(
    notes: Iterable[Note],
    options: NoteSortOptions,
    now: Optional[datetime.datetime] = None,
    tz: Optional[datetime.tzinfo] = None,
) -> NoteSections:
    """Split notes into the pinned section and dated (or single) sections.

    Day buckets are ordered by date following the active sort direction,
    and the notes inside each bucket are sorted by the active sort.
    """
    notes = list(notes)
    pinned = sort_notes([n for n in notes if n.is_pinned], options)
    unpinned = [n for n in notes if not n.is_pinned]
    if not unpinned:
        return NoteSections(pinned=pinned)

    if not options.group_by_date:
        return NoteSections(
            pinned=pinned,
            sections=[NoteSection(UNGROUPED_LABEL, sort_notes(unpinned, options))],
        )

    now = now or utc_now()
    buckets: Dict[datetime.date, List[Note]] = {}
    for note in unpinned:
        buckets.setdefault(note.last_edited.astimezone(tz).date(), []).append(note)

    reverse = options.order == SortOrder.DESCENDING
    sections = []
    for day in sorted(buckets, reverse=reverse):
        members = buckets[day]
        sections.append(
            NoteSection(
                date_label(members[0].last_edited, now, tz),
                sort_notes(members, options),
            )
        )
    return NoteSections(pinned=pinned, sections=sections)


# =============================================================================
# Text
# =============================================================================


def first_line(note: Note, codec: Optional[ContentCodec] = None) -> str:
    """First non-blank line of the content that is not just the title."""
    codec = codec or _DEFAULT_CODEC
    try:
        text = codec.decode(note.content)
    except Exception as e:
        logger.debug("Could not decode content of note %s: %s", note.id, e)
        return ""
    title = note.title.strip()
    for line in text.splitlines():
        stripped = line.strip()
        if stripped and stripped != title:
            return stripped
    return ""


def snippet(note: Note, codec: Optional[ContentCodec] = None) -> str:
    """The list-row preview line."""
    return first_line(note, codec) or NO_TEXT_PLACEHOLDER


def search_notes(
    notes: Sequence[Note], text: str, codec: Optional[ContentCodec] = None
) -> List[Note]:
    """Case-insensitive substring match on title or first line."""
    query = text.strip().casefold()
    if not query:
        return list(notes)
    return [
        note
        for note in notes
        if query in note.title.casefold()
        or query in first_line(note, codec).casefold()
    ]


def search_folders(folders: Sequence[Folder], text: str) -> List[Folder]:
    query = text.strip().casefold()
    if not query:
        return list(folders)
    return [folder for folder in folders if query in folder.name.casefold()]


def split_pinned(notes: Iterable[Note]) -> Tuple[List[Note], List[Note]]:
    """Partition into (pinned, unpinned), each by last edit, newest first."""
    ordered = sorted(notes, key=lambda n: n.last_edited, reverse=True)
    return (
        [n for n in ordered if n.is_pinned],
        [n for n in ordered if not n.is_pinned],
    )
