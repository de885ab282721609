#!/usr/bin/env python
"""Command line entry point for the Noty core."""
import argparse
import json
import logging
import os
import sys
import uuid
from pathlib import Path
from typing import List, Optional, Sequence

from noty_core import __version__
from noty_core.app import NotyApp
from noty_core.config import config
from noty_core.models.schema import Folder, Note
from noty_core.observability import configure_logging
from noty_core.services import query
from noty_core.services.note_store import NoteStore
from noty_core.services.replica import ReplicaSyncManager
from noty_core.services.sync_bridge import SyncBridge
from noty_core.sync.channel import LoopbackChannel

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Noty note store")
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("NOTY_DATABASE_PATH"),
    )
    parser.add_argument(
        "--images-dir",
        help="Directory for image blobs",
        type=str,
        default=os.environ.get("NOTY_IMAGES_DIR"),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("NOTY_LOG_LEVEL", "WARNING"),
    )

    sub = parser.add_subparsers(dest="command", required=True)

    add_note = sub.add_parser("add-note", help="Create a note")
    add_note.add_argument("--folder", help="Folder name")
    add_note.add_argument("--title", help="Note title")
    add_note.add_argument("--text", help="Plain text content")

    add_folder = sub.add_parser("add-folder", help="Create a folder")
    add_folder.add_argument("name")

    list_cmd = sub.add_parser("list", help="List notes")
    list_cmd.add_argument("--folder", help="Only notes in this folder")
    view = list_cmd.add_mutually_exclusive_group()
    view.add_argument("--archived", action="store_true", help="Show the archive")
    view.add_argument("--deleted", action="store_true", help="Show the trash")
    list_cmd.add_argument(
        "--all", action="store_true", help="Include notes in locked folders"
    )
    list_cmd.add_argument("--search", help="Filter by title or first line")

    delete = sub.add_parser("delete", help="Move a note to the trash")
    delete.add_argument("id")
    restore = sub.add_parser("restore", help="Restore a note from the trash")
    restore.add_argument("id")

    sub.add_parser("sweep", help="Purge notes past the retention window")
    sub.add_parser("empty-trash", help="Purge every note in the trash")
    sub.add_parser("status", help="Show store and sync status")
    sub.add_parser("sync-demo", help="Sync to an in-process replica")
    return parser.parse_args(argv)


def update_config(args) -> None:
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.images_dir:
        config.images_dir = Path(args.images_dir)


def _find_folder(store: NoteStore, name: str) -> Optional[Folder]:
    wanted = name.casefold()
    for folder in store.folders:
        if folder.name.casefold() == wanted:
            return folder
    return None


def _resolve_note(store: NoteStore, text: str) -> Optional[Note]:
    """Look a note up by full id or by a unique id prefix."""
    try:
        return store.get_note(uuid.UUID(text))
    except ValueError:
        pass
    prefix = text.lower()
    matches = [n for n in store.notes if str(n.id).startswith(prefix)]
    return matches[0] if len(matches) == 1 else None


def _format_note(note: Note, store: NoteStore) -> str:
    flags = "".join(
        mark
        for mark, on in (
            ("P", note.is_pinned),
            ("L", note.is_locked),
            ("A", note.is_archived),
            ("D", note.is_deleted),
        )
        if on
    )
    folder = store.get_folder_name(note.folder_id) or "-"
    return (
        f"{str(note.id)[:8]}  {flags:<4} {note.title:<30} "
        f"{folder:<16} {note.last_edited:%Y-%m-%d %H:%M}"
    )


def _list_notes(app: NotyApp, args) -> List[str]:
    store = app.store
    snapshot = store.snapshot()
    if args.deleted:
        notes = query.get_recently_deleted_notes(snapshot)
        return [
            f"{_format_note(n, store)}  "
            f"({query.days_until_purge(n, window=app.sweeper.window)} days left)"
            for n in query.sort_notes(notes, app.preferences.note_sort)
        ]
    if args.archived:
        notes = query.get_archived_notes(snapshot)
        return [
            _format_note(n, store)
            for n in query.sort_archived_notes(notes, app.preferences.archived_sort)
        ]

    respect_lock = not args.all
    if args.folder:
        folder = _find_folder(store, args.folder)
        if folder is None:
            return [f"No folder named {args.folder!r}"]
        notes = query.get_notes(
            snapshot, folder_id=folder.id, respect_folder_lock=respect_lock
        )
    else:
        notes = query.get_all_notes(snapshot, respect_folder_lock=respect_lock)
    if args.search:
        notes = query.search_notes(notes, args.search)

    sections = query.group_notes(notes, app.preferences.note_sort)
    lines: List[str] = []
    if sections.pinned:
        lines.append("Pinned")
        lines.extend(f"  {_format_note(n, store)}" for n in sections.pinned)
    for section in sections.sections:
        lines.append(section.title)
        lines.extend(f"  {_format_note(n, store)}" for n in section.notes)
    return lines


def _sync_demo(app: NotyApp) -> List[str]:
    primary_end, replica_end = LoopbackChannel.pair()
    bridge = SyncBridge(app.store, primary_end)
    replica = ReplicaSyncManager(replica_end)
    try:
        replica.request_sync()
        lines = [
            f"Pulled revision {replica.last_revision}: "
            f"{len(replica.folders)} folders, {len(replica.notes)} notes",
        ]
        bridge.push_now()
        lines.append(
            f"Pushed revision {replica.last_revision}: "
            f"{len(replica.pinned_notes())} pinned, "
            f"{len(replica.unpinned_notes())} unpinned, "
            f"{len(replica.deleted_notes)} in trash"
        )
        counts = replica.folder_note_counts()
        for folder in replica.folders:
            lines.append(f"  {folder.name}: {counts.get(folder.id, 0)} notes")
        return lines
    finally:
        bridge.shutdown(flush=False)


def run(args) -> int:
    """Execute one subcommand against a freshly wired app."""
    app = NotyApp()
    try:
        store = app.store
        if args.command == "add-note":
            folder_id = None
            if args.folder:
                folder = _find_folder(store, args.folder) or store.add_folder(
                    args.folder
                )
                folder_id = folder.id
            note = store.add_note(folder_id=folder_id)
            changes = {}
            if args.title:
                changes["title"] = args.title
            if args.text:
                changes["content"] = args.text.encode("utf-8")
            if changes:
                note = note.with_changes(**changes)
                store.update_note(note)
            print(note.id)
        elif args.command == "add-folder":
            print(store.add_folder(args.name).id)
        elif args.command == "list":
            for line in _list_notes(app, args):
                print(line)
        elif args.command in ("delete", "restore"):
            note = _resolve_note(store, args.id)
            if note is None:
                print(f"No note matches {args.id!r}", file=sys.stderr)
                return 1
            if args.command == "delete":
                store.delete_note(note)
            else:
                store.restore_note(note)
            print(note.id)
        elif args.command == "sweep":
            purged = app.sweeper.sweep()
            print(f"Purged {len(purged)} notes")
        elif args.command == "empty-trash":
            print(f"Purged {store.empty_trash()} notes")
        elif args.command == "status":
            print(json.dumps(app.status(), indent=2, default=str))
        elif args.command == "sync-demo":
            for line in _sync_demo(app):
                print(line)
        return 0
    finally:
        app.shutdown()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the Noty command line."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.WARNING)
    try:
        configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except Exception as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logger.warning("Failed to configure file logging: %s", e)

    try:
        return run(args)
    except Exception as e:
        logger.error("Command %s failed: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
