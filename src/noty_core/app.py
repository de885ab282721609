"""Application container: builds the store and its collaborators from config."""

import datetime
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from sqlalchemy.engine import Engine

from noty_core.config import config
from noty_core.models.db_models import init_db
from noty_core.models.schema import utc_now
from noty_core.observability import metrics
from noty_core.services.note_store import NoteStore, StoreSnapshot
from noty_core.services.preferences import SortPreferences
from noty_core.services.retention import RetentionSweeper
from noty_core.services.sync_bridge import SyncBridge
from noty_core.storage.blob_store import BlobStore, FileBlobStore
from noty_core.storage.kv_store import SqlKeyValueStore
from noty_core.sync.channel import SyncChannel

logger = logging.getLogger(__name__)


class NotyApp:
    """Owns one store and wires persistence, retention and sync around it.

    Construction loads persisted state, attaches the sync bridge when a
    channel is given and sync is enabled, and runs one retention sweep.
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        blob_store: Optional[BlobStore] = None,
        images_dir: Optional[Path] = None,
        channel: Optional[SyncChannel] = None,
        clock: Callable[[], datetime.datetime] = utc_now,
        sync_enabled: Optional[bool] = None,
        sweep_on_start: bool = True,
    ):
        self.engine = engine if engine is not None else init_db()
        self.kv_store = SqlKeyValueStore(self.engine)
        if blob_store is None:
            blob_store = FileBlobStore(
                images_dir if images_dir is not None else config.get_images_dir()
            )
        self.blob_store = blob_store
        self.store = NoteStore(self.kv_store, self.blob_store, clock=clock)
        self.preferences = SortPreferences(self.kv_store)
        self.sweeper = RetentionSweeper(self.store, clock=clock)

        if sync_enabled is None:
            sync_enabled = config.sync_enabled
        self.bridge: Optional[SyncBridge] = None
        if channel is not None and sync_enabled:
            self.bridge = SyncBridge(self.store, channel)

        if sweep_on_start:
            self.sweeper.sweep()
        if config.sweep_interval > 0:
            self.sweeper.start(config.sweep_interval)

    def snapshot(self) -> StoreSnapshot:
        return self.store.snapshot()

    def status(self) -> Dict[str, Any]:
        snapshot = self.store.snapshot()
        return {
            "version": config.app_version,
            "notes": len(snapshot.notes),
            "folders": len(snapshot.folders),
            "trashed": sum(1 for n in snapshot.notes if n.is_deleted),
            "archived": sum(1 for n in snapshot.notes if n.is_archived),
            "sync": self.bridge.status() if self.bridge is not None else None,
            "metrics": metrics.get_summary(),
        }

    def shutdown(self) -> None:
        """Stop background timers and flush any pending push."""
        self.sweeper.stop()
        if self.bridge is not None:
            self.bridge.shutdown(flush=True)
        logger.info("NotyApp shut down")
