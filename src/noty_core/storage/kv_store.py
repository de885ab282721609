"""Key-value persistence for encoded collections and preferences."""

import logging
from typing import Dict, Optional, Protocol, runtime_checkable

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from noty_core.exceptions import ErrorCode, StorageError
from noty_core.models.db_models import DBEntry, get_session_factory, init_db
from noty_core.models.schema import utc_now

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    """Byte-valued persistence keyed by string.

    The store saves each collection under its own key, so a failed write
    of one never corrupts the other.
    """

    def save(self, key: str, data: bytes) -> None:
        """Persist ``data`` under ``key``, replacing any previous value."""
        ...

    def load(self, key: str) -> Optional[bytes]:
        """Return the bytes stored under ``key``, or ``None``."""
        ...


class SqlKeyValueStore:
    """KeyValueStore backed by a single SQLite table via SQLAlchemy."""

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine if engine is not None else init_db()
        self._session_factory = get_session_factory(self.engine)

    def save(self, key: str, data: bytes) -> None:
        try:
            with self._session_factory() as session:
                entry = session.get(DBEntry, key)
                if entry is None:
                    session.add(DBEntry(key=key, value=data, updated_at=utc_now()))
                else:
                    entry.value = data
                    entry.updated_at = utc_now()
                session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to save '{key}'",
                operation="save",
                key=key,
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.debug("Saved %d bytes under %s", len(data), key)

    def load(self, key: str) -> Optional[bytes]:
        try:
            with self._session_factory() as session:
                entry = session.get(DBEntry, key)
                return bytes(entry.value) if entry is not None else None
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to load '{key}'",
                operation="load",
                key=key,
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e

    def keys(self) -> Dict[str, int]:
        """Return every stored key with its value size in bytes."""
        try:
            with self._session_factory() as session:
                return {
                    entry.key: len(entry.value)
                    for entry in session.query(DBEntry).all()
                }
        except SQLAlchemyError as e:
            raise StorageError(
                "Failed to list keys",
                operation="keys",
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e
