"""Note-scoped image blob storage.

Blobs are addressed by (scope id, key): the scope is the owning note's id
and the key is the image filename. Deleting a scope removes every image
of a note at once.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from noty_core.exceptions import BlobStoreError, ErrorCode, ValidationError
from noty_core.models.schema import validate_safe_filename

logger = logging.getLogger(__name__)


@runtime_checkable
class BlobStore(Protocol):
    """Content store for image bytes."""

    def put(self, scope_id: str, key: str, data: bytes) -> Path:
        ...

    def get(self, scope_id: str, key: str) -> Optional[bytes]:
        ...

    def delete(self, scope_id: str, key: str) -> None:
        ...

    def delete_scope(self, scope_id: str) -> None:
        ...


def _atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with tmp_path.open("wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
    tmp_path.replace(path)


class FileBlobStore:
    """BlobStore that keeps each note's images in its own directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _scope_dir(self, scope_id: str) -> Path:
        try:
            validate_safe_filename(scope_id, "scope_id")
        except ValueError as e:
            raise ValidationError(
                str(e),
                field="scope_id",
                value=scope_id,
                code=ErrorCode.PATH_TRAVERSAL_DETECTED,
            ) from e
        return self.root / scope_id

    def _blob_path(self, scope_id: str, key: str) -> Path:
        try:
            validate_safe_filename(key, "key")
        except ValueError as e:
            raise ValidationError(
                str(e),
                field="key",
                value=key,
                code=ErrorCode.PATH_TRAVERSAL_DETECTED,
            ) from e
        return self._scope_dir(scope_id) / key

    def put(self, scope_id: str, key: str, data: bytes) -> Path:
        path = self._blob_path(scope_id, key)
        try:
            _atomic_write_bytes(path, data)
        except OSError as e:
            raise BlobStoreError(
                "Failed to write image",
                scope_id=scope_id,
                key=key,
                code=ErrorCode.BLOB_WRITE_FAILED,
                original_error=e,
            ) from e
        return path

    def get(self, scope_id: str, key: str) -> Optional[bytes]:
        path = self._blob_path(scope_id, key)
        if not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            raise BlobStoreError(
                "Failed to read image",
                scope_id=scope_id,
                key=key,
                code=ErrorCode.BLOB_READ_FAILED,
                original_error=e,
            ) from e

    def delete(self, scope_id: str, key: str) -> None:
        path = self._blob_path(scope_id, key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise BlobStoreError(
                "Failed to delete image",
                scope_id=scope_id,
                key=key,
                code=ErrorCode.BLOB_DELETE_FAILED,
                original_error=e,
            ) from e

    def delete_scope(self, scope_id: str) -> None:
        scope_dir = self._scope_dir(scope_id)
        if not scope_dir.exists():
            return
        try:
            shutil.rmtree(scope_dir)
        except OSError as e:
            raise BlobStoreError(
                "Failed to delete image directory",
                scope_id=scope_id,
                code=ErrorCode.BLOB_DELETE_FAILED,
                original_error=e,
            ) from e
        logger.debug("Removed blob scope %s", scope_id)
