"""Storage layer for the Noty core."""

from noty_core.storage.blob_store import BlobStore, FileBlobStore
from noty_core.storage.codec import ContentCodec, PlainTextCodec
from noty_core.storage.kv_store import KeyValueStore, SqlKeyValueStore

__all__ = [
    "BlobStore",
    "FileBlobStore",
    "ContentCodec",
    "PlainTextCodec",
    "KeyValueStore",
    "SqlKeyValueStore",
]
