"""Encoding of note/folder collections and the sync payload.

Each collection is encoded independently as a JSON array so that the
persisted form and the synced form are the same bytes.
"""

import logging
from typing import Any, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from noty_core.exceptions import CodecError, ErrorCode
from noty_core.models.schema import Folder, Note

logger = logging.getLogger(__name__)

_NOTES_ADAPTER = TypeAdapter(List[Note])
_FOLDERS_ADAPTER = TypeAdapter(List[Folder])

PAYLOAD_FOLDERS = "folders"
PAYLOAD_NOTES = "notes"
PAYLOAD_REVISION = "revision"


@runtime_checkable
class ContentCodec(Protocol):
    """Extracts plain text from a note's rich-document blob."""

    def decode(self, data: bytes) -> str:
        ...


class PlainTextCodec:
    """ContentCodec for notes whose content is UTF-8 text."""

    def decode(self, data: bytes) -> str:
        return data.decode("utf-8", errors="replace")


def encode_notes(notes: Sequence[Note]) -> bytes:
    """Encode a note collection to JSON bytes."""
    return _NOTES_ADAPTER.dump_json(list(notes))


def encode_folders(folders: Sequence[Folder]) -> bytes:
    """Encode a folder collection to JSON bytes."""
    return _FOLDERS_ADAPTER.dump_json(list(folders))


def decode_notes(data: bytes) -> List[Note]:
    """Decode a note collection.

    Raises:
        CodecError: If the bytes are not a valid encoded collection.
    """
    try:
        return _NOTES_ADAPTER.validate_json(data)
    except (PydanticValidationError, ValueError, TypeError) as e:
        raise CodecError(
            "Failed to decode notes",
            kind="notes",
            code=ErrorCode.CODEC_DECODE_FAILED,
            original_error=e,
        ) from e


def decode_folders(data: bytes) -> List[Folder]:
    """Decode a folder collection.

    Raises:
        CodecError: If the bytes are not a valid encoded collection.
    """
    try:
        return _FOLDERS_ADAPTER.validate_json(data)
    except (PydanticValidationError, ValueError, TypeError) as e:
        raise CodecError(
            "Failed to decode folders",
            kind="folders",
            code=ErrorCode.CODEC_DECODE_FAILED,
            original_error=e,
        ) from e


def build_payload(
    folders: Sequence[Folder], notes: Sequence[Note], revision: Optional[int] = None
) -> dict:
    """Build a full-snapshot sync payload."""
    payload: dict = {
        PAYLOAD_FOLDERS: encode_folders(folders),
        PAYLOAD_NOTES: encode_notes(notes),
    }
    if revision is not None:
        payload[PAYLOAD_REVISION] = revision
    return payload


def decode_payload(
    payload: Mapping[str, Any]
) -> Tuple[List[Folder], List[Note], Optional[int]]:
    """Decode a sync payload into (folders, notes, revision).

    Raises:
        CodecError: If either collection is missing or undecodable.
    """
    folders_data = payload.get(PAYLOAD_FOLDERS)
    notes_data = payload.get(PAYLOAD_NOTES)
    if not isinstance(folders_data, (bytes, bytearray)) or not isinstance(
        notes_data, (bytes, bytearray)
    ):
        raise CodecError(
            "Payload is missing encoded collections",
            kind="payload",
            code=ErrorCode.SYNC_PAYLOAD_INVALID,
        )
    revision = payload.get(PAYLOAD_REVISION)
    if revision is not None and not isinstance(revision, int):
        raise CodecError(
            "Payload revision is not an integer",
            kind="payload",
            code=ErrorCode.SYNC_PAYLOAD_INVALID,
        )
    return decode_folders(bytes(folders_data)), decode_notes(bytes(notes_data)), revision
