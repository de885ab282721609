"""Data models for the Noty core."""

import datetime
import re
import uuid
from datetime import timezone
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

# Image filenames are blob-store keys: a single safe path component
SAFE_FILENAME_PATTERN = re.compile(r"^[a-zA-Z0-9_\-][a-zA-Z0-9_\-.]*$")

DEFAULT_NOTE_TITLE = "New Note"


def validate_safe_filename(value: str, field_name: str = "filename") -> str:
    """Validate that a value is safe to use as a blob-store key.

    Rejects path separators, parent directory references and anything
    outside alphanumerics, underscores, hyphens and dots.

    Args:
        value: The string to validate
        field_name: Name of the field for error messages

    Returns:
        The validated value (unchanged)

    Raises:
        ValueError: If the value contains unsafe characters
    """
    if not value:
        raise ValueError(f"{field_name} cannot be empty")

    if ".." in value:
        raise ValueError(f"{field_name} cannot contain '..' (path traversal)")

    if "/" in value or "\\" in value:
        raise ValueError(f"{field_name} cannot contain path separators")

    if not SAFE_FILENAME_PATTERN.match(value):
        raise ValueError(
            f"{field_name} contains invalid characters. "
            "Only alphanumeric characters, underscores, hyphens and dots are allowed."
        )

    return value


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current time with UTC timezone info attached.
    """
    return datetime.datetime.now(timezone.utc)


def ensure_timezone_aware(dt_value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    """Ensure a datetime is timezone-aware, treating naive datetimes as UTC.

    Payloads written by older clients may carry naive timestamps; those
    are assumed to be UTC.
    """
    if dt_value is None:
        return None
    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value


class SortOrder(str, Enum):
    """Direction of a list sort."""

    ASCENDING = "ascending"
    DESCENDING = "descending"


class NoteSortField(str, Enum):
    """Fields the main note list can be sorted by."""

    LAST_EDITED = "last_edited"
    TITLE = "title"


class ArchivedNoteSortField(str, Enum):
    """Fields the archive view can be sorted by."""

    DATE_ARCHIVED = "date_archived"
    TITLE = "title"


class FolderSortField(str, Enum):
    """Fields the folder list can be sorted by."""

    TITLE = "title"
    CREATED_DATE = "created_date"


class _Record(BaseModel):
    """Immutable record; edits produce a validated copy."""

    model_config = {"extra": "forbid", "frozen": True}

    def with_changes(self, **changes: Any):
        """Return a validated copy with ``changes`` applied.

        Unlike ``model_copy(update=...)`` this re-runs validation, so an
        edit can never produce a record that breaks its invariants.
        """
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)


class NoteImage(_Record):
    """Metadata for an image attached to a note.

    The bytes live in the blob store under (note id, filename).
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4, description="Unique image ID")
    filename: str = Field(..., description="Blob-store key, unique within the note")
    description: str = Field(default="", description="User-supplied caption")

    @field_validator("filename")
    @classmethod
    def validate_filename(cls, v: str) -> str:
        """Validate that the filename is a safe blob-store key."""
        return validate_safe_filename(v, "Image filename")


class Folder(_Record):
    """A user folder.

    Folders hold no reference to their notes; membership is resolved by
    scanning notes for a matching ``folder_id``.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4, description="Unique folder ID")
    name: str = Field(..., description="Display name")
    created_date: datetime.datetime = Field(
        default_factory=utc_now, description="When the folder was created (UTC)"
    )
    is_locked: bool = Field(default=False, description="Hide members behind auth")

    @field_validator("created_date")
    @classmethod
    def validate_created_date(cls, v: datetime.datetime) -> datetime.datetime:
        return ensure_timezone_aware(v)


class Note(_Record):
    """A note and its visibility state.

    ``content`` is an opaque rich-document blob; only an external codec
    knows how to read it.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4, description="Unique note ID")
    title: str = Field(default=DEFAULT_NOTE_TITLE, description="Title of the note")
    content: bytes = Field(default=b"", description="Encoded rich-text document")
    last_edited: datetime.datetime = Field(
        default_factory=utc_now, description="When the note was last edited (UTC)"
    )
    folder_id: Optional[uuid.UUID] = Field(
        default=None, description="Owning folder, None when unfiled"
    )
    is_deleted: bool = Field(default=False)
    deleted_date: Optional[datetime.datetime] = Field(default=None)
    is_pinned: bool = Field(default=False)
    is_locked: bool = Field(default=False)
    is_archived: bool = Field(default=False)
    archived_date: Optional[datetime.datetime] = Field(default=None)
    images: List[NoteImage] = Field(default_factory=list)

    model_config = {
        "extra": "forbid",
        "frozen": True,
        "ser_json_bytes": "base64",
        "val_json_bytes": "base64",
    }

    @field_validator("last_edited", "deleted_date", "archived_date")
    @classmethod
    def validate_timestamps(
        cls, v: Optional[datetime.datetime]
    ) -> Optional[datetime.datetime]:
        return ensure_timezone_aware(v)

    @model_validator(mode="after")
    def _check_state(self) -> "Note":
        """Deleted/archived flags and their dates must travel together."""
        if self.is_deleted != (self.deleted_date is not None):
            raise ValueError("deleted_date must be set exactly when is_deleted is true")
        if self.is_archived != (self.archived_date is not None):
            raise ValueError(
                "archived_date must be set exactly when is_archived is true"
            )
        image_ids = [img.id for img in self.images]
        if len(image_ids) != len(set(image_ids)):
            raise ValueError("image ids must be unique within a note")
        filenames = [img.filename for img in self.images]
        if len(filenames) != len(set(filenames)):
            raise ValueError("image filenames must be unique within a note")
        return self

    def find_image(self, image_id: uuid.UUID) -> Optional[NoteImage]:
        """Return the attached image with ``image_id``, if any."""
        for image in self.images:
            if image.id == image_id:
                return image
        return None


class NoteSortOptions(BaseModel):
    """Persisted sort preference for the main note list."""

    field: NoteSortField = NoteSortField.LAST_EDITED
    order: SortOrder = SortOrder.DESCENDING
    group_by_date: bool = True


class ArchivedNoteSortOptions(BaseModel):
    """Persisted sort preference for the archive view."""

    field: ArchivedNoteSortField = ArchivedNoteSortField.DATE_ARCHIVED
    order: SortOrder = SortOrder.DESCENDING


class FolderSortOptions(BaseModel):
    """Persisted sort preference for the folder list."""

    field: FolderSortField = FolderSortField.TITLE
    order: SortOrder = SortOrder.ASCENDING
