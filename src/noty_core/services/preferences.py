"""Persisted sort preferences for the note, archive and folder lists."""

import logging
from typing import Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from noty_core.exceptions import StorageError
from noty_core.models.schema import (
    ArchivedNoteSortOptions,
    FolderSortOptions,
    NoteSortOptions,
)
from noty_core.storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

NOTE_SORT_KEY = "noty_note_sort_options"
ARCHIVED_SORT_KEY = "noty_archived_sort_options"
FOLDER_SORT_KEY = "noty_folder_sort_options"

_Options = TypeVar("_Options", bound=BaseModel)


class SortPreferences:
    """Reads and writes the three sort option records.

    Missing or unreadable values fall back to the record's defaults.
    """

    def __init__(self, kv_store: KeyValueStore):
        self._kv_store = kv_store

    def _load(self, key: str, model: Type[_Options]) -> _Options:
        try:
            data = self._kv_store.load(key)
        except StorageError as e:
            logger.warning("Could not read %s, using defaults: %s", key, e)
            return model()
        if data is None:
            return model()
        try:
            return model.model_validate_json(data)
        except PydanticValidationError as e:
            logger.warning("Could not decode %s, using defaults: %s", key, e)
            return model()

    def _save(self, key: str, options: BaseModel) -> bool:
        try:
            self._kv_store.save(key, options.model_dump_json().encode("utf-8"))
        except StorageError as e:
            logger.error("Failed to save %s: %s", key, e)
            return False
        return True

    @property
    def note_sort(self) -> NoteSortOptions:
        return self._load(NOTE_SORT_KEY, NoteSortOptions)

    @note_sort.setter
    def note_sort(self, options: NoteSortOptions) -> None:
        self._save(NOTE_SORT_KEY, options)

    @property
    def archived_sort(self) -> ArchivedNoteSortOptions:
        return self._load(ARCHIVED_SORT_KEY, ArchivedNoteSortOptions)

    @archived_sort.setter
    def archived_sort(self, options: ArchivedNoteSortOptions) -> None:
        self._save(ARCHIVED_SORT_KEY, options)

    @property
    def folder_sort(self) -> FolderSortOptions:
        return self._load(FOLDER_SORT_KEY, FolderSortOptions)

    @folder_sort.setter
    def folder_sort(self, options: FolderSortOptions) -> None:
        self._save(FOLDER_SORT_KEY, options)
