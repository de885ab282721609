"""Configuration module for the Noty core."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from noty_core import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: survives reinstalls, lives alongside the data
_USER_ENV = Path.home() / ".noty" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class NotyConfig(BaseModel):
    """Configuration for the note store, retention sweeper and sync bridge."""

    # Base directory for relative paths
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTY_BASE_DIR", "."))
    )
    # Key-value persistence (SQLite)
    database_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("NOTY_DATABASE_PATH", "data/db/noty.db")
        )
    )
    # Image blobs live under <images_dir>/<note id>/<filename>
    images_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTY_IMAGES_DIR", "data/images"))
    )
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTY_LOG_DIR")) if os.getenv("NOTY_LOG_DIR") else None
        )
    )
    # Persistence keys for the two encoded collections
    notes_key: str = Field(
        default_factory=lambda: os.getenv("NOTY_NOTES_KEY", "noty_notes")
    )
    folders_key: str = Field(
        default_factory=lambda: os.getenv("NOTY_FOLDERS_KEY", "noty_folders")
    )
    # Soft-deleted notes older than this are purged by the sweeper
    retention_days: int = Field(
        default_factory=lambda: int(os.getenv("NOTY_RETENTION_DAYS", "30"))
    )
    # Seconds between periodic sweeps; 0 sweeps only at startup
    sweep_interval: float = Field(
        default_factory=lambda: float(os.getenv("NOTY_SWEEP_INTERVAL", "0"))
    )
    # Replica push throttling
    sync_enabled: bool = Field(
        default_factory=lambda: _env_flag("NOTY_SYNC_ENABLED", "true")
    )
    sync_min_interval: float = Field(
        default_factory=lambda: float(os.getenv("NOTY_SYNC_MIN_INTERVAL", "1.0"))
    )
    sync_margin: float = Field(
        default_factory=lambda: float(os.getenv("NOTY_SYNC_MARGIN", "0.05"))
    )
    app_version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_intervals(self) -> "NotyConfig":
        """Reject settings that would disable retention or the throttle."""
        if self.retention_days < 1:
            raise ValueError("retention_days must be >= 1")
        if self.sweep_interval < 0:
            raise ValueError("sweep_interval must be >= 0")
        if self.sync_min_interval <= 0:
            raise ValueError("sync_min_interval must be > 0")
        if self.sync_margin < 0:
            raise ValueError("sync_margin must be >= 0")
        if self.notes_key == self.folders_key:
            raise ValueError("notes_key and folders_key must differ")
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_db_url(self) -> str:
        """Get the database URL for SQLite."""
        db_path = self.get_absolute_path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def get_images_dir(self) -> Path:
        """Get the absolute image blob root, creating it if needed."""
        images_dir = self.get_absolute_path(self.images_dir)
        images_dir.mkdir(parents=True, exist_ok=True)
        return images_dir


# Create a global config instance
config = NotyConfig()
