"""SQLAlchemy database models for the Noty core."""
import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, LargeBinary, String, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from noty_core.config import config

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBEntry(Base):
    """A persisted value: one encoded collection or preference record."""
    __tablename__ = "kv_entries"
    key = Column(String(255), primary_key=True)
    value = Column(LargeBinary, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.datetime.now(datetime.timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        """Return string representation of entry."""
        return f"<Entry(key='{self.key}', size={len(self.value or b'')})>"


def init_db(db_url: Optional[str] = None) -> Engine:
    """Initialize the database with hardened configuration.

    Applies the usual SQLite settings for crash resilience:
    - WAL (Write-Ahead Logging) mode for atomic writes
    - NORMAL synchronous mode
    - QueuePool with pre-ping for file databases

    In-memory URLs get a StaticPool so every session sees the same database.
    """
    url = db_url or config.get_db_url()
    in_memory = url in ("sqlite://", "sqlite:///:memory:")

    if in_memory:
        engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False},
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.close()

    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine):
    """Get a session factory for the database."""
    return sessionmaker(bind=engine, expire_on_commit=False)
