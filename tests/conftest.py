"""Common test fixtures for the Noty core."""

import logging

import pytest

from noty_core.config import config
from noty_core.models.db_models import init_db
from noty_core.observability import ROOT_LOGGER_NAME, metrics
from noty_core.services.note_store import NoteStore
from noty_core.storage.kv_store import SqlKeyValueStore
from tests.fakes import FakeClock, MemoryBlobStore


@pytest.fixture(params=["asyncio"])
def anyio_backend(request):
    """Restrict anyio tests to asyncio only (trio is not installed)."""
    return request.param


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Point every configured path at a temp dir (auto-restored even on crash)."""
    monkeypatch.setattr(config, "base_dir", tmp_path)
    monkeypatch.setattr(config, "database_path", tmp_path / "db" / "noty.db")
    monkeypatch.setattr(config, "images_dir", tmp_path / "images")
    monkeypatch.setattr(config, "log_dir", tmp_path / "logs")
    monkeypatch.setattr(config, "sweep_interval", 0.0)
    yield config


@pytest.fixture
def engine():
    """A real in-memory SQLite engine with the schema created."""
    engine = init_db("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def kv_store(engine):
    return SqlKeyValueStore(engine)


@pytest.fixture
def blob_store():
    return MemoryBlobStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def persist_calls():
    """A list that grows by one on every successful persist."""
    return []


@pytest.fixture
def store(kv_store, blob_store, clock, persist_calls):
    """A NoteStore over real SQLite, in-memory blobs and a fake clock."""
    return NoteStore(
        kv_store,
        blob_store,
        on_persist=lambda: persist_calls.append(1),
        clock=clock,
    )


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield


@pytest.fixture
def clean_logging():
    """Remove handlers installed on the package logger by a test."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    before = list(root.handlers)
    yield
    for handler in list(root.handlers):
        if handler not in before:
            root.removeHandler(handler)
            handler.close()
