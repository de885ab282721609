"""Tests for the application container and the command line."""
import json

import pytest

from noty_core.app import NotyApp
from noty_core.main import main
from noty_core.services.replica import ReplicaSyncManager
from noty_core.sync.channel import LoopbackChannel
from tests.fakes import MemoryBlobStore


class TestNotyApp:
    def test_startup_sweep_purges_expired_trash(self, engine, clock, test_config):
        app = NotyApp(engine=engine, blob_store=MemoryBlobStore(), clock=clock)
        note = app.store.add_note()
        clock.advance(days=-40)
        app.store.delete_note(note)
        clock.advance(days=40)
        app.shutdown()

        reopened = NotyApp(engine=engine, blob_store=MemoryBlobStore(), clock=clock)
        assert reopened.store.get_note(note.id) is None
        reopened.shutdown()

    def test_sync_wired_when_channel_given(self, engine, test_config):
        primary_end, replica_end = LoopbackChannel.pair()
        replica = ReplicaSyncManager(replica_end)
        app = NotyApp(engine=engine, blob_store=MemoryBlobStore(), channel=primary_end)
        assert app.bridge is not None
        app.store.add_folder("Work")
        app.store.add_note()
        app.shutdown()
        assert len(replica.notes) == 1
        assert len(replica.folders) == 1

    def test_sync_disabled(self, engine, test_config):
        primary_end, _ = LoopbackChannel.pair()
        app = NotyApp(
            engine=engine,
            blob_store=MemoryBlobStore(),
            channel=primary_end,
            sync_enabled=False,
        )
        assert app.bridge is None
        assert app.status()["sync"] is None
        app.shutdown()

    def test_periodic_sweep_from_config(self, engine, test_config, monkeypatch):
        monkeypatch.setattr(test_config, "sweep_interval", 3600.0)
        app = NotyApp(engine=engine, blob_store=MemoryBlobStore())
        assert app.sweeper.running
        app.shutdown()
        assert not app.sweeper.running

    def test_status(self, engine, test_config):
        app = NotyApp(engine=engine, blob_store=MemoryBlobStore())
        note = app.store.add_note()
        app.store.archive_note(note)
        status = app.status()
        assert status["notes"] == 1
        assert status["archived"] == 1
        assert status["trashed"] == 0
        assert "total_operations" in status["metrics"]
        app.shutdown()


@pytest.fixture
def cli(test_config, clean_logging, capsys):
    """Run the CLI against temp paths and return its stdout lines."""
    db = str(test_config.database_path)
    images = str(test_config.images_dir)

    def run(*argv):
        code = main(["--database-path", db, "--images-dir", images, *argv])
        out = capsys.readouterr().out
        return code, [line for line in out.splitlines() if line.strip()]

    return run


class TestCli:
    def test_add_and_list(self, cli):
        code, out = cli("add-note", "--title", "Groceries", "--text", "milk\neggs")
        assert code == 0
        code, out = cli("list")
        assert code == 0
        assert out[0] == "Today"
        assert any("Groceries" in line for line in out)

    def test_locked_folder_hidden_unless_all(self, cli, test_config):
        cli("add-note", "--folder", "Work", "--title", "Plan")
        app = NotyApp()
        folder = app.store.folders[0]
        app.store.lock_folder(folder)
        app.shutdown()

        _, out = cli("list")
        assert not any("Plan" in line for line in out)
        _, out = cli("list", "--all")
        assert any("Plan" in line for line in out)
        _, out = cli("list", "--folder", "Work", "--all")
        assert any("Plan" in line for line in out)

    def test_delete_restore_and_empty_trash(self, cli):
        _, out = cli("add-note", "--title", "Temp")
        note_id = out[0]
        assert cli("delete", note_id[:8])[0] == 0
        _, out = cli("list", "--deleted")
        assert any("Temp" in line and "days left" in line for line in out)
        assert cli("restore", note_id)[0] == 0
        assert cli("delete", note_id)[0] == 0
        _, out = cli("empty-trash")
        assert out == ["Purged 1 notes"]

    def test_unknown_note_id(self, cli):
        code, _ = cli("delete", "deadbeef")
        assert code == 1

    def test_sweep(self, cli):
        _, out = cli("sweep")
        assert out == ["Purged 0 notes"]

    def test_status(self, cli):
        cli("add-folder", "Work")
        _, out = cli("status")
        status = json.loads("\n".join(out))
        assert status["folders"] == 1

    def test_sync_demo(self, cli):
        cli("add-note", "--folder", "Work", "--title", "Synced")
        code, out = cli("sync-demo")
        assert code == 0
        assert out[0].startswith("Pulled revision")
        assert "1 notes" in out[0]
        assert any(line.strip() == "Work: 1 notes" for line in out)
