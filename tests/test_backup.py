"""Tests for backup functionality."""

import json
import re
import stat
from datetime import datetime, timezone
from pathlib import Path

import pytest

from dotpicker.core import backup as backup_module
from dotpicker.core.backup import INDEX_NAME, BackupManager
from dotpicker.core.errors import BackupError


def test_backup_nonexistent_returns_none(backup_manager: BackupManager, home: Path) -> None:
    """Test that backing up a missing file does nothing."""
    assert backup_manager.backup(home / ".bashrc", "someone", "bash") is None
    assert not backup_manager.index_path.exists()


def test_backup_dangling_symlink_returns_none(
    backup_manager: BackupManager, home: Path
) -> None:
    """Test that a symlink to a missing file has nothing to back up."""
    (home / ".vimrc").symlink_to(home / "gone" / "vimrc")

    assert backup_manager.backup(home / ".vimrc", "someone", "vim") is None
    assert not backup_manager.index_path.exists()


def test_backup_name_and_location(backup_manager: BackupManager, home: Path) -> None:
    """Test that backups mirror the original's location relative to home."""
    original = home / ".config" / "nvim" / "init.lua"
    original.parent.mkdir(parents=True)
    original.write_text("-- mine\n")

    record = backup_manager.backup(original, "someone", "nvim")

    assert record is not None
    assert record.backup_path.parent == backup_manager.backup_dir / ".config" / "nvim"
    assert re.fullmatch(r"init\.lua_\d{8}_\d{6}_nvim\.bak", record.backup_path.name)
    assert record.backup_path.read_text() == "-- mine\n"
    assert record.original_path == original
    assert (record.creator_id, record.dotfile_id) == ("someone", "nvim")


def test_backup_outside_home(backup_manager: BackupManager, tmp_path: Path) -> None:
    """Test that files outside home are backed up directly in the backup dir."""
    original = tmp_path / "elsewhere" / "hosts"
    original.parent.mkdir()
    original.write_text("127.0.0.1 localhost\n")

    record = backup_manager.backup(original, "someone", "hosts")

    assert record is not None
    assert record.backup_path.parent == backup_manager.backup_dir


def test_backup_restore_preserves_content_and_mode(
    backup_manager: BackupManager, home: Path
) -> None:
    """Test that restoring reproduces the original bytes and permissions."""
    original = home / ".ssh_config"
    original.write_bytes(b"Host *\n\tServerAliveInterval 60\n")
    original.chmod(0o640)

    record = backup_manager.backup(original, "someone", "ssh")
    assert record is not None
    original.write_text("overwritten\n")
    original.chmod(0o644)

    backup_manager.restore(record.backup_path, original)

    assert original.read_bytes() == b"Host *\n\tServerAliveInterval 60\n"
    assert stat.S_IMODE(original.stat().st_mode) == 0o640


def test_restore_creates_parent_directories(backup_manager: BackupManager, home: Path) -> None:
    """Test that restoring recreates a removed parent directory."""
    original = home / ".config" / "git" / "config"
    original.parent.mkdir(parents=True)
    original.write_text("[user]\n")
    record = backup_manager.backup(original, "someone", "git")
    assert record is not None

    original.unlink()
    original.parent.rmdir()
    backup_manager.restore(record.backup_path, original)

    assert original.read_text() == "[user]\n"


def test_restore_missing_backup(backup_manager: BackupManager, home: Path) -> None:
    """Test that restoring a missing backup raises BackupError."""
    with pytest.raises(BackupError, match="Backup doesn't exist"):
        backup_manager.restore(backup_manager.backup_dir / "gone.bak", home / ".bashrc")


def test_index_records(backup_manager: BackupManager, home: Path) -> None:
    """Test that every backup is appended to the JSON index."""
    bashrc = home / ".bashrc"
    zshrc = home / ".zshrc"
    bashrc.write_text("bash\n")
    zshrc.write_text("zsh\n")

    backup_manager.backup(bashrc, "alice", "bash")
    backup_manager.backup(zshrc, "bob", "zsh")

    data = json.loads((backup_manager.backup_dir / INDEX_NAME).read_text())
    assert [entry["original_path"] for entry in data] == [str(bashrc), str(zshrc)]
    assert set(data[0]) == {
        "original_path",
        "backup_path",
        "timestamp",
        "creator_id",
        "dotfile_id",
    }

    assert len(backup_manager.list_all()) == 2
    only_zsh = backup_manager.list_backups(zshrc)
    assert [r.creator_id for r in only_zsh] == ["bob"]
    latest = backup_manager.latest_backup(bashrc)
    assert latest is not None
    assert latest.dotfile_id == "bash"
    assert backup_manager.latest_backup(home / ".profile") is None


def test_corrupt_index_is_ignored(backup_manager: BackupManager, home: Path) -> None:
    """Test that an unreadable index is treated as empty."""
    backup_manager.backup_dir.mkdir(parents=True)
    backup_manager.index_path.write_text("{not json")
    original = home / ".bashrc"
    original.write_text("bash\n")

    assert backup_manager.list_all() == []
    record = backup_manager.backup(original, "someone", "bash")

    assert record is not None
    assert [r.backup_path for r in backup_manager.list_all()] == [record.backup_path]


def test_index_accepts_rfc3339_timestamps(backup_manager: BackupManager) -> None:
    """Test that nanosecond timestamps with a Z suffix are read."""
    backup_manager.backup_dir.mkdir(parents=True)
    backup_manager.index_path.write_text(
        json.dumps(
            [
                {
                    "original_path": "/home/user/.bashrc",
                    "backup_path": "/backups/.bashrc_20250102_030405_bash.bak",
                    "timestamp": "2025-01-02T03:04:05.123456789Z",
                    "creator_id": "someone",
                    "dotfile_id": "bash",
                },
                {"original_path": "/broken"},
            ]
        )
    )

    records = backup_manager.list_all()

    assert len(records) == 1
    assert records[0].timestamp == datetime(2025, 1, 2, 3, 4, 5, 123456, tzinfo=timezone.utc)


def test_same_second_backups_do_not_collide(
    backup_manager: BackupManager, home: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that two backups in the same second get distinct names."""

    class FrozenDatetime(datetime):
        @classmethod
        def now(cls, tz=None):  # type: ignore[override]
            return datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    monkeypatch.setattr(backup_module, "datetime", FrozenDatetime)
    original = home / ".bashrc"
    original.write_text("first\n")
    first = backup_manager.backup(original, "someone", "bash")
    original.write_text("second\n")
    second = backup_manager.backup(original, "someone", "bash")

    stamp = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc).astimezone().strftime(
        "%Y%m%d_%H%M%S"
    )
    assert first is not None and second is not None
    assert first.backup_path.name == f".bashrc_{stamp}_bash.bak"
    assert second.backup_path.name == f".bashrc_{stamp}_bash-1.bak"
    assert first.backup_path.read_text() == "first\n"
    assert second.backup_path.read_text() == "second\n"
