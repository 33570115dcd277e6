"""Tests for applying dotfiles."""

import stat
from pathlib import Path

from dotpicker.core.applier import Applier
from dotpicker.core.backup import BackupManager
from dotpicker.core.errors import ApplyError
from dotpicker.core.types import ApplyState
from tests.helpers import make_tree


def test_resolve_target_path(applier: Applier, home: Path) -> None:
    """Test how logical targets map onto the home directory."""
    assert applier.resolve_target_path("~/.bashrc") == home / ".bashrc"
    assert applier.resolve_target_path("~") == home
    assert applier.resolve_target_path(".config/nvim/init.lua") == home / ".config/nvim/init.lua"
    assert applier.resolve_target_path("/etc/hosts") == Path("/etc/hosts")
    assert applier.resolve_target_path("bin/tool") == home / "bin" / "tool"


def test_apply_new_file(applier: Applier, home: Path, repo: Path) -> None:
    """Test writing a file that didn't exist before."""
    source = make_tree(repo, {"vimrc": "set nu\n"}) / "vimrc"
    source.chmod(0o600)

    outcome = applier.apply(source, ".vimrc", "someone", "vim")

    assert outcome.success
    assert outcome.state is ApplyState.SUCCEEDED
    assert outcome.backup_path is None
    assert (home / ".vimrc").read_text() == "set nu\n"
    assert stat.S_IMODE((home / ".vimrc").stat().st_mode) == 0o600


def test_apply_backs_up_existing(
    applier: Applier, backup_manager: BackupManager, home: Path, repo: Path
) -> None:
    """Test that an existing target is backed up before it is replaced."""
    source = make_tree(repo, {"init.lua": "-- theirs\n"}) / "init.lua"
    target = home / ".config" / "nvim" / "init.lua"
    target.parent.mkdir(parents=True)
    target.write_text("-- mine\n")

    outcome = applier.apply(source, "~/.config/nvim/init.lua", "someone", "nvim")

    assert outcome.success
    assert outcome.backup_path is not None
    assert outcome.backup_path.read_text() == "-- mine\n"
    assert target.read_text() == "-- theirs\n"
    assert [r.backup_path for r in backup_manager.list_backups(target)] == [outcome.backup_path]


def test_apply_creates_parent_directories(applier: Applier, home: Path, repo: Path) -> None:
    """Test that missing parent directories are created."""
    source = make_tree(repo, {"config.fish": "set -x EDITOR nvim\n"}) / "config.fish"

    outcome = applier.apply(source, ".config/fish/config.fish", "someone", "fish")

    assert outcome.success
    assert (home / ".config" / "fish" / "config.fish").exists()


def test_apply_over_dangling_symlink(
    applier: Applier, backup_manager: BackupManager, home: Path, repo: Path
) -> None:
    """Test that a symlink to a missing file is replaced without a backup."""
    source = make_tree(repo, {"vimrc": "set nu\n"}) / "vimrc"
    target = home / ".vimrc"
    target.symlink_to(home / "gone" / "vimrc")

    outcome = applier.apply(source, ".vimrc", "someone", "vim")

    assert outcome.success
    assert outcome.backup_path is None
    assert not target.is_symlink()
    assert target.read_text() == "set nu\n"
    assert backup_manager.list_all() == []


def test_apply_multiple_isolates_failures(applier: Applier, home: Path, repo: Path) -> None:
    """Test that one failing file doesn't stop the others."""
    make_tree(repo, {"a": "a\n", "b": "b\n", "c": "c\n"})
    # A regular file where a directory is needed
    (home / "blocked").write_text("not a directory\n")
    file_map = {
        repo / "a": "~/.a",
        repo / "b": "~/blocked/b",
        repo / "c": "~/.config/c",
    }

    report = applier.apply_multiple(file_map, "someone", "mixed")

    assert not report.ok
    assert len(report.succeeded) == 2
    assert len(report.failed) == 1
    failed = report.failed[0]
    assert failed.target_path == home / "blocked" / "b"
    assert isinstance(failed.error, ApplyError)
    assert (home / ".a").read_text() == "a\n"
    assert (home / ".config" / "c").read_text() == "c\n"


def test_apply_repairs_after_write_failure(
    applier: Applier, home: Path, repo: Path
) -> None:
    """Test that a failed write restores the backed-up target."""
    target = home / ".zshrc"
    target.write_text("# mine\n")

    outcome = applier.apply(repo / "missing-source", ".zshrc", "someone", "zsh")

    assert not outcome.success
    assert outcome.state is ApplyState.FAILED
    assert outcome.repaired
    assert outcome.backup_path is not None
    assert target.read_text() == "# mine\n"


def test_apply_without_backup_is_not_repaired(applier: Applier, repo: Path) -> None:
    """Test that a failed write of a new file has nothing to repair."""
    outcome = applier.apply(repo / "missing-source", ".zshrc", "someone", "zsh")

    assert not outcome.success
    assert not outcome.repaired
    assert outcome.backup_path is None


def test_dry_run_writes_nothing(applier: Applier, home: Path, repo: Path) -> None:
    """Test that a dry run only resolves targets."""
    make_tree(repo, {"a": "a\n"})

    report = applier.apply_multiple({repo / "a": "~/.a"}, "someone", "x", dry_run=True)

    assert [o.state for o in report.outcomes] == [ApplyState.PENDING]
    assert report.outcomes[0].target_path == home / ".a"
    assert report.ok
    assert not (home / ".a").exists()


def test_rollback_restores_backups(applier: Applier, home: Path, repo: Path) -> None:
    """Test that rollback puts back every backed-up file."""
    make_tree(repo, {"bashrc": "theirs\n", "zshrc": "theirs\n"})
    (home / ".bashrc").write_text("mine\n")
    report = applier.apply_multiple(
        {repo / "bashrc": ".bashrc", repo / "zshrc": ".zshrc"}, "someone", "shells"
    )
    assert report.ok

    rollback = applier.rollback(report.outcomes)

    assert rollback.ok
    assert rollback.restored == 1
    assert (home / ".bashrc").read_text() == "mine\n"
    assert (home / ".zshrc").exists()


def test_rollback_removes_created_files(applier: Applier, home: Path, repo: Path) -> None:
    """Test that rollback can also delete files the apply created."""
    make_tree(repo, {"zshrc": "theirs\n"})
    report = applier.apply_multiple({repo / "zshrc": ".zshrc"}, "someone", "zsh")

    rollback = applier.rollback(report.outcomes, remove_created=True)

    assert rollback.restored == 1
    assert not (home / ".zshrc").exists()


def test_rollback_counts_failures(applier: Applier, home: Path, repo: Path) -> None:
    """Test that a missing backup is counted instead of raised."""
    make_tree(repo, {"bashrc": "theirs\n"})
    (home / ".bashrc").write_text("mine\n")
    report = applier.apply_multiple({repo / "bashrc": ".bashrc"}, "someone", "bash")
    backup_path = report.outcomes[0].backup_path
    assert backup_path is not None
    backup_path.unlink()

    rollback = applier.rollback(report.outcomes)

    assert not rollback.ok
    assert rollback.failed == 1
    assert rollback.restored == 0
