"""Tests for the end-to-end dotfile pipeline."""

from pathlib import Path

import pytest

from dotpicker.core.config import Config
from dotpicker.core.errors import PathNotFoundError
from dotpicker.core.picker import DotfilePicker
from dotpicker.core.types import CreatorSpec, DiffKind, DotfileSpec, Layout
from tests.helpers import init_git_repo, make_tree


def test_resolve_preview_apply_rollback(config: Config, home: Path, repo: Path) -> None:
    """Test the full pipeline on a stow-style repository."""
    make_tree(
        repo,
        {
            "nvim/.config/nvim/init.lua": "vim.o.number = true\n",
            "nvim/.config/nvim/lua/keys.lua": "return {}\n",
            "tmux/.tmux.conf": "set -g mouse on\n",
        },
    )
    (home / ".tmux.conf").write_text("set -g prefix C-a\n")
    picker = DotfilePicker(config)

    snap, file_map = picker.resolve(repo, [".config/nvim", ".tmux.conf"])

    assert snap.layout is Layout.PACKAGE_BASED
    assert sorted(file_map.values()) == [
        ".config/nvim/init.lua",
        ".config/nvim/lua/keys.lua",
        ".tmux.conf",
    ]

    results = picker.preview(file_map)
    kinds = {r.target_path: r.kind for r in results}
    assert kinds[home / ".tmux.conf"] is DiffKind.MODIFIED
    assert kinds[home / ".config" / "nvim" / "init.lua"] is DiffKind.NEW

    report = picker.apply(file_map, "someone", "editor")
    assert report.ok
    assert (home / ".tmux.conf").read_text() == "set -g mouse on\n"
    assert (home / ".config" / "nvim" / "lua" / "keys.lua").exists()
    assert len(picker.backup_manager.list_all()) == 1

    rollback = picker.rollback(report, remove_created=True)
    assert rollback.ok
    assert (home / ".tmux.conf").read_text() == "set -g prefix C-a\n"
    assert not (home / ".config" / "nvim" / "init.lua").exists()


def test_resolve_uses_manual_selection(config: Config, repo: Path, tmp_path: Path) -> None:
    """Test that a manual selection stands in for an unresolvable path."""
    make_tree(repo, {".bashrc": "set -o vi\n"})
    picked = make_tree(tmp_path / "picked", {"init.lua": "-- picked\n"})
    picker = DotfilePicker(config)

    with pytest.raises(PathNotFoundError) as exc_info:
        picker.resolve(repo, [".config/nvim"])
    assert exc_info.value.requested_path == ".config/nvim"

    _, file_map = picker.resolve(repo, [".bashrc", ".config/nvim"], {".config/nvim": picked})

    assert file_map == {
        repo / ".bashrc": ".bashrc",
        picked / "init.lua": ".config/nvim/init.lua",
    }


def test_identical_files_preview(config: Config, home: Path, repo: Path) -> None:
    """Test that unchanged files preview as identical."""
    make_tree(repo, {".bashrc": "set -o vi\n"})
    (home / ".bashrc").write_text("set -o vi\n")
    picker = DotfilePicker(config)

    _, file_map = picker.resolve(repo, [".bashrc"])

    assert [r.kind for r in picker.preview(file_map)] == [DiffKind.IDENTICAL]


def test_diff_settings_come_from_config(config: Config) -> None:
    """Test that the diff engine uses configured limits."""
    config.load_from_dict({"diff_new_file_lines": 3, "diff_context_collapse": 4})

    picker = DotfilePicker(config)

    assert picker.diff_engine.new_file_lines == 3
    assert picker.diff_engine.collapse_threshold == 4
    assert picker.backup_manager.backup_dir == config.backup_dir


def test_resolve_dotfile_from_cache(config: Config) -> None:
    """Test resolving a registry dotfile inside a cached checkout."""
    init_git_repo(config.cache_dir / "someone", {"home/.gitconfig": "[user]\n"})
    picker = DotfilePicker(config)
    creator = CreatorSpec.from_dict({"id": "someone", "repo": "https://example.com/dots"})
    dotfile = DotfileSpec.from_dict({"id": "git", "paths": ["~/.gitconfig"]})

    snap, file_map = picker.resolve_dotfile(creator, dotfile)

    assert snap.root == config.cache_dir / "someone"
    assert file_map == {config.cache_dir / "someone" / "home" / ".gitconfig": "~/.gitconfig"}
    assert creator.name == "someone"
