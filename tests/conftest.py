"""Shared fixtures for dotpicker tests."""

from pathlib import Path
from typing import Generator

import pytest

from dotpicker.core.applier import Applier
from dotpicker.core.backup import BackupManager
from dotpicker.core.config import Config
from tests.helpers import init_git_repo


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point HOME and the dotpicker state directory at temporary locations."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("DOTPICKER_HOME", str(tmp_path / "state"))
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """Fake home directory."""
    return tmp_path / "home"


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """Empty directory standing in for a creator's checkout."""
    path = tmp_path / "repo"
    path.mkdir()
    return path


@pytest.fixture
def config(tmp_path: Path, home: Path) -> Config:
    """Configuration rooted in the temporary state directory."""
    config = Config(base_dir=tmp_path / "state")
    config.load_from_dict({"home": str(home)})
    return config


@pytest.fixture
def backup_manager(tmp_path: Path, home: Path) -> BackupManager:
    """Backup manager writing into a temporary backup directory."""
    return BackupManager(tmp_path / "backups", home=home)


@pytest.fixture
def applier(backup_manager: BackupManager, home: Path) -> Applier:
    """Applier targeting the fake home directory."""
    return Applier(backup_manager, home=home)


@pytest.fixture
def origin_repo(tmp_path: Path) -> Generator[Path, None, None]:
    """Local git repository usable as a clone source."""
    yield init_git_repo(
        tmp_path / "origin",
        {".bashrc": "export EDITOR=nvim\n", "nvim/init.lua": "vim.o.number = true\n"},
    )
