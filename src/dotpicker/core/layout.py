"""Layout classification for dotfile repositories.

Creators organize their dotfiles in very different ways. This module inspects
a checked-out repository root and assigns one :class:`Layout`, which the
resolver then uses to search for requested paths.

The layouts are not mutually exclusive (a stow-style repository usually also
has dotfiles at its root), so classification is a fixed priority cascade: the
first matching rule wins.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Tuple

from .types import Layout, RepositorySnapshot

logger = logging.getLogger(__name__)

# Root files that mark a chezmoi-managed repository
MANAGER_MARKERS = [".chezmoi.toml", ".chezmoi.yaml", ".chezmoi.json", ".chezmoiroot"]

# Version control metadata that never counts as a dotfile
VCS_ENTRIES = {".git", ".gitignore", ".github"}

# Top-level directories that are never stow packages
NON_PACKAGE_DIRS = {"scripts", "bin"}

CONFIG_DIR_NAME = "config"


def _list_dir(path: Path) -> List[Path]:
    try:
        return list(path.iterdir())
    except OSError:
        return []


def has_manager_marker(root: Path) -> bool:
    """Check for a chezmoi config or root pointer file."""
    return any((root / marker).is_file() for marker in MANAGER_MARKERS)


def looks_like_config_dir(path: Path) -> bool:
    """Check whether a directory holds at least one config-like entry."""
    return any(
        entry.name.startswith(".") or "config" in entry.name for entry in _list_dir(path)
    )


def package_dirs(root: Path) -> List[Path]:
    """Return top-level directories that look like stow packages."""
    packages = []
    for entry in _list_dir(root):
        if not entry.is_dir():
            continue
        if entry.name.startswith(".") or entry.name in NON_PACKAGE_DIRS:
            continue
        if looks_like_config_dir(entry):
            packages.append(entry)
    return packages


def is_package_based(root: Path) -> bool:
    return len(package_dirs(root)) >= 2


def has_config_dir(root: Path) -> bool:
    return (root / CONFIG_DIR_NAME).is_dir()


def has_root_dotfiles(root: Path) -> bool:
    """Check for dot-prefixed entries at the root, ignoring VCS metadata."""
    return any(
        entry.name.startswith(".") and entry.name not in VCS_ENTRIES for entry in _list_dir(root)
    )


# Evaluated in order, first match wins
CLASSIFIERS: List[Tuple[Callable[[Path], bool], Layout]] = [
    (has_manager_marker, Layout.MANAGED_SINGLE_ROOT),
    (is_package_based, Layout.PACKAGE_BASED),
    (has_config_dir, Layout.SINGLE_CONFIG_DIR),
    (has_root_dotfiles, Layout.FLAT),
]


def classify(root: Path) -> Layout:
    """Classify the organizational convention of a repository.

    Pure inspection with no side effects. An unreadable or missing root is
    classified as :attr:`Layout.UNKNOWN` rather than raising.

    Args:
        root: Path to the checked-out repository.

    Returns:
        Layout: The first layout whose rule matches.
    """
    root = Path(root)
    for predicate, layout in CLASSIFIERS:
        if predicate(root):
            logger.debug("Classified %s as %s", root, layout.value)
            return layout
    logger.debug("Couldn't classify %s", root)
    return Layout.UNKNOWN


def snapshot(root: Path) -> RepositorySnapshot:
    """Classify a repository and pair it with its root."""
    root = Path(root)
    return RepositorySnapshot(root=root, layout=classify(root))
