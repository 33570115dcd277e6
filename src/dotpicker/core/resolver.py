"""Path resolution for dotfile repositories.

A dotfile is requested by its logical path (``.config/nvim``, ``~/.bashrc``),
which says where it lives on the target machine, not where it lives inside a
creator's repository. :func:`resolve` maps a logical path to a real file or
directory by trying, in order:

1. the exact path under the repository root,
2. the basename without its leading dot, directly under the root,
3. known directory aliases (``.config`` -> ``xdg_config``/``config``,
   ``~`` -> ``home``),
4. a search specific to the repository's :class:`~dotpicker.core.types.Layout`.

:class:`PathResolver` expands resolved directories into a
:data:`~dotpicker.core.types.ResolvedFileMap`, materializing uninitialized
submodules when a resolved directory turns out to be an empty placeholder.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Tuple

from .errors import PathNotFoundError
from .submodules import SubmoduleMaterializer, is_empty_directory
from .types import Layout, ResolvedFileMap

logger = logging.getLogger(__name__)

# Ordered alias groups, tried in order for each pattern
PATH_ALIASES: List[Tuple[str, List[str]]] = [
    (".config", ["xdg_config", "config"]),
    ("~", ["home"]),
]

VCS_DIR = ".git"
MANAGER_PREFIX = "dot_"
MANAGER_ROOT_POINTER = ".chezmoiroot"


def _join(root: Path, logical_path: str) -> Path:
    # Absolute logical paths must still land inside the repository
    return root / logical_path.lstrip("/")


def _manager_name(name: str) -> str:
    if name.startswith("."):
        return MANAGER_PREFIX + name[1:]
    return name


def _find_managed(root: Path, logical_path: str) -> Optional[Path]:
    """Look up a path using chezmoi's ``dot_`` naming convention."""
    pure = PurePosixPath(logical_path.lstrip("/"))
    if not pure.name.startswith("."):
        return None

    candidates = [_join(root, str(pure.parent / _manager_name(pure.name)))]

    # chezmoi also renames every dotted directory along the way
    converted = PurePosixPath(*[_manager_name(part) for part in pure.parts])
    candidates.append(_join(root, str(converted)))

    pointer = root / MANAGER_ROOT_POINTER
    if pointer.is_file():
        try:
            source_dir = pointer.read_text().strip()
        except OSError:
            source_dir = ""
        if source_dir:
            candidates.append(_join(root / source_dir, str(converted)))

    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _find_in_packages(root: Path, logical_path: str) -> Optional[Path]:
    """Search every top-level package directory for the logical path."""
    try:
        entries = sorted(root.iterdir())
    except OSError:
        return None

    for entry in entries:
        if not entry.is_dir() or entry.name.startswith("."):
            continue
        candidate = _join(entry, logical_path)
        if candidate.exists():
            return candidate
    return None


def resolve(root: Path, logical_path: str, layout: Layout) -> Tuple[Optional[Path], bool]:
    """Find a logical path inside a repository.

    Args:
        root: Repository root.
        logical_path: Path as declared by the registry, e.g. ``.config/nvim``.
        layout: Classified layout of the repository.

    Returns:
        Tuple[Optional[Path], bool]: The located file or directory and True,
        or ``(None, False)`` when nothing matched.
    """
    root = Path(root)

    exact = _join(root, logical_path)
    if exact.exists():
        return exact, True

    base = PurePosixPath(logical_path).name
    if base.startswith(".") and len(base) > 1:
        undotted = root / base[1:]
        if undotted.exists():
            logger.debug("Resolved %s without its leading dot: %s", logical_path, undotted)
            return undotted, True

    for pattern, replacements in PATH_ALIASES:
        if pattern not in logical_path:
            continue
        for replacement in replacements:
            alias = _join(root, logical_path.replace(pattern, replacement, 1))
            if alias.exists():
                logger.debug("Resolved %s through alias %s: %s", logical_path, replacement, alias)
                return alias, True

    found: Optional[Path] = None
    if layout is Layout.PACKAGE_BASED:
        found = _find_in_packages(root, logical_path)
    elif layout is Layout.MANAGED_SINGLE_ROOT:
        found = _find_managed(root, logical_path)
    elif layout is Layout.SINGLE_CONFIG_DIR:
        candidate = _join(root / "config", logical_path)
        if candidate.exists():
            found = candidate

    if found is not None:
        logger.debug("Resolved %s via %s layout: %s", logical_path, layout.value, found)
        return found, True

    logger.debug("Couldn't resolve %s in %s (%s)", logical_path, root, layout.value)
    return None, False


def _target_for(logical_path: str, relative: str) -> str:
    return str(PurePosixPath(logical_path) / PurePosixPath(*Path(relative).parts))


def collect_files(source: Path, logical_path: str, skip_vcs: bool = True) -> ResolvedFileMap:
    """Expand a resolved source into a file map.

    A single file maps to the logical path itself. A directory maps every
    contained file to ``<logical_path>/<relative path>``. With ``skip_vcs``,
    ``.git`` directories are pruned entirely and ``.git`` placeholder files
    are ignored.

    Raises:
        OSError: If the directory can't be walked.
    """
    source = Path(source)
    if not source.is_dir():
        return {Path(os.path.abspath(source)): logical_path}

    def on_error(error: OSError) -> None:
        raise error

    file_map: ResolvedFileMap = {}
    for dirpath, dirnames, filenames in os.walk(source, onerror=on_error):
        if skip_vcs:
            dirnames[:] = [d for d in dirnames if d != VCS_DIR]
        dirnames.sort()
        for filename in sorted(filenames):
            if skip_vcs and filename == VCS_DIR:
                continue
            path = Path(dirpath) / filename
            relative = os.path.relpath(path, source)
            file_map[Path(os.path.abspath(path))] = _target_for(logical_path, relative)
    return file_map


def map_selected_directory(selected: Path, requested_path: str) -> ResolvedFileMap:
    """Map a manually chosen file or directory onto the requested logical path."""
    return collect_files(selected, requested_path, skip_vcs=True)


class PathResolver:
    """Resolve a dotfile's logical paths into a file map.

    Attributes:
        root (Path): Repository root.
        layout (Layout): Classified layout of the repository.
        materializer (Optional[SubmoduleMaterializer]): Used to clone
            submodules when a resolved directory is an empty placeholder.
        max_depth (int): Submodule recursion limit.
    """

    def __init__(
        self,
        root: Path,
        layout: Layout,
        materializer: Optional[SubmoduleMaterializer] = None,
        max_depth: int = 3,
    ) -> None:
        self.root = Path(root)
        self.layout = layout
        self.materializer = materializer
        self.max_depth = max_depth
        self._materialized = False

    def resolve_path(self, logical_path: str) -> ResolvedFileMap:
        """Resolve one logical path into its files.

        Raises:
            PathNotFoundError: If the path can't be located, or it is a
                directory that is still empty after submodule materialization.
        """
        source, found = resolve(self.root, logical_path, self.layout)
        if not found or source is None:
            raise PathNotFoundError(logical_path, self.root)

        file_map = collect_files(source, logical_path)
        if file_map or not source.is_dir():
            return file_map

        if self._try_materialize(source):
            file_map = collect_files(source, logical_path)

        if not file_map:
            logger.warning("Resolved %s to %s but it contains no files", logical_path, source)
            raise PathNotFoundError(logical_path, self.root)
        return file_map

    def resolve_paths(self, logical_paths: Iterable[str]) -> ResolvedFileMap:
        """Resolve every logical path of a dotfile, stopping at the first miss."""
        file_map: ResolvedFileMap = {}
        for logical_path in logical_paths:
            file_map.update(self.resolve_path(logical_path))
        return file_map

    def _try_materialize(self, directory: Path) -> bool:
        if self.materializer is None or self._materialized:
            return False
        try:
            if not is_empty_directory(directory):
                return False
        except OSError:
            return False

        logger.info("%s looks like an uninitialized submodule, resolving submodules", directory)
        self._materialized = True
        result = self.materializer.materialize(self.root, self.max_depth)
        return result.success
