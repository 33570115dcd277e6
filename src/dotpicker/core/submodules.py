"""Submodule detection and materialization.

Creators often vendor parts of their configuration (an nvim distribution, a
zsh theme) as git submodules. A plain checkout leaves those as empty
placeholder directories. This module reads ``.gitmodules`` and clones each
placeholder directly, recursing into nested submodules up to a fixed depth.

Materialization is best-effort: private or unreachable submodules are common,
so a failing entry is recorded and skipped, and a level only counts as failed
when none of its entries resolved.
"""

from __future__ import annotations

import logging
import os
import re
import threading
from pathlib import Path
from typing import Callable, List, Optional

from .errors import GitCancelledError, GitError, SubmoduleError
from .repository import clone_repo
from .types import (
    MaterializeResult,
    SubmoduleConfig,
    SubmoduleOutcome,
    SubmoduleStatus,
)

logger = logging.getLogger(__name__)

GITMODULES = ".gitmodules"
PLACEHOLDER = ".git"

_SECTION = re.compile(r"^\[\s*(\S+)")
_KEY_VALUE = re.compile(r"^(path|url)\s*=\s*(.*)$")
_SCP_URL = re.compile(r"^git@([^:/]+):(.+)$")
_SSH_URL = re.compile(r"^ssh://(?:[^@/]+@)?([^/:]+)(?::\d+)?/(.+)$")

# clone(url, target, cancel) raising GitError or OSError on failure
CloneFunc = Callable[[str, Path, Optional[threading.Event]], object]


def parse_gitmodules(root: Path) -> List[SubmoduleConfig]:
    """Parse the ``.gitmodules`` descriptor of a repository.

    Entries are returned in file order. Entries missing either ``path`` or
    ``url`` are dropped.

    Args:
        root: Repository root.

    Returns:
        List[SubmoduleConfig]: Declared submodules; empty when there is no
        descriptor.

    Raises:
        OSError: If the descriptor exists but can't be read.
    """
    descriptor = Path(root) / GITMODULES
    try:
        text = descriptor.read_text()
    except FileNotFoundError:
        return []

    submodules: List[SubmoduleConfig] = []
    current: Optional[dict] = None

    def flush() -> None:
        if current and current.get("path") and current.get("url"):
            submodules.append(SubmoduleConfig(path=current["path"], url=current["url"]))

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith(("#", ";")):
            continue

        section = _SECTION.match(line)
        if section:
            flush()
            current = {} if section.group(1) == "submodule" else None
            continue

        if current is None:
            continue

        match = _KEY_VALUE.match(line)
        if match:
            current[match.group(1)] = match.group(2).strip().strip('"')

    flush()
    return submodules


def count_submodules(root: Path) -> int:
    return len(parse_gitmodules(root))


def ssh_to_https(url: str) -> str:
    """Convert an SSH clone URL into its HTTPS equivalent.

    ``git@github.com:user/repo.git`` becomes ``https://github.com/user/repo``.
    Any other URL is returned unchanged.
    """
    for pattern in (_SCP_URL, _SSH_URL):
        match = pattern.match(url)
        if match:
            host, path = match.groups()
            if path.endswith(".git"):
                path = path[: -len(".git")]
            return f"https://{host}/{path.lstrip('/')}"
    return url


def find_submodule(submodules: List[SubmoduleConfig], path: str) -> Optional[SubmoduleConfig]:
    """Find a submodule config by its path."""
    wanted = os.path.normpath(path)
    for submodule in submodules:
        if os.path.normpath(submodule.path) == wanted:
            return submodule
    return None


def is_empty_directory(path: Path) -> bool:
    """Check whether a directory is empty or only holds a ``.git`` placeholder.

    Raises:
        OSError: If the directory doesn't exist or can't be read.
    """
    return all(entry.name == PLACEHOLDER for entry in Path(path).iterdir())


def _default_clone(url: str, target: Path, cancel: Optional[threading.Event] = None) -> object:
    return clone_repo(url, target, cancel=cancel)


def _remove_placeholder(path: Path) -> None:
    placeholder = path / PLACEHOLDER
    if placeholder.is_file() or placeholder.is_symlink():
        placeholder.unlink()


class SubmoduleMaterializer:
    """Clone uninitialized submodules of a checked-out repository.

    Siblings at one level are processed sequentially, in descriptor order.

    Attributes:
        clone (CloneFunc): Clone implementation, ``clone(url, target, cancel)``.
        cancel (Optional[threading.Event]): Cancellation signal passed to
            every clone. Cancellation aborts the whole materialization.
    """

    def __init__(
        self, clone: Optional[CloneFunc] = None, cancel: Optional[threading.Event] = None
    ) -> None:
        self.clone = clone or _default_clone
        self.cancel = cancel

    def materialize(self, root: Path, max_depth: int = 3) -> MaterializeResult:
        """Resolve the submodules of ``root`` recursively.

        Args:
            root: Repository root holding a ``.gitmodules`` descriptor.
            max_depth: Number of levels to process; 0 does nothing.

        Returns:
            MaterializeResult: Per-entry outcomes for this level, each with
            the result of its nested level when one was processed.

        Raises:
            GitCancelledError: If the cancellation signal was set.
            OSError: If the descriptor can't be read.
        """
        root = Path(root)
        result = MaterializeResult(root=root)
        if max_depth <= 0:
            return result

        submodules = parse_gitmodules(root)
        if not submodules:
            return result

        logger.info("Resolving %d submodule(s) in %s", len(submodules), root)
        for submodule in submodules:
            outcome = self._materialize_one(root, submodule, max_depth)
            result.outcomes.append(outcome)

        if not result.success:
            logger.warning(
                "Couldn't resolve any submodules in %s (%d total)", root, len(submodules)
            )
        else:
            logger.debug(
                "Submodules in %s: %d resolved, %d skipped, %d failed",
                root,
                len(result.resolved),
                len(result.skipped),
                len(result.failed),
            )
        return result

    def _materialize_one(
        self, root: Path, submodule: SubmoduleConfig, max_depth: int
    ) -> SubmoduleOutcome:
        path = root / submodule.path
        try:
            empty = is_empty_directory(path)
        except FileNotFoundError:
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning("Skipping submodule %s: %s", submodule.path, e)
                return SubmoduleOutcome(
                    submodule, SubmoduleStatus.SKIPPED, f"couldn't create directory: {e}"
                )
            empty = True
        except OSError as e:
            logger.warning("Skipping submodule %s: %s", submodule.path, e)
            return SubmoduleOutcome(
                submodule, SubmoduleStatus.SKIPPED, f"couldn't read directory: {e}"
            )

        if not empty:
            nested = self._recurse(path, max_depth)
            return SubmoduleOutcome(
                submodule, SubmoduleStatus.RESOLVED, "already populated", nested=nested
            )

        error = self._clone(submodule, path)
        if error:
            logger.warning("Skipping submodule %s: %s", submodule.path, error)
            return SubmoduleOutcome(submodule, SubmoduleStatus.FAILED, error)

        nested = self._recurse(path, max_depth)
        return SubmoduleOutcome(submodule, SubmoduleStatus.RESOLVED, "cloned", nested=nested)

    def _clone(self, submodule: SubmoduleConfig, path: Path) -> str:
        """Clone a submodule, preferring HTTPS. Return an error message or ''."""
        https_url = ssh_to_https(submodule.url)
        urls = [https_url] if https_url == submodule.url else [https_url, submodule.url]

        errors = []
        for url in urls:
            try:
                _remove_placeholder(path)
                self.clone(url, path, self.cancel)
                logger.info("Cloned submodule %s from %s", submodule.path, url)
                return ""
            except GitCancelledError:
                raise
            except (GitError, OSError) as e:
                logger.debug("Cloning %s from %s failed: %s", submodule.path, url, e)
                errors.append(f"{url}: {e}")
        return "; ".join(errors)

    def _recurse(self, path: Path, max_depth: int) -> Optional[MaterializeResult]:
        if max_depth - 1 <= 0:
            return None
        try:
            return self.materialize(path, max_depth - 1)
        except OSError as e:
            # Nested submodules are never critical
            logger.warning("Couldn't inspect nested submodules of %s: %s", path, e)
            return None


def materialize_path(
    root: Path,
    submodule_path: Path,
    clone: Optional[CloneFunc] = None,
    cancel: Optional[threading.Event] = None,
) -> None:
    """Clone the single submodule that lives at ``submodule_path``.

    Raises:
        SubmoduleError: If the descriptor has no matching entry or every
            clone attempt failed.
    """
    root = Path(root)
    try:
        submodules = parse_gitmodules(root)
    except OSError as e:
        raise SubmoduleError(f"Couldn't parse {GITMODULES}: {e}") from e
    if not submodules:
        raise SubmoduleError(f"No submodules found in {root / GITMODULES}")

    relative = os.path.relpath(Path(submodule_path), root)
    submodule = find_submodule(submodules, relative)
    if submodule is None:
        raise SubmoduleError(f"No submodule config found for path: {relative}")

    target = root / submodule.path
    target.mkdir(parents=True, exist_ok=True)
    error = SubmoduleMaterializer(clone=clone, cancel=cancel)._clone(submodule, target)
    if error:
        raise SubmoduleError(f"Couldn't clone submodule {submodule.path}: {error}")
