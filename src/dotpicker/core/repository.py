"""Repository functionality for dotpicker.

Git is driven through the ``git`` command line. Network operations (clone,
pull) accept a :class:`threading.Event` that cancels them: the child process
is terminated and :class:`~dotpicker.core.errors.GitCancelledError` raised.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional

from .config import Config
from .errors import GitCancelledError, GitError
from .types import CreatorSpec

logger = logging.getLogger(__name__)

# How often a running git command checks for cancellation, in seconds
POLL_INTERVAL = 0.1


def run_git(
    args: List[str],
    cwd: Optional[Path] = None,
    cancel: Optional[threading.Event] = None,
    timeout: Optional[float] = None,
) -> str:
    """Run a Git command and return its stripped stdout.

    Raises:
        GitCancelledError: If ``cancel`` was set or the timeout expired.
        GitError: If git is missing or exits with a non-zero status.
    """
    command = ["git", *args]
    if cancel is not None and cancel.is_set():
        raise GitCancelledError("Git command cancelled", command=" ".join(command))

    try:
        process = subprocess.Popen(
            command,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            env=_git_env(),
        )
    except FileNotFoundError:
        raise GitError("git command not found", command=" ".join(command))

    started = time.monotonic()
    while True:
        try:
            stdout, stderr = process.communicate(timeout=POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            expired = timeout is not None and time.monotonic() - started > timeout
            if (cancel is not None and cancel.is_set()) or expired:
                process.kill()
                process.communicate()
                reason = "timed out" if expired else "cancelled"
                raise GitCancelledError(f"Git command {reason}", command=" ".join(command))

    if process.returncode != 0:
        output = (stderr or stdout or "").strip()
        if output:
            raise GitError(
                f"Git command failed: {output}", command=" ".join(command), output=output
            )
        raise GitError("Git command failed with no output", command=" ".join(command))
    return stdout.strip()


def _git_env() -> dict:
    env = dict(os.environ)
    # Never block on a credential prompt for private repositories
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")
    return env


class GitRepository:
    """Represents a checked-out Git repository.

    Attributes:
        path (Path): Path to the Git repository.
    """

    def __init__(self, path: Path):
        """Initialize repository."""
        self.path = Path(path).resolve()
        self.name = self.path.name

    def __str__(self) -> str:
        """Return string representation."""
        return f"GitRepository({self.path})"

    def __repr__(self) -> str:
        """Return string representation."""
        return self.__str__()

    def exists(self) -> bool:
        """Check if repository exists and is a Git repository."""
        if not self.path.exists() or not self.path.is_dir():
            return False
        try:
            toplevel = self._run_git("rev-parse", "--show-toplevel")
        except GitError:
            return False
        # An empty directory inside another checkout is not a repository of its own
        return Path(toplevel).resolve() == self.path

    def _run_git(
        self,
        *args: str,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Run a Git command inside the repository and return its output."""
        return run_git(list(args), cwd=self.path, cancel=cancel, timeout=timeout)

    @classmethod
    def clone(
        cls,
        url: str,
        target: Path,
        depth: int = 1,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> "GitRepository":
        """Clone a repository into ``target``.

        Args:
            url: Clone URL.
            target: Destination directory. It may exist if it is empty.
            depth: History depth; 0 clones the full history.
            cancel: Optional cancellation signal.
            timeout: Optional limit in seconds.

        Raises:
            GitError: If the clone fails or is cancelled. A partially
                created destination is removed.
        """
        target = Path(target)
        existed = target.exists()
        args = ["clone", "--quiet"]
        if depth > 0:
            args += ["--depth", str(depth)]
        args += [url, str(target)]

        logger.info("Cloning %s into %s", url, target)
        try:
            run_git(args, cancel=cancel, timeout=timeout)
        except GitError:
            if not existed and target.exists():
                shutil.rmtree(target, ignore_errors=True)
            elif existed and target.is_dir():
                # Leave the (empty) placeholder directory as we found it
                for child in target.iterdir():
                    if child.is_dir() and not child.is_symlink():
                        shutil.rmtree(child, ignore_errors=True)
                    else:
                        child.unlink()
            raise
        return cls(target)

    def pull(
        self, cancel: Optional[threading.Event] = None, timeout: Optional[float] = None
    ) -> None:
        """Pull the latest changes from origin."""
        logger.info("Pulling %s", self.path)
        self._run_git("pull", "--quiet", "--ff-only", cancel=cancel, timeout=timeout)

    def latest_commit(self) -> str:
        """Return the hash of the checked-out commit."""
        return self._run_git("rev-parse", "HEAD")

    def has_submodules(self) -> bool:
        """Check if the repository declares submodules."""
        return (self.path / ".gitmodules").is_file()


def clone_repo(
    url: str,
    target: Path,
    cancel: Optional[threading.Event] = None,
    depth: int = 1,
    timeout: Optional[float] = None,
) -> GitRepository:
    """Clone ``url`` into ``target``, or pull if ``target`` is already a repository."""
    target = Path(target)
    repo = GitRepository(target)
    if target.exists() and any(target.iterdir()) and repo.exists():
        repo.pull(cancel=cancel, timeout=timeout)
        return repo
    return GitRepository.clone(url, target, depth=depth, cancel=cancel, timeout=timeout)


class RepositoryCache:
    """Local cache of creator repositories.

    Each creator's repository lives in ``<cache_dir>/<creator id>``. Several
    creators can be fetched at once through a bounded worker pool.
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self.cache_dir = config.cache_dir
        self._lock = threading.Lock()

    def repo_path(self, creator_id: str) -> Path:
        """Return the local path to a creator's repository."""
        return self.cache_dir / creator_id

    def is_cached(self, creator_id: str) -> bool:
        return GitRepository(self.repo_path(creator_id)).exists()

    def ensure_repo(
        self, creator: CreatorSpec, cancel: Optional[threading.Event] = None
    ) -> Path:
        """Make sure a creator's repository is downloaded and up to date.

        Clones when missing. When already cached, pulls; a failed pull is not
        fatal because the cached checkout is still usable.

        Raises:
            GitCancelledError: If the download was cancelled.
            GitError: If the initial clone fails.
        """
        path = self.repo_path(creator.id)
        repo = GitRepository(path)
        with self._lock:
            self.cache_dir.mkdir(parents=True, exist_ok=True)

        if not repo.exists():
            try:
                GitRepository.clone(
                    creator.repo,
                    path,
                    depth=self.config.clone_depth,
                    cancel=cancel,
                    timeout=self.config.git_timeout,
                )
            except GitCancelledError:
                raise
            except GitError as e:
                raise GitError(
                    f"Couldn't download {creator.name}'s dotfiles: {e}",
                    command=e.command,
                    output=e.output,
                ) from e
            return path

        try:
            repo.pull(cancel=cancel, timeout=self.config.git_timeout)
        except GitCancelledError:
            raise
        except GitError as e:
            logger.warning("Couldn't update %s, using cached copy: %s", creator.name, e)
        return path

    def ensure_repos(
        self, creators: List[CreatorSpec], cancel: Optional[threading.Event] = None
    ) -> List[Path]:
        """Download several repositories concurrently.

        Every download runs to completion; an early failure does not cancel
        the others. If any failed, the first error (in creator order) is
        raised once all have finished.
        """
        errors: List[Exception] = []
        paths: List[Path] = []
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = [executor.submit(self.ensure_repo, creator, cancel) for creator in creators]
            for future in futures:
                try:
                    paths.append(future.result())
                except GitError as e:
                    errors.append(e)

        if errors:
            logger.error("%d of %d repositories failed to download", len(errors), len(creators))
            raise errors[0]
        return paths

    def list_cached(self) -> List[str]:
        """Return the ids of all cached creators."""
        if not self.cache_dir.exists():
            return []
        return sorted(entry.name for entry in self.cache_dir.iterdir() if entry.is_dir())

    def repo_age(self, creator_id: str) -> float:
        """Return seconds since the cached repository was last updated.

        Raises:
            FileNotFoundError: If the creator is not cached.
        """
        git_dir = self.repo_path(creator_id) / ".git"
        return time.time() - git_dir.stat().st_mtime

    def clear(self, creator_id: Optional[str] = None) -> None:
        """Remove one creator's cached repository, or the whole cache."""
        target = self.repo_path(creator_id) if creator_id else self.cache_dir
        if target.exists():
            shutil.rmtree(target)
