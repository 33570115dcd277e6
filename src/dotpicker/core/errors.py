"""Exception types used across dotpicker."""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class DotpickerError(Exception):
    """Base class for dotpicker errors."""


class ConfigError(DotpickerError, ValueError):
    """Invalid configuration value."""


class PathNotFoundError(DotpickerError):
    """A requested logical path could not be located in a repository.

    This is a recoverable condition: the caller is expected to let a human
    pick the directory instead.
    """

    def __init__(self, requested_path: str, repo_path: Path) -> None:
        super().__init__(f"Couldn't find '{requested_path}' in {repo_path}")
        self.requested_path = requested_path
        self.repo_path = repo_path


class GitError(DotpickerError):
    """Git error class."""

    def __init__(self, message: str, command: str = "", output: str = "") -> None:
        super().__init__(message)
        self.command = command
        self.output = output


class GitCancelledError(GitError):
    """A git operation was cancelled before it finished."""


class SubmoduleError(DotpickerError):
    """A submodule could not be resolved."""


class BackupError(DotpickerError):
    """Snapshotting or restoring a file failed."""

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class ApplyError(DotpickerError):
    """Writing a single file onto the target machine failed."""

    def __init__(self, message: str, target_path: Path) -> None:
        super().__init__(message)
        self.target_path = target_path
