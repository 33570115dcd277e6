"""Helpers for building dotfile trees and git repositories in tests."""

import subprocess
from pathlib import Path
from typing import Dict


def make_tree(root: Path, files: Dict[str, str]) -> Path:
    """Create files (and their parent directories) under root.

    A key ending in "/" creates an empty directory.
    """
    root.mkdir(parents=True, exist_ok=True)
    for relative, content in files.items():
        path = root / relative
        if relative.endswith("/"):
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


def git(cwd: Path, *args: str) -> str:
    """Run git in cwd and return its output."""
    result = subprocess.run(
        ["git", *args], cwd=cwd, check=True, capture_output=True, text=True
    )
    return result.stdout.strip()


def init_git_repo(path: Path, files: Dict[str, str]) -> Path:
    """Create a git repository with one commit holding files."""
    make_tree(path, files)
    git(path, "init", "--quiet")
    git(path, "config", "user.email", "test@example.com")
    git(path, "config", "user.name", "Test User")
    git(path, "add", ".")
    git(path, "commit", "--quiet", "-m", "Initial commit")
    return path
