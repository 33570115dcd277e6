"""Backup functionality for files about to be overwritten.

Before a dotfile is written over an existing file, the existing file is copied
into the backup directory and a record is appended to a single JSON index,
``backup_manifest.json``. Backups are never deleted automatically.

Backup files are named ``<name>_<YYYYMMDD_HHMMSS>_<dotfile id>.bak`` and are
stored under a directory mirroring the original's location relative to the
home directory, e.g. ``~/.config/nvim/init.lua`` is backed up to
``<backup_dir>/.config/nvim/init.lua_20250101_120000_nvim.bak``.

The index is rewritten on every backup (read, append, write); only one
process may use a backup directory at a time.
"""

from __future__ import annotations

import json
import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .errors import BackupError
from .types import BackupRecord

logger = logging.getLogger(__name__)

INDEX_NAME = "backup_manifest.json"
TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


def copy_file(src: Path, dst: Path) -> None:
    """Copy file content and permission bits from ``src`` to ``dst``."""
    shutil.copyfile(src, dst)
    shutil.copymode(src, dst)


class BackupManager:
    """Manages backups of files replaced by applied dotfiles.

    Attributes:
        backup_dir (Path): Root directory for storing backups and the index.
        home (Path): Home directory used to mirror original locations.
    """

    def __init__(self, backup_dir: Path, home: Optional[Path] = None) -> None:
        self.backup_dir = Path(backup_dir)
        self.home = Path(home) if home else Path.home()

    @property
    def index_path(self) -> Path:
        return self.backup_dir / INDEX_NAME

    def backup_path(self, original_path: Path, dotfile_id: str, timestamp: datetime) -> Path:
        """Get the backup location for a file.

        Args:
            original_path: Absolute path of the file being backed up.
            dotfile_id: Id of the dotfile about to replace it.
            timestamp: Time of the backup.

        Returns:
            Path: ``<backup_dir>/<dir relative to home>/<name>_<stamp>_<id>.bak``,
            or directly under ``backup_dir`` when the original is outside home.
        """
        original_path = Path(original_path)
        name = f"{original_path.name}_{timestamp.strftime(TIMESTAMP_FORMAT)}_{dotfile_id}.bak"
        try:
            relative = original_path.relative_to(self.home)
        except ValueError:
            return self.backup_dir / name
        return self.backup_dir / relative.parent / name

    def backup(
        self, original_path: Path, creator_id: str, dotfile_id: str
    ) -> Optional[BackupRecord]:
        """Back up a file before it is overwritten.

        Args:
            original_path: File that is about to be replaced.
            creator_id: Creator whose dotfile replaces it.
            dotfile_id: Dotfile that replaces it.

        Returns:
            Optional[BackupRecord]: The record, or None when the original
            doesn't exist and there is nothing to protect.

        Raises:
            BackupError: If the backup copy can't be made.
        """
        original_path = Path(original_path)
        if not original_path.exists():
            logger.debug("Nothing to back up at %s", original_path)
            return None

        timestamp = datetime.now().astimezone().replace(microsecond=0)
        backup_path = self.backup_path(original_path, dotfile_id, timestamp)
        attempt = 1
        while backup_path.exists():
            # Same file, same dotfile, same second
            backup_path = self.backup_path(original_path, f"{dotfile_id}-{attempt}", timestamp)
            attempt += 1

        try:
            backup_path.parent.mkdir(parents=True, exist_ok=True)
            copy_file(original_path, backup_path)
        except OSError as e:
            raise BackupError(f"Couldn't back up {original_path}: {e}", original_path) from e

        record = BackupRecord(
            original_path=original_path,
            backup_path=backup_path,
            timestamp=timestamp,
            creator_id=creator_id,
            dotfile_id=dotfile_id,
        )

        try:
            self._append_record(record)
        except OSError as e:
            # The copy exists; a missing index entry only affects listing
            logger.error("Couldn't record backup of %s in index: %s", original_path, e)

        logger.info("Backed up %s to %s", original_path, backup_path)
        return record

    def _load_index(self) -> List[BackupRecord]:
        try:
            data = json.loads(self.index_path.read_text())
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable backup index %s: %s", self.index_path, e)
            return []

        if not isinstance(data, list):
            logger.warning("Ignoring malformed backup index %s", self.index_path)
            return []

        records = []
        for entry in data:
            try:
                records.append(BackupRecord.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed backup record %r: %s", entry, e)
        return records

    def _append_record(self, record: BackupRecord) -> None:
        records = self._load_index()
        records.append(record)
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        self.index_path.write_text(
            json.dumps([r.to_dict() for r in records], indent=2) + "\n"
        )

    def list_all(self) -> List[BackupRecord]:
        """List every recorded backup, oldest first."""
        return self._load_index()

    def list_backups(self, original_path: Path) -> List[BackupRecord]:
        """List the backups of one file, oldest first."""
        original_path = Path(original_path)
        return [r for r in self._load_index() if r.original_path == original_path]

    def latest_backup(self, original_path: Path) -> Optional[BackupRecord]:
        backups = self.list_backups(original_path)
        return backups[-1] if backups else None

    def restore(self, backup_path: Path, original_path: Path) -> None:
        """Copy a backup over the original file.

        Raises:
            BackupError: If the backup is missing or can't be copied.
        """
        backup_path = Path(backup_path)
        original_path = Path(original_path)
        if not backup_path.is_file():
            raise BackupError(f"Backup doesn't exist: {backup_path}", backup_path)

        try:
            original_path.parent.mkdir(parents=True, exist_ok=True)
            copy_file(backup_path, original_path)
        except OSError as e:
            raise BackupError(f"Couldn't restore {original_path}: {e}", original_path) from e
        logger.info("Restored %s from %s", original_path, backup_path)
