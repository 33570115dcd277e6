"""Apply resolved dotfiles onto the target machine.

Each file goes through the same steps: back up the existing target, make sure
the parent directory exists, then copy the source's bytes and permission bits
over the target. When the copy fails after a backup was taken, the backup is
copied back before the failure is reported.

Per file::

    PENDING -> BACKED_UP -> SUCCEEDED (written)
    PENDING -> BACKED_UP -> WRITE_FAILED -> REPAIR_ATTEMPTED -> FAILED
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from .backup import BackupManager, copy_file
from .errors import ApplyError, BackupError
from .types import ApplyOutcome, ApplyReport, ApplyState, ResolvedFileMap, RollbackReport

logger = logging.getLogger(__name__)


class Applier:
    """Copies dotfiles from a creator's repository into the user's home.

    Attributes:
        backup_manager (BackupManager): Takes a snapshot before every write.
        home (Path): Home directory that relative targets are resolved against.
    """

    def __init__(self, backup_manager: BackupManager, home: Optional[Path] = None) -> None:
        self.backup_manager = backup_manager
        self.home = Path(home) if home else Path.home()

    def resolve_target_path(self, target: str) -> Path:
        """Turn a logical target path into an absolute path.

        ``~/x`` and ``.x`` are relative to home, absolute paths are used as
        they are, and anything else is also relative to home.
        """
        if target.startswith("~"):
            return self.home / target[1:].lstrip("/")
        if target.startswith("."):
            return self.home / target
        path = Path(target)
        if path.is_absolute():
            return path
        return self.home / target

    def apply(
        self, source_path: Path, target: str, creator_id: str, dotfile_id: str
    ) -> ApplyOutcome:
        """Write one source file over its target.

        Failures never raise; they are reported on the returned outcome.

        Args:
            source_path: File inside the creator's repository.
            target: Logical target path, e.g. ``~/.config/nvim/init.lua``.
            creator_id: Owner recorded on the backup.
            dotfile_id: Dotfile recorded on the backup.

        Returns:
            ApplyOutcome: SUCCEEDED or FAILED, with the backup path if one was
            taken.
        """
        source_path = Path(source_path)
        target_path = self.resolve_target_path(target)
        outcome = ApplyOutcome(target_path=target_path, source_path=source_path)

        try:
            record = self.backup_manager.backup(target_path, creator_id, dotfile_id)
        except BackupError as e:
            logger.error("Not writing %s, backup failed: %s", target_path, e)
            outcome.error = e
            outcome.state = ApplyState.FAILED
            return outcome

        if record is not None:
            outcome.backup_path = record.backup_path
        outcome.state = ApplyState.BACKED_UP

        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Couldn't create target directory for %s: %s", target_path, e)
            outcome.error = ApplyError(f"Couldn't create target directory: {e}", target_path)
            outcome.state = ApplyState.FAILED
            return outcome

        try:
            if target_path.is_symlink() and not target_path.exists():
                # A dangling link is replaced, not written through
                target_path.unlink()
            copy_file(source_path, target_path)
        except OSError as e:
            outcome.state = ApplyState.WRITE_FAILED
            outcome.error = ApplyError(f"Couldn't copy file: {e}", target_path)
            logger.error("Couldn't write %s: %s", target_path, e)
            self._repair(outcome)
            outcome.state = ApplyState.FAILED
            return outcome

        outcome.success = True
        outcome.state = ApplyState.SUCCEEDED
        logger.info("Applied %s -> %s", source_path, target_path)
        return outcome

    def _repair(self, outcome: ApplyOutcome) -> None:
        if outcome.backup_path is None:
            return
        outcome.state = ApplyState.REPAIR_ATTEMPTED
        try:
            self.backup_manager.restore(outcome.backup_path, outcome.target_path)
            outcome.repaired = True
        except BackupError as e:
            logger.error("Couldn't repair %s from its backup: %s", outcome.target_path, e)

    def apply_multiple(
        self,
        file_map: ResolvedFileMap,
        creator_id: str,
        dotfile_id: str,
        dry_run: bool = False,
    ) -> ApplyReport:
        """Apply every entry of a file map.

        A failing file doesn't stop the others; every outcome is collected.
        With ``dry_run``, targets are only resolved and outcomes stay PENDING.
        """
        report = ApplyReport()
        for source_path, target in file_map.items():
            if dry_run:
                report.outcomes.append(
                    ApplyOutcome(
                        target_path=self.resolve_target_path(target), source_path=source_path
                    )
                )
                continue
            report.outcomes.append(self.apply(source_path, target, creator_id, dotfile_id))

        if report.failed:
            logger.warning(
                "%d of %d files failed to apply", len(report.failed), len(report.outcomes)
            )
        return report

    def rollback(
        self, outcomes: Iterable[ApplyOutcome], remove_created: bool = False
    ) -> RollbackReport:
        """Restore every target that was backed up.

        Args:
            outcomes: Outcomes of a previous apply.
            remove_created: Also delete successfully written targets that
                didn't exist before the apply.

        Returns:
            RollbackReport: How many targets were restored and how many
            couldn't be.
        """
        report = RollbackReport()
        for outcome in outcomes:
            if outcome.backup_path is None:
                if remove_created and outcome.success:
                    try:
                        outcome.target_path.unlink()
                        report.restored += 1
                    except OSError as e:
                        logger.error("Couldn't remove %s: %s", outcome.target_path, e)
                        report.failed += 1
                continue
            try:
                self.backup_manager.restore(outcome.backup_path, outcome.target_path)
                report.restored += 1
            except BackupError as e:
                logger.error("Rollback of %s failed: %s", outcome.target_path, e)
                report.failed += 1

        if report.failed:
            logger.warning("Rollback encountered %d errors", report.failed)
        return report
