"""Pipeline that takes a dotfile from a creator's repository to the user's home.

classify -> resolve (materializing submodules when needed) -> preview -> apply
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .applier import Applier
from .backup import BackupManager
from .config import Config
from .diff import DiffEngine
from .errors import PathNotFoundError
from .layout import snapshot as take_snapshot
from .repository import RepositoryCache
from .resolver import PathResolver, map_selected_directory
from .submodules import SubmoduleMaterializer
from .types import (
    ApplyReport,
    CreatorSpec,
    DiffResult,
    DotfileSpec,
    RepositorySnapshot,
    ResolvedFileMap,
    RollbackReport,
)

logger = logging.getLogger(__name__)


class DotfilePicker:
    """Runs the dotfile pipeline for one creator's checkout at a time.

    Attributes:
        config (Config): Settings for depths, diff limits and directories.
        cache (RepositoryCache): Where creator repositories are checked out.
        materializer (SubmoduleMaterializer): Clones placeholder submodules.
        diff_engine (DiffEngine): Renders previews.
        backup_manager (BackupManager): Snapshots targets before writes.
        applier (Applier): Writes files.
    """

    def __init__(
        self,
        config: Config,
        cache: Optional[RepositoryCache] = None,
        materializer: Optional[SubmoduleMaterializer] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.config = config
        self.cache = cache or RepositoryCache(config)
        self.materializer = materializer or SubmoduleMaterializer(cancel=cancel)
        self.diff_engine = DiffEngine(
            new_file_lines=config.diff_new_file_lines,
            collapse_threshold=config.diff_context_collapse,
            context_lines=config.diff_context_keep,
        )
        self.backup_manager = BackupManager(config.backup_dir, home=config.home)
        self.applier = Applier(self.backup_manager, home=config.home)

    def snapshot(self, repo: Path) -> RepositorySnapshot:
        """Classify a checkout. Recomputed on every call."""
        return take_snapshot(Path(repo))

    def repo_path(self, creator: CreatorSpec) -> Path:
        return self.cache.repo_path(creator.id)

    def resolve(
        self,
        repo: Path,
        paths: List[str],
        selections: Optional[Dict[str, Path]] = None,
    ) -> Tuple[RepositorySnapshot, ResolvedFileMap]:
        """Resolve logical paths inside a checkout.

        Args:
            repo: Checkout to search.
            paths: Logical paths of the dotfile.
            selections: Manually chosen files or directories, keyed by logical
                path, used for paths that can't be located automatically.

        Raises:
            PathNotFoundError: For the first path that can't be located and has
                no manual selection; the caller should offer one.
        """
        snap = self.snapshot(repo)
        logger.info("Repository %s uses a %s layout", snap.root, snap.layout.value)
        resolver = PathResolver(
            snap.root,
            snap.layout,
            materializer=self.materializer,
            max_depth=self.config.submodule_depth,
        )
        selections = selections or {}

        file_map: ResolvedFileMap = {}
        for logical_path in paths:
            try:
                file_map.update(resolver.resolve_path(logical_path))
            except PathNotFoundError:
                selected = selections.get(logical_path)
                if selected is None:
                    raise
                logger.info("Using manually selected %s for %s", selected, logical_path)
                file_map.update(map_selected_directory(Path(selected), logical_path))
        return snap, file_map

    def resolve_dotfile(
        self, creator: CreatorSpec, dotfile: DotfileSpec
    ) -> Tuple[RepositorySnapshot, ResolvedFileMap]:
        """Resolve a registry dotfile inside its creator's cached checkout."""
        return self.resolve(self.repo_path(creator), dotfile.paths)

    def preview(self, file_map: ResolvedFileMap) -> List[DiffResult]:
        """Diff every resolved file against what is currently on disk."""
        return self.diff_engine.diff_many(file_map, self.applier.resolve_target_path)

    def apply(
        self,
        file_map: ResolvedFileMap,
        creator_id: str,
        dotfile_id: str,
        dry_run: bool = False,
    ) -> ApplyReport:
        """Back up and write every resolved file."""
        return self.applier.apply_multiple(file_map, creator_id, dotfile_id, dry_run=dry_run)

    def rollback(self, report: ApplyReport, remove_created: bool = False) -> RollbackReport:
        return self.applier.rollback(report.outcomes, remove_created=remove_created)
