"""Shared domain types for the dotfile pipeline.

Every stage (classification, resolution, submodule materialization, diffing,
backup and apply) exchanges these types instead of loosely-typed payloads, so
that each stage can be used on its own and tested in isolation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class Layout(str, Enum):
    """Organizational convention of a dotfile repository."""

    FLAT = "flat"
    PACKAGE_BASED = "package_based"
    MANAGED_SINGLE_ROOT = "managed_single_root"
    SINGLE_CONFIG_DIR = "single_config_dir"
    BARE_WORKTREE = "bare_worktree"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class RepositorySnapshot:
    """A checked-out repository together with its classified layout."""

    root: Path
    layout: Layout


@dataclass
class CreatorSpec:
    """A dotfile creator as described by the registry."""

    id: str
    name: str
    repo: str
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CreatorSpec":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            repo=data.get("repo", ""),
            description=data.get("description", ""),
        )


@dataclass
class DotfileSpec:
    """A named set of logical paths offered by a creator."""

    id: str
    name: str
    paths: List[str]
    description: str = ""
    dependencies: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DotfileSpec":
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            paths=list(data.get("paths", [])),
            description=data.get("description", ""),
            dependencies=list(data.get("dependencies", [])),
        )


# Absolute source path -> logical target path (e.g. "~/.config/nvim/init.lua").
ResolvedFileMap = Dict[Path, str]


@dataclass(frozen=True)
class SubmoduleConfig:
    """One entry of a ``.gitmodules`` descriptor."""

    path: str
    url: str


class SubmoduleStatus(str, Enum):
    RESOLVED = "resolved"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SubmoduleOutcome:
    """What happened to a single submodule entry."""

    config: SubmoduleConfig
    status: SubmoduleStatus
    reason: str = ""
    nested: Optional["MaterializeResult"] = None


@dataclass
class MaterializeResult:
    """Result of materializing the submodules of one repository level.

    ``success`` is False only when there were entries and none of them
    resolved.
    """

    root: Path
    outcomes: List[SubmoduleOutcome] = field(default_factory=list)

    @property
    def resolved(self) -> List[SubmoduleOutcome]:
        return [o for o in self.outcomes if o.status is SubmoduleStatus.RESOLVED]

    @property
    def skipped(self) -> List[SubmoduleOutcome]:
        return [o for o in self.outcomes if o.status is SubmoduleStatus.SKIPPED]

    @property
    def failed(self) -> List[SubmoduleOutcome]:
        return [o for o in self.outcomes if o.status is SubmoduleStatus.FAILED]

    @property
    def success(self) -> bool:
        return not self.outcomes or bool(self.resolved)

    def walk(self) -> List[SubmoduleOutcome]:
        """Flatten this level and every nested level into one list."""
        flat: List[SubmoduleOutcome] = []
        for outcome in self.outcomes:
            flat.append(outcome)
            if outcome.nested is not None:
                flat.extend(outcome.nested.walk())
        return flat


class DiffKind(str, Enum):
    NEW = "new"
    IDENTICAL = "identical"
    MODIFIED = "modified"


@dataclass
class DiffResult:
    """Rendered comparison of a candidate file against its on-disk target."""

    source_path: Path
    target_path: Path
    kind: DiffKind
    diff: str = ""
    additions: int = 0
    deletions: int = 0

    @property
    def is_new(self) -> bool:
        return self.kind is DiffKind.NEW

    @property
    def is_identical(self) -> bool:
        return self.kind is DiffKind.IDENTICAL


@dataclass
class BackupRecord:
    """Persisted metadata about one snapshot taken before an overwrite."""

    original_path: Path
    backup_path: Path
    timestamp: datetime
    creator_id: str
    dotfile_id: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "original_path": str(self.original_path),
            "backup_path": str(self.backup_path),
            "timestamp": self.timestamp.isoformat(),
            "creator_id": self.creator_id,
            "dotfile_id": self.dotfile_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BackupRecord":
        return cls(
            original_path=Path(data["original_path"]),
            backup_path=Path(data["backup_path"]),
            timestamp=_parse_timestamp(data["timestamp"]),
            creator_id=data.get("creator_id", ""),
            dotfile_id=data.get("dotfile_id", ""),
        )


def _parse_timestamp(value: str) -> datetime:
    # RFC3339 may carry a trailing "Z" and nanoseconds, neither of which
    # fromisoformat accepts on older interpreters.
    value = value.replace("Z", "+00:00")
    if "." in value:
        head, _, tail = value.partition(".")
        digits = ""
        rest = ""
        for index, char in enumerate(tail):
            if not char.isdigit():
                rest = tail[index:]
                break
            digits += char
        value = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
    return datetime.fromisoformat(value)


class ApplyState(str, Enum):
    """Per-file apply state machine."""

    PENDING = "pending"
    BACKED_UP = "backed_up"
    SUCCEEDED = "succeeded"
    WRITE_FAILED = "write_failed"
    REPAIR_ATTEMPTED = "repair_attempted"
    FAILED = "failed"


@dataclass
class ApplyOutcome:
    """Result of writing one file onto the target machine."""

    target_path: Path
    source_path: Optional[Path] = None
    backup_path: Optional[Path] = None
    success: bool = False
    error: Optional[Exception] = None
    state: ApplyState = ApplyState.PENDING
    repaired: bool = False


@dataclass
class ApplyReport:
    """Outcomes of a multi-file apply.

    Per-file status is kept; ``ok`` is the whole-batch signal, which is False
    as soon as any single file failed.
    """

    outcomes: List[ApplyOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> List[ApplyOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> List[ApplyOutcome]:
        return [o for o in self.outcomes if not o.success and o.state is ApplyState.FAILED]

    @property
    def ok(self) -> bool:
        return not self.failed


@dataclass
class RollbackReport:
    restored: int = 0
    failed: int = 0

    @property
    def ok(self) -> bool:
        return self.failed == 0
