"""Core functionality for dotpicker."""

from .applier import Applier
from .backup import BackupManager
from .config import Config
from .diff import DiffEngine
from .layout import classify
from .picker import DotfilePicker
from .repository import GitRepository, RepositoryCache
from .resolver import PathResolver, resolve
from .submodules import SubmoduleMaterializer

__all__ = [
    "Applier",
    "BackupManager",
    "Config",
    "DiffEngine",
    "DotfilePicker",
    "GitRepository",
    "PathResolver",
    "RepositoryCache",
    "SubmoduleMaterializer",
    "classify",
    "resolve",
]
