"""Configuration management for dotpicker."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.yaml"

DEFAULT_CONFIG: Dict[str, Any] = {
    "submodule_depth": 3,
    "max_workers": 5,
    "clone_depth": 1,
    "git_timeout": 300,
    "diff_new_file_lines": 20,
    "diff_context_collapse": 6,
    "diff_context_keep": 2,
}

INT_KEYS = [
    "submodule_depth",
    "max_workers",
    "clone_depth",
    "git_timeout",
    "diff_new_file_lines",
    "diff_context_collapse",
    "diff_context_keep",
]

PATH_KEYS = ["base_dir", "cache_dir", "backup_dir", "log_dir", "home"]


def default_base_dir() -> Path:
    """Return the default dotpicker state directory.

    ``DOTPICKER_HOME`` wins, then ``$XDG_CONFIG_HOME/dotfile-picker``, then
    ``~/.config/dotfile-picker``.
    """
    override = os.environ.get("DOTPICKER_HOME")
    if override:
        return Path(override).expanduser()
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home).expanduser() / "dotfile-picker"
    return Path.home() / ".config" / "dotfile-picker"


class Config:
    """Configuration class for dotpicker."""

    def __init__(self, config_file: Optional[Path] = None, base_dir: Optional[Path] = None) -> None:
        """Initialize configuration.

        Args:
            config_file: Optional YAML file merged over the defaults. When not
                given, ``<base_dir>/config.yaml`` is used if it exists.
            base_dir: Directory holding cache, backups and logs.
        """
        self.config: Dict[str, Any] = {}
        self.base_dir: Path = Path(base_dir).expanduser() if base_dir else default_base_dir()
        self.cache_dir: Path = self.base_dir / "cache"
        self.backup_dir: Path = self.base_dir / "backups"
        self.log_dir: Path = self.base_dir / "logs"
        self.home: Path = Path.home()
        self.submodule_depth: int = 3
        self.max_workers: int = 5
        self.clone_depth: int = 1
        self.git_timeout: int = 300
        self.diff_new_file_lines: int = 20
        self.diff_context_collapse: int = 6
        self.diff_context_keep: int = 2
        self.load_config(config_file)

    def load_config(self, config_file: Optional[Path] = None) -> None:
        """Load configuration from file."""
        # Start with default configuration
        self._merge_config(DEFAULT_CONFIG)

        if config_file is None:
            candidate = self.base_dir / CONFIG_FILE_NAME
            if not candidate.exists():
                return
            config_file = candidate

        import yaml

        try:
            with open(config_file, "r") as f:
                user_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error("Error loading config file %s: %s", config_file, e)
            return

        if user_config:
            self._merge_config(user_config)
        logger.debug("Loaded configuration from %s", config_file)

    def _merge_config(self, config: Dict[str, Any]) -> None:
        """Merge configuration with current configuration."""
        if not isinstance(config, dict):
            raise ConfigError("Configuration must be a dictionary")

        self.config.update(config)

        for key in INT_KEYS:
            if key in config:
                value = config[key]
                if not isinstance(value, int) or isinstance(value, bool):
                    raise ConfigError(f"{key} must be an integer")
                if value < 0:
                    raise ConfigError(f"{key} must not be negative")
                setattr(self, key, value)

        for key in PATH_KEYS:
            if key in config:
                if not isinstance(config[key], str):
                    raise ConfigError(f"{key} must be a string")
                path = Path(config[key]).expanduser()
                if key == "base_dir":
                    # Derived directories follow the base unless set explicitly
                    for derived, name in (
                        ("cache_dir", "cache"),
                        ("backup_dir", "backups"),
                        ("log_dir", "logs"),
                    ):
                        if derived not in config:
                            setattr(self, derived, path / name)
                setattr(self, key, path)

        if "max_workers" in config and config["max_workers"] < 1:
            raise ConfigError("max_workers must be at least 1")

    def validate(self) -> List[str]:
        """Validate configuration."""
        errors = []

        for key in INT_KEYS:
            value = getattr(self, key)
            if not isinstance(value, int):
                errors.append(f"{key} must be an integer")

        if self.max_workers < 1:
            errors.append("max_workers must be at least 1")

        if self.diff_context_keep * 2 > self.diff_context_collapse:
            errors.append("diff_context_keep must be at most half of diff_context_collapse")

        for key in PATH_KEYS:
            if not isinstance(getattr(self, key), Path):
                errors.append(f"{key} must be a path")

        return errors

    def ensure_directories(self) -> None:
        """Create the cache, backup and log directories. Safe to call repeatedly."""
        for directory in (self.base_dir, self.cache_dir, self.backup_dir, self.log_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def creator_cache_dir(self, creator_id: str) -> Path:
        """Return the cache directory for a specific creator."""
        return self.cache_dir / creator_id

    @property
    def log_file(self) -> Path:
        return self.log_dir / "dotpicker.log"

    def load_from_dict(self, config_data: Dict[str, Any]) -> None:
        """Load configuration from a dictionary.

        Example:
            ```python
            config = Config()
            config.load_from_dict({"backup_dir": "~/dotfile-backups", "submodule_depth": 2})
            ```
        """
        self._merge_config(config_data)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            key: The configuration key to get.
            default: The default value to return if the key is not found.

        Returns:
            The configuration value, or the default if not found.
        """
        if hasattr(self, key) and key in INT_KEYS + PATH_KEYS:
            return getattr(self, key)
        return self.config.get(key, default)
