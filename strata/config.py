"""
Config system - Layered configuration for the migration engine.

Merge order (later overrides earlier):
    1. YAML config file (``strata.yaml`` when no paths are given)
    2. ``.env`` file (STRATA_* keys only)
    3. Process environment (STRATA_* prefix, ``__`` for nesting)
    4. Manual overrides (CLI flags)

Usage:
    loader = ConfigLoader.load(overrides={"database": {"url": "sqlite:///app.db"}})
    config = StrataConfig.from_loader(loader)
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from glob import glob
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import dotenv_values

from .faults.domains import ConfigInvalidFault

logger = logging.getLogger("strata.config")

DEFAULT_CONFIG_FILE = "strata.yaml"


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files > defaults
    """

    def __init__(self, env_prefix: str = "STRATA_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list[str]] = None,
        env_prefix: str = "STRATA_",
        env_file: Optional[str] = ".env",
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from every source.

        Args:
            paths: Config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file (skipped when missing)
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        if not paths and Path(DEFAULT_CONFIG_FILE).exists():
            paths = [DEFAULT_CONFIG_FILE]
        for pattern in paths or []:
            loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_from_files(self, pattern: str):
        matches = glob(pattern)
        if not matches and not any(ch in pattern for ch in "*?["):
            raise ConfigInvalidFault("paths", f"config file not found: {pattern}")
        for path_str in sorted(matches):
            path = Path(path_str)
            if path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            elif path.suffix == ".json":
                self._load_json_file(path)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigInvalidFault(str(path), f"invalid YAML: {exc}") from exc
        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigInvalidFault(str(path), "top level must be a mapping")
        logger.debug(f"Loaded config file {path}")
        self._merge_dict(self.config_data, data)

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            data = json.load(f)
        self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        """Load STRATA_* keys from a .env file."""
        if not Path(path).exists():
            return
        for key, value in dotenv_values(path).items():
            if key.startswith(self.env_prefix) and value is not None:
                self._set_nested(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert STRATA_BACKUPS__RETENTION_DAYS to nested dict."""
        key = key[len(self.env_prefix):]
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        lowered = value.lower()
        if lowered in ("true", "yes", "on"):
            return True
        if lowered in ("false", "no", "off"):
            return False
        if lowered in ("none", "null"):
            return None

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current = self.config_data
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def to_dict(self) -> dict:
        return dict(self.config_data)


# ── Typed view ───────────────────────────────────────────────────────────────


@dataclass
class StrataConfig:
    """Typed, validated settings read from a ``ConfigLoader``."""

    database_url: str = "sqlite:///db.sqlite3"
    migrations_dir: str = "migrations"
    entities: Optional[str] = None
    rename_threshold: float = 0.6
    lock_stale_after: Optional[float] = None
    backups_dir: str = "backups"
    retention_days: int = 30
    compress_backups: bool = True

    @classmethod
    def from_loader(cls, loader: ConfigLoader) -> "StrataConfig":
        defaults = cls()
        config = cls(
            database_url=loader.get("database.url", defaults.database_url),
            migrations_dir=loader.get("migrations.dir", defaults.migrations_dir),
            entities=loader.get("migrations.entities", defaults.entities),
            rename_threshold=loader.get("migrations.rename_threshold", defaults.rename_threshold),
            lock_stale_after=loader.get("migrations.lock_stale_after", defaults.lock_stale_after),
            backups_dir=loader.get("backups.dir", defaults.backups_dir),
            retention_days=loader.get("backups.retention_days", defaults.retention_days),
            compress_backups=loader.get("backups.compress", defaults.compress_backups),
        )
        config.validate()
        return config

    @classmethod
    def load(cls, **kwargs) -> "StrataConfig":
        """Shortcut for ``StrataConfig.from_loader(ConfigLoader.load(**kwargs))``."""
        return cls.from_loader(ConfigLoader.load(**kwargs))

    def validate(self) -> None:
        """
        Raises:
            ConfigInvalidFault: A value has the wrong type or is out of range
        """
        for key, value in (
            ("database.url", self.database_url),
            ("migrations.dir", self.migrations_dir),
            ("backups.dir", self.backups_dir),
        ):
            if not isinstance(value, str) or not value:
                raise ConfigInvalidFault(key, "must be a non-empty string")

        if self.entities is not None and (not isinstance(self.entities, str) or ":" not in self.entities):
            raise ConfigInvalidFault("migrations.entities", "expected 'module:attribute'")

        if not _is_number(self.rename_threshold) or not 0 < self.rename_threshold <= 1:
            raise ConfigInvalidFault("migrations.rename_threshold", "must be in (0, 1]")

        if self.lock_stale_after is not None and (
            not _is_number(self.lock_stale_after) or self.lock_stale_after <= 0
        ):
            raise ConfigInvalidFault("migrations.lock_stale_after", "must be a positive number of seconds")

        if isinstance(self.retention_days, bool) or not isinstance(self.retention_days, int) \
                or self.retention_days <= 0:
            raise ConfigInvalidFault("backups.retention_days", "must be a positive integer")

        if not isinstance(self.compress_backups, bool):
            raise ConfigInvalidFault("backups.compress", "must be a boolean")

    def to_dict(self) -> dict:
        return asdict(self)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
