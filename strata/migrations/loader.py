"""
Strata Migration Loader - discovers migration files on disk.

Loads two kinds of files from the migrations directory:

- ``*.py``: the first ``Migration`` subclass defined in the module
- ``*.sql``: ``SQLFileMigration`` (``*.down.sql`` files are down scripts)

Migrations are returned sorted by version.
"""

from __future__ import annotations

import importlib.util
import inspect
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Type

from ..faults.domains import MigrationLoadFault
from .migration import Migration, SQLFileMigration, SQLMigration, version_from_filename

logger = logging.getLogger("strata.migrations.loader")

_BASE_CLASSES = (Migration, SQLMigration, SQLFileMigration)


class MigrationLoader:
    """
    Usage:
        migrations = MigrationLoader("migrations").load()
    """

    def __init__(self, directory: str | Path = "migrations"):
        self.directory = Path(directory)

    def files(self) -> List[Path]:
        if not self.directory.is_dir():
            return []
        paths = []
        for path in sorted(self.directory.iterdir()):
            if not path.is_file() or path.name.startswith("__"):
                continue
            if path.suffix == ".py":
                paths.append(path)
            elif path.suffix == ".sql" and not path.name.endswith(".down.sql"):
                paths.append(path)
        return paths

    def load(self) -> List[Migration]:
        migrations: List[Migration] = []
        seen: Dict[str, Path] = {}

        for path in self.files():
            migration = self.load_file(path)
            if migration.version in seen:
                raise MigrationLoadFault(
                    str(path),
                    f"duplicate version '{migration.version}' (also in {seen[migration.version].name})",
                )
            seen[migration.version] = path
            migrations.append(migration)

        migrations.sort(key=lambda m: m.version)
        logger.debug(f"Loaded {len(migrations)} migration(s) from {self.directory}")
        return migrations

    def load_file(self, path: Path) -> Migration:
        if path.suffix == ".sql":
            try:
                return SQLFileMigration(path)
            except OSError as exc:
                raise MigrationLoadFault(str(path), str(exc)) from exc

        module = _load_module(path)
        migration_class = _find_migration_class(module)
        if migration_class is None:
            raise MigrationLoadFault(str(path), "no Migration subclass defined in module")

        migration = migration_class()
        if not migration.version:
            migration.version = version_from_filename(path.stem)
        migration.source = path
        return migration


def _load_module(path: Path) -> Any:
    spec = importlib.util.spec_from_file_location(f"strata_migration_{path.stem}", path)
    if not spec or not spec.loader:
        raise MigrationLoadFault(str(path), "cannot create module spec")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise MigrationLoadFault(str(path), f"import failed: {exc}") from exc
    return module


def _find_migration_class(module: Any) -> Optional[Type[Migration]]:
    for obj in vars(module).values():
        if (
            inspect.isclass(obj)
            and issubclass(obj, Migration)
            and obj not in _BASE_CLASSES
            and obj.__module__ == module.__name__
        ):
            return obj
    return None
