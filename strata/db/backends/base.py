"""
Strata DB Backend - Base Adapter Interface.

All database backends must implement this interface. The ``StrataDatabase``
engine delegates to the appropriate adapter based on the connection URL.

This interface abstracts differences between SQLite and MySQL:
- Parameter placeholder style (?, %s)
- Transaction semantics (and whether DDL is transactional)
- Catalog introspection queries (tables, columns, indexes, foreign keys)
- Multi-statement script execution
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

logger = logging.getLogger("strata.db.backends")

__all__ = [
    "DatabaseAdapter",
    "AdapterCapabilities",
    "ColumnInfo",
]


@dataclass
class AdapterCapabilities:
    """Describes what a specific backend supports."""

    supports_transactional_ddl: bool = False
    name: str = "base"


@dataclass
class ColumnInfo:
    """Introspection result for a single column."""

    name: str
    data_type: str
    nullable: bool = True
    default: Optional[str] = None
    primary_key: bool = False
    unique: bool = False
    max_length: Optional[int] = None
    auto_increment: bool = False


class DatabaseAdapter(ABC):
    """
    Abstract database adapter interface.

    All backends must implement these methods. The ``StrataDatabase``
    engine uses this interface to execute queries, manage transactions,
    and read the catalog for schema introspection.
    """

    capabilities: AdapterCapabilities = AdapterCapabilities()

    @abstractmethod
    async def connect(self, url: str, **options) -> None:
        """Open a connection to the database."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the database connection."""
        ...

    @abstractmethod
    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Execute a SQL statement. Returns a cursor-like object."""
        ...

    @abstractmethod
    async def execute_many(self, sql: str, params_list: Sequence[Sequence[Any]]) -> None:
        """Execute a SQL statement with multiple parameter sets."""
        ...

    @abstractmethod
    async def execute_script(self, script: str) -> None:
        """Execute a multi-statement SQL script (used to replay backups)."""
        ...

    @abstractmethod
    async def fetch_all(self, sql: str, params: Optional[Sequence[Any]] = None) -> List[Dict[str, Any]]:
        """Execute and return all rows as dicts."""
        ...

    @abstractmethod
    async def fetch_one(self, sql: str, params: Optional[Sequence[Any]] = None) -> Optional[Dict[str, Any]]:
        """Execute and return one row as dict, or None."""
        ...

    @abstractmethod
    async def fetch_val(self, sql: str, params: Optional[Sequence[Any]] = None) -> Any:
        """Execute and return a scalar value."""
        ...

    # ── Transaction management ───────────────────────────────────────

    @abstractmethod
    async def begin(self) -> None:
        """Start a transaction."""
        ...

    @abstractmethod
    async def commit(self) -> None:
        """Commit the current transaction."""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """Rollback the current transaction."""
        ...

    # ── Introspection ────────────────────────────────────────────────

    @abstractmethod
    async def table_exists(self, table_name: str) -> bool:
        """Check if a table exists."""
        ...

    @abstractmethod
    async def get_tables(self) -> List[str]:
        """List all user table names."""
        ...

    @abstractmethod
    async def get_columns(self, table_name: str) -> List[ColumnInfo]:
        """Get column info for a table, in declaration order."""
        ...

    @abstractmethod
    async def get_indexes(self, table_name: str) -> List[Dict[str, Any]]:
        """
        Get user-created indexes for a table.

        Each entry: ``{"name": str, "columns": [str], "unique": bool}``.
        Implicit indexes backing primary keys are excluded.
        """
        ...

    @abstractmethod
    async def get_foreign_keys(self, table_name: str) -> List[Dict[str, Any]]:
        """
        Get foreign keys for a table.

        Each entry: ``{"name", "from_column", "to_table", "to_column",
        "on_delete", "on_update"}``. ``name`` is empty when the backend
        does not keep constraint names.
        """
        ...

    # ── SQL adaptation ───────────────────────────────────────────────

    def adapt_sql(self, sql: str) -> str:
        """
        Adapt SQL placeholders from qmark (?) to the backend's param style.

        Override this in backends that use a different param style.
        """
        return sql

    @property
    def is_connected(self) -> bool:
        """Check if the adapter is connected."""
        return False

    @property
    def dialect(self) -> str:
        """Return the SQL dialect name."""
        return self.capabilities.name
