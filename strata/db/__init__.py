"""
Strata Database - async database layer used by the migration engine.

Provides:
- StrataDatabase: single-connection manager with transaction support
- SQLite driver (default) and MySQL adapter
- Pluggable backend adapters (DatabaseAdapter)
- Structured faults (DatabaseConnectionFault, QueryFault, SchemaFault)
"""

from .engine import (
    StrataDatabase,
    DatabaseError,
)

# Backend adapters
from .backends import (
    DatabaseAdapter,
    AdapterCapabilities,
    ColumnInfo,
    SQLiteAdapter,
    MySQLAdapter,
)

# Re-export fault types for convenience
from ..faults.domains import (
    DatabaseConnectionFault,
    QueryFault,
    SchemaFault,
)

__all__ = [
    "StrataDatabase",
    "DatabaseError",
    "DatabaseConnectionFault",
    "QueryFault",
    "SchemaFault",
    # Backends
    "DatabaseAdapter",
    "AdapterCapabilities",
    "ColumnInfo",
    "SQLiteAdapter",
    "MySQLAdapter",
]
