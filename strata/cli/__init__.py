"""
Strata CLI - schema migrations from the command line.

Usage:
    strata migration:generate --entities app.entities:ENTITIES
    strata migrate [--dry-run]
    strata migration:status
    strata migration:rollback [--steps N | --version V]
    strata migration:squash [--to V]
    strata backup:list
"""

from .. import __version__

__cli_name__ = "strata"
