"""Strata CLI - Main Entry Point.

The `strata` command drives schema migrations.

Commands:
    migrate               - Apply pending migrations
    migration:generate    - Diff entities against the database, write a migration
    migration:status      - Applied / pending migrations
    migration:rollback    - Roll back batches or down to a version
    migration:fresh       - Drop all tables and re-run every migration
    migration:squash      - Collapse applied migrations into a baseline
    migration:unlock      - Force-release a stuck migration lock
    restore:backup        - Restore the backup taken before a migration
    backup:list           - List backups
    backup:cleanup        - Delete old backups
"""

import logging
import sys
from typing import Optional

import click

from . import __version__, __cli_name__
from .utils.colors import error, warning, banner, _CHECK, _CROSS


# ═══════════════════════════════════════════════════════════════════════════
# Custom Click help formatter
# ═══════════════════════════════════════════════════════════════════════════


class StrataGroup(click.Group):
    """Click group subclass with branded help output."""

    def format_help(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        if ctx.parent is None:
            banner("Strata", subtitle=f"v{__version__}  {_CHECK}  schema migrations")
            click.echo()
        super().format_help(ctx, formatter)

    def list_commands(self, ctx: click.Context):
        # Registration order groups related commands together
        return list(self.commands)

    def format_commands(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        """Format command listing with aligned columns."""
        commands = []
        for subcommand in self.list_commands(ctx):
            cmd = self.get_command(ctx, subcommand)
            if cmd is None or cmd.hidden:
                continue
            commands.append((subcommand, cmd.get_short_help_str(limit=52)))

        if commands:
            with formatter.section(click.style("Commands", fg="cyan", bold=True)):
                max_len = max(len(c[0]) for c in commands) + 2
                for name, help_text in commands:
                    styled_name = click.style(name.ljust(max_len), fg="green")
                    formatter.write(f"  {styled_name} {help_text}\n")


@click.group(cls=StrataGroup)
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option('--verbose', '-v', is_flag=True, help='Verbose output (DEBUG logging)')
@click.option('--quiet', '-q', is_flag=True, help='Minimal output')
@click.option('--config', 'config_path', type=click.Path(), default=None,
              help='Config file (default: strata.yaml when present)')
@click.pass_context
def cli(ctx, verbose: bool, quiet: bool, config_path: Optional[str]):
    """Schema migrations for code-first applications.

    \b
    Quick start:
      strata migration:generate --entities app.entities:ENTITIES
      strata migrate --dry-run
      strata migrate
      strata migration:status
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet
    ctx.obj['config_path'] = config_path


# ============================================================================
# Shared options
# ============================================================================

def connection_options(func):
    """--database-url / --migrations-dir overrides, accepted by every command."""
    func = click.option('--migrations-dir', type=click.Path(), default=None,
                        help='Migrations directory (default: migrations)')(func)
    func = click.option('--database-url', type=str, default=None,
                        help='Database URL (default: sqlite:///db.sqlite3)')(func)
    return func


def _config(ctx, database_url: Optional[str], migrations_dir: Optional[str]):
    from ..config import StrataConfig

    overrides = {}
    if database_url:
        overrides['database'] = {'url': database_url}
    if migrations_dir:
        overrides['migrations'] = {'dir': migrations_dir}
    config_path = ctx.obj.get('config_path')
    return StrataConfig.load(
        paths=[config_path] if config_path else None,
        overrides=overrides,
    )


# ============================================================================
# Migrations
# ============================================================================

@cli.command('migrate')
@click.option('--dry-run', is_flag=True, help='Print SQL and safety warnings without executing')
@connection_options
@click.pass_context
def migrate(ctx, dry_run: bool, database_url: Optional[str], migrations_dir: Optional[str]):
    """
    Apply pending migrations.

    Examples:
      strata migrate
      strata migrate --dry-run
      strata migrate --database-url=sqlite:///prod.db
    """
    from .commands.migration_cmds import cmd_migrate

    try:
        cmd_migrate(
            _config(ctx, database_url, migrations_dir),
            dry_run=dry_run,
            verbose=ctx.obj['verbose'],
        )
    except Exception as e:
        error(f"{_CROSS} migrate failed: {e}")
        sys.exit(1)


@cli.command('migration:generate')
@click.option('--slug', type=str, default=None, help='Name suffix of the migration file')
@click.option('--entities', type=str, default=None, help='Entity source as module:attribute')
@connection_options
@click.pass_context
def migration_generate(ctx, slug: Optional[str], entities: Optional[str],
                       database_url: Optional[str], migrations_dir: Optional[str]):
    """
    Diff declared entities against the database and write a migration.

    Examples:
      strata migration:generate --entities app.entities:ENTITIES
      strata migration:generate --slug add_orders
    """
    from .commands.migration_cmds import cmd_generate

    try:
        cmd_generate(
            _config(ctx, database_url, migrations_dir),
            slug=slug,
            entities=entities,
            verbose=ctx.obj['verbose'],
        )
    except Exception as e:
        error(f"{_CROSS} migration:generate failed: {e}")
        sys.exit(1)


@cli.command('migration:status')
@connection_options
@click.pass_context
def migration_status(ctx, database_url: Optional[str], migrations_dir: Optional[str]):
    """
    Show applied and pending migrations.

    Examples:
      strata migration:status
    """
    from .commands.migration_cmds import cmd_status

    try:
        cmd_status(_config(ctx, database_url, migrations_dir), verbose=ctx.obj['verbose'])
    except Exception as e:
        error(f"{_CROSS} migration:status failed: {e}")
        sys.exit(1)


@cli.command('migration:rollback')
@click.option('--steps', type=int, default=1, show_default=True, help='Number of batches to roll back')
@click.option('--version', 'version', type=str, default=None,
              help='Roll back every migration newer than this version')
@connection_options
@click.pass_context
def migration_rollback(ctx, steps: int, version: Optional[str],
                       database_url: Optional[str], migrations_dir: Optional[str]):
    """
    Roll back the last batch(es), or down to a version.

    Examples:
      strata migration:rollback
      strata migration:rollback --steps=2
      strata migration:rollback --version=20260301_101500
    """
    from .commands.migration_cmds import cmd_rollback

    try:
        cmd_rollback(
            _config(ctx, database_url, migrations_dir),
            steps=steps,
            version=version,
            verbose=ctx.obj['verbose'],
        )
    except Exception as e:
        error(f"{_CROSS} migration:rollback failed: {e}")
        sys.exit(1)


@cli.command('migration:fresh')
@click.option('--force', is_flag=True, help='Required: confirms that every table is dropped')
@connection_options
@click.pass_context
def migration_fresh(ctx, force: bool, database_url: Optional[str], migrations_dir: Optional[str]):
    """
    Drop all tables and re-run every migration.

    Examples:
      strata migration:fresh --force
    """
    if not force:
        warning("migration:fresh drops every table. Re-run with --force to proceed.")
        sys.exit(1)

    from .commands.migration_cmds import cmd_fresh

    try:
        cmd_fresh(_config(ctx, database_url, migrations_dir), verbose=ctx.obj['verbose'])
    except Exception as e:
        error(f"{_CROSS} migration:fresh failed: {e}")
        sys.exit(1)


@cli.command('migration:squash')
@click.option('--to', 'target', type=str, default=None, help='Last version to include')
@connection_options
@click.pass_context
def migration_squash(ctx, target: Optional[str], database_url: Optional[str],
                     migrations_dir: Optional[str]):
    """
    Squash applied migrations into one baseline migration.

    Examples:
      strata migration:squash
      strata migration:squash --to=20260301_101500
    """
    from .commands.migration_cmds import cmd_squash

    try:
        cmd_squash(
            _config(ctx, database_url, migrations_dir),
            target=target,
            verbose=ctx.obj['verbose'],
        )
    except Exception as e:
        error(f"{_CROSS} migration:squash failed: {e}")
        sys.exit(1)


@cli.command('migration:unlock')
@connection_options
@click.pass_context
def migration_unlock(ctx, database_url: Optional[str], migrations_dir: Optional[str]):
    """
    Force-release the migration lock left by a dead process.

    Examples:
      strata migration:unlock
    """
    from .commands.migration_cmds import cmd_unlock

    try:
        cmd_unlock(_config(ctx, database_url, migrations_dir), verbose=ctx.obj['verbose'])
    except Exception as e:
        error(f"{_CROSS} migration:unlock failed: {e}")
        sys.exit(1)


# ============================================================================
# Backups
# ============================================================================

@cli.command('restore:backup')
@click.argument('version')
@connection_options
@click.pass_context
def restore_backup(ctx, version: str, database_url: Optional[str], migrations_dir: Optional[str]):
    """
    Restore the backup taken before VERSION ran.

    Examples:
      strata restore:backup 20260301_101500
    """
    from .commands.migration_cmds import cmd_restore_backup

    try:
        cmd_restore_backup(
            _config(ctx, database_url, migrations_dir),
            version,
            verbose=ctx.obj['verbose'],
        )
    except Exception as e:
        error(f"{_CROSS} restore:backup failed: {e}")
        sys.exit(1)


@cli.command('backup:list')
@connection_options
@click.pass_context
def backup_list(ctx, database_url: Optional[str], migrations_dir: Optional[str]):
    """
    List backups, newest first.

    Examples:
      strata backup:list
    """
    from .commands.migration_cmds import cmd_backup_list

    try:
        cmd_backup_list(_config(ctx, database_url, migrations_dir), verbose=ctx.obj['verbose'])
    except Exception as e:
        error(f"{_CROSS} backup:list failed: {e}")
        sys.exit(1)


@cli.command('backup:cleanup')
@click.option('--days', type=click.IntRange(min=1), default=None, help='Retention in days (default: backups.retention_days)')
@connection_options
@click.pass_context
def backup_cleanup(ctx, days: Optional[int], database_url: Optional[str],
                   migrations_dir: Optional[str]):
    """
    Delete backups older than the retention window.

    Examples:
      strata backup:cleanup
      strata backup:cleanup --days=7
    """
    from .commands.migration_cmds import cmd_backup_cleanup

    try:
        cmd_backup_cleanup(
            _config(ctx, database_url, migrations_dir),
            days=days,
            verbose=ctx.obj['verbose'],
        )
    except Exception as e:
        error(f"{_CROSS} backup:cleanup failed: {e}")
        sys.exit(1)


def main():
    """Entry point for `strata` command."""
    cli(obj={})


if __name__ == '__main__':
    main()
