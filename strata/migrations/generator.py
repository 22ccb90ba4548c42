"""
Strata Migration Generator - turns schema diffs into migration files.

``MigrationGenerator.build()`` orders the statements of a
``SchemaDiffResult`` so each step can rely on the previous ones:

    1. drop foreign keys        7. modify columns
    2. drop indexes             8. drop columns
    3. rename tables            9. drop tables
    4. rename columns          10. create indexes
    5. create tables           11. add foreign keys
    6. add columns

``down`` undoes every step in reverse. Dropped tables and columns are
recreated from their current definitions (structure only, the data is
what backups are for).

``generate()`` writes the result as a Python module holding a
``SQLMigration`` subclass.
"""

from __future__ import annotations

import datetime
import logging
import pprint
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from .differ import SchemaDiffer
from .schema import Schema, SchemaDiffResult, TableDefinition
from .sqlgen import SQLBuilder

logger = logging.getLogger("strata.migrations.generator")

REVISION_FORMAT = "%Y%m%d_%H%M%S"


def _generate_revision(now: Optional[datetime.datetime] = None) -> str:
    """Generate a timestamp-based revision ID."""
    now = now or datetime.datetime.now(datetime.timezone.utc)
    return now.strftime(REVISION_FORMAT)


def _slugify(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


def _class_name(slug: str) -> str:
    name = "".join(part.capitalize() for part in slug.split("_") if part)
    if not name or not name[0].isalpha():
        name = f"Migration{name}"
    return name


def order_by_references(tables: Sequence[TableDefinition]) -> List[TableDefinition]:
    """Referenced tables before the tables that reference them (within ``tables``)."""
    by_name = {t.name: t for t in tables}
    ordered: List[TableDefinition] = []
    visiting: set = set()
    done: set = set()

    def visit(table: TableDefinition) -> None:
        if table.name in done or table.name in visiting:
            return
        visiting.add(table.name)
        for fk in table.foreign_keys:
            target = by_name.get(fk.referenced_table)
            if target is not None and target.name != table.name:
                visit(target)
        visiting.discard(table.name)
        done.add(table.name)
        ordered.append(table)

    for table in tables:
        visit(table)
    return ordered


@dataclass
class MigrationPlan:
    """Ordered up/down statements for one diff."""

    up: List[str] = field(default_factory=list)
    down: List[str] = field(default_factory=list)
    is_destructive: bool = False
    requires_backup: bool = False
    summary: Dict[str, int] = field(default_factory=dict)


# One reversible unit: the statements it runs and those undoing it
_Step = Tuple[List[str], List[str]]


class MigrationGenerator:
    """
    Usage:
        generator = MigrationGenerator("sqlite", "migrations")
        path = generator.generate(current_schema, desired_schema)
    """

    def __init__(
        self,
        dialect: str = "sqlite",
        migrations_dir: str | Path = "migrations",
        *,
        differ: Optional[SchemaDiffer] = None,
    ):
        self.builder = SQLBuilder(dialect)
        self.dialect = dialect
        self.migrations_dir = Path(migrations_dir)
        self.differ = differ or SchemaDiffer()

    # ── Planning ─────────────────────────────────────────────────────

    def _create_table(self, table: TableDefinition) -> List[str]:
        if self.builder.is_sqlite:
            return [self.builder.create_table(table)]
        return [self.builder.create_table(table, inline_indexes=True)]

    def _recreate_table(self, table: TableDefinition) -> List[str]:
        statements = self._create_table(table)
        if self.builder.is_sqlite:
            statements.extend(self.builder.create_index(table.name, i) for i in table.indexes)
        return statements

    def build(self, diff: SchemaDiffResult, current: Schema, desired: Schema) -> MigrationPlan:
        b = self.builder
        steps: List[List[_Step]] = []

        # 1-2. foreign keys and indexes going away
        steps.append([
            ([b.drop_foreign_key(r.table, r.foreign_key)], [b.add_foreign_key(r.table, r.foreign_key)])
            for r in diff.foreign_keys_to_remove
        ])
        steps.append([
            ([b.drop_index(r.table, r.index)], [b.create_index(r.table, r.index)])
            for r in diff.indexes_to_remove
        ])

        # 3-4. renames
        steps.append([
            ([b.rename_table(r.from_table, r.to_table)], [b.rename_table(r.to_table, r.from_table)])
            for r in diff.tables_to_rename
        ])
        steps.append([
            (
                [b.rename_column(r.table, r.from_column, r.to_column)],
                [b.rename_column(r.table, r.to_column, r.from_column)],
            )
            for r in diff.columns_to_rename
        ])

        # 5. new tables, referenced ones first
        created = order_by_references(diff.tables_to_create)
        steps.append([(self._create_table(t), [b.drop_table(t.name)]) for t in created])

        # 6. new columns
        steps.append([
            ([b.add_column(r.table, r.column)], [b.drop_column(r.table, r.column.name)])
            for r in diff.columns_to_add
        ])

        # 7. modified columns, one statement per column
        steps.append(self._modify_steps(diff, current, desired))

        # 8-9. removals
        steps.append([
            ([b.drop_column(r.table, r.column.name)], [b.add_column(r.table, r.column)])
            for r in diff.columns_to_remove
        ])
        dropped = order_by_references(
            [current.get_table(n) for n in diff.tables_to_drop if current.has_table(n)]
        )
        steps.append([
            ([b.drop_table(t.name)], self._recreate_table(t)) for t in reversed(dropped)
        ])

        # 10. indexes (those of created tables are inline on MySQL)
        index_steps: List[_Step] = []
        if b.is_sqlite:
            for table in created:
                index_steps.extend(
                    ([b.create_index(table.name, i)], []) for i in table.indexes
                )
        index_steps.extend(
            ([b.create_index(r.table, r.index)], [b.drop_index(r.table, r.index)])
            for r in diff.indexes_to_add
        )
        steps.append(index_steps)

        # 11. foreign keys (those of created tables are inline)
        steps.append([
            ([b.add_foreign_key(r.table, r.foreign_key)], [b.drop_foreign_key(r.table, r.foreign_key)])
            for r in diff.foreign_keys_to_add
        ])

        up: List[str] = []
        for group in steps:
            for forward, _ in group:
                up.extend(forward)
        down: List[str] = []
        for group in reversed(steps):
            for _, backward in reversed(group):
                down.extend(backward)

        destructive = diff.is_destructive()
        return MigrationPlan(
            up=up,
            down=down,
            is_destructive=destructive,
            requires_backup=destructive,
            summary=diff.summary(),
        )

    def _modify_steps(self, diff: SchemaDiffResult, current: Schema, desired: Schema) -> List[_Step]:
        old_table_name = {r.to_table: r.from_table for r in diff.tables_to_rename}
        old_column_name = {(r.table, r.to_column): r.from_column for r in diff.columns_to_rename}

        steps: List[_Step] = []
        seen = set()
        for change in diff.columns_to_modify:
            key = (change.table, change.column)
            if key in seen:
                continue
            seen.add(key)

            new_table = desired.get_table(change.table)
            old_table = current.get_table(old_table_name.get(change.table, change.table))
            if new_table is None or old_table is None:
                continue
            new_column = new_table.get_column(change.column)
            old_column = old_table.get_column(old_column_name.get(key, change.column))
            if new_column is None or old_column is None:
                continue

            # Down runs before the column is renamed back
            previous = replace(old_column, name=new_column.name)
            steps.append((
                [self.builder.modify_column(change.table, new_column, previous)],
                [self.builder.modify_column(change.table, previous, new_column)],
            ))
        return steps

    # ── Rendering ────────────────────────────────────────────────────

    def render(
        self,
        plan: MigrationPlan,
        version: str,
        slug: str,
        desired: Schema,
        *,
        description: Optional[str] = None,
        replaces: Sequence[str] = (),
        class_name: Optional[str] = None,
    ) -> str:
        """Render a migration module as Python source."""
        now = datetime.datetime.now(datetime.timezone.utc).isoformat()
        changes = ", ".join(f"{k}={v}" for k, v in plan.summary.items()) or "none"
        description = description if description is not None else slug.replace("_", " ")

        lines = [
            '"""',
            f"Migration: {version} ({description})",
            f"Generated: {now}",
            f"Dialect: {self.dialect}",
            f"Changes: {changes}",
            '"""',
            "",
            "from strata.migrations import SQLMigration",
            "",
            "",
            f"class {class_name or _class_name(slug)}(SQLMigration):",
            f"    version = {version!r}",
            f"    description = {description!r}",
            f"    is_destructive = {plan.is_destructive!r}",
            f"    requires_backup = {plan.requires_backup!r}",
        ]
        if replaces:
            lines.append(f"    replaces = {list(replaces)!r}")
        lines.append("")
        lines.extend(_render_list("up_statements", plan.up))
        lines.append("")
        lines.extend(_render_list("down_statements", plan.down))
        lines.append("")

        snapshot = pprint.pformat(desired.to_dict(), indent=1, width=88, sort_dicts=False)
        snapshot_lines = snapshot.splitlines()
        lines.append(f"    schema_snapshot = {snapshot_lines[0]}")
        lines.extend(f"    {line}" for line in snapshot_lines[1:])
        lines.append("")
        return "\n".join(lines)

    # ── Files ────────────────────────────────────────────────────────

    def next_version(self) -> str:
        """A fresh revision, bumped past any file already using it."""
        now = datetime.datetime.now(datetime.timezone.utc)
        version = _generate_revision(now)
        while self.migrations_dir.is_dir() and any(self.migrations_dir.glob(f"{version}*")):
            now += datetime.timedelta(seconds=1)
            version = _generate_revision(now)
        return version

    def write(self, source: str, filename: str) -> Path:
        self.migrations_dir.mkdir(parents=True, exist_ok=True)
        path = self.migrations_dir / filename
        path.write_text(source, encoding="utf-8")
        logger.info(f"Generated migration: {path}")
        return path

    def generate(
        self,
        current: Schema,
        desired: Schema,
        slug: Optional[str] = None,
        *,
        version: Optional[str] = None,
    ) -> Optional[Path]:
        """
        Diff ``current`` against ``desired`` and write a migration file.

        Returns:
            Path to the generated file, or None if no changes were detected.
        """
        diff = self.differ.diff(current, desired)
        if diff.is_empty():
            logger.info("No schema changes detected")
            return None

        plan = self.build(diff, current, desired)
        version = version or self.next_version()
        slug = _slugify(slug) if slug else _auto_slug(diff)
        source = self.render(plan, version, slug, desired)
        return self.write(source, f"{version}_{slug}.py")


def _auto_slug(diff: SchemaDiffResult) -> str:
    names = set(t.name for t in diff.tables_to_create)
    names.update(diff.tables_to_drop)
    names.update(r.to_table for r in diff.tables_to_rename)
    for refs in (diff.columns_to_add, diff.columns_to_remove):
        names.update(r.table for r in refs)
    names.update(c.table for c in diff.columns_to_modify)
    names.update(r.table for r in diff.columns_to_rename)
    names.update(r.table for r in diff.indexes_to_add + diff.indexes_to_remove)
    names.update(r.table for r in diff.foreign_keys_to_add + diff.foreign_keys_to_remove)
    tables = sorted(names)
    if not tables:
        return "auto"
    slug = "_".join(_slugify(t) for t in tables[:3])
    if len(tables) > 3:
        slug += f"_and_{len(tables) - 3}_more"
    return slug


def _render_list(name: str, statements: Sequence[str]) -> List[str]:
    if not statements:
        return [f"    {name} = []"]
    lines = [f"    {name} = ["]
    lines.extend(f"        {statement!r}," for statement in statements)
    lines.append("    ]")
    return lines
