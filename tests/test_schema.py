"""
Tests for the schema model - type parsing, definitions, serialization.
"""

import pytest

from strata.faults import SchemaFault
from strata.migrations import (
    ColumnDefinition,
    ColumnRef,
    IndexDefinition,
    Schema,
    SchemaDiffResult,
    TableDefinition,
    normalize_type,
    parse_type,
)

from conftest import orders_table, pk, users_table, varchar


class TestTypes:

    def test_normalize_aliases(self):
        assert normalize_type("INTEGER") == "int"
        assert normalize_type("  Character   Varying ") == "varchar"
        assert normalize_type("BOOL") == "boolean"

    def test_parse_length(self):
        assert parse_type("VARCHAR(255)") == ("varchar", 255)
        assert parse_type("text") == ("text", None)

    def test_parse_drops_integer_display_width(self):
        assert parse_type("int(11)") == ("int", None)
        assert parse_type("bigint(20) unsigned") == ("bigint", None)

    def test_parse_keeps_precision_and_scale(self):
        assert parse_type("DECIMAL(10, 2)") == ("decimal(10,2)", None)

    def test_parse_empty_is_text(self):
        # SQLite columns declared without a type
        assert parse_type("") == ("text", None)


class TestColumnDefinition:

    def test_rendered_type(self):
        assert varchar("name", 100).rendered_type() == "varchar(100)"
        assert ColumnDefinition("n", "int").rendered_type() == "int"

    def test_type_equality_covers_length_and_nullability(self):
        a = varchar("name", 100)
        assert a.is_type_equal(varchar("other", 100))
        assert not a.is_type_equal(varchar("name", 255))
        assert not a.is_type_equal(varchar("name", 100, nullable=False))

    def test_integer_length_is_ignored(self):
        assert ColumnDefinition("n", "int", 11).is_type_equal(ColumnDefinition("n", "INTEGER"))


class TestTableDefinition:

    def test_duplicate_column_rejected(self):
        with pytest.raises(SchemaFault) as exc_info:
            TableDefinition("t", columns=[varchar("a"), varchar("a")])
        assert "duplicate column 'a'" in str(exc_info.value)

    def test_multiple_primary_keys_rejected(self):
        with pytest.raises(SchemaFault):
            TableDefinition("t", columns=[pk("a"), pk("b")])

    def test_lookup(self):
        table = users_table()
        assert table.has_column("email")
        assert not table.has_column("missing")
        assert table.primary_key.name == "id"
        assert table.column_names == ["id", "email"]


class TestSchema:

    def test_container_protocol(self):
        schema = Schema([users_table(), orders_table()])
        assert "users" in schema
        assert len(schema) == 2
        assert [t.name for t in schema] == ["users", "orders"]
        assert schema.remove_table("orders")
        assert not schema.remove_table("orders")
        assert schema.get_table_names() == ["users"]

    def test_json_roundtrip(self):
        schema = Schema([users_table(ColumnDefinition("status", "varchar", 20, default="'active'")),
                         orders_table()])
        restored = Schema.from_json(schema.to_json())

        assert restored.to_dict() == schema.to_dict()
        fk = restored.get_table("orders").foreign_keys[0]
        assert fk.referenced_table == "users"
        assert fk.on_delete == "CASCADE"
        assert restored.get_table("users").get_column("status").default == "'active'"


class TestSchemaDiffResult:

    def test_empty(self):
        result = SchemaDiffResult()
        assert result.is_empty()
        assert not result.is_destructive()
        assert result.change_count == 0
        assert result.summary() == {}

    def test_additions_are_not_destructive(self):
        result = SchemaDiffResult(
            tables_to_create=[users_table()],
            indexes_to_add=[],
            columns_to_add=[ColumnRef("users", varchar("name"))],
        )
        assert not result.is_empty()
        assert not result.is_destructive()
        assert result.summary() == {"tables_to_create": 1, "columns_to_add": 1}

    def test_drops_are_destructive(self):
        assert SchemaDiffResult(tables_to_drop=["legacy"]).is_destructive()
        assert SchemaDiffResult(
            columns_to_remove=[ColumnRef("users", varchar("nickname"))]
        ).is_destructive()

    def test_index_structure(self):
        index = IndexDefinition("idx", ["a", "b"], unique=True)
        assert index.structure() == (("a", "b"), True)
