"""Row mappers: turn one result row of a diagnostic query into its entity.

Rows arrive as mappings keyed by column name (psycopg2 RealDictCursor).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

from pg_index_health import entities
from pg_index_health.catalog import Diagnostic
from pg_index_health.exceptions import UnknownDiagnostic

RowMapper = Callable[[Mapping], entities.DbObject]


def _columns(table_name: str, names, not_null) -> tuple[entities.Column, ...]:
    flags = list(not_null) if not_null is not None else [False] * len(names or ())
    return tuple(
        entities.Column(table_name, name, bool(flag)) for name, flag in zip(names or (), flags)
    )


def map_index(row: Mapping) -> entities.Index:
    return entities.Index(row["table_name"], row["index_name"])


def map_duplicated_indexes(row: Mapping) -> entities.DuplicatedIndexes:
    return entities.DuplicatedIndexes.from_aggregate(row["table_name"], row["duplicated_indexes"])


def map_unused_index(row: Mapping) -> entities.UnusedIndex:
    return entities.UnusedIndex(
        row["table_name"], row["index_name"], row["index_size"], row["index_scans"]
    )


def map_index_with_nulls(row: Mapping) -> entities.IndexWithNulls:
    return entities.IndexWithNulls(
        row["table_name"], row["index_name"], row["index_size"], row["nullable_fields"]
    )


def map_index_with_bloat(row: Mapping) -> entities.IndexWithBloat:
    return entities.IndexWithBloat(
        row["table_name"],
        row["index_name"],
        row["index_size"],
        row["bloat_size"],
        row["bloat_percentage"],
    )


def map_table(row: Mapping) -> entities.Table:
    return entities.Table(row["table_name"], row["table_size"])


def map_table_with_bloat(row: Mapping) -> entities.TableWithBloat:
    return entities.TableWithBloat(
        row["table_name"], row["table_size"], row["bloat_size"], row["bloat_percentage"]
    )


def map_table_with_missing_index(row: Mapping) -> entities.TableWithMissingIndex:
    return entities.TableWithMissingIndex(
        row["table_name"], row["table_size"], row["seq_scan"], row["idx_scan"]
    )


def map_column(row: Mapping) -> entities.Column:
    return entities.Column(row["table_name"], row["column_name"], bool(row["column_not_null"]))


def map_column_with_serial_type(row: Mapping) -> entities.ColumnWithSerialType:
    return entities.ColumnWithSerialType(
        map_column(row), row["column_type"], row["sequence_name"]
    )


def map_foreign_key(row: Mapping) -> entities.ForeignKey:
    table_name = row["table_name"]
    return entities.ForeignKey(
        table_name,
        row["constraint_name"],
        _columns(table_name, row["columns"], row.get("columns_not_null")),
    )


def map_duplicated_foreign_keys(row: Mapping) -> entities.DuplicatedForeignKeys:
    table_name = row["table_name"]
    return entities.DuplicatedForeignKeys.of(
        map_foreign_key(row),
        entities.ForeignKey(
            table_name,
            row["duplicate_constraint_name"],
            _columns(table_name, row["duplicate_columns"], row.get("duplicate_columns_not_null")),
        ),
    )


def map_constraint(row: Mapping) -> entities.Constraint:
    return entities.Constraint(row["table_name"], row["constraint_name"], row["constraint_type"])


def map_stored_function(row: Mapping) -> entities.StoredFunction:
    return entities.StoredFunction(row["function_name"], row["function_signature"] or "")


def map_sequence_state(row: Mapping) -> entities.SequenceState:
    return entities.SequenceState(
        row["sequence_name"], row["data_type"], row["remaining_percentage"]
    )


def map_any_object(row: Mapping) -> entities.AnyObject:
    return entities.AnyObject(row["object_name"], row["object_type"])


_MAPPERS: dict[str, RowMapper] = {
    "invalid_indexes": map_index,
    "duplicated_indexes": map_duplicated_indexes,
    "intersected_indexes": map_duplicated_indexes,
    "unused_indexes": map_unused_index,
    "foreign_keys_without_index": map_foreign_key,
    "tables_with_missing_indexes": map_table_with_missing_index,
    "tables_without_primary_key": map_table,
    "indexes_with_null_values": map_index_with_nulls,
    "bloated_indexes": map_index_with_bloat,
    "bloated_tables": map_table_with_bloat,
    "tables_without_description": map_table,
    "columns_without_description": map_column,
    "columns_with_json_type": map_column,
    "columns_with_serial_types": map_column_with_serial_type,
    "functions_without_description": map_stored_function,
    "indexes_with_boolean": map_index,
    "not_valid_constraints": map_constraint,
    "btree_indexes_on_array_columns": map_index,
    "sequence_overflow": map_sequence_state,
    "primary_keys_with_serial_types": map_column_with_serial_type,
    "duplicated_foreign_keys": map_duplicated_foreign_keys,
    "intersected_foreign_keys": map_duplicated_foreign_keys,
    "possible_object_name_overflow": map_any_object,
    "tables_not_linked_to_others": map_table,
    "foreign_keys_with_unmatched_column_type": map_foreign_key,
    "tables_with_zero_or_one_column": map_table,
    "objects_not_following_naming_convention": map_any_object,
    "columns_not_following_naming_convention": map_column,
}


def mapper_for(diagnostic: Diagnostic) -> RowMapper:
    try:
        return _MAPPERS[diagnostic.name]
    except KeyError:
        raise UnknownDiagnostic(f"No row mapper for diagnostic {diagnostic.name!r}") from None
