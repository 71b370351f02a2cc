"""Caller-supplied exclusions and their conversion into per-diagnostic predicates."""

from __future__ import annotations

from dataclasses import dataclass, field

from pg_index_health import catalog
from pg_index_health.catalog import Diagnostic
from pg_index_health.context import SchemaContext
from pg_index_health.predicates import (
    Predicate,
    keep_all,
    skip_bloat_under_threshold,
    skip_indexes_by_name,
    skip_small_indexes,
    skip_small_tables,
    skip_tables_by_name,
)
from pg_index_health.validators import not_negative, valid_percent


@dataclass(frozen=True)
class Exclusions:
    """Names and thresholds the caller wants ignored.

    Name sets hold unqualified or schema-qualified object names. Size
    thresholds are in bytes; percentage thresholds are in [0, 100].
    """

    duplicated_indexes: frozenset[str] = field(default_factory=frozenset)
    intersected_indexes: frozenset[str] = field(default_factory=frozenset)
    unused_indexes: frozenset[str] = field(default_factory=frozenset)
    tables_with_missing_indexes: frozenset[str] = field(default_factory=frozenset)
    tables_without_primary_key: frozenset[str] = field(default_factory=frozenset)
    indexes_with_null_values: frozenset[str] = field(default_factory=frozenset)
    btree_indexes_on_array_columns: frozenset[str] = field(default_factory=frozenset)
    index_size_threshold_in_bytes: int = 0
    table_size_threshold_in_bytes: int = 0
    index_bloat_size_threshold_in_bytes: int = 0
    index_bloat_percentage_threshold: float = 0.0
    table_bloat_size_threshold_in_bytes: int = 0
    table_bloat_percentage_threshold: float = 0.0

    def __post_init__(self):
        for name in (
            "duplicated_indexes",
            "intersected_indexes",
            "unused_indexes",
            "tables_with_missing_indexes",
            "tables_without_primary_key",
            "indexes_with_null_values",
            "btree_indexes_on_array_columns",
        ):
            object.__setattr__(self, name, frozenset(getattr(self, name) or ()))
        for name in (
            "index_size_threshold_in_bytes",
            "table_size_threshold_in_bytes",
            "index_bloat_size_threshold_in_bytes",
            "table_bloat_size_threshold_in_bytes",
        ):
            not_negative(getattr(self, name), name)
        valid_percent(self.index_bloat_percentage_threshold, "index_bloat_percentage_threshold")
        valid_percent(self.table_bloat_percentage_threshold, "table_bloat_percentage_threshold")

    @classmethod
    def empty(cls) -> Exclusions:
        return cls()

    def predicate_for(self, diagnostic: Diagnostic, context: SchemaContext) -> Predicate:
        """Build the exclusion pipeline for one diagnostic."""
        builder = _PIPELINES.get(diagnostic.name)
        if builder is None:
            return keep_all
        return builder(self, context)


_PIPELINES = {
    catalog.DUPLICATED_INDEXES.name: lambda ex, ctx: skip_indexes_by_name(
        ctx, ex.duplicated_indexes
    ),
    catalog.INTERSECTED_INDEXES.name: lambda ex, ctx: skip_indexes_by_name(
        ctx, ex.intersected_indexes
    ),
    catalog.UNUSED_INDEXES.name: lambda ex, ctx: (
        skip_small_indexes(ex.index_size_threshold_in_bytes)
        & skip_indexes_by_name(ctx, ex.unused_indexes)
    ),
    catalog.TABLES_WITH_MISSING_INDEXES.name: lambda ex, ctx: (
        skip_small_tables(ex.table_size_threshold_in_bytes)
        & skip_tables_by_name(ctx, ex.tables_with_missing_indexes)
    ),
    catalog.TABLES_WITHOUT_PRIMARY_KEY.name: lambda ex, ctx: (
        skip_small_tables(ex.table_size_threshold_in_bytes)
        & skip_tables_by_name(ctx, ex.tables_without_primary_key)
    ),
    catalog.INDEXES_WITH_NULL_VALUES.name: lambda ex, ctx: skip_indexes_by_name(
        ctx, ex.indexes_with_null_values
    ),
    catalog.BLOATED_INDEXES.name: lambda ex, ctx: (
        skip_bloat_under_threshold(
            ex.index_bloat_size_threshold_in_bytes, ex.index_bloat_percentage_threshold
        )
        & skip_small_indexes(ex.index_size_threshold_in_bytes)
    ),
    catalog.BLOATED_TABLES.name: lambda ex, ctx: (
        skip_bloat_under_threshold(
            ex.table_bloat_size_threshold_in_bytes, ex.table_bloat_percentage_threshold
        )
        & skip_small_tables(ex.table_size_threshold_in_bytes)
    ),
    catalog.BTREE_INDEXES_ON_ARRAY_COLUMNS.name: lambda ex, ctx: skip_indexes_by_name(
        ctx, ex.btree_indexes_on_array_columns
    ),
}
