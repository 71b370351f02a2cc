"""Diagnostic catalog: the single source of truth mapping a diagnostic to its query and entity."""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from pg_index_health import entities
from pg_index_health.exceptions import MissingQueryResource, UnknownDiagnostic
from pg_index_health.queries import query_exists


class Execution(enum.Enum):
    """Whether a diagnostic's answer may legitimately differ between cluster members."""

    HOST_INVARIANT = "host_invariant"
    HOST_VARIANT = "host_variant"


class MergeRule(enum.Enum):
    """How per-host results of one diagnostic are combined."""

    UNION = "union"
    MAX_VALUE = "max_value"


@dataclass(frozen=True)
class Diagnostic:
    """A named check bound to one SQL resource and one entity type.

    Attributes:
        name: Unique snake_case identifier, also used as the logging key.
        entity_type: Class of the entities produced by the row mapper.
        execution: Structural (host-invariant) or statistics-based (host-variant).
        merge_rule: Rule used when results come from more than one host.
        description: Human-readable summary.
    """

    name: str
    entity_type: type
    execution: Execution = Execution.HOST_INVARIANT
    merge_rule: MergeRule = MergeRule.UNION
    description: str = ""

    @property
    def query_resource(self) -> str:
        return f"{self.name}.sql"

    @property
    def is_host_variant(self) -> bool:
        return self.execution is Execution.HOST_VARIANT

    def __str__(self):
        return self.name


class DiagnosticCatalog:
    """Ordered, read-only registry of diagnostics."""

    def __init__(self, diagnostics: Iterable[Diagnostic]):
        by_name: dict[str, Diagnostic] = {}
        for diagnostic in diagnostics:
            if diagnostic.name in by_name:
                raise ValueError(f"Duplicate diagnostic name: {diagnostic.name}")
            by_name[diagnostic.name] = diagnostic
        self._by_name = by_name
        self._ordered = tuple(by_name.values())

    def resolve(self, diagnostic: str | Diagnostic) -> Diagnostic:
        name = diagnostic.name if isinstance(diagnostic, Diagnostic) else diagnostic
        try:
            found = self._by_name[name]
        except KeyError:
            raise UnknownDiagnostic(f"Unknown diagnostic: {name!r}") from None
        if isinstance(diagnostic, Diagnostic) and diagnostic != found:
            raise UnknownDiagnostic(f"Diagnostic {name!r} is registered with a different definition")
        return found

    def all_diagnostics(self) -> tuple[Diagnostic, ...]:
        return self._ordered

    def validate(self, resource_exists: Callable[[str], bool] = query_exists) -> None:
        """Fail fast if any registered diagnostic has no SQL resource."""
        missing = [d.query_resource for d in self._ordered if not resource_exists(d.query_resource)]
        if missing:
            raise MissingQueryResource(f"No SQL resource for: {', '.join(missing)}")

    def __iter__(self):
        return iter(self._ordered)

    def __len__(self):
        return len(self._ordered)

    def __contains__(self, name: str):
        return name in self._by_name


def _static(name: str, entity_type: type, description: str) -> Diagnostic:
    return Diagnostic(name, entity_type, Execution.HOST_INVARIANT, MergeRule.UNION, description)


def _runtime(name: str, entity_type: type, description: str) -> Diagnostic:
    return Diagnostic(name, entity_type, Execution.HOST_VARIANT, MergeRule.MAX_VALUE, description)


INVALID_INDEXES = _static("invalid_indexes", entities.Index, "Invalid (broken) indexes")
DUPLICATED_INDEXES = _static(
    "duplicated_indexes", entities.DuplicatedIndexes, "Completely identical indexes"
)
INTERSECTED_INDEXES = _static(
    "intersected_indexes", entities.DuplicatedIndexes, "Indexes with overlapping columns"
)
UNUSED_INDEXES = _runtime("unused_indexes", entities.UnusedIndex, "Unused indexes")
FOREIGN_KEYS_WITHOUT_INDEX = _static(
    "foreign_keys_without_index", entities.ForeignKey, "Foreign keys without a covering index"
)
TABLES_WITH_MISSING_INDEXES = _runtime(
    "tables_with_missing_indexes",
    entities.TableWithMissingIndex,
    "Tables read mostly by sequential scans",
)
TABLES_WITHOUT_PRIMARY_KEY = _static(
    "tables_without_primary_key", entities.Table, "Tables without a primary key"
)
INDEXES_WITH_NULL_VALUES = _static(
    "indexes_with_null_values", entities.IndexWithNulls, "Indexes on nullable columns"
)
BLOATED_INDEXES = _runtime("bloated_indexes", entities.IndexWithBloat, "Bloated indexes")
BLOATED_TABLES = _runtime("bloated_tables", entities.TableWithBloat, "Bloated tables")
TABLES_WITHOUT_DESCRIPTION = _static(
    "tables_without_description", entities.Table, "Tables without a comment"
)
COLUMNS_WITHOUT_DESCRIPTION = _static(
    "columns_without_description", entities.Column, "Columns without a comment"
)
COLUMNS_WITH_JSON_TYPE = _static(
    "columns_with_json_type", entities.Column, "Columns of type json instead of jsonb"
)
COLUMNS_WITH_SERIAL_TYPES = _static(
    "columns_with_serial_types", entities.ColumnWithSerialType, "Non-key columns of serial types"
)
FUNCTIONS_WITHOUT_DESCRIPTION = _static(
    "functions_without_description", entities.StoredFunction, "Functions without a comment"
)
INDEXES_WITH_BOOLEAN = _static(
    "indexes_with_boolean", entities.Index, "Indexes containing boolean columns"
)
NOT_VALID_CONSTRAINTS = _static(
    "not_valid_constraints", entities.Constraint, "Constraints not yet validated"
)
BTREE_INDEXES_ON_ARRAY_COLUMNS = _static(
    "btree_indexes_on_array_columns", entities.Index, "B-tree indexes on array columns"
)
SEQUENCE_OVERFLOW = _static(
    "sequence_overflow", entities.SequenceState, "Sequences close to running out of values"
)
PRIMARY_KEYS_WITH_SERIAL_TYPES = _static(
    "primary_keys_with_serial_types",
    entities.ColumnWithSerialType,
    "Primary keys of serial types instead of identity",
)
DUPLICATED_FOREIGN_KEYS = _static(
    "duplicated_foreign_keys", entities.DuplicatedForeignKeys, "Completely identical foreign keys"
)
INTERSECTED_FOREIGN_KEYS = _static(
    "intersected_foreign_keys",
    entities.DuplicatedForeignKeys,
    "Foreign keys with overlapping columns",
)
POSSIBLE_OBJECT_NAME_OVERFLOW = _static(
    "possible_object_name_overflow", entities.AnyObject, "Object names at the identifier length limit"
)
TABLES_NOT_LINKED_TO_OTHERS = _static(
    "tables_not_linked_to_others", entities.Table, "Tables without any foreign key relation"
)
FOREIGN_KEYS_WITH_UNMATCHED_COLUMN_TYPE = _static(
    "foreign_keys_with_unmatched_column_type",
    entities.ForeignKey,
    "Foreign keys whose column types differ from the referenced columns",
)
TABLES_WITH_ZERO_OR_ONE_COLUMN = _static(
    "tables_with_zero_or_one_column", entities.Table, "Tables with zero or one column"
)
OBJECTS_NOT_FOLLOWING_NAMING_CONVENTION = _static(
    "objects_not_following_naming_convention",
    entities.AnyObject,
    "Objects whose names need quoting",
)
COLUMNS_NOT_FOLLOWING_NAMING_CONVENTION = _static(
    "columns_not_following_naming_convention",
    entities.Column,
    "Columns whose names need quoting",
)

DEFAULT_CATALOG = DiagnosticCatalog(
    [
        INVALID_INDEXES,
        DUPLICATED_INDEXES,
        INTERSECTED_INDEXES,
        UNUSED_INDEXES,
        FOREIGN_KEYS_WITHOUT_INDEX,
        TABLES_WITH_MISSING_INDEXES,
        TABLES_WITHOUT_PRIMARY_KEY,
        INDEXES_WITH_NULL_VALUES,
        BLOATED_INDEXES,
        BLOATED_TABLES,
        TABLES_WITHOUT_DESCRIPTION,
        COLUMNS_WITHOUT_DESCRIPTION,
        COLUMNS_WITH_JSON_TYPE,
        COLUMNS_WITH_SERIAL_TYPES,
        FUNCTIONS_WITHOUT_DESCRIPTION,
        INDEXES_WITH_BOOLEAN,
        NOT_VALID_CONSTRAINTS,
        BTREE_INDEXES_ON_ARRAY_COLUMNS,
        SEQUENCE_OVERFLOW,
        PRIMARY_KEYS_WITH_SERIAL_TYPES,
        DUPLICATED_FOREIGN_KEYS,
        INTERSECTED_FOREIGN_KEYS,
        POSSIBLE_OBJECT_NAME_OVERFLOW,
        TABLES_NOT_LINKED_TO_OTHERS,
        FOREIGN_KEYS_WITH_UNMATCHED_COLUMN_TYPE,
        TABLES_WITH_ZERO_OR_ONE_COLUMN,
        OBJECTS_NOT_FOLLOWING_NAMING_CONVENTION,
        COLUMNS_NOT_FOLLOWING_NAMING_CONVENTION,
    ]
)


def resolve(diagnostic: str | Diagnostic) -> Diagnostic:
    return DEFAULT_CATALOG.resolve(diagnostic)


def all_diagnostics() -> tuple[Diagnostic, ...]:
    return DEFAULT_CATALOG.all_diagnostics()
