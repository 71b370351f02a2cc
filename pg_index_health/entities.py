"""Immutable value objects returned by the diagnostics.

Every entity validates itself on construction and exposes a canonical
identity: equality, hashing and ordering only look at identity fields.
Sizes, counters and derived fields are carried along but never compared.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import ClassVar

from pg_index_health.exceptions import InvalidEntityConstruction
from pg_index_health.validators import (
    at_least_two,
    not_blank,
    not_negative,
    same_table,
    valid_percent,
)


def _format_value(value) -> str:
    if isinstance(value, str):
        return f"'{value}'"
    if isinstance(value, tuple):
        return "[" + ", ".join(str(item) for item in value) + "]"
    return str(value)


class DbObject:
    """Common behaviour of all diagnostic entities.

    Attributes:
        counters: Names of the statistics-dependent fields. When the same
            entity is reported by several hosts, these are combined by
            taking the maximum observed value.
    """

    counters: ClassVar[tuple[str, ...]] = ()

    @property
    def name(self) -> str:
        raise NotImplementedError

    def merged_with(self, other: DbObject) -> DbObject:
        """Return a copy holding the field-wise maximum of both entities' counters."""
        if not self.counters:
            return self
        return dataclasses.replace(
            self,
            **{c: max(getattr(self, c), getattr(other, c)) for c in self.counters},
        )

    def __str__(self):
        parts = [
            f"{f.name}={_format_value(getattr(self, f.name))}"
            for f in dataclasses.fields(self)
            if f.repr
        ]
        return f"{type(self).__name__}{{{', '.join(parts)}}}"


# -- Tables -------------------------------------------------------------------


@dataclass(frozen=True, order=True)
class Table(DbObject):
    table_name: str
    table_size_in_bytes: int = field(default=0, compare=False)

    counters = ("table_size_in_bytes",)

    def __post_init__(self):
        not_blank(self.table_name, "table_name")
        not_negative(self.table_size_in_bytes, "table_size_in_bytes")

    @property
    def name(self) -> str:
        return self.table_name


@dataclass(frozen=True, order=True)
class TableWithBloat(Table):
    bloat_size_in_bytes: int = field(default=0, compare=False)
    bloat_percentage: float = field(default=0.0, compare=False)

    counters = ("table_size_in_bytes", "bloat_size_in_bytes", "bloat_percentage")

    def __post_init__(self):
        super().__post_init__()
        not_negative(self.bloat_size_in_bytes, "bloat_size_in_bytes")
        object.__setattr__(
            self, "bloat_percentage", valid_percent(self.bloat_percentage, "bloat_percentage")
        )


@dataclass(frozen=True, order=True)
class TableWithMissingIndex(Table):
    seq_scans: int = field(default=0, compare=False)
    index_scans: int = field(default=0, compare=False)

    counters = ("table_size_in_bytes", "seq_scans", "index_scans")

    def __post_init__(self):
        super().__post_init__()
        not_negative(self.seq_scans, "seq_scans")
        not_negative(self.index_scans, "index_scans")


# -- Indexes ------------------------------------------------------------------


@dataclass(frozen=True, order=True)
class Index(DbObject):
    table_name: str
    index_name: str

    def __post_init__(self):
        not_blank(self.table_name, "table_name")
        not_blank(self.index_name, "index_name")

    @property
    def name(self) -> str:
        return self.index_name

    @property
    def index_names(self) -> tuple[str, ...]:
        return (self.index_name,)


@dataclass(frozen=True, order=True)
class IndexWithSize(Index):
    index_size_in_bytes: int = field(default=0, compare=False)

    counters = ("index_size_in_bytes",)

    def __post_init__(self):
        super().__post_init__()
        not_negative(self.index_size_in_bytes, "index_size_in_bytes")


@dataclass(frozen=True, order=True)
class UnusedIndex(IndexWithSize):
    index_scans: int = field(default=0, compare=False)

    counters = ("index_size_in_bytes", "index_scans")

    def __post_init__(self):
        super().__post_init__()
        not_negative(self.index_scans, "index_scans")


@dataclass(frozen=True, order=True)
class IndexWithBloat(IndexWithSize):
    bloat_size_in_bytes: int = field(default=0, compare=False)
    bloat_percentage: float = field(default=0.0, compare=False)

    counters = ("index_size_in_bytes", "bloat_size_in_bytes", "bloat_percentage")

    def __post_init__(self):
        super().__post_init__()
        not_negative(self.bloat_size_in_bytes, "bloat_size_in_bytes")
        object.__setattr__(
            self, "bloat_percentage", valid_percent(self.bloat_percentage, "bloat_percentage")
        )


@dataclass(frozen=True, order=True)
class IndexWithNulls(IndexWithSize):
    nullable_column: str = field(default="", compare=False)

    def __post_init__(self):
        super().__post_init__()
        not_blank(self.nullable_column, "nullable_column")


@dataclass(frozen=True, order=True)
class DuplicatedIndexes(DbObject):
    """A group of indexes on one table that duplicate or intersect each other.

    Identity is the table plus the set of participant index names, so the
    input order and the individual sizes never affect equality.
    """

    table_name: str = field(init=False)
    index_names: tuple[str, ...] = field(init=False, repr=False)
    indexes: tuple[IndexWithSize, ...] = field(compare=False)
    total_size: int = field(init=False, compare=False)

    def __post_init__(self):
        if self.indexes is None:
            raise InvalidEntityConstruction("indexes cannot be null")
        rows = at_least_two(tuple(sorted(set(self.indexes))), "indexes")
        object.__setattr__(self, "indexes", rows)
        object.__setattr__(self, "table_name", same_table(rows))
        object.__setattr__(self, "index_names", tuple(i.index_name for i in rows))
        object.__setattr__(self, "total_size", sum(i.index_size_in_bytes for i in rows))

    @classmethod
    def of(cls, *indexes: IndexWithSize) -> DuplicatedIndexes:
        return cls(indexes)

    @classmethod
    def from_aggregate(cls, table_name: str, aggregate: str) -> DuplicatedIndexes:
        """Parse the `idx=<name>, size=<bytes>; ...` string produced by the SQL."""
        not_blank(table_name, "table_name")
        not_blank(aggregate, "aggregate")
        indexes = []
        for chunk in aggregate.split(";"):
            parts = dict(
                item.strip().split("=", 1) for item in chunk.split(",") if "=" in item
            )
            if "idx" not in parts or "size" not in parts:
                raise InvalidEntityConstruction(f"Malformed duplicated index entry: {chunk!r}")
            try:
                size = int(parts["size"])
            except ValueError as e:
                raise InvalidEntityConstruction(f"Malformed index size: {parts['size']!r}") from e
            indexes.append(IndexWithSize(table_name, parts["idx"].strip(), size))
        return cls(indexes)

    @property
    def name(self) -> str:
        return ",".join(self.index_names)


# -- Columns and constraints --------------------------------------------------


@dataclass(frozen=True, order=True)
class Column(DbObject):
    table_name: str
    column_name: str
    not_null: bool = field(default=False, compare=False)

    def __post_init__(self):
        not_blank(self.table_name, "table_name")
        not_blank(self.column_name, "column_name")

    @property
    def name(self) -> str:
        return self.column_name


@dataclass(frozen=True, order=True)
class ColumnWithSerialType(DbObject):
    column: Column
    serial_type: str
    sequence_name: str

    def __post_init__(self):
        if not isinstance(self.column, Column):
            raise InvalidEntityConstruction("column cannot be null")
        not_blank(self.serial_type, "serial_type")
        not_blank(self.sequence_name, "sequence_name")

    @property
    def table_name(self) -> str:
        return self.column.table_name

    @property
    def name(self) -> str:
        return self.column.column_name


@dataclass(frozen=True, order=True)
class ForeignKey(DbObject):
    table_name: str
    constraint_name: str
    columns: tuple[Column, ...] = field(compare=False)

    def __post_init__(self):
        not_blank(self.table_name, "table_name")
        not_blank(self.constraint_name, "constraint_name")
        if not self.columns:
            raise InvalidEntityConstruction("columns cannot be empty")
        object.__setattr__(self, "columns", tuple(self.columns))

    @property
    def name(self) -> str:
        return self.constraint_name


@dataclass(frozen=True, order=True)
class DuplicatedForeignKeys(DbObject):
    """Foreign keys on one table that duplicate or intersect each other."""

    table_name: str = field(init=False)
    constraint_names: tuple[str, ...] = field(init=False, repr=False)
    foreign_keys: tuple[ForeignKey, ...] = field(compare=False)

    def __post_init__(self):
        if self.foreign_keys is None:
            raise InvalidEntityConstruction("foreign_keys cannot be null")
        rows = at_least_two(tuple(sorted(set(self.foreign_keys))), "foreign_keys")
        object.__setattr__(self, "foreign_keys", rows)
        object.__setattr__(self, "table_name", same_table(rows))
        object.__setattr__(self, "constraint_names", tuple(fk.constraint_name for fk in rows))

    @classmethod
    def of(cls, *foreign_keys: ForeignKey) -> DuplicatedForeignKeys:
        return cls(foreign_keys)

    @property
    def name(self) -> str:
        return ",".join(self.constraint_names)


@dataclass(frozen=True, order=True)
class Constraint(DbObject):
    table_name: str
    constraint_name: str
    constraint_type: str = field(default="c", compare=False)

    def __post_init__(self):
        not_blank(self.table_name, "table_name")
        not_blank(self.constraint_name, "constraint_name")
        not_blank(self.constraint_type, "constraint_type")

    @property
    def name(self) -> str:
        return self.constraint_name


# -- Other objects ------------------------------------------------------------


@dataclass(frozen=True, order=True)
class StoredFunction(DbObject):
    function_name: str
    function_signature: str = ""

    def __post_init__(self):
        not_blank(self.function_name, "function_name")
        if self.function_signature is None:
            raise InvalidEntityConstruction("function_signature cannot be null")
        if not isinstance(self.function_signature, str):
            raise InvalidEntityConstruction("function_signature should be a string")
        object.__setattr__(self, "function_signature", self.function_signature.strip())

    @property
    def name(self) -> str:
        return self.function_name


@dataclass(frozen=True, order=True)
class SequenceState(DbObject):
    sequence_name: str
    data_type: str = field(compare=False)
    remaining_percentage: float = field(compare=False)

    def __post_init__(self):
        not_blank(self.sequence_name, "sequence_name")
        not_blank(self.data_type, "data_type")
        object.__setattr__(
            self,
            "remaining_percentage",
            valid_percent(self.remaining_percentage, "remaining_percentage"),
        )

    @property
    def name(self) -> str:
        return self.sequence_name


OBJECT_TYPES = frozenset(
    {"table", "index", "sequence", "view", "materialized_view", "function", "constraint", "column"}
)


@dataclass(frozen=True, order=True)
class AnyObject(DbObject):
    object_name: str
    object_type: str

    def __post_init__(self):
        not_blank(self.object_name, "object_name")
        if self.object_type not in OBJECT_TYPES:
            raise InvalidEntityConstruction(f"Unknown object type: {self.object_type!r}")

    @property
    def name(self) -> str:
        return self.object_name
