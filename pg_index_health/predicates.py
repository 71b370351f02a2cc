"""Exclusion pipeline: composable keep/drop predicates applied after reconciliation.

A predicate returns True to keep an entity and False to drop it.
Predicates combine with ``&`` (logical AND).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from pg_index_health.context import SchemaContext
from pg_index_health.validators import not_negative, valid_percent


class Predicate:
    def __init__(self, func: Callable[[object], bool], description: str = ""):
        self._func = func
        self.description = description or getattr(func, "__name__", "predicate")

    def __call__(self, entity) -> bool:
        return bool(self._func(entity))

    def __and__(self, other: Callable[[object], bool]) -> Predicate:
        other_predicate = other if isinstance(other, Predicate) else Predicate(other)
        return Predicate(
            lambda entity: self(entity) and other_predicate(entity),
            f"({self.description} and {other_predicate.description})",
        )

    def __repr__(self):
        return f"<Predicate {self.description}>"


keep_all = Predicate(lambda entity: True, "keep_all")


def all_of(*predicates: Callable[[object], bool]) -> Predicate:
    result = keep_all
    for p in predicates:
        result = result & p
    return result


def _enriched(context: SchemaContext, names: Iterable[str]) -> frozenset[str]:
    return frozenset(context.enrich_with_schema(n).lower() for n in names if n and n.strip())


def skip_tables_by_name(context: SchemaContext, names: Iterable[str]) -> Predicate:
    """Drop entities whose table is in the given set (schema-qualified, case-insensitive)."""
    excluded = _enriched(context, names)
    if not excluded:
        return keep_all
    return Predicate(
        lambda entity: entity.table_name.lower() not in excluded,
        f"skip_tables_by_name({sorted(excluded)})",
    )


def skip_indexes_by_name(context: SchemaContext, names: Iterable[str]) -> Predicate:
    """Drop entities having any participant index in the given set."""
    excluded = _enriched(context, names)
    if not excluded:
        return keep_all
    return Predicate(
        lambda entity: not any(n.lower() in excluded for n in entity.index_names),
        f"skip_indexes_by_name({sorted(excluded)})",
    )


def skip_by_object_name(context: SchemaContext, names: Iterable[str]) -> Predicate:
    excluded = _enriched(context, names)
    if not excluded:
        return keep_all
    return Predicate(
        lambda entity: entity.name.lower() not in excluded,
        f"skip_by_object_name({sorted(excluded)})",
    )


def skip_small_tables(threshold_in_bytes: int) -> Predicate:
    not_negative(threshold_in_bytes, "threshold_in_bytes")
    return Predicate(
        lambda entity: entity.table_size_in_bytes >= threshold_in_bytes,
        f"skip_small_tables({threshold_in_bytes})",
    )


def _index_size(entity) -> int:
    size = getattr(entity, "index_size_in_bytes", None)
    return entity.total_size if size is None else size


def skip_small_indexes(threshold_in_bytes: int) -> Predicate:
    not_negative(threshold_in_bytes, "threshold_in_bytes")
    return Predicate(
        lambda entity: _index_size(entity) >= threshold_in_bytes,
        f"skip_small_indexes({threshold_in_bytes})",
    )


def skip_bloat_under_threshold(size_threshold_in_bytes: int, percentage_threshold: float) -> Predicate:
    """Keep only entities exceeding both the bloat size and the bloat percentage thresholds."""
    not_negative(size_threshold_in_bytes, "size_threshold_in_bytes")
    valid_percent(percentage_threshold, "percentage_threshold")
    return Predicate(
        lambda entity: entity.bloat_size_in_bytes >= size_threshold_in_bytes
        and entity.bloat_percentage >= percentage_threshold,
        f"skip_bloat_under_threshold({size_threshold_in_bytes}, {percentage_threshold})",
    )
