"""Constructor-time validation helpers shared by the value objects."""

from __future__ import annotations

import math
import numbers
from decimal import Decimal

from pg_index_health.exceptions import InvalidEntityConstruction


def not_blank(value: str, argument_name: str) -> str:
    if value is None:
        raise InvalidEntityConstruction(f"{argument_name} cannot be null")
    if not isinstance(value, str) or not value.strip():
        raise InvalidEntityConstruction(f"{argument_name} cannot be blank")
    return value


def _number(value, argument_name: str):
    if value is None:
        raise InvalidEntityConstruction(f"{argument_name} cannot be null")
    if isinstance(value, bool) or not isinstance(value, (numbers.Real, Decimal)):
        raise InvalidEntityConstruction(f"{argument_name} should be a number, got {value!r}")
    if math.isnan(value):
        raise InvalidEntityConstruction(f"{argument_name} cannot be NaN")
    return value


def not_negative(value, argument_name: str):
    if _number(value, argument_name) < 0:
        raise InvalidEntityConstruction(f"{argument_name} cannot be less than zero")
    return value


def valid_percent(value, argument_name: str) -> float:
    if not 0 <= _number(value, argument_name) <= 100:
        raise InvalidEntityConstruction(
            f"{argument_name} should be in the range from 0 to 100 inclusive"
        )
    return float(value)


def at_least_two(rows: tuple, argument_name: str) -> tuple:
    if not rows:
        raise InvalidEntityConstruction(f"{argument_name} cannot be empty")
    if len(rows) < 2:
        raise InvalidEntityConstruction(f"{argument_name} should contain at least two items")
    return rows


def same_table(rows: tuple) -> str:
    """Return the table shared by all rows, failing if they disagree."""
    table_name = rows[0].table_name
    if any(row.table_name != table_name for row in rows):
        raise InvalidEntityConstruction("Table name is not the same within given rows")
    return table_name
