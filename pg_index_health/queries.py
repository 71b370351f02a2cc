"""Query resources: the SQL text of every diagnostic, shipped under sql/."""

from __future__ import annotations

import functools
import importlib.resources

_PACKAGE = "pg_index_health.sql"


def _validate_name(resource: str) -> str:
    if not resource or not resource.strip():
        raise ValueError("query resource cannot be blank")
    name = resource.strip().lower()
    if not name.endswith(".sql"):
        raise ValueError(f"only *.sql resources are supported: {resource!r}")
    return name


def query_exists(resource: str) -> bool:
    """Return True if the package ships a SQL file with this name."""
    return importlib.resources.files(_PACKAGE).joinpath(_validate_name(resource)).is_file()


@functools.lru_cache(maxsize=None)
def load_query(resource: str) -> str:
    """Return the SQL text stored in the named resource.

    Raises:
        FileNotFoundError: if no such resource exists.
    """
    path = importlib.resources.files(_PACKAGE).joinpath(_validate_name(resource))
    return path.read_text(encoding="utf-8")
