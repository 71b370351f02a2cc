"""Schema context passed explicitly through every diagnostic call."""

from __future__ import annotations

from dataclasses import dataclass

from pg_index_health.validators import not_blank, valid_percent

DEFAULT_SCHEMA_NAME = "public"
DEFAULT_BLOAT_PERCENTAGE_THRESHOLD = 10.0
DEFAULT_REMAINING_PERCENTAGE_THRESHOLD = 10.0


@dataclass(frozen=True)
class SchemaContext:
    """Target schema plus the thresholds bound into threshold-aware queries.

    The schema name is lower-cased on construction. Both thresholds are
    percentages and must lie in [0, 100].
    """

    schema_name: str = DEFAULT_SCHEMA_NAME
    bloat_percentage_threshold: float = DEFAULT_BLOAT_PERCENTAGE_THRESHOLD
    remaining_percentage_threshold: float = DEFAULT_REMAINING_PERCENTAGE_THRESHOLD

    def __post_init__(self):
        object.__setattr__(self, "schema_name", not_blank(self.schema_name, "schema_name").lower())
        object.__setattr__(
            self,
            "bloat_percentage_threshold",
            valid_percent(self.bloat_percentage_threshold, "bloat_percentage_threshold"),
        )
        object.__setattr__(
            self,
            "remaining_percentage_threshold",
            valid_percent(self.remaining_percentage_threshold, "remaining_percentage_threshold"),
        )

    @classmethod
    def of(
        cls,
        schema_name: str,
        bloat_percentage_threshold: float = DEFAULT_BLOAT_PERCENTAGE_THRESHOLD,
        remaining_percentage_threshold: float = DEFAULT_REMAINING_PERCENTAGE_THRESHOLD,
    ) -> SchemaContext:
        return cls(schema_name, bloat_percentage_threshold, remaining_percentage_threshold)

    @classmethod
    def of_public(cls) -> SchemaContext:
        return cls()

    @property
    def is_default_schema(self) -> bool:
        return self.schema_name == DEFAULT_SCHEMA_NAME

    def enrich_with_schema(self, object_name: str) -> str:
        """Qualify an object name with the schema unless it is public or already qualified."""
        not_blank(object_name, "object_name")
        if self.is_default_schema:
            return object_name
        prefix = self.schema_name + "."
        if object_name.lower().startswith(prefix):
            return object_name
        return prefix + object_name

    def query_parameters(self) -> dict:
        """Named parameters bound into every diagnostic query."""
        return {
            "schema_name": self.schema_name,
            "bloat_percentage_threshold": self.bloat_percentage_threshold,
            "remaining_percentage_threshold": self.remaining_percentage_threshold,
        }
