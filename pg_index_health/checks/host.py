"""Execution of one diagnostic against one cluster member."""

from __future__ import annotations

from collections.abc import Callable

from pg_index_health.catalog import Diagnostic
from pg_index_health.connection import HostConnection
from pg_index_health.context import SchemaContext
from pg_index_health.exceptions import HostUnreachable
from pg_index_health.mappers import RowMapper, mapper_for


class CheckOnHost:
    """Binds a diagnostic to its row mapper and runs it on a given host.

    Attributes:
        diagnostic: Catalog entry being executed.
        mapper: Row mapper producing the diagnostic's entity type.
    """

    def __init__(self, diagnostic: Diagnostic, mapper: RowMapper | None = None):
        self.diagnostic = diagnostic
        self.mapper = mapper or mapper_for(diagnostic)

    def run(
        self,
        context: SchemaContext,
        connection: HostConnection,
        exclusion: Callable[[object], bool] | None = None,
    ) -> list:
        """Execute the diagnostic query on one host and map every row.

        Args:
            context: Schema and thresholds bound into the query.
            connection: The host to query.
            exclusion: Optional keep-predicate applied to the mapped entities.

        Returns:
            Entities sorted by their natural order.

        Raises:
            HostUnreachable: if the query fails or a row violates an entity
                invariant (HostTimeout if the query was cancelled).
        """
        rows = connection.execute(self.diagnostic.query_resource, context.query_parameters())
        try:
            entities = [self.mapper(row) for row in rows]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise HostUnreachable(
                connection.identity,
                f"{self.diagnostic.name} returned malformed data: {type(e).__name__}: {e}",
            ) from e

        entities.sort()
        if exclusion is not None:
            entities = [e for e in entities if exclusion(e)]
        return entities

    def __repr__(self):
        return f"<CheckOnHost {self.diagnostic.name}>"
