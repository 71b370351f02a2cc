"""Registry holding one cluster check per diagnostic, bound to one topology."""

from __future__ import annotations

import threading
from collections.abc import Iterator

from pg_index_health.catalog import DEFAULT_CATALOG, Diagnostic, DiagnosticCatalog
from pg_index_health.checks.cluster import CheckOnCluster
from pg_index_health.exceptions import TypeMismatch
from pg_index_health.topology import ClusterTopology


class ChecksRegistry:
    """Type-checked access to the cluster checks of a diagnostic batch.

    The catalog is validated on construction, so a missing SQL resource
    surfaces before any query is issued.
    """

    def __init__(
        self,
        topology: ClusterTopology,
        catalog: DiagnosticCatalog = DEFAULT_CATALOG,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ):
        catalog.validate()
        self.catalog = catalog
        self.topology = topology
        self._checks = {
            d.name: CheckOnCluster(d, topology, timeout=timeout, cancel_event=cancel_event)
            for d in catalog.all_diagnostics()
        }

    def get_check(self, diagnostic: str | Diagnostic, expected_type: type) -> CheckOnCluster:
        """Return the check for a diagnostic whose entity type is exactly `expected_type`.

        Raises:
            UnknownDiagnostic: if the diagnostic is not in the catalog.
            TypeMismatch: if the registered entity type differs.
        """
        resolved = self.catalog.resolve(diagnostic)
        if resolved.entity_type is not expected_type:
            raise TypeMismatch(
                f"Diagnostic {resolved.name!r} produces {resolved.entity_type.__name__}, "
                f"not {getattr(expected_type, '__name__', expected_type)}"
            )
        return self._checks[resolved.name]

    def checks(self) -> Iterator[CheckOnCluster]:
        """Iterate over all checks in catalog order."""
        for diagnostic in self.catalog.all_diagnostics():
            yield self._checks[diagnostic.name]

    def __len__(self):
        return len(self._checks)
