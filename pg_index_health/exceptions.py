"""Error taxonomy for cluster-aware diagnostics."""

from __future__ import annotations


class PgIndexHealthError(Exception):
    """Base class for all pg-index-health errors."""


class UnknownDiagnostic(PgIndexHealthError, LookupError):
    """A diagnostic name that is not registered in the catalog was requested."""


class TypeMismatch(PgIndexHealthError, TypeError):
    """The entity type expected by a caller differs from the registered one."""


class MissingQueryResource(PgIndexHealthError):
    """A registered diagnostic has no SQL resource shipped with the package."""


class ClusterUnavailable(PgIndexHealthError):
    """No cluster member could be reached."""


class BatchCancelled(PgIndexHealthError):
    """A diagnostic batch was cancelled by its caller."""


class InvalidEntityConstruction(PgIndexHealthError, ValueError):
    """A value object was built from data that violates its invariants."""


class HostUnreachable(PgIndexHealthError):
    """A single host could not serve a request.

    Recoverable at the cluster level: the host is left out of the
    reconciliation for the diagnostic being run.
    """

    def __init__(self, host, reason: str):
        super().__init__(f"{host}: {reason}")
        self.host = host
        self.reason = reason


class HostTimeout(HostUnreachable):
    """A single host did not answer within the allotted time."""
