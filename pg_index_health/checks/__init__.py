"""Diagnostic execution on a single host and across the cluster."""

from pg_index_health.checks.cluster import CheckOnCluster, reconcile
from pg_index_health.checks.host import CheckOnHost

__all__ = ["CheckOnCluster", "CheckOnHost", "reconcile"]
