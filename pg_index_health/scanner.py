"""Batch orchestrator: builds a fresh topology, runs every diagnostic, collects results."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timezone

from pg_index_health.catalog import DEFAULT_CATALOG, DiagnosticCatalog
from pg_index_health.connection import (
    ConnectionCredentials,
    HostConnection,
    connect_host,
    get_pg_version,
)
from pg_index_health.context import SchemaContext
from pg_index_health.exceptions import BatchCancelled
from pg_index_health.exclusions import Exclusions
from pg_index_health.fanout import run_on_members
from pg_index_health.models import BatchReport, CheckResult
from pg_index_health.registry import ChecksRegistry
from pg_index_health.topology import PrimaryHostDeterminer, build_topology

logger = logging.getLogger(__name__)


def run_batch(
    credentials: Iterable[ConnectionCredentials],
    context: SchemaContext | None = None,
    exclusions: Exclusions | None = None,
    catalog: DiagnosticCatalog = DEFAULT_CATALOG,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
    connect: Callable[[ConnectionCredentials], HostConnection] = connect_host,
    determiner: PrimaryHostDeterminer | None = None,
) -> BatchReport:
    """Run every diagnostic of the catalog against the cluster.

    The topology is built for this call only and torn down before returning,
    so a failover between two batches is always picked up.

    Args:
        credentials: One entry per cluster member; the order is the tie-break
            order for primary election and host-invariant execution.
        context: Schema and thresholds; defaults to the public schema.
        exclusions: Names and thresholds to ignore; defaults to none.
        catalog: Diagnostics to run, in reporting order.
        timeout: Per-host timeout in seconds for the primary probe, the version
            query and each diagnostic query.
        cancel_event: Set it from another thread to abort the batch.
        connect: Connection factory, replaceable for tests.
        determiner: Primary detection strategy.

    Returns:
        BatchReport with exactly one CheckResult per diagnostic.

    Raises:
        ClusterUnavailable: if no member is reachable.
        BatchCancelled: if cancel_event was set; no partial results are returned.
    """
    if timeout is not None and timeout <= 0:
        raise ValueError("timeout must be positive")
    credentials = list(credentials)
    context = context or SchemaContext.of_public()
    exclusions = exclusions or Exclusions.empty()

    topology = build_topology(
        credentials, connect=connect, determiner=determiner, timeout=timeout, cancel_event=cancel_event
    )
    try:
        registry = ChecksRegistry(topology, catalog, timeout=timeout, cancel_event=cancel_event)
        primary = topology.primary
        report = BatchReport(
            database=credentials[0].dbname or "",
            hosts=[m.identity for m in topology.members],
            timestamp=datetime.now(timezone.utc),
            primary=primary.identity if primary else None,
            schema_name=context.schema_name,
            pg_version=_server_version(topology, timeout, cancel_event),
        )

        total = len(registry)
        for i, check in enumerate(registry.checks(), 1):
            logger.info("[%d/%d] %s: %s", i, total, check.diagnostic.name, check.diagnostic.description)
            exclusion = exclusions.predicate_for(check.diagnostic, context)
            try:
                result = check.run(context, exclusion)
            except BatchCancelled:
                raise
            except Exception as exc:
                logger.exception("Diagnostic %s raised unexpectedly", check.diagnostic.name)
                result = CheckResult(
                    diagnostic=check.diagnostic, error=f"{type(exc).__name__}: {exc}"
                )
            report.results.append(result)

        logger.info(
            "Done. %d checks, %d passed, %d failed, %d degraded.",
            report.checks_total,
            report.checks_passed,
            report.checks_failed,
            report.checks_degraded,
        )
        return report
    finally:
        topology.close()


def _server_version(topology, timeout: float | None, cancel_event: threading.Event | None) -> str:
    for member in topology.preferred_order():
        answers, _ = run_on_members(
            (member,),
            lambda m: get_pg_version(m.connection),
            label="Server version query",
            timeout=timeout,
            cancel_event=cancel_event,
        )
        if answers:
            return answers[0][1]
    return ""
