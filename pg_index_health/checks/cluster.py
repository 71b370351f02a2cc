"""Execution of one diagnostic across the cluster and reconciliation of per-host results."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Sequence
from typing import Generic, TypeVar

from pg_index_health.catalog import Diagnostic, MergeRule
from pg_index_health.checks.host import CheckOnHost
from pg_index_health.context import SchemaContext
from pg_index_health.exceptions import BatchCancelled
from pg_index_health.fanout import run_on_members
from pg_index_health.models import CheckResult, HostFailure, PartialClusterFailure
from pg_index_health.predicates import keep_all
from pg_index_health.topology import ClusterMember, ClusterTopology

logger = logging.getLogger(__name__)

T = TypeVar("T")


def reconcile(merge_rule: MergeRule, per_host: Iterable[Sequence[T]]) -> list[T]:
    """Merge per-host result sets into one canonical, sorted list.

    UNION keeps the first occurrence of every identity. MAX_VALUE combines
    entities sharing an identity by taking the maximum of each counter. Both
    are independent of the order in which hosts answered.
    """
    merged: dict = {}
    for entities in per_host:
        for entity in sorted(entities):
            existing = merged.get(entity)
            if existing is None:
                merged[entity] = entity
            elif merge_rule is MergeRule.MAX_VALUE:
                merged[entity] = existing.merged_with(entity)
    return sorted(merged.values())


class CheckOnCluster(Generic[T]):
    """Runs one diagnostic on the right host(s) of a topology.

    Host-invariant diagnostics are answered by a single host: the primary if
    there is one, otherwise the first reachable replica. Host-variant ones
    are fanned out to every member in parallel and reconciled.

    Attributes:
        diagnostic: Catalog entry being executed.
        topology: Members to run against; owned by the current batch.
        timeout: Seconds each host may take before it is treated as unreachable.
        cancel_event: When set, in-flight queries are cancelled and
            BatchCancelled is raised.
    """

    def __init__(
        self,
        diagnostic: Diagnostic,
        topology: ClusterTopology,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
        check_on_host: CheckOnHost | None = None,
    ):
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive")
        self.diagnostic = diagnostic
        self.topology = topology
        self.timeout = timeout
        self.cancel_event = cancel_event
        self.check_on_host = check_on_host or CheckOnHost(diagnostic)

    @property
    def entity_type(self) -> type:
        return self.diagnostic.entity_type

    def run(
        self,
        context: SchemaContext,
        exclusion: Callable[[T], bool] = keep_all,
    ) -> CheckResult:
        """Run the diagnostic and return its reconciled, filtered findings.

        The exclusion predicate is applied after reconciliation so it cannot
        hide evidence contributed by another host. A result with `error` set
        means no host answered; `degraded` is set when only some did. For
        host-variant diagnostics, members dropped from the topology count as
        hosts that did not answer.
        """
        self._raise_if_cancelled()
        if self.diagnostic.is_host_variant:
            answers, failures = self._execute(self.topology.members, context)
            failures.extend(self.topology.unreachable)
        else:
            answers, failures = self._run_on_first_available(context)

        if not answers:
            reason = "; ".join(str(f) for f in failures) or "no hosts to query"
            logger.error("Diagnostic %s failed on every host: %s", self.diagnostic.name, reason)
            return CheckResult(
                diagnostic=self.diagnostic,
                error=f"No host answered: {reason}",
                host_failures=failures,
            )

        merged = reconcile(self.diagnostic.merge_rule, [entities for _, entities in answers])
        findings = [e for e in merged if exclusion(e)]

        degraded = None
        if failures:
            degraded = PartialClusterFailure(
                failed_hosts=tuple(failures),
                contributing_hosts=tuple(m.identity for m, _ in answers),
            )
            logger.warning(
                "Diagnostic %s ran with partial cluster data: %s", self.diagnostic.name, degraded
            )

        return CheckResult(
            diagnostic=self.diagnostic,
            findings=findings,
            degraded=degraded,
            host_failures=failures,
        )

    def _run_on_first_available(self, context: SchemaContext):
        failures: list[HostFailure] = []
        for member in self.topology.preferred_order():
            answers, member_failures = self._execute((member,), context)
            failures.extend(member_failures)
            if answers:
                return answers, failures
        return [], failures

    def _execute(self, members: Sequence[ClusterMember], context: SchemaContext):
        """Run the host check on each member concurrently, bounded by the timeout.

        Returns the successful answers and the failures, both in topology order.
        """
        return run_on_members(
            members,
            lambda member: self.check_on_host.run(context, member.connection),
            label=f"Diagnostic {self.diagnostic.name}",
            timeout=self.timeout,
            cancel_event=self.cancel_event,
        )

    def _raise_if_cancelled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise BatchCancelled(f"Diagnostic {self.diagnostic.name} was cancelled")

    def __repr__(self):
        return f"<CheckOnCluster {self.diagnostic.name} on {len(self.topology)} host(s)>"
