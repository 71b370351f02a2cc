"""Cluster topology: which members are reachable and which one is the primary."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from pg_index_health.connection import (
    ConnectionCredentials,
    HostConnection,
    HostIdentity,
    connect_host,
)
from pg_index_health.exceptions import BatchCancelled, ClusterUnavailable, HostTimeout, HostUnreachable
from pg_index_health.fanout import run_on_members
from pg_index_health.models import HostFailure

logger = logging.getLogger(__name__)

PRIMARY_PROBE_QUERY = "primary_host_probe.sql"


class PrimaryHostDeterminer:
    """Decides whether a connection points at the cluster primary.

    Uses a read-only probe (`NOT pg_is_in_recovery()`); it never changes
    cluster state.
    """

    def probe(self, connection: HostConnection) -> bool:
        """Return the probe answer, raising HostUnreachable if the probe fails."""
        rows = connection.execute(PRIMARY_PROBE_QUERY)
        if not rows:
            raise HostUnreachable(connection.identity, "primary probe returned no rows")
        return bool(rows[0]["is_primary"])

    def is_primary(self, connection: HostConnection) -> bool:
        try:
            return self.probe(connection)
        except HostUnreachable as e:
            logger.warning("Treating %s as not primary: %s", connection.identity, e.reason)
            return False


@dataclass(frozen=True)
class ClusterMember:
    identity: HostIdentity
    connection: HostConnection
    is_primary: bool = False

    def __str__(self):
        role = "primary" if self.is_primary else "replica"
        return f"{self.identity} ({role})"


class ClusterTopology:
    """Ordered, deduplicated set of reachable members with at most one primary.

    Owns the connections of its members; close it (or use it as a context
    manager) at the end of the diagnostic batch that created it.

    Attributes:
        unreachable: Members that were supplied but dropped while the
            topology was built, in input order.
    """

    def __init__(self, members: Iterable[ClusterMember], unreachable: Iterable[HostFailure] = ()):
        self._members = tuple(members)
        self.unreachable = tuple(unreachable)
        identities = [m.identity for m in self._members]
        if len(set(identities)) != len(identities):
            raise ValueError("Cluster members must be unique by host identity")
        if sum(1 for m in self._members if m.is_primary) > 1:
            raise ValueError("A topology can have at most one primary")
        if not self._members:
            raise ClusterUnavailable("A topology needs at least one reachable member")

    @property
    def members(self) -> tuple[ClusterMember, ...]:
        return self._members

    @property
    def primary(self) -> ClusterMember | None:
        return next((m for m in self._members if m.is_primary), None)

    @property
    def has_primary(self) -> bool:
        return self.primary is not None

    def preferred_order(self) -> tuple[ClusterMember, ...]:
        """Members with the primary first, then the rest in input order."""
        return tuple(sorted(self._members, key=lambda m: not m.is_primary))

    def close(self) -> None:
        for member in self._members:
            try:
                member.connection.close()
            except Exception as e:
                logger.warning("Failed to close connection to %s: %s", member.identity, e)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def __len__(self):
        return len(self._members)

    def __repr__(self):
        return f"<ClusterTopology [{', '.join(str(m) for m in self._members)}]>"


def build_topology(
    credentials: Iterable[ConnectionCredentials],
    connect: Callable[[ConnectionCredentials], HostConnection] = connect_host,
    determiner: PrimaryHostDeterminer | None = None,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
) -> ClusterTopology:
    """Connect to every supplied member and resolve the primary.

    The address given as primary is only a hint: roles come from probing
    each live connection. Unreachable members and members whose probe fails
    or does not answer within `timeout` seconds are dropped with a warning
    and recorded in `ClusterTopology.unreachable`. When several members
    claim to be primary (split-brain during failover), the first in input
    order wins.

    Raises:
        ClusterUnavailable: if no member is reachable.
        BatchCancelled: if cancel_event was set; every opened connection is closed.
    """
    determiner = determiner or PrimaryHostDeterminer()

    unique: dict[HostIdentity, ConnectionCredentials] = {}
    for creds in credentials:
        unique.setdefault(creds.identity, creds)
    if not unique:
        raise ClusterUnavailable("No cluster members supplied")

    dropped: dict[HostIdentity, HostFailure] = {}
    candidates: list[ClusterMember] = []
    for identity, creds in unique.items():
        try:
            connection = connect(creds)
        except HostUnreachable as e:
            logger.warning("Dropping unreachable host %s: %s", identity, e.reason)
            dropped[identity] = HostFailure(identity, e.reason, isinstance(e, HostTimeout))
            continue
        candidates.append(ClusterMember(identity, connection))

    try:
        answers, failures = run_on_members(
            candidates,
            lambda member: determiner.probe(member.connection),
            label="Primary probe",
            timeout=timeout,
            cancel_event=cancel_event,
        )
    except BatchCancelled:
        for member in candidates:
            member.connection.close()
        raise

    for failure in failures:
        logger.warning("Dropping host %s, primary probe failed: %s", failure.host, failure.reason)
        dropped[failure.host] = failure
    for member in candidates:
        if member.identity in dropped:
            member.connection.close()

    members: list[ClusterMember] = []
    primary_seen: HostIdentity | None = None
    for member, claims_primary in answers:
        if claims_primary and primary_seen is not None:
            logger.warning(
                "Host %s also reports itself as primary (already have %s); treating it as a replica",
                member.identity,
                primary_seen,
            )
            claims_primary = False
        if claims_primary:
            primary_seen = member.identity
        members.append(ClusterMember(member.identity, member.connection, claims_primary))

    unreachable = [dropped[identity] for identity in unique if identity in dropped]
    if not members:
        raise ClusterUnavailable(
            "None of the cluster members are reachable: "
            + "; ".join(f"{f.host}: {f.reason}" for f in unreachable)
        )
    if primary_seen is None:
        logger.warning("No primary found among %d reachable host(s); running replica-only", len(members))

    return ClusterTopology(members, unreachable)
