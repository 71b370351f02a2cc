"""Shared fixtures for pg-index-health tests."""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from pg_index_health import catalog
from pg_index_health.connection import ConnectionCredentials, HostIdentity
from pg_index_health.entities import IndexWithSize, UnusedIndex
from pg_index_health.exceptions import HostTimeout, HostUnreachable
from pg_index_health.models import BatchReport, CheckResult, HostFailure, PartialClusterFailure
from pg_index_health.topology import PRIMARY_PROBE_QUERY, build_topology

SERVER_VERSION_QUERY = "server_version.sql"


class FakeConnection:
    """Scripted stand-in for HostConnection.

    Args:
        host: Host name of the identity.
        port: Port of the identity.
        rows: Rows returned per query resource; unknown resources return no rows.
        is_primary: Answer to the primary probe.
        failures: Query resource -> reason; the query raises HostUnreachable.
        delays: Query resource -> seconds to block; `cancel()` interrupts the
            wait and the query raises HostTimeout.
        unreachable: If True, connecting to this host fails.
    """

    def __init__(
        self,
        host: str = "db1",
        port: int = 5432,
        rows: dict | None = None,
        is_primary: bool = False,
        failures: dict | None = None,
        delays: dict | None = None,
        unreachable: bool = False,
    ):
        self.identity = HostIdentity(host, port)
        self.rows = dict(rows or {})
        self.is_primary = is_primary
        self.failures = dict(failures or {})
        self.delays = dict(delays or {})
        self.unreachable = unreachable
        self.calls: list[str] = []
        self.params: list[dict | None] = []
        self.closed = False
        self.cancelled = threading.Event()
        self._lock = threading.Lock()

    def execute(self, query_resource: str, params: dict | None = None) -> list[dict]:
        with self._lock:
            self.calls.append(query_resource)
            self.params.append(params)

        delay = self.delays.get(query_resource)
        if delay and self.cancelled.wait(delay):
            raise HostTimeout(self.identity, "canceling statement due to user request")

        reason = self.failures.get(query_resource)
        if reason is not None:
            raise HostUnreachable(self.identity, reason)

        if query_resource in self.rows:
            return [dict(r) for r in self.rows[query_resource]]
        if query_resource == PRIMARY_PROBE_QUERY:
            return [{"is_primary": self.is_primary}]
        if query_resource == SERVER_VERSION_QUERY:
            return [{"version": "PostgreSQL 17.2"}]
        return []

    def diagnostic_calls(self) -> list[str]:
        """Calls other than the primary probe and the version query."""
        return [c for c in self.calls if c not in (PRIMARY_PROBE_QUERY, SERVER_VERSION_QUERY)]

    def cancel(self) -> None:
        self.cancelled.set()

    def close(self) -> None:
        self.closed = True

    def __repr__(self):
        return f"<FakeConnection {self.identity}>"


def make_cluster(*connections: FakeConnection):
    """Return (credentials, connect) wiring the fake connections by identity."""
    by_identity = {c.identity: c for c in connections}

    def connect(credentials: ConnectionCredentials):
        conn = by_identity.get(credentials.identity)
        if conn is None or conn.unreachable:
            raise HostUnreachable(credentials.identity, "could not connect to server: Connection refused")
        return conn

    credentials = [
        ConnectionCredentials(c.identity.host, c.identity.port, dbname="testdb") for c in connections
    ]
    return credentials, connect


def make_topology(*connections: FakeConnection):
    credentials, connect = make_cluster(*connections)
    return build_topology(credentials, connect=connect)


def unused_index_row(index_name: str, index_scans: int = 0, index_size: int = 8192, table_name: str = "orders"):
    return {
        "table_name": table_name,
        "index_name": index_name,
        "index_size": index_size,
        "index_scans": index_scans,
    }


def index_row(index_name: str, table_name: str = "orders"):
    return {"table_name": table_name, "index_name": index_name}


def make_result(diagnostic=catalog.UNUSED_INDEXES, findings=None, **kwargs) -> CheckResult:
    """Factory for creating CheckResult instances with sensible defaults."""
    return CheckResult(diagnostic=diagnostic, findings=list(findings or []), **kwargs)


@pytest.fixture
def empty_report() -> BatchReport:
    """BatchReport with no results."""
    return BatchReport(
        database="testdb",
        hosts=[HostIdentity("db1"), HostIdentity("db2")],
        timestamp=datetime(2026, 1, 27, 12, 0, 0, tzinfo=timezone.utc),
        primary=HostIdentity("db1"),
        pg_version="PostgreSQL 17.2",
    )


@pytest.fixture
def sample_report(empty_report) -> BatchReport:
    """BatchReport with a passing, a failing, a degraded and a failed diagnostic."""
    report = empty_report

    # Passing check (no findings)
    report.results.append(make_result(catalog.INVALID_INDEXES))

    # Check with findings
    report.results.append(
        make_result(
            catalog.UNUSED_INDEXES,
            findings=[UnusedIndex("orders", "i_orders_status", 16384, 0)],
        )
    )

    # Degraded check: one replica did not answer
    failure = HostFailure(HostIdentity("db2"), "no answer within 5.0s", timed_out=True)
    report.results.append(
        make_result(
            catalog.DUPLICATED_INDEXES,
            findings=[],
            degraded=PartialClusterFailure((failure,), (HostIdentity("db1"),)),
            host_failures=[failure],
        )
    )

    # Errored check
    report.results.append(
        make_result(catalog.BLOATED_TABLES, error="No host answered: db1:5432 failed: boom")
    )
    return report


@pytest.fixture
def index_pair():
    return (
        IndexWithSize("orders", "i_orders_customer", 1024),
        IndexWithSize("orders", "i_orders_customer_status", 2048),
    )
