"""Tests for running diagnostics on one host and across the cluster."""

from __future__ import annotations

import itertools
import threading
import time

import pytest

from pg_index_health import catalog
from pg_index_health.catalog import MergeRule
from pg_index_health.checks import CheckOnCluster, CheckOnHost, reconcile
from pg_index_health.context import SchemaContext
from pg_index_health.entities import Index, UnusedIndex
from pg_index_health.exceptions import BatchCancelled, HostUnreachable
from pg_index_health.mappers import mapper_for
from pg_index_health.predicates import Predicate

from conftest import FakeConnection, index_row, make_topology, unused_index_row

UNUSED = catalog.UNUSED_INDEXES.query_resource
INVALID = catalog.INVALID_INDEXES.query_resource
FUNCS = catalog.FUNCTIONS_WITHOUT_DESCRIPTION.query_resource


class TestCheckOnHost:
    def test_maps_and_sorts(self):
        conn = FakeConnection(rows={INVALID: [index_row("i_b"), index_row("i_a")]})
        result = CheckOnHost(catalog.INVALID_INDEXES).run(SchemaContext.of_public(), conn)
        assert result == [Index("orders", "i_a"), Index("orders", "i_b")]

    def test_binds_context_parameters(self):
        conn = FakeConnection()
        CheckOnHost(catalog.INVALID_INDEXES).run(SchemaContext.of("sales", 20, 5), conn)
        assert conn.params[-1] == {
            "schema_name": "sales",
            "bloat_percentage_threshold": 20.0,
            "remaining_percentage_threshold": 5.0,
        }

    def test_applies_exclusion(self):
        conn = FakeConnection(rows={INVALID: [index_row("i_b"), index_row("i_a")]})
        result = CheckOnHost(catalog.INVALID_INDEXES).run(
            SchemaContext.of_public(), conn, lambda e: e.index_name != "i_a"
        )
        assert result == [Index("orders", "i_b")]

    def test_malformed_row_becomes_host_failure(self):
        conn = FakeConnection(rows={UNUSED: [unused_index_row("i_a", index_scans=-1)]})
        with pytest.raises(HostUnreachable, match="malformed data") as exc_info:
            CheckOnHost(catalog.UNUSED_INDEXES).run(SchemaContext.of_public(), conn)
        assert exc_info.value.host == conn.identity

    def test_missing_column_becomes_host_failure(self):
        conn = FakeConnection(rows={UNUSED: [{"table_name": "orders"}]})
        with pytest.raises(HostUnreachable):
            CheckOnHost(catalog.UNUSED_INDEXES).run(SchemaContext.of_public(), conn)

    def test_mapping_error_becomes_host_failure(self):
        def broken(row):
            raise AttributeError("'int' object has no attribute 'strip'")

        conn = FakeConnection(rows={INVALID: [index_row("i_a")]})
        with pytest.raises(HostUnreachable, match="AttributeError"):
            CheckOnHost(catalog.INVALID_INDEXES, mapper=broken).run(SchemaContext.of_public(), conn)

    def test_query_failure_propagates(self):
        conn = FakeConnection(failures={INVALID: "relation does not exist"})
        with pytest.raises(HostUnreachable, match="relation does not exist"):
            CheckOnHost(catalog.INVALID_INDEXES).run(SchemaContext.of_public(), conn)


class TestReconcile:
    def test_union_deduplicates(self):
        merged = reconcile(
            MergeRule.UNION,
            [[Index("t", "b"), Index("t", "a")], [Index("t", "a"), Index("t", "c")]],
        )
        assert merged == [Index("t", "a"), Index("t", "b"), Index("t", "c")]

    def test_union_keeps_first_occurrence(self):
        first = UnusedIndex("t", "i", 10, 1)
        merged = reconcile(MergeRule.UNION, [[first], [UnusedIndex("t", "i", 99, 99)]])
        assert merged[0].index_size_in_bytes == 10

    def test_max_value(self):
        merged = reconcile(
            MergeRule.MAX_VALUE,
            [[UnusedIndex("t", "i", 10, 5)], [UnusedIndex("t", "i", 30, 0)]],
        )
        assert len(merged) == 1
        assert (merged[0].index_size_in_bytes, merged[0].index_scans) == (30, 5)

    @pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
    def test_max_value_order_independent(self, order):
        per_host = [
            [UnusedIndex("t", "i1", 10, 0), UnusedIndex("t", "i2", 1, 7)],
            [UnusedIndex("t", "i1", 20, 3)],
            [UnusedIndex("t", "i2", 5, 2), UnusedIndex("t", "i3", 1, 1)],
        ]
        expected = reconcile(MergeRule.MAX_VALUE, per_host)
        merged = reconcile(MergeRule.MAX_VALUE, [per_host[i] for i in order])
        assert merged == expected
        assert [(e.index_size_in_bytes, e.index_scans) for e in merged] == [
            (e.index_size_in_bytes, e.index_scans) for e in expected
        ]

    @pytest.mark.parametrize("order", list(itertools.permutations(range(3))))
    def test_union_order_independent_identities(self, order):
        per_host = [[Index("t", "a")], [Index("t", "b"), Index("t", "a")], []]
        assert reconcile(MergeRule.UNION, [per_host[i] for i in order]) == [
            Index("t", "a"),
            Index("t", "b"),
        ]


class TestCheckOnClusterInvariant:
    def test_only_primary_queried(self):
        db1 = FakeConnection("db1", rows={INVALID: [index_row("i_a")]})
        db2 = FakeConnection("db2", is_primary=True, rows={INVALID: [index_row("i_p")]})
        db3 = FakeConnection("db3")
        topology = make_topology(db1, db2, db3)

        result = CheckOnCluster(catalog.INVALID_INDEXES, topology).run(SchemaContext.of_public())

        assert result.findings == [Index("orders", "i_p")]
        assert db2.diagnostic_calls() == [INVALID]
        assert db1.diagnostic_calls() == []
        assert db3.diagnostic_calls() == []
        assert result.status == "ok"

    def test_falls_back_to_replica(self):
        primary = FakeConnection("db1", is_primary=True, failures={INVALID: "server closed"})
        replica = FakeConnection("db2", rows={INVALID: [index_row("i_a")]})
        untouched = FakeConnection("db3")
        topology = make_topology(primary, replica, untouched)

        result = CheckOnCluster(catalog.INVALID_INDEXES, topology).run(SchemaContext.of_public())

        assert result.findings == [Index("orders", "i_a")]
        assert result.degraded is not None
        assert [f.host.host for f in result.degraded.failed_hosts] == ["db1"]
        assert untouched.diagnostic_calls() == []

    def test_replica_only_uses_first_member(self):
        db1 = FakeConnection("db1", rows={INVALID: [index_row("i_a")]})
        db2 = FakeConnection("db2")
        result = CheckOnCluster(catalog.INVALID_INDEXES, make_topology(db1, db2)).run(
            SchemaContext.of_public()
        )
        assert result.findings == [Index("orders", "i_a")]
        assert db2.diagnostic_calls() == []

    def test_every_host_failing_is_an_error(self):
        db1 = FakeConnection("db1", is_primary=True, failures={INVALID: "boom"})
        db2 = FakeConnection("db2", failures={INVALID: "bang"})
        result = CheckOnCluster(catalog.INVALID_INDEXES, make_topology(db1, db2)).run(
            SchemaContext.of_public()
        )
        assert result.failed
        assert result.findings == []
        assert "boom" in result.error and "bang" in result.error
        assert result.status == "failed"

    def test_malformed_row_falls_back_to_next_host(self):
        db1 = FakeConnection(
            "db1", is_primary=True, rows={FUNCS: [{"function_name": "f", "function_signature": 42}]}
        )
        db2 = FakeConnection("db2", rows={FUNCS: [{"function_name": "f", "function_signature": "a integer"}]})
        result = CheckOnCluster(catalog.FUNCTIONS_WITHOUT_DESCRIPTION, make_topology(db1, db2)).run(
            SchemaContext.of_public()
        )
        assert [e.function_signature for e in result.findings] == ["a integer"]
        assert result.status == "degraded"
        assert "malformed data" in result.degraded.failed_hosts[0].reason


class TestCheckOnClusterVariant:
    def test_max_merge_across_hosts(self):
        db1 = FakeConnection(
            "db1", is_primary=True, rows={UNUSED: [unused_index_row("i_status", index_scans=0)]}
        )
        db2 = FakeConnection("db2", rows={UNUSED: [unused_index_row("i_status", index_scans=0)]})
        db3 = FakeConnection(
            "db3",
            rows={
                UNUSED: [
                    unused_index_row("i_status", index_scans=0, index_size=65536),
                    unused_index_row("i_created", index_scans=2),
                ]
            },
        )
        topology = make_topology(db1, db2, db3)

        result = CheckOnCluster(catalog.UNUSED_INDEXES, topology).run(SchemaContext.of_public())

        assert result.findings == [
            UnusedIndex("orders", "i_created"),
            UnusedIndex("orders", "i_status"),
        ]
        assert result.findings[1].index_size_in_bytes == 65536
        assert all(c.diagnostic_calls() == [UNUSED] for c in (db1, db2, db3))
        assert result.status == "ok"

    def test_partial_failure_degrades(self):
        db1 = FakeConnection("db1", is_primary=True, rows={UNUSED: [unused_index_row("i_a")]})
        db2 = FakeConnection("db2", failures={UNUSED: "server closed the connection"})
        db3 = FakeConnection("db3", rows={UNUSED: [unused_index_row("i_b")]})
        topology = make_topology(db1, db2, db3)

        result = CheckOnCluster(catalog.UNUSED_INDEXES, topology).run(SchemaContext.of_public())

        assert [e.index_name for e in result.findings] == ["i_a", "i_b"]
        assert result.status == "degraded"
        assert [f.host.host for f in result.degraded.failed_hosts] == ["db2"]
        assert [h.host for h in result.degraded.contributing_hosts] == ["db1", "db3"]
        assert not result.failed

    def test_malformed_row_on_one_host_keeps_other_answers(self):
        db1 = FakeConnection("db1", is_primary=True, rows={UNUSED: [unused_index_row("i_a")]})
        db2 = FakeConnection("db2", rows={UNUSED: [unused_index_row("i_b", index_size="abc")]})
        result = CheckOnCluster(catalog.UNUSED_INDEXES, make_topology(db1, db2)).run(
            SchemaContext.of_public()
        )
        assert [e.index_name for e in result.findings] == ["i_a"]
        assert result.status == "degraded"
        assert [f.host.host for f in result.degraded.failed_hosts] == ["db2"]
        assert "malformed data" in result.degraded.failed_hosts[0].reason

    def test_unexpected_host_error_keeps_other_answers(self):
        map_unused = mapper_for(catalog.UNUSED_INDEXES)

        def mapper(row):
            if row["index_name"] == "i_b":
                raise RuntimeError("mapper bug")
            return map_unused(row)

        db1 = FakeConnection("db1", is_primary=True, rows={UNUSED: [unused_index_row("i_a")]})
        db2 = FakeConnection("db2", rows={UNUSED: [unused_index_row("i_b")]})
        check = CheckOnCluster(
            catalog.UNUSED_INDEXES,
            make_topology(db1, db2),
            check_on_host=CheckOnHost(catalog.UNUSED_INDEXES, mapper=mapper),
        )
        result = check.run(SchemaContext.of_public())
        assert [e.index_name for e in result.findings] == ["i_a"]
        assert result.degraded.failed_hosts[0].reason == "RuntimeError: mapper bug"

    def test_all_hosts_failing(self):
        db1 = FakeConnection("db1", is_primary=True, failures={UNUSED: "x"})
        db2 = FakeConnection("db2", failures={UNUSED: "y"})
        result = CheckOnCluster(catalog.UNUSED_INDEXES, make_topology(db1, db2)).run(
            SchemaContext.of_public()
        )
        assert result.failed
        assert len(result.host_failures) == 2

    def test_exclusion_applied_after_merge(self):
        db1 = FakeConnection("db1", is_primary=True, rows={UNUSED: [unused_index_row("i_a", index_size=10)]})
        db2 = FakeConnection("db2", rows={UNUSED: [unused_index_row("i_a", index_size=5000)]})
        topology = make_topology(db1, db2)
        keep_large = Predicate(lambda e: e.index_size_in_bytes >= 1000)

        result = CheckOnCluster(catalog.UNUSED_INDEXES, topology).run(
            SchemaContext.of_public(), keep_large
        )

        # db1 alone would have dropped it; the merged size keeps it
        assert [e.index_name for e in result.findings] == ["i_a"]

    def test_idempotent(self):
        db1 = FakeConnection("db1", is_primary=True, rows={UNUSED: [unused_index_row("i_a", 1)]})
        db2 = FakeConnection("db2", rows={UNUSED: [unused_index_row("i_b", 2)]})
        check = CheckOnCluster(catalog.UNUSED_INDEXES, make_topology(db1, db2))
        first = check.run(SchemaContext.of_public())
        second = check.run(SchemaContext.of_public())
        assert first.findings == second.findings
        assert [str(e) for e in first.findings] == [str(e) for e in second.findings]

    def test_timeout_marks_slow_host(self):
        db1 = FakeConnection("db1", is_primary=True, rows={UNUSED: [unused_index_row("i_a")]})
        slow = FakeConnection("db2", rows={UNUSED: [unused_index_row("i_b")]}, delays={UNUSED: 5})
        check = CheckOnCluster(catalog.UNUSED_INDEXES, make_topology(db1, slow), timeout=0.2)

        started = time.monotonic()
        result = check.run(SchemaContext.of_public())

        assert time.monotonic() - started < 3
        assert [e.index_name for e in result.findings] == ["i_a"]
        assert result.status == "degraded"
        failure = result.degraded.failed_hosts[0]
        assert failure.host == slow.identity
        assert failure.timed_out
        assert slow.cancelled.is_set()

    def test_cancel_aborts_without_partial_result(self):
        db1 = FakeConnection("db1", is_primary=True, rows={UNUSED: [unused_index_row("i_a")]})
        slow = FakeConnection("db2", delays={UNUSED: 5})
        cancel_event = threading.Event()
        check = CheckOnCluster(
            catalog.UNUSED_INDEXES, make_topology(db1, slow), cancel_event=cancel_event
        )
        threading.Timer(0.1, cancel_event.set).start()

        with pytest.raises(BatchCancelled):
            check.run(SchemaContext.of_public())
        assert slow.cancelled.is_set()

    def test_already_cancelled(self):
        cancel_event = threading.Event()
        cancel_event.set()
        db1 = FakeConnection("db1", is_primary=True)
        check = CheckOnCluster(catalog.INVALID_INDEXES, make_topology(db1), cancel_event=cancel_event)
        with pytest.raises(BatchCancelled):
            check.run(SchemaContext.of_public())
        assert db1.diagnostic_calls() == []

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValueError):
            CheckOnCluster(catalog.UNUSED_INDEXES, make_topology(FakeConnection()), timeout=0)
