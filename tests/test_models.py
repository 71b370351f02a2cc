"""Tests for result and report data models."""

from __future__ import annotations

import pytest

from pg_index_health import catalog
from pg_index_health.connection import HostIdentity
from pg_index_health.entities import Index
from pg_index_health.models import HostFailure, PartialClusterFailure

from conftest import make_result


class TestHostFailure:
    def test_str(self):
        assert str(HostFailure(HostIdentity("db2"), "boom")) == "db2:5432 failed: boom"
        assert str(HostFailure(HostIdentity("db2"), "late", True)) == "db2:5432 timed out: late"

    def test_partial_failure_str(self):
        partial = PartialClusterFailure(
            (HostFailure(HostIdentity("db2"), "a"), HostFailure(HostIdentity("db3"), "b"))
        )
        assert str(partial) == "db2:5432 failed: a; db3:5432 failed: b"


class TestCheckResult:
    def test_passed(self):
        result = make_result()
        assert result.passed
        assert not result.failed
        assert result.status == "ok"
        assert result.check_name == "unused_indexes"

    def test_findings_not_passed(self):
        result = make_result(catalog.INVALID_INDEXES, findings=[Index("t", "i")])
        assert not result.passed
        assert result.status == "ok"

    def test_failed_distinct_from_empty(self):
        result = make_result(error="No host answered")
        assert result.failed
        assert not result.passed
        assert result.findings == []
        assert result.status == "failed"


class TestBatchReport:
    def test_counts(self, sample_report):
        assert sample_report.checks_total == 4
        assert sample_report.checks_passed == 2
        assert sample_report.checks_failed == 1
        assert sample_report.checks_degraded == 1
        assert len(sample_report.findings) == 1

    def test_result_for(self, sample_report):
        assert sample_report.result_for("bloated_tables").failed
        with pytest.raises(KeyError):
            sample_report.result_for("nope")
