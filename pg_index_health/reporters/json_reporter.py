"""JSON report renderer."""

from __future__ import annotations

import json

from pg_index_health import __version__
from pg_index_health.models import BatchReport, CheckResult


def render(report: BatchReport) -> str:
    """Render a BatchReport as a JSON string."""
    data = {
        "meta": {
            "tool": "pg-index-health",
            "version": __version__,
            "timestamp": report.timestamp.isoformat(),
            "database": report.database,
            "hosts": [str(h) for h in report.hosts],
            "primary": str(report.primary) if report.primary else None,
            "schema_name": report.schema_name,
            "pg_version": report.pg_version,
        },
        "summary": {
            "total_checks": report.checks_total,
            "checks_passed": report.checks_passed,
            "checks_failed": report.checks_failed,
            "checks_degraded": report.checks_degraded,
            "findings": len(report.findings),
        },
        "results": [_render_result(r) for r in report.results],
    }
    return json.dumps(data, indent=2, default=str)


def _render_result(result: CheckResult) -> dict:
    entry = {
        "check_name": result.check_name,
        "description": result.diagnostic.description,
        "entity_type": result.diagnostic.entity_type.__name__,
        "status": result.status,
        "passed": result.passed,
        "error": result.error,
        "findings": [str(f) for f in result.findings],
    }
    if result.host_failures:
        entry["host_failures"] = [
            {"host": str(f.host), "reason": f.reason, "timed_out": f.timed_out}
            for f in result.host_failures
        ]
    return entry
