"""Plain-text report renderer, one block per diagnostic."""

from __future__ import annotations

from pg_index_health.models import BatchReport


def render(report: BatchReport) -> str:
    lines = [
        f"pg-index-health report for {report.database or '<default>'}",
        f"Generated: {report.timestamp.strftime('%Y-%m-%d %H:%M:%S UTC')}",
        f"Hosts: {', '.join(str(h) for h in report.hosts)}",
        f"Primary: {report.primary or 'none (replica-only)'}",
        f"Schema: {report.schema_name}",
    ]
    if report.pg_version:
        lines.append(f"Server: {report.pg_version}")
    lines.append("")

    for result in report.results:
        if result.failed:
            lines.append(f"[FAILED] {result.check_name}: {result.error}")
            continue
        marker = "OK" if result.passed else "FOUND"
        suffix = " (degraded)" if result.degraded is not None else ""
        lines.append(f"[{marker}] {result.check_name}: {len(result.findings)}{suffix}")
        for finding in result.findings:
            lines.append(f"    {finding}")
        if result.degraded is not None:
            lines.append(f"    partial data: {result.degraded}")

    lines.append("")
    lines.append(
        f"{report.checks_total} checks, {report.checks_passed} passed, "
        f"{report.checks_failed} failed, {report.checks_degraded} degraded"
    )
    return "\n".join(lines) + "\n"
