"""Health logger: one `<diagnostic>:<count>` line per diagnostic, per batch."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable

from pg_index_health.catalog import DEFAULT_CATALOG, DiagnosticCatalog
from pg_index_health.connection import ConnectionCredentials, HostConnection, connect_host
from pg_index_health.context import SchemaContext
from pg_index_health.exclusions import Exclusions
from pg_index_health.models import BatchReport, CheckResult
from pg_index_health.scanner import run_batch

logger = logging.getLogger(__name__)

FAILED_MARKER = "failed"


def format_result(result: CheckResult) -> str:
    value = FAILED_MARKER if result.failed else str(len(result.findings))
    return f"{result.check_name}:{value}"


class HealthLogger:
    """Runs the whole catalog against a cluster and summarises it as log lines.

    Every call builds and tears down its own topology, so consecutive calls
    follow failovers without extra bookkeeping.
    """

    def __init__(
        self,
        credentials: Iterable[ConnectionCredentials],
        catalog: DiagnosticCatalog = DEFAULT_CATALOG,
        timeout: float | None = None,
        connect: Callable[[ConnectionCredentials], HostConnection] = connect_host,
    ):
        self.credentials = list(credentials)
        if not self.credentials:
            raise ValueError("credentials cannot be empty")
        self.catalog = catalog
        self.timeout = timeout
        self.connect = connect
        self.last_report: BatchReport | None = None

    def log_all(
        self,
        exclusions: Exclusions | None = None,
        context: SchemaContext | None = None,
        cancel_event: threading.Event | None = None,
    ) -> list[str]:
        report = run_batch(
            self.credentials,
            context=context,
            exclusions=exclusions,
            catalog=self.catalog,
            timeout=self.timeout,
            cancel_event=cancel_event,
            connect=self.connect,
        )
        self.last_report = report

        lines = []
        for result in report.results:
            if result.failed:
                logger.error("Diagnostic %s could not be run: %s", result.check_name, result.error)
            elif result.findings:
                logger.warning(
                    "There are %s in the database: %s",
                    result.diagnostic.description.lower(),
                    ", ".join(str(f) for f in result.findings),
                )
            lines.append(format_result(result))
        return lines
