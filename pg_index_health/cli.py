"""CLI entry point for pg-index-health."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime

from pg_index_health import __version__
from pg_index_health.catalog import DEFAULT_CATALOG
from pg_index_health.config import Config, load_config, merge_cli_with_config
from pg_index_health.connection import DEFAULT_PORT, ConnectionCredentials, HostIdentity
from pg_index_health.exceptions import ClusterUnavailable
from pg_index_health.scanner import run_batch

# File extensions per output format
_FORMAT_EXT = {"json": ".json", "text": ".txt"}

EXIT_OK = 0
EXIT_FINDINGS = 1
EXIT_UNAVAILABLE = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pg-index-health",
        description="Check the indexes and schema of a PostgreSQL cluster for common problems.",
    )
    parser.add_argument("--version", action="version", version=f"pg-index-health {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # -- run --
    run_parser = subparsers.add_parser("run", help="Run every diagnostic against the cluster")
    _add_connection_args(run_parser)
    run_parser.add_argument("--config", "-c", help="Path to pg-index-health.yaml")
    run_parser.add_argument("--schema", "-s", help="Schema to inspect (default: public)")
    run_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds each host may spend on one diagnostic (default: no limit)",
    )
    _add_output_args(run_parser)
    run_parser.add_argument("--verbose", "-v", action="store_true", help="Print progress")

    # -- list-diagnostics --
    subparsers.add_parser("list-diagnostics", help="List all available diagnostics")

    return parser


def _add_connection_args(parser: argparse.ArgumentParser):
    grp = parser.add_argument_group("connection")
    grp.add_argument("--dsn", help="PostgreSQL connection URI of a single member (postgres://...)")
    grp.add_argument(
        "--host",
        "-H",
        action="append",
        dest="hosts",
        default=None,
        help="Cluster member as host[:port]; repeat for every member",
    )
    grp.add_argument(
        "--port", "-p", type=int, default=DEFAULT_PORT, help="Port for hosts given without one"
    )
    grp.add_argument("--dbname", "-d", default=None, help="Database name")
    grp.add_argument("--user", "-U", default=None, help="Database user")
    grp.add_argument("--password", "-W", default=None, help="Database password")


def _add_output_args(parser: argparse.ArgumentParser):
    grp = parser.add_argument_group("output")
    grp.add_argument(
        "--format",
        "-f",
        choices=["json", "text"],
        default="text",
        help="Report format (default: text)",
    )
    grp.add_argument("--output", "-o", help="Output file path (default: stdout)")


def main(argv: list[str] | None = None):
    parser = build_parser()
    raw_args = argv if argv is not None else sys.argv[1:]
    if not raw_args:
        parser.print_help()
        sys.exit(EXIT_UNAVAILABLE)

    args = parser.parse_args(raw_args)

    if args.command == "list-diagnostics":
        _cmd_list_diagnostics(args)
        sys.exit(EXIT_OK)
    elif args.command == "run":
        sys.exit(_cmd_run(args))

    parser.print_help()
    sys.exit(EXIT_UNAVAILABLE)


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _cmd_list_diagnostics(args):
    for diagnostic in DEFAULT_CATALOG:
        tag = "[runtime]" if diagnostic.is_host_variant else ""
        print(f"  {diagnostic.name:42s} {tag:10s} {diagnostic.description}")


def _cmd_run(args) -> int:
    _configure_logging(args.verbose)

    try:
        config = merge_cli_with_config(
            load_config(args.config),
            cli_hosts=_hosts_with_port(args.hosts, args.port),
            cli_dbname=args.dbname,
            cli_user=args.user,
            cli_password=args.password,
            cli_schema=args.schema,
            cli_timeout=args.timeout,
        )
        credentials = _build_credentials(config, args.dsn)
        context = config.context.to_context()
    except (FileNotFoundError, ValueError) as e:
        # invalid thresholds surface as InvalidEntityConstruction, a ValueError
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_UNAVAILABLE

    if not credentials:
        print("Error: no cluster members given; use --host, --dsn or a config file.", file=sys.stderr)
        return EXIT_UNAVAILABLE

    try:
        report = run_batch(
            credentials,
            context=context,
            exclusions=config.exclusions,
            timeout=config.cluster.query_timeout,
        )
    except ClusterUnavailable as e:
        print("Error: Could not connect to any cluster member.", file=sys.stderr)
        print(f"       {e}", file=sys.stderr)
        _print_connection_hint(str(e))
        return EXIT_UNAVAILABLE

    output = _render_report(report, args.format)
    _write_output(output, args, dbname=report.database)

    if report.findings or report.checks_failed:
        return EXIT_FINDINGS
    return EXIT_OK


def _hosts_with_port(hosts: list[str] | None, port: int) -> list[str] | None:
    if not hosts:
        return None
    result = []
    for host in hosts:
        for part in host.split(","):
            part = part.strip()
            if not part:
                continue
            result.append(str(HostIdentity.parse(part, default_port=port)))
    return result


def _build_credentials(config: Config, dsn: str | None) -> list[ConnectionCredentials]:
    if dsn and not config.cluster.hosts:
        overrides = {
            k: v
            for k, v in (
                ("dbname", config.cluster.dbname),
                ("user", config.cluster.user),
                ("password", config.cluster.password),
            )
            if v
        }
        return [
            ConnectionCredentials.from_dsn(
                dsn,
                statement_timeout_ms=config.cluster.statement_timeout_ms,
                **overrides,
            )
        ]
    return config.cluster.credentials()


def _print_connection_hint(error_msg: str):
    if "no password supplied" in error_msg:
        print(
            "\nHint: Use --password to provide a password, or set PGPASSWORD environment variable.",
            file=sys.stderr,
        )
    elif "does not exist" in error_msg:
        print("\nHint: Check that the database name is correct.", file=sys.stderr)
    elif "Connection refused" in error_msg or "could not connect" in error_msg.lower():
        print("\nHint: Check that PostgreSQL is running on the given hosts.", file=sys.stderr)


def _write_output(output: str, args, dbname: str = ""):
    """Write report to a file (with timestamped name) or stdout."""
    if not args.output:
        sys.stdout.write(output)
        if not output.endswith("\n"):
            sys.stdout.write("\n")
        return

    path = _make_output_path(args.output, args.format, dbname)
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(path, "w") as f:
        f.write(output)
    print(f"Report written to {path}", file=sys.stderr)


def _make_output_path(user_path: str, fmt: str, dbname: str = "") -> str:
    """Insert a timestamp into the output filename.

    If the user provides a path like ``report.json``, the result is
    ``report_20260127_131504.json``.  If they provide a bare directory,
    the file is placed there with an auto-generated name.
    """
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    ext = _FORMAT_EXT.get(fmt, "")
    name = dbname or "pg-index-health"

    if os.path.isdir(user_path):
        return os.path.join(user_path, f"{name}_{ts}{ext}")

    base, existing_ext = os.path.splitext(user_path)
    if not existing_ext:
        existing_ext = ext
    return f"{base}_{ts}{existing_ext}"


def _render_report(report, fmt: str) -> str:
    if fmt == "json":
        from pg_index_health.reporters.json_reporter import render
    elif fmt == "text":
        from pg_index_health.reporters.text_reporter import render
    else:
        raise ValueError(f"Unknown format: {fmt}")
    return render(report)
