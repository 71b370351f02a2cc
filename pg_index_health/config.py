"""Configuration loading and management for pg-index-health."""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from pg_index_health.connection import ConnectionCredentials
from pg_index_health.context import (
    DEFAULT_BLOAT_PERCENTAGE_THRESHOLD,
    DEFAULT_REMAINING_PERCENTAGE_THRESHOLD,
    DEFAULT_SCHEMA_NAME,
    SchemaContext,
)
from pg_index_health.exclusions import Exclusions

CONFIG_FILE_NAME = "pg-index-health.yaml"


@dataclass
class ClusterConfig:
    """Where the cluster members are and how to log in."""

    hosts: list[str] = field(default_factory=list)
    dbname: str | None = None
    user: str | None = None
    password: str | None = field(default=None, repr=False)
    connect_timeout: int = 10
    query_timeout: float | None = None  # seconds per host and diagnostic
    statement_timeout_ms: int | None = None

    def credentials(self) -> list[ConnectionCredentials]:
        return ConnectionCredentials.for_hosts(
            self.hosts,
            dbname=self.dbname,
            user=self.user,
            password=self.password,
            connect_timeout=self.connect_timeout,
            statement_timeout_ms=self.statement_timeout_ms,
        )


@dataclass
class ContextConfig:
    schema_name: str = DEFAULT_SCHEMA_NAME
    bloat_percentage_threshold: float = DEFAULT_BLOAT_PERCENTAGE_THRESHOLD
    remaining_percentage_threshold: float = DEFAULT_REMAINING_PERCENTAGE_THRESHOLD

    def to_context(self) -> SchemaContext:
        return SchemaContext.of(
            self.schema_name, self.bloat_percentage_threshold, self.remaining_percentage_threshold
        )


@dataclass
class Config:
    """Complete configuration for pg-index-health."""

    cluster: ClusterConfig = field(default_factory=ClusterConfig)
    context: ContextConfig = field(default_factory=ContextConfig)
    exclusions: Exclusions = field(default_factory=Exclusions)


def find_config_file() -> str | None:
    """Search for pg-index-health.yaml in cwd, then home dir.

    Returns:
        Path to config file if found, None otherwise.
    """
    cwd_config = Path.cwd() / CONFIG_FILE_NAME
    if cwd_config.is_file():
        return str(cwd_config)

    home_config = Path.home() / CONFIG_FILE_NAME
    if home_config.is_file():
        return str(home_config)

    return None


def load_config(config_path: str | None = None, auto_discover: bool = True) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Explicit path to config file. If None and auto_discover is True,
                     searches default locations.
        auto_discover: If True and config_path is None, search for config file.

    Returns:
        Config object. Returns default config if no file found.
    """
    if config_path is None and auto_discover:
        config_path = find_config_file()

    if config_path is None:
        return Config()

    if not os.path.isfile(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f) or {}

    return _parse_config(data)


def _parse_config(data: dict) -> Config:
    """Parse YAML data into Config object."""
    config = Config()

    if "cluster" in data:
        config.cluster = _parse_cluster(data["cluster"] or {})

    if "context" in data:
        ctx = data["context"] or {}
        config.context = ContextConfig(
            schema_name=ctx.get("schema_name", DEFAULT_SCHEMA_NAME),
            bloat_percentage_threshold=float(
                ctx.get("bloat_percentage_threshold", DEFAULT_BLOAT_PERCENTAGE_THRESHOLD)
            ),
            remaining_percentage_threshold=float(
                ctx.get("remaining_percentage_threshold", DEFAULT_REMAINING_PERCENTAGE_THRESHOLD)
            ),
        )

    if "exclusions" in data:
        config.exclusions = _parse_exclusions(data["exclusions"] or {})

    return config


def _parse_cluster(data: dict) -> ClusterConfig:
    hosts = data.get("hosts", [])
    if isinstance(hosts, str):
        hosts = [h for h in hosts.split(",") if h.strip()]
    query_timeout = data.get("query_timeout")
    return ClusterConfig(
        hosts=[str(h).strip() for h in hosts],
        dbname=data.get("dbname"),
        user=data.get("user"),
        password=data.get("password"),
        connect_timeout=int(data.get("connect_timeout", 10)),
        query_timeout=float(query_timeout) if query_timeout is not None else None,
        statement_timeout_ms=data.get("statement_timeout_ms"),
    )


def _parse_exclusions(data: dict) -> Exclusions:
    """Parse the exclusions section; unknown keys are rejected."""
    known = {f.name for f in dataclasses.fields(Exclusions)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown exclusion settings: {', '.join(sorted(unknown))}")
    values = {}
    for name, value in data.items():
        if isinstance(value, list):
            values[name] = frozenset(str(v) for v in value)
        else:
            values[name] = value
    return Exclusions(**values)


def merge_cli_with_config(
    config: Config,
    cli_hosts: list[str] | None = None,
    cli_dbname: str | None = None,
    cli_user: str | None = None,
    cli_password: str | None = None,
    cli_schema: str | None = None,
    cli_timeout: float | None = None,
) -> Config:
    """Merge CLI arguments with config file settings.

    CLI arguments take precedence over config file. Hosts given on the
    command line replace the configured list rather than extending it.
    """
    cluster = dataclasses.replace(
        config.cluster,
        hosts=list(cli_hosts) if cli_hosts else list(config.cluster.hosts),
        dbname=cli_dbname or config.cluster.dbname,
        user=cli_user or config.cluster.user,
        password=cli_password or config.cluster.password,
        query_timeout=cli_timeout if cli_timeout is not None else config.cluster.query_timeout,
    )
    context = dataclasses.replace(
        config.context, schema_name=cli_schema or config.context.schema_name
    )
    return Config(cluster=cluster, context=context, exclusions=config.exclusions)
