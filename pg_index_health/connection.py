"""Database connection management for individual cluster members."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field

import psycopg2
import psycopg2.errors
import psycopg2.extensions
import psycopg2.extras

from pg_index_health.exceptions import HostTimeout, HostUnreachable
from pg_index_health.queries import load_query

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5432


@dataclass(frozen=True, order=True)
class HostIdentity:
    """Address of one cluster member; the dedup and ordering key of a topology."""

    host: str
    port: int = DEFAULT_PORT

    def __post_init__(self):
        if not self.host or not self.host.strip():
            raise ValueError("host cannot be blank")
        if not 0 < self.port < 65536:
            raise ValueError(f"port out of range: {self.port}")

    @classmethod
    def parse(cls, address: str, default_port: int = DEFAULT_PORT) -> HostIdentity:
        """Parse `host`, `host:port`, a bare IPv6 address or `[ipv6]:port`."""
        address = address.strip()
        if address.startswith("["):
            host, sep, rest = address[1:].partition("]")
            if not sep or (rest and not rest.startswith(":")):
                raise ValueError(f"malformed host address: {address}")
            return cls(host, int(rest[1:]) if rest else default_port)
        if address.count(":") > 1:
            return cls(address, default_port)
        head, sep, tail = address.rpartition(":")
        if not sep:
            return cls(tail, default_port)
        return cls(head, int(tail))

    def __str__(self):
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class ConnectionCredentials:
    """Everything needed to open a connection to one cluster member."""

    host: str
    port: int = DEFAULT_PORT
    dbname: str | None = None
    user: str | None = None
    password: str | None = field(default=None, repr=False)
    connect_timeout: int = 10
    statement_timeout_ms: int | None = None

    @property
    def identity(self) -> HostIdentity:
        return HostIdentity(self.host, self.port)

    @classmethod
    def for_hosts(cls, addresses: list[str], **kwargs) -> list[ConnectionCredentials]:
        """Build one credentials entry per `host[:port]` address sharing the other settings."""
        result = []
        for address in addresses:
            identity = HostIdentity.parse(address)
            result.append(cls(host=identity.host, port=identity.port, **kwargs))
        return result

    @classmethod
    def from_dsn(cls, dsn: str, **overrides) -> ConnectionCredentials:
        """Build credentials from a libpq DSN or URI, e.g. `postgresql://u@h:5433/db`."""
        parsed = psycopg2.extensions.parse_dsn(dsn)
        values = {
            "host": parsed.get("host", "localhost"),
            "port": int(parsed.get("port", DEFAULT_PORT)),
            "dbname": parsed.get("dbname"),
            "user": parsed.get("user"),
            "password": parsed.get("password"),
        }
        if "connect_timeout" in parsed:
            values["connect_timeout"] = int(parsed["connect_timeout"])
        values.update(overrides)
        return cls(**values)

    def connect_params(self) -> dict:
        params = {"host": self.host, "port": self.port, "connect_timeout": self.connect_timeout}
        if self.dbname:
            params["dbname"] = self.dbname
        if self.user:
            params["user"] = self.user
        if self.password:
            params["password"] = self.password
        elif os.environ.get("PGPASSWORD"):
            params["password"] = os.environ["PGPASSWORD"]
        if self.statement_timeout_ms:
            params["options"] = f"-c statement_timeout={int(self.statement_timeout_ms)}"
        return params


class HostConnection:
    """A read-only connection to a single cluster member.

    Wraps a psycopg2 connection and translates driver errors into
    HostUnreachable / HostTimeout carrying the member's identity.

    A cancel request is only sent while a query is in flight, and no query
    starts while a cancel request is being delivered.
    """

    def __init__(self, identity: HostIdentity, conn):
        self.identity = identity
        self._conn = conn
        self._lock = threading.Lock()
        self._in_flight = 0

    def execute(self, query_resource: str, params: dict | None = None) -> list[dict]:
        """Run the named query resource with bound parameters and return all rows."""
        sql = load_query(query_resource)
        with self._lock:
            self._in_flight += 1
        try:
            with self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(sql, params or {})
                return [dict(row) for row in cur.fetchall()]
        except psycopg2.errors.QueryCanceled as e:
            raise HostTimeout(self.identity, f"query {query_resource} was cancelled: {e}") from e
        except psycopg2.Error as e:
            raise HostUnreachable(self.identity, f"query {query_resource} failed: {e}") from e
        finally:
            with self._lock:
                self._in_flight -= 1

    def cancel(self) -> None:
        """Interrupt the query currently running on this connection, if any."""
        with self._lock:
            if not self._in_flight:
                logger.debug("No query running on %s; cancel skipped", self.identity)
                return
            try:
                self._conn.cancel()
            except psycopg2.Error as e:
                logger.warning("Failed to cancel query on %s: %s", self.identity, e)

    def close(self) -> None:
        if not self._conn.closed:
            self._conn.close()

    def __repr__(self):
        return f"<HostConnection {self.identity}>"


def connect_host(credentials: ConnectionCredentials) -> HostConnection:
    """Open a read-only autocommit connection to one cluster member.

    Raises:
        HostUnreachable: if the member cannot be reached or rejects the login.
    """
    try:
        conn = psycopg2.connect(**credentials.connect_params())
    except psycopg2.Error as e:
        raise HostUnreachable(credentials.identity, str(e).strip()) from e

    conn.set_session(readonly=True, autocommit=True)
    return HostConnection(credentials.identity, conn)


def get_pg_version(connection: HostConnection) -> str:
    """Return the PostgreSQL server version string."""
    rows = connection.execute("server_version.sql")
    return rows[0]["version"] if rows else ""
