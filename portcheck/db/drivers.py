"""Database drivers for the query checks.

Each driver knows how to open a DB-API connection to one database kind and
how to put it in read-only mode. The client libraries are optional extras
and are imported only when a connection is opened.
"""

from __future__ import annotations

import logging
import os
import ssl
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from portcheck.config import TlsSettings
from portcheck.models.types import AppProtocol
from portcheck.net.transport import build_tls_context

logger = logging.getLogger(__name__)

DEFAULT_SSLMODE = "verify-ca"  # validate the certificate, not the hostname


@dataclass
class ConnectOptions:
    """Everything a driver needs to open one monitoring connection."""

    host: str
    port: int
    username: str
    password: str
    database: str
    ssl: bool
    tls: TlsSettings
    connect_timeout: float
    read_timeout: float
    application_name: str = ""
    sslmode: str | None = None
    sslfactory: str | None = None


@dataclass(frozen=True)
class DatabaseDriver:
    kind: AppProtocol
    default_port: int
    default_username: str
    default_database: str
    connect: Callable[[ConnectOptions], Any]
    set_read_only: Callable[[Any, bool], None]


# === MySQL (PyMySQL) ===

def _mysql_connect(options: ConnectOptions) -> Any:
    try:
        import pymysql
        from pymysql.constants import CLIENT
    except ImportError as exc:
        raise ImportError(
            "PyMySQL is required for MySQL checks. "
            "Install with: pip install 'portcheck[mysql]'"
        ) from exc

    conn = pymysql.connect(
        host=options.host,
        port=options.port,
        user=options.username,
        password=options.password,
        database=options.database,
        connect_timeout=max(1, int(options.connect_timeout)),
        read_timeout=options.read_timeout,
        write_timeout=options.read_timeout,
        ssl=build_tls_context(options.tls) if options.ssl else None,
    )
    # PyMySQL silently stays in plain text when the server cannot do TLS
    if options.ssl and not conn.server_capabilities & CLIENT.SSL:
        conn.close()
        raise ConnectionError("Server does not support SSL")
    return conn


def _mysql_set_read_only(conn: Any, read_only: bool) -> None:
    mode = "READ ONLY" if read_only else "READ WRITE"
    with conn.cursor() as cursor:
        cursor.execute(f"SET SESSION TRANSACTION {mode}")


# === PostgreSQL (psycopg 3) ===

def _default_cafile() -> str | None:
    """The platform CA bundle, so libpq verifies against the same roots as the TLS checks."""
    paths = ssl.get_default_verify_paths()
    candidates = [paths.cafile, paths.openssl_cafile]
    if paths.openssl_capath:
        # Debian-style hashed directory with a concatenated bundle beside it
        candidates.append(os.path.join(paths.openssl_capath, "ca-certificates.crt"))
    for candidate in candidates:
        if candidate and os.path.isfile(candidate):
            return candidate
    logger.warning("No system CA bundle found, libpq will look for ~/.postgresql/root.crt")
    return None


def _postgresql_connect(options: ConnectOptions) -> Any:
    try:
        import psycopg
    except ImportError as exc:
        raise ImportError(
            "psycopg is required for PostgreSQL checks. "
            "Install with: pip install 'portcheck[postgresql]'"
        ) from exc

    kwargs: dict[str, Any] = {
        "host": options.host,
        "port": options.port,
        "user": options.username,
        "password": options.password,
        "dbname": options.database,
        "connect_timeout": max(1, int(options.connect_timeout)),
        "keepalives": 1,
        "options": f"-c statement_timeout={int(options.read_timeout * 1000)}",
    }
    if options.application_name:
        kwargs["application_name"] = options.application_name
    if options.ssl:
        kwargs["sslmode"] = options.sslmode or DEFAULT_SSLMODE
        cafile = options.tls.cafile or _default_cafile()
        if cafile:
            kwargs["sslrootcert"] = cafile
        if options.sslfactory:
            logger.debug("sslfactory=%s has no libpq equivalent, ignored", options.sslfactory)
    else:
        kwargs["sslmode"] = "disable"
    return psycopg.connect(**kwargs)


def _postgresql_set_read_only(conn: Any, read_only: bool) -> None:
    conn.read_only = read_only


MYSQL = DatabaseDriver(
    kind=AppProtocol.MYSQL,
    default_port=3306,
    default_username="mysqlmon",
    default_database="mysqlmon",
    connect=_mysql_connect,
    set_read_only=_mysql_set_read_only,
)

POSTGRESQL = DatabaseDriver(
    kind=AppProtocol.POSTGRESQL,
    default_port=5432,
    default_username="postgresmon",
    default_database="postgresmon",
    connect=_postgresql_connect,
    set_read_only=_postgresql_set_read_only,
)


# === Registry ===

_drivers: dict[AppProtocol, DatabaseDriver] = {
    MYSQL.kind: MYSQL,
    POSTGRESQL.kind: POSTGRESQL,
}
_lock = threading.Lock()


def register_driver(driver: DatabaseDriver) -> None:
    """Register or replace the driver for ``driver.kind``."""
    with _lock:
        _drivers[driver.kind] = driver


def get_driver(kind: AppProtocol) -> DatabaseDriver | None:
    with _lock:
        return _drivers.get(kind)
