"""Database query checks: log in, run one query, expect exactly one value back."""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from portcheck.core.check import CheckMeta, PortCheck, close_quietly
from portcheck.db.drivers import ConnectOptions, DatabaseDriver, get_driver
from portcheck.errors import ConfigurationError, ConnectError, PortCheckError, QueryError
from portcheck.models.types import AppProtocol, CheckParameters, Endpoint, NetProtocol

logger = logging.getLogger(__name__)


def result_text(value: Any) -> str:
    """String form of a single column value. SQL NULL is the empty string."""
    if value is None:
        return ""
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


class QueryCheck(PortCheck):
    """Runs the ``query`` parameter (default ``select 1``) and returns its value.

    The connection is read-only unless ``readOnly=false``. SSL is off for
    loopback endpoints unless ``ssl=true`` and on elsewhere unless
    ``ssl=false``.
    """

    meta: ClassVar[CheckMeta] = CheckMeta(
        name="query",
        display_name="Database query",
        description="Connects with the database driver and runs a single-value query",
        app_protocols=[AppProtocol.MYSQL, AppProtocol.POSTGRESQL],
        loopback_excluded=[AppProtocol.POSTGRESQL],
    )

    def __init__(
        self,
        endpoint: Endpoint,
        parameters: CheckParameters | None = None,
        *,
        driver: DatabaseDriver | None = None,
        **kwargs,
    ) -> None:
        super().__init__(endpoint, parameters, **kwargs)
        if endpoint.protocol != NetProtocol.TCP:
            raise ValueError(f"endpoint not TCP: {endpoint}")
        if driver is None:
            if self.app_protocol is None:
                raise ValueError("query check needs a driver or an app protocol")
            driver = get_driver(self.app_protocol)
            if driver is None:
                raise ValueError(f"no database driver for {self.app_protocol}")
        self.driver = driver
        self.read_only = not self.parameters.is_false("readOnly")
        if endpoint.is_loopback:
            self.ssl = self.parameters.is_true("ssl")
        else:
            self.ssl = not self.parameters.is_false("ssl")

    def configure(self) -> None:
        params = self.parameters
        self.username = params.get_str("username") or self.driver.default_username
        self.password = params.require("password")
        self.database = params.get_str("database") or self.driver.default_database
        self.query = params.get_str("query") or self.settings.database.default_query
        self.sslmode = params.get_str("sslmode") if self.ssl else None
        self.sslfactory = params.get_str("sslfactory") if self.ssl else None

    def connect_options(self) -> ConnectOptions:
        return ConnectOptions(
            host=self.endpoint.address,
            port=self.endpoint.port,
            username=self.username,
            password=self.password,
            database=self.database,
            ssl=self.ssl,
            tls=self.settings.tls,
            connect_timeout=self.settings.timeouts.connect,
            read_timeout=self.settings.timeouts.read,
            application_name=self.settings.database.application_name,
            sslmode=self.sslmode,
            sslfactory=self.sslfactory,
        )

    def _failure(self, exc: Exception, query: str | None = None) -> PortCheckError:
        if self.cancelled:
            return ConnectError("Check cancelled")
        return QueryError(str(exc) or type(exc).__name__, query=query)

    def check(self) -> str:
        if self.cancelled:
            raise ConnectError("Check cancelled")
        logger.debug("Connecting to %s %s as %s", self.driver.kind, self.endpoint, self.username)
        try:
            conn = self.driver.connect(self.connect_options())
        except ImportError as exc:
            raise ConfigurationError(str(exc)) from exc
        except Exception as exc:
            raise self._failure(exc) from exc
        self._cell.set(conn)

        try:
            self.driver.set_read_only(conn, self.read_only)
        except Exception as exc:
            raise self._failure(exc) from exc

        try:
            cursor = conn.cursor()
        except Exception as exc:
            raise self._failure(exc, self.query) from exc
        try:
            return self._single_value(cursor)
        except PortCheckError:
            raise
        except Exception as exc:
            raise self._failure(exc, self.query) from exc
        finally:
            close_quietly(cursor)

    def _single_value(self, cursor: Any) -> str:
        logger.debug("Executing %s", self.query)
        cursor.execute(self.query)
        # No result set at all reads the same as an empty one
        if cursor.description is None:
            raise QueryError("No row returned", query=self.query)
        row = cursor.fetchone()
        if row is None:
            raise QueryError("No row returned", query=self.query)
        columns = len(cursor.description)
        if columns == 0:
            raise QueryError("No columns returned", query=self.query)
        if columns > 1:
            raise QueryError("More than one column returned", query=self.query)
        result = result_text(row[0])
        if cursor.fetchone() is not None:
            raise QueryError("More than one row returned", query=self.query)
        return result
