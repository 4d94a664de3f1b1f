"""Check system: PortCheck ABC, CheckMeta, and the cancellable resource cell."""

from __future__ import annotations

import logging
import ssl
import threading
from abc import ABC, abstractmethod
from typing import ClassVar, Protocol

from pydantic import BaseModel, Field

from portcheck.config import Settings
from portcheck.errors import ConnectError, PortCheckError
from portcheck.models.types import AppProtocol, CheckParameters, Endpoint, NetProtocol
from portcheck.net.transport import Transport, build_tls_context

logger = logging.getLogger(__name__)

CONNECTED_SUCCESSFULLY = "Connected successfully"
CONNECTED_OVER_SSL = CONNECTED_SUCCESSFULLY + " over SSL"
CONNECTED_SSL_DISABLED = CONNECTED_SUCCESSFULLY + " (SSL disabled)"


class Closeable(Protocol):
    def close(self) -> None: ...


def close_quietly(resource: Closeable) -> None:
    """Close *resource*, logging instead of raising on failure."""
    try:
        resource.close()
    except Exception:
        logger.warning("Error closing %r", resource, exc_info=True)


class ResourceCell:
    """Single-slot owner of a check's live connection.

    ``cancel()`` may come from any thread. The resource is taken out of the
    slot under the lock before it is closed, so cancellation racing normal
    completion closes it exactly once, and a resource stored after
    cancellation is closed on the spot.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._resource: Closeable | None = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def set(self, resource: Closeable) -> None:
        previous = None
        with self._lock:
            cancelled = self._cancelled
            if not cancelled:
                previous, self._resource = self._resource, resource
        if cancelled:
            close_quietly(resource)
            raise ConnectError("Check cancelled")
        if previous is not None and previous is not resource:
            close_quietly(previous)

    def release(self) -> None:
        with self._lock:
            resource, self._resource = self._resource, None
        if resource is not None:
            close_quietly(resource)

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            resource, self._resource = self._resource, None
        if resource is not None:
            close_quietly(resource)


class CheckMeta(BaseModel):
    """Metadata declaring which endpoints a check handles."""

    name: str
    display_name: str
    description: str = ""
    net_protocol: NetProtocol = NetProtocol.TCP
    app_protocols: list[AppProtocol] = Field(default_factory=list)
    implicit_tls: list[AppProtocol] = Field(default_factory=list)  # TLS from the first byte
    loopback_excluded: list[AppProtocol] = Field(default_factory=list)
    fallback: bool = False  # used when no app protocol matches


class PortCheck(ABC):
    """Base class for all checks.

    One instance checks one endpoint once: ``run()`` returns a short success
    message or raises a :class:`~portcheck.errors.PortCheckError`.
    ``cancel()`` never blocks and may be called from any thread at any time.
    """

    meta: ClassVar[CheckMeta]

    def __init__(
        self,
        endpoint: Endpoint,
        parameters: CheckParameters | None = None,
        *,
        app_protocol: AppProtocol | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.parameters = parameters if parameters is not None else CheckParameters()
        self.app_protocol = app_protocol
        self.settings = settings or Settings()
        self._cell = ResourceCell()
        self._started = False
        self._start_lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cell.cancelled

    @property
    def needs_configuration(self) -> bool:
        return True

    def configure(self) -> None:  # noqa: B027
        """Read and validate parameters. Runs before any connection attempt."""

    @abstractmethod
    def check(self) -> str:
        """Perform the protocol-specific check and return the success message."""

    def run(self) -> str:
        with self._start_lock:
            if self._started:
                raise RuntimeError(f"{self!r} has already been run")
            self._started = True
        try:
            if self.needs_configuration:
                self.configure()
            return self.check()
        except PortCheckError as exc:
            exc.with_context(
                address=self.endpoint.address,
                port=self.endpoint.port,
                net_protocol=str(self.endpoint.protocol),
                app_protocol=str(self.app_protocol) if self.app_protocol else None,
            )
            raise
        finally:
            self._cell.release()

    def cancel(self) -> None:
        logger.debug("Cancelling %r", self)
        self._cell.cancel()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.endpoint}>"


class TcpPortCheck(PortCheck):
    """Connects a TCP transport, optionally TLS from the start, then runs ``exchange``.

    ``ssl`` is on for implicit-TLS variants unless ``ssl=false``; ``starttls``
    is on for checks that support it unless the connection is already TLS or
    ``starttls=false``.
    """

    supports_starttls: ClassVar[bool] = False

    def __init__(
        self,
        endpoint: Endpoint,
        parameters: CheckParameters | None = None,
        *,
        implicit_tls: bool | None = None,
        **kwargs,
    ) -> None:
        super().__init__(endpoint, parameters, **kwargs)
        if endpoint.protocol != NetProtocol.TCP:
            raise ValueError(f"endpoint not TCP: {endpoint}")
        if implicit_tls is None:
            implicit_tls = self.app_protocol in self.meta.implicit_tls
        self.implicit_tls = implicit_tls
        self.ssl = implicit_tls and not self.parameters.is_false("ssl")
        self.starttls = (
            self.supports_starttls
            and not self.ssl
            and not self.parameters.is_false("starttls")
        )

    @property
    def ssl_disabled(self) -> bool:
        """Implicit-TLS port with ``ssl=false``: connect only, no exchange."""
        return self.implicit_tls and not self.ssl

    @property
    def needs_configuration(self) -> bool:
        return not self.ssl_disabled

    def tls_context(self) -> ssl.SSLContext:
        return build_tls_context(self.settings.tls)

    def open_transport(self) -> Transport:
        timeouts = self.settings.timeouts
        transport = Transport.open(self.endpoint, linger=timeouts.linger)
        self._cell.set(transport)
        transport.connect(connect_timeout=timeouts.connect, read_timeout=timeouts.read)
        if self.ssl:
            transport.wrap_tls(
                self.endpoint.address, context=self.tls_context(), auto_close=True,
            )
        return transport

    def check(self) -> str:
        transport = self.open_transport()
        if self.ssl_disabled:
            return CONNECTED_SSL_DISABLED
        return self.exchange(transport)

    def exchange(self, transport: Transport) -> str:
        """Protocol-specific conversation. The default only connects."""
        return CONNECTED_OVER_SSL if self.ssl else CONNECTED_SUCCESSFULLY
