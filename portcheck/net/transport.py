"""Socket transports: TCP with in-place TLS wrapping, and UDP association.

A :class:`Transport` owns exactly one socket. Wrapping it in TLS swaps the
socket in place: the plaintext socket object is detached by :mod:`ssl` and
cannot be used again, while the Transport keeps its identity so whoever holds
it (including a concurrent ``cancel()``) always closes the live socket.
"""

from __future__ import annotations

import contextlib
import logging
import socket
import ssl
import struct
import threading

from portcheck.config import TlsSettings
from portcheck.errors import ConfigurationError, ConnectError, TlsError
from portcheck.models.types import Endpoint, NetProtocol

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 15.0
DEFAULT_READ_TIMEOUT = 60.0
DEFAULT_LINGER = 15


def build_tls_context(settings: TlsSettings | None = None) -> ssl.SSLContext:
    """Client TLS context: chain validation on, hostname check off by default."""
    settings = settings or TlsSettings()
    try:
        ctx = ssl.create_default_context(cafile=settings.cafile or None)
    except (OSError, ssl.SSLError) as exc:
        msg = f"Unable to load CA file {settings.cafile!r}: {exc}"
        raise ConfigurationError(msg) from exc
    ctx.check_hostname = settings.verify and settings.check_hostname
    if not settings.verify:
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


def _resolve(endpoint: Endpoint, sock_type: int) -> tuple:
    try:
        infos = socket.getaddrinfo(endpoint.address, endpoint.port, type=sock_type)
    except socket.gaierror as exc:
        msg = f"Unable to resolve {endpoint.address}: {exc}"
        raise ConnectError(msg) from exc
    if not infos:
        raise ConnectError(f"No addresses for {endpoint.address}")
    return infos[0]


class Transport:
    """A connected TCP socket, optionally upgraded to TLS in place."""

    def __init__(self, sock: socket.socket, endpoint: Endpoint) -> None:
        self.endpoint = endpoint
        self._sock = sock
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def open(cls, endpoint: Endpoint, *, linger: int = DEFAULT_LINGER) -> Transport:
        """Create the socket with keep-alive and linger set, not yet connected."""
        if endpoint.protocol != NetProtocol.TCP:
            raise ValueError(f"endpoint not TCP: {endpoint}")
        family, sock_type, proto, _, _ = _resolve(endpoint, socket.SOCK_STREAM)
        sock = socket.socket(family, sock_type, proto)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, linger))
        except OSError as exc:
            sock.close()
            raise ConnectError(f"Unable to configure socket: {exc}") from exc
        return cls(sock, endpoint)

    def connect(
        self,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
    ) -> Transport:
        """Connect within *connect_timeout*, then bound every later I/O by *read_timeout*."""
        _, _, _, _, sockaddr = _resolve(self.endpoint, socket.SOCK_STREAM)
        sock = self._live_socket()
        try:
            sock.settimeout(connect_timeout)
            sock.connect(sockaddr)
            sock.settimeout(read_timeout)
        except OSError as exc:
            closed = self._closed
            self.close()
            if closed:
                raise ConnectError(f"Connection to {self.endpoint} closed") from exc
            raise ConnectError(f"Unable to connect to {self.endpoint}: {exc}") from exc
        logger.debug("Connected to %s", self.endpoint)
        return self

    def wrap_tls(
        self,
        server_name: str | None = None,
        *,
        context: ssl.SSLContext | None = None,
        auto_close: bool = True,
    ) -> Transport:
        """Run a TLS client handshake over the already-connected socket.

        Never reconnects. On handshake failure the socket is closed when
        *auto_close* is true; otherwise closing stays with the owner.
        """
        context = context or build_tls_context()
        server_name = server_name or self.endpoint.address
        with self._lock:
            if self._closed:
                raise ConnectError(f"Connection to {self.endpoint} closed")
            try:
                tls_sock = context.wrap_socket(
                    self._sock,
                    server_hostname=server_name,
                    do_handshake_on_connect=False,
                )
            except (OSError, ValueError) as exc:
                raise TlsError(f"Unable to start TLS with {self.endpoint}: {exc}") from exc
            self._sock = tls_sock
        try:
            tls_sock.do_handshake()
        except (OSError, ValueError) as exc:
            closed = self._closed
            if auto_close:
                self.close()
            if closed:
                raise ConnectError(f"Connection to {self.endpoint} closed") from exc
            raise TlsError(f"TLS handshake with {self.endpoint} failed: {exc}") from exc
        logger.debug("TLS established with %s (%s)", self.endpoint, tls_sock.version())
        return self

    @property
    def is_tls(self) -> bool:
        return isinstance(self._sock, ssl.SSLSocket)

    @property
    def tls_version(self) -> str | None:
        if isinstance(self._sock, ssl.SSLSocket):
            return self._sock.version()
        return None

    @property
    def closed(self) -> bool:
        return self._closed

    def _live_socket(self) -> socket.socket:
        if self._closed:
            raise ConnectError(f"Connection to {self.endpoint} closed")
        return self._sock

    def _io_error(self, exc: OSError) -> ConnectError | TlsError:
        if self._closed:
            return ConnectError(f"Connection to {self.endpoint} closed")
        if isinstance(exc, ssl.SSLError):
            return TlsError(f"TLS error with {self.endpoint}: {exc}")
        if isinstance(exc, TimeoutError):
            return ConnectError(f"Timed out talking to {self.endpoint}")
        return ConnectError(f"I/O error with {self.endpoint}: {exc}")

    def recv(self, size: int) -> bytes:
        sock = self._live_socket()
        try:
            data = sock.recv(size)
        except OSError as exc:
            raise self._io_error(exc) from exc
        if not data and self._closed:
            raise ConnectError(f"Connection to {self.endpoint} closed")
        return data

    def sendall(self, data: bytes) -> None:
        sock = self._live_socket()
        try:
            sock.sendall(data)
        except OSError as exc:
            raise self._io_error(exc) from exc

    def close(self) -> None:
        """Idempotent; safe to call while another thread is blocked reading."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            sock = self._sock
        # shutdown() wakes a recv() blocked in another thread, close() alone may not
        with contextlib.suppress(OSError):
            sock.shutdown(socket.SHUT_RDWR)
        try:
            sock.close()
        except OSError:
            logger.warning("Error closing connection to %s", self.endpoint, exc_info=True)

    def __enter__(self) -> Transport:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else ("tls" if self.is_tls else "plain")
        return f"<Transport {self.endpoint} {state}>"


def connect(
    endpoint: Endpoint,
    *,
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    read_timeout: float = DEFAULT_READ_TIMEOUT,
    linger: int = DEFAULT_LINGER,
) -> Transport:
    """Open and connect a TCP transport in one step."""
    transport = Transport.open(endpoint, linger=linger)
    return transport.connect(connect_timeout=connect_timeout, read_timeout=read_timeout)


class DatagramTransport:
    """A UDP socket associated with one remote address.

    UDP is connectionless: a successful association proves only that the
    local stack accepted the remote address, not that anything listens there.
    """

    def __init__(self, sock: socket.socket, endpoint: Endpoint) -> None:
        self.endpoint = endpoint
        self._sock = sock
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def open(cls, endpoint: Endpoint) -> DatagramTransport:
        if endpoint.protocol != NetProtocol.UDP:
            raise ValueError(f"endpoint not UDP: {endpoint}")
        family, sock_type, proto, _, _ = _resolve(endpoint, socket.SOCK_DGRAM)
        return cls(socket.socket(family, sock_type, proto), endpoint)

    def connect(self) -> DatagramTransport:
        _, _, _, _, sockaddr = _resolve(self.endpoint, socket.SOCK_DGRAM)
        if self._closed:
            raise ConnectError(f"Connection to {self.endpoint} closed")
        try:
            self._sock.connect(sockaddr)
        except OSError as exc:
            self.close()
            raise ConnectError(f"Unable to associate with {self.endpoint}: {exc}") from exc
        return self

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._sock.close()
        except OSError:
            logger.warning("Error closing datagram socket for %s", self.endpoint, exc_info=True)
