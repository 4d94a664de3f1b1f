"""Shared test fixtures: scripted stub servers and a throw-away TLS identity."""

from __future__ import annotations

import contextlib
import datetime
import ipaddress
import socket
import ssl
import threading
from collections.abc import Callable

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from portcheck.config import Settings, SmtpSettings, TimeoutSettings, TlsSettings
from portcheck.models.types import Endpoint

SERVER_TIMEOUT = 5.0


class StubSession:
    """Server side of one accepted connection, driven by a test script."""

    def __init__(self, conn: socket.socket) -> None:
        self.conn = conn
        self.received: list[str] = []

    def send(self, *lines: str) -> None:
        for line in lines:
            self.conn.sendall((line + "\r\n").encode())

    def recv_line(self) -> str | None:
        """Read one line byte by byte; None once the client has closed."""
        data = bytearray()
        while True:
            byte = self.conn.recv(1)
            if not byte:
                return None
            if byte == b"\n":
                break
            data += byte
        line = data.decode().removesuffix("\r")
        self.received.append(line)
        return line

    def recv_until(self, terminator: str) -> list[str]:
        lines = []
        while (line := self.recv_line()) is not None:
            lines.append(line)
            if line == terminator:
                break
        return lines

    def starttls(self, context: ssl.SSLContext) -> None:
        self.conn = context.wrap_socket(self.conn, server_side=True)

    def close(self) -> None:
        with contextlib.suppress(OSError):
            self.conn.close()


class StubServer:
    """Accepts one connection on 127.0.0.1 and runs *script* against it."""

    def __init__(self, script: Callable[[StubSession], None]) -> None:
        self.script = script
        self.listener = socket.create_server(("127.0.0.1", 0))
        self.listener.settimeout(SERVER_TIMEOUT)
        self.port = self.listener.getsockname()[1]
        self.session: StubSession | None = None
        self.error: Exception | None = None
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    def _serve(self) -> None:
        try:
            conn, _ = self.listener.accept()
        except OSError:
            return
        conn.settimeout(SERVER_TIMEOUT)
        self.session = StubSession(conn)
        try:
            self.script(self.session)
        except Exception as exc:
            self.error = exc
        finally:
            self.session.close()

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint.tcp("127.0.0.1", self.port)

    @property
    def received(self) -> list[str]:
        return self.session.received if self.session else []

    def join(self) -> None:
        self._thread.join(SERVER_TIMEOUT + 1)

    def close(self) -> None:
        with contextlib.suppress(OSError):
            self.listener.shutdown(socket.SHUT_RDWR)
        self.listener.close()
        self.join()


@pytest.fixture
def stub_server():
    """Factory: ``stub_server(script)`` starts a server; all are closed at teardown."""
    servers: list[StubServer] = []

    def start(script: Callable[[StubSession], None]) -> StubServer:
        server = StubServer(script)
        servers.append(server)
        return server

    yield start
    for server in servers:
        server.close()


@pytest.fixture(scope="session")
def server_tls_context(tmp_path_factory) -> ssl.SSLContext:
    """Server-side context with a self-signed certificate for 127.0.0.1."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    now = datetime.datetime.now(datetime.UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
            ]),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )
    directory = tmp_path_factory.mktemp("tls")
    cert_path = directory / "cert.pem"
    key_path = directory / "key.pem"
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ))
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ctx.load_cert_chain(cert_path, key_path)
    return ctx


@pytest.fixture
def settings() -> Settings:
    """Client settings: short timeouts, self-signed certificates accepted."""
    return Settings(
        timeouts=TimeoutSettings(connect=5.0, read=5.0, linger=1),
        tls=TlsSettings(verify=False),
        smtp=SmtpSettings(ehlo_hostname="monitor.example.com"),
    )


@pytest.fixture
def closed_port() -> int:
    """A local TCP port with nothing listening on it."""
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
