"""Tests for Transport, DatagramTransport and the client TLS context."""

import socket
import ssl
import struct
import threading
import time

import pytest

from portcheck.config import TlsSettings
from portcheck.errors import ConfigurationError, ConnectError, TlsError
from portcheck.models.types import Endpoint
from portcheck.net.transport import DatagramTransport, Transport, build_tls_context, connect


def _insecure() -> ssl.SSLContext:
    return build_tls_context(TlsSettings(verify=False))


def _read_line(transport: Transport) -> bytes:
    data = b""
    while not data.endswith(b"\n"):
        chunk = transport.recv(64)
        if not chunk:
            break
        data += chunk
    return data


class TestBuildTlsContext:
    def test_defaults_verify_chain_not_hostname(self):
        ctx = build_tls_context()
        assert ctx.verify_mode == ssl.CERT_REQUIRED
        assert ctx.check_hostname is False

    def test_hostname_check_opt_in(self):
        ctx = build_tls_context(TlsSettings(check_hostname=True))
        assert ctx.check_hostname is True

    def test_verify_off(self):
        ctx = build_tls_context(TlsSettings(verify=False, check_hostname=True))
        assert ctx.verify_mode == ssl.CERT_NONE
        assert ctx.check_hostname is False

    def test_missing_cafile(self, tmp_path):
        with pytest.raises(ConfigurationError, match="CA file"):
            build_tls_context(TlsSettings(cafile=str(tmp_path / "missing.pem")))


class TestConnect:
    def test_connect_and_exchange(self, stub_server):
        def script(s):
            s.send("hello")
            s.recv_line()

        server = stub_server(script)
        with connect(server.endpoint, connect_timeout=5, read_timeout=5) as transport:
            assert _read_line(transport) == b"hello\r\n"
            transport.sendall(b"bye\n")
            assert not transport.is_tls
            assert transport.tls_version is None
        server.join()
        assert server.received == ["bye"]
        assert transport.closed

    def test_socket_options(self, stub_server):
        server = stub_server(lambda s: s.recv_line())
        transport = Transport.open(server.endpoint, linger=7)
        try:
            transport.connect(connect_timeout=5, read_timeout=2.5)
            sock = transport._live_socket()
            assert sock.getsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE) != 0
            linger = sock.getsockopt(socket.SOL_SOCKET, socket.SO_LINGER, 8)
            assert struct.unpack("ii", linger) == (1, 7)
            assert sock.gettimeout() == 2.5
        finally:
            transport.close()

    def test_refused(self, closed_port):
        endpoint = Endpoint.tcp("127.0.0.1", closed_port)
        transport = Transport.open(endpoint)
        with pytest.raises(ConnectError, match="Unable to connect"):
            transport.connect(connect_timeout=5)
        assert transport.closed

    def test_open_rejects_udp(self):
        with pytest.raises(ValueError):
            Transport.open(Endpoint.udp("127.0.0.1", 53))

    def test_unresolvable(self):
        with pytest.raises(ConnectError, match="Unable to resolve"):
            Transport.open(Endpoint.tcp("no-such-host.invalid", 25))

    def test_read_timeout(self, stub_server):
        server = stub_server(lambda s: s.recv_line())
        transport = connect(server.endpoint, connect_timeout=5, read_timeout=0.2)
        try:
            with pytest.raises(ConnectError, match="Timed out"):
                transport.recv(1)
        finally:
            transport.close()


class TestClose:
    def test_idempotent(self, stub_server):
        server = stub_server(lambda s: s.recv_line())
        transport = connect(server.endpoint)
        transport.close()
        transport.close()
        assert transport.closed
        assert "closed" in repr(transport)

    def test_io_after_close(self, stub_server):
        server = stub_server(lambda s: s.recv_line())
        transport = connect(server.endpoint)
        transport.close()
        with pytest.raises(ConnectError, match="closed"):
            transport.recv(1)
        with pytest.raises(ConnectError, match="closed"):
            transport.sendall(b"x")

    def test_close_unblocks_reader(self, stub_server):
        server = stub_server(lambda s: s.recv_line())
        transport = connect(server.endpoint, read_timeout=30)
        closer = threading.Timer(0.2, transport.close)
        closer.start()
        start = time.monotonic()
        with pytest.raises(ConnectError):
            transport.recv(1)
        assert time.monotonic() - start < 5
        closer.join()


class TestWrapTls:
    def test_handshake(self, stub_server, server_tls_context):
        def script(s):
            s.starttls(server_tls_context)
            s.send("secure")
            s.recv_line()

        server = stub_server(script)
        with connect(server.endpoint) as transport:
            assert transport.wrap_tls(context=_insecure()) is transport
            assert transport.is_tls
            assert transport.tls_version is not None
            assert _read_line(transport) == b"secure\r\n"
            transport.sendall(b"done\n")
        server.join()
        assert server.received == ["done"]

    def test_failure_auto_close(self, stub_server):
        server = stub_server(lambda s: (s.send("220 not tls at all"), s.recv_line()))
        transport = connect(server.endpoint)
        with pytest.raises(TlsError):
            transport.wrap_tls(context=_insecure(), auto_close=True)
        assert transport.closed

    def test_failure_leaves_open_without_auto_close(self, stub_server):
        server = stub_server(lambda s: (s.send("220 not tls at all"), s.recv_line()))
        transport = connect(server.endpoint)
        try:
            with pytest.raises(TlsError):
                transport.wrap_tls(context=_insecure(), auto_close=False)
            assert not transport.closed
        finally:
            transport.close()

    def test_wrap_after_close(self, stub_server):
        server = stub_server(lambda s: s.recv_line())
        transport = connect(server.endpoint)
        transport.close()
        with pytest.raises(ConnectError):
            transport.wrap_tls(context=_insecure())


class TestDatagramTransport:
    def test_associate(self):
        transport = DatagramTransport.open(Endpoint.udp("127.0.0.1", 9)).connect()
        assert not transport.closed
        transport.close()
        transport.close()
        assert transport.closed

    def test_open_rejects_tcp(self):
        with pytest.raises(ValueError):
            DatagramTransport.open(Endpoint.tcp("127.0.0.1", 9))
