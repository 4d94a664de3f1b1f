"""Tests for the SMTP/submission/SMTPS delivery check."""

import base64

import pytest

from portcheck.checks.smtp import BODY, SUBJECT, SmtpCheck, auth_plain_token
from portcheck.errors import ProtocolError, UnsupportedUpgrade
from portcheck.models.types import AppProtocol, CheckParameters

ADDRESSES = {"from": "monitor@example.com", "recipient": "postmaster@example.com"}


def _check(server, settings, app_protocol=AppProtocol.SMTP, **extra):
    params = CheckParameters({**ADDRESSES, **extra})
    return SmtpCheck(server.endpoint, params, app_protocol=app_protocol, settings=settings)


def _deliver(s, *, accepted="250 2.0.0 accepted"):
    s.recv_line()
    s.send("250 2.1.0 ok")
    s.recv_line()
    s.send("250 2.1.5 ok")
    s.recv_line()
    s.send("354 go ahead")
    s.recv_until(".")
    s.send(accepted)
    s.recv_line()
    s.send("221 2.0.0 bye")


class TestAuthPlainToken:
    def test_encoding(self):
        token = auth_plain_token("user", "päss")
        assert base64.b64decode(token) == "\0user\0päss".encode()


class TestSmtpCheck:
    def test_starttls_delivery(self, stub_server, settings, server_tls_context):
        def script(s):
            s.send("220 ok")
            s.recv_line()
            s.send("250-STARTTLS", "250 OK")
            s.recv_line()
            s.send("220 2.0.0 Go")
            s.starttls(server_tls_context)
            _deliver(s)

        server = stub_server(script)
        assert _check(server, settings).run() == "accepted"
        server.join()
        assert server.error is None
        assert server.received == [
            "EHLO monitor.example.com",
            "STARTTLS",
            "MAIL From:monitor@example.com",
            "RCPT To:postmaster@example.com",
            "DATA",
            "To: postmaster@example.com",
            "From: monitor@example.com",
            f"Subject: {SUBJECT}",
            "",
            BODY,
            ".",
            "QUIT",
        ]

    def test_auth_plain_over_implicit_tls(self, stub_server, settings, server_tls_context):
        def script(s):
            s.starttls(server_tls_context)
            s.send("220 mail.example.com ESMTP")
            s.recv_line()
            s.send("250-mail.example.com", "250-AUTH PLAIN LOGIN", "250 8BITMIME")
            s.recv_line()
            s.send("235 2.7.0 Authentication successful")
            _deliver(s, accepted="250 2.0.0 Ok: queued as 4F2A1")

        server = stub_server(script)
        check = _check(server, settings, AppProtocol.SMTPS, username="mon", password="pw")
        assert check.run() == "Ok: queued as 4F2A1"
        server.join()
        assert server.received[1] == f"AUTH PLAIN {auth_plain_token('mon', 'pw')}"

    def test_plain_without_starttls(self, stub_server, settings):
        def script(s):
            s.send("220 ok")
            s.recv_line()
            s.send("250 mail.example.com")
            _deliver(s)

        server = stub_server(script)
        assert _check(server, settings, AppProtocol.SUBMISSION, starttls="false").run() == (
            "accepted"
        )
        server.join()
        assert "STARTTLS" not in server.received

    def test_starttls_not_offered(self, stub_server, settings):
        def script(s):
            s.send("220 ok")
            s.recv_line()
            s.send("250-mail.example.com", "250 SIZE 10240000")
            s.recv_line()
            s.send("221 2.0.0 bye")

        server = stub_server(script)
        with pytest.raises(UnsupportedUpgrade):
            _check(server, settings).run()
        server.join()
        assert server.received == ["EHLO monitor.example.com", "QUIT"]

    def test_ehlo_rejected(self, stub_server, settings):
        def script(s):
            s.send("220 ok")
            s.recv_line()
            s.send("502 5.5.2 Error: command not recognized")

        with pytest.raises(ProtocolError) as exc_info:
            _check(stub_server(script), settings).run()
        assert exc_info.value.step == "EHLO response"

    def test_recipient_rejected(self, stub_server, settings):
        def script(s):
            s.send("220 ok")
            s.recv_line()
            s.send("250 mail.example.com")
            s.recv_line()
            s.send("250 2.1.0 ok")
            s.recv_line()
            s.send("550 5.1.1 User unknown")

        with pytest.raises(ProtocolError) as exc_info:
            _check(stub_server(script), settings, starttls="false").run()
        assert exc_info.value.line == "550 5.1.1 User unknown"

    def test_auth_rejected(self, stub_server, settings):
        def script(s):
            s.send("220 ok")
            s.recv_line()
            s.send("250 mail.example.com")
            s.recv_line()
            s.send("535 5.7.8 Authentication failed")

        with pytest.raises(ProtocolError):
            _check(
                stub_server(script), settings,
                starttls="false", username="mon", password="bad",
            ).run()

    def test_implicit_tls_disabled(self, stub_server, settings):
        server = stub_server(lambda s: s.recv_line())
        check = SmtpCheck(
            server.endpoint, CheckParameters({"ssl": "false"}),
            app_protocol=AppProtocol.SMTPS, settings=settings,
        )
        assert check.run() == "Connected successfully (SSL disabled)"
