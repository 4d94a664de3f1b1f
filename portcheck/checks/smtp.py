"""SMTP / submission / SMTPS check: delivers one small message end to end."""

from __future__ import annotations

import base64
import socket
from typing import ClassVar

from portcheck.core.check import CheckMeta, TcpPortCheck
from portcheck.core.starttls import StartTlsDialect, require_capability, upgrade
from portcheck.errors import ConfigurationError, ProtocolError, UnexpectedEof
from portcheck.models.types import AppProtocol
from portcheck.net.lines import LineChannel
from portcheck.net.transport import Transport

STARTTLS = StartTlsDialect(name="STARTTLS", command="STARTTLS", ok_prefix="220 2.0.0 ")

SUBJECT = "SMTP monitoring message"
BODY = "This message is generated for SMTP port monitoring."


def quit_session(channel: LineChannel) -> None:
    channel.command("QUIT")
    channel.expect("QUIT response", "221 2.0.0 ")


def read_ehlo(channel: LineChannel) -> list[str]:
    """Collect the EHLO reply: ``250-`` continuations up to the final ``250 ``."""
    extensions: list[str] = []
    while True:
        line = channel.read_line("EHLO response")
        if line is None:
            raise UnexpectedEof("EHLO response")
        if line.startswith("250-"):
            extensions.append(line[4:])
        elif line.startswith("250 "):
            extensions.append(line[4:])
            return extensions
        else:
            raise ProtocolError("EHLO response", line)


def auth_plain_token(username: str, password: str) -> str:
    """RFC 4616 ``\\0user\\0pass``, base64 encoded."""
    message = f"\0{username}\0{password}".encode()
    return base64.b64encode(message).decode("ascii")


class SmtpCheck(TcpPortCheck):
    """Sends a monitoring message from ``from`` to ``recipient``.

    ESMTP is assumed. ``username``/``password`` switch on AUTH PLAIN and must
    be given together. Returns the text of the ``250 2.0.0`` reply to the
    message.
    """

    meta: ClassVar[CheckMeta] = CheckMeta(
        name="smtp",
        display_name="SMTP delivery",
        description="EHLO, optional STARTTLS and AUTH PLAIN, then MAIL/RCPT/DATA",
        app_protocols=[AppProtocol.SMTP, AppProtocol.SUBMISSION, AppProtocol.SMTPS],
        implicit_tls=[AppProtocol.SMTPS],
    )

    supports_starttls: ClassVar[bool] = True

    def configure(self) -> None:
        self.mail_from = self.parameters.require("from")
        self.recipient = self.parameters.require("recipient")
        self.username = self.parameters.get_str("username")
        self.password = self.parameters.get_str("password")
        if (self.username is None) != (self.password is None):
            raise ConfigurationError(
                "monitoring parameters must include either both username and password or neither"
            )
        # NUL separates the fields of the AUTH PLAIN message
        if self.username is not None and "\0" in self.username:
            raise ConfigurationError("monitoring parameters contain an illegal null in username")
        if self.password is not None and "\0" in self.password:
            raise ConfigurationError("monitoring parameters contain an illegal null in password")

    def ehlo_hostname(self) -> str:
        return self.settings.smtp.ehlo_hostname or socket.getfqdn()

    def exchange(self, transport: Transport) -> str:
        channel = LineChannel(transport, buffered=not self.starttls)
        channel.expect("status line", "220 ")

        channel.command(f"EHLO {self.ehlo_hostname()}")
        extensions = read_ehlo(channel)

        if self.starttls:
            require_capability(
                "STARTTLS" in extensions,
                channel,
                STARTTLS,
                logout=quit_session,
                advertised=extensions,
            )
            channel = upgrade(
                channel,
                STARTTLS,
                server_name=self.endpoint.address,
                context=self.tls_context(),
            )

        if self.username is not None:
            channel.command(
                f"AUTH PLAIN {auth_plain_token(self.username, self.password)}",
                log_as="AUTH PLAIN ****",
            )
            channel.expect("AUTH PLAIN response", "235 2.0.0 ", "235 2.7.0 ")

        channel.command(f"MAIL From:{self.mail_from}")
        channel.expect("MAIL From response", "250 2.1.0 ")

        channel.command(f"RCPT To:{self.recipient}")
        channel.expect("RCPT To response", "250 2.1.5 ")

        channel.command("DATA")
        channel.expect("DATA response", "354 ")

        channel.write_line(f"To: {self.recipient}")
        channel.write_line(f"From: {self.mail_from}")
        channel.write_line(f"Subject: {SUBJECT}")
        channel.write_line("")
        channel.write_line(BODY)
        channel.write_line(".")
        channel.flush()
        result = channel.expect("message response", "250 2.0.0 ")[len("250 2.0.0 "):]

        quit_session(channel)
        return result
