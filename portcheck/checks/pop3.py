"""POP3 / POP3S check: optional STLS upgrade, then USER/PASS and QUIT."""

from __future__ import annotations

from typing import ClassVar

from portcheck.core.check import CheckMeta, TcpPortCheck
from portcheck.core.starttls import StartTlsDialect, upgrade
from portcheck.errors import ProtocolError, UnexpectedEof
from portcheck.models.types import AppProtocol
from portcheck.net.lines import LineChannel
from portcheck.net.transport import Transport

STLS = StartTlsDialect(
    name="STLS",
    command="STLS",
    ok_prefix="+OK ",
    refusal_is_unsupported=True,
)

# Another client holds the maildrop: the credentials were still accepted
LOCKED_MAILDROP = "-ERR [IN-USE] Unable to lock maildrop: Mailbox is locked by POP server"


def quit_session(channel: LineChannel) -> None:
    channel.command("QUIT")
    channel.expect("QUIT response", "+OK")


class Pop3Check(TcpPortCheck):
    meta: ClassVar[CheckMeta] = CheckMeta(
        name="pop3",
        display_name="POP3 login",
        description="Logs in with USER/PASS, upgrading with STLS unless disabled",
        app_protocols=[AppProtocol.POP3, AppProtocol.SPOP3],
        implicit_tls=[AppProtocol.SPOP3],
    )

    supports_starttls: ClassVar[bool] = True

    def configure(self) -> None:
        self.username = self.parameters.require("username")
        self.password = self.parameters.require("password")

    def exchange(self, transport: Transport) -> str:
        channel = LineChannel(transport, buffered=not self.starttls)
        channel.expect("status line", "+OK ")
        # POP3 has no capability list in the greeting, STLS is simply tried
        if self.starttls:
            channel = upgrade(
                channel,
                STLS,
                server_name=self.endpoint.address,
                context=self.tls_context(),
                logout=quit_session,
            )

        channel.command(f"USER {self.username}")
        channel.expect("USER response", "+OK ")

        channel.command(f"PASS {self.password}", log_as="PASS ****")
        line = channel.read_line("PASS response")
        if line is None:
            raise UnexpectedEof("PASS response")
        if line.startswith("+OK "):
            result = line[4:]
        elif line == LOCKED_MAILDROP:
            result = line[5:]
        else:
            raise ProtocolError("PASS response", line)

        quit_session(channel)
        return result
