"""IMAP / IMAPS check: capability greeting, optional STARTTLS, LOGIN, LOGOUT."""

from __future__ import annotations

from typing import ClassVar

from portcheck.core.check import CheckMeta, TcpPortCheck
from portcheck.core.starttls import StartTlsDialect, require_capability, upgrade
from portcheck.errors import ProtocolError, UnexpectedEof
from portcheck.models.types import AppProtocol
from portcheck.net.lines import LineChannel
from portcheck.net.transport import Transport

# Tags are unique per command within one session
TAG_STARTTLS = "AA"
TAG_LOGIN = "AB"
TAG_LOGOUT = "AC"

GREETING_PREFIX = "* OK ["

STARTTLS = StartTlsDialect(
    name="STARTTLS",
    command=f"{TAG_STARTTLS} STARTTLS",
    ok_prefix=f"{TAG_STARTTLS} OK ",
)


def logout(channel: LineChannel) -> None:
    channel.command(f"{TAG_LOGOUT} LOGOUT")
    channel.expect("LOGOUT response", "* BYE", f"{TAG_LOGOUT} OK LOGOUT")


def parse_capabilities(greeting: str) -> list[str]:
    """Capability tokens from ``* OK [CAPABILITY ...] ...``."""
    end = greeting.find("]")
    return greeting[len(GREETING_PREFIX):end].split()


class ImapCheck(TcpPortCheck):
    """Returns the text after the bracketed response code of the LOGIN reply."""

    meta: ClassVar[CheckMeta] = CheckMeta(
        name="imap",
        display_name="IMAP login",
        description="Logs in with LOGIN, upgrading with STARTTLS unless disabled",
        app_protocols=[AppProtocol.IMAP2, AppProtocol.SIMAP],
        implicit_tls=[AppProtocol.SIMAP],
    )

    supports_starttls: ClassVar[bool] = True

    def configure(self) -> None:
        self.username = self.parameters.require("username")
        self.password = self.parameters.require("password")

    def exchange(self, transport: Transport) -> str:
        channel = LineChannel(transport, buffered=not self.starttls)
        line = channel.read_line("capabilities")
        if line is None:
            raise UnexpectedEof("capabilities")
        if not line.startswith(GREETING_PREFIX) or "]" not in line:
            raise ProtocolError("capabilities", line)

        if self.starttls:
            capabilities = parse_capabilities(line)
            require_capability(
                "STARTTLS" in capabilities,
                channel,
                STARTTLS,
                logout=logout,
                advertised=" ".join(capabilities),
            )
            channel = upgrade(
                channel,
                STARTTLS,
                server_name=self.endpoint.address,
                context=self.tls_context(),
            )

        channel.command(
            f'{TAG_LOGIN} LOGIN {self.username} "{self.password}"',
            log_as=f"{TAG_LOGIN} LOGIN {self.username} ****",
        )
        line = channel.read_line("LOGIN response")
        if line is None:
            raise UnexpectedEof("LOGIN response")
        if not line.startswith(f"{TAG_LOGIN} OK [") or "]" not in line:
            raise ProtocolError("LOGIN response", line)
        result = line[line.index("]") + 1:].strip()

        logout(channel)
        return result
