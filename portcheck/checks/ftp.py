"""FTP check: log in with the configured account and quit."""

from __future__ import annotations

from typing import ClassVar

from portcheck.core.check import CheckMeta, TcpPortCheck
from portcheck.errors import ProtocolError
from portcheck.models.types import AppProtocol
from portcheck.net.lines import LineChannel
from portcheck.net.transport import Transport


class FtpCheck(TcpPortCheck):
    """``220`` greeting, ``USER``/``331``, ``PASS``/``230``, ``QUIT``/``221``.

    Returns the text of the ``230`` reply. After ``QUIT`` every line up to
    EOF must be a ``221`` reply.
    """

    meta: ClassVar[CheckMeta] = CheckMeta(
        name="ftp",
        display_name="FTP login",
        description="Logs in with username/password and quits",
        app_protocols=[AppProtocol.FTP],
    )

    def configure(self) -> None:
        self.username = self.parameters.require("username")
        self.password = self.parameters.require("password")

    def exchange(self, transport: Transport) -> str:
        channel = LineChannel(transport, buffered=True)
        channel.expect("status line", "220 ")

        channel.command(f"USER {self.username}")
        channel.expect("USER response", "331 ")

        channel.command(f"PASS {self.password}", log_as="PASS ****")
        result = channel.expect("PASS response", "230 ")[4:]

        channel.command("QUIT")
        channel.expect("QUIT response", "221 ")
        while (line := channel.read_line("QUIT response")) is not None:
            if not line.startswith("221 "):
                raise ProtocolError("QUIT response", line)
        return result
