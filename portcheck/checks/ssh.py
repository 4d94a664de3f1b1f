"""SSH check: the server must open with an ``SSH-`` identification line."""

from __future__ import annotations

from typing import ClassVar

from portcheck.core.check import CheckMeta, TcpPortCheck
from portcheck.models.types import AppProtocol
from portcheck.net.lines import LineChannel
from portcheck.net.transport import Transport


class SshCheck(TcpPortCheck):
    meta: ClassVar[CheckMeta] = CheckMeta(
        name="ssh",
        display_name="SSH banner",
        description="Reads the identification line and checks the SSH- prefix",
        app_protocols=[AppProtocol.SSH],
    )

    def exchange(self, transport: Transport) -> str:
        channel = LineChannel(transport, buffered=True)
        return channel.expect("status line", "SSH-")
