"""UDP check: associate a datagram socket with the remote endpoint."""

from __future__ import annotations

from typing import ClassVar

from portcheck.core.check import CONNECTED_SUCCESSFULLY, CheckMeta, PortCheck
from portcheck.models.types import NetProtocol
from portcheck.net.transport import DatagramTransport


class UdpCheck(PortCheck):
    """Succeeds once the OS accepts the association; sends nothing."""

    meta: ClassVar[CheckMeta] = CheckMeta(
        name="udp",
        display_name="UDP associate",
        description="Binds an ephemeral UDP socket and connects it to the endpoint",
        net_protocol=NetProtocol.UDP,
    )

    def __init__(self, endpoint, parameters=None, **kwargs) -> None:
        super().__init__(endpoint, parameters, **kwargs)
        if endpoint.protocol != NetProtocol.UDP:
            raise ValueError(f"endpoint not UDP: {endpoint}")

    def check(self) -> str:
        transport = DatagramTransport.open(self.endpoint)
        self._cell.set(transport)
        transport.connect()
        return CONNECTED_SUCCESSFULLY
