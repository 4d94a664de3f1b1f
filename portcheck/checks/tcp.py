"""Generic TCP check: connect and disconnect, optionally over TLS."""

from __future__ import annotations

from typing import ClassVar

from portcheck.core.check import CheckMeta, TcpPortCheck
from portcheck.models.types import AppProtocol

_SSL_ONLY = [
    AppProtocol.HTTPS,
    AppProtocol.AOSERV_DAEMON_SSL,
    AppProtocol.AOSERV_MASTER_SSL,
]


class TcpCheck(TcpPortCheck):
    """Connect-only check.

    Plain TCP for unknown application protocols. For TLS-only services such
    as HTTPS the handshake is part of the connect, and the result says
    whether it ran or was disabled with ``ssl=false``.
    """

    meta: ClassVar[CheckMeta] = CheckMeta(
        name="tcp",
        display_name="TCP / SSL connect",
        description="Connects (TLS for SSL-only services) and disconnects",
        app_protocols=_SSL_ONLY,
        implicit_tls=_SSL_ONLY,
        fallback=True,
    )
