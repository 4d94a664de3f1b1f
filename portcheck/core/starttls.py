"""Opportunistic TLS upgrade shared by the POP3, IMAP and SMTP checks.

The protocol check reads the greeting and decides whether the server offers
the upgrade; this module runs the rest: refuse cleanly when the capability is
missing, send the upgrade command, verify the reply, re-wrap the same socket
and hand back a fresh buffered channel.
"""

from __future__ import annotations

import logging
import ssl
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from portcheck.errors import ProtocolError, TlsError, UnexpectedEof, UnsupportedUpgrade
from portcheck.net.lines import LineChannel

logger = logging.getLogger(__name__)

Logout = Callable[[LineChannel], None]


@dataclass(frozen=True)
class StartTlsDialect:
    """How one protocol spells the upgrade."""

    name: str  # capability / command name shown in errors
    command: str
    ok_prefix: str
    # A refused command means "not supported" (POP3 has no capability list)
    refusal_is_unsupported: bool = False


def require_capability(
    supported: bool,
    channel: LineChannel,
    dialect: StartTlsDialect,
    *,
    logout: Logout,
    advertised: Any = None,
) -> None:
    """Log out and raise :class:`UnsupportedUpgrade` unless *supported*."""
    if supported:
        return
    logout(channel)
    raise UnsupportedUpgrade(f"Host does not support {dialect.name}: {advertised}")


def upgrade(
    channel: LineChannel,
    dialect: StartTlsDialect,
    *,
    server_name: str,
    context: ssl.SSLContext,
    logout: Logout | None = None,
) -> LineChannel:
    """Issue the upgrade command and re-wrap the channel's transport in TLS.

    *channel* must be unbuffered and hold no unread bytes: anything read past
    the upgrade reply would belong to the TLS handshake.
    """
    if channel.buffered:
        raise TlsError("STARTTLS requires an unbuffered channel")
    step = f"{dialect.name} response"
    channel.command(dialect.command)
    line = channel.read_line(step)
    if line is None:
        raise UnexpectedEof(step)
    if not line.startswith(dialect.ok_prefix):
        if dialect.refusal_is_unsupported:
            if logout is not None:
                logout(channel)
            raise UnsupportedUpgrade(f"Host refused {dialect.name}: {line}")
        raise ProtocolError(step, line)
    if channel.pending:
        raise TlsError(
            f"{channel.pending} bytes received ahead of the TLS handshake, "
            "upgrade would be corrupted"
        )
    transport = channel.stream
    transport.wrap_tls(server_name, context=context, auto_close=False)
    logger.debug("%s upgrade complete", dialect.name)
    return LineChannel(transport, buffered=True, encoding=channel.encoding)
