"""Line-oriented reader/writer over a transport.

Before a STARTTLS upgrade the channel must be unbuffered: every byte it pulls
off the socket belongs to a line it returns, so the TLS handshake that follows
the upgrade reply is left untouched in the kernel buffer. Once an upgrade is
ruled out (or done) a buffered channel reads in blocks.
"""

from __future__ import annotations

import logging
from typing import Protocol

from portcheck.errors import ProtocolError, UnexpectedEof

logger = logging.getLogger(__name__)

CRLF = "\r\n"
MAX_LINE_LENGTH = 64 * 1024
BLOCK_SIZE = 4096


class ByteStream(Protocol):
    """What a channel needs from a transport."""

    def recv(self, size: int) -> bytes: ...

    def sendall(self, data: bytes) -> None: ...


class LineChannel:
    """CRLF line reader/writer; buffering is fixed for the channel's life."""

    def __init__(
        self,
        stream: ByteStream,
        *,
        buffered: bool,
        encoding: str = "utf-8",
    ) -> None:
        self.stream = stream
        self.buffered = buffered
        self.encoding = encoding
        self._rbuf = bytearray()
        self._wbuf = bytearray()

    @property
    def pending(self) -> int:
        """Bytes received from the peer but not yet returned as a line."""
        return len(self._rbuf)

    def _fill(self) -> bool:
        data = self.stream.recv(BLOCK_SIZE if self.buffered else 1)
        if not data:
            return False
        self._rbuf += data
        return True

    def read_line(self, step: str = "line") -> str | None:
        """Next line without its terminator, or None on a clean EOF.

        LF ends a line and one CR right before it is dropped. EOF after part
        of a line has arrived raises :class:`UnexpectedEof`.
        """
        while True:
            end = self._rbuf.find(b"\n")
            if end >= 0:
                raw = bytes(self._rbuf[:end])
                del self._rbuf[: end + 1]
                break
            if len(self._rbuf) > MAX_LINE_LENGTH:
                raise ProtocolError(step, f"<line longer than {MAX_LINE_LENGTH} bytes>")
            if not self._fill():
                if not self._rbuf:
                    return None
                raise UnexpectedEof(step)
        if raw.endswith(b"\r"):
            raw = raw[:-1]
        line = raw.decode(self.encoding, errors="replace")
        logger.debug("S: %s", line)
        return line

    def expect(self, step: str, *prefixes: str) -> str:
        """Read one line that must start with one of *prefixes*."""
        line = self.read_line(step)
        if line is None:
            raise UnexpectedEof(step)
        if not line.startswith(prefixes):
            raise ProtocolError(step, line)
        return line

    def write(self, text: str) -> None:
        data = text.encode(self.encoding)
        if self.buffered:
            self._wbuf += data
        else:
            self.stream.sendall(data)

    def write_line(self, text: str) -> None:
        self.write(text + CRLF)

    def flush(self) -> None:
        if self._wbuf:
            data = bytes(self._wbuf)
            self._wbuf.clear()
            self.stream.sendall(data)

    def command(self, text: str, *, log_as: str | None = None) -> None:
        """Send one command line right away. *log_as* replaces secrets in logs."""
        logger.debug("C: %s", log_as if log_as is not None else text)
        self.write_line(text)
        self.flush()
