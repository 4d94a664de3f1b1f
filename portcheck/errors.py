"""Typed check failures.

Every failure a check can raise derives from :class:`PortCheckError` and is
fatal to that single invocation; the caller decides whether to run the check
again. The check fills in the endpoint context before the error leaves
``run()`` so callers can log or alert without extra bookkeeping.
"""

from __future__ import annotations

from typing import Any


class PortCheckError(Exception):
    """Base class for all check failures."""

    #: Short machine-friendly category, used by the runner and CLI.
    category: str = "error"

    def __init__(
        self,
        message: str,
        *,
        address: str | None = None,
        port: int | None = None,
        net_protocol: str | None = None,
        app_protocol: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.address = address
        self.port = port
        self.net_protocol = net_protocol
        self.app_protocol = app_protocol

    def with_context(
        self,
        *,
        address: str,
        port: int,
        net_protocol: str,
        app_protocol: str | None = None,
    ) -> PortCheckError:
        """Attach endpoint details unless already present. Returns self."""
        if self.address is None:
            self.address = address
            self.port = port
            self.net_protocol = net_protocol
        if self.app_protocol is None:
            self.app_protocol = app_protocol
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.__class__.__name__,
            "category": self.category,
            "message": self.message,
            "address": self.address,
            "port": self.port,
            "net_protocol": self.net_protocol,
            "app_protocol": self.app_protocol,
            "cause": str(self.__cause__) if self.__cause__ else None,
        }

    def log_format(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.address is not None:
            parts.append(f"endpoint={self.address}:{self.port}/{self.net_protocol}")
        if self.app_protocol:
            parts.append(f"app_protocol={self.app_protocol}")
        if self.__cause__ is not None:
            parts.append(f"cause={self.__cause__!r}")
        return " | ".join(parts)


class ConfigurationError(PortCheckError):
    """A required parameter is missing or invalid. Raised before connecting."""

    category = "configuration"


class ConnectError(PortCheckError):
    """Connect failed or timed out, or the connection failed mid-exchange."""

    category = "connect"


class TlsError(PortCheckError):
    """TLS handshake or upgrade failed."""

    category = "tls"


class UnsupportedUpgrade(TlsError):
    """STARTTLS was requested but the server does not offer or accept it."""


class ProtocolError(PortCheckError):
    """A response line did not match what the current step expects."""

    category = "protocol"

    def __init__(self, step: str, line: str, **kwargs: Any) -> None:
        super().__init__(f"Unexpected line reading {step}: {line}", **kwargs)
        self.step = step
        self.line = line

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["step"] = self.step
        data["line"] = self.line
        return data


class UnexpectedEof(PortCheckError):
    """The peer closed the stream in the middle of an exchange."""

    category = "eof"

    def __init__(self, step: str, **kwargs: Any) -> None:
        super().__init__(f"End of file reading {step}", **kwargs)
        self.step = step


class QueryError(PortCheckError):
    """Query check returned the wrong shape, or the data access failed."""

    category = "query"

    def __init__(self, message: str, *, query: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.query = query

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["query"] = self.query
        return data

    def log_format(self) -> str:
        text = super().log_format()
        if self.query is not None:
            text += f" | query={self.query}"
        return text
