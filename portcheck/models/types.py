"""Domain-specific types: endpoints, protocols, check parameters."""

from __future__ import annotations

import ipaddress
from collections.abc import Iterator, Mapping
from enum import StrEnum
from urllib.parse import parse_qsl

from pydantic import BaseModel, ConfigDict, Field

from portcheck.errors import ConfigurationError

# === Protocols ===

class NetProtocol(StrEnum):
    TCP = "tcp"
    UDP = "udp"


class AppProtocol(StrEnum):
    """Application-protocol hints understood by the check factory."""

    FTP = "FTP"
    HTTPS = "HTTPS"
    IMAP2 = "IMAP2"
    SIMAP = "SIMAP"
    MYSQL = "MySQL"
    POP3 = "POP3"
    SPOP3 = "SPOP3"
    POSTGRESQL = "PostgreSQL"
    SMTP = "SMTP"
    SUBMISSION = "submission"
    SMTPS = "SMTPS"
    SSH = "SSH"
    AOSERV_DAEMON_SSL = "aoserv-daemon-ssl"
    AOSERV_MASTER_SSL = "aoserv-master-ssl"

    @classmethod
    def lookup(cls, name: str | None) -> AppProtocol | None:
        """Case-insensitive lookup; None for unknown or empty hints."""
        if not name:
            return None
        wanted = name.strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        return None


# === Endpoints ===

class Endpoint(BaseModel):
    """Immutable (address, port, protocol) triple a check is bound to."""

    model_config = ConfigDict(frozen=True)

    address: str
    port: int = Field(ge=1, le=65535)
    protocol: NetProtocol = NetProtocol.TCP

    @classmethod
    def tcp(cls, address: str, port: int) -> Endpoint:
        return cls(address=address, port=port, protocol=NetProtocol.TCP)

    @classmethod
    def udp(cls, address: str, port: int) -> Endpoint:
        return cls(address=address, port=port, protocol=NetProtocol.UDP)

    @property
    def is_loopback(self) -> bool:
        if self.address.lower() == "localhost":
            return True
        try:
            return ipaddress.ip_address(self.address).is_loopback
        except ValueError:
            return False

    @property
    def bracketed_address(self) -> str:
        """Address usable in URLs: IPv6 literals are wrapped in brackets."""
        if ":" in self.address and not self.address.startswith("["):
            return f"[{self.address}]"
        return self.address

    @property
    def label(self) -> str:
        return f"{self.bracketed_address}:{self.port}/{self.protocol}"

    def __str__(self) -> str:
        return self.label


# === Parameters ===

class CheckParameters(Mapping[str, str]):
    """Read-only name -> value lookup of per-service monitoring parameters."""

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(values or {})

    @classmethod
    def parse(cls, query: str) -> CheckParameters:
        """Build from a URL query string such as ``username=a&password=b``."""
        return cls(dict(parse_qsl(query.lstrip("?"), keep_blank_values=True)))

    def __getitem__(self, name: str) -> str:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        # Values may hold credentials
        return f"CheckParameters({sorted(self._values)})"

    def get_str(self, name: str) -> str | None:
        """Value of *name*, with an empty string treated as absent."""
        value = self._values.get(name)
        return value or None

    def require(self, name: str) -> str:
        value = self.get_str(name)
        if value is None:
            raise ConfigurationError(f"monitoring parameters do not include {name!r}")
        return value

    def is_true(self, name: str) -> bool:
        return (self._values.get(name) or "").lower() == "true"

    def is_false(self, name: str) -> bool:
        return (self._values.get(name) or "").lower() == "false"
