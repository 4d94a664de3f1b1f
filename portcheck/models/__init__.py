"""Data models: contracts shared by checks, the runner and the CLI."""

from portcheck.models.result import CheckResult, CheckStatus
from portcheck.models.types import AppProtocol, CheckParameters, Endpoint, NetProtocol

__all__ = [
    "AppProtocol",
    "CheckParameters",
    "CheckResult",
    "CheckStatus",
    "Endpoint",
    "NetProtocol",
]
