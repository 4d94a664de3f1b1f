"""portcheck: application-level checks for monitored network ports."""

from __future__ import annotations

__version__ = "1.0.0"

from portcheck.config import Settings  # noqa: E402
from portcheck.core.check import PortCheck  # noqa: E402
from portcheck.core.registry import CheckRegistry, get_port_check  # noqa: E402
from portcheck.core.runner import run_check  # noqa: E402
from portcheck.errors import PortCheckError  # noqa: E402
from portcheck.models import AppProtocol, CheckParameters, CheckResult, Endpoint  # noqa: E402

__all__ = [
    "AppProtocol",
    "CheckParameters",
    "CheckRegistry",
    "CheckResult",
    "Endpoint",
    "PortCheck",
    "PortCheckError",
    "Settings",
    "get_port_check",
    "run_check",
]
