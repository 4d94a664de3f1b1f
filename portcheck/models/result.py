"""Result model: the outcome envelope of one check invocation."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel

CheckStatus = Literal["success", "error", "timeout", "cancelled"]


class CheckResult(BaseModel):
    """Outcome of running a single check against a single endpoint."""

    check: str
    endpoint: str
    app_protocol: str | None = None
    status: CheckStatus = "success"
    message: str = ""
    error_type: str | None = None
    error: dict[str, Any] | None = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @classmethod
    def success(cls, check: str, endpoint: str, message: str, **kwargs: Any) -> CheckResult:
        return cls(check=check, endpoint=endpoint, status="success", message=message, **kwargs)

    @classmethod
    def fail(
        cls,
        check: str,
        endpoint: str,
        message: str,
        *,
        status: CheckStatus = "error",
        **kwargs: Any,
    ) -> CheckResult:
        return cls(check=check, endpoint=endpoint, status=status, message=message, **kwargs)
