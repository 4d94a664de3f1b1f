"""Check runner: watchdog timeout, outcome to CheckResult conversion."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor

from portcheck.core.check import PortCheck
from portcheck.errors import PortCheckError
from portcheck.models.result import CheckResult

logger = logging.getLogger(__name__)


def run_check(check: PortCheck, timeout: float | None = None) -> CheckResult:
    """Run *check* on the calling thread and never raise for check failures.

    With a *timeout*, a timer thread cancels the check once it elapses; the
    blocked I/O then fails and the result is reported as ``timeout``.
    """
    name = check.meta.name
    endpoint = str(check.endpoint)
    app_protocol = str(check.app_protocol) if check.app_protocol else None
    expired = threading.Event()

    def _expire() -> None:
        expired.set()
        check.cancel()

    timer = None
    if timeout is not None:
        timer = threading.Timer(timeout, _expire)
        timer.daemon = True
        timer.start()

    start = time.monotonic()
    try:
        message = check.run()
    except PortCheckError as exc:
        duration = time.monotonic() - start
        if expired.is_set():
            status, text = "timeout", f"Timed out after {timeout}s"
        elif check.cancelled:
            status, text = "cancelled", exc.message
        else:
            status, text = "error", exc.message
        logger.info("%s %s: %s", name, endpoint, exc.log_format())
        return CheckResult.fail(
            name,
            endpoint,
            text,
            status=status,
            app_protocol=app_protocol,
            error_type=type(exc).__name__,
            error=exc.to_dict(),
            duration=duration,
        )
    except Exception as exc:
        logger.exception("Check %s failed on %s", name, endpoint)
        return CheckResult.fail(
            name,
            endpoint,
            str(exc),
            app_protocol=app_protocol,
            error_type=type(exc).__name__,
            duration=time.monotonic() - start,
        )
    finally:
        if timer is not None:
            timer.cancel()

    duration = time.monotonic() - start
    logger.info("%s %s: %s (%.2fs)", name, endpoint, message, duration)
    return CheckResult.success(
        name, endpoint, message, app_protocol=app_protocol, duration=duration,
    )


def run_checks(
    checks: Iterable[PortCheck],
    timeout: float | None = None,
    max_workers: int = 8,
) -> list[CheckResult]:
    """Run several checks concurrently, one thread each. Results keep input order."""
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="portcheck") as pool:
        return list(pool.map(lambda check: run_check(check, timeout), checks))
