"""Check registry: auto-discovery, registration, endpoint to check resolution."""

from __future__ import annotations

import functools
import importlib
import inspect
import logging
import pkgutil

from portcheck.config import Settings
from portcheck.core.check import PortCheck
from portcheck.models.types import AppProtocol, CheckParameters, Endpoint, NetProtocol

logger = logging.getLogger(__name__)


class CheckRegistry:
    """Maps application protocols to the check classes that handle them."""

    def __init__(self) -> None:
        self._checks: dict[str, type[PortCheck]] = {}
        self._by_protocol: dict[AppProtocol, type[PortCheck]] = {}

    def register(self, check_cls: type[PortCheck]) -> None:
        meta = check_cls.meta
        self._checks[meta.name] = check_cls
        for app_protocol in meta.app_protocols:
            self._by_protocol[app_protocol] = check_cls

    def get(self, name: str) -> type[PortCheck] | None:
        return self._checks.get(name)

    def for_protocol(self, app_protocol: AppProtocol) -> type[PortCheck] | None:
        return self._by_protocol.get(app_protocol)

    def all(self) -> list[type[PortCheck]]:
        return list(self._checks.values())

    def protocols(self) -> dict[AppProtocol, type[PortCheck]]:
        return dict(self._by_protocol)

    @property
    def names(self) -> list[str]:
        return list(self._checks.keys())

    def discover(self, package_name: str = "portcheck.checks") -> int:
        """Auto-discover all checks under a package. Returns count found."""
        count = 0
        try:
            package = importlib.import_module(package_name)
        except ImportError:
            return 0

        for _importer, modname, ispkg in pkgutil.walk_packages(
            package.__path__, prefix=package.__name__ + "."
        ):
            if ispkg:
                continue
            try:
                module = importlib.import_module(modname)
            except ImportError:
                logger.warning("Skipping check module %s", modname, exc_info=True)
                continue

            for _name, obj in inspect.getmembers(module, inspect.isclass):
                if (
                    issubclass(obj, PortCheck)
                    and obj.__module__ == module.__name__
                    and "meta" in vars(obj)
                ):
                    self.register(obj)
                    count += 1
        return count

    def _first(self, predicate) -> type[PortCheck]:
        for check_cls in self._checks.values():
            if predicate(check_cls.meta):
                return check_cls
        raise LookupError("no matching check registered")

    def get_port_check(
        self,
        endpoint: Endpoint,
        app_protocol: AppProtocol | str | None = None,
        parameters: CheckParameters | None = None,
        settings: Settings | None = None,
    ) -> PortCheck:
        """Build the check for *endpoint*.

        UDP endpoints get the UDP check. TCP endpoints are looked up by
        application protocol; unknown protocols, and protocols a check
        excludes on loopback, get the fallback connect-only check.
        """
        if isinstance(app_protocol, str):
            app_protocol = AppProtocol.lookup(app_protocol)

        if endpoint.protocol == NetProtocol.UDP:
            check_cls = self._first(lambda meta: meta.net_protocol == NetProtocol.UDP)
        else:
            check_cls = self._by_protocol.get(app_protocol) if app_protocol else None
            if (
                check_cls is not None
                and endpoint.is_loopback
                and app_protocol in check_cls.meta.loopback_excluded
            ):
                check_cls = None
            if check_cls is None:
                check_cls = self._first(lambda meta: meta.fallback)

        logger.debug("Resolved %s (%s) to %s", endpoint, app_protocol, check_cls.meta.name)
        return check_cls(
            endpoint, parameters, app_protocol=app_protocol, settings=settings,
        )


@functools.cache
def default_registry() -> CheckRegistry:
    registry = CheckRegistry()
    registry.discover()
    return registry


def get_port_check(
    endpoint: Endpoint,
    app_protocol: AppProtocol | str | None = None,
    parameters: CheckParameters | None = None,
    settings: Settings | None = None,
) -> PortCheck:
    return default_registry().get_port_check(endpoint, app_protocol, parameters, settings)
