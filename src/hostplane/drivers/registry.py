"""Driver registry.

Loads the configured web-server and DNS drivers by name.  Built-in
drivers are ``apache``/``nginx`` and ``bind``/``powerdns``; custom
drivers are loaded via the ``ext:`` prefix.

Usage::

    from hostplane.drivers.registry import load_dns_driver, load_web_server_driver

    web = load_web_server_driver(context)
    dns = load_dns_driver(context)
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

from hostplane.core.errors import DriverError
from hostplane.drivers.base import DnsDriver, WebServerDriver

if TYPE_CHECKING:
    from hostplane.drivers.base import DriverContext

log = logging.getLogger(__name__)

# Maps config string → (module_path, class_name)
_BUILTIN_WEB_SERVERS: dict[str, tuple[str, str]] = {
    "apache": ("hostplane.drivers.apache", "ApacheDriver"),
    "nginx": ("hostplane.drivers.nginx", "NginxDriver"),
}

_BUILTIN_DNS: dict[str, tuple[str, str]] = {
    "bind": ("hostplane.drivers.bind", "BindDriver"),
    "powerdns": ("hostplane.drivers.powerdns", "PowerDnsDriver"),
}

_WEB_METHODS = (
    "create_virtual_host",
    "remove_virtual_host",
    "enable_ssl",
    "disable_ssl",
    "test_config",
    "reload",
)
_DNS_METHODS = (
    "create_zone",
    "remove_zone",
    "add_record",
    "remove_record",
    "list_records",
    "reload",
)


def load_web_server_driver(context: DriverContext) -> WebServerDriver:
    """Load the driver named by ``web_server.driver``.

    Raises
    ------
    DriverError
        If the driver cannot be loaded.

    """
    return _load(
        "web server",
        context.settings.web_server.driver,
        _BUILTIN_WEB_SERVERS,
        WebServerDriver,
        _WEB_METHODS,
        context,
    )


def load_dns_driver(context: DriverContext) -> DnsDriver:
    """Load the driver named by ``dns.driver``.

    Raises
    ------
    DriverError
        If the driver cannot be loaded.

    """
    return _load(
        "DNS",
        context.settings.dns.driver,
        _BUILTIN_DNS,
        DnsDriver,
        _DNS_METHODS,
        context,
    )


def _load(kind, name, builtins, base, required, context):
    if name in builtins:
        mod_path, cls_name = builtins[name]
        label = name
    elif name.startswith("ext:"):
        mod_path, _, cls_name = name[4:].rpartition(".")
        label = name
        if not mod_path:
            msg = (
                f"Invalid external {kind} driver '{name[4:]}': must be fully "
                "qualified (e.g. 'mypackage.module.ClassName')"
            )
            raise DriverError(msg)
    else:
        msg = (
            f"Unknown {kind} driver '{name}'; "
            f"built-in options: {sorted(builtins)}. "
            f"Use 'ext:mypackage.module.ClassName' for custom drivers."
        )
        raise DriverError(msg)

    try:
        module = importlib.import_module(mod_path)
        cls = getattr(module, cls_name)
    except (ImportError, AttributeError) as exc:
        msg = f"Failed to load {kind} driver '{label}': {exc}"
        raise DriverError(msg) from exc

    _validate_class(cls, base, required, f"{kind} driver '{label}'")
    driver = cls(context)
    log.info("Loaded %s driver: %s", kind, label)
    return driver


def _validate_class(cls: type, base: type, required: tuple[str, ...], label: str) -> None:
    """Verify that a driver class implements the contract."""
    if not (isinstance(cls, type) and issubclass(cls, base)):
        msg = f"{label} is not a subclass of {base.__name__}"
        raise DriverError(msg)

    for method_name in required:
        method = getattr(cls, method_name, None)
        if method is None or getattr(method, "__isabstractmethod__", False):
            msg = f"{label} does not implement '{method_name}()'"
            raise DriverError(msg)
