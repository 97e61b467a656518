"""Transport registry.

Loads the transport named by ``ssl.acme.transport``: ``acmeow``,
``certbot``, ``self_signed``, or ``ext:package.module.ClassName``.
"""

from __future__ import annotations

import importlib
import logging
from typing import TYPE_CHECKING

from hostplane.acme.base import AcmeTransport
from hostplane.core.errors import AcmeError

if TYPE_CHECKING:
    from hostplane.config.settings import AcmeSettings
    from hostplane.core.clock import Clock
    from hostplane.system.runner import CommandRunner

log = logging.getLogger(__name__)

# Maps config string → (module_path, class_name)
_BUILTIN_TRANSPORTS: dict[str, tuple[str, str]] = {
    "acmeow": ("hostplane.acme.acmeow_transport", "AcmeowTransport"),
    "certbot": ("hostplane.acme.certbot", "CertbotTransport"),
    "self_signed": ("hostplane.acme.self_signed", "SelfSignedTransport"),
}


def load_acme_transport(
    settings: AcmeSettings,
    runner: CommandRunner,
    clock: Clock,
) -> AcmeTransport:
    """Load and return the configured transport.

    Raises
    ------
    AcmeError
        If the transport cannot be loaded.

    """
    name = settings.transport
    if name in _BUILTIN_TRANSPORTS:
        mod_path, cls_name = _BUILTIN_TRANSPORTS[name]
    elif name.startswith("ext:"):
        mod_path, _, cls_name = name[4:].rpartition(".")
        if not mod_path:
            msg = (
                f"Invalid external transport '{name[4:]}': must be fully "
                "qualified (e.g. 'mypackage.module.ClassName')"
            )
            raise AcmeError(msg)
    else:
        msg = (
            f"Unknown ACME transport '{name}'; "
            f"built-in options: {sorted(_BUILTIN_TRANSPORTS)}. "
            f"Use 'ext:mypackage.module.ClassName' for custom transports."
        )
        raise AcmeError(msg)

    try:
        module = importlib.import_module(mod_path)
        cls = getattr(module, cls_name)
    except (ImportError, AttributeError) as exc:
        msg = f"Failed to load ACME transport '{name}': {exc}"
        raise AcmeError(msg) from exc

    if not (isinstance(cls, type) and issubclass(cls, AcmeTransport)):
        msg = f"ACME transport '{name}' is not a subclass of AcmeTransport"
        raise AcmeError(msg)
    for method_name in ("obtain", "revoke"):
        if getattr(getattr(cls, method_name, None), "__isabstractmethod__", False):
            msg = f"ACME transport '{name}' does not implement '{method_name}()'"
            raise AcmeError(msg)

    transport = cls(settings, runner, clock)
    log.info("Loaded ACME transport: %s", name)
    return transport
