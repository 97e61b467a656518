"""Base class for lifecycle hooks.

Hooks receive the facts the provisioning core emits (zone created,
certificate renewed, ...) and deliver them wherever the operator wants:
mail, chat, a ticketing system.  Unimplemented methods are no-ops.

Usage::

    from hostplane.hooks import Hook

    class NotifyOnFailure(Hook):
        def on_certificate_renewal_failed(self, ctx: dict) -> None:
            page_oncall(ctx["domain"], ctx["error"])
"""

from __future__ import annotations

import abc


class Hook(abc.ABC):
    """Base class for all lifecycle hooks.

    Parameters
    ----------
    config:
        The hook entry's ``config`` dict from the configuration file.

    """

    def __init__(self, config: dict | None = None) -> None:
        self.config = config or {}

    @classmethod
    def validate_config(cls, config: dict) -> None:
        """Reject unusable *config* by raising :class:`ValueError`.

        Called before instantiation.  The default accepts anything.
        """

    # -- DNS ----------------------------------------------------------------

    def on_zone_created(self, ctx: dict) -> None:
        """Context keys: ``domain``, ``serial``."""

    def on_zone_updated(self, ctx: dict) -> None:
        """Context keys: ``domain``, ``serial``, ``action``."""

    def on_zone_removed(self, ctx: dict) -> None:
        """Context keys: ``domain``."""

    # -- Web server ---------------------------------------------------------

    def on_vhost_created(self, ctx: dict) -> None:
        """Context keys: ``domain``, ``document_root``."""

    def on_vhost_removed(self, ctx: dict) -> None:
        """Context keys: ``domain``."""

    # -- Domains ------------------------------------------------------------

    def on_domain_provisioned(self, ctx: dict) -> None:
        """Called once per provisioning workflow, successful or not.

        Context keys: ``domain``, ``succeeded``, ``steps``.
        """

    def on_domain_deprovisioned(self, ctx: dict) -> None:
        """Context keys: ``domain``, ``succeeded``, ``steps``."""

    # -- Certificates -------------------------------------------------------

    def on_certificate_issued(self, ctx: dict) -> None:
        """Context keys: ``domain``, ``kind``, ``hostnames``, ``not_after``,
        ``fingerprint``.
        """

    def on_certificate_installed(self, ctx: dict) -> None:
        """Context keys: ``domain``, ``fingerprint``."""

    def on_certificate_expiring(self, ctx: dict) -> None:
        """Context keys: ``domain``, ``not_after``, ``days_remaining``.

        Fired once when a certificate enters the renewal window, before
        the renewal is attempted.
        """

    def on_certificate_renewed(self, ctx: dict) -> None:
        """Context keys: ``domain``, ``not_after``, ``fingerprint``."""

    def on_certificate_renewal_failed(self, ctx: dict) -> None:
        """Context keys: ``domain``, ``error``, ``stage``."""

    def on_certificate_removed(self, ctx: dict) -> None:
        """Context keys: ``domain``, ``revoked``."""
