"""Canonical hook event definitions.

Maps every lifecycle event name to its :class:`~hostplane.hooks.base.Hook`
method.  Imports nothing from the rest of the package.
"""

from __future__ import annotations

EVENT_METHOD_MAP: dict[str, str] = {
    "zone.created": "on_zone_created",
    "zone.updated": "on_zone_updated",
    "zone.removed": "on_zone_removed",
    "vhost.created": "on_vhost_created",
    "vhost.removed": "on_vhost_removed",
    "domain.provisioned": "on_domain_provisioned",
    "domain.deprovisioned": "on_domain_deprovisioned",
    "certificate.issued": "on_certificate_issued",
    "certificate.installed": "on_certificate_installed",
    "certificate.expiring": "on_certificate_expiring",
    "certificate.renewed": "on_certificate_renewed",
    "certificate.renewal_failed": "on_certificate_renewal_failed",
    "certificate.removed": "on_certificate_removed",
}

KNOWN_EVENTS: frozenset[str] = frozenset(EVENT_METHOD_MAP.keys())
