"""Domain entities as frozen dataclasses.

Entities are immutable; use :func:`dataclasses.replace` to derive an
updated copy before handing it to a repository.
"""

from hostplane.models.account import Account
from hostplane.models.certificate import SslCertificate
from hostplane.models.dns import DnsRecord, DnsZone
from hostplane.models.domain import Domain, Subdomain

__all__ = [
    "Account",
    "DnsRecord",
    "DnsZone",
    "Domain",
    "SslCertificate",
    "Subdomain",
]
