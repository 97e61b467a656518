"""Repository classes for the hostplane persistence layer.

The PostgreSQL repositories extend :class:`pypgkit.BaseRepository`; the
in-memory variants in :mod:`hostplane.repositories.memory` expose the
same methods for ``store.backend: memory`` and for tests.
"""

from hostplane.repositories.certificate import CertificateRepository
from hostplane.repositories.dns import RecordRepository, ZoneRepository
from hostplane.repositories.domain import DomainRepository, SubdomainRepository

__all__ = [
    "CertificateRepository",
    "DomainRepository",
    "RecordRepository",
    "SubdomainRepository",
    "ZoneRepository",
]
