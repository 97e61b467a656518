"""DNS zone and record entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID, uuid4

from hostplane.core.types import RecordType

_EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class DnsZone:
    """Authoritative zone for one domain.

    The SOA record is not stored; it is materialised from these fields
    whenever the zone is rendered.
    """

    domain_id: UUID
    name: str
    serial: int
    primary_ns: str
    secondary_ns: str
    admin_email: str
    refresh: int
    retry: int
    expire: int
    minimum: int
    default_ttl: int = 3600
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = _EPOCH
    updated_at: datetime = _EPOCH

    @property
    def origin(self) -> str:
        return f"{self.name}."

    @property
    def soa_rname(self) -> str:
        """The admin mailbox in SOA form (``admin.example.com.``)."""
        local, _, host = self.admin_email.partition("@")
        if not host:
            return _absolute(local)
        escaped = local.replace(".", "\\.")
        return _absolute(f"{escaped}.{host}")

    def soa_content(self) -> str:
        return (
            f"{_absolute(self.primary_ns)} {self.soa_rname} {self.serial} "
            f"{self.refresh} {self.retry} {self.expire} {self.minimum}"
        )

    def soa_record(self) -> DnsRecord:
        return DnsRecord(
            zone_id=self.id,
            name="@",
            type=RecordType.SOA,
            content=self.soa_content(),
            ttl=self.default_ttl,
        )


@dataclass(frozen=True)
class DnsRecord:
    zone_id: UUID
    name: str
    type: RecordType
    content: str
    ttl: int = 3600
    priority: int | None = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = _EPOCH

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", RecordType(str(self.type).upper()))
        object.__setattr__(self, "name", self.name.strip() or "@")

    def key(self) -> tuple[str, str, str, int | None]:
        """Identity of a record independent of its row id and TTL."""
        return (self.name.lower(), self.type.value, self.content, self.priority)

    def fqdn(self, zone_name: str) -> str:
        """Absolute owner name without the trailing dot."""
        if self.name == "@":
            return zone_name
        if self.name.endswith("."):
            return self.name.rstrip(".")
        return f"{self.name}.{zone_name}"


def _absolute(name: str) -> str:
    return name if name.endswith(".") else f"{name}."
