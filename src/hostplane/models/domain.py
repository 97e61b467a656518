"""Domain and subdomain entities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID, uuid4

from hostplane.core.types import DomainKind
from hostplane.models.account import Account

_EPOCH = datetime(1970, 1, 1)


@dataclass(frozen=True)
class Domain:
    name: str
    account: Account
    document_root: str
    kind: DomainKind = DomainKind.PRIMARY
    ssl_enabled: bool = False
    php_version: str | None = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = _EPOCH
    updated_at: datetime = _EPOCH

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", self.name.lower().rstrip("."))

    @property
    def www_name(self) -> str:
        return f"www.{self.name}"


@dataclass(frozen=True)
class Subdomain:
    domain_id: UUID
    label: str
    parent_name: str
    document_root: str
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = _EPOCH

    @property
    def fqdn(self) -> str:
        return f"{self.label}.{self.parent_name}"
