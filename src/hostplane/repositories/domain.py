"""Domain and subdomain repositories."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pypgkit import BaseRepository, Database

from hostplane.core.types import DomainKind
from hostplane.models.account import Account
from hostplane.models.domain import Domain, Subdomain

if TYPE_CHECKING:
    from uuid import UUID


class DomainRepository(BaseRepository[Domain]):
    table_name = "domains"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> Domain:
        return Domain(
            id=row["id"],
            name=row["name"],
            account=Account(
                username=row["account_username"],
                uid=row["account_uid"],
                gid=row["account_gid"],
                home_dir=row["account_home"],
            ),
            document_root=row["document_root"],
            kind=DomainKind(row["kind"]),
            ssl_enabled=row["ssl_enabled"],
            php_version=row.get("php_version"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _entity_to_row(self, entity: Domain) -> dict:
        return {
            "id": entity.id,
            "name": entity.name,
            "account_username": entity.account.username,
            "account_uid": entity.account.uid,
            "account_gid": entity.account.gid,
            "account_home": entity.account.home_dir,
            "document_root": entity.document_root,
            "kind": entity.kind.value,
            "ssl_enabled": entity.ssl_enabled,
            "php_version": entity.php_version,
        }

    def find_by_name(self, name: str) -> Domain | None:
        """Find a domain by its (lower-cased) hostname."""
        return self.find_one_by({"name": name.lower().rstrip(".")})

    def set_ssl_enabled(self, domain_id: UUID, enabled: bool) -> Domain | None:
        """Flip the TLS flag and return the updated domain."""
        db = Database.get_instance()
        row = db.fetch_one(
            "UPDATE domains SET ssl_enabled = %s, updated_at = now() WHERE id = %s RETURNING *",
            (enabled, domain_id),
            as_dict=True,
        )
        return self._row_to_entity(row) if row else None


class SubdomainRepository(BaseRepository[Subdomain]):
    table_name = "subdomains"
    primary_key = "id"

    def _row_to_entity(self, row: dict) -> Subdomain:
        return Subdomain(
            id=row["id"],
            domain_id=row["domain_id"],
            label=row["label"],
            parent_name=row["parent_name"],
            document_root=row["document_root"],
            created_at=row["created_at"],
        )

    def _entity_to_row(self, entity: Subdomain) -> dict:
        return {
            "id": entity.id,
            "domain_id": entity.domain_id,
            "label": entity.label,
            "parent_name": entity.parent_name,
            "document_root": entity.document_root,
        }

    def find_by_domain(self, domain_id: UUID) -> list[Subdomain]:
        return self.find_by({"domain_id": domain_id})

    def find_by_label(self, domain_id: UUID, label: str) -> Subdomain | None:
        return self.find_one_by({"domain_id": domain_id, "label": label.lower()})

    def delete_by_domain(self, domain_id: UUID) -> int:
        return self.delete_by({"domain_id": domain_id})
