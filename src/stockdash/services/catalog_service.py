from __future__ import annotations

import sqlite3
from typing import Optional

from stockdash.domain.errors import NotFoundError, ValidationError
from stockdash.domain.models import Company, UserProfile
from stockdash.services.auth_service import ADMIN_ROLES, require_role

CATALOGS = {"category": "categories", "unit": "units"}


class CatalogService:
    def __init__(self, repo):
        self.repo = repo

    def _table(self, kind: str) -> str:
        if kind not in CATALOGS:
            raise ValidationError(f"Unknown catalog: {kind}")
        return CATALOGS[kind]

    def list(self, kind: str) -> list:
        return self.repo.list_catalog(self._table(kind))

    def names(self, kind: str) -> list[str]:
        return [entry.name for entry in self.list(kind)]

    def add(self, kind: str, name: str, company_id: Optional[int] = None) -> int:
        table = self._table(kind)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        try:
            return self.repo.add_catalog_entry(table, name, company_id)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"{kind.capitalize()} '{name}' already exists.") from exc

    def rename(self, kind: str, entry_id: int, name: str) -> None:
        table = self._table(kind)
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        try:
            changed = self.repo.rename_catalog_entry(table, entry_id, name)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"{kind.capitalize()} '{name}' already exists.") from exc
        if not changed:
            raise NotFoundError(f"{kind.capitalize()} not found.")

    def delete(self, kind: str, entry_id: int) -> None:
        if not self.repo.delete_catalog_entry(self._table(kind), entry_id):
            raise NotFoundError(f"{kind.capitalize()} not found.")


class CompanyService:
    """Company records; only super admins and admins may touch them."""

    ALLOWED_ROLES = ADMIN_ROLES

    def __init__(self, repo):
        self.repo = repo

    def _require(self, actor: UserProfile) -> None:
        require_role(actor, self.ALLOWED_ROLES)

    @staticmethod
    def _clean(data: dict) -> dict:
        allowed = {"name", "address", "phone", "email"}
        unknown = set(data) - allowed
        if unknown:
            raise ValidationError(f"Unknown company fields: {', '.join(sorted(unknown))}")
        clean = {k: ((v or "").strip() or None) for k, v in data.items()}
        if "name" in clean and not clean["name"]:
            raise ValidationError("Company name is required.")
        if clean.get("email") and "@" not in clean["email"]:
            raise ValidationError("Invalid email address.")
        return clean

    def list(self) -> list[Company]:
        return self.repo.list_companies()

    def get(self, company_id: int) -> Company:
        company = self.repo.get_company(int(company_id))
        if not company:
            raise NotFoundError("Company not found.")
        return company

    def add(self, actor: UserProfile, name: str, address: str = "", phone: str = "", email: str = "") -> int:
        self._require(actor)
        data = self._clean({"name": name, "address": address, "phone": phone, "email": email})
        try:
            return self.repo.add_company(data)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"Company '{data['name']}' already exists.") from exc

    def update(self, actor: UserProfile, company_id: int, **changes) -> Company:
        self._require(actor)
        current = self.get(company_id)
        try:
            self.repo.update_company(current.id, self._clean(changes))
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"Company '{changes.get('name')}' already exists.") from exc
        return self.get(current.id)

    def delete(self, actor: UserProfile, company_id: int) -> None:
        self._require(actor)
        if not self.repo.delete_company(int(company_id)):
            raise NotFoundError("Company not found.")
