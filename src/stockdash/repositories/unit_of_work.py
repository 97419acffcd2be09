from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Protocol


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def create_sales(self, rows: Iterable[dict]) -> list[int]: ...
    def create_purchase_order(self, lines: Iterable[dict], purchase_order_id: Optional[str] = None) -> tuple[str, list[int]]: ...
    def create_voucher(self, kind: str, header: dict, items: Iterable[dict]) -> tuple[int, str]: ...


@dataclass
class RepositoryUnitOfWork:
    """Unit of Work adapter for multi-row write use-cases.

    Each call maps to one repository transaction, so a failing line (for
    example a stock shortfall) leaves nothing behind.
    """

    repo: object

    def __enter__(self) -> "RepositoryUnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    @staticmethod
    def _dated(row: dict, key: str = "date") -> dict:
        out = dict(row)
        if not out.get(key):
            out[key] = date.today().isoformat()
        return out

    def create_sales(self, rows: Iterable[dict]) -> list[int]:
        return list(self.repo.add_sales([self._dated(r) for r in rows]))

    def create_purchase_order(self, lines: Iterable[dict], purchase_order_id: Optional[str] = None) -> tuple[str, list[int]]:
        return self.repo.add_purchase_order([self._dated(r) for r in lines], purchase_order_id=purchase_order_id)

    def create_voucher(self, kind: str, header: dict, items: Iterable[dict]) -> tuple[int, str]:
        return self.repo.create_voucher(kind, self._dated(header), list(items))
