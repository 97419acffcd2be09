from __future__ import annotations

from typing import Callable, Optional

import logging
from stockdash.domain.dates import in_window, normalize_date
from stockdash.domain.errors import (
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from stockdash.domain.models import Sale
from stockdash.domain.money import parse_money
from stockdash.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger("stockdash.sales")

SALE_STATUSES = ("Completed", "Pending", "Cancelled")


class SalesService:
    def __init__(
        self,
        repo,
        uow_factory: Callable[[], UnitOfWork] | None = None,
    ):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))

    def _row(self, product_id, quantity, unit_price, date, status, customer_name, notes) -> dict:
        qty = int(quantity)
        if qty <= 0:
            raise ValidationError("Quantity must be >= 1.")
        if status not in SALE_STATUSES:
            raise ValidationError(f"Sale status must be one of: {', '.join(SALE_STATUSES)}.")
        prod = self.repo.get_product_by_id(int(product_id))
        if not prod:
            raise NotFoundError("Product not found.")
        price = prod.sell_price if unit_price in (None, "") else parse_money(unit_price)
        if price < 0:
            raise ValidationError("Unit price must be >= 0.")
        return {
            "product_id": prod.id,
            "product_name": prod.name,
            "quantity": qty,
            "unit_price": price,
            "total_amount": round(qty * price, 2),
            "date": normalize_date(date),
            "status": status,
            "customer_name": (customer_name or "").strip() or None,
            "notes": (notes or "").strip() or None,
        }

    def add_sale(
        self,
        product_id: int,
        quantity: int,
        unit_price=None,
        date=None,
        status: str = "Completed",
        customer_name: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> int:
        row = self._row(product_id, quantity, unit_price, date, status, customer_name, notes)
        if status == "Completed":
            prod = self.repo.get_product_by_id(row["product_id"])
            if row["quantity"] > int(prod.stock):
                raise InsufficientStockError(f"Not enough stock for {prod.sku}. Available: {prod.stock}")
        with self.uow_factory() as uow:
            sale_id = uow.create_sales([row])[0]
        log.info("sale_created sale_id=%s product=%s qty=%s status=%s", sale_id, row["product_id"], row["quantity"], status)
        return sale_id

    def update_sale(self, sale_id: int, **changes) -> Sale:
        current = self.get_sale(sale_id)
        merged = {
            "product_id": current.product_id,
            "quantity": current.quantity,
            "unit_price": current.unit_price,
            "date": current.date,
            "status": current.status,
            "customer_name": current.customer_name,
            "notes": current.notes,
        }
        unknown = set(changes) - set(merged)
        if unknown:
            raise ValidationError(f"Unknown sale fields: {', '.join(sorted(unknown))}")
        merged.update(changes)
        row = self._row(**merged)
        self._check_against_returns(current, row)
        self.repo.update_sale(current.id, row)
        log.info("sale_updated sale_id=%s changes=%s", current.id, sorted(changes))
        return self.get_sale(current.id)

    def _check_against_returns(self, current: Sale, row: dict) -> None:
        """A sale with returns keeps its product and status, and never drops below the returned quantity."""
        if not self.repo.count_sale_references(current.id):
            return
        if row["product_id"] != current.product_id or row["status"] != current.status:
            raise ValidationError("Sale has returns recorded against it. Its product and status can not change.")
        claimed = self.repo.returned_quantity("sales_returns", "original_sale_id", current.id)
        if row["quantity"] < claimed:
            raise ValidationError(f"Quantity can not go below the {claimed} unit(s) already returned.")

    def delete_sale(self, sale_id: int) -> None:
        sale = self.get_sale(sale_id)
        if self.repo.count_sale_references(sale.id):
            raise ValidationError("Sale has returns recorded against it. Delete the returns first.")
        self.repo.delete_sale(sale.id)
        log.info("sale_deleted sale_id=%s", sale.id)

    def get_sale(self, sale_id: int) -> Sale:
        sale = self.repo.get_sale(int(sale_id))
        if not sale:
            raise NotFoundError("Sale not found.")
        return sale

    def list_sales(
        self,
        start: Optional[str] = None,
        end: Optional[str] = None,
        status: str = "",
        search: str = "",
    ) -> list[Sale]:
        needle = (search or "").strip().lower()
        out = []
        for s in self.repo.list_sales():
            if not in_window(s.date, start, end):
                continue
            if status and s.status != status:
                continue
            if needle and needle not in s.product_name.lower() and needle not in (s.customer_name or "").lower():
                continue
            out.append(s)
        return out

    def clear_all(self) -> int:
        removed = self.repo.clear_sales()
        log.warning("sales_cleared count=%s", removed)
        return removed
