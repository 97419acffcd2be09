from __future__ import annotations

import logging
from itertools import groupby
from typing import Callable, Iterable, Optional

from stockdash.domain.dates import in_window, normalize_date
from stockdash.domain.errors import ValidationError, NotFoundError
from stockdash.domain.models import Purchase, PurchaseOrder
from stockdash.domain.money import parse_money
from stockdash.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger(__name__)

PURCHASE_STATUSES = ("Received", "Pending", "Ordered", "Cancelled")


class PurchaseService:
    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))

    def _line(self, item: dict, supplier: str, date, status: str, notes: Optional[str]) -> dict:
        qty = int(item["quantity"])
        if qty <= 0:
            raise ValidationError("Quantity must be >= 1.")
        prod = self.repo.get_product_by_id(int(item["product_id"]))
        if not prod:
            raise NotFoundError("Product not found.")
        raw_price = item.get("unit_price")
        unit_price = prod.purchase_price if raw_price in (None, "") else parse_money(raw_price)
        if unit_price < 0:
            raise ValidationError("Unit price must be >= 0.")
        return {
            "product_id": prod.id,
            "product_name": prod.name,
            "supplier": supplier,
            "quantity": qty,
            "unit_price": unit_price,
            "total_amount": round(qty * unit_price, 2),
            "date": normalize_date(date),
            "status": status,
            "notes": (notes or "").strip() or None,
        }

    @staticmethod
    def _check_header(supplier: str, status: str) -> str:
        supplier = (supplier or "").strip()
        if not supplier:
            raise ValidationError("Supplier is required.")
        if status not in PURCHASE_STATUSES:
            raise ValidationError(f"Purchase status must be one of: {', '.join(PURCHASE_STATUSES)}.")
        return supplier

    def create_order(
        self,
        supplier: str,
        items: Iterable[dict],
        date=None,
        status: str = "Received",
        notes: Optional[str] = None,
    ) -> str:
        """
        items: [{product_id, quantity, unit_price}]

        All lines share one generated purchase order id and land in a single
        transaction.
        """
        items = list(items)
        if not items:
            raise ValidationError("Purchase order has no items.")
        supplier = self._check_header(supplier, status)
        lines = [self._line(it, supplier, date, status, notes) for it in items]

        with self.uow_factory() as uow:
            po_id, ids = uow.create_purchase_order(lines)
        log.info("purchase_order_created po=%s lines=%s status=%s", po_id, len(ids), status)
        return po_id

    def add_purchase(
        self,
        product_id: int,
        quantity: int,
        supplier: str,
        unit_price=None,
        date=None,
        status: str = "Received",
        notes: Optional[str] = None,
        purchase_order_id: Optional[str] = None,
    ) -> int:
        supplier = self._check_header(supplier, status)
        line = self._line({"product_id": product_id, "quantity": quantity, "unit_price": unit_price}, supplier, date, status, notes)
        with self.uow_factory() as uow:
            _po_id, ids = uow.create_purchase_order([line], purchase_order_id=purchase_order_id)
        return ids[0]

    def update_purchase(self, purchase_id: int, **changes) -> Purchase:
        current = self.get_purchase(purchase_id)
        allowed = {"product_id", "quantity", "unit_price", "supplier", "date", "status", "notes"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Unknown purchase fields: {', '.join(sorted(unknown))}")
        supplier = self._check_header(changes.get("supplier", current.supplier), changes.get("status", current.status))
        line = self._line(
            {
                "product_id": changes.get("product_id", current.product_id),
                "quantity": changes.get("quantity", current.quantity),
                "unit_price": changes.get("unit_price", current.unit_price),
            },
            supplier,
            changes.get("date", current.date),
            changes.get("status", current.status),
            changes.get("notes", current.notes),
        )
        self._check_against_returns(current, line)
        self.repo.update_purchase(current.id, line)
        return self.get_purchase(current.id)

    def _check_against_returns(self, current: Purchase, line: dict) -> None:
        if not self.repo.count_purchase_references(current.id):
            return
        if line["product_id"] != current.product_id or line["status"] != current.status:
            raise ValidationError("Purchase has returns recorded against it. Its product and status can not change.")
        claimed = self.repo.returned_quantity("purchase_returns", "purchase_item_id", current.id)
        if line["quantity"] < claimed:
            raise ValidationError(f"Quantity can not go below the {claimed} unit(s) already returned.")

    def update_order_status(self, purchase_order_id: str, status: str) -> int:
        if status not in PURCHASE_STATUSES:
            raise ValidationError(f"Purchase status must be one of: {', '.join(PURCHASE_STATUSES)}.")
        for line in self.repo.list_purchases(purchase_order_id):
            if line.status != status and self.repo.count_purchase_references(line.id):
                raise ValidationError(f"Line {line.id} of {purchase_order_id} has returns recorded against it.")
        changed = self.repo.update_order_status(purchase_order_id, status)
        if not changed:
            raise NotFoundError(f"Purchase order {purchase_order_id} not found.")
        log.info("purchase_order_status po=%s status=%s lines=%s", purchase_order_id, status, changed)
        return changed

    def delete_purchase(self, purchase_id: int) -> None:
        purchase = self.get_purchase(purchase_id)
        if self.repo.count_purchase_references(purchase.id):
            raise ValidationError("Purchase has returns recorded against it. Delete the returns first.")
        self.repo.delete_purchase(purchase.id)

    def delete_order(self, purchase_order_id: str) -> int:
        deleted = self.repo.delete_purchase_order(purchase_order_id)
        if not deleted:
            raise NotFoundError(f"Purchase order {purchase_order_id} not found.")
        log.info("purchase_order_deleted po=%s lines=%s", purchase_order_id, deleted)
        return deleted

    def get_purchase(self, purchase_id: int) -> Purchase:
        p = self.repo.get_purchase(int(purchase_id))
        if not p:
            raise NotFoundError("Purchase not found.")
        return p

    def list_purchases(
        self,
        start: Optional[str] = None,
        end: Optional[str] = None,
        status: str = "",
        search: str = "",
    ) -> list[Purchase]:
        needle = (search or "").strip().lower()
        return [
            p for p in self.repo.list_purchases()
            if in_window(p.date, start, end)
            and (not status or p.status == status)
            and (
                not needle
                or needle in p.product_name.lower()
                or needle in p.supplier.lower()
                or needle in p.purchase_order_id.lower()
            )
        ]

    def get_order(self, purchase_order_id: str) -> PurchaseOrder:
        lines = self.repo.list_purchases(purchase_order_id)
        if not lines:
            raise NotFoundError(f"Purchase order {purchase_order_id} not found.")
        return self._group(purchase_order_id, lines)

    def list_orders(self, **filters) -> list[PurchaseOrder]:
        lines = sorted(self.list_purchases(**filters), key=lambda p: (p.purchase_order_id, p.id))
        orders = [self._group(po_id, list(group)) for po_id, group in groupby(lines, key=lambda p: p.purchase_order_id)]
        orders.sort(key=lambda o: (o.date, o.purchase_order_id), reverse=True)
        return orders

    @staticmethod
    def _group(po_id: str, lines: list[Purchase]) -> PurchaseOrder:
        statuses = {p.status for p in lines}
        return PurchaseOrder(
            purchase_order_id=po_id,
            supplier=lines[0].supplier,
            date=lines[0].date,
            status=lines[0].status if len(statuses) == 1 else "Mixed",
            items=tuple(lines),
        )
