"""Sales and purchase returns.

A return is recorded as Pending and only moves stock once processed: an
approved return becomes Processed (counted), a rejected one stays out of
every total. The quantity of a new or edited return is bounded by the
original line quantity minus what other non-rejected returns already claim.
"""
from __future__ import annotations

import logging
from datetime import date as _date
from typing import Optional

from stockdash.domain.dates import in_window, normalize_date
from stockdash.domain.errors import NotFoundError, ValidationError
from stockdash.domain.models import PurchaseReturn, SalesReturn

log = logging.getLogger("stockdash.stock")

RETURN_STATUSES = ("Pending", "Approved", "Rejected", "Processed")


class _ReturnService:
    table = ""
    link_column = ""
    noun = "Return"

    def __init__(self, repo):
        self.repo = repo

    # hooks
    def _original(self, original_id: int):
        raise NotImplementedError

    def _get(self, return_id: int):
        raise NotImplementedError

    def _list(self) -> list:
        raise NotImplementedError

    def _insert(self, data: dict) -> int:
        raise NotImplementedError

    def _update(self, return_id: int, changes: dict) -> bool:
        raise NotImplementedError

    def _delete(self, return_id: int) -> bool:
        raise NotImplementedError

    def _check_quantity(self, original_id: int, original_quantity: int, qty: int, exclude_id: Optional[int] = None) -> None:
        if qty <= 0:
            raise ValidationError("Return quantity must be >= 1.")
        already = self.repo.returned_quantity(self.table, self.link_column, original_id, exclude_id=exclude_id)
        available = int(original_quantity) - already
        if qty > available:
            raise ValidationError(f"Return quantity exceeds returnable quantity ({max(available, 0)}).")

    def get(self, return_id: int):
        row = self._get(int(return_id))
        if not row:
            raise NotFoundError(f"{self.noun} not found.")
        return row

    def update(self, return_id: int, **changes):
        current = self.get(return_id)
        allowed = {"return_quantity", "reason", "return_date", "notes"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Unknown return fields: {', '.join(sorted(unknown))}")
        # status only moves through process_return
        clean = dict(changes)
        if "reason" in clean:
            clean["reason"] = (clean["reason"] or "").strip()
            if not clean["reason"]:
                raise ValidationError("A return reason is required.")
        if "return_date" in clean:
            clean["return_date"] = normalize_date(clean["return_date"])
        if "return_quantity" in clean:
            qty = int(clean["return_quantity"])
            self._check_quantity(getattr(current, self.link_column), current.original_quantity, qty, exclude_id=current.id)
            clean["return_quantity"] = qty
            clean["total_refund"] = round(qty * current.unit_price, 2)
        self._update(current.id, clean)
        return self.get(current.id)

    def delete(self, return_id: int) -> None:
        current = self.get(return_id)
        self._delete(current.id)

    def process_return(self, return_id: int, decision: str, processed_by: str):
        """Approve (-> Processed, stock moves) or reject a pending return."""
        current = self.get(return_id)
        if decision not in ("Approved", "Rejected"):
            raise ValidationError("Decision must be Approved or Rejected.")
        if current.status in ("Processed", "Rejected"):
            raise ValidationError(f"{self.noun} is already {current.status.lower()}.")
        if decision == "Approved":
            self._check_quantity(
                getattr(current, self.link_column), current.original_quantity, current.return_quantity, exclude_id=current.id
            )
        status = "Processed" if decision == "Approved" else "Rejected"
        self._update(
            current.id,
            {
                "status": status,
                "processed_by": (processed_by or "").strip() or None,
                "processed_date": _date.today().isoformat(),
            },
        )
        log.info("%s_processed id=%s status=%s by=%s", self.table, current.id, status, processed_by)
        return self.get(current.id)

    def list(self, start: Optional[str] = None, end: Optional[str] = None, status: str = "", search: str = "") -> list:
        needle = (search or "").strip().lower()
        out = []
        for r in self._list():
            if not in_window(r.return_date, start, end):
                continue
            if status and r.status != status:
                continue
            party = getattr(r, "customer_name", None) or getattr(r, "supplier", None) or ""
            if needle and needle not in r.product_name.lower() and needle not in party.lower() and needle not in r.reason.lower():
                continue
            out.append(r)
        return out


class SalesReturnService(_ReturnService):
    table = "sales_returns"
    link_column = "original_sale_id"
    noun = "Sales return"

    def _original(self, original_id: int):
        return self.repo.get_sale(original_id)

    def _get(self, return_id: int) -> Optional[SalesReturn]:
        return self.repo.get_sales_return(return_id)

    def _list(self) -> list[SalesReturn]:
        return self.repo.list_sales_returns()

    def _insert(self, data: dict) -> int:
        return self.repo.add_sales_return(data)

    def _update(self, return_id: int, changes: dict) -> bool:
        return self.repo.update_sales_return(return_id, changes)

    def _delete(self, return_id: int) -> bool:
        return self.repo.delete_sales_return(return_id)

    def add(
        self,
        original_sale_id: int,
        return_quantity: int,
        reason: str,
        return_date=None,
        notes: Optional[str] = None,
    ) -> int:
        sale = self._original(int(original_sale_id))
        if not sale:
            raise NotFoundError("Sale not found.")
        if sale.status != "Completed":
            raise ValidationError("Only completed sales can be returned.")
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A return reason is required.")
        qty = int(return_quantity)
        self._check_quantity(sale.id, sale.quantity, qty)
        rid = self._insert(
            {
                "original_sale_id": sale.id,
                "product_id": sale.product_id,
                "product_name": sale.product_name,
                "original_quantity": sale.quantity,
                "return_quantity": qty,
                "unit_price": sale.unit_price,
                "total_refund": round(qty * sale.unit_price, 2),
                "return_date": normalize_date(return_date),
                "reason": reason,
                "status": "Pending",
                "customer_name": sale.customer_name,
                "notes": (notes or "").strip() or None,
            }
        )
        log.info("sales_return_created id=%s sale=%s qty=%s", rid, sale.id, qty)
        return rid


class PurchaseReturnService(_ReturnService):
    table = "purchase_returns"
    link_column = "purchase_item_id"
    noun = "Purchase return"

    def _original(self, original_id: int):
        return self.repo.get_purchase(original_id)

    def _get(self, return_id: int) -> Optional[PurchaseReturn]:
        return self.repo.get_purchase_return(return_id)

    def _list(self) -> list[PurchaseReturn]:
        return self.repo.list_purchase_returns()

    def _insert(self, data: dict) -> int:
        return self.repo.add_purchase_return(data)

    def _update(self, return_id: int, changes: dict) -> bool:
        return self.repo.update_purchase_return(return_id, changes)

    def _delete(self, return_id: int) -> bool:
        return self.repo.delete_purchase_return(return_id)

    def add(
        self,
        purchase_item_id: int,
        return_quantity: int,
        reason: str,
        return_date=None,
        notes: Optional[str] = None,
    ) -> int:
        line = self._original(int(purchase_item_id))
        if not line:
            raise NotFoundError("Purchase not found.")
        if line.status != "Received":
            raise ValidationError("Only received purchases can be returned.")
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A return reason is required.")
        qty = int(return_quantity)
        self._check_quantity(line.id, line.quantity, qty)
        rid = self._insert(
            {
                "purchase_order_id": line.purchase_order_id,
                "purchase_item_id": line.id,
                "product_id": line.product_id,
                "product_name": line.product_name,
                "supplier": line.supplier,
                "original_quantity": line.quantity,
                "return_quantity": qty,
                "unit_price": line.unit_price,
                "total_refund": round(qty * line.unit_price, 2),
                "return_date": normalize_date(return_date),
                "reason": reason,
                "status": "Pending",
                "notes": (notes or "").strip() or None,
            }
        )
        log.info("purchase_return_created id=%s purchase=%s qty=%s", rid, line.id, qty)
        return rid
