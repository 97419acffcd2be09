from __future__ import annotations

import logging
from typing import Callable, Iterable, Optional

from stockdash.domain.dates import in_window, normalize_date
from stockdash.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from stockdash.domain.money import parse_money
from stockdash.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger("stockdash.sales")

PAYMENT_METHODS = ("cash", "card", "upi", "bank_transfer", "credit")
VOUCHER_STATUSES = {
    "sales": ("Completed", "Pending", "Cancelled"),
    "purchase": ("Ordered", "Received", "Pending", "Cancelled"),
}


class VoucherService:
    """Multi-line sales and purchase vouchers (`kind` is 'sales' or 'purchase')."""

    def __init__(self, repo, kind: str, uow_factory: Callable[[], UnitOfWork] | None = None):
        if kind not in VOUCHER_STATUSES:
            raise ValueError(f"Unknown voucher kind: {kind}")
        self.repo = repo
        self.kind = kind
        self.statuses = VOUCHER_STATUSES[kind]
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))

    @property
    def party_field(self) -> str:
        return "customer_name" if self.kind == "sales" else "supplier_name"

    def _items(self, items: Iterable[dict], party: str) -> list[dict]:
        lines = []
        for it in items:
            qty = int(it["quantity"])
            if qty <= 0:
                raise ValidationError("Quantity must be >= 1.")
            prod = self.repo.get_product_by_id(int(it["product_id"]))
            if not prod:
                raise NotFoundError("Product not found.")
            default_price = prod.sell_price if self.kind == "sales" else prod.purchase_price
            raw = it.get("unit_price")
            price = default_price if raw in (None, "") else parse_money(raw)
            if price < 0:
                raise ValidationError("Unit price must be >= 0.")
            line = {
                "product_id": prod.id,
                "product_name": prod.name,
                "quantity": qty,
                "unit_price": price,
                "total_amount": round(qty * price, 2),
            }
            if self.kind == "purchase":
                line["supplier"] = (it.get("supplier") or party or "").strip()
            lines.append(line)
        return lines

    def _check_stock(self, lines: list[dict]) -> None:
        needed: dict[int, int] = {}
        for line in lines:
            needed[line["product_id"]] = needed.get(line["product_id"], 0) + line["quantity"]
        for product_id, qty in needed.items():
            prod = self.repo.get_product_by_id(product_id)
            if qty > int(prod.stock):
                raise InsufficientStockError(f"Not enough stock for {prod.sku}. Available: {prod.stock}")

    @staticmethod
    def _totals(total: float, discount) -> tuple[float, float]:
        discount_amount = parse_money(discount)
        if discount_amount < 0 or discount_amount > total:
            raise ValidationError("Discount must be between 0 and the voucher total.")
        return discount_amount, round(total - discount_amount, 2)

    def create(
        self,
        party: Optional[str],
        items: Iterable[dict],
        discount_amount=0.0,
        payment_method: str = "cash",
        status: Optional[str] = None,
        date=None,
        notes: Optional[str] = None,
    ) -> tuple[int, str]:
        """
        items: [{product_id, quantity, unit_price}] (purchase items may carry a supplier)

        Returns (voucher id, voucher number).
        """
        status = status or self.statuses[0]
        if status not in self.statuses:
            raise ValidationError(f"Voucher status must be one of: {', '.join(self.statuses)}.")
        party = (party or "").strip()
        if self.kind == "purchase" and not party:
            raise ValidationError("Supplier is required.")
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}.")
        lines = self._items(items, party)
        if not lines:
            raise ValidationError("Voucher has no items.")
        if self.kind == "sales" and status == "Completed":
            self._check_stock(lines)

        total = round(sum(line["total_amount"] for line in lines), 2)
        discount, final = self._totals(total, discount_amount)
        header = {
            self.party_field: party or None,
            "total_amount": total,
            "discount_amount": discount,
            "final_amount": final,
            "payment_method": payment_method,
            "status": status,
            "date": normalize_date(date),
            "notes": (notes or "").strip() or None,
        }
        with self.uow_factory() as uow:
            voucher_id, number = uow.create_voucher(self.kind, header, lines)
        log.info("%s_voucher_created id=%s number=%s lines=%s final=%.2f", self.kind, voucher_id, number, len(lines), final)
        return voucher_id, number

    def update(self, voucher_id: int, **changes):
        """Header-only edit; a status change moves stock for every item."""
        current = self.get(voucher_id)
        allowed = {self.party_field, "discount_amount", "payment_method", "status", "date", "notes"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"Unknown voucher fields: {', '.join(sorted(unknown))}")
        clean = dict(changes)
        if "status" in clean and clean["status"] not in self.statuses:
            raise ValidationError(f"Voucher status must be one of: {', '.join(self.statuses)}.")
        if "payment_method" in clean and clean["payment_method"] not in PAYMENT_METHODS:
            raise ValidationError(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}.")
        if "discount_amount" in clean:
            clean["discount_amount"], clean["final_amount"] = self._totals(current.total_amount, clean["discount_amount"])
        if "date" in clean:
            clean["date"] = normalize_date(clean["date"])
        self.repo.update_voucher(self.kind, current.id, clean)
        return self.get(current.id)

    def delete(self, voucher_id: int) -> None:
        current = self.get(voucher_id)
        self.repo.delete_voucher(self.kind, current.id)
        log.info("%s_voucher_deleted id=%s number=%s", self.kind, current.id, current.voucher_number)

    def get(self, voucher_id: int):
        voucher = self.repo.get_voucher(self.kind, int(voucher_id))
        if not voucher:
            raise NotFoundError("Voucher not found.")
        return voucher

    def list(
        self,
        start: Optional[str] = None,
        end: Optional[str] = None,
        status: str = "",
        payment_method: str = "",
        search: str = "",
    ) -> list:
        needle = (search or "").strip().lower()
        out = []
        for v in self.repo.list_vouchers(self.kind):
            if not in_window(v.date, start, end):
                continue
            if status and v.status != status:
                continue
            if payment_method and v.payment_method != payment_method:
                continue
            party = getattr(v, self.party_field) or ""
            if needle and needle not in v.voucher_number.lower() and needle not in party.lower() and not any(
                needle in item.product_name.lower() for item in v.items
            ):
                continue
            out.append(v)
        return out
