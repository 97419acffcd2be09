from __future__ import annotations

import logging
import sqlite3
from typing import Iterable, Optional

from stockdash.domain.errors import ValidationError, NotFoundError
from stockdash.domain.models import Product
from stockdash.domain.money import format_money, parse_money
from stockdash.domain.stock import default_reorder_point

log = logging.getLogger(__name__)
stock_log = logging.getLogger("stockdash.stock")

STOCK_BANDS = {"low": (1, 10), "empty": (0, 0)}
EDITABLE_FIELDS = {
    "sku", "name", "barcode", "category", "unit", "stock", "reorder_point",
    "opening_stock", "purchase_price", "sell_price", "company_id",
}


class InventoryService:
    def __init__(self, repo, currency_symbol: str = "৳"):
        self.repo = repo
        self.currency_symbol = currency_symbol

    def list_products(
        self,
        search: str = "",
        category: str = "",
        status: str = "",
        stock_band: str = "",
    ) -> list[Product]:
        products = self.repo.list_products()
        needle = (search or "").strip().lower()
        if needle:
            products = [
                p for p in products
                if needle in p.name.lower() or needle in p.sku.lower() or needle in (p.barcode or "").lower()
            ]
        if category:
            products = [p for p in products if p.category == category]
        if status:
            products = [p for p in products if p.status == status]
        if stock_band:
            if stock_band not in STOCK_BANDS:
                raise ValidationError(f"Unknown stock filter: {stock_band}")
            lo, hi = STOCK_BANDS[stock_band]
            products = [p for p in products if lo <= p.stock <= hi]
        return products

    def categories_in_use(self) -> list[str]:
        return sorted({p.category for p in self.repo.list_products() if p.category})

    def low_stock(self, limit: int = 10) -> list[Product]:
        flagged = [p for p in self.repo.list_products() if p.stock <= p.reorder_point]
        flagged.sort(key=lambda p: (p.stock - p.reorder_point, p.name))
        return flagged[:limit]

    def get_product(self, product_id: int) -> Product:
        p = self.repo.get_product_by_id(int(product_id))
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def get_product_by_sku(self, sku: str) -> Product:
        p = self.repo.get_product_by_sku(sku)
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def add_product(
        self,
        sku: str,
        name: str,
        category: str = "",
        unit: str = "",
        opening_stock: int = 0,
        reorder_point: Optional[int] = None,
        purchase_price=0.0,
        sell_price=0.0,
        barcode: str = "",
        company_id: Optional[int] = None,
    ) -> int:
        sku = (sku or "").strip()
        name = (name or "").strip()
        if not sku or not name:
            raise ValidationError("SKU and Name are required.")
        opening = int(opening_stock)
        reorder = default_reorder_point(opening) if reorder_point in (None, "") else int(reorder_point)
        if opening < 0 or reorder < 0:
            raise ValidationError("Stock values must be >= 0.")
        cost = parse_money(purchase_price)
        price = parse_money(sell_price)
        if cost < 0 or price < 0:
            raise ValidationError("Prices must be >= 0.")
        if self.repo.get_product_by_sku(sku):
            raise ValidationError(f"SKU '{sku}' already exists.")

        pid = self.repo.add_product(
            sku, name, (category or "").strip(), (unit or "").strip(), opening, reorder,
            cost, price, barcode=(barcode or "").strip(), company_id=company_id,
        )
        log.info("product_created id=%s sku=%s opening=%s", pid, sku, opening)
        return pid

    def update_product(self, product_id: int, **changes) -> Product:
        current = self.get_product(product_id)
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown product fields: {', '.join(sorted(unknown))}")

        clean = dict(changes)
        for key in ("sku", "name"):
            if key in clean:
                clean[key] = (clean[key] or "").strip()
                if not clean[key]:
                    raise ValidationError("SKU and Name are required.")
        for key in ("purchase_price", "sell_price"):
            if key in clean:
                clean[key] = parse_money(clean[key])
                if clean[key] < 0:
                    raise ValidationError("Prices must be >= 0.")
        for key in ("stock", "reorder_point", "opening_stock"):
            if key in clean:
                clean[key] = int(clean[key])
                if clean[key] < 0:
                    raise ValidationError("Stock values must be >= 0.")
        if "sku" in clean and clean["sku"] != current.sku:
            other = self.repo.get_product_by_sku(clean["sku"])
            if other and other.id != current.id:
                raise ValidationError(f"SKU '{clean['sku']}' already exists.")

        self.repo.update_product(current.id, clean)
        # both fields feed the calculated stock, so either edit is a manual stock edit
        for key in ("stock", "opening_stock"):
            if key in clean and clean[key] != getattr(current, key):
                stock_log.warning(
                    "manual_stock_edit id=%s field=%s from=%s to=%s", current.id, key, getattr(current, key), clean[key]
                )
        return self.get_product(current.id)

    def delete_product(self, product_id: int) -> None:
        product = self.get_product(product_id)
        refs = self.repo.count_product_references(product.id)
        if refs:
            raise ValidationError(f"'{product.name}' is used by {refs} transaction(s) and cannot be deleted.")
        try:
            removed = self.repo.delete_product(product.id)
        except sqlite3.IntegrityError as exc:
            raise ValidationError(f"'{product.name}' cannot be deleted: {exc}") from exc
        if not removed:
            raise NotFoundError("Product not found.")
        log.info("product_deleted id=%s sku=%s", product.id, product.sku)

    def clear_all_products(self) -> int:
        if self.repo.count_product_references():
            raise ValidationError("Products are referenced by transactions. Clear sales, purchases and vouchers first.")
        removed = self.repo.clear_products()
        log.warning("products_cleared count=%s", removed)
        return removed

    def export_text(self, product_ids: Iterable[int] | None = None) -> str:
        """Plain-text product sheet, one block per product."""
        if product_ids is None:
            products = self.repo.list_products()
        else:
            products = [self.get_product(pid) for pid in product_ids]
        blocks = []
        for p in products:
            blocks.append(
                "\n".join(
                    [
                        f"Product: {p.name}",
                        f"SKU: {p.sku}",
                        f"Barcode: {p.barcode or '-'}",
                        f"Category: {p.category or '-'}",
                        f"Unit: {p.unit or '-'}",
                        f"Stock: {p.stock}",
                        f"Opening Stock: {p.opening_stock}",
                        f"Reorder Point: {p.reorder_point}",
                        f"Purchase Price: {format_money(p.purchase_price, self.currency_symbol)}",
                        f"Sell Price: {format_money(p.sell_price, self.currency_symbol)}",
                        f"Status: {p.status}",
                    ]
                )
            )
        return "\n\n".join(blocks) + ("\n" if blocks else "")
