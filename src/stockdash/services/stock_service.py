from __future__ import annotations

import logging
from dataclasses import dataclass

from stockdash.domain.errors import NotFoundError
from stockdash.domain.models import Product
from stockdash.domain.stock import StockMovements, calculate_stock

log = logging.getLogger("stockdash.stock")


@dataclass(frozen=True)
class StockLevel:
    product: Product
    movements: StockMovements
    calculated: int

    @property
    def diff(self) -> int:
        """Persisted stock minus calculated stock; non-zero only after manual edits."""
        return int(self.product.stock) - int(self.calculated)


class StockService:
    """Every calculated-stock figure in the app comes from here."""

    def __init__(self, repo):
        self.repo = repo

    def movements_for(self, product_id: int) -> StockMovements:
        return self.repo.stock_movements().get(int(product_id), StockMovements())

    def calculated_stock(self, product_id: int) -> int:
        product = self.repo.get_product_by_id(int(product_id))
        if not product:
            raise NotFoundError("Product not found.")
        return calculate_stock(product.opening_stock, self.movements_for(product.id))

    def stock_levels(self) -> list[StockLevel]:
        movements = self.repo.stock_movements()
        levels = []
        for p in self.repo.list_products():
            m = movements.get(p.id, StockMovements())
            levels.append(StockLevel(product=p, movements=m, calculated=calculate_stock(p.opening_stock, m)))
        return levels

    def level_for(self, product_id: int) -> StockLevel:
        product = self.repo.get_product_by_id(int(product_id))
        if not product:
            raise NotFoundError("Product not found.")
        m = self.movements_for(product.id)
        return StockLevel(product=product, movements=m, calculated=calculate_stock(product.opening_stock, m))

    def discrepancies(self) -> list[StockLevel]:
        return [level for level in self.stock_levels() if level.diff != 0]

    def reconcile(self, product_id: int) -> StockLevel:
        """Write the calculated stock back to the product (never below zero)."""
        level = self.level_for(product_id)
        target = max(0, level.calculated)
        if target != level.product.stock:
            self.repo.set_product_stock(level.product.id, target)
            log.warning(
                "stock_reconciled product=%s sku=%s from=%s to=%s",
                level.product.id, level.product.sku, level.product.stock, target,
            )
        return self.level_for(product_id)

    def reconcile_all(self) -> int:
        fixed = 0
        for level in self.discrepancies():
            self.reconcile(level.product.id)
            fixed += 1
        return fixed
