from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from stockdash.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from stockdash.domain.models import Product
from stockdash.domain.money import parse_money
from stockdash.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger("stockdash.sales")

POS_PAYMENT_METHODS = ("cash", "card", "upi")
WALK_IN_CUSTOMER = "Walk-in Customer"


@dataclass
class CartLine:
    product: Product
    quantity: int
    unit_price: float

    @property
    def total(self) -> float:
        return round(self.quantity * self.unit_price, 2)


@dataclass(frozen=True)
class Receipt:
    sale_ids: tuple[int, ...]
    customer_name: str
    payment_method: str
    lines: tuple[CartLine, ...]
    total: float
    issued_at: str


class Cart:
    def __init__(self):
        self._lines: dict[int, CartLine] = {}

    @property
    def lines(self) -> list[CartLine]:
        return list(self._lines.values())

    def is_empty(self) -> bool:
        return not self._lines

    def add(self, product: Product) -> CartLine:
        """One more unit of `product` at its sell price."""
        if int(product.stock) <= 0:
            raise InsufficientStockError(f"{product.name} is out of stock.")
        line = self._lines.get(product.id)
        if line is None:
            line = CartLine(product=product, quantity=0, unit_price=parse_money(product.sell_price))
            self._lines[product.id] = line
        if line.quantity + 1 > int(product.stock):
            raise InsufficientStockError(f"Only {product.stock} units of {product.name} available.")
        line.quantity += 1
        return line

    def update_quantity(self, product_id: int, quantity: int) -> None:
        line = self._lines.get(int(product_id))
        if line is None:
            raise NotFoundError("Product is not in the cart.")
        if int(quantity) <= 0:
            del self._lines[int(product_id)]
            return
        if int(quantity) > int(line.product.stock):
            raise InsufficientStockError(f"Only {line.product.stock} units of {line.product.name} available.")
        line.quantity = int(quantity)

    def remove(self, product_id: int) -> None:
        self._lines.pop(int(product_id), None)

    def total(self) -> float:
        return round(sum(line.total for line in self._lines.values()), 2)

    def clear(self) -> None:
        self._lines.clear()


class PosService:
    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))
        self.cart = Cart()

    def add_to_cart(self, product_id: int) -> CartLine:
        # fresh row so the stock check sees other terminals' sales
        product = self.repo.get_product_by_id(int(product_id))
        if not product:
            raise NotFoundError("Product not found.")
        return self.cart.add(product)

    def checkout(self, customer_name: str = "", payment_method: str = "cash") -> Receipt:
        if self.cart.is_empty():
            raise ValidationError("Cart is empty.")
        if payment_method not in POS_PAYMENT_METHODS:
            raise ValidationError(f"Payment method must be one of: {', '.join(POS_PAYMENT_METHODS)}.")
        customer = (customer_name or "").strip() or WALK_IN_CUSTOMER
        lines = tuple(self.cart.lines)
        rows = [
            {
                "product_id": line.product.id,
                "product_name": line.product.name,
                "quantity": line.quantity,
                "unit_price": line.unit_price,
                "total_amount": line.total,
                "status": "Completed",
                "customer_name": customer,
                "notes": f"POS Sale - Payment: {payment_method}",
            }
            for line in lines
        ]
        with self.uow_factory() as uow:
            sale_ids = uow.create_sales(rows)
        receipt = Receipt(
            sale_ids=tuple(sale_ids),
            customer_name=customer,
            payment_method=payment_method,
            lines=lines,
            total=round(sum(line.total for line in lines), 2),
            issued_at=datetime.now().replace(microsecond=0).isoformat(sep=" "),
        )
        self.cart.clear()
        log.info("pos_checkout sales=%s total=%.2f payment=%s", len(sale_ids), receipt.total, payment_method)
        return receipt
