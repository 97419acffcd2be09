"""Stock rules shared by every read and write path.

calculated stock = opening stock
                   + received purchases + received purchase-voucher items
                   + processed sales returns
                   - completed sales - completed sales-voucher items
                   - processed purchase returns
"""
from __future__ import annotations

from dataclasses import dataclass

IN_STOCK = "In Stock"
LOW_STOCK = "Low Stock"
OUT_OF_STOCK = "Out of Stock"

SALE = "sale"
PURCHASE = "purchase"
SALES_RETURN = "sales_return"
PURCHASE_RETURN = "purchase_return"
SALES_VOUCHER = "sales_voucher"
PURCHASE_VOUCHER = "purchase_voucher"

# kind -> (sign, status that counts)
MOVEMENT_RULES: dict[str, tuple[int, str]] = {
    PURCHASE: (1, "Received"),
    PURCHASE_VOUCHER: (1, "Received"),
    SALES_RETURN: (1, "Processed"),
    SALE: (-1, "Completed"),
    SALES_VOUCHER: (-1, "Completed"),
    PURCHASE_RETURN: (-1, "Processed"),
}


def stock_effect(kind: str, status: str | None, quantity: int) -> int:
    """Signed effect of a single transaction row on product stock."""
    sign, counted = MOVEMENT_RULES[kind]
    if status != counted:
        return 0
    return sign * int(quantity)


@dataclass(frozen=True)
class StockMovements:
    purchased: int = 0
    purchase_vouchers: int = 0
    sales_returned: int = 0
    sold: int = 0
    voucher_sold: int = 0
    purchase_returned: int = 0

    @property
    def receipts(self) -> int:
        return self.purchased + self.purchase_vouchers + self.sales_returned

    @property
    def issuances(self) -> int:
        return self.sold + self.voucher_sold + self.purchase_returned

    @property
    def total_sold(self) -> int:
        return self.sold + self.voucher_sold

    @property
    def total_purchased(self) -> int:
        return self.purchased + self.purchase_vouchers


def calculate_stock(opening_stock: int, movements: StockMovements) -> int:
    return int(opening_stock) + movements.receipts - movements.issuances


def product_status(stock: int, reorder_point: int) -> str:
    if int(stock) <= 0:
        return OUT_OF_STOCK
    if int(stock) <= int(reorder_point):
        return LOW_STOCK
    return IN_STOCK


def default_reorder_point(opening_stock: int) -> int:
    return max(10, int(opening_stock * 0.2))
