from __future__ import annotations
from dataclasses import asdict, dataclass, field, is_dataclass
from typing import Optional

from stockdash.domain.stock import product_status


@dataclass(frozen=True)
class Product:
    id: int
    sku: str
    name: str
    category: str
    unit: str
    stock: int
    reorder_point: int
    opening_stock: int
    purchase_price: float
    sell_price: float
    barcode: str = ""
    company_id: Optional[int] = None
    created_at: str = ""

    @property
    def status(self) -> str:
        return product_status(self.stock, self.reorder_point)


@dataclass(frozen=True)
class Sale:
    id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price: float
    total_amount: float
    date: str
    status: str
    customer_name: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Purchase:
    id: int
    purchase_order_id: str
    product_id: int
    product_name: str
    supplier: str
    quantity: int
    unit_price: float
    total_amount: float
    date: str
    status: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class PurchaseOrder:
    purchase_order_id: str
    supplier: str
    date: str
    status: str
    items: tuple[Purchase, ...] = ()

    @property
    def total_amount(self) -> float:
        return sum(p.total_amount for p in self.items)

    @property
    def total_quantity(self) -> int:
        return sum(p.quantity for p in self.items)


@dataclass(frozen=True)
class SalesReturn:
    id: int
    original_sale_id: int
    product_id: int
    product_name: str
    original_quantity: int
    return_quantity: int
    unit_price: float
    total_refund: float
    return_date: str
    reason: str
    status: str
    customer_name: Optional[str] = None
    notes: Optional[str] = None
    processed_by: Optional[str] = None
    processed_date: Optional[str] = None


@dataclass(frozen=True)
class PurchaseReturn:
    id: int
    purchase_order_id: str
    purchase_item_id: int
    product_id: int
    product_name: str
    supplier: str
    original_quantity: int
    return_quantity: int
    unit_price: float
    total_refund: float
    return_date: str
    reason: str
    status: str
    notes: Optional[str] = None
    processed_by: Optional[str] = None
    processed_date: Optional[str] = None


@dataclass(frozen=True)
class SalesVoucherItem:
    product_id: int
    product_name: str
    quantity: int
    unit_price: float
    total_amount: float
    id: Optional[int] = None


@dataclass(frozen=True)
class SalesVoucher:
    id: int
    voucher_number: str
    customer_name: Optional[str]
    total_amount: float
    discount_amount: float
    final_amount: float
    payment_method: str
    status: str
    date: str
    notes: Optional[str] = None
    items: tuple[SalesVoucherItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PurchaseVoucherItem:
    product_id: int
    product_name: str
    supplier: str
    quantity: int
    unit_price: float
    total_amount: float
    id: Optional[int] = None


@dataclass(frozen=True)
class PurchaseVoucher:
    id: int
    voucher_number: str
    supplier_name: str
    total_amount: float
    discount_amount: float
    final_amount: float
    payment_method: str
    status: str
    date: str
    notes: Optional[str] = None
    items: tuple[PurchaseVoucherItem, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Category:
    id: int
    name: str
    company_id: Optional[int] = None


@dataclass(frozen=True)
class Unit:
    id: int
    name: str
    company_id: Optional[int] = None


@dataclass(frozen=True)
class Company:
    id: int
    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class UserProfile:
    id: int
    username: str
    role: str
    company_id: Optional[int] = None
    is_active: int = 1
    must_change_pin: int = 0


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _snake(name: str) -> str:
    out = []
    for ch in name:
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        else:
            out.append(ch)
    return "".join(out)


def _convert_keys(value, convert):
    if isinstance(value, dict):
        return {convert(k): _convert_keys(v, convert) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_convert_keys(v, convert) for v in value]
    return value


def to_view_model(obj) -> dict:
    """Dataclass -> camelCase dict (the shape used by backups and exports)."""
    data = _convert_keys(asdict(obj), _camel) if is_dataclass(obj) else _convert_keys(dict(obj), _camel)
    if isinstance(obj, Product):
        data["status"] = obj.status
    return data


def from_view_model(data: dict) -> dict:
    """camelCase dict -> snake_case dict."""
    return _convert_keys(dict(data), _snake)
