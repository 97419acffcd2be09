from .models import (
    Product,
    Sale,
    Purchase,
    PurchaseOrder,
    SalesReturn,
    PurchaseReturn,
    SalesVoucher,
    SalesVoucherItem,
    PurchaseVoucher,
    PurchaseVoucherItem,
    Category,
    Unit,
    Company,
    UserProfile,
)
from .errors import (
    ValidationError,
    NotFoundError,
    InsufficientStockError,
    AuthorizationError,
    BackupError,
    HostedBackendError,
)

__all__ = [
    "Product",
    "Sale",
    "Purchase",
    "PurchaseOrder",
    "SalesReturn",
    "PurchaseReturn",
    "SalesVoucher",
    "SalesVoucherItem",
    "PurchaseVoucher",
    "PurchaseVoucherItem",
    "Category",
    "Unit",
    "Company",
    "UserProfile",
    "ValidationError",
    "NotFoundError",
    "InsufficientStockError",
    "AuthorizationError",
    "BackupError",
    "HostedBackendError",
]
