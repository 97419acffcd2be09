from .products_view import ProductsView
from .pos_view import PosView
from .sales_view import SalesView
from .purchases_view import PurchasesView
from .returns_view import ReturnsView
from .vouchers_view import VouchersView
from .reports_view import ReportsView
from .admin_view import AdminView

__all__ = [
    "ProductsView",
    "PosView",
    "SalesView",
    "PurchasesView",
    "ReturnsView",
    "VouchersView",
    "ReportsView",
    "AdminView",
]
