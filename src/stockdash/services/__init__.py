from .inventory_service import InventoryService
from .sales_service import SalesService
from .purchase_service import PurchaseService
from .returns_service import SalesReturnService, PurchaseReturnService
from .voucher_service import VoucherService
from .catalog_service import CatalogService, CompanyService
from .auth_service import AuthService
from .stock_service import StockService
from .product_picker import ProductPicker
from .pos_service import PosService
from .excel_service import ExcelService
from .reporting_service import ReportingService
from .document_service import DocumentService
from .backup_service import BackupService
from .hosted_client import HostedClient
from .sync_service import SyncService

__all__ = [
    "InventoryService",
    "SalesService",
    "PurchaseService",
    "SalesReturnService",
    "PurchaseReturnService",
    "VoucherService",
    "CatalogService",
    "CompanyService",
    "AuthService",
    "StockService",
    "ProductPicker",
    "PosService",
    "ExcelService",
    "ReportingService",
    "DocumentService",
    "BackupService",
    "HostedClient",
    "SyncService",
]
