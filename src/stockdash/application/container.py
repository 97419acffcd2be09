from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from stockdash.config import Settings
from stockdash.repositories.sqlite_repo import SqliteRepository
from stockdash.services.auth_service import AuthService
from stockdash.services.backup_service import BackupService
from stockdash.services.catalog_service import CatalogService, CompanyService
from stockdash.services.document_service import DocumentService
from stockdash.services.excel_service import ExcelService
from stockdash.services.hosted_client import HostedClient
from stockdash.services.inventory_service import InventoryService
from stockdash.services.pos_service import PosService
from stockdash.services.purchase_service import PurchaseService
from stockdash.services.reporting_service import ReportingService
from stockdash.services.returns_service import PurchaseReturnService, SalesReturnService
from stockdash.services.sales_service import SalesService
from stockdash.services.stock_service import StockService
from stockdash.services.sync_service import SyncService
from stockdash.services.voucher_service import VoucherService


@dataclass(frozen=True)
class AppContainer:
    settings: Settings
    repo: SqliteRepository
    inventory: InventoryService
    stock: StockService
    sales: SalesService
    purchases: PurchaseService
    sales_returns: SalesReturnService
    purchase_returns: PurchaseReturnService
    sales_vouchers: VoucherService
    purchase_vouchers: VoucherService
    catalog: CatalogService
    companies: CompanyService
    pos: PosService
    excel: ExcelService
    reporting: ReportingService
    documents: DocumentService
    auth: AuthService
    backup: BackupService
    sync: Optional[SyncService]


def build_container(db_path: Path | str, settings: Settings | None = None, backup_dir: Path | str | None = None) -> AppContainer:
    settings = settings or Settings()
    repo = SqliteRepository(db_path)
    repo.init_db(bootstrap_pin=settings.bootstrap_admin_pin or None)

    stock = StockService(repo)
    sync = None
    if settings.hosted_enabled:
        sync = SyncService(repo, HostedClient(settings.hosted_url, settings.hosted_key))

    return AppContainer(
        settings=settings,
        repo=repo,
        inventory=InventoryService(repo, currency_symbol=settings.currency_symbol),
        stock=stock,
        sales=SalesService(repo),
        purchases=PurchaseService(repo),
        sales_returns=SalesReturnService(repo),
        purchase_returns=PurchaseReturnService(repo),
        sales_vouchers=VoucherService(repo, "sales"),
        purchase_vouchers=VoucherService(repo, "purchase"),
        catalog=CatalogService(repo),
        companies=CompanyService(repo),
        pos=PosService(repo),
        excel=ExcelService(repo),
        reporting=ReportingService(repo, stock),
        documents=DocumentService(currency_symbol=settings.currency_symbol),
        auth=AuthService(repo),
        backup=BackupService(repo, db_path, backup_dir or Path(db_path).parent / "backups"),
        sync=sync,
    )
