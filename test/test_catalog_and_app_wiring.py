import json
import logging
from pathlib import Path

import pytest

from conftest import set_admin_pin

from stockdash.config import Settings, get_app_paths, load_settings
from stockdash.domain.errors import AuthorizationError, NotFoundError, ValidationError
from stockdash.domain.models import UserProfile
from stockdash.logging_config import CHANNELS, setup_logging
from stockdash.services.catalog_service import CatalogService, CompanyService


def test_catalog_add_rename_delete(repo):
    catalog = CatalogService(repo)
    tea = catalog.add("category", "Tea")
    catalog.add("category", "Bakery")
    catalog.add("unit", "kg")

    assert catalog.names("category") == ["Bakery", "Tea"]
    assert catalog.names("unit") == ["kg"]

    with pytest.raises(ValidationError, match="already exists"):
        catalog.add("category", "Tea")
    with pytest.raises(ValidationError):
        catalog.add("category", "  ")
    with pytest.raises(ValidationError, match="Unknown catalog"):
        catalog.add("brand", "Acme")

    catalog.rename("category", tea, "Green tea")
    assert "Green tea" in catalog.names("category")
    with pytest.raises(ValidationError):
        catalog.rename("category", tea, "Bakery")

    catalog.delete("category", tea)
    assert catalog.names("category") == ["Bakery"]
    with pytest.raises(NotFoundError):
        catalog.delete("category", tea)
    with pytest.raises(NotFoundError):
        catalog.rename("unit", 999, "box")


def test_companies_are_admin_only(repo):
    companies = CompanyService(repo)
    admin = UserProfile(id=1, username="admin", role="super_admin")
    manager = UserProfile(id=2, username="mgr", role="manager")

    cid = companies.add(admin, "Corner Shop", address="12 Market Rd", email="shop@example.com")
    assert companies.get(cid).address == "12 Market Rd"

    with pytest.raises(AuthorizationError):
        companies.add(manager, "Rival")
    with pytest.raises(AuthorizationError):
        companies.delete(manager, cid)
    with pytest.raises(ValidationError, match="email"):
        companies.add(admin, "Other", email="not-an-email")
    with pytest.raises(ValidationError, match="already exists"):
        companies.add(admin, "Corner Shop")
    with pytest.raises(ValidationError):
        companies.update(admin, cid, website="x")

    updated = companies.update(admin, cid, phone=" 0123 ")
    assert updated.phone == "0123"

    companies.delete(admin, cid)
    assert companies.list() == []
    with pytest.raises(NotFoundError):
        companies.get(cid)


def test_settings_come_from_environment(monkeypatch):
    monkeypatch.setenv("STOCKDASH_CURRENCY", "$")
    monkeypatch.setenv("STOCKDASH_PAGE_SIZE", "abc")
    monkeypatch.setenv("STOCKDASH_HOSTED_URL", "https://shop.example.co/")
    monkeypatch.setenv("STOCKDASH_HOSTED_KEY", "anon")
    settings = load_settings()
    assert settings.currency_symbol == "$"
    assert settings.page_size == 50
    assert settings.hosted_url == "https://shop.example.co"
    assert settings.hosted_enabled

    monkeypatch.delenv("STOCKDASH_HOSTED_KEY")
    assert not load_settings().hosted_enabled


def test_app_paths_honour_home_override(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("STOCKDASH_HOME", str(tmp_path / "home"))
    paths = get_app_paths()
    assert paths.db_path == tmp_path / "home" / "inventory.db"
    assert paths.logs_dir.is_dir()
    assert paths.backups_dir.is_dir()


def test_setup_logging_writes_channel_files(tmp_path: Path):
    loggers = [logging.getLogger(name) for name in ("", *CHANNELS)]
    saved = {lg.name: list(lg.handlers) for lg in loggers}
    logs = tmp_path / "logs"
    try:
        setup_logging(logs)
        setup_logging(logs)
        logging.getLogger("stockdash.sales").info("sale_created sale_id=1")
        logging.getLogger("stockdash.stock").warning("stock_reconciled product=1")
        for lg in loggers:
            for h in lg.handlers:
                h.flush()

        assert {"app.log", "errors.log", "sales.log", "stock.log", "hosted.log"} <= {p.name for p in logs.iterdir()}
        line = (logs / "sales.log").read_text(encoding="utf-8").splitlines()
        assert len(line) == 1
        assert json.loads(line[0])["message"] == "sale_created sale_id=1"
        assert "stock_reconciled" in (logs / "app.log").read_text(encoding="utf-8")
        assert (logs / "errors.log").read_text(encoding="utf-8") == ""
    finally:
        for lg in loggers:
            for h in list(lg.handlers):
                if h not in saved[lg.name]:
                    lg.removeHandler(h)
                    h.close()


def test_container_wires_services_and_bootstrap_admin(container, tmp_path: Path):
    assert container.sync is None
    assert container.documents.currency_symbol == "$"
    assert container.sales_vouchers.kind == "sales"
    assert container.purchase_vouchers.kind == "purchase"
    assert (tmp_path / ".admin_bootstrap_pin").exists()

    admin = container.auth.login("admin", set_admin_pin(container.repo))
    assert container.auth.can(admin, "sync_hosted")

    pid = container.inventory.add_product("A", "Alpha", opening_stock=3, sell_price=2)
    container.sales.add_sale(pid, 1)
    assert container.reporting.profit_and_loss().revenue == 2
    assert container.stock.level_for(pid).calculated == 2


def test_container_enables_sync_when_hosted_backend_configured(tmp_path: Path):
    from stockdash.application.container import build_container

    c = build_container(
        tmp_path / "inventory.db",
        settings=Settings(hosted_url="https://shop.example.co", hosted_key="anon", bootstrap_admin_pin="Boot#1234"),
    )
    assert c.sync is not None
    assert c.sync.client.url == "https://shop.example.co"
    assert c.backup.backup_dir == tmp_path / "backups"
    assert c.auth.login("admin", "Boot#1234").role == "super_admin"
