import logging

import pytest

from stockdash.domain.errors import NotFoundError, ValidationError
from stockdash.domain.stock import IN_STOCK, LOW_STOCK, OUT_OF_STOCK
from stockdash.services.inventory_service import InventoryService
from stockdash.services.purchase_service import PurchaseService
from stockdash.services.sales_service import SalesService
from stockdash.services.stock_service import StockService


def test_add_product_defaults_reorder_point_and_sets_stock_to_opening(repo):
    inv = InventoryService(repo)
    pid = inv.add_product("SKU-1", "Rice 5kg", category="Grocery", unit="bag", opening_stock=100,
                          purchase_price="৳450", sell_price=520)
    p = inv.get_product(pid)
    assert p.stock == 100
    assert p.opening_stock == 100
    assert p.reorder_point == 20
    assert p.purchase_price == 450.0
    assert p.status == IN_STOCK


def test_add_product_validation(repo):
    inv = InventoryService(repo)
    inv.add_product("SKU-1", "Rice", opening_stock=5)
    with pytest.raises(ValidationError):
        inv.add_product("SKU-1", "Another rice")
    with pytest.raises(ValidationError):
        inv.add_product("", "Nameless")
    with pytest.raises(ValidationError):
        inv.add_product("SKU-2", "Oil", opening_stock=-1)
    with pytest.raises(ValidationError):
        inv.add_product("SKU-3", "Salt", sell_price=-5)


def test_update_product_rejects_unknown_fields_and_duplicate_sku(repo):
    inv = InventoryService(repo)
    a = inv.add_product("A", "Apple")
    inv.add_product("B", "Banana")
    with pytest.raises(ValidationError):
        inv.update_product(a, colour="red")
    with pytest.raises(ValidationError):
        inv.update_product(a, sku="B")
    updated = inv.update_product(a, name="Green apple", sell_price="12.50")
    assert updated.name == "Green apple"
    assert updated.sell_price == 12.5


def test_list_products_filters(repo):
    inv = InventoryService(repo)
    inv.add_product("T-1", "Black tea", category="Drinks", opening_stock=50, reorder_point=10)
    inv.add_product("C-1", "Coffee", category="Drinks", opening_stock=5, reorder_point=10)
    inv.add_product("S-1", "Soap", category="Care", opening_stock=0, reorder_point=3, barcode="8901234")

    assert [p.sku for p in inv.list_products(search="tea")] == ["T-1"]
    assert [p.sku for p in inv.list_products(search="8901")] == ["S-1"]
    assert {p.sku for p in inv.list_products(category="Drinks")} == {"T-1", "C-1"}
    assert [p.sku for p in inv.list_products(status=LOW_STOCK)] == ["C-1"]
    assert [p.sku for p in inv.list_products(status=OUT_OF_STOCK)] == ["S-1"]
    assert [p.sku for p in inv.list_products(stock_band="empty")] == ["S-1"]
    assert inv.categories_in_use() == ["Care", "Drinks"]
    with pytest.raises(ValidationError):
        inv.list_products(stock_band="huge")


def test_low_stock_orders_worst_first(repo):
    inv = InventoryService(repo)
    inv.add_product("A", "Alpha", opening_stock=9, reorder_point=10)
    inv.add_product("B", "Beta", opening_stock=0, reorder_point=10)
    inv.add_product("C", "Gamma", opening_stock=100, reorder_point=10)
    assert [p.sku for p in inv.low_stock()] == ["B", "A"]


def test_delete_product_refused_when_referenced(repo):
    inv = InventoryService(repo)
    sales = SalesService(repo)
    pid = inv.add_product("A", "Alpha", opening_stock=10, sell_price=5)
    spare = inv.add_product("B", "Beta")
    sales.add_sale(pid, 2)

    with pytest.raises(ValidationError):
        inv.delete_product(pid)
    with pytest.raises(ValidationError):
        inv.clear_all_products()

    inv.delete_product(spare)
    with pytest.raises(NotFoundError):
        inv.get_product(spare)


def test_export_text_lists_each_product(repo):
    inv = InventoryService(repo, currency_symbol="$")
    pid = inv.add_product("A", "Alpha", opening_stock=3, reorder_point=1, sell_price=2)
    text = inv.export_text([pid])
    assert "Product: Alpha" in text
    assert "SKU: A" in text
    assert "Sell Price: $2.00" in text
    assert "Status: In Stock" in text


def test_calculated_stock_matches_persisted_after_transactions(repo):
    inv = InventoryService(repo)
    sales = SalesService(repo)
    purchases = PurchaseService(repo)
    stock = StockService(repo)

    pid = inv.add_product("A", "Alpha", opening_stock=10, purchase_price=2, sell_price=3)
    sales.add_sale(pid, 4)
    purchases.add_purchase(pid, 6, "Acme")
    purchases.add_purchase(pid, 50, "Acme", status="Ordered")

    level = stock.level_for(pid)
    assert level.calculated == 12
    assert level.product.stock == 12
    assert level.diff == 0
    assert level.movements.sold == 4
    assert level.movements.purchased == 6
    assert stock.discrepancies() == []


def test_manual_stock_edit_shows_diff_and_reconcile_fixes_it(repo):
    inv = InventoryService(repo)
    stock = StockService(repo)
    a = inv.add_product("A", "Alpha", opening_stock=10)
    b = inv.add_product("B", "Beta", opening_stock=4)

    inv.update_product(a, stock=15)
    inv.update_product(b, stock=1)
    assert {lvl.product.sku: lvl.diff for lvl in stock.discrepancies()} == {"A": 5, "B": -3}

    fixed = stock.reconcile(a)
    assert fixed.product.stock == 10
    assert fixed.diff == 0

    assert stock.reconcile_all() == 1
    assert stock.discrepancies() == []
    assert inv.get_product(b).stock == 4


def test_stock_field_edits_are_logged_on_stock_channel(repo, caplog):
    inv = InventoryService(repo)
    pid = inv.add_product("A", "Alpha", opening_stock=10)

    with caplog.at_level(logging.WARNING, logger="stockdash.stock"):
        inv.update_product(pid, opening_stock=12)
        inv.update_product(pid, name="Alpha 2", opening_stock=12)
        inv.update_product(pid, stock=7)

    edits = [r.getMessage() for r in caplog.records if r.name == "stockdash.stock"]
    assert edits == [
        f"manual_stock_edit id={pid} field=opening_stock from=10 to=12",
        f"manual_stock_edit id={pid} field=stock from=10 to=7",
    ]
    assert StockService(repo).level_for(pid).diff == -5


def test_calculated_stock_for_unknown_product(repo):
    with pytest.raises(NotFoundError):
        StockService(repo).calculated_stock(999)
