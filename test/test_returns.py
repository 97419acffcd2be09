import pytest

from stockdash.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from stockdash.services.inventory_service import InventoryService
from stockdash.services.purchase_service import PurchaseService
from stockdash.services.returns_service import PurchaseReturnService, SalesReturnService
from stockdash.services.sales_service import SalesService
from stockdash.services.stock_service import StockService


@pytest.fixture
def product(repo):
    return InventoryService(repo).add_product("A", "Alpha", opening_stock=10, purchase_price=4, sell_price=6)


def test_sales_return_moves_stock_only_when_processed(repo, product):
    inv = InventoryService(repo)
    sale_id = SalesService(repo).add_sale(product, 5, customer_name="Rahim")
    returns = SalesReturnService(repo)

    rid = returns.add(sale_id, 2, "Damaged box")
    r = returns.get(rid)
    assert r.status == "Pending"
    assert r.total_refund == 12
    assert r.customer_name == "Rahim"
    assert inv.get_product(product).stock == 5

    processed = returns.process_return(rid, "Approved", "manager1")
    assert processed.status == "Processed"
    assert processed.processed_by == "manager1"
    assert processed.processed_date
    assert inv.get_product(product).stock == 7
    assert StockService(repo).level_for(product).diff == 0

    with pytest.raises(ValidationError):
        returns.process_return(rid, "Rejected", "manager1")


def test_rejected_return_frees_quantity_and_never_moves_stock(repo, product):
    inv = InventoryService(repo)
    sale_id = SalesService(repo).add_sale(product, 3)
    returns = SalesReturnService(repo)

    first = returns.add(sale_id, 3, "Wrong size")
    with pytest.raises(ValidationError):
        returns.add(sale_id, 1, "Again")

    assert returns.process_return(first, "Rejected", "boss").status == "Rejected"
    assert inv.get_product(product).stock == 7

    second = returns.add(sale_id, 3, "Wrong size, second try")
    assert returns.get(second).status == "Pending"


def test_rejected_return_can_not_be_revived_by_editing_status(repo, product):
    inv = InventoryService(repo)
    sale_id = SalesService(repo).add_sale(product, 5)
    returns = SalesReturnService(repo)

    rejected = returns.add(sale_id, 5, "Changed mind")
    returns.process_return(rejected, "Rejected", "boss")
    returns.process_return(returns.add(sale_id, 5, "Faulty"), "Approved", "boss")
    assert inv.get_product(product).stock == 10

    with pytest.raises(ValidationError, match="Unknown return fields"):
        returns.update(rejected, status="Processed")
    with pytest.raises(ValidationError, match="already rejected"):
        returns.process_return(rejected, "Approved", "boss")

    assert returns.get(rejected).status == "Rejected"
    assert inv.get_product(product).stock == 10


def test_return_requires_completed_sale_and_reason(repo, product):
    sales = SalesService(repo)
    returns = SalesReturnService(repo)
    pending = sales.add_sale(product, 1, status="Pending")
    done = sales.add_sale(product, 1)

    with pytest.raises(ValidationError):
        returns.add(pending, 1, "Nope")
    with pytest.raises(ValidationError):
        returns.add(done, 1, "   ")
    with pytest.raises(ValidationError):
        returns.add(done, 0, "Zero")
    with pytest.raises(NotFoundError):
        returns.add(999, 1, "Ghost")
    with pytest.raises(ValidationError):
        returns.process_return(returns.add(done, 1, "Ok"), "Maybe", "boss")


def test_editing_processed_return_quantity_adjusts_stock(repo, product):
    inv = InventoryService(repo)
    sale_id = SalesService(repo).add_sale(product, 5)
    returns = SalesReturnService(repo)
    rid = returns.add(sale_id, 1, "Scratched")
    returns.process_return(rid, "Approved", "boss")
    assert inv.get_product(product).stock == 6

    updated = returns.update(rid, return_quantity=4)
    assert updated.total_refund == 24
    assert inv.get_product(product).stock == 9

    with pytest.raises(ValidationError):
        returns.update(rid, return_quantity=6)
    with pytest.raises(ValidationError):
        returns.update(rid, colour="red")

    returns.delete(rid)
    assert inv.get_product(product).stock == 5


def test_purchase_return_requires_received_line_and_reduces_stock(repo, product):
    inv = InventoryService(repo)
    purchases = PurchaseService(repo)
    returns = PurchaseReturnService(repo)

    po = purchases.create_order("Acme", [{"product_id": product, "quantity": 6}])
    line = purchases.get_order(po).items[0]
    ordered = purchases.get_order(purchases.create_order("Acme", [{"product_id": product, "quantity": 2}], status="Ordered")).items[0]

    with pytest.raises(ValidationError):
        returns.add(ordered.id, 1, "Not here yet")

    rid = returns.add(line.id, 4, "Expired")
    r = returns.get(rid)
    assert r.purchase_order_id == po
    assert r.supplier == "Acme"
    assert inv.get_product(product).stock == 16

    returns.process_return(rid, "Approved", "boss")
    assert inv.get_product(product).stock == 12
    assert StockService(repo).level_for(product).movements.purchase_returned == 4

    with pytest.raises(ValidationError):
        purchases.delete_order(po)


def test_purchase_return_cannot_exceed_available_stock(repo, product):
    inv = InventoryService(repo)
    sales = SalesService(repo)
    purchases = PurchaseService(repo)
    returns = PurchaseReturnService(repo)

    line = purchases.get_order(purchases.create_order("Acme", [{"product_id": product, "quantity": 5}])).items[0]
    sales.add_sale(product, 13)
    rid = returns.add(line.id, 5, "Recall")
    with pytest.raises(InsufficientStockError):
        returns.process_return(rid, "Approved", "boss")
    assert returns.get(rid).status == "Pending"
    assert inv.get_product(product).stock == 2


def test_list_returns_filters(repo, product):
    sales = SalesService(repo)
    returns = SalesReturnService(repo)
    s1 = sales.add_sale(product, 2, customer_name="Karim")
    s2 = sales.add_sale(product, 2, customer_name="Rahim")
    returns.add(s1, 1, "Torn", return_date="2024-01-10")
    rid = returns.add(s2, 1, "Leaking", return_date="2024-03-10")
    returns.process_return(rid, "Approved", "boss")

    assert len(returns.list(start="2024-03-01")) == 1
    assert [r.reason for r in returns.list(status="Pending")] == ["Torn"]
    assert [r.reason for r in returns.list(search="rahim")] == ["Leaking"]
    assert [r.reason for r in returns.list(search="leak")] == ["Leaking"]
