import pytest

from stockdash.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from stockdash.services.inventory_service import InventoryService
from stockdash.services.stock_service import StockService
from stockdash.services.voucher_service import VoucherService


@pytest.fixture
def products(repo):
    inv = InventoryService(repo)
    a = inv.add_product("A", "Alpha", opening_stock=10, purchase_price=4, sell_price=6)
    b = inv.add_product("B", "Beta", opening_stock=5, purchase_price=1, sell_price=2)
    return inv, a, b


def test_sales_voucher_numbers_totals_and_stock(repo, products):
    inv, a, b = products
    vouchers = VoucherService(repo, "sales")

    vid, number = vouchers.create(
        "Walk-in",
        [{"product_id": a, "quantity": 2}, {"product_id": b, "quantity": 3, "unit_price": "2.50"}],
        discount_amount="1.50",
        payment_method="card",
    )
    assert number == "SV0001"
    assert vouchers.create("", [{"product_id": b, "quantity": 1}])[1] == "SV0002"

    v = vouchers.get(vid)
    assert v.total_amount == 19.5
    assert v.discount_amount == 1.5
    assert v.final_amount == 18.0
    assert v.status == "Completed"
    assert [i.quantity for i in v.items] == [2, 3]
    assert inv.get_product(a).stock == 8
    assert inv.get_product(b).stock == 1
    assert StockService(repo).level_for(b).movements.voucher_sold == 4


def test_sales_voucher_checks_combined_line_quantities(repo, products):
    inv, a, _b = products
    vouchers = VoucherService(repo, "sales")
    with pytest.raises(InsufficientStockError):
        vouchers.create("X", [{"product_id": a, "quantity": 6}, {"product_id": a, "quantity": 5}])
    assert vouchers.list() == []
    assert inv.get_product(a).stock == 10

    vouchers.create("X", [{"product_id": a, "quantity": 20}], status="Pending")
    assert inv.get_product(a).stock == 10


def test_voucher_validation(repo, products):
    _inv, a, _b = products
    sales = VoucherService(repo, "sales")
    purchase = VoucherService(repo, "purchase")
    with pytest.raises(ValidationError):
        sales.create("X", [])
    with pytest.raises(ValidationError):
        sales.create("X", [{"product_id": a, "quantity": 1}], discount_amount=100)
    with pytest.raises(ValidationError):
        sales.create("X", [{"product_id": a, "quantity": 1}], payment_method="barter")
    with pytest.raises(ValidationError):
        sales.create("X", [{"product_id": a, "quantity": 1}], status="Received")
    with pytest.raises(ValidationError):
        purchase.create("", [{"product_id": a, "quantity": 1}])
    with pytest.raises(NotFoundError):
        sales.create("X", [{"product_id": 999, "quantity": 1}])
    with pytest.raises(ValueError):
        VoucherService(repo, "gift")


def test_purchase_voucher_receives_stock_on_status_change(repo, products):
    inv, a, b = products
    vouchers = VoucherService(repo, "purchase")
    vid, number = vouchers.create("Acme", [{"product_id": a, "quantity": 4}, {"product_id": b, "quantity": 1, "supplier": "Other"}])
    assert number == "PV0001"
    v = vouchers.get(vid)
    assert v.status == "Ordered"
    assert v.supplier_name == "Acme"
    assert [i.supplier for i in v.items] == ["Acme", "Other"]
    assert inv.get_product(a).stock == 10

    vouchers.update(vid, status="Received")
    assert inv.get_product(a).stock == 14
    assert inv.get_product(b).stock == 6

    vouchers.update(vid, status="Cancelled")
    assert inv.get_product(a).stock == 10


def test_update_header_recomputes_final_amount(repo, products):
    _inv, a, _b = products
    vouchers = VoucherService(repo, "sales")
    vid, _ = vouchers.create("X", [{"product_id": a, "quantity": 2}])
    v = vouchers.update(vid, discount_amount=2, customer_name="Karim", payment_method="upi")
    assert v.final_amount == 10
    assert v.customer_name == "Karim"
    with pytest.raises(ValidationError):
        vouchers.update(vid, total_amount=1)
    with pytest.raises(ValidationError):
        vouchers.update(vid, status="Received")


def test_delete_voucher_reverts_stock(repo, products):
    inv, a, _b = products
    vouchers = VoucherService(repo, "sales")
    vid, _ = vouchers.create("X", [{"product_id": a, "quantity": 3}])
    assert inv.get_product(a).stock == 7
    vouchers.delete(vid)
    assert inv.get_product(a).stock == 10
    with pytest.raises(NotFoundError):
        vouchers.get(vid)


def test_list_vouchers_filters(repo, products):
    _inv, a, b = products
    vouchers = VoucherService(repo, "sales")
    vouchers.create("Karim", [{"product_id": a, "quantity": 1}], date="2024-01-01", payment_method="cash")
    vouchers.create("Rahim", [{"product_id": b, "quantity": 1}], date="2024-02-01", payment_method="card")
    assert [v.customer_name for v in vouchers.list(search="beta")] == ["Rahim"]
    assert [v.customer_name for v in vouchers.list(payment_method="cash")] == ["Karim"]
    assert [v.voucher_number for v in vouchers.list(start="2024-01-15")] == ["SV0002"]
    assert len(vouchers.list(search="sv000")) == 2
