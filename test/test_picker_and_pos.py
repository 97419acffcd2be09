import pytest

from stockdash.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from stockdash.services.inventory_service import InventoryService
from stockdash.services.pos_service import WALK_IN_CUSTOMER, Cart, PosService
from stockdash.services.product_picker import PREVIEW_SIZE, ProductPicker


@pytest.fixture
def catalog(repo):
    inv = InventoryService(repo)
    ids = [
        inv.add_product(f"P-{i:02d}", f"Product {i:02d}", opening_stock=5, purchase_price=i, sell_price=i + 1)
        for i in range(1, 13)
    ]
    special = inv.add_product("ZZ-1", "Zebra cake", category="Bakery", opening_stock=2, purchase_price=3, sell_price=5, barcode="777001")
    return inv, ids, special


def test_picker_pages_until_exhausted(repo, catalog):
    picker = ProductPicker(repo, page_size=5)
    assert len(picker.load_more()) == 5
    assert len(picker.load_more()) == 5
    assert len(picker.load_more()) == 3
    assert picker.has_more is False
    assert picker.load_more() == []
    assert len(picker.loaded) == 13
    assert len(picker.display_products()) == PREVIEW_SIZE


def test_picker_merges_loaded_matches_with_search_hits(repo, catalog):
    _inv, _ids, special = catalog
    picker = ProductPicker(repo, page_size=5)
    picker.load_more()

    assert picker.search("z") == []
    assert [p.id for p in picker.search("zebra")] == [special]
    shown = picker.display_products()
    assert [p.id for p in shown] == [special]

    picker.search("product 0")
    names = [p.name for p in picker.display_products()]
    assert names[:5] == [f"Product {i:02d}" for i in range(1, 6)]
    assert len(names) == len(set(names)) == 9

    assert [p.id for p in picker.search("7770")] == [special]


def test_picker_select_returns_cost_price_and_clears_search(repo, catalog):
    _inv, ids, special = catalog
    picker = ProductPicker(repo, page_size=5)
    picker.load_more()
    picker.search("bakery")

    picked = picker.select(special)
    assert picked.unit_price == 3
    assert picked.product.name == "Zebra cake"
    assert picker.query == ""
    assert picker.search_results == []

    with pytest.raises(NotFoundError):
        picker.select(ids[-1])

    picker.reset()
    assert picker.loaded == [] and picker.has_more


def test_cart_respects_stock(repo, catalog):
    inv, _ids, special = catalog
    cart = Cart()
    product = inv.get_product(special)
    cart.add(product)
    cart.add(product)
    with pytest.raises(InsufficientStockError):
        cart.add(product)
    assert cart.total() == 10

    with pytest.raises(InsufficientStockError):
        cart.update_quantity(special, 3)
    cart.update_quantity(special, 0)
    assert cart.is_empty()

    with pytest.raises(NotFoundError):
        cart.update_quantity(special, 1)

    empty = inv.get_product(inv.add_product("E-1", "Empty", opening_stock=0))
    with pytest.raises(InsufficientStockError, match="out of stock"):
        cart.add(empty)


def test_checkout_records_one_sale_per_line(repo, catalog):
    inv, ids, special = catalog
    pos = PosService(repo)
    pos.add_to_cart(ids[0])
    pos.add_to_cart(ids[0])
    pos.add_to_cart(special)

    receipt = pos.checkout(payment_method="card")
    assert len(receipt.sale_ids) == 2
    assert receipt.customer_name == WALK_IN_CUSTOMER
    assert receipt.total == 2 * 2 + 5
    assert pos.cart.is_empty()

    sales = repo.list_sales()
    assert {s.notes for s in sales} == {"POS Sale - Payment: card"}
    assert {s.customer_name for s in sales} == {WALK_IN_CUSTOMER}
    assert inv.get_product(ids[0]).stock == 3
    assert inv.get_product(special).stock == 1


def test_checkout_validation_and_stale_stock(repo, catalog):
    inv, ids, special = catalog
    pos = PosService(repo)
    with pytest.raises(ValidationError, match="empty"):
        pos.checkout()

    pos.add_to_cart(special)
    with pytest.raises(ValidationError):
        pos.checkout(payment_method="credit")

    pos.add_to_cart(special)
    # another terminal sells the last units before this checkout
    inv.update_product(special, stock=1)
    with pytest.raises(InsufficientStockError):
        pos.checkout("Rahim", "cash")
    assert repo.list_sales() == []
    assert not pos.cart.is_empty()

    with pytest.raises(NotFoundError):
        pos.add_to_cart(9999)


def test_search_treats_like_wildcards_literally(repo):
    inv = InventoryService(repo)
    underscore = inv.add_product("B-1", "Bolt_A", opening_stock=1)
    inv.add_product("B-2", "BoltXA", opening_stock=1)
    inv.add_product("B-3", "Bolt 100% steel", opening_stock=1)
    picker = ProductPicker(repo, page_size=50)
    picker.load_more()

    assert [p.id for p in picker.search("t_a")] == [underscore]
    assert [p.name for p in picker.display_products()] == ["Bolt_A"]
    assert [p.name for p in picker.search("0%")] == ["Bolt 100% steel"]
    assert picker.search("x%a") == []


def test_search_hits_already_loaded_are_not_repeated(repo):
    inv = InventoryService(repo)
    pid = inv.add_product("A-1", "Apple", opening_stock=1)
    picker = ProductPicker(repo, page_size=50)
    picker.load_more()

    # renamed after the page was loaded; the loaded copy no longer matches
    inv.update_product(pid, name="Zebra apple")
    assert [p.id for p in picker.search("zebra")] == [pid]
    assert picker.display_products() == []
