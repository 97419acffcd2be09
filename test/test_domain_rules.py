from datetime import date

import pytest

from stockdash.domain.dates import date_window, in_window, normalize_date
from stockdash.domain.errors import ValidationError
from stockdash.domain.models import Product, from_view_model, to_view_model
from stockdash.domain.money import format_money, parse_money
from stockdash.domain.stock import (
    IN_STOCK,
    LOW_STOCK,
    OUT_OF_STOCK,
    StockMovements,
    calculate_stock,
    default_reorder_point,
    product_status,
    stock_effect,
)


def test_only_counted_statuses_move_stock():
    assert stock_effect("sale", "Completed", 3) == -3
    assert stock_effect("sale", "Pending", 3) == 0
    assert stock_effect("purchase", "Received", 4) == 4
    assert stock_effect("purchase", "Ordered", 4) == 0
    assert stock_effect("sales_return", "Processed", 2) == 2
    assert stock_effect("sales_return", "Approved", 2) == 0
    assert stock_effect("purchase_return", "Processed", 1) == -1
    assert stock_effect("sales_voucher", "Completed", 5) == -5
    assert stock_effect("purchase_voucher", "Received", 5) == 5


def test_calculated_stock_sums_every_movement():
    m = StockMovements(purchased=10, purchase_vouchers=5, sales_returned=2, sold=7, voucher_sold=3, purchase_returned=1)
    assert calculate_stock(20, m) == 20 + 10 + 5 + 2 - 7 - 3 - 1
    assert m.total_sold == 10
    assert m.total_purchased == 15


def test_product_status_bands():
    assert product_status(0, 10) == OUT_OF_STOCK
    assert product_status(-2, 10) == OUT_OF_STOCK
    assert product_status(10, 10) == LOW_STOCK
    assert product_status(11, 10) == IN_STOCK


def test_default_reorder_point_has_floor_of_ten():
    assert default_reorder_point(0) == 10
    assert default_reorder_point(40) == 10
    assert default_reorder_point(200) == 40


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("৳1,250.50", 1250.5),
        ("$ 3,000", 3000.0),
        (42, 42.0),
        ("", 0.0),
        (None, 0.0),
        ("abc", 0.0),
        ("-12.5", -12.5),
    ],
)
def test_parse_money(raw, expected):
    assert parse_money(raw) == expected


def test_format_money():
    assert format_money(1234.5) == "৳1,234.50"
    assert format_money("-3", symbol="$") == "-$3.00"


def test_normalize_date_accepts_iso_and_rejects_garbage():
    assert normalize_date("2024-03-05T10:20:00") == "2024-03-05"
    assert normalize_date(date(2024, 1, 2)) == "2024-01-02"
    with pytest.raises(ValidationError):
        normalize_date("05/03/2024")
    with pytest.raises(ValidationError):
        normalize_date("", default_today=False)


def test_date_windows():
    today = date(2024, 6, 15)
    assert date_window("all", today=today) == (None, None)
    assert date_window("today", today=today) == ("2024-06-15", "2024-06-15")
    assert date_window("week", today=today) == ("2024-06-08", "2024-06-15")
    assert date_window("month", today=today) == ("2024-06-01", "2024-06-15")
    assert date_window("custom", "2024-01-01", "2024-02-01", today=today) == ("2024-01-01", "2024-02-01")
    with pytest.raises(ValidationError):
        date_window("custom", "2024-03-01", "2024-02-01", today=today)
    with pytest.raises(ValidationError):
        date_window("fortnight", today=today)


def test_in_window_is_inclusive():
    assert in_window("2024-06-01", "2024-06-01", "2024-06-30")
    assert in_window("2024-06-30 18:00", "2024-06-01", "2024-06-30")
    assert not in_window("2024-07-01", "2024-06-01", "2024-06-30")
    assert in_window("1999-01-01", None, None)


def test_view_model_uses_camel_case_and_carries_status():
    p = Product(id=1, sku="A-1", name="Tea", category="", unit="pcs", stock=3, reorder_point=5,
                opening_stock=3, purchase_price=1.0, sell_price=2.0)
    vm = to_view_model(p)
    assert vm["reorderPoint"] == 5
    assert vm["openingStock"] == 3
    assert vm["status"] == LOW_STOCK
    back = from_view_model(vm)
    assert back["reorder_point"] == 5
    assert back["purchase_price"] == 1.0
