import csv
from datetime import date
from pathlib import Path

import pytest
from openpyxl import load_workbook

from stockdash.domain.errors import ValidationError
from stockdash.services.inventory_service import InventoryService
from stockdash.services.purchase_service import PurchaseService
from stockdash.services.reporting_service import ReportingService
from stockdash.services.returns_service import SalesReturnService
from stockdash.services.sales_service import SalesService
from stockdash.services.stock_service import StockService


@pytest.fixture
def reporting(repo):
    inv = InventoryService(repo)
    sales = SalesService(repo)
    purchases = PurchaseService(repo)
    returns = SalesReturnService(repo)

    alpha = inv.add_product("A", "Alpha", category="Tea", opening_stock=20, purchase_price=4, sell_price=6)
    inv.add_product("B", "Beta", opening_stock=0, reorder_point=5, purchase_price=1, sell_price=2)

    june = sales.add_sale(alpha, 5, date="2024-06-10", customer_name="Karim")
    sales.add_sale(alpha, 1, date="2024-06-12", status="Pending")
    sales.add_sale(alpha, 2, date="2024-05-20")
    purchases.add_purchase(alpha, 3, "Acme", date="2024-06-05")
    purchases.add_purchase(alpha, 50, "Acme", date="2024-06-06", status="Ordered")
    rid = returns.add(june, 1, "Broken seal", return_date="2024-06-11")
    returns.process_return(rid, "Approved", "boss")

    return ReportingService(repo, StockService(repo), today=lambda: date(2024, 6, 15))


def _read_csv(path: Path) -> list[list[str]]:
    with path.open(newline="", encoding="utf-8") as fh:
        return list(csv.reader(fh))


def test_profit_and_loss_counts_only_settled_transactions(reporting):
    month = reporting.profit_and_loss("month")
    assert month.revenue == 30
    assert month.refunds == 6
    assert month.costs == 12
    assert month.net_revenue == 24
    assert month.gross_profit == 12
    assert month.margin_pct == 50.0

    everything = reporting.profit_and_loss()
    assert everything.revenue == 42
    assert everything.gross_profit == 24

    custom = reporting.profit_and_loss("custom", "2024-05-01", "2024-05-31")
    assert (custom.revenue, custom.costs, custom.refunds) == (12, 0, 0)
    assert custom.margin_pct == 100.0

    with pytest.raises(ValidationError):
        reporting.profit_and_loss("custom", "2024-06-01", "2024-05-01")


def test_margin_is_zero_without_net_revenue(repo):
    empty = ReportingService(repo, StockService(repo))
    assert empty.profit_and_loss().margin_pct == 0.0


def test_dashboard_metrics(reporting):
    m = reporting.dashboard_metrics()
    assert m.total_products == 2
    assert m.low_stock_count == 1
    assert m.out_of_stock_count == 1
    assert m.inventory_value == 68
    assert m.orders_this_month == 1
    assert m.revenue_this_month == 30


def test_charts_and_rankings(reporting):
    assert reporting.monthly_sales_totals() == [("2024-05", 12.0), ("2024-06", 30.0)]
    assert reporting.monthly_sales_totals(1) == [("2024-06", 30.0)]
    assert reporting.top_products() == [("Alpha", 7, 42.0)]
    assert [p.sku for p in reporting.low_stock_products()] == ["B"]
    assert [p.sku for p in reporting.inventory_report(category="Tea")] == ["A"]


def test_stock_report_matches_transactions(reporting):
    assert reporting.stock_report() == [
        ("A", "Alpha", 17, 17, 0, 7, 3),
        ("B", "Beta", 0, 0, 0, 0, 0),
    ]


def test_csv_exports(reporting, tmp_path: Path):
    pl = reporting.export_profit_loss_csv(tmp_path / "pl.csv", period="month")
    assert pl.read_text(encoding="utf-8").startswith('"Metric","Value"')
    assert _read_csv(pl)[1:] == [
        ["Revenue", "30.0"],
        ["Refunds", "6.0"],
        ["Net Revenue", "24.0"],
        ["Costs", "12.0"],
        ["Gross Profit", "12.0"],
        ["Margin %", "50.0"],
    ]

    sales_rows = _read_csv(reporting.export_sales_csv(tmp_path / "sales.csv", period="month"))
    assert sales_rows[0] == ["ID", "Date", "Product", "Customer", "Quantity", "Unit Price", "Total", "Status"]
    assert len(sales_rows) == 3
    # newest first; the pending sale has no customer
    assert [sales_rows[1][3], sales_rows[1][7]] == ["", "Pending"]
    assert [sales_rows[2][3], sales_rows[2][7]] == ["Karim", "Completed"]

    returns_rows = _read_csv(reporting.export_returns_csv(tmp_path / "returns.csv"))
    assert returns_rows[1][0] == "Sales"
    assert returns_rows[1][-1] == "Processed"

    stock_rows = _read_csv(reporting.export_stock_csv(tmp_path / "stock.csv"))
    assert stock_rows[0] == ["SKU", "Name", "Current Stock", "Calculated Stock", "Diff", "Total Sold", "Total Purchased"]
    assert stock_rows[1] == ["A", "Alpha", "17", "17", "0", "7", "3"]

    inventory_rows = _read_csv(reporting.export_inventory_csv(tmp_path / "inv.csv"))
    assert [r[0] for r in inventory_rows[1:]] == ["A", "B"]
    assert inventory_rows[2][-1] == "Out of Stock"

    purchase_rows = _read_csv(reporting.export_purchases_csv(tmp_path / "purchases.csv"))
    assert {r[1] for r in purchase_rows[1:]} == {"PO0001", "PO0002"}


def test_excel_report_has_every_sheet(reporting, tmp_path: Path):
    target = tmp_path / "report.xlsx"
    reporting.export_report_excel(target, period="month")

    wb = load_workbook(target)
    assert wb.sheetnames == ["Summary", "Sales Detail", "Purchases", "Stock"]

    summary = wb["Summary"]
    assert summary["B3"].value.startswith("2024-06-01")
    assert summary["A6"].value == "Revenue"
    assert summary["B6"].value == 30
    assert summary["B11"].value == 0.5

    assert wb["Sales Detail"].max_row == 3
    assert wb["Purchases"].max_row == 3
    assert [c.value for c in wb["Stock"][2]] == ["A", "Alpha", 17, 17, 0, 7, 3]
