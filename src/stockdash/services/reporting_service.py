from __future__ import annotations

import csv
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, Iterable, Sequence

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from stockdash.domain.dates import date_window, in_window
from stockdash.domain.models import Product, Purchase, PurchaseReturn, Sale, SalesReturn
from stockdash.domain.stock import IN_STOCK


@dataclass(frozen=True)
class ProfitAndLoss:
    revenue: float
    costs: float
    refunds: float

    @property
    def net_revenue(self) -> float:
        return round(self.revenue - self.refunds, 2)

    @property
    def gross_profit(self) -> float:
        return round(self.net_revenue - self.costs, 2)

    @property
    def margin_pct(self) -> float:
        if self.net_revenue <= 0:
            return 0.0
        return round(self.gross_profit / self.net_revenue * 100, 2)


@dataclass(frozen=True)
class DashboardMetrics:
    total_products: int
    low_stock_count: int
    out_of_stock_count: int
    inventory_value: float
    orders_this_month: int
    revenue_this_month: float


class ReportingService:
    def __init__(self, repo, stock_service, today: Callable[[], date] = date.today):
        self.repo = repo
        self.stock = stock_service
        self.today = today

    def window(self, period: str = "all", start=None, end=None) -> tuple[str | None, str | None]:
        return date_window(period, start, end, today=self.today())

    # ---------- datasets ----------
    def inventory_report(self, category: str = "", status: str = "") -> list[Product]:
        return [
            p for p in self.repo.list_products()
            if (not category or p.category == category) and (not status or p.status == status)
        ]

    def sales_report(self, period: str = "all", start=None, end=None) -> list[Sale]:
        lo, hi = self.window(period, start, end)
        return [s for s in self.repo.list_sales() if in_window(s.date, lo, hi)]

    def purchase_report(self, period: str = "all", start=None, end=None) -> list[Purchase]:
        lo, hi = self.window(period, start, end)
        return [p for p in self.repo.list_purchases() if in_window(p.date, lo, hi)]

    def returns_report(self, period: str = "all", start=None, end=None) -> tuple[list[SalesReturn], list[PurchaseReturn]]:
        lo, hi = self.window(period, start, end)
        sales_returns = [r for r in self.repo.list_sales_returns() if in_window(r.return_date, lo, hi)]
        purchase_returns = [r for r in self.repo.list_purchase_returns() if in_window(r.return_date, lo, hi)]
        return sales_returns, purchase_returns

    def profit_and_loss(self, period: str = "all", start=None, end=None) -> ProfitAndLoss:
        revenue = sum(s.total_amount for s in self.sales_report(period, start, end) if s.status == "Completed")
        costs = sum(p.total_amount for p in self.purchase_report(period, start, end) if p.status == "Received")
        sales_returns, _ = self.returns_report(period, start, end)
        refunds = sum(r.total_refund for r in sales_returns if r.status == "Processed")
        return ProfitAndLoss(revenue=round(revenue, 2), costs=round(costs, 2), refunds=round(refunds, 2))

    def monthly_sales_totals(self, months: int = 6) -> list[tuple[str, float]]:
        totals: dict[str, float] = defaultdict(float)
        for s in self.repo.list_sales():
            if s.status == "Completed":
                totals[s.date[:7]] += s.total_amount
        keys = sorted(totals)[-int(months):] if months else sorted(totals)
        return [(k, round(totals[k], 2)) for k in keys]

    def top_products(self, limit: int = 5, period: str = "all", start=None, end=None) -> list[tuple[str, int, float]]:
        """(product name, units sold, revenue) ordered by units sold."""
        units: dict[str, int] = defaultdict(int)
        revenue: dict[str, float] = defaultdict(float)
        for s in self.sales_report(period, start, end):
            if s.status != "Completed":
                continue
            units[s.product_name] += s.quantity
            revenue[s.product_name] += s.total_amount
        ranked = sorted(units, key=lambda name: (-units[name], name))[: int(limit)]
        return [(name, units[name], round(revenue[name], 2)) for name in ranked]

    def low_stock_products(self) -> list[Product]:
        flagged = [p for p in self.repo.list_products() if p.status != IN_STOCK]
        return sorted(flagged, key=lambda p: (p.stock - p.reorder_point, p.name))

    def dashboard_metrics(self) -> DashboardMetrics:
        products = self.repo.list_products()
        lo, hi = self.window("month")
        month_sales = [s for s in self.repo.list_sales() if in_window(s.date, lo, hi) and s.status == "Completed"]
        return DashboardMetrics(
            total_products=len(products),
            low_stock_count=sum(1 for p in products if p.status != IN_STOCK),
            out_of_stock_count=sum(1 for p in products if p.stock == 0),
            inventory_value=round(sum(p.stock * p.purchase_price for p in products), 2),
            orders_this_month=len(month_sales),
            revenue_this_month=round(sum(s.total_amount for s in month_sales), 2),
        )

    def stock_report(self) -> list[tuple[str, str, int, int, int, int, int]]:
        """(sku, name, current, calculated, diff, total sold, total purchased) per product."""
        return [
            (
                level.product.sku,
                level.product.name,
                level.product.stock,
                level.calculated,
                level.diff,
                level.movements.total_sold,
                level.movements.total_purchased,
            )
            for level in self.stock.stock_levels()
        ]

    # ---------- CSV ----------
    @staticmethod
    def write_csv(path: Path | str, headers: Sequence[str], rows: Iterable[Sequence]) -> Path:
        target = Path(path)
        with target.open("w", newline="", encoding="utf-8") as fh:
            writer = csv.writer(fh, quoting=csv.QUOTE_ALL)
            writer.writerow(headers)
            for row in rows:
                writer.writerow(["" if v is None else v for v in row])
        return target

    def export_inventory_csv(self, path: Path | str, category: str = "", status: str = "") -> Path:
        return self.write_csv(
            path,
            ["SKU", "Name", "Category", "Unit", "Stock", "Reorder Point", "Purchase Price", "Sell Price", "Status"],
            [
                (p.sku, p.name, p.category, p.unit, p.stock, p.reorder_point, p.purchase_price, p.sell_price, p.status)
                for p in self.inventory_report(category, status)
            ],
        )

    def export_sales_csv(self, path: Path | str, period: str = "all", start=None, end=None) -> Path:
        return self.write_csv(
            path,
            ["ID", "Date", "Product", "Customer", "Quantity", "Unit Price", "Total", "Status"],
            [
                (s.id, s.date, s.product_name, s.customer_name, s.quantity, s.unit_price, s.total_amount, s.status)
                for s in self.sales_report(period, start, end)
            ],
        )

    def export_purchases_csv(self, path: Path | str, period: str = "all", start=None, end=None) -> Path:
        return self.write_csv(
            path,
            ["ID", "Order", "Date", "Product", "Supplier", "Quantity", "Unit Price", "Total", "Status"],
            [
                (p.id, p.purchase_order_id, p.date, p.product_name, p.supplier, p.quantity, p.unit_price, p.total_amount, p.status)
                for p in self.purchase_report(period, start, end)
            ],
        )

    def export_returns_csv(self, path: Path | str, period: str = "all", start=None, end=None) -> Path:
        sales_returns, purchase_returns = self.returns_report(period, start, end)
        rows = [
            ("Sales", r.id, r.return_date, r.product_name, r.customer_name, r.return_quantity, r.total_refund, r.reason, r.status)
            for r in sales_returns
        ] + [
            ("Purchase", r.id, r.return_date, r.product_name, r.supplier, r.return_quantity, r.total_refund, r.reason, r.status)
            for r in purchase_returns
        ]
        return self.write_csv(
            path, ["Type", "ID", "Date", "Product", "Party", "Quantity", "Refund", "Reason", "Status"], rows
        )

    def export_profit_loss_csv(self, path: Path | str, period: str = "all", start=None, end=None) -> Path:
        pl = self.profit_and_loss(period, start, end)
        return self.write_csv(
            path,
            ["Metric", "Value"],
            [
                ("Revenue", pl.revenue),
                ("Refunds", pl.refunds),
                ("Net Revenue", pl.net_revenue),
                ("Costs", pl.costs),
                ("Gross Profit", pl.gross_profit),
                ("Margin %", pl.margin_pct),
            ],
        )

    def export_stock_csv(self, path: Path | str) -> Path:
        return self.write_csv(
            path,
            ["SKU", "Name", "Current Stock", "Calculated Stock", "Diff", "Total Sold", "Total Purchased"],
            self.stock_report(),
        )

    # ---------- Excel ----------
    def export_report_excel(self, path: Path | str, period: str = "all", start=None, end=None) -> None:
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        def pct(cell):
            cell.number_format = "0.00%"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, start_row: int, start_col: int, end_row: int, end_col: int):
            ref = f"{get_column_letter(start_col)}{start_row}:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        lo, hi = self.window(period, start, end)
        pl = self.profit_and_loss(period, start, end)
        sales_rows = self.sales_report(period, start, end)
        purchase_rows = self.purchase_report(period, start, end)

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Summary"
        ws["A1"].font = Font(bold=True, size=14)

        ws["A3"] = "Window"
        ws["B3"] = f"{lo or 'beginning'}  ->  {hi or 'today'}"

        rows = [
            ("Sales count", len(sales_rows), "int"),
            ("Revenue", pl.revenue, "money"),
            ("Refunds", pl.refunds, "money"),
            ("Net Revenue", pl.net_revenue, "money"),
            ("Purchase Costs", pl.costs, "money"),
            ("Gross Profit", pl.gross_profit, "money"),
            ("Margin", pl.margin_pct / 100, "pct"),
        ]

        start_row = 5
        for i, (label, val, kind) in enumerate(rows):
            r = start_row + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            if kind == "money":
                money(ws[f"B{r}"])
            elif kind == "pct":
                pct(ws[f"B{r}"])

        set_widths(ws, {"A": 28, "B": 34})

        # -------- 2) Sales Detail --------
        ws2 = wb.create_sheet("Sales Detail")
        ws2.append(["Sale ID", "Date", "Product", "Customer", "Qty", "Unit Price", "Total", "Status", "Notes"])
        bold_row(ws2, 1)
        for out_row, s in enumerate(sales_rows, start=2):
            ws2.append([s.id, s.date, s.product_name, s.customer_name or "", s.quantity, s.unit_price, s.total_amount, s.status, s.notes or ""])
            money(ws2[f"F{out_row}"])
            money(ws2[f"G{out_row}"])

        ws2.freeze_panes = "A2"
        set_widths(ws2, {"A": 10, "B": 12, "C": 34, "D": 24, "E": 6, "F": 14, "G": 14, "H": 12, "I": 30})
        if ws2.max_row >= 2:
            add_table(ws2, "SalesDetail", 1, 1, ws2.max_row, 9)

        # -------- 3) Purchases --------
        ws3 = wb.create_sheet("Purchases")
        ws3.append(["Purchase ID", "Order", "Date", "Supplier", "Product", "Qty", "Unit Price", "Total", "Status"])
        bold_row(ws3, 1)
        for out_row, p in enumerate(purchase_rows, start=2):
            ws3.append([p.id, p.purchase_order_id, p.date, p.supplier, p.product_name, p.quantity, p.unit_price, p.total_amount, p.status])
            money(ws3[f"G{out_row}"])
            money(ws3[f"H{out_row}"])

        ws3.freeze_panes = "A2"
        set_widths(ws3, {"A": 12, "B": 10, "C": 12, "D": 22, "E": 34, "F": 6, "G": 14, "H": 14, "I": 12})
        if ws3.max_row >= 2:
            add_table(ws3, "PurchasesDetail", 1, 1, ws3.max_row, 9)

        # -------- 4) Stock --------
        ws4 = wb.create_sheet("Stock")
        ws4.append(["SKU", "Name", "Current", "Calculated", "Diff", "Sold", "Purchased"])
        bold_row(ws4, 1)
        for row in self.stock_report():
            ws4.append(list(row))
        ws4.freeze_panes = "A2"
        set_widths(ws4, {"A": 14, "B": 34, "C": 10, "D": 12, "E": 8, "F": 8, "G": 10})
        if ws4.max_row >= 2:
            add_table(ws4, "StockLevels", 1, 1, ws4.max_row, 7)

        wb.save(str(path))
