from __future__ import annotations

import tkinter as tk
from tkinter import ttk, filedialog
from datetime import date

from stockdash.domain.errors import AuthorizationError, ValidationError


CSV_EXPORTS = (
    ("Inventory", "inventory"),
    ("Sales", "sales"),
    ("Purchases", "purchases"),
    ("Returns", "returns"),
    ("Profit & Loss", "profit_loss"),
    ("Stock check", "stock"),
)


class ReportsView:
    def __init__(self, notebook: ttk.Notebook, app):
        self.app = app
        self.frame = ttk.Frame(notebook)
        notebook.add(self.frame, text="Excel + Reports")

        self.period = tk.StringVar(value="month")
        self.start_var = tk.StringVar()
        self.end_var = tk.StringVar()
        self.pl_var = tk.StringVar(value="")
        self._build()

    def _build(self):
        tab = self.frame

        box1 = ttk.LabelFrame(tab, text="Import products from Excel")
        box1.pack(fill="x", padx=10, pady=10)

        ttk.Label(box1, text="Headers: sku | name | category | unit | opening_stock | reorder_point | purchase_price | sell_price | barcode")\
            .pack(anchor="w", padx=10, pady=(8, 4))
        row0 = ttk.Frame(box1)
        row0.pack(fill="x", padx=10, pady=(0, 10))
        ttk.Button(row0, text="Choose file and import", style="Big.TButton", command=self.import_excel).pack(side="left")
        ttk.Button(row0, text="Save template", command=self.save_template).pack(side="left", padx=10)

        box2 = ttk.LabelFrame(tab, text="Reports")
        box2.pack(fill="x", padx=10, pady=10)

        row = ttk.Frame(box2)
        row.pack(fill="x", padx=10, pady=10)

        ttk.Label(row, text="Period").pack(side="left")
        for text, value in (("All", "all"), ("Today", "today"), ("Last 7 days", "week"), ("This month", "month"), ("Custom", "custom")):
            ttk.Radiobutton(row, text=text, value=value, variable=self.period, command=self.refresh).pack(side="left", padx=6)
        ttk.Label(row, text="From").pack(side="left", padx=(12, 0))
        ttk.Entry(row, textvariable=self.start_var, width=11).pack(side="left", padx=4)
        ttk.Label(row, text="To").pack(side="left")
        ttk.Entry(row, textvariable=self.end_var, width=11).pack(side="left", padx=4)
        ttk.Button(row, text="Apply", command=self.refresh).pack(side="left", padx=6)

        ttk.Label(box2, textvariable=self.pl_var, style="Title.TLabel").pack(anchor="w", padx=10)

        exports = ttk.Frame(box2)
        exports.pack(fill="x", padx=10, pady=10)
        ttk.Button(exports, text="Export report (Excel)", style="Big.TButton", command=self.export_report).pack(side="left")
        for text, key in CSV_EXPORTS:
            ttk.Button(exports, text=f"{text} CSV", command=lambda k=key: self.export_csv(k)).pack(side="left", padx=4)

        dash = ttk.LabelFrame(tab, text="Dashboard")
        dash.pack(fill="both", expand=True, padx=10, pady=10)
        dash.columnconfigure(0, weight=1)
        dash.columnconfigure(1, weight=1)

        self.sales_canvas = tk.Canvas(dash, height=220, bg="#f8fafc", highlightthickness=1, highlightbackground="#cbd5e1")
        self.sales_canvas.grid(row=0, column=0, sticky="nsew", padx=6, pady=6)

        self.top_canvas = tk.Canvas(dash, height=220, bg="#f8fafc", highlightthickness=1, highlightbackground="#cbd5e1")
        self.top_canvas.grid(row=0, column=1, sticky="nsew", padx=6, pady=6)

    def _window_args(self) -> dict:
        period = self.period.get()
        if period == "custom":
            return {"period": period, "start": self.start_var.get().strip(), "end": self.end_var.get().strip()}
        return {"period": period}

    def refresh(self):
        try:
            pl = self.app.reporting.profit_and_loss(**self._window_args())
        except ValidationError as e:
            self.pl_var.set(str(e))
            return
        money = self.app.money
        self.pl_var.set(
            f"Revenue {money(pl.revenue)}  |  Refunds {money(pl.refunds)}  |  Costs {money(pl.costs)}  |  "
            f"Gross profit {money(pl.gross_profit)} ({pl.margin_pct:.1f}%)"
        )
        self._draw_monthly_sales()
        self._draw_top_products()

    def _draw_monthly_sales(self):
        data = self.app.reporting.monthly_sales_totals(6)
        self._draw_bar_chart(self.sales_canvas, "Monthly sales", data, color="#2563eb")

    def _draw_top_products(self):
        rows = self.app.reporting.top_products(6, **self._window_args())
        data = [(name, float(units)) for name, units, _revenue in rows]
        self._draw_bar_chart(self.top_canvas, "Top products (units sold)", data, color="#16a34a")

    def _draw_bar_chart(self, canvas: tk.Canvas, title: str, data: list[tuple[str, float]], color: str = "#2b78c2"):
        canvas.delete("all")
        w, h = int(canvas.winfo_width() or 560), int(canvas.winfo_height() or 220)
        canvas.create_text(12, 16, text=title, anchor="w", font=("Segoe UI", 10, "bold"), fill="#0f172a")
        if not data:
            canvas.create_text(w // 2, h // 2, text="No data", fill="#64748b")
            return
        maxv = max(v for _, v in data) or 1
        bw = max(24, (w - 40) // len(data))
        for i, (label, val) in enumerate(data):
            x0 = 24 + i * bw
            x1 = x0 + bw - 8
            y1 = h - 30
            y0 = y1 - int((val / maxv) * (h - 70))
            canvas.create_rectangle(x0, y0, x1, y1, fill=color, outline="")
            canvas.create_text((x0 + x1) // 2, y1 + 12, text=label[-10:], font=("Segoe UI", 8), fill="#475569")
            canvas.create_text((x0 + x1) // 2, y0 - 8, text=f"{val:.0f}", font=("Segoe UI", 8), fill="#0f172a")

    def import_excel(self):
        if not self.app.can_action("import_excel"):
            self.app.handle_error("Import error", AuthorizationError("Your role can not import Excel files."), "Excel import denied.")
            return
        path = filedialog.askopenfilename(title="Select Excel file", filetypes=[("Excel files", "*.xlsx")])
        if not path:
            return
        try:
            ok, skipped = self.app.excel.import_products_excel(path)
            self.app.toast(f"Excel import: {ok} ok, {skipped} skipped.", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Import error", e, "Excel import failed.")

    def save_template(self):
        path = filedialog.asksaveasfilename(
            title="Save template as",
            defaultextension=".xlsx",
            filetypes=[("Excel files", "*.xlsx")],
            initialfile="products_template.xlsx",
        )
        if not path:
            return
        try:
            self.app.excel.write_template(path)
            self.app.toast("Template saved.", kind="success")
        except Exception as e:
            self.app.handle_error("Template", e, "Template export failed.")

    def export_report(self):
        if not self.app.can_action("export_report"):
            self.app.handle_error("Export error", AuthorizationError("Your role can not export reports."), "Export denied.")
            return
        path = filedialog.asksaveasfilename(
            title="Save report as",
            defaultextension=".xlsx",
            filetypes=[("Excel files", "*.xlsx")],
            initialfile=f"report_{self.period.get()}_{date.today().isoformat()}.xlsx",
        )
        if not path:
            return
        try:
            self.app.reporting.export_report_excel(path, **self._window_args())
            self.app.toast("Excel report exported.", kind="success")
        except Exception as e:
            self.app.handle_error("Export error", e, "Excel export failed.")

    def export_csv(self, key: str):
        if not self.app.can_action("export_report"):
            self.app.handle_error("Export error", AuthorizationError("Your role can not export reports."), "Export denied.")
            return
        path = filedialog.asksaveasfilename(
            title="Save CSV as",
            defaultextension=".csv",
            filetypes=[("CSV files", "*.csv")],
            initialfile=f"{key}_report_{date.today().isoformat()}.csv",
        )
        if not path:
            return
        reporting = self.app.reporting
        try:
            if key == "inventory":
                reporting.export_inventory_csv(path)
            elif key == "stock":
                reporting.export_stock_csv(path)
            else:
                exporter = {
                    "sales": reporting.export_sales_csv,
                    "purchases": reporting.export_purchases_csv,
                    "returns": reporting.export_returns_csv,
                    "profit_loss": reporting.export_profit_loss_csv,
                }[key]
                exporter(path, **self._window_args())
            self.app.toast("CSV exported.", kind="success")
        except Exception as e:
            self.app.handle_error("Export error", e, "CSV export failed.")
