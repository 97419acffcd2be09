from __future__ import annotations

import tkinter as tk
from tkinter import ttk, messagebox
import logging
from pathlib import Path

from stockdash.domain.errors import AppError
from stockdash.domain.money import format_money
from stockdash.ui.views.products_view import ProductsView
from stockdash.ui.views.pos_view import PosView
from stockdash.ui.views.sales_view import SalesView
from stockdash.ui.views.purchases_view import PurchasesView
from stockdash.ui.views.returns_view import ReturnsView
from stockdash.ui.views.vouchers_view import VouchersView
from stockdash.ui.views.reports_view import ReportsView
from stockdash.ui.views.admin_view import AdminView

log = logging.getLogger(__name__)


class App(tk.Tk):
    def __init__(self, container, current_user, db_path: str, logs_dir: str):
        super().__init__()
        self.title("Stock Dashboard")
        self.geometry("1320x760")
        self.minsize(1120, 640)

        self.container = container
        self.settings = container.settings
        self.inventory = container.inventory
        self.stock = container.stock
        self.sales = container.sales
        self.purchases = container.purchases
        self.sales_returns = container.sales_returns
        self.purchase_returns = container.purchase_returns
        self.sales_vouchers = container.sales_vouchers
        self.purchase_vouchers = container.purchase_vouchers
        self.catalog = container.catalog
        self.companies = container.companies
        self.pos = container.pos
        self.excel = container.excel
        self.reporting = container.reporting
        self.documents = container.documents
        self.auth = container.auth
        self.backup = container.backup
        self.sync = container.sync
        self.current_user = current_user

        self.db_path = db_path
        self.logs_dir = logs_dir

        self.status_var = tk.StringVar(value="")
        self._toast_after_id = None

        self._build_styles()
        self._build_topbar()

        main = ttk.Frame(self)
        main.pack(fill="both", expand=True, padx=12, pady=(0, 8))

        self.sidebar = ttk.Frame(main)
        self.sidebar.pack(side="left", fill="y", padx=(0, 10))

        self.content = ttk.Frame(main)
        self.content.pack(side="right", fill="both", expand=True)

        self.nb = ttk.Notebook(self.content, style="Side.TNotebook")
        self.nb.pack(fill="both", expand=True)

        # Views (tabs hidden)
        self.products_view = ProductsView(self.nb, self)
        self.pos_view = PosView(self.nb, self)
        self.sales_view = SalesView(self.nb, self)
        self.purchases_view = PurchasesView(self.nb, self)
        self.returns_view = ReturnsView(self.nb, self)
        self.vouchers_view = VouchersView(self.nb, self)
        self.reports_view = ReportsView(self.nb, self)
        self.admin_view = AdminView(self.nb, self)

        self._build_sidebar()
        self._build_status_bar()

        self.refresh_all(show_toast=False)
        self.toast(f"Signed in as {current_user.username} ({current_user.role}).", kind="info", ms=2000)

    def _build_styles(self):
        style = ttk.Style(self)
        style.layout("Side.TNotebook.Tab", [])
        style.configure("Side.TNotebook", tabmargins=0)

        try:
            style.configure("Big.TButton", padding=(14, 10))
            style.configure("Title.TLabel", font=("Segoe UI", 12, "bold"))
            style.configure("KPI.TLabel", font=("Segoe UI", 10))
            style.configure("KPIValue.TLabel", font=("Segoe UI", 11, "bold"))
            style.configure("Modern.Treeview", rowheight=24)
        except tk.TclError as e:
            log.exception("UI style setup failed: %s", e)

    def _build_topbar(self):
        top = ttk.Frame(self)
        top.pack(fill="x", padx=12, pady=10)

        ttk.Label(top, text="Stock Dashboard", style="Title.TLabel").pack(side="left")
        ttk.Label(top, text=f"User: {self.current_user.username} ({self.current_user.role})").pack(side="left", padx=16)

        # Show only file name (not full path)
        ttk.Label(top, text=f"DB: {Path(self.db_path).name}").pack(side="right")

    def _build_sidebar(self):
        box = ttk.LabelFrame(self.sidebar, text="Quick Actions")
        box.pack(fill="x", pady=(0, 10))

        entries = [
            ("📦 Products", self.products_view),
            ("🛒 Point of Sale", self.pos_view),
            ("🧾 Sales", self.sales_view),
            ("🚚 Purchase Orders", self.purchases_view),
            ("↩ Returns", self.returns_view),
            ("🗂 Vouchers", self.vouchers_view),
            ("📊 Reports", self.reports_view),
            ("⚙ Admin", self.admin_view),
        ]
        for i, (text, view) in enumerate(entries):
            ttk.Button(
                box, text=text, style="Big.TButton",
                command=lambda v=view: self.show_view(v),
            ).pack(fill="x", padx=10, pady=(10 if i == 0 else 4, 4))

        ttk.Button(box, text="🔄 Refresh", style="Big.TButton",
                   command=self.refresh_all).pack(fill="x", padx=10, pady=(6, 10))

        kpi = ttk.LabelFrame(self.sidebar, text="Dashboard")
        kpi.pack(fill="x")

        self.k_products = ttk.Label(kpi, text="-", style="KPIValue.TLabel")
        self.k_low = ttk.Label(kpi, text="-", style="KPIValue.TLabel")
        self.k_out = ttk.Label(kpi, text="-", style="KPIValue.TLabel")
        self.k_value = ttk.Label(kpi, text="-", style="KPIValue.TLabel")
        self.k_orders = ttk.Label(kpi, text="-", style="KPIValue.TLabel")
        self.k_revenue = ttk.Label(kpi, text="-", style="KPIValue.TLabel")

        labels = ["Products", "Low stock", "Out of stock", "Inventory value", "Orders (month)", "Revenue (month)"]
        widgets = [self.k_products, self.k_low, self.k_out, self.k_value, self.k_orders, self.k_revenue]
        for i, (lab, w) in enumerate(zip(labels, widgets)):
            ttk.Label(kpi, text=lab, style="KPI.TLabel").grid(
                row=i, column=0, sticky="w", padx=10, pady=(8 if i == 0 else 2, 2)
            )
            w.grid(row=i, column=1, sticky="e", padx=10, pady=(8 if i == 0 else 2, 2))

        kpi.columnconfigure(0, weight=1)
        kpi.columnconfigure(1, weight=1)

        lowbox = ttk.LabelFrame(self.sidebar, text="Low Stock (double click)")
        lowbox.pack(fill="both", expand=True, pady=(10, 0))

        self.low_list = tk.Listbox(lowbox, height=10)
        self.low_list.pack(fill="both", expand=True, padx=10, pady=10)
        self.low_list.bind("<Double-1>", self.on_low_stock_open)
        self._low_items: list[str] = []

    def _build_status_bar(self):
        bar = ttk.Frame(self)
        bar.pack(fill="x", padx=12, pady=(0, 10))
        ttk.Label(bar, textvariable=self.status_var).pack(side="left")
        ttk.Label(bar, text=f"Logs: {self.logs_dir}").pack(side="right")

    def show_view(self, view):
        self.nb.select(view.frame)
        view.refresh()

    def money(self, amount) -> str:
        return format_money(amount, self.settings.currency_symbol)

    def toast(self, msg: str, kind: str = "info", ms: int = 2500):
        prefix = {"info": "ℹ ", "success": "✅ ", "warn": "⚠ ", "error": "❌ "}.get(kind, "")
        self.status_var.set(prefix + msg)
        if self._toast_after_id is not None:
            try:
                self.after_cancel(self._toast_after_id)
            except tk.TclError:
                pass
        self._toast_after_id = self.after(ms, lambda: self.status_var.set(""))

    def can_action(self, action: str) -> bool:
        return self.auth.can(self.current_user, action)

    def handle_error(self, title: str, err: Exception, toast_text: str):
        """Known errors are shown as-is; anything else is logged with a traceback."""
        if isinstance(err, AppError):
            log.warning("%s: %s", title, err)
            messagebox.showwarning(title, str(err), parent=self)
        else:
            log.exception("%s: %s", title, err)
            messagebox.showerror(title, f"{toast_text}\n\n{err}", parent=self)
        self.toast(toast_text, kind="error")

    # ---------- Refresh ----------
    def refresh_all(self, show_toast: bool = True):
        for view in (
            self.products_view,
            self.pos_view,
            self.sales_view,
            self.purchases_view,
            self.returns_view,
            self.vouchers_view,
            self.admin_view,
        ):
            view.refresh()

        self.refresh_kpis()
        self.refresh_low_stock_panel()

        if show_toast:
            self.toast("Refreshed.", kind="info", ms=1200)

    def refresh_kpis(self):
        try:
            m = self.reporting.dashboard_metrics()
            self.k_products.config(text=str(m.total_products))
            self.k_low.config(text=str(m.low_stock_count))
            self.k_out.config(text=str(m.out_of_stock_count))
            self.k_value.config(text=self.money(m.inventory_value))
            self.k_orders.config(text=str(m.orders_this_month))
            self.k_revenue.config(text=self.money(m.revenue_this_month))
        except AppError as e:
            log.exception("KPI refresh failed: %s", e)

    def refresh_low_stock_panel(self):
        self.low_list.delete(0, tk.END)
        self._low_items = []
        for p in self.reporting.low_stock_products():
            self.low_list.insert(tk.END, f"{p.sku} - {p.name} ({p.stock}/{p.reorder_point})")
            self._low_items.append(p.sku)

    def on_low_stock_open(self, _evt=None):
        sel = self.low_list.curselection()
        if not sel:
            return
        sku = self._low_items[sel[0]]
        self.nb.select(self.products_view.frame)
        self.products_view.select_product_in_tree(sku)
        self.toast(f"Selected low stock: {sku}", kind="warn", ms=2000)
