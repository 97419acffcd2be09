from __future__ import annotations

import tkinter as tk
from tkinter import ttk, messagebox, filedialog, simpledialog
import logging

from stockdash.domain.errors import AuthorizationError, ValidationError
from stockdash.services.sales_service import SALE_STATUSES


log = logging.getLogger(__name__)

PERIODS = ("all", "today", "week", "month")


class SalesView:
    def __init__(self, notebook: ttk.Notebook, app):
        self.app = app
        self.frame = ttk.Frame(notebook)
        notebook.add(self.frame, text="Sales")

        self.sale_pick = tk.StringVar()
        self.status_var = tk.StringVar(value=SALE_STATUSES[0])
        self.period = tk.StringVar(value="month")
        self.status_filter = tk.StringVar(value="")
        self.search_var = tk.StringVar()

        self.sale_all_choices: list[str] = []
        self.sale_product_map: dict[str, int] = {}

        self._build()

    def _build(self):
        tab = self.frame

        top = ttk.LabelFrame(tab, text="Record sale")
        top.pack(fill="x", padx=10, pady=10)

        ttk.Label(top, text="Product").grid(row=0, column=0, padx=8, pady=6, sticky="w")
        self.combo = ttk.Combobox(top, textvariable=self.sale_pick, width=46)
        self.combo.grid(row=0, column=1, columnspan=3, padx=8, pady=6, sticky="w")
        self.combo.bind("<KeyRelease>", lambda e: self._filter_combobox(self.combo, self.sale_all_choices, self.sale_pick.get()))

        ttk.Label(top, text="Qty").grid(row=0, column=4, padx=8, pady=6, sticky="w")
        self.qty_e = ttk.Entry(top, width=8)
        self.qty_e.grid(row=0, column=5, padx=8, pady=6, sticky="w")

        ttk.Label(top, text="Unit price").grid(row=0, column=6, padx=8, pady=6, sticky="w")
        self.price_e = ttk.Entry(top, width=10)
        self.price_e.grid(row=0, column=7, padx=8, pady=6, sticky="w")

        ttk.Label(top, text="Customer").grid(row=1, column=0, padx=8, pady=6, sticky="w")
        self.customer_e = ttk.Entry(top, width=24)
        self.customer_e.grid(row=1, column=1, padx=8, pady=6, sticky="w")

        ttk.Label(top, text="Date").grid(row=1, column=2, padx=8, pady=6, sticky="w")
        self.date_e = ttk.Entry(top, width=12)
        self.date_e.grid(row=1, column=3, padx=8, pady=6, sticky="w")

        ttk.Label(top, text="Status").grid(row=1, column=4, padx=8, pady=6, sticky="w")
        ttk.Combobox(top, textvariable=self.status_var, values=list(SALE_STATUSES), width=12, state="readonly")\
            .grid(row=1, column=5, padx=8, pady=6, sticky="w")

        ttk.Button(top, text="Save sale", style="Big.TButton", command=self.add_sale)\
            .grid(row=0, column=8, rowspan=2, padx=10, pady=6)

        self.qty_e.bind("<Return>", lambda _e: self.add_sale())

        hist = ttk.LabelFrame(tab, text="Sales History")
        hist.pack(fill="both", expand=True, padx=10, pady=(0, 10))

        top2 = ttk.Frame(hist)
        top2.pack(fill="x", padx=10, pady=8)

        ttk.Label(top2, text="Period").pack(side="left")
        ttk.Combobox(top2, textvariable=self.period, values=list(PERIODS), width=8, state="readonly")\
            .pack(side="left", padx=6)
        ttk.Label(top2, text="Status").pack(side="left", padx=(10, 0))
        ttk.Combobox(top2, textvariable=self.status_filter, values=[""] + list(SALE_STATUSES), width=12, state="readonly")\
            .pack(side="left", padx=6)
        ttk.Label(top2, text="Search").pack(side="left", padx=(10, 0))
        ttk.Entry(top2, textvariable=self.search_var, width=20).pack(side="left", padx=6)
        ttk.Button(top2, text="Refresh", command=self.refresh_history).pack(side="left", padx=10)

        ttk.Button(top2, text="Delete", command=self.on_delete).pack(side="right")
        ttk.Button(top2, text="Invoice PDF", command=self.on_invoice_pdf).pack(side="right", padx=6)
        ttk.Button(top2, text="Return...", command=self.on_return).pack(side="right", padx=6)
        ttk.Button(top2, text="Set status...", command=self.on_set_status).pack(side="right", padx=6)

        cols = ("id", "date", "product", "qty", "unit", "total", "status", "customer", "notes")
        self.sales_tree = ttk.Treeview(hist, columns=cols, show="headings", height=12, style="Modern.Treeview")
        heads = {
            "id": "ID", "date": "Date", "product": "Product", "qty": "Qty", "unit": "Unit price",
            "total": "Total", "status": "Status", "customer": "Customer", "notes": "Notes",
        }
        widths = {"id": 50, "date": 90, "product": 220, "qty": 50, "unit": 90, "total": 100, "status": 90, "customer": 150, "notes": 240}
        for c in cols:
            self.sales_tree.heading(c, text=heads[c])
            self.sales_tree.column(c, width=widths[c], anchor="w")
        self.sales_tree.pack(fill="both", expand=True, padx=10, pady=(0, 10))

    def _filter_combobox(self, combo: ttk.Combobox, all_choices: list[str], typed: str):
        typed = typed.strip().lower()
        combo["values"] = all_choices if not typed else [c for c in all_choices if typed in c.lower()]

    def refresh_product_choices(self):
        choices = []
        mapping = {}
        for p in self.app.inventory.list_products():
            label = f"{p.sku} - {p.name} (stock: {p.stock})"
            choices.append(label)
            mapping[label] = p.id
        self.sale_all_choices = choices
        self.sale_product_map = mapping
        self.combo["values"] = choices

    def refresh(self):
        self.refresh_product_choices()
        self.refresh_history()

    def add_sale(self):
        try:
            if not self.app.can_action("create_sale"):
                raise AuthorizationError("Your role can not register sales.")
            product_id = self.sale_product_map.get(self.sale_pick.get().strip())
            if not product_id:
                raise ValidationError("Pick a product from the dropdown list.")
            try:
                qty = int(self.qty_e.get().strip())
            except ValueError:
                raise ValidationError("Qty must be an integer.")
            sale_id = self.app.sales.add_sale(
                product_id,
                qty,
                unit_price=self.price_e.get().strip() or None,
                date=self.date_e.get().strip() or None,
                status=self.status_var.get(),
                customer_name=self.customer_e.get().strip() or None,
            )
        except Exception as e:
            self.app.handle_error("Sale failed", e, "Sale failed.")
            return

        self.app.toast(f"Sale saved (ID {sale_id}).", kind="success")
        for e in (self.qty_e, self.price_e, self.customer_e, self.date_e):
            e.delete(0, tk.END)
        self.sale_pick.set("")
        self.app.refresh_all(show_toast=False)

    def _selected_sale_id(self) -> int | None:
        sel = self.sales_tree.selection()
        if not sel:
            messagebox.showwarning("Sales", "Select a sale.", parent=self.frame)
            return None
        return int(self.sales_tree.item(sel[0], "values")[0])

    def on_set_status(self):
        sale_id = self._selected_sale_id()
        if sale_id is None:
            return
        status = simpledialog.askstring("Sale status", f"New status ({', '.join(SALE_STATUSES)})", parent=self.frame)
        if not status:
            return
        try:
            if not self.app.can_action("create_sale"):
                raise AuthorizationError("Your role can not edit sales.")
            self.app.sales.update_sale(sale_id, status=status.strip().capitalize())
            self.app.toast("Sale updated.", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Update sale", e, "Failed to update sale.")

    def on_return(self):
        sale_id = self._selected_sale_id()
        if sale_id is None:
            return
        qty = simpledialog.askinteger("Sales return", "Quantity to return", parent=self.frame, minvalue=1)
        if not qty:
            return
        reason = simpledialog.askstring("Sales return", "Reason", parent=self.frame)
        try:
            if not self.app.can_action("manage_returns"):
                raise AuthorizationError("Your role can not register returns.")
            rid = self.app.sales_returns.add(sale_id, qty, reason or "")
            self.app.toast(f"Return #{rid} created (Pending).", kind="success")
            self.app.returns_view.refresh()
        except Exception as e:
            self.app.handle_error("Sales return", e, "Failed to create return.")

    def on_delete(self):
        sale_id = self._selected_sale_id()
        if sale_id is None:
            return
        if not messagebox.askyesno("Confirm delete", f"Delete sale #{sale_id}?", parent=self.frame):
            return
        try:
            if not self.app.can_action("clear_data"):
                raise AuthorizationError("Your role can not delete sales.")
            self.app.sales.delete_sale(sale_id)
            self.app.toast("Sale deleted.", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Delete sale", e, "Failed to delete sale.")

    def on_invoice_pdf(self):
        sale_id = self._selected_sale_id()
        if sale_id is None:
            return
        path = filedialog.asksaveasfilename(
            title="Save invoice as",
            defaultextension=".pdf",
            filetypes=[("PDF files", "*.pdf")],
            initialfile=f"invoice_{sale_id}.pdf",
        )
        if not path:
            return
        try:
            self.app.documents.sales_invoice_pdf(self.app.sales.get_sale(sale_id), path, self.app.admin_view.current_company())
            self.app.toast("Invoice saved.", kind="success")
        except Exception as e:
            self.app.handle_error("Invoice", e, "Invoice export failed.")

    # ---------- history ----------
    def refresh_history(self):
        try:
            start, end = self.app.reporting.window(self.period.get())
        except ValidationError:
            start, end = None, None

        rows = self.app.sales.list_sales(start=start, end=end, status=self.status_filter.get(), search=self.search_var.get())

        for item in self.sales_tree.get_children():
            self.sales_tree.delete(item)

        for s in rows:
            self.sales_tree.insert("", "end", values=(
                s.id, s.date, s.product_name, s.quantity, self.app.money(s.unit_price), self.app.money(s.total_amount),
                s.status, s.customer_name or "", (s.notes or "")[:140],
            ))
