from __future__ import annotations

import tkinter as tk
from tkinter import ttk, messagebox, filedialog, simpledialog
import logging

from stockdash.domain.errors import AuthorizationError, ValidationError
from stockdash.services.product_picker import ProductPicker
from stockdash.services.purchase_service import PURCHASE_STATUSES


log = logging.getLogger(__name__)


class PurchasesView:
    """Multi-line purchase orders: build an order, then track its status."""

    def __init__(self, notebook: ttk.Notebook, app):
        self.app = app
        self.frame = ttk.Frame(notebook)
        notebook.add(self.frame, text="Purchase Orders")

        self.picker = ProductPicker(app.container.repo, page_size=app.settings.page_size)
        self.search_var = tk.StringVar()
        self.supplier_var = tk.StringVar()
        self.status_var = tk.StringVar(value=PURCHASE_STATUSES[0])
        self.order_search = tk.StringVar()
        self.lines: list[dict] = []
        self._shown: list[int] = []

        self._build()

    def _build(self):
        tab = self.frame

        builder = ttk.LabelFrame(tab, text="New purchase order")
        builder.pack(fill="x", padx=10, pady=10)

        pick = ttk.Frame(builder)
        pick.pack(side="left", fill="y", padx=10, pady=8)
        ttk.Label(pick, text="Find product").pack(anchor="w")
        search = ttk.Entry(pick, textvariable=self.search_var, width=30)
        search.pack(anchor="w", pady=4)
        search.bind("<KeyRelease>", self.on_search)
        self.product_list = tk.Listbox(pick, height=8, width=44)
        self.product_list.pack(fill="y", expand=True)
        self.product_list.bind("<Double-1>", lambda _e: self.add_line())

        mid = ttk.Frame(builder)
        mid.pack(side="left", fill="both", expand=True, padx=10, pady=8)

        form = ttk.Frame(mid)
        form.pack(fill="x")
        ttk.Label(form, text="Qty").grid(row=0, column=0, sticky="w")
        self.qty_e = ttk.Entry(form, width=8)
        self.qty_e.grid(row=0, column=1, sticky="w", padx=6)
        ttk.Label(form, text="Unit cost (blank = purchase price)").grid(row=0, column=2, sticky="w", padx=(10, 0))
        self.cost_e = ttk.Entry(form, width=10)
        self.cost_e.grid(row=0, column=3, sticky="w", padx=6)
        ttk.Button(form, text="Add line", command=self.add_line).grid(row=0, column=4, padx=6)
        self.qty_e.bind("<Return>", lambda _e: self.add_line())

        cols = ("id", "name", "qty", "cost", "line")
        self.lines_tree = ttk.Treeview(mid, columns=cols, show="headings", height=6, style="Modern.Treeview")
        heads = {"id": "ID", "name": "Product", "qty": "Qty", "cost": "Unit cost", "line": "Line total"}
        widths = {"id": 44, "name": 260, "qty": 60, "cost": 100, "line": 110}
        for c in cols:
            self.lines_tree.heading(c, text=heads[c])
            self.lines_tree.column(c, width=widths[c], anchor="w")
        self.lines_tree.pack(fill="both", expand=True, pady=6)
        ttk.Button(mid, text="Remove line", command=self.remove_line).pack(anchor="w")

        side = ttk.Frame(builder)
        side.pack(side="right", fill="y", padx=10, pady=8)
        ttk.Label(side, text="Supplier").pack(anchor="w")
        ttk.Entry(side, textvariable=self.supplier_var, width=24).pack(anchor="w", pady=(0, 6))
        ttk.Label(side, text="Date (YYYY-MM-DD)").pack(anchor="w")
        self.date_e = ttk.Entry(side, width=14)
        self.date_e.pack(anchor="w", pady=(0, 6))
        ttk.Label(side, text="Status").pack(anchor="w")
        ttk.Combobox(side, textvariable=self.status_var, values=list(PURCHASE_STATUSES), width=12, state="readonly")\
            .pack(anchor="w", pady=(0, 6))
        ttk.Label(side, text="Notes").pack(anchor="w")
        self.notes = tk.Text(side, width=26, height=3)
        self.notes.pack(anchor="w")
        ttk.Button(side, text="Create order", style="Big.TButton", command=self.create_order).pack(fill="x", pady=(8, 0))

        orders = ttk.LabelFrame(tab, text="Purchase orders (select to see lines)")
        orders.pack(fill="both", expand=True, padx=10, pady=(0, 10))

        bar = ttk.Frame(orders)
        bar.pack(fill="x", padx=10, pady=6)
        ttk.Label(bar, text="Search").pack(side="left")
        ttk.Entry(bar, textvariable=self.order_search, width=24).pack(side="left", padx=6)
        ttk.Button(bar, text="Refresh", command=self.refresh_orders).pack(side="left")
        ttk.Button(bar, text="Delete order", command=self.on_delete_order).pack(side="right")
        ttk.Button(bar, text="PO PDF", command=self.on_po_pdf).pack(side="right", padx=6)
        ttk.Button(bar, text="Return line...", command=self.on_return_line).pack(side="right", padx=6)
        ttk.Button(bar, text="Set status...", command=self.on_set_status).pack(side="right", padx=6)

        cols = ("po", "date", "supplier", "lines", "qty", "total", "status")
        self.orders_tree = ttk.Treeview(orders, columns=cols, show="headings", height=7, style="Modern.Treeview")
        heads = {"po": "PO", "date": "Date", "supplier": "Supplier", "lines": "Lines", "qty": "Units", "total": "Total", "status": "Status"}
        widths = {"po": 90, "date": 90, "supplier": 220, "lines": 60, "qty": 70, "total": 110, "status": 90}
        for c in cols:
            self.orders_tree.heading(c, text=heads[c])
            self.orders_tree.column(c, width=widths[c], anchor="w")
        self.orders_tree.pack(fill="both", expand=True, padx=10)
        self.orders_tree.bind("<<TreeviewSelect>>", self.on_order_select)

        cols = ("id", "product", "qty", "cost", "total", "status")
        self.items_tree = ttk.Treeview(orders, columns=cols, show="headings", height=4, style="Modern.Treeview")
        heads = {"id": "Line", "product": "Product", "qty": "Qty", "cost": "Unit cost", "total": "Total", "status": "Status"}
        for c in cols:
            self.items_tree.heading(c, text=heads[c])
            self.items_tree.column(c, width=120 if c != "product" else 260, anchor="w")
        self.items_tree.pack(fill="x", padx=10, pady=(6, 10))

    # ---------- builder ----------
    def on_search(self, _evt=None):
        self.picker.search(self.search_var.get())
        self.refresh_product_list()

    def refresh_product_list(self):
        self.product_list.delete(0, tk.END)
        self._shown = []
        for p in self.picker.display_products():
            self.product_list.insert(tk.END, f"{p.sku} - {p.name} (stock: {p.stock})")
            self._shown.append(p.id)

    def add_line(self):
        sel = self.product_list.curselection()
        try:
            if not sel:
                raise ValidationError("Pick a product from the list.")
            picked = self.picker.select(self._shown[sel[0]])
            try:
                qty = int(self.qty_e.get().strip())
            except ValueError:
                raise ValidationError("Qty must be an integer.")
            if qty <= 0:
                raise ValidationError("Qty must be >= 1.")
            raw_cost = self.cost_e.get().strip()
            cost = float(raw_cost) if raw_cost else picked.unit_price
        except Exception as e:
            self.app.handle_error("Purchase line", e, "Could not add line.")
            return

        self.lines.append({
            "product_id": picked.product.id,
            "name": picked.product.name,
            "quantity": qty,
            "unit_price": cost,
        })
        self.qty_e.delete(0, tk.END)
        self.cost_e.delete(0, tk.END)
        self.search_var.set("")
        self.refresh_product_list()
        self.refresh_lines()

    def remove_line(self):
        sel = self.lines_tree.selection()
        if not sel:
            return
        index = self.lines_tree.index(sel[0])
        del self.lines[index]
        self.refresh_lines()

    def refresh_lines(self):
        for item in self.lines_tree.get_children():
            self.lines_tree.delete(item)
        for ln in self.lines:
            self.lines_tree.insert("", "end", values=(
                ln["product_id"], ln["name"], ln["quantity"],
                self.app.money(ln["unit_price"]), self.app.money(ln["quantity"] * ln["unit_price"]),
            ))

    def create_order(self):
        try:
            if not self.app.can_action("create_purchase"):
                raise AuthorizationError("Your role can not create purchase orders.")
            po_id = self.app.purchases.create_order(
                self.supplier_var.get(),
                [{k: ln[k] for k in ("product_id", "quantity", "unit_price")} for ln in self.lines],
                date=self.date_e.get().strip() or None,
                status=self.status_var.get(),
                notes=self.notes.get("1.0", "end").strip() or None,
            )
        except Exception as e:
            self.app.handle_error("Purchase order", e, "Purchase order failed.")
            return

        self.lines = []
        self.refresh_lines()
        self.supplier_var.set("")
        self.date_e.delete(0, tk.END)
        self.notes.delete("1.0", "end")
        self.app.toast(f"Purchase order {po_id} saved.", kind="success")
        self.app.refresh_all(show_toast=False)

    # ---------- orders ----------
    def refresh(self):
        self.picker.reset()
        self.picker.load_more()
        self.refresh_product_list()
        self.refresh_lines()
        self.refresh_orders()

    def refresh_orders(self):
        for item in self.orders_tree.get_children():
            self.orders_tree.delete(item)
        for item in self.items_tree.get_children():
            self.items_tree.delete(item)
        for o in self.app.purchases.list_orders(search=self.order_search.get()):
            self.orders_tree.insert("", "end", iid=o.purchase_order_id, values=(
                o.purchase_order_id, o.date, o.supplier, len(o.items), o.total_quantity,
                self.app.money(o.total_amount), o.status,
            ))

    def _selected_po(self) -> str | None:
        sel = self.orders_tree.selection()
        if not sel:
            messagebox.showwarning("Purchase orders", "Select an order.", parent=self.frame)
            return None
        return str(sel[0])

    def on_order_select(self, _evt=None):
        sel = self.orders_tree.selection()
        for item in self.items_tree.get_children():
            self.items_tree.delete(item)
        if not sel:
            return
        order = self.app.purchases.get_order(sel[0])
        for p in order.items:
            self.items_tree.insert("", "end", values=(
                p.id, p.product_name, p.quantity, self.app.money(p.unit_price), self.app.money(p.total_amount), p.status,
            ))

    def on_set_status(self):
        po = self._selected_po()
        if po is None:
            return
        status = simpledialog.askstring("Order status", f"New status ({', '.join(PURCHASE_STATUSES)})", parent=self.frame)
        if not status:
            return
        try:
            if not self.app.can_action("create_purchase"):
                raise AuthorizationError("Your role can not edit purchase orders.")
            changed = self.app.purchases.update_order_status(po, status.strip().capitalize())
            self.app.toast(f"{po}: {changed} line(s) updated.", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Order status", e, "Failed to update order.")

    def on_return_line(self):
        sel = self.items_tree.selection()
        if not sel:
            messagebox.showwarning("Purchase return", "Select an order line.", parent=self.frame)
            return
        line_id = int(self.items_tree.item(sel[0], "values")[0])
        qty = simpledialog.askinteger("Purchase return", "Quantity to return", parent=self.frame, minvalue=1)
        if not qty:
            return
        reason = simpledialog.askstring("Purchase return", "Reason", parent=self.frame)
        try:
            if not self.app.can_action("manage_returns"):
                raise AuthorizationError("Your role can not register returns.")
            rid = self.app.purchase_returns.add(line_id, qty, reason or "")
            self.app.toast(f"Purchase return #{rid} created (Pending).", kind="success")
            self.app.returns_view.refresh()
        except Exception as e:
            self.app.handle_error("Purchase return", e, "Failed to create return.")

    def on_delete_order(self):
        po = self._selected_po()
        if po is None:
            return
        if not messagebox.askyesno("Confirm delete", f"Delete purchase order {po} and all its lines?", parent=self.frame):
            return
        try:
            if not self.app.can_action("clear_data"):
                raise AuthorizationError("Your role can not delete purchase orders.")
            removed = self.app.purchases.delete_order(po)
            self.app.toast(f"{po} deleted ({removed} line(s)).", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Delete order", e, "Failed to delete order.")

    def on_po_pdf(self):
        po = self._selected_po()
        if po is None:
            return
        path = filedialog.asksaveasfilename(
            title="Save purchase order as",
            defaultextension=".pdf",
            filetypes=[("PDF files", "*.pdf")],
            initialfile=f"{po}.pdf",
        )
        if not path:
            return
        try:
            self.app.documents.purchase_order_pdf(self.app.purchases.get_order(po), path, self.app.admin_view.current_company())
            self.app.toast("Purchase order PDF saved.", kind="success")
        except Exception as e:
            self.app.handle_error("PO PDF", e, "PDF export failed.")
