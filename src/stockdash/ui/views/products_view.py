from __future__ import annotations

import tkinter as tk
from tkinter import ttk, messagebox
import logging

from stockdash.domain.errors import AuthorizationError, ValidationError
from stockdash.domain.stock import IN_STOCK, LOW_STOCK, OUT_OF_STOCK


log = logging.getLogger(__name__)

FORM_FIELDS = (
    ("sku", "SKU"),
    ("name", "Name"),
    ("opening_stock", "Opening stock"),
    ("reorder_point", "Reorder point"),
    ("purchase_price", "Purchase price"),
    ("sell_price", "Sell price"),
    ("barcode", "Barcode"),
)


class ProductsView:
    def __init__(self, notebook: ttk.Notebook, app):
        self.app = app
        self.frame = ttk.Frame(notebook)
        notebook.add(self.frame, text="Products")

        self.search_var = tk.StringVar()
        self.category_filter = tk.StringVar(value="")
        self.status_filter = tk.StringVar(value="")
        self.category_var = tk.StringVar()
        self.unit_var = tk.StringVar()
        self.entries: dict[str, ttk.Entry] = {}
        self._build()

    def _build(self):
        tab = self.frame
        style = ttk.Style(self.frame)
        style.configure("ProductsCompact.Treeview", rowheight=24, font=("Segoe UI", 9))
        style.configure("ProductsCompact.Treeview.Heading", font=("Segoe UI", 9, "bold"))

        left = ttk.LabelFrame(tab, text="Product", width=270)
        left.pack(side="left", fill="y", padx=(0, 6), pady=8)
        left.pack_propagate(False)

        right = ttk.LabelFrame(tab, text="Products list")
        right.pack(side="right", fill="both", expand=True, pady=8)

        row = 0
        for key, label in FORM_FIELDS[:2]:
            self.entries[key] = self._entry(left, label, row)
            row += 1
        self.category_combo = self._combo(left, "Category", self.category_var, row)
        self.unit_combo = self._combo(left, "Unit", self.unit_var, row + 1)
        row += 2
        for key, label in FORM_FIELDS[2:]:
            self.entries[key] = self._entry(left, label, row)
            row += 1

        btns = ttk.Frame(left)
        btns.grid(row=row, column=0, columnspan=2, sticky="ew", padx=8, pady=(6, 8))
        for c in range(2):
            btns.columnconfigure(c, weight=1)

        ttk.Button(btns, text="Add", command=self.on_add_product).grid(row=0, column=0, sticky="ew", padx=(0, 4), pady=2)
        ttk.Button(btns, text="Update", command=self.on_update_product).grid(row=0, column=1, sticky="ew", padx=(4, 0), pady=2)
        ttk.Button(btns, text="Delete", command=self.on_delete_product).grid(row=1, column=0, sticky="ew", padx=(0, 4), pady=2)
        ttk.Button(btns, text="Clear", command=self.clear_form).grid(row=1, column=1, sticky="ew", padx=(4, 0), pady=2)

        for entry in self.entries.values():
            entry.bind("<Return>", self._on_enter_add_product)

        stock_box = ttk.LabelFrame(left, text="Stock check")
        stock_box.grid(row=row + 1, column=0, columnspan=2, sticky="ew", padx=8, pady=(4, 8))
        ttk.Button(stock_box, text="Reconcile selected", command=self.on_reconcile).pack(fill="x", padx=8, pady=(8, 4))
        ttk.Button(stock_box, text="Reconcile all", command=self.on_reconcile_all).pack(fill="x", padx=8, pady=(0, 4))
        ttk.Button(stock_box, text="Copy as text", command=self.on_copy_text).pack(fill="x", padx=8, pady=(0, 8))

        filters = ttk.Frame(right)
        filters.pack(fill="x", padx=6, pady=(6, 0))
        ttk.Label(filters, text="Search").pack(side="left")
        search = ttk.Entry(filters, textvariable=self.search_var, width=28)
        search.pack(side="left", padx=6)
        search.bind("<KeyRelease>", lambda _e: self.refresh())
        ttk.Label(filters, text="Category").pack(side="left", padx=(10, 0))
        self.category_filter_combo = ttk.Combobox(filters, textvariable=self.category_filter, width=16, state="readonly")
        self.category_filter_combo.pack(side="left", padx=6)
        self.category_filter_combo.bind("<<ComboboxSelected>>", lambda _e: self.refresh())
        ttk.Label(filters, text="Status").pack(side="left", padx=(10, 0))
        status = ttk.Combobox(
            filters, textvariable=self.status_filter, width=14, state="readonly",
            values=["", IN_STOCK, LOW_STOCK, OUT_OF_STOCK],
        )
        status.pack(side="left", padx=6)
        status.bind("<<ComboboxSelected>>", lambda _e: self.refresh())

        tree_wrap = ttk.Frame(right)
        tree_wrap.pack(fill="both", expand=True, padx=6, pady=6)

        cols = ("id", "sku", "name", "category", "unit", "stock", "calc", "diff", "reorder", "cost", "price", "status")
        self.tree = ttk.Treeview(tree_wrap, columns=cols, show="headings", height=20, style="ProductsCompact.Treeview")
        heads = {
            "id": "ID", "sku": "SKU", "name": "Name", "category": "Category", "unit": "Unit",
            "stock": "Stock", "calc": "Calculated", "diff": "Diff", "reorder": "Reorder",
            "cost": "Purchase", "price": "Sell", "status": "Status",
        }
        widths = {
            "id": 44, "sku": 95, "name": 210, "category": 100, "unit": 60, "stock": 60, "calc": 78,
            "diff": 54, "reorder": 64, "cost": 88, "price": 88, "status": 92,
        }
        for c in cols:
            self.tree.heading(c, text=heads[c])
            self.tree.column(c, width=widths[c], anchor="w")

        self.tree.tag_configure("low", background="#fff4d6")
        self.tree.tag_configure("out", background="#ffdddd")
        self.tree.tag_configure("diff", foreground="#b91c1c")
        self.tree.bind("<<TreeviewSelect>>", self.on_select)

        vsb = ttk.Scrollbar(tree_wrap, orient="vertical", command=self.tree.yview)
        hsb = ttk.Scrollbar(tree_wrap, orient="horizontal", command=self.tree.xview)
        self.tree.configure(yscrollcommand=vsb.set, xscrollcommand=hsb.set)
        self.tree.grid(row=0, column=0, sticky="nsew")
        vsb.grid(row=0, column=1, sticky="ns")
        hsb.grid(row=1, column=0, sticky="ew")

        tree_wrap.columnconfigure(0, weight=1)
        tree_wrap.rowconfigure(0, weight=1)

    def _entry(self, parent, label, row):
        ttk.Label(parent, text=label).grid(row=row, column=0, sticky="w", padx=8, pady=4)
        e = ttk.Entry(parent, width=16)
        e.grid(row=row, column=1, sticky="ew", padx=8, pady=4)
        parent.columnconfigure(1, weight=1)
        return e

    def _combo(self, parent, label, var, row):
        ttk.Label(parent, text=label).grid(row=row, column=0, sticky="w", padx=8, pady=4)
        c = ttk.Combobox(parent, textvariable=var, width=14)
        c.grid(row=row, column=1, sticky="ew", padx=8, pady=4)
        return c

    @staticmethod
    def _parse_int(s: str, field: str, default: int | None = 0) -> int | None:
        s = (s or "").strip()
        if s == "":
            return default
        try:
            return int(float(s))
        except ValueError:
            raise ValidationError(f"{field} must be an integer.")

    def _form_values(self) -> dict:
        get = {k: e.get().strip() for k, e in self.entries.items()}
        return {
            "sku": get["sku"],
            "name": get["name"],
            "category": self.category_var.get().strip(),
            "unit": self.unit_var.get().strip(),
            "opening_stock": self._parse_int(get["opening_stock"], "Opening stock", 0),
            "reorder_point": self._parse_int(get["reorder_point"], "Reorder point", None),
            "purchase_price": get["purchase_price"] or 0,
            "sell_price": get["sell_price"] or 0,
            "barcode": get["barcode"],
        }

    def _selected_id(self) -> int:
        selected = self.tree.selection()
        if not selected:
            raise ValidationError("Select a product.")
        return int(self.tree.item(selected[0], "values")[0])

    def _on_enter_add_product(self, _event=None):
        self.on_add_product()
        return "break"

    def on_add_product(self):
        try:
            if not self.app.can_action("manage_products"):
                raise AuthorizationError("Your role can not create products.")
            values = self._form_values()
            pid = self.app.inventory.add_product(**values)
            self.app.toast(f"Product added (ID {pid}).", kind="success")
            self.clear_form()
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Add product", e, "Failed to add product.")

    def on_update_product(self):
        try:
            if not self.app.can_action("manage_products"):
                raise AuthorizationError("Your role can not edit products.")
            pid = self._selected_id()
            values = self._form_values()
            values.pop("opening_stock")
            if values["reorder_point"] is None:
                values.pop("reorder_point")
            self.app.inventory.update_product(pid, **values)
            self.app.toast("Product updated.", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Update product", e, "Failed to update product.")

    def on_delete_product(self):
        try:
            if not self.app.can_action("delete_product"):
                raise AuthorizationError("Only admin can delete products.")

            selected = self.tree.selection()
            if not selected:
                raise ValidationError("Select a product.")

            values = self.tree.item(selected[0], "values")
            product_id = int(values[0])
            product_name = str(values[2])

            confirmed = messagebox.askyesno(
                "Confirm delete",
                f"Delete product '{product_name}' (ID {product_id})?\n\nProducts used by transactions can not be deleted.",
                parent=self.frame,
            )
            if not confirmed:
                return

            self.app.inventory.delete_product(product_id)
            self.app.toast("Product deleted.", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Delete product", e, "Failed to delete product.")

    def on_reconcile(self):
        try:
            if not self.app.can_action("reconcile_stock"):
                raise AuthorizationError("Your role can not reconcile stock.")
            level = self.app.stock.reconcile(self._selected_id())
            self.app.toast(f"{level.product.sku}: stock set to {level.product.stock}.", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Reconcile", e, "Stock reconcile failed.")

    def on_reconcile_all(self):
        try:
            if not self.app.can_action("reconcile_stock"):
                raise AuthorizationError("Your role can not reconcile stock.")
            fixed = self.app.stock.reconcile_all()
            self.app.toast(f"Reconciled {fixed} product(s).", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Reconcile", e, "Stock reconcile failed.")

    def on_copy_text(self):
        ids = [int(self.tree.item(i, "values")[0]) for i in self.tree.selection()] or None
        text = self.app.inventory.export_text(ids)
        self.frame.clipboard_clear()
        self.frame.clipboard_append(text)
        self.app.toast("Product list copied to clipboard.", kind="success", ms=1500)

    def on_select(self, _evt=None):
        selected = self.tree.selection()
        if len(selected) != 1:
            return
        product = self.app.inventory.get_product(int(self.tree.item(selected[0], "values")[0]))
        self.clear_form(focus=False)
        for key in self.entries:
            self.entries[key].insert(0, str(getattr(product, key) or ""))
        self.category_var.set(product.category)
        self.unit_var.set(product.unit)

    def clear_form(self, focus: bool = True):
        for e in self.entries.values():
            e.delete(0, tk.END)
        self.category_var.set("")
        self.unit_var.set("")
        if focus:
            self.entries["sku"].focus_set()

    def refresh(self):
        for item in self.tree.get_children():
            self.tree.delete(item)

        self.category_combo["values"] = self.app.catalog.names("category")
        self.unit_combo["values"] = self.app.catalog.names("unit")
        self.category_filter_combo["values"] = [""] + self.app.inventory.categories_in_use()

        levels = {lvl.product.id: lvl for lvl in self.app.stock.stock_levels()}
        rows = self.app.inventory.list_products(
            search=self.search_var.get(),
            category=self.category_filter.get(),
            status=self.status_filter.get(),
        )
        for p in rows:
            level = levels.get(p.id)
            calc = level.calculated if level else p.stock
            diff = level.diff if level else 0
            tags = []
            if p.status == OUT_OF_STOCK:
                tags.append("out")
            elif p.status == LOW_STOCK:
                tags.append("low")
            if diff:
                tags.append("diff")
            self.tree.insert(
                "", "end",
                values=(
                    p.id, p.sku, p.name, p.category, p.unit, p.stock, calc, f"{diff:+d}" if diff else "0",
                    p.reorder_point, self.app.money(p.purchase_price), self.app.money(p.sell_price), p.status,
                ),
                tags=tuple(tags),
            )

    def select_product_in_tree(self, sku: str):
        for iid in self.tree.get_children():
            vals = self.tree.item(iid, "values")
            if len(vals) >= 2 and str(vals[1]) == str(sku):
                self.tree.selection_set(iid)
                self.tree.focus(iid)
                self.tree.see(iid)
                return
