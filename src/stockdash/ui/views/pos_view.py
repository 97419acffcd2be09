from __future__ import annotations

import tkinter as tk
from tkinter import ttk, messagebox
import logging

from stockdash.domain.errors import AuthorizationError, ValidationError
from stockdash.services.pos_service import POS_PAYMENT_METHODS
from stockdash.services.product_picker import ProductPicker


log = logging.getLogger(__name__)


class PosView:
    def __init__(self, notebook: ttk.Notebook, app):
        self.app = app
        self.frame = ttk.Frame(notebook)
        notebook.add(self.frame, text="Point of Sale")

        self.picker = ProductPicker(app.container.repo, page_size=app.settings.page_size)
        self.search_var = tk.StringVar()
        self.customer_var = tk.StringVar()
        self.payment_var = tk.StringVar(value=POS_PAYMENT_METHODS[0])
        self.total_var = tk.StringVar(value="Total: -")
        self._shown: list[int] = []

        self._build()

    def _build(self):
        tab = self.frame

        left = ttk.LabelFrame(tab, text="Products (double click to add)")
        left.pack(side="left", fill="both", expand=True, padx=(0, 10), pady=8)

        top = ttk.Frame(left)
        top.pack(fill="x", padx=10, pady=8)
        ttk.Label(top, text="Search (name, SKU, barcode)").pack(side="left")
        search = ttk.Entry(top, textvariable=self.search_var, width=32)
        search.pack(side="left", padx=10)
        search.bind("<KeyRelease>", self.on_search)
        search.bind("<Return>", lambda _e: self.add_selected())
        ttk.Button(top, text="Load more", command=self.on_load_more).pack(side="left")

        self.product_list = tk.Listbox(left, height=18)
        self.product_list.pack(fill="both", expand=True, padx=10, pady=(0, 10))
        self.product_list.bind("<Double-1>", lambda _e: self.add_selected())

        right = ttk.LabelFrame(tab, text="Cart")
        right.pack(side="right", fill="both", expand=True, pady=8)

        cols = ("id", "sku", "name", "qty", "unit", "line")
        self.cart_tree = ttk.Treeview(right, columns=cols, show="headings", height=12, style="Modern.Treeview")
        heads = {"id": "ID", "sku": "SKU", "name": "Name", "qty": "Qty", "unit": "Unit", "line": "Line"}
        widths = {"id": 44, "sku": 100, "name": 220, "qty": 60, "unit": 90, "line": 100}
        for c in cols:
            self.cart_tree.heading(c, text=heads[c])
            self.cart_tree.column(c, width=widths[c], anchor="w")
        self.cart_tree.pack(fill="both", expand=True, padx=10, pady=10)

        btnrow = ttk.Frame(right)
        btnrow.pack(fill="x", padx=10)
        ttk.Label(btnrow, text="Qty").pack(side="left")
        self.qty_e = ttk.Entry(btnrow, width=6)
        self.qty_e.pack(side="left", padx=6)
        self.qty_e.bind("<Return>", lambda _e: self.set_quantity())
        ttk.Button(btnrow, text="Set qty", command=self.set_quantity).pack(side="left")
        ttk.Button(btnrow, text="Remove selected", command=self.remove_selected).pack(side="left", padx=10)
        ttk.Button(btnrow, text="Clear cart", command=self.clear_cart).pack(side="left")

        form = ttk.Frame(right)
        form.pack(fill="x", padx=10, pady=10)
        ttk.Label(form, text="Customer").grid(row=0, column=0, sticky="w", pady=2)
        ttk.Entry(form, textvariable=self.customer_var, width=30).grid(row=0, column=1, sticky="w", padx=8, pady=2)
        ttk.Label(form, text="Payment").grid(row=1, column=0, sticky="w", pady=2)
        ttk.Combobox(form, textvariable=self.payment_var, values=list(POS_PAYMENT_METHODS), width=12, state="readonly")\
            .grid(row=1, column=1, sticky="w", padx=8, pady=2)
        ttk.Label(form, textvariable=self.total_var, style="Title.TLabel").grid(row=2, column=0, columnspan=2, sticky="w", pady=(8, 0))

        ttk.Button(right, text="Checkout", style="Big.TButton", command=self.checkout).pack(fill="x", padx=10, pady=(0, 10))

    def refresh(self):
        self.picker.reset()
        self.picker.load_more()
        query = self.search_var.get()
        if query:
            self.picker.search(query)
        self.refresh_product_list()
        self.refresh_cart_view()

    def refresh_product_list(self):
        self.product_list.delete(0, tk.END)
        self._shown = []
        for p in self.picker.display_products():
            self.product_list.insert(tk.END, f"{p.sku} - {p.name}  {self.app.money(p.sell_price)}  (stock: {p.stock})")
            self._shown.append(p.id)

    def on_search(self, _evt=None):
        try:
            self.picker.search(self.search_var.get())
        except Exception as e:
            self.app.handle_error("Search", e, "Product search failed.")
            return
        self.refresh_product_list()

    def on_load_more(self):
        fresh = self.picker.load_more()
        self.refresh_product_list()
        if not fresh:
            self.app.toast("All products loaded.", kind="info", ms=1200)

    def add_selected(self):
        sel = self.product_list.curselection()
        if not sel and len(self._shown) == 1:
            sel = (0,)
        if not sel:
            return
        try:
            line = self.app.pos.add_to_cart(self._shown[sel[0]])
        except Exception as e:
            self.app.handle_error("Cart", e, "Could not add to cart.")
            return
        self.refresh_cart_view()
        self.app.toast(f"{line.product.name} x{line.quantity}", kind="success", ms=1200)

    def _selected_cart_id(self) -> int | None:
        sel = self.cart_tree.selection()
        if not sel:
            return None
        return int(self.cart_tree.item(sel[0], "values")[0])

    def set_quantity(self):
        pid = self._selected_cart_id()
        if pid is None:
            return
        try:
            raw = self.qty_e.get().strip()
            try:
                qty = int(raw)
            except ValueError:
                raise ValidationError("Qty must be an integer.")
            self.app.pos.cart.update_quantity(pid, qty)
        except Exception as e:
            self.app.handle_error("Cart", e, "Could not change quantity.")
            return
        self.qty_e.delete(0, tk.END)
        self.refresh_cart_view()

    def remove_selected(self):
        pid = self._selected_cart_id()
        if pid is None:
            return
        self.app.pos.cart.remove(pid)
        self.refresh_cart_view()
        self.app.toast("Removed from cart.", kind="info", ms=1500)

    def clear_cart(self):
        self.app.pos.cart.clear()
        self.refresh_cart_view()
        self.app.toast("Cart cleared.", kind="info", ms=1500)

    def refresh_cart_view(self):
        for item in self.cart_tree.get_children():
            self.cart_tree.delete(item)
        cart = self.app.pos.cart
        for line in cart.lines:
            self.cart_tree.insert("", "end", values=(
                line.product.id, line.product.sku, line.product.name, line.quantity,
                self.app.money(line.unit_price), self.app.money(line.total),
            ))
        self.total_var.set(f"Total: {self.app.money(cart.total())}")

    def checkout(self):
        try:
            if not self.app.can_action("create_sale"):
                raise AuthorizationError("Your role can not register sales.")
            receipt = self.app.pos.checkout(self.customer_var.get(), self.payment_var.get())
        except Exception as e:
            self.app.handle_error("Checkout failed", e, "Checkout failed.")
            return

        lines = "\n".join(f"{ln.product.name} x{ln.quantity}  {self.app.money(ln.total)}" for ln in receipt.lines)
        messagebox.showinfo(
            "Receipt",
            f"{receipt.issued_at}\nCustomer: {receipt.customer_name}\nPayment: {receipt.payment_method}\n\n"
            f"{lines}\n\nTotal: {self.app.money(receipt.total)}",
            parent=self.frame,
        )
        self.customer_var.set("")
        self.app.toast(f"Sale saved ({len(receipt.sale_ids)} line(s)).", kind="success")
        self.app.refresh_all(show_toast=False)
