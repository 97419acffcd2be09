from __future__ import annotations

import tkinter as tk
from tkinter import ttk, messagebox, filedialog, simpledialog
import logging

from stockdash.domain.errors import AuthorizationError, ValidationError
from stockdash.services.product_picker import ProductPicker
from stockdash.services.voucher_service import PAYMENT_METHODS


log = logging.getLogger(__name__)


class VouchersView:
    def __init__(self, notebook: ttk.Notebook, app):
        self.app = app
        self.frame = ttk.Frame(notebook)
        notebook.add(self.frame, text="Vouchers")

        self.picker = ProductPicker(app.container.repo, page_size=app.settings.page_size)
        self.kind = tk.StringVar(value="sales")
        self.search_var = tk.StringVar()
        self.party_var = tk.StringVar()
        self.discount_var = tk.StringVar(value="0")
        self.payment_var = tk.StringVar(value=PAYMENT_METHODS[0])
        self.status_var = tk.StringVar()
        self.list_search = tk.StringVar()
        self.lines: list[dict] = []
        self._shown: list[int] = []

        self._build()

    @property
    def service(self):
        return self.app.sales_vouchers if self.kind.get() == "sales" else self.app.purchase_vouchers

    def _build(self):
        tab = self.frame

        bar = ttk.Frame(tab)
        bar.pack(fill="x", padx=10, pady=(10, 0))
        ttk.Radiobutton(bar, text="Sales vouchers", value="sales", variable=self.kind, command=self.on_kind).pack(side="left")
        ttk.Radiobutton(bar, text="Purchase vouchers", value="purchase", variable=self.kind, command=self.on_kind)\
            .pack(side="left", padx=10)

        builder = ttk.LabelFrame(tab, text="New voucher")
        builder.pack(fill="x", padx=10, pady=10)

        pick = ttk.Frame(builder)
        pick.pack(side="left", fill="y", padx=10, pady=8)
        search = ttk.Entry(pick, textvariable=self.search_var, width=30)
        search.pack(anchor="w", pady=(0, 4))
        search.bind("<KeyRelease>", self.on_search)
        self.product_list = tk.Listbox(pick, height=7, width=42)
        self.product_list.pack(fill="y", expand=True)
        self.product_list.bind("<Double-1>", lambda _e: self.add_line())

        mid = ttk.Frame(builder)
        mid.pack(side="left", fill="both", expand=True, padx=10, pady=8)
        form = ttk.Frame(mid)
        form.pack(fill="x")
        ttk.Label(form, text="Qty").grid(row=0, column=0, sticky="w")
        self.qty_e = ttk.Entry(form, width=8)
        self.qty_e.grid(row=0, column=1, padx=6)
        ttk.Label(form, text="Unit price (blank = list price)").grid(row=0, column=2, sticky="w", padx=(10, 0))
        self.price_e = ttk.Entry(form, width=10)
        self.price_e.grid(row=0, column=3, padx=6)
        ttk.Button(form, text="Add line", command=self.add_line).grid(row=0, column=4, padx=6)

        cols = ("id", "name", "qty", "price", "line")
        self.lines_tree = ttk.Treeview(mid, columns=cols, show="headings", height=5, style="Modern.Treeview")
        heads = {"id": "ID", "name": "Product", "qty": "Qty", "price": "Unit price", "line": "Line total"}
        for c in cols:
            self.lines_tree.heading(c, text=heads[c])
            self.lines_tree.column(c, width=240 if c == "name" else 80, anchor="w")
        self.lines_tree.pack(fill="both", expand=True, pady=6)
        ttk.Button(mid, text="Remove line", command=self.remove_line).pack(anchor="w")

        side = ttk.Frame(builder)
        side.pack(side="right", fill="y", padx=10, pady=8)
        self.party_label = ttk.Label(side, text="Customer")
        self.party_label.grid(row=0, column=0, sticky="w")
        ttk.Entry(side, textvariable=self.party_var, width=22).grid(row=0, column=1, pady=2)
        ttk.Label(side, text="Discount").grid(row=1, column=0, sticky="w")
        ttk.Entry(side, textvariable=self.discount_var, width=22).grid(row=1, column=1, pady=2)
        ttk.Label(side, text="Payment").grid(row=2, column=0, sticky="w")
        ttk.Combobox(side, textvariable=self.payment_var, values=list(PAYMENT_METHODS), width=19, state="readonly")\
            .grid(row=2, column=1, pady=2)
        ttk.Label(side, text="Status").grid(row=3, column=0, sticky="w")
        self.status_combo = ttk.Combobox(side, textvariable=self.status_var, width=19, state="readonly")
        self.status_combo.grid(row=3, column=1, pady=2)
        ttk.Label(side, text="Date").grid(row=4, column=0, sticky="w")
        self.date_e = ttk.Entry(side, width=22)
        self.date_e.grid(row=4, column=1, pady=2)
        ttk.Button(side, text="Create voucher", style="Big.TButton", command=self.create_voucher)\
            .grid(row=5, column=0, columnspan=2, sticky="ew", pady=(8, 0))

        box = ttk.LabelFrame(tab, text="Vouchers")
        box.pack(fill="both", expand=True, padx=10, pady=(0, 10))
        top = ttk.Frame(box)
        top.pack(fill="x", padx=10, pady=6)
        ttk.Label(top, text="Search").pack(side="left")
        ttk.Entry(top, textvariable=self.list_search, width=24).pack(side="left", padx=6)
        ttk.Button(top, text="Refresh", command=self.refresh_list).pack(side="left")
        ttk.Button(top, text="Delete", command=self.on_delete).pack(side="right")
        ttk.Button(top, text="PDF", command=self.on_pdf).pack(side="right", padx=6)
        ttk.Button(top, text="Set status...", command=self.on_set_status).pack(side="right", padx=6)

        cols = ("id", "number", "date", "party", "items", "total", "discount", "final", "payment", "status")
        self.tree = ttk.Treeview(box, columns=cols, show="headings", height=9, style="Modern.Treeview")
        heads = {
            "id": "ID", "number": "Number", "date": "Date", "party": "Party", "items": "Items", "total": "Total",
            "discount": "Discount", "final": "Final", "payment": "Payment", "status": "Status",
        }
        for c in cols:
            self.tree.heading(c, text=heads[c])
            self.tree.column(c, width=180 if c == "party" else 90, anchor="w")
        self.tree.pack(fill="both", expand=True, padx=10, pady=(0, 10))

    def on_kind(self):
        self.lines = []
        self.refresh()

    def on_search(self, _evt=None):
        self.picker.search(self.search_var.get())
        self.refresh_product_list()

    def refresh_product_list(self):
        self.product_list.delete(0, tk.END)
        self._shown = []
        for p in self.picker.display_products():
            price = p.sell_price if self.kind.get() == "sales" else p.purchase_price
            self.product_list.insert(tk.END, f"{p.sku} - {p.name}  {self.app.money(price)} (stock: {p.stock})")
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
        except Exception as e:
            self.app.handle_error("Voucher line", e, "Could not add line.")
            return
        product = picked.product
        list_price = product.sell_price if self.kind.get() == "sales" else product.purchase_price
        raw_price = self.price_e.get().strip()
        self.lines.append({
            "product_id": product.id,
            "name": product.name,
            "quantity": qty,
            "unit_price": raw_price or list_price,
        })
        self.qty_e.delete(0, tk.END)
        self.price_e.delete(0, tk.END)
        self.search_var.set("")
        self.refresh_product_list()
        self.refresh_lines()

    def remove_line(self):
        sel = self.lines_tree.selection()
        if not sel:
            return
        del self.lines[self.lines_tree.index(sel[0])]
        self.refresh_lines()

    def refresh_lines(self):
        for item in self.lines_tree.get_children():
            self.lines_tree.delete(item)
        for ln in self.lines:
            self.lines_tree.insert("", "end", values=(ln["product_id"], ln["name"], ln["quantity"], ln["unit_price"], ""))

    def create_voucher(self):
        try:
            if not self.app.can_action("manage_vouchers"):
                raise AuthorizationError("Your role can not create vouchers.")
            voucher_id, number = self.service.create(
                self.party_var.get(),
                [{k: ln[k] for k in ("product_id", "quantity", "unit_price")} for ln in self.lines],
                discount_amount=self.discount_var.get() or 0,
                payment_method=self.payment_var.get(),
                status=self.status_var.get() or None,
                date=self.date_e.get().strip() or None,
            )
        except Exception as e:
            self.app.handle_error("Voucher", e, "Voucher failed.")
            return
        self.lines = []
        self.party_var.set("")
        self.discount_var.set("0")
        self.date_e.delete(0, tk.END)
        self.app.toast(f"Voucher {number} saved (ID {voucher_id}).", kind="success")
        self.app.refresh_all(show_toast=False)

    def refresh(self):
        self.party_label.config(text="Customer" if self.kind.get() == "sales" else "Supplier")
        self.status_combo["values"] = list(self.service.statuses)
        if self.status_var.get() not in self.service.statuses:
            self.status_var.set(self.service.statuses[0])
        self.picker.reset()
        self.picker.load_more()
        self.refresh_product_list()
        self.refresh_lines()
        self.refresh_list()

    def refresh_list(self):
        for item in self.tree.get_children():
            self.tree.delete(item)
        party_field = self.service.party_field
        for v in self.service.list(search=self.list_search.get()):
            self.tree.insert("", "end", values=(
                v.id, v.voucher_number, v.date, getattr(v, party_field) or "", len(v.items),
                self.app.money(v.total_amount), self.app.money(v.discount_amount), self.app.money(v.final_amount),
                v.payment_method, v.status,
            ))

    def _selected_id(self) -> int | None:
        sel = self.tree.selection()
        if not sel:
            messagebox.showwarning("Vouchers", "Select a voucher.", parent=self.frame)
            return None
        return int(self.tree.item(sel[0], "values")[0])

    def on_set_status(self):
        vid = self._selected_id()
        if vid is None:
            return
        status = simpledialog.askstring("Voucher status", f"New status ({', '.join(self.service.statuses)})", parent=self.frame)
        if not status:
            return
        try:
            if not self.app.can_action("manage_vouchers"):
                raise AuthorizationError("Your role can not edit vouchers.")
            self.service.update(vid, status=status.strip().capitalize())
            self.app.toast("Voucher updated.", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Voucher status", e, "Failed to update voucher.")

    def on_delete(self):
        vid = self._selected_id()
        if vid is None:
            return
        if not messagebox.askyesno("Confirm delete", f"Delete voucher #{vid}?", parent=self.frame):
            return
        try:
            if not self.app.can_action("clear_data"):
                raise AuthorizationError("Your role can not delete vouchers.")
            self.service.delete(vid)
            self.app.toast("Voucher deleted.", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Delete voucher", e, "Failed to delete voucher.")

    def on_pdf(self):
        vid = self._selected_id()
        if vid is None:
            return
        voucher = self.service.get(vid)
        path = filedialog.asksaveasfilename(
            title="Save voucher as",
            defaultextension=".pdf",
            filetypes=[("PDF files", "*.pdf")],
            initialfile=f"{voucher.voucher_number}.pdf",
        )
        if not path:
            return
        try:
            self.app.documents.voucher_pdf(voucher, path, self.app.admin_view.current_company())
            self.app.toast("Voucher PDF saved.", kind="success")
        except Exception as e:
            self.app.handle_error("Voucher PDF", e, "PDF export failed.")
