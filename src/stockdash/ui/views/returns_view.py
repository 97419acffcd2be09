from __future__ import annotations

import tkinter as tk
from tkinter import ttk, messagebox, simpledialog
import logging

from stockdash.domain.errors import AuthorizationError
from stockdash.services.returns_service import RETURN_STATUSES


log = logging.getLogger(__name__)


class ReturnsView:
    def __init__(self, notebook: ttk.Notebook, app):
        self.app = app
        self.frame = ttk.Frame(notebook)
        notebook.add(self.frame, text="Returns")

        self.kind = tk.StringVar(value="sales")
        self.status_filter = tk.StringVar(value="")
        self.search_var = tk.StringVar()
        self._build()

    @property
    def service(self):
        return self.app.sales_returns if self.kind.get() == "sales" else self.app.purchase_returns

    def _build(self):
        tab = self.frame

        bar = ttk.Frame(tab)
        bar.pack(fill="x", padx=10, pady=10)
        ttk.Radiobutton(bar, text="Sales returns", value="sales", variable=self.kind, command=self.refresh).pack(side="left")
        ttk.Radiobutton(bar, text="Purchase returns", value="purchase", variable=self.kind, command=self.refresh)\
            .pack(side="left", padx=10)
        ttk.Label(bar, text="Status").pack(side="left", padx=(20, 0))
        status = ttk.Combobox(bar, textvariable=self.status_filter, values=[""] + list(RETURN_STATUSES), width=12, state="readonly")
        status.pack(side="left", padx=6)
        status.bind("<<ComboboxSelected>>", lambda _e: self.refresh())
        ttk.Label(bar, text="Search").pack(side="left", padx=(10, 0))
        search = ttk.Entry(bar, textvariable=self.search_var, width=22)
        search.pack(side="left", padx=6)
        search.bind("<Return>", lambda _e: self.refresh())

        box = ttk.LabelFrame(tab, text="Returns")
        box.pack(fill="both", expand=True, padx=10, pady=(0, 10))

        cols = ("id", "date", "product", "party", "orig", "qty", "refund", "reason", "status", "by")
        self.tree = ttk.Treeview(box, columns=cols, show="headings", height=18, style="Modern.Treeview")
        heads = {
            "id": "ID", "date": "Date", "product": "Product", "party": "Customer / Supplier", "orig": "Orig qty",
            "qty": "Return qty", "refund": "Refund", "reason": "Reason", "status": "Status", "by": "Processed by",
        }
        widths = {"id": 44, "date": 90, "product": 200, "party": 150, "orig": 70, "qty": 80, "refund": 100, "reason": 200, "status": 90, "by": 110}
        for c in cols:
            self.tree.heading(c, text=heads[c])
            self.tree.column(c, width=widths[c], anchor="w")
        self.tree.tag_configure("pending", background="#fff4d6")
        self.tree.pack(fill="both", expand=True, padx=10, pady=10)

        btns = ttk.Frame(box)
        btns.pack(fill="x", padx=10, pady=(0, 10))
        ttk.Button(btns, text="Approve", style="Big.TButton", command=lambda: self.on_process("Approved")).pack(side="left")
        ttk.Button(btns, text="Reject", command=lambda: self.on_process("Rejected")).pack(side="left", padx=10)
        ttk.Button(btns, text="Change qty...", command=self.on_change_qty).pack(side="left")
        ttk.Button(btns, text="Delete", command=self.on_delete).pack(side="right")

    def refresh(self):
        for item in self.tree.get_children():
            self.tree.delete(item)
        for r in self.service.list(status=self.status_filter.get(), search=self.search_var.get()):
            party = getattr(r, "customer_name", None) or getattr(r, "supplier", None) or ""
            self.tree.insert("", "end", values=(
                r.id, r.return_date, r.product_name, party, r.original_quantity, r.return_quantity,
                self.app.money(r.total_refund), r.reason, r.status, r.processed_by or "",
            ), tags=("pending",) if r.status == "Pending" else ())

    def _selected_id(self) -> int | None:
        sel = self.tree.selection()
        if not sel:
            messagebox.showwarning("Returns", "Select a return.", parent=self.frame)
            return None
        return int(self.tree.item(sel[0], "values")[0])

    def on_process(self, decision: str):
        rid = self._selected_id()
        if rid is None:
            return
        try:
            if not self.app.can_action("process_return"):
                raise AuthorizationError("Your role can not process returns.")
            ret = self.service.process_return(rid, decision, self.app.current_user.username)
            self.app.toast(f"Return #{rid} {ret.status.lower()}.", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Process return", e, "Failed to process return.")

    def on_change_qty(self):
        rid = self._selected_id()
        if rid is None:
            return
        qty = simpledialog.askinteger("Return quantity", "New quantity", parent=self.frame, minvalue=1)
        if not qty:
            return
        try:
            if not self.app.can_action("manage_returns"):
                raise AuthorizationError("Your role can not edit returns.")
            self.service.update(rid, return_quantity=qty)
            self.app.toast("Return updated.", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Update return", e, "Failed to update return.")

    def on_delete(self):
        rid = self._selected_id()
        if rid is None:
            return
        if not messagebox.askyesno("Confirm delete", f"Delete return #{rid}?", parent=self.frame):
            return
        try:
            if not self.app.can_action("process_return"):
                raise AuthorizationError("Your role can not delete returns.")
            self.service.delete(rid)
            self.app.toast("Return deleted.", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Delete return", e, "Failed to delete return.")
