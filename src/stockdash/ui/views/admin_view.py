from __future__ import annotations

import tkinter as tk
from tkinter import ttk, messagebox, filedialog, simpledialog
import logging
from datetime import date

from stockdash.domain.errors import AuthorizationError, HostedBackendError, NotFoundError
from stockdash.services.auth_service import ROLES


log = logging.getLogger(__name__)


class AdminView:
    """Catalog lists, companies, users, backups and hosted sync."""

    def __init__(self, notebook: ttk.Notebook, app):
        self.app = app
        self.frame = ttk.Frame(notebook)
        notebook.add(self.frame, text="Admin")

        self.catalog_kind = tk.StringVar(value="category")
        self.company_var = tk.StringVar()
        self._companies: dict[str, int] = {}
        self._build()

    def _build(self):
        tab = self.frame
        tab.columnconfigure(0, weight=1)
        tab.columnconfigure(1, weight=1)

        # catalog
        cat = ttk.LabelFrame(tab, text="Categories and units")
        cat.grid(row=0, column=0, sticky="nsew", padx=10, pady=10)
        kinds = ttk.Frame(cat)
        kinds.pack(fill="x", padx=10, pady=6)
        ttk.Radiobutton(kinds, text="Categories", value="category", variable=self.catalog_kind, command=self.refresh_catalog)\
            .pack(side="left")
        ttk.Radiobutton(kinds, text="Units", value="unit", variable=self.catalog_kind, command=self.refresh_catalog)\
            .pack(side="left", padx=10)
        self.catalog_list = tk.Listbox(cat, height=8)
        self.catalog_list.pack(fill="both", expand=True, padx=10)
        self._catalog_ids: list[int] = []
        btns = ttk.Frame(cat)
        btns.pack(fill="x", padx=10, pady=6)
        ttk.Button(btns, text="Add...", command=self.on_catalog_add).pack(side="left")
        ttk.Button(btns, text="Rename...", command=self.on_catalog_rename).pack(side="left", padx=6)
        ttk.Button(btns, text="Delete", command=self.on_catalog_delete).pack(side="left")

        # companies
        comp = ttk.LabelFrame(tab, text="Company")
        comp.grid(row=0, column=1, sticky="nsew", padx=10, pady=10)
        ttk.Label(comp, text="Company on documents").pack(anchor="w", padx=10, pady=(8, 2))
        self.company_combo = ttk.Combobox(comp, textvariable=self.company_var, width=30, state="readonly")
        self.company_combo.pack(anchor="w", padx=10)
        cbtns = ttk.Frame(comp)
        cbtns.pack(fill="x", padx=10, pady=8)
        ttk.Button(cbtns, text="Add company...", command=self.on_company_add).pack(side="left")
        ttk.Button(cbtns, text="Delete", command=self.on_company_delete).pack(side="left", padx=6)

        # users
        users = ttk.LabelFrame(tab, text="Users")
        users.grid(row=1, column=0, sticky="nsew", padx=10, pady=10)
        cols = ("id", "username", "role", "active")
        self.users_tree = ttk.Treeview(users, columns=cols, show="headings", height=6, style="Modern.Treeview")
        for c in cols:
            self.users_tree.heading(c, text=c.capitalize())
            self.users_tree.column(c, width=140 if c == "username" else 80, anchor="w")
        self.users_tree.pack(fill="both", expand=True, padx=10, pady=6)
        ubtns = ttk.Frame(users)
        ubtns.pack(fill="x", padx=10, pady=(0, 8))
        ttk.Button(ubtns, text="New user...", command=self.on_user_add).pack(side="left")
        ttk.Button(ubtns, text="Deactivate", command=self.on_user_deactivate).pack(side="left", padx=6)
        ttk.Button(ubtns, text="Change my PIN...", command=self.on_change_pin).pack(side="left")

        # backups
        data = ttk.LabelFrame(tab, text="Backups and sync")
        data.grid(row=1, column=1, sticky="nsew", padx=10, pady=10)
        for text, cmd in (
            ("Create snapshot", self.on_snapshot),
            ("Restore snapshot...", self.on_restore_snapshot),
            ("Export JSON backup...", self.on_export_json),
            ("Restore JSON backup...", self.on_restore_json),
            ("Push to hosted backend", self.on_push),
            ("Pull from hosted backend", self.on_pull),
            ("Clear all sales", self.on_clear_sales),
        ):
            ttk.Button(data, text=text, command=cmd).pack(fill="x", padx=10, pady=3)

    # ---------- refresh ----------
    def refresh(self):
        self.refresh_catalog()
        self.refresh_companies()
        self.refresh_users()

    def refresh_catalog(self):
        self.catalog_list.delete(0, tk.END)
        self._catalog_ids = []
        for entry in self.app.catalog.list(self.catalog_kind.get()):
            self.catalog_list.insert(tk.END, entry.name)
            self._catalog_ids.append(entry.id)

    def refresh_companies(self):
        self._companies = {c.name: c.id for c in self.app.companies.list()}
        self.company_combo["values"] = list(self._companies)
        if self.company_var.get() not in self._companies:
            self.company_var.set(next(iter(self._companies), ""))

    def refresh_users(self):
        for item in self.users_tree.get_children():
            self.users_tree.delete(item)
        if not self.app.can_action("manage_users"):
            return
        for u in self.app.auth.list_users(include_inactive=True):
            self.users_tree.insert("", "end", values=(u.id, u.username, u.role, "yes" if u.is_active else "no"))

    def current_company(self):
        company_id = self._companies.get(self.company_var.get())
        if company_id is None:
            return None
        try:
            return self.app.companies.get(company_id)
        except NotFoundError:
            return None

    # ---------- catalog ----------
    def _require(self, action: str, message: str):
        if not self.app.can_action(action):
            raise AuthorizationError(message)

    def _selected_catalog(self) -> tuple[int, str] | None:
        sel = self.catalog_list.curselection()
        if not sel:
            return None
        return self._catalog_ids[sel[0]], self.catalog_list.get(sel[0])

    def on_catalog_add(self):
        name = simpledialog.askstring("Add", "Name", parent=self.frame)
        if not name:
            return
        try:
            self._require("manage_catalog", "Your role can not edit categories and units.")
            self.app.catalog.add(self.catalog_kind.get(), name)
            self.refresh_catalog()
            self.app.products_view.refresh()
        except Exception as e:
            self.app.handle_error("Catalog", e, "Failed to add entry.")

    def on_catalog_rename(self):
        picked = self._selected_catalog()
        if not picked:
            return
        name = simpledialog.askstring("Rename", "New name", initialvalue=picked[1], parent=self.frame)
        if not name:
            return
        try:
            self._require("manage_catalog", "Your role can not edit categories and units.")
            self.app.catalog.rename(self.catalog_kind.get(), picked[0], name)
            self.refresh_catalog()
            self.app.products_view.refresh()
        except Exception as e:
            self.app.handle_error("Catalog", e, "Failed to rename entry.")

    def on_catalog_delete(self):
        picked = self._selected_catalog()
        if not picked:
            return
        try:
            self._require("manage_catalog", "Your role can not edit categories and units.")
            self.app.catalog.delete(self.catalog_kind.get(), picked[0])
            self.refresh_catalog()
        except Exception as e:
            self.app.handle_error("Catalog", e, "Failed to delete entry.")

    # ---------- companies ----------
    def on_company_add(self):
        name = simpledialog.askstring("Company", "Company name", parent=self.frame)
        if not name:
            return
        address = simpledialog.askstring("Company", "Address (optional)", parent=self.frame) or ""
        phone = simpledialog.askstring("Company", "Phone (optional)", parent=self.frame) or ""
        email = simpledialog.askstring("Company", "Email (optional)", parent=self.frame) or ""
        try:
            self.app.companies.add(self.app.current_user, name, address=address, phone=phone, email=email)
            self.refresh_companies()
            self.company_var.set(name.strip())
        except Exception as e:
            self.app.handle_error("Company", e, "Failed to add company.")

    def on_company_delete(self):
        company_id = self._companies.get(self.company_var.get())
        if company_id is None:
            return
        if not messagebox.askyesno("Confirm delete", f"Delete company '{self.company_var.get()}'?", parent=self.frame):
            return
        try:
            self.app.companies.delete(self.app.current_user, company_id)
            self.refresh_companies()
        except Exception as e:
            self.app.handle_error("Company", e, "Failed to delete company.")

    # ---------- users ----------
    def on_user_add(self):
        username = simpledialog.askstring("New user", "Username", parent=self.frame)
        if not username:
            return
        role = simpledialog.askstring("New user", f"Role ({', '.join(ROLES)})", initialvalue="staff", parent=self.frame)
        pin = simpledialog.askstring("New user", "Initial PIN (8+ chars, letters and numbers)", show="*", parent=self.frame)
        if not role or not pin:
            return
        try:
            uid = self.app.auth.create_user(self.app.current_user, username, pin, role.strip())
            self.app.toast(f"User created (ID {uid}).", kind="success")
            self.refresh_users()
        except Exception as e:
            self.app.handle_error("New user", e, "Failed to create user.")

    def on_user_deactivate(self):
        sel = self.users_tree.selection()
        if not sel:
            return
        uid = int(self.users_tree.item(sel[0], "values")[0])
        try:
            self.app.auth.deactivate_user(self.app.current_user, uid)
            self.refresh_users()
        except Exception as e:
            self.app.handle_error("Deactivate user", e, "Failed to deactivate user.")

    def on_change_pin(self):
        current = simpledialog.askstring("Change PIN", "Current PIN", show="*", parent=self.frame)
        if current is None:
            return
        new = simpledialog.askstring("Change PIN", "New PIN", show="*", parent=self.frame)
        confirm = simpledialog.askstring("Change PIN", "Confirm new PIN", show="*", parent=self.frame)
        try:
            self.app.auth.change_my_pin(self.app.current_user, current, new or "", confirm or "")
            self.app.toast("PIN changed.", kind="success")
        except Exception as e:
            self.app.handle_error("Change PIN", e, "Failed to change PIN.")

    # ---------- backups ----------
    def on_snapshot(self):
        try:
            self._require("backup_restore", "Your role can not create backups.")
            path = self.app.backup.create_backup()
            self.app.toast(f"Snapshot saved: {path.name}", kind="success")
        except Exception as e:
            self.app.handle_error("Snapshot", e, "Snapshot failed.")

    def on_restore_snapshot(self):
        path = filedialog.askopenfilename(
            title="Select snapshot",
            initialdir=str(self.app.backup.backup_dir),
            filetypes=[("SQLite snapshots", "*.db")],
        )
        if not path:
            return
        if not messagebox.askyesno("Restore", "Replace the current database with this snapshot?", parent=self.frame):
            return
        try:
            self._require("backup_restore", "Your role can not restore backups.")
            self.app.backup.restore_backup(path)
            self.app.toast("Snapshot restored.", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Restore", e, "Restore failed.")

    def on_export_json(self):
        path = filedialog.asksaveasfilename(
            title="Save JSON backup as",
            defaultextension=".json",
            filetypes=[("JSON files", "*.json")],
            initialfile=f"inventory_backup_{date.today().isoformat()}.json",
        )
        if not path:
            return
        try:
            self._require("backup_restore", "Your role can not export backups.")
            self.app.backup.export_json(path)
            self.app.toast("JSON backup exported.", kind="success")
        except Exception as e:
            self.app.handle_error("JSON backup", e, "Backup export failed.")

    def on_restore_json(self):
        path = filedialog.askopenfilename(title="Select JSON backup", filetypes=[("JSON files", "*.json")])
        if not path:
            return
        if not messagebox.askyesno("Restore", "Replace all products and transactions with this backup?", parent=self.frame):
            return
        try:
            self._require("backup_restore", "Your role can not restore backups.")
            counts = self.app.backup.restore_json(path)
            self.app.toast(f"Restored {counts.get('products', 0)} products, {counts['skipped']} row(s) skipped.", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("JSON restore", e, "Backup restore failed.")

    def _sync(self):
        self._require("sync_hosted", "Your role can not sync with the hosted backend.")
        if self.app.sync is None:
            raise HostedBackendError("Hosted backend is not configured (STOCKDASH_HOSTED_URL / STOCKDASH_HOSTED_KEY).")
        return self.app.sync

    def on_push(self):
        try:
            pushed = self._sync().push()
            self.app.toast(f"Pushed {sum(pushed.values())} row(s).", kind="success")
        except Exception as e:
            self.app.handle_error("Hosted sync", e, "Push failed.")

    def on_pull(self):
        if not messagebox.askyesno("Pull", "Replace local data with the hosted copy?", parent=self.frame):
            return
        try:
            pulled = self._sync().pull()
            self.app.toast(f"Pulled {sum(pulled.values())} row(s).", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Hosted sync", e, "Pull failed.")

    def on_clear_sales(self):
        if not messagebox.askyesno("Clear sales", "Delete every sale and sales return?", parent=self.frame):
            return
        try:
            self._require("clear_data", "Your role can not clear data.")
            removed = self.app.sales.clear_all()
            self.app.toast(f"Removed {removed} sale(s).", kind="success")
            self.app.refresh_all(show_toast=False)
        except Exception as e:
            self.app.handle_error("Clear sales", e, "Failed to clear sales.")
