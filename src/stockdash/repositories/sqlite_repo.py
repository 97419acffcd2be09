from __future__ import annotations

import sqlite3
import hashlib
import hmac
import logging
import os
import secrets
import shutil
from dataclasses import fields
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional

from stockdash.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from stockdash.domain.models import (
    Category,
    Company,
    Product,
    Purchase,
    PurchaseReturn,
    PurchaseVoucher,
    PurchaseVoucherItem,
    Sale,
    SalesReturn,
    SalesVoucher,
    SalesVoucherItem,
    Unit,
    UserProfile,
)
from stockdash.domain.stock import (
    MOVEMENT_RULES,
    PURCHASE,
    PURCHASE_RETURN,
    PURCHASE_VOUCHER,
    SALE,
    SALES_RETURN,
    SALES_VOUCHER,
    StockMovements,
    stock_effect,
)

log = logging.getLogger("stockdash.stock")

# Writable columns per table, in dependency order (parents first).
TABLE_COLUMNS: dict[str, tuple[str, ...]] = {
    "companies": ("id", "name", "address", "phone", "email"),
    "categories": ("id", "name", "company_id"),
    "units": ("id", "name", "company_id"),
    "products": (
        "id", "sku", "name", "barcode", "category", "unit", "stock", "reorder_point",
        "opening_stock", "purchase_price", "sell_price", "company_id", "created_at",
    ),
    "sales": (
        "id", "product_id", "product_name", "quantity", "unit_price", "total_amount",
        "date", "status", "customer_name", "notes",
    ),
    "purchases": (
        "id", "purchase_order_id", "product_id", "product_name", "supplier", "quantity",
        "unit_price", "total_amount", "date", "status", "notes",
    ),
    "sales_returns": (
        "id", "original_sale_id", "product_id", "product_name", "original_quantity",
        "return_quantity", "unit_price", "total_refund", "return_date", "reason", "status",
        "customer_name", "notes", "processed_by", "processed_date",
    ),
    "purchase_returns": (
        "id", "purchase_order_id", "purchase_item_id", "product_id", "product_name", "supplier",
        "original_quantity", "return_quantity", "unit_price", "total_refund", "return_date",
        "reason", "status", "notes", "processed_by", "processed_date",
    ),
    "sales_vouchers": (
        "id", "voucher_number", "customer_name", "total_amount", "discount_amount",
        "final_amount", "payment_method", "status", "date", "notes",
    ),
    "sales_voucher_items": (
        "id", "voucher_id", "product_id", "product_name", "quantity", "unit_price", "total_amount",
    ),
    "purchase_vouchers": (
        "id", "voucher_number", "supplier_name", "total_amount", "discount_amount",
        "final_amount", "payment_method", "status", "date", "notes",
    ),
    "purchase_voucher_items": (
        "id", "voucher_id", "product_id", "product_name", "supplier", "quantity",
        "unit_price", "total_amount",
    ),
}

# Single-line tables whose rows move stock: table -> (movement kind, quantity column)
COUNTED_TABLES: dict[str, tuple[str, str]] = {
    "sales": (SALE, "quantity"),
    "purchases": (PURCHASE, "quantity"),
    "sales_returns": (SALES_RETURN, "return_quantity"),
    "purchase_returns": (PURCHASE_RETURN, "return_quantity"),
}

# Voucher kind -> (header table, item table, movement kind, number prefix, header cls, item cls)
VOUCHER_TABLES = {
    "sales": ("sales_vouchers", "sales_voucher_items", SALES_VOUCHER, "SV", SalesVoucher, SalesVoucherItem),
    "purchase": ("purchase_vouchers", "purchase_voucher_items", PURCHASE_VOUCHER, "PV", PurchaseVoucher, PurchaseVoucherItem),
}

CATALOG_TABLES = {"categories": Category, "units": Unit}


def _columns_for(cls) -> list[str]:
    return [f.name for f in fields(cls) if f.name != "items"]


def _select(cls, table: str) -> str:
    return f"SELECT {', '.join(_columns_for(cls))} FROM {table}"


class SqliteRepository:
    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self, bootstrap_pin: str | None = None) -> None:
        self.run_migrations()
        self._ensure_bootstrap_admin(bootstrap_pin)

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_auth_hardening),
                (3, self._migration_v3_lookup_indexes),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS companies (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT UNIQUE NOT NULL,
            address TEXT,
            phone TEXT,
            email TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        )
        """
        )

        for table in ("categories", "units"):
            cur.execute(
                f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT UNIQUE NOT NULL,
                company_id INTEGER REFERENCES companies(id) ON DELETE SET NULL
            )
            """
            )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sku TEXT UNIQUE NOT NULL,
            name TEXT NOT NULL,
            barcode TEXT NOT NULL DEFAULT '',
            category TEXT NOT NULL DEFAULT '',
            unit TEXT NOT NULL DEFAULT '',
            stock INTEGER NOT NULL DEFAULT 0 CHECK(stock >= 0),
            reorder_point INTEGER NOT NULL DEFAULT 0 CHECK(reorder_point >= 0),
            opening_stock INTEGER NOT NULL DEFAULT 0 CHECK(opening_stock >= 0),
            purchase_price REAL NOT NULL DEFAULT 0 CHECK(purchase_price >= 0),
            sell_price REAL NOT NULL DEFAULT 0 CHECK(sell_price >= 0),
            company_id INTEGER REFERENCES companies(id) ON DELETE SET NULL,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sales (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            product_id INTEGER NOT NULL,
            product_name TEXT NOT NULL,
            customer_name TEXT,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            unit_price REAL NOT NULL CHECK(unit_price >= 0),
            total_amount REAL NOT NULL,
            date TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('Completed','Pending','Cancelled')),
            notes TEXT,
            FOREIGN KEY(product_id) REFERENCES products(id)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS purchases (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            purchase_order_id TEXT NOT NULL,
            product_id INTEGER NOT NULL,
            product_name TEXT NOT NULL,
            supplier TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            unit_price REAL NOT NULL CHECK(unit_price >= 0),
            total_amount REAL NOT NULL,
            date TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('Received','Pending','Ordered','Cancelled')),
            notes TEXT,
            FOREIGN KEY(product_id) REFERENCES products(id)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sales_returns (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            original_sale_id INTEGER NOT NULL,
            product_id INTEGER NOT NULL,
            product_name TEXT NOT NULL,
            original_quantity INTEGER NOT NULL,
            return_quantity INTEGER NOT NULL CHECK(return_quantity > 0),
            unit_price REAL NOT NULL,
            total_refund REAL NOT NULL,
            return_date TEXT NOT NULL,
            reason TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('Pending','Approved','Rejected','Processed')),
            customer_name TEXT,
            notes TEXT,
            processed_by TEXT,
            processed_date TEXT,
            FOREIGN KEY(original_sale_id) REFERENCES sales(id),
            FOREIGN KEY(product_id) REFERENCES products(id)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS purchase_returns (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            purchase_order_id TEXT NOT NULL,
            purchase_item_id INTEGER NOT NULL,
            product_id INTEGER NOT NULL,
            product_name TEXT NOT NULL,
            supplier TEXT NOT NULL,
            original_quantity INTEGER NOT NULL,
            return_quantity INTEGER NOT NULL CHECK(return_quantity > 0),
            unit_price REAL NOT NULL,
            total_refund REAL NOT NULL,
            return_date TEXT NOT NULL,
            reason TEXT NOT NULL,
            status TEXT NOT NULL CHECK(status IN ('Pending','Approved','Rejected','Processed')),
            notes TEXT,
            processed_by TEXT,
            processed_date TEXT,
            FOREIGN KEY(purchase_item_id) REFERENCES purchases(id),
            FOREIGN KEY(product_id) REFERENCES products(id)
        )
        """
        )

        for kind, (header, items, _movement, _prefix, _cls, _item_cls) in VOUCHER_TABLES.items():
            party = "customer_name TEXT" if kind == "sales" else "supplier_name TEXT NOT NULL"
            statuses = "'Completed','Pending','Cancelled'" if kind == "sales" else "'Ordered','Received','Pending','Cancelled'"
            item_supplier = "" if kind == "sales" else "supplier TEXT NOT NULL DEFAULT '',"
            cur.execute(
                f"""
            CREATE TABLE IF NOT EXISTS {header} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                voucher_number TEXT UNIQUE NOT NULL,
                {party},
                total_amount REAL NOT NULL CHECK(total_amount >= 0),
                discount_amount REAL NOT NULL DEFAULT 0 CHECK(discount_amount >= 0),
                final_amount REAL NOT NULL CHECK(final_amount >= 0),
                payment_method TEXT NOT NULL,
                status TEXT NOT NULL CHECK(status IN ({statuses})),
                date TEXT NOT NULL,
                notes TEXT
            )
            """
            )
            cur.execute(
                f"""
            CREATE TABLE IF NOT EXISTS {items} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                voucher_id INTEGER NOT NULL,
                product_id INTEGER NOT NULL,
                product_name TEXT NOT NULL,
                {item_supplier}
                quantity INTEGER NOT NULL CHECK(quantity > 0),
                unit_price REAL NOT NULL CHECK(unit_price >= 0),
                total_amount REAL NOT NULL,
                FOREIGN KEY(voucher_id) REFERENCES {header}(id) ON DELETE CASCADE,
                FOREIGN KEY(product_id) REFERENCES products(id)
            )
            """
            )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS user_profiles (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL UNIQUE,
            pin TEXT NOT NULL,
            role TEXT NOT NULL CHECK(role IN ('super_admin','admin','manager','staff','guest')),
            company_id INTEGER REFERENCES companies(id) ON DELETE SET NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        )
        """
        )

    def _migration_v2_auth_hardening(self, cur: sqlite3.Cursor) -> None:
        self._add_column_if_missing(cur, "user_profiles", "failed_attempts", "INTEGER NOT NULL DEFAULT 0")
        self._add_column_if_missing(cur, "user_profiles", "locked_until", "TEXT")
        self._add_column_if_missing(cur, "user_profiles", "must_change_pin", "INTEGER NOT NULL DEFAULT 0")

    def _migration_v3_lookup_indexes(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE INDEX IF NOT EXISTS idx_products_name ON products(name)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_product ON sales(product_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_purchases_order ON purchases(purchase_order_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_returns_sale ON sales_returns(original_sale_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_purchase_returns_item ON purchase_returns(purchase_item_id)")

    def _ensure_bootstrap_admin(self, bootstrap_pin: str | None = None) -> None:
        pin = (
            (bootstrap_pin or "").strip()
            or os.environ.get("STOCKDASH_BOOTSTRAP_ADMIN_PIN", "").strip()
            or secrets.token_urlsafe(12)
        )

        def op(cur: sqlite3.Cursor) -> bool:
            cur.execute("SELECT COUNT(*) FROM user_profiles WHERE is_active=1")
            if int(cur.fetchone()[0]) > 0:
                return False
            cur.execute(
                """
                INSERT INTO user_profiles (username, pin, role, is_active, must_change_pin)
                VALUES ('admin', ?, 'super_admin', 1, 1)
                ON CONFLICT(username) DO UPDATE SET
                    pin=excluded.pin, role='super_admin', is_active=1, must_change_pin=1,
                    failed_attempts=0, locked_until=NULL
                """,
                (self._hash_pin(pin),),
            )
            return True

        if not self._write(op):
            return

        # one-time bootstrap PIN, readable only by the owner
        pin_file = Path(self.db_path).parent / ".admin_bootstrap_pin"
        pin_file.write_text(pin + "\n", encoding="utf-8")
        try:
            pin_file.chmod(0o600)
        except OSError:
            log.warning("could not restrict permissions on %s", pin_file)

    def _add_column_if_missing(self, cur: sqlite3.Cursor, table: str, column: str, definition: str) -> None:
        cur.execute(f"PRAGMA table_info({table})")
        cols = {str(r[1]) for r in cur.fetchall()}
        if column in cols:
            return
        cur.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    def integrity_check(self) -> str:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("PRAGMA integrity_check")
        row = cur.fetchone()
        conn.close()
        return str(row[0]) if row else "unknown"

    # ---------- Users ----------
    def list_users(self, include_inactive: bool = False) -> list[UserProfile]:
        conn = self._conn()
        cur = conn.cursor()
        where = "" if include_inactive else " WHERE is_active=1"
        cur.execute(f"{_select(UserProfile, 'user_profiles')}{where} ORDER BY username")
        rows = cur.fetchall()
        conn.close()
        return [UserProfile(*r) for r in rows]

    def get_user(self, user_id: int) -> Optional[UserProfile]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"{_select(UserProfile, 'user_profiles')} WHERE id=?", (int(user_id),))
        r = cur.fetchone()
        conn.close()
        return UserProfile(*r) if r else None

    def _get_user_row(self, cur: sqlite3.Cursor, username: str):
        cur.execute(
            """
            SELECT id, username, role, company_id, pin,
                   COALESCE(failed_attempts, 0), locked_until, COALESCE(must_change_pin, 0)
            FROM user_profiles
            WHERE is_active=1 AND username=?
            """,
            (username,),
        )
        return cur.fetchone()

    def get_user_security_state(self, username: str) -> tuple[int, Optional[str]] | None:
        conn = self._conn()
        cur = conn.cursor()
        row = self._get_user_row(cur, username)
        conn.close()
        if not row:
            return None
        return int(row[5]), (str(row[6]) if row[6] is not None else None)

    def record_login_failure(self, username: str, max_attempts: int, lockout_seconds: int) -> tuple[int, Optional[str]]:
        def op(cur: sqlite3.Cursor) -> tuple[int, Optional[str]]:
            row = self._get_user_row(cur, username)
            if not row:
                return 0, None

            attempts = int(row[5]) + 1
            if attempts < int(max_attempts):
                cur.execute("UPDATE user_profiles SET failed_attempts=? WHERE id=?", (attempts, int(row[0])))
                return attempts, None
            cur.execute(
                "UPDATE user_profiles SET failed_attempts=0, locked_until=datetime('now', ?) WHERE id=?",
                (f"+{int(lockout_seconds)} seconds", int(row[0])),
            )
            cur.execute("SELECT locked_until FROM user_profiles WHERE id=?", (int(row[0]),))
            return 0, str(cur.fetchone()[0])

        return self._write(op)

    def clear_login_guard(self, user_id: int) -> None:
        self._write(
            lambda cur: cur.execute(
                "UPDATE user_profiles SET failed_attempts=0, locked_until=NULL WHERE id=?", (int(user_id),)
            )
        )

    def authenticate_user(self, username: str, pin: str) -> Optional[UserProfile]:
        def op(cur: sqlite3.Cursor) -> Optional[UserProfile]:
            row = self._get_user_row(cur, username)
            if not row or not self._verify_pin(str(row[4]), pin):
                return None
            # transparent upgrade from legacy plain-text pins
            if not str(row[4]).startswith("pbkdf2_sha256$"):
                cur.execute("UPDATE user_profiles SET pin=? WHERE id=?", (self._hash_pin(pin), int(row[0])))
            cur.execute("UPDATE user_profiles SET failed_attempts=0, locked_until=NULL WHERE id=?", (int(row[0]),))
            return UserProfile(
                id=int(row[0]),
                username=str(row[1]),
                role=str(row[2]),
                company_id=row[3],
                is_active=1,
                must_change_pin=int(row[7]),
            )

        return self._write(op)

    def create_user(
        self,
        username: str,
        pin: str,
        role: str,
        company_id: Optional[int] = None,
        must_change_pin: int = 0,
    ) -> int:
        def op(cur: sqlite3.Cursor) -> int:
            cur.execute(
                """
                INSERT INTO user_profiles (username, pin, role, company_id, is_active, must_change_pin)
                VALUES (?, ?, ?, ?, 1, ?)
                """,
                (username, self._hash_pin(pin), role, company_id, int(must_change_pin)),
            )
            return int(cur.lastrowid)

        return self._write(op)

    def change_user_pin(self, user_id: int, current_pin: str, new_pin: str) -> bool:
        def op(cur: sqlite3.Cursor) -> bool:
            cur.execute("SELECT pin FROM user_profiles WHERE id=? AND is_active=1", (int(user_id),))
            row = cur.fetchone()
            if not row or not self._verify_pin(str(row[0]), current_pin):
                return False
            cur.execute(
                "UPDATE user_profiles SET pin=?, must_change_pin=0 WHERE id=?",
                (self._hash_pin(new_pin), int(user_id)),
            )
            return True

        return self._write(op)

    def set_user_active(self, user_id: int, active: bool) -> bool:
        return self._write(
            lambda cur: cur.execute(
                "UPDATE user_profiles SET is_active=? WHERE id=?", (1 if active else 0, int(user_id))
            ).rowcount > 0
        )

    # ---------- Stock bookkeeping ----------
    def _apply_stock_delta(self, cur: sqlite3.Cursor, product_id: int, delta: int) -> int:
        cur.execute("SELECT stock, sku FROM products WHERE id=?", (int(product_id),))
        row = cur.fetchone()
        if not row:
            raise NotFoundError(f"Product {product_id} not found.")
        if delta == 0:
            return int(row[0])
        new_stock = int(row[0]) + int(delta)
        if new_stock < 0:
            raise InsufficientStockError(f"Not enough stock for {row[1]}. Available: {row[0]}")
        cur.execute("UPDATE products SET stock=? WHERE id=?", (new_stock, int(product_id)))
        return new_stock

    def _insert(self, cur: sqlite3.Cursor, table: str, data: dict) -> int:
        allowed = TABLE_COLUMNS[table]
        cols = [c for c in data if c in allowed]
        cur.execute(
            f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({', '.join('?' for _ in cols)})",
            tuple(data[c] for c in cols),
        )
        return int(cur.lastrowid)

    def _update(self, cur: sqlite3.Cursor, table: str, row_id: int, changes: dict) -> bool:
        allowed = TABLE_COLUMNS[table]
        cols = [c for c in changes if c in allowed and c != "id"]
        if not cols:
            return False
        cur.execute(
            f"UPDATE {table} SET {', '.join(f'{c}=?' for c in cols)} WHERE id=?",
            (*[changes[c] for c in cols], int(row_id)),
        )
        return cur.rowcount > 0

    def _insert_counted(self, cur: sqlite3.Cursor, table: str, data: dict) -> int:
        kind, qty_col = COUNTED_TABLES[table]
        row_id = self._insert(cur, table, data)
        self._apply_stock_delta(cur, int(data["product_id"]), stock_effect(kind, data.get("status"), int(data[qty_col])))
        return row_id

    def _update_counted(self, cur: sqlite3.Cursor, table: str, row_id: int, changes: dict) -> bool:
        kind, qty_col = COUNTED_TABLES[table]
        cur.execute(f"SELECT product_id, {qty_col}, status FROM {table} WHERE id=?", (int(row_id),))
        old = cur.fetchone()
        if not old:
            raise NotFoundError(f"{table} row {row_id} not found.")
        old_product, old_qty, old_status = int(old[0]), int(old[1]), str(old[2])
        new_product = int(changes.get("product_id", old_product))
        new_qty = int(changes.get(qty_col, old_qty))
        new_status = str(changes.get("status", old_status))

        self._apply_stock_delta(cur, old_product, -stock_effect(kind, old_status, old_qty))
        self._apply_stock_delta(cur, new_product, stock_effect(kind, new_status, new_qty))
        return self._update(cur, table, row_id, changes)

    def _delete_counted(self, cur: sqlite3.Cursor, table: str, row_id: int) -> bool:
        kind, qty_col = COUNTED_TABLES[table]
        cur.execute(f"SELECT product_id, {qty_col}, status FROM {table} WHERE id=?", (int(row_id),))
        old = cur.fetchone()
        if not old:
            return False
        self._apply_stock_delta(cur, int(old[0]), -stock_effect(kind, str(old[2]), int(old[1])))
        cur.execute(f"DELETE FROM {table} WHERE id=?", (int(row_id),))
        return True

    def _write(self, fn: Callable[[sqlite3.Cursor], object]):
        conn = self._conn()
        cur = conn.cursor()
        try:
            result = fn(cur)
            conn.commit()
            return result
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _fetch_all(self, cls, table: str, where: str = "", params: tuple = (), order: str = "") -> list:
        conn = self._conn()
        cur = conn.cursor()
        sql = _select(cls, table)
        if where:
            sql += f" WHERE {where}"
        if order:
            sql += f" ORDER BY {order}"
        cur.execute(sql, params)
        rows = cur.fetchall()
        conn.close()
        return [cls(*r) for r in rows]

    def _fetch_one(self, cls, table: str, row_id: int):
        rows = self._fetch_all(cls, table, "id=?", (int(row_id),))
        return rows[0] if rows else None

    def _next_document_number(self, cur: sqlite3.Cursor, table: str, column: str, prefix: str, width: int = 4) -> str:
        cur.execute(f"SELECT {column} FROM {table} WHERE {column} LIKE ?", (f"{prefix}%",))
        highest = 0
        for (value,) in cur.fetchall():
            suffix = str(value)[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"{prefix}{highest + 1:0{width}d}"

    def stock_movements(self) -> dict[int, StockMovements]:
        """Counted quantities per product, summed over the whole history."""
        sources = [
            ("purchased", "purchases", "quantity", "status", PURCHASE),
            ("sales_returned", "sales_returns", "return_quantity", "status", SALES_RETURN),
            ("sold", "sales", "quantity", "status", SALE),
            ("purchase_returned", "purchase_returns", "return_quantity", "status", PURCHASE_RETURN),
        ]
        conn = self._conn()
        cur = conn.cursor()
        totals: dict[int, dict[str, int]] = {}
        for field_name, table, qty_col, status_col, kind in sources:
            cur.execute(
                f"SELECT product_id, COALESCE(SUM({qty_col}), 0) FROM {table} WHERE {status_col}=? GROUP BY product_id",
                (MOVEMENT_RULES[kind][1],),
            )
            for pid, qty in cur.fetchall():
                totals.setdefault(int(pid), {})[field_name] = int(qty)
        for field_name, key in (("voucher_sold", "sales"), ("purchase_vouchers", "purchase")):
            header, items, kind, *_ = VOUCHER_TABLES[key]
            cur.execute(
                f"""
                SELECT i.product_id, COALESCE(SUM(i.quantity), 0)
                FROM {items} i JOIN {header} v ON v.id = i.voucher_id
                WHERE v.status=?
                GROUP BY i.product_id
                """,
                (MOVEMENT_RULES[kind][1],),
            )
            for pid, qty in cur.fetchall():
                totals.setdefault(int(pid), {})[field_name] = int(qty)
        conn.close()
        return {pid: StockMovements(**values) for pid, values in totals.items()}

    # ---------- Products ----------
    def add_product(
        self,
        sku: str,
        name: str,
        category: str,
        unit: str,
        opening_stock: int,
        reorder_point: int,
        purchase_price: float,
        sell_price: float,
        barcode: str = "",
        company_id: Optional[int] = None,
    ) -> int:
        data = {
            "sku": sku,
            "name": name,
            "barcode": barcode,
            "category": category,
            "unit": unit,
            "stock": int(opening_stock),
            "reorder_point": int(reorder_point),
            "opening_stock": int(opening_stock),
            "purchase_price": float(purchase_price),
            "sell_price": float(sell_price),
            "company_id": company_id,
        }
        return int(self._write(lambda cur: self._insert(cur, "products", data)))

    def upsert_product(self, data: dict) -> tuple[int, bool]:
        """Insert or update by sku. Returns (id, created)."""

        def run(cur: sqlite3.Cursor):
            cur.execute("SELECT id FROM products WHERE sku=?", (data["sku"],))
            row = cur.fetchone()
            if row:
                changes = {k: v for k, v in data.items() if k not in ("id", "sku", "stock", "opening_stock")}
                self._update(cur, "products", int(row[0]), changes)
                return int(row[0]), False
            new_row = dict(data)
            new_row.setdefault("stock", new_row.get("opening_stock", 0))
            return self._insert(cur, "products", new_row), True

        return self._write(run)

    def update_product(self, product_id: int, changes: dict) -> bool:
        return bool(self._write(lambda cur: self._update(cur, "products", product_id, changes)))

    def set_product_stock(self, product_id: int, stock: int) -> bool:
        return self.update_product(product_id, {"stock": int(stock)})

    def delete_product(self, product_id: int) -> bool:
        def run(cur: sqlite3.Cursor):
            cur.execute("DELETE FROM products WHERE id=?", (int(product_id),))
            return cur.rowcount > 0

        return bool(self._write(run))

    def count_product_references(self, product_id: Optional[int] = None) -> int:
        conn = self._conn()
        cur = conn.cursor()
        total = 0
        for table in ("sales", "purchases", "sales_returns", "purchase_returns", "sales_voucher_items", "purchase_voucher_items"):
            if product_id is None:
                cur.execute(f"SELECT COUNT(*) FROM {table}")
            else:
                cur.execute(f"SELECT COUNT(*) FROM {table} WHERE product_id=?", (int(product_id),))
            total += int(cur.fetchone()[0])
        conn.close()
        return total

    def clear_products(self) -> int:
        def run(cur: sqlite3.Cursor):
            cur.execute("DELETE FROM products")
            return cur.rowcount

        return int(self._write(run))

    def get_product_by_id(self, product_id: int) -> Optional[Product]:
        return self._fetch_one(Product, "products", product_id)

    def get_product_by_sku(self, sku: str) -> Optional[Product]:
        rows = self._fetch_all(Product, "products", "sku=?", (sku,))
        return rows[0] if rows else None

    def list_products(self) -> list[Product]:
        return self._fetch_all(Product, "products", order="name, id")

    def list_products_page(self, offset: int, limit: int) -> list[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"{_select(Product, 'products')} ORDER BY name, id LIMIT ? OFFSET ?",
            (int(limit), int(offset)),
        )
        rows = cur.fetchall()
        conn.close()
        return [Product(*r) for r in rows]

    def search_products(self, query: str, limit: int = 20) -> list[Product]:
        escaped = query.strip().lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            {_select(Product, 'products')}
            WHERE lower(name) LIKE ? ESCAPE '\\' OR lower(sku) LIKE ? ESCAPE '\\'
               OR lower(barcode) LIKE ? ESCAPE '\\' OR lower(category) LIKE ? ESCAPE '\\'
            ORDER BY name, id
            LIMIT ?
            """,
            (pattern, pattern, pattern, pattern, int(limit)),
        )
        rows = cur.fetchall()
        conn.close()
        return [Product(*r) for r in rows]

    # ---------- Sales ----------
    def add_sales(self, rows: Iterable[dict]) -> list[int]:
        """Insert sales in one transaction; any stock failure rolls back every row."""
        rows = list(rows)
        return self._write(lambda cur: [self._insert_counted(cur, "sales", r) for r in rows])

    def add_sale(self, data: dict) -> int:
        return int(self.add_sales([data])[0])

    def update_sale(self, sale_id: int, changes: dict) -> bool:
        return bool(self._write(lambda cur: self._update_counted(cur, "sales", sale_id, changes)))

    def delete_sale(self, sale_id: int) -> bool:
        return bool(self._write(lambda cur: self._delete_counted(cur, "sales", sale_id)))

    def get_sale(self, sale_id: int) -> Optional[Sale]:
        return self._fetch_one(Sale, "sales", sale_id)

    def list_sales(self) -> list[Sale]:
        return self._fetch_all(Sale, "sales", order="date DESC, id DESC")

    def clear_sales(self) -> int:
        def run(cur: sqlite3.Cursor):
            cur.execute("SELECT id FROM sales_returns")
            for (rid,) in cur.fetchall():
                self._delete_counted(cur, "sales_returns", rid)
            cur.execute("SELECT id FROM sales")
            ids = [int(r[0]) for r in cur.fetchall()]
            for sid in ids:
                self._delete_counted(cur, "sales", sid)
            return len(ids)

        return int(self._write(run))

    # ---------- Purchases ----------
    def add_purchase_order(self, lines: Iterable[dict], purchase_order_id: Optional[str] = None) -> tuple[str, list[int]]:
        lines = list(lines)

        def run(cur: sqlite3.Cursor):
            po_id = purchase_order_id or self._next_document_number(cur, "purchases", "purchase_order_id", "PO")
            ids = [self._insert_counted(cur, "purchases", {**line, "purchase_order_id": po_id}) for line in lines]
            return po_id, ids

        return self._write(run)

    def update_purchase(self, purchase_id: int, changes: dict) -> bool:
        return bool(self._write(lambda cur: self._update_counted(cur, "purchases", purchase_id, changes)))

    def update_order_status(self, purchase_order_id: str, status: str) -> int:
        def run(cur: sqlite3.Cursor):
            cur.execute("SELECT id FROM purchases WHERE purchase_order_id=?", (purchase_order_id,))
            ids = [int(r[0]) for r in cur.fetchall()]
            for pid in ids:
                self._update_counted(cur, "purchases", pid, {"status": status})
            return len(ids)

        return int(self._write(run))

    def delete_purchase(self, purchase_id: int) -> bool:
        return bool(self._write(lambda cur: self._delete_counted(cur, "purchases", purchase_id)))

    def delete_purchase_order(self, purchase_order_id: str) -> int:
        """Delete every line of an order in one transaction; refused as a whole if any line has returns."""
        def run(cur: sqlite3.Cursor) -> int:
            cur.execute("SELECT id FROM purchases WHERE purchase_order_id=?", (purchase_order_id,))
            ids = [int(r[0]) for r in cur.fetchall()]
            cur.execute(
                """
                SELECT COUNT(*) FROM purchase_returns
                WHERE purchase_item_id IN (SELECT id FROM purchases WHERE purchase_order_id=?)
                """,
                (purchase_order_id,),
            )
            if int(cur.fetchone()[0]):
                raise ValidationError(f"Purchase order {purchase_order_id} has returns recorded against it. Delete the returns first.")
            for pid in ids:
                self._delete_counted(cur, "purchases", pid)
            return len(ids)

        return int(self._write(run))

    def get_purchase(self, purchase_id: int) -> Optional[Purchase]:
        return self._fetch_one(Purchase, "purchases", purchase_id)

    def list_purchases(self, purchase_order_id: Optional[str] = None) -> list[Purchase]:
        if purchase_order_id is None:
            return self._fetch_all(Purchase, "purchases", order="date DESC, purchase_order_id DESC, id")
        return self._fetch_all(Purchase, "purchases", "purchase_order_id=?", (purchase_order_id,), order="id")

    def count_purchase_references(self, purchase_id: int) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM purchase_returns WHERE purchase_item_id=?", (int(purchase_id),))
        count = int(cur.fetchone()[0])
        conn.close()
        return count

    def count_sale_references(self, sale_id: int) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM sales_returns WHERE original_sale_id=?", (int(sale_id),))
        count = int(cur.fetchone()[0])
        conn.close()
        return count

    # ---------- Returns ----------
    def add_sales_return(self, data: dict) -> int:
        return int(self._write(lambda cur: self._insert_counted(cur, "sales_returns", data)))

    def update_sales_return(self, return_id: int, changes: dict) -> bool:
        return bool(self._write(lambda cur: self._update_counted(cur, "sales_returns", return_id, changes)))

    def delete_sales_return(self, return_id: int) -> bool:
        return bool(self._write(lambda cur: self._delete_counted(cur, "sales_returns", return_id)))

    def get_sales_return(self, return_id: int) -> Optional[SalesReturn]:
        return self._fetch_one(SalesReturn, "sales_returns", return_id)

    def list_sales_returns(self) -> list[SalesReturn]:
        return self._fetch_all(SalesReturn, "sales_returns", order="return_date DESC, id DESC")

    def add_purchase_return(self, data: dict) -> int:
        return int(self._write(lambda cur: self._insert_counted(cur, "purchase_returns", data)))

    def update_purchase_return(self, return_id: int, changes: dict) -> bool:
        return bool(self._write(lambda cur: self._update_counted(cur, "purchase_returns", return_id, changes)))

    def delete_purchase_return(self, return_id: int) -> bool:
        return bool(self._write(lambda cur: self._delete_counted(cur, "purchase_returns", return_id)))

    def get_purchase_return(self, return_id: int) -> Optional[PurchaseReturn]:
        return self._fetch_one(PurchaseReturn, "purchase_returns", return_id)

    def list_purchase_returns(self) -> list[PurchaseReturn]:
        return self._fetch_all(PurchaseReturn, "purchase_returns", order="return_date DESC, id DESC")

    def returned_quantity(self, table: str, link_column: str, link_id: int, exclude_id: Optional[int] = None) -> int:
        """Quantity already claimed by non-rejected returns against one sale or purchase line."""
        if table not in ("sales_returns", "purchase_returns") or link_column not in TABLE_COLUMNS[table]:
            raise ValueError(f"Unsupported return lookup: {table}.{link_column}")
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT COALESCE(SUM(return_quantity), 0)
            FROM {table}
            WHERE {link_column}=? AND status != 'Rejected' AND id != ?
            """,
            (int(link_id), int(exclude_id or 0)),
        )
        qty = int(cur.fetchone()[0])
        conn.close()
        return qty

    # ---------- Vouchers ----------
    def create_voucher(self, kind: str, header: dict, items: Iterable[dict]) -> tuple[int, str]:
        header_table, item_table, movement, prefix, _cls, _item_cls = VOUCHER_TABLES[kind]
        items = list(items)

        def run(cur: sqlite3.Cursor):
            data = dict(header)
            data["voucher_number"] = data.get("voucher_number") or self._next_document_number(
                cur, header_table, "voucher_number", prefix
            )
            voucher_id = self._insert(cur, header_table, data)
            for item in items:
                self._insert(cur, item_table, {**item, "voucher_id": voucher_id})
                self._apply_stock_delta(cur, int(item["product_id"]), stock_effect(movement, data["status"], int(item["quantity"])))
            return voucher_id, data["voucher_number"]

        return self._write(run)

    def update_voucher(self, kind: str, voucher_id: int, changes: dict) -> bool:
        header_table, item_table, movement, *_ = VOUCHER_TABLES[kind]

        def run(cur: sqlite3.Cursor):
            cur.execute(f"SELECT status FROM {header_table} WHERE id=?", (int(voucher_id),))
            row = cur.fetchone()
            if not row:
                raise NotFoundError(f"Voucher {voucher_id} not found.")
            old_status = str(row[0])
            new_status = str(changes.get("status", old_status))
            if new_status != old_status:
                cur.execute(f"SELECT product_id, quantity FROM {item_table} WHERE voucher_id=?", (int(voucher_id),))
                for product_id, qty in cur.fetchall():
                    delta = stock_effect(movement, new_status, qty) - stock_effect(movement, old_status, qty)
                    self._apply_stock_delta(cur, int(product_id), delta)
            return self._update(cur, header_table, voucher_id, changes)

        return bool(self._write(run))

    def delete_voucher(self, kind: str, voucher_id: int) -> bool:
        header_table, item_table, movement, *_ = VOUCHER_TABLES[kind]

        def run(cur: sqlite3.Cursor):
            cur.execute(f"SELECT status FROM {header_table} WHERE id=?", (int(voucher_id),))
            row = cur.fetchone()
            if not row:
                return False
            cur.execute(f"SELECT product_id, quantity FROM {item_table} WHERE voucher_id=?", (int(voucher_id),))
            for product_id, qty in cur.fetchall():
                self._apply_stock_delta(cur, int(product_id), -stock_effect(movement, str(row[0]), qty))
            cur.execute(f"DELETE FROM {header_table} WHERE id=?", (int(voucher_id),))
            return True

        return bool(self._write(run))

    def list_vouchers(self, kind: str, voucher_id: Optional[int] = None) -> list:
        header_table, item_table, _movement, _prefix, cls, item_cls = VOUCHER_TABLES[kind]
        conn = self._conn()
        cur = conn.cursor()
        if voucher_id is None:
            cur.execute(f"{_select(cls, header_table)} ORDER BY date DESC, id DESC")
        else:
            cur.execute(f"{_select(cls, header_table)} WHERE id=?", (int(voucher_id),))
        headers = cur.fetchall()
        cur.execute(f"SELECT voucher_id, {', '.join(_columns_for(item_cls))} FROM {item_table} ORDER BY id")
        items_by_voucher: dict[int, list] = {}
        for r in cur.fetchall():
            items_by_voucher.setdefault(int(r[0]), []).append(item_cls(*r[1:]))
        conn.close()
        return [cls(*h, items=tuple(items_by_voucher.get(int(h[0]), []))) for h in headers]

    def get_voucher(self, kind: str, voucher_id: int):
        rows = self.list_vouchers(kind, voucher_id)
        return rows[0] if rows else None

    # ---------- Catalog ----------
    def add_catalog_entry(self, table: str, name: str, company_id: Optional[int] = None) -> int:
        if table not in CATALOG_TABLES:
            raise ValueError(f"Unknown catalog: {table}")
        return int(self._write(lambda cur: self._insert(cur, table, {"name": name, "company_id": company_id})))

    def rename_catalog_entry(self, table: str, entry_id: int, name: str) -> bool:
        if table not in CATALOG_TABLES:
            raise ValueError(f"Unknown catalog: {table}")
        return bool(self._write(lambda cur: self._update(cur, table, entry_id, {"name": name})))

    def delete_catalog_entry(self, table: str, entry_id: int) -> bool:
        if table not in CATALOG_TABLES:
            raise ValueError(f"Unknown catalog: {table}")

        def run(cur: sqlite3.Cursor):
            cur.execute(f"DELETE FROM {table} WHERE id=?", (int(entry_id),))
            return cur.rowcount > 0

        return bool(self._write(run))

    def list_catalog(self, table: str) -> list:
        return self._fetch_all(CATALOG_TABLES[table], table, order="name")

    # ---------- Companies ----------
    def add_company(self, data: dict) -> int:
        return int(self._write(lambda cur: self._insert(cur, "companies", data)))

    def update_company(self, company_id: int, changes: dict) -> bool:
        return bool(self._write(lambda cur: self._update(cur, "companies", company_id, changes)))

    def delete_company(self, company_id: int) -> bool:
        def run(cur: sqlite3.Cursor):
            cur.execute("DELETE FROM companies WHERE id=?", (int(company_id),))
            return cur.rowcount > 0

        return bool(self._write(run))

    def get_company(self, company_id: int) -> Optional[Company]:
        return self._fetch_one(Company, "companies", company_id)

    def list_companies(self) -> list[Company]:
        return self._fetch_all(Company, "companies", order="name")

    # ---------- Snapshots ----------
    def table_rows(self, table: str) -> list[dict]:
        cols = TABLE_COLUMNS[table]
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {', '.join(cols)} FROM {table} ORDER BY id")
        rows = [dict(zip(cols, r)) for r in cur.fetchall()]
        conn.close()
        return rows

    def replace_tables(
        self,
        tables: dict[str, list[dict]],
        on_error: Callable[[str, dict, Exception], None] | None = None,
    ) -> dict[str, int]:
        """Replace the given tables with raw rows, without touching stock bookkeeping.

        Tables are cleared children-first and filled parents-first. A failing row
        is handed to ``on_error`` and skipped; without a callback it aborts the
        whole replacement.
        """
        order = [t for t in TABLE_COLUMNS if t in tables]
        unknown = set(tables) - set(order)
        if unknown:
            raise ValueError(f"Unknown tables: {', '.join(sorted(unknown))}")

        def run(cur: sqlite3.Cursor):
            for table in reversed(order):
                cur.execute(f"DELETE FROM {table}")
            restored: dict[str, int] = {}
            for table in order:
                count = 0
                for row in tables[table]:
                    try:
                        self._insert(cur, table, row)
                        count += 1
                    except (sqlite3.Error, KeyError, ValueError, TypeError) as exc:
                        if on_error is None:
                            raise
                        on_error(table, row, exc)
                restored[table] = count
            return restored

        return self._write(run)

    @staticmethod
    def _hash_pin(pin: str, *, rounds: int = 200_000, salt: str | None = None) -> str:
        salt = salt or secrets.token_hex(16)
        digest = hashlib.pbkdf2_hmac("sha256", pin.encode("utf-8"), bytes.fromhex(salt), rounds).hex()
        return f"pbkdf2_sha256${rounds}${salt}${digest}"

    @staticmethod
    def _verify_pin(stored: str, provided: str) -> bool:
        if stored.startswith("pbkdf2_sha256$"):
            try:
                _algo, rounds_s, salt, digest = stored.split("$", 3)
                rounds = int(rounds_s)
                candidate = hashlib.pbkdf2_hmac(
                    "sha256",
                    provided.encode("utf-8"),
                    bytes.fromhex(salt),
                    rounds,
                ).hex()
                return hmac.compare_digest(candidate, digest)
            except ValueError:
                return False
        return hmac.compare_digest(stored, provided)
