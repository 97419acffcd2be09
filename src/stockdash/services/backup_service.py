from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from stockdash.domain.errors import BackupError
from stockdash.domain.models import from_view_model, to_view_model
from stockdash.repositories.sqlite_repo import VOUCHER_TABLES

log = logging.getLogger(__name__)

BACKUP_VERSION = "1.0"
REQUIRED_KEYS = ("products", "sales", "purchases", "salesReturns")
# JSON key -> table, for the single-row collections
ROW_COLLECTIONS = {
    "products": "products",
    "sales": "sales",
    "purchases": "purchases",
    "salesReturns": "sales_returns",
    "purchaseReturns": "purchase_returns",
}
VOUCHER_COLLECTIONS = {"salesVouchers": "sales", "purchaseVouchers": "purchase"}


class BackupService:
    def __init__(self, repo, db_path: Path | str, backup_dir: Path | str, max_snapshots: int = 30):
        self.repo = repo
        self.db_path = Path(db_path)
        self.backup_dir = Path(backup_dir)
        self.max_snapshots = int(max_snapshots)

    # ---------- SQLite snapshots ----------
    def create_backup(self) -> Path:
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        target = self.backup_dir / f"inventory_backup_{ts}.db"

        src = sqlite3.connect(str(self.db_path))
        dst = sqlite3.connect(str(target))
        try:
            src.backup(dst)
        finally:
            dst.close()
            src.close()
        self._enforce_retention(self.max_snapshots)
        log.info("snapshot_created path=%s", target)
        return target

    def list_backups(self) -> list[Path]:
        return sorted(self.backup_dir.glob("inventory_backup_*.db"))

    def restore_backup(self, backup_file: Path | str) -> Path:
        backup_path = Path(backup_file)
        if not backup_path.exists():
            raise BackupError(f"Backup not found: {backup_path}")

        src = sqlite3.connect(str(backup_path))
        try:
            check = src.execute("PRAGMA integrity_check").fetchone()
            if not check or check[0] != "ok":
                raise BackupError(f"Backup failed integrity check: {backup_path.name}")
            dst = sqlite3.connect(str(self.db_path))
            try:
                src.backup(dst)
            finally:
                dst.close()
        except sqlite3.DatabaseError as exc:
            raise BackupError(f"Not a valid database backup: {backup_path.name}") from exc
        finally:
            src.close()
        log.warning("snapshot_restored path=%s", backup_path)
        return self.db_path

    def _enforce_retention(self, max_backups: int) -> None:
        files = self.list_backups()
        if len(files) <= max_backups:
            return
        for old in files[: len(files) - max_backups]:
            old.unlink(missing_ok=True)

    # ---------- JSON export / import ----------
    def build_json_backup(self) -> dict:
        data: dict = {
            "products": [to_view_model(p) for p in self.repo.list_products()],
            "sales": [to_view_model(s) for s in self.repo.list_sales()],
            "purchases": [to_view_model(p) for p in self.repo.list_purchases()],
            "salesReturns": [to_view_model(r) for r in self.repo.list_sales_returns()],
            "purchaseReturns": [to_view_model(r) for r in self.repo.list_purchase_returns()],
        }
        for key, kind in VOUCHER_COLLECTIONS.items():
            data[key] = [to_view_model(v) for v in self.repo.list_vouchers(kind)]
        data["timestamp"] = datetime.now().isoformat(timespec="seconds")
        data["version"] = BACKUP_VERSION
        return data

    def export_json(self, path: Path | str) -> Path:
        target = Path(path)
        payload = self.build_json_backup()
        target.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        log.info("json_backup_written path=%s products=%s sales=%s", target, len(payload["products"]), len(payload["sales"]))
        return target

    def restore_json(self, path: Path | str) -> dict[str, int]:
        """Replace all transactional data with the contents of a JSON backup.

        Rows that the store rejects are logged and skipped; the rest is kept.
        Returns restored row counts per table plus a 'skipped' total.
        """
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise BackupError(f"Could not read backup file: {exc}") from exc
        return self.restore_payload(payload)

    def restore_payload(self, payload: dict) -> dict[str, int]:
        if not isinstance(payload, dict):
            raise BackupError("Invalid backup file format.")
        missing = [k for k in REQUIRED_KEYS if not isinstance(payload.get(k), list)]
        if missing:
            raise BackupError(f"Invalid backup file format. Missing: {', '.join(missing)}")

        tables: dict[str, list[dict]] = {}
        for key, table in ROW_COLLECTIONS.items():
            tables[table] = [from_view_model(row) for row in payload.get(key) or [] if isinstance(row, dict)]
        for key, kind in VOUCHER_COLLECTIONS.items():
            header_table, item_table, *_ = VOUCHER_TABLES[kind]
            headers, items = [], []
            for raw in payload.get(key) or []:
                if not isinstance(raw, dict):
                    continue
                row = from_view_model(raw)
                for item in row.pop("items", None) or []:
                    items.append({**item, "voucher_id": row.get("id")})
                headers.append(row)
            tables[header_table] = headers
            tables[item_table] = items

        skipped: list[str] = []

        def on_error(table: str, row: dict, exc: Exception) -> None:
            skipped.append(table)
            log.warning("restore_row_skipped table=%s id=%s error=%s", table, row.get("id"), exc)

        restored = self.repo.replace_tables(tables, on_error=on_error)
        restored["skipped"] = len(skipped)
        log.warning("json_backup_restored counts=%s", restored)
        return restored
