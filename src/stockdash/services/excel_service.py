from __future__ import annotations

import sqlite3
from pathlib import Path

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font

from stockdash.domain.errors import AppError, ValidationError
from stockdash.domain.money import parse_money
from stockdash.domain.stock import default_reorder_point
import logging

log = logging.getLogger(__name__)

REQUIRED_HEADERS = ["sku", "name"]
OPTIONAL_HEADERS = ["category", "unit", "opening_stock", "reorder_point", "purchase_price", "sell_price", "barcode"]


class ExcelService:
    def __init__(self, repo):
        self.repo = repo

    def write_template(self, path: Path | str) -> None:
        wb = Workbook()
        ws = wb.active
        ws.title = "Products"
        ws.append(REQUIRED_HEADERS + OPTIONAL_HEADERS)
        for c in ws[1]:
            c.font = Font(bold=True)
        wb.save(str(path))

    def import_products_excel(self, path: Path | str) -> tuple[int, int]:
        """
        Creates unknown SKUs and refreshes the catalogue fields of known ones.
        Persisted stock of an existing product is never touched here; it only
        moves through transactions.
        Headers:
          sku | name | category | unit | opening_stock | reorder_point | purchase_price | sell_price | barcode
        """
        wb = load_workbook(str(path))
        ws = wb.active

        headers = {}
        for col in range(1, ws.max_column + 1):
            v = ws.cell(row=1, column=col).value
            if isinstance(v, str):
                headers[v.strip().lower()] = col

        for r in REQUIRED_HEADERS:
            if r not in headers:
                raise ValidationError(f"Missing column header: {r}")

        def cell(row: int, name: str):
            col = headers.get(name)
            return ws.cell(row=row, column=col).value if col else None

        ok = 0
        skipped = 0

        for row in range(2, ws.max_row + 1):
            try:
                sku = cell(row, "sku")
                name = cell(row, "name")
                if not sku or not name:
                    skipped += 1
                    continue

                opening = int(float(cell(row, "opening_stock") or 0))
                raw_reorder = cell(row, "reorder_point")
                reorder = default_reorder_point(opening) if raw_reorder in (None, "") else int(float(raw_reorder))
                data = {
                    "sku": str(sku).strip(),
                    "name": str(name).strip(),
                    "category": str(cell(row, "category") or "").strip(),
                    "unit": str(cell(row, "unit") or "").strip(),
                    "opening_stock": opening,
                    "reorder_point": reorder,
                    "purchase_price": parse_money(cell(row, "purchase_price")),
                    "sell_price": parse_money(cell(row, "sell_price")),
                    "barcode": str(cell(row, "barcode") or "").strip(),
                }
                if opening < 0 or reorder < 0 or data["purchase_price"] < 0 or data["sell_price"] < 0:
                    skipped += 1
                    continue

                _pid, created = self.repo.upsert_product(data)
                log.info("excel_import row=%s sku=%s created=%s", row, data["sku"], created)
                ok += 1
            except (ValueError, TypeError, AppError, sqlite3.Error) as e:
                log.warning("Excel import skipped row %s: %s", row, e)
                skipped += 1

        return ok, skipped
