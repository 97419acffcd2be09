from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.pdfgen import canvas

from stockdash.domain.models import Company, PurchaseOrder, PurchaseVoucher, Sale, SalesVoucher
from stockdash.domain.money import format_money

log = logging.getLogger(__name__)

MARGIN = 18 * mm
LINE_H = 14
# x offsets of the item table columns: description, qty, unit price, total
COLUMNS = (0, 95 * mm, 120 * mm, 150 * mm)


class _Sheet:
    """Top-down writer over a reportlab canvas that breaks pages as needed."""

    def __init__(self, path: Path | str, title: str):
        self.c = canvas.Canvas(str(path), pagesize=A4)
        self.c.setTitle(title)
        self.width, self.height = A4
        self.y = self.height - MARGIN

    def _room(self, lines: int = 1) -> None:
        if self.y - lines * LINE_H < MARGIN:
            self.c.showPage()
            self.y = self.height - MARGIN

    def text(self, value: str, size: int = 10, bold: bool = False, x: float = 0) -> None:
        self._room()
        self.c.setFont("Helvetica-Bold" if bold else "Helvetica", size)
        self.c.drawString(MARGIN + x, self.y, value)
        self.y -= LINE_H + (size - 10)

    def row(self, cells: Sequence[str], bold: bool = False) -> None:
        self._room()
        self.c.setFont("Helvetica-Bold" if bold else "Helvetica", 10)
        for x, value in zip(COLUMNS, cells):
            self.c.drawString(MARGIN + x, self.y, value)
        self.y -= LINE_H

    def rule(self) -> None:
        self._room()
        self.c.line(MARGIN, self.y + 4, self.width - MARGIN, self.y + 4)
        self.y -= 6

    def gap(self, lines: int = 1) -> None:
        self.y -= LINE_H * lines

    def save(self) -> None:
        self.c.save()


class DocumentService:
    def __init__(self, currency_symbol: str = "৳"):
        self.currency_symbol = currency_symbol

    def _money(self, amount) -> str:
        return format_money(amount, self.currency_symbol)

    @staticmethod
    def _letterhead(sheet: _Sheet, company: Optional[Company], title: str) -> None:
        if company:
            sheet.text(company.name, size=14, bold=True)
            for extra in (company.address, company.phone, company.email):
                if extra:
                    sheet.text(extra, size=9)
            sheet.gap()
        sheet.text(title, size=16, bold=True)
        sheet.gap()

    def purchase_order_pdf(self, order: PurchaseOrder, path: Path | str, company: Optional[Company] = None) -> Path:
        sheet = _Sheet(path, f"Purchase Order {order.purchase_order_id}")
        self._letterhead(sheet, company, "PURCHASE ORDER")
        sheet.text(f"Order: {order.purchase_order_id}")
        sheet.text(f"Supplier: {order.supplier}")
        sheet.text(f"Date: {order.date}")
        sheet.text(f"Status: {order.status}")
        sheet.gap()
        sheet.row(["Product", "Qty", "Unit Price", "Total"], bold=True)
        sheet.rule()
        for line in order.items:
            sheet.row([line.product_name, str(line.quantity), self._money(line.unit_price), self._money(line.total_amount)])
        sheet.rule()
        sheet.row(["Grand Total", str(order.total_quantity), "", self._money(order.total_amount)], bold=True)
        sheet.save()
        log.info("pdf_written kind=purchase_order ref=%s path=%s", order.purchase_order_id, path)
        return Path(path)

    def sales_invoice_pdf(self, sale: Sale, path: Path | str, company: Optional[Company] = None) -> Path:
        sheet = _Sheet(path, f"Invoice {sale.id}")
        self._letterhead(sheet, company, "SALES INVOICE")
        sheet.text(f"Invoice: INV-{sale.id:05d}")
        sheet.text(f"Date: {sale.date}")
        sheet.text(f"Customer: {sale.customer_name or 'Walk-in Customer'}")
        sheet.text(f"Status: {sale.status}")
        sheet.gap()
        sheet.row(["Product", "Qty", "Unit Price", "Total"], bold=True)
        sheet.rule()
        sheet.row([sale.product_name, str(sale.quantity), self._money(sale.unit_price), self._money(sale.total_amount)])
        sheet.rule()
        sheet.row(["Total", "", "", self._money(sale.total_amount)], bold=True)
        if sale.notes:
            sheet.gap()
            sheet.text(f"Notes: {sale.notes}", size=9)
        sheet.save()
        log.info("pdf_written kind=sales_invoice ref=%s path=%s", sale.id, path)
        return Path(path)

    def voucher_pdf(self, voucher: SalesVoucher | PurchaseVoucher, path: Path | str, company: Optional[Company] = None) -> Path:
        is_sales = isinstance(voucher, SalesVoucher)
        sheet = _Sheet(path, f"Voucher {voucher.voucher_number}")
        self._letterhead(sheet, company, "SALES VOUCHER" if is_sales else "PURCHASE VOUCHER")
        sheet.text(f"Voucher: {voucher.voucher_number}")
        sheet.text(f"Date: {voucher.date}")
        if is_sales:
            sheet.text(f"Customer: {voucher.customer_name or 'Walk-in Customer'}")
        else:
            sheet.text(f"Supplier: {voucher.supplier_name}")
        sheet.text(f"Payment: {voucher.payment_method}    Status: {voucher.status}")
        sheet.gap()
        sheet.row(["Product", "Qty", "Unit Price", "Total"], bold=True)
        sheet.rule()
        for item in voucher.items:
            sheet.row([item.product_name, str(item.quantity), self._money(item.unit_price), self._money(item.total_amount)])
        sheet.rule()
        sheet.row(["Subtotal", "", "", self._money(voucher.total_amount)])
        sheet.row(["Discount", "", "", self._money(voucher.discount_amount)])
        sheet.row(["Final Amount", "", "", self._money(voucher.final_amount)], bold=True)
        if voucher.notes:
            sheet.gap()
            sheet.text(f"Notes: {voucher.notes}", size=9)
        sheet.save()
        log.info("pdf_written kind=voucher ref=%s path=%s", voucher.voucher_number, path)
        return Path(path)
