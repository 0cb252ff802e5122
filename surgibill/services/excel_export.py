from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

LINE_HEADERS = [
    "S.No", "Material No", "Description", "HSN", "Unit",
    "Unit Rate", "GST %", "Qty", "Discount %", "Discount Amt",
    "GST Amt", "CGST", "SGST", "IGST", "Total",
]


def _money(x) -> float:
    try:
        return float(Decimal(str(x or "0")))
    except Exception:
        return 0.0


def _append_lines(ws, items: Iterable) -> None:
    ws.append(LINE_HEADERS)
    for c in ws[ws.max_row]:
        c.font = Font(bold=True)

    for it in items:
        ws.append([
            it.serial_number,
            it.material_number,
            it.material_description,
            it.hsn_code,
            it.unit,
            _money(it.unit_rate),
            _money(it.gst_percentage),
            _money(it.quantity),
            _money(it.discount_percentage),
            _money(it.discount_amount),
            _money(it.gst_amount),
            _money(it.cgst_amount),
            _money(it.sgst_amount),
            _money(it.igst_amount),
            _money(it.total_amount),
        ])


def _append_totals(ws, totals) -> None:
    ws.append([])
    for label, value in (
        ("Sub Total", totals.sub_total),
        ("Discount", totals.discount_total),
        ("GST", totals.gst_total),
        ("CGST", totals.cgst_total),
        ("SGST", totals.sgst_total),
        ("IGST", totals.igst_total),
        ("Grand Total", totals.grand_total),
    ):
        ws.append([""] * (len(LINE_HEADERS) - 2) + [label, _money(value)])
    ws.cell(row=ws.max_row, column=len(LINE_HEADERS) - 1).font = Font(bold=True)


def _autosize(ws) -> None:
    for i in range(1, len(LINE_HEADERS) + 1):
        col = get_column_letter(i)
        max_len = 10
        for cell in ws[col]:
            if cell.value is not None:
                max_len = max(max_len, len(str(cell.value)))
        ws.column_dimensions[col].width = min(max_len + 2, 45)


def build_template_excel(fp, template) -> None:
    """``template`` is a TemplateOut."""
    wb = Workbook()
    ws = wb.active
    ws.title = template.template_number

    ws.append(["Template", template.template_number])
    ws.append(["Description", template.description])
    ws.append(["Surgical Category", template.surgical_category or ""])
    ws.append(["Currency", template.currency])
    ws.append(["Limit Amount", _money(template.limit_amount)])
    ws.append([])

    _append_lines(ws, template.items)
    _append_totals(ws, template.totals)
    _autosize(ws)

    wb.save(fp)


def build_inquiry_excel(fp, inquiry) -> None:
    """``inquiry`` is an InquiryOut."""
    wb = Workbook()
    ws = wb.active
    ws.title = inquiry.inquiry_number

    ws.append(["Inquiry", inquiry.inquiry_number])
    ws.append(["Patient", inquiry.patient_name])
    ws.append(["Hospital ID", inquiry.hospital_id])
    ws.append(["Surgical Category", inquiry.surgical_category or ""])
    ws.append([])

    _append_lines(ws, inquiry.items)
    _append_totals(ws, inquiry.totals)
    _autosize(ws)

    wb.save(fp)
