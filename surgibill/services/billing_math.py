# surgibill/services/billing_math.py
"""
Line and document arithmetic for inquiries and templates.

Every monetary output is a ``Decimal`` quantized to 0.01 with
``ROUND_HALF_UP``. The GST and discount components are rounded first and the
line total is built from those rounded components, so a stored line always
satisfies ``total == round2(rate * qty + gst_amount - discount_amount)``.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional

MONEY_Q = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")
HALF = Decimal("0.5")


def D(x, default: str = "0") -> Decimal:
    """Coerce anything numeric-looking to Decimal; junk becomes ``default``."""
    if isinstance(x, bool):
        return Decimal(default)
    try:
        s = str(x if x is not None else default).strip().replace(",", "")
        d = Decimal(s or default)
    except (InvalidOperation, ValueError, TypeError):
        return Decimal(default)
    if not d.is_finite():
        return Decimal(default)
    return d


def money2(x) -> Decimal:
    return D(x).quantize(MONEY_Q, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TaxContext:
    """State codes used for the CGST/SGST/IGST split (template lines)."""

    customer_state_code: str
    company_state_code: str

    @property
    def is_same_state(self) -> bool:
        return (self.customer_state_code or "").strip().upper() == (
            self.company_state_code or "").strip().upper()


@dataclass(frozen=True)
class GstSplit:
    cgst_amount: Decimal = ZERO
    sgst_amount: Decimal = ZERO
    igst_amount: Decimal = ZERO


@dataclass(frozen=True)
class DerivedAmounts:
    base_amount: Decimal
    gst_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    cgst_amount: Decimal = ZERO
    sgst_amount: Decimal = ZERO
    igst_amount: Decimal = ZERO


def split_gst(gst_amount, ctx: TaxContext) -> GstSplit:
    # CGST is always half; the other half is SGST (same state) or IGST.
    half = money2(D(gst_amount) * HALF)
    if ctx.is_same_state:
        return GstSplit(cgst_amount=half, sgst_amount=half, igst_amount=ZERO)
    return GstSplit(cgst_amount=half, sgst_amount=ZERO, igst_amount=half)


def effective_discount(base_amount, discount_percentage,
                       discount_amount) -> Decimal:
    amt = D(discount_amount)
    if amt > 0:
        return amt
    return D(base_amount) * D(discount_percentage) / HUNDRED


def compute_line_amounts(
    unit_rate,
    quantity,
    gst_percentage,
    discount_percentage=0,
    discount_amount=0,
    *,
    tax: Optional[TaxContext] = None,
) -> DerivedAmounts:
    """
    Pure recomputation of one line. Inputs may be strings, floats, None;
    anything unparseable counts as 0. Quantity and totals are not clamped.
    """
    base = D(unit_rate) * D(quantity)
    gst = money2(base * D(gst_percentage) / HUNDRED)
    disc = money2(effective_discount(base, discount_percentage,
                                     discount_amount))
    total = money2(base + gst - disc)

    split = split_gst(gst, tax) if tax is not None else GstSplit()

    return DerivedAmounts(
        base_amount=money2(base),
        gst_amount=gst,
        discount_amount=disc,
        total_amount=total,
        cgst_amount=split.cgst_amount,
        sgst_amount=split.sgst_amount,
        igst_amount=split.igst_amount,
    )


def _total_of(item: Any) -> Decimal:
    if isinstance(item, dict):
        return D(item.get("total_amount"))
    if hasattr(item, "total_amount"):
        return D(getattr(item, "total_amount"))
    return D(item)


def aggregate(items: Iterable[Any]) -> Decimal:
    """Document total: fresh rounded sum of the current line totals."""
    return money2(sum((_total_of(it) for it in items), ZERO))


@dataclass(frozen=True)
class DocumentTotals:
    sub_total: Decimal
    discount_total: Decimal
    gst_total: Decimal
    cgst_total: Decimal
    sgst_total: Decimal
    igst_total: Decimal
    grand_total: Decimal


def document_totals(items: Iterable[Any]) -> DocumentTotals:
    sub = disc = gst = cgst = sgst = igst = ZERO
    rows = list(items)
    for it in rows:
        sub += D(getattr(it, "unit_rate", 0)) * D(getattr(it, "quantity", 0))
        disc += D(getattr(it, "discount_amount", 0))
        gst += D(getattr(it, "gst_amount", 0))
        cgst += D(getattr(it, "cgst_amount", 0))
        sgst += D(getattr(it, "sgst_amount", 0))
        igst += D(getattr(it, "igst_amount", 0))

    return DocumentTotals(
        sub_total=money2(sub),
        discount_total=money2(disc),
        gst_total=money2(gst),
        cgst_total=money2(cgst),
        sgst_total=money2(sgst),
        igst_total=money2(igst),
        grand_total=aggregate(rows),
    )
