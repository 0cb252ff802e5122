# surgibill/services/line_validation.py
from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List

from surgibill.services.billing_math import D
from surgibill.services.pricing_errors import LineValidationError

MIN_QUANTITY = Decimal("1")


def line_problems(item) -> List[str]:
    """Save-time checks for one recalculated line; empty list when valid."""
    problems: List[str] = []
    n = item.serial_number

    if not (item.material_number or "").strip():
        problems.append(f"Line {n}: material number is required")
    if not (item.hsn_code or "").strip():
        problems.append(f"Line {n}: HSN code is required")
    if not (item.unit or "").strip():
        problems.append(f"Line {n}: unit is required")

    if D(item.quantity) < MIN_QUANTITY:
        problems.append(f"Line {n}: quantity must be >= 1")
    if D(item.unit_rate) < 0:
        problems.append(f"Line {n}: unit rate cannot be negative")
    if not Decimal("0") <= D(item.gst_percentage) <= Decimal("100"):
        problems.append(f"Line {n}: GST % must be between 0 and 100")
    if not Decimal("0") <= D(item.discount_percentage) <= Decimal("100"):
        problems.append(f"Line {n}: discount % must be between 0 and 100")
    if D(item.discount_amount) < 0:
        problems.append(f"Line {n}: discount amount cannot be negative")
    if D(item.total_amount) < 0:
        problems.append(f"Line {n}: discount exceeds line value")
    return problems


def validate_lines(items: Iterable) -> None:
    rows = list(items)
    if not rows:
        raise LineValidationError("At least one line item is required")

    serials = [r.serial_number for r in rows]
    if serials != list(range(1, len(rows) + 1)):
        raise LineValidationError(
            "Serial numbers must run 1..n without gaps")

    for r in rows:
        problems = line_problems(r)
        if problems:
            raise LineValidationError("; ".join(problems),
                                      serial_number=r.serial_number)
