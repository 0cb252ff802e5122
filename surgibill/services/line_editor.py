# surgibill/services/line_editor.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, List, Optional, Sequence

from surgibill.schemas.line_item import (
    MASTER_FIELDS,
    LineItemBase,
    ManualLineItem,
    build_line,
    replace_line,
)
from surgibill.schemas.material import CatalogScope
from surgibill.services.billing_math import D, TaxContext
from surgibill.services.line_pricing import (
    recalculate_line,
    resolve_and_price_line,
)
from surgibill.services.line_resolver import ResolvedLine
from surgibill.services.material_catalog import MaterialCatalog
from surgibill.services.pricing_errors import LineValidationError

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = set(MASTER_FIELDS) | {
    "quantity",
    "discount_percentage",
    "discount_amount",
    "currency",
}
_RATE_INPUTS = {"unit_rate", "quantity", "gst_percentage"}


# ============================================================
# Rows
# ============================================================
def new_line(serial_number: int, currency: str = "INR") -> ManualLineItem:
    return ManualLineItem(serial_number=serial_number, currency=currency)


def renumber(items: Sequence) -> List[ResolvedLine]:
    return [
        replace_line(build_line(it), serial_number=i)
        for i, it in enumerate(items, start=1)
    ]


def add_line(items: Sequence, currency: str = "INR") -> List[ResolvedLine]:
    rows = renumber(items)
    rows.append(new_line(len(rows) + 1, currency=currency))
    return rows


def remove_line(items: Sequence, serial_number: int) -> List[ResolvedLine]:
    rows = [build_line(it) for it in items]
    idx = next((i for i, r in enumerate(rows)
                if r.serial_number == int(serial_number)), None)
    if idx is None:
        raise LineValidationError(f"No line with serial number {serial_number}",
                                  serial_number=serial_number)
    del rows[idx]
    return renumber(rows)


def target_index(count: int, new_serial_number: Any) -> int:
    """0-based slot for a typed serial number, clamped to the list."""
    dst = int(D(new_serial_number, "1")) - 1
    return max(0, min(dst, count - 1))


def move_line(items: Sequence, serial_number: int,
              new_serial_number: Any) -> List[ResolvedLine]:
    """Serial-number edit: the row moves to the new position, others close up."""
    rows = renumber(sorted((build_line(it) for it in items),
                           key=lambda r: r.serial_number))
    src = int(serial_number) - 1
    if not 0 <= src < len(rows):
        raise LineValidationError(f"No line with serial number {serial_number}",
                                  serial_number=serial_number)
    dst = target_index(len(rows), new_serial_number)
    row = rows.pop(src)
    rows.insert(dst, row)
    return renumber(rows)


# ============================================================
# Field edits
# ============================================================
def apply_edit(item: LineItemBase,
               field: str,
               value: Any,
               tax: Optional[TaxContext] = None) -> ResolvedLine:
    """
    One user edit on one line, followed by recalculation.

    Master-derived fields of a master line ignore edits. A positive discount
    amount clears the percentage and vice versa. When the percentage is the
    active discount input, rate/quantity/GST edits re-derive the amount.
    Material number edits go through ``edit_material_number``.
    """
    if field == "material_number":
        raise LineValidationError(
            "Material number edits need a catalog; use edit_material_number",
            serial_number=item.serial_number)
    if field not in EDITABLE_FIELDS:
        raise LineValidationError(f"'{field}' is not editable",
                                  serial_number=item.serial_number)

    if item.is_from_master and field in MASTER_FIELDS:
        logger.debug("Ignoring edit of locked %s on line %s", field,
                     item.serial_number)
        return recalculate_line(item, tax)

    updates = {field: value}
    if field == "discount_amount" and D(value) > 0:
        updates["discount_percentage"] = Decimal("0")
    elif field == "discount_percentage":
        # the amount is re-derived from the new percentage
        updates["discount_amount"] = Decimal("0")
    elif field in _RATE_INPUTS and D(item.discount_percentage) > 0:
        updates["discount_amount"] = Decimal("0")

    return recalculate_line(replace_line(item, **updates), tax)


def edit_material_number(item: LineItemBase,
                         value: Any,
                         scope: CatalogScope,
                         catalog: MaterialCatalog,
                         tax: Optional[TaxContext] = None) -> ResolvedLine:
    return resolve_and_price_line(replace_line(item, material_number=value),
                                  scope, catalog, tax)
