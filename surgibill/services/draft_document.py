# surgibill/services/draft_document.py
from __future__ import annotations

import asyncio
import itertools
import logging
from decimal import Decimal
from typing import Any, List, Optional, Sequence

from surgibill.schemas.line_item import build_line, replace_line
from surgibill.schemas.material import CatalogScope, MaterialRecord
from surgibill.services.billing_math import TaxContext, aggregate
from surgibill.services.line_editor import (
    apply_edit,
    new_line,
    renumber,
    target_index,
)
from surgibill.services.line_pricing import (
    recalculate_line,
    resolve_and_price_line,
)
from surgibill.services.line_resolver import ResolvedLine
from surgibill.services.material_catalog import (
    MaterialCatalog,
    normalize_material_number,
)
from surgibill.services.pricing_errors import (
    CatalogUnavailable,
    LineValidationError,
)
from surgibill.services.resolution_guard import ResolutionGuard, ResolutionTicket

logger = logging.getLogger(__name__)


class _Prefetched:
    """Catalog stand-in answering with a record fetched earlier."""

    def __init__(self, record: Optional[MaterialRecord]):
        self.record = record

    def lookup_by_number(self, hospital_id, material_number, scope=None):
        return self.record

    def list_distinct_values(self, hospital_id, partial_scope, next_field):
        return []


class DraftDocument:
    """
    Line items of an inquiry/template being edited.

    Every mutation recalculates the touched line; ``total`` is always a fresh
    sum over the current lines. Material lookups may complete out of order;
    only the latest lookup per row is applied.
    """

    def __init__(self,
                 scope: CatalogScope,
                 catalog: MaterialCatalog,
                 items: Sequence = (),
                 tax: Optional[TaxContext] = None,
                 currency: str = "INR"):
        self.scope = scope
        self.catalog = catalog
        self.tax = tax
        self.currency = currency
        self.guard = ResolutionGuard()
        self._key_seq = itertools.count(1)

        rows = [recalculate_line(build_line(it), tax) for it in items]
        self._rows: List[ResolvedLine] = renumber(rows) or [
            new_line(1, currency)
        ]
        self._keys: List[int] = [next(self._key_seq) for _ in self._rows]

    # ------------------------------------------------------------
    @property
    def items(self) -> List[ResolvedLine]:
        return list(self._rows)

    @property
    def total(self) -> Decimal:
        return aggregate(self._rows)

    def _index(self, serial_number: int) -> int:
        for i, r in enumerate(self._rows):
            if r.serial_number == int(serial_number):
                return i
        raise LineValidationError(f"No line with serial number {serial_number}",
                                  serial_number=serial_number)

    # ------------------------------------------------------------
    # rows
    # ------------------------------------------------------------
    def add_line(self) -> ResolvedLine:
        row = new_line(len(self._rows) + 1, self.currency)
        self._rows.append(row)
        self._keys.append(next(self._key_seq))
        return row

    def remove_line(self, serial_number: int) -> None:
        idx = self._index(serial_number)
        del self._rows[idx]
        self.guard.forget(self._keys.pop(idx))
        self._rows = renumber(self._rows)

    def move_line(self, serial_number: int, new_serial_number: Any) -> None:
        src = self._index(serial_number)
        dst = target_index(len(self._rows), new_serial_number)
        row, key = self._rows.pop(src), self._keys.pop(src)
        self._rows.insert(dst, row)
        self._keys.insert(dst, key)
        self._rows = renumber(self._rows)

    # ------------------------------------------------------------
    # edits
    # ------------------------------------------------------------
    def edit(self, serial_number: int, field: str, value: Any) -> ResolvedLine:
        idx = self._index(serial_number)
        self._rows[idx] = apply_edit(self._rows[idx], field, value, self.tax)
        return self._rows[idx]

    def begin_material_edit(self, serial_number: int,
                            value: Any) -> ResolutionTicket:
        """Record the typed number; the row keeps its last values until settled."""
        idx = self._index(serial_number)
        self._rows[idx] = replace_line(self._rows[idx], material_number=value)
        return self.guard.begin(self._keys[idx],
                                normalize_material_number(value))

    def lookup(self, ticket: ResolutionTicket) -> Optional[MaterialRecord]:
        if not ticket.material_number:
            return None
        try:
            return self.catalog.lookup_by_number(self.scope.hospital_id,
                                                 ticket.material_number,
                                                 self.scope)
        except CatalogUnavailable as e:
            logger.warning("Catalog unavailable for %s: %s",
                           ticket.material_number, e)
            return None

    def settle(self, ticket: ResolutionTicket,
               record: Optional[MaterialRecord]) -> bool:
        """Apply a finished lookup; False when it was superseded."""
        if not self.guard.accept(ticket):
            return False
        try:
            idx = self._keys.index(ticket.row_key)
        except ValueError:
            return False
        row = replace_line(self._rows[idx],
                           material_number=ticket.material_number)
        self._rows[idx] = resolve_and_price_line(row, self.scope,
                                                 _Prefetched(record), self.tax)
        return True

    def set_material_number(self, serial_number: int, value: Any) -> bool:
        ticket = self.begin_material_edit(serial_number, value)
        return self.settle(ticket, self.lookup(ticket))

    async def set_material_number_async(self, serial_number: int,
                                        value: Any) -> bool:
        ticket = self.begin_material_edit(serial_number, value)
        record = await asyncio.to_thread(self.lookup, ticket)
        return self.settle(ticket, record)
