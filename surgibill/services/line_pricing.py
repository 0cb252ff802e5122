# surgibill/services/line_pricing.py
"""
resolve -> merge -> calculate -> aggregate, each step a plain function.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from surgibill.core.config import settings
from surgibill.schemas.line_item import LineItemBase, build_line, replace_line
from surgibill.schemas.material import CatalogScope
from surgibill.services.billing_math import (
    D,
    DocumentTotals,
    TaxContext,
    aggregate,
    compute_line_amounts,
    document_totals,
)
from surgibill.services.line_resolver import ResolvedLine, resolve_line
from surgibill.services.material_catalog import MaterialCatalog


def tax_context_for(customer_state_code: Optional[str],
                    company_state_code: Optional[str] = None
                    ) -> Optional[TaxContext]:
    """TaxContext for template lines; None (no split) without a customer state."""
    if customer_state_code is None:
        return None
    return TaxContext(
        customer_state_code=customer_state_code,
        company_state_code=company_state_code or settings.COMPANY_STATE_CODE,
    )


def recalculate_line(item: LineItemBase,
                     tax: Optional[TaxContext] = None) -> ResolvedLine:
    amounts = compute_line_amounts(
        item.unit_rate,
        item.quantity,
        item.gst_percentage,
        item.discount_percentage,
        item.discount_amount,
        tax=tax,
    )
    return replace_line(
        item,
        gst_amount=amounts.gst_amount,
        cgst_amount=amounts.cgst_amount,
        sgst_amount=amounts.sgst_amount,
        igst_amount=amounts.igst_amount,
        discount_amount=amounts.discount_amount,
        total_amount=amounts.total_amount,
    )


def recalculate_lines(items: Iterable,
                      tax: Optional[TaxContext] = None) -> List[ResolvedLine]:
    return [recalculate_line(build_line(it), tax) for it in items]


def recalculate_document(items: Iterable,
                         tax: Optional[TaxContext] = None) -> Decimal:
    return aggregate(recalculate_lines(items, tax))


@dataclass(frozen=True)
class PricedDocument:
    items: List[ResolvedLine]
    totals: DocumentTotals

    @property
    def total(self) -> Decimal:
        return self.totals.grand_total


def price_lines(items: Sequence,
                tax: Optional[TaxContext] = None) -> PricedDocument:
    lines = recalculate_lines(items, tax)
    return PricedDocument(items=lines, totals=document_totals(lines))


def rederive_discount(item: LineItemBase) -> LineItemBase:
    """Drop a stored discount amount while the percentage is the active input."""
    if D(item.discount_percentage) > 0 and D(item.discount_amount) != 0:
        return replace_line(item, discount_amount=Decimal("0"))
    return item


def resolve_and_price_line(item: LineItemBase,
                           scope: CatalogScope,
                           catalog: MaterialCatalog,
                           tax: Optional[TaxContext] = None) -> ResolvedLine:
    # the resolved rate may differ, so a percentage discount is re-derived
    resolved = resolve_line(rederive_discount(item), scope, catalog)
    return recalculate_line(resolved, tax)


def price_document(items: Sequence,
                   scope: CatalogScope,
                   catalog: MaterialCatalog,
                   tax: Optional[TaxContext] = None) -> PricedDocument:
    """
    Re-resolve every numbered line against ``scope`` and total the document.
    Lines without a material number are manual rows and are only recalculated.
    """
    lines = []
    for it in items:
        line = build_line(it)
        if line.material_number.strip():
            lines.append(resolve_and_price_line(line, scope, catalog, tax))
        else:
            lines.append(recalculate_line(rederive_discount(line), tax))
    return PricedDocument(items=lines, totals=document_totals(lines))
