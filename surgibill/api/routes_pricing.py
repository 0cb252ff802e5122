# FILE: surgibill/api/routes_pricing.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query

from surgibill.api.deps import get_catalog
from surgibill.api.exception_handlers import error_response
from surgibill.api.response import ok
from surgibill.schemas.line_item import (
    RecalculateDocumentIn,
    RecalculateDocumentOut,
    RecalculateLineIn,
    ResolveLineIn,
)
from surgibill.schemas.material import CatalogScope
from surgibill.services.cascade_filter import cascade_options, next_level
from surgibill.services.documents import totals_out
from surgibill.services.line_pricing import (
    price_document,
    price_lines,
    recalculate_line,
    resolve_and_price_line,
    tax_context_for,
)
from surgibill.services.material_catalog import CASCADE_LEVELS, MaterialCatalog
from surgibill.services.pricing_errors import PricingError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/pricing", tags=["Pricing"])


@router.post("/resolve-line")
def resolve_line_route(
    inp: ResolveLineIn,
    catalog: MaterialCatalog = Depends(get_catalog),
):
    try:
        line = resolve_and_price_line(
            inp.item,
            inp.scope,
            catalog,
            tax_context_for(inp.customer_state_code),
        )
    except PricingError as e:
        return error_response(e)
    return ok(line)


@router.post("/recalculate-line")
def recalculate_line_route(inp: RecalculateLineIn):
    """
    Recalculate one line as sent, without a catalog lookup. Master fields are
    not re-checked here; use resolve-line to re-lock them.
    """
    line = recalculate_line(inp.item, tax_context_for(inp.customer_state_code))
    return ok(line)


@router.post("/recalculate-document")
def recalculate_document_route(
    inp: RecalculateDocumentIn,
    catalog: MaterialCatalog = Depends(get_catalog),
):
    """
    Recalculate every line and total the document. Without ``scope`` the lines
    are priced as sent; with it numbered lines are re-resolved first, as on save.
    """
    tax = tax_context_for(inp.customer_state_code)
    if inp.scope is None:
        priced = price_lines(inp.items, tax)
    else:
        try:
            priced = price_document(inp.items, inp.scope, catalog, tax)
        except PricingError as e:
            return error_response(e)
    out = RecalculateDocumentOut(items=priced.items,
                                 totals=totals_out(priced.items))
    return ok(out)


@router.get("/cascade-options")
def cascade_options_route(
        hospital_id: Optional[int] = Query(None),
        surgical_category: Optional[str] = Query(None),
        implant_type: Optional[str] = Query(None),
        sub_category: Optional[str] = Query(None),
        length_mm: Optional[Decimal] = Query(None),
        level: Optional[str] = Query(
            None, description=" | ".join(CASCADE_LEVELS)),
        catalog: MaterialCatalog = Depends(get_catalog),
):
    scope = CatalogScope(
        hospital_id=hospital_id,
        surgical_category=surgical_category,
        implant_type=implant_type,
        sub_category=sub_category,
        length_mm=length_mm,
    )
    if level is not None and level not in CASCADE_LEVELS:
        return error_response(
            PricingError(f"Unknown cascade level '{level}'"))
    try:
        options = cascade_options(catalog, scope, level)
    except PricingError as e:
        return error_response(e)
    return ok({"level": level or next_level(scope), "options": options})
