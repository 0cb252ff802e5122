# surgibill/services/line_resolver.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional, Union

from surgibill.schemas.line_item import (
    LineItemBase,
    ManualLineItem,
    MasterLineItem,
    replace_line,
)
from surgibill.schemas.material import CatalogScope, MaterialRecord
from surgibill.services.material_catalog import (
    MaterialCatalog,
    normalize_material_number,
)
from surgibill.services.pricing_errors import (
    CatalogUnavailable,
    ResolutionNotFound,
)

logger = logging.getLogger(__name__)

ResolvedLine = Union[ManualLineItem, MasterLineItem]


def merge_record(item: LineItemBase, record: MaterialRecord) -> MasterLineItem:
    """Copy the catalog fields onto the line and lock them."""
    return replace_line(
        item,
        kind="master",
        material_number=record.material_number,
        material_description=record.description,
        hsn_code=record.hsn_code,
        unit=record.unit,
        gst_percentage=record.gst_percentage,
        unit_rate=record.scoped_price,
        currency=record.currency,
    )


def clear_master_fields(item: LineItemBase) -> ManualLineItem:
    return replace_line(
        item,
        kind="manual",
        material_number="",
        material_description="",
        hsn_code="",
        unit="",
        gst_percentage=Decimal("0"),
        unit_rate=Decimal("0"),
    )


def require_material(catalog: MaterialCatalog, hospital_id: Optional[int],
                     material_number: str) -> MaterialRecord:
    """Catalog record for the number; ResolutionNotFound when there is none."""
    record = catalog.lookup_by_number(hospital_id, material_number)
    if record is None:
        raise ResolutionNotFound(normalize_material_number(material_number),
                                 hospital_id)
    return record


def resolve_line(item: LineItemBase, scope: CatalogScope,
                 catalog: MaterialCatalog) -> ResolvedLine:
    """
    Populate ``item`` from the catalog entry matching its material number.

    - empty number: derived fields cleared, line becomes manual
    - match: master line, description/HSN/unit/GST/rate locked
    - no match or catalog down: manual line, current values kept

    AmbiguousMaterialMatch is not handled here; duplicate numbers are a
    catalog integrity problem and must surface to the caller.
    """
    number = normalize_material_number(item.material_number)
    if not number:
        return clear_master_fields(item)

    try:
        record = catalog.lookup_by_number(scope.hospital_id, number, scope)
    except CatalogUnavailable as e:
        logger.warning(
            "Catalog unavailable resolving %s for hospital %s: %s", number,
            scope.hospital_id, e)
        record = None

    if record is None:
        logger.info("Material %s not in scope of hospital %s; manual entry",
                    number, scope.hospital_id)
        return replace_line(item, kind="manual", material_number=number)

    return merge_record(item, record)
