# surgibill/services/documents.py
from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Type

from sqlalchemy import func
from sqlalchemy.orm import Session

from surgibill.core.config import settings
from surgibill.models.document import (
    Inquiry,
    InquiryItem,
    Template,
    TemplateItem,
)
from surgibill.models.material import Hospital
from surgibill.schemas.document import (
    InquiryCreate,
    InquiryFromTemplateIn,
    InquiryOut,
    TemplateCreate,
    TemplateOut,
)
from surgibill.schemas.line_item import DocumentTotalsOut, build_line
from surgibill.schemas.material import CatalogScope
from surgibill.services.billing_math import TaxContext, document_totals
from surgibill.services.line_pricing import (
    PricedDocument,
    price_document,
    tax_context_for,
)
from surgibill.services.line_validation import validate_lines
from surgibill.services.material_catalog import MaterialCatalog
from surgibill.services.pricing_errors import LineValidationError

logger = logging.getLogger(__name__)

LINE_COLUMNS = (
    "serial_number",
    "material_number",
    "material_description",
    "hsn_code",
    "unit",
    "unit_rate",
    "gst_percentage",
    "quantity",
    "discount_percentage",
    "discount_amount",
    "gst_amount",
    "cgst_amount",
    "sgst_amount",
    "igst_amount",
    "total_amount",
    "currency",
)


# ============================================================
# Numbering
# ============================================================
def _next_number(db: Session, column, prefix: str, width: int) -> str:
    last = db.query(func.max(column)).filter(column.like(f"{prefix}%")).scalar()
    seq = 1
    if last:
        try:
            seq = int(str(last)[len(prefix):]) + 1
        except ValueError:
            seq = 1
    return f"{prefix}{seq:0{width}d}"


def next_template_number(db: Session) -> str:
    return _next_number(db, Template.template_number, "T", 7)


def next_inquiry_number(db: Session) -> str:
    return _next_number(db, Inquiry.inquiry_number, "INQ", 7)


# ============================================================
# Helpers
# ============================================================
def get_active_hospital(db: Session, hospital_id: int) -> Hospital:
    h = db.get(Hospital, int(hospital_id))
    if not h or not h.is_active:
        raise LookupError("Hospital not found")
    return h


def _rows_from_lines(lines: Sequence, row_cls: Type) -> List:
    rows = []
    for line in lines:
        data = {c: getattr(line, c) for c in LINE_COLUMNS}
        rows.append(row_cls(is_from_master=line.is_from_master, **data))
    return rows


def totals_out(lines) -> DocumentTotalsOut:
    t = document_totals(lines)
    return DocumentTotalsOut(
        sub_total=t.sub_total,
        discount_total=t.discount_total,
        gst_total=t.gst_total,
        cgst_total=t.cgst_total,
        sgst_total=t.sgst_total,
        igst_total=t.igst_total,
        grand_total=t.grand_total,
    )


def check_materials_in_scope(
    lines: Sequence,
    catalog: MaterialCatalog,
    *,
    hospital_id: Optional[int],
    hospital_dependent: bool,
    surgical_category: Optional[str],
) -> None:
    """
    Hospital-dependent documents may only bill materials assigned to the
    hospital; with a surgical category every catalog line must belong to it.
    """
    unavailable: List[str] = []
    wrong_category: List[str] = []
    category = (surgical_category or "").strip().upper()

    for line in lines:
        if not line.is_from_master:
            if hospital_dependent:
                unavailable.append(line.material_number or f"#{line.serial_number}")
            continue
        if not category:
            continue
        record = catalog.lookup_by_number(hospital_id, line.material_number)
        if record is None or record.surgical_category.strip().upper() != category:
            wrong_category.append(line.material_number)

    if unavailable:
        raise LineValidationError(
            "The following materials are not available in the selected "
            f"hospital: {', '.join(unavailable)}")
    if wrong_category:
        raise LineValidationError(
            "The following materials do not belong to the selected surgical "
            f"category: {', '.join(wrong_category)}")


# ============================================================
# Templates (NO commit here; routers commit)
# ============================================================
def template_tax_context(db: Session, data_state: Optional[str],
                         hospital_id: Optional[int]) -> TaxContext:
    state = (data_state or "").strip()
    if not state and hospital_id is not None:
        state = get_active_hospital(db, hospital_id).state_code
    # no customer state at all => billed within the company's state
    return tax_context_for(state or settings.COMPANY_STATE_CODE)


def price_template_lines(db: Session, data: TemplateCreate,
                         catalog: MaterialCatalog) -> PricedDocument:
    if data.hospital_dependent and data.hospital_id is None:
        raise LineValidationError("Hospital is required for hospital dependent templates")

    hospital_id = data.hospital_id if data.hospital_dependent else None
    if hospital_id is not None:
        get_active_hospital(db, hospital_id)

    tax = template_tax_context(db, data.customer_state_code, hospital_id)
    priced = price_document(data.items, CatalogScope(hospital_id=hospital_id),
                            catalog, tax)

    check_materials_in_scope(
        priced.items,
        catalog,
        hospital_id=hospital_id,
        hospital_dependent=data.hospital_dependent,
        surgical_category=data.surgical_category,
    )
    validate_lines(priced.items)
    return priced


def create_template(db: Session, data: TemplateCreate,
                    catalog: MaterialCatalog) -> Template:
    priced = price_template_lines(db, data, catalog)

    t = Template(
        template_number=next_template_number(db),
        description=data.description.strip(),
        surgical_category=(data.surgical_category or "").strip().upper() or None,
        limit_amount=data.limit_amount,
        currency=(data.currency or settings.DEFAULT_CURRENCY).upper(),
        discount_applicable=data.discount_applicable,
        hospital_dependent=data.hospital_dependent,
        hospital_id=data.hospital_id if data.hospital_dependent else None,
        customer_state_code=(data.customer_state_code or "").strip() or None,
        total_template_amount=priced.total,
    )
    t.items = _rows_from_lines(priced.items, TemplateItem)
    db.add(t)
    db.flush()

    if t.limit_amount and priced.total > t.limit_amount:
        logger.warning("Template %s total %s exceeds limit %s",
                       t.template_number, priced.total, t.limit_amount)
    logger.info("Template %s created with %d lines, total %s",
                t.template_number, len(priced.items), priced.total)
    return t


def get_template(db: Session, template_id: int) -> Template:
    t = db.get(Template, int(template_id))
    if not t or not t.is_active:
        raise LookupError("Template not found")
    return t


def template_out(t: Template) -> TemplateOut:
    lines = [build_line(r) for r in t.items]
    return TemplateOut(
        id=t.id,
        template_number=t.template_number,
        description=t.description,
        surgical_category=t.surgical_category,
        limit_amount=t.limit_amount,
        currency=t.currency,
        discount_applicable=t.discount_applicable,
        hospital_dependent=t.hospital_dependent,
        hospital_id=t.hospital_id,
        customer_state_code=t.customer_state_code,
        items=lines,
        total_template_amount=t.total_template_amount,
        totals=totals_out(lines),
        is_active=t.is_active,
        created_at=t.created_at,
        updated_at=t.updated_at,
    )


# ============================================================
# Inquiries (NO commit here; routers commit)
# ============================================================
def _create_inquiry(db: Session,
                    *,
                    hospital_id: int,
                    patient_name: str,
                    surgical_category: Optional[str],
                    items: Sequence,
                    catalog: MaterialCatalog,
                    template_id: Optional[int] = None) -> Inquiry:
    get_active_hospital(db, hospital_id)

    # inquiries carry no GST split
    priced = price_document(items, CatalogScope(hospital_id=hospital_id),
                            catalog)
    validate_lines(priced.items)

    inq = Inquiry(
        inquiry_number=next_inquiry_number(db),
        hospital_id=hospital_id,
        patient_name=patient_name.strip(),
        surgical_category=(surgical_category or "").strip().upper() or None,
        template_id=template_id,
        total_inquiry_amount=priced.total,
    )
    inq.items = _rows_from_lines(priced.items, InquiryItem)
    db.add(inq)
    db.flush()
    logger.info("Inquiry %s created with %d lines, total %s",
                inq.inquiry_number, len(priced.items), priced.total)
    return inq


def create_inquiry(db: Session, data: InquiryCreate,
                   catalog: MaterialCatalog) -> Inquiry:
    return _create_inquiry(
        db,
        hospital_id=data.hospital_id,
        patient_name=data.patient_name,
        surgical_category=data.surgical_category,
        items=data.items,
        catalog=catalog,
    )


def copy_template_to_inquiry(db: Session, template_id: int,
                             data: InquiryFromTemplateIn,
                             catalog: MaterialCatalog) -> Inquiry:
    """
    New inquiry from a template. Lines are re-resolved against the inquiry's
    hospital so its own prices apply; lines the hospital cannot bill are
    kept as manual lines with the template's values.
    """
    t = get_template(db, template_id)
    if t.hospital_dependent and t.hospital_id != data.hospital_id:
        raise LineValidationError(
            "Template belongs to another hospital and cannot be copied")

    lines = [build_line(r) for r in t.items]
    return _create_inquiry(
        db,
        hospital_id=data.hospital_id,
        patient_name=data.patient_name,
        surgical_category=t.surgical_category,
        items=lines,
        catalog=catalog,
        template_id=t.id,
    )


def get_inquiry(db: Session, inquiry_id: int) -> Inquiry:
    inq = db.get(Inquiry, int(inquiry_id))
    if not inq:
        raise LookupError("Inquiry not found")
    return inq


def inquiry_out(inq: Inquiry) -> InquiryOut:
    lines = [build_line(r) for r in inq.items]
    return InquiryOut(
        id=inq.id,
        inquiry_number=inq.inquiry_number,
        hospital_id=inq.hospital_id,
        patient_name=inq.patient_name,
        surgical_category=inq.surgical_category,
        template_id=inq.template_id,
        items=lines,
        total_inquiry_amount=inq.total_inquiry_amount,
        totals=totals_out(lines),
        created_at=inq.created_at,
        updated_at=inq.updated_at,
    )
