# FILE: surgibill/api/routes_documents.py
from __future__ import annotations

import logging
from io import BytesIO

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from surgibill.api.deps import get_catalog, get_db
from surgibill.api.exception_handlers import error_response
from surgibill.api.response import ok
from surgibill.schemas.document import (
    InquiryCreate,
    InquiryFromTemplateIn,
    TemplateCreate,
)
from surgibill.services.documents import (
    copy_template_to_inquiry,
    create_inquiry,
    create_template,
    get_inquiry,
    get_template,
    inquiry_out,
    template_out,
)
from surgibill.services.excel_export import (
    build_inquiry_excel,
    build_template_excel,
)
from surgibill.services.material_catalog import MaterialCatalog
from surgibill.services.pricing_errors import PricingError

logger = logging.getLogger(__name__)

templates_router = APIRouter(prefix="/templates", tags=["Templates"])
inquiries_router = APIRouter(prefix="/inquiries", tags=["Inquiries"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# errors a document write turns into an error envelope
_HANDLED = (PricingError, LookupError, IntegrityError)


def _xlsx_response(build, doc, filename: str) -> StreamingResponse:
    bio = BytesIO()
    build(bio, doc)
    bio.seek(0)
    return StreamingResponse(
        bio,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# =========================
# TEMPLATES
# =========================
@templates_router.post("")
def create_template_route(
    inp: TemplateCreate,
    db: Session = Depends(get_db),
    catalog: MaterialCatalog = Depends(get_catalog),
):
    try:
        t = create_template(db, inp, catalog)
        db.commit()
    except _HANDLED as e:
        db.rollback()
        return error_response(e)
    db.refresh(t)
    return ok(template_out(t), status_code=201)


@templates_router.get("/{template_id}")
def get_template_route(template_id: int, db: Session = Depends(get_db)):
    try:
        t = get_template(db, template_id)
    except LookupError as e:
        return error_response(e)
    return ok(template_out(t))


@templates_router.get("/{template_id}/export")
def export_template_route(template_id: int, db: Session = Depends(get_db)):
    try:
        t = get_template(db, template_id)
    except LookupError as e:
        return error_response(e)
    out = template_out(t)
    return _xlsx_response(build_template_excel, out,
                          f"{out.template_number}.xlsx")


# =========================
# INQUIRIES
# =========================
@inquiries_router.post("")
def create_inquiry_route(
    inp: InquiryCreate,
    db: Session = Depends(get_db),
    catalog: MaterialCatalog = Depends(get_catalog),
):
    try:
        inq = create_inquiry(db, inp, catalog)
        db.commit()
    except _HANDLED as e:
        db.rollback()
        return error_response(e)
    db.refresh(inq)
    return ok(inquiry_out(inq), status_code=201)


@inquiries_router.post("/from-template/{template_id}")
def copy_template_route(
    template_id: int,
    inp: InquiryFromTemplateIn,
    db: Session = Depends(get_db),
    catalog: MaterialCatalog = Depends(get_catalog),
):
    try:
        inq = copy_template_to_inquiry(db, template_id, inp, catalog)
        db.commit()
    except _HANDLED as e:
        db.rollback()
        return error_response(e)
    db.refresh(inq)
    return ok(inquiry_out(inq), status_code=201)


@inquiries_router.get("/{inquiry_id}")
def get_inquiry_route(inquiry_id: int, db: Session = Depends(get_db)):
    try:
        inq = get_inquiry(db, inquiry_id)
    except LookupError as e:
        return error_response(e)
    return ok(inquiry_out(inq))


@inquiries_router.get("/{inquiry_id}/export")
def export_inquiry_route(inquiry_id: int, db: Session = Depends(get_db)):
    try:
        inq = get_inquiry(db, inquiry_id)
    except LookupError as e:
        return error_response(e)
    out = inquiry_out(inq)
    return _xlsx_response(build_inquiry_excel, out,
                          f"{out.inquiry_number}.xlsx")
