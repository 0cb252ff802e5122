# FILE: surgibill/api/routes_materials.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import asc, desc, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from surgibill.api.deps import get_catalog, get_db
from surgibill.api.exception_handlers import error_response
from surgibill.api.response import err, ok
from surgibill.models.material import (
    Hospital,
    HospitalMaterialAssignment,
    MaterialMaster,
)
from surgibill.schemas.material import (
    AssignmentCreate,
    AssignmentOut,
    CatalogScope,
    HospitalCreate,
    HospitalOut,
    MaterialCreate,
    MaterialListOut,
    MaterialOut,
    MaterialUpdate,
)
from surgibill.services.catalog_cache import material_cache
from surgibill.services.line_resolver import require_material
from surgibill.services.material_catalog import (
    MaterialCatalog,
    SqlMaterialCatalog,
    normalize_material_number,
)
from surgibill.services.pricing_errors import PricingError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/materials", tags=["Masters: Materials"])
hospitals_router = APIRouter(prefix="/hospitals", tags=["Masters: Hospitals"])

ALLOWED_SORT = {
    "material_number",
    "description",
    "mrp",
    "updated_at",
    "created_at",
}


def _norm(v: Optional[str]) -> Optional[str]:
    s = (v or "").strip().upper()
    return s or None


# ============================================================
# Materials
# ============================================================
@router.get("/lookup")
def lookup_material(
        material_number: str = Query(..., min_length=1),
        hospital_id: Optional[int] = Query(None),
        catalog: MaterialCatalog = Depends(get_catalog),
):
    try:
        record = require_material(catalog, hospital_id, material_number)
    except PricingError as e:
        return error_response(e)
    return ok(record)


@router.get("")
def list_materials(
        search: str = Query(""),
        surgical_category: Optional[str] = Query(None),
        implant_type: Optional[str] = Query(None),
        is_active: Optional[bool] = Query(None),
        page: int = Query(1, ge=1),
        page_size: int = Query(20, ge=1, le=200),
        sort: str = Query("material_number"),
        order: str = Query("asc"),
        db: Session = Depends(get_db),
):
    qy = db.query(MaterialMaster)

    if surgical_category:
        qy = qy.filter(
            func.upper(MaterialMaster.surgical_category) == _norm(surgical_category))
    if implant_type:
        qy = qy.filter(func.upper(MaterialMaster.implant_type) == _norm(implant_type))
    if is_active is not None:
        qy = qy.filter(MaterialMaster.is_active.is_(bool(is_active)))

    s = (search or "").strip().lower()
    if s:
        qy = qy.filter(
            or_(
                func.lower(MaterialMaster.material_number).like(f"%{s}%"),
                func.lower(MaterialMaster.description).like(f"%{s}%"),
                func.lower(MaterialMaster.hsn_code).like(f"%{s}%"),
            ))

    total = qy.count()

    sort_key = sort if sort in ALLOWED_SORT else "material_number"
    col = getattr(MaterialMaster, sort_key)
    order_fn = desc if (order or "").lower() == "desc" else asc

    rows = (qy.order_by(order_fn(col), MaterialMaster.id.asc()).offset(
        (page - 1) * page_size).limit(page_size).all())

    out = MaterialListOut(
        items=[MaterialOut.model_validate(r) for r in rows],
        total=total,
        page=page,
        page_size=page_size,
    )
    return ok(out)


@router.post("")
def create_material(inp: MaterialCreate, db: Session = Depends(get_db)):
    row = MaterialMaster(
        material_number=inp.material_number,
        description=inp.description.strip(),
        hsn_code=inp.hsn_code.strip(),
        unit=(inp.unit or "NOS").strip().upper(),
        gst_percentage=inp.gst_percentage,
        currency=(inp.currency or "INR").upper(),
        mrp=inp.mrp,
        institutional_price=inp.institutional_price,
        distribution_price=inp.distribution_price,
        surgical_category=_norm(inp.surgical_category),
        implant_type=_norm(inp.implant_type),
        sub_category=(inp.sub_category or "").strip() or None,
        length_mm=inp.length_mm,
        is_active=bool(inp.is_active),
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return err(f"Material number '{inp.material_number}' already exists",
                   status_code=409, code="DUPLICATE")
    db.refresh(row)
    material_cache.invalidate()
    logger.info("Material %s created", row.material_number)
    return ok(MaterialOut.model_validate(row), status_code=201)


@router.patch("/{material_id}")
def update_material(material_id: int,
                    inp: MaterialUpdate,
                    db: Session = Depends(get_db)):
    row = db.get(MaterialMaster, material_id)
    if not row:
        return err("Material not found", status_code=404, code="NOT_FOUND")

    for field, value in inp.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        setattr(row, field, value)

    db.commit()
    db.refresh(row)
    # master rows back every hospital's view
    material_cache.invalidate()
    logger.info("Material %s updated", row.material_number)
    return ok(MaterialOut.model_validate(row))


# ============================================================
# Hospitals / assignments
# ============================================================
def _next_hospital_code(db: Session) -> str:
    last = db.query(func.max(Hospital.id)).scalar() or 0
    return f"H{int(last) + 1:05d}"


@hospitals_router.post("")
def create_hospital(inp: HospitalCreate, db: Session = Depends(get_db)):
    row = Hospital(
        code=_next_hospital_code(db),
        short_name=inp.short_name.strip(),
        legal_name=inp.legal_name.strip(),
        gst_number=_norm(inp.gst_number),
        state_code=inp.state_code.strip(),
        default_pricing=bool(inp.default_pricing),
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return err("Database constraint error (duplicate/invalid reference).",
                   status_code=400, code="INTEGRITY_ERROR")
    db.refresh(row)
    logger.info("Hospital %s (%s) created", row.code, row.short_name)
    return ok(HospitalOut.model_validate(row), status_code=201)


@hospitals_router.post("/{hospital_id}/materials")
def assign_material(hospital_id: int,
                    inp: AssignmentCreate,
                    db: Session = Depends(get_db)):
    """Assign a material to a hospital, or update an existing assignment."""
    hospital = db.get(Hospital, hospital_id)
    if not hospital:
        return err("Hospital not found", status_code=404, code="NOT_FOUND")

    number = normalize_material_number(inp.material_number)
    material = (db.query(MaterialMaster).filter(
        func.upper(MaterialMaster.material_number) == number).first())
    if not material:
        return err(f"Material '{number}' not found", status_code=404,
                   code="NOT_FOUND")

    row = (db.query(HospitalMaterialAssignment).filter(
        HospitalMaterialAssignment.hospital_id == hospital.id,
        HospitalMaterialAssignment.material_id == material.id,
    ).first())
    created = row is None
    if created:
        row = HospitalMaterialAssignment(hospital_id=hospital.id,
                                         material_id=material.id)
        db.add(row)
    row.mrp = inp.mrp
    row.institutional_price = inp.institutional_price
    row.is_active = bool(inp.is_active)

    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        return error_response(e)
    db.refresh(row)
    material_cache.invalidate(hospital.id)
    logger.info("Material %s %s for hospital %s", number,
                "assigned" if created else "re-assigned", hospital.code)
    return ok(AssignmentOut.model_validate(row),
              status_code=201 if created else 200)


@hospitals_router.get("/{hospital_id}/materials")
def list_hospital_materials(
        hospital_id: int,
        surgical_category: Optional[str] = Query(None),
        implant_type: Optional[str] = Query(None),
        sub_category: Optional[str] = Query(None),
        db: Session = Depends(get_db),
):
    """Materials the hospital can bill, at its own prices."""
    scope = CatalogScope(
        hospital_id=hospital_id,
        surgical_category=surgical_category,
        implant_type=implant_type,
        sub_category=sub_category,
    )
    records = SqlMaterialCatalog(db).list_available(hospital_id, scope)
    return ok(records, meta={"total": len(records)})
