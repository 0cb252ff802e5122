# surgibill/services/material_catalog.py
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import and_, false, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from surgibill.models.material import (
    Hospital,
    HospitalMaterialAssignment,
    MaterialMaster,
)
from surgibill.schemas.material import CatalogScope, MaterialRecord
from surgibill.services.billing_math import D
from surgibill.services.pricing_errors import (
    AmbiguousMaterialMatch,
    CatalogUnavailable,
)

logger = logging.getLogger(__name__)

# Cascade order used by the browse/selection flow.
CASCADE_LEVELS: Tuple[str, ...] = (
    "surgical_category",
    "implant_type",
    "sub_category",
    "length_mm",
)


def normalize_material_number(v: Optional[str]) -> str:
    return (v or "").strip().upper()


class MaterialCatalog(Protocol):

    def lookup_by_number(
        self,
        hospital_id: Optional[int],
        material_number: str,
        scope: Optional[CatalogScope] = None,
    ) -> Optional[MaterialRecord]:
        ...

    def list_distinct_values(
        self,
        hospital_id: Optional[int],
        partial_scope: CatalogScope,
        next_field: str,
    ) -> List[Any]:
        ...


def scoped_prices(
        material: MaterialMaster,
        assignment: Optional[HospitalMaterialAssignment]
) -> Tuple[Decimal, Decimal]:
    """(mrp, institutional_price) with hospital overrides applied."""
    mrp = D(material.mrp)
    inst = D(material.institutional_price)
    if assignment is not None:
        if assignment.mrp is not None:
            mrp = D(assignment.mrp)
        if assignment.institutional_price is not None:
            inst = D(assignment.institutional_price)
    return mrp, inst


def to_record(material: MaterialMaster,
              assignment: Optional[HospitalMaterialAssignment]) -> MaterialRecord:
    mrp, inst = scoped_prices(material, assignment)
    return MaterialRecord(
        material_id=material.id,
        material_number=material.material_number,
        description=material.description,
        hsn_code=material.hsn_code,
        unit=material.unit or "NOS",
        gst_percentage=D(material.gst_percentage),
        currency=material.currency or "INR",
        mrp=mrp,
        institutional_price=inst,
        distribution_price=D(material.distribution_price),
        surgical_category=material.surgical_category,
        implant_type=material.implant_type,
        sub_category=material.sub_category,
        length_mm=material.length_mm,
        # a zero institutional price means "not priced"; bill at MRP
        scoped_price=inst if inst > 0 else mrp,
    )


class SqlMaterialCatalog:
    """Catalog backed by material_masters + hospital_material_assignments."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------
    # query building
    # ------------------------------------------------------------
    def _scoped_query(self, hospital_id: Optional[int]):
        """
        (material, assignment) rows billable in the scope, or None when the
        hospital is unknown or inactive. Without a hospital every active
        material is returned with no assignment.
        """
        q = self.db.query(MaterialMaster, HospitalMaterialAssignment)
        if hospital_id is None:
            q = q.outerjoin(HospitalMaterialAssignment, false())
            return q.filter(MaterialMaster.is_active.is_(True))

        hospital = self.db.get(Hospital, int(hospital_id))
        if hospital is None or not hospital.is_active:
            return None
        on = and_(
            HospitalMaterialAssignment.material_id == MaterialMaster.id,
            HospitalMaterialAssignment.hospital_id == hospital.id,
            HospitalMaterialAssignment.is_active.is_(True),
        )
        if hospital.default_pricing:
            q = q.outerjoin(HospitalMaterialAssignment, on)
        else:
            q = q.join(HospitalMaterialAssignment, on)
        return q.filter(MaterialMaster.is_active.is_(True))

    @staticmethod
    def _apply_scope(q, scope: Optional[CatalogScope],
                     levels: Sequence[str] = CASCADE_LEVELS):
        if scope is None:
            return q
        for level in levels:
            value = getattr(scope, level, None)
            if value is None:
                continue
            col = getattr(MaterialMaster, level)
            if level == "length_mm":
                q = q.filter(col == D(value))
            else:
                q = q.filter(func.upper(col) == str(value).strip().upper())
        return q

    # ------------------------------------------------------------
    # MaterialCatalog
    # ------------------------------------------------------------
    def lookup_by_number(
        self,
        hospital_id: Optional[int],
        material_number: str,
        scope: Optional[CatalogScope] = None,
    ) -> Optional[MaterialRecord]:
        number = normalize_material_number(material_number)
        if not number:
            return None
        try:
            q = self._scoped_query(hospital_id)
            if q is None:
                return None
            q = q.filter(
                func.upper(MaterialMaster.material_number) == number)
            rows = self._apply_scope(q, scope).all()
        except SQLAlchemyError as e:
            logger.error("Catalog lookup failed for %s/%s: %s", hospital_id,
                         number, e)
            raise CatalogUnavailable(str(e)) from e

        if not rows:
            return None
        if len(rows) > 1:
            raise AmbiguousMaterialMatch(number, hospital_id,
                                         sorted(m.id for m, _ in rows))
        material, assignment = rows[0]
        return to_record(material, assignment)

    def list_distinct_values(
        self,
        hospital_id: Optional[int],
        partial_scope: CatalogScope,
        next_field: str,
    ) -> List[Any]:
        if next_field not in CASCADE_LEVELS:
            raise ValueError(f"Unknown cascade level '{next_field}'")
        upto = CASCADE_LEVELS[:CASCADE_LEVELS.index(next_field)]
        col = getattr(MaterialMaster, next_field)
        try:
            q = self._scoped_query(hospital_id)
            if q is None:
                return []
            q = self._apply_scope(q, partial_scope, upto)
            rows = (q.with_entities(col).filter(col.isnot(None)).distinct()
                    .order_by(col.asc()).all())
        except SQLAlchemyError as e:
            logger.error("Cascade options failed for %s/%s: %s", hospital_id,
                         next_field, e)
            raise CatalogUnavailable(str(e)) from e
        return [r[0] for r in rows]

    def list_available(
        self,
        hospital_id: Optional[int],
        scope: Optional[CatalogScope] = None,
    ) -> List[MaterialRecord]:
        """Every material the hospital can bill, narrowed by scope."""
        q = self._scoped_query(hospital_id)
        if q is None:
            return []
        q = self._apply_scope(q, scope)
        rows = q.order_by(MaterialMaster.material_number.asc()).all()
        return [to_record(m, a) for m, a in rows]
