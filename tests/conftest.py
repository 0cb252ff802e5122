from __future__ import annotations

import os

# settings are read at import time
os.environ["DATABASE_URL"] = "sqlite://"

from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from surgibill.api.deps import get_db
from surgibill.db.base import Base
from surgibill.main import app
from surgibill.models import document, material  # noqa: F401
from surgibill.models.material import (
    Hospital,
    HospitalMaterialAssignment,
    MaterialMaster,
)
from surgibill.schemas.material import CatalogScope, MaterialRecord
from surgibill.services.catalog_cache import material_cache
from surgibill.services.material_catalog import CASCADE_LEVELS
from surgibill.services.pricing_errors import CatalogUnavailable


def make_record(number: str, **kw) -> MaterialRecord:
    data = dict(
        material_number=number,
        description=f"Implant {number}",
        hsn_code="90211000",
        unit="NOS",
        gst_percentage=Decimal("12"),
        mrp=Decimal("1500"),
        institutional_price=Decimal("1200"),
        surgical_category="ORTHO",
        implant_type="PLATE",
        sub_category="LOCKING",
        length_mm=Decimal("90"),
        scoped_price=Decimal("1200"),
    )
    data.update(kw)
    return MaterialRecord(**data)


class FakeCatalog:
    """In-memory MaterialCatalog keyed by (hospital_id, material_number)."""

    def __init__(self, records: Optional[Dict[Tuple[Optional[int], str], MaterialRecord]] = None):
        self.records = dict(records or {})
        self.lookups: List[Tuple[Optional[int], str]] = []
        self.down = False

    def add(self, hospital_id: Optional[int], record: MaterialRecord) -> MaterialRecord:
        self.records[(hospital_id, record.material_number)] = record
        return record

    def lookup_by_number(self, hospital_id, material_number, scope=None):
        self.lookups.append((hospital_id, material_number))
        if self.down:
            raise CatalogUnavailable("catalog offline")
        rec = self.records.get((hospital_id, (material_number or "").strip().upper()))
        if rec is None or scope is None:
            return rec
        for level in CASCADE_LEVELS:
            want = getattr(scope, level)
            if want is not None and getattr(rec, level) != want:
                return None
        return rec

    def list_distinct_values(self, hospital_id, partial_scope: CatalogScope, next_field):
        upto = CASCADE_LEVELS[:CASCADE_LEVELS.index(next_field)]
        values = set()
        for (hid, _), rec in self.records.items():
            if hid != hospital_id:
                continue
            if any(getattr(partial_scope, lvl) is not None
                   and getattr(rec, lvl) != getattr(partial_scope, lvl)
                   for lvl in upto):
                continue
            v = getattr(rec, next_field)
            if v is not None:
                values.add(v)
        return sorted(values)


@pytest.fixture
def fake_catalog():
    return FakeCatalog()


@pytest.fixture(autouse=True)
def _clear_material_cache():
    material_cache.invalidate()
    yield
    material_cache.invalidate()


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def client(session_factory):

    def _override_get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def seeded(db):
    """
    Two hospitals and three materials.

    CITY (state 33) has PL-100 assigned with an institutional override and
    SC-200 at master prices. OUTSTATE (state 29) bills from the full master
    catalog (default pricing). NL-300 is neuro and assigned nowhere.
    """
    city = Hospital(code="H00001", short_name="CITY", legal_name="City Hospital",
                    state_code="33", default_pricing=False)
    outstate = Hospital(code="H00002", short_name="OUTSTATE",
                        legal_name="Outstate Hospital", state_code="29",
                        default_pricing=True)
    plate = MaterialMaster(
        material_number="PL-100", description="Locking plate 4 hole",
        hsn_code="90211000", unit="NOS", gst_percentage=Decimal("12"),
        mrp=Decimal("1500"), institutional_price=Decimal("1200"),
        distribution_price=Decimal("900"), surgical_category="ORTHO",
        implant_type="PLATE", sub_category="LOCKING", length_mm=Decimal("90"))
    screw = MaterialMaster(
        material_number="SC-200", description="Cortical screw",
        hsn_code="90211000", unit="NOS", gst_percentage=Decimal("12"),
        mrp=Decimal("250"), institutional_price=Decimal("0"),
        distribution_price=Decimal("150"), surgical_category="ORTHO",
        implant_type="SCREW", sub_category="CORTICAL", length_mm=Decimal("40"))
    coil = MaterialMaster(
        material_number="NL-300", description="Detachable coil",
        hsn_code="90189099", unit="NOS", gst_percentage=Decimal("5"),
        mrp=Decimal("10000"), institutional_price=Decimal("8000"),
        distribution_price=Decimal("7000"), surgical_category="NEURO",
        implant_type="COIL", sub_category="DETACHABLE", length_mm=None)
    db.add_all([city, outstate, plate, screw, coil])
    db.flush()
    db.add_all([
        HospitalMaterialAssignment(hospital_id=city.id, material_id=plate.id,
                                   institutional_price=Decimal("1000")),
        HospitalMaterialAssignment(hospital_id=city.id, material_id=screw.id),
    ])
    db.commit()
    return {
        "city": city.id,
        "outstate": outstate.id,
        "plate": plate.id,
        "screw": screw.id,
        "coil": coil.id,
    }
