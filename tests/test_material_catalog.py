from __future__ import annotations

from decimal import Decimal

import pytest

from surgibill.models.material import HospitalMaterialAssignment, MaterialMaster
from surgibill.schemas.material import CatalogScope
from surgibill.services.cascade_filter import cascade_options, next_level, select
from surgibill.services.catalog_cache import (
    CachedMaterialCatalog,
    MaterialCache,
    cache_key,
)
from surgibill.services.material_catalog import SqlMaterialCatalog
from surgibill.services.pricing_errors import AmbiguousMaterialMatch

from conftest import make_record


# -------------------------
# SQL catalog
# -------------------------
def test_assigned_material_uses_hospital_override(db, seeded):
    rec = SqlMaterialCatalog(db).lookup_by_number(seeded["city"], "pl-100")

    assert rec.material_number == "PL-100"
    assert rec.mrp == Decimal("1500")
    assert rec.scoped_price == Decimal("1000")


def test_zero_institutional_price_falls_back_to_mrp(db, seeded):
    rec = SqlMaterialCatalog(db).lookup_by_number(seeded["city"], "SC-200")

    assert rec.scoped_price == Decimal("250")


def test_unassigned_material_is_not_visible(db, seeded):
    assert SqlMaterialCatalog(db).lookup_by_number(seeded["city"], "NL-300") is None


def test_default_pricing_hospital_sees_master_catalog(db, seeded):
    rec = SqlMaterialCatalog(db).lookup_by_number(seeded["outstate"], "NL-300")

    assert rec.scoped_price == Decimal("8000")


def test_no_hospital_means_master_prices(db, seeded):
    rec = SqlMaterialCatalog(db).lookup_by_number(None, "PL-100")

    assert rec.scoped_price == Decimal("1200")


def test_unknown_hospital_resolves_nothing(db, seeded):
    assert SqlMaterialCatalog(db).lookup_by_number(999, "PL-100") is None


def test_inactive_assignment_hides_material(db, seeded):
    a = (db.query(HospitalMaterialAssignment)
         .filter_by(hospital_id=seeded["city"], material_id=seeded["plate"]).one())
    a.is_active = False
    db.commit()

    assert SqlMaterialCatalog(db).lookup_by_number(seeded["city"], "PL-100") is None


def test_duplicate_numbers_in_scope_are_ambiguous(db, seeded):
    # the unique constraint only compares raw values; lookups are case-insensitive
    db.add(MaterialMaster(
        material_number="pl-100", description="dup", hsn_code="1", unit="NOS",
        gst_percentage=0, mrp=1, institutional_price=1, distribution_price=1,
        surgical_category="ORTHO"))
    db.commit()

    with pytest.raises(AmbiguousMaterialMatch) as ei:
        SqlMaterialCatalog(db).lookup_by_number(None, "PL-100")

    assert len(ei.value.material_ids) == 2


def test_distinct_values_follow_the_cascade(db, seeded):
    cat = SqlMaterialCatalog(db)
    hid = seeded["city"]

    assert cat.list_distinct_values(hid, CatalogScope(), "surgical_category") == ["ORTHO"]
    assert cat.list_distinct_values(
        hid, CatalogScope(surgical_category="ortho"), "implant_type") == ["PLATE", "SCREW"]
    assert cat.list_distinct_values(
        hid, CatalogScope(surgical_category="ORTHO", implant_type="SCREW"),
        "sub_category") == ["CORTICAL"]


def test_list_available_returns_scoped_records(db, seeded):
    recs = SqlMaterialCatalog(db).list_available(seeded["city"])

    assert [r.material_number for r in recs] == ["PL-100", "SC-200"]


# -------------------------
# Cascaded filter
# -------------------------
def test_next_level_and_select_clears_deeper_levels():
    scope = CatalogScope(hospital_id=1, surgical_category="ORTHO",
                         implant_type="PLATE", sub_category="LOCKING")
    assert next_level(scope) == "length_mm"

    scope = select(scope, "implant_type", "SCREW")

    assert scope.implant_type == "SCREW"
    assert scope.sub_category is None
    assert next_level(scope) == "sub_category"


def test_cascade_level_stays_closed_until_parents_chosen(fake_catalog):
    fake_catalog.add(1, make_record("PL-100"))

    assert cascade_options(fake_catalog, CatalogScope(hospital_id=1),
                           "sub_category") == []
    assert cascade_options(fake_catalog, CatalogScope(hospital_id=1)) == ["ORTHO"]


def test_cascade_rejects_unknown_level(fake_catalog):
    with pytest.raises(ValueError):
        cascade_options(fake_catalog, CatalogScope(), "colour")


# -------------------------
# Cache
# -------------------------
class _Clock:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_cache_serves_hits_until_ttl(fake_catalog):
    clock = _Clock()
    cache = MaterialCache(60, clock=clock)
    fake_catalog.add(1, make_record("PL-100"))
    cat = CachedMaterialCatalog(fake_catalog, cache)

    cat.lookup_by_number(1, "PL-100")
    cat.lookup_by_number(1, "pl-100")
    assert len(fake_catalog.lookups) == 1

    clock.now = 61
    cat.lookup_by_number(1, "PL-100")
    assert len(fake_catalog.lookups) == 2


def test_cache_does_not_store_misses(fake_catalog):
    cat = CachedMaterialCatalog(fake_catalog, MaterialCache(60))

    assert cat.lookup_by_number(1, "PL-100") is None
    fake_catalog.add(1, make_record("PL-100"))

    assert cat.lookup_by_number(1, "PL-100") is not None


def test_scoped_lookups_bypass_cache(fake_catalog):
    cache = MaterialCache(60)
    fake_catalog.add(1, make_record("PL-100"))
    cat = CachedMaterialCatalog(fake_catalog, cache)

    cat.lookup_by_number(1, "PL-100", CatalogScope(hospital_id=1,
                                                   surgical_category="ORTHO"))

    assert len(cache) == 0


def test_invalidate_one_hospital_or_all():
    cache = MaterialCache(60)
    cache.put(cache_key(1, "a"), make_record("A"))
    cache.put(cache_key(2, "b"), make_record("B"))
    cache.put(cache_key(None, "c"), make_record("C"))

    assert cache.invalidate(1) == 1
    assert cache.get(cache_key(2, "B")) is not None
    assert cache.invalidate() == 2
    assert len(cache) == 0


def test_zero_ttl_disables_cache():
    cache = MaterialCache(0)
    cache.put(cache_key(1, "a"), make_record("A"))

    assert len(cache) == 0
