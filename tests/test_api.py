from __future__ import annotations

from io import BytesIO

from openpyxl import load_workbook


def _line(serial, number, qty, **kw):
    data = {"serial_number": serial, "material_number": number, "quantity": qty}
    data.update(kw)
    return data


def _cement(serial=2):
    return _line(serial, "CUSTOM-1", 1, material_description="Bone cement",
                 hsn_code="3006", unit="NOS", unit_rate=500, gst_percentage=12)


# -------------------------
# Health / envelopes
# -------------------------
def test_root_health(client):
    r = client.get("/")

    assert r.status_code == 200
    assert "running" in r.json()["message"]


def test_request_validation_uses_error_envelope(client, seeded):
    r = client.post("/api/inquiries", json={"hospital_id": seeded["city"]})

    body = r.json()
    assert r.status_code == 422
    assert body["ok"] is False
    assert body["error"]["msg"] == "Validation error"
    assert body["error"]["details"]


# -------------------------
# Pricing
# -------------------------
def test_resolve_line_uses_hospital_price(client, seeded):
    r = client.post("/api/pricing/resolve-line", json={
        "item": _line(1, "pl-100", 2),
        "scope": {"hospital_id": seeded["city"]},
    })

    data = r.json()["data"]
    assert r.status_code == 200
    assert data["is_from_master"] is True
    assert data["kind"] == "master"
    assert data["material_number"] == "PL-100"
    assert data["unit_rate"] == 1000
    assert data["total_amount"] == 2240


def test_resolve_line_unknown_number_stays_manual(client, seeded):
    r = client.post("/api/pricing/resolve-line", json={
        "item": _cement(1),
        "scope": {"hospital_id": seeded["city"]},
    })

    data = r.json()["data"]
    assert data["is_from_master"] is False
    assert data["material_description"] == "Bone cement"
    assert data["total_amount"] == 560


def test_recalculate_line(client):
    r = client.post("/api/pricing/recalculate-line", json={
        "item": {"unit_rate": 100, "quantity": 2, "gst_percentage": 18,
                 "discount_percentage": 10},
    })

    data = r.json()["data"]
    assert data["discount_amount"] == 20
    assert data["total_amount"] == 216


def test_recalculate_document_inter_state(client):
    r = client.post("/api/pricing/recalculate-document", json={
        "customer_state_code": "29",
        "items": [
            {"unit_rate": 100, "quantity": 2, "gst_percentage": 18},
            {"unit_rate": "33.333", "quantity": 3, "gst_percentage": 5},
        ],
    })

    totals = r.json()["data"]["totals"]
    assert totals["grand_total"] == 341
    assert totals["gst_total"] == 41
    assert totals["cgst_total"] == 20.5
    assert totals["igst_total"] == 20.5
    assert totals["sgst_total"] == 0


def test_cascade_options(client, seeded):
    hid = seeded["city"]

    r = client.get("/api/pricing/cascade-options", params={"hospital_id": hid})
    assert r.json()["data"] == {"level": "surgical_category", "options": ["ORTHO"]}

    r = client.get("/api/pricing/cascade-options",
                   params={"hospital_id": hid, "surgical_category": "ORTHO"})
    assert r.json()["data"]["options"] == ["PLATE", "SCREW"]

    r = client.get("/api/pricing/cascade-options",
                   params={"hospital_id": hid, "level": "length_mm"})
    assert r.json()["data"]["options"] == []

    r = client.get("/api/pricing/cascade-options", params={"level": "colour"})
    assert r.status_code == 400


# -------------------------
# Materials / hospitals
# -------------------------
def test_material_lookup_scoped_to_hospital(client, seeded):
    r = client.get("/api/materials/lookup",
                   params={"material_number": "NL-300", "hospital_id": seeded["city"]})
    assert r.status_code == 404

    r = client.get("/api/materials/lookup",
                   params={"material_number": "NL-300", "hospital_id": seeded["outstate"]})
    assert r.status_code == 200
    assert r.json()["data"]["scoped_price"] == 8000


def test_create_and_list_materials(client, seeded):
    payload = {
        "material_number": "ds-400", "description": "Drill sleeve",
        "hsn_code": "9021", "gst_percentage": 12, "mrp": 400,
        "surgical_category": "ortho", "implant_type": "instrument",
    }
    r = client.post("/api/materials", json=payload)
    assert r.status_code == 201
    assert r.json()["data"]["material_number"] == "DS-400"

    r = client.post("/api/materials", json=payload)
    assert r.status_code == 409

    r = client.get("/api/materials", params={"surgical_category": "ortho"})
    data = r.json()["data"]
    assert data["total"] == 3
    assert [m["material_number"] for m in data["items"]] == ["DS-400", "PL-100", "SC-200"]


def test_material_update_invalidates_cached_lookup(client, seeded):
    params = {"material_number": "PL-100"}
    assert client.get("/api/materials/lookup", params=params).json()["data"]["scoped_price"] == 1200

    r = client.patch(f"/api/materials/{seeded['plate']}",
                     json={"institutional_price": 1100})
    assert r.status_code == 200

    assert client.get("/api/materials/lookup", params=params).json()["data"]["scoped_price"] == 1100


def test_assignment_override_invalidates_hospital_cache(client, seeded):
    hid = seeded["city"]
    params = {"material_number": "PL-100", "hospital_id": hid}
    assert client.get("/api/materials/lookup", params=params).json()["data"]["scoped_price"] == 1000

    r = client.post(f"/api/hospitals/{hid}/materials",
                    json={"material_number": "pl-100", "institutional_price": 900})
    assert r.status_code == 200

    assert client.get("/api/materials/lookup", params=params).json()["data"]["scoped_price"] == 900


def test_assign_new_material_to_hospital(client, seeded):
    hid = seeded["city"]
    r = client.post(f"/api/hospitals/{hid}/materials",
                    json={"material_number": "NL-300", "mrp": 9500})

    assert r.status_code == 201
    r = client.get(f"/api/hospitals/{hid}/materials")
    by_number = {m["material_number"]: m for m in r.json()["data"]}
    assert by_number["NL-300"]["mrp"] == 9500
    assert by_number["NL-300"]["scoped_price"] == 8000


def test_assign_unknown_material_or_hospital(client, seeded):
    r = client.post(f"/api/hospitals/{seeded['city']}/materials",
                    json={"material_number": "NOPE"})
    assert r.status_code == 404

    r = client.post("/api/hospitals/999/materials", json={"material_number": "PL-100"})
    assert r.status_code == 404


def test_create_hospital_assigns_code(client, seeded):
    r = client.post("/api/hospitals", json={
        "short_name": "METRO", "legal_name": "Metro Hospital", "state_code": "27",
    })

    data = r.json()["data"]
    assert r.status_code == 201
    assert data["code"] == "H00003"
    assert data["default_pricing"] is False


# -------------------------
# Templates
# -------------------------
def _knee_template(hid, **kw):
    data = {
        "description": "Knee fixation",
        "surgical_category": "ORTHO",
        "hospital_dependent": True,
        "hospital_id": hid,
        "items": [_line(1, "PL-100", 1), _line(2, "SC-200", 4)],
    }
    data.update(kw)
    return data


def test_create_template_prices_at_hospital_with_gst_split(client, seeded):
    r = client.post("/api/templates", json=_knee_template(seeded["city"]))

    assert r.status_code == 201
    data = r.json()["data"]
    assert data["template_number"] == "T0000001"
    assert data["total_template_amount"] == 2240
    assert data["totals"]["cgst_total"] == 120
    assert data["totals"]["sgst_total"] == 120
    assert data["totals"]["igst_total"] == 0
    assert [i["is_from_master"] for i in data["items"]] == [True, True]

    r = client.post("/api/templates", json=_knee_template(seeded["city"]))
    assert r.json()["data"]["template_number"] == "T0000002"


def test_template_explicit_customer_state_uses_igst(client, seeded):
    r = client.post("/api/templates",
                    json=_knee_template(seeded["city"], customer_state_code="29"))

    totals = r.json()["data"]["totals"]
    assert totals["igst_total"] == 120
    assert totals["sgst_total"] == 0


def test_hospital_dependent_template_rejects_unavailable_material(client, seeded):
    body = _knee_template(seeded["city"], surgical_category=None,
                          items=[_line(1, "NL-300", 1, hsn_code="1", unit="NOS",
                                       unit_rate=10)])

    r = client.post("/api/templates", json=body)

    assert r.status_code == 422
    assert "not available" in r.json()["error"]["msg"]


def test_template_rejects_material_from_other_category(client, seeded):
    body = _knee_template(None, hospital_dependent=False,
                          surgical_category="NEURO")

    r = client.post("/api/templates", json=body)

    assert r.status_code == 422
    assert "surgical category" in r.json()["error"]["msg"]


def test_hospital_dependent_template_requires_hospital(client, seeded):
    r = client.post("/api/templates", json=_knee_template(None))

    assert r.status_code == 422


def test_get_and_export_template(client, seeded):
    tid = client.post("/api/templates",
                      json=_knee_template(seeded["city"])).json()["data"]["id"]

    r = client.get(f"/api/templates/{tid}")
    assert r.status_code == 200
    assert len(r.json()["data"]["items"]) == 2

    r = client.get(f"/api/templates/{tid}/export")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")
    ws = load_workbook(BytesIO(r.content)).active
    assert ws["A1"].value == "Template"
    assert ws["B1"].value == "T0000001"

    assert client.get("/api/templates/999").status_code == 404


# -------------------------
# Inquiries
# -------------------------
def test_create_inquiry_with_manual_line(client, seeded):
    r = client.post("/api/inquiries", json={
        "hospital_id": seeded["city"],
        "patient_name": "Ravi",
        "items": [_line(1, "PL-100", 1), _cement(2)],
    })

    assert r.status_code == 201
    data = r.json()["data"]
    assert data["inquiry_number"] == "INQ0000001"
    assert data["total_inquiry_amount"] == 1680
    assert data["totals"]["cgst_total"] == 0
    assert [i["is_from_master"] for i in data["items"]] == [True, False]

    r = client.get(f"/api/inquiries/{data['id']}")
    assert r.json()["data"]["patient_name"] == "Ravi"


def test_inquiry_rejects_discount_beyond_line_value(client, seeded):
    r = client.post("/api/inquiries", json={
        "hospital_id": seeded["city"],
        "patient_name": "Ravi",
        "items": [_line(1, "SC-200", 1, discount_amount=5000)],
    })

    assert r.status_code == 422
    assert r.json()["error"]["details"]["serial_number"] == 1


def test_inquiry_needs_items_and_known_hospital(client, seeded):
    r = client.post("/api/inquiries", json={
        "hospital_id": seeded["city"], "patient_name": "Ravi", "items": []})
    assert r.status_code == 422

    r = client.post("/api/inquiries", json={
        "hospital_id": 999, "patient_name": "Ravi", "items": [_cement(1)]})
    assert r.status_code == 404

    assert client.get("/api/inquiries/999").status_code == 404


def test_copy_template_reprices_for_inquiry_hospital(client, seeded):
    tpl = client.post("/api/templates", json={
        "description": "Generic ortho",
        "items": [_line(1, "PL-100", 1), _cement(2)],
    }).json()["data"]
    assert tpl["items"][0]["unit_rate"] == 1200

    r = client.post(f"/api/inquiries/from-template/{tpl['id']}",
                    json={"hospital_id": seeded["city"], "patient_name": "Meena"})

    assert r.status_code == 201
    data = r.json()["data"]
    assert data["template_id"] == tpl["id"]
    assert data["items"][0]["unit_rate"] == 1000
    assert data["items"][1]["is_from_master"] is False
    assert data["total_inquiry_amount"] == 1680

    r = client.get(f"/api/inquiries/{data['id']}/export")
    assert load_workbook(BytesIO(r.content)).active["B2"].value == "Meena"


def test_copy_hospital_template_to_other_hospital_is_rejected(client, seeded):
    tid = client.post("/api/templates",
                      json=_knee_template(seeded["city"])).json()["data"]["id"]

    r = client.post(f"/api/inquiries/from-template/{tid}",
                    json={"hospital_id": seeded["outstate"], "patient_name": "Meena"})

    assert r.status_code == 422


# -------------------------
# Percentage discounts across re-pricing
# -------------------------
def _discounted_plate(**kw):
    # priced earlier at a manual rate of 100
    return _line(1, "PL-100", 1, unit_rate=100, discount_percentage=10,
                 discount_amount=10, **kw)


def test_resolve_line_rederives_percentage_discount(client, seeded):
    r = client.post("/api/pricing/resolve-line", json={
        "item": _discounted_plate(),
        "scope": {"hospital_id": seeded["city"]},
    })

    data = r.json()["data"]
    assert data["unit_rate"] == 1000
    assert data["discount_amount"] == 100
    assert data["total_amount"] == 1020


def test_template_save_rederives_percentage_discount(client, seeded):
    r = client.post("/api/templates", json=_knee_template(
        seeded["city"], items=[_discounted_plate()]))

    assert r.status_code == 201
    line = r.json()["data"]["items"][0]
    assert line["unit_rate"] == 1000
    assert line["discount_amount"] == 100
    assert r.json()["data"]["total_template_amount"] == 1020


def test_copy_template_rederives_percentage_discount(client, seeded):
    tpl = client.post("/api/templates", json={
        "description": "Generic ortho",
        "items": [_line(1, "PL-100", 1, discount_percentage=10)],
    }).json()["data"]
    assert tpl["items"][0]["discount_amount"] == 120

    r = client.post(f"/api/inquiries/from-template/{tpl['id']}",
                    json={"hospital_id": seeded["city"], "patient_name": "Meena"})

    data = r.json()["data"]
    assert data["items"][0]["unit_rate"] == 1000
    assert data["items"][0]["discount_percentage"] == 10
    assert data["items"][0]["discount_amount"] == 100
    assert data["total_inquiry_amount"] == 1020


def test_recalculate_document_with_scope_relocks_master_fields(client, seeded):
    tampered = _line(1, "PL-100", 1, kind="master", unit_rate=1,
                     gst_percentage=0)

    r = client.post("/api/pricing/recalculate-document",
                    json={"items": [tampered]})
    assert r.json()["data"]["totals"]["grand_total"] == 1

    r = client.post("/api/pricing/recalculate-document", json={
        "items": [tampered],
        "scope": {"hospital_id": seeded["city"]},
    })

    data = r.json()["data"]
    assert data["items"][0]["unit_rate"] == 1000
    assert data["items"][0]["gst_percentage"] == 12
    assert data["totals"]["grand_total"] == 1120


def test_material_lookup_miss_reports_not_found(client, seeded):
    r = client.get("/api/materials/lookup", params={"material_number": "zz-9"})

    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"
    assert "ZZ-9" in r.json()["error"]["msg"]
