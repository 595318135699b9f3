import pytest


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_metrics_exposed(client):
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "treeshop_stage_transitions_total" in r.text


def test_tree_score_calculator(client):
    r = client.post("/calculators/tree-score", json={"height": 60, "dbh": 24, "canopy_radius": 15})
    assert r.status_code == 200
    assert r.json() == {"crown_spread": 30.0, "tree_score": 34785.0, "trim_score": None}


def test_equipment_calculator_rejects_zero_hours(client):
    r = client.post(
        "/calculators/equipment-cost",
        json={"purchase_price": 115000, "annual_hours": 0, "fuel_gph": 14, "fuel_price": 3.5},
    )
    assert r.status_code == 422
    body = r.json()
    assert body["code"] == "INVALID_INPUT"
    assert body["meta"]["field"] == "annual_hours"


def test_wage_calculator(client):
    r = client.post(
        "/calculators/wage",
        json={"base_hourly_rate": 15, "tier": 1, "has_supervisor": True, "equipment_level": 3, "has_crane": True},
    )
    assert r.status_code == 200
    assert r.json()["total_hourly_wage"] == pytest.approx(39.0)
    assert client.post("/calculators/wage", json={"base_hourly_rate": 15, "tier": 7}).status_code == 422


def test_area_and_distance_calculators(client):
    square = [[0, 0], [0, 0.001], [0.001, 0.001], [0.001, 0]]
    assert client.post("/calculators/area", json={"points": square}).json()["square_meters"] > 12_000
    assert client.post("/calculators/distance", json={"points": square[:1]}).json() == {"meters": None}


def test_lead_crud_and_workflow(client, lead_payload):
    r = client.post("/leads", json=lead_payload)
    assert r.status_code == 201
    lead = r.json()
    assert lead["workflow_stage"] == "LEAD"
    assert len(lead["stage_history"]) == 1

    assert client.get(f"/leads/{lead['id']}").json()["id"] == lead["id"]
    assert [ld["id"] for ld in client.get("/leads", params={"q": "whitfield"}).json()] == [lead["id"]]

    r = client.post(f"/leads/{lead['id']}/advance", json={"expected_version": lead["version_id"] + 5})
    assert r.status_code == 409
    assert r.json()["code"] == "CONCURRENCY_CONFLICT"

    r = client.post(f"/leads/{lead['id']}/advance", json={"expected_version": lead["version_id"]})
    assert r.status_code == 200
    assert r.json()["workflow_stage"] == "PROPOSAL"
    assert r.json()["is_converted"] is True

    r = client.post(f"/leads/{lead['id']}/contact", json={"method": "PHONE", "notes": "Booked visit"})
    assert r.json()["attempt_count"] == 1

    stats = client.get("/leads/stats").json()
    assert stats["conversion_rate"] == 100.0
    assert stats["by_source"] == {"REFERRAL": 1}


def test_unknown_lead_is_404(client):
    r = client.get("/leads/does-not-exist")
    assert r.status_code == 404
    assert r.json()["code"] == "NOT_FOUND"


def test_completed_lead_cannot_advance(client, lead_payload):
    lead = client.post("/leads", json=lead_payload).json()
    client.post(f"/leads/{lead['id']}/stage", json={"stage": "COMPLETED"})
    r = client.post(f"/leads/{lead['id']}/advance")
    assert r.status_code == 409
    assert r.json()["code"] == "INVALID_TRANSITION"


def test_proposal_to_invoice_over_http(client, lead_payload):
    lead = client.post("/leads", json=lead_payload).json()
    r = client.post(
        f"/leads/{lead['id']}/proposals",
        json={
            "tax_rate": 0.07,
            "line_items": [
                {"service_type": "TREE_REMOVAL", "quantity": 1, "unit_price": 500, "estimated_hours": 12},
                {"service_type": "STUMP_GRINDING", "quantity": 2, "unit_price": 150, "estimated_hours": 8},
            ],
        },
    )
    assert r.status_code == 201
    proposal = r.json()
    assert proposal["subtotal"] == 800
    assert proposal["total_amount"] == pytest.approx(856)

    assert client.post(f"/proposals/{proposal['id']}/send").json()["status"] == "Sent"
    assert client.post(f"/proposals/{proposal['id']}/view").json()["status"] == "Viewed"

    r = client.post(f"/proposals/{proposal['id']}/accept", json={})
    assert r.status_code == 200
    wo = r.json()["work_order"]
    assert wo["completion_percentage"] == 0
    assert r.json()["proposal"]["work_order_id"] == wo["id"]

    r = client.post(f"/proposals/{proposal['id']}/line-items", json={"service_type": "TREE_TRIMMING", "quantity": 1, "unit_price": 90})
    assert r.status_code == 409

    assert client.post(f"/work-orders/{wo['id']}/start").json()["status"] == "In Progress"
    entry = client.post(
        f"/work-orders/{wo['id']}/time-entries", json={"task_type": "Support", "task_category": "Fuel Up"}
    ).json()
    assert entry["is_billable"] is False
    assert client.post(f"/time-entries/{entry['id']}/finish", json={}).status_code == 200

    assert client.post(f"/work-orders/{wo['id']}/invoice").status_code == 409
    assert client.post(f"/work-orders/{wo['id']}/complete").json()["status"] == "Completed"

    r = client.post(f"/work-orders/{wo['id']}/invoice")
    assert r.status_code == 201
    invoice = r.json()
    assert invoice["status"] == "Unpaid"

    r = client.post(f"/work-orders/{wo['id']}/invoice")
    assert r.status_code == 409
    assert r.json()["code"] == "INVALID_TRANSITION"

    r = client.post(f"/invoices/{invoice['id']}/payments", json={"amount": invoice["total_amount"], "method": "card"})
    assert r.json()["status"] == "Paid"
    assert client.get(f"/leads/{lead['id']}").json()["workflow_stage"] == "COMPLETED"


def test_orphan_report(client):
    assert client.get("/diagnostics/orphans").json() == []


def test_follow_up_requires_utc_offset(client, lead_payload):
    lead = client.post("/leads", json=lead_payload).json()
    r = client.post(f"/leads/{lead['id']}/contact", json={"method": "PHONE", "next_follow_up_at": "2026-01-01T10:00:00"})
    assert r.status_code == 422

    r = client.post(
        f"/leads/{lead['id']}/contact", json={"method": "PHONE", "next_follow_up_at": "2026-01-01T10:00:00+00:00"}
    )
    assert r.status_code == 200
    assert r.json()["attempt_count"] == 1
