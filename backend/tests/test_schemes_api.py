# backend/tests/test_schemes_api.py
import importlib

from fastapi.testclient import TestClient

from conftest import scheme_payload
from icm.core.config import Settings
from icm.main import create_app


# -----------------------------
# Helpers
# -----------------------------
def _create(client, **overrides):
    r = client.post("/api/incentives", json=scheme_payload(**overrides))
    assert r.status_code == 201, r.text
    return r.json()


# -----------------------------
# Tests
# -----------------------------
def test_health_reports_sql_storage(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "storage": "sql", "fallback": False}


def test_create_and_get_round_trip(client):
    body = _create(client, schemeId="Q1-EMEA")
    assert body["schemeId"] == "Q1-EMEA"
    assert body["metadata"]["version"] == 1
    assert body["metadata"]["status"] == "DRAFT"
    assert body["commissionStructure"]["tiers"][1] == {"from": 1000.0, "to": None, "rate": 10.0}

    r = client.get(f"/api/incentives/{body['id']}")
    assert r.status_code == 200
    assert r.json()["name"] == "Q1 Field Sales"
    assert r.json()["effectiveStart"] == "2025-01-01"


def test_versions_and_latest_listing(client):
    v1 = _create(client, schemeId="S1")
    r = client.post("/api/incentives/S1/version", json=scheme_payload(name="second"))
    assert r.status_code == 201, r.text
    v2 = r.json()
    assert v2["metadata"]["version"] == 2
    assert v2["metadata"]["createdAt"] == v1["metadata"]["createdAt"]
    assert v2["id"] != v1["id"]

    r = client.get("/api/incentives/versions/S1")
    assert [d["metadata"]["version"] for d in r.json()] == [2, 1]

    r = client.get("/api/incentives")
    latest = [d for d in r.json() if d["schemeId"] == "S1"]
    assert len(latest) == 1 and latest[0]["name"] == "second"


def test_status_patch_round_trip(client):
    plan = _create(client)
    r = client.patch(f"/api/incentives/{plan['id']}/status", json={"status": "SIMULATION"})
    assert r.status_code == 200, r.text
    assert r.json()["metadata"]["status"] == "SIMULATION"
    assert r.json()["metadata"]["version"] == 1
    assert client.get(f"/api/incentives/{plan['id']}").json()["metadata"]["status"] == "SIMULATION"


def test_invalid_status_is_422(client):
    plan = _create(client)
    r = client.patch(f"/api/incentives/{plan['id']}/status", json={"status": "archived"})
    assert r.status_code == 422
    assert r.json()["error"] == "validation_error"


def test_approve_and_promote(client):
    plan = _create(client)
    assert client.post(f"/api/incentives/{plan['id']}/promote").status_code == 422
    assert client.post(f"/api/incentives/{plan['id']}/approve").json()["metadata"]["status"] == "APPROVED"
    assert client.post(f"/api/incentives/{plan['id']}/promote").json()["metadata"]["status"] == "SIMULATION"


def test_missing_ids_are_404(client):
    assert client.get("/api/incentives/does-not-exist").status_code == 404
    assert client.get("/api/incentives/versions/NOPE").status_code == 404
    assert client.post("/api/incentives/NOPE/version", json=scheme_payload()).status_code == 404
    assert client.delete("/api/incentives/does-not-exist").status_code == 404


def test_duplicate_scheme_id_is_409(client):
    _create(client, schemeId="DUP")
    r = client.post("/api/incentives", json=scheme_payload(schemeId="DUP"))
    assert r.status_code == 409
    assert r.json()["error"] == "conflict"


def test_bad_ladder_and_bad_operator_are_422(client):
    gap = {"tiers": [{"from": 0, "to": 1000, "rate": 5}, {"from": 1500, "to": None, "rate": 10}]}
    r = client.post("/api/incentives", json=scheme_payload(commissionStructure=gap))
    assert r.status_code == 422
    assert "commissionStructure.tiers" in r.json()["details"]["errors"]

    bad_op = {"primaryMetrics": [{"field": "amount", "operator": "=>", "value": 1}]}
    assert client.post("/api/incentives", json=scheme_payload(measurementRules=bad_op)).status_code == 422


def test_put_replaces_in_place(client):
    plan = _create(client, schemeId="S1")
    r = client.put(f"/api/incentives/{plan['id']}", json=scheme_payload(name="renamed"))
    assert r.status_code == 200, r.text
    assert r.json()["name"] == "renamed"
    assert r.json()["metadata"]["version"] == 1
    assert len(client.get("/api/incentives/versions/S1").json()) == 1


def test_delete_then_get_is_404(client):
    plan = _create(client)
    assert client.delete(f"/api/incentives/{plan['id']}").status_code == 204
    assert client.get(f"/api/incentives/{plan['id']}").status_code == 404


def test_simulate(client):
    plan = _create(client)
    r = client.post(
        f"/api/incentives/{plan['id']}/simulate",
        json={"records": [{"amount": 900}, {"amount": 600}]},
    )
    assert r.status_code == 200, r.text
    out = r.json()
    assert out["qualified"] is True
    assert out["totalPayout"] == 100.0
    assert [c["amount"] for c in out["credits"]] == [70.0, 30.0]


def test_kpi_field_endpoints(client):
    r = client.post(
        "/api/kpi-fields",
        json={"kpiName": "Quantity", "section": "QUAL_CRI", "sourceField": "KWMENG", "dataType": "Number"},
    )
    assert r.status_code == 201, r.text
    field_id = r.json()["id"]

    dup = client.post("/api/kpi-fields", json={"kpiName": "Quantity", "section": "QUAL_CRI", "sourceField": "X"})
    assert dup.status_code == 409

    assert [f["kpiName"] for f in client.get("/api/kpi-fields", params={"section": "QUAL_CRI"}).json()] == ["Quantity"]
    assert client.get("/api/kpi-fields", params={"section": "BOGUS"}).status_code == 422

    cfg = client.get("/api/kpi-fields/admin-config", params={"adminId": "a1"}).json()
    assert cfg["adminId"] == "a1"
    assert [f["kpi"] for f in cfg["qualificationFields"]] == ["Quantity"]

    r = client.put(
        f"/api/kpi-fields/{field_id}",
        json={"kpiName": "Quantity", "section": "QUAL_CRI", "sourceField": "MENGE", "dataType": "Number"},
    )
    assert r.json()["sourceField"] == "MENGE"
    assert client.delete(f"/api/kpi-fields/{field_id}").status_code == 204
    assert client.delete(f"/api/kpi-fields/{field_id}").status_code == 404


def test_data_survives_app_restart(sql_settings):
    first = create_app(sql_settings)
    with TestClient(first) as c:
        plan = _create(c, schemeId="DURABLE")
    first.state.stores.engine.dispose()

    second = create_app(sql_settings)
    with TestClient(second) as c:
        assert c.get(f"/api/incentives/{plan['id']}").json()["schemeId"] == "DURABLE"
    second.state.stores.engine.dispose()


def test_auto_backend_falls_back_to_memory(tmp_path):
    # a directory path cannot be opened as a SQLite database
    settings = Settings(DATABASE_URL=f"sqlite:///{tmp_path}", STORAGE_BACKEND="auto", LOG_LEVEL="WARNING")
    app = create_app(settings)
    with TestClient(app) as c:
        assert c.get("/health").json() == {"status": "ok", "storage": "memory", "fallback": True}
        plan = _create(c, schemeId="S1")
        r = c.post("/api/incentives/S1/version", json=scheme_payload())
        assert r.status_code == 503
        assert r.json()["error"] == "upstream_unavailable"
        assert c.get(f"/api/incentives/{plan['id']}").status_code == 200


def test_importing_main_builds_no_app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    import icm.main

    module = importlib.reload(icm.main)
    assert not hasattr(module, "app")
    assert not (tmp_path / "icm.db").exists()
