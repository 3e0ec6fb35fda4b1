import pytest
from fastapi.testclient import TestClient

from app.api_service import create_app
from fakes import fake_services


@pytest.fixture
def client():
    services = fake_services()
    with TestClient(create_app(lambda: services)) as c:
        yield c


def _body(**overrides):
    body = {"drug": {"name": "lisinopril"}, "sig": {"dose": 1, "frequency": 2, "unit": "TABLET"}, "daysSupply": 30}
    body.update(overrides)
    return body


def test_calculate_ok(client):
    r = client.post("/api/v1/calculate", json=_body())
    assert r.status_code == 200
    assert r.headers["X-Request-Id"]
    data = r.json()
    assert data["totalQuantity"] == 60
    assert data["recommendedPackages"][0]["code"] == "12345-0060-01"


def test_request_id_is_echoed(client):
    r = client.post("/api/v1/calculate", json=_body(), headers={"X-Request-Id": "abc123"})
    assert r.headers["X-Request-Id"] == "abc123"


def test_days_supply_out_of_range_is_400(client):
    r = client.post("/api/v1/calculate", json=_body(daysSupply=0))
    assert r.status_code == 400
    err = r.json()["error"]
    assert err["code"] == "invalid_input"
    assert err["details"]["errors"]


def test_name_and_id_together_is_400(client):
    r = client.post("/api/v1/calculate", json=_body(drug={"name": "lisinopril", "id": "314076"}))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "invalid_input"


def test_unknown_drug_is_404(client):
    r = client.post("/api/v1/calculate", json=_body(drug={"name": "nosuchdrug"}))
    assert r.status_code == 404
    data = r.json()
    assert data["error"]["code"] == "drug_not_found"
    assert data["request_id"] == r.headers["X-Request-Id"]


def test_no_viable_package_is_422():
    services = fake_services(allow_multi_pack=False)
    with TestClient(create_app(lambda: services)) as c:
        r = c.post("/api/v1/calculate", json=_body(daysSupply=100, sig={"dose": 1, "frequency": 1, "unit": "TABLET"}))
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "no_viable_package"


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["ok"] is True
    assert data["cache_ok"] is True
    assert data["cache"]["backend"] == "memory"
    assert data["breaker"]["state"] == "CLOSED"
    assert data["features"]["openai_configured"] is False
    assert "status" not in data


def test_resolve(client):
    r = client.get("/api/v1/drugs/resolve", params={"name": "lisinopril"})
    assert r.status_code == 200
    data = r.json()
    assert data["drug"]["id"] == "314076"
    assert data["method"] == "exact"
    assert data["cached"] is False

    again = client.get("/api/v1/drugs/resolve", params={"name": "lisinopril"}).json()
    assert again["cached"] is True


def test_resolve_batch(client):
    r = client.post("/api/v1/drugs/resolve-batch", json={"names": ["lisinopril", "nosuchdrug"]})
    assert r.status_code == 200
    data = r.json()
    assert data["succeeded"] == 1
    assert data["failed"] == 1
    assert data["results"][0]["success"] is True
    assert data["results"][1]["error"]["code"] == "drug_not_found"


def test_resolve_batch_rejects_empty_list(client):
    r = client.post("/api/v1/drugs/resolve-batch", json={"names": []})
    assert r.status_code == 400
