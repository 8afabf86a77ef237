"""
Tests for the application shell: health, root info, middleware and error
rendering.
"""


def test_health_in_mock_mode(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["checks"]["mode"] == "mock"
    assert body["checks"]["sla_presets"] == "loaded (25 presets)"
    assert body["checks"]["sla_scheduler"] == "stopped"
    assert body["checks"]["work_order_parser"] == "HeuristicWorkOrderParser"
    assert body["checks"]["hunter"] == "configured"


def test_root_lists_modules(client):
    body = client.get("/").json()
    assert body["docs"] == "/docs"
    assert set(body["modules"]) == {"sla", "dispatch", "leads"}


def test_correlation_id_is_echoed(client):
    response = client.get("/health", headers={"X-Correlation-ID": "req-42"})
    assert response.headers["X-Correlation-ID"] == "req-42"
    assert response.headers["X-Response-Time"].endswith("s")


def test_body_validation_is_a_client_error(client):
    response = client.post("/leads/verify", json={"limit": 0})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"].startswith("limit: ")


def test_unknown_route(client):
    response = client.get("/nope")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Not Found"}
