import api_server
import main


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_api_health_reports_database_and_providers(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"]["connected"] is True
    assert data["environment"] == "test"
    assert data["aiProviders"]["configured"] == []
    assert data["events"]["totalConnections"] == 0


def test_api_health_is_503_when_database_is_down(client, monkeypatch):
    monkeypatch.setattr(api_server, "health_check", lambda: (False, None, "OperationalError"))

    response = client.get("/api/health")

    assert response.status_code == 503
    assert response.json()["database"] == {"connected": False, "latencyMs": None, "error": "OperationalError"}


def test_cli_status_counts_rows(admin):
    status = main.get_status()

    assert status["database"] == "connected"
    assert status["users"] == 1
    assert status["categories"] >= 1
    assert status["ai_providers"] == "none (mock fallback)"


def test_cli_seed_is_idempotent():
    first = main.seed("+27000000009", "Principal")
    second = main.seed("+27000000009", "Principal")

    assert first["admin"] is True
    assert second == {"categories": 0, "admin": False}
