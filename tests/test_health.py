from fastapi.testclient import TestClient


def test_health_endpoint():
    """Test health endpoint"""
    from shopilent.main import app

    client = TestClient(app)
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["app_name"] == "Shopilent"
