"""
Health and version endpoints
"""


def test_health_endpoint_returns_200(client):
    """Test that /health returns HTTP 200"""
    response = client.get("/health")
    assert response.status_code == 200


def test_health_endpoint_returns_ok_status(client):
    """Test that /health returns status: ok"""
    data = client.get("/health").json()
    assert data == {"status": "ok", "active_clocks": 0}


def test_version_endpoint(client):
    data = client.get("/version").json()
    assert data["name"] == "League Manager"
    assert data["full"].startswith("League Manager v")
