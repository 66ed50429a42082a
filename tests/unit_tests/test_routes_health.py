"""Tests for health check endpoints."""

from datetime import datetime
from unittest.mock import AsyncMock
from unittest.mock import MagicMock

from tests import consts


class TestHealthEndpointsNoAuthRequired:
    """Tests verifying health endpoints work without identity headers."""

    def test_health_check_no_auth_required(self, unauthenticated_client):
        """Test that /health works without identity headers."""
        response = unauthenticated_client.get(f"{consts.API_BASE}/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_db_health_no_auth_required(self, unauthenticated_client):
        response = unauthenticated_client.get(f"{consts.API_BASE}/health/db")

        assert response.status_code == 200

    def test_openapi_no_auth_required(self, unauthenticated_client):
        """Test that /openapi.json works without identity headers."""
        response = unauthenticated_client.get("/openapi.json")

        assert response.status_code == 200


def test_health_check(client):
    """Test basic health check endpoint."""
    response = client.get(f"{consts.API_BASE}/health")

    assert response.status_code == 200
    data = response.json()

    assert data["status"] == "healthy"
    assert data["service"] == "Service Request Workflow API"
    assert data["version"] == "v1"
    assert data["environment"] == "test"
    assert data["store"] == "memory"

    # Verify timestamp is a valid ISO format
    datetime.fromisoformat(data["timestamp"])


def test_db_health_memory_store(client):
    """Without a database pool the in-memory store reports healthy."""
    response = client.get(f"{consts.API_BASE}/health/db")

    assert response.json() == {"status": "healthy", "store": "memory"}


def test_db_health_postgres_healthy(app, client):
    app.state.domain_db_pool = MagicMock(health_check=AsyncMock(return_value=True))

    response = client.get(f"{consts.API_BASE}/health/db")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "store": "postgres"}


def test_db_health_postgres_unreachable(app, client):
    app.state.domain_db_pool = MagicMock(health_check=AsyncMock(return_value=False))

    response = client.get(f"{consts.API_BASE}/health/db")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"
