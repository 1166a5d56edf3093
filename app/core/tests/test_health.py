"""
Tests for the health check endpoint.
"""

from django.db import DatabaseError
from redis.exceptions import ConnectionError as RedisConnectionError


class TestHealthCheck:
    """
    Tests for GET /health/.

    Verifies:
    - 200 when the database is reachable
    - 503 when the database is down
    - A cache outage degrades but does not fail the check
    """

    def test_healthy(self, db, client):
        response = client.get("/health/")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "database": "connected",
            "cache": "connected",
        }

    def test_database_down_returns_503(self, db, client, mocker):
        """
        Without a database no message can be stored.

        Why it matters: Load balancers must stop routing to this instance.
        """
        mocker.patch(
            "core.views.connection.cursor", side_effect=DatabaseError("unreachable")
        )

        response = client.get("/health/")

        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"

    def test_cache_down_is_degraded_not_failed(self, db, client, mocker):
        mocker.patch(
            "core.views.cache.set", side_effect=RedisConnectionError("unreachable")
        )

        response = client.get("/health/")

        assert response.status_code == 200
        assert response.json()["cache"] == "disconnected"
