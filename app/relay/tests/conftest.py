"""
Test configuration and fixtures for relay tests.

This module provides:
- Isolated fakeredis-backed presence registry for every test
- JWT helpers for the external identity boundary
- API clients authenticated as a given user id
- ASGI application for WebSocket tests (without the origin check)

Usage:
    def test_example(client_for):
        response = client_for("u1").get("/api/v1/relay/unread/")
        assert response.status_code == 200
"""

import fakeredis
import pytest
from channels.routing import URLRouter
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from relay.middleware import JWTAuthMiddleware
from relay.routing import websocket_urlpatterns


def make_access_token(user_id: str) -> str:
    """Mint an access token as the identity provider would."""
    token = AccessToken()
    token["user_id"] = user_id
    return str(token)


# =============================================================================
# Presence Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def fake_redis(mocker):
    """
    Point the presence registry at a fresh in-process Redis.

    Overrides the project-level fixture so every relay test gets its own
    server and never reaches a real Redis.
    """
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer())
    mocker.patch(
        "relay.presence.PresenceRegistry._get_redis_client",
        return_value=client,
    )
    return client


# =============================================================================
# Identity Fixtures
# =============================================================================


@pytest.fixture
def token_for():
    """Factory fixture returning a signed access token for a user id."""
    return make_access_token


@pytest.fixture
def api_client():
    """Create an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def client_for():
    """
    Factory fixture returning an API client authenticated as a user id.

    Example:
        response = client_for("u1").post("/api/v1/relay/messages/", {...})
    """

    def _client(user_id: str) -> APIClient:
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {make_access_token(user_id)}")
        return client

    return _client


# =============================================================================
# WebSocket Fixtures
# =============================================================================


@pytest.fixture
def ws_application():
    """
    ASGI application for WebSocket tests.

    Same stack as config.asgi minus AllowedHostsOriginValidator, which
    rejects connections without an Origin header.
    """
    return JWTAuthMiddleware(URLRouter(websocket_urlpatterns))
