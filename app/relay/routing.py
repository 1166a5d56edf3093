"""
WebSocket URL routing for the relay application.

URL Patterns:
    ws/relay/ - Open the user's real-time relay session

Authentication:
    JWT token should be passed as query parameter: ?token=<jwt_access_token>
    (or as the "jwt, <token>" subprotocol pair). JWTAuthMiddleware
    validates the token and attaches the user to the consumer's scope.
"""

from django.urls import path

from relay import consumers

websocket_urlpatterns = [
    path("ws/relay/", consumers.RelayConsumer.as_asgi()),
]
