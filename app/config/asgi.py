"""
ASGI config for the chat relay.

This file exposes the ASGI callable as a module-level variable named
`application`, served by Uvicorn:

    uvicorn config.asgi:application --host 0.0.0.0 --port 8000

Protocols:
- HTTP requests go to Django (REST API, admin, health check)
- WebSocket connections go to the relay consumer (ws/relay/)

Several relay processes can run behind a load balancer: presence lives
in Redis and pushes travel over the Redis channel layer, so a message
sent through one process reaches a connection held by another.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/asgi/
"""

import os

from django.core.asgi import get_asgi_application

# Set the default Django settings module for the ASGI application
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Initialize Django ASGI application early to ensure settings are loaded
# before importing any models or other Django components
django_asgi_app = get_asgi_application()

# Import Channels components after Django is initialized
from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.security.websocket import AllowedHostsOriginValidator  # noqa: E402

from relay.middleware import JWTAuthMiddleware  # noqa: E402
from relay.routing import websocket_urlpatterns  # noqa: E402

# ASGI application that routes HTTP and WebSocket protocols
application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        # WebSocket connections are routed through:
        # 1. AllowedHostsOriginValidator - ensures origin matches ALLOWED_HOSTS
        # 2. JWTAuthMiddleware - identifies the user from the JWT
        # 3. URLRouter - routes to RelayConsumer
        "websocket": AllowedHostsOriginValidator(
            JWTAuthMiddleware(URLRouter(websocket_urlpatterns))
        ),
    }
)
