"""
URL configuration for the chat relay.

The `urlpatterns` list routes URLs to views. This is the root URL configuration
that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/relay/                 - Relay endpoints
        conversations/{counterpart_id}/messages/ - Conversation history (GET)
        conversations/{counterpart_id}/read/     - Mark conversation read (POST)
        messages/                  - Send message (POST)
        messages/{id}/             - Delete message (DELETE)
        unread/                    - Unread counts (GET)
        presence/{user_id}/        - User presence (GET)

WebSocket routes are defined in relay/routing.py and mounted in config/asgi.py.

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Relay
    path("relay/", include("relay.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Chat Relay Admin"
admin.site.site_title = "Relay Admin Portal"
admin.site.index_title = "Messages and unread counters"
