"""
Relay application configuration.

This app provides the direct message relay with:
- Message persistence and history retrieval
- Unread counts per conversation
- Real-time push over WebSockets
"""

from django.apps import AppConfig


class RelayConfig(AppConfig):
    """Configuration for the relay application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "relay"
    verbose_name = "Chat Relay"
