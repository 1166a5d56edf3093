# =============================================================================
# Chat Relay Django Project Package
# =============================================================================
# Settings, URLs, ASGI/WSGI applications and Celery configuration.
#
# The Celery app is imported here so it is loaded when Django starts and
# shared_task decorators (relay.tasks) bind to it.
# =============================================================================

from config.celery import app as celery_app

__all__ = ("celery_app",)
