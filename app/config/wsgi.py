"""
WSGI config for the chat relay.

The relay is served over ASGI (config/asgi.py) because WebSockets need it.
This WSGI entry point only serves the HTTP API and admin, for deployments
that split request/response traffic onto a classic WSGI server.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
