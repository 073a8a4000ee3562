"""WSGI entry point for CERT-HUB."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "cert_hub.settings")

application = get_wsgi_application()
