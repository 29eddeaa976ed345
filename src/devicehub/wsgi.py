"""WSGI config for the Device Hub project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "devicehub.settings")

application = get_wsgi_application()
