"""
WSGI config del proyecto distribucion.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "distribucion.settings")

application = get_wsgi_application()
