"""
WSGI config for the cargo back office.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'cargo_core.settings')

application = get_wsgi_application()
