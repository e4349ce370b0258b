"""
WSGI config for the cdcstreamer project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'cdcstreamer.settings')

application = get_wsgi_application()
