"""
WSGI config for DriveChat backend.

Chat answers are streamed with StreamingHttpResponse; run under a WSGI
server that does not buffer responses (e.g. gunicorn with gthread workers).
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

application = get_wsgi_application()
