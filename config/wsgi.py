"""WSGI config for the Turfslot project.

Used by runserver and WSGI servers (gunicorn); points at the settings
package.
"""

import os
from django.core.wsgi import get_wsgi_application  # type: ignore

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.dev')

application = get_wsgi_application()
