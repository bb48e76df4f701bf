"""Django project package for Turfslot.

Holds the per-environment settings modules, the Celery application and
the WSGI/ASGI entry points.
"""

# Import the Celery application as soon as Django starts so shared tasks
# are registered.
from .celery import app as celery_app  # noqa: F401
