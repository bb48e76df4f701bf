"""Production settings for the Turfslot project.

Sensitive values must come from environment variables. Gateway keys are
required: without them the payment client would fall back to emulation.
"""

from django.core.exceptions import ImproperlyConfigured  # type: ignore

from .base import *  # noqa: F401,F403

# Never run with debug enabled in production
DEBUG = False

# Allowed hosts should be defined explicitly via environment variable
ALLOWED_HOSTS = os.environ.get('DJANGO_ALLOWED_HOSTS', '').split(',')  # noqa: F405

# Configure secure proxies and cookies
CSRF_COOKIE_SECURE = True
SESSION_COOKIE_SECURE = True
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')

if not GATEWAY_KEY_ID or not GATEWAY_KEY_SECRET:  # noqa: F405
    raise ImproperlyConfigured("GATEWAY_KEY_ID and GATEWAY_KEY_SECRET must be set in production")

if SECRET_KEY == 'replace-me-in-production':  # noqa: F405
    raise ImproperlyConfigured("DJANGO_SECRET_KEY must be set in production")

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.redis.RedisCache',
        'LOCATION': os.environ.get('CACHE_LOCATION', 'redis://localhost:6379/1'),  # noqa: F405
    }
}
