"""Development settings for the Turfslot project.

Debug on, all hosts allowed, gateway emulated. Do not use these settings
in production!
"""

from .base import *  # noqa: F401,F403

# Enable debug mode for development
DEBUG = True

# Allow all hosts in development
ALLOWED_HOSTS = ['*']

LOG_LEVEL = 'DEBUG'
LOGGING['loggers']['apps']['level'] = 'DEBUG'  # noqa: F405
