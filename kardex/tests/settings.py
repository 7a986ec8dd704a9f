"""
Django settings for running the Kardex test suite.
"""

import os
import tempfile

SECRET_KEY = 'kardex-tests'

INSTALLED_APPS = [
    'kardex',
]

# File-backed so threaded tests share one database. IMMEDIATE makes every
# transaction take SQLite's write lock up front instead of failing on upgrade.
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.path.join(tempfile.gettempdir(), 'kardex.sqlite3'),
        'OPTIONS': {
            'transaction_mode': 'IMMEDIATE',
            'timeout': 20,
        },
        'TEST': {
            'NAME': os.path.join(tempfile.gettempdir(), 'kardex-tests.sqlite3'),
        },
    }
}

USE_TZ = True
TIME_ZONE = 'UTC'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

KARDEX = {
    'DEFAULT_LOCATION': 'MAIN',
    'LOCK_TIMEOUT_SECONDS': 1.0,
    'RESERVATION_TTL_MINUTES': 0,
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'console': {'class': 'logging.StreamHandler'},
    },
    'loggers': {
        'kardex': {'handlers': ['console'], 'level': 'WARNING'},
    },
}
