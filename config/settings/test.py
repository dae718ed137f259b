# config/settings/test.py
"""
Test settings: file-backed SQLite, local-memory cache, quiet logging.
"""

from .base import *  # noqa
import os
import tempfile

DEBUG = False

SECRET_KEY = "test-secret-key"

# File-backed so that threads in transactional tests each get their own
# connection to the same database.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.path.join(tempfile.gettempdir(), "marketplace-tests.sqlite3"),
        "TEST": {"NAME": os.path.join(tempfile.gettempdir(), "marketplace-tests-db.sqlite3")},
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "marketplace-tests",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

LOGGING["root"]["level"] = "WARNING"
