"""Test settings.

In-memory SQLite, eager Celery, local-memory email and a fixed set of
vehicles and webhook secret so tests can build signed notifications.
"""

from .base import *  # noqa: F401,F403

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

BOOKING_VEHICLES = {
    'V1': 'Luxury 7-seat Alphard',
    'V2': 'Comfort 10-seat HiAce',
    'V3': 'Economy 5-seat sedan',
}
BOOKING_FRONTEND_URL = 'http://localhost:3000'
BOOKING_STAFF_EMAILS = []

PAYMENT_API_KEY = ''
PAYMENT_WEBHOOK_SECRET = 'whsec_test_secret'

ORDER_EVENTS_WEBHOOK_URL = ''
