from .base import *

DEBUG = False
SECRET_KEY = "test-secret"
SIMPLE_JWT["SIGNING_KEY"] = SECRET_KEY

DATABASES = {"default": {"ENGINE": "django.db.backends.sqlite3", "NAME": ":memory:"}}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
DEFAULT_FROM_EMAIL = "Shopfront <noreply@shopfront.test>"

CACHES = {"default": {"BACKEND": "django.core.cache.backends.locmem.LocMemCache", "LOCATION": "tests"}}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = False
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

PAYMENT_GATEWAY_BACKEND = "payments.gateways.SignedPayloadGateway"
STRIPE_WEBHOOK_SECRET = "whsec_test"

REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []

LOGGING["loggers"]["django"]["level"] = "WARNING"
