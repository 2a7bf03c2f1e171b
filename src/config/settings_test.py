"""Settings for the pytest run: in-memory mail and cache, no throttling."""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("DATABASE_URL", "sqlite://:memory:")

from config.settings import *  # noqa: E402,F401,F403
from config.settings import REST_FRAMEWORK  # noqa: E402

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
DEFAULT_FROM_EMAIL = "orders@example.com"

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

REST_FRAMEWORK = {
    **REST_FRAMEWORK,
    "DEFAULT_THROTTLE_CLASSES": [],
}

KHALTI_BASE_URL = "https://khalti.test/api/v2"
KHALTI_SECRET_KEY = "test-khalti-key"
APP_URL = "http://testserver"

SMS_API_URL = ""
SMS_API_KEY = ""
SMS_SENDER_ID = "SHOP"

ORDER_TAX_RATE = "0"
ORDER_FREE_SHIPPING_THRESHOLD = "2000"
ORDER_SHIPPING_COST = "200"
ORDER_COD_LIMIT = "5000"
ORDER_RETURN_WINDOW_DAYS = 7
ORDER_EXCHANGE_WINDOW_DAYS = 7
