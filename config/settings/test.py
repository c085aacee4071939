"""
With these settings, tests run faster.
"""

import os

# Set test-safe Stripe keys before base settings reads them
# These look like real test keys but are dummy values for testing
os.environ.setdefault("STRIPE_TEST_SECRET_KEY", "sk_test_dummy_test_key_for_testing")
os.environ.setdefault("STRIPE_TEST_PUBLIC_KEY", "pk_test_dummy_test_key_for_testing")

from .base import *  # noqa: F403
from .base import DATABASES
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#secret-key
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="kq3Zt0mWf4YB9nW8rX2sVdP6LhE1cJ7uGa5oTiN0yRbQxMzKpHvUeSlDjCwFgA9e",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#test-runner
TEST_RUNNER = "django.test.runner.DiscoverRunner"
DATABASES["default"]["CONN_MAX_AGE"] = 0  # type: ignore[name-defined]
# https://docs.djangoproject.com/en/dev/ref/settings/#allowed-hosts
ALLOWED_HOSTS = ["localhost", "127.0.0.1", "testserver"]

# PASSWORDS
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#password-hashers
PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

# EMAIL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#email-backend
EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

# STRIPE
# ------------------------------------------------------------------------------
STRIPE_LIVE_MODE = False
STRIPE_SECRET_KEY = os.environ["STRIPE_TEST_SECRET_KEY"]
STRIPE_PUBLIC_KEY = os.environ["STRIPE_TEST_PUBLIC_KEY"]
DJSTRIPE_WEBHOOK_SECRET = "whsec_test_dummy"  # noqa: S105

# BILLING
# ------------------------------------------------------------------------------
BILLING_SEAT_PRICE_CENTS = 900
BILLING_TRIAL_DAYS = 14
BILLING_FALLBACK_PERIOD_DAYS = 30
