from .base import *  # noqa: F403
from .base import env

# GENERAL
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#debug
DEBUG = True
# https://docs.djangoproject.com/en/dev/ref/settings/#secret-key
SECRET_KEY = env(
    "DJANGO_SECRET_KEY",
    default="Hn3pV0cTqL8sWm2YxRk6Dz9aJf4UeBg7Ni1QoZt5Cr0wMvXyKdEhSlPuGjAbFi8O",
)
# https://docs.djangoproject.com/en/dev/ref/settings/#allowed-hosts
ALLOWED_HOSTS = ["localhost", "0.0.0.0", "127.0.0.1"]  # noqa: S104

# CACHES
# ------------------------------------------------------------------------------
# https://docs.djangoproject.com/en/dev/ref/settings/#caches
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "",
    },
}

# EMAIL
# ------------------------------------------------------------------------------
# Console backend prints emails to terminal (no mail server needed)
EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"

# Stripe
# ------------------------------------------------------------------------------
# Forward webhooks locally with `stripe listen --forward-to localhost:8000/stripe/webhook/`
# and put the printed signing secret in DJSTRIPE_WEBHOOK_SECRET.

# Logging
# ------------------------------------------------------------------------------
# Make local development chatty so seat and webhook decisions show up immediately.
LOGGING["root"]["level"] = "DEBUG"  # noqa: F405
LOGGING["loggers"]["verifyhub"] = {  # noqa: F405
    "handlers": ["console"],
    "level": "DEBUG",
    "propagate": False,
}
