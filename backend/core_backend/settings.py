"""
Django settings for the branch POS backend.

Values are read from the environment with development defaults. Business
constants (loyalty rates, tiers, order limits) live at the bottom of this file
and are read by the services through ``getattr(settings, ...)``.
"""

import os
from decimal import Decimal
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("SECRET_KEY", "django-insecure-dev-key-change-me")

DEBUG = os.getenv("DEBUG", "True").lower() in ("true", "1", "yes")

ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h.strip()]


# Application definition

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third party
    "rest_framework",
    "django_filters",
    # Local apps
    "core_backend",
    "users",
    "branches",
    "products",
    "inventory",
    "customers",
    "shifts",
    "orders",
    "refunds",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
]

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

AUTH_USER_MODEL = "users.User"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# Database
# PostgreSQL is used when POSTGRES_DB is configured; row locks taken with
# select_for_update() are only effective there.

if os.getenv("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB"),
            "USER": os.getenv("POSTGRES_USER", "postgres"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", ""),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
            "ATOMIC_REQUESTS": False,
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("SQLITE_PATH", str(BASE_DIR / "db.sqlite3")),
        }
    }


# Internationalization

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"


# Django REST Framework

REST_FRAMEWORK = {
    "DEFAULT_FILTER_BACKENDS": [
        "django_filters.rest_framework.DjangoFilterBackend",
    ],
    "EXCEPTION_HANDLER": "core_backend.exceptions.pos_exception_handler",
    "COERCE_DECIMAL_TO_STRING": True,
}


# Logging

POS_LOG_LEVEL = os.getenv("POS_LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {name} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose" if not DEBUG else "simple",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
        **{
            app: {
                "handlers": ["console"],
                "level": POS_LOG_LEVEL,
                "propagate": False,
            }
            for app in (
                "core_backend",
                "users",
                "inventory",
                "customers",
                "shifts",
                "orders",
                "refunds",
            )
        },
    },
}


# POS business configuration

# Loyalty points earned per currency unit of order subtotal.
POS_POINTS_PER_CURRENCY = Decimal(os.getenv("POS_POINTS_PER_CURRENCY", "0.01"))

# Currency value of a single point on redemption.
POS_POINT_VALUE = Decimal(os.getenv("POS_POINT_VALUE", "1"))

# Ascending lifetime-spend thresholds.
POS_LOYALTY_TIERS = [
    ("BRONZE", Decimal("0")),
    ("SILVER", Decimal("2000")),
    ("GOLD", Decimal("5000")),
    ("PLATINUM", Decimal("10000")),
]

POS_MAX_ORDER_LINES = int(os.getenv("POS_MAX_ORDER_LINES", "50"))
POS_MAX_LINE_QUANTITY = int(os.getenv("POS_MAX_LINE_QUANTITY", "99"))
