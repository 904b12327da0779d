import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = os.getenv("DJANGO_DEBUG", "1") == "1"
ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "channels",
    "accounts",
    "orders",
    "realtime",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

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

ASGI_APPLICATION = "config.asgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.getenv("DJANGO_DB_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "EXCEPTION_HANDLER": "api.exceptions.api_exception_handler",
}

CHANNEL_LAYERS = {
    "default": {"BACKEND": "channels.layers.InMemoryChannelLayer"},
}

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "standard"},
    },
    "root": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO")},
    "loggers": {
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        "trading": {"handlers": ["console"], "level": os.getenv("TRADING_LOG_LEVEL", "INFO"), "propagate": False},
    },
}

# ---------------------------------------------------------------------------
# Brokers
# ---------------------------------------------------------------------------

ENABLED_BROKERS = [b.strip() for b in os.getenv("ENABLED_BROKERS", "angelone,dhan").split(",") if b.strip()]

# Fernet key for BrokerAccount.encrypted_credentials (cryptography.fernet.Fernet.generate_key())
BROKER_CREDENTIALS_KEY = os.getenv("BROKER_CREDENTIALS_KEY", "")

BROKER_HTTP_CONNECT_TIMEOUT = float(os.getenv("BROKER_HTTP_CONNECT_TIMEOUT", "5"))
BROKER_HTTP_READ_TIMEOUT = float(os.getenv("BROKER_HTTP_READ_TIMEOUT", "15"))

ANGELONE_BASE_URL = os.getenv("ANGELONE_BASE_URL", "https://apiconnect.angelone.in")
ANGELONE_CLIENT_LOCAL_IP = os.getenv("ANGELONE_CLIENT_LOCAL_IP", "127.0.0.1")
ANGELONE_CLIENT_PUBLIC_IP = os.getenv("ANGELONE_CLIENT_PUBLIC_IP", "127.0.0.1")
ANGELONE_MAC_ADDRESS = os.getenv("ANGELONE_MAC_ADDRESS", "00:00:00:00:00:00")
ANGELONE_TOKEN_TTL_SECONDS = int(os.getenv("ANGELONE_TOKEN_TTL_SECONDS", "28800"))

DHAN_BASE_URL = os.getenv("DHAN_BASE_URL", "https://api.dhan.co")
DHAN_TOKEN_TTL_SECONDS = int(os.getenv("DHAN_TOKEN_TTL_SECONDS", "86400"))

# ---------------------------------------------------------------------------
# Execution / scheduling
# ---------------------------------------------------------------------------

ORDER_EXECUTION_WORKERS = int(os.getenv("ORDER_EXECUTION_WORKERS", "4"))
SCHEDULER_POLL_SECONDS = float(os.getenv("SCHEDULER_POLL_SECONDS", "1"))
SCHEDULER_WORKERS = int(os.getenv("SCHEDULER_WORKERS", "2"))
STALE_EXECUTION_MINUTES = int(os.getenv("STALE_EXECUTION_MINUTES", "15"))
