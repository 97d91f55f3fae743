from pathlib import Path
import os

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("HARBORCHAT_SECRET_KEY", "unsafe-dev-secret-key")
DEBUG = os.environ.get("HARBORCHAT_DEBUG", "0") == "1"

ALLOWED_HOSTS = os.environ.get(
    "HARBORCHAT_ALLOWED_HOSTS",
    "localhost,127.0.0.1,testserver,harborchat_server",
).split(",")

INSTALLED_APPS = [
    "corsheaders",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.staticfiles",
    "messenger",
    "relay",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

# Mobile clients and the media relay are reached from arbitrary origins
CORS_ALLOW_ALL_ORIGINS = True

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
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

# Django still needs a database for sessions, but we don't use it for app data
# All app data (users, chats, messages, calls) is stored in Firebase Firestore
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("HARBORCHAT_TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
USE_X_FORWARDED_HOST = True

# Document store: "firestore" in production, "memory" for local runs and tests
DOCUMENT_STORE_BACKEND = os.environ.get("DOCUMENT_STORE_BACKEND", "firestore")

# Push relay (Expo push service)
EXPO_PUSH_URL = os.environ.get("EXPO_PUSH_URL", "https://exp.host/--/api/v2/push/send")
EXPO_ACCESS_TOKEN = os.environ.get("EXPO_ACCESS_TOKEN")
PUSH_TIMEOUT_SECONDS = float(os.environ.get("PUSH_TIMEOUT_SECONDS", "30"))

# Calls
MISSED_TIMEOUT_SECONDS = int(os.environ.get("MISSED_TIMEOUT_SECONDS", "30"))

# Coin economy
INITIAL_COINS = int(os.environ.get("INITIAL_COINS", "300"))
MESSAGE_COST = int(os.environ.get("MESSAGE_COST", "1"))

# Media relay
RELAY_UPLOADS_DIR = Path(os.environ.get("RELAY_UPLOADS_DIR", BASE_DIR / "uploads"))
RELAY_GALLERY_DIR = Path(os.environ.get("RELAY_GALLERY_DIR", BASE_DIR / "gallery"))
RELAY_TEMP_DIR = Path(os.environ.get("RELAY_TEMP_DIR", BASE_DIR / "temp"))
RELAY_MAX_UPLOAD_BYTES = int(os.environ.get("RELAY_MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))
RELAY_PORT = int(os.environ.get("RELAY_PORT", "3000"))

# Uploaded files above this size are streamed to disk by Django itself
FILE_UPLOAD_MAX_MEMORY_SIZE = 5 * 1024 * 1024

# Logging Configuration
LOG_DIR = BASE_DIR / "logs"
LOG_DIR.mkdir(exist_ok=True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "[{asctime}] {levelname} {name} {message}",
            "style": "{",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
        "simple": {
            "format": "[{asctime}] {levelname} {message}",
            "style": "{",
            "datefmt": "%H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
        "file": {
            "class": "logging.FileHandler",
            "filename": LOG_DIR / "django.log",
            "formatter": "verbose",
        },
        "messenger_file": {
            "class": "logging.FileHandler",
            "filename": LOG_DIR / "messenger.log",
            "formatter": "verbose",
        },
        "relay_file": {
            "class": "logging.FileHandler",
            "filename": LOG_DIR / "relay.log",
            "formatter": "verbose",
        },
    },
    "loggers": {
        "django": {
            "handlers": ["console", "file"],
            "level": "INFO",
        },
        "django.request": {
            "handlers": ["console", "file"],
            "level": "DEBUG",
            "propagate": False,
        },
        "messenger": {
            "handlers": ["console", "messenger_file"],
            "level": "DEBUG",
            "propagate": False,
        },
        "relay": {
            "handlers": ["console", "relay_file"],
            "level": "DEBUG",
            "propagate": False,
        },
    },
}
