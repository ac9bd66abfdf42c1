"""
Distribución – Django Settings
==============================
Proyecto contenedor del motor de stock y ganancias (apps inventario, ventas,
ganancias, gamificacion, defectuosos). Solo se expone el sitio admin; el resto
de la interfaz consume los services de cada app.

Valores sensibles y de base de datos se leen del entorno, con defaults de
desarrollo.
"""

import os
from pathlib import Path

# ── Paths ─────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent

# ── Security ──────────────────────────────────────────────────
SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "distribucion-dev-key-replace-before-deployment")

DEBUG = os.environ.get("DJANGO_DEBUG", "1") == "1"

ALLOWED_HOSTS = [h for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "").split(",") if h]

# ── Installed Apps ────────────────────────────────────────────
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # ── Motor (orden: hojas primero) ──────────────────────
    "inventario",
    "ganancias",
    "gamificacion",
    "ventas",
    "defectuosos",
]

# ── Middleware ────────────────────────────────────────────────
MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

# ── URL & WSGI ────────────────────────────────────────────────
ROOT_URLCONF = "distribucion.urls"
WSGI_APPLICATION = "distribucion.wsgi.application"

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

# ── Database ──────────────────────────────────────────────────
# SQLite por defecto. IMMEDIATE toma el lock de escritura al abrir cada
# transacción: las operaciones read-check-write quedan serializadas.
# El test DB es un archivo (no :memory:) para poder usarlo desde varios hilos.
if os.environ.get("DISTRIBUCION_DB_ENGINE") == "postgresql":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ.get("DISTRIBUCION_DB_NAME", "distribucion"),
            "USER": os.environ.get("DISTRIBUCION_DB_USER", "distribucion"),
            "PASSWORD": os.environ.get("DISTRIBUCION_DB_PASSWORD", ""),
            "HOST": os.environ.get("DISTRIBUCION_DB_HOST", "localhost"),
            "PORT": os.environ.get("DISTRIBUCION_DB_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
            "OPTIONS": {
                "transaction_mode": "IMMEDIATE",
                "timeout": 20,
            },
            "TEST": {
                "NAME": BASE_DIR / "test_db.sqlite3",
            },
        }
    }

# ── Auth ──────────────────────────────────────────────────────
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
]

# ── Internationalization ──────────────────────────────────────
LANGUAGE_CODE = "es"
TIME_ZONE = os.environ.get("DJANGO_TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

# ── Static ────────────────────────────────────────────────────
STATIC_URL = "static/"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ── Motor de stock y ganancias ────────────────────────────────
# USUARIO_ADMIN: username de la cuenta que recibe la ganancia del admin
#   ("" → primer superusuario).
# REINTENTOS_CONFLICTO: reintentos de una operación ante un bloqueo.
LEDGER = {
    "USUARIO_ADMIN": os.environ.get("DISTRIBUCION_USUARIO_ADMIN", ""),
    "REINTENTOS_CONFLICTO": int(os.environ.get("DISTRIBUCION_REINTENTOS_CONFLICTO", "3")),
}

# ── Logging ───────────────────────────────────────────────────
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "{asctime} {levelname} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "distribucion": {
            "handlers": ["console"],
            "level": os.environ.get("DISTRIBUCION_LOG_LEVEL", "INFO"),
            "propagate": True,
        },
    },
}
