from pathlib import Path

import environ
from django.conf.locale.en import formats as en_formats

# Build paths inside the project
BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
DATA_DIR.mkdir(exist_ok=True)

DEV = (BASE_DIR / "tests").exists()
if DEV:
    print("[DEV] Development mode detected (tests/ directory found)")
    print("[WARNING] Using INSECURE development defaults - DO NOT USE IN PRODUCTION!")
    print("[WARNING] The sandbox ledger is in-process and NOT an immutable ledger.\n")


env = environ.Env()

####################################################################################################
# Mandatory Settings (no defaults - must be set explicitly)                                        #
####################################################################################################

DEBUG = env.bool("DJANGO_DEBUG", default=True if DEV else env.NOTSET)
SECRET_KEY = env("DJANGO_SECRET_KEY", default="test-secret-key-for-testing-only" if DEV else env.NOTSET)
CERT_HUB_DOMAIN = env("CERT_HUB_DOMAIN", default="localhost" if DEV else env.NOTSET)

# Dotted path of the LedgerClient implementation
CERT_HUB_LEDGER_BACKEND = env(
    "CERT_HUB_LEDGER_BACKEND",
    default="cert_hub.ledger.sandbox.SandboxLedger" if DEV else env.NOTSET,
)

####################################################################################################

# Build metadata from Docker image
BUILD_COMMIT = env("BUILD_COMMIT", default="unknown")
BUILD_TAG = env("BUILD_TAG", default="unknown")
BUILD_TIMESTAMP = env("BUILD_TIMESTAMP", default="unknown")

# Ledger connection (only used by the EVM backend)
# Seconds to wait for any single ledger call including finality
CERT_HUB_LEDGER_TIMEOUT = env.float("CERT_HUB_LEDGER_TIMEOUT", default=30.0)
CERT_HUB_RPC_URL = env("CERT_HUB_RPC_URL", default="http://127.0.0.1:8545")
CERT_HUB_CONTRACT_ADDRESS = env("CERT_HUB_CONTRACT_ADDRESS", default="")
CERT_HUB_SIGNER_KEY = env("CERT_HUB_SIGNER_KEY", default="")
CERT_HUB_CONFIRMATIONS = env.int("CERT_HUB_CONFIRMATIONS", default=1)
# First contract block and block span per eth_getLogs request when scanning anchors
CERT_HUB_FROM_BLOCK = env.int("CERT_HUB_FROM_BLOCK", default=0)
CERT_HUB_LOG_BLOCK_RANGE = env.int("CERT_HUB_LOG_BLOCK_RANGE", default=2000)

# Contract admin address reported by the sandbox ledger
CERT_HUB_SANDBOX_ADMIN = env("CERT_HUB_SANDBOX_ADMIN", default="0x" + "00" * 20)

# Public verification link, RFC 6570 template with {content_hash} and {domain}
CERT_HUB_VERIFY_URL = env("CERT_HUB_VERIFY_URL", default="https://{domain}/verify/{content_hash}")

# Maximum records examined per reconciliation sweep (0 = unlimited)
CERT_HUB_SWEEP_LIMIT = env.int("CERT_HUB_SWEEP_LIMIT", default=500)

# Maximum accepted document upload size in bytes
CERT_HUB_MAX_DOCUMENT_SIZE = env.int("CERT_HUB_MAX_DOCUMENT_SIZE", default=10 * 1024 * 1024)

# Logging
CERT_HUB_LOG_LEVEL = env("CERT_HUB_LOG_LEVEL", default="DEBUG" if DEBUG else "INFO")
CERT_HUB_LOG_JSON = env.bool("CERT_HUB_LOG_JSON", default=not DEBUG)

# Database file name - defaults based on DEV setting
default_db_name = "cert-hub-dev.db" if DEV else "cert-hub.db"
CERT_HUB_DB_NAME = env("CERT_HUB_DB_NAME", default=default_db_name)

ALLOWED_HOSTS = env.list("DJANGO_ALLOWED_HOSTS", default=(CERT_HUB_DOMAIN,))

# CSRF settings for reverse proxy deployments
CSRF_TRUSTED_ORIGINS = env.list("DJANGO_CSRF_TRUSTED_ORIGINS", default=[f"https://{CERT_HUB_DOMAIN}"])

# Disable automatic trailing slash appending for clean URLs
APPEND_SLASH = False


INSTALLED_APPS = [
    "unfold",
    "unfold.contrib.filters",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "servestatic.runserver_nostatic",
    "cert_hub",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "servestatic.middleware.ServeStaticMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "cert_hub.urls"

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

WSGI_APPLICATION = "cert_hub.wsgi.application"


# Database
# https://docs.djangoproject.com/en/5.2/ref/settings/#databases

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": DATA_DIR / CERT_HUB_DB_NAME,
        "OPTIONS": {
            "transaction_mode": "IMMEDIATE",  # Serializes writers, uniqueness races resolve in the engine
            "init_command": ("PRAGMA journal_mode=WAL;PRAGMA synchronous=FULL;PRAGMA busy_timeout=5000;"),
        },
        "TEST": {
            "NAME": DATA_DIR / "test_db.sqlite3",  # Use persisted file, not in-memory (threads share it)
            "SERIALIZE": True,
            "OPTIONS": {
                "transaction_mode": "IMMEDIATE",
                "init_command": ("PRAGMA journal_mode=WAL;PRAGMA synchronous=FULL;PRAGMA busy_timeout=5000;"),
            },
        },
    }
}


# Password validation
# https://docs.djangoproject.com/en/5.2/ref/settings/#auth-password-validators

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]


# Internationalization
# https://docs.djangoproject.com/en/5.2/topics/i18n/

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# Override default datetime formats for microsecond precision in django admin
en_formats.DATETIME_FORMAT = "Y-m-d\\TH:i:s.u\\Z"
en_formats.SHORT_DATETIME_FORMAT = en_formats.DATETIME_FORMAT

# Static files (CSS, JavaScript, Images)
# https://docs.djangoproject.com/en/5.2/howto/static-files/

STATIC_URL = "static/"

# ServeStatic configuration
# Enable finders in production to serve admin assets without collectstatic
SERVESTATIC_USE_FINDERS = True
SERVESTATIC_USE_MANIFEST = False

# Default primary key field type
# https://docs.djangoproject.com/en/5.2/ref/settings/#default-auto-field

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Logging is configured by cert_hub.telemetry from the app config
LOGGING_CONFIG = None

# Django Unfold Configuration
UNFOLD = {
    "SITE_TITLE": "CERT-HUB",
    "SITE_HEADER": "CERT-HUB",
    "SITE_SUBHEADER": "Credential Anchoring & Verification",
    "SITE_SYMBOL": "verified",
}
