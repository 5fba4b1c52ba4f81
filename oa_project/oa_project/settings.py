import os
import sys
from pathlib import Path

import dj_database_url
from dotenv import load_dotenv

from .logging_config import get_logging_config

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

SECRET_KEY = os.environ.get("SECRET_KEY", os.environ.get("DJANGO_SECRET_KEY", "changeme"))
DEBUG = os.getenv("DEBUG", os.getenv("DJANGO_DEBUG", "True")) == "True"
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost").split(",")

TESTING = (
    "pytest" in sys.modules
    or "pytest" in sys.argv
    or "test" in sys.argv
)

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "books_core",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    # attaches request.company and request.book
    "books_core.middleware.CurrentCompanyMiddleware",
]

ROOT_URLCONF = "oa_project.urls"

# =============================================================================
# Database Configuration
# =============================================================================
DATABASES = {
    "default": dj_database_url.config(
        env="DATABASE_URL",
        default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
        conn_max_age=600,
    )
}

# SQLite: take the write lock when the transaction opens, so two allocations
# queue on the lock instead of both failing on lock upgrade
if DATABASES["default"]["ENGINE"] == "django.db.backends.sqlite3":
    DATABASES["default"].setdefault("OPTIONS", {})["transaction_mode"] = "IMMEDIATE"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("TIME_ZONE", "UTC")
USE_I18N = True
USE_TZ = True

# =============================================================================
# Celery Configuration
# =============================================================================
REDIS_URL = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")

CELERY_BROKER_URL = REDIS_URL
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", REDIS_URL)
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TIME_LIMIT = 30 * 60
# run tasks inline under the test runner
CELERY_TASK_ALWAYS_EAGER = TESTING

# =============================================================================
# Bookkeeping
# =============================================================================
# Chart created for every new tenant: (code, name, type)
BOOKKEEPING_DEFAULT_CHART = [
    ("1000", "Cash at Bank", "asset"),
    ("1200", "Accounts Receivable", "asset"),
    ("1500", "VAT Receivable", "asset"),
    ("2000", "Accounts Payable", "liability"),
    ("2100", "VAT Payable", "liability"),
    ("3000", "Owner's Equity", "equity"),
    ("4000", "Sales Revenue", "income"),
    ("5000", "Purchases", "expense"),
]

# Posting role -> account code
BOOKKEEPING_ACCOUNT_ROLES = {
    "cash": "1000",
    "receivable": "1200",
    "input_tax": "1500",
    "payable": "2000",
    "output_tax": "2100",
    "sales": "4000",
    "purchases": "5000",
}

BOOKKEEPING_DEFAULT_INTEREST_RATE = os.getenv("BOOKKEEPING_DEFAULT_INTEREST_RATE", "0.0005")
BOOKKEEPING_MAX_DAILY_INTEREST_RATE = "0.01"
BOOKKEEPING_DEFAULT_PAYMENT_TERMS_DAYS = 14
# fail fast with ConflictError instead of waiting on a locked row
BOOKKEEPING_LOCK_NOWAIT = os.getenv("BOOKKEEPING_LOCK_NOWAIT", "True") == "True"

# =============================================================================
# Structured Logging Configuration
# =============================================================================
LOGGING = get_logging_config(DEBUG)
