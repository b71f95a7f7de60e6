# afc_service/config.py

import os
import json
from dotenv import load_dotenv

# Panggil load_dotenv() di awal untuk memuat file .env
load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    return [x.strip() for x in raw.split(",") if x.strip()]


def _env_json(name: str, default):
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return json.loads(raw)
    except ValueError:
        return default


class BaseConfig:
    # Nilai default atau placeholder
    TIMEZONE = "Asia/Jakarta"
    JSON_SORT_KEYS = False
    MAX_CONTENT_LENGTH = 32 * 1024 * 1024

    # Penyimpanan data: "supabase" (hosted) atau "sql" (SQLAlchemy)
    STORE_BACKEND = "supabase"
    DATABASE_URL = ""
    SUPABASE_URL = ""
    SUPABASE_SERVICE_ROLE_KEY = ""
    SUPABASE_BUCKET = "work-report-photos"

    # Penyimpanan key/value (sesi, daftar dedup, antrean offline)
    KV_BACKEND = "redis"
    REDIS_URL = "redis://localhost:6379/1"

    # Konfigurasi Celery
    CELERY_BROKER_URL = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND = "redis://localhost:6379/0"

    # Sesi
    SESSION_TTL_SECONDS = 6 * 60 * 60
    SESSION_CHECK_INTERVAL = 60
    FALLBACK_ACCOUNTS: list = []

    # Notifikasi
    NOTIFY_POLL_INTERVAL = 30
    NOTIFY_WINDOW_MINUTES = 5
    NOTIFY_DEDUP_LIMIT = 100
    NOTIFY_TOPIC = "afc-admin"
    NOTIFY_MONITOR = False
    REMINDER_HOUR = 8

    # Batas waktu unggah & simpan (detik)
    UPLOAD_TIMEOUT_DESKTOP = 20
    UPLOAD_TIMEOUT_MOBILE = 30
    SAVE_TIMEOUT_DESKTOP = 30
    SAVE_TIMEOUT_MOBILE = 45

    # WhatsApp gateway
    WA_API_URL = ""
    WA_API_KEY = ""
    WA_SESSION_ID = "f1"
    WA_ADMIN_NUMBERS: list = []
    WA_TIMEOUT = 15
    BRAND_NAME = "FROST"

    SAGA_MAX_RETRIES = 3
    SAGA_RETRY_DELAY = 60

    # Placeholder untuk Firebase
    FIREBASE_PROJECT_ID = None
    FIREBASE_CLIENT_EMAIL = None
    FIREBASE_PRIVATE_KEY = None


class DevConfig(BaseConfig):
    DEBUG = True


class ProdConfig(BaseConfig):
    DEBUG = False


class TestConfig(BaseConfig):
    TESTING = True
    STORE_BACKEND = "sql"
    DATABASE_URL = "sqlite+pysqlite:///:memory:"
    KV_BACKEND = "memory"
    CELERY_BROKER_URL = "memory://"
    CELERY_RESULT_BACKEND = "cache+memory://"
    WA_ADMIN_NUMBERS = ["6281200000001"]


def load_config(app, overrides: dict | None = None):
    """Memuat konfigurasi berdasarkan lingkungan dan variabel .env."""
    env = os.getenv("FLASK_ENV", "development").lower()
    if overrides and overrides.get("TESTING"):
        app.config.from_object(TestConfig)
        app.config.update(overrides)
        return
    if env == "production":
        app.config.from_object(ProdConfig)
    else:
        app.config.from_object(DevConfig)

    # Muat variabel dari .env secara eksplisit ke dalam app.config.
    # Ini menimpa nilai default di BaseConfig jika ada di .env.
    app.config.update(
        TIMEZONE=os.getenv("TIMEZONE", BaseConfig.TIMEZONE),
        STORE_BACKEND=os.getenv("STORE_BACKEND", BaseConfig.STORE_BACKEND).lower(),
        DATABASE_URL=os.getenv("DATABASE_URL", ""),
        SUPABASE_URL=os.getenv("SUPABASE_URL", ""),
        SUPABASE_SERVICE_ROLE_KEY=os.getenv("SUPABASE_SERVICE_ROLE_KEY", ""),
        SUPABASE_BUCKET=os.getenv("SUPABASE_BUCKET", BaseConfig.SUPABASE_BUCKET),
        KV_BACKEND=os.getenv("KV_BACKEND", BaseConfig.KV_BACKEND).lower(),
        REDIS_URL=os.getenv("REDIS_URL", BaseConfig.REDIS_URL),

        # Variabel Celery
        CELERY_BROKER_URL=os.getenv("CELERY_BROKER_URL", BaseConfig.CELERY_BROKER_URL),
        CELERY_RESULT_BACKEND=os.getenv("CELERY_RESULT_BACKEND", BaseConfig.CELERY_RESULT_BACKEND),

        SESSION_TTL_SECONDS=_env_int("SESSION_TTL_SECONDS", BaseConfig.SESSION_TTL_SECONDS),
        SESSION_CHECK_INTERVAL=_env_int("SESSION_CHECK_INTERVAL", BaseConfig.SESSION_CHECK_INTERVAL),
        FALLBACK_ACCOUNTS=_env_json("FALLBACK_ACCOUNTS", []),

        NOTIFY_POLL_INTERVAL=_env_int("NOTIFY_POLL_INTERVAL", BaseConfig.NOTIFY_POLL_INTERVAL),
        NOTIFY_WINDOW_MINUTES=_env_int("NOTIFY_WINDOW_MINUTES", BaseConfig.NOTIFY_WINDOW_MINUTES),
        NOTIFY_DEDUP_LIMIT=_env_int("NOTIFY_DEDUP_LIMIT", BaseConfig.NOTIFY_DEDUP_LIMIT),
        NOTIFY_TOPIC=os.getenv("NOTIFY_TOPIC", BaseConfig.NOTIFY_TOPIC),
        NOTIFY_MONITOR=os.getenv("NOTIFY_MONITOR", "0").lower() in ("1", "true", "yes"),
        REMINDER_HOUR=_env_int("REMINDER_HOUR", BaseConfig.REMINDER_HOUR),

        UPLOAD_TIMEOUT_DESKTOP=_env_int("UPLOAD_TIMEOUT_DESKTOP", BaseConfig.UPLOAD_TIMEOUT_DESKTOP),
        UPLOAD_TIMEOUT_MOBILE=_env_int("UPLOAD_TIMEOUT_MOBILE", BaseConfig.UPLOAD_TIMEOUT_MOBILE),
        SAVE_TIMEOUT_DESKTOP=_env_int("SAVE_TIMEOUT_DESKTOP", BaseConfig.SAVE_TIMEOUT_DESKTOP),
        SAVE_TIMEOUT_MOBILE=_env_int("SAVE_TIMEOUT_MOBILE", BaseConfig.SAVE_TIMEOUT_MOBILE),

        WA_API_URL=os.getenv("WA_API_URL", ""),
        WA_API_KEY=os.getenv("WA_API_KEY", ""),
        WA_SESSION_ID=os.getenv("WA_SESSION_ID", BaseConfig.WA_SESSION_ID),
        WA_ADMIN_NUMBERS=_env_list("WA_ADMIN_NUMBERS"),
        BRAND_NAME=os.getenv("BRAND_NAME", BaseConfig.BRAND_NAME),

        SAGA_MAX_RETRIES=_env_int("SAGA_MAX_RETRIES", BaseConfig.SAGA_MAX_RETRIES),
        SAGA_RETRY_DELAY=_env_int("SAGA_RETRY_DELAY", BaseConfig.SAGA_RETRY_DELAY),

        # Variabel Firebase
        FIREBASE_PROJECT_ID=os.getenv("FIREBASE_PROJECT_ID"),
        FIREBASE_CLIENT_EMAIL=os.getenv("FIREBASE_CLIENT_EMAIL"),
        FIREBASE_PRIVATE_KEY=os.getenv("FIREBASE_PRIVATE_KEY"),
    )
    if overrides:
        app.config.update(overrides)
