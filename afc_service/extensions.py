# afc_service/extensions.py

from __future__ import annotations

import os
import logging
from typing import Any, Optional

from flask import Flask, current_app
from flask_cors import CORS
from celery import Celery, Task

from supabase import create_client, Client
import firebase_admin
from firebase_admin import credentials

from . import db
from .kv import KeyValueStore, MemoryKeyValue, RedisKeyValue
from .store.base import Store

# --- Windows + multiprocessing quirk ---
if os.name == "nt":
    os.environ.setdefault("FORKED_BY_MULTIPROCESSING", "1")

# --- Globals ---
celery: Celery = Celery(__name__)
_supabase: Optional[Client] = None
_firebase_app: Optional[firebase_admin.App] = None
_store: Optional[Store] = None
_kv: Optional[KeyValueStore] = None
_photo_storage: Any = None
_messenger: Any = None
_push: Any = None
log = logging.getLogger(__name__)

# -------------------------
# Celery <-> Flask binding
# -------------------------
class FlaskContextTask(Task):
    """
    Memastikan setiap task berjalan di dalam Flask app_context.
    Gunakan atribut 'flask_app' agar tidak bentrok dengan Task.app (Celery app).
    """
    flask_app: Optional[Flask] = None

    def __call__(self, *args, **kwargs):
        app_obj = getattr(self, "flask_app", None)
        if app_obj is None:
            try:
                app_obj = current_app._get_current_object()
            except RuntimeError:
                app_obj = None

        if app_obj is not None:
            with app_obj.app_context():
                return self.run(*args, **kwargs)
        return self.run(*args, **kwargs)


def init_celery(app: Flask) -> None:
    """Konfigurasi Celery, jadwal beat, dan Task base yang membawa app_context Flask."""
    broker = app.config.get("CELERY_BROKER_URL")
    backend = app.config.get("CELERY_RESULT_BACKEND")

    celery.conf.update(
        broker_url=broker,
        result_backend=backend,
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone=app.config.get("TIMEZONE", "UTC"),
        enable_utc=False,
        task_always_eager=bool(app.config.get("TESTING")),
        beat_schedule={
            "notifications-poll": {
                "task": "notifications.poll_new_rows",
                "schedule": float(app.config.get("NOTIFY_POLL_INTERVAL", 30)),
            },
            "sessions-sweep": {
                "task": "sessions.sweep_expired",
                "schedule": float(app.config.get("SESSION_CHECK_INTERVAL", 60)),
            },
            "bookings-visit-reminder": {
                "task": "bookings.send_visit_reminders",
                "schedule": 3600.0,
            },
        },
    )

    celery.Task = FlaskContextTask
    FlaskContextTask.flask_app = app


# -------------------------
# Supabase
# -------------------------
def init_supabase(app: Flask) -> None:
    global _supabase
    if _supabase is not None:
        return

    url = app.config.get("SUPABASE_URL")
    key = app.config.get("SUPABASE_SERVICE_ROLE_KEY")

    if not url or not key:
        app.logger.warning("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY tidak di-set.")
        return

    try:
        _supabase = create_client(url, key)
        app.logger.info("Supabase client initialized.")
    except Exception as e:
        _supabase = None
        app.logger.error(f"Gagal inisialisasi Supabase: {e}", exc_info=True)


def get_supabase() -> Optional[Client]:
    return _supabase


# -------------------------
# Store (data) & key/value
# -------------------------
def init_store(app: Flask) -> None:
    """Pilih backend penyimpanan data: Supabase hosted atau SQLAlchemy."""
    global _store
    backend = app.config.get("STORE_BACKEND", "supabase")

    if backend == "sql":
        from .store.sql_store import SqlStore

        url = app.config.get("DATABASE_URL")
        if not url:
            app.logger.warning("STORE_BACKEND=sql tetapi DATABASE_URL kosong.")
            _store = None
            return
        db.init_engine(url)
        db.create_all()
        _store = SqlStore()
        app.logger.info("SQL store initialized.")
        return

    init_supabase(app)
    if _supabase is None:
        _store = None
        return
    from .store.supabase_store import SupabaseStore

    _store = SupabaseStore(_supabase)


def get_store() -> Store:
    if _store is None:
        raise RuntimeError("Store belum diinisialisasi. Periksa STORE_BACKEND dan kredensialnya.")
    return _store


def init_kv(app: Flask) -> None:
    global _kv
    if app.config.get("KV_BACKEND", "redis") == "memory":
        _kv = MemoryKeyValue()
        return
    try:
        _kv = RedisKeyValue(app.config["REDIS_URL"])
        app.logger.info("Redis key/value initialized.")
    except Exception as e:
        app.logger.error(f"Gagal inisialisasi Redis, memakai memori: {e}", exc_info=True)
        _kv = MemoryKeyValue()


def get_kv() -> KeyValueStore:
    if _kv is None:
        raise RuntimeError("Key/value store belum diinisialisasi.")
    return _kv


# -------------------------
# Firebase Admin
# -------------------------
def init_firebase(app: Flask) -> None:
    """Inisialisasi Firebase Admin dari variabel lingkungan."""
    global _firebase_app
    if _firebase_app is not None or firebase_admin._apps:
        return

    project_id = app.config.get("FIREBASE_PROJECT_ID")
    client_email = app.config.get("FIREBASE_CLIENT_EMAIL")
    private_key = app.config.get("FIREBASE_PRIVATE_KEY")

    log.info("Firebase Init Check: project_id is %s", "present" if project_id else "missing")

    if not all([project_id, client_email, private_key]):
        app.logger.warning("Kredensial Firebase tidak lengkap; push notifikasi dinonaktifkan.")
        return

    try:
        cred = credentials.Certificate({
            "type": "service_account",
            "project_id": project_id,
            "private_key": private_key.replace("\\n", "\n"),
            "client_email": client_email,
            "token_uri": "https://oauth2.googleapis.com/token",
        })
        _firebase_app = firebase_admin.initialize_app(cred)
        app.logger.info("Firebase Admin SDK initialized.")
    except Exception as e:
        app.logger.error(f"Error initializing Firebase Admin SDK: {e}", exc_info=True)


def firebase_ready() -> bool:
    return bool(_firebase_app or firebase_admin._apps)


# -------------------------
# Kolaborator keluar (foto, WhatsApp, push)
# -------------------------
def init_collaborators(app: Flask) -> None:
    global _photo_storage, _messenger, _push
    from .services.messaging import WhatsAppGateway
    from .services.notification_service import FirebasePush
    from .services.storage.supabase_storage import SupabasePhotoStorage

    _photo_storage = SupabasePhotoStorage(app.config.get("SUPABASE_BUCKET"))
    _messenger = WhatsAppGateway(
        url=app.config.get("WA_API_URL"),
        api_key=app.config.get("WA_API_KEY"),
        session_id=app.config.get("WA_SESSION_ID"),
        timeout=app.config.get("WA_TIMEOUT", 15),
    )
    _push = FirebasePush(app.config.get("NOTIFY_TOPIC"))


def set_collaborators(photo_storage=None, messenger=None, push=None) -> None:
    """Ganti kolaborator keluar (dipakai pengujian)."""
    global _photo_storage, _messenger, _push
    if photo_storage is not None:
        _photo_storage = photo_storage
    if messenger is not None:
        _messenger = messenger
    if push is not None:
        _push = push


def get_photo_storage():
    return _photo_storage


def get_messenger():
    return _messenger


def get_push():
    return _push


# -------------------------
# Flask app wiring
# -------------------------
def init_app(app: Flask) -> None:
    """Dipanggil dari create_app()."""
    CORS(app, resources={r"/api/*": {"origins": "*"}})
    init_celery(app)
    init_store(app)
    init_kv(app)
    init_collaborators(app)
    try:
        init_firebase(app)
    except Exception:
        app.logger.exception("Firebase init failed during app init.")
