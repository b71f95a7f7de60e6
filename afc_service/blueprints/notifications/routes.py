# afc_service/blueprints/notifications/routes.py

from __future__ import annotations

from flask import Blueprint, request

from ...extensions import get_kv, get_push
from ...services import notification_service
from ...utils.auth_utils import get_current_user, role_required, token_required
from ...utils.responses import error, ok

# Penting: JANGAN menaruh prefix "/api/notifications" di sini.
# Prefix dipasang saat register_blueprint() di create_app():
# app.register_blueprint(notif_bp, url_prefix="/api/notifications")
notif_bp = Blueprint("notifications", __name__)

_PREF_FLAGS = ("sound", "enabled")


@notif_bp.post("/device/register")
@token_required
def register_device():
    """
    Mendaftarkan token FCM perangkat ke topic notifikasi admin.
    Endpoint akhir: POST /api/notifications/device/register
    Body (JSON): { fcm_token }
    """
    payload = request.get_json(silent=True)
    if not payload:
        return error("JSON body tidak valid", 400)
    fcm_token = (payload.get("fcm_token") or "").strip()
    if not fcm_token:
        return error("Field 'fcm_token' wajib ada", 400)

    push = get_push()
    subscribed = bool(push and push.subscribe(fcm_token))
    return ok(message="Perangkat berhasil didaftarkan" if subscribed else "Push belum aktif", subscribed=subscribed)


@notif_bp.get("/")
@token_required
def get_notifications():
    """
    Feed notifikasi in-app untuk pengguna yang login (terbaru di atas).
    Endpoint akhir: GET /api/notifications?clear=1
    """
    user = get_current_user()
    items = notification_service.read_inapp(get_kv(), user["username"], clear=request.args.get("clear") == "1")
    return ok(items=items)


@notif_bp.get("/preferences")
@token_required
def get_preferences():
    kv, username = get_kv(), get_current_user()["username"]
    return ok(
        sound=notification_service.sound_enabled(kv, username),
        enabled=notification_service.notifications_enabled(kv, username),
    )


@notif_bp.put("/preferences")
@token_required
def update_preferences():
    """Body (JSON): { sound?: bool, enabled?: bool }"""
    payload = request.get_json(silent=True) or {}
    changes = {k: bool(payload[k]) for k in _PREF_FLAGS if k in payload}
    if not changes:
        return error("Tidak ada preferensi yang diubah", 400)
    kv, username = get_kv(), get_current_user()["username"]
    for name, value in changes.items():
        notification_service.set_preference(kv, username, name, value)
    return ok(message="Preferensi disimpan", **changes)


@notif_bp.post("/poll")
@role_required("admin", "manager")
def poll_now():
    return ok(**notification_service.poll_once())
