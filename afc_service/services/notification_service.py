# afc_service/services/notification_service.py

from __future__ import annotations

import json
import logging
import threading
from datetime import timedelta
from typing import Any, Dict, List, Optional

from firebase_admin import messaging
from flask import Flask, current_app

from ..extensions import firebase_ready, get_kv, get_push, get_store
from ..kv import KeyValueStore
from ..store.base import Query, Store
from ..utils.timez import iso_now, now_utc, parse_timestamp

logger = logging.getLogger(__name__)

INAPP_LIMIT = 50

NOTIFICATION_TEMPLATES: Dict[str, Dict[str, str]] = {
    "NEW_BOOKING": {
        "title": "🔔 Booking Baru Masuk",
        "body": "{customer_name} - {jenis_layanan} pada {tanggal_kunjungan} ({alamat})",
        "type": "info",
    },
    "WORK_REPORT_SUBMITTED": {
        "title": "Laporan Kerja Dikirim",
        "body": "Laporan kerja untuk {customer} telah dikirim oleh {teknisi}",
        "type": "success",
    },
    "BOOKING_RESCHEDULED": {
        "title": "Jadwal Diubah",
        "body": "Jadwal {nama} diubah ke {tanggal_kunjungan}",
        "type": "warning",
    },
}

# ---------- Helpers ----------

def _format_message(template: str, data: Dict[str, Any]) -> str:
    """Ganti placeholder {key} di template dengan data[key] tanpa meledak bila tidak ada."""
    if not template:
        return ""
    try:
        return template.format(**data)
    except (KeyError, IndexError, ValueError):
        logger.warning(f"Gagal memformat template: '{template[:50]}...' dengan data: {list(data.keys())}")
        return template


def sound_enabled(kv: KeyValueStore, username: str) -> bool:
    raw = kv.get(f"pref:{username}:sound")
    return raw is None or raw == "true"


def notifications_enabled(kv: KeyValueStore, username: str) -> bool:
    raw = kv.get(f"pref:{username}:enabled")
    return raw is None or raw == "true"


def set_preference(kv: KeyValueStore, username: str, name: str, value: bool) -> None:
    kv.set(f"pref:{username}:{name}", "true" if value else "false")


class FirebasePush:
    """Push desktop/mobile lewat topic FCM (data message agar andal di background)."""

    def __init__(self, topic: str | None):
        self.topic = topic

    def send(self, title: str, body: str, data: Dict[str, Any] | None = None) -> bool:
        if not self.topic or not firebase_ready():
            logger.debug("Firebase belum siap; push '%s' dilewati.", title)
            return False
        payload = {
            "title": title,
            "body": body,
            "meta": json.dumps(data or {}, default=str),
        }
        message = messaging.Message(
            topic=self.topic,
            data=payload,
            android=messaging.AndroidConfig(priority="high"),
            apns=messaging.APNSConfig(
                payload=messaging.APNSPayload(aps=messaging.Aps(content_available=True))
            ),
        )
        try:
            msg_id = messaging.send(message)
            logger.info("Push '%s' terkirim ke topic %s (%s)", title, self.topic, msg_id)
            return True
        except Exception as e:
            logger.warning(f"Gagal mengirim push ke topic {self.topic}: {e}")
            return False

    def subscribe(self, token: str) -> bool:
        if not self.topic or not firebase_ready():
            return False
        try:
            resp = messaging.subscribe_to_topic([token], self.topic)
            return resp.success_count > 0
        except Exception as e:
            logger.warning(f"Gagal subscribe token ke topic {self.topic}: {e}")
            return False


def _recipients(store: Store) -> List[str]:
    """Admin & manager aktif menerima feed in-app."""
    try:
        rows = store.select(
            Query("system_accounts").eq("active", True).in_("role", ["admin", "manager"])
        )
    except Exception:
        logger.warning("Gagal mengambil penerima notifikasi in-app", exc_info=True)
        return []
    return [r["username"] for r in rows if r.get("username")]


def push_inapp(kv: KeyValueStore, username: str, entry: Dict[str, Any]) -> None:
    key = f"inapp:{username}"
    feed = kv.get_json(key, []) or []
    feed.append(entry)
    kv.set_json(key, feed[-INAPP_LIMIT:])


def read_inapp(kv: KeyValueStore, username: str, clear: bool = False) -> List[Dict[str, Any]]:
    key = f"inapp:{username}"
    feed = kv.get_json(key, []) or []
    if clear:
        kv.delete(key)
    return list(reversed(feed))


def dispatch(event: str, data: Dict[str, Any], play_sound: bool, store: Store | None = None,
             kv: KeyValueStore | None = None) -> Dict[str, Any]:
    """Kirim satu kejadian ke push desktop dan feed in-app setiap penerima."""
    store = store or get_store()
    kv = kv or get_kv()
    tpl = NOTIFICATION_TEMPLATES[event]
    title = _format_message(tpl["title"], data)
    body = _format_message(tpl["body"], data)

    push = get_push()
    pushed = push.send(title, body, {"event": event, **data}) if push is not None else False

    delivered = 0
    for username in _recipients(store):
        if not notifications_enabled(kv, username):
            continue
        push_inapp(kv, username, {
            "event": event,
            "title": title,
            "body": body,
            "type": tpl["type"],
            "play_sound": bool(play_sound and sound_enabled(kv, username)),
            "created_at": iso_now(),
        })
        delivered += 1
    return {"title": title, "pushed": pushed, "delivered": delivered}


# ---------- Polling baris baru ----------

def _scan(store: Store, kv: KeyValueStore, table_name: str, dedup_key: str, window: timedelta,
          limit: int) -> List[dict]:
    seen = kv.get_json(dedup_key, []) or []
    rows = store.select(Query(table_name).order("created_at", desc=True).limit(50))
    fresh, unseen_ids = [], []
    cutoff = now_utc() - window
    for row in rows:
        rid = str(row.get("id"))
        if rid in seen:
            continue
        created = parse_timestamp(row.get("created_at"))
        if created is not None and created >= cutoff:
            fresh.append(row)
        # Tandai sudah dilihat walaupun terlalu lama untuk dinotifikasi
        unseen_ids.append(rid)
    if unseen_ids:
        kv.push_capped(dedup_key, unseen_ids, limit)
    return fresh


def poll_once(store: Store | None = None, kv: KeyValueStore | None = None) -> Dict[str, int]:
    store = store or get_store()
    kv = kv or get_kv()
    cfg = current_app.config
    window = timedelta(minutes=cfg.get("NOTIFY_WINDOW_MINUTES", 5))
    limit = cfg.get("NOTIFY_DEDUP_LIMIT", 100)

    new_bookings = _scan(store, kv, "bookings", "notified:bookings", window, limit)
    for b in new_bookings:
        dispatch("NEW_BOOKING", {
            "customer_name": b.get("nama") or "-",
            "tanggal_kunjungan": b.get("tanggal_kunjungan") or "-",
            "jenis_layanan": b.get("jenis_layanan") or "-",
            "alamat": b.get("alamat") or "-",
        }, play_sound=True, store=store, kv=kv)

    new_reports = _scan(store, kv, "work_reports", "notified:reports", window, limit)
    for r in new_reports:
        dispatch("WORK_REPORT_SUBMITTED", {
            "customer": r.get("nama_pelanggan") or r.get("booking_id") or "Unknown Customer",
            "teknisi": r.get("teknisi") or "Unknown Technician",
        }, play_sound=False, store=store, kv=kv)

    if new_bookings or new_reports:
        logger.info("Notifikasi baru: %d booking, %d laporan", len(new_bookings), len(new_reports))
    return {"bookings": len(new_bookings), "reports": len(new_reports)}


class NotificationMonitor:
    """
    Loop polling milik proses yang memulainya. start() pada monitor yang sudah
    berjalan tidak melakukan apa-apa; stop() membatalkan dan menunggu thread.
    """

    def __init__(self, app: Flask, interval: float | None = None):
        self.app = app
        self.interval = interval or app.config.get("NOTIFY_POLL_INTERVAL", 30)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        if self.running:
            logger.info("Booking monitor already running")
            return False
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="notification-monitor", daemon=True)
        self._thread.start()
        return True

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None

    def _loop(self) -> None:
        while not self._stop.is_set():
            with self.app.app_context():
                try:
                    poll_once()
                except Exception:
                    logger.exception("Error in notification poll")
            if self._stop.wait(self.interval):
                break
