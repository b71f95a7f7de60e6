import time

from afc_service.services import notification_service
from afc_service.services.notification_service import NotificationMonitor, poll_once
from tests.conftest import minutes_ago


def _booking(**kw):
    row = {"booking_id": "AFC-100", "nama": "Pak Baru", "jenis_layanan": "Cuci AC",
           "tanggal_kunjungan": "2030-01-01", "alamat": "Jl. Baru", "status": "pending"}
    row.update(kw)
    return row


def test_poll_notifies_recent_rows_once(store, kv, push, seed):
    # Data seed dianggap sudah terlihat
    poll_once()
    push.sent.clear()

    store.insert("bookings", [_booking(), _booking(booking_id="AFC-101", created_at=minutes_ago(10))])
    store.insert("work_reports", {
        "booking_id": "AFC-100", "nama_pelanggan": "Pak Baru", "no_wa_pelanggan": "0811",
        "jenis_pekerjaan": "Cuci AC", "teknisi": "A1",
    })

    assert poll_once() == {"bookings": 1, "reports": 1}
    titles = [t for t, _, _ in push.sent]
    assert titles == ["🔔 Booking Baru Masuk", "Laporan Kerja Dikirim"]

    # Semua id yang belum terlihat ditandai, termasuk yang terlalu lama
    assert poll_once() == {"bookings": 0, "reports": 0}
    assert len(kv.get_json("notified:bookings")) == 5


def test_inapp_feed_respects_sound_preference(client, store, kv, seed, as_admin, as_manager):
    poll_once()
    kv.delete("inapp:admin", "inapp:manager")
    client.put("/api/notifications/preferences", headers=as_manager, json={"sound": False})
    store.insert("bookings", _booking())
    store.insert("work_reports", {
        "booking_id": "AFC-100", "nama_pelanggan": "Pak Baru", "no_wa_pelanggan": "0811",
        "jenis_pekerjaan": "Cuci AC", "teknisi": "A1",
    })
    poll_once()

    admin_feed = client.get("/api/notifications/", headers=as_admin).get_json()["items"]
    assert [(i["event"], i["play_sound"]) for i in admin_feed] == [
        ("WORK_REPORT_SUBMITTED", False),
        ("NEW_BOOKING", True),
    ]
    manager_feed = client.get("/api/notifications/?clear=1", headers=as_manager).get_json()["items"]
    assert [i["play_sound"] for i in manager_feed] == [False, False]
    assert client.get("/api/notifications/", headers=as_manager).get_json()["items"] == []


def test_dedup_list_is_capped(app, store, kv, seed):
    app.config["NOTIFY_DEDUP_LIMIT"] = 4
    store.insert("bookings", [_booking(booking_id=f"AFC-2{i}") for i in range(6)])
    poll_once()
    assert len(kv.get_json("notified:bookings")) == 4


def test_disabled_notifications_skip_feed(client, kv, store, seed, as_admin):
    poll_once()
    kv.delete("inapp:admin")
    client.put("/api/notifications/preferences", headers=as_admin, json={"enabled": False})
    store.insert("bookings", _booking())
    poll_once()
    assert notification_service.read_inapp(kv, "admin") == []
    prefs = client.get("/api/notifications/preferences", headers=as_admin).get_json()
    assert prefs["enabled"] is False and prefs["sound"] is True


def test_preferences_require_known_flag(client, as_admin):
    assert client.put("/api/notifications/preferences", headers=as_admin, json={"volume": 3}).status_code == 400


def test_monitor_start_is_idempotent_and_stoppable(app, seed, monkeypatch):
    calls = []
    monkeypatch.setattr(notification_service, "poll_once", lambda: calls.append(1))
    monitor = NotificationMonitor(app, interval=0.05)
    assert monitor.start() is True
    assert monitor.start() is False
    time.sleep(0.2)
    monitor.stop()
    assert not monitor.running
    assert calls
    count = len(calls)
    time.sleep(0.1)
    assert len(calls) == count
