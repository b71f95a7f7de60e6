# afc_service/services/booking_service.py

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from flask import current_app

from ..domain.status import (
    HIDDEN_FROM_SCHEDULE,
    WAITING_STATUSES,
    BookingStatus,
    ReportStatus,
    ensure_booking_transition,
    ensure_report_transition,
    parse_booking_status,
)
from ..errors import Forbidden, NotFound, ValidationError
from ..extensions import get_kv, get_messenger, get_store
from ..store.base import Query
from ..utils.timez import iso_now, now_local, parse_visit_date, today_local_date, tomorrow_local_date
from .messaging import chat_link, confirmation_message, mask_phone, reminder_message, reschedule_message

logger = logging.getLogger(__name__)

MANAGERS = ("admin", "manager")


# ---------- helpers ----------

def _require_manager(user: dict) -> None:
    if (user or {}).get("role") not in MANAGERS:
        raise Forbidden("Hanya admin/manager yang boleh melakukan aksi ini")


def present(booking: dict, user: dict | None) -> dict:
    """Salinan booking untuk dikirim ke klien; nomor HP disamarkan untuk teknisi."""
    out = dict(booking)
    if (user or {}).get("role") == "teknisi":
        out["no_hp"] = mask_phone(out.get("no_hp"))
    return out


def _reports_by_booking(codes: List[str]) -> Dict[str, List[dict]]:
    grouped: Dict[str, List[dict]] = {}
    if not codes:
        return grouped
    rows = get_store().select(
        Query("work_reports").in_("booking_id", codes).order("created_at")
    )
    for r in rows:
        grouped.setdefault(r["booking_id"], []).append(r)
    return grouped


def _scope_to_user(q: Query, user: dict | None) -> Optional[Query]:
    """Teknisi hanya melihat booking dengan kode teknisinya sendiri."""
    if (user or {}).get("role") != "teknisi":
        return q
    code = user.get("technician_code")
    if not code:
        return None
    return q.eq("kode_teknisi", code)


def get_booking(id_or_code: str) -> dict:
    """Cari lewat kode booking, lalu lewat id baris."""
    if not (id_or_code or "").strip():
        raise NotFound("Kode booking kosong")
    store = get_store()
    row = store.first(Query("bookings").eq("booking_id", id_or_code))
    if row is None:
        row = store.first(Query("bookings").eq("id", id_or_code))
    if row is None:
        raise NotFound(f"Booking {id_or_code} tidak ditemukan")
    return row


def _transition(booking: dict, target: BookingStatus, **values) -> dict:
    new_status = ensure_booking_transition(booking.get("status"), target)
    values["status"] = new_status.value
    rows = get_store().update(Query("bookings").eq("id", booking["id"]), values)
    logger.info("Booking %s: %s -> %s", booking.get("booking_id") or booking["id"],
                booking.get("status"), new_status.value)
    return rows[0] if rows else {**booking, **values}


# ---------- jadwal ----------

def list_active_schedule(user: dict | None) -> List[dict]:
    q = Query("bookings").not_in("status", [s.value for s in HIDDEN_FROM_SCHEDULE])
    q = _scope_to_user(q, user)
    if q is None:
        return []
    bookings = get_store().select(q.order("tanggal_kunjungan").order("waktu_kunjungan"))

    reports = _reports_by_booking([b["booking_id"] for b in bookings if b.get("booking_id")])
    out = []
    for b in bookings:
        related = reports.get(b.get("booking_id"), [])
        # Booking yang laporannya sudah disetujui tidak tampil lagi
        if any(r.get("status") == ReportStatus.approved.value for r in related):
            continue
        item = present(b, user)
        item["work_reports"] = related
        out.append(item)
    return out


def calendar(month: str, user: dict | None) -> Dict[str, List[dict]]:
    """Booking per tanggal kunjungan untuk bulan 'YYYY-MM'."""
    try:
        year, mon = (int(x) for x in month.split("-"))
    except (AttributeError, ValueError):
        raise ValidationError("Format bulan harus YYYY-MM")

    q = _scope_to_user(Query("bookings").neq("status", BookingStatus.deleted.value), user)
    if q is None:
        return {}
    days: Dict[str, List[dict]] = {}
    for b in get_store().select(q.order("waktu_kunjungan")):
        d = parse_visit_date(b.get("tanggal_kunjungan"))
        if d is None or d.year != year or d.month != mon:
            continue
        days.setdefault(d.isoformat(), []).append(present(b, user))
    return dict(sorted(days.items()))


def order_detail(user: dict | None, status: str | None = None, search: str | None = None,
                 page: int = 1, per_page: int = 20) -> Dict[str, Any]:
    q = Query("bookings")
    if status:
        q.eq("status", parse_booking_status(status).value)
    else:
        q.neq("status", BookingStatus.deleted.value)
    if search:
        q.ilike("nama", f"%{search.strip()}%")
    q = _scope_to_user(q, user)
    if q is None:
        return {"items": [], "total": 0, "page": page, "per_page": per_page}

    page = max(1, int(page))
    per_page = max(1, min(100, int(per_page)))
    store = get_store()
    total = store.count(q)
    rows = store.select(q.order("created_at", desc=True).offset((page - 1) * per_page).limit(per_page))
    reports = _reports_by_booking([b["booking_id"] for b in rows if b.get("booking_id")])

    items = []
    for b in rows:
        item = present(b, user)
        item["work_reports"] = reports.get(b.get("booking_id"), [])
        items.append(item)
    return {"items": items, "total": total, "page": page, "per_page": per_page}


# ---------- transisi ----------

def confirm(id_or_code: str, user: dict) -> Dict[str, Any]:
    _require_manager(user)
    booking = _transition(get_booking(id_or_code), BookingStatus.confirmed)
    brand = current_app.config.get("BRAND_NAME", "AFC Service")
    link = chat_link(booking.get("no_hp") or "", confirmation_message(booking, brand))
    return {"booking": booking, "chat_link": link}


def reschedule(id_or_code: str, new_date: str, new_time: str | None, reason: str | None,
               user: dict | None = None) -> Dict[str, Any]:
    if parse_visit_date(new_date) is None:
        raise ValidationError("Tanggal kunjungan baru tidak valid")
    booking = get_booking(id_or_code)
    # Booking yang sudah dikonfirmasi hanya boleh dijadwalkan ulang admin/manager
    if user is not None and parse_booking_status(booking.get("status")) == BookingStatus.confirmed:
        _require_manager(user)
    values = {"tanggal_kunjungan": new_date, "catatan_reschedule": (reason or "").strip() or None}
    if new_time:
        values["waktu_kunjungan"] = new_time
    updated = _transition(booking, BookingStatus.rescheduled, **values)

    sent = False
    messenger = get_messenger()
    if messenger is not None and updated.get("no_hp"):
        brand = current_app.config.get("BRAND_NAME", "AFC Service")
        sent = messenger.send(updated["no_hp"], reschedule_message(updated, new_date, reason, brand))
    return {"booking": updated, "message_sent": sent}


def set_waiting(id_or_code: str, status: str) -> dict:
    target = parse_booking_status(status)
    if target not in WAITING_STATUSES:
        raise ValidationError("Status tunggu harus menunggu_konfirmasi atau menunggu_sparepart")
    return _transition(get_booking(id_or_code), target)


def complete(id_or_code: str) -> Dict[str, Any]:
    """Tandai selesai dikerjakan dan kembalikan konteks form laporan kerja."""
    booking = _transition(get_booking(id_or_code), BookingStatus.completed,
                          tanggal_selesai=today_local_date().isoformat())
    return {
        "booking": booking,
        "form": {
            "booking_id": booking.get("booking_id"),
            "nama_pelanggan": booking.get("nama"),
            "no_wa_pelanggan": booking.get("no_hp"),
            "alamat_pelanggan": booking.get("alamat"),
            "jenis_layanan": booking.get("jenis_layanan"),
            "jumlah_unit": booking.get("jumlah_unit") or 1,
            "merk": booking.get("merk"),
            "teknisi": booking.get("kode_teknisi") or booking.get("teknisi"),
            "kode_referral": booking.get("kode_referral"),
        },
    }


def soft_delete(id_or_code: str, user: dict) -> dict:
    _require_manager(user)
    return _transition(get_booking(id_or_code), BookingStatus.deleted)


def assign_technician(id_or_code: str, code: str) -> dict:
    code = (code or "").strip()
    tech = get_store().first(Query("technician_codes").eq("code", code).eq("active", True))
    if tech is None:
        raise ValidationError(f"Kode teknisi {code!r} tidak aktif atau tidak ada")
    booking = get_booking(id_or_code)
    rows = get_store().update(
        Query("bookings").eq("id", booking["id"]),
        {"kode_teknisi": code, "teknisi": tech.get("name") or code},
    )
    return rows[0]


def update_notes(id_or_code: str, note: str | None) -> dict:
    booking = get_booking(id_or_code)
    return get_store().update(Query("bookings").eq("id", booking["id"]), {"catatan": note})[0]


def update_internal_note(id_or_code: str, note: str | None) -> dict:
    booking = get_booking(id_or_code)
    return get_store().update(Query("bookings").eq("id", booking["id"]), {"catatan_internal": note})[0]


def open_complaint(report_id: str, visit_date: str, technician: str, note: str) -> Dict[str, Any]:
    """Laporan yang sudah disetujui ditandai komplain dan booking dijadwalkan ulang."""
    note = (note or "").strip()
    if not note:
        raise ValidationError("Keterangan komplain wajib diisi")
    if parse_visit_date(visit_date) is None:
        raise ValidationError("Tanggal kunjungan komplain tidak valid")
    if not (technician or "").strip():
        raise ValidationError("Teknisi untuk komplain wajib dipilih")

    store = get_store()
    report = store.first(Query("work_reports").eq("id", report_id))
    if report is None:
        raise NotFound("Laporan kerja tidak ditemukan")
    ensure_report_transition(report.get("status"), ReportStatus.komplain)
    # Laporan manual tidak punya booking; hanya laporannya yang ditandai
    booking = get_booking(report["booking_id"]) if report.get("booking_id") else None
    if booking is not None:
        ensure_booking_transition(booking.get("status"), BookingStatus.komplain)

    updated_report = store.update(
        Query("work_reports").eq("id", report_id),
        {"status": ReportStatus.komplain.value, "keterangan_komplain": note},
    )[0]
    if booking is None:
        return {"report": updated_report, "booking": None}
    updated_booking = _transition(
        booking,
        BookingStatus.komplain,
        catatan=f"KOMPLAIN: {note}",
        tanggal_kunjungan=visit_date,
        kode_teknisi=technician.strip(),
    )
    return {"report": updated_report, "booking": updated_booking}


# ---------- pengingat H-1 ----------

def tomorrow_bookings() -> List[dict]:
    rows = get_store().select(
        Query("bookings").in_("status", [BookingStatus.confirmed.value, BookingStatus.pending.value])
    )
    tomorrow = tomorrow_local_date()
    return [b for b in rows if parse_visit_date(b.get("tanggal_kunjungan")) == tomorrow]


def send_visit_reminders(force: bool = False) -> Dict[str, Any]:
    """Kirim pengingat sekali sehari pada REMINDER_HOUR (waktu lokal)."""
    kv = get_kv()
    now = now_local()
    today = now.date().isoformat()
    if not force:
        if now.hour != current_app.config.get("REMINDER_HOUR", 8):
            return {"sent": 0, "skipped": "not_reminder_hour"}
        if kv.get("reminder:last_sent") == today:
            return {"sent": 0, "skipped": "already_sent_today"}

    brand = current_app.config.get("BRAND_NAME", "AFC Service")
    messenger = get_messenger()
    sent = 0
    for b in tomorrow_bookings():
        if messenger is not None and b.get("no_hp") and messenger.send(b["no_hp"], reminder_message(b, brand)):
            sent += 1
    kv.set("reminder:last_sent", today)
    logger.info("Pengingat H-1 terkirim: %d (%s)", sent, iso_now())
    return {"sent": sent}
