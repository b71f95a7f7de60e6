# afc_service/services/work_report_service.py

from __future__ import annotations

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout, wait
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from flask import current_app

from ..domain.status import (
    BookingStatus,
    ReportStatus,
    can_transition_booking,
    ensure_report_transition,
    parse_booking_status,
    parse_report_status,
)
from ..errors import Forbidden, NotFound, StoreError, ValidationError
from ..extensions import get_kv, get_photo_storage, get_store
from ..store.base import Query
from ..utils.timez import iso_now, today_local_date
from .messaging import normalize_phone
from .storage.supabase_storage import decode_photo_urls, encode_photo_urls

logger = logging.getLogger(__name__)

OFFLINE_KEY = "offline:work_reports"
_MOBILE_UA = re.compile(r"android|iphone|ipad|ipod|mobile|blackberry|iemobile|opera mini", re.I)


@dataclass(frozen=True)
class PhotoUpload:
    data: bytes
    filename: str
    content_type: Optional[str] = None


def detect_device(user_agent: str | None) -> str:
    return "mobile" if _MOBILE_UA.search(user_agent or "") else "desktop"


def _timeouts(device: str) -> tuple[int, int]:
    cfg = current_app.config
    if device == "mobile":
        return cfg.get("UPLOAD_TIMEOUT_MOBILE", 30), cfg.get("SAVE_TIMEOUT_MOBILE", 45)
    return cfg.get("UPLOAD_TIMEOUT_DESKTOP", 20), cfg.get("SAVE_TIMEOUT_DESKTOP", 30)


def _upload_group(photos: List[PhotoUpload], timeout: float, label: str) -> List[str]:
    """Unggah satu kelompok foto dengan batas waktu; kegagalan tidak menghentikan submit."""
    storage = get_photo_storage()
    if not photos or storage is None:
        return []
    pool = ThreadPoolExecutor(max_workers=min(4, len(photos)))
    try:
        futures = [pool.submit(storage.upload, p.data, p.filename, p.content_type) for p in photos]
        done, not_done = wait(futures, timeout=timeout)
        if not_done:
            logger.warning("Upload foto %s timeout setelah %ss; lanjut tanpa %d foto", label, timeout, len(not_done))
        urls = []
        for f in futures:
            if f not in done:
                continue
            if f.exception() is not None:
                logger.warning("Upload foto %s gagal: %s", label, f.exception())
                continue
            urls.append(f.result())
        return urls
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


def _save_with_timeout(fn, timeout: float):
    """Jalankan operasi simpan di thread terpisah agar bisa dibatasi waktunya."""
    app = current_app._get_current_object()

    def _run():
        with app.app_context():
            return fn()

    pool = ThreadPoolExecutor(max_workers=1)
    try:
        return pool.submit(_run).result(timeout=timeout)
    finally:
        pool.shutdown(wait=False)


def _clean(value) -> Optional[str]:
    text = (str(value) if value is not None else "").strip()
    return text or None


def _work_types(form: dict) -> List[str]:
    raw = form.get("jenis_pekerjaan")
    if isinstance(raw, str):
        raw = raw.split(",")
    return [str(x).strip() for x in (raw or []) if x is not None and str(x).strip()]


def _validate(form: dict, units: List[dict], work_types: List[str]) -> None:
    if not _clean(form.get("nama_pelanggan")):
        raise ValidationError("Nama pelanggan wajib diisi")
    if not _clean(form.get("no_wa_pelanggan")):
        raise ValidationError("Nomor WhatsApp pelanggan wajib diisi")
    if not units:
        raise ValidationError("Minimal satu unit harus diisi")
    for idx, unit in enumerate(units):
        if not (_clean(unit.get("jenis_pekerjaan")) or work_types):
            raise ValidationError(f"Jenis pekerjaan unit {idx + 1} wajib diisi")


def _find_booking(code: Optional[str]) -> Optional[dict]:
    if not code:
        return None
    return get_store().first(Query("bookings").eq("booking_id", code))


def _prior_complaint_report(code: str) -> Optional[dict]:
    rows = get_store().select(Query("work_reports").eq("booking_id", code).order("created_at", desc=True))
    if not rows:
        return None
    flagged = [r for r in rows if r.get("status") == ReportStatus.komplain.value]
    return flagged[0] if flagged else rows[0]


def submit(form: dict, unit_photos: Dict[int, List[PhotoUpload]] | None, general_photos: List[PhotoUpload] | None,
           user: dict, user_agent: str | None = None) -> Dict[str, Any]:
    """
    Simpan laporan kerja dari form multi-unit.

    Foto diunggah per unit dan foto umum dibagikan ke semua unit. Booking yang
    berstatus komplain dengan laporan sebelumnya akan memperbarui laporan itu
    (id tetap). Bila penyimpanan gagal/timeout, baris masuk antrean offline.
    """
    units = [u for u in (form.get("units") or []) if isinstance(u, dict)]
    work_types = _work_types(form)
    _validate(form, units, work_types)

    device = detect_device(user_agent)
    upload_timeout, save_timeout = _timeouts(device)
    code = _clean(form.get("booking_id"))
    teknisi = _clean(form.get("teknisi")) or user.get("technician_code") or user.get("name")
    warnings: List[str] = []

    booking = None
    try:
        booking = _find_booking(code)
    except StoreError:
        logger.warning("Booking %s tidak bisa dimuat saat submit laporan", code, exc_info=True)

    if booking and booking.get("jumlah_unit") and int(booking["jumlah_unit"]) != len(units):
        msg = f"Jumlah unit ({len(units)}) berbeda dengan booking ({booking['jumlah_unit']})"
        logger.info("Booking %s: %s", code, msg)
        warnings.append(msg)

    general_urls = _upload_group(general_photos or [], upload_timeout, "umum")
    rows = []
    for idx, unit in enumerate(units):
        unit_urls = _upload_group((unit_photos or {}).get(idx, []), upload_timeout, f"unit {idx + 1}")
        job = _clean(unit.get("jenis_pekerjaan")) or work_types[0]
        rows.append({
            "booking_id": code,
            "nama_pelanggan": _clean(form.get("nama_pelanggan")),
            "alamat_pelanggan": _clean(form.get("alamat_pelanggan")),
            "no_wa_pelanggan": _clean(form.get("no_wa_pelanggan")),
            "no_unit": _clean(unit.get("no_unit")) or str(idx + 1),
            "merk": _clean(unit.get("merk")),
            "spek_unit": _clean(unit.get("spek_unit")),
            "foto_url": encode_photo_urls(unit_urls + general_urls),
            "tanggal_dikerjakan": _clean(form.get("tanggal_dikerjakan")) or today_local_date().isoformat(),
            "jenis_pekerjaan": job,
            "teknisi": teknisi,
            "helper": _clean(form.get("helper")),
            "keterangan": _clean(unit.get("keterangan")),
            "internal_notes": _clean(unit.get("internal_notes")),
            "status": ReportStatus.pending_approval.value,
        })

    is_complaint = bool(booking) and parse_booking_status(booking.get("status")) == BookingStatus.komplain
    prior = _prior_complaint_report(code) if is_complaint else None
    mode = "complaint_update" if prior else "insert"

    try:
        if prior:
            ensure_report_transition(prior.get("status"), ReportStatus.pending_approval)
            values = {**rows[0], "keterangan_komplain": None}
            if len(rows) > 1:
                values["units"] = json.dumps(units, default=str)
            saved = _save_with_timeout(
                lambda: get_store().update(Query("work_reports").eq("id", prior["id"]), values),
                save_timeout,
            )
        else:
            saved = _save_with_timeout(lambda: get_store().insert("work_reports", rows), save_timeout)
    except (StoreError, FuturesTimeout) as e:
        logger.error("Simpan laporan %s gagal (%s); masuk antrean offline", code, type(e).__name__)
        queued = [{**r, "status": ReportStatus.offline_pending.value, "queued_at": iso_now(), "device": device}
                  for r in rows]
        get_kv().append_json(OFFLINE_KEY, queued)
        return {"offline": True, "mode": mode, "reports": queued, "warnings": warnings}

    if booking and can_transition_booking(booking.get("status"), BookingStatus.completed):
        if booking.get("status") != BookingStatus.completed.value:
            get_store().update(Query("bookings").eq("id", booking["id"]), {
                "status": BookingStatus.completed.value,
                "tanggal_selesai": today_local_date().isoformat(),
            })
    elif booking:
        warnings.append(f"Status booking '{booking.get('status')}' tidak diubah ke completed")

    logger.info("Laporan kerja %s tersimpan (%s, %d unit, %s)", code or "Manual", mode, len(rows), device)
    return {"offline": False, "mode": mode, "reports": saved, "warnings": warnings}


# ---------- daftar & riwayat ----------

def get_report(report_id: str) -> dict:
    row = get_store().first(Query("work_reports").eq("id", report_id))
    if row is None:
        raise NotFound("Laporan kerja tidak ditemukan")
    row["photos"] = decode_photo_urls(row.get("foto_url"))
    return row


def list_reports(status: str | None = None) -> List[Dict[str, Any]]:
    """Laporan dikelompokkan per kode booking bersama kode referralnya."""
    store = get_store()
    q = Query("work_reports")
    if status:
        q.eq("status", parse_report_status(status).value)
    rows = store.select(q.order("created_at", desc=True))

    groups: Dict[str, Dict[str, Any]] = {}
    for r in rows:
        key = r.get("booking_id") or r["id"]
        r["photos"] = decode_photo_urls(r.get("foto_url"))
        groups.setdefault(key, {"booking_id": r.get("booking_id"), "reports": []})["reports"].append(r)

    codes = [g["booking_id"] for g in groups.values() if g["booking_id"]]
    referrals = {}
    if codes:
        for b in store.select(Query("bookings").in_("booking_id", codes).select("booking_id", "kode_referral")):
            referrals[b["booking_id"]] = b.get("kode_referral")
    for g in groups.values():
        g["kode_referral"] = referrals.get(g["booking_id"])
        g["total_unit"] = len(g["reports"])
    return list(groups.values())


def delete_report(report_id: str, user: dict) -> dict:
    if user.get("role") not in ("admin", "manager"):
        raise Forbidden("Hanya admin/manager yang boleh menghapus laporan")
    report = get_report(report_id)
    if report.get("status") != ReportStatus.approved.value:
        raise ValidationError("Hanya laporan yang sudah disetujui yang bisa dihapus")
    get_store().delete(Query("work_reports").eq("id", report_id))
    logger.info("Laporan %s dihapus oleh %s", report_id, user.get("username"))
    return report


def internal_notes(search: str | None = None) -> List[dict]:
    q = Query("work_reports").not_null("internal_notes")
    if search:
        q.ilike("nama_pelanggan", f"%{search.strip()}%")
    rows = get_store().select(q.order("created_at", desc=True))
    return [
        {
            "id": r["id"],
            "booking_id": r.get("booking_id"),
            "nama_pelanggan": r.get("nama_pelanggan"),
            "teknisi": r.get("teknisi"),
            "tanggal_dikerjakan": r.get("tanggal_dikerjakan"),
            "internal_notes": r.get("internal_notes"),
        }
        for r in rows
        if (r.get("internal_notes") or "").strip()
    ]


def _phone_variants(phone: str) -> List[str]:
    normalized = normalize_phone(phone)
    variants = {phone.strip(), normalized}
    if normalized.startswith("62"):
        variants.add("0" + normalized[2:])
        variants.add("+" + normalized)
    return [v for v in variants if v]


def customer_history(phone: str) -> Dict[str, List[dict]]:
    """Riwayat laporan seorang pelanggan, dikelompokkan per merk."""
    if not (phone or "").strip():
        raise ValidationError("Nomor pelanggan wajib diisi")
    rows = get_store().select(
        Query("work_reports").in_("no_wa_pelanggan", _phone_variants(phone)).order("created_at", desc=True)
    )
    brands: Dict[str, List[dict]] = {}
    for r in rows:
        r["photos"] = decode_photo_urls(r.get("foto_url"))
        brands.setdefault((r.get("merk") or "Tanpa Merk").strip().upper(), []).append(r)
    return brands


def brand_history(phone: str, brand: str) -> List[dict]:
    wanted = (brand or "").strip().upper()
    return customer_history(phone).get(wanted, [])


def offline_queue() -> List[dict]:
    return get_kv().get_json(OFFLINE_KEY, []) or []
