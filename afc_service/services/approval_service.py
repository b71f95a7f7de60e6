# afc_service/services/approval_service.py
"""
Persetujuan & penolakan laporan kerja.

Persetujuan berjalan sebagai saga berurutan. Setiap langkah dicatat di tabel
approval_steps (ok | failed | skipped). Langkah yang gagal tidak membatalkan
langkah sebelumnya dan dicoba ulang oleh task Celery sampai SAGA_MAX_RETRIES.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from flask import current_app

from ..domain.status import BookingStatus, ReportStatus, ensure_booking_transition, ensure_report_transition
from ..errors import Forbidden, NotFound, ValidationError
from ..extensions import get_messenger, get_store
from ..store.base import Query
from ..utils.timez import iso_now
from . import referral_service
from .messaging import affiliate_message, normalize_phone, work_report_message

logger = logging.getLogger(__name__)

SAGA_STEPS = ("customer", "referral", "notify_customer", "notify_partner", "booking_done")

OK, FAILED, SKIPPED = "ok", "failed", "skipped"


class StepFailed(Exception):
    """Langkah selesai dijalankan tetapi hasilnya gagal (mis. pesan tidak terkirim)."""


def _require_manager(user: dict) -> None:
    if (user or {}).get("role") not in ("admin", "manager"):
        raise Forbidden("Hanya admin/manager yang boleh menyetujui atau menolak laporan")


def _load_report(report_id: str) -> dict:
    report = get_store().first(Query("work_reports").eq("id", report_id))
    if report is None:
        raise NotFound("Laporan kerja tidak ditemukan")
    return report


def _siblings(report: dict) -> Query:
    if report.get("booking_id"):
        return Query("work_reports").eq("booking_id", report["booking_id"])
    return Query("work_reports").eq("id", report["id"])


def _saga_key(report: dict) -> str:
    return report.get("booking_id") or report["id"]


# ---------- konteks saga ----------

def _context(saga_key: str) -> Dict[str, Any]:
    store = get_store()
    booking = store.first(Query("bookings").eq("booking_id", saga_key))
    reports = store.select(
        Query("work_reports").eq("booking_id", saga_key).eq("status", ReportStatus.approved.value).order("no_unit")
    )
    if not reports:
        reports = store.select(Query("work_reports").eq("id", saga_key))
    was_complaint = bool(booking) and (
        booking.get("status") == BookingStatus.komplain.value
        or (booking.get("catatan") or "").startswith("KOMPLAIN:")
    )
    return {"key": saga_key, "booking": booking, "reports": reports, "was_complaint": was_complaint}


# ---------- langkah-langkah ----------

def _step_customer(ctx: Dict[str, Any]) -> Tuple[str, str]:
    head = ctx["reports"][0]
    phone = normalize_phone(head.get("no_wa_pelanggan"))
    if not phone:
        return SKIPPED, "nomor pelanggan kosong"
    store = get_store()
    variants = list({phone, head.get("no_wa_pelanggan") or phone, "0" + phone[2:]})
    existing = store.first(Query("customers").in_("phone_number", variants))
    if existing:
        return OK, f"pelanggan ditemukan ({existing['id']})"
    booking = ctx["booking"] or {}
    created = store.insert("customers", {
        "name": head.get("nama_pelanggan") or booking.get("nama") or "-",
        "phone_number": phone,
        "address": head.get("alamat_pelanggan") or booking.get("alamat") or "",
        "cluster": booking.get("cluster"),
    })
    return OK, f"pelanggan dibuat ({created[0]['id']})"


def _step_referral(ctx: Dict[str, Any]) -> Tuple[str, str]:
    code = ((ctx["booking"] or {}).get("kode_referral") or "").strip()
    if not code:
        return SKIPPED, "tanpa kode referral"
    counted = referral_service.claim_and_increment(ctx["key"], code)
    return OK, f"poin {code} ditambahkan" if counted else f"poin {code} sudah dihitung"


def _step_notify_customer(ctx: Dict[str, Any]) -> Tuple[str, str]:
    messenger = get_messenger()
    if messenger is None:
        return SKIPPED, "gateway WhatsApp tidak tersedia"
    brand = current_app.config.get("BRAND_NAME", "AFC Service")
    message = work_report_message(ctx["reports"], brand)
    customer_phone = ctx["reports"][0].get("no_wa_pelanggan")

    customer_ok = messenger.send(customer_phone, message)
    admin_failed = [n for n in current_app.config.get("WA_ADMIN_NUMBERS", []) if not messenger.send(n, message)]
    if not customer_ok:
        raise StepFailed("pesan laporan ke pelanggan gagal terkirim")
    if admin_failed:
        return OK, f"pelanggan terkirim; admin gagal: {', '.join(admin_failed)}"
    return OK, "pesan laporan terkirim"


def _step_notify_partner(ctx: Dict[str, Any]) -> Tuple[str, str]:
    booking = ctx["booking"] or {}
    code = (booking.get("kode_referral") or "").strip()
    if not code:
        return SKIPPED, "tanpa kode referral"
    service = " ".join(
        [booking.get("jenis_layanan") or ""] + [r.get("jenis_pekerjaan") or "" for r in ctx["reports"]]
    ).lower()
    if "cek" in service:
        return SKIPPED, "layanan cek unit tidak mendapat poin"
    if ctx["was_complaint"]:
        return SKIPPED, "booking komplain"
    partner = referral_service.get_partner(code)
    if partner is None or not partner.get("nomor_whatsapp"):
        return SKIPPED, f"partner {code} tidak ditemukan"
    messenger = get_messenger()
    if messenger is None:
        return SKIPPED, "gateway WhatsApp tidak tersedia"
    brand = current_app.config.get("BRAND_NAME", "AFC Service")
    if not messenger.send(partner["nomor_whatsapp"], affiliate_message(partner, brand)):
        raise StepFailed(f"pesan affiliate ke {code} gagal terkirim")
    return OK, f"pesan affiliate terkirim ke {code}"


def _step_booking_done(ctx: Dict[str, Any]) -> Tuple[str, str]:
    booking = ctx["booking"]
    if booking is None:
        return SKIPPED, "laporan manual tanpa booking"
    target = ensure_booking_transition(booking.get("status"), BookingStatus.selesai)
    get_store().update(Query("bookings").eq("id", booking["id"]), {"status": target.value})
    return OK, f"booking {booking.get('booking_id')} selesai"


STEP_HANDLERS: Dict[str, Callable[[Dict[str, Any]], Tuple[str, str]]] = {
    "customer": _step_customer,
    "referral": _step_referral,
    "notify_customer": _step_notify_customer,
    "notify_partner": _step_notify_partner,
    "booking_done": _step_booking_done,
}


def _record(saga_key: str, report_id: Optional[str], step: str, status: str, detail: str,
            fresh: bool = False) -> dict:
    store = get_store()
    q = Query("approval_steps").eq("booking_id", saga_key).eq("step", step)
    existing = store.first(q)
    if existing is None:
        return store.insert("approval_steps", {
            "booking_id": saga_key,
            "report_id": report_id,
            "step": step,
            "status": status,
            "detail": detail,
            "attempts": 1,
        })[0]
    return store.update(
        Query("approval_steps").eq("id", existing["id"]),
        {"status": status, "detail": detail, "report_id": report_id or existing.get("report_id"),
         "attempts": 1 if fresh else int(existing.get("attempts") or 0) + 1},
    )[0]


def _run_step(ctx: Dict[str, Any], step: str, report_id: Optional[str], fresh: bool = False) -> dict:
    try:
        status, detail = STEP_HANDLERS[step](ctx)
    except StepFailed as e:
        logger.warning("[saga %s] langkah %s gagal: %s", ctx["key"], step, e)
        status, detail = FAILED, str(e)
    except Exception as e:
        logger.exception("[saga %s] langkah %s error", ctx["key"], step)
        status, detail = FAILED, f"{type(e).__name__}: {e}"
    return _record(ctx["key"], report_id, step, status, detail, fresh=fresh)


def _schedule_retry(saga_key: str, outcomes: List[dict]) -> None:
    max_attempts = current_app.config.get("SAGA_MAX_RETRIES", 3)
    if not any(o["status"] == FAILED and int(o["attempts"]) < max_attempts for o in outcomes):
        return
    from ..tasks.approval_tasks import retry_failed_steps

    retry_failed_steps.apply_async(args=[saga_key], countdown=current_app.config.get("SAGA_RETRY_DELAY", 60))


# ---------- aksi ----------

def approve(report_id: str, user: dict, notes: str | None = None) -> Dict[str, Any]:
    _require_manager(user)
    report = _load_report(report_id)
    ensure_report_transition(report.get("status"), ReportStatus.approved)

    store = get_store()
    approved = store.update(
        _siblings(report).eq("status", ReportStatus.pending_approval.value),
        {
            "status": ReportStatus.approved.value,
            "approved_by": user.get("name") or user.get("username"),
            "approved_at": iso_now(),
            "approval_notes": (notes or "").strip() or None,
        },
    )
    saga_key = _saga_key(report)
    if not approved:
        # Persetujuan ulang: saga sudah pernah berjalan untuk booking ini
        return {"booking_id": report.get("booking_id"), "approved": [], "already_approved": True,
                "steps": step_log(saga_key)}
    logger.info("Laporan %s disetujui (%d baris) oleh %s", saga_key, len(approved), user.get("username"))

    ctx = _context(saga_key)
    outcomes = [_run_step(ctx, step, report_id, fresh=True) for step in SAGA_STEPS]
    _schedule_retry(saga_key, outcomes)
    return {"booking_id": report.get("booking_id"), "approved": approved, "already_approved": False,
            "steps": step_log(saga_key)}


def retry_failed(saga_key: str) -> List[dict]:
    """Jalankan ulang langkah yang masih gagal; mengembalikan hasil terbaru."""
    max_attempts = current_app.config.get("SAGA_MAX_RETRIES", 3)
    failed = [
        s for s in step_log(saga_key)
        if s["status"] == FAILED and int(s.get("attempts") or 0) < max_attempts
    ]
    if not failed:
        return []
    ctx = _context(saga_key)
    # Urutan saga tetap dipertahankan saat mencoba ulang
    order = {name: i for i, name in enumerate(SAGA_STEPS)}
    outcomes = [
        _run_step(ctx, s["step"], s.get("report_id"))
        for s in sorted(failed, key=lambda s: order.get(s["step"], 99))
    ]
    _schedule_retry(saga_key, outcomes)
    return outcomes


def step_log(saga_key: str) -> List[dict]:
    rows = get_store().select(Query("approval_steps").eq("booking_id", saga_key))
    order = {name: i for i, name in enumerate(SAGA_STEPS)}
    return sorted(rows, key=lambda r: order.get(r["step"], 99))


def reject(report_id: str, user: dict, reason: str | None, internal_notes: str | None = None) -> Dict[str, Any]:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Alasan penolakan wajib diisi")
    _require_manager(user)
    report = _load_report(report_id)
    ensure_report_transition(report.get("status"), ReportStatus.rejected)

    store = get_store()
    booking = None
    if report.get("booking_id"):
        booking = store.first(Query("bookings").eq("booking_id", report["booking_id"]))
    # Transisi booking dicek sebelum laporan diubah
    target = ensure_booking_transition(booking.get("status"), BookingStatus.ditolak) if booking else None

    values = {"status": ReportStatus.rejected.value, "rejection_reason": reason}
    if (internal_notes or "").strip():
        values["internal_notes"] = internal_notes.strip()
    rejected = store.update(_siblings(report).eq("status", ReportStatus.pending_approval.value), values)

    if booking is not None:
        booking = store.update(
            Query("bookings").eq("id", booking["id"]),
            {"status": target.value, "catatan": reason},
        )[0]
    logger.info("Laporan %s ditolak oleh %s", _saga_key(report), user.get("username"))
    return {"rejected": rejected, "booking": booking}
