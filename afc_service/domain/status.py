# afc_service/domain/status.py
"""
Model status booking dan laporan kerja.

Status disimpan sebagai string di penyimpanan (kolom teks bebas), tetapi setiap
perubahan status lewat layanan divalidasi terhadap tabel transisi di bawah ini.
"""

from __future__ import annotations

from enum import Enum as PyEnum

from ..errors import IllegalTransition, ValidationError


class BookingStatus(str, PyEnum):
    pending = "pending"
    confirmed = "confirmed"
    rescheduled = "rescheduled"
    menunggu_konfirmasi = "menunggu_konfirmasi"
    menunggu_sparepart = "menunggu_sparepart"
    komplain = "komplain"
    ditolak = "ditolak"
    rejected = "rejected"
    completed = "completed"
    selesai = "selesai"
    deleted = "deleted"


class ReportStatus(str, PyEnum):
    pending_approval = "pending_approval"
    approved = "approved"
    rejected = "rejected"
    komplain = "komplain"
    offline_pending = "offline_pending"


# Nilai lama yang masih muncul di data hasil impor
_LEGACY_BOOKING = {
    "terjadwal": BookingStatus.pending,
    "": BookingStatus.pending,
}

# Status yang tidak tampil di jadwal aktif
HIDDEN_FROM_SCHEDULE = (
    BookingStatus.completed,
    BookingStatus.selesai,
    BookingStatus.deleted,
)
DONE_STATUSES = (BookingStatus.completed, BookingStatus.selesai)
REJECTED_STATUSES = (BookingStatus.ditolak, BookingStatus.rejected)
WAITING_STATUSES = (BookingStatus.menunggu_konfirmasi, BookingStatus.menunggu_sparepart)

_IN_PROGRESS = {
    BookingStatus.confirmed,
    BookingStatus.rescheduled,
    BookingStatus.menunggu_konfirmasi,
    BookingStatus.menunggu_sparepart,
    BookingStatus.komplain,
    BookingStatus.ditolak,
    BookingStatus.rejected,
}

_WORK_TARGETS = {
    BookingStatus.confirmed,
    BookingStatus.rescheduled,
    BookingStatus.menunggu_konfirmasi,
    BookingStatus.menunggu_sparepart,
    BookingStatus.completed,
}

BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.pending: {BookingStatus.confirmed},
    **{s: set(_WORK_TARGETS) for s in _IN_PROGRESS},
    BookingStatus.completed: {BookingStatus.komplain},
    BookingStatus.selesai: {BookingStatus.komplain},
    BookingStatus.deleted: set(),
}

# Hasil alur persetujuan/penolakan dan soft delete bisa dicapai dari status
# mana pun selain 'deleted'.
_FROM_ANY_LIVE = {BookingStatus.selesai, BookingStatus.ditolak, BookingStatus.deleted}

REPORT_TRANSITIONS: dict[ReportStatus, set[ReportStatus]] = {
    ReportStatus.pending_approval: {ReportStatus.approved, ReportStatus.rejected},
    ReportStatus.rejected: {ReportStatus.pending_approval},
    ReportStatus.approved: {ReportStatus.komplain},
    ReportStatus.komplain: {ReportStatus.pending_approval},
    ReportStatus.offline_pending: {ReportStatus.pending_approval},
}


def parse_booking_status(value) -> BookingStatus:
    if isinstance(value, BookingStatus):
        return value
    text = (value or "").strip().lower()
    if text in _LEGACY_BOOKING:
        return _LEGACY_BOOKING[text]
    try:
        return BookingStatus(text)
    except ValueError:
        raise ValidationError(f"Status booking tidak dikenal: {value!r}")


def parse_report_status(value) -> ReportStatus:
    if isinstance(value, ReportStatus):
        return value
    text = (value or "").strip().lower()
    if not text:
        # Baris lama tanpa status diperlakukan sebagai menunggu persetujuan
        return ReportStatus.pending_approval
    try:
        return ReportStatus(text)
    except ValueError:
        raise ValidationError(f"Status laporan tidak dikenal: {value!r}")


def can_transition_booking(current, target) -> bool:
    cur = parse_booking_status(current)
    tgt = parse_booking_status(target)
    if cur == BookingStatus.deleted:
        return False
    if cur == tgt:
        return True
    if tgt in _FROM_ANY_LIVE:
        return True
    return tgt in BOOKING_TRANSITIONS.get(cur, set())


def ensure_booking_transition(current, target) -> BookingStatus:
    """Kembalikan status tujuan bila transisi sah, selain itu IllegalTransition."""
    tgt = parse_booking_status(target)
    if not can_transition_booking(current, tgt):
        raise IllegalTransition(
            f"Status booking tidak bisa diubah dari '{current}' ke '{tgt.value}'",
            current=str(current),
            target=tgt.value,
        )
    return tgt


def can_transition_report(current, target) -> bool:
    cur = parse_report_status(current)
    tgt = parse_report_status(target)
    if cur == tgt:
        return True
    return tgt in REPORT_TRANSITIONS.get(cur, set())


def ensure_report_transition(current, target) -> ReportStatus:
    tgt = parse_report_status(target)
    if not can_transition_report(current, tgt):
        raise IllegalTransition(
            f"Status laporan tidak bisa diubah dari '{current}' ke '{tgt.value}'",
            current=str(current),
            target=tgt.value,
        )
    return tgt


def is_done(value) -> bool:
    return parse_booking_status(value) in DONE_STATUSES
