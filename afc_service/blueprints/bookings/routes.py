# afc_service/blueprints/bookings/routes.py

from __future__ import annotations

from flask import Blueprint, request

from ...services import booking_service
from ...utils.auth_utils import get_current_user, role_required, token_required
from ...utils.responses import error, ok
from ...utils.timez import now_local

# Prefix "/api/bookings" dipasang saat register_blueprint() di create_app()
bookings_bp = Blueprint("bookings", __name__)


def _json() -> dict:
    return request.get_json(silent=True) or {}


@bookings_bp.get("/")
@token_required
def active_schedule():
    """Jadwal aktif (tanpa completed/selesai/deleted), urut tanggal lalu jam kunjungan."""
    items = booking_service.list_active_schedule(get_current_user())
    return ok(items=items, total=len(items))


@bookings_bp.get("/calendar")
@token_required
def calendar():
    month = request.args.get("month") or now_local().strftime("%Y-%m")
    return ok(month=month, days=booking_service.calendar(month, get_current_user()))


@bookings_bp.get("/orders")
@token_required
def orders():
    result = booking_service.order_detail(
        get_current_user(),
        status=request.args.get("status"),
        search=request.args.get("q"),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", 20, type=int),
    )
    return ok(**result)


@bookings_bp.get("/tomorrow")
@role_required("admin", "manager")
def tomorrow():
    items = booking_service.tomorrow_bookings()
    return ok(items=items, total=len(items))


@bookings_bp.post("/reminders/send")
@role_required("admin", "manager")
def send_reminders():
    force = bool(_json().get("force", True))
    return ok(**booking_service.send_visit_reminders(force=force))


@bookings_bp.post("/complaints")
@role_required("admin", "manager")
def open_complaint():
    """Body (JSON): { report_id, tanggal_kunjungan, teknisi, keterangan }"""
    p = _json()
    if not p.get("report_id"):
        return error("Field 'report_id' wajib ada", 400)
    result = booking_service.open_complaint(
        p["report_id"], p.get("tanggal_kunjungan"), p.get("teknisi"), p.get("keterangan")
    )
    return ok(message="Komplain dicatat", **result)


@bookings_bp.get("/<string:booking_ref>")
@token_required
def detail(booking_ref: str):
    booking = booking_service.get_booking(booking_ref)
    return ok(booking=booking_service.present(booking, get_current_user()))


@bookings_bp.post("/<string:booking_ref>/confirm")
@token_required
def confirm(booking_ref: str):
    result = booking_service.confirm(booking_ref, get_current_user())
    return ok(message="Booking dikonfirmasi", **result)


@bookings_bp.post("/<string:booking_ref>/reschedule")
@role_required("admin", "manager", "teknisi")
def reschedule(booking_ref: str):
    """Body (JSON): { tanggal_kunjungan, waktu_kunjungan?, alasan? }"""
    p = _json()
    result = booking_service.reschedule(
        booking_ref, p.get("tanggal_kunjungan"), p.get("waktu_kunjungan"), p.get("alasan"), get_current_user()
    )
    return ok(message="Jadwal diubah", **result)


@bookings_bp.post("/<string:booking_ref>/waiting")
@role_required("admin", "manager", "teknisi")
def waiting(booking_ref: str):
    booking = booking_service.set_waiting(booking_ref, _json().get("status"))
    return ok(booking=booking)


@bookings_bp.post("/<string:booking_ref>/complete")
@role_required("admin", "manager", "teknisi")
def complete(booking_ref: str):
    return ok(**booking_service.complete(booking_ref))


@bookings_bp.delete("/<string:booking_ref>")
@token_required
def soft_delete(booking_ref: str):
    booking = booking_service.soft_delete(booking_ref, get_current_user())
    return ok(message="Booking dihapus", booking=booking)


@bookings_bp.put("/<string:booking_ref>/technician")
@role_required("admin", "manager")
def assign_technician(booking_ref: str):
    return ok(booking=booking_service.assign_technician(booking_ref, _json().get("kode_teknisi")))


@bookings_bp.put("/<string:booking_ref>/notes")
@token_required
def update_notes(booking_ref: str):
    return ok(booking=booking_service.update_notes(booking_ref, _json().get("catatan")))


@bookings_bp.put("/<string:booking_ref>/internal-note")
@role_required("admin", "manager")
def update_internal_note(booking_ref: str):
    return ok(booking=booking_service.update_internal_note(booking_ref, _json().get("catatan_internal")))
