# afc_service/blueprints/approvals/routes.py

from __future__ import annotations

from flask import Blueprint, request

from ...services import approval_service
from ...utils.auth_utils import get_current_user, role_required
from ...utils.responses import ok

approvals_bp = Blueprint("approvals", __name__)


@approvals_bp.post("/<string:report_id>/approve")
@role_required("admin", "manager")
def approve(report_id: str):
    notes = (request.get_json(silent=True) or {}).get("catatan")
    result = approval_service.approve(report_id, get_current_user(), notes)
    return ok(message="Laporan disetujui", **result)


@approvals_bp.post("/<string:report_id>/reject")
@role_required("admin", "manager")
def reject(report_id: str):
    p = request.get_json(silent=True) or {}
    result = approval_service.reject(report_id, get_current_user(), p.get("alasan"), p.get("internal_notes"))
    return ok(message="Laporan ditolak", **result)


@approvals_bp.get("/<string:booking_id>/steps")
@role_required("admin", "manager")
def steps(booking_id: str):
    return ok(booking_id=booking_id, steps=approval_service.step_log(booking_id))


@approvals_bp.post("/<string:booking_id>/retry")
@role_required("admin", "manager")
def retry(booking_id: str):
    outcomes = approval_service.retry_failed(booking_id)
    return ok(booking_id=booking_id, retried=outcomes, steps=approval_service.step_log(booking_id))
