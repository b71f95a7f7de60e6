# afc_service/blueprints/work_reports/routes.py

from __future__ import annotations

import json
import re

from flask import Blueprint, request

from ...services import work_report_service
from ...services.work_report_service import PhotoUpload
from ...utils.auth_utils import get_current_user, role_required, token_required
from ...utils.responses import error, ok

work_reports_bp = Blueprint("work_reports", __name__)

_UNIT_FIELD = re.compile(r"^foto_unit_(\d+)$")

# ---------- helpers ----------

def _read_form() -> dict | None:
    """
    Terima JSON biasa, atau multipart dengan field 'payload' berisi JSON
    (foto dikirim sebagai file 'foto_unit_<index>' dan 'foto').
    """
    if request.is_json:
        return request.get_json(silent=True)
    raw = request.form.get("payload")
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _read_photos() -> tuple[dict[int, list[PhotoUpload]], list[PhotoUpload]]:
    per_unit: dict[int, list[PhotoUpload]] = {}
    general: list[PhotoUpload] = []
    for field_name in request.files:
        files = [
            PhotoUpload(f.read(), f.filename or "foto.jpg", f.mimetype)
            for f in request.files.getlist(field_name)
            if f and f.filename
        ]
        m = _UNIT_FIELD.match(field_name)
        if m:
            per_unit.setdefault(int(m.group(1)), []).extend(files)
        elif field_name == "foto":
            general.extend(files)
    return per_unit, general


# ---------- routes ----------

@work_reports_bp.post("/")
@token_required
def submit():
    form = _read_form()
    if form is None:
        return error("Body laporan tidak valid", 400)
    per_unit, general = _read_photos()
    result = work_report_service.submit(
        form, per_unit, general, get_current_user(), request.headers.get("User-Agent")
    )
    if result["offline"]:
        return ok(message="Koneksi bermasalah, laporan disimpan offline", **result), 202
    return ok(message="Laporan kerja berhasil dikirim", **result), 201


@work_reports_bp.get("/")
@role_required("admin", "manager")
def list_reports():
    groups = work_report_service.list_reports(request.args.get("status"))
    return ok(items=groups, total=len(groups))


@work_reports_bp.get("/offline-queue")
@token_required
def offline_queue():
    items = work_report_service.offline_queue()
    return ok(items=items, total=len(items))


@work_reports_bp.get("/internal-notes")
@role_required("admin", "manager")
def internal_notes():
    items = work_report_service.internal_notes(request.args.get("q"))
    return ok(items=items, total=len(items))


@work_reports_bp.get("/history/<string:phone>")
@token_required
def customer_history(phone: str):
    return ok(phone=phone, brands=work_report_service.customer_history(phone))


@work_reports_bp.get("/history/<string:phone>/<string:brand>")
@token_required
def brand_history(phone: str, brand: str):
    items = work_report_service.brand_history(phone, brand)
    return ok(phone=phone, brand=brand, items=items)


@work_reports_bp.get("/<string:report_id>")
@token_required
def detail(report_id: str):
    return ok(report=work_report_service.get_report(report_id))


@work_reports_bp.delete("/<string:report_id>")
@token_required
def delete(report_id: str):
    report = work_report_service.delete_report(report_id, get_current_user())
    return ok(message="Laporan dihapus", report=report)
