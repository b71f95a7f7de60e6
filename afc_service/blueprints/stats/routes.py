# afc_service/blueprints/stats/routes.py

from __future__ import annotations

from flask import Blueprint, request

from ...services import stats_service
from ...utils.auth_utils import get_current_user, token_required
from ...utils.responses import error, ok
from ...utils.timez import now_local

stats_bp = Blueprint("stats", __name__)


def _period() -> tuple[int, int] | None:
    now = now_local()
    year = request.args.get("year", now.year, type=int)
    month = request.args.get("month", now.month, type=int)
    if not 1 <= month <= 12:
        return None
    return year, month


@stats_bp.get("/job-types")
@token_required
def job_types():
    period = _period()
    if period is None:
        return error("Bulan harus 1-12", 400)
    year, month = period
    return ok(year=year, month=month, items=stats_service.job_type_stats(year, month, get_current_user()))


@stats_bp.get("/technicians")
@token_required
def technicians():
    period = _period()
    if period is None:
        return error("Bulan harus 1-12", 400)
    year, month = period
    return ok(year=year, month=month, **stats_service.technician_stats(year, month, get_current_user()))
