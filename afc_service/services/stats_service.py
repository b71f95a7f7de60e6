# afc_service/services/stats_service.py

from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional

from ..domain.status import ReportStatus
from ..extensions import get_store
from ..store.base import Query
from ..utils.timez import parse_timestamp, parse_visit_date

# Urutan penting: frasa yang lebih spesifik dicocokkan lebih dulu
JOB_CATEGORIES = (
    ("bongkar_pasang", ("bongkar pasang",)),
    ("pasang_baru", ("pasang baru", "pasang unit")),
    ("bongkar", ("bongkar",)),
    ("perbaikan_mayor", ("perbaikan mayor", "mayor")),
    ("perbaikan_minor", ("perbaikan minor", "minor", "perbaikan")),
    ("isi_freon", ("isi freon", "freon")),
    ("cek_unit", ("cek unit", "cek")),
    ("cuci", ("cuci",)),
)


def categorize(job: str | None) -> Optional[str]:
    text = (job or "").strip().lower()
    for key, needles in JOB_CATEGORIES:
        if any(n in text for n in needles):
            return key
    return None


def unit_count(no_unit) -> int:
    try:
        return max(1, int(str(no_unit).strip()))
    except (TypeError, ValueError):
        return 1


def _work_date(report: dict) -> Optional[date]:
    d = parse_visit_date(report.get("tanggal_dikerjakan"))
    if d is None:
        ts = parse_timestamp(report.get("created_at"))
        d = ts.date() if ts else None
    return d


def _helpers(report: dict) -> List[str]:
    return [h.strip() for h in (report.get("helper") or "").split(",") if h.strip()]


def _approved_in_year(year: int, user: dict | None) -> List[dict]:
    q = Query("work_reports").eq("status", ReportStatus.approved.value)
    role = (user or {}).get("role")
    if role == "teknisi":
        q.eq("teknisi", user.get("technician_code") or "")
    rows = [r for r in get_store().select(q) if (_work_date(r) or date.min).year == year]
    if role == "helper":
        name = (user.get("name") or "").strip().lower()
        rows = [r for r in rows if name in [h.lower() for h in _helpers(r)]]
    return rows


def job_type_stats(year: int, month: int, user: dict | None) -> List[Dict[str, Any]]:
    """Per jenis pekerjaan: total unit setahun, jumlah bulan terpilih dan setahun."""
    stats: Dict[str, Dict[str, Any]] = {}
    for r in _approved_in_year(year, user):
        job = (r.get("jenis_pekerjaan") or "Lainnya").strip()
        item = stats.setdefault(job, {"jenis_pekerjaan": job, "total_unit": 0, "bulan_ini": 0, "tahun_ini": 0})
        item["total_unit"] += unit_count(r.get("no_unit"))
        item["tahun_ini"] += 1
        if _work_date(r).month == month:
            item["bulan_ini"] += 1
    return sorted(stats.values(), key=lambda x: (-x["tahun_ini"], x["jenis_pekerjaan"]))


def _empty_counts() -> Dict[str, int]:
    return {key: 0 for key, _ in JOB_CATEGORIES}


def technician_stats(year: int, month: int, user: dict | None) -> Dict[str, List[Dict[str, Any]]]:
    """Jumlah pekerjaan per kategori untuk teknisi dan helper pada bulan terpilih."""
    rows = [r for r in _approved_in_year(year, user) if _work_date(r).month == month]
    role = (user or {}).get("role")

    technicians: Dict[str, Dict[str, Any]] = {}
    if role in ("admin", "manager"):
        for tc in get_store().select(Query("technician_codes").eq("active", True).order("sort_order")):
            technicians[tc["code"]] = {"code": tc["code"], "name": tc.get("name"), "counts": _empty_counts(), "total": 0}

    helpers: Dict[str, Dict[str, Any]] = {}
    for r in rows:
        category = categorize(r.get("jenis_pekerjaan"))
        code = r.get("teknisi") or "-"
        tech = technicians.setdefault(code, {"code": code, "name": None, "counts": _empty_counts(), "total": 0})
        if category:
            tech["counts"][category] += 1
        tech["total"] += 1

        for name in _helpers(r):
            h = helpers.setdefault(name.lower(), {"name": name, "counts": _empty_counts(), "total": 0})
            if category:
                h["counts"][category] += 1
            h["total"] += 1

    if role == "helper":
        technicians = {}
    return {"technicians": list(technicians.values()), "helpers": list(helpers.values())}
