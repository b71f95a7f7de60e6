# afc_service/services/referral_service.py

from __future__ import annotations

import logging
from typing import Any, Dict

from ..extensions import get_store
from ..store.base import Query

logger = logging.getLogger(__name__)


def claim_and_increment(booking_code: str, referral_code: str) -> bool:
    """
    Tambah tepat satu poin partner per booking.

    Satu baris laporan diklaim (referral_counted false -> true) secara
    compare-and-set; hanya pemenang klaim yang menambah poin, dan
    penambahannya atomik di sisi penyimpanan. False bila sudah pernah dihitung.
    """
    store = get_store()
    claimed = store.claim(
        Query("work_reports").eq("booking_id", booking_code).eq("referral_counted", False),
        {"referral_counted": True},
    )
    if claimed is None:
        logger.info("Referral %s untuk booking %s sudah dihitung", referral_code, booking_code)
        return False

    new_total = store.increment("partners", "total_poin", "partner_id", referral_code, by=1)
    if new_total is None:
        logger.warning("Partner %s tidak ditemukan; poin booking %s tidak ditambahkan", referral_code, booking_code)
    else:
        logger.info("Poin partner %s sekarang %s (booking %s)", referral_code, new_total, booking_code)

    store.update(
        Query("work_reports").eq("booking_id", booking_code).eq("referral_counted", False),
        {"referral_counted": True},
    )
    return True


def get_partner(partner_id: str) -> dict | None:
    return get_store().first(Query("partners").eq("partner_id", partner_id))


def list_partners(search: str | None = None, status: str | None = None) -> Dict[str, Any]:
    q = Query("partners")
    if status:
        q.eq("status", status.strip().lower())
    if search:
        q.ilike("nama_lengkap", f"%{search.strip()}%")
    rows = get_store().select(q.order("total_poin", desc=True).order("nama_lengkap"))
    return {
        "items": rows,
        "total_partners": len(rows),
        "total_poin": sum(int(r.get("total_poin") or 0) for r in rows),
    }
