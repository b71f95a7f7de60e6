# afc_service/tasks/approval_tasks.py
from __future__ import annotations

import logging
from typing import Any, Dict

from ..extensions import celery
from ..services import approval_service

logger = logging.getLogger(__name__)


@celery.task(name="approvals.retry_failed_steps", bind=True)
def retry_failed_steps(self, booking_id: str) -> Dict[str, Any]:
    """Coba ulang langkah saga persetujuan yang gagal untuk satu booking."""
    logger.info("[approvals.retry_failed_steps] start booking=%s", booking_id)
    outcomes = approval_service.retry_failed(booking_id)
    still_failed = [o["step"] for o in outcomes if o["status"] == approval_service.FAILED]
    if still_failed:
        logger.warning("[approvals.retry_failed_steps] %s masih gagal: %s", booking_id, still_failed)
    return {"status": "ok", "retried": len(outcomes), "failed": still_failed}
