# afc_service/tasks/maintenance_tasks.py
from __future__ import annotations

import logging
from typing import Any, Dict

from ..extensions import celery
from ..services import auth_service, booking_service

logger = logging.getLogger(__name__)


@celery.task(name="sessions.sweep_expired", bind=True)
def sweep_expired(self) -> Dict[str, Any]:
    removed = auth_service.sweep_expired()
    return {"status": "ok", "removed": removed}


@celery.task(name="bookings.send_visit_reminders", bind=True)
def send_visit_reminders(self, force: bool = False) -> Dict[str, Any]:
    logger.info("[bookings.send_visit_reminders] start force=%s", force)
    try:
        result = booking_service.send_visit_reminders(force=force)
    except Exception:
        logger.exception("[bookings.send_visit_reminders] gagal")
        return {"status": "error"}
    return {"status": "ok", **result}
