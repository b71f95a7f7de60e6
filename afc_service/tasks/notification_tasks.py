# afc_service/tasks/notification_tasks.py
from __future__ import annotations

import logging
from typing import Any, Dict

from ..extensions import celery
from ..services import notification_service

logger = logging.getLogger(__name__)


@celery.task(name="notifications.poll_new_rows", bind=True)
def poll_new_rows(self) -> Dict[str, Any]:
    try:
        result = notification_service.poll_once()
    except Exception:
        logger.exception("[notifications.poll_new_rows] gagal")
        return {"status": "error"}
    if result["bookings"] or result["reports"]:
        logger.info("[notifications.poll_new_rows] %s", result)
    return {"status": "ok", **result}
