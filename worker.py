# worker.py
"""
Entry point Celery worker + beat.

    celery -A worker.celery worker -B --loglevel=info
"""

import logging

from afc_service import create_app
from afc_service.extensions import celery  # noqa: F401  (dipakai oleh CLI celery)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
log = logging.getLogger("worker")

app = create_app()
log.info("Celery worker siap: broker=%s", app.config.get("CELERY_BROKER_URL"))
