# Registrasi task Celery (dipanggil dari create_app dan worker.py)
from . import approval_tasks, maintenance_tasks, notification_tasks  # noqa: F401
