# afc_service/__init__.py

from flask import Flask
from .config import load_config
from . import extensions
from .middleware.error_handlers import register_error_handlers

# Import blueprints
from .blueprints.auth.routes import auth_bp
from .blueprints.bookings.routes import bookings_bp
from .blueprints.work_reports.routes import work_reports_bp
from .blueprints.approvals.routes import approvals_bp
from .blueprints.admin.routes import admin_bp
from .blueprints.affiliates.routes import affiliates_bp
from .blueprints.stats.routes import stats_bp
from .blueprints.notifications.routes import notif_bp


def create_app(config_overrides: dict | None = None):
    app = Flask(__name__)
    load_config(app, config_overrides)

    # Initialize extensions (Celery binding, store, key/value, Firebase, dll.)
    extensions.init_app(app)
    from . import tasks  # noqa: F401  (registrasi task Celery)

    # Register blueprints DENGAN url_prefix yang jelas
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(bookings_bp, url_prefix="/api/bookings")
    app.register_blueprint(work_reports_bp, url_prefix="/api/work-reports")
    app.register_blueprint(approvals_bp, url_prefix="/api/approvals")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(affiliates_bp, url_prefix="/api/affiliates")
    app.register_blueprint(stats_bp, url_prefix="/api/stats")
    app.register_blueprint(notif_bp, url_prefix="/api/notifications")

    # Error handlers
    register_error_handlers(app)

    # Monitor notifikasi di dalam proses web (tanpa worker Celery beat)
    if app.config.get("NOTIFY_MONITOR"):
        from .services.notification_service import NotificationMonitor

        monitor = NotificationMonitor(app)
        monitor.start()
        app.extensions["notification_monitor"] = monitor

    @app.get("/health")
    def health():
        from .extensions import firebase_ready, get_store

        try:
            store_ok = get_store().ping()
        except RuntimeError:
            store_ok = False
        return {
            "ok": True,
            "store": app.config.get("STORE_BACKEND"),
            "store_reachable": store_ok,
            "firebase": firebase_ready(),
            "bucket": app.config.get("SUPABASE_BUCKET"),
        }

    return app
