import logging

from flask import jsonify

from ..errors import ServiceError

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    @app.errorhandler(ServiceError)
    def service_error(e: ServiceError):
        if e.status_code >= 500:
            logger.warning("%s: %s", type(e).__name__, e.message)
        return jsonify(ok=False, message=e.message, error=type(e).__name__, **e.extra), e.status_code

    @app.errorhandler(400)
    def bad_request(e):
        return jsonify(ok=False, message="Bad Request", detail=str(e)), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify(ok=False, message="Not Found"), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify(ok=False, message="Method Not Allowed"), 405

    @app.errorhandler(413)
    def too_large(e):
        return jsonify(ok=False, message="Payload Too Large"), 413

    @app.errorhandler(500)
    def internal_error(e):
        logger.error("Unhandled error: %s", getattr(e, "original_exception", e))
        return jsonify(ok=False, message="Internal Server Error"), 500
