from functools import wraps
from flask import g, request

from ..errors import AuthError, Forbidden


def _bearer_token() -> str:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return request.headers.get("X-Session-Token", "").strip()


def token_required(f):
    """Pastikan sesi valid, lalu segarkan waktu aktivitas terakhir."""
    @wraps(f)
    def decorated(*args, **kwargs):
        from ..services import auth_service

        token = _bearer_token()
        user = auth_service.resolve(token)
        auth_service.touch(token)
        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)
    return decorated


def role_required(*roles):
    def wrapper(f):
        @wraps(f)
        @token_required
        def decorated(*args, **kwargs):
            if get_current_user().get("role") not in roles:
                raise Forbidden()
            return f(*args, **kwargs)
        return decorated
    return wrapper


def get_current_user() -> dict:
    user = g.get("current_user")
    if user is None:
        raise AuthError()
    return user
