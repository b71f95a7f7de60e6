# afc_service/blueprints/auth/routes.py

from __future__ import annotations

from flask import Blueprint, g, request

from ...services import auth_service
from ...utils.auth_utils import get_current_user, token_required
from ...utils.responses import error, ok

auth_bp = Blueprint("auth", __name__)


@auth_bp.post("/login")
def login():
    """
    Body (JSON): { username, password }
    Balikan: { token, user: {username, name, role, technician_code}, routes }
    """
    payload = request.get_json(silent=True)
    if not payload:
        return error("JSON body tidak valid", 400)
    result = auth_service.login(payload.get("username"), payload.get("password"))
    return ok(**result, routes=auth_service.routes_for(result["user"]["role"]))


@auth_bp.post("/logout")
@token_required
def logout():
    auth_service.logout(g.session_token)
    return ok(message="Berhasil logout")


@auth_bp.get("/me")
@token_required
def me():
    return ok(user=get_current_user())


@auth_bp.get("/routes")
@token_required
def routes():
    user = get_current_user()
    return ok(role=user["role"], routes=auth_service.routes_for(user["role"]))
