# afc_service/blueprints/admin/routes.py

from __future__ import annotations

from flask import Blueprint, request

from ...services import account_service
from ...services.account_service import public_account
from ...utils.auth_utils import get_current_user, role_required
from ...utils.responses import error, ok

admin_bp = Blueprint("admin", __name__)


def _me() -> str:
    return get_current_user()["username"]


def _session_payload(session) -> dict:
    return {
        "accounts": [public_account(a) for a in session.accounts()],
        "has_changes": session.has_changes,
        "pending": {
            "added": len(session.added),
            "updated": len(session.updated),
            "deleted": len(session.deleted),
            "technician_codes": len(session.tech_code_updates),
        },
    }


@admin_bp.get("/accounts")
@role_required("admin")
def accounts():
    return ok(items=[public_account(a) for a in account_service.list_accounts()])


@admin_bp.get("/technician-codes")
@role_required("admin", "manager")
def technician_codes():
    active_only = request.args.get("active") == "1"
    return ok(items=account_service.list_technician_codes(active_only))


# ---------- sesi edit ----------

@admin_bp.get("/edit")
@role_required("admin")
def edit_state():
    return ok(**_session_payload(account_service.load_edit(_me())))


@admin_bp.post("/edit/accounts")
@role_required("admin")
def edit_add_account():
    """Body (JSON): { username, password, name, role }"""
    p = request.get_json(silent=True)
    if not p:
        return error("JSON body tidak valid", 400)
    session = account_service.load_edit(_me()).add_account(
        p.get("username"), p.get("password"), p.get("name"), p.get("role")
    )
    account_service.save_edit(_me(), session)
    return ok(**_session_payload(session)), 201


@admin_bp.patch("/edit/accounts/<string:account_id>")
@role_required("admin")
def edit_update_account(account_id: str):
    p = request.get_json(silent=True) or {}
    session = account_service.load_edit(_me()).update_account(account_id, **p)
    account_service.save_edit(_me(), session)
    return ok(**_session_payload(session))


@admin_bp.post("/edit/accounts/<string:account_id>/toggle")
@role_required("admin")
def edit_toggle_account(account_id: str):
    session = account_service.load_edit(_me()).toggle_active(account_id)
    account_service.save_edit(_me(), session)
    return ok(**_session_payload(session))


@admin_bp.delete("/edit/accounts/<string:account_id>")
@role_required("admin")
def edit_delete_account(account_id: str):
    session = account_service.load_edit(_me()).delete_account(account_id)
    account_service.save_edit(_me(), session)
    return ok(**_session_payload(session))


@admin_bp.patch("/edit/technician-codes/<string:code_id>")
@role_required("admin")
def edit_technician_code(code_id: str):
    p = request.get_json(silent=True) or {}
    session = account_service.load_edit(_me()).update_technician_code(code_id, **p)
    account_service.save_edit(_me(), session)
    return ok(**_session_payload(session))


@admin_bp.post("/edit/apply")
@role_required("admin")
def edit_apply():
    summary = account_service.apply_edit(_me())
    return ok(message="Perubahan disimpan", summary=summary)


@admin_bp.post("/edit/discard")
@role_required("admin")
def edit_discard():
    snapshot = account_service.discard_edit(_me())
    return ok(message="Perubahan dibatalkan", accounts=[public_account(a) for a in snapshot])
