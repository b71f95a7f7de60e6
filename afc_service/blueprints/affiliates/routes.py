# afc_service/blueprints/affiliates/routes.py

from __future__ import annotations

from flask import Blueprint, request

from ...errors import NotFound
from ...services import referral_service
from ...utils.auth_utils import role_required
from ...utils.responses import ok

affiliates_bp = Blueprint("affiliates", __name__)


@affiliates_bp.get("/")
@role_required("admin", "manager")
def list_partners():
    result = referral_service.list_partners(request.args.get("q"), request.args.get("status"))
    return ok(**result)


@affiliates_bp.get("/<string:partner_id>")
@role_required("admin", "manager")
def detail(partner_id: str):
    partner = referral_service.get_partner(partner_id)
    if partner is None:
        raise NotFound("Partner tidak ditemukan")
    return ok(partner=partner)
