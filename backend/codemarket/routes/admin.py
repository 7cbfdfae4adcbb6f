# Overview: Flask API routes for admin catalog curation and role management.

"""
Admin Routes

    GET  /api/admin?action=list
    POST /api/admin {"action": "add", "booking_code": "...", "price": 5, ...}
    POST /api/admin {"action": "delete", "id": 7}
    POST /api/admin/make-admin {"email": "..."}
    POST /api/admin/make-user  {"email": "..."}

Every handler goes through catalog_service / auth_service, which check the
admin role themselves.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import json_body, load_identity
from ..errors import CodeMarketError, StorageFailure, ValidationFailed, error_response
from ..models import ROLE_ADMIN, ROLE_USER
from ..services import auth_service, catalog_service
from ..services.access_service import require_admin
from ..validation import parse_int


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("")
@load_identity
def admin_list_route():
    try:
        require_admin(g.identity)
        if request.args.get("action", "list") != "list":
            raise ValidationFailed("Invalid action")
        return jsonify(catalog_service.list_catalog_admin(g.identity))
    except CodeMarketError as e:
        return error_response(e, "admin list")


@admin_bp.post("")
@load_identity
def admin_action_route():
    data = json_body()
    action = data.get("action")
    try:
        require_admin(g.identity)
        if action == "add":
            item = catalog_service.create_item(g.identity, data)
            return jsonify({"success": True, "id": item.id})
        if action == "delete":
            if data.get("id") in (None, ""):
                raise ValidationFailed("Missing id")
            catalog_service.delete_item(g.identity, parse_int(data.get("id"), "id", minimum=1, maximum=None))
            return jsonify({"success": True})
        return jsonify({"success": False, "error": "Invalid action"}), 400
    except CodeMarketError as e:
        return error_response(e, f"admin {action}")
    except Exception:
        return error_response(StorageFailure(), f"admin {action}")


def _set_role(role: str):
    data = json_body()
    try:
        user = auth_service.set_role(g.identity, data.get("email"), role)
        return jsonify({
            "success": True,
            "message": f"{user.email} is now {role}",
            "user": user.to_dict(),
        })
    except CodeMarketError as e:
        return error_response(e, f"set role {role}")


@admin_bp.post("/make-admin")
@load_identity
def make_admin_route():
    return _set_role(ROLE_ADMIN)


@admin_bp.post("/make-user")
@load_identity
def make_user_route():
    return _set_role(ROLE_USER)
