# Overview: Flask API routes for recovery staging; dispatches admin actions and lists staged codes.

"""
Recovery Routes

One endpoint, action-dispatched, as the admin console posts it:

    POST /api/recovery {"action": "add", "booking_code": "...", "price": 5}
    POST /api/recovery {"action": "approve" | "import" | "delete", "id": 7}
    GET  /api/recovery
"""

from flask import Blueprint, g, jsonify

from ..decorators import json_body, load_identity, load_optional_identity
from ..errors import CodeMarketError, StorageFailure, ValidationFailed, error_response
from ..services import recovery_service
from ..services.access_service import require_admin
from ..validation import parse_int


recovery_bp = Blueprint("recovery", __name__, url_prefix="/api/recovery")


def _item_id(data: dict) -> int:
    if data.get("id") in (None, ""):
        raise ValidationFailed("Missing id")
    return parse_int(data.get("id"), "id", minimum=1, maximum=None)


def _add(data: dict):
    item = recovery_service.add_recovery_item(
        g.identity,
        data.get("booking_code"),
        price=data.get("price"),
    )
    return {"success": True, "id": item.id}


def _approve(data: dict):
    recovery_service.approve_recovery_item(g.identity, _item_id(data))
    return {"success": True}


def _import(data: dict):
    game = recovery_service.import_recovery_item(g.identity, _item_id(data))
    return {"success": True, "game_id": game.id}


def _delete(data: dict):
    recovery_service.delete_recovery_item(g.identity, _item_id(data))
    return {"success": True}


ACTIONS = {
    "add": _add,
    "approve": _approve,
    "import": _import,
    "delete": _delete,
}


@recovery_bp.get("")
@load_optional_identity
def list_recovery_route():
    """Admins see every staged row; everyone else sees approved rows only."""
    return jsonify(recovery_service.list_recovery_items(g.identity))


@recovery_bp.post("")
@load_identity
def recovery_action_route():
    """Every action is admin-only; the role is checked before any id is parsed."""
    data = json_body()
    action = data.get("action")
    handler = ACTIONS.get(action) if isinstance(action, str) else None
    if handler is None:
        return jsonify({"success": False, "error": "Invalid action"}), 400

    try:
        require_admin(g.identity)
        return jsonify(handler(data))
    except CodeMarketError as e:
        return error_response(e, f"recovery {action}")
    except Exception:
        return error_response(StorageFailure(), f"recovery {action}")
