# Overview: Flask API routes for orders; commits verified checkouts and lists the caller's orders.

from flask import Blueprint, g, jsonify

from ..decorators import json_body, load_identity
from ..errors import CodeMarketError, StorageFailure, error_response
from ..services import checkout_service, order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@load_identity
def create_order_route():
    """
    Commit an order against a reference already confirmed through
    /api/paystack_verify.

    Request body:
    {
        "items": [{"id": 1, "qty": 2}, {"id": 2, "qty": 1}],
        "total": 50.00,
        "reference": "T123456789"
    }
    """
    data = json_body()
    try:
        pending = checkout_service.initiate_checkout(
            g.identity,
            data.get("items"),
            data.get("total"),
            data.get("currency"),
        )
        order = checkout_service.commit_order(g.identity, pending, data.get("reference"))
        return jsonify({"success": True, "order_id": order.id}), 201
    except CodeMarketError as e:
        return error_response(e, "create order")
    except Exception:
        return error_response(StorageFailure(), "create order")


@orders_bp.get("")
@load_identity
def list_orders_route():
    try:
        orders = order_service.list_orders(g.identity)
        return jsonify({"orders": [o.to_dict(include_items=True) for o in orders]})
    except CodeMarketError as e:
        return error_response(e, "list orders")


@orders_bp.get("/<int:order_id>")
@load_identity
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.identity, order_id)
        return jsonify({"order": order.to_dict(include_items=True)})
    except CodeMarketError as e:
        return error_response(e, "get order")
