# Overview: Flask API routes for payment verification and one-shot checkout.

"""
Payment Routes

POST /api/paystack_verify   confirm a provider reference (phase 2 only)
POST /api/checkout          initiate, verify and commit in one request

expected_amount is in minor units (pesewas), exactly what the payment
widget charged. total is in major units.
"""

from flask import Blueprint, g, jsonify

from ..decorators import json_body, load_identity
from ..errors import CodeMarketError, StorageFailure, error_response
from ..services import checkout_service


payments_bp = Blueprint("payments", __name__, url_prefix="/api")


@payments_bp.post("/paystack_verify")
@load_identity
def paystack_verify_route():
    """
    Request body:
    {
        "reference": "T123456789",
        "expected_amount": 5000,
        "currency": "GHS"
    }

    Returns:
        200: verified
        400: missing reference or amount
        402: provider says no, or amount/currency mismatch
        503: provider unreachable
    """
    data = json_body()
    try:
        verification = checkout_service.verify_payment(
            g.identity,
            data.get("reference"),
            data.get("expected_amount"),
            data.get("currency"),
        )
        return jsonify({
            "success": True,
            "message": "Payment verified",
            "reference": verification.reference,
        })
    except CodeMarketError as e:
        return error_response(e, "paystack verify")
    except Exception:
        return error_response(StorageFailure(), "paystack verify")


@payments_bp.post("/checkout")
@load_identity
def checkout_route():
    """
    Request body:
    {
        "items": [{"id": 1, "qty": 2}],
        "total": 50.00,
        "reference": "T123456789",
        "currency": "GHS"
    }
    """
    data = json_body()
    try:
        order = checkout_service.checkout(
            g.identity,
            data.get("items"),
            data.get("total"),
            data.get("reference"),
            data.get("currency"),
        )
        return jsonify({"success": True, "order_id": order.id}), 201
    except CodeMarketError as e:
        return error_response(e, "checkout")
    except Exception:
        return error_response(StorageFailure(), "checkout")
