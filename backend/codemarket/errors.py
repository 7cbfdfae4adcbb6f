# Overview: Domain error taxonomy shared by services and routes.

"""
Error taxonomy

Services raise these; blueprints catch them at the route boundary and turn
them into structured JSON failures via error_response(). Nothing here is
meant to reach Flask's generic 500 handler.

    Unauthorized        401  no session identity
    Forbidden           403  identity present, wrong role
    NotFound            404  referenced id absent
    NotApproved         409  recovery item still pending
    ValidationFailed    400  missing or malformed field
    VerificationFailed  402  gateway rejected, or amount/currency/status mismatch
    GatewayUnavailable  503  timeout or network failure talking to the provider
    StorageFailure      500  persistence error, message kept generic
"""

from __future__ import annotations

from flask import current_app, jsonify


class CodeMarketError(Exception):
    """Base class for business-rule failures reported to API callers."""

    code = "Error"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {"success": False, "error": self.code, "message": self.message}


class Unauthorized(CodeMarketError):
    code = "Unauthorized"
    status_code = 401
    default_message = "Login required"


class Forbidden(CodeMarketError):
    code = "Forbidden"
    status_code = 403
    default_message = "Admin required"


class NotFound(CodeMarketError):
    code = "NotFound"
    status_code = 404
    default_message = "Not found"


class NotApproved(CodeMarketError):
    code = "NotApproved"
    status_code = 409
    default_message = "Recovery game not approved"


class ValidationFailed(CodeMarketError):
    code = "ValidationFailed"
    status_code = 400
    default_message = "Invalid request"


class VerificationFailed(CodeMarketError):
    code = "VerificationFailed"
    status_code = 402
    default_message = "Payment verification failed"


class GatewayUnavailable(CodeMarketError):
    code = "GatewayUnavailable"
    status_code = 503
    default_message = "Payment provider unavailable, please retry"


class StorageFailure(CodeMarketError):
    code = "StorageFailure"
    status_code = 500
    default_message = "Something went wrong, please try again"


def error_response(exc: CodeMarketError, context: str | None = None):
    """
    Flask (body, status) tuple for a domain error.

    Call from inside the except block: storage failures are logged with the
    active traceback and the given context before the generic body is sent.
    """
    if isinstance(exc, StorageFailure):
        current_app.logger.exception("Storage failure: %s", context or "request")
    return jsonify(exc.to_dict()), exc.status_code
