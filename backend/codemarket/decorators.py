# Overview: Request decorators for API routes; resolves the caller's identity.

from functools import wraps

from flask import current_app, g, request
from sqlalchemy.exc import SQLAlchemyError

from .errors import StorageFailure, error_response
from .extensions import db
from .services import session_service


def bearer_token() -> str | None:
    """Token from "Authorization: Bearer <token>", or None."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def load_identity(f):
    """
    Resolve the session token once and store the result on g.identity.

    Anonymous callers get g.identity = None; the services decide whether
    that is acceptable. The request is only short-circuited when the session
    store cannot be read, with a logged StorageFailure body.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.identity = session_service.resolve_identity(bearer_token())
        except SQLAlchemyError:
            db.session.rollback()
            g.identity = None
            return error_response(StorageFailure(), f"identity lookup for {request.path}")
        return f(*args, **kwargs)

    return decorated_function


def load_optional_identity(f):
    """
    Like load_identity, for read-only listings: if the session store is
    unreachable the caller is served as anonymous instead of failing.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.identity = session_service.resolve_identity(bearer_token())
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception("Identity lookup failed for %s; serving as anonymous", request.path)
            g.identity = None
        return f(*args, **kwargs)

    return decorated_function


def json_body() -> dict:
    """Request JSON object; anything else (missing, malformed, a list) reads as {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
