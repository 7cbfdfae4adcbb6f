# Overview: Access control guard; pure role checks over the request identity.

"""
Access Control Guard

The identity is resolved once per request from the session token
(see session_service.resolve_identity) and handed explicitly to every
service call. Services call one of the two guards below before any write;
neither guard touches the database.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import Forbidden, Unauthorized
from ..models import ROLE_ADMIN


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def require_authenticated(identity: Identity | None) -> Identity:
    if identity is None:
        raise Unauthorized("Login required")
    return identity


def require_admin(identity: Identity | None) -> Identity:
    identity = require_authenticated(identity)
    if not identity.is_admin:
        raise Forbidden("Admin required")
    return identity


def is_admin(identity: Identity | None) -> bool:
    return identity is not None and identity.is_admin
