# Overview: Service-layer operations for the order ledger; orders and their items.

"""
Order Ledger

Orders are immutable. record_order() only stages rows in the current
session; the caller (checkout_service) owns the transaction, so an order
and all of its items are committed together or not at all.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import selectinload

from ..errors import Forbidden, NotFound
from ..extensions import db
from ..models import Order, OrderItem
from ..validation import in_id_range
from .access_service import Identity, require_authenticated


def record_order(
    *,
    user_id: int,
    lines: Iterable,
    total: Decimal,
    payment_reference: str | None = None,
) -> Order:
    """
    Add one Order and one OrderItem per cart line to the session and flush.

    lines: objects with item_id and quantity attributes (CartLine).
    Does not commit.
    """
    order = Order(user_id=user_id, total=total, payment_reference=payment_reference)
    db.session.add(order)
    db.session.flush()

    for line in lines:
        db.session.add(OrderItem(order_id=order.id, game_id=line.item_id, quantity=line.quantity))
    db.session.flush()
    return order


def list_orders(identity: Identity | None) -> list[Order]:
    """The caller's own orders, newest first, items preloaded."""
    identity = require_authenticated(identity)
    return (
        db.session.query(Order)
        .options(selectinload(Order.items))
        .filter(Order.user_id == identity.user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def get_order(identity: Identity | None, order_id: int) -> Order:
    """Single order; visible to its owner and to admins."""
    identity = require_authenticated(identity)
    order = db.session.get(Order, order_id) if in_id_range(order_id) else None
    if not order:
        raise NotFound("Order not found")
    if order.user_id != identity.user_id and not identity.is_admin:
        raise Forbidden("Not your order")
    return order
