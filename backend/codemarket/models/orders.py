from __future__ import annotations

from ..extensions import db
from codemarket.time_utils import to_utc_z
from .catalog import _money


class Order(db.Model):
    """
    Completed purchase owned by exactly one user.

    WHY: The order ledger is the single source of truth for ownership.
    Orders and their items are written once, in one transaction, and never
    updated afterwards.

    payment_reference is the provider reference that paid for the order.
    It is unique so the same payment can never back two orders.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Client-submitted total, major currency units
    total = db.Column(db.Numeric(12, 2), nullable=False)

    payment_reference = db.Column(db.String(128), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    items = db.relationship("OrderItem", backref="order", lazy=True, order_by="OrderItem.id")

    def to_dict(self, *, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "total": _money(self.total),
            "payment_reference": self.payment_reference,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """One cart line of an order. Never created without its parent."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="quantity_positive"),
        db.Index("ix_order_items_game_order", "game_id", "order_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    game_id = db.Column(db.Integer, db.ForeignKey("games.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    game = db.relationship("CatalogItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "game_id": self.game_id,
            "quantity": self.quantity,
        }


class PaymentVerification(db.Model):
    """
    Successful provider verification of a client-initiated payment.

    WHY: The payment is captured inside the provider's widget, outside this
    process. A row here is the server's evidence that a reference was paid
    for a given amount; the checkout commit consumes it (order_id set)
    inside the same transaction that writes the order.
    """
    __tablename__ = "payment_verifications"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    reference = db.Column(db.String(128), nullable=False, unique=True)

    # Nullable: verification may run before login in legacy clients
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # Minor units as reported by the provider (pesewas/kobo)
    amount_minor = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(8), nullable=False)

    verified_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)

    @property
    def consumed(self) -> bool:
        return self.order_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reference": self.reference,
            "user_id": self.user_id,
            "amount_minor": self.amount_minor,
            "currency": self.currency,
            "verified_at": to_utc_z(self.verified_at),
            "order_id": self.order_id,
        }
