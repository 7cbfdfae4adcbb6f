# Overview: Service-layer operations for the live catalog; admin curation and ownership-aware listing.

"""
Catalog Service

Ownership is never stored. A user owns an item iff one of their orders has
an order item for it; every listing recomputes that with an EXISTS subquery
so it cannot drift from the order ledger.

Booking codes are only revealed to admins and to owners.
"""

from __future__ import annotations

import logging

from sqlalchemy import exists, false, literal
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFound, ValidationFailed
from ..extensions import db
from ..models import CatalogItem, Order, OrderItem
from ..validation import ModelValidationPolicy, in_id_range, validate_payload
from .access_service import Identity, is_admin, require_admin
from .concurrency import run_in_transaction

logger = logging.getLogger(__name__)

CATALOG_POLICY = ModelValidationPolicy(
    writable_fields={
        "title", "booking_code", "price", "league", "description",
        "home_team", "away_team", "score",
    },
)


def _owned_clause(user_id: int):
    return exists().where(
        OrderItem.game_id == CatalogItem.id,
        OrderItem.order_id == Order.id,
        Order.user_id == user_id,
    )


def is_owned(user_id: int, item_id: int) -> bool:
    """True iff user_id has an order containing item_id."""
    return bool(
        db.session.query(
            exists().where(
                OrderItem.game_id == item_id,
                OrderItem.order_id == Order.id,
                Order.user_id == user_id,
            )
        ).scalar()
    )


def list_catalog(identity: Identity | None) -> list[dict]:
    """
    Newest first. Each row carries a derived "owned" flag; booking_code is
    null unless the caller is an admin or owns the item. Storage errors
    degrade to an empty list.
    """
    if identity is None:
        owned_col = false()
    elif identity.is_admin:
        owned_col = literal(True)
    else:
        owned_col = _owned_clause(identity.user_id)

    try:
        rows = (
            db.session.query(CatalogItem, owned_col.label("owned"))
            .order_by(CatalogItem.id.desc())
            .all()
        )
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Catalog listing failed")
        return []

    listing = []
    for item, owned in rows:
        owned = bool(owned)
        data = item.to_dict(include_booking_code=owned or is_admin(identity))
        data["owned"] = owned
        listing.append(data)
    return listing


def list_catalog_admin(identity: Identity | None) -> list[dict]:
    """Raw catalog for the admin console."""
    require_admin(identity)
    try:
        items = db.session.query(CatalogItem).order_by(CatalogItem.id.desc()).all()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Admin catalog listing failed")
        return []
    return [item.to_dict() for item in items]


def default_title(booking_code: str, home_team: str, away_team: str) -> str:
    if booking_code:
        return f"Booking Code: {booking_code}"
    return f"{home_team} vs {away_team}"


def create_item(identity: Identity | None, payload: dict) -> CatalogItem:
    """Direct admin insert into the live catalog."""
    require_admin(identity)
    patch = validate_payload(model=CatalogItem, payload=payload, policy=CATALOG_POLICY)

    booking_code = patch.get("booking_code", "")
    home_team = patch.get("home_team") or "-"
    away_team = patch.get("away_team") or "-"
    if not booking_code and home_team == "-" and away_team == "-" and not patch.get("title"):
        raise ValidationFailed("Booking code or teams required")

    item = CatalogItem(
        title=patch.get("title") or default_title(booking_code, home_team, away_team),
        booking_code=booking_code,
        price=patch.get("price", 0),
        league=patch.get("league") or "Booking Codes",
        description=patch.get("description", ""),
        home_team=home_team,
        away_team=away_team,
        score=patch.get("score") or "0:0",
    )

    def _op():
        db.session.add(item)
        db.session.flush()
        return item

    run_in_transaction(_op)
    logger.info("Catalog item %s created by user %s", item.id, identity.user_id)
    return item


def delete_item(identity: Identity | None, item_id: int) -> None:
    """
    Admin delete. Items that already appear on an order are kept: their
    order items are the ownership record.
    """
    require_admin(identity)

    def _op():
        item = db.session.get(CatalogItem, item_id) if in_id_range(item_id) else None
        if not item:
            raise NotFound("Game not found")
        if db.session.query(OrderItem.id).filter_by(game_id=item_id).first():
            raise ValidationFailed("Game has orders and cannot be deleted")
        db.session.delete(item)

    run_in_transaction(_op)
    logger.info("Catalog item %s deleted by user %s", item_id, identity.user_id)


def get_items(item_ids) -> dict[int, CatalogItem]:
    if not item_ids:
        return {}
    wanted = {item_id for item_id in item_ids if in_id_range(item_id)}
    if not wanted:
        return {}
    items = db.session.query(CatalogItem).filter(CatalogItem.id.in_(wanted)).all()
    return {item.id: item for item in items}
