# Overview: Service-layer operations for recovery staging; owns the recovery item state machine.

"""
Recovery Lifecycle Manager

================================================================================
PURPOSE: Vet low-trust, manually sourced booking codes before they reach
paying customers, without blocking normal catalog writes.
================================================================================

STATE MACHINE (per recovery item):

    add      ->  PENDING
    approve  :   PENDING  -> APPROVED      (APPROVED -> APPROVED is a no-op)
    import   :   APPROVED -> (imported)    copy to games, delete staging row
    delete   :   PENDING | APPROVED -> (deleted)

    imported and deleted are terminal and tagless: the staging row is gone,
    so any further approve/import/delete on that id is NotFound.

RULES:
1. Every mutation requires an admin identity, checked before any storage access
2. import of a PENDING item is NotApproved and changes nothing
3. import is one transaction: the catalog insert and the staging delete
   commit together or not at all
4. The approval state used by import is re-read inside that transaction
   (locked where the database supports it); a staging delete that matches
   zero rows means another import won, and the whole transaction rolls back
   as NotFound instead of double-inserting into the catalog
5. This module is the only code that reads or writes RecoveryItem.status
================================================================================
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotApproved, NotFound, ValidationFailed
from ..extensions import db
from ..models import CatalogItem, RecoveryItem, RecoveryStatus
from ..validation import in_id_range, parse_amount
from .access_service import Identity, is_admin, require_admin
from .concurrency import lock_for_update, run_in_transaction

logger = logging.getLogger(__name__)

RECOVERY_LEAGUE = "Booking Codes"


def _get_item(item_id: int, *, for_update: bool = False) -> RecoveryItem:
    if not in_id_range(item_id):
        raise NotFound("Recovery game not found")
    query = db.session.query(RecoveryItem).filter(RecoveryItem.id == item_id)
    if for_update:
        query = lock_for_update(query)
    item = query.first()
    if not item:
        raise NotFound("Recovery game not found")
    return item


def add_recovery_item(identity: Identity | None, booking_code, price=None) -> RecoveryItem:
    """
    Stage a booking code as PENDING.

    The code is trimmed and upper-cased; the remaining fields take the
    staging defaults (title "Booking Code: <CODE>", price 0 unless given).
    """
    require_admin(identity)

    code = str(booking_code or "").strip().upper()
    if not code:
        raise ValidationFailed("Booking code required")
    amount = parse_amount(price, "price") if price not in (None, "") else Decimal("0")

    item = RecoveryItem(
        title=f"Booking Code: {code}",
        booking_code=code,
        price=amount,
        league=RECOVERY_LEAGUE,
        description="",
        home_team="-",
        away_team="-",
        score="0:0",
        status=RecoveryStatus.PENDING,
    )

    def _op():
        db.session.add(item)
        db.session.flush()
        return item.id

    item_id = run_in_transaction(_op)
    logger.info("Recovery item %s staged by user %s", item_id, identity.user_id)
    return item


def approve_recovery_item(identity: Identity | None, item_id: int) -> RecoveryItem:
    """PENDING -> APPROVED. Approving twice is harmless (last write wins)."""
    require_admin(identity)

    def _op():
        item = _get_item(item_id)
        item.status = RecoveryStatus.APPROVED
        return item

    item = run_in_transaction(_op)
    logger.info("Recovery item %s approved by user %s", item_id, identity.user_id)
    return item


def import_recovery_item(identity: Identity | None, item_id: int) -> CatalogItem:
    """
    APPROVED -> imported.

    Returns the new catalog item. Raises NotFound if the staging row is
    absent (including a second import of the same id) and NotApproved if
    it is still PENDING; both leave staging and catalog untouched.
    """
    require_admin(identity)

    def _op():
        item = _get_item(item_id, for_update=True)
        if item.status != RecoveryStatus.APPROVED:
            raise NotApproved("Recovery game not approved")

        game = CatalogItem(
            title=item.title,
            booking_code=item.booking_code,
            price=item.price,
            league=item.league,
            description=item.description,
            home_team=item.home_team,
            away_team=item.away_team,
            score=item.score,
            created_at=item.created_at,
        )
        db.session.add(game)
        db.session.flush()

        result = db.session.execute(
            delete(RecoveryItem)
            .where(RecoveryItem.id == item_id)
            .where(RecoveryItem.status == RecoveryStatus.APPROVED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFound("Recovery game not found")

        db.session.expunge(item)
        return game

    game = run_in_transaction(_op)
    logger.info(
        "Recovery item %s imported as catalog item %s by user %s",
        item_id, game.id, identity.user_id,
    )
    return game


def delete_recovery_item(identity: Identity | None, item_id: int) -> None:
    """PENDING | APPROVED -> deleted, without touching the catalog."""
    require_admin(identity)
    if not in_id_range(item_id):
        raise NotFound("Recovery game not found")

    def _op():
        result = db.session.execute(
            delete(RecoveryItem)
            .where(RecoveryItem.id == item_id)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            raise NotFound("Recovery game not found")

    run_in_transaction(_op)
    logger.info("Recovery item %s deleted by user %s", item_id, identity.user_id)


def list_recovery_items(identity: Identity | None) -> list[dict]:
    """
    Admins see every staged row with all fields. Everyone else sees only
    APPROVED rows, without booking codes. Newest first; storage errors
    degrade to an empty list.
    """
    query = db.session.query(RecoveryItem)
    admin = is_admin(identity)
    if not admin:
        query = query.filter(RecoveryItem.status == RecoveryStatus.APPROVED)

    try:
        items = query.order_by(RecoveryItem.created_at.desc(), RecoveryItem.id.desc()).all()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Recovery listing failed")
        return []

    if admin:
        return [item.to_dict() for item in items]
    return [item.to_public_dict() for item in items]
