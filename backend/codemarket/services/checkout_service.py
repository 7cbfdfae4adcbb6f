# Overview: Checkout orchestration; payment verification followed by atomic order creation.

"""
Checkout Orchestrator

The client drives a two-phase flow because the card/mobile-money capture
happens inside the provider's widget:

    1. initiate  validate the cart snapshot, compute the expected charge
                 (no side effects, the client keeps the pending state)
    2. verify    ask the gateway about the reference; status must be
                 "success", amount must match exactly, currency must match
                 ignoring case. The verified reference is recorded.
    3. commit    in ONE transaction: consume the verification, re-check that
                 every item is still listed, insert the order and every
                 order item. Any failure rolls back all of it.

Steps 1 and 2 are safe to retry. A reference can back at most one order.

Client totals are trusted by default. With CHECKOUT_ENFORCE_CATALOG_TOTAL
the total is recomputed from current catalog prices and must agree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, ValidationFailed, VerificationFailed
from ..extensions import db
from ..models import Order, PaymentVerification
from ..validation import parse_amount, parse_int, to_minor_units
from . import catalog_service, order_service
from .access_service import Identity, require_authenticated
from .concurrency import lock_for_update, run_in_transaction
from .paystack_client import GatewayTransaction, PaymentGateway, get_gateway

logger = logging.getLogger(__name__)

PROVIDER_SUCCESS = "success"


@dataclass(frozen=True)
class CartLine:
    item_id: int
    quantity: int


@dataclass(frozen=True)
class PendingCheckout:
    lines: tuple[CartLine, ...]
    total: Decimal
    currency: str

    @property
    def expected_amount_minor(self) -> int:
        return to_minor_units(self.total)


def _default_currency() -> str:
    return current_app.config.get("PAYSTACK_CURRENCY", "GHS")


def _clean_reference(reference) -> str:
    reference = str(reference or "").strip()
    if not reference:
        raise ValidationFailed("Missing reference")
    if len(reference) > 128:
        raise ValidationFailed("reference exceeds max length 128")
    return reference


def parse_cart(items) -> tuple[CartLine, ...]:
    """
    [{id, qty}, ...] -> CartLines. Repeated ids are merged by summing their
    quantities, keeping first-seen order.
    """
    if not isinstance(items, list) or not items:
        raise ValidationFailed("No items provided")

    quantities: dict[int, int] = {}
    for index, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationFailed(f"Item {index} must be an object")
        item_id = parse_int(raw.get("id"), f"items[{index}].id", minimum=1, maximum=None)
        quantity = parse_int(raw.get("qty", raw.get("quantity")), f"items[{index}].qty", minimum=1)
        quantities[item_id] = quantities.get(item_id, 0) + quantity

    return tuple(CartLine(item_id=i, quantity=q) for i, q in quantities.items())


def _require_catalog_items(lines) -> dict:
    catalog = catalog_service.get_items([line.item_id for line in lines])
    for line in lines:
        if line.item_id not in catalog:
            raise NotFound(f"Game {line.item_id} not found")
    return catalog


def _is_reference_conflict(exc: IntegrityError) -> bool:
    """True if the violated constraint is the unique orders.payment_reference."""
    return "payment_reference" in str(exc.orig)


def initiate_checkout(identity: Identity | None, items, total, currency=None) -> PendingCheckout:
    """Phase 1. Raises ValidationFailed / NotFound; writes nothing."""
    require_authenticated(identity)

    lines = parse_cart(items)
    amount = parse_amount(total, "total")
    currency = str(currency or _default_currency()).strip().upper()

    catalog = _require_catalog_items(lines)

    if current_app.config.get("CHECKOUT_ENFORCE_CATALOG_TOTAL"):
        expected = sum(
            (Decimal(catalog[line.item_id].price) * line.quantity for line in lines),
            Decimal("0"),
        )
        if expected.quantize(Decimal("0.01")) != amount:
            raise ValidationFailed("Total does not match catalog prices")

    return PendingCheckout(lines=lines, total=amount, currency=currency)


def check_transaction(tx: GatewayTransaction, expected_amount_minor: int | None, currency: str) -> None:
    """
    Fail closed on any disagreement between provider and expectation.

    expected_amount_minor=None skips the amount check; commit_order still
    compares the recorded amount against the order before consuming it.
    """
    if tx.status != PROVIDER_SUCCESS:
        raise VerificationFailed("Payment not successful")
    if expected_amount_minor is not None and tx.amount_minor != expected_amount_minor:
        raise VerificationFailed("Amount mismatch")
    if tx.currency.upper() != currency.upper():
        raise VerificationFailed("Currency mismatch")


def verify_payment(
    identity: Identity | None,
    reference,
    expected_amount,
    currency=None,
    *,
    gateway: PaymentGateway | None = None,
) -> PaymentVerification:
    """
    Phase 2. Confirms the reference with the provider and records it.

    expected_amount is in minor units and optional. Raises ValidationFailed,
    VerificationFailed or GatewayUnavailable. Re-verifying a reference that
    is already recorded returns the existing record.
    """
    reference = _clean_reference(reference)
    expected = None
    if expected_amount not in (None, ""):
        expected = parse_int(expected_amount, "expected_amount", minimum=0)
    currency = str(currency or _default_currency()).strip()

    tx = (gateway or get_gateway()).fetch_transaction(reference)
    try:
        check_transaction(tx, expected, currency)
    except VerificationFailed as exc:
        logger.info("Payment %s rejected: %s", reference, exc)
        raise

    user_id = identity.user_id if identity else None

    def _op():
        existing = (
            db.session.query(PaymentVerification)
            .filter(PaymentVerification.reference == reference)
            .first()
        )
        if existing:
            if existing.user_id is not None and user_id is not None and existing.user_id != user_id:
                raise VerificationFailed("Payment reference belongs to another account")
            if existing.user_id is None:
                existing.user_id = user_id
            return existing

        verification = PaymentVerification(
            reference=reference,
            user_id=user_id,
            amount_minor=tx.amount_minor,
            currency=tx.currency.upper(),
        )
        db.session.add(verification)
        db.session.flush()
        return verification

    verification = run_in_transaction(_op)
    logger.info("Payment %s verified for %s %s", reference, tx.amount_minor, tx.currency.upper())
    return verification


def commit_order(identity: Identity | None, pending: PendingCheckout, reference) -> Order:
    """
    Phase 3. Consumes a verified reference and writes the order with all
    of its items in a single transaction.
    """
    identity = require_authenticated(identity)
    reference = _clean_reference(reference)

    def _op():
        verification = lock_for_update(
            db.session.query(PaymentVerification).filter(PaymentVerification.reference == reference)
        ).first()
        if not verification:
            raise VerificationFailed("Payment has not been verified")
        if verification.user_id is not None and verification.user_id != identity.user_id:
            raise VerificationFailed("Payment reference belongs to another account")
        if verification.consumed:
            raise ValidationFailed("Payment reference already used")
        if verification.amount_minor != pending.expected_amount_minor:
            raise VerificationFailed("Amount mismatch")
        if verification.currency.upper() != pending.currency.upper():
            raise VerificationFailed("Currency mismatch")

        # the catalog may have changed since initiate
        _require_catalog_items(pending.lines)

        try:
            order = order_service.record_order(
                user_id=identity.user_id,
                lines=pending.lines,
                total=pending.total,
                payment_reference=reference,
            )
        except IntegrityError as exc:
            if _is_reference_conflict(exc):
                raise ValidationFailed("Payment reference already used") from exc
            raise

        verification.order_id = order.id
        verification.user_id = identity.user_id
        return order

    order = run_in_transaction(_op)
    logger.info("Order %s committed for user %s (%s lines)", order.id, identity.user_id, len(pending.lines))
    return order


def checkout(
    identity: Identity | None,
    items,
    total,
    reference,
    currency=None,
    *,
    gateway: PaymentGateway | None = None,
) -> Order:
    """initiate -> verify -> commit in one call."""
    pending = initiate_checkout(identity, items, total, currency)
    verify_payment(
        identity,
        reference,
        pending.expected_amount_minor,
        pending.currency,
        gateway=gateway,
    )
    return commit_order(identity, pending, reference)
