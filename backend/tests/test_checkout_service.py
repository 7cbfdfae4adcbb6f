"""
Checkout orchestration tests.

Verifies:
- cart validation and duplicate-line merging
- provider status / amount / currency checks
- atomic order commit and single use of a payment reference
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from codemarket.errors import (
    GatewayUnavailable,
    NotFound,
    StorageFailure,
    Unauthorized,
    ValidationFailed,
    VerificationFailed,
)
from codemarket.extensions import db
from codemarket.models import Order, OrderItem, PaymentVerification
from codemarket.services import checkout_service, order_service
from codemarket.services.checkout_service import CartLine


@pytest.fixture
def games(make_game):
    return make_game("CODE1", "20.00"), make_game("CODE2", "10.00")


def _cart(games):
    first, second = games
    return [{"id": first.id, "qty": 2}, {"id": second.id, "qty": 1}]


class TestParseCart:

    def test_accepts_qty_and_quantity(self):
        lines = checkout_service.parse_cart([{"id": 3, "qty": 2}, {"id": "4", "quantity": 1}])
        assert lines == (CartLine(3, 2), CartLine(4, 1))

    def test_merges_duplicate_ids(self):
        lines = checkout_service.parse_cart([{"id": 3, "qty": 1}, {"id": 4, "qty": 1}, {"id": 3, "qty": 2}])
        assert lines == (CartLine(3, 3), CartLine(4, 1))

    @pytest.mark.parametrize("items", [
        None,
        [],
        "not-a-list",
        [{"id": 1}],
        [{"id": 1, "qty": 0}],
        [{"id": 1, "qty": 1.5}],
        [{"id": "x", "qty": 1}],
        [{"id": True, "qty": 1}],
        [{"id": 1, "qty": 2**63}],
        ["junk"],
    ])
    def test_rejects_malformed(self, items):
        with pytest.raises(ValidationFailed):
            checkout_service.parse_cart(items)


class TestInitiateCheckout:

    def test_requires_login(self, games):
        with pytest.raises(Unauthorized):
            checkout_service.initiate_checkout(None, _cart(games), "50")

    def test_expected_amount_in_minor_units(self, games, buyer_identity):
        pending = checkout_service.initiate_checkout(buyer_identity, _cart(games), "50")
        assert pending.total == Decimal("50.00")
        assert pending.expected_amount_minor == 5000
        assert pending.currency == "GHS"

    @pytest.mark.parametrize("item_id", [999999, 2**63])
    def test_unknown_item(self, games, buyer_identity, item_id):
        with pytest.raises(NotFound):
            checkout_service.initiate_checkout(buyer_identity, [{"id": item_id, "qty": 1}], "5")

    @pytest.mark.parametrize("total", [None, "", "abc", "-1", True])
    def test_bad_total(self, games, buyer_identity, total):
        with pytest.raises(ValidationFailed):
            checkout_service.initiate_checkout(buyer_identity, _cart(games), total)

    def test_client_total_trusted_by_default(self, games, buyer_identity):
        pending = checkout_service.initiate_checkout(buyer_identity, _cart(games), "1.00")
        assert pending.total == Decimal("1.00")

    def test_enforced_catalog_total(self, app, games, buyer_identity):
        app.config["CHECKOUT_ENFORCE_CATALOG_TOTAL"] = True
        try:
            with pytest.raises(ValidationFailed):
                checkout_service.initiate_checkout(buyer_identity, _cart(games), "1.00")
            pending = checkout_service.initiate_checkout(buyer_identity, _cart(games), "50")
            assert pending.total == Decimal("50.00")
        finally:
            app.config["CHECKOUT_ENFORCE_CATALOG_TOTAL"] = False


class TestVerifyPayment:

    def test_success_records_verification(self, db_session, gateway, buyer_identity):
        gateway.succeed("REF-1", 5000)
        verification = checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")

        assert verification.user_id == buyer_identity.user_id
        assert verification.amount_minor == 5000
        assert verification.consumed is False
        assert gateway.calls == ["REF-1"]

    def test_amount_off_by_one(self, db_session, gateway, buyer_identity):
        gateway.succeed("REF-1", 4999)
        with pytest.raises(VerificationFailed) as exc:
            checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")
        assert exc.value.message == "Amount mismatch"
        assert db_session.query(PaymentVerification).count() == 0

    def test_currency_case_insensitive(self, db_session, gateway, buyer_identity):
        gateway.succeed("REF-1", 5000, currency="ghs")
        checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")

    def test_currency_mismatch(self, db_session, gateway, buyer_identity):
        gateway.succeed("REF-1", 5000, currency="NGN")
        with pytest.raises(VerificationFailed):
            checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")

    def test_missing_provider_currency_fails_closed(self, db_session, gateway, buyer_identity):
        gateway.succeed("REF-1", 5000, currency="")
        with pytest.raises(VerificationFailed):
            checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")

    @pytest.mark.parametrize("status", ["failed", "abandoned", "pending", ""])
    def test_unsuccessful_status(self, db_session, gateway, buyer_identity, status):
        gateway.succeed("REF-1", 5000, status=status)
        with pytest.raises(VerificationFailed):
            checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")

    def test_gateway_unavailable_propagates(self, db_session, gateway, buyer_identity):
        gateway.fail_with("REF-1", GatewayUnavailable("Payment provider timed out"))
        with pytest.raises(GatewayUnavailable):
            checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")
        assert db_session.query(PaymentVerification).count() == 0

    def test_missing_reference(self, db_session, gateway, buyer_identity):
        with pytest.raises(ValidationFailed):
            checkout_service.verify_payment(buyer_identity, "  ", 5000, "GHS")
        assert gateway.calls == []

    def test_reverify_is_idempotent(self, db_session, gateway, buyer_identity):
        gateway.succeed("REF-1", 5000)
        first = checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")
        second = checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")
        assert first.id == second.id
        assert db_session.query(PaymentVerification).count() == 1

    def test_anonymous_verification_claimed_later(self, db_session, gateway, buyer_identity):
        gateway.succeed("REF-1", 5000)
        anonymous = checkout_service.verify_payment(None, "REF-1", 5000, "GHS")
        assert anonymous.user_id is None
        claimed = checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")
        assert claimed.user_id == buyer_identity.user_id

    def test_reference_of_another_user(self, db_session, gateway, buyer_identity, other_identity):
        gateway.succeed("REF-1", 5000)
        checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")
        with pytest.raises(VerificationFailed):
            checkout_service.verify_payment(other_identity, "REF-1", 5000, "GHS")


class TestCommitOrder:

    def _pending(self, identity, games, total="50"):
        return checkout_service.initiate_checkout(identity, _cart(games), total)

    def test_order_with_items(self, games, gateway, buyer_identity):
        gateway.succeed("REF-1", 5000)
        checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")

        order = checkout_service.commit_order(buyer_identity, self._pending(buyer_identity, games), "REF-1")

        assert db.session.query(Order).count() == 1
        stored = db.session.get(Order, order.id)
        assert stored.total == Decimal("50.00")
        assert stored.user_id == buyer_identity.user_id
        assert stored.payment_reference == "REF-1"

        items = db.session.query(OrderItem).filter_by(order_id=order.id).order_by(OrderItem.id).all()
        assert [(i.game_id, i.quantity) for i in items] == [(games[0].id, 2), (games[1].id, 1)]

        verification = db.session.query(PaymentVerification).filter_by(reference="REF-1").one()
        assert verification.order_id == order.id

    def test_unverified_reference(self, games, gateway, buyer_identity):
        with pytest.raises(VerificationFailed):
            checkout_service.commit_order(buyer_identity, self._pending(buyer_identity, games), "NOPE")
        assert db.session.query(Order).count() == 0

    def test_reference_used_once(self, games, gateway, buyer_identity):
        gateway.succeed("REF-1", 5000)
        checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")
        pending = self._pending(buyer_identity, games)
        checkout_service.commit_order(buyer_identity, pending, "REF-1")

        with pytest.raises(ValidationFailed) as exc:
            checkout_service.commit_order(buyer_identity, pending, "REF-1")
        assert exc.value.message == "Payment reference already used"
        assert db.session.query(Order).count() == 1

    def test_amount_must_match_verification(self, games, gateway, buyer_identity):
        gateway.succeed("REF-1", 100)
        checkout_service.verify_payment(buyer_identity, "REF-1", 100, "GHS")
        with pytest.raises(VerificationFailed):
            checkout_service.commit_order(buyer_identity, self._pending(buyer_identity, games), "REF-1")
        assert db.session.query(Order).count() == 0

    def test_other_users_reference(self, games, gateway, buyer_identity, other_identity):
        gateway.succeed("REF-1", 5000)
        checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")
        with pytest.raises(VerificationFailed):
            checkout_service.commit_order(other_identity, self._pending(other_identity, games), "REF-1")

    def test_failure_midway_rolls_back_everything(self, games, gateway, buyer_identity, monkeypatch):
        gateway.succeed("REF-1", 5000)
        checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")
        pending = self._pending(buyer_identity, games)

        real_record = order_service.record_order

        def _record_then_fail(**kwargs):
            real_record(**kwargs)
            raise OperationalError("INSERT", {}, Exception("database is locked"))

        monkeypatch.setattr(order_service, "record_order", _record_then_fail)
        monkeypatch.setattr("codemarket.services.concurrency.time.sleep", lambda seconds: None)

        with pytest.raises(StorageFailure):
            checkout_service.commit_order(buyer_identity, pending, "REF-1")

        assert db.session.query(Order).count() == 0
        assert db.session.query(OrderItem).count() == 0
        verification = db.session.query(PaymentVerification).filter_by(reference="REF-1").one()
        assert verification.consumed is False

    def test_item_delisted_after_initiate(self, games, gateway, buyer_identity):
        gateway.succeed("REF-1", 5000)
        checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")
        pending = self._pending(buyer_identity, games)
        db.session.delete(games[1])
        db.session.commit()

        with pytest.raises(NotFound):
            checkout_service.commit_order(buyer_identity, pending, "REF-1")

        assert db.session.query(Order).count() == 0
        assert db.session.query(OrderItem).count() == 0
        verification = db.session.query(PaymentVerification).filter_by(reference="REF-1").one()
        assert verification.consumed is False

    @pytest.mark.parametrize("detail, expected", [
        ("UNIQUE constraint failed: orders.payment_reference", ValidationFailed),
        ("FOREIGN KEY constraint failed", StorageFailure),
        ("NOT NULL constraint failed: order_items.quantity", StorageFailure),
    ])
    def test_integrity_errors_by_constraint(self, games, gateway, buyer_identity, monkeypatch, detail, expected):
        gateway.succeed("REF-1", 5000)
        checkout_service.verify_payment(buyer_identity, "REF-1", 5000, "GHS")
        pending = self._pending(buyer_identity, games)

        def _violate(**kwargs):
            raise IntegrityError("INSERT", {}, Exception(detail))

        monkeypatch.setattr(order_service, "record_order", _violate)

        with pytest.raises(expected):
            checkout_service.commit_order(buyer_identity, pending, "REF-1")

        assert db.session.query(Order).count() == 0
        verification = db.session.query(PaymentVerification).filter_by(reference="REF-1").one()
        assert verification.consumed is False


class TestCheckout:

    def test_one_shot(self, games, gateway, buyer_identity):
        gateway.succeed("REF-9", 5000)
        order = checkout_service.checkout(buyer_identity, _cart(games), "50", "REF-9", "GHS")
        assert db.session.get(Order, order.id).payment_reference == "REF-9"

    def test_mismatch_creates_nothing(self, games, gateway, buyer_identity):
        gateway.succeed("REF-9", 4999)
        with pytest.raises(VerificationFailed):
            checkout_service.checkout(buyer_identity, _cart(games), "50", "REF-9", "GHS")
        assert db.session.query(Order).count() == 0
        assert db.session.query(PaymentVerification).count() == 0
