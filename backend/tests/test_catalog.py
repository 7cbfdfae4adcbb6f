"""
Catalog tests: derived ownership, booking-code visibility, admin curation.
"""

from decimal import Decimal

import pytest

from codemarket.errors import Forbidden, NotFound, ValidationFailed
from codemarket.extensions import db
from codemarket.models import CatalogItem
from codemarket.services import catalog_service, checkout_service


def _row(listing, game_id):
    return next(r for r in listing if r["id"] == game_id)


class TestOwnership:

    def test_owned_flips_after_order(self, make_game, gateway, buyer_identity):
        game = make_game("OWN1", "5.00")

        before = _row(catalog_service.list_catalog(buyer_identity), game.id)
        assert before["owned"] is False
        assert before["booking_code"] is None
        assert catalog_service.is_owned(buyer_identity.user_id, game.id) is False

        gateway.succeed("R1", 500)
        checkout_service.checkout(buyer_identity, [{"id": game.id, "qty": 1}], "5", "R1")

        after = _row(catalog_service.list_catalog(buyer_identity), game.id)
        assert after["owned"] is True
        assert after["booking_code"] == "OWN1"
        assert catalog_service.is_owned(buyer_identity.user_id, game.id) is True

        stored = db.session.get(CatalogItem, game.id)
        assert not hasattr(stored, "owned")

    def test_ownership_is_per_user(self, make_game, gateway, buyer_identity, other_identity):
        game = make_game("OWN2", "5.00")
        gateway.succeed("R2", 500)
        checkout_service.checkout(buyer_identity, [{"id": game.id, "qty": 1}], "5", "R2")

        row = _row(catalog_service.list_catalog(other_identity), game.id)
        assert row["owned"] is False
        assert row["booking_code"] is None

    def test_anonymous_never_sees_codes(self, make_game):
        game = make_game("ANON", "1.00")
        row = _row(catalog_service.list_catalog(None), game.id)
        assert row["owned"] is False
        assert row["booking_code"] is None

    def test_admin_sees_codes(self, make_game, admin_identity):
        game = make_game("ADM1", "1.00")
        row = _row(catalog_service.list_catalog(admin_identity), game.id)
        assert row["booking_code"] == "ADM1"

    def test_games_endpoint(self, client, make_game, buyer_headers):
        older = make_game("G1", "1.00")
        newer = make_game("G2", "2.00")
        rows = client.get("/api/games", headers=buyer_headers).get_json()
        assert [r["id"] for r in rows] == [newer.id, older.id]
        assert all(r["booking_code"] is None for r in rows)


class TestListingStorageErrors:
    """Listings answer an empty list rather than an error when storage fails."""

    @pytest.mark.parametrize("who", ["anonymous", "buyer", "admin"])
    def test_service_returns_empty(self, make_game, buyer_identity, admin_identity, database_down, who):
        make_game("DOWN1", "1.00")
        identity = {"anonymous": None, "buyer": buyer_identity, "admin": admin_identity}[who]
        database_down("games")

        assert catalog_service.list_catalog(identity) == []

    def test_endpoint_returns_empty(self, client, make_game, buyer_headers, database_down):
        make_game("DOWN2", "1.00")
        database_down("games")

        resp = client.get("/api/games", headers=buyer_headers)

        assert resp.status_code == 200
        assert resp.get_json() == []

    def test_unreadable_sessions_served_as_anonymous(self, client, make_game, buyer_headers, database_down):
        game_id = make_game("DOWN3", "1.00").id
        database_down("session_tokens")

        resp = client.get("/api/games", headers=buyer_headers)

        assert resp.status_code == 200
        rows = resp.get_json()
        assert [r["id"] for r in rows] == [game_id]
        assert rows[0]["owned"] is False
        assert rows[0]["booking_code"] is None

    def test_database_unreachable_with_token(self, client, make_game, buyer_headers, database_down):
        make_game("DOWN4", "1.00")
        database_down()

        resp = client.get("/api/games", headers=buyer_headers)

        assert resp.status_code == 200
        assert resp.get_json() == []


class TestCatalogCuration:

    def test_create_with_code(self, db_session, admin_identity):
        item = catalog_service.create_item(admin_identity, {"booking_code": "NEW1", "price": "7.5"})
        assert item.title == "Booking Code: NEW1"
        assert item.price == Decimal("7.50")
        assert item.league == "Booking Codes"

    def test_create_with_teams(self, db_session, admin_identity):
        item = catalog_service.create_item(
            admin_identity,
            {"home_team": "Hearts", "away_team": "Kotoko", "booking_code": ""},
        )
        assert item.title == "Hearts vs Kotoko"

    def test_create_needs_code_or_teams(self, db_session, admin_identity):
        with pytest.raises(ValidationFailed):
            catalog_service.create_item(admin_identity, {"price": 3})

    def test_create_forbidden_for_user(self, db_session, buyer_identity):
        with pytest.raises(Forbidden):
            catalog_service.create_item(buyer_identity, {"booking_code": "X"})

    def test_delete(self, make_game, admin_identity):
        game_id = make_game("DEL1").id
        catalog_service.delete_item(admin_identity, game_id)
        assert db.session.get(CatalogItem, game_id) is None

    @pytest.mark.parametrize("game_id", [777777, 2**63])
    def test_delete_unknown(self, db_session, admin_identity, game_id):
        with pytest.raises(NotFound):
            catalog_service.delete_item(admin_identity, game_id)

    def test_delete_refused_once_ordered(self, make_game, gateway, admin_identity, buyer_identity):
        game = make_game("SOLD", "5.00")
        gateway.succeed("R3", 500)
        checkout_service.checkout(buyer_identity, [{"id": game.id, "qty": 1}], "5", "R3")

        with pytest.raises(ValidationFailed):
            catalog_service.delete_item(admin_identity, game.id)
        assert db.session.get(CatalogItem, game.id) is not None


class TestAdminRoutes:

    def test_list_and_add(self, client, admin_headers):
        resp = client.post("/api/admin", json={"action": "add", "booking_code": "WEB1", "price": 3}, headers=admin_headers)
        assert resp.get_json()["success"] is True

        rows = client.get("/api/admin?action=list", headers=admin_headers).get_json()
        assert [r["booking_code"] for r in rows] == ["WEB1"]

    def test_delete_route(self, client, admin_headers, make_game):
        game = make_game("WEB2")
        resp = client.post("/api/admin", json={"action": "delete", "id": game.id}, headers=admin_headers)
        assert resp.get_json() == {"success": True}

    def test_delete_route_id_past_column_range(self, client, admin_headers):
        resp = client.post("/api/admin", json={"action": "delete", "id": 2**63}, headers=admin_headers)
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "NotFound"

    def test_invalid_action(self, client, admin_headers):
        resp = client.post("/api/admin", json={"action": "explode"}, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Invalid action"

    @pytest.mark.parametrize("method,path", [
        ("GET", "/api/admin?action=list"),
        ("POST", "/api/admin"),
        ("POST", "/api/admin/make-admin"),
        ("POST", "/api/admin/make-user"),
    ])
    def test_user_forbidden(self, client, buyer_headers, method, path):
        resp = getattr(client, method.lower())(path, headers=buyer_headers, **({"json": {"action": "add"}} if method == "POST" else {}))
        assert resp.status_code == 403

    def test_make_admin_and_back(self, client, admin_headers, buyer):
        resp = client.post("/api/admin/make-admin", json={"email": "KOFI@codemarket.test"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["user"]["role"] == "admin"

        resp = client.post("/api/admin/make-user", json={"email": buyer.email}, headers=admin_headers)
        assert resp.get_json()["user"]["role"] == "user"

    def test_make_admin_unknown_email(self, client, admin_headers):
        resp = client.post("/api/admin/make-admin", json={"email": "ghost@codemarket.test"}, headers=admin_headers)
        assert resp.status_code == 404
