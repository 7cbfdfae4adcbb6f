# Overview: Flask API routes for the public catalog listing.

from flask import Blueprint, g, jsonify

from ..decorators import load_optional_identity
from ..services import catalog_service


games_bp = Blueprint("games", __name__, url_prefix="/api/games")


@games_bp.get("")
@load_optional_identity
def list_games_route():
    """
    Catalog, newest first. Every row has "owned"; booking_code is only
    filled in for owners and admins.
    """
    return jsonify(catalog_service.list_catalog(g.identity))
