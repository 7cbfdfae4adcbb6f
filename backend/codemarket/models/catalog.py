from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from codemarket.time_utils import to_utc_z


def _money(value) -> str | None:
    if value is None:
        return None
    return str(Decimal(value).quantize(Decimal("0.01")))


class CatalogItem(db.Model):
    """
    Purchasable booking code ("game") in the live catalog.

    WHY: This is the unit customers pay for. Rows arrive either by direct
    admin insert or by importing an approved recovery item, and are never
    edited afterwards; the only mutation is delete.

    OWNERSHIP: There is deliberately no "owned" column. Whether a user owns
    an item is derived from orders at query time (see catalog_service).
    """
    __tablename__ = "games"
    __table_args__ = (
        db.CheckConstraint("price >= 0", name="price_non_negative"),
        db.Index("ix_games_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(255), nullable=False)
    booking_code = db.Column(db.String(128), nullable=False, index=True)

    # Major currency units (e.g. cedis), two decimal places
    price = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))

    league = db.Column(db.String(128), nullable=False, default="Booking Codes")
    description = db.Column(db.Text, nullable=False, default="")
    home_team = db.Column(db.String(128), nullable=False, default="-")
    away_team = db.Column(db.String(128), nullable=False, default="-")
    score = db.Column(db.String(32), nullable=False, default="0:0")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<CatalogItem id={self.id} title={self.title!r}>"

    def to_dict(self, *, include_booking_code: bool = True) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "booking_code": self.booking_code if include_booking_code else None,
            "price": _money(self.price),
            "league": self.league,
            "description": self.description,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "score": self.score,
            "created_at": to_utc_z(self.created_at),
        }
