from __future__ import annotations

import enum
from decimal import Decimal

from ..extensions import db
from codemarket.time_utils import to_utc_z
from .catalog import _money


class RecoveryStatus(str, enum.Enum):
    """
    Non-terminal states of a staged recovery item.

    The terminal states (imported, deleted) have no tag: the row is gone.
    Only the recovery service interprets or changes this value.
    """
    PENDING = "PENDING"
    APPROVED = "APPROVED"


class RecoveryItem(db.Model):
    """
    Candidate catalog item awaiting admin curation.

    LIFECYCLE:
        PENDING -> APPROVED -> (imported: copied to games, row deleted)
        PENDING | APPROVED -> (deleted: row removed, nothing copied)

    Structurally mirrors CatalogItem so that import is a straight copy.
    """
    __tablename__ = "recovery_games"
    __table_args__ = (
        db.Index("ix_recovery_games_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(255), nullable=False)
    booking_code = db.Column(db.String(128), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))
    league = db.Column(db.String(128), nullable=False, default="Booking Codes")
    description = db.Column(db.Text, nullable=False, default="")
    home_team = db.Column(db.String(128), nullable=False, default="-")
    away_team = db.Column(db.String(128), nullable=False, default="-")
    score = db.Column(db.String(32), nullable=False, default="0:0")

    status = db.Column(
        db.Enum(RecoveryStatus, name="recovery_status", native_enum=False, length=16),
        nullable=False,
        default=RecoveryStatus.PENDING,
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def approved(self) -> bool:
        return self.status == RecoveryStatus.APPROVED

    def __repr__(self) -> str:
        return f"<RecoveryItem id={self.id} status={self.status.value if self.status else None}>"

    def to_dict(self) -> dict:
        """Full admin view."""
        return {
            "id": self.id,
            "title": self.title,
            "booking_code": self.booking_code,
            "price": _money(self.price),
            "league": self.league,
            "description": self.description,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "score": self.score,
            "status": self.status.value,
            "approved": self.approved,
            "created_at": to_utc_z(self.created_at),
        }

    def to_public_dict(self) -> dict:
        """Restricted view for non-admins: no booking code before purchase."""
        return {
            "id": self.id,
            "title": self.title,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "price": _money(self.price),
            "approved": self.approved,
            "created_at": to_utc_z(self.created_at),
        }
