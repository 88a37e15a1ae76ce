from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .base import num_to_json


class PriceBook(db.Model):
    """
    Versioned price list.

    station_id NULL means a global book that applies to every station.
    Only ACTIVE books whose effective window covers a date are used for pricing.
    """
    __tablename__ = "price_books"
    __table_args__ = (
        db.Index("ix_price_books_lookup", "status", "station_id", "effective_from"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="DRAFT")  # DRAFT, ACTIVE, ARCHIVED
    effective_from = db.Column(db.Date, nullable=False)
    effective_to = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship("PriceBookLine", backref="price_book", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "station_id": self.station_id,
            "status": self.status,
            "effective_from": self.effective_from.isoformat() if self.effective_from else None,
            "effective_to": self.effective_to.isoformat() if self.effective_to else None,
            "created_at": to_utc_z(self.created_at),
        }


class PriceBookLine(db.Model):
    __tablename__ = "price_book_lines"
    __table_args__ = (
        db.UniqueConstraint("price_book_id", "product_id", name="uq_price_book_lines_book_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    price_book_id = db.Column(db.Integer, db.ForeignKey("price_books.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("fuel_products.id"), nullable=False, index=True)
    price_per_unit = db.Column(db.Numeric(10, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "price_book_id": self.price_book_id,
            "product_id": self.product_id,
            "price_per_unit": num_to_json(self.price_per_unit),
        }
