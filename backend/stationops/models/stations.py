from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .base import num_to_json


STATION_TYPE_FULL = "FULL"
STATION_TYPE_SIMPLE = "SIMPLE"
STATION_TYPE_GAS = "GAS"
STATION_TYPES = (STATION_TYPE_FULL, STATION_TYPE_SIMPLE, STATION_TYPE_GAS)


class Station(db.Model):
    """
    Fuel or gas retail station.

    WHY: Every meter reading, transaction and anomaly is scoped to one station.

    DESIGN:
    - FULL and GAS stations run the shift workflow (open -> close -> lock)
    - SIMPLE stations record one book per day without shifts; their
      meter-vs-sales drift is caught by the daily anomaly detector instead
    """
    __tablename__ = "stations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    station_type = db.Column(db.String(16), nullable=False, default=STATION_TYPE_FULL, index=True)
    uses_shifts = db.Column(db.Boolean, nullable=False, default=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __init__(self, **kwargs):
        # uses_shifts follows the station type unless given explicitly
        kwargs.setdefault("station_type", STATION_TYPE_FULL)
        kwargs.setdefault("uses_shifts", kwargs["station_type"] != STATION_TYPE_SIMPLE)
        super().__init__(**kwargs)

    def __repr__(self) -> str:
        return f"<Station id={self.id} name={self.name!r} type={self.station_type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "station_type": self.station_type,
            "uses_shifts": self.uses_shifts,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class DailyRecord(db.Model):
    """
    One station's book for one business date.

    Shifts, meter readings and transactions all hang off the daily record.
    retail_price is the generic per-liter price used when the price book
    has no entry for a nozzle's product.
    """
    __tablename__ = "daily_records"
    __table_args__ = (
        db.UniqueConstraint("station_id", "date", name="uq_daily_records_station_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)

    retail_price = db.Column(db.Numeric(10, 2), nullable=True)
    gas_price = db.Column(db.Numeric(10, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    station = db.relationship("Station", backref=db.backref("daily_records", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "date": self.date.isoformat() if self.date else None,
            "retail_price": num_to_json(self.retail_price),
            "gas_price": num_to_json(self.gas_price),
        }


class FuelProduct(db.Model):
    __tablename__ = "fuel_products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)  # DIESEL, GASOHOL_95, LPG...
    name = db.Column(db.String(120), nullable=False)

    def to_dict(self) -> dict:
        return {"id": self.id, "code": self.code, "name": self.name}


class Nozzle(db.Model):
    """Dispenser nozzle; links a nozzle number at a station to the product it pumps."""
    __tablename__ = "nozzles"
    __table_args__ = (
        db.UniqueConstraint("station_id", "nozzle_number", name="uq_nozzles_station_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    nozzle_number = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("fuel_products.id"), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    station = db.relationship("Station", backref=db.backref("nozzles", lazy=True))
    product = db.relationship("FuelProduct")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "nozzle_number": self.nozzle_number,
            "product_id": self.product_id,
            "is_active": self.is_active,
        }
