from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .base import num_to_json


PAYMENT_CASH = "CASH"
PAYMENT_CREDIT = "CREDIT"
PAYMENT_TRANSFER = "TRANSFER"
PAYMENT_BOX_TRUCK = "BOX_TRUCK"
PAYMENT_OIL_TRUCK_SUPACHAI = "OIL_TRUCK_SUPACHAI"
PAYMENT_CREDIT_CARD = "CREDIT_CARD"

PAYMENT_TYPES = (
    PAYMENT_CASH,
    PAYMENT_CREDIT,
    PAYMENT_TRANSFER,
    PAYMENT_BOX_TRUCK,
    PAYMENT_OIL_TRUCK_SUPACHAI,
    PAYMENT_CREDIT_CARD,
)

# Payment types billed to a credit customer (owner/truck required)
CREDIT_PAYMENT_TYPES = (PAYMENT_CREDIT, PAYMENT_BOX_TRUCK, PAYMENT_OIL_TRUCK_SUPACHAI)


class Transaction(db.Model):
    """
    One completed fuel sale.

    `date` is the business datetime the sale belongs to (may be backdated),
    distinct from created_at. Voided (is_voided) and soft-deleted
    (deleted_at) rows stay in the table and are excluded from every total.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_station_date", "station_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    daily_record_id = db.Column(db.Integer, db.ForeignKey("daily_records.id"), nullable=False, index=True)
    # Backfilled at creation with the shift that was open on the daily record
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False)

    payment_type = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=True)
    liters = db.Column(db.Numeric(14, 3), nullable=True)
    price_per_liter = db.Column(db.Numeric(10, 2), nullable=True)

    owner_name = db.Column(db.String(255), nullable=True)
    license_plate = db.Column(db.String(32), nullable=True)
    bill_number = db.Column(db.String(64), nullable=True)

    is_voided = db.Column(db.Boolean, nullable=False, default=False, index=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    voided_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    recorded_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    station = db.relationship("Station", backref=db.backref("transactions", lazy=True))
    daily_record = db.relationship("DailyRecord", backref=db.backref("transactions", lazy=True))
    shift = db.relationship("Shift", backref=db.backref("transactions", lazy=True))

    @property
    def counts_toward_totals(self) -> bool:
        return not self.is_voided and self.deleted_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "daily_record_id": self.daily_record_id,
            "shift_id": self.shift_id,
            "date": to_utc_z(self.date),
            "payment_type": self.payment_type,
            "amount": num_to_json(self.amount),
            "liters": num_to_json(self.liters),
            "price_per_liter": num_to_json(self.price_per_liter),
            "owner_name": self.owner_name,
            "license_plate": self.license_plate,
            "bill_number": self.bill_number,
            "is_voided": self.is_voided,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "voided_by_id": self.voided_by_id,
            "void_reason": self.void_reason,
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "created_at": to_utc_z(self.created_at),
        }
