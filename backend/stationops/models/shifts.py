from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .base import num_to_json


SHIFT_OPEN = "OPEN"
SHIFT_CLOSED = "CLOSED"
SHIFT_LOCKED = "LOCKED"


class Shift(db.Model):
    """
    Staffed work period at one station on one business date.

    LIFECYCLE:
    - OPEN: meters and transactions are being recorded
    - CLOSED: meters complete, reconciliation recorded (variance_note set
      when the variance was not GREEN)
    - LOCKED: books final; only administrators may still edit

    Shifts are never deleted; closure is a state progression.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.UniqueConstraint("daily_record_id", "shift_number", name="uq_shifts_daily_record_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    daily_record_id = db.Column(db.Integer, db.ForeignKey("daily_records.id"), nullable=False, index=True)
    shift_number = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SHIFT_OPEN, index=True)  # OPEN, CLOSED, LOCKED

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    opened_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    locked_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Required to close with a YELLOW/RED variance
    variance_note = db.Column(db.Text, nullable=True)

    daily_record = db.relationship("DailyRecord", backref=db.backref("shifts", lazy=True))
    meters = db.relationship(
        "MeterReading",
        backref="shift",
        lazy=True,
        order_by="MeterReading.nozzle_number",
    )
    reconciliation = db.relationship("ShiftReconciliation", backref="shift", uselist=False, lazy=True)

    def __repr__(self) -> str:
        return f"<Shift id={self.id} number={self.shift_number} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "daily_record_id": self.daily_record_id,
            "shift_number": self.shift_number,
            "status": self.status,
            "opened_at": to_utc_z(self.opened_at),
            "opened_by_id": self.opened_by_id,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by_id": self.closed_by_id,
            "locked_at": to_utc_z(self.locked_at) if self.locked_at else None,
            "locked_by_id": self.locked_by_id,
            "variance_note": self.variance_note,
        }


class MeterReading(db.Model):
    """
    Nozzle counter for one shift (or one day, on stations without shifts).

    sold_qty = end_reading - start_reading, floored at 0; NULL until the end
    reading is captured.
    """
    __tablename__ = "meter_readings"
    __table_args__ = (
        db.Index("ix_meter_readings_shift_nozzle", "shift_id", "nozzle_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    daily_record_id = db.Column(db.Integer, db.ForeignKey("daily_records.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)

    nozzle_number = db.Column(db.Integer, nullable=False)
    nozzle_id = db.Column(db.Integer, db.ForeignKey("nozzles.id"), nullable=True)

    start_reading = db.Column(db.Numeric(14, 3), nullable=True)
    end_reading = db.Column(db.Numeric(14, 3), nullable=True)
    sold_qty = db.Column(db.Numeric(14, 3), nullable=True)

    captured_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    captured_at = db.Column(db.DateTime(timezone=True), nullable=True)

    daily_record = db.relationship("DailyRecord", backref=db.backref("meter_readings", lazy=True))
    nozzle = db.relationship("Nozzle")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "daily_record_id": self.daily_record_id,
            "shift_id": self.shift_id,
            "nozzle_number": self.nozzle_number,
            "nozzle_id": self.nozzle_id,
            "start_reading": num_to_json(self.start_reading),
            "end_reading": num_to_json(self.end_reading),
            "sold_qty": num_to_json(self.sold_qty),
            "captured_by_id": self.captured_by_id,
            "captured_at": to_utc_z(self.captured_at) if self.captured_at else None,
        }


class ShiftReconciliation(db.Model):
    """
    Expected-vs-received settlement for exactly one shift.

    Upserted on every recompute (unique shift_id), never deleted on its own.
    variance = total_received - total_expected (positive: more money than
    the meters justify).
    """
    __tablename__ = "shift_reconciliations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, unique=True)

    expected_fuel_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    expected_other_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_expected = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    total_received = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cash_received = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    credit_received = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    transfer_received = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    variance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    variance_status = db.Column(db.String(16), nullable=False)  # GREEN, YELLOW, RED

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "expected_fuel_amount": num_to_json(self.expected_fuel_amount),
            "expected_other_amount": num_to_json(self.expected_other_amount),
            "total_expected": num_to_json(self.total_expected),
            "total_received": num_to_json(self.total_received),
            "cash_received": num_to_json(self.cash_received),
            "credit_received": num_to_json(self.credit_received),
            "transfer_received": num_to_json(self.transfer_received),
            "variance": num_to_json(self.variance),
            "variance_status": self.variance_status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at) if self.updated_at else None,
        }
