from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .base import num_to_json


class DailyAnomaly(db.Model):
    """
    Flagged business day on a station without shifts.

    WHY: Without shift closes, nothing else compares sold liters against
    the meters.

    LIFECYCLE:
    - Created when |trans_total - meter_total| crosses the warning threshold
    - Updated in place while recomputation still finds the day anomalous
    - Deleted once recomputation shows the drift is gone (late corrections)
    - Reviewed independently: reviewed_at/reviewed_by_id/note mark it handled
      without removing it
    """
    __tablename__ = "daily_anomalies"
    __table_args__ = (
        db.UniqueConstraint("station_id", "date", name="uq_daily_anomalies_station_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    station_id = db.Column(db.Integer, db.ForeignKey("stations.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)

    meter_total = db.Column(db.Numeric(14, 3), nullable=False)
    trans_total = db.Column(db.Numeric(14, 3), nullable=False)
    difference = db.Column(db.Numeric(14, 3), nullable=False)  # trans_total - meter_total
    severity = db.Column(db.String(16), nullable=False, default="WARNING")  # WARNING, CRITICAL

    reviewed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    station = db.relationship("Station", backref=db.backref("daily_anomalies", lazy=True))
    reviewed_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "station_id": self.station_id,
            "station_name": self.station.name if self.station else None,
            "date": self.date.isoformat() if self.date else None,
            "meter_total": num_to_json(self.meter_total),
            "trans_total": num_to_json(self.trans_total),
            "difference": num_to_json(self.difference),
            "severity": self.severity,
            "note": self.note,
            "reviewed_at": to_utc_z(self.reviewed_at) if self.reviewed_at else None,
            "reviewed_by": self.reviewed_by.name if self.reviewed_by else None,
            "reviewed_by_id": self.reviewed_by_id,
        }


class MeterAnomaly(db.Model):
    """
    Nozzle whose sale on one shift was far off its recent per-shift average.

    Saved when the shift closes, one row per flagged nozzle. A CRITICAL row
    always carries the note the closing staff member gave.
    """
    __tablename__ = "meter_anomalies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    nozzle_number = db.Column(db.Integer, nullable=False)

    sold_qty = db.Column(db.Numeric(14, 3), nullable=False)
    average_qty = db.Column(db.Numeric(14, 3), nullable=False)
    percent_diff = db.Column(db.Numeric(8, 1), nullable=False)
    severity = db.Column(db.String(16), nullable=False)  # WARNING, CRITICAL
    note = db.Column(db.Text, nullable=True)

    reviewed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    shift = db.relationship("Shift", backref=db.backref("meter_anomalies", lazy=True))
    reviewed_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "station_id": self.shift.daily_record.station_id if self.shift else None,
            "nozzle_number": self.nozzle_number,
            "sold_qty": num_to_json(self.sold_qty),
            "average_qty": num_to_json(self.average_qty),
            "percent_diff": num_to_json(self.percent_diff),
            "severity": self.severity,
            "note": self.note,
            "reviewed_at": to_utc_z(self.reviewed_at) if self.reviewed_at else None,
            "reviewed_by_id": self.reviewed_by_id,
            "created_at": to_utc_z(self.created_at),
        }
