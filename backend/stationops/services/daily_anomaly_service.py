"""
Daily Anomaly Detection Service

WHY: Stations without shifts never pass through a close-time reconciliation.
This compares the liters their transactions claim against the liters their
meters measured, one business day at a time.

DESIGN PRINCIPLES:
- check_daily_anomaly is a pure read
- check_and_save_daily_anomaly keeps at most one record per (station, day)
  and heals itself: a day that stops being anomalous loses its record
- Reviewing an anomaly marks it handled; it does not delete it
- Transactions are bucketed by their business `date`, not created_at, so
  backdated entries land on the day they belong to
- A business day runs midnight to midnight in BUSINESS_TIMEZONE; stored
  timestamps are UTC
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DailyAnomaly, DailyRecord, MeterReading, Station, Transaction
from ..time_utils import business_today, day_bounds, utcnow
from .concurrency import lock_for_update, run_with_retry
from .meter_service import sold_quantity
from .variance_policy import (
    AnomalyPolicy,
    AnomalySeverity,
    ZERO,
    anomaly_policy_from_config,
    to_decimal,
)


class DailyAnomalyError(Exception):
    """Raised for daily anomaly errors."""
    pass


class AnomalyOutcome(str, enum.Enum):
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DELETED = "DELETED"
    UNCHANGED = "UNCHANGED"


@dataclass(frozen=True)
class DailyAnomalyResult:
    has_anomaly: bool
    meter_total: Decimal
    trans_total: Decimal
    difference: Decimal
    severity: AnomalySeverity | None = None

    def to_dict(self) -> dict:
        data = {
            "has_anomaly": self.has_anomaly,
            "meter_total": float(self.meter_total),
            "trans_total": float(self.trans_total),
            "difference": float(self.difference),
        }
        if self.severity is not None:
            data["severity"] = self.severity.value
        return data


@dataclass(frozen=True)
class DailyAnomalyCheck:
    result: DailyAnomalyResult
    outcome: AnomalyOutcome
    anomaly: DailyAnomaly | None = None

    @property
    def saved(self) -> bool:
        return self.outcome in (AnomalyOutcome.CREATED, AnomalyOutcome.UPDATED)

    @property
    def deleted(self) -> bool:
        return self.outcome == AnomalyOutcome.DELETED

    def to_dict(self) -> dict:
        data = {
            "result": self.result.to_dict(),
            "outcome": self.outcome.value,
            "saved": self.saved,
        }
        if self.deleted:
            data["deleted"] = True
        if self.anomaly is not None and self.saved:
            data["anomaly_id"] = self.anomaly.id
        return data


def business_timezone() -> str:
    return current_app.config.get("BUSINESS_TIMEZONE", "UTC")


def _meter_total(station_id: int, day: date) -> Decimal:
    readings = (
        db.session.query(MeterReading)
        .join(DailyRecord, MeterReading.daily_record_id == DailyRecord.id)
        .filter(DailyRecord.station_id == station_id, DailyRecord.date == day)
        .all()
    )
    return sum((sold_quantity(r) for r in readings), ZERO)


def _transaction_total(station_id: int, day: date) -> Decimal:
    start, end = day_bounds(day, business_timezone())
    liters = (
        db.session.query(Transaction.liters)
        .filter(
            Transaction.station_id == station_id,
            Transaction.date >= start,
            Transaction.date < end,
            Transaction.is_voided.is_(False),
            Transaction.deleted_at.is_(None),
        )
        .all()
    )
    return sum((to_decimal(row.liters) for row in liters), ZERO)


def check_daily_anomaly(
    station_id: int,
    day: date,
    *,
    policy: AnomalyPolicy | None = None,
) -> DailyAnomalyResult:
    """
    Compare a station's transaction liters with its meter liters for one day.

    difference = trans_total - meter_total (positive: more liters billed than
    the meters measured).
    """
    policy = policy or anomaly_policy_from_config()

    meter_total = _meter_total(station_id, day)
    trans_total = _transaction_total(station_id, day)
    difference = trans_total - meter_total
    severity = policy.classify(difference)

    return DailyAnomalyResult(
        has_anomaly=severity is not None,
        meter_total=meter_total,
        trans_total=trans_total,
        difference=difference,
        severity=severity,
    )


def _apply_result(anomaly: DailyAnomaly, result: DailyAnomalyResult) -> None:
    anomaly.meter_total = result.meter_total
    anomaly.trans_total = result.trans_total
    anomaly.difference = result.difference
    anomaly.severity = result.severity.value


def check_and_save_daily_anomaly(
    station_id: int,
    day: date,
    *,
    policy: AnomalyPolicy | None = None,
    commit: bool = True,
) -> DailyAnomalyCheck:
    """
    Recompute one station-day and bring the stored anomaly in line.

    | anomalous now | record exists | action           |
    |---------------|---------------|------------------|
    | no            | yes           | delete (healed)  |
    | no            | no            | nothing          |
    | yes           | yes           | update in place  |
    | yes           | no            | create           |

    The existing-record read is row-locked and the write happens in the same
    transaction. A concurrent create that wins the unique (station, date)
    race turns this create into an update.
    """
    result = check_daily_anomaly(station_id, day, policy=policy)

    existing = lock_for_update(
        db.session.query(DailyAnomaly).filter_by(station_id=station_id, date=day)
    ).first()

    if not result.has_anomaly:
        if existing is None:
            return DailyAnomalyCheck(result=result, outcome=AnomalyOutcome.UNCHANGED)

        db.session.delete(existing)
        if commit:
            db.session.commit()
        current_app.logger.info(
            "Deleted resolved daily anomaly for station %s on %s", station_id, day.isoformat()
        )
        return DailyAnomalyCheck(result=result, outcome=AnomalyOutcome.DELETED)

    if existing is not None:
        _apply_result(existing, result)
        existing.updated_at = utcnow()
        if commit:
            db.session.commit()
        return DailyAnomalyCheck(result=result, outcome=AnomalyOutcome.UPDATED, anomaly=existing)

    anomaly = DailyAnomaly(station_id=station_id, date=day)
    _apply_result(anomaly, result)
    try:
        with db.session.begin_nested():
            db.session.add(anomaly)
    except IntegrityError:
        # Another writer created the row between our read and insert
        existing = db.session.query(DailyAnomaly).filter_by(station_id=station_id, date=day).one()
        _apply_result(existing, result)
        existing.updated_at = utcnow()
        if commit:
            db.session.commit()
        return DailyAnomalyCheck(result=result, outcome=AnomalyOutcome.UPDATED, anomaly=existing)

    if commit:
        db.session.commit()
    return DailyAnomalyCheck(result=result, outcome=AnomalyOutcome.CREATED, anomaly=anomaly)


def scan_historical_anomalies(
    station_id: int,
    days: int = 30,
    *,
    today: date | None = None,
    policy: AnomalyPolicy | None = None,
) -> dict:
    """
    Re-check the last `days` calendar days (today backwards) for one station.

    Used for backfill and batch audits. Returns {"scanned", "found"}.
    """
    if days < 1:
        raise ValueError("days must be at least 1")

    if db.session.get(Station, station_id) is None:
        raise DailyAnomalyError("Station not found")

    today = today or business_today(business_timezone())
    policy = policy or anomaly_policy_from_config()

    found = 0
    for offset in range(days):
        day = today - timedelta(days=offset)
        check = run_with_retry(
            lambda: check_and_save_daily_anomaly(station_id, day, policy=policy)
        )
        if check.result.has_anomaly:
            found += 1
            current_app.logger.info(
                "Daily anomaly station=%s date=%s diff=%.2fL (%s)",
                station_id, day.isoformat(), check.result.difference, check.result.severity.value,
            )

    return {"scanned": days, "found": found}


# =============================================================================
# REVIEW
# =============================================================================

def get_daily_anomalies(
    station_id: int | None = None,
    status: str = "pending",
    limit: int = 100,
) -> list[DailyAnomaly]:
    """
    List anomalies for review.

    status: "pending" (not yet reviewed), "reviewed", or "all".
    """
    if status not in ("pending", "reviewed", "all"):
        raise ValueError("status must be one of: pending, reviewed, all")

    query = db.session.query(DailyAnomaly)
    if station_id is not None:
        query = query.filter(DailyAnomaly.station_id == station_id)
    if status == "pending":
        query = query.filter(DailyAnomaly.reviewed_at.is_(None))
    elif status == "reviewed":
        query = query.filter(DailyAnomaly.reviewed_at.isnot(None))

    return query.order_by(DailyAnomaly.date.desc(), DailyAnomaly.id.desc()).limit(limit).all()


def mark_daily_anomaly_reviewed(
    anomaly_id: int,
    reviewed_by_id: int,
    note: str | None = None,
) -> DailyAnomaly:
    """Mark an anomaly handled. The record stays; only reviewer metadata changes."""
    anomaly = lock_for_update(db.session.query(DailyAnomaly).filter_by(id=anomaly_id)).first()
    if not anomaly:
        raise DailyAnomalyError("Daily anomaly not found")

    anomaly.reviewed_by_id = reviewed_by_id
    anomaly.reviewed_at = utcnow()
    anomaly.note = note
    db.session.commit()

    return anomaly
