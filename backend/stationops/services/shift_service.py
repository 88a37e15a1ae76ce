"""
Shift Lifecycle Service

WHY: Shift close is where meter readings, money received and staff
accountability meet. A shift cannot close while its reconciliation is
unexplained.

DESIGN PRINCIPLES:
- One OPEN shift per station at a time
- OPEN -> CLOSED requires complete meters and either a GREEN variance or
  a written variance note
- CLOSED -> LOCKED is an explicit step; locked shifts are read-only for
  everyone but administrators
- Shifts closed more than SHIFT_AUTO_LOCK_HOURS ago behave as locked for
  non-administrators even if nobody locked them
- A CRITICAL per-nozzle anomaly (sale far off the recent average) also
  needs a note at close; flagged nozzles are saved for later review
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import DailyRecord, MeterAnomaly, MeterReading, Nozzle, Shift, User
from ..models.shifts import SHIFT_OPEN, SHIFT_CLOSED, SHIFT_LOCKED
from ..models.stations import STATION_TYPE_SIMPLE
from ..time_utils import as_utc_naive, utcnow
from .concurrency import lock_for_update
from .meter_service import (
    calculate_sold_qty,
    detect_meter_anomaly,
    is_rollover,
    sold_quantity,
    validate_meter_reading,
)
from .reconciliation_service import (
    ReconciliationResult,
    ShiftNotFoundError,
    calculate_for_shift,
    upsert_reconciliation,
)
from .variance_policy import ZERO, to_decimal


class ShiftError(Exception):
    """Raised for shift lifecycle errors."""
    pass


class ShiftValidationError(ShiftError):
    """Raised when a shift is not ready to close."""

    def __init__(self, errors: list[str]):
        super().__init__(", ".join(errors))
        self.errors = errors


class VarianceNoteRequiredError(ShiftError):
    """Raised when a non-GREEN shift is closed without a variance note."""

    def __init__(self, result: ReconciliationResult):
        super().__init__(
            f"Variance of {result.variance:.2f} is {result.variance_status.value}; "
            "a variance note is required to close this shift"
        )
        self.result = result


class ShiftLockedError(ShiftError):
    """Raised when a non-admin edits a locked (or auto-locked) shift."""
    pass


class AnomalyNoteRequiredError(ShiftError):
    """Raised when a shift with a CRITICAL nozzle anomaly is closed without a note."""

    def __init__(self, report: dict):
        nozzles = [a["nozzle_number"] for a in report["anomalies"] if a["severity"] == "CRITICAL"]
        super().__init__(
            f"Critical meter anomaly on nozzle(s) {', '.join(str(n) for n in nozzles)}; "
            "a note is required to close this shift"
        )
        self.report = report


@dataclass
class CloseShiftValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": self.errors, "warnings": self.warnings}


def _get_shift(shift_id: int, *, for_update: bool = False) -> Shift:
    query = db.session.query(Shift).filter_by(id=shift_id)
    if for_update:
        query = lock_for_update(query)
    shift = query.first()
    if not shift:
        raise ShiftNotFoundError("Shift not found")
    return shift


def _station_open_shift(station_id: int) -> Shift | None:
    return (
        db.session.query(Shift)
        .join(DailyRecord, Shift.daily_record_id == DailyRecord.id)
        .filter(DailyRecord.station_id == station_id, Shift.status == SHIFT_OPEN)
        .first()
    )


def _previous_shift(station_id: int, exclude_shift_id: int | None = None) -> Shift | None:
    query = (
        db.session.query(Shift)
        .join(DailyRecord, Shift.daily_record_id == DailyRecord.id)
        .filter(DailyRecord.station_id == station_id)
    )
    if exclude_shift_id is not None:
        query = query.filter(Shift.id != exclude_shift_id)
    return query.order_by(DailyRecord.date.desc(), Shift.shift_number.desc()).first()


# =============================================================================
# OPEN / METERS
# =============================================================================

def open_shift(daily_record_id: int, user_id: int | None = None) -> Shift:
    """
    Open the next shift on a daily record.

    Start readings are carried over from the station's previous shift, nozzle
    by nozzle, so continuity breaks show up at close.

    Raises:
        ShiftError: If the daily record is missing, the station does not run
            shifts, or the station already has an OPEN shift
    """
    daily = db.session.get(DailyRecord, daily_record_id)
    if not daily:
        raise ShiftError("Daily record not found")

    station = daily.station
    if not station.uses_shifts:
        raise ShiftError("Station does not use the shift workflow")

    existing_open = _station_open_shift(station.id)
    if existing_open:
        raise ShiftError(f"Station already has an open shift (shift {existing_open.id})")

    last_number = (
        db.session.query(func.max(Shift.shift_number))
        .filter(Shift.daily_record_id == daily_record_id)
        .scalar()
    )
    previous = _previous_shift(station.id)

    shift = Shift(
        daily_record_id=daily_record_id,
        shift_number=(last_number or 0) + 1,
        status=SHIFT_OPEN,
        opened_at=utcnow(),
        opened_by_id=user_id,
    )
    db.session.add(shift)
    db.session.flush()

    previous_ends = {}
    if previous is not None:
        previous_ends = {m.nozzle_number: m.end_reading for m in previous.meters}

    nozzles = (
        db.session.query(Nozzle)
        .filter_by(station_id=station.id, is_active=True)
        .order_by(Nozzle.nozzle_number)
        .all()
    )
    for nozzle in nozzles:
        db.session.add(MeterReading(
            daily_record_id=daily_record_id,
            shift_id=shift.id,
            nozzle_number=nozzle.nozzle_number,
            nozzle_id=nozzle.id,
            start_reading=previous_ends.get(nozzle.nozzle_number),
        ))

    db.session.commit()
    return shift


def ensure_shift_editable(shift: Shift, *, is_admin: bool = False, now: datetime | None = None) -> None:
    """
    Refuse edits to finalized shifts.

    Administrators bypass both the explicit lock and the auto-lock window.

    Raises:
        ShiftLockedError: LOCKED, or CLOSED longer than SHIFT_AUTO_LOCK_HOURS ago
    """
    if is_admin:
        return

    if shift.status == SHIFT_LOCKED:
        raise ShiftLockedError("Shift is locked; only an administrator can edit it")

    if shift.status == SHIFT_CLOSED and shift.closed_at is not None:
        hours = current_app.config.get("SHIFT_AUTO_LOCK_HOURS", 24)
        closed_at = as_utc_naive(shift.closed_at)
        if (now or utcnow()) - closed_at > timedelta(hours=hours):
            raise ShiftLockedError(
                f"Shift was closed more than {hours} hours ago; only an administrator can edit it"
            )


def record_meter(
    shift_id: int,
    nozzle_number: int,
    *,
    start_reading=None,
    end_reading=None,
    user_id: int | None = None,
    is_admin: bool = False,
) -> MeterReading:
    """
    Create or update one nozzle's reading on a shift.

    Capturing an end reading computes sold_qty (floored at 0).
    """
    shift = _get_shift(shift_id)
    ensure_shift_editable(shift, is_admin=is_admin)
    validate_meter_reading(start_reading, end_reading)

    meter = (
        db.session.query(MeterReading)
        .filter_by(shift_id=shift_id, nozzle_number=nozzle_number)
        .first()
    )
    if meter is None:
        nozzle = (
            db.session.query(Nozzle)
            .filter_by(station_id=shift.daily_record.station_id, nozzle_number=nozzle_number)
            .first()
        )
        meter = MeterReading(
            daily_record_id=shift.daily_record_id,
            shift_id=shift_id,
            nozzle_number=nozzle_number,
            nozzle_id=nozzle.id if nozzle else None,
        )
        db.session.add(meter)

    if start_reading is not None:
        meter.start_reading = to_decimal(start_reading)
    if end_reading is not None:
        meter.end_reading = to_decimal(end_reading)

    meter.sold_qty = calculate_sold_qty(meter.start_reading, meter.end_reading)
    meter.captured_by_id = user_id
    meter.captured_at = utcnow()
    db.session.flush()

    # Corrections on a closed shift must show up in its settlement
    if shift.status != SHIFT_OPEN:
        previous_status = shift.reconciliation.variance_status if shift.reconciliation else None
        db.session.expire(shift, ["meters"])
        result = calculate_for_shift(shift_id)
        upsert_reconciliation(shift_id, result)
        if previous_status != result.variance_status.value and not result.is_clean:
            current_app.logger.warning(
                "Meter correction on %s shift %s moved its variance from %s to %s (%.2f) by user %s",
                shift.status, shift.id, previous_status, result.variance_status.value,
                result.variance, user_id,
            )

    db.session.commit()
    return meter


# =============================================================================
# CLOSE / LOCK
# =============================================================================

def validate_close_shift(shift_id: int) -> CloseShiftValidation:
    """
    Check that a shift is complete enough to close.

    SIMPLE stations skip meter checks (they may have no dispensers wired).
    """
    errors: list[str] = []
    warnings: list[str] = []

    shift = db.session.get(Shift, shift_id)
    if not shift:
        return CloseShiftValidation(valid=False, errors=["Shift not found"])

    if shift.status != SHIFT_OPEN:
        errors.append("Shift is already closed or locked")

    station = shift.daily_record.station
    if station.station_type != STATION_TYPE_SIMPLE:
        if not shift.meters:
            errors.append("No meter readings recorded for this shift")

        missing = [m.nozzle_number for m in shift.meters if m.end_reading is None]
        if missing:
            errors.append(
                f"Missing end readings for nozzle(s) {', '.join(str(n) for n in missing)}"
            )

        for meter in shift.meters:
            if meter.start_reading is None:
                errors.append(f"Missing start reading for nozzle {meter.nozzle_number}")
            elif is_rollover(meter):
                warnings.append(
                    f"Nozzle {meter.nozzle_number} end reading is below its start reading; counted as 0"
                )

    return CloseShiftValidation(valid=not errors, errors=errors, warnings=warnings)


def close_shift(
    shift_id: int,
    user_id: int | None = None,
    variance_note: str | None = None,
    anomaly_note: str | None = None,
    **calc_kwargs,
):
    """
    Close a shift and record its reconciliation and nozzle anomalies.

    Closure, the reconciliation upsert and the MeterAnomaly rows commit
    together.

    Args:
        shift_id: Shift to close
        user_id: Staff member closing the shift
        variance_note: Required when the variance is not GREEN
        anomaly_note: Required when a nozzle anomaly is CRITICAL; the
            variance note is used when none is given
        calc_kwargs: price_resolver / expected_other_amount / policy,
            passed to calculate_for_shift

    Returns:
        (shift, reconciliation) tuple

    Raises:
        ShiftNotFoundError: Unknown shift
        ShiftValidationError: Shift not OPEN or meters incomplete
        VarianceNoteRequiredError: Non-GREEN variance and no note
        AnomalyNoteRequiredError: CRITICAL nozzle anomaly and no note
    """
    shift = _get_shift(shift_id, for_update=True)

    validation = validate_close_shift(shift_id)
    if not validation.valid:
        raise ShiftValidationError(validation.errors)

    result = calculate_for_shift(shift_id, **calc_kwargs)

    note = (variance_note or "").strip() or None
    if not result.is_clean and note is None:
        raise VarianceNoteRequiredError(result)

    anomaly_report = check_shift_anomalies(shift_id)
    anomaly_note = (anomaly_note or "").strip() or note
    if anomaly_report["requires_note"] and anomaly_note is None:
        raise AnomalyNoteRequiredError(anomaly_report)

    shift.status = SHIFT_CLOSED
    shift.closed_at = utcnow()
    shift.closed_by_id = user_id
    shift.variance_note = note

    reconciliation = upsert_reconciliation(shift_id, result)
    save_meter_anomalies(shift_id, anomaly_report["anomalies"], anomaly_note)
    db.session.commit()

    if not result.is_clean:
        current_app.logger.warning(
            "Shift %s closed with %s variance %.2f: %s",
            shift.id, result.variance_status.value, result.variance, note,
        )

    return shift, reconciliation


def lock_shift(shift_id: int, user_id: int | None = None) -> Shift:
    """Lock a CLOSED shift permanently."""
    shift = _get_shift(shift_id, for_update=True)

    if shift.status == SHIFT_OPEN:
        raise ShiftError("Shift must be closed before it can be locked")

    if shift.status == SHIFT_LOCKED:
        raise ShiftError("Shift is already locked")

    shift.status = SHIFT_LOCKED
    shift.locked_at = utcnow()
    shift.locked_by_id = user_id
    db.session.commit()

    return shift


def is_admin_user(user_id: int | None) -> bool:
    """External permission check for the administrative override tier."""
    if user_id is None:
        return False
    user = db.session.get(User, user_id)
    return bool(user and user.is_active and user.is_admin)


# =============================================================================
# REPORTING
# =============================================================================

def get_shift_summary(shift_id: int) -> dict:
    shift = _get_shift(shift_id)
    return {
        "shift": shift.to_dict(),
        "station_id": shift.daily_record.station_id,
        "date": shift.daily_record.date.isoformat(),
        "meters": [m.to_dict() for m in shift.meters],
        "total_sold_qty": float(sum((sold_quantity(m) for m in shift.meters), ZERO)),
        "reconciliation": shift.reconciliation.to_dict() if shift.reconciliation else None,
    }


SHIFT_ANOMALY_WARNING_PERCENT = Decimal("50")
SHIFT_ANOMALY_CRITICAL_PERCENT = Decimal("100")


def get_average_sold_qty(
    station_id: int,
    nozzle_number: int,
    days: int = 7,
    *,
    exclude_shift_id: int | None = None,
    now: datetime | None = None,
) -> Decimal:
    """Average sold liters per closed shift for one nozzle over the last `days` days."""
    since = (now or utcnow()) - timedelta(days=days)

    query = (
        db.session.query(MeterReading.sold_qty)
        .join(Shift, MeterReading.shift_id == Shift.id)
        .join(DailyRecord, Shift.daily_record_id == DailyRecord.id)
        .filter(
            DailyRecord.station_id == station_id,
            MeterReading.nozzle_number == nozzle_number,
            MeterReading.sold_qty.isnot(None),
            Shift.status.in_([SHIFT_CLOSED, SHIFT_LOCKED]),
            Shift.opened_at >= since,
        )
    )
    if exclude_shift_id is not None:
        query = query.filter(Shift.id != exclude_shift_id)

    values = [to_decimal(row.sold_qty) for row in query.all()]
    if not values:
        return ZERO
    return sum(values, ZERO) / len(values)


def check_shift_anomalies(shift_id: int, *, days: int = 7) -> dict:
    """
    Flag nozzles whose sale this shift is far off their recent average.

    > 50% off average is WARNING, >= 100% is CRITICAL. Any CRITICAL nozzle
    means the close should carry a note.
    """
    shift = _get_shift(shift_id)
    station_id = shift.daily_record.station_id

    anomalies = []
    for meter in shift.meters:
        qty = sold_quantity(meter)
        if qty <= 0:
            continue

        average = get_average_sold_qty(
            station_id, meter.nozzle_number, days, exclude_shift_id=shift.id
        )
        if average == 0:
            continue

        check = detect_meter_anomaly(qty, average, SHIFT_ANOMALY_WARNING_PERCENT)
        if not check["is_anomaly"]:
            continue

        percent = check["percent_diff"]
        severity = "CRITICAL" if abs(percent) >= SHIFT_ANOMALY_CRITICAL_PERCENT else "WARNING"
        direction = "above" if percent > 0 else "below"
        anomalies.append({
            "nozzle_number": meter.nozzle_number,
            "sold_qty": float(qty),
            "average_qty": float(round(average, 3)),
            "percent_diff": float(round(percent, 1)),
            "severity": severity,
            "message": f"Sold {abs(percent):.0f}% {direction} the {days}-day average",
        })

    return {
        "has_anomalies": bool(anomalies),
        "anomalies": anomalies,
        "requires_note": any(a["severity"] == "CRITICAL" for a in anomalies),
    }


def save_meter_anomalies(shift_id: int, anomalies: list[dict], note: str | None = None) -> list[MeterAnomaly]:
    """Persist a check_shift_anomalies report (flush only; caller commits)."""
    rows = [
        MeterAnomaly(
            shift_id=shift_id,
            nozzle_number=a["nozzle_number"],
            sold_qty=to_decimal(str(a["sold_qty"])),
            average_qty=to_decimal(str(a["average_qty"])),
            percent_diff=to_decimal(str(a["percent_diff"])),
            severity=a["severity"],
            note=note,
        )
        for a in anomalies
    ]
    db.session.add_all(rows)
    db.session.flush()
    return rows


def get_pending_meter_anomalies(station_id: int | None = None, limit: int = 50) -> list[MeterAnomaly]:
    """Unreviewed nozzle anomalies, newest first."""
    query = db.session.query(MeterAnomaly).filter(MeterAnomaly.reviewed_at.is_(None))
    if station_id is not None:
        query = (
            query.join(Shift, MeterAnomaly.shift_id == Shift.id)
            .join(DailyRecord, Shift.daily_record_id == DailyRecord.id)
            .filter(DailyRecord.station_id == station_id)
        )
    return query.order_by(MeterAnomaly.created_at.desc(), MeterAnomaly.id.desc()).limit(limit).all()


def mark_meter_anomaly_reviewed(anomaly_id: int, reviewed_by_id: int) -> MeterAnomaly:
    anomaly = lock_for_update(db.session.query(MeterAnomaly).filter_by(id=anomaly_id)).first()
    if not anomaly:
        raise ShiftError("Meter anomaly not found")

    anomaly.reviewed_by_id = reviewed_by_id
    anomaly.reviewed_at = utcnow()
    db.session.commit()
    return anomaly
