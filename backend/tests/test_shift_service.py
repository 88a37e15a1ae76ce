"""Shift lifecycle: open, meters, the close gate, locking and the edit guard."""

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest

from stationops.models import DailyRecord, MeterAnomaly, MeterReading, Shift, ShiftReconciliation, Station, Transaction
from stationops.models.shifts import SHIFT_CLOSED, SHIFT_LOCKED, SHIFT_OPEN
from stationops.models.stations import STATION_TYPE_FULL, STATION_TYPE_SIMPLE
from stationops.services import shift_service
from stationops.services.shift_service import (
    AnomalyNoteRequiredError,
    ShiftError,
    ShiftLockedError,
    ShiftValidationError,
    VarianceNoteRequiredError,
)
from stationops.services.variance_policy import VarianceStatus
from stationops.time_utils import utcnow


def cash(db_session, daily_record, amount):
    db_session.add(Transaction(
        station_id=daily_record.station_id,
        daily_record_id=daily_record.id,
        date=datetime.combine(daily_record.date, time(9, 0)),
        payment_type="CASH",
        amount=Decimal(amount),
    ))
    db_session.commit()


def open_with_meter(daily_record, start="1000.000", end="1100.500"):
    shift = shift_service.open_shift(daily_record.id)
    shift_service.record_meter(shift.id, 1, start_reading=Decimal(start), end_reading=Decimal(end))
    return shift


class TestOpenShift:
    def test_opens_first_shift_with_seeded_meters(self, db_session, daily_record, nozzle, staff):
        shift = shift_service.open_shift(daily_record.id, staff.id)

        assert shift.status == SHIFT_OPEN
        assert shift.shift_number == 1
        assert shift.opened_by_id == staff.id
        assert [m.nozzle_number for m in shift.meters] == [1]
        assert shift.meters[0].start_reading is None
        assert shift.meters[0].nozzle_id == nozzle.id

    def test_refuses_second_open_shift(self, db_session, daily_record, nozzle):
        shift_service.open_shift(daily_record.id)

        with pytest.raises(ShiftError):
            shift_service.open_shift(daily_record.id)

    def test_refuses_station_without_shifts(self, db_session, simple_daily_record):
        with pytest.raises(ShiftError):
            shift_service.open_shift(simple_daily_record.id)

    def test_refuses_unknown_daily_record(self, db_session):
        with pytest.raises(ShiftError):
            shift_service.open_shift(424242)

    def test_station_type_sets_shift_workflow_default(self, db_session):
        simple = Station(name="Roadside", station_type=STATION_TYPE_SIMPLE)
        full = Station(name="Depot", station_type=STATION_TYPE_FULL)
        untyped = Station(name="Kiosk")
        overridden = Station(name="Co-op", station_type=STATION_TYPE_SIMPLE, uses_shifts=True)
        db_session.add_all([simple, full, untyped, overridden])
        db_session.commit()

        assert simple.uses_shifts is False
        assert full.uses_shifts is True
        assert untyped.station_type == STATION_TYPE_FULL
        assert untyped.uses_shifts is True
        assert overridden.uses_shifts is True

    def test_next_shift_carries_previous_end_readings(self, db_session, daily_record, nozzle):
        first = open_with_meter(daily_record)
        cash(db_session, daily_record, "3099.42")
        shift_service.close_shift(first.id)

        second = shift_service.open_shift(daily_record.id)

        assert second.shift_number == 2
        assert second.meters[0].start_reading == Decimal("1100.500")


class TestRecordMeter:
    def test_end_reading_sets_sold_qty(self, db_session, daily_record, nozzle):
        shift = shift_service.open_shift(daily_record.id)

        meter = shift_service.record_meter(shift.id, 1, start_reading=Decimal("50"), end_reading=Decimal("75.5"))

        assert meter.sold_qty == Decimal("25.5")

    def test_rollover_sells_zero(self, db_session, daily_record, nozzle):
        shift = shift_service.open_shift(daily_record.id)

        meter = shift_service.record_meter(shift.id, 1, start_reading=Decimal("900"), end_reading=Decimal("10"))

        assert meter.sold_qty == Decimal("0")

    def test_negative_reading_rejected(self, db_session, daily_record, nozzle):
        shift = shift_service.open_shift(daily_record.id)

        with pytest.raises(ValueError):
            shift_service.record_meter(shift.id, 1, end_reading=Decimal("-1"))

    def test_unknown_nozzle_number_creates_reading(self, db_session, daily_record, nozzle):
        shift = shift_service.open_shift(daily_record.id)

        meter = shift_service.record_meter(shift.id, 7, start_reading=Decimal("0"), end_reading=Decimal("5"))

        assert meter.nozzle_id is None
        assert db_session.query(MeterReading).filter_by(shift_id=shift.id).count() == 2


class TestCloseShift:
    def test_green_close_needs_no_note(self, db_session, daily_record, nozzle, staff):
        shift = open_with_meter(daily_record)
        cash(db_session, daily_record, "3099.42")

        closed, reconciliation = shift_service.close_shift(shift.id, staff.id)

        assert closed.status == SHIFT_CLOSED
        assert closed.closed_by_id == staff.id
        assert closed.closed_at is not None
        assert reconciliation.variance == Decimal("0.00")
        assert reconciliation.variance_status == "GREEN"

    def test_non_green_close_without_note_is_refused(self, db_session, daily_record, nozzle):
        shift = open_with_meter(daily_record)
        cash(db_session, daily_record, "3349.42")

        with pytest.raises(VarianceNoteRequiredError) as excinfo:
            shift_service.close_shift(shift.id, variance_note="   ")

        assert excinfo.value.result.variance == Decimal("250.00")
        assert excinfo.value.result.variance_status == VarianceStatus.YELLOW
        db_session.rollback()
        assert db_session.get(Shift, shift.id).status == SHIFT_OPEN
        assert db_session.query(ShiftReconciliation).count() == 0

    def test_non_green_close_with_note(self, db_session, daily_record, nozzle):
        shift = open_with_meter(daily_record)

        closed, reconciliation = shift_service.close_shift(shift.id, variance_note="Card terminal down")

        assert closed.status == SHIFT_CLOSED
        assert closed.variance_note == "Card terminal down"
        assert reconciliation.variance_status == "RED"
        assert reconciliation.variance == Decimal("-3099.42")

    def test_missing_end_reading_blocks_close(self, db_session, daily_record, nozzle):
        shift = shift_service.open_shift(daily_record.id)
        shift_service.record_meter(shift.id, 1, start_reading=Decimal("10"))

        with pytest.raises(ShiftValidationError) as excinfo:
            shift_service.close_shift(shift.id)

        assert any("end readings" in error for error in excinfo.value.errors)

    def test_missing_start_reading_blocks_close(self, db_session, daily_record, nozzle):
        shift = shift_service.open_shift(daily_record.id)
        shift_service.record_meter(shift.id, 1, end_reading=Decimal("10"))

        validation = shift_service.validate_close_shift(shift.id)

        assert not validation.valid
        assert any("start reading" in error for error in validation.errors)

    def test_no_meters_blocks_close(self, db_session, daily_record):
        shift = shift_service.open_shift(daily_record.id)

        validation = shift_service.validate_close_shift(shift.id)

        assert not validation.valid
        assert "No meter readings recorded for this shift" in validation.errors

    def test_rollover_is_a_warning(self, db_session, daily_record, nozzle):
        shift = open_with_meter(daily_record, start="900", end="10")

        validation = shift_service.validate_close_shift(shift.id)

        assert validation.valid
        assert len(validation.warnings) == 1

    def test_simple_station_skips_meter_checks(self, db_session):
        station = Station(name="Kiosk", station_type=STATION_TYPE_SIMPLE, uses_shifts=True)
        db_session.add(station)
        db_session.flush()
        daily = DailyRecord(station_id=station.id, date=date(2026, 1, 5), retail_price=Decimal("30.84"))
        db_session.add(daily)
        db_session.commit()

        shift = shift_service.open_shift(daily.id)

        assert shift_service.validate_close_shift(shift.id).valid

    def test_closed_shift_cannot_close_again(self, db_session, daily_record, nozzle):
        shift = open_with_meter(daily_record)
        cash(db_session, daily_record, "3099.42")
        shift_service.close_shift(shift.id)

        with pytest.raises(ShiftValidationError):
            shift_service.close_shift(shift.id)


class TestLockAndEditGuard:
    def test_lock_requires_closed_shift(self, db_session, daily_record, nozzle, admin):
        shift = open_with_meter(daily_record)

        with pytest.raises(ShiftError):
            shift_service.lock_shift(shift.id, admin.id)

    def test_lock_closed_shift(self, db_session, daily_record, nozzle, admin):
        shift = open_with_meter(daily_record)
        cash(db_session, daily_record, "3099.42")
        shift_service.close_shift(shift.id)

        locked = shift_service.lock_shift(shift.id, admin.id)

        assert locked.status == SHIFT_LOCKED
        assert locked.locked_by_id == admin.id
        with pytest.raises(ShiftError):
            shift_service.lock_shift(shift.id, admin.id)

    def test_locked_shift_rejects_staff_meter_edit(self, db_session, daily_record, nozzle):
        shift = open_with_meter(daily_record)
        cash(db_session, daily_record, "3099.42")
        shift_service.close_shift(shift.id)
        shift_service.lock_shift(shift.id)

        with pytest.raises(ShiftLockedError):
            shift_service.record_meter(shift.id, 1, end_reading=Decimal("1200"))

    def test_admin_edit_of_locked_shift_recomputes_reconciliation(self, db_session, daily_record, nozzle):
        shift = open_with_meter(daily_record)
        cash(db_session, daily_record, "3099.42")
        shift_service.close_shift(shift.id)
        shift_service.lock_shift(shift.id)

        shift_service.record_meter(shift.id, 1, end_reading=Decimal("1000.000"), is_admin=True)

        reconciliation = db_session.query(ShiftReconciliation).filter_by(shift_id=shift.id).one()
        assert reconciliation.expected_fuel_amount == Decimal("0.00")
        assert reconciliation.variance == Decimal("3099.42")
        assert reconciliation.variance_status == "RED"

    def test_recently_closed_shift_stays_correctable(self, db_session, daily_record, nozzle):
        shift = open_with_meter(daily_record)
        shift_service.close_shift(shift.id, variance_note="Cash not yet counted")

        shift_service.record_meter(shift.id, 1, end_reading=Decimal("1000.000"))

        reconciliation = db_session.query(ShiftReconciliation).filter_by(shift_id=shift.id).one()
        assert reconciliation.variance == Decimal("0.00")
        assert reconciliation.variance_status == "GREEN"

    def test_correction_that_escalates_tier_is_logged(self, db_session, daily_record, nozzle, staff, caplog):
        shift = open_with_meter(daily_record)
        cash(db_session, daily_record, "3099.42")
        shift_service.close_shift(shift.id)

        with caplog.at_level(logging.WARNING):
            shift_service.record_meter(shift.id, 1, end_reading=Decimal("1120.500"), user_id=staff.id)

        reconciliation = db_session.query(ShiftReconciliation).filter_by(shift_id=shift.id).one()
        assert reconciliation.variance == Decimal("-616.80")
        assert reconciliation.variance_status == "RED"
        assert "moved its variance from GREEN to RED" in caplog.text

    def test_auto_lock_after_window(self, db_session, daily_record, nozzle):
        shift = open_with_meter(daily_record)
        shift_service.close_shift(shift.id, variance_note="late")
        shift.closed_at = utcnow() - timedelta(hours=25)
        db_session.commit()

        with pytest.raises(ShiftLockedError):
            shift_service.ensure_shift_editable(shift)
        shift_service.ensure_shift_editable(shift, is_admin=True)

    def test_within_window_is_editable(self, db_session, daily_record, nozzle):
        shift = open_with_meter(daily_record)
        shift_service.close_shift(shift.id, variance_note="late")

        shift_service.ensure_shift_editable(shift, now=shift.closed_at + timedelta(hours=23))
        with pytest.raises(ShiftLockedError):
            shift_service.ensure_shift_editable(shift, now=shift.closed_at + timedelta(hours=24, minutes=1))

    def test_is_admin_user(self, db_session, staff, admin):
        assert shift_service.is_admin_user(admin.id)
        assert not shift_service.is_admin_user(staff.id)
        assert not shift_service.is_admin_user(None)
        assert not shift_service.is_admin_user(987654)


class TestShiftAnomalies:
    def _history(self, db_session, daily_record, nozzle, sold):
        previous_day = DailyRecord(
            station_id=daily_record.station_id,
            date=daily_record.date - timedelta(days=1),
            retail_price=Decimal("30.84"),
        )
        db_session.add(previous_day)
        db_session.flush()
        shift = Shift(
            daily_record_id=previous_day.id,
            shift_number=1,
            status=SHIFT_CLOSED,
            opened_at=utcnow() - timedelta(days=1),
            closed_at=utcnow() - timedelta(hours=20),
        )
        db_session.add(shift)
        db_session.flush()
        db_session.add(MeterReading(
            daily_record_id=previous_day.id,
            shift_id=shift.id,
            nozzle_number=nozzle.nozzle_number,
            nozzle_id=nozzle.id,
            start_reading=Decimal("0"),
            end_reading=Decimal(sold),
            sold_qty=Decimal(sold),
        ))
        db_session.commit()

    def test_triple_sale_is_critical(self, db_session, daily_record, nozzle):
        self._history(db_session, daily_record, nozzle, "100")
        shift = open_with_meter(daily_record, start="0", end="300")

        report = shift_service.check_shift_anomalies(shift.id)

        assert report["has_anomalies"]
        assert report["requires_note"]
        entry = report["anomalies"][0]
        assert entry["nozzle_number"] == 1
        assert entry["severity"] == "CRITICAL"
        assert entry["percent_diff"] == 200.0

    def test_moderate_drop_is_warning(self, db_session, daily_record, nozzle):
        self._history(db_session, daily_record, nozzle, "100")
        shift = open_with_meter(daily_record, start="0", end="40")

        report = shift_service.check_shift_anomalies(shift.id)

        assert report["anomalies"][0]["severity"] == "WARNING"
        assert not report["requires_note"]

    def test_no_history_no_anomaly(self, db_session, daily_record, nozzle):
        shift = open_with_meter(daily_record, start="0", end="300")

        report = shift_service.check_shift_anomalies(shift.id)

        assert report == {"has_anomalies": False, "anomalies": [], "requires_note": False}

    def test_critical_close_requires_note(self, db_session, daily_record, nozzle, staff):
        self._history(db_session, daily_record, nozzle, "100")
        shift = open_with_meter(daily_record, start="0", end="300")
        cash(db_session, daily_record, "9252.00")

        with pytest.raises(AnomalyNoteRequiredError) as excinfo:
            shift_service.close_shift(shift.id, staff.id)

        assert excinfo.value.report["requires_note"]
        assert shift.status == SHIFT_OPEN
        assert db_session.query(MeterAnomaly).count() == 0

        closed, reconciliation = shift_service.close_shift(shift.id, staff.id, anomaly_note="Fleet truck filled up")

        assert closed.status == SHIFT_CLOSED
        assert reconciliation.variance_status == "GREEN"
        saved = db_session.query(MeterAnomaly).one()
        assert saved.shift_id == shift.id
        assert saved.nozzle_number == 1
        assert saved.severity == "CRITICAL"
        assert saved.sold_qty == Decimal("300")
        assert saved.average_qty == Decimal("100")
        assert saved.percent_diff == Decimal("200")
        assert saved.note == "Fleet truck filled up"

    def test_variance_note_also_explains_anomaly(self, db_session, daily_record, nozzle):
        self._history(db_session, daily_record, nozzle, "100")
        shift = open_with_meter(daily_record, start="0", end="300")

        shift_service.close_shift(shift.id, variance_note="Fleet account, billed monthly")

        assert db_session.query(MeterAnomaly).one().note == "Fleet account, billed monthly"

    def test_warning_is_saved_without_note(self, db_session, daily_record, nozzle):
        self._history(db_session, daily_record, nozzle, "100")
        shift = open_with_meter(daily_record, start="0", end="40")
        cash(db_session, daily_record, "1233.60")

        shift_service.close_shift(shift.id)

        saved = db_session.query(MeterAnomaly).one()
        assert saved.severity == "WARNING"
        assert saved.note is None

    def test_pending_and_review(self, db_session, daily_record, nozzle, admin):
        self._history(db_session, daily_record, nozzle, "100")
        shift = open_with_meter(daily_record, start="0", end="300")
        cash(db_session, daily_record, "9252.00")
        shift_service.close_shift(shift.id, anomaly_note="Fleet truck filled up")

        pending = shift_service.get_pending_meter_anomalies(daily_record.station_id)
        assert [a.shift_id for a in pending] == [shift.id]
        assert shift_service.get_pending_meter_anomalies(daily_record.station_id + 1) == []

        reviewed = shift_service.mark_meter_anomaly_reviewed(pending[0].id, admin.id)

        assert reviewed.reviewed_by_id == admin.id
        assert reviewed.reviewed_at is not None
        assert shift_service.get_pending_meter_anomalies() == []
        with pytest.raises(ShiftError):
            shift_service.mark_meter_anomaly_reviewed(9999, admin.id)


def test_shift_summary(db_session, daily_record, nozzle):
    shift = open_with_meter(daily_record)

    summary = shift_service.get_shift_summary(shift.id)

    assert summary["station_id"] == daily_record.station_id
    assert summary["date"] == "2026-01-05"
    assert summary["total_sold_qty"] == 100.5
    assert summary["reconciliation"] is None
