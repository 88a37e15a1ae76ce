from datetime import datetime
from decimal import Decimal

from stationops.models import DailyAnomaly, MeterReading, ShiftReconciliation, Transaction
from stationops.services import shift_service


def test_shifts_reconcile_and_save(app, db_session, daily_record, nozzle):
    shift = shift_service.open_shift(daily_record.id)
    shift_service.record_meter(shift.id, 1, start_reading=Decimal("1000"), end_reading=Decimal("1100.5"))
    runner = app.test_cli_runner()

    result = runner.invoke(args=["shifts", "reconcile", "--shift-id", str(shift.id)])
    assert result.exit_code == 0
    assert "3099.42" in result.output
    assert db_session.query(ShiftReconciliation).count() == 0

    result = runner.invoke(args=["shifts", "reconcile", "--shift-id", str(shift.id), "--save"])
    assert result.exit_code == 0
    assert db_session.query(ShiftReconciliation).count() == 1


def test_shifts_reconcile_unknown(app, db_session):
    result = app.test_cli_runner().invoke(args=["shifts", "reconcile", "--shift-id", "999"])

    assert result.exit_code != 0
    assert "Shift not found" in result.output


def test_shifts_lock_open_shift_fails(app, db_session, daily_record, nozzle, admin):
    shift = shift_service.open_shift(daily_record.id)

    result = app.test_cli_runner().invoke(
        args=["shifts", "lock", "--shift-id", str(shift.id), "--user-id", str(admin.id)]
    )

    assert result.exit_code != 0
    assert "must be closed" in result.output


def test_anomalies_check(app, db_session, simple_daily_record):
    db_session.add(MeterReading(
        daily_record_id=simple_daily_record.id,
        nozzle_number=1,
        start_reading=Decimal("0"),
        end_reading=Decimal("500"),
        sold_qty=Decimal("500"),
    ))
    db_session.add(Transaction(
        station_id=simple_daily_record.station_id,
        daily_record_id=simple_daily_record.id,
        date=datetime(2026, 1, 5, 9, 0),
        payment_type="CASH",
        liters=Decimal("512"),
        amount=Decimal("15790.08"),
    ))
    db_session.commit()

    result = app.test_cli_runner().invoke(args=[
        "anomalies", "check", "--station-id", str(simple_daily_record.station_id), "--date", "2026-01-05",
    ])

    assert result.exit_code == 0
    assert "CREATED" in result.output
    assert db_session.query(DailyAnomaly).count() == 1


def test_anomalies_check_bad_date(app, db_session, simple_station):
    result = app.test_cli_runner().invoke(args=[
        "anomalies", "check", "--station-id", str(simple_station.id), "--date", "yesterday",
    ])

    assert result.exit_code != 0
