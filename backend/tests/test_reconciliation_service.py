"""Shift reconciliation: expected vs received money and the variance tiers."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from stationops.models import MeterReading, PriceBook, PriceBookLine, Shift, ShiftReconciliation, Transaction
from stationops.models.shifts import SHIFT_OPEN
from stationops.services import reconciliation_service
from stationops.services.meter_service import calculate_sold_qty
from stationops.services.price_service import StaticPriceResolver
from stationops.services.reconciliation_service import ShiftNotFoundError
from stationops.services.variance_policy import VarianceStatus
from stationops.time_utils import utcnow


def make_shift(db_session, daily_record, nozzle, start, end):
    shift = Shift(
        daily_record_id=daily_record.id,
        shift_number=1,
        status=SHIFT_OPEN,
        opened_at=utcnow(),
    )
    db_session.add(shift)
    db_session.flush()

    db_session.add(MeterReading(
        daily_record_id=daily_record.id,
        shift_id=shift.id,
        nozzle_number=nozzle.nozzle_number,
        nozzle_id=nozzle.id,
        start_reading=Decimal(start),
        end_reading=Decimal(end),
        sold_qty=calculate_sold_qty(Decimal(start), Decimal(end)),
    ))
    db_session.commit()
    return shift


def add_payment(db_session, daily_record, payment_type, amount, **extra):
    txn = Transaction(
        station_id=daily_record.station_id,
        daily_record_id=daily_record.id,
        date=datetime.combine(daily_record.date, datetime.min.time()).replace(hour=9),
        payment_type=payment_type,
        amount=Decimal(amount),
        **extra,
    )
    db_session.add(txn)
    db_session.commit()
    return txn


def test_daily_retail_price_fallback_balances_to_zero(db_session, daily_record, nozzle):
    shift = make_shift(db_session, daily_record, nozzle, "1000.000", "1100.500")
    add_payment(db_session, daily_record, "CASH", "3099.42")

    result = reconciliation_service.calculate_for_shift(shift.id)

    assert result.expected_fuel_amount == Decimal("3099.42")
    assert result.total_expected == Decimal("3099.42")
    assert result.cash_received == Decimal("3099.42")
    assert result.total_received == Decimal("3099.42")
    assert result.variance == Decimal("0.00")
    assert result.variance_status == VarianceStatus.GREEN
    assert result.is_clean


def test_overpayment_of_250_is_yellow(db_session, daily_record, nozzle, product):
    shift = make_shift(db_session, daily_record, nozzle, "0", "100")
    add_payment(db_session, daily_record, "CASH", "3250.00")

    result = reconciliation_service.calculate_for_shift(
        shift.id, price_resolver=StaticPriceResolver({product.id: "30.00"})
    )

    assert result.total_expected == Decimal("3000.00")
    assert result.variance == Decimal("250.00")
    assert result.variance_status == VarianceStatus.YELLOW


def test_overpayment_of_600_is_red(db_session, daily_record, nozzle, product):
    shift = make_shift(db_session, daily_record, nozzle, "0", "100")
    add_payment(db_session, daily_record, "TRANSFER", "1600.00")

    result = reconciliation_service.calculate_for_shift(
        shift.id, price_resolver=StaticPriceResolver({product.id: "10.00"})
    )

    assert result.total_expected == Decimal("1000.00")
    assert result.variance == Decimal("600.00")
    assert result.variance_status == VarianceStatus.RED


def test_shortfall_uses_absolute_variance(db_session, daily_record, nozzle, product):
    shift = make_shift(db_session, daily_record, nozzle, "0", "100")
    add_payment(db_session, daily_record, "CASH", "2700.00")

    result = reconciliation_service.calculate_for_shift(
        shift.id, price_resolver=StaticPriceResolver({product.id: "30.00"})
    )

    assert result.variance == Decimal("-300.00")
    assert result.variance_status == VarianceStatus.YELLOW


def test_received_is_split_by_payment_channel(db_session, daily_record, nozzle):
    shift = make_shift(db_session, daily_record, nozzle, "0", "0")
    add_payment(db_session, daily_record, "CASH", "1000.00")
    add_payment(db_session, daily_record, "CREDIT", "500.00", owner_name="Kasem Farm")
    add_payment(db_session, daily_record, "BOX_TRUCK", "200.00", owner_name="Kasem Farm")
    add_payment(db_session, daily_record, "TRANSFER", "300.00")
    add_payment(db_session, daily_record, "CREDIT_CARD", "100.00")

    result = reconciliation_service.calculate_for_shift(shift.id)

    assert result.cash_received == Decimal("1000.00")
    assert result.credit_received == Decimal("700.00")
    assert result.transfer_received == Decimal("400.00")
    assert result.total_received == Decimal("2100.00")
    assert result.total_received == result.cash_received + result.credit_received + result.transfer_received


def test_voided_and_deleted_transactions_are_ignored(db_session, daily_record, nozzle):
    shift = make_shift(db_session, daily_record, nozzle, "1000.000", "1100.500")
    add_payment(db_session, daily_record, "CASH", "3099.42")
    add_payment(db_session, daily_record, "CASH", "5000.00", is_voided=True)
    add_payment(db_session, daily_record, "TRANSFER", "800.00", deleted_at=utcnow())

    result = reconciliation_service.calculate_for_shift(shift.id)

    assert result.total_received == Decimal("3099.42")
    assert result.transfer_received == Decimal("0.00")
    assert result.variance_status == VarianceStatus.GREEN


def test_rollover_meter_contributes_nothing(db_session, daily_record, nozzle):
    shift = make_shift(db_session, daily_record, nozzle, "99990.000", "12.000")

    result = reconciliation_service.calculate_for_shift(shift.id)

    assert result.expected_fuel_amount == Decimal("0.00")


def test_expected_other_amount_adds_to_total_expected(db_session, daily_record, nozzle):
    shift = make_shift(db_session, daily_record, nozzle, "1000.000", "1100.500")
    add_payment(db_session, daily_record, "CASH", "3199.42")

    result = reconciliation_service.calculate_for_shift(shift.id, expected_other_amount=Decimal("100"))

    assert result.expected_other_amount == Decimal("100.00")
    assert result.total_expected == Decimal("3199.42")
    assert result.variance == Decimal("0.00")


def test_active_price_book_wins_over_retail_price(db_session, daily_record, nozzle, product, station):
    global_book = PriceBook(name="National", status="ACTIVE", effective_from=date(2026, 1, 1))
    station_book = PriceBook(
        name="Highway promo", station_id=station.id, status="ACTIVE", effective_from=date(2026, 1, 1)
    )
    archived = PriceBook(name="Old", status="ARCHIVED", effective_from=date(2026, 1, 3))
    db_session.add_all([global_book, station_book, archived])
    db_session.flush()
    db_session.add_all([
        PriceBookLine(price_book_id=global_book.id, product_id=product.id, price_per_unit=Decimal("32.00")),
        PriceBookLine(price_book_id=station_book.id, product_id=product.id, price_per_unit=Decimal("31.50")),
        PriceBookLine(price_book_id=archived.id, product_id=product.id, price_per_unit=Decimal("99.00")),
    ])
    db_session.commit()

    shift = make_shift(db_session, daily_record, nozzle, "0", "100")
    result = reconciliation_service.calculate_for_shift(shift.id)

    assert result.expected_fuel_amount == Decimal("3150.00")


def test_expired_price_book_falls_back_to_retail(db_session, daily_record, nozzle, product):
    book = PriceBook(
        name="December", status="ACTIVE",
        effective_from=date(2025, 12, 1), effective_to=date(2025, 12, 31),
    )
    db_session.add(book)
    db_session.flush()
    db_session.add(PriceBookLine(price_book_id=book.id, product_id=product.id, price_per_unit=Decimal("40.00")))
    db_session.commit()

    shift = make_shift(db_session, daily_record, nozzle, "0", "100")
    result = reconciliation_service.calculate_for_shift(shift.id)

    assert result.expected_fuel_amount == Decimal("3084.00")


def test_config_default_price_when_daily_record_has_none(db_session, daily_record, nozzle):
    daily_record.retail_price = None
    db_session.commit()

    shift = make_shift(db_session, daily_record, nozzle, "0", "10")
    result = reconciliation_service.calculate_for_shift(shift.id)

    assert result.expected_fuel_amount == Decimal("305.00")


def test_unknown_shift_raises(db_session):
    with pytest.raises(ShiftNotFoundError):
        reconciliation_service.calculate_for_shift(999999)


def test_saving_twice_keeps_one_row(db_session, daily_record, nozzle):
    shift = make_shift(db_session, daily_record, nozzle, "1000.000", "1100.500")
    add_payment(db_session, daily_record, "CASH", "3099.42")

    first = reconciliation_service.save_shift_reconciliation(shift.id)
    second = reconciliation_service.save_shift_reconciliation(shift.id)

    rows = db_session.query(ShiftReconciliation).filter_by(shift_id=shift.id).all()
    assert len(rows) == 1
    assert first.id == second.id
    assert rows[0].variance == Decimal("0.00")
    assert rows[0].variance_status == "GREEN"


def test_resave_reflects_new_payments(db_session, daily_record, nozzle):
    shift = make_shift(db_session, daily_record, nozzle, "1000.000", "1100.500")
    add_payment(db_session, daily_record, "CASH", "3099.42")
    reconciliation_service.save_shift_reconciliation(shift.id)

    add_payment(db_session, daily_record, "CASH", "600.00")
    record = reconciliation_service.save_shift_reconciliation(shift.id)

    assert record.variance == Decimal("600.00")
    assert record.variance_status == "RED"
    assert record.updated_at is not None
    assert db_session.query(ShiftReconciliation).count() == 1


def test_result_to_dict_is_json_ready(db_session, daily_record, nozzle):
    shift = make_shift(db_session, daily_record, nozzle, "1000.000", "1100.500")

    data = reconciliation_service.calculate_for_shift(shift.id).to_dict()

    assert data["expected_fuel_amount"] == 3099.42
    assert data["variance"] == -3099.42
    assert data["variance_status"] == "RED"
