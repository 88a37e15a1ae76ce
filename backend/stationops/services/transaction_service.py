"""
Fuel Transaction Service

WHY: Transactions are the "money received" and "liters billed" side of both
the shift reconciliation and the daily anomaly check. Every change to one
must keep those results current and respect shift locks.

DESIGN PRINCIPLES:
- Each transaction records the shift that was open on its daily record, or
  the latest closed one when none is open; late money still lands in (and
  is guarded by) that shift's settlement
- Corrections and voids go through the shift edit guard
- Voids and deletes are soft: rows stay for audit, totals skip them
- After a change, the affected settlement (closed shift) or daily anomaly
  (station without shifts) is recomputed in the same commit
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import DailyRecord, Shift, Station, Transaction
from ..models.shifts import SHIFT_OPEN
from ..models.transactions import PAYMENT_TYPES, CREDIT_PAYMENT_TYPES
from ..time_utils import business_date, business_stamp, utcnow
from .concurrency import lock_for_update
from .daily_anomaly_service import business_timezone, check_and_save_daily_anomaly
from .price_service import get_current_price
from .reconciliation_service import calculate_for_shift, upsert_reconciliation
from .shift_service import ensure_shift_editable
from .variance_policy import round_money, to_decimal


class TransactionError(Exception):
    """Raised for transaction operation errors."""
    pass


EDITABLE_FIELDS = (
    "amount",
    "liters",
    "price_per_liter",
    "payment_type",
    "owner_name",
    "license_plate",
    "bill_number",
    "date",
)


def _validate_payment_type(payment_type: str) -> None:
    if payment_type not in PAYMENT_TYPES:
        raise ValueError(f"Unknown payment type '{payment_type}'")


def _validate_non_negative(name: str, value) -> None:
    if value is not None and to_decimal(value) < 0:
        raise ValueError(f"{name} must not be negative")


def _guard(txn: Transaction, is_admin: bool) -> None:
    if txn.shift is not None:
        ensure_shift_editable(txn.shift, is_admin=is_admin)


def _shift_for_daily_record(daily_record_id: int) -> Shift | None:
    """The OPEN shift of a daily record, else its most recent closed one."""
    shifts = (
        db.session.query(Shift)
        .filter_by(daily_record_id=daily_record_id)
        .order_by(Shift.shift_number.desc())
        .all()
    )
    for shift in shifts:
        if shift.status == SHIFT_OPEN:
            return shift
    return shifts[0] if shifts else None


def _refresh_dependents(txn: Transaction, previous_day=None) -> None:
    """Recompute whatever this transaction feeds (flush only; caller commits)."""
    db.session.flush()

    if txn.shift is not None and txn.shift.status != SHIFT_OPEN:
        upsert_reconciliation(txn.shift_id, calculate_for_shift(txn.shift_id))

    if not txn.station.uses_shifts:
        days = {business_date(txn.date, business_timezone())}
        if previous_day is not None:
            days.add(previous_day)
        for day in sorted(days):
            check_and_save_daily_anomaly(txn.station_id, day, commit=False)


def create_transaction(
    station_id: int,
    daily_record_id: int,
    payment_type: str,
    *,
    amount=None,
    liters=None,
    price_per_liter=None,
    product_id: int | None = None,
    date: datetime | None = None,
    owner_name: str | None = None,
    license_plate: str | None = None,
    bill_number: str | None = None,
    recorded_by_id: int | None = None,
    is_admin: bool = False,
) -> Transaction:
    """
    Record a completed sale.

    When only liters are given, the amount is priced server-side from the
    price book (product_id) or the daily retail price. Without an explicit
    date the sale is stamped on the daily record's date at the current
    local time.

    Raises:
        ShiftLockedError: The sale would land on a locked shift and the
            caller is not an admin
        TransactionError: Unknown station/daily record, or the daily record
            belongs to another station
        ValueError: Bad payment type, negative values, nothing to record
    """
    _validate_payment_type(payment_type)
    _validate_non_negative("amount", amount)
    _validate_non_negative("liters", liters)
    _validate_non_negative("price_per_liter", price_per_liter)

    station = db.session.get(Station, station_id)
    if not station:
        raise TransactionError("Station not found")

    daily = db.session.get(DailyRecord, daily_record_id)
    if not daily or daily.station_id != station_id:
        raise TransactionError("Daily record not found for this station")

    if payment_type in CREDIT_PAYMENT_TYPES and not owner_name:
        raise ValueError("owner_name is required for credit payments")

    if amount is None:
        if liters is None:
            raise ValueError("amount or liters is required")
        if price_per_liter is None and product_id is not None:
            price_per_liter = get_current_price(product_id, station_id, daily.date)
        if price_per_liter is None:
            price_per_liter = daily.retail_price
        if price_per_liter is None:
            raise ValueError("No price available to compute the amount")
        amount = round_money(to_decimal(liters) * to_decimal(price_per_liter))

    shift = _shift_for_daily_record(daily_record_id)
    if shift is not None:
        ensure_shift_editable(shift, is_admin=is_admin)

    txn = Transaction(
        station_id=station_id,
        daily_record_id=daily_record_id,
        shift_id=shift.id if shift else None,
        date=date or business_stamp(daily.date, business_timezone()),
        payment_type=payment_type,
        amount=round_money(amount),
        liters=to_decimal(liters) if liters is not None else None,
        price_per_liter=to_decimal(price_per_liter) if price_per_liter is not None else None,
        owner_name=owner_name,
        license_plate=license_plate,
        bill_number=bill_number,
        recorded_by_id=recorded_by_id,
    )
    db.session.add(txn)
    _refresh_dependents(txn)
    db.session.commit()

    return txn


def _load_for_update(transaction_id: int) -> Transaction:
    txn = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()
    if not txn:
        raise TransactionError("Transaction not found")
    return txn


def update_transaction(transaction_id: int, *, is_admin: bool = False, **changes) -> Transaction:
    """
    Administrative correction (price, amount, liters, owner, payment type, date).

    Raises:
        TransactionError: Unknown or voided transaction
        ShiftLockedError: Shift is locked and the caller is not an admin
        ValueError: Unknown field or invalid value
    """
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot edit field(s): {', '.join(sorted(unknown))}")

    txn = _load_for_update(transaction_id)
    if not txn.counts_toward_totals:
        raise TransactionError("Cannot edit a voided or deleted transaction")
    _guard(txn, is_admin)

    if "payment_type" in changes:
        _validate_payment_type(changes["payment_type"])
    for name in ("amount", "liters", "price_per_liter"):
        if name in changes:
            _validate_non_negative(name, changes[name])

    previous_day = business_date(txn.date, business_timezone())

    for name, value in changes.items():
        if name == "amount" and value is not None:
            value = round_money(value)
        elif name in ("liters", "price_per_liter") and value is not None:
            value = to_decimal(value)
        setattr(txn, name, value)

    # Re-price when the unit price changed but no explicit amount was given
    if "price_per_liter" in changes and "amount" not in changes and txn.liters is not None \
            and txn.price_per_liter is not None:
        txn.amount = round_money(to_decimal(txn.liters) * to_decimal(txn.price_per_liter))

    txn.updated_at = utcnow()
    _refresh_dependents(txn, previous_day=previous_day)
    db.session.commit()

    return txn


def void_transaction(
    transaction_id: int,
    voided_by_id: int | None,
    reason: str | None = None,
    *,
    is_admin: bool = False,
) -> Transaction:
    """Void a sale. The row stays; every total stops counting it."""
    txn = _load_for_update(transaction_id)
    if txn.is_voided:
        raise TransactionError("Transaction already voided")
    _guard(txn, is_admin)

    txn.is_voided = True
    txn.voided_at = utcnow()
    txn.voided_by_id = voided_by_id
    txn.void_reason = reason

    _refresh_dependents(txn)
    db.session.commit()
    return txn


def soft_delete_transaction(transaction_id: int, *, is_admin: bool = False) -> Transaction:
    """Hide a mistaken entry (duplicate import, test row) without losing it."""
    txn = _load_for_update(transaction_id)
    if txn.deleted_at is not None:
        raise TransactionError("Transaction already deleted")
    _guard(txn, is_admin)

    txn.deleted_at = utcnow()

    _refresh_dependents(txn)
    db.session.commit()
    return txn
