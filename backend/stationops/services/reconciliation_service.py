"""
Shift Reconciliation Service

WHY: A station cannot close its books until the money collected during a
shift is explained by the fuel its meters say was sold.

DESIGN PRINCIPLES:
- calculate_for_shift is a pure read over loaded state; save_shift_reconciliation
  is the only write
- One ShiftReconciliation per shift, upserted on every recompute
- Price-book misses fall back to the daily retail price; reconciliation never
  aborts because a price is absent
- Voided and soft-deleted transactions never reach a total
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Shift, ShiftReconciliation, Transaction
from ..models.transactions import (
    PAYMENT_CASH,
    PAYMENT_CREDIT,
    PAYMENT_BOX_TRUCK,
    PAYMENT_OIL_TRUCK_SUPACHAI,
    PAYMENT_TRANSFER,
    PAYMENT_CREDIT_CARD,
)
from ..time_utils import utcnow
from .concurrency import lock_for_update
from .meter_service import sold_quantity
from .price_service import PriceResolver, PriceBookResolver
from .variance_policy import (
    VariancePolicy,
    VarianceStatus,
    ZERO,
    round_money,
    to_decimal,
    variance_policy_from_config,
)


class ShiftNotFoundError(LookupError):
    """Raised when a shift or its daily record does not exist."""
    pass


CASH_FAMILY = frozenset({PAYMENT_CASH})
CREDIT_FAMILY = frozenset({PAYMENT_CREDIT, PAYMENT_BOX_TRUCK, PAYMENT_OIL_TRUCK_SUPACHAI})
TRANSFER_FAMILY = frozenset({PAYMENT_TRANSFER, PAYMENT_CREDIT_CARD})


@dataclass(frozen=True)
class ReconciliationResult:
    expected_fuel_amount: Decimal
    expected_other_amount: Decimal
    total_expected: Decimal
    total_received: Decimal
    cash_received: Decimal
    credit_received: Decimal
    transfer_received: Decimal
    variance: Decimal
    variance_status: VarianceStatus

    @property
    def is_clean(self) -> bool:
        return self.variance_status == VarianceStatus.GREEN

    def to_dict(self) -> dict:
        data = {k: float(v) for k, v in asdict(self).items() if k != "variance_status"}
        data["variance_status"] = self.variance_status.value
        return data


def _default_retail_price() -> Decimal:
    return to_decimal(current_app.config.get("DEFAULT_RETAIL_PRICE", "30.50"))


def _load_shift(shift_id: int) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if not shift or not shift.daily_record:
        raise ShiftNotFoundError("Shift not found")
    return shift


def receivable_transactions_query(daily_record_id: int):
    """Transactions that count toward a daily record's money and liter totals."""
    return db.session.query(Transaction).filter(
        Transaction.daily_record_id == daily_record_id,
        Transaction.is_voided.is_(False),
        Transaction.deleted_at.is_(None),
    )


def _expected_fuel_amount(shift: Shift, resolver: PriceResolver) -> Decimal:
    daily = shift.daily_record
    fallback_price = to_decimal(daily.retail_price) if daily.retail_price is not None else _default_retail_price()

    total = ZERO
    for meter in shift.meters:
        qty = sold_quantity(meter)
        if qty <= 0:
            continue

        unit_price = None
        if meter.nozzle is not None and meter.nozzle.product_id is not None:
            unit_price = resolver.resolve_price(meter.nozzle.product_id, daily.station_id, daily.date)

        if unit_price is None:
            unit_price = fallback_price

        total += qty * unit_price
    return total


def _received_by_channel(daily_record_id: int) -> tuple[Decimal, Decimal, Decimal]:
    cash = credit = transfer = ZERO

    # Transactions are tied to the daily record, not strictly to the shift
    for txn in receivable_transactions_query(daily_record_id).all():
        amount = to_decimal(txn.amount)
        if txn.payment_type in CASH_FAMILY:
            cash += amount
        elif txn.payment_type in CREDIT_FAMILY:
            credit += amount
        elif txn.payment_type in TRANSFER_FAMILY:
            transfer += amount

    return cash, credit, transfer


def calculate_for_shift(
    shift_id: int,
    *,
    price_resolver: PriceResolver | None = None,
    expected_other_amount=ZERO,
    policy: VariancePolicy | None = None,
) -> ReconciliationResult:
    """
    Compute expected vs received money for a shift.

    Args:
        shift_id: Shift to reconcile
        price_resolver: Per-unit price lookup (defaults to the price book)
        expected_other_amount: Non-fuel product sales supplied by the caller;
            no product-sale aggregation happens here
        policy: Variance tiers (defaults to app config)

    Raises:
        ShiftNotFoundError: If the shift or its daily record is missing
    """
    shift = _load_shift(shift_id)
    resolver = price_resolver or PriceBookResolver()
    policy = policy or variance_policy_from_config()

    expected_fuel = round_money(_expected_fuel_amount(shift, resolver))
    expected_other = round_money(expected_other_amount)
    cash, credit, transfer = _received_by_channel(shift.daily_record_id)

    cash = round_money(cash)
    credit = round_money(credit)
    transfer = round_money(transfer)

    total_received = round_money(cash + credit + transfer)
    total_expected = round_money(expected_fuel + expected_other)
    variance = round_money(total_received - total_expected)

    return ReconciliationResult(
        expected_fuel_amount=expected_fuel,
        expected_other_amount=expected_other,
        total_expected=total_expected,
        total_received=total_received,
        cash_received=cash,
        credit_received=credit,
        transfer_received=transfer,
        variance=variance,
        variance_status=policy.classify(variance),
    )


def upsert_reconciliation(shift_id: int, result: ReconciliationResult) -> ShiftReconciliation:
    """
    Write `result` as the shift's single reconciliation row (flush only).

    Callers own the commit so closure and settlement land together.
    """
    record = lock_for_update(
        db.session.query(ShiftReconciliation).filter_by(shift_id=shift_id)
    ).first()

    if record is None:
        record = ShiftReconciliation(shift_id=shift_id)
        db.session.add(record)
    else:
        record.updated_at = utcnow()

    record.expected_fuel_amount = result.expected_fuel_amount
    record.expected_other_amount = result.expected_other_amount
    record.total_expected = result.total_expected
    record.total_received = result.total_received
    record.cash_received = result.cash_received
    record.credit_received = result.credit_received
    record.transfer_received = result.transfer_received
    record.variance = result.variance
    record.variance_status = result.variance_status.value

    db.session.flush()
    return record


def save_shift_reconciliation(shift_id: int, *, commit: bool = True, **calc_kwargs) -> ShiftReconciliation:
    """
    Recompute and persist the reconciliation for a shift.

    Re-running after new or corrected transactions overwrites the previous
    settlement; it never appends a second row.
    """
    result = calculate_for_shift(shift_id, **calc_kwargs)
    record = upsert_reconciliation(shift_id, result)

    if commit:
        db.session.commit()

    return record
