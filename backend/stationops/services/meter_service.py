# Overview: Meter arithmetic shared by shift close, reconciliation and daily anomaly checks.

from __future__ import annotations

from decimal import Decimal

from .variance_policy import ZERO, to_decimal


def calculate_sold_qty(start_reading, end_reading) -> Decimal | None:
    """
    Liters sold between two counter values.

    None until both readings exist. A counter that went backwards (rollover,
    typo) yields 0, never a negative sale.
    """
    if start_reading is None or end_reading is None:
        return None
    delta = to_decimal(end_reading) - to_decimal(start_reading)
    return delta if delta > 0 else ZERO


def sold_quantity(meter) -> Decimal:
    """
    Effective sold liters of a meter reading row.

    Uses the stored sold_qty, else end - start, else 0. Always >= 0.
    """
    if meter.sold_qty is not None:
        qty = to_decimal(meter.sold_qty)
        return qty if qty > 0 else ZERO
    derived = calculate_sold_qty(meter.start_reading, meter.end_reading)
    return derived if derived is not None else ZERO


def validate_meter_reading(start_reading, end_reading=None) -> None:
    """Raise ValueError for negative counters. end < start is allowed but sells 0."""
    if start_reading is not None and to_decimal(start_reading) < 0:
        raise ValueError("Start reading must not be negative")
    if end_reading is not None and to_decimal(end_reading) < 0:
        raise ValueError("End reading must not be negative")


def is_rollover(meter) -> bool:
    """True when the end counter is below the start counter."""
    if meter.start_reading is None or meter.end_reading is None:
        return False
    return to_decimal(meter.end_reading) < to_decimal(meter.start_reading)


def detect_meter_anomaly(sold_qty, average_qty, threshold_percent=Decimal("50")) -> dict:
    """
    Compare one nozzle's sale against its historical average.

    Returns {"is_anomaly", "percent_diff"}; percent_diff is None when there
    is no average to compare against.
    """
    average = to_decimal(average_qty)
    if average == 0:
        return {"is_anomaly": False, "percent_diff": None}

    percent_diff = (to_decimal(sold_qty) - average) / average * 100
    return {
        "is_anomaly": abs(percent_diff) > to_decimal(threshold_percent),
        "percent_diff": percent_diff,
    }
