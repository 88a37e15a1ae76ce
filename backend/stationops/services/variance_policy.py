"""
Variance classification and money rounding shared by the reconciliation
engine and the daily anomaly detector.

DESIGN PRINCIPLES:
- Pure values and functions, no database access
- Thresholds live in policy objects built from app config
- Money is Decimal end to end, rounded half-up on the cent
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from flask import current_app


CENT = Decimal("0.01")
ZERO = Decimal("0")


class VarianceStatus(str, enum.Enum):
    GREEN = "GREEN"
    YELLOW = "YELLOW"
    RED = "RED"


class AnomalySeverity(str, enum.Enum):
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"


def to_decimal(value) -> Decimal:
    """Tolerant conversion: None -> 0, floats go through str() to avoid binary noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid number: {value!r}") from exc


def round_money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class VariancePolicy:
    """
    Three-tier shift variance classification.

    |v| <= yellow -> GREEN, |v| <= red -> YELLOW, otherwise RED.
    Boundary values fall into the lower tier.
    """
    yellow_threshold: Decimal = Decimal("200")
    red_threshold: Decimal = Decimal("500")

    def __post_init__(self):
        if to_decimal(self.yellow_threshold) > to_decimal(self.red_threshold):
            raise ValueError("yellow_threshold must not exceed red_threshold")

    def classify(self, variance) -> VarianceStatus:
        magnitude = abs(to_decimal(variance))
        if magnitude <= to_decimal(self.yellow_threshold):
            return VarianceStatus.GREEN
        if magnitude <= to_decimal(self.red_threshold):
            return VarianceStatus.YELLOW
        return VarianceStatus.RED


@dataclass(frozen=True)
class AnomalyPolicy:
    """
    Daily liter-drift classification.

    |d| >= critical -> CRITICAL, |d| >= warning -> WARNING, otherwise no anomaly.
    """
    warning_threshold: Decimal = Decimal("10")
    critical_threshold: Decimal = Decimal("50")

    def __post_init__(self):
        if to_decimal(self.warning_threshold) > to_decimal(self.critical_threshold):
            raise ValueError("warning_threshold must not exceed critical_threshold")

    def classify(self, difference) -> AnomalySeverity | None:
        magnitude = abs(to_decimal(difference))
        if magnitude >= to_decimal(self.critical_threshold):
            return AnomalySeverity.CRITICAL
        if magnitude >= to_decimal(self.warning_threshold):
            return AnomalySeverity.WARNING
        return None


def variance_policy_from_config() -> VariancePolicy:
    config = current_app.config
    return VariancePolicy(
        yellow_threshold=to_decimal(config.get("VARIANCE_YELLOW_THRESHOLD", "200")),
        red_threshold=to_decimal(config.get("VARIANCE_RED_THRESHOLD", "500")),
    )


def anomaly_policy_from_config() -> AnomalyPolicy:
    config = current_app.config
    return AnomalyPolicy(
        warning_threshold=to_decimal(config.get("DAILY_ANOMALY_WARNING_LITERS", "10")),
        critical_threshold=to_decimal(config.get("DAILY_ANOMALY_CRITICAL_LITERS", "50")),
    )
