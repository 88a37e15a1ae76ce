from __future__ import annotations

from decimal import Decimal


def num_to_json(value: Decimal | None) -> float | None:
    """Numeric column -> JSON number (None passes through)."""
    if value is None:
        return None
    return float(value)
