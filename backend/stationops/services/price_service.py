# Overview: Price-book lookup used to turn meter liters into expected money.

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import or_

from ..extensions import db
from ..models import PriceBook, PriceBookLine
from ..time_utils import utcnow
from .variance_policy import to_decimal


class PriceResolver:
    """
    Per-unit price lookup for a product at a station on a date.

    Implementations return None when they have no price; callers decide the
    fallback.
    """

    def resolve_price(self, product_id: int, station_id: int, on_date: date) -> Decimal | None:
        raise NotImplementedError


class PriceBookResolver(PriceResolver):
    """
    Reads ACTIVE price books.

    A book applies when it is global (station_id NULL) or belongs to the
    station, and its [effective_from, effective_to] window covers on_date.
    The most recently effective book wins; on a tie the station book beats
    the global one.
    """

    def resolve_price(self, product_id: int, station_id: int, on_date: date) -> Decimal | None:
        line = (
            db.session.query(PriceBookLine)
            .join(PriceBook, PriceBookLine.price_book_id == PriceBook.id)
            .filter(
                PriceBookLine.product_id == product_id,
                PriceBook.status == "ACTIVE",
                PriceBook.effective_from <= on_date,
                or_(PriceBook.station_id.is_(None), PriceBook.station_id == station_id),
                or_(PriceBook.effective_to.is_(None), PriceBook.effective_to >= on_date),
            )
            .order_by(
                PriceBook.effective_from.desc(),
                PriceBook.station_id.is_(None).asc(),
                PriceBook.id.desc(),
            )
            .first()
        )
        if line is None:
            return None
        return to_decimal(line.price_per_unit)


class StaticPriceResolver(PriceResolver):
    """Dictionary-backed resolver keyed by product_id (tests, CLI dry runs)."""

    def __init__(self, prices: dict[int, Decimal | str | float] | None = None):
        self.prices = {k: to_decimal(v) for k, v in (prices or {}).items()}

    def resolve_price(self, product_id: int, station_id: int, on_date: date) -> Decimal | None:
        return self.prices.get(product_id)


def get_current_price(
    product_id: int,
    station_id: int | None = None,
    reference: date | None = None,
    resolver: PriceResolver | None = None,
) -> Decimal | None:
    """Price in effect for a product today (or on `reference`)."""
    resolver = resolver or PriceBookResolver()
    on_date = reference or utcnow().date()
    return resolver.resolve_price(product_id, station_id, on_date)
