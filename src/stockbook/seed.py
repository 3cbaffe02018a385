"""Synthetic price history for development databases.

Generates a weekday-only random walk with mild mean reversion per stock
and bulk-upserts it into a price store.
"""

from __future__ import annotations

import logging
import random
from datetime import UTC, date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict, Field

from stockbook.core.models import PricePoint
from stockbook.prices.store import PriceStore

logger = logging.getLogger(__name__)

MIN_PRICE = Decimal("1.00")
MEAN_REVERSION = 0.1
_CENT = Decimal("0.01")


class SeedStock(BaseModel):
    """Parameters of one synthetic price series."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    name: str
    base_price: Decimal
    volatility: float = Field(gt=0, lt=1)
    base_volume: int = Field(default=20_000_000, gt=0)


DEFAULT_STOCKS: tuple[SeedStock, ...] = (
    SeedStock(
        symbol="AAPL",
        name="Apple Inc.",
        base_price=Decimal("150.00"),
        volatility=0.02,
        base_volume=50_000_000,
    ),
    SeedStock(
        symbol="MSFT",
        name="Microsoft Corporation",
        base_price=Decimal("300.00"),
        volatility=0.015,
        base_volume=30_000_000,
    ),
    SeedStock(
        symbol="GOOGL",
        name="Alphabet Inc.",
        base_price=Decimal("2500.00"),
        volatility=0.025,
        base_volume=25_000_000,
    ),
)


def generate_series(
    stock: SeedStock,
    start: date,
    end: date,
    rng: random.Random | None = None,
) -> list[PricePoint]:
    """Random-walk series over the weekdays in ``[start, end]``.

    Each day moves by ``uniform(-1, 1) * volatility`` minus
    ``0.1 * (price - base) / base``. Prices are rounded to cents and never
    fall below 1.00. Volume is ``base_volume * uniform(0.5, 2.0)``.
    """
    rng = rng or random.Random()
    price = stock.base_price
    points: list[PricePoint] = []

    day = start
    while day <= end:
        if day.weekday() < 5:
            distance = float((price - stock.base_price) / stock.base_price)
            change = rng.uniform(-1.0, 1.0) * stock.volatility - distance * MEAN_REVERSION
            price = (price + price * Decimal(repr(change))).quantize(
                _CENT, rounding=ROUND_HALF_UP
            )
            price = max(price, MIN_PRICE)
            volume = int(stock.base_volume * rng.uniform(0.5, 2.0))
            points.append(PricePoint(date=day, price=price, volume=volume))
        day += timedelta(days=1)

    return points


async def seed_store(
    store: PriceStore,
    stocks: tuple[SeedStock, ...] | list[SeedStock] = DEFAULT_STOCKS,
    days: int = 365,
    today: date | None = None,
    rng: random.Random | None = None,
) -> dict[str, int]:
    """Generate ``days`` of history ending ``today`` for each stock and store it.

    Returns
    -------
    dict[str, int]
        Records written per symbol.
    """
    if days < 0:
        raise ValueError(f"days must be >= 0, got {days}")
    end = today or datetime.now(UTC).date()
    start = end - timedelta(days=days)
    rng = rng or random.Random()

    written: dict[str, int] = {}
    for stock in stocks:
        series = generate_series(stock, start, end, rng)
        records = await store.upsert_many(stock.symbol, series)
        written[stock.symbol] = len(records)
        logger.info("Seeded %d records for %s", len(records), stock.symbol)
    return written


async def clear_store(store: PriceStore) -> int:
    """Delete every stored record. Returns the number deleted."""
    deleted = await store.delete_older_than(0)
    logger.info("Cleared %d seeded records", deleted)
    return deleted
