"""Shared pytest fixtures for stockbook."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

from stockbook.core.config import StockbookConfig, StorageConfig
from stockbook.core.models import Period, PricePoint, ProviderQuote, SymbolEntry
from stockbook.prices.store import SqlitePriceStore
from stockbook.resolver import QuoteResolver
from stockbook.search import SymbolSearchMerger


class FakeClock:
    """Controllable time source; call it to read, ``advance`` to move it."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeProvider:
    """In-process QuoteProvider that records every call.

    Set ``price``/``chart``/``hits`` to control results, or ``error`` to
    make every method raise it.
    """

    def __init__(self) -> None:
        self.price: Decimal = Decimal("123.45")
        self.chart: list[PricePoint] = []
        self.hits: list[ProviderQuote] = []
        self.error: Exception | None = None
        self.price_calls: list[str] = []
        self.chart_calls: list[tuple[str, str]] = []
        self.search_calls: list[tuple[str, int]] = []

    @property
    def call_count(self) -> int:
        return len(self.price_calls) + len(self.chart_calls) + len(self.search_calls)

    async def fetch_current_price(self, symbol: str) -> Decimal:
        self.price_calls.append(symbol)
        if self.error is not None:
            raise self.error
        return self.price

    async def fetch_chart(self, symbol: str, period: str | Period) -> list[PricePoint]:
        self.chart_calls.append((symbol, str(period)))
        if self.error is not None:
            raise self.error
        return list(self.chart)

    async def fetch_search(self, query: str, limit: int) -> list[ProviderQuote]:
        self.search_calls.append((query, limit))
        if self.error is not None:
            raise self.error
        return list(self.hits)[:limit]


# Friday afternoon, UTC
NOW = datetime(2024, 6, 14, 15, 30, tzinfo=UTC)
TODAY = NOW.date()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture
async def store(clock: FakeClock):
    """In-memory SqlitePriceStore on the fake clock."""
    s = SqlitePriceStore(StorageConfig(sqlite_path=":memory:"), clock=clock)
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def catalog() -> list[SymbolEntry]:
    return [
        SymbolEntry(
            symbol="AAPL",
            name="Apple Inc.",
            exchange="NASDAQ",
            asset_type="Equity",
            ipo_date=date(1980, 12, 12),
        ),
        SymbolEntry(
            symbol="MSFT",
            name="Microsoft Corporation",
            exchange="NASDAQ",
            asset_type="Equity",
            ipo_date=date(1986, 3, 13),
        ),
        SymbolEntry(
            symbol="SNAP",
            name="Snapaapl Inc.",
            exchange="NYSE",
            asset_type="Equity",
        ),
    ]


@pytest.fixture
def merger(catalog: list[SymbolEntry], provider: FakeProvider) -> SymbolSearchMerger:
    return SymbolSearchMerger(catalog, provider)


@pytest.fixture
def resolver(
    store: SqlitePriceStore,
    provider: FakeProvider,
    merger: SymbolSearchMerger,
    clock: FakeClock,
) -> QuoteResolver:
    return QuoteResolver(store, provider, merger, StockbookConfig(), clock=clock)


def _series(end: date, days: int, start_price: str = "100.00") -> list[PricePoint]:
    """One point per calendar day ending at ``end``, price rising by 1.00/day."""
    base = Decimal(start_price)
    first = end - timedelta(days=days - 1)
    return [
        PricePoint(date=first + timedelta(days=i), price=base + i, volume=1_000 + i)
        for i in range(days)
    ]


@pytest.fixture
def make_series():
    return _series
