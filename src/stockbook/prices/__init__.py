"""Price persistence and ingestion.

Architecture
------------
    Yahoo Finance / CSV → adapter → list[PricePoint] → PriceStore

Key abstractions:

- ``PricePoint`` / ``PriceRecord``: series point and persisted row.
- ``ChartAdapter``: Transforms raw source data into ``PricePoint`` records.
- ``QuoteProvider``: Async interface to the external quote source.
- ``PriceStore``: Persistence protocol for (symbol, date) price rows.

Built-in implementations:

- ``YahooQuoteClient`` / ``YahooChartAdapter``: Yahoo Finance HTTP API.
- ``CSVPriceAdapter``: Parses CSV files into PricePoints.
- ``SqlitePriceStore``: aiosqlite-backed store.
"""

from stockbook.prices.csv_adapter import CSVPriceAdapter, load_csv_prices
from stockbook.prices.periods import (
    date_range_for,
    downsample,
    lookback_days,
    max_points,
    range_interval,
)
from stockbook.prices.provider import ChartAdapter, QuoteProvider
from stockbook.prices.store import PriceStore, SqlitePriceStore, create_store, parse_date
from stockbook.prices.yahoo import YahooChartAdapter, YahooQuoteClient

__all__ = [
    # Protocols
    "ChartAdapter",
    "QuoteProvider",
    "PriceStore",
    # Yahoo Finance
    "YahooChartAdapter",
    "YahooQuoteClient",
    # CSV
    "CSVPriceAdapter",
    "load_csv_prices",
    # SQLite
    "SqlitePriceStore",
    "create_store",
    "parse_date",
    # Periods
    "date_range_for",
    "downsample",
    "lookback_days",
    "max_points",
    "range_interval",
]
