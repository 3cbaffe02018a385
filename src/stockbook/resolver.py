"""Tiered quote resolution: expiring cache, persistent store, then provider.

The resolver is the only component collaborators call. Each request runs
the lookup fresh:

    ExpiringCache (if enabled) → PriceStore freshness check
        → QuoteProvider on miss → best-effort store write-back
        → max-points downsampling → cache write → caller

Storage failures never fail a request that the provider can still serve.
Provider failures with no stored fallback propagate as ``QuoteError``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from decimal import Decimal

from stockbook.cache import ExpiringCache
from stockbook.core.config import StockbookConfig
from stockbook.core.exceptions import StockbookError, StorageError
from stockbook.core.models import (
    CacheStats,
    Period,
    PricePoint,
    PriceRecord,
    SymbolSuggestion,
)
from stockbook.prices.periods import date_range_for, downsample
from stockbook.prices.provider import QuoteProvider
from stockbook.prices.store import PriceStore, create_store
from stockbook.prices.yahoo import YahooQuoteClient
from stockbook.search import SymbolSearchMerger, load_symbol_catalog

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _canonical(symbol: str) -> str:
    canonical = symbol.strip().upper()
    if not canonical:
        raise ValueError("symbol must not be empty")
    return canonical


class QuoteResolver:
    """Resolves prices, charts, and symbol searches across three tiers.

    Parameters
    ----------
    store : PriceStore
        Persistent (symbol, date) price store. Source of truth.
    provider : QuoteProvider
        External quote source, called only on a store miss.
    merger : SymbolSearchMerger
        Catalog/provider search merger.
    config : StockbookConfig
        Uses ``cache.enabled`` and the ``search`` limits.
    clock : Callable[[], datetime] | None
        Current time; "today" is its UTC date. Shared with the caches.
    """

    def __init__(
        self,
        store: PriceStore,
        provider: QuoteProvider,
        merger: SymbolSearchMerger,
        config: StockbookConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._merger = merger
        self._config = config or StockbookConfig()
        self._clock = clock or _utcnow

        self._price_cache: ExpiringCache[Decimal] = ExpiringCache(self._clock)
        self._chart_cache: ExpiringCache[list[PricePoint]] = ExpiringCache(self._clock)
        self._symbol_cache: ExpiringCache[list[SymbolSuggestion]] = ExpiringCache(
            self._clock
        )

    @property
    def cache_enabled(self) -> bool:
        return self._config.cache.enabled

    def _today(self) -> date:
        return self._clock().astimezone(UTC).date()

    # --- Current price ---

    async def get_current_price(self, symbol: str) -> Decimal:
        """Today's price for ``symbol``.

        Returns the stored record for today when there is one; otherwise
        fetches from the provider and stores the result as today's record.

        Raises:
            QuoteError: Provider failure with no record for today.
        """
        key = _canonical(symbol)
        if self.cache_enabled:
            cached = self._price_cache.get(key)
            if cached is not None:
                logger.debug("Price cache hit for %s", key)
                return cached

        today = self._today()
        record: PriceRecord | None = None
        try:
            record = await self._store.get_by_date(key, today)
        except StorageError as e:
            logger.warning("Store read failed for %s, using provider: %s", key, e)

        if record is not None:
            price = record.price
        else:
            price = await self._provider.fetch_current_price(key)
            await self._write_back_price(key, price, today)

        if self.cache_enabled:
            self._price_cache.put(key, price)
        return price

    async def _write_back_price(self, symbol: str, price: Decimal, today: date) -> bool:
        try:
            await self._store.upsert(symbol, price, None, today)
        except StorageError as e:
            logger.warning("Failed to store price for %s: %s", symbol, e)
            return False
        return True

    # --- Chart ---

    async def get_chart_data(self, symbol: str, period: str | Period) -> list[PricePoint]:
        """Price series for ``symbol`` over ``period``, at most max-points long.

        Stored data is used when the lookback window holds a record dated
        today or later; otherwise the full provider series is fetched and
        stored.

        Raises:
            QuoteError: Provider failure when stored data is stale or absent.
        """
        key = _canonical(symbol)
        period_key = str(period).strip().upper()
        cache_key = f"{key}:{period_key}"
        if self.cache_enabled:
            cached = self._chart_cache.get(cache_key)
            if cached is not None:
                logger.debug("Chart cache hit for %s", cache_key)
                return list(cached)

        today = self._today()
        start, end = date_range_for(period_key, today)

        records: list[PriceRecord] = []
        try:
            records = await self._store.get_range(key, start, end)
        except StorageError as e:
            logger.warning("Store range read failed for %s, using provider: %s", key, e)

        if records and any(r.date >= today for r in records):
            series = [PricePoint.from_record(r) for r in records]
        else:
            series = await self._provider.fetch_chart(key, period_key)
            try:
                await self._store.upsert_many(key, series)
            except StorageError as e:
                logger.warning("Failed to store chart for %s: %s", cache_key, e)

        points = downsample(series, period_key)
        if self.cache_enabled:
            self._chart_cache.put(cache_key, points)
        return list(points)

    # --- Search ---

    async def search_symbols(
        self, query: str, limit: int | None = None
    ) -> list[SymbolSuggestion]:
        """Search the catalog and provider; exact symbol match first.

        ``limit`` defaults to ``search.default_limit`` and is capped at
        ``search.max_limit``. Results degraded by a provider failure are
        returned but not cached.
        """
        search_config = self._config.search
        if limit is None:
            limit = search_config.default_limit
        limit = min(limit, search_config.max_limit)

        normalized = query.strip().lower()
        if not normalized or limit <= 0:
            return []

        cache_key = f"{normalized}:{limit}"
        if self.cache_enabled:
            cached = self._symbol_cache.get(cache_key)
            if cached is not None:
                return list(cached)

        result = await self._merger.search(normalized, limit)
        if self.cache_enabled and result.complete:
            self._symbol_cache.put(cache_key, result.suggestions)
        return list(result.suggestions)

    # --- Cache maintenance ---

    def get_cache_stats(self) -> CacheStats:
        return CacheStats(
            price_count=self._price_cache.size(),
            chart_count=self._chart_cache.size(),
            symbol_count=self._symbol_cache.size(),
        )

    def clear_cache(self) -> None:
        self._price_cache.clear()
        self._chart_cache.clear()
        self._symbol_cache.clear()
        logger.info("Cleared all resolver caches")

    def cleanup_expired_cache(self) -> int:
        """Sweep expired entries from every cache. Returns the number removed."""
        removed = (
            self._price_cache.sweep()
            + self._chart_cache.sweep()
            + self._symbol_cache.sweep()
        )
        logger.info("Removed %d expired cache entries", removed)
        return removed

    async def cleanup_old_data(self, days_to_keep: int) -> int:
        """Delete stored records older than ``days_to_keep`` days (0 = all)."""
        deleted = await self._store.delete_older_than(days_to_keep)
        logger.info("Cleaned up %d stored records older than %d days", deleted, days_to_keep)
        return deleted

    # --- Bulk operations ---

    async def update_prices(self, symbols: Iterable[str]) -> dict[str, Decimal]:
        """Refresh today's price for every symbol lacking a record for today.

        Symbols that already have today's record are skipped. A symbol
        whose fetch or store fails is logged and left out of the result.
        """
        today = self._today()
        updated: dict[str, Decimal] = {}
        for symbol in dict.fromkeys(_canonical(s) for s in symbols):
            try:
                if await self._store.has_data_on(symbol, today):
                    logger.debug("Skipping %s, already updated today", symbol)
                    continue
            except StorageError as e:
                logger.warning("Store check failed for %s: %s", symbol, e)

            try:
                price = await self._provider.fetch_current_price(symbol)
            except StockbookError as e:
                logger.error("Failed to update price for %s: %s", symbol, e)
                continue

            if not await self._write_back_price(symbol, price, today):
                continue
            if self.cache_enabled:
                self._price_cache.put(symbol, price)
            updated[symbol] = price

        logger.info("Updated prices for %d symbols", len(updated))
        return updated

    async def get_portfolio_prices(self, symbols: Iterable[str]) -> dict[str, Decimal]:
        """Current price per symbol. The first failure propagates."""
        prices: dict[str, Decimal] = {}
        for symbol in dict.fromkeys(_canonical(s) for s in symbols):
            prices[symbol] = await self.get_current_price(symbol)
        return prices

    async def get_database_stats(self) -> dict[str, int]:
        symbols = await self._store.distinct_symbols()
        return {"symbols_count": len(symbols)}


@asynccontextmanager
async def open_resolver(
    config: StockbookConfig,
    clock: Callable[[], datetime] | None = None,
) -> AsyncIterator[QuoteResolver]:
    """Build a resolver from configuration and close its resources on exit."""
    store = await create_store(config.storage, clock=clock)
    try:
        async with YahooQuoteClient(config.provider) as client:
            merger = SymbolSearchMerger(
                load_symbol_catalog(config.search.symbols_path),
                client,
                config.search.asset_types,
            )
            yield QuoteResolver(store, client, merger, config, clock=clock)
    finally:
        await store.close()
