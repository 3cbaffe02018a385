"""End-to-end resolution across cache, SQLite file, and a mocked Yahoo API."""

from __future__ import annotations

import random
from datetime import timedelta
from decimal import Decimal

import httpx
import pytest
import respx

from stockbook.core.exceptions import BlockedOrRateLimitedError
from stockbook.prices.store import create_store
from stockbook.resolver import open_resolver
from stockbook.seed import seed_store

pytestmark = pytest.mark.integration

YAHOO = "https://yahoo.test"


def chart_json(timestamps: list[int], closes: list[float]) -> dict:
    return {
        "chart": {
            "result": [
                {
                    "meta": {"regularMarketPrice": closes[-1] if closes else None},
                    "timestamp": timestamps,
                    "indicators": {"quote": [{"close": closes, "volume": [1] * len(closes)}]},
                }
            ],
            "error": None,
        }
    }


class TestSeededScenario:
    @respx.mock
    async def test_single_seeded_record_serves_price_and_chart(
        self, integration_config, clock
    ):
        today = clock().date()

        store = await create_store(integration_config.storage, clock=clock)
        await store.upsert("AAPL", Decimal("150.00"), 50_000_000, today)
        await store.close()

        async with open_resolver(integration_config, clock=clock) as resolver:
            assert await resolver.get_current_price("AAPL") == Decimal("150.00")
            chart = await resolver.get_chart_data("AAPL", "1M")

        assert len(chart) == 1
        assert chart[0].date == today
        assert chart[0].price == Decimal("150.00")
        assert chart[0].volume == 50_000_000
        assert respx.calls.call_count == 0

    @respx.mock
    async def test_seeded_year_serves_long_charts(self, integration_config, clock):
        store = await create_store(integration_config.storage, clock=clock)
        await seed_store(store, days=365, today=clock().date(), rng=random.Random(11))
        await store.close()

        async with open_resolver(integration_config, clock=clock) as resolver:
            for period in ("1W", "1M", "1Y"):
                points = await resolver.get_chart_data("MSFT", period)
                assert 0 < len(points) <= {"1W": 7, "1M": 30, "1Y": 365}[period]
                assert [p.date for p in points] == sorted(p.date for p in points)
            assert await resolver.get_database_stats() == {"symbols_count": 3}

        assert respx.calls.call_count == 0


class TestProviderRoundTrip:
    @respx.mock
    async def test_fetched_price_persists_across_resolvers(self, integration_config, clock):
        route = respx.get(f"{YAHOO}/v8/finance/chart/NVDA").mock(
            return_value=httpx.Response(
                200,
                text='{"chart":{"result":[{"meta":{"regularMarketPrice":131.38}}],"error":null}}',
            )
        )

        async with open_resolver(integration_config, clock=clock) as resolver:
            assert await resolver.get_current_price("nvda") == Decimal("131.38")

        # fresh process: empty cache, same database file
        async with open_resolver(integration_config, clock=clock) as resolver:
            assert await resolver.get_current_price("NVDA") == Decimal("131.38")

        assert route.call_count == 1

    @respx.mock
    async def test_stale_chart_refetched_and_stored(self, integration_config, clock):
        today = clock().date()
        midday = int(clock().replace(hour=14, minute=30).timestamp())
        timestamps = [midday - 86_400 * i for i in reversed(range(40))]
        closes = [100.0 + i for i in range(40)]
        route = respx.get(f"{YAHOO}/v8/finance/chart/AMD").mock(
            return_value=httpx.Response(200, json=chart_json(timestamps, closes))
        )

        store = await create_store(integration_config.storage, clock=clock)
        await store.upsert("AMD", Decimal("1.00"), None, today - timedelta(days=3))
        await store.close()

        async with open_resolver(integration_config, clock=clock) as resolver:
            points = await resolver.get_chart_data("AMD", "1M")

        assert route.call_count == 1
        assert route.calls.last.request.url.params["range"] == "1mo"
        assert len(points) == 30
        assert points[0].price == Decimal("100.0")

        store = await create_store(integration_config.storage, clock=clock)
        try:
            assert await store.latest_date_for("AMD") == today
            assert len(await store.get_range("AMD", today - timedelta(days=39), today)) == 40
        finally:
            await store.close()

    @respx.mock
    async def test_blocked_provider_with_no_stored_data(self, integration_config, clock):
        respx.get(f"{YAHOO}/v8/finance/chart/TSLA").mock(
            return_value=httpx.Response(200, text="<!doctype html><title>Yahoo</title>")
        )
        async with open_resolver(integration_config, clock=clock) as resolver:
            with pytest.raises(BlockedOrRateLimitedError, match="TSLA"):
                await resolver.get_current_price("TSLA")


class TestSearchFlow:
    @respx.mock
    async def test_bundled_catalog_merged_with_provider(self, integration_config, clock):
        respx.get(f"{YAHOO}/v1/finance/search").mock(
            return_value=httpx.Response(
                200,
                json={
                    "quotes": [
                        {
                            "symbol": "AAPL",
                            "shortname": "Apple Inc.",
                            "exchDisp": "NASDAQ",
                            "typeDisp": "Equity",
                            "quoteType": "EQUITY",
                        },
                        {
                            "symbol": "APLE",
                            "longname": "Apple Hospitality REIT, Inc.",
                            "exchDisp": "NYSE",
                            "typeDisp": "Equity",
                            "quoteType": "EQUITY",
                        },
                        {
                            "symbol": "AAPL250620C00200000",
                            "shortname": "AAPL Jun 2025 200 call",
                            "exchDisp": "OPR",
                            "typeDisp": "Option",
                            "quoteType": "OPTION",
                        },
                    ]
                },
            )
        )

        async with open_resolver(integration_config, clock=clock) as resolver:
            results = await resolver.search_symbols("aapl", 5)

        assert [s.symbol for s in results] == ["AAPL", "APLE"]
        assert results[0].name == "Apple Inc."
        assert results[0].exchange == "NASDAQ"

    @respx.mock
    async def test_rate_limited_search_returns_catalog_only(self, integration_config, clock):
        route = respx.get(f"{YAHOO}/v1/finance/search").mock(
            return_value=httpx.Response(429)
        )

        async with open_resolver(integration_config, clock=clock) as resolver:
            first = await resolver.search_symbols("micro", 5)
            second = await resolver.search_symbols("micro", 5)

        assert [s.symbol for s in first] == ["AMD", "MSFT"]
        assert first == second
        assert route.call_count == 2
