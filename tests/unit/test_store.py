"""Tests for stockbook.prices.store (SqlitePriceStore)."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from stockbook.core.config import StorageConfig
from stockbook.core.exceptions import InvalidDateError, StorageError
from stockbook.core.models import PricePoint
from stockbook.prices.store import PriceStore, SqlitePriceStore, create_store, parse_date


class TestParseDate:
    def test_accepts_iso_string(self):
        assert parse_date("2024-02-29") == date(2024, 2, 29)

    def test_accepts_date(self):
        assert parse_date(date(2024, 1, 1)) == date(2024, 1, 1)

    @pytest.mark.parametrize("bad", ["2024-02-30", "14/06/2024", "yesterday", ""])
    def test_rejects_malformed(self, bad):
        with pytest.raises(InvalidDateError) as exc_info:
            parse_date(bad, "start")
        assert exc_info.value.context == {"field": "start", "value": bad}


class TestLifecycle:
    async def test_satisfies_protocol(self, store):
        assert isinstance(store, PriceStore)

    async def test_schema_version_set(self, store):
        async with store._conn.execute("SELECT MAX(version) FROM schema_version") as cur:
            row = await cur.fetchone()
        assert row[0] == 1

    async def test_health_check(self, store):
        assert await store.health_check() is True

    async def test_uninitialized_raises_storage_error(self):
        store = SqlitePriceStore(StorageConfig(sqlite_path=":memory:"))
        assert await store.health_check() is False
        with pytest.raises(StorageError) as exc_info:
            await store.get_latest("AAPL")
        assert exc_info.value.context["table"] == "stock_data"

    async def test_create_store_file_backed(self, tmp_path):
        path = tmp_path / "nested" / "prices.db"
        store = await create_store(StorageConfig(sqlite_path=str(path)))
        try:
            await store.upsert("AAPL", Decimal("1.00"), None, "2024-01-02")
        finally:
            await store.close()
        assert path.exists()

        reopened = await create_store(StorageConfig(sqlite_path=str(path)))
        try:
            assert (await reopened.get_latest("AAPL")).price == Decimal("1.00")
        finally:
            await reopened.close()


class TestUpsert:
    async def test_insert_returns_record(self, store, clock):
        record = await store.upsert("aapl", Decimal("150.25"), 1000, "2024-06-14")
        assert record.id is not None
        assert record.symbol == "AAPL"
        assert record.price == Decimal("150.25")
        assert record.volume == 1000
        assert record.date == date(2024, 6, 14)
        assert record.created_at == clock()
        assert record.updated_at == clock()

    async def test_upsert_is_idempotent_per_day(self, store, clock):
        first = await store.upsert("AAPL", Decimal("150.00"), 10, date(2024, 6, 14))
        clock.advance(minutes=5)
        second = await store.upsert("AAPL", Decimal("151.50"), 20, date(2024, 6, 14))

        records = await store.get_range("AAPL", "2024-06-01", "2024-06-30")
        assert len(records) == 1
        assert second.id == first.id
        assert second.price == Decimal("151.50")
        assert second.volume == 20
        assert second.created_at == first.created_at
        assert second.updated_at > first.updated_at

    async def test_price_round_trips_exactly(self, store):
        await store.upsert("AAPL", Decimal("0.1000"), None, "2024-06-14")
        record = await store.get_by_date("AAPL", "2024-06-14")
        assert str(record.price) == "0.1000"

    async def test_float_price_converted_without_binary_noise(self, store):
        record = await store.upsert("AAPL", 0.1, None, "2024-06-14")
        assert record.price == Decimal("0.1")

    async def test_invalid_date_raises(self, store):
        with pytest.raises(InvalidDateError):
            await store.upsert("AAPL", Decimal("1"), None, "2024-13-01")

    async def test_upsert_many_sequential(self, store, make_series):
        points = make_series(date(2024, 6, 14), 5)
        records = await store.upsert_many("MSFT", points)
        assert [r.date for r in records] == [p.date for p in points]
        assert len(await store.get_range("MSFT", "2024-06-01", "2024-06-30")) == 5

    async def test_upsert_many_duplicate_dates_last_wins(self, store):
        day = date(2024, 6, 14)
        points = [
            PricePoint(date=day, price=Decimal("10"), volume=1),
            PricePoint(date=day, price=Decimal("11"), volume=2),
        ]
        await store.upsert_many("AAPL", points)
        record = await store.get_by_date("AAPL", day)
        assert record.price == Decimal("11")


class TestReads:
    async def test_get_latest(self, store):
        await store.upsert("AAPL", Decimal("1"), None, "2024-06-10")
        await store.upsert("AAPL", Decimal("2"), None, "2024-06-12")
        await store.upsert("AAPL", Decimal("3"), None, "2024-06-11")
        latest = await store.get_latest("aapl")
        assert latest.date == date(2024, 6, 12)

    async def test_get_latest_none(self, store):
        assert await store.get_latest("NOPE") is None

    async def test_get_range_inclusive_ascending(self, store, make_series):
        await store.upsert_many("AAPL", list(reversed(make_series(date(2024, 6, 14), 10))))
        records = await store.get_range("AAPL", "2024-06-07", "2024-06-10")
        assert [r.date.day for r in records] == [7, 8, 9, 10]

    async def test_get_range_isolated_by_symbol(self, store):
        await store.upsert("AAPL", Decimal("1"), None, "2024-06-14")
        await store.upsert("MSFT", Decimal("2"), None, "2024-06-14")
        records = await store.get_range("MSFT", "2024-06-14", "2024-06-14")
        assert [r.symbol for r in records] == ["MSFT"]

    async def test_has_data_on(self, store):
        await store.upsert("AAPL", Decimal("1"), None, "2024-06-14")
        assert await store.has_data_on("AAPL", "2024-06-14") is True
        assert await store.has_data_on("AAPL", "2024-06-13") is False

    async def test_distinct_symbols_sorted(self, store):
        for symbol in ["MSFT", "AAPL", "GOOGL", "AAPL"]:
            await store.upsert(symbol, Decimal("1"), None, "2024-06-14")
        assert await store.distinct_symbols() == ["AAPL", "GOOGL", "MSFT"]

    async def test_latest_date_for(self, store):
        assert await store.latest_date_for("AAPL") is None
        await store.upsert("AAPL", Decimal("1"), None, "2024-06-03")
        await store.upsert("AAPL", Decimal("1"), None, "2024-06-05")
        assert await store.latest_date_for("AAPL") == date(2024, 6, 5)

    async def test_missing_dates(self, store):
        await store.upsert("AAPL", Decimal("1"), None, "2024-06-02")
        await store.upsert("AAPL", Decimal("1"), None, "2024-06-04")
        missing = await store.missing_dates("AAPL", "2024-06-01", "2024-06-05")
        assert missing == [date(2024, 6, 1), date(2024, 6, 3), date(2024, 6, 5)]

    async def test_missing_dates_invalid_range_arg(self, store):
        with pytest.raises(InvalidDateError) as exc_info:
            await store.missing_dates("AAPL", "2024-06-01", "June 5")
        assert exc_info.value.context["field"] == "end"

    async def test_statistics(self, store):
        await store.upsert("AAPL", Decimal("1"), None, "2024-06-13")
        await store.upsert("AAPL", Decimal("1"), None, "2024-06-14")
        await store.upsert("MSFT", Decimal("1"), None, "2024-06-14")
        assert await store.get_statistics() == {"total_records": 3, "symbols_count": 2}


class TestDeleteOlderThan:
    async def test_zero_deletes_everything(self, store, clock):
        today = clock().date()
        await store.upsert("AAPL", Decimal("1"), None, today)
        await store.upsert("MSFT", Decimal("1"), None, today - timedelta(days=400))
        deleted = await store.delete_older_than(0)
        assert deleted == 2
        assert await store.distinct_symbols() == []

    async def test_keeps_recent_records(self, store, clock):
        today = clock().date()
        await store.upsert("AAPL", Decimal("1"), None, today)
        await store.upsert("AAPL", Decimal("1"), None, today - timedelta(days=30))
        await store.upsert("AAPL", Decimal("1"), None, today - timedelta(days=31))
        deleted = await store.delete_older_than(30)
        assert deleted == 1
        assert await store.get_by_date("AAPL", today - timedelta(days=30)) is not None

    async def test_cutoff_uses_utc_date(self, store, clock):
        # 01:00 at UTC+5 is still the previous day in UTC
        clock.now = datetime(2024, 6, 15, 1, 0, tzinfo=timezone(timedelta(hours=5)))
        await store.upsert("AAPL", Decimal("1"), None, date(2024, 5, 15))
        assert await store.delete_older_than(30) == 0
        assert await store.has_data_on("AAPL", "2024-05-15")

    async def test_negative_rejected(self, store):
        with pytest.raises(ValueError, match="days_to_keep"):
            await store.delete_older_than(-1)
