"""SQLite-backed price storage: the durable per-(symbol, date) tier.

Uses aiosqlite for async access, WAL mode for concurrent reads, and a
version-tracked migration system. Prices are stored as decimal text so they
round-trip exactly; uniqueness of (symbol, data_date) is enforced by the
schema and every write goes through ``ON CONFLICT ... DO UPDATE``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import ClassVar, Protocol, runtime_checkable

import aiosqlite

from stockbook.core.config import StorageConfig
from stockbook.core.exceptions import InvalidDateError, StockbookError, StorageError
from stockbook.core.models import PricePoint, PriceRecord, StorageBackend

logger = logging.getLogger(__name__)

_TABLE = "stock_data"
_COLUMNS = "id, symbol, price, volume, data_date, created_at, updated_at"

DateLike = date | str


@runtime_checkable
class PriceStore(Protocol):
    """Protocol for price data persistence backends."""

    async def get_latest(self, symbol: str) -> PriceRecord | None: ...
    async def get_by_date(self, symbol: str, on: DateLike) -> PriceRecord | None: ...
    async def get_range(
        self, symbol: str, start: DateLike, end: DateLike
    ) -> list[PriceRecord]: ...
    async def upsert(
        self, symbol: str, price: Decimal, volume: int | None, on: DateLike
    ) -> PriceRecord: ...
    async def upsert_many(
        self, symbol: str, points: Iterable[PricePoint]
    ) -> list[PriceRecord]: ...
    async def has_data_on(self, symbol: str, on: DateLike) -> bool: ...
    async def distinct_symbols(self) -> list[str]: ...
    async def latest_date_for(self, symbol: str) -> date | None: ...
    async def delete_older_than(self, days_to_keep: int) -> int: ...
    async def missing_dates(
        self, symbol: str, start: DateLike, end: DateLike
    ) -> list[date]: ...


def parse_date(value: DateLike, field: str = "date") -> date:
    """Accept a ``date`` or a strict ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").date()
    except ValueError as e:
        raise InvalidDateError(
            f"Invalid {field}: {value!r} (expected YYYY-MM-DD)",
            context={"field": field, "value": str(value)},
        ) from e


def _price_text(price: Decimal | int | float | str) -> str:
    if isinstance(price, float):
        return str(Decimal(repr(price)))
    return str(Decimal(price))


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SqlitePriceStore:
    """SQLite implementation of :class:`PriceStore`.

    Parameters
    ----------
    config : StorageConfig
        ``sqlite_path`` may be ``":memory:"``.
    clock : Callable[[], datetime] | None
        Source of ``created_at``/``updated_at`` timestamps and of "today"
        for retention cleanup. Defaults to ``datetime.now(UTC)``.
    """

    _MIGRATIONS: ClassVar[dict[int, tuple[str, list[str]]]] = {
        1: (
            "Initial schema",
            [
                """CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT DEFAULT (datetime('now'))
                )""",
                """CREATE TABLE IF NOT EXISTS stock_data (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    symbol TEXT NOT NULL,
                    price TEXT NOT NULL,
                    volume INTEGER,
                    data_date TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(symbol, data_date)
                )""",
                "CREATE INDEX IF NOT EXISTS idx_stock_data_symbol ON stock_data(symbol)",
                "CREATE INDEX IF NOT EXISTS idx_stock_data_date ON stock_data(data_date)",
            ],
        ),
    }

    def __init__(
        self,
        config: StorageConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._path = config.sqlite_path
        self._clock = clock or _utcnow
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection, enable WAL, run migrations."""
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode=WAL")
            current = await self._get_schema_version()
            await self._apply_migrations(current)
            await self._db.commit()
        except Exception as e:
            raise StorageError(
                f"Failed to initialize SQLite store: {e}",
                context={"operation": "initialize", "path": self._path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def health_check(self) -> bool:
        if self._db is None:
            return False
        try:
            async with self._db.execute("SELECT 1") as cursor:
                row = await cursor.fetchone()
            return row is not None
        except Exception:
            return False

    @property
    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError(
                "Store is not initialized",
                context={"operation": "connect", "table": _TABLE},
            )
        return self._db

    # --- Schema Migration ---

    async def _get_schema_version(self) -> int:
        try:
            async with self._conn.execute(
                "SELECT MAX(version) FROM schema_version"
            ) as cursor:
                row = await cursor.fetchone()
            return row[0] if row[0] is not None else 0
        except aiosqlite.OperationalError:
            return 0

    async def _apply_migrations(self, current_version: int) -> None:
        for version in sorted(self._MIGRATIONS.keys()):
            if version <= current_version:
                continue
            desc, statements = self._MIGRATIONS[version]
            logger.info("Applying migration %d: %s", version, desc)
            for sql in statements:
                await self._conn.execute(sql)
            await self._conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )

    # --- Reads ---

    async def get_latest(self, symbol: str) -> PriceRecord | None:
        try:
            async with self._conn.execute(
                f"""SELECT {_COLUMNS} FROM stock_data
                    WHERE symbol = ?
                    ORDER BY data_date DESC LIMIT 1""",
                (symbol.upper(),),
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_record(row) if row is not None else None
        except StockbookError:
            raise
        except Exception as e:
            raise self._wrap(e, "query", "Failed to get latest record") from e

    async def get_by_date(self, symbol: str, on: DateLike) -> PriceRecord | None:
        day = parse_date(on)
        try:
            async with self._conn.execute(
                f"SELECT {_COLUMNS} FROM stock_data WHERE symbol = ? AND data_date = ?",
                (symbol.upper(), day.isoformat()),
            ) as cursor:
                row = await cursor.fetchone()
            return self._row_to_record(row) if row is not None else None
        except StockbookError:
            raise
        except Exception as e:
            raise self._wrap(e, "query", "Failed to get record by date") from e

    async def get_range(
        self, symbol: str, start: DateLike, end: DateLike
    ) -> list[PriceRecord]:
        """Records with ``start <= data_date <= end``, ascending by date."""
        start_day = parse_date(start, "start")
        end_day = parse_date(end, "end")
        try:
            async with self._conn.execute(
                f"""SELECT {_COLUMNS} FROM stock_data
                    WHERE symbol = ? AND data_date >= ? AND data_date <= ?
                    ORDER BY data_date ASC""",
                (symbol.upper(), start_day.isoformat(), end_day.isoformat()),
            ) as cursor:
                rows = await cursor.fetchall()
            return [self._row_to_record(r) for r in rows]
        except StockbookError:
            raise
        except Exception as e:
            raise self._wrap(e, "query", "Failed to get record range") from e

    async def has_data_on(self, symbol: str, on: DateLike) -> bool:
        day = parse_date(on)
        try:
            async with self._conn.execute(
                "SELECT 1 FROM stock_data WHERE symbol = ? AND data_date = ?",
                (symbol.upper(), day.isoformat()),
            ) as cursor:
                row = await cursor.fetchone()
            return row is not None
        except StockbookError:
            raise
        except Exception as e:
            raise self._wrap(e, "query", "Failed to check data existence") from e

    async def distinct_symbols(self) -> list[str]:
        try:
            async with self._conn.execute(
                "SELECT DISTINCT symbol FROM stock_data ORDER BY symbol"
            ) as cursor:
                rows = await cursor.fetchall()
            return [row["symbol"] for row in rows]
        except StockbookError:
            raise
        except Exception as e:
            raise self._wrap(e, "query", "Failed to list symbols") from e

    async def latest_date_for(self, symbol: str) -> date | None:
        try:
            async with self._conn.execute(
                "SELECT MAX(data_date) AS latest FROM stock_data WHERE symbol = ?",
                (symbol.upper(),),
            ) as cursor:
                row = await cursor.fetchone()
            if row is None or row["latest"] is None:
                return None
            return date.fromisoformat(row["latest"])
        except StockbookError:
            raise
        except Exception as e:
            raise self._wrap(e, "query", "Failed to get latest date") from e

    async def missing_dates(
        self, symbol: str, start: DateLike, end: DateLike
    ) -> list[date]:
        """Calendar dates in [start, end] with no stored record."""
        start_day = parse_date(start, "start")
        end_day = parse_date(end, "end")
        try:
            async with self._conn.execute(
                """SELECT data_date FROM stock_data
                   WHERE symbol = ? AND data_date >= ? AND data_date <= ?""",
                (symbol.upper(), start_day.isoformat(), end_day.isoformat()),
            ) as cursor:
                rows = await cursor.fetchall()
        except StockbookError:
            raise
        except Exception as e:
            raise self._wrap(e, "query", "Failed to get missing dates") from e

        present = {row["data_date"] for row in rows}
        missing: list[date] = []
        current = start_day
        while current <= end_day:
            if current.isoformat() not in present:
                missing.append(current)
            current += timedelta(days=1)
        return missing

    async def get_statistics(self) -> dict[str, int]:
        try:
            async with self._conn.execute(
                """SELECT COUNT(*) AS total, COUNT(DISTINCT symbol) AS symbols
                   FROM stock_data"""
            ) as cursor:
                row = await cursor.fetchone()
            return {"total_records": row["total"], "symbols_count": row["symbols"]}
        except StockbookError:
            raise
        except Exception as e:
            raise self._wrap(e, "query", "Failed to get statistics") from e

    # --- Writes ---

    async def upsert(
        self,
        symbol: str,
        price: Decimal,
        volume: int | None,
        on: DateLike,
    ) -> PriceRecord:
        """Insert, or on (symbol, date) conflict update price/volume/updated_at."""
        day = parse_date(on)
        canonical = symbol.strip().upper()
        now = self._clock().isoformat()
        try:
            await self._conn.execute(
                """INSERT INTO stock_data
                   (symbol, price, volume, data_date, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(symbol, data_date) DO UPDATE SET
                       price = excluded.price,
                       volume = excluded.volume,
                       updated_at = excluded.updated_at""",
                (canonical, _price_text(price), volume, day.isoformat(), now, now),
            )
            await self._conn.commit()
            async with self._conn.execute(
                f"SELECT {_COLUMNS} FROM stock_data WHERE symbol = ? AND data_date = ?",
                (canonical, day.isoformat()),
            ) as cursor:
                row = await cursor.fetchone()
        except StockbookError:
            raise
        except Exception as e:
            raise self._wrap(
                e, "upsert", "Failed to upsert record", symbol=canonical, date=day.isoformat()
            ) from e
        return self._row_to_record(row)

    async def upsert_many(
        self, symbol: str, points: Iterable[PricePoint]
    ) -> list[PriceRecord]:
        """Apply :meth:`upsert` per point, in order.

        Each upsert commits on its own; a failure part-way leaves the
        earlier points stored.
        """
        results = []
        for point in points:
            results.append(await self.upsert(symbol, point.price, point.volume, point.date))
        logger.info("Upserted %d records for %s", len(results), symbol.upper())
        return results

    async def delete_older_than(self, days_to_keep: int) -> int:
        """Delete records dated before ``today - days_to_keep``.

        ``days_to_keep == 0`` deletes every record for every symbol.
        """
        if days_to_keep < 0:
            raise ValueError(f"days_to_keep must be >= 0, got {days_to_keep}")
        try:
            if days_to_keep == 0:
                cursor = await self._conn.execute("DELETE FROM stock_data")
            else:
                today = self._clock().astimezone(UTC).date()
                cutoff = today - timedelta(days=days_to_keep)
                cursor = await self._conn.execute(
                    "DELETE FROM stock_data WHERE data_date < ?",
                    (cutoff.isoformat(),),
                )
            deleted = cursor.rowcount
            await cursor.close()
            await self._conn.commit()
        except StockbookError:
            raise
        except Exception as e:
            raise self._wrap(e, "delete", "Failed to delete old records") from e
        logger.info("Deleted %d records (days_to_keep=%d)", deleted, days_to_keep)
        return deleted

    # --- Helpers ---

    @staticmethod
    def _wrap(
        e: Exception, operation: str, message: str, **context: str
    ) -> StorageError:
        return StorageError(
            f"{message}: {e}",
            context={"operation": operation, "table": _TABLE, **context},
        )

    @staticmethod
    def _row_to_record(row: aiosqlite.Row) -> PriceRecord:
        return PriceRecord(
            id=row["id"],
            symbol=row["symbol"],
            price=Decimal(row["price"]),
            volume=row["volume"],
            date=date.fromisoformat(row["data_date"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


async def create_store(
    config: StorageConfig,
    clock: Callable[[], datetime] | None = None,
) -> SqlitePriceStore:
    """Create and initialize a storage backend based on configuration."""
    if config.backend == StorageBackend.SQLITE:
        store = SqlitePriceStore(config, clock=clock)
        await store.initialize()
        return store
    raise StorageError(
        f"Unsupported storage backend: {config.backend}",
        context={"operation": "create_store", "backend": str(config.backend)},
    )
