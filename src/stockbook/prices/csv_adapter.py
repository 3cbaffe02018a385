"""CSV price adapter: imports daily price history from CSV files.

Any raw format can be ingested by writing an adapter that produces
PricePoint records; this one reads ``csv.DictReader`` rows.
"""

from __future__ import annotations

import csv
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from stockbook.core.models import PricePoint

logger = logging.getLogger(__name__)

# Common column name mappings for auto-detection
_DATE_ALIASES = {"date", "Date", "DATE", "data_date", "timestamp", "Timestamp"}
_PRICE_ALIASES = {"close", "Close", "CLOSE", "price", "Price", "PRICE"}
_VOLUME_ALIASES = {"volume", "Volume", "VOLUME", "vol", "Vol"}


def _find_column(headers: list[str], aliases: set[str]) -> str | None:
    """Find the first header that matches any alias."""
    for h in headers:
        if h in aliases:
            return h
    return None


class CSVPriceAdapter:
    """Transforms CSV rows into PricePoint records.

    Column names are auto-detected from common conventions unless given.
    Prices are parsed straight into Decimal from the cell text.

    Parameters
    ----------
    date_col : str | None
        Name of the date column. Auto-detected if None.
    price_col : str | None
        Name of the closing price column. Auto-detected if None.
    volume_col : str | None
        Name of the volume column. Auto-detected if None.
    date_format : str
        strptime format tried when a cell is not ISO-8601.
    """

    def __init__(
        self,
        date_col: str | None = None,
        price_col: str | None = None,
        volume_col: str | None = None,
        date_format: str = "%Y-%m-%d",
    ) -> None:
        self._date_col = date_col
        self._price_col = price_col
        self._volume_col = volume_col
        self._date_format = date_format

    def _resolve_columns(self, headers: list[str]) -> dict[str, str | None]:
        return {
            "date": self._date_col or _find_column(headers, _DATE_ALIASES),
            "price": self._price_col or _find_column(headers, _PRICE_ALIASES),
            "volume": self._volume_col or _find_column(headers, _VOLUME_ALIASES),
        }

    def _parse_date(self, raw: str) -> date | None:
        try:
            return date.fromisoformat(raw)
        except ValueError:
            pass
        try:
            return datetime.strptime(raw, self._date_format).date()
        except ValueError:
            return None

    def adapt(self, raw_data: Any) -> list[PricePoint]:
        """Parse CSV rows (list of dicts) into a PricePoint list.

        Rows with an unparseable date or price are skipped with a warning.

        Returns
        -------
        list[PricePoint]
            Sorted by date ascending.

        Raises
        ------
        ValueError
            If no date or price column can be found.
        """
        if not raw_data:
            return []

        headers = list(raw_data[0].keys())
        cols = self._resolve_columns(headers)

        if cols["date"] is None:
            raise ValueError(f"Cannot find date column in headers: {headers}")
        if cols["price"] is None:
            raise ValueError(f"Cannot find price column in headers: {headers}")

        points: list[PricePoint] = []
        for row in raw_data:
            raw_date = (row.get(cols["date"]) or "").strip()
            point_date = self._parse_date(raw_date)
            if point_date is None:
                logger.warning("Skipping row with unparseable date: %s", raw_date)
                continue

            try:
                price = Decimal((row.get(cols["price"]) or "").strip())
            except InvalidOperation:
                logger.warning(
                    "Skipping row %s with unparseable price: %s",
                    raw_date,
                    row.get(cols["price"]),
                )
                continue

            raw_volume = (row.get(cols["volume"]) or "").strip() if cols["volume"] else ""
            points.append(
                PricePoint(
                    date=point_date,
                    price=price,
                    volume=int(Decimal(raw_volume)) if raw_volume else None,
                )
            )

        return sorted(points, key=lambda p: p.date)


def load_csv_prices(filepath: str | Path, **adapter_kwargs: Any) -> list[PricePoint]:
    """Load price points from a CSV file.

    Raises FileNotFoundError if the path does not exist.
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {filepath}")

    with open(path, newline="") as f:
        rows = list(csv.DictReader(f))

    return CSVPriceAdapter(**adapter_kwargs).adapt(rows)
