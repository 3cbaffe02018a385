"""Period tables and the max-points downsampling filter.

Every table is keyed by :class:`Period`. Lookback and provider range
mappings fall back to ``1M`` for unrecognized strings; the max-points table
keeps its own default of 100 points.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, timedelta
from typing import TypeVar

from stockbook.core.models import Period

T = TypeVar("T")

DEFAULT_MAX_POINTS = 100

_MAX_POINTS: dict[Period, int] = {
    Period.ONE_DAY: 1,
    Period.ONE_WEEK: 7,
    Period.ONE_MONTH: 30,
    Period.THREE_MONTHS: 90,
    Period.SIX_MONTHS: 180,
    Period.ONE_YEAR: 365,
    Period.TWO_YEARS: 730,
    Period.FIVE_YEARS: 1825,
    Period.TEN_YEARS: 3650,
    Period.MAX: 3650,
}

_LOOKBACK_DAYS: dict[Period, int] = {
    Period.ONE_DAY: 1,
    Period.ONE_WEEK: 7,
    Period.ONE_MONTH: 30,
    Period.THREE_MONTHS: 90,
    Period.SIX_MONTHS: 180,
    Period.ONE_YEAR: 365,
    Period.TWO_YEARS: 730,
    Period.FIVE_YEARS: 1825,
    Period.TEN_YEARS: 3650,
    Period.MAX: 7300,
}

# Yahoo chart API (range, interval) per period
_RANGE_INTERVAL: dict[Period, tuple[str, str]] = {
    Period.ONE_DAY: ("1d", "5m"),
    Period.ONE_WEEK: ("5d", "15m"),
    Period.ONE_MONTH: ("1mo", "1d"),
    Period.THREE_MONTHS: ("3mo", "1d"),
    Period.SIX_MONTHS: ("6mo", "1d"),
    Period.ONE_YEAR: ("1y", "1d"),
    Period.TWO_YEARS: ("2y", "1wk"),
    Period.FIVE_YEARS: ("5y", "1wk"),
    Period.TEN_YEARS: ("10y", "1mo"),
    Period.MAX: ("max", "1mo"),
}


def _lookup(period: str | Period) -> Period | None:
    try:
        return Period(str(period).strip().upper())
    except ValueError:
        return None


def max_points(period: str | Period) -> int:
    """Maximum number of points a series for ``period`` may hold."""
    known = _lookup(period)
    if known is None:
        return DEFAULT_MAX_POINTS
    return _MAX_POINTS[known]


def lookback_days(period: str | Period) -> int:
    return _LOOKBACK_DAYS[Period.parse(period)]


def date_range_for(period: str | Period, today: date) -> tuple[date, date]:
    """Inclusive (start, end) window ending ``today``."""
    return today - timedelta(days=lookback_days(period)), today


def range_interval(period: str | Period) -> tuple[str, str]:
    """Provider ``(range, interval)`` query parameters for ``period``."""
    return _RANGE_INTERVAL[Period.parse(period)]


def downsample(series: Sequence[T], period: str | Period) -> list[T]:
    """Reduce ``series`` to at most ``max_points(period)`` by positional stride.

    Keeps every ``step``-th element starting at index 0, where
    ``step = max(len // max_points, 1)``. The floor stride can leave more
    than ``max_points`` elements, so the result is then cut to the bound.
    Input at or under the bound is returned unchanged. Order is preserved.
    """
    limit = max_points(period)
    if len(series) <= limit:
        return list(series)

    step = max(len(series) // limit, 1)
    return list(series[::step])[:limit]
