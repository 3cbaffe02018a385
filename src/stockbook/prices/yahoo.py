"""Yahoo Finance quote client over direct HTTP.

Uses the unauthenticated ``/v8/finance/chart/`` and ``/v1/finance/search``
endpoints via httpx. Responses are validated in a fixed order:

1. HTML body (consent/challenge page) or HTTP 429 → BlockedOrRateLimitedError
2. JSON envelope decode failure → ParsingError (ProviderError on non-2xx)
3. provider error object → ProviderError
4. no result entries → NoDataError

JSON is decoded with ``parse_float=Decimal`` so prices never pass through
binary floating point.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import quote

import httpx
from aiolimiter import AsyncLimiter

from stockbook.core.config import ProviderConfig
from stockbook.core.exceptions import (
    BlockedOrRateLimitedError,
    NetworkError,
    NoDataError,
    ParsingError,
    ProviderError,
)
from stockbook.core.models import Period, PricePoint, ProviderQuote
from stockbook.prices.periods import range_interval

logger = logging.getLogger(__name__)

_CHART_PATH = "/v8/finance/chart"
_SEARCH_PATH = "/v1/finance/search"
_HTML_PREFIXES = ("<!doctype", "<html")


def to_decimal(value: Any) -> Decimal:
    """Convert a provider number to Decimal without binary float error."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a price: {value!r}")
    if isinstance(value, float):
        return Decimal(repr(value))
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Not a price: {value!r}") from e


def _looks_like_html(body: str) -> bool:
    return body.lstrip()[:16].lower().startswith(_HTML_PREFIXES)


def _extract_error(payload: dict) -> dict | None:
    """Find a provider error object in a chart or search envelope."""
    for envelope in ("chart", "finance"):
        section = payload.get(envelope)
        if isinstance(section, dict) and section.get("error"):
            err = section["error"]
            return err if isinstance(err, dict) else {"description": str(err)}
    return None


class YahooChartAdapter:
    """Transforms a ``chart.result[0]`` object into PricePoint records.

    Parallel ``timestamp`` / ``close`` / ``volume`` arrays are zipped by
    index. An index whose close is null is skipped, never zero-filled.
    Timestamps become UTC calendar dates.
    """

    def adapt(self, raw_data: Any) -> list[PricePoint]:
        timestamps: list[int] = raw_data.get("timestamp") or []
        if not timestamps:
            return []

        quotes = (raw_data.get("indicators", {}).get("quote") or [{}])[0]
        closes: list[Any] = quotes.get("close") or []
        volumes: list[Any] = quotes.get("volume") or []

        points: list[PricePoint] = []
        for i, ts in enumerate(timestamps):
            close = closes[i] if i < len(closes) else None
            if close is None:
                continue
            volume = volumes[i] if i < len(volumes) else None

            points.append(
                PricePoint(
                    date=datetime.fromtimestamp(int(ts), UTC).date(),
                    price=to_decimal(close),
                    volume=int(volume) if volume is not None else None,
                )
            )

        return sorted(points, key=lambda p: p.date)


class YahooQuoteClient:
    """Fetches prices, charts, and symbol search results from Yahoo Finance.

    One outbound request per call, throttled by a token bucket. Use via
    ``async with YahooQuoteClient(config) as client:`` or call ``close()``.

    Parameters
    ----------
    config : ProviderConfig
        Base URL, user agent, timeout, and requests-per-second limit.
    adapter : YahooChartAdapter | None
        Custom chart adapter. Uses default if None.
    """

    def __init__(
        self,
        config: ProviderConfig,
        adapter: YahooChartAdapter | None = None,
    ) -> None:
        self._base_url = config.base_url
        self._limiter = AsyncLimiter(max_rate=config.rate_limit, time_period=1.0)
        self._client = httpx.AsyncClient(
            headers={"User-Agent": config.user_agent, "Accept": "application/json"},
            timeout=httpx.Timeout(config.timeout),
            follow_redirects=True,
        )
        self._adapter = adapter or YahooChartAdapter()

    async def __aenter__(self) -> YahooQuoteClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client. Called automatically by __aexit__."""
        await self._client.aclose()

    # --- Public API ---

    async def fetch_current_price(self, symbol: str) -> Decimal:
        """Return ``meta.regularMarketPrice`` from a one-day, 1-minute chart.

        Raises:
            NoDataError: If the result or its market price is absent.
            QuoteError: Any other provider failure (see module docstring).
        """
        subject = f"symbol {symbol}"
        context = {"symbol": symbol.upper()}
        result = await self._fetch_chart_result(
            symbol, {"interval": "1m", "range": "1d"}, subject, context
        )

        meta = result.get("meta")
        price = meta.get("regularMarketPrice") if isinstance(meta, dict) else None
        if price is None:
            raise NoDataError(
                f"No current price data found for {subject}", context=context
            )
        try:
            value = to_decimal(price)
        except ValueError as e:
            raise ParsingError(
                f"Unreadable market price for {subject}: {price!r}",
                context={**context, "reason": str(e)},
            ) from e

        logger.info("Fetched current price for %s: %s", symbol.upper(), value)
        return value

    async def fetch_chart(self, symbol: str, period: str | Period) -> list[PricePoint]:
        """Fetch the provider's series for ``period`` (unknown periods use 1M)."""
        range_, interval = range_interval(period)
        subject = f"symbol {symbol} with period {period}"
        context = {"symbol": symbol.upper(), "period": str(period)}
        result = await self._fetch_chart_result(
            symbol, {"interval": interval, "range": range_}, subject, context
        )

        try:
            points = self._adapter.adapt(result)
        except (ValueError, TypeError, AttributeError) as e:
            raise ParsingError(
                f"Malformed chart data for {subject}: {e}",
                context={**context, "reason": str(e)},
            ) from e

        logger.info("Fetched %d price points for %s", len(points), symbol.upper())
        return points

    async def fetch_search(self, query: str, limit: int) -> list[ProviderQuote]:
        """Search symbols; every quote type is returned, filtering is the caller's."""
        url = f"{self._base_url}{_SEARCH_PATH}"
        params = {"q": query, "quotesCount": str(limit), "newsCount": "0"}
        payload = await self._get_json(
            url, params, f"search query {query!r}", {"query": query}
        )

        quotes = payload.get("quotes") or []
        if not isinstance(quotes, list):
            raise ParsingError(
                f"Malformed search response for query {query!r}",
                context={"query": query, "url": url, "reason": "quotes is not a list"},
            )

        hits: list[ProviderQuote] = []
        for item in quotes:
            if not isinstance(item, dict) or not item.get("symbol"):
                continue
            hits.append(
                ProviderQuote(
                    symbol=str(item["symbol"]),
                    name=str(item.get("longname") or item.get("shortname") or ""),
                    exchange=str(item.get("exchDisp") or ""),
                    asset_type=str(item.get("typeDisp") or ""),
                    quote_type=str(item.get("quoteType") or "").upper(),
                )
            )

        logger.info("Found %d provider search hits for %r", len(hits), query)
        return hits

    # --- Request & Validation ---

    async def _fetch_chart_result(
        self,
        symbol: str,
        params: dict[str, str],
        subject: str,
        context: dict[str, str],
    ) -> dict:
        """Return ``chart.result[0]`` for ``symbol``."""
        url = f"{self._base_url}{_CHART_PATH}/{quote(symbol.upper(), safe='')}"
        payload = await self._get_json(url, params, subject, context)

        chart = payload.get("chart")
        if not isinstance(chart, dict):
            raise ParsingError(
                f"Response for {subject} has no chart envelope",
                context={**context, "url": url, "reason": "missing 'chart'"},
            )

        results = chart.get("result")
        if not results:
            raise NoDataError(
                f"No chart data found for {subject}",
                context={**context, "url": url},
            )
        if not isinstance(results, list) or not isinstance(results[0], dict):
            raise ParsingError(
                f"Malformed chart result for {subject}",
                context={**context, "url": url, "reason": "result[0] is not an object"},
            )
        return results[0]

    async def _get_json(
        self,
        url: str,
        params: dict[str, str],
        subject: str,
        context: dict[str, str],
    ) -> dict:
        """Issue one GET and validate the envelope.

        Raises:
            NetworkError: Transport failure.
            BlockedOrRateLimitedError: HTML body or HTTP 429.
            ParsingError: Body is not a JSON object.
            ProviderError: Provider error object, or non-2xx without one.
        """
        context = {**context, "url": url}
        await self._limiter.acquire()
        try:
            response = await self._client.get(url, params=params)
        except httpx.RequestError as e:
            raise NetworkError(
                f"Request failed for {subject}: {e}",
                context=context,
            ) from e

        body = response.text
        if response.status_code == 429 or _looks_like_html(body):
            logger.warning(
                "Yahoo Finance blocked request for %s (HTTP %d)",
                subject,
                response.status_code,
            )
            raise BlockedOrRateLimitedError(
                f"Yahoo Finance blocked or rate limited the request for {subject} "
                f"(HTTP {response.status_code})",
                context={**context, "status_code": response.status_code},
            )

        try:
            payload = json.loads(body, parse_float=Decimal)
        except ValueError as e:
            if response.is_error:
                raise ProviderError(
                    f"Yahoo Finance returned HTTP {response.status_code} for {subject}",
                    context={**context, "status_code": response.status_code},
                ) from e
            raise ParsingError(
                f"Failed to parse JSON for {subject}: {e}",
                context={**context, "reason": str(e)},
            ) from e
        if not isinstance(payload, dict):
            raise ParsingError(
                f"Failed to parse JSON for {subject}: expected an object",
                context={**context, "reason": type(payload).__name__},
            )

        err = _extract_error(payload)
        if err is not None:
            raise ProviderError(
                f"Yahoo Finance returned error for {subject}: "
                f"{err.get('code')} - {err.get('description')}",
                context={
                    **context,
                    "code": err.get("code"),
                    "description": err.get("description"),
                    "status_code": response.status_code,
                },
            )

        if response.is_error:
            raise ProviderError(
                f"Yahoo Finance returned HTTP {response.status_code} for {subject}",
                context={**context, "status_code": response.status_code},
            )

        return payload
