"""Quote provider and adapter protocols: the source-agnostic interface layer.

Architecture
------------
    Provider HTTP response → ChartAdapter → list[PricePoint] → QuoteResolver

- **QuoteProvider** is what the resolver and the search merger depend on.
  Implementations issue one outbound call per method and hold no state
  between calls beyond their HTTP session.

- **ChartAdapter** turns one raw chart payload into ``PricePoint`` records.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from stockbook.core.models import Period, PricePoint, ProviderQuote


@runtime_checkable
class ChartAdapter(Protocol):
    """Transforms a raw chart payload into an ascending PricePoint series."""

    def adapt(self, raw_data: Any) -> list[PricePoint]: ...


@runtime_checkable
class QuoteProvider(Protocol):
    """Consumer-facing interface for the external quote source.

    Every method raises a :class:`~stockbook.core.exceptions.QuoteError`
    subclass on failure. None of them return placeholder values.
    """

    async def fetch_current_price(self, symbol: str) -> Decimal:
        """Latest traded price for ``symbol``."""
        ...

    async def fetch_chart(self, symbol: str, period: str | Period) -> list[PricePoint]:
        """Full provider series for ``period``, ascending by date."""
        ...

    async def fetch_search(self, query: str, limit: int) -> list[ProviderQuote]:
        """Provider search hits for ``query``, unfiltered by asset kind."""
        ...
