"""Symbol search: curated local catalog merged with provider search hits."""

from __future__ import annotations

import logging
from importlib import resources
from pathlib import Path

import yaml
from pydantic import ValidationError

from stockbook.core.exceptions import ConfigError, StockbookError
from stockbook.core.models import SearchResult, SymbolEntry, SymbolSuggestion
from stockbook.prices.provider import QuoteProvider

logger = logging.getLogger(__name__)

DEFAULT_ASSET_TYPES = ("EQUITY", "ETF")


def load_symbol_catalog(path: str | Path | None = None) -> list[SymbolEntry]:
    """Load the curated symbol list from YAML.

    Parameters
    ----------
    path : str | Path | None
        A YAML file holding a list of symbol mappings. Uses the catalog
        bundled at ``stockbook/data/symbols.yaml`` if None.

    Raises
    ------
    ConfigError
        If the file is missing, not a YAML list, or an entry is invalid.
    """
    try:
        if path is None:
            text = (resources.files("stockbook") / "data" / "symbols.yaml").read_text(
                encoding="utf-8"
            )
            source = "stockbook/data/symbols.yaml"
        else:
            text = Path(path).read_text(encoding="utf-8")
            source = str(path)
        raw = yaml.safe_load(text)
    except OSError as e:
        raise ConfigError(
            f"Cannot read symbol catalog: {e}",
            context={"field": "search.symbols_path", "value": str(path)},
        ) from e
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML in symbol catalog: {e}",
            context={"field": "search.symbols_path", "value": str(path)},
        ) from e

    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError(
            f"Symbol catalog must be a list, got {type(raw).__name__}",
            context={"field": "search.symbols_path", "value": source},
        )

    try:
        entries = [SymbolEntry(**item) for item in raw]
    except (ValidationError, TypeError) as e:
        raise ConfigError(
            f"Invalid symbol catalog entry: {e}",
            context={"field": "search.symbols_path", "value": source},
        ) from e

    logger.debug("Loaded %d catalog symbols from %s", len(entries), source)
    return entries


class SymbolSearchMerger:
    """Combines local catalog matches with filtered provider hits.

    Parameters
    ----------
    catalog : list[SymbolEntry]
        Curated entries, scanned in order.
    provider : QuoteProvider
        Consulted only when the catalog yields fewer than ``limit`` matches.
    asset_types : Iterable of str
        Provider ``quoteType`` values to keep (case-insensitive).
    """

    def __init__(
        self,
        catalog: list[SymbolEntry],
        provider: QuoteProvider,
        asset_types: tuple[str, ...] | list[str] = DEFAULT_ASSET_TYPES,
    ) -> None:
        self._catalog = list(catalog)
        self._provider = provider
        self._asset_types = frozenset(t.upper() for t in asset_types)

    def match_local(self, query: str, limit: int) -> list[SymbolSuggestion]:
        """Catalog entries whose symbol starts with, or name contains, ``query``."""
        needle = query.strip().lower()
        matches: list[SymbolSuggestion] = []
        for entry in self._catalog:
            if len(matches) >= limit:
                break
            if entry.symbol.lower().startswith(needle) or needle in entry.name.lower():
                matches.append(entry.to_suggestion())
        return matches

    async def search(self, query: str, limit: int) -> SearchResult:
        """Merge local and provider results, exact symbol match first.

        A provider failure is logged and the local matches are returned
        with ``complete=False``.
        """
        needle = query.strip().lower()
        if not needle or limit <= 0:
            return SearchResult(suggestions=[])

        matches = self.match_local(needle, limit)
        complete = True

        if len(matches) < limit:
            try:
                hits = await self._provider.fetch_search(needle, limit - len(matches))
            except StockbookError as e:
                logger.warning("Provider search failed for %r: %s", needle, e)
                complete = False
            else:
                seen = {m.symbol.upper() for m in matches}
                for hit in hits:
                    if len(matches) >= limit:
                        break
                    if hit.quote_type.upper() not in self._asset_types:
                        continue
                    if hit.symbol.upper() in seen:
                        continue
                    seen.add(hit.symbol.upper())
                    matches.append(hit.to_suggestion())

        matches.sort(key=lambda s: (s.symbol.lower() != needle, s.symbol))
        return SearchResult(suggestions=matches, complete=complete)
