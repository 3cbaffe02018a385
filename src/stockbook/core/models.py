"""Pydantic data models that define the type contracts."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator

# --- Type Aliases ---

Symbol = str

# --- Enumerations ---


class Period(StrEnum):
    """Named look-back periods accepted by chart requests."""

    ONE_DAY = "1D"
    ONE_WEEK = "1W"
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    SIX_MONTHS = "6M"
    ONE_YEAR = "1Y"
    TWO_YEARS = "2Y"
    FIVE_YEARS = "5Y"
    TEN_YEARS = "10Y"
    MAX = "MAX"

    @classmethod
    def parse(cls, value: str | Period) -> Period:
        """Case-insensitive lookup. Unknown strings fall back to 1M."""
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.ONE_MONTH


class StorageBackend(StrEnum):
    """Supported storage backends."""

    SQLITE = "sqlite"


# --- Price Models ---


class PriceRecord(BaseModel):
    """One persisted (symbol, date) price row."""

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    symbol: Symbol
    price: Decimal
    volume: int | None = None
    date: date
    created_at: datetime
    updated_at: datetime

    @field_validator("symbol")
    @classmethod
    def symbol_uppercase(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol must not be empty")
        return v


class PricePoint(BaseModel):
    """A single point of a price series, ascending by date within a series."""

    model_config = ConfigDict(frozen=True)

    date: date
    price: Decimal
    volume: int | None = None

    @classmethod
    def from_record(cls, record: PriceRecord) -> PricePoint:
        return cls(date=record.date, price=record.price, volume=record.volume)


# --- Symbol Models ---


class SymbolSuggestion(BaseModel):
    """Search result returned to callers."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    name: str
    exchange: str
    asset_type: str


class SymbolEntry(BaseModel):
    """An entry of the curated local symbol catalog."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    name: str
    exchange: str
    asset_type: str
    ipo_date: date | None = None
    status: str = "Active"

    def to_suggestion(self) -> SymbolSuggestion:
        return SymbolSuggestion(
            symbol=self.symbol,
            name=self.name,
            exchange=self.exchange,
            asset_type=self.asset_type,
        )


class ProviderQuote(BaseModel):
    """A raw provider search hit, before asset-kind filtering."""

    model_config = ConfigDict(frozen=True)

    symbol: Symbol
    name: str
    exchange: str
    asset_type: str
    quote_type: str

    def to_suggestion(self) -> SymbolSuggestion:
        return SymbolSuggestion(
            symbol=self.symbol,
            name=self.name,
            exchange=self.exchange,
            asset_type=self.asset_type,
        )


class SearchResult(BaseModel):
    """Merged search output.

    `complete` is False when the provider step failed and only local
    catalog matches are included.
    """

    model_config = ConfigDict(frozen=True)

    suggestions: list[SymbolSuggestion]
    complete: bool = True


class CacheStats(NamedTuple):
    """Entry counts of the resolver's three caches."""

    price_count: int
    chart_count: int
    symbol_count: int
