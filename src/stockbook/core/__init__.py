"""stockbook.core: foundation types, config, and exceptions."""

from stockbook.core.config import (
    CacheConfig,
    ProviderConfig,
    SearchConfig,
    StockbookConfig,
    StorageConfig,
    load_config,
)
from stockbook.core.exceptions import (
    BlockedOrRateLimitedError,
    ConfigError,
    InvalidDateError,
    NetworkError,
    NoDataError,
    ParsingError,
    ProviderError,
    QuoteError,
    StockbookError,
    StorageError,
)
from stockbook.core.models import (
    CacheStats,
    Period,
    PricePoint,
    PriceRecord,
    ProviderQuote,
    SearchResult,
    StorageBackend,
    Symbol,
    SymbolEntry,
    SymbolSuggestion,
)

__all__ = [
    # Type aliases
    "Symbol",
    # Enums
    "Period",
    "StorageBackend",
    # Price models
    "PriceRecord",
    "PricePoint",
    # Symbol models
    "SymbolEntry",
    "SymbolSuggestion",
    "ProviderQuote",
    "SearchResult",
    "CacheStats",
    # Config
    "StockbookConfig",
    "ProviderConfig",
    "StorageConfig",
    "CacheConfig",
    "SearchConfig",
    "load_config",
    # Exceptions
    "StockbookError",
    "ConfigError",
    "QuoteError",
    "NetworkError",
    "BlockedOrRateLimitedError",
    "ParsingError",
    "ProviderError",
    "NoDataError",
    "StorageError",
    "InvalidDateError",
]
