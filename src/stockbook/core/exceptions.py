"""Custom exception hierarchy for stockbook."""

from typing import Any


class StockbookError(Exception):
    """Base exception for all stockbook errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(StockbookError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str - the config field that failed validation
        value: Any - the invalid value
    """


class QuoteError(StockbookError):
    """Failed to obtain data from the external quote provider.

    Policy: surface to the caller when no stored fallback exists.

    Context keys:
        symbol: str - the ticker being resolved (absent for searches)
        period: str - the chart period, if any
        url: str - the URL that was being fetched
    """


class NetworkError(QuoteError):
    """Transport-level failure (DNS, connect, read timeout)."""


class BlockedOrRateLimitedError(QuoteError):
    """The provider answered with an HTML page or HTTP 429.

    Yahoo serves consent or challenge pages to clients it considers
    automated. The body is HTML where JSON was expected.

    Context keys:
        status_code: int - HTTP status of the blocked response
    """


class ParsingError(QuoteError):
    """The provider body was not a well-formed JSON envelope.

    Context keys:
        reason: str - the decoder error
    """


class ProviderError(QuoteError):
    """The provider returned a well-formed error payload.

    Context keys:
        code: str | None - provider error code (e.g. "Not Found")
        description: str | None - provider error description
        status_code: int - HTTP status
    """


class NoDataError(QuoteError):
    """The provider returned no result entries for a valid request."""


class StorageError(StockbookError):
    """Database operation failed.

    Policy: the resolver treats this as "tier unavailable" and falls
    through to the provider; write-back failures are logged only.

    Context keys:
        operation: str - "upsert", "query", "delete", "migrate", etc.
        table: str - the table involved
    """


class InvalidDateError(StockbookError):
    """A date argument was not a valid YYYY-MM-DD calendar date.

    Context keys:
        field: str - the argument name
        value: str - the rejected value
    """
