"""Typed exception hierarchy for market data errors.

Provides structured exceptions for differentiated error handling
(rate limits vs unknown symbols vs timeouts vs unparseable payloads).
Callers never see transport-level status codes except as metadata.
"""

from enum import Enum


class UpstreamErrorKind(str, Enum):
    """Classification of an upstream provider failure."""

    RATE_LIMITED = "RateLimited"
    NOT_FOUND = "NotFound"
    TIMEOUT = "Timeout"
    HTTP_ERROR = "HttpError"
    MALFORMED = "Malformed"


class ParseErrorKind(str, Enum):
    """Classification of a payload that could not become a Quote."""

    NO_SERIES_DATA = "NoSeriesData"
    MISSING_PRICE_FIELD = "MissingPriceField"


class UpstreamError(Exception):
    """Base exception for all upstream provider errors.

    Carries the provider name so callers can identify which provider failed.
    """

    kind: UpstreamErrorKind = UpstreamErrorKind.HTTP_ERROR

    def __init__(self, message: str, provider_name: str = ""):
        self.provider_name = provider_name
        super().__init__(message)

    @property
    def retriable(self) -> bool:
        """Rate limits and timeouts usually clear up on their own."""
        return self.kind in (UpstreamErrorKind.RATE_LIMITED, UpstreamErrorKind.TIMEOUT)


class RateLimitedError(UpstreamError):
    """Provider refused the call because of a rate limit or quota (HTTP 429)."""

    kind = UpstreamErrorKind.RATE_LIMITED


class SymbolNotFoundError(UpstreamError):
    """Provider does not know the requested symbol (HTTP 404)."""

    kind = UpstreamErrorKind.NOT_FOUND


class UpstreamTimeoutError(UpstreamError):
    """The call did not complete within the hard timeout."""

    kind = UpstreamErrorKind.TIMEOUT


class UpstreamHTTPError(UpstreamError):
    """Any other non-2xx response, or a transport failure (status_code None)."""

    kind = UpstreamErrorKind.HTTP_ERROR

    def __init__(
        self,
        message: str,
        provider_name: str = "",
        status_code: int | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, provider_name)

    @property
    def retriable(self) -> bool:
        if self.status_code is None:
            return True
        return self.status_code >= 500


class MissingApiKeyError(UpstreamHTTPError):
    """A keyed provider was selected but no API key is configured."""

    def __init__(self, message: str, provider_name: str = ""):
        super().__init__(message, provider_name, status_code=None)

    @property
    def retriable(self) -> bool:
        return False


class MalformedPayloadError(UpstreamError):
    """Response body is not JSON or reports a provider-side error."""

    kind = UpstreamErrorKind.MALFORMED


class QuoteParseError(Exception):
    """A provider payload could not be turned into a Quote."""

    kind: ParseErrorKind = ParseErrorKind.NO_SERIES_DATA

    def __init__(self, message: str, symbol: str = ""):
        self.symbol = symbol
        super().__init__(message)


class NoSeriesDataError(QuoteParseError):
    """Payload contains no result / price series at all."""

    kind = ParseErrorKind.NO_SERIES_DATA


class MissingPriceFieldError(QuoteParseError):
    """Payload has a result but neither a live price nor any valid close."""

    kind = ParseErrorKind.MISSING_PRICE_FIELD
