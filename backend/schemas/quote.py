"""Pydantic schemas for quote, history and dividend requests."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from integrations.market_data_protocol import QuoteSource

HISTORY_RANGES = ("1y", "2y")


class _SymbolsRequest(BaseModel):
    symbols: list[str] = Field(min_length=1)

    @field_validator("symbols")
    @classmethod
    def require_non_blank(cls, v: list[str]) -> list[str]:
        cleaned = [s for s in v if isinstance(s, str) and s.strip()]
        if not cleaned:
            raise ValueError("symbols array required")
        return cleaned


class BatchQuoteRequest(_SymbolsRequest):
    """Request body for ``POST /api/quotes/batch``."""

    model_config = ConfigDict(populate_by_name=True)

    source: QuoteSource = QuoteSource.YAHOO
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    force: bool = False


class BatchQuoteResponse(BaseModel):
    """Partitioned batch outcome; each symbol is in exactly one map."""

    results: dict[str, dict[str, Any]]
    errors: dict[str, str]


class HistoryRequest(_SymbolsRequest):
    """Request body for close-history and correlation endpoints."""

    model_config = ConfigDict(populate_by_name=True)

    range_: str = Field(default="2y", alias="range")

    @field_validator("range_")
    @classmethod
    def validate_range(cls, v: str) -> str:
        if v not in HISTORY_RANGES:
            raise ValueError(f"range must be one of {HISTORY_RANGES}")
        return v


class DividendBatchRequest(_SymbolsRequest):
    """Request body for ``POST /api/quotes/dividend/batch``."""


class PointLookupResponse(BaseModel):
    """Historical close nearest to a requested date."""

    symbol: str
    companyName: str
    price: float
    date: str
    requestedDate: str
    daysOff: int
    isHistorical: bool
    currency: str
