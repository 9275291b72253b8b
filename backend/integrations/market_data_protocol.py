"""Market data provider protocol definitions.

Defines the normalized Quote representation shared by every provider and
the interface quote providers implement. Provider-specific payload shapes
never leak past the parser: downstream code only sees ``Quote``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol

RawPayload = dict[str, Any]

# Period labels for which a reference close is kept, in display order.
PERIODS = ("1W", "1M", "YTD", "1Y", "2Y")


class QuoteSource(str, Enum):
    """Upstream provider that produced a quote."""

    YAHOO = "yahoo"
    ALPHA_VANTAGE = "alphavantage"


@dataclass
class Quote:
    """Canonical per-symbol market snapshot.

    Prices are in the instrument's native trading currency. ``refs`` only
    contains periods for which a reference close was found.
    """

    symbol: str
    price: float
    prev_close: float
    open: float
    change: float
    change_pct: float
    currency: str
    market_date: str  # YYYY-MM-DD of the last trading day in the data
    source: QuoteSource
    fetched_at: int  # epoch milliseconds
    refs: dict[str, float] = field(default_factory=dict)
    name: Optional[str] = None
    short_name: Optional[str] = None
    long_name: Optional[str] = None
    stale: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the wire (camelCase) field names."""
        data: dict[str, Any] = {
            "symbol": self.symbol,
            "price": self.price,
            "prevClose": self.prev_close,
            "open": self.open,
            "change": self.change,
            "changePct": self.change_pct,
            "refs": dict(self.refs),
            "currency": self.currency,
            "marketDate": self.market_date,
            "source": self.source.value,
            "fetchedAt": self.fetched_at,
            "name": self.name,
            "shortName": self.short_name,
            "longName": self.long_name,
        }
        if self.stale:
            data["_stale"] = True
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Quote":
        """Inverse of :meth:`to_dict`."""
        return cls(
            symbol=data["symbol"],
            price=float(data["price"]),
            prev_close=float(data["prevClose"]),
            open=float(data["open"]),
            change=float(data["change"]),
            change_pct=float(data["changePct"]),
            currency=data.get("currency") or "USD",
            market_date=data["marketDate"],
            source=QuoteSource(data.get("source", QuoteSource.YAHOO.value)),
            fetched_at=int(data["fetchedAt"]),
            refs={k: float(v) for k, v in (data.get("refs") or {}).items()},
            name=data.get("name"),
            short_name=data.get("shortName"),
            long_name=data.get("longName"),
            stale=bool(data.get("_stale", False)),
        )


@dataclass
class PointLookup:
    """Historical close nearest to (at or before) a requested date."""

    symbol: str
    price: float
    date: str  # actual trading day used
    requested_date: str
    days_off: int
    is_historical: bool
    currency: str
    company_name: str


@dataclass
class SplitAdjustedPrice:
    """Historical close with later splits multiplied back out."""

    symbol: str
    price: float
    adjusted_close: float
    split_multiplier: float
    date: str
    currency: str


class QuoteProvider(Protocol):
    """Protocol for quote providers.

    Implementations perform the upstream HTTP call(s) and return the raw
    payload; parsing into a ``Quote`` is done by ``services.quote_parser``.
    Failures are raised as ``integrations.exceptions.UpstreamError``.
    """

    @property
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'yahoo')."""
        ...

    @property
    def source(self) -> QuoteSource:
        """Return the QuoteSource tag this provider's quotes carry."""
        ...

    async def fetch_quote_payload(
        self, symbol: str, api_key: Optional[str] = None
    ) -> RawPayload:
        """Fetch everything needed to build a daily Quote for ``symbol``."""
        ...


@dataclass
class DividendSummary:
    """Trailing-twelve-month dividend figures derived from dividend events.

    Every figure is None when the instrument paid nothing in the window.
    """

    symbol: str
    currency: str
    price: Optional[float] = None
    annual_rate: Optional[float] = None
    yield_pct: Optional[float] = None
    frequency: int = 0  # payments in the trailing twelve months
    ex_date: Optional[str] = None
    next_ex_date: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "currency": self.currency,
            "price": self.price,
            "annualRate": self.annual_rate,
            "yieldPct": self.yield_pct,
            "frequency": self.frequency,
            "exDate": self.ex_date,
            "nextExDate": self.next_ex_date,
        }
