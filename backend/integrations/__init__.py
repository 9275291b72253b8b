"""External API integrations.

This package contains:
- Market data protocol: Quote representation and the provider interface
- Yahoo Finance client: chart endpoint (quotes, history, splits, dividends)
- Alpha Vantage client: keyed, quota-limited alternate quote source
- Frankfurter client: latest and historical FX rates
"""

from integrations.market_data_protocol import (
    Quote,
    QuoteProvider,
    QuoteSource,
)

__all__ = [
    "Quote",
    "QuoteProvider",
    "QuoteSource",
]
